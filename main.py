import argparse
import asyncio
import sys
from typing import List, Optional, Tuple

from psycopg import IsolationLevel

from phenomena import registry
from phenomena.backends import Backend
from phenomena.base import ISOLATION_LEVEL_CHOICES, format_table, parse_isolation_level
from phenomena.config import Settings, get_settings
from phenomena.scenario import DEFAULT_ROWS, RowOutcome, ScenarioRunner
from phenomena.utils.logging import configure_logging


def _parse_args(argv: List[str] | None = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Reproduce transaction isolation read phenomena.")

    ap.add_argument(
        "--scenario",
        "-s",
        type=str,
        default="dirty-read",
        choices=registry.get_registered()
    )

    ap.add_argument(
        "--row",
        "-r",
        type=_parse_row,
        action="append",
        metavar="LEVEL_A:LEVEL_B",
        help=f"isolation levels of sessions A and B, one of {', '.join(ISOLATION_LEVEL_CHOICES)}; repeatable",
    )

    ap.add_argument("--database-url", type=str)
    ap.add_argument("--delay", type=float, help="seconds between scripted directives")
    ap.add_argument("--receive-timeout", type=float, help="give up when a session waits longer for a directive")
    ap.add_argument("--log-level", type=str)
    ap.add_argument("--json-logs", action="store_true", default=None)

    return ap.parse_args(argv)


def _parse_row(value: str) -> Tuple[IsolationLevel, IsolationLevel]:
    level_a, sep, level_b = value.partition(":")
    if not sep:
        raise argparse.ArgumentTypeError(f"expected LEVEL_A:LEVEL_B, got {value!r}")
    try:
        return parse_isolation_level(level_a), parse_isolation_level(level_b)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _settings(args: argparse.Namespace) -> Settings:
    overrides = {
        "database_url": args.database_url,
        "directive_delay": args.delay,
        "receive_timeout": args.receive_timeout,
        "log_level": args.log_level,
        "log_json": args.json_logs,
    }
    # validate again so the CLI values get the same bounds as the environment
    return Settings.model_validate(
        {**get_settings().model_dump(), **{k: v for k, v in overrides.items() if v is not None}}
    )


async def main(args: argparse.Namespace, backend: Optional[Backend] = None) -> bool:
    settings = _settings(args)
    configure_logging(level=settings.log_level, json_logs=settings.log_json)

    scenario = registry.resolve(args.scenario)
    runner = ScenarioRunner.from_settings(settings, backend)

    if scenario.description:
        print(scenario.key, ":", runner.backend.name)
        print(scenario.description)
        print()

    outcomes = await runner.run_table(scenario, args.row or DEFAULT_ROWS)
    for outcome in outcomes:
        _print_outcome(outcome)

    print(format_table([outcome.summary() for outcome in outcomes]))
    return all(outcome.matches for outcome in outcomes)


def _print_outcome(outcome: RowOutcome):
    print("DB STATE: BEFORE", outcome.isolation_a.name, "/", outcome.isolation_b.name)
    print(format_table(outcome.before))
    print("DB STATE: AFTER")
    print(format_table(outcome.after))
    print()


def cli(argv: List[str] | None = None, backend: Optional[Backend] = None) -> int:
    try:
        ok = asyncio.run(main(_parse_args(argv), backend))
    except Exception as exc:
        print(exc)
        return 1
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(cli())
