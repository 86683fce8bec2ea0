from __future__ import annotations

import argparse

import pytest
from psycopg import IsolationLevel
from pydantic import ValidationError

import main
from phenomena.scenario import DEFAULT_ROWS
from tests.fakes import FakeBackend, FakeDatabase


def test_parse_row() -> None:
    assert main._parse_row("read-uncommitted:read-committed") == (
        IsolationLevel.READ_UNCOMMITTED,
        IsolationLevel.READ_COMMITTED,
    )


@pytest.mark.parametrize("value", ["read-committed", "read-committed:dirty"])
def test_parse_row_rejects_bad_values(value: str) -> None:
    with pytest.raises(argparse.ArgumentTypeError):
        main._parse_row(value)


def test_parse_args_defaults() -> None:
    args = main._parse_args([])

    assert args.scenario == "dirty-read"
    assert args.row is None
    assert args.json_logs is None


def test_parse_args_rows_and_overrides() -> None:
    args = main._parse_args([
        "-s", "non-repeatable-read",
        "-r", "repeatable-read:read-committed",
        "-r", "serializable:read-uncommitted",
        "--delay", "0.5",
    ])

    assert args.scenario == "non-repeatable-read"
    assert args.row == [
        (IsolationLevel.REPEATABLE_READ, IsolationLevel.READ_COMMITTED),
        (IsolationLevel.SERIALIZABLE, IsolationLevel.READ_UNCOMMITTED),
    ]
    assert main._settings(args).directive_delay == 0.5


@pytest.mark.parametrize(
    "argv",
    [["--delay", "-1"], ["--receive-timeout", "0"]],
)
def test_settings_reject_out_of_range_overrides(argv: list[str]) -> None:
    with pytest.raises(ValidationError):
        main._settings(main._parse_args(argv))


def test_cli_exits_zero_when_every_row_matches(capsys: pytest.CaptureFixture[str]) -> None:
    backend = FakeBackend()

    code = main.cli(["--delay", "0.01"], backend=backend)

    out = capsys.readouterr().out
    assert code == 0
    assert out.count("DB STATE: BEFORE") == len(DEFAULT_ROWS)
    assert "READ UNCOMMITTED" in out
    assert "NO" not in out
    assert not backend.db.table_exists


def test_cli_exits_one_on_mismatch(capsys: pytest.CaptureFixture[str]) -> None:
    # claims dirty reads the fake database never produces
    backend = FakeBackend(FakeDatabase(dirty_reads=False))
    backend.supports_dirty_reads = True

    code = main.cli(["--delay", "0.01", "-r", "read-uncommitted:read-committed"], backend=backend)

    out = capsys.readouterr().out
    assert code == 1
    assert out.count("DB STATE: BEFORE") == 1
    assert "NO" in out


def test_cli_exits_one_on_error(capsys: pytest.CaptureFixture[str]) -> None:
    code = main.cli(["--delay", "0.01"], backend=FakeBackend(failing_connects=5, connect_attempts=1))

    assert code == 1
    assert "Connection refused" in capsys.readouterr().out
