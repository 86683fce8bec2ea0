from dataclasses import dataclass
from typing import Dict, List

from psycopg import IsolationLevel


class PhenomenaError(Exception):
    """Base class for harness errors."""


class ScenarioError(PhenomenaError):
    pass


class DirectiveTimeout(PhenomenaError):
    pass


class PhenomenonMismatch(PhenomenaError):
    pass


@dataclass(frozen=True)
class Record:
    id: int
    name: str
    counter: int


SHINS_RO = Record(id=1, name="Shins Ro", counter=0)


ISOLATION_LEVEL_CHOICES = [
    "read-uncommitted",
    "read-committed",
    "repeatable-read",
    "serializable",
]


def parse_isolation_level(isolation_level: str) -> IsolationLevel:
    match isolation_level:
        case "read-uncommitted":
            return IsolationLevel.READ_UNCOMMITTED
        case "read-committed":
            return IsolationLevel.READ_COMMITTED
        case "repeatable-read":
            return IsolationLevel.REPEATABLE_READ
        case "serializable":
            return IsolationLevel.SERIALIZABLE
        case _:
            raise ValueError(f"Unknown isolation level {isolation_level}")


def isolation_level_name(level: IsolationLevel) -> str:
    """Render a level the way SQL spells it, e.g. ``READ UNCOMMITTED``."""
    match level:
        case IsolationLevel.READ_UNCOMMITTED:
            return "READ UNCOMMITTED"
        case IsolationLevel.READ_COMMITTED:
            return "READ COMMITTED"
        case IsolationLevel.REPEATABLE_READ:
            return "REPEATABLE READ"
        case IsolationLevel.SERIALIZABLE:
            return "SERIALIZABLE"
        case _:
            raise ValueError(f"Unhandled isolation level {level!r}.")


def format_table(records: List[Dict]) -> str:
    if not records:
        return "EMPTY"

    # results in |{:>18}|{:>18}|...| to format as many fields as in the first record
    fmt = ("|{:>18}" * len(records[0])) + "|"
    formatted = fmt.format(*list(records[0].keys()))
    for record in records:
        values = map(lambda x: x if x is not None else "NULL", record.values())
        formatted += "\n" + fmt.format(*[str(v) for v in values])

    return formatted
