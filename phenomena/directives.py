"""
Directives: the scripted units of work a session applies inside its open
transaction.

Directives are plain values. The same instance can be sent to both sessions;
it is bound to a transaction and a session label only when
:func:`apply_directive` interprets it.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from phenomena.backends import Transaction
from phenomena.utils.logging import get_logger, log_step

log = get_logger(__name__)


class DirectiveKind(Enum):
    READ_COUNTER = "read-counter"
    INCREMENT_COUNTER = "increment-counter"
    COMMIT = "commit"


@dataclass(frozen=True)
class Directive:
    kind: DirectiveKind
    record_name: Optional[str] = None

    def __str__(self) -> str:
        if self.record_name is None:
            return self.kind.value
        return f"{self.kind.value}({self.record_name})"


@dataclass(frozen=True)
class Observation:
    label: str
    directive: Directive
    value: Optional[int] = None
    step: int = 0


COMMIT = Directive(DirectiveKind.COMMIT)


def read_counter(record_name: str) -> Directive:
    return Directive(DirectiveKind.READ_COUNTER, record_name)


def increment_counter(record_name: str) -> Directive:
    return Directive(DirectiveKind.INCREMENT_COUNTER, record_name)


def is_commit(directive: Directive) -> bool:
    return directive == COMMIT


async def apply_directive(directive: Directive, transaction: Transaction, label: str) -> Observation:
    """Run ``directive`` against ``transaction`` on behalf of session ``label``.

    Errors from the database propagate unchanged; the caller's transaction is
    then considered failed.
    """
    match directive.kind:
        case DirectiveKind.READ_COUNTER:
            value = await transaction.read_counter(directive.record_name)
            step = log_step(
                log, label, f"off days of {directive.record_name}: {value}",
                directive=str(directive), value=value,
            )
            return Observation(label, directive, value, step)
        case DirectiveKind.INCREMENT_COUNTER:
            modified = await transaction.increment_counter(directive.record_name)
            step = log_step(
                log, label, f"off days of {directive.record_name} +1 (MODIFIED: {modified})",
                directive=str(directive),
            )
            return Observation(label, directive, None, step)
        case DirectiveKind.COMMIT:
            await transaction.commit()
            step = log_step(log, label, "COMMIT", directive=str(directive))
            return Observation(label, directive, None, step)
        case _:
            raise ValueError(f"Unknown directive {directive!r}.")
