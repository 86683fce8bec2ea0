import asyncio
from dataclasses import dataclass, field
from typing import List, Optional

from psycopg import IsolationLevel

from phenomena.backends import Backend, Credential, Transaction
from phenomena.base import DirectiveTimeout, isolation_level_name
from phenomena.directives import Directive, DirectiveKind, Observation, apply_directive, is_commit
from phenomena.utils.logging import get_logger, log_step

log = get_logger(__name__)


@dataclass
class SessionResult:
    label: str
    isolation_level: IsolationLevel
    observations: List[Observation] = field(default_factory=list)

    @property
    def reads(self) -> List[int]:
        return [o.value for o in self.observations if o.directive.kind is DirectiveKind.READ_COUNTER]


class Session:
    """One database account running exactly one transaction.

    The session only reacts to directives sent to its inbound queue; it applies
    them in arrival order and ends its transaction with the commit directive.
    Sending is a rendezvous: ``send`` returns once the session has taken the
    directive, which is after it finished applying the previous one.
    """

    def __init__(
        self,
        label: str,
        credential: Credential,
        backend: Backend,
        isolation_level: IsolationLevel,
        receive_timeout: Optional[float] = None,
    ):
        self.label = label
        self.credential = credential
        self.backend = backend
        self.isolation_level = isolation_level
        self.receive_timeout = receive_timeout
        self.inbound: asyncio.Queue[Directive] = asyncio.Queue(maxsize=1)

    async def send(self, directive: Directive) -> None:
        await self.inbound.put(directive)
        await self.inbound.join()

    async def _receive(self) -> Directive:
        directive = await self._get()
        self.inbound.task_done()
        return directive

    async def _get(self) -> Directive:
        if self.receive_timeout is None:
            return await self.inbound.get()

        try:
            return await asyncio.wait_for(self.inbound.get(), timeout=self.receive_timeout)
        except TimeoutError:
            raise DirectiveTimeout(
                f"Session {self.label} received no directive within {self.receive_timeout}s."
            ) from None

    async def run(self) -> SessionResult:
        result = SessionResult(self.label, self.isolation_level)
        # validates the level before any connection is opened
        level_name = isolation_level_name(self.isolation_level)

        conn = await self.backend.connect(self.credential)
        try:
            cursor = await self.backend.cursor(conn)
            try:
                transaction = Transaction(self.backend, cursor)
                await transaction.begin(self.isolation_level)
                log_step(log, self.label, f"BEGIN ({level_name}), now taking directives")

                while True:
                    directive = await self._receive()
                    result.observations.append(await apply_directive(directive, transaction, self.label))
                    if is_commit(directive):
                        break
            finally:
                await cursor.close()
        finally:
            await self.backend.close(conn)

        log_step(log, self.label, "END")
        return result
