"""
Scenario scripts and the runner that plays them.

A scenario is a fixed script of ``Send`` and ``Pause`` steps for two sessions,
A and B. The runner starts both sessions, plays the script and collects what
each session observed. Pauses are the only ordering mechanism between the
sessions; the database alone decides what each transaction can see.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from psycopg import IsolationLevel

from phenomena.backends import Backend, Credential, backend_for_url
from phenomena.base import SHINS_RO, PhenomenonMismatch, Record, ScenarioError, isolation_level_name
from phenomena.config import Settings
from phenomena.directives import Directive, is_commit
from phenomena.session import Session, SessionResult
from phenomena.utils.logging import get_logger

log = get_logger(__name__)

ROLES = ("A", "B")

DEFAULT_ROWS: List[Tuple[IsolationLevel, IsolationLevel]] = [
    (IsolationLevel.READ_UNCOMMITTED, IsolationLevel.READ_COMMITTED),
    (IsolationLevel.READ_COMMITTED, IsolationLevel.READ_COMMITTED),
    (IsolationLevel.REPEATABLE_READ, IsolationLevel.READ_COMMITTED),
]


@dataclass(frozen=True)
class Send:
    role: str
    directive: Directive


@dataclass(frozen=True)
class Pause:
    # None means the runner's configured delay
    seconds: Optional[float] = None


Step = Union[Send, Pause]


@dataclass(frozen=True)
class Expectation:
    reads_a: Tuple[int, ...]
    final_counter: int


ExpectFn = Callable[[IsolationLevel, IsolationLevel, Backend], Expectation]


@dataclass(frozen=True)
class Scenario:
    key: str
    steps: Tuple[Step, ...]
    expect: ExpectFn
    description: str = ""
    record: Record = SHINS_RO

    def validate(self) -> None:
        """Each role must get the commit exactly once, as its last directive."""
        for step in self.steps:
            if isinstance(step, Send) and step.role not in ROLES:
                raise ScenarioError(f"{self.key}: unknown role {step.role!r}, expected one of {ROLES}.")

        for role in ROLES:
            sent = [s.directive for s in self.steps if isinstance(s, Send) and s.role == role]
            commits = [i for i, directive in enumerate(sent) if is_commit(directive)]
            if len(commits) != 1:
                raise ScenarioError(f"{self.key}: session {role} must receive commit exactly once, got {len(commits)}.")
            if commits[0] != len(sent) - 1:
                raise ScenarioError(f"{self.key}: session {role} receives directives after its commit.")


@dataclass
class RowOutcome:
    scenario: str
    isolation_a: IsolationLevel
    isolation_b: IsolationLevel
    results: Dict[str, SessionResult]
    final_counter: int
    expected: Expectation
    before: List[Dict] = field(default_factory=list)
    after: List[Dict] = field(default_factory=list)

    @property
    def reads_a(self) -> Tuple[int, ...]:
        return tuple(self.results["A"].reads)

    @property
    def matches(self) -> bool:
        return self.reads_a == self.expected.reads_a and self.final_counter == self.expected.final_counter

    def verify(self) -> None:
        if not self.matches:
            raise PhenomenonMismatch(
                f"{self.scenario} at {isolation_level_name(self.isolation_a)}/"
                f"{isolation_level_name(self.isolation_b)}: observed reads {self.reads_a} "
                f"and final counter {self.final_counter}, expected {self.expected.reads_a} "
                f"and {self.expected.final_counter}."
            )

    def summary(self) -> Dict[str, Any]:
        return {
            "session A": isolation_level_name(self.isolation_a),
            "session B": isolation_level_name(self.isolation_b),
            "A reads": ",".join(str(v) for v in self.reads_a),
            "expected": ",".join(str(v) for v in self.expected.reads_a),
            "final": self.final_counter,
            "ok": "yes" if self.matches else "NO",
        }


class ScenarioRunner:
    """Plays scenarios against one backend with two session credentials.

    ``admin`` is the account used for DDL and record resets; None means the
    credentials embedded in the backend URL.
    """

    def __init__(
        self,
        backend: Backend,
        credentials: Dict[str, Credential],
        admin: Optional[Credential] = None,
        delay: float = 1.0,
        receive_timeout: Optional[float] = None,
    ):
        missing = [role for role in ROLES if role not in credentials]
        if missing:
            raise ValueError(f"Missing credentials for sessions {missing}.")

        self.backend = backend
        self.credentials = credentials
        self.admin = admin
        self.delay = delay
        self.receive_timeout = receive_timeout

    @classmethod
    def from_settings(cls, settings: Settings, backend: Optional[Backend] = None) -> "ScenarioRunner":
        if backend is None:
            backend = backend_for_url(settings.database_url, connect_attempts=settings.connect_attempts)
        return cls(
            backend,
            {
                "A": Credential(settings.session_a_user, settings.session_a_password),
                "B": Credential(settings.session_b_user, settings.session_b_password),
            },
            delay=settings.directive_delay,
            receive_timeout=settings.receive_timeout,
        )

    @asynccontextmanager
    async def _admin_connection(self) -> AsyncIterator[Any]:
        conn = await self.backend.connect(self.admin)
        try:
            yield conn
        finally:
            await self.backend.close(conn)

    async def setup(self) -> None:
        async with self._admin_connection() as conn:
            await self.backend.create_table(conn)
        log.debug("created test table on %s", self.backend.name)

    async def teardown(self) -> None:
        async with self._admin_connection() as conn:
            await self.backend.drop_table(conn)
        log.debug("dropped test table on %s", self.backend.name)

    async def table_exists(self) -> bool:
        async with self._admin_connection() as conn:
            return await self.backend.table_exists(conn)

    async def run_row(self, scenario: Scenario, level_a: IsolationLevel, level_b: IsolationLevel) -> RowOutcome:
        scenario.validate()
        expected = scenario.expect(level_a, level_b, self.backend)

        async with self._admin_connection() as conn:
            await self.backend.reset_record(conn, scenario.record)
            before = await self.backend.fetch_records(conn)

        log.info(
            "%s: session A at %s, session B at %s",
            scenario.key, isolation_level_name(level_a), isolation_level_name(level_b),
        )
        levels = {"A": level_a, "B": level_b}
        sessions = {
            role: Session(
                self.credentials[role].user,
                self.credentials[role],
                self.backend,
                levels[role],
                receive_timeout=self.receive_timeout,
            )
            for role in ROLES
        }

        async with asyncio.TaskGroup() as tg:
            tasks = {role: tg.create_task(session.run(), name=f"session-{role}") for role, session in sessions.items()}
            await self._play(scenario.steps, sessions)

        async with self._admin_connection() as conn:
            final_counter = await self.backend.read_counter(conn, scenario.record.name)
            after = await self.backend.fetch_records(conn)

        return RowOutcome(
            scenario=scenario.key,
            isolation_a=level_a,
            isolation_b=level_b,
            results={role: task.result() for role, task in tasks.items()},
            final_counter=final_counter,
            expected=expected,
            before=before,
            after=after,
        )

    async def _play(self, steps: Sequence[Step], sessions: Dict[str, Session]) -> None:
        for step in steps:
            if isinstance(step, Pause):
                await asyncio.sleep(self.delay if step.seconds is None else step.seconds)
            else:
                await sessions[step.role].send(step.directive)

    async def run_table(
        self,
        scenario: Scenario,
        rows: Iterable[Tuple[IsolationLevel, IsolationLevel]] = DEFAULT_ROWS,
    ) -> List[RowOutcome]:
        """Run every row in order between one table create and one table drop."""
        scenario.validate()
        await self.setup()
        try:
            outcomes = []
            for level_a, level_b in rows:
                outcomes.append(await self.run_row(scenario, level_a, level_b))
            return outcomes
        finally:
            await self.teardown()
