"""
Database backends: connection handling and the SQL dialect of each server.

A backend is the explicit connection object handed to the scenario runner and
to every session. PostgreSQL goes through psycopg, MySQL through the asyncio
flavour of mysql-connector-python.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote, unquote, urlsplit, urlunsplit

import psycopg
from mysql.connector import aio as mysql_aio
from mysql.connector import errors as mysql_errors
from psycopg import IsolationLevel
from psycopg.rows import dict_row
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from phenomena.base import Record, isolation_level_name
from phenomena.utils.logging import get_logger

log = get_logger(__name__)

TABLE = "employee"


@dataclass(frozen=True)
class Credential:
    user: str
    password: str = ""

    def __repr__(self) -> str:
        return f"Credential(user={self.user!r})"


class Backend(ABC):
    """Connection factory plus dialect for one database server."""

    name: str = "abstract"
    supports_dirty_reads: bool = False
    retry_wait = wait_exponential(multiplier=1, min=1, max=10)

    create_table_sql: str
    drop_table_sql = f"drop table if exists {TABLE}"
    replace_record_sql: str
    select_counter_sql = f"select off_days from {TABLE} where full_name = %s"
    increment_counter_sql = f"update {TABLE} set off_days = off_days + 1 where full_name = %s"
    select_records_sql = f"select id, full_name, off_days from {TABLE} order by id"
    table_exists_sql: str
    commit_sql = "commit"

    def __init__(self, url: str, connect_attempts: int = 3):
        self.url = url
        self.connect_attempts = connect_attempts

    def dsn_for(self, credential: Optional[Credential] = None) -> str:
        """The configured URL, with the user and password swapped for ``credential``."""
        if credential is None:
            return self.url

        parts = urlsplit(self.url)
        # netloc keeps brackets around IPv6 hosts, hostname does not
        host = parts.netloc.rpartition("@")[2] or "localhost"
        userinfo = quote(credential.user, safe="")
        if credential.password:
            userinfo += ":" + quote(credential.password, safe="")
        return urlunsplit((parts.scheme, f"{userinfo}@{host}", parts.path, parts.query, parts.fragment))

    async def connect(self, credential: Optional[Credential] = None) -> Any:
        """Open an autocommit connection, retrying transient failures with backoff."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.connect_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception(self.is_transient),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    log.warning("retrying %s connection (attempt %d)", self.name, attempt.retry_state.attempt_number)
                return await self._open(self.dsn_for(credential))

    def is_transient(self, exc: BaseException) -> bool:
        """Whether a failed connect is worth retrying; bad credentials are not."""
        return isinstance(exc, (ConnectionError, TimeoutError))

    @abstractmethod
    async def _open(self, dsn: str) -> Any:
        ...

    @abstractmethod
    async def cursor(self, conn: Any, as_dict: bool = False) -> Any:
        ...

    async def close(self, conn: Any) -> None:
        await conn.close()

    @abstractmethod
    def begin_statements(self, level: IsolationLevel) -> List[str]:
        ...

    async def execute(
        self,
        conn: Any,
        query: str,
        params: Sequence[Any] = (),
        fetch: bool = False,
        as_dict: bool = False,
    ) -> List[Any]:
        cursor = await self.cursor(conn, as_dict=as_dict)
        try:
            if params:
                await cursor.execute(query, tuple(params))
            else:
                await cursor.execute(query)
            return list(await cursor.fetchall()) if fetch else []
        finally:
            await cursor.close()

    # schema helpers, run on the admin connection

    async def create_table(self, conn: Any) -> None:
        await self.execute(conn, self.create_table_sql)

    async def drop_table(self, conn: Any) -> None:
        await self.execute(conn, self.drop_table_sql)

    async def reset_record(self, conn: Any, record: Record) -> None:
        await self.execute(conn, self.replace_record_sql, (record.id, record.name, record.counter))

    async def table_exists(self, conn: Any) -> bool:
        rows = await self.execute(conn, self.table_exists_sql, (TABLE,), fetch=True)
        return rows[0][0] > 0

    async def fetch_records(self, conn: Any) -> List[Dict]:
        return await self.execute(conn, self.select_records_sql, fetch=True, as_dict=True)

    async def read_counter(self, conn: Any, name: str) -> int:
        rows = await self.execute(conn, self.select_counter_sql, (name,), fetch=True)
        if not rows:
            raise LookupError(f"No record named {name!r} in {TABLE}.")
        return rows[0][0]


class PostgresBackend(Backend):
    """PostgreSQL runs READ UNCOMMITTED as READ COMMITTED, so it never reads dirty data."""

    name = "postgresql"
    supports_dirty_reads = False
    # libpq reports refused connections and auth failures alike as OperationalError
    transient_messages = ("connection refused", "timeout expired", "the database system is starting up")

    create_table_sql = f"""
        create table if not exists {TABLE} (
            id serial primary key,
            full_name varchar(30) not null,
            off_days int not null
        )
    """
    replace_record_sql = f"""
        insert into {TABLE} (id, full_name, off_days) values (%s, %s, %s)
        on conflict (id) do update
        set full_name = excluded.full_name, off_days = excluded.off_days
    """
    table_exists_sql = """
        select count(*) from information_schema.tables
        where table_schema = current_schema() and table_name = %s
    """

    def is_transient(self, exc: BaseException) -> bool:
        if isinstance(exc, psycopg.OperationalError):
            message = str(exc).lower()
            return any(fragment in message for fragment in self.transient_messages)
        return super().is_transient(exc)

    async def _open(self, dsn: str) -> psycopg.AsyncConnection:
        return await psycopg.AsyncConnection.connect(dsn, autocommit=True)

    async def cursor(self, conn: psycopg.AsyncConnection, as_dict: bool = False) -> psycopg.AsyncCursor:
        if as_dict:
            return conn.cursor(row_factory=dict_row)
        return conn.cursor()

    def begin_statements(self, level: IsolationLevel) -> List[str]:
        return [
            "begin transaction",
            f"set transaction isolation level {isolation_level_name(level).lower()}",
        ]


class MySQLBackend(Backend):
    name = "mysql"
    supports_dirty_reads = True
    # CR_CONNECTION_ERROR, CR_CONN_HOST_ERROR, CR_SERVER_LOST, ER_CON_COUNT_ERROR
    transient_errnos = frozenset({2002, 2003, 2013, 1040})

    create_table_sql = f"""
        create table if not exists {TABLE} (
            id int auto_increment primary key,
            full_name varchar(30) not null,
            off_days int not null
        )
    """
    replace_record_sql = f"replace into {TABLE} (id, full_name, off_days) values (%s, %s, %s)"
    table_exists_sql = """
        select count(*) from information_schema.tables
        where table_schema = database() and table_name = %s
    """

    def is_transient(self, exc: BaseException) -> bool:
        if isinstance(exc, mysql_errors.Error):
            return exc.errno in self.transient_errnos
        return super().is_transient(exc)

    async def _open(self, dsn: str) -> Any:
        parts = urlsplit(dsn)
        return await mysql_aio.connect(
            host=parts.hostname or "localhost",
            port=parts.port or 3306,
            user=unquote(parts.username or ""),
            password=unquote(parts.password or ""),
            database=parts.path.lstrip("/"),
            autocommit=True,
        )

    async def cursor(self, conn: Any, as_dict: bool = False) -> Any:
        return await conn.cursor(dictionary=as_dict)

    def begin_statements(self, level: IsolationLevel) -> List[str]:
        # SET TRANSACTION only applies to the next transaction, so it goes first
        return [
            f"set transaction isolation level {isolation_level_name(level).lower()}",
            "start transaction",
        ]


_BACKENDS = {
    "postgres": PostgresBackend,
    "postgresql": PostgresBackend,
    "mysql": MySQLBackend,
}


def backend_for_url(url: str, connect_attempts: int = 3) -> Backend:
    scheme = urlsplit(url).scheme
    backend_cls = _BACKENDS.get(scheme)
    if backend_cls is None:
        raise ValueError(f"Unsupported database URL scheme {scheme!r}; expected one of {sorted(_BACKENDS)}.")
    return backend_cls(url, connect_attempts=connect_attempts)


class Transaction:
    """The open transaction of one session: an explicit handle over a dedicated cursor."""

    def __init__(self, backend: Backend, cursor: Any):
        self.backend = backend
        self.cursor = cursor

    async def begin(self, level: IsolationLevel) -> None:
        for statement in self.backend.begin_statements(level):
            await self.cursor.execute(statement)

    async def read_counter(self, name: str) -> int:
        await self.cursor.execute(self.backend.select_counter_sql, (name,))
        rows = await self.cursor.fetchall()
        if not rows:
            raise LookupError(f"No record named {name!r} in {TABLE}.")
        return rows[0][0]

    async def increment_counter(self, name: str) -> int:
        await self.cursor.execute(self.backend.increment_counter_sql, (name,))
        return self.cursor.rowcount

    async def commit(self) -> None:
        await self.cursor.execute(self.backend.commit_sql)
