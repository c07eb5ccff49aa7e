"""
Connection lifecycle and connection factories.

This module provides:
1. The driver protocols (`DbConnection`, `DbCursor`) the executor relies on
2. `PgConnection`, a one-shot wrapper adapting psycopg's AsyncConnection
3. Connection factories producing a fresh, unopened connection per call

A connection moves NEW -> OPEN -> CLOSED exactly once. It is owned by a
single executor call and never reopened; pooling, if wanted, belongs to the
factory or the driver.
"""
import logging
from collections.abc import Awaitable, Callable, Sequence
from enum import Enum, auto
from typing import Any, Protocol, Self, runtime_checkable

import psycopg
from dbtasks.exceptions import ConnectionFailure
from dbtasks.options import DatabaseOptions

__all__ = [
    'ConnectionState',
    'DbCursor',
    'DbConnection',
    'ConnectionFactory',
    'PgConnection',
    'PgConnectionFactory',
]

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Lifecycle state of a connection."""
    NEW = auto()
    OPEN = auto()
    CLOSED = auto()


@runtime_checkable
class DbCursor(Protocol):
    """Forward-only driver cursor, as exposed by psycopg's AsyncCursor."""

    description: Sequence[Any] | None
    rowcount: int

    async def execute(self, query: Any, params: Any = None) -> Any: ...

    async def fetchone(self) -> Sequence[Any] | None: ...

    async def close(self) -> None: ...


@runtime_checkable
class DbConnection(Protocol):
    """Connection capability consumed by the executor."""

    @property
    def state(self) -> ConnectionState: ...

    async def open(self) -> None: ...

    async def close(self) -> None: ...

    def cursor(self) -> DbCursor: ...


@runtime_checkable
class ConnectionFactory(Protocol):
    """Produces a fresh, unopened connection for each logical operation."""

    def get_connection(self) -> DbConnection: ...


class PgConnection:
    """Wraps a psycopg AsyncConnection to enforce a one-shot lifecycle

    This class provides a thin wrapper around psycopg connections that:
    1. Defers connecting until `open()`, then runs in autocommit mode
    2. Refuses to reopen after `close()`
    3. Makes `close()` idempotent
    4. Tracks query execution counts and timing
    """

    def __init__(self, conninfo: str,
                 connector: Callable[..., Awaitable[psycopg.AsyncConnection]] | None = None) -> None:
        """Initialize an unopened connection
        """
        self.conninfo = conninfo
        self._connector = connector or psycopg.AsyncConnection.connect
        self._connection: psycopg.AsyncConnection | None = None
        self._state = ConnectionState.NEW
        self.calls = 0
        self.time = 0

    async def __aenter__(self) -> Self:
        await self.open()
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: BaseException | None,
                        exc_tb: Any | None) -> None:
        await self.close()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def driver_connection(self) -> psycopg.AsyncConnection | None:
        """The underlying psycopg connection, None until opened."""
        return self._connection

    async def open(self) -> None:
        """Connect to the server.

        Raises ConnectionFailure if the connection was already closed.
        Driver errors from connecting propagate unchanged.
        """
        if self._state == ConnectionState.OPEN:
            return
        if self._state == ConnectionState.CLOSED:
            raise ConnectionFailure('Connection is closed and cannot be reopened')

        self._connection = await self._connector(self.conninfo, autocommit=True)
        self._state = ConnectionState.OPEN
        logger.debug('Connection opened')

    async def close(self) -> None:
        """Close the connection. No-op if it is already closed.
        """
        if self._state == ConnectionState.CLOSED:
            return
        try:
            if self._connection is not None and not self._connection.closed:
                await self._connection.close()
        finally:
            self._state = ConnectionState.CLOSED
            self._connection = None
            logger.debug(f'Connection closed: {self.calls} queries in {self.time:.2f}s (avg: {self.time/max(1,self.calls):.3f}s per query)')

    def cursor(self) -> psycopg.AsyncCursor:
        """Return a new driver cursor on the open connection.
        """
        if self._state != ConnectionState.OPEN:
            raise ConnectionFailure(f'Connection is not open (state: {self._state.name})')
        return self._connection.cursor()

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1


class PgConnectionFactory:
    """Connection factory for PostgreSQL.

    Each call to `get_connection` returns a new unopened `PgConnection`.
    """

    def __init__(self, options: DatabaseOptions | str,
                 connector: Callable[..., Awaitable[psycopg.AsyncConnection]] | None = None) -> None:
        if isinstance(options, DatabaseOptions):
            self.conninfo = options.conninfo()
        else:
            self.conninfo = options
        self._connector = connector
        self.created = 0

    def get_connection(self) -> PgConnection:
        self.created += 1
        return PgConnection(self.conninfo, connector=self._connector)
