"""
Command execution with a guaranteed connection lifecycle.

Every operation takes a command and a connection it owns for the duration
of the call:

1. open the connection unless it is already open
2. execute the command on a fresh driver cursor
3. close the driver cursor, then the connection, on every exit path

Errors from opening, executing or mapping propagate unchanged once the
connection has been closed. Errors raised while closing are logged and
suppressed so they never replace the error that caused the exit.

Operations:
- execute_non_query(cmd, cn) - affected row count
- execute_scalar(cmd, cn) - first column of the first row
- execute_reader(cmd, cn, action) - call action once per row, unbuffered
- get_one_row(cmd, cn, mapper) - first row mapped, or None
- get_rows(cmd, cn, mapper) - every row mapped, in cursor order
"""
import inspect
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, TypeVar

from dbtasks.command import Command, CommandBehavior
from dbtasks.connection import ConnectionState, DbConnection, DbCursor
from dbtasks.cursor import Row, RowCursor, dumpsql

__all__ = [
    'scoped_connection',
    'execute_non_query',
    'execute_scalar',
    'execute_reader',
    'get_one_row',
    'get_rows',
]

logger = logging.getLogger(__name__)

T = TypeVar('T')

RowAction = Callable[[Row], Awaitable[None] | None]
RowMapper = Callable[[Row], T | Awaitable[T]]


async def _close_quietly(resource: Any, what: str) -> None:
    """Close a resource, logging instead of raising on failure."""
    try:
        await resource.close()
    except Exception as err:
        logger.warning(f'Error closing {what}: {err}')


@asynccontextmanager
async def scoped_connection(connection: DbConnection) -> AsyncIterator[DbConnection]:
    """Open a connection if needed and close it on every exit path.
    """
    try:
        if connection.state != ConnectionState.OPEN:
            await connection.open()
        yield connection
    finally:
        await _close_quietly(connection, 'connection')


@dumpsql
async def _execute(cursor: DbCursor, command: Command, connection: DbConnection) -> None:
    query, params = command.compile()
    await cursor.execute(query, params)


@asynccontextmanager
async def _command_cursor(command: Command, connection: DbConnection) -> AsyncIterator[DbCursor]:
    """Execute a command on a new driver cursor, closing the cursor afterwards."""
    cursor = connection.cursor()
    try:
        await _execute(cursor, command, connection)
        yield cursor
    finally:
        await _close_quietly(cursor, 'cursor')


async def _apply(func: Callable[[Row], Any], row: Row) -> Any:
    """Call a sync or async per-row function."""
    result = func(row)
    if inspect.isawaitable(result):
        result = await result
    return result


async def execute_non_query(command: Command, connection: DbConnection) -> int:
    """Execute a command and return the affected row count.

    The count is -1 when the statement has no meaningful row count.
    """
    async with scoped_connection(connection), _command_cursor(command, connection) as cursor:
        rowcount = cursor.rowcount
        logger.debug(f'Non-query affected {rowcount} rows')
        return rowcount


async def execute_scalar(command: Command, connection: DbConnection) -> Any:
    """Execute a command and return the first column of the first row.

    Returns None when there are no rows or the value is SQL NULL.
    """
    async with scoped_connection(connection), _command_cursor(command, connection) as cursor:
        if cursor.description is None:
            return None
        row = await cursor.fetchone()
        if row is None:
            return None
        value = row[0]
        logger.debug(f'Scalar query returned value of type {type(value).__name__}')
        return value


async def execute_reader(command: Command, connection: DbConnection, action: RowAction,
                         behavior: CommandBehavior | None = None) -> int:
    """Execute a command and call ``action`` once per row as rows are read.

    ``action`` may be a plain function or a coroutine function; it receives
    the current Row, which is only valid during that call. ``SINGLE_ROW``
    stops after the first row and ``SCHEMA_ONLY`` reads none. ``behavior``
    defaults to the command's own hint.

    Returns the number of rows passed to ``action``.
    """
    behavior = command.behavior if behavior is None else behavior
    async with scoped_connection(connection), _command_cursor(command, connection) as cursor:
        reader = RowCursor(cursor)
        try:
            if CommandBehavior.SCHEMA_ONLY in behavior:
                return 0
            while (row := await reader.read()) is not None:
                await _apply(action, row)
                if CommandBehavior.SINGLE_ROW in behavior:
                    break
            logger.debug(f'Reader delivered {reader.rows_read} rows')
            return reader.rows_read
        finally:
            reader.release()


async def get_one_row(command: Command, connection: DbConnection,
                      mapper: RowMapper[T]) -> T | None:
    """Execute a command and map its first row, or return None if it has none.
    """
    results: list[T] = []

    async def collect(row: Row) -> None:
        results.append(await _apply(mapper, row))

    await execute_reader(command, connection, collect,
                         behavior=command.behavior | CommandBehavior.SINGLE_ROW)
    return results[0] if results else None


async def get_rows(command: Command, connection: DbConnection,
                   mapper: RowMapper[T]) -> list[T]:
    """Execute a command and map every row, preserving cursor order.

    The list is only returned once every row has been read and mapped; a
    failure part way through discards the rows mapped so far.
    """
    results: list[T] = []

    async def collect(row: Row) -> None:
        results.append(await _apply(mapper, row))

    await execute_reader(command, connection, collect,
                         behavior=command.behavior | CommandBehavior.SINGLE_RESULT)
    return results
