"""
Forward-only row access over a driver cursor.

`RowCursor` advances the driver cursor one row at a time. Each advance
yields a `Row` view that reads columns by name; a view is only valid until
the next advance, and all views die when the cursor is released.
"""
import logging
import time
from collections.abc import Iterator
from functools import wraps
from typing import Any

from dbtasks.exceptions import CursorStateError
from dbtasks.types import DBNull

__all__ = [
    'dumpsql',
    'Row',
    'RowCursor',
]

logger = logging.getLogger(__name__)


def dumpsql(func):
    """Decorator for logging a command's SQL, parameters and timing."""
    @wraps(func)
    async def wrapper(cursor: Any, command: Any, connection: Any, *args: Any, **kwargs: Any):
        start = time.time()
        names = [p.name for p in command.parameters]
        logger.debug(f'SQL:\n{command.text}\nparams: {names}')
        try:
            result = await func(cursor, command, connection, *args, **kwargs)
            if hasattr(cursor, 'statusmessage'):
                logger.debug(f'Query result: {cursor.statusmessage}')
            return result
        except Exception:
            logger.error(f'Error with query:\nSQL:\n{command.text}\nparams: {names}')
            raise
        finally:
            elapsed = time.time() - start
            if hasattr(connection, 'addcall'):
                connection.addcall(elapsed)
            logger.debug(f'Query time: {elapsed:.4f}s')
    return wrapper


def _column_name(description_item: Any) -> str:
    """Column name from a DB-API description item (psycopg Column or tuple)."""
    name = getattr(description_item, 'name', None)
    if name is None:
        name = description_item[0]
    return name


class Row:
    """Read-only view of the cursor's current row.

    SQL NULL reads as ``DBNull``. A column missing from the result raises
    KeyError. Any access after the owning cursor has moved on raises
    CursorStateError.
    """

    __slots__ = ('_cursor', '_generation')

    def __init__(self, cursor: 'RowCursor', generation: int) -> None:
        self._cursor = cursor
        self._generation = generation

    def _values(self) -> tuple:
        cursor = self._cursor
        if cursor.released or cursor.generation != self._generation:
            raise CursorStateError('Row accessed after the cursor advanced or was released')
        return cursor.current_values

    def __getitem__(self, name: str) -> Any:
        values = self._values()
        try:
            index = self._cursor.index[name]
        except KeyError:
            raise KeyError(f'Column {name!r} not in result: {self._cursor.columns}') from None
        value = values[index]
        return DBNull if value is None else value

    def get(self, name: str, default: Any = DBNull) -> Any:
        """Column value, or ``default`` if the column is not in the result."""
        values = self._values()
        index = self._cursor.index.get(name)
        if index is None:
            return default
        value = values[index]
        return DBNull if value is None else value

    def __contains__(self, name: object) -> bool:
        self._values()
        return name in self._cursor.index

    def __iter__(self) -> Iterator[str]:
        return iter(self.columns)

    def __len__(self) -> int:
        return len(self.columns)

    def keys(self) -> list[str]:
        return self.columns

    @property
    def columns(self) -> list[str]:
        self._values()
        return list(self._cursor.columns)

    def is_null(self, name: str) -> bool:
        return self[name] is DBNull

    def to_dict(self) -> dict[str, Any]:
        """Copy the current values into a plain dict (nulls as ``DBNull``)."""
        return {name: self[name] for name in self._cursor.columns}

    def __repr__(self) -> str:
        try:
            return f'Row({self.to_dict()!r})'
        except CursorStateError:
            return 'Row(<stale>)'


class RowCursor:
    """Forward-only cursor yielding one `Row` per advance.

    Only one RowCursor is active per connection; it does not buffer rows.
    """

    def __init__(self, cursor: Any) -> None:
        self.dbapi_cursor = cursor
        self.columns = [_column_name(c) for c in (cursor.description or [])]
        self.index: dict[str, int] = {}
        for i, name in enumerate(self.columns):
            self.index.setdefault(name, i)
        self.current_values: tuple = ()
        self.generation = 0
        self.released = False
        self.rows_read = 0

    async def read(self) -> Row | None:
        """Advance to the next row.

        Returns the new current Row, or None once the result is exhausted.
        Rows handed out earlier become invalid either way.
        """
        if self.released:
            raise CursorStateError('Cursor has been released')
        self.generation += 1
        if not self.columns:
            self.current_values = ()
            return None
        values = await self.dbapi_cursor.fetchone()
        if values is None:
            self.current_values = ()
            return None
        self.current_values = tuple(values)
        self.rows_read += 1
        return Row(self, self.generation)

    def release(self) -> None:
        """Invalidate all rows. The driver cursor itself is closed by its owner."""
        self.released = True
        self.current_values = ()
