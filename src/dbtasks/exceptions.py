"""
Database-specific exception classes.

Driver failures are never wrapped: psycopg exceptions reach the caller
unchanged. The tuples at the bottom group the psycopg classes so callers
can write ``except DbConnectionError:`` without importing the driver.
"""
from typing import Any

import psycopg


class DatabaseError(Exception):
    """Base class for all dbtasks errors.
    """


class ConnectionFailure(DatabaseError):
    """Connection used outside its open/close lifecycle.
    """


class CursorStateError(DatabaseError):
    """Row cursor accessed after it was advanced past or released.
    """


class TypeConversionError(DatabaseError):
    """Column value could not be converted to the requested type.
    """

    def __init__(self, column: str | None, target: Any, value: Any = None,
                 reason: str | None = None) -> None:
        self.column = column
        self.target = target
        self.value = value
        target_name = getattr(target, '__name__', str(target))
        msg = f'Cannot convert column {column!r} value {value!r} to {target_name}'
        if reason:
            msg = f'{msg}: {reason}'
        super().__init__(msg)


DbConnectionError = (
    psycopg.OperationalError,
    psycopg.InterfaceError,
    ConnectionFailure,
    )

IntegrityError = (
    psycopg.IntegrityError,
    )

ProgrammingError = (
    psycopg.ProgrammingError,
    psycopg.DataError,
    )

OperationalError = (
    psycopg.OperationalError,
    )

UniqueViolation = (
    psycopg.errors.UniqueViolation,
    )
