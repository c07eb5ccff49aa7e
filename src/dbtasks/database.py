"""
Database facade binding the executor to a connection factory.

Every call asks the factory for a fresh, unopened connection, hands it to
the executor, and lets the executor close it.
"""
import logging
from dataclasses import fields
from typing import Any, TypeVar

from dbtasks import executor
from dbtasks.command import Command, CommandBehavior
from dbtasks.connection import ConnectionFactory, PgConnectionFactory
from dbtasks.executor import RowAction, RowMapper
from dbtasks.options import DatabaseOptions

from libb import load_options

__all__ = [
    'Database',
    'connect',
]

logger = logging.getLogger(__name__)

T = TypeVar('T')


class Database:
    """Runs commands, one fresh connection per call.

    Accepts a connection factory, a DatabaseOptions object, or a libpq
    connection string.
    """

    def __init__(self, factory: ConnectionFactory | DatabaseOptions | str) -> None:
        if isinstance(factory, DatabaseOptions | str):
            factory = PgConnectionFactory(factory)
        self.factory = factory

    async def execute_non_query(self, command: Command) -> int:
        return await executor.execute_non_query(command, self.factory.get_connection())

    async def execute_scalar(self, command: Command) -> Any:
        return await executor.execute_scalar(command, self.factory.get_connection())

    async def execute_reader(self, command: Command, action: RowAction,
                             behavior: CommandBehavior | None = None) -> int:
        return await executor.execute_reader(command, self.factory.get_connection(),
                                             action, behavior)

    async def get_one_row(self, command: Command, mapper: RowMapper[T]) -> T | None:
        return await executor.get_one_row(command, self.factory.get_connection(), mapper)

    async def get_rows(self, command: Command, mapper: RowMapper[T]) -> list[T]:
        return await executor.get_rows(command, self.factory.get_connection(), mapper)


@load_options(cls=DatabaseOptions)
def connect(options: DatabaseOptions | dict[str, Any] | str,
            config: Any | None = None, **kw: Any) -> Database:
    """Create a Database for PostgreSQL

    Args:
        options: Can be:
                - DatabaseOptions object
                - String name of a configuration entry
                - Dictionary of options
                - Options specified as keyword arguments
        config: Configuration object (for loading from config files)
        **kw: Additional keyword arguments to override options

    No connection is made here; each operation opens its own.

    Returns
        Database bound to a PgConnectionFactory for the options
    """
    if isinstance(options, DatabaseOptions):
        for field in fields(options):
            kw.pop(field.name, None)
    else:
        options_func = load_options(cls=DatabaseOptions)(lambda o, c: o)
        options = options_func(options, config, **kw)

    logger.debug(f'Database configured for {options.hostname}:{options.port}/{options.database}')
    return Database(PgConnectionFactory(options))
