"""
Executable command values.

A Command is SQL text (or a procedure name) plus its ordered parameters and
result-shape hints. Commands are immutable: ``add_params`` returns a new one.

Usage:
    cmd = to_cmd('SELECT * FROM users WHERE id = @id', to_param(1, '@id'))
    cmd = to_cmd('app.add_user', to_param('bob', '@name'),
                 command_type=CommandType.STORED_PROCEDURE)
"""
import logging
from dataclasses import dataclass, field, replace
from enum import Enum, Flag, auto
from typing import Any

from dbtasks.parameters import Parameter, ParameterDirection, bind_value, param
from dbtasks.sql import find_parameter_names, infer_parameter_name
from dbtasks.sql import prepare_sql, procedure_call
from dbtasks.types import TypeTag

logger = logging.getLogger(__name__)

__all__ = [
    'CommandType',
    'CommandBehavior',
    'Command',
    'to_cmd',
    'to_cmd_value',
    'add_params',
]


class CommandType(Enum):
    """How the command text is interpreted."""
    TEXT = auto()
    STORED_PROCEDURE = auto()


class CommandBehavior(Flag):
    """Result-shape hints for reader execution."""
    DEFAULT = 0
    SINGLE_RESULT = auto()
    SCHEMA_ONLY = auto()
    KEY_INFO = auto()
    SINGLE_ROW = auto()
    SEQUENTIAL_ACCESS = auto()
    CLOSE_CONNECTION = auto()


@dataclass(frozen=True, slots=True)
class Command:
    """A bound SQL statement, ready for one execution."""
    text: str
    parameters: tuple[Parameter, ...] = field(default_factory=tuple)
    command_type: CommandType = CommandType.TEXT
    behavior: CommandBehavior = CommandBehavior.DEFAULT

    def compile(self) -> tuple[str, dict[str, Any] | None]:
        """Return the query text and parameter dict in psycopg's format.

        The parameter dict is None when the command has no parameters, so
        psycopg leaves ``%`` in the text alone.
        """
        bound = [p for p in self.parameters if p.direction != ParameterDirection.RETURN_VALUE]

        if self.command_type == CommandType.STORED_PROCEDURE:
            query = procedure_call(self.text, [p.key for p in bound])
        else:
            keys = frozenset(p.key for p in bound)
            query = prepare_sql(self.text, keys)
            referenced = find_parameter_names(self.text)
            missing = [p.name for p in bound if p.name not in referenced]
            if missing:
                logger.debug(f'Parameters not referenced in SQL: {missing}')

        if not bound:
            return query, None
        return query, {p.key: bind_value(p) for p in bound}


def to_cmd(sql: str, *parameters: Parameter,
           command_type: CommandType = CommandType.TEXT,
           behavior: CommandBehavior = CommandBehavior.DEFAULT) -> Command:
    """Build a command from SQL text and parameters, in the order given.

    Parameter names are not checked against the SQL; a mismatch surfaces
    as a driver error at execution time.
    """
    return Command(sql, tuple(parameters), command_type, behavior)


def to_cmd_value(sql: str, type_tag: TypeTag, value: Any,
                 direction: ParameterDirection = ParameterDirection.INPUT) -> Command:
    """Build a single-parameter command, taking the name from the SQL text.

    The name is the first whitespace-separated ``@`` token (see
    `infer_parameter_name`). This is fragile: it only suits statements with
    exactly one parameter written with surrounding spaces. Prefer `to_cmd`
    with explicitly named parameters.
    """
    name = infer_parameter_name(sql)
    return to_cmd(sql, param(name, type_tag, value, direction))


def add_params(command: Command, *parameters: Parameter) -> Command:
    """Return a copy of the command with parameters appended.
    """
    return replace(command, parameters=command.parameters + tuple(parameters))
