"""
Named, typed command parameters.

Parameter names carry the ``@`` binding sigil (``@id``). The type tag is
decided when the parameter is built and never depends on whether the value
is null: a null ``Optional[int]`` is still an ``Int64`` parameter.

Usage:
    p = to_param(42, '@id')
    p = to_param(None, '@name', str)
    p = param('@id', TypeTag.Int32, 42)
"""
import decimal
import logging
import types
import typing
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

from dbtasks.types import DBNull, TypeTag, is_null, to_native, to_type_tag
from psycopg.types.numeric import Float4, Float8, Int2, Int4, Int8

logger = logging.getLogger(__name__)

__all__ = [
    'PARAMETER_PREFIX',
    'ParameterDirection',
    'Parameter',
    'to_param',
    'param',
    'add_param',
    'bind_value',
]

PARAMETER_PREFIX = '@'


class ParameterDirection(Enum):
    """Direction of a parameter relative to the command."""
    INPUT = auto()
    OUTPUT = auto()
    INPUT_OUTPUT = auto()
    RETURN_VALUE = auto()


@dataclass(frozen=True, slots=True)
class Parameter:
    """A named, typed value bound into a command."""
    name: str
    type_tag: TypeTag
    value: Any
    direction: ParameterDirection = ParameterDirection.INPUT

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or len(self.name) < 2 \
                or not self.name.startswith(PARAMETER_PREFIX):
            raise ValueError(f'Parameter name must start with {PARAMETER_PREFIX!r}: {self.name!r}')

    @property
    def key(self) -> str:
        """Name without the sigil, as used in driver placeholders."""
        return self.name[len(PARAMETER_PREFIX):]

    @property
    def is_null(self) -> bool:
        return self.value is DBNull


def _declared_base_type(declared: Any) -> Any:
    """Unwrap ``Optional[T]`` / ``T | None`` to ``T``.

    Unions of more than one non-null type are left as they are and so map
    to ``TypeTag.Object``.
    """
    origin = typing.get_origin(declared)
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(declared) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return declared


def _with_prefix(name: Any) -> str:
    name = str(name)
    return name if name.startswith(PARAMETER_PREFIX) else f'{PARAMETER_PREFIX}{name}'


def to_param(value: Any, name: str, declared_type: Any = None) -> Parameter:
    """Wrap a value into a named, typed parameter.

    A name given without the ``@`` sigil gets one (``id`` -> ``@id``).

    Null values take their tag from ``declared_type`` (``Object`` when none
    is given) and are stored as ``DBNull``. Non-null values take the tag of
    their runtime type and are stored as-is.

    >>> to_param(None, '@name', str).type_tag
    <TypeTag.String: 17>
    >>> to_param(None, '@name').value
    DBNull
    """
    name = _with_prefix(name)
    if is_null(value):
        if declared_type is None:
            tag = TypeTag.Object
        else:
            tag = to_type_tag(_declared_base_type(declared_type))
        return Parameter(name, tag, DBNull)
    return Parameter(name, to_type_tag(type(value)), value)


def param(name: str, type_tag: TypeTag, value: Any,
          direction: ParameterDirection = ParameterDirection.INPUT) -> Parameter:
    """Build a parameter with an explicit tag and direction.
    """
    if is_null(value):
        value = DBNull
    return Parameter(name, type_tag, value, direction)


def add_param(mapping: dict[str, Parameter], name: str, type_tag: TypeTag,
              value: Any) -> None:
    """Add an explicitly tagged parameter to a name-keyed dict.
    """
    mapping[name] = param(name, type_tag, value)


# Binding - Parameter -> psycopg value

_INT_WRAPPERS = {
    TypeTag.Byte: Int2,
    TypeTag.SByte: Int2,
    TypeTag.Int16: Int2,
    TypeTag.UInt16: Int4,
    TypeTag.Int32: Int4,
    TypeTag.UInt32: Int8,
    TypeTag.Int64: Int8,
}

_FLOAT_WRAPPERS = {
    TypeTag.Single: Float4,
    TypeTag.Double: Float8,
}

_NUMERIC_TAGS = {TypeTag.Decimal, TypeTag.UInt64}


def bind_value(parameter: Parameter) -> Any:
    """Return the value handed to psycopg for a parameter.

    Integer and floating tags are wrapped in psycopg's sized numeric types so
    the server sees the width the tag names. Values that do not fit the
    wrapper's Python kind are passed through for the server to judge.
    """
    if parameter.value is DBNull:
        return None

    value = to_native(parameter.value)
    tag = parameter.type_tag

    if tag in _INT_WRAPPERS and isinstance(value, int) and not isinstance(value, bool):
        return _INT_WRAPPERS[tag](value)
    if tag in _FLOAT_WRAPPERS and isinstance(value, (int, float)) and not isinstance(value, bool):
        return _FLOAT_WRAPPERS[tag](value)
    if tag in _NUMERIC_TAGS:
        if isinstance(value, float):
            return decimal.Decimal(str(value))
        if isinstance(value, int) and not isinstance(value, bool):
            return decimal.Decimal(value)
    return value
