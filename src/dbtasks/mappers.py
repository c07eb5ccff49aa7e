"""
Row mapping helpers for use inside mapping functions.

This module provides:
- from_db: read a named column and coerce it to a requested type
- Converters (to_int, to_str, to_date, ...): value -> typed value
- Reader helpers (get_string, get_int, ...): row + column -> typed value
- to_attrdict: a ready-made mapping function

Null handling: only this layer substitutes defaults. A null column
(``DBNull``, ``None``) or a column missing from the row gives the zero value
of the target type (``''``, ``0``, ``Decimal(0)`` ...), or None for the
``*_nullable`` variants and ``Optional[...]`` targets. Values that cannot be
converted raise TypeConversionError naming the column and target type.
"""
import datetime
import decimal
import logging
import types
import typing
import uuid
from collections.abc import Callable
from typing import Any
from xml.dom import minidom
from xml.parsers.expat import ExpatError

import dateutil.parser
import numpy as np
from dbtasks.exceptions import TypeConversionError
from dbtasks.types import DBNull, is_null, to_native

from libb import attrdict

__all__ = [
    'from_db',
    'zero_value',
    'to_date',
    'to_date_nullable',
    'to_str',
    'to_decimal',
    'to_float',
    'to_int',
    'to_long',
    'to_bool',
    'to_guid',
    'to_guid_nullable',
    'to_xml',
    'to_val',
    'get_string',
    'get_int',
    'get_long',
    'get_decimal',
    'get_float',
    'get_bool',
    'get_guid',
    'get_date',
    'to_attrdict',
]

logger = logging.getLogger(__name__)

INT32_MIN, INT32_MAX = -2**31, 2**31 - 1
INT64_MIN, INT64_MAX = -2**63, 2**63 - 1

_MISSING = object()

_ZERO_VALUES: dict[type, Any] = {
    str: '',
    int: 0,
    float: 0.0,
    decimal.Decimal: decimal.Decimal(0),
    bool: False,
    bytes: b'',
    datetime.datetime: datetime.datetime.min,
    uuid.UUID: uuid.UUID(int=0),
}


def _optional_inner(type_: Any) -> Any | None:
    """Return T for ``Optional[T]`` / ``T | None``, else None."""
    origin = typing.get_origin(type_)
    if origin is typing.Union or origin is types.UnionType:
        args = typing.get_args(type_)
        inner = [a for a in args if a is not type(None)]
        if len(inner) == 1 and len(args) == 2:
            return inner[0]
    return None


def zero_value(type_: Any) -> Any:
    """Default substituted for a null column of the given type.

    Optional targets and unknown types get None.
    """
    if type_ is None or _optional_inner(type_) is not None:
        return None
    return _ZERO_VALUES.get(type_)


def _lookup(row: Any, name: str) -> Any:
    """Column value by name; a missing column reads as null."""
    try:
        return row[name]
    except (KeyError, IndexError):
        return DBNull


# Converters - value -> typed value

def _to_integer(value: Any, column: str | None, target: str, lo: int, hi: int) -> int:
    value = to_native(value)
    if isinstance(value, bool):
        result = int(value)
    elif isinstance(value, int):
        result = value
    elif isinstance(value, float):
        if value != value or value in {float('inf'), float('-inf')}:
            raise TypeConversionError(column, target, value, 'not a finite number')
        result = round(value)
    elif isinstance(value, decimal.Decimal):
        if not value.is_finite():
            raise TypeConversionError(column, target, value, 'not a finite number')
        result = int(value.to_integral_value(rounding=decimal.ROUND_HALF_EVEN))
    elif isinstance(value, str):
        try:
            result = int(value.strip())
        except ValueError:
            raise TypeConversionError(column, target, value, 'not an integer string') from None
    else:
        raise TypeConversionError(column, target, value)
    if not lo <= result <= hi:
        raise TypeConversionError(column, target, value, 'out of range')
    return result


def to_int(value: Any, column: str | None = None) -> int:
    """Convert to a 32-bit integer, rounding half to even. Null -> 0.
    """
    if is_null(value):
        return 0
    return _to_integer(value, column, 'int32', INT32_MIN, INT32_MAX)


def to_long(value: Any, column: str | None = None) -> int:
    """Convert to a 64-bit integer, rounding half to even. Null -> 0.
    """
    if is_null(value):
        return 0
    return _to_integer(value, column, 'int64', INT64_MIN, INT64_MAX)


def to_decimal(value: Any, column: str | None = None) -> decimal.Decimal:
    """Convert to Decimal. Null -> Decimal(0).
    """
    if is_null(value):
        return decimal.Decimal(0)
    value = to_native(value)
    if isinstance(value, decimal.Decimal):
        result = value
    elif isinstance(value, bool | int):
        result = decimal.Decimal(int(value))
    elif isinstance(value, float):
        result = decimal.Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = decimal.Decimal(value.strip())
        except decimal.InvalidOperation:
            raise TypeConversionError(column, decimal.Decimal, value, 'not a decimal string') from None
    else:
        raise TypeConversionError(column, decimal.Decimal, value)
    if not result.is_finite():
        raise TypeConversionError(column, decimal.Decimal, value, 'not a finite number')
    return result


def to_float(value: Any, column: str | None = None) -> float:
    """Convert to a single-precision float, returned as a Python float. Null -> 0.0.
    """
    if is_null(value):
        return 0.0
    value = to_native(value)
    if isinstance(value, bool | int | float | decimal.Decimal):
        return float(np.float32(float(value)))
    if isinstance(value, str):
        try:
            return float(np.float32(float(value.strip())))
        except ValueError:
            raise TypeConversionError(column, 'float32', value, 'not a number string') from None
    raise TypeConversionError(column, 'float32', value)


def to_bool(value: Any, column: str | None = None) -> bool:
    """Convert to bool. Numbers are true when non-zero; strings must be true/false. Null -> False.
    """
    if is_null(value):
        return False
    value = to_native(value)
    if isinstance(value, bool):
        return value
    if isinstance(value, int | float | decimal.Decimal):
        return value != 0
    if isinstance(value, str):
        text = value.strip().lower()
        if text in {'true', 'false'}:
            return text == 'true'
        raise TypeConversionError(column, bool, value, 'not a boolean string')
    raise TypeConversionError(column, bool, value)


def to_str(value: Any, column: str | None = None) -> str:
    """Convert to str. Null -> ''.
    """
    if is_null(value):
        return ''
    if isinstance(value, str):
        return value
    if isinstance(value, bytes | bytearray | memoryview):
        try:
            return bytes(value).decode()
        except UnicodeDecodeError:
            raise TypeConversionError(column, str, value, 'not valid UTF-8') from None
    return str(to_native(value))


def to_date(value: Any, column: str | None = None) -> datetime.datetime:
    """Convert to datetime. Strings are parsed with dateutil. Null -> datetime.min.
    """
    if is_null(value):
        return datetime.datetime.min
    value = to_native(value)
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, datetime.date):
        return datetime.datetime.combine(value, datetime.time())
    if isinstance(value, str):
        try:
            return dateutil.parser.parse(value)
        except (ValueError, OverflowError):
            raise TypeConversionError(column, datetime.datetime, value, 'not a date string') from None
    raise TypeConversionError(column, datetime.datetime, value)


def to_date_nullable(value: Any, column: str | None = None) -> datetime.datetime | None:
    if is_null(value):
        return None
    return to_date(value, column)


def to_guid(value: Any, column: str | None = None) -> uuid.UUID:
    """Cast to UUID. There is no null default: a null raises like any other non-UUID.
    """
    if isinstance(value, uuid.UUID):
        return value
    raise TypeConversionError(column, uuid.UUID, value)


def to_guid_nullable(value: Any, column: str | None = None) -> uuid.UUID | None:
    if is_null(value):
        return None
    return to_guid(value, column)


def to_xml(value: Any, column: str | None = None) -> minidom.Document:
    """Parse the string form of a value as XML.

    The text must be well-formed; a null parses as the empty string and fails.
    """
    text = to_str(value, column)
    try:
        return minidom.parseString(text)
    except ExpatError as err:
        raise TypeConversionError(column, minidom.Document, value, f'malformed XML ({err})') from None


def to_val(value: Any, type_: type, column: str | None = None) -> Any:
    """Check that a value already has the requested type and return it.

    Parameterized generics are checked against their origin only:
    ``list[str]`` accepts any list.
    """
    check = typing.get_origin(type_) or type_
    try:
        matches = isinstance(value, check)
    except TypeError:
        raise TypeConversionError(column, type_, value, 'not a checkable type') from None
    if matches:
        return value
    raise TypeConversionError(column, type_, value)


def _to_double(value: Any, column: str | None) -> float:
    value = to_native(value)
    if isinstance(value, bool | int | float | decimal.Decimal):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            raise TypeConversionError(column, float, value, 'not a number string') from None
    raise TypeConversionError(column, float, value)


_CONVERTERS: dict[Any, Callable[[Any, str | None], Any]] = {
    str: to_str,
    int: to_long,
    float: _to_double,
    decimal.Decimal: to_decimal,
    bool: to_bool,
    datetime.datetime: to_date,
    uuid.UUID: to_guid,
    minidom.Document: to_xml,
}


def from_db(row: Any, name: str, type_: Any = None, default: Any = _MISSING) -> Any:
    """Read column ``name`` from a row and coerce it to ``type_``.

    A null or missing column returns ``default``, which falls back to the
    zero value of ``type_`` (None for ``Optional[...]`` and for no type).
    With no ``type_`` the value is returned as the driver produced it.

    >>> from_db({'name': None}, 'name', str)
    ''
    >>> from_db({'qty': '12'}, 'qty', int)
    12
    """
    value = _lookup(row, name)
    if is_null(value):
        return zero_value(type_) if default is _MISSING else default
    if type_ is None:
        return value

    target = _optional_inner(type_) or type_
    converter = _CONVERTERS.get(target)
    if converter is not None:
        return converter(value, name)
    return to_val(value, target, name)


# Reader helpers - row + column -> typed value

def get_string(row: Any, name: str) -> str:
    return to_str(_lookup(row, name), name)


def get_int(row: Any, name: str) -> int:
    return to_int(_lookup(row, name), name)


def get_long(row: Any, name: str) -> int:
    return to_long(_lookup(row, name), name)


def get_decimal(row: Any, name: str) -> decimal.Decimal:
    return to_decimal(_lookup(row, name), name)


def get_float(row: Any, name: str) -> float:
    return to_float(_lookup(row, name), name)


def get_bool(row: Any, name: str) -> bool:
    return to_bool(_lookup(row, name), name)


def get_guid(row: Any, name: str) -> uuid.UUID:
    return to_guid(_lookup(row, name), name)


def get_date(row: Any, name: str) -> datetime.datetime:
    return to_date(_lookup(row, name), name)


def to_attrdict(row: Any) -> attrdict:
    """Mapping function returning the row as an attrdict, nulls as None.
    """
    return attrdict({key: (None if is_null(row[key]) else row[key]) for key in row.keys()})
