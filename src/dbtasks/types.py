"""
Type tags and the null marker.

This module provides:
- TypeTag: canonical parameter/column type enumeration
- DBNull: the single explicit "no value" marker
- TypeMapper: registration table from Python type identity to TypeTag
"""
import datetime
import decimal
import logging
import uuid
from enum import Enum, auto
from typing import Any

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

__all__ = [
    'TypeTag',
    'DBNull',
    'is_null',
    'TypeMapper',
    'to_type_tag',
    'register_type',
    'to_native',
]


class TypeTag(Enum):
    """Canonical data type of a parameter or column."""
    Boolean = auto()
    Byte = auto()
    SByte = auto()
    Int16 = auto()
    UInt16 = auto()
    Int32 = auto()
    UInt32 = auto()
    Int64 = auto()
    UInt64 = auto()
    Single = auto()
    Double = auto()
    Decimal = auto()
    DateTime = auto()
    DateTimeOffset = auto()
    TimeSpan = auto()
    Guid = auto()
    String = auto()
    Binary = auto()
    Object = auto()


class _NullMarker:
    """Marker for a database NULL.

    There is exactly one instance, ``DBNull``. It is falsy so it reads
    naturally in conditions, but it is never equal to ``None``, ``0`` or ``''``.
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return 'DBNull'

    def __reduce__(self):
        return (_NullMarker, ())


DBNull = _NullMarker()


def is_null(value: Any) -> bool:
    """Check whether a value means "no value" to the database.

    ``None``, ``DBNull``, ``pandas.NA``, ``pandas.NaT`` and a NaT
    ``numpy.datetime64`` are null. Float NaN is a value, not a null.
    """
    if value is None or value is DBNull:
        return True
    if value is pd.NA or value is pd.NaT:
        return True
    if isinstance(value, np.datetime64):
        return bool(np.isnat(value))
    return False


_DEFAULT_TAGS: dict[type, TypeTag] = {
    bool: TypeTag.Boolean,
    np.bool_: TypeTag.Boolean,
    np.uint8: TypeTag.Byte,
    np.int8: TypeTag.SByte,
    np.int16: TypeTag.Int16,
    np.uint16: TypeTag.UInt16,
    np.int32: TypeTag.Int32,
    np.uint32: TypeTag.UInt32,
    int: TypeTag.Int64,
    np.int64: TypeTag.Int64,
    np.uint64: TypeTag.UInt64,
    np.float32: TypeTag.Single,
    float: TypeTag.Double,
    np.float64: TypeTag.Double,
    decimal.Decimal: TypeTag.Decimal,
    datetime.datetime: TypeTag.DateTime,
    datetime.date: TypeTag.DateTime,
    pd.Timestamp: TypeTag.DateTime,
    np.datetime64: TypeTag.DateTime,
    datetime.timedelta: TypeTag.TimeSpan,
    pd.Timedelta: TypeTag.TimeSpan,
    uuid.UUID: TypeTag.Guid,
    str: TypeTag.String,
    np.str_: TypeTag.String,
    bytes: TypeTag.Binary,
    bytearray: TypeTag.Binary,
    memoryview: TypeTag.Binary,
}


class TypeMapper:
    """Registry mapping Python types to type tags.

    Matching is by exact type identity: ``bool`` is not looked up as
    ``int`` and a ``str`` subclass is not a ``String``. Unregistered types
    map to ``TypeTag.Object``.
    """

    _instance = None

    @classmethod
    def get_instance(cls) -> 'TypeMapper':
        """Get singleton instance.
        """
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def __init__(self) -> None:
        self._tags: dict[type, TypeTag] = dict(_DEFAULT_TAGS)

    def register(self, type_: type, tag: TypeTag) -> None:
        """Register or replace the tag for a type.
        """
        logger.debug(f'Registering {getattr(type_, "__name__", type_)} as {tag.name}')
        self._tags[type_] = tag

    def to_type_tag(self, type_: Any) -> TypeTag:
        """Return the tag for a type, ``TypeTag.Object`` if unknown.
        """
        try:
            return self._tags.get(type_, TypeTag.Object)
        except TypeError:
            return TypeTag.Object

    def registered_types(self) -> dict[type, TypeTag]:
        return dict(self._tags)


def to_type_tag(type_: Any) -> TypeTag:
    """Map a Python type to its canonical tag.
    """
    return TypeMapper.get_instance().to_type_tag(type_)


def register_type(type_: type, tag: TypeTag) -> None:
    """Register an additional type with the shared mapper.
    """
    TypeMapper.get_instance().register(type_, tag)


def to_native(value: Any) -> Any:
    """Convert NumPy/Pandas scalars to plain Python values.
    """
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, pd.Timedelta):
        return value.to_pytimedelta()
    if isinstance(value, np.datetime64):
        return pd.Timestamp(value).to_pydatetime()
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    return value
