"""
Consolidated type handling for query execution and row mapping.

This module provides:
- DataType / ParameterDirection: logical parameter metadata
- TypeConverter: Convert Python values to database-compatible formats
- coerce_value: Convert raw cell values to destination property types
- Translation helpers between logical types, SQLAlchemy types and Python types
"""
import datetime
import decimal
import enum
import logging
import math
import types
import uuid
from typing import Annotated, Any, Union, get_args, get_origin

import dateutil.parser
import numpy as np
import pandas as pd
import sqlalchemy as sa
from datamapper.exceptions import TypeConversionError

logger = logging.getLogger(__name__)

INT32_RANGE = (-2**31, 2**31 - 1)
INT64_RANGE = (-2**63, 2**63 - 1)
BYTE_RANGE = (0, 255)

TRUE_STRINGS: set[str] = {'true', 't', 'yes', 'y', '1'}
FALSE_STRINGS: set[str] = {'false', 'f', 'no', 'n', '0'}


class DataType(enum.Enum):
    """Logical data type of a query parameter."""
    ANSI_STRING = 'AnsiString'
    ANSI_STRING_FIXED_LENGTH = 'AnsiStringFixedLength'
    BINARY = 'Binary'
    BOOLEAN = 'Boolean'
    BYTE = 'Byte'
    CURRENCY = 'Currency'
    DATE = 'Date'
    DATETIME = 'DateTime'
    DATETIME2 = 'DateTime2'
    DATETIME_OFFSET = 'DateTimeOffset'
    DECIMAL = 'Decimal'
    DOUBLE = 'Double'
    GUID = 'Guid'
    INT16 = 'Int16'
    INT32 = 'Int32'
    INT64 = 'Int64'
    OBJECT = 'Object'
    SBYTE = 'SByte'
    SINGLE = 'Single'
    STRING = 'String'
    STRING_FIXED_LENGTH = 'StringFixedLength'
    TIME = 'Time'
    UINT16 = 'UInt16'
    UINT32 = 'UInt32'
    UINT64 = 'UInt64'
    VAR_NUMERIC = 'VarNumeric'
    XML = 'Xml'
    VARCHAR = 'VarChar'
    CHAR = 'Char'


class ParameterDirection(enum.Enum):
    """Parameter flow relative to the command."""
    INPUT = 'Input'
    OUTPUT = 'Output'
    INPUT_OUTPUT = 'InputOutput'
    RETURN_VALUE = 'ReturnValue'

    @property
    def is_output(self) -> bool:
        """True when the database writes a value back to the parameter."""
        return self is not ParameterDirection.INPUT

    @property
    def is_argument(self) -> bool:
        """True when the parameter is passed to the command as an argument."""
        return self is not ParameterDirection.RETURN_VALUE


def read_back_direction(direction: ParameterDirection | None) -> ParameterDirection:
    """Translate a driver parameter direction for the final parameter snapshot.

    InputOutput reports as Output; anything that is not Input or Output
    (including ReturnValue) reports as Input.
    """
    if direction is ParameterDirection.OUTPUT:
        return ParameterDirection.OUTPUT
    if direction is ParameterDirection.INPUT_OUTPUT:
        return ParameterDirection.OUTPUT
    return ParameterDirection.INPUT


# Logical type translation

_PYTHON_TYPES: dict[DataType, type | None] = {
    DataType.ANSI_STRING: str,
    DataType.ANSI_STRING_FIXED_LENGTH: str,
    DataType.BINARY: bytes,
    DataType.BOOLEAN: bool,
    DataType.BYTE: int,
    DataType.CURRENCY: decimal.Decimal,
    DataType.DATE: datetime.date,
    DataType.DATETIME: datetime.datetime,
    DataType.DATETIME2: datetime.datetime,
    DataType.DATETIME_OFFSET: datetime.datetime,
    DataType.DECIMAL: decimal.Decimal,
    DataType.DOUBLE: float,
    DataType.GUID: uuid.UUID,
    DataType.INT16: int,
    DataType.INT32: int,
    DataType.INT64: int,
    DataType.OBJECT: None,
    DataType.SBYTE: int,
    DataType.SINGLE: float,
    DataType.STRING: str,
    DataType.STRING_FIXED_LENGTH: str,
    DataType.TIME: datetime.time,
    DataType.UINT16: int,
    DataType.UINT32: int,
    DataType.UINT64: int,
    DataType.VAR_NUMERIC: decimal.Decimal,
    DataType.XML: str,
    DataType.VARCHAR: str,
    DataType.CHAR: str,
}


def to_python_type(data_type: DataType | None) -> type | None:
    """Resolve a logical data type to the Python type used for binding.

    Returns None for Object (and for no type), meaning "bind as given".
    """
    if data_type is None:
        return None
    return _PYTHON_TYPES.get(data_type)


def to_sqlalchemy_type(data_type: DataType | None, size: int | None = None,
                       precision: int | None = None,
                       scale: int | None = None) -> sa.types.TypeEngine | None:
    """Resolve a logical data type to a SQLAlchemy type instance.

    Size applies to string and binary types, precision and scale to the
    numeric types. Returns None when the type should not be cast.
    """
    match data_type:
        case None | DataType.OBJECT:
            return None
        case DataType.ANSI_STRING | DataType.VARCHAR | DataType.STRING:
            return sa.String(size)
        case DataType.ANSI_STRING_FIXED_LENGTH | DataType.STRING_FIXED_LENGTH | DataType.CHAR:
            return sa.CHAR(size)
        case DataType.XML:
            return sa.Text()
        case DataType.BINARY:
            return sa.LargeBinary(size)
        case DataType.BOOLEAN:
            return sa.Boolean()
        case DataType.BYTE | DataType.SBYTE | DataType.INT16:
            return sa.SmallInteger()
        case DataType.INT32 | DataType.UINT16:
            return sa.Integer()
        case DataType.INT64 | DataType.UINT32:
            return sa.BigInteger()
        case DataType.UINT64:
            return sa.Numeric(20, 0)
        case DataType.CURRENCY:
            return sa.Numeric(19, 4)
        case DataType.DECIMAL | DataType.VAR_NUMERIC:
            return sa.Numeric(precision, scale)
        case DataType.DOUBLE:
            return sa.Double()
        case DataType.SINGLE:
            return sa.Float()
        case DataType.DATE:
            return sa.Date()
        case DataType.DATETIME | DataType.DATETIME2:
            return sa.DateTime()
        case DataType.DATETIME_OFFSET:
            return sa.DateTime(timezone=True)
        case DataType.TIME:
            return sa.Time()
        case DataType.GUID:
            return sa.Uuid()
    return None


# Type Converter - Handles Python -> Database value conversion

def _convert_numpy_value(val: Any) -> Any:
    """Convert NumPy value to Python type."""
    if isinstance(val, np.floating) and np.isnan(val):
        return None

    if isinstance(val, np.datetime64):
        if np.isnat(val):
            return None
        return pd.Timestamp(val).to_pydatetime()

    return val.item()


class TypeConverter:
    """Universal type conversion for query parameters.

    Handles NumPy and pandas scalars, NaN/NaT markers and enum members.
    """

    @staticmethod
    def convert_value(value: Any) -> Any:
        """Convert a single value to a database-compatible format."""
        if value is None:
            return None

        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return None

        if isinstance(value, enum.Enum):
            return TypeConverter.convert_value(value.value)

        if isinstance(value, (np.generic, np.datetime64)):
            return _convert_numpy_value(value)

        if value is pd.NaT or value is pd.NA:
            return None

        if isinstance(value, pd.Timestamp):
            return value.to_pydatetime()

        return value


# Destination type handling - Database -> Python value conversion

def unwrap_optional(annotation: Any) -> Any:
    """Return the underlying type of an Optional annotation.

    `int | None` and `Optional[int]` become `int`; `Annotated[...]` is
    stripped. Unions of several real types are returned unchanged.
    """
    if get_origin(annotation) is Annotated:
        annotation = get_args(annotation)[0]

    if get_origin(annotation) in {Union, types.UnionType}:
        args = [a for a in get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return unwrap_optional(args[0])
    return annotation


def to_bool(value: Any) -> bool:
    """Convert numbers and true/false strings to bool."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text in TRUE_STRINGS:
            return True
        if text in FALSE_STRINGS:
            return False
        raise ValueError(f'{value!r} is not a recognized boolean string')
    if isinstance(value, (int, float, decimal.Decimal)):
        return bool(value)
    raise TypeError(f'cannot interpret {type(value).__name__} as bool')


def to_int(value: Any) -> int:
    """Convert numbers and numeric strings to int, rounding half to even."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            return round(decimal.Decimal(text))
    if isinstance(value, (float, decimal.Decimal)):
        return round(value)
    raise TypeError(f'cannot interpret {type(value).__name__} as int')


def to_decimal(value: Any) -> decimal.Decimal:
    """Convert numbers and numeric strings to Decimal."""
    if isinstance(value, decimal.Decimal):
        return value
    if isinstance(value, bool):
        return decimal.Decimal(int(value))
    if isinstance(value, float):
        return decimal.Decimal(str(value))
    if isinstance(value, (int, str)):
        return decimal.Decimal(value.strip() if isinstance(value, str) else value)
    raise TypeError(f'cannot interpret {type(value).__name__} as Decimal')


def to_datetime(value: Any) -> datetime.datetime:
    """Convert dates and date strings to datetime."""
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, datetime.date):
        return datetime.datetime.combine(value, datetime.time())
    if isinstance(value, bytes):
        value = value.decode()
    if isinstance(value, str):
        return dateutil.parser.parse(value)
    raise TypeError(f'cannot interpret {type(value).__name__} as datetime')


def to_date(value: Any) -> datetime.date:
    """Convert datetimes and date strings to date."""
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    return to_datetime(value).date()


def to_time(value: Any) -> datetime.time:
    """Convert datetimes and time strings to time."""
    if isinstance(value, datetime.time):
        return value
    if isinstance(value, datetime.datetime):
        return value.time()
    if isinstance(value, str):
        return datetime.time.fromisoformat(value.strip())
    raise TypeError(f'cannot interpret {type(value).__name__} as time')


def to_enum(value: Any, target: type[enum.Enum]) -> enum.Enum:
    """Convert a stored value to an enum member.

    Numeric values convert by member value; strings fall back to the
    member name when they are not a member value.
    """
    if isinstance(value, target):
        return value
    if isinstance(value, (float, decimal.Decimal)) and value == int(value):
        value = int(value)
    try:
        return target(value)
    except ValueError:
        if isinstance(value, str) and value in target.__members__:
            return target[value]
        raise


def _to_str(value: Any) -> str:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode()
    return str(value)


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode()
    raise TypeError(f'cannot interpret {type(value).__name__} as bytes')


def _to_uuid(value: Any) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    if isinstance(value, (bytes, bytearray)) and len(value) == 16:
        return uuid.UUID(bytes=bytes(value))
    return uuid.UUID(_to_str(value))


_SCALAR_CONVERTERS: dict[type, Any] = {
    bool: to_bool,
    int: to_int,
    float: float,
    decimal.Decimal: to_decimal,
    str: _to_str,
    bytes: _to_bytes,
    datetime.datetime: to_datetime,
    datetime.date: to_date,
    datetime.time: to_time,
    uuid.UUID: _to_uuid,
}


def convert_scalar(value: Any, target: type) -> Any:
    """Generic scalar conversion of a non-null value to `target`.

    Classes without a scalar converter accept only values that already
    are instances of them.
    """
    converter = _SCALAR_CONVERTERS.get(target)
    if converter is not None:
        return converter(value)
    if isinstance(value, target):
        return value
    raise TypeError(f'cannot convert {type(value).__name__} to {target.__name__}')


def coerce_value(value: Any, annotation: Any, property_name: str | None = None) -> Any:
    """Coerce a raw cell value to a destination property's type.

    None stays None. Optional wrappers are unwrapped first; enumerations
    take a separate path from the generic scalar conversion. Annotations
    that are not plain classes (generics, unions, Any) leave the value as
    read. Failures raise TypeConversionError.
    """
    if value is None:
        return None

    target = unwrap_optional(annotation)
    if target is Any or not isinstance(target, type) or target is object:
        return value

    try:
        if issubclass(target, enum.Enum):
            return to_enum(value, target)
        return convert_scalar(value, target)
    except TypeConversionError as err:
        raise TypeConversionError(value, target, property_name, str(err)) from err
    except (TypeError, ValueError, ArithmeticError, OverflowError) as err:
        raise TypeConversionError(value, target, property_name, str(err)) from err
