"""
Row value sets handed to row mapper functions.

A RowValues holds one ColumnValue per column of the current row, in cursor
order. Lookups by column name are case-insensitive and return the first
match; typed accessors return None for both missing and null columns.
"""
import datetime
import decimal
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, TypeVar

from datamapper.exceptions import TypeConversionError
from datamapper.types import BYTE_RANGE, INT32_RANGE, INT64_RANGE, to_bool
from datamapper.types import to_date, to_datetime, to_decimal, to_int

__all__ = ['ColumnValue', 'RowValues']

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass(frozen=True, slots=True)
class ColumnValue:
    """One (column name, value) pair read from a result row."""
    column_name: str
    value: Any = None


def _ranged_int(bounds: tuple[int, int]) -> Callable[[Any], int]:
    low, high = bounds

    def convert(value: Any) -> int:
        result = to_int(value)
        if not low <= result <= high:
            raise OverflowError(f'value outside [{low}, {high}]')
        return result
    return convert


class RowValues(list[ColumnValue]):
    """Ordered column values for one row.
    """

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[str, Any]]) -> 'RowValues':
        """Build from (column name, value) pairs."""
        return cls(ColumnValue(name, value) for name, value in pairs)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'RowValues':
        """Build from a mapping of column name to value."""
        return cls.from_pairs(data.items())

    def find(self, column_name: str) -> ColumnValue | None:
        """Return the first column whose name matches, ignoring case."""
        wanted = column_name.casefold()
        for column in self:
            if column.column_name.casefold() == wanted:
                return column
        return None

    def __contains__(self, item: object) -> bool:
        if isinstance(item, str):
            return self.find(item) is not None
        return super().__contains__(item)

    def column_names(self) -> list[str]:
        return [c.column_name for c in self]

    def to_dict(self) -> dict[str, Any]:
        """Column name to value; the first of any duplicate names wins."""
        data: dict[str, Any] = {}
        for column in self:
            data.setdefault(column.column_name, column.value)
        return data

    def get_value(self, column_name: str) -> Any:
        """Raw value of a column, or None when missing or null."""
        column = self.find(column_name)
        return column.value if column is not None else None

    def get(self, column_name: str, default: Any = None) -> Any:
        """Raw value of a column, or `default` when missing or null."""
        value = self.get_value(column_name)
        return default if value is None else value

    def _get_as(self, column_name: str, target: type,
                convert: Callable[[Any], T]) -> T | None:
        value = self.get_value(column_name)
        if value is None:
            return None
        try:
            return convert(value)
        except (TypeError, ValueError, ArithmeticError) as err:
            raise TypeConversionError(value, target, column_name, str(err)) from err

    def get_string(self, column_name: str) -> str | None:
        def convert(value: Any) -> str:
            if isinstance(value, (bytes, bytearray, memoryview)):
                return bytes(value).decode()
            return str(value)
        return self._get_as(column_name, str, convert)

    def get_integer(self, column_name: str) -> int | None:
        """32-bit integer value of a column."""
        return self._get_as(column_name, int, _ranged_int(INT32_RANGE))

    def get_long(self, column_name: str) -> int | None:
        """64-bit integer value of a column."""
        return self._get_as(column_name, int, _ranged_int(INT64_RANGE))

    def get_byte(self, column_name: str) -> int | None:
        """Unsigned 8-bit integer value of a column."""
        return self._get_as(column_name, int, _ranged_int(BYTE_RANGE))

    def get_decimal(self, column_name: str) -> decimal.Decimal | None:
        return self._get_as(column_name, decimal.Decimal, to_decimal)

    def get_float(self, column_name: str) -> float | None:
        return self._get_as(column_name, float, float)

    def get_datetime(self, column_name: str) -> datetime.datetime | None:
        return self._get_as(column_name, datetime.datetime, to_datetime)

    def get_date(self, column_name: str) -> datetime.date | None:
        return self._get_as(column_name, datetime.date, to_date)

    def get_boolean(self, column_name: str) -> bool | None:
        return self._get_as(column_name, bool, to_bool)
