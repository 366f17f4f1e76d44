"""
Two-column lookup table with bounded interpolation.

Used for every rating-style relation in Lag and K routing: outflow vs K,
inflow vs lag, storage term vs outflow, and the (flow, time) carryover
hydrograph. Either column may serve as the key for a lookup; the other
column supplies the result.
"""
import math
from typing import Iterable, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from lagk.core.constants import MISSING_VALUE
from lagk.core.exceptions import TableError, TableIndexError
from lagk.core.types import Column, InterpolationMode, FloatArray


class LookupTable:
    """
    Ordered table of (A, B) float pairs.

    Both columns are always the same length. Lookups by value assume the
    key column is monotonic; this is not enforced here (see ``is_monotonic``).
    """

    def __init__(
        self,
        size: int = 0,
        missing_value: float = MISSING_VALUE,
        table_id: Optional[str] = None
    ):
        self.missing_value = missing_value
        self.table_id = table_id
        self.modified = False
        self._a: FloatArray = np.empty(0, dtype=float)
        self._b: FloatArray = np.empty(0, dtype=float)
        if size > 0:
            self.allocate(size)

    @classmethod
    def from_pairs(
        cls,
        pairs: Iterable[Sequence[float]],
        missing_value: float = MISSING_VALUE,
        table_id: Optional[str] = None
    ) -> "LookupTable":
        """Create a table from (A, B) rows"""
        rows = [tuple(row) for row in pairs]
        table = cls(len(rows), missing_value=missing_value, table_id=table_id)
        for i, row in enumerate(rows):
            if len(row) != 2:
                raise TableError(f"Table rows must be pairs, got {row}")
            table.set(i, row[0], row[1])
        return table

    @classmethod
    def create(cls, *data: float) -> "LookupTable":
        """Create a table from a flat a0, b0, a1, b1, ... argument list"""
        if len(data) % 2 != 0:
            raise TableError(f"Expected an even number of values, got {len(data)}")
        return cls.from_pairs(zip(data[0::2], data[1::2]))

    @classmethod
    def from_columns(
        cls,
        column_a: Sequence[float],
        column_b: Sequence[float],
        missing_value: float = MISSING_VALUE
    ) -> "LookupTable":
        if len(column_a) != len(column_b):
            raise TableError(
                f"Columns must have the same length ({len(column_a)} != {len(column_b)})"
            )
        table = cls(missing_value=missing_value)
        table._a = np.array(column_a, dtype=float)
        table._b = np.array(column_b, dtype=float)
        table.modified = True
        return table

    def copy(self) -> "LookupTable":
        """Deep copy of both columns"""
        table = LookupTable(missing_value=self.missing_value, table_id=self.table_id)
        table._a = self._a.copy()
        table._b = self._b.copy()
        table.modified = self.modified
        return table

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def allocate(self, size: int):
        """Allocate both columns filled with the missing value"""
        if size < 0:
            raise TableError(f"Table size must be non-negative, got {size}")
        self._a = np.full(size, self.missing_value, dtype=float)
        self._b = np.full(size, self.missing_value, dtype=float)
        self.modified = True

    def free(self):
        self._a = np.empty(0, dtype=float)
        self._b = np.empty(0, dtype=float)

    @property
    def n_rows(self) -> int:
        return len(self._a)

    def __len__(self) -> int:
        return self.n_rows

    def _column(self, col: Column) -> FloatArray:
        if not isinstance(col, Column):
            raise TableIndexError(f"Column {col!r} requested for table - must be Column.A or Column.B")
        return self._a if col is Column.A else self._b

    def _check_row(self, row: int):
        if row < 0 or row > self.n_rows - 1:
            raise TableIndexError(
                f"Row {row} requested for table - must be in range 0 - {self.n_rows - 1}"
            )

    def column(self, col: Column) -> FloatArray:
        """Copy of one column"""
        return self._column(col).copy()

    def get(self, row: int, col: Column) -> float:
        """Value of a cell; raises TableIndexError for a bad address"""
        values = self._column(col)
        self._check_row(row)
        return float(values[row])

    def set(self, row: int, a: float, b: float):
        self._check_row(row)
        self._a[row] = a
        self._b[row] = b
        self.modified = True

    def populate(self, row: int, col: Column, value: float):
        """Overwrite one cell"""
        values = self._column(col)
        self._check_row(row)
        values[row] = value
        self.modified = True

    def lookup_index(self, row: int, col: Column) -> float:
        return self.get(row, col)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def min(self, col: Column) -> float:
        """Minimum of a column; missing values count as real numbers"""
        values = self._column(col)
        return float(values.min()) if len(values) else 0.0

    def max(self, col: Column) -> float:
        """Maximum of a column; missing values count as real numbers"""
        values = self._column(col)
        return float(values.max()) if len(values) else 0.0

    def is_monotonic(self, col: Column, strict: bool = False) -> bool:
        """Whether a column never decreases (strictly increases if strict)"""
        diffs = np.diff(self._column(col))
        return bool(np.all(diffs > 0)) if strict else bool(np.all(diffs >= 0))

    def smaller_index(self, value: float, col: Column) -> int:
        """Last row whose value in ``col`` is <= value (0 when none)"""
        idx = 0
        for i, v in enumerate(self._column(col)):
            if value >= v:
                idx = i
        return idx

    def larger_index(self, value: float, col: Column) -> int:
        """First row whose value in ``col`` is >= value (last row when none)"""
        values = self._column(col)
        idx = len(values) - 1
        for i in range(len(values) - 1, -1, -1):
            if value <= values[i]:
                idx = i
        return idx

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def lookup(
        self,
        x: float,
        key_column: Column,
        allow_bounds: bool = False,
        mode: Optional[InterpolationMode] = InterpolationMode.LINEAR
    ) -> float:
        """
        Look up ``x`` in the key column and return the value column result.

        Args:
            x: Value to find in the key column
            key_column: Column searched; the other column is returned
            allow_bounds: Return the end value instead of the missing value
                when ``x`` lies outside the key column
            mode: Interpolation between bracketing rows, or None for an
                exact match only

        Returns:
            Interpolated value, or the missing value when unresolvable
        """
        keys = self._column(key_column)
        values = self._column(key_column.other)
        if len(keys) == 0:
            raise TableError("Lookup requested on an empty table")

        if x < keys[0]:
            return float(values[0]) if allow_bounds else self.missing_value
        end = len(keys) - 1
        if x > keys[end]:
            return float(values[end]) if allow_bounds else self.missing_value

        if mode is None:
            for i in range(len(keys)):
                if keys[i] == x:
                    return float(values[i])
            return self.missing_value

        return self._interpolate(x, keys, values, mode)

    def _interpolate(
        self,
        x: float,
        keys: FloatArray,
        values: FloatArray,
        mode: InterpolationMode
    ) -> float:
        for i in range(len(keys) - 1):
            if x == keys[i]:
                return float(values[i])
            j = i + 1
            if keys[i] < x < keys[j]:
                x0, x1 = keys[i], keys[j]
                y0, y1 = values[i], values[j]
                fraction = 0.0 if x1 == x0 else (x - x0) / (x1 - x0)
                if mode is InterpolationMode.LINEAR:
                    return float(y0 + (y1 - y0) * fraction)
                log_y = math.log10(y0) + (math.log10(y1) - math.log10(y0)) * fraction
                return float(10.0 ** log_y)

        if x == keys[-1]:
            return float(values[-1])
        raise TableError(f"Cannot bracket {x} in key column {keys.tolist()}")

    # ------------------------------------------------------------------
    # Reordering and display
    # ------------------------------------------------------------------

    def sort(self, col: Column):
        """Stable sort of rows by one column"""
        order = np.argsort(self._column(col), kind="stable")
        self._a = self._a[order]
        self._b = self._b[order]
        self.modified = True

    def rows(self) -> Iterable[Tuple[float, float]]:
        for a, b in zip(self._a, self._b):
            yield float(a), float(b)

    def to_frame(self, names: Tuple[str, str] = ("a", "b")) -> pd.DataFrame:
        return pd.DataFrame({names[0]: self._a, names[1]: self._b})

    def __str__(self) -> str:
        return "\n".join(f"{a} : {b}" for a, b in self.rows())

    def __repr__(self) -> str:
        label = f" {self.table_id!r}" if self.table_id else ""
        return f"<LookupTable{label} rows={self.n_rows}>"
