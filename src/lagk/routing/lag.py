"""
Lagging of a carryover hydrograph to the current time step.

Each carryover flow is shifted in time by its lag (constant, or read from an
inflow-lag table). The lagged flow at relative time zero is the result. When
flow-dependent lag makes the shifted hydrograph fold back on itself
("double-backs"), the value at time zero is the signed sum of every crossing
of t = 0: forward crossings add, backward crossings subtract.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from lagk.core.constants import MISSING_MARGIN
from lagk.core.types import FLOW_COLUMN, TIME_COLUMN
from lagk.routing.table import LookupTable

logger = logging.getLogger(__name__)


@dataclass
class LagResult:
    """Lagged inflow at t = 0 with the diagnostics of how it was found"""
    value: float
    n_missing: int = 0
    n_double_backs: int = 0
    table: Optional[LookupTable] = None


def interpolate_pair(t_star: float, table: LookupTable, row: int) -> float:
    """Linear flow at ``t_star`` on the segment between ``row`` and ``row + 1``"""
    f0 = table.get(row, FLOW_COLUMN)
    f1 = table.get(row + 1, FLOW_COLUMN)
    t0 = table.get(row, TIME_COLUMN)
    t1 = table.get(row + 1, TIME_COLUMN)
    ratio = (f1 - f0) / (t1 - t0)
    return f0 + ratio * (t_star - t0)


class LagSolver:
    """
    Computes the lagged inflow from a (flow, relative time) carryover table.

    Args:
        lag: Constant lag, used when ``lag_table`` is None
        lag_table: Inflow (column A) vs lag (column B) table for variable lag
    """

    def __init__(self, lag: float = 0.0, lag_table: Optional[LookupTable] = None):
        self.lag = lag
        self.lag_table = lag_table

    @property
    def variable_lag(self) -> bool:
        return self.lag_table is not None

    def lag_for(self, flow: float) -> float:
        if self.lag_table is not None:
            return self.lag_table.lookup(flow, FLOW_COLUMN, allow_bounds=True)
        return self.lag

    def solve(self, carryover_table: LookupTable) -> LagResult:
        """Lag the carryover table and evaluate it at t = 0"""
        lagged = self.apply_lag(carryover_table)
        n_missing = self.coalesce_repeats(lagged)
        calc = self.compact(lagged)
        n_double_backs = self.count_double_backs(calc)

        if len(calc) == 0:
            logger.warning("No valid lagged inflow values; using the missing value")
            return LagResult(calc.missing_value, n_missing, n_double_backs, calc)

        if n_double_backs == 0:
            value = calc.lookup(0.0, TIME_COLUMN, allow_bounds=True)
        else:
            value = self.signed_accumulation(calc)

        logger.debug(
            "Lagged inflow %.4f (missing=%d, double-backs=%d)", value, n_missing, n_double_backs
        )
        return LagResult(value, n_missing, n_double_backs, calc)

    def apply_lag(self, carryover_table: LookupTable) -> LookupTable:
        """Copy of the table with each row's time shifted by its lag"""
        lagged = carryover_table.copy()
        for i in range(len(lagged)):
            flow = lagged.get(i, FLOW_COLUMN)
            lagged.populate(i, TIME_COLUMN, lagged.get(i, TIME_COLUMN) + self.lag_for(flow))
        logger.debug("Lagged table:\n%s", lagged)
        return lagged

    @staticmethod
    def coalesce_repeats(table: LookupTable) -> int:
        """
        Average runs of rows sharing a lagged time into the last row of the run.

        Only runs that start with a positive flow are averaged; earlier rows of
        the run are set to the missing value.

        Returns:
            Number of rows (excluding the last) left with a negative flow
        """
        missing = table.missing_value
        n = len(table)
        n_missing = 0
        for i in range(n - 1):
            if (table.get(i, TIME_COLUMN) == table.get(i + 1, TIME_COLUMN)
                    and table.get(i, FLOW_COLUMN) > 0):
                value_sum = table.get(i, FLOW_COLUMN)
                n_values = 1
                last = i
                for j in range(i, n - 1):
                    if table.get(j, TIME_COLUMN) != table.get(j + 1, TIME_COLUMN):
                        break
                    value_sum += table.get(j + 1, FLOW_COLUMN)
                    n_values += 1
                    table.populate(j, FLOW_COLUMN, missing)
                    last = j + 1
                table.populate(last, FLOW_COLUMN, value_sum / n_values)

            if table.get(i, FLOW_COLUMN) < 0:
                n_missing += 1
        return n_missing

    @staticmethod
    def compact(table: LookupTable) -> LookupTable:
        """New table without the rows flagged missing"""
        threshold = table.missing_value + MISSING_MARGIN
        rows = [(f, t) for f, t in table.rows() if f > threshold]
        return LookupTable.from_pairs(rows, missing_value=table.missing_value, table_id="lagged")

    @staticmethod
    def count_double_backs(table: LookupTable) -> int:
        """Adjacent rows whose lagged time does not strictly increase"""
        times = table.column(TIME_COLUMN)
        return int(sum(1 for t0, t1 in zip(times, times[1:]) if t0 >= t1))

    @staticmethod
    def signed_accumulation(table: LookupTable, t_star: float = 0.0) -> float:
        """
        Net flow of a looping hydrograph at ``t_star``.

        Every row is visited in order. Where the hydrograph passes ``t_star``
        moving forward in time the flow there is added; where it passes moving
        backward it is subtracted and the crossing remembered. If the last
        crossing was a subtraction, the flow at the remembered crossing is
        added back.
        """
        n = len(table)
        result = 0.0
        add = True
        last_j = 0
        last_t = 0.0

        def time_at(row: int) -> float:
            return table.get(row, TIME_COLUMN)

        def flow_at(row: int) -> float:
            return table.get(row, FLOW_COLUMN)

        for j in range(n):
            qtj = time_at(j)

            if qtj == t_star:
                if j == 0:
                    if j >= n - 1:
                        result += flow_at(j)
                        break
                    qtj2 = time_at(j + 1)
                    if qtj2 > t_star:
                        result += flow_at(j)
                        add = True
                    elif qtj2 < t_star:
                        result -= flow_at(j)
                        add = False
                        last_j, last_t = j, t_star
                    continue

                qtj1 = time_at(j - 1)
                if j >= n - 1:
                    # A point hit on the last row is only ever added, and with this
                    # row's own flow rather than the previous row's (j - 1) flow;
                    # subtracting there gives wrong answers when solving one step
                    # at a time.
                    if qtj1 < t_star:
                        result += flow_at(j)
                        add = True
                    continue

                qtj2 = time_at(j + 1)
                if qtj1 < t_star < qtj2:
                    result += flow_at(j)
                    add = True
                elif qtj1 > t_star > qtj2:
                    result -= flow_at(j)
                    add = False
                    last_j, last_t = j, t_star
                continue

            # A single trailing point cannot be interpolated
            if j == n - 1:
                continue

            qtj2 = time_at(j + 1)
            if qtj < t_star < qtj2:
                result += interpolate_pair(t_star, table, j)
                add = True
            elif qtj > t_star > qtj2:
                result -= interpolate_pair(t_star, table, j)
                add = False
                last_j, last_t = j, t_star

        if not add:
            if last_j + 1 >= n or time_at(last_j) <= time_at(last_j + 1):
                logger.error(
                    "Bad interpolation at row %d of lagged table; result %.4f kept\n%s",
                    last_j, result, table
                )
                return result
            pair = LookupTable.from_pairs(
                [(flow_at(last_j), time_at(last_j)), (flow_at(last_j + 1), time_at(last_j + 1))],
                missing_value=table.missing_value
            )
            result += pair.lookup(last_t, TIME_COLUMN, allow_bounds=True)

        return result
