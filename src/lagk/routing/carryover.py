"""
Carryover state of a routing reach.

Carryover is everything needed to resume routing at the next time step:
the recent inflows that may still contribute to lagged flow, the last
storage, the last outflow and the last lagged inflow.
"""
import logging
from typing import Iterable, List, Optional

import numpy as np

from lagk.core.constants import MISSING_VALUE
from lagk.core.exceptions import DataSourceError, TableIndexError
from lagk.core.types import InflowSeries, TimeInterval, TimeLike, FloatArray
from lagk.routing.table import LookupTable

logger = logging.getLogger(__name__)


class CarryoverState:
    """
    Fixed-capacity ring buffer of recent inflows plus scalar states.

    Logical index 0 is the oldest inflow. ``push`` drops the oldest value
    and appends a new one, which is the shift-left-and-append update
    applied after every routing step.
    """

    def __init__(
        self,
        size: int,
        lagged_inflow: float = 0.0,
        storage: float = 0.0,
        outflow: float = 0.0
    ):
        if size <= 0:
            raise ValueError(f"Carryover size must be positive, got {size}")
        self._buffer: FloatArray = np.zeros(size, dtype=float)
        self._oldest = 0
        self.lagged_inflow = lagged_inflow
        self.storage = storage
        self.outflow = outflow

    @property
    def size(self) -> int:
        return len(self._buffer)

    def __len__(self) -> int:
        return self.size

    def _physical(self, index: int) -> int:
        if index < 0 or index >= self.size:
            raise TableIndexError(
                f"Carryover index {index} out of range 0 - {self.size - 1}"
            )
        return (self._oldest + index) % self.size

    def __getitem__(self, index: int) -> float:
        return float(self._buffer[self._physical(index)])

    def __setitem__(self, index: int, value: float):
        self._buffer[self._physical(index)] = value

    @property
    def values(self) -> FloatArray:
        """Inflows, oldest first (a copy)"""
        return np.roll(self._buffer, -self._oldest)

    def push(self, value: float):
        """Drop the oldest inflow and append ``value`` as the newest"""
        self._buffer[self._oldest] = value
        self._oldest = (self._oldest + 1) % self.size

    def load(self, values: Optional[Iterable[float]]):
        """
        Reset the inflows to zero and copy ``values`` into the newest slots.

        The last given value lands in the newest slot; values that do not fit
        are dropped from the oldest end.
        """
        self._buffer[:] = 0.0
        self._oldest = 0
        if values is None:
            return
        values = list(values)[-self.size:]
        if values:
            self._buffer[self.size - len(values):] = values

    def to_list(self) -> List[float]:
        return [float(v) for v in self.values]

    # ------------------------------------------------------------------
    # Initialization and table building
    # ------------------------------------------------------------------

    def initialize_negative_lag(
        self,
        future_inflows: Iterable[float],
        lag_min: int,
        interval: TimeInterval
    ) -> int:
        """
        Prime the newest slots with future inflows for a negative-lag reach.

        Pulls ``lag_min / dt + 1`` values from ``future_inflows``. Nothing is
        consumed when there is no negative lag.

        Returns:
            Number of values consumed
        """
        if lag_min <= 0:
            return 0
        n_intervals = lag_min // interval.length + 1
        iterator = iter(future_inflows)
        for i in range(n_intervals):
            try:
                value = float(next(iterator))
            except StopIteration:
                raise DataSourceError(
                    f"Negative lag of {lag_min} needs {n_intervals} future inflows, "
                    f"only {i} available"
                ) from None
            self[self.size - n_intervals + i] = value
            logger.info(
                "Assigning initial carryover slot %d to %s", self.size - n_intervals + i, value
            )
        return n_intervals

    def build_table(
        self,
        time: TimeLike,
        interval: TimeInterval,
        lag_min: int,
        inflows: InflowSeries,
        n_simulated: int = 1,
        missing_value: float = MISSING_VALUE
    ) -> LookupTable:
        """
        Materialize the carryover as (flow, relative time) rows.

        Relative times step by dt from the oldest row. With positive lag the
        newest ``n_simulated`` rows are read from the inflow series ending at
        ``time``; with negative lag every row comes from carryover.
        """
        step = interval.length
        table = LookupTable(self.size, missing_value=missing_value, table_id="carryover")

        if lag_min > 0:
            relative_time = float((lag_min // step - self.size + 1) * step)
            n_simulated = 0
        else:
            relative_time = float(-(self.size - 1) * step)
            n_simulated = max(0, min(n_simulated, self.size))

        for i in range(self.size - n_simulated):
            table.set(i, self[i + n_simulated], relative_time)
            relative_time += step

        # n_simulated includes the current time, so go back n_simulated - 1 steps
        when = interval.step(time, -(n_simulated - 1))
        for i in range(self.size - n_simulated, self.size):
            table.set(i, inflows.get_value(when), relative_time)
            when = interval.step(when, 1)
            relative_time += step

        logger.debug("Carryover table at %s:\n%s", time, table)
        return table
