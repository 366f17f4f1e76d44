"""
Construction of Lag and K reaches.

The builder validates and pads the K and lag tables, derives the carryover
size from the lag window, builds the storage-outflow tables and applies
initial states before handing back a ready ``LagK``.
"""
import logging
from typing import Optional, Sequence

from lagk.core.config import ReachConfig, SolverConfig
from lagk.core.constants import (
    CARRYOVER_EXTRA_VALUES, INITIAL_OUTFLOW_TOLERANCE, QUARTER_SUBSTEPS,
    ZERO_OUTFLOW_TOLERANCE
)
from lagk.core.exceptions import ConfigurationError, ErrorContext
from lagk.core.types import (
    FLOW_COLUMN, K_COLUMN, LAG_COLUMN, OUTFLOW_COLUMN, InflowSeries, ReachID,
    TimeInterval
)
from lagk.routing.carryover import CarryoverState
from lagk.routing.lagk import LagK
from lagk.routing.storage import build_storage_outflow_table
from lagk.routing.table import LookupTable
from lagk.routing.transmission_loss import TransmissionLossAdjuster


class LagKBuilder:
    """
    Assembles a LagK reach.

    Example:
        builder = LagKBuilder(inflows, TimeInterval.parse("6Hour"))
        builder.set_k_out(LookupTable.create(0, 6, 1000, 12))
        builder.set_lag(12)
        reach = builder.create(co_outflow=100.0)
    """

    def __init__(
        self,
        inflows: InflowSeries,
        interval: TimeInterval,
        reach_id: ReachID = "reach",
        solver_config: Optional[SolverConfig] = None
    ):
        self.inflows = inflows
        self.interval = interval
        self.reach_id = reach_id
        self.config = solver_config or SolverConfig()
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

        self.k_table: Optional[LookupTable] = None
        self.lag_table: Optional[LookupTable] = None
        self.lag = 0.0
        self.lag_min = 0
        self.lag_max = 0
        self.trans_loss = TransmissionLossAdjuster()

    def _error(self, message: str, operation: str) -> ConfigurationError:
        return ConfigurationError(
            message,
            ErrorContext(reach_id=self.reach_id, component="LagKBuilder", operation=operation)
        )

    # ------------------------------------------------------------------
    # K
    # ------------------------------------------------------------------

    def set_k(self, k: float) -> "LagKBuilder":
        """Constant K, routed as a two-row K table"""
        if k < 0:
            raise self._error(f"K must be non-negative, got {k}", "set_k")
        big = self.config.big_data_value
        self.k_table = LookupTable.from_pairs(
            [(0.0, k), (big, k)], missing_value=self.config.missing_value, table_id="outflow_k"
        )
        return self

    def set_k_out(self, table: LookupTable) -> "LagKBuilder":
        """
        Outflow-dependent K.

        A zero-outflow row is prepended when the table starts above zero
        outflow, and a ``big_data_value`` row repeating the last K is appended.
        """
        if len(table) == 0:
            raise self._error("K table is empty", "set_k_out")
        if not table.is_monotonic(OUTFLOW_COLUMN):
            raise self._error(
                f"K table outflows must be ascending: {table.column(OUTFLOW_COLUMN).tolist()}",
                "set_k_out"
            )
        if table.min(K_COLUMN) < 0:
            raise self._error("K table contains negative K", "set_k_out")

        rows = list(table.rows())
        if rows[0][0] > ZERO_OUTFLOW_TOLERANCE:
            rows.insert(0, (0.0, rows[0][1]))
        rows.append((self.config.big_data_value, rows[-1][1]))

        self.k_table = LookupTable.from_pairs(
            rows, missing_value=self.config.missing_value, table_id="outflow_k"
        )
        return self

    # ------------------------------------------------------------------
    # Lag
    # ------------------------------------------------------------------

    def _derive_lag_window(self, lags: Sequence[float], operation: str):
        dt = self.interval.length
        lag_max = 0
        lag_min = 0
        for value in lags:
            if value > lag_max:
                lag_max = int(value + 0.5)
            if value < 0 and -value > lag_min:
                lag_min = int(-value + 0.5)
        if lag_min % dt > 0:
            lag_min = dt * (lag_min // dt + 1)

        if lag_min > 0 and lag_max > 0:
            raise self._error(
                f"Negative and positive lag values cannot occur together "
                f"(lag_min={lag_min} lag_max={lag_max})",
                operation
            )
        self.lag_min = lag_min
        self.lag_max = lag_max
        self.logger.info("%s: lag_min=%d lag_max=%d", self.reach_id, lag_min, lag_max)

    def set_lag(self, lag: float) -> "LagKBuilder":
        """Constant lag in base time units (negative for negative lag)"""
        self.lag_table = None
        self.lag = lag
        self._derive_lag_window([lag], "set_lag")
        return self

    def set_lag_in(self, table: LookupTable) -> "LagKBuilder":
        """Inflow-dependent lag"""
        if len(table) == 0:
            raise self._error("Lag table is empty", "set_lag_in")
        if not table.is_monotonic(FLOW_COLUMN):
            raise self._error(
                f"Lag table inflows must be ascending: {table.column(FLOW_COLUMN).tolist()}",
                "set_lag_in"
            )

        if len(table) == 1 and table.get(0, LAG_COLUMN) <= 0:
            self.logger.info(
                "Adding a row to the lag table; two or more are required for negative lag"
            )
            value = table.get(0, LAG_COLUMN)
            table = LookupTable.from_pairs(
                [(table.get(0, FLOW_COLUMN), value), (self.config.big_data_value, value)],
                missing_value=self.config.missing_value
            )

        table.table_id = "inflow_lag"
        self.lag_table = table
        self._derive_lag_window(table.column(LAG_COLUMN), "set_lag_in")
        self.lag = float(self.lag_max)
        return self

    def set_trans_loss(self, coef: float, level: float = 0.0) -> "LagKBuilder":
        self.trans_loss = TransmissionLossAdjuster(coef, level)
        return self

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def carryover_size(self) -> int:
        size = (self.lag_max + self.lag_min) // self.interval.length + CARRYOVER_EXTRA_VALUES
        if self.lag_table is not None and len(self.lag_table) > size:
            size = len(self.lag_table)
        return size

    def _check_initial_outflow(self, carryover: CarryoverState):
        """
        With K = 0 the initial outflow should equal the lagged carryover inflow.
        An inconsistent value is replaced and reported.
        """
        dt = self.interval.length
        outflow = carryover.outflow
        if self.lag % dt != 0 and carryover.size > 1:
            first, second = carryover[0], carryover[1]
            diff = dt * (int(self.lag) // dt + 1) - self.lag
            expected = first + (second - first) * (diff / dt)
        else:
            expected = carryover[0]

        tolerance = INITIAL_OUTFLOW_TOLERANCE * outflow
        if expected > outflow + tolerance or expected < outflow - tolerance:
            self.logger.warning(
                "%s: initial outflow %.4f not consistent with carryover inflow %.4f; "
                "instability may result, revising initial outflow to %.4f",
                self.reach_id, outflow, expected, expected
            )
            carryover.outflow = expected

    def create(
        self,
        co_lagged_inflow: Optional[float] = None,
        co_outflow: Optional[float] = None,
        co_storage: Optional[float] = None,
        co_initial: Optional[Sequence[float]] = None
    ) -> LagK:
        """
        Create the reach with initial states.

        Args:
            co_lagged_inflow: Initial lagged inflow (0 when None)
            co_outflow: Initial outflow (0 when None)
            co_storage: Initial storage (0 when None)
            co_initial: Initial carryover inflows, newest last; aligned to the
                newest slots
        """
        carryover = CarryoverState(
            self.carryover_size(),
            lagged_inflow=co_lagged_inflow or 0.0,
            storage=co_storage or 0.0,
            outflow=co_outflow or 0.0,
        )
        carryover.load(co_initial)

        variable_k = self.k_table is not None and len(self.k_table) > 1
        variable_lag = self.lag_table is not None and len(self.lag_table) > 1

        storage_table = quarter_table = None
        if variable_k:
            dt = float(self.interval.length)
            storage_table = build_storage_outflow_table(self.k_table, dt, 1.0, self.config)
            quarter_table = build_storage_outflow_table(
                self.k_table, dt, float(QUARTER_SUBSTEPS), self.config
            )

        if self.k_table is None:
            self._check_initial_outflow(carryover)

        reach = LagK(
            inflows=self.inflows,
            interval=self.interval,
            carryover=carryover,
            k_table=self.k_table,
            lag_table=self.lag_table,
            storage_table=storage_table,
            quarter_table=quarter_table,
            lag=self.lag,
            lag_min=self.lag_min,
            lag_max=self.lag_max,
            variable_k=variable_k,
            variable_lag=variable_lag,
            trans_loss=self.trans_loss,
            reach_id=self.reach_id,
            solver_config=self.config,
        )
        self.logger.info("Created %r", reach)
        return reach

    @classmethod
    def from_reach_config(
        cls,
        reach: ReachConfig,
        inflows: InflowSeries,
        solver_config: Optional[SolverConfig] = None
    ) -> LagK:
        """Build a reach from its configuration entry"""
        builder = cls(inflows, reach.time_interval, reach.reach_id, solver_config)
        missing = builder.config.missing_value

        if reach.k_table is not None:
            builder.set_k_out(LookupTable.from_pairs(reach.k_table, missing_value=missing))
        elif reach.k is not None:
            builder.set_k(reach.k)

        if reach.lag_table is not None:
            builder.set_lag_in(LookupTable.from_pairs(reach.lag_table, missing_value=missing))
        elif reach.lag is not None:
            builder.set_lag(reach.lag)

        if reach.trans_loss_coef > 0:
            builder.set_trans_loss(reach.trans_loss_coef, reach.trans_loss_level)

        return builder.create(
            co_lagged_inflow=reach.initial_lagged_inflow,
            co_outflow=reach.initial_outflow,
            co_storage=reach.initial_storage,
            co_initial=reach.initial_carryover,
        )

    @staticmethod
    def normalize_table(
        table: LookupTable,
        table_interval: TimeInterval,
        series_interval: TimeInterval,
        flow_mult: float = 1.0,
        flow_add: float = 0.0
    ) -> LookupTable:
        """
        Express a (flow, time) table in the units of the inflow series.

        Times given in ``table_interval`` units become base units of
        ``series_interval``; flows become ``flow_add + flow_mult * flow``.
        The table is returned unchanged when no conversion is needed.
        """
        if len(table) == 0:
            return table
        time_mult = table_interval.minutes / series_interval.base.minutes
        if time_mult == 1.0 and flow_mult == 1.0 and flow_add == 0.0:
            return table

        rows = [(flow_add + flow_mult * flow, time_mult * time) for flow, time in table.rows()]
        return LookupTable.from_pairs(rows, missing_value=table.missing_value, table_id=table.table_id)
