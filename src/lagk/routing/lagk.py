"""
Lag and K routing of one reach, one time step at a time.

A LagK instance owns its configuration tables and carryover state and is
normally created through ``LagKBuilder``. Calls to ``solve`` must be made
once per time step with strictly increasing times.
"""
import logging
from typing import Iterable, List, Optional

from lagk.core.config import SolverConfig
from lagk.core.exceptions import ErrorContext, StateError
from lagk.core.types import (
    InflowSeries, ReachID, RoutingMode, TimeInterval, TimeLike
)
from lagk.data.contracts import RoutingState
from lagk.routing.carryover import CarryoverState
from lagk.routing.lag import LagResult, LagSolver
from lagk.routing.storage import AtlantaKSolver, MCP2KSolver
from lagk.routing.table import LookupTable
from lagk.routing.transmission_loss import TransmissionLossAdjuster


class LagK:
    """
    Lag and K routing reach.

    Attributes:
        k_table: Outflow vs K table
        lag_table: Inflow vs lag table (None for constant lag)
        storage_table: Full-interval 2S/dt + O vs O table
        quarter_table: Quarter-interval 2S/(dt/4) + O vs O table
        lag: Constant lag, or the largest lag of the lag table
        lag_min: Magnitude of negative lag, a multiple of dt (0 for positive lag)
        lag_max: Largest positive lag rounded to whole units
        variable_k: K table has more than one row
        variable_lag: Lag table has more than one row
        routing_mode: Storage routing selected at build time
    """

    def __init__(
        self,
        inflows: InflowSeries,
        interval: TimeInterval,
        carryover: CarryoverState,
        k_table: Optional[LookupTable] = None,
        lag_table: Optional[LookupTable] = None,
        storage_table: Optional[LookupTable] = None,
        quarter_table: Optional[LookupTable] = None,
        lag: float = 0.0,
        lag_min: int = 0,
        lag_max: int = 0,
        variable_k: bool = False,
        variable_lag: bool = False,
        trans_loss: Optional[TransmissionLossAdjuster] = None,
        reach_id: ReachID = "reach",
        solver_config: Optional[SolverConfig] = None
    ):
        self.config = solver_config or SolverConfig()
        self.inflows = inflows
        self.interval = interval
        self.carryover = carryover
        self.k_table = k_table
        self.lag_table = lag_table
        self.storage_table = storage_table
        self.quarter_table = quarter_table
        self.lag = lag
        self.lag_min = lag_min
        self.lag_max = lag_max
        self.variable_k = variable_k
        self.variable_lag = variable_lag
        self.trans_loss = trans_loss or TransmissionLossAdjuster()
        self.reach_id = reach_id
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

        self.routing_mode = self._select_mode()
        self._lag_solver = LagSolver(lag, lag_table if variable_lag else None)
        self._storage_solver = self._make_storage_solver()

    def _select_mode(self) -> RoutingMode:
        if self.variable_k and self.k_table is not None:
            if self.trans_loss.active:
                return RoutingMode.MCP2K
            return RoutingMode.ATLANTA_K
        return RoutingMode.LAGLESS

    def _make_storage_solver(self):
        dt = float(self.interval.length)
        if self.routing_mode is RoutingMode.ATLANTA_K:
            return AtlantaKSolver(
                self.k_table, dt, self.storage_table, self.quarter_table, self.config
            )
        if self.routing_mode is RoutingMode.MCP2K:
            return MCP2KSolver(
                self.k_table, dt, self.variable_k, self.trans_loss, self.config
            )
        return None

    @property
    def size(self) -> int:
        """Number of carryover inflows"""
        return self.carryover.size

    @property
    def dt(self) -> int:
        return self.interval.length

    # ------------------------------------------------------------------
    # Time stepping
    # ------------------------------------------------------------------

    def initialize_negative_lag_carryover(self, future_inflows: Iterable[float]) -> int:
        """Prime carryover from the start of the inflow series; see CarryoverState"""
        return self.carryover.initialize_negative_lag(future_inflows, self.lag_min, self.interval)

    def build_carryover_table(self, time: TimeLike) -> LookupTable:
        return self.carryover.build_table(
            time, self.interval, self.lag_min, self.inflows,
            missing_value=self.config.missing_value
        )

    def solve_lag(self, time: TimeLike) -> LagResult:
        """Lagged inflow at ``time`` from the carryover hydrograph"""
        return self._lag_solver.solve(self.build_carryover_table(time))

    def solve(self, time: TimeLike, previous_outflow: Optional[float] = None) -> float:
        """
        Route one time step.

        Args:
            time: Current time step
            previous_outflow: Outflow of the previous step; the carried-over
                outflow when None

        Returns:
            Outflow at the current step
        """
        if previous_outflow is None:
            previous_outflow = self.carryover.outflow

        x1 = self.carryover.lagged_inflow
        x2 = self.solve_lag(time).value

        if self._storage_solver is None:
            outflow = x2
            self.carryover.lagged_inflow = x2
        else:
            result = self._storage_solver.solve(x1, x2, previous_outflow, self.carryover.storage)
            outflow = result.outflow
            self.carryover.storage = result.storage
            self.carryover.lagged_inflow = result.lagged_inflow

        self.logger.debug(
            "%s %s: QI1=%.3f QI2=%.3f Q1=%.3f Q2=%.3f",
            self.reach_id, time, x1, x2, previous_outflow, outflow
        )

        self.carryover.outflow = outflow
        self.carryover.push(self.inflows.get_value(time))
        return outflow

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def carryover_values(self) -> List[float]:
        return self.carryover.to_list()

    def get_state(self, time: TimeLike) -> RoutingState:
        """Snapshot of the state after the step at ``time``"""
        return RoutingState(
            reach_id=self.reach_id,
            valid_time=time,
            lagged_inflow=self.carryover.lagged_inflow,
            storage=self.carryover.storage,
            outflow=self.carryover.outflow,
            carryover=self.carryover_values(),
        )

    def set_state(self, state: RoutingState):
        """Resume from a snapshot taken with ``get_state``"""
        if len(state.carryover) != self.size:
            raise StateError(
                f"State has {len(state.carryover)} carryover inflows, reach needs {self.size}",
                ErrorContext(reach_id=self.reach_id, time=state.key,
                             component="LagK", operation="set_state")
            )
        self.carryover.load(state.carryover)
        self.carryover.lagged_inflow = state.lagged_inflow
        self.carryover.storage = state.storage
        self.carryover.outflow = state.outflow

    def state_string(self) -> str:
        values = ", ".join(f"{v:g}" for v in self.carryover_values())
        return (
            f"laggedInflow {self.carryover.lagged_inflow:.2f}, "
            f"storageCO {self.carryover.storage:.2f}, inflowCO [{values}]"
        )

    def __repr__(self) -> str:
        return (
            f"LagK(reach_id={self.reach_id!r}, interval={self.interval}, "
            f"mode={self.routing_mode.value}, lag={self.lag}, size={self.size})"
        )
