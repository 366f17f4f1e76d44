"""
Storage routing ("K") applied to lagged inflow.

Two algorithms are provided:

- Atlanta-K: solves the storage equation with a 2S/dt + O vs O table,
  dropping to quarter time steps when K straddles half a time step.
- MCP2K: routes two half-interval segments with a fixed-point iteration on
  K, with an optional quarter-interval pass when K is small relative to
  the segment length. Used when transmission loss is configured.

The continuity equation solved at each step is

    (x1 + x2) + (2 S1 / dt - y1) = 2 S2 / dt + y2

with x lagged inflow, y outflow and S storage.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from lagk.core.config import SolverConfig
from lagk.core.constants import (
    QUARTER_SUBSTEPS, SEGMENT_K_WEIGHT, SEGMENT_DIVISOR
)
from lagk.core.types import (
    K_COLUMN, OUTFLOW_COLUMN, STORAGE_TERM_COLUMN
)
from lagk.routing.table import LookupTable
from lagk.routing.transmission_loss import TransmissionLossAdjuster

logger = logging.getLogger(__name__)


# =============================================================================
# STORAGE-OUTFLOW TABLE
# =============================================================================

def build_storage_outflow_table(
    k_table: LookupTable,
    dt: float,
    divisor: float = 1.0,
    solver_config: Optional[SolverConfig] = None
) -> LookupTable:
    """
    Build the 2S/dt + O vs O table from an outflow vs K table.

    Storage is accumulated from zero outflow upward as K(qbar) * dQ, with
    each K-table segment subdivided into up to ``max_storage_segments``
    pieces. A (0, 0) anchor is added when the table does not start at the
    origin and a final row at ``big_data_value`` bounds every lookup.

    Args:
        k_table: Outflow (column A) vs K (column B), outflow ascending
        dt: Routing time step in base units
        divisor: 1 for the full-interval table, 4 for the quarter-interval one
        solver_config: Numerical settings (defaults when None)

    Returns:
        Table with the storage term in column A and outflow in column B
    """
    cfg = solver_config or SolverConfig()
    step = dt / divisor
    n_k = len(k_table)
    if n_k == 0:
        raise ValueError("Cannot build a storage-outflow table from an empty K table")

    storage_terms = []
    outflows = []
    storage = 0.0
    q1 = 0.0
    q2 = 0.0

    def add_row(q_new: float):
        nonlocal storage, q1
        qbar = (q_new + q1) / 2.0
        storage += k_table.lookup(qbar, OUTFLOW_COLUMN, allow_bounds=True) * (q_new - q1)
        storage_terms.append(2.0 * storage / step + q_new)
        outflows.append(q_new)
        q1 = q_new

    for i in range(n_k):
        q_i = k_table.get(i, OUTFLOW_COLUMN)
        if i == n_k - 1:
            q2 = q_i
            add_row(q2)
            continue

        delta_k = abs(k_table.get(i, K_COLUMN) - k_table.get(i + 1, K_COLUMN))
        delta_q = abs(q_i - k_table.get(i + 1, OUTFLOW_COLUMN))
        n_segments = 1
        if delta_k != 0:
            n_segments = int((delta_q + SEGMENT_K_WEIGHT * delta_k) / SEGMENT_DIVISOR + 1.5)
        n_segments = min(n_segments, cfg.max_storage_segments)

        for part in range(n_segments):
            q2 = q_i + delta_q * part / n_segments
            add_row(q2)

    # Closing row repeats the last outflow
    add_row(q2)

    if storage_terms[0] > 0.01 or outflows[0] > 0.01:
        storage_terms.insert(0, 0.0)
        outflows.insert(0, 0.0)

    add_row(cfg.big_data_value)

    table = LookupTable.from_columns(storage_terms, outflows, missing_value=cfg.missing_value)
    table.table_id = "storage_outflow" if divisor == 1.0 else f"storage_outflow_1/{divisor:g}"
    logger.debug("Storage-outflow table (dt=%s, divisor=%s):\n%s", dt, divisor, table)
    return table


# =============================================================================
# ATLANTA-K
# =============================================================================

@dataclass
class StorageResult:
    """Outflow of one routing step with the updated states"""
    outflow: float
    storage: float
    lagged_inflow: float
    warnings: int = 0


class AtlantaKSolver:
    """
    Storage routing with full and quarter interval storage-outflow tables.

    Args:
        k_table: Outflow vs K table
        dt: Routing time step in base units
        storage_table: Full-interval 2S/dt + O vs O table
        quarter_table: Quarter-interval 2S/(dt/4) + O vs O table
        solver_config: Numerical settings
    """

    def __init__(
        self,
        k_table: LookupTable,
        dt: float,
        storage_table: Optional[LookupTable] = None,
        quarter_table: Optional[LookupTable] = None,
        solver_config: Optional[SolverConfig] = None
    ):
        self.config = solver_config or SolverConfig()
        self.k_table = k_table
        self.dt = dt
        if storage_table is None:
            storage_table = build_storage_outflow_table(k_table, dt, 1.0, self.config)
        if quarter_table is None:
            quarter_table = build_storage_outflow_table(
                k_table, dt, float(QUARTER_SUBSTEPS), self.config
            )
        self.storage_table = storage_table
        self.quarter_table = quarter_table
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def k_at(self, outflow: float) -> float:
        return self.k_table.lookup(outflow, OUTFLOW_COLUMN, allow_bounds=True)

    def _clamp(self, value: float) -> float:
        return 0.0 if value < self.config.rhs_zero_tolerance else value

    def solve(self, x1: float, x2: float, previous_outflow: float, storage: float) -> StorageResult:
        """
        Route one time step.

        Args:
            x1: Lagged inflow at the previous step
            x2: Lagged inflow at the current step
            previous_outflow: Outflow at the previous step
            storage: Storage at the previous step

        Returns:
            StorageResult with the outflow and the new storage
        """
        threshold = self.config.storage_warning_threshold
        warnings = 0
        factor = 1.0

        y1 = previous_outflow
        storage_term = storage * 2.0 / self.dt
        rhs = self._clamp(x1 + x2 + storage_term - y1)

        y2 = self.storage_table.lookup(rhs, STORAGE_TERM_COLUMN, allow_bounds=True)
        k1 = self.k_at(y1)
        k2 = self.k_at(y2)

        self.logger.debug(
            "x1=%.2f x2=%.2f rhs=%.2f y2=%.2f k1=%.2f k2=%.2f y1=%.2f",
            x1, x2, rhs, y2, k1, k2, y1
        )

        half_step = self.dt / 2.0
        if k1 < half_step and k2 < half_step:
            # No attenuation
            y2 = min(x2, rhs)
        elif k1 >= 2.0 * self.dt and k2 >= 2.0 * self.dt:
            pass
        elif k1 > half_step or k2 > half_step:
            storage_term *= QUARTER_SUBSTEPS
            if storage_term < threshold:
                warnings += 1

            quarter_half_step = self.dt / QUARTER_SUBSTEPS / 2.0
            dx = (x2 - x1) / QUARTER_SUBSTEPS
            for j in range(QUARTER_SUBSTEPS):
                xq1 = x1 + j * dx
                xq2 = xq1 + dx
                rhs = xq1 + xq2 + storage_term - y1
                y2 = self.quarter_table.lookup(rhs, STORAGE_TERM_COLUMN, allow_bounds=True)

                if self.k_at(y1) < quarter_half_step or self.k_at(y2) < quarter_half_step:
                    y2 = min(xq2, rhs)

                storage_term = rhs - y2
                if storage_term < threshold:
                    warnings += 1
                y1 = y2
            factor = float(QUARTER_SUBSTEPS)

        storage_term = (rhs - y2) / factor
        if storage_term < threshold:
            warnings += 1

        if warnings:
            self.logger.warning(
                "Storage term went below %s %d time(s); outflow %.4f may be unstable",
                threshold, warnings, y2
            )

        return StorageResult(
            outflow=y2,
            storage=storage_term * self.dt / 2.0,
            lagged_inflow=x2,
            warnings=warnings
        )


# =============================================================================
# MCP2K
# =============================================================================

@dataclass
class SegmentState:
    """Inputs and result of routing one segment"""
    x1: float           # inflow at segment start
    x2: float           # inflow at segment end
    y0: float           # outflow one segment before the start
    y1: float           # outflow at segment start
    y2: float = 0.0     # solved outflow at segment end
    xta: float = 1.0    # segment length
    quarter: bool = False
    iterations: int = 0
    converged: bool = False


class MCP2KSolver:
    """
    Half-interval iterative storage routing.

    Args:
        k_table: Outflow vs K table
        dt: Routing time step in base units
        variable_k: Whether K varies with outflow
        trans_loss: Optional receding-limb transmission loss
        solver_config: Numerical settings
    """

    def __init__(
        self,
        k_table: LookupTable,
        dt: float,
        variable_k: bool = True,
        trans_loss: Optional[TransmissionLossAdjuster] = None,
        solver_config: Optional[SolverConfig] = None
    ):
        self.config = solver_config or SolverConfig()
        self.k_table = k_table
        self.dt = dt
        self.variable_k = variable_k
        self.trans_loss = trans_loss
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def route_segment(self, state: SegmentState) -> SegmentState:
        """
        Solve the segment end outflow by fixed-point iteration on K.

        Sets ``state.quarter`` when K is too small for the segment length,
        which asks the caller for a quarter-interval pass.
        """
        tolerance = self.config.convergence_tolerance
        quarter_length = state.xta / 4.0
        ye = (3.0 * state.y1 - state.y0) / 2.0

        for iteration in range(1, self.config.max_segment_iterations + 1):
            state.iterations = iteration
            xk = self.k_table.lookup(ye, OUTFLOW_COLUMN, allow_bounds=True)

            if not (xk > quarter_length or self.variable_k):
                state.y2 = state.x2
                state.converged = True
                break

            if xk <= quarter_length:
                # K too small for this segment length; no attenuation
                state.y2 = state.x2
                state.quarter = True
                state.converged = True
                break

            tr = 0.5 * state.xta
            state.y2 = (tr * (state.x1 + state.x2) + state.y1 * (xk - tr)) / (xk + tr)
            if abs(state.y2 - ye) <= tolerance * abs(ye):
                state.converged = True
                break
            ye = state.y2
        else:
            self.logger.warning(
                "Segment routing did not converge in %d iterations (x1=%.3f x2=%.3f y1=%.3f y2=%.3f)",
                self.config.max_segment_iterations, state.x1, state.x2, state.y1, state.y2
            )
        return state

    def calculate_quarter_dt(self, state: SegmentState) -> SegmentState:
        """Re-route a segment as four sub-segments with interpolated inflow"""
        sub_length = state.xta / QUARTER_SUBSTEPS
        x2t = state.x1
        y1t = state.y0 * 0.25 + state.y1 * 0.75
        y2t = state.y1

        for i in range(1, QUARTER_SUBSTEPS + 1):
            frac = i / QUARTER_SUBSTEPS
            x1t = x2t
            x2t = state.x1 * (1.0 - frac) + state.x2 * frac
            y0t = y1t
            y1t = y2t
            sub = self.route_segment(
                SegmentState(x1t, x2t, y0t, y1t, y2t, sub_length, quarter=True)
            )
            y2t = sub.y2

        state.y2 = y2t
        state.quarter = False
        return state

    def _route(self, x1: float, x2: float, y0: float, y1: float) -> float:
        state = self.route_segment(SegmentState(x1, x2, y0, y1, xta=self.dt / 2.0))
        if state.quarter and self.variable_k:
            state = self.calculate_quarter_dt(SegmentState(x1, x2, y0, y1, xta=self.dt / 2.0))
        return state.y2

    def solve(self, x1: float, x2: float, previous_outflow: float, storage: float) -> StorageResult:
        """
        Route one time step as two half-interval segments.

        ``storage`` carries the outflow two steps back, which the segment
        iteration uses to extrapolate its first estimate.
        """
        x12 = (x1 + x2) / 2.0
        y1 = previous_outflow
        y01 = (storage + y1) / 2.0

        y12 = self._route(x1, x12, y01, y1)
        y2 = self._route(x12, x2, y1, y12)

        if self.trans_loss is not None:
            y2 = self.trans_loss.calculate_loss(x2, previous_outflow, y2)

        self.logger.debug("x1=%.3f x2=%.3f y1=%.3f y12=%.3f y2=%.3f", x1, x2, y1, y12, y2)
        return StorageResult(outflow=y2, storage=y1, lagged_inflow=x2)
