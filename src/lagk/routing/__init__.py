"""Lag and K routing."""
from lagk.routing.table import LookupTable
from lagk.routing.carryover import CarryoverState
from lagk.routing.lag import (
    LagSolver,
    LagResult,
)
from lagk.routing.storage import (
    AtlantaKSolver,
    MCP2KSolver,
    SegmentState,
    StorageResult,
    build_storage_outflow_table,
)
from lagk.routing.transmission_loss import TransmissionLossAdjuster
from lagk.routing.lagk import LagK
from lagk.routing.builder import LagKBuilder

__all__ = [
    "LookupTable",
    "CarryoverState",
    "LagSolver",
    "LagResult",
    # Storage routing
    "AtlantaKSolver",
    "MCP2KSolver",
    "SegmentState",
    "StorageResult",
    "build_storage_outflow_table",
    "TransmissionLossAdjuster",
    # Reach
    "LagK",
    "LagKBuilder",
]
