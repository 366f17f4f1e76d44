"""
Lag and K data package.

Provides the persisted routing state and the inflow series adapter.
"""

from lagk.data.contracts import RoutingState, StateStore
from lagk.data.series import PandasInflowSeries

__all__ = [
    "RoutingState",
    "StateStore",
    "PandasInflowSeries",
]
