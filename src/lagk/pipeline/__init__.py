"""
Lag and K pipeline module.

Provides whole-series routing runs.
"""

from lagk.pipeline.runner import route_series

__all__ = [
    "route_series",
]
