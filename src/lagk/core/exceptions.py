"""
Custom exception hierarchy for Lag and K routing.
Provides clear error categories and rich error information.
"""
import json
from typing import Optional, Any, Dict
from dataclasses import dataclass


@dataclass
class ErrorContext:
    """Context information for errors"""
    reach_id: Optional[str] = None
    time: Optional[str] = None
    component: Optional[str] = None
    operation: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class LagKError(Exception):
    """Base exception for all routing errors"""

    def __init__(self, message: str, context: Optional[ErrorContext] = None):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()

    def __str__(self) -> str:
        context_str = ""
        if self.context.reach_id:
            context_str += f" [Reach: {self.context.reach_id}]"
        if self.context.time:
            context_str += f" [Time: {self.context.time}]"
        if self.context.component:
            context_str += f" [Component: {self.context.component}]"

        return f"{self.__class__.__name__}: {self.message}{context_str}"


# Configuration errors
class ConfigurationError(LagKError):
    """Invalid reach or solver configuration"""
    pass


# Table errors
class TableError(LagKError):
    """Lookup table cannot answer the request"""
    pass


class TableIndexError(TableError, IndexError):
    """Row or column index outside the table"""
    pass


# State errors
class StateError(LagKError):
    """Persisted routing state is missing or inconsistent"""
    pass


# Data errors
class DataSourceError(LagKError):
    """Error reading the inflow series"""
    pass


def handle_exception(exc: Exception, context: Optional[ErrorContext] = None) -> LagKError:
    """
    Wrap generic exceptions in the LagKError hierarchy.
    Useful for catching and categorizing third-party exceptions.
    """
    if isinstance(exc, LagKError):
        return exc

    error_map = {
        json.JSONDecodeError: StateError,
        FileNotFoundError: DataSourceError,
        KeyError: StateError,
        IndexError: TableIndexError,
        ValueError: ConfigurationError,
    }

    for exc_type, lagk_exc_type in error_map.items():
        if isinstance(exc, exc_type):
            return lagk_exc_type(str(exc), context)

    return LagKError(str(exc), context)
