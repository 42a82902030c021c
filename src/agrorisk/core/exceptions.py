"""
Custom exception hierarchy for the agrorisk simulation system.
Provides clear error categories and rich error information.
"""
from typing import Optional, Any, Dict
from dataclasses import dataclass

from pydantic import ValidationError


@dataclass
class ErrorContext:
    """Context information for errors"""
    unit_id: Optional[str] = None
    date: Optional[str] = None
    component: Optional[str] = None
    operation: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class AgroriskError(Exception):
    """Base exception for all agrorisk errors"""

    def __init__(self, message: str, context: Optional[ErrorContext] = None):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()

    def __str__(self) -> str:
        context_str = ""
        if self.context.unit_id:
            context_str += f" [Unit: {self.context.unit_id}]"
        if self.context.date:
            context_str += f" [Date: {self.context.date}]"
        if self.context.component:
            context_str += f" [Component: {self.context.component}]"

        return f"{self.__class__.__name__}: {self.message}{context_str}"


# Configuration errors
class ConfigurationError(AgroriskError):
    """Invalid cultivar coefficients, scenario or engine settings"""
    pass


class InvalidSoilProfile(ConfigurationError):
    """Soil layers are missing, non-monotonic or physically inconsistent"""
    pass


# Data-related errors
class DataError(AgroriskError):
    """Base class for input data errors"""
    pass


class DataGapError(DataError):
    """Weather series is not contiguous or lacks a required field"""
    pass


class MissingWeatherField(DataGapError):
    """
    Optional weather field required by the selected reference ET method is absent.

    Non-fatal: the engine falls back to the temperature-only method and
    reports this condition alongside the result.
    """

    def __init__(self, message: str, fields: Optional[list] = None,
                 context: Optional[ErrorContext] = None):
        super().__init__(message, context)
        self.fields = list(fields or [])


# Simulation errors
class SimulationError(AgroriskError):
    """Base class for errors raised while simulating a unit"""
    pass


class IncompletePhenology(SimulationError):
    """Harvest was not reached within the weather window (non-fatal)"""

    def __init__(self, message: str, last_stage: Optional[str] = None,
                 context: Optional[ErrorContext] = None):
        super().__init__(message, context)
        self.last_stage = last_stage


class InternalConsistencyError(SimulationError):
    """A daily water balance invariant was violated after clamping"""
    pass


def handle_exception(exc: Exception, context: Optional[ErrorContext] = None) -> AgroriskError:
    """
    Wrap generic exceptions in the AgroriskError hierarchy.
    Useful for catching and categorizing third-party exceptions at the unit boundary.
    """
    if isinstance(exc, AgroriskError):
        return exc

    error_map = {
        ValidationError: ConfigurationError,
        FileNotFoundError: DataError,
        KeyError: ConfigurationError,
        ValueError: DataError,
    }

    for exc_type, agrorisk_exc_type in error_map.items():
        if isinstance(exc, exc_type):
            return agrorisk_exc_type(str(exc), context)

    return AgroriskError(str(exc), context)
