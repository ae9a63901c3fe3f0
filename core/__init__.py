"""
Core Module Package.

This package contains the core infrastructure components
that all other modules depend on.

Components:
- clock: Unified time abstraction
- exceptions: Custom exception hierarchy
"""

from .clock import (
    ClockProtocol,
    SystemClock,
    MockClock,
    as_naive_utc,
    get_clock,
)
from .exceptions import (
    Severity,
    DecisionPipelineError,
    ConfigurationError,
    InvalidConfigError,
    ValidationError,
    ContextValidationError,
    TransferValidationError,
    InvalidTransitionError,
    PersistenceError,
)

__all__ = [
    # Clock
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "as_naive_utc",
    "get_clock",
    # Exceptions
    "Severity",
    "DecisionPipelineError",
    "ConfigurationError",
    "InvalidConfigError",
    "ValidationError",
    "ContextValidationError",
    "TransferValidationError",
    "InvalidTransitionError",
    "PersistenceError",
]
