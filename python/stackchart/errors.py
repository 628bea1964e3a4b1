"""Exceptions raised by chart construction and data loading."""

from __future__ import annotations


class ChartError(Exception):
    """Base exception that carries an optional hint for the caller."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(ChartError):
    """Raised when a chart cannot be built from its configuration."""


class UnknownFunctionError(ConfigurationError):
    """Raised when no aggregation handler matches a metric's function."""


class LoadError(ChartError):
    """Raised when a historical load fails."""


__all__ = [
    "ChartError",
    "ConfigurationError",
    "UnknownFunctionError",
    "LoadError",
]
