"""Exception types raised by the tumor simulation engine."""

from __future__ import annotations

from typing import Any


class ConfigurationError(ValueError):
    """Invalid or missing configuration value, raised before any step runs."""

    def __init__(self, key: str, value: Any, reason: str = ""):
        self.key = key
        self.value = value
        self.reason = reason
        message = f"Invalid value for [{key}]: [{value}]"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class InvariantError(RuntimeError):
    """Broken engine invariant (capacity overflow, negative count, ...)."""
