"""Error hierarchy for bioreactor_opt."""

from __future__ import annotations

from typing import Any, Mapping, Optional


class BioreactorOptError(Exception):
    """Base exception for bioreactor_opt failures."""

    def __init__(
        self,
        message: str,
        *,
        user_message: Optional[str] = None,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.user_message = message if user_message is None else user_message
        self.context = dict(context) if context else {}

    def log_message(self) -> str:
        if not self.context:
            return str(self)
        return f"{self}: {self.context}"


class ConfigError(BioreactorOptError):
    """Configuration loading or validation error."""


class CatalogError(BioreactorOptError):
    """Unknown device id or malformed catalog data."""


class ValidationError(BioreactorOptError):
    """Validation error for input parameters or schema."""


class OptimizationError(BioreactorOptError):
    """Optimization setup or execution error."""


__all__ = [
    "BioreactorOptError",
    "ConfigError",
    "CatalogError",
    "ValidationError",
    "OptimizationError",
]
