"""Error taxonomy shared by the compiler, gateway, engine and routes."""

from __future__ import annotations

from typing import Any, Dict, Optional


class AppError(Exception):
    """Base class carrying a stable error code and optional context."""

    code = "APP_ERROR"

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = dict(context or {})

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code, "context": self.context}


class ConfigurationError(AppError):
    """Catalog or configuration defect. Fatal at startup."""

    code = "CONFIGURATION_ERROR"


class ValidationError(AppError):
    """A filter value does not fit its descriptor."""

    code = "VALIDATION_ERROR"


class NetworkError(AppError):
    """A query against the attribute source failed or timed out."""

    code = "NETWORK_ERROR"


class StatisticsUnavailableError(NetworkError):
    """The top-level count failed, so no statistics tree can be built."""

    code = "STATISTICS_UNAVAILABLE"


__all__ = [
    "AppError",
    "ConfigurationError",
    "NetworkError",
    "StatisticsUnavailableError",
    "ValidationError",
]
