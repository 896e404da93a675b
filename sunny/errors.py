"""Exception types shared by the agent core, the tool layer and the bot."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class SunnyError(Exception):
    """Base class for errors raised by Sunny."""


class ConfigurationError(SunnyError):
    """Raised when the process configuration is unusable."""


class ToolError(SunnyError):
    """Base class for failures at the tool execution boundary."""

    error_type = "unknown"

    def __init__(self, message: str, tool_name: Optional[str] = None):
        super().__init__(message)
        self.tool_name = tool_name


class UnknownToolError(ToolError):
    error_type = "invalid_args"

    def __init__(self, tool_name: str):
        super().__init__(f"Unknown tool: {tool_name}", tool_name)


class ToolPermissionError(ToolError):
    """The invoking actor may not run a privileged tool."""

    error_type = "permission"

    def __init__(self, tool_name: str, actor_id: Optional[int] = None, message: Optional[str] = None):
        super().__init__(
            message or f"Permission denied: only the server owner can use '{tool_name}'.", tool_name
        )
        self.actor_id = actor_id


class ToolValidationError(ToolError):
    error_type = "invalid_args"


class ToolExecutionError(ToolError):
    """The external operation behind a tool failed."""

    error_type = "api_error"


class TargetNotFoundError(ToolExecutionError):
    error_type = "invalid_args"


class ProviderError(SunnyError):
    """Raised for model-backend failures that are not SDK errors."""


class ProviderConfigurationError(ProviderError):
    """A provider was selected but has no usable credentials or client."""


class ErrorCategory(str, Enum):
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


def error_status(exc: BaseException) -> Optional[int]:
    """Return the HTTP-like status code carried by an SDK exception, if any."""

    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def classify_error(exc: BaseException) -> ErrorCategory:
    """Bucket a provider failure into one of the user-facing categories."""

    if isinstance(exc, (ProviderConfigurationError, ConfigurationError)):
        return ErrorCategory.CONFIGURATION

    status = error_status(exc)
    if status == 429:
        return ErrorCategory.RATE_LIMITED
    if status is not None and status >= 500:
        return ErrorCategory.SERVER_ERROR
    if status in (401, 403):
        return ErrorCategory.CONFIGURATION
    if "API key" in str(exc):
        return ErrorCategory.CONFIGURATION
    return ErrorCategory.UNKNOWN


def is_tool_validation_error(exc: BaseException) -> bool:
    """True when a backend rejected the request because of its tool declarations or calls."""

    return error_status(exc) == 400 and "tool" in str(exc).lower()
