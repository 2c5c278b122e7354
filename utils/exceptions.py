"""
Custom exceptions for Engineering Manager MCP.

Centralizes exception definitions to avoid circular imports, and provides the
single top-level converter that turns any error raised by a tool into the
structured response returned to the MCP host.

Example:
    >>> try:
    ...     raise JiraError.sprint_not_found(42)
    ... except Exception as e:
    ...     response = handle_error(e, "jira_daily_standup_report")
    >>> response["status"]
    404
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx


logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Machine-readable error codes returned in tool error responses."""

    # Configuration errors
    CONFIG_MISSING = "CONFIG_MISSING"
    CONFIG_INVALID = "CONFIG_INVALID"

    # Validation errors
    VALIDATION_FAILED = "VALIDATION_FAILED"

    # API errors
    API_ERROR = "API_ERROR"
    API_TIMEOUT = "API_TIMEOUT"
    API_RATE_LIMIT = "API_RATE_LIMIT"
    API_UNAUTHORIZED = "API_UNAUTHORIZED"
    API_FORBIDDEN = "API_FORBIDDEN"
    API_NOT_FOUND = "API_NOT_FOUND"

    # Jira specific
    JIRA_BOARD_NOT_FOUND = "JIRA_BOARD_NOT_FOUND"
    JIRA_SPRINT_NOT_FOUND = "JIRA_SPRINT_NOT_FOUND"
    JIRA_ISSUE_NOT_FOUND = "JIRA_ISSUE_NOT_FOUND"
    JIRA_USER_NOT_FOUND = "JIRA_USER_NOT_FOUND"

    # Slack specific
    SLACK_CHANNEL_NOT_FOUND = "SLACK_CHANNEL_NOT_FOUND"
    SLACK_RATE_LIMITED = "SLACK_RATE_LIMITED"
    SLACK_API_ERROR = "SLACK_API_ERROR"

    # General errors
    UNKNOWN_TOOL = "UNKNOWN_TOOL"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class BaseError(Exception):
    """
    Base class for all application errors.

    Attributes:
        message: Human-readable message
        code: ErrorCode classifying the failure
        status_code: HTTP-like status (None when not applicable)
        context: Extra structured details, only exposed in debug responses
        timestamp: When the error was created (UTC)
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_response(self, tool: Optional[str] = None, debug: bool = False) -> Dict[str, Any]:
        """Convert the error to the structured tool response."""
        details: Dict[str, Any] = {
            "code": self.code.value,
            "timestamp": self.timestamp.isoformat(),
        }
        if debug and self.context:
            details["context"] = self.context

        return {
            "error": self.message,
            "tool": tool or "unknown",
            "status": self.status_code,
            "details": details,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a dictionary for logging."""
        return {
            "name": type(self).__name__,
            "message": self.message,
            "code": self.code.value,
            "status_code": self.status_code,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context,
        }


class ConfigError(BaseError):
    """Raised when required configuration is missing or invalid."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.CONFIG_INVALID, 500, context)


class ValidationError(BaseError):
    """Raised when tool input fails validation. Never retried."""

    def __init__(
        self,
        message: str,
        errors: List[Dict[str, str]],
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, ErrorCode.VALIDATION_FAILED, 400, context)
        self.errors = errors

    def to_response(self, tool: Optional[str] = None, debug: bool = False) -> Dict[str, Any]:
        response = super().to_response(tool, debug)
        response["details"]["validationErrors"] = self.errors
        return response


_STATUS_CODES = {
    401: (ErrorCode.API_UNAUTHORIZED, "Authentication failed"),
    403: (ErrorCode.API_FORBIDDEN, "Permission denied"),
    404: (ErrorCode.API_NOT_FOUND, "Resource not found"),
    408: (ErrorCode.API_TIMEOUT, "Request timed out"),
    429: (ErrorCode.API_RATE_LIMIT, "Rate limit exceeded"),
    504: (ErrorCode.API_TIMEOUT, "Request timed out"),
}


class ApiError(BaseError):
    """
    Raised when an upstream API call fails.

    Carries the endpoint and HTTP method of the failed request so that the
    caller (and the logs) can tell which call went wrong.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.API_ERROR,
        status_code: Optional[int] = None,
        endpoint: Optional[str] = None,
        method: Optional[str] = None,
        response_data: Any = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, code, status_code, context)
        self.endpoint = endpoint
        self.method = method
        self.response_data = response_data

    def to_response(self, tool: Optional[str] = None, debug: bool = False) -> Dict[str, Any]:
        response = super().to_response(tool, debug)
        if self.endpoint:
            response["details"]["endpoint"] = self.endpoint
        if self.method:
            response["details"]["method"] = self.method
        return response

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"endpoint": self.endpoint, "method": self.method})
        return data

    @classmethod
    def from_response(cls, response: httpx.Response, message: Optional[str] = None) -> "ApiError":
        """
        Build an ApiError from a non-2xx httpx response.

        Status codes with a well-known meaning map to a dedicated ErrorCode;
        otherwise the upstream error message is extracted from the body
        (Jira's ``errorMessages`` / ``errors``, or a generic ``message``).
        """
        status = response.status_code
        code, default_message = _STATUS_CODES.get(status, (ErrorCode.API_ERROR, "API request failed"))

        try:
            data = response.json()
        except ValueError:
            data = response.text[:500] if response.text else None

        if message is None:
            message = default_message
            if code == ErrorCode.API_ERROR and isinstance(data, dict):
                if data.get("errorMessages"):
                    message = ", ".join(data["errorMessages"])
                elif isinstance(data.get("errors"), dict) and data["errors"]:
                    message = ", ".join(f"{k}: {v}" for k, v in data["errors"].items())
                elif data.get("message"):
                    message = str(data["message"])
                elif data.get("error"):
                    message = str(data["error"])

        try:
            request = response.request
        except RuntimeError:
            # Response built without a request (tests, manual construction)
            request = None

        return cls(
            message,
            code=code,
            status_code=status,
            endpoint=request.url.path if request else None,
            method=request.method if request else None,
            response_data=data,
            context={"retry_after": response.headers.get("Retry-After")}
        )

    @classmethod
    def from_transport_error(cls, error: httpx.HTTPError, method: str, endpoint: str) -> "ApiError":
        """Build an ApiError from an httpx transport failure (no response)."""
        if isinstance(error, httpx.TimeoutException):
            return cls(
                "Request timed out after 30 seconds. Check your network connection.",
                code=ErrorCode.API_TIMEOUT,
                endpoint=endpoint,
                method=method,
            )
        return cls(
            f"Connection error: {error}. Check your network and base URL.",
            code=ErrorCode.API_ERROR,
            endpoint=endpoint,
            method=method,
        )


class JiraError(ApiError):
    """Jira domain errors (resource not found, permissions)."""

    @classmethod
    def board_not_found(cls, board_id: int) -> "JiraError":
        return cls(
            f"Board with ID {board_id} not found",
            code=ErrorCode.JIRA_BOARD_NOT_FOUND,
            status_code=404,
            context={"board_id": board_id}
        )

    @classmethod
    def sprint_not_found(cls, board_id: int) -> "JiraError":
        return cls(
            f"No active sprint found for board {board_id}",
            code=ErrorCode.JIRA_SPRINT_NOT_FOUND,
            status_code=404,
            context={"board_id": board_id}
        )

    @classmethod
    def issue_not_found(cls, issue_key: str) -> "JiraError":
        return cls(
            f"Issue {issue_key} not found",
            code=ErrorCode.JIRA_ISSUE_NOT_FOUND,
            status_code=404,
            context={"issue_key": issue_key}
        )

    @classmethod
    def user_not_found(cls, email: str) -> "JiraError":
        return cls(
            f"No Jira user found for {email}",
            code=ErrorCode.JIRA_USER_NOT_FOUND,
            status_code=404,
            context={"email": email}
        )


class SlackError(ApiError):
    """Slack Web API errors (``ok: false`` payloads and rate limiting)."""

    @classmethod
    def channel_not_found(cls, channel: str) -> "SlackError":
        return cls(
            f"Channel {channel} not found",
            code=ErrorCode.SLACK_CHANNEL_NOT_FOUND,
            status_code=404,
            context={"channel": channel}
        )

    @classmethod
    def rate_limited(cls, retry_after: Optional[str] = None) -> "SlackError":
        suffix = f", retry after {retry_after} seconds" if retry_after else ""
        return cls(
            f"Slack API rate limit exceeded{suffix}",
            code=ErrorCode.SLACK_RATE_LIMITED,
            status_code=429,
            context={"retry_after": retry_after}
        )

    @classmethod
    def api_error(cls, error: str, api_method: str) -> "SlackError":
        return cls(
            f"Slack API error: {error}",
            code=ErrorCode.SLACK_API_ERROR,
            status_code=400,
            endpoint=f"/{api_method}",
            context={"slack_error": error}
        )


def handle_error(error: BaseException, tool: str, debug: bool = False) -> Dict[str, Any]:
    """
    Convert any error raised while running a tool into a structured response.

    Known application errors keep their code and status; anything else is
    reported as an internal error. Every error is logged with the tool name.

    Args:
        error: The exception raised by the tool
        tool: Name of the tool that failed
        debug: Include error context/exception type in the response

    Returns:
        Response dictionary with ``error``, ``tool``, ``status`` and ``details``
    """
    if isinstance(error, BaseError):
        logger.error(f"[{tool}] {error.code.value}: {error.message}")
        logger.debug(f"[{tool}] error details: {error.to_dict()}")
        return error.to_response(tool, debug)

    logger.error(f"[{tool}] Unexpected error: {error}", exc_info=error)
    details: Dict[str, Any] = {
        "code": ErrorCode.INTERNAL_ERROR.value,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if debug:
        details["exception"] = type(error).__name__

    return {
        "error": str(error) or "An unexpected error occurred",
        "tool": tool,
        "status": 500,
        "details": details,
    }
