"""
Exception hierarchy for the Movie Review Client.

This module defines structured exceptions with error codes, context information,
and recovery suggestions so that transport, storage and session failures are
reported consistently to the application layer.
"""

import asyncio
from datetime import datetime
from typing import Optional, Dict, Any, List
from enum import Enum


class ErrorCode(Enum):
    """Standardized error codes for the Movie Review Client."""

    # Authentication Errors (1000-1099)
    AUTH_UNAUTHORIZED = "AUTH_1001"
    AUTH_REFRESH_FAILED = "AUTH_1003"
    AUTH_MISSING_REFRESH_TOKEN = "AUTH_1004"
    AUTH_INVALID_RESPONSE = "AUTH_1005"

    # Network and Communication Errors (2000-2099)
    NETWORK_CONNECTION_FAILED = "NETWORK_2001"
    NETWORK_TIMEOUT = "NETWORK_2002"

    # HTTP Response Errors (3000-3099)
    HTTP_BAD_REQUEST = "HTTP_3001"
    HTTP_UNAUTHORIZED = "HTTP_3002"
    HTTP_FORBIDDEN = "HTTP_3003"
    HTTP_NOT_FOUND = "HTTP_3004"
    HTTP_SERVER_ERROR = "HTTP_3005"
    HTTP_UNEXPECTED_STATUS = "HTTP_3006"

    # Credential Storage Errors (4000-4099)
    STORAGE_READ_FAILED = "STORAGE_4001"
    STORAGE_WRITE_FAILED = "STORAGE_4002"

    # Configuration Errors (8000-8099)
    CONFIG_FILE_NOT_FOUND = "CONFIG_8001"
    CONFIG_INVALID_VALUE = "CONFIG_8002"

    # Internal Errors (9000-9099)
    INTERNAL_UNEXPECTED_ERROR = "INTERNAL_9001"


class ErrorSeverity(Enum):
    """Error severity levels for logging and handling."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RecoveryAction(Enum):
    """Suggested recovery actions for errors."""
    RETRY = "retry"
    RETRY_WITH_BACKOFF = "retry_with_backoff"
    REFRESH_TOKEN = "refresh_token"
    LOGIN_AGAIN = "login_again"
    USER_INTERVENTION = "user_intervention"
    IGNORE = "ignore"


class ReelClientError(Exception):
    """
    Base exception class for all Movie Review Client errors.

    Provides structured error information including error codes, context,
    and recovery suggestions for consistent error handling.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: Optional[Dict[str, Any]] = None,
        recovery_actions: Optional[List[RecoveryAction]] = None,
        cause: Optional[Exception] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)

        self.message = message
        self.error_code = error_code
        self.severity = severity
        self.context = context or {}
        self.recovery_actions = recovery_actions or []
        self.cause = cause
        self.user_message = user_message or message
        self.timestamp = datetime.now()

        if cause:
            self.context['cause_type'] = type(cause).__name__
            self.context['cause_message'] = str(cause)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format for serialization."""
        return {
            'error': {
                'code': self.error_code.value,
                'message': self.message,
                'user_message': self.user_message,
                'severity': self.severity.value,
                'timestamp': self.timestamp.isoformat(),
                'context': self.context,
                'recovery_actions': [action.value for action in self.recovery_actions],
                'cause': {
                    'type': self.context.get('cause_type'),
                    'message': self.context.get('cause_message')
                } if self.cause else None
            }
        }


class AuthenticationError(ReelClientError):
    """Authentication and session related errors."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.AUTH_UNAUTHORIZED, **kwargs):
        kwargs.setdefault('severity', ErrorSeverity.HIGH)
        kwargs.setdefault('recovery_actions', [RecoveryAction.LOGIN_AGAIN])
        super().__init__(message=message, error_code=error_code, **kwargs)


class TokenRefreshError(AuthenticationError):
    """
    The access token could not be refreshed.

    Terminal for the current session: stored credentials have been cleared
    and the caller should treat the user as logged out.
    """

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.AUTH_REFRESH_FAILED,
            user_message="Your session has expired. Please log in again.",
            **kwargs
        )


class NetworkError(ReelClientError):
    """No response was received from the server."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.NETWORK_CONNECTION_FAILED, **kwargs):
        super().__init__(
            message=message,
            error_code=error_code,
            severity=ErrorSeverity.MEDIUM,
            recovery_actions=[RecoveryAction.RETRY_WITH_BACKOFF],
            **kwargs
        )


class APIResponseError(ReelClientError):
    """The server answered with a non-2xx status."""

    def __init__(
        self,
        status: int,
        body: Any = None,
        method: Optional[str] = None,
        url: Optional[str] = None,
        **kwargs
    ):
        self.status = status
        self.body = body

        context = kwargs.pop('context', {})
        context.update({'status': status, 'method': method, 'url': url})

        detail = self._extract_detail(body)
        target = " ".join(part for part in (method, url) if part) or "Request"
        message = f"{target} failed ({status})"
        if detail:
            message += f": {detail}"

        recovery_actions = [RecoveryAction.REFRESH_TOKEN] if status == 401 else [RecoveryAction.USER_INTERVENTION]
        if status >= 500:
            recovery_actions = [RecoveryAction.RETRY_WITH_BACKOFF]

        super().__init__(
            message=message,
            error_code=self.error_code_for_status(status),
            severity=ErrorSeverity.HIGH if status >= 500 else ErrorSeverity.MEDIUM,
            recovery_actions=recovery_actions,
            context=context,
            user_message=detail or None,
            **kwargs
        )

    @property
    def is_unauthorized(self) -> bool:
        return self.status == 401

    @staticmethod
    def error_code_for_status(status: int) -> ErrorCode:
        """Map an HTTP status to an error code."""
        code_mapping = {
            400: ErrorCode.HTTP_BAD_REQUEST,
            401: ErrorCode.HTTP_UNAUTHORIZED,
            403: ErrorCode.HTTP_FORBIDDEN,
            404: ErrorCode.HTTP_NOT_FOUND,
        }
        if status >= 500:
            return ErrorCode.HTTP_SERVER_ERROR
        return code_mapping.get(status, ErrorCode.HTTP_UNEXPECTED_STATUS)

    @staticmethod
    def _extract_detail(body: Any) -> Optional[str]:
        if isinstance(body, dict):
            detail = body.get('detail') or body.get('message')
            return str(detail) if detail else None
        if isinstance(body, str) and body.strip():
            return body.strip()[:200]
        return None


class StorageError(ReelClientError):
    """Credential storage related errors."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.STORAGE_WRITE_FAILED, **kwargs):
        super().__init__(
            message=message,
            error_code=error_code,
            severity=ErrorSeverity.LOW,
            recovery_actions=[RecoveryAction.IGNORE],
            **kwargs
        )


class ConfigurationError(ReelClientError):
    """Configuration related errors."""

    def __init__(self, message: str, error_code: ErrorCode, config_key: Optional[str] = None, **kwargs):
        context = kwargs.pop('context', {})
        if config_key:
            context['config_key'] = config_key

        super().__init__(
            message=message,
            error_code=error_code,
            severity=ErrorSeverity.HIGH,
            recovery_actions=[RecoveryAction.USER_INTERVENTION],
            context=context,
            **kwargs
        )


def handle_exception(
    exception: Exception,
    context: Optional[Dict[str, Any]] = None,
    default_error_code: ErrorCode = ErrorCode.INTERNAL_UNEXPECTED_ERROR
) -> ReelClientError:
    """
    Convert a generic exception to a structured ReelClientError.

    Args:
        exception: The original exception
        context: Additional context information
        default_error_code: Default error code if specific mapping not found

    Returns:
        Structured ReelClientError
    """
    if isinstance(exception, ReelClientError):
        return exception

    if isinstance(exception, (TimeoutError, asyncio.TimeoutError)):
        return NetworkError(str(exception) or "Request timed out",
                            error_code=ErrorCode.NETWORK_TIMEOUT, context=context, cause=exception)
    if isinstance(exception, FileNotFoundError):
        return ConfigurationError(str(exception), ErrorCode.CONFIG_FILE_NOT_FOUND,
                                  context=context, cause=exception)
    if isinstance(exception, (ConnectionError, OSError)):
        return NetworkError(str(exception), context=context, cause=exception)

    return ReelClientError(
        message=str(exception),
        error_code=default_error_code,
        context=context,
        cause=exception
    )
