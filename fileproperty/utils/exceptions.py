"""
Base exception classes and error handling utilities for the file property engine.

Provides the exception hierarchy raised by upload ingestion and path resolution,
error response formatting, and Flask error handler registration for applications
that embed the engine behind an HTTP layer.

Key Features:
- Hierarchical exception classes for consistent error categorization
- Structured logging of every raised error through structlog
- Prometheus error counters labelled by type, category and endpoint
- Flask error handler integration with @errorhandler decorators

Error taxonomy:
- MalformedUploadError: the upload tree or payload does not have the expected
  shape. Fatal for the whole call.
- ContentUnavailableError (ContentNotFoundError, ContentDecodeError): the bytes
  for one candidate cannot be obtained. Fatal for that candidate only.
- DirectoryNotWritableError: the destination directory cannot be written.
  Fatal for the whole call.
- RenamePatternError (UnresolvedRenameTokenError): a rename pattern could not
  be rendered. Fatal for that rename call.
"""

import traceback
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union
from uuid import uuid4

import structlog
from flask import Flask, current_app, has_app_context, has_request_context, jsonify, request

from ..monitoring.metrics import error_counter, error_response_time

# Get structured logger
logger = structlog.get_logger(__name__)


class ErrorCategory(Enum):
    """Error categories for hierarchical classification."""

    VALIDATION = "validation"
    CONTENT = "content"
    STORAGE = "storage"
    CONFIGURATION = "configuration"
    TEMPLATE = "template"
    SYSTEM = "system"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Error severity levels for monitoring and alerting."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class BaseApplicationError(Exception):
    """
    Base exception class for all file property errors.

    Provides consistent error handling infrastructure with structured error
    reporting, logging integration, and metrics collection.

    Attributes:
        message: Human-readable error message
        code: Application-specific error code
        category: Error category for classification
        severity: Error severity level
        details: Additional error context
        correlation_id: Unique identifier for error tracking
        recoverable: Whether the caller may skip the failing candidate and continue
        user_friendly: Whether the message is safe to display to users
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        details: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
        recoverable: bool = False,
        user_friendly: bool = True,
        http_status: int = 500
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.category = category
        self.severity = severity
        self.details = details or {}
        self.correlation_id = correlation_id or str(uuid4())
        self.recoverable = recoverable
        self.user_friendly = user_friendly
        self.http_status = http_status
        self.timestamp = datetime.utcnow().isoformat()

        # Request context is only present when the engine runs inside a Flask view
        if has_request_context():
            self.endpoint = request.endpoint
            self.method = request.method
            self.path = request.path
        else:
            self.endpoint = None
            self.method = None
            self.path = None

        self._log_error()
        self._update_metrics()

    def _log_error(self) -> None:
        """Log error with structured logging."""
        log_data = {
            'error_code': self.code,
            'error_category': self.category.value,
            'error_severity': self.severity.value,
            'correlation_id': self.correlation_id,
            'recoverable': self.recoverable,
            'endpoint': self.endpoint,
            'details': self.details,
        }

        if self.severity in [ErrorSeverity.HIGH, ErrorSeverity.CRITICAL]:
            logger.error(self.message, **log_data)
        elif self.severity == ErrorSeverity.MEDIUM:
            logger.warning(self.message, **log_data)
        else:
            logger.info(self.message, **log_data)

    def _update_metrics(self) -> None:
        """Update Prometheus metrics for error tracking."""
        error_counter.labels(
            error_type=self.code,
            error_category=self.category.value,
            endpoint=self.endpoint or 'unknown'
        ).inc()

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary format for JSON responses.

        Returns:
            Dictionary representation of the error
        """
        error_dict = {
            'error': True,
            'message': self.message if self.user_friendly else "An internal error occurred",
            'code': self.code,
            'category': self.category.value,
            'correlation_id': self.correlation_id,
            'timestamp': self.timestamp,
            'recoverable': self.recoverable
        }

        debug = has_app_context() and current_app.debug
        if self.user_friendly or debug:
            error_dict['details'] = self.details

        return error_dict


class ValidationError(BaseApplicationError):
    """
    Validation error for input shape and policy failures.

    Carries optional field-level errors keyed by validation rule.
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field_errors: Optional[Dict[str, List[str]]] = None,
        **kwargs
    ):
        kwargs.setdefault('category', ErrorCategory.VALIDATION)
        kwargs.setdefault('severity', ErrorSeverity.LOW)
        kwargs.setdefault('http_status', 400)
        super().__init__(message=message, **kwargs)
        self.field_errors = field_errors or {}
        if self.field_errors:
            self.details['field_errors'] = self.field_errors


class MalformedUploadError(ValidationError):
    """
    Raised when an upload descriptor or data payload is missing required keys
    or has the wrong shape.

    Indicates an integration error upstream; never retried.
    """

    def __init__(
        self,
        message: str = "Malformed upload input",
        missing_keys: Optional[Iterable[str]] = None,
        **kwargs
    ):
        kwargs.setdefault('severity', ErrorSeverity.HIGH)
        super().__init__(message=message, **kwargs)
        self.missing_keys = sorted(missing_keys) if missing_keys else []
        if self.missing_keys:
            self.details['missing_keys'] = self.missing_keys


class ContentUnavailableError(BaseApplicationError):
    """Byte content for a single upload candidate could not be obtained."""

    def __init__(
        self,
        message: str = "Upload content is unavailable",
        source: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault('category', ErrorCategory.CONTENT)
        kwargs.setdefault('severity', ErrorSeverity.MEDIUM)
        kwargs.setdefault('http_status', 422)
        super().__init__(message=message, recoverable=True, **kwargs)
        self.source = source
        if source:
            self.details['source'] = source


class ContentNotFoundError(ContentUnavailableError):
    """The staged temporary file referenced by a payload does not exist."""

    def __init__(self, reference_id: str, **kwargs):
        super().__init__(
            message=f"File {reference_id} does not exist",
            source=reference_id,
            http_status=404,
            **kwargs
        )
        self.reference_id = reference_id


class ContentDecodeError(ContentUnavailableError):
    """The payload could not be decoded or read into bytes."""

    def __init__(self, message: str = "File content could not be decoded", **kwargs):
        super().__init__(message=message, **kwargs)


class StorageError(BaseApplicationError):
    """
    System error for storage backend failures.

    Handles filesystem errors that prevent the engine from operating at all.
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        storage_operation: Optional[str] = None,
        storage_path: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault('category', ErrorCategory.STORAGE)
        kwargs.setdefault('severity', ErrorSeverity.CRITICAL)
        kwargs.setdefault('user_friendly', False)
        super().__init__(message=message, **kwargs)

        if storage_operation:
            self.details['storage_operation'] = storage_operation
        if storage_path:
            self.details['storage_path'] = storage_path


class DirectoryNotWritableError(StorageError):
    """The upload directory does not exist or cannot be written after creation."""

    def __init__(self, directory: str, **kwargs):
        super().__init__(
            message="Error: upload directory is not writeable",
            storage_operation="directory_check",
            storage_path=directory,
            **kwargs
        )
        self.directory = directory


class ConfigurationError(BaseApplicationError):
    """Invalid engine or property configuration value."""

    def __init__(self, message: str = "Invalid configuration", key: Optional[str] = None, **kwargs):
        kwargs.setdefault('category', ErrorCategory.CONFIGURATION)
        kwargs.setdefault('severity', ErrorSeverity.HIGH)
        super().__init__(message=message, **kwargs)
        if key:
            self.details['key'] = key


class RenamePatternError(BaseApplicationError):
    """A rename pattern could not be applied to the given target."""

    def __init__(self, message: str = "The rename pattern failed", **kwargs):
        kwargs.setdefault('category', ErrorCategory.TEMPLATE)
        kwargs.setdefault('severity', ErrorSeverity.LOW)
        kwargs.setdefault('http_status', 400)
        super().__init__(message=message, **kwargs)


class UnresolvedRenameTokenError(RenamePatternError):
    """Placeholders remained in a rename pattern after substitution."""

    def __init__(self, tokens: List[str], details: Optional[Dict[str, Any]] = None, **kwargs):
        super().__init__(
            message="The rename pattern failed. Leftover tokens found: {}".format(', '.join(tokens)),
            details=dict(details or {}, tokens=list(tokens)),
            **kwargs
        )
        self.tokens = list(tokens)


def format_error_response(
    error: Union[BaseApplicationError, Exception],
    include_traceback: bool = False
) -> Dict[str, Any]:
    """
    Format error response for consistent API error responses.

    Args:
        error: Exception to format
        include_traceback: Whether to include stack trace (debug mode only)

    Returns:
        Formatted error response dictionary
    """
    if isinstance(error, BaseApplicationError):
        response = error.to_dict()
    else:
        correlation_id = str(uuid4())
        response = {
            'error': True,
            'message': "An unexpected error occurred",
            'code': error.__class__.__name__,
            'category': ErrorCategory.UNKNOWN.value,
            'correlation_id': correlation_id,
            'timestamp': datetime.utcnow().isoformat(),
            'recoverable': False
        }

        logger.error(
            str(error),
            error_code=error.__class__.__name__,
            error_category=ErrorCategory.UNKNOWN.value,
            correlation_id=correlation_id
        )

        error_counter.labels(
            error_type=error.__class__.__name__,
            error_category=ErrorCategory.UNKNOWN.value,
            endpoint=request.endpoint if has_request_context() else 'unknown'
        ).inc()

    if include_traceback and has_app_context() and current_app.debug:
        response['traceback'] = traceback.format_exc()

    return response


def register_error_handlers(app: Flask) -> None:
    """
    Register Flask error handlers for file property errors.

    Args:
        app: Flask application instance
    """

    @app.errorhandler(BaseApplicationError)
    def handle_application_error(error: BaseApplicationError):
        """Render any engine error as a structured JSON response."""
        with error_response_time.labels(
            error_type=error.code,
            error_category=error.category.value
        ).time():
            response = jsonify(format_error_response(error))
            response.status_code = error.http_status
            return response


__all__ = [
    'ErrorCategory',
    'ErrorSeverity',
    'BaseApplicationError',
    'ValidationError',
    'MalformedUploadError',
    'ContentUnavailableError',
    'ContentNotFoundError',
    'ContentDecodeError',
    'StorageError',
    'DirectoryNotWritableError',
    'ConfigurationError',
    'RenamePatternError',
    'UnresolvedRenameTokenError',
    'format_error_response',
    'register_error_handlers',
]
