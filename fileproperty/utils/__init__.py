"""
Utils Package - Shared Utilities for the File Property Engine

Cross-cutting helpers used by the business layer: the exception hierarchy,
validation result containers and size parsing, filename and path
sanitization, and file content helpers (sniffing, data URIs, existence checks).

Module Organization:
- exceptions: error hierarchy, response formatting and Flask error handlers
- validators: ValidationResult, PropertyValidator sink, parse_ini_size
- sanitizers: sanitize_filename, sanitize_label, normalize_path, PathNormalizer
- file_utils: MIME sniffing, data URI decoding, path classification
"""

# =============================================================================
# EXCEPTIONS
# =============================================================================

from .exceptions import (
    ErrorCategory,
    ErrorSeverity,
    BaseApplicationError,
    ValidationError,
    MalformedUploadError,
    ContentUnavailableError,
    ContentNotFoundError,
    ContentDecodeError,
    StorageError,
    DirectoryNotWritableError,
    ConfigurationError,
    RenamePatternError,
    UnresolvedRenameTokenError,
    format_error_response,
    register_error_handlers,
)

# =============================================================================
# VALIDATION
# =============================================================================

from .validators import (
    ValidationResult,
    PropertyValidator,
    parse_ini_size,
)

# =============================================================================
# SANITIZATION
# =============================================================================

from .sanitizers import (
    sanitize_filename,
    sanitize_label,
    normalize_path,
    PathNormalizer,
)

# =============================================================================
# FILE CONTENT
# =============================================================================

from .file_utils import (
    is_data_uri,
    is_absolute_path,
    decode_data_uri,
    read_file_bytes,
    sniff_mimetype,
    sniff_file_mimetype,
    extension_for_mimetype,
    path_exists,
)

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
    'ValidationResult',
    'PropertyValidator',
    'parse_ini_size',
    'sanitize_filename',
    'sanitize_label',
    'normalize_path',
    'PathNormalizer',
    'is_data_uri',
    'is_absolute_path',
    'decode_data_uri',
    'read_file_bytes',
    'sniff_mimetype',
    'sniff_file_mimetype',
    'extension_for_mimetype',
    'path_exists',
]
