"""
File content utilities for upload ingestion.

Provides content-based MIME sniffing, MIME-to-extension lookup, data URI
decoding, path classification and the platform-neutral existence check used by
the path resolver to detect collisions.

Key Features:
- Content sniffing with ``filetype`` (magic numbers) instead of trusting the
  declared type sent by the client
- Text and empty-content fallbacks when no signature matches
- RFC 2397 data URI decoding (base64 and percent-encoded payloads)
- Case-insensitive existence checks that behave the same on case-sensitive
  and case-insensitive filesystems
"""

import base64
import binascii
import glob
import mimetypes
import os
import re
from typing import Optional, Tuple
from urllib.parse import unquote_to_bytes, urlparse

import filetype
import structlog

from .exceptions import ContentDecodeError

# Get structured logger
logger = structlog.get_logger(__name__)

# Number of leading bytes inspected when sniffing a file on disk
SNIFF_HEADER_SIZE = 8192

EMPTY_MIMETYPE = 'application/x-empty'
TEXT_MIMETYPE = 'text/plain'
BINARY_MIMETYPE = 'application/octet-stream'

# Sniffed types with no meaningful file extension
UNKNOWN_MIMETYPES = frozenset({EMPTY_MIMETYPE, BINARY_MIMETYPE})

_DATA_URI_PATTERN = re.compile(r'^data:', re.IGNORECASE)
_WINDOWS_DRIVE_PATTERN = re.compile(r'^[A-Za-z]:[/\\]')


def is_data_uri(value: object) -> bool:
    """Return True when ``value`` is a string using the ``data:`` scheme."""
    return isinstance(value, str) and bool(_DATA_URI_PATTERN.match(value))


def is_absolute_path(path: str) -> bool:
    """
    Determine if the given path is absolute.

    A path is absolute when it starts with a separator, carries a Windows
    drive letter (``C:\\`` or ``C:/``), or has a URL scheme.

    Args:
        path: File path to classify

    Returns:
        True if the path must not be resolved against a base directory
    """
    if not path:
        return False

    if path[0] in '/\\':
        return True

    if len(path) > 3 and _WINDOWS_DRIVE_PATTERN.match(path):
        return True

    return bool(urlparse(path).scheme)


def decode_data_uri(data_uri: str) -> Tuple[bytes, Optional[str]]:
    """
    Decode a data URI into its byte content.

    Args:
        data_uri: String of the form ``data:[<mediatype>][;base64],<data>``

    Returns:
        Tuple of the decoded bytes and the declared media type (or None)

    Raises:
        ContentDecodeError: If the URI has no payload separator or the
            base64 payload is invalid
    """
    header, separator, payload = data_uri.partition(',')
    if not separator:
        raise ContentDecodeError(
            "File content could not be decoded",
            details={'reason': 'missing payload separator'}
        )

    parameters = header[len('data:'):].split(';')
    media_type = parameters[0].strip() or None
    is_base64 = any(param.strip().lower() == 'base64' for param in parameters[1:])

    if is_base64:
        try:
            content = base64.b64decode(unquote_to_bytes(payload), validate=False)
        except (binascii.Error, ValueError) as e:
            raise ContentDecodeError(
                "File content could not be decoded",
                details={'reason': str(e), 'media_type': media_type}
            )
    else:
        content = unquote_to_bytes(payload)

    return content, media_type


def read_file_bytes(path: str) -> bytes:
    """
    Read the full content of a file.

    Raises:
        ContentDecodeError: If the file cannot be read
    """
    try:
        with open(path, 'rb') as handle:
            return handle.read()
    except OSError as e:
        raise ContentDecodeError(
            "File content could not be decoded",
            source=path,
            details={'os_error': str(e)}
        )


def _fallback_mimetype(content: bytes, truncated: bool = False) -> str:
    if not content:
        return EMPTY_MIMETYPE

    try:
        content.decode('utf-8')
    except UnicodeDecodeError as e:
        # A multi-byte sequence cut by the header boundary is still text
        if truncated and e.reason == 'unexpected end of data' and e.start >= len(content) - 3:
            return TEXT_MIMETYPE
        return BINARY_MIMETYPE

    return TEXT_MIMETYPE


def sniff_mimetype(content: bytes) -> str:
    """
    Detect the MIME type of an in-memory buffer from its content.

    Args:
        content: Raw file content

    Returns:
        The detected MIME type, ``text/plain`` for UTF-8 text,
        ``application/x-empty`` for empty content and
        ``application/octet-stream`` otherwise
    """
    kind = filetype.guess(content) if content else None
    if kind is not None:
        return kind.mime
    return _fallback_mimetype(content)


def sniff_file_mimetype(path: str) -> Optional[str]:
    """
    Detect the MIME type of a file on disk from its leading bytes.

    Returns:
        The detected MIME type, or None when the file cannot be read
    """
    try:
        with open(path, 'rb') as handle:
            header = handle.read(SNIFF_HEADER_SIZE + 1)
    except OSError as e:
        logger.warning("Unable to sniff file content", path=path, error=str(e))
        return None

    truncated = len(header) > SNIFF_HEADER_SIZE
    header = header[:SNIFF_HEADER_SIZE]

    kind = filetype.guess(header) if header else None
    if kind is not None:
        return kind.mime
    return _fallback_mimetype(header, truncated)


def extension_for_mimetype(mimetype: Optional[str]) -> str:
    """
    Map a MIME type to a file extension, without the leading dot.

    Returns:
        The preferred extension, or ``""`` when the type is unknown
    """
    if not mimetype or mimetype in UNKNOWN_MIMETYPES:
        return ''

    kind = filetype.get_type(mime=mimetype)
    if kind is not None:
        return kind.extension

    guessed = mimetypes.guess_extension(mimetype, strict=False)
    return guessed.lstrip('.') if guessed else ''


def path_exists(path: str, case_insensitive: bool = True) -> bool:
    """
    Check whether a file or directory exists.

    On case-sensitive filesystems ``Photo.JPG`` and ``photo.jpg`` are
    different entries; with ``case_insensitive`` they are treated as the same
    name, so every platform reports the same collisions.

    Args:
        path: Absolute path to check
        case_insensitive: Whether to compare names case-insensitively

    Returns:
        True if the path (or a case variant of it) exists
    """
    if os.path.exists(path):
        return True

    if not case_insensitive:
        return False

    directory, name = os.path.split(path)
    if not name:
        return False

    wanted = name.casefold()
    for candidate in glob.glob(os.path.join(glob.escape(directory or '.'), '*')):
        if os.path.basename(candidate).casefold() == wanted:
            return True

    return False


__all__ = [
    'SNIFF_HEADER_SIZE',
    'EMPTY_MIMETYPE',
    'TEXT_MIMETYPE',
    'BINARY_MIMETYPE',
    'is_data_uri',
    'is_absolute_path',
    'decode_data_uri',
    'read_file_bytes',
    'sniff_mimetype',
    'sniff_file_mimetype',
    'extension_for_mimetype',
    'path_exists',
]
