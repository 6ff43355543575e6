"""
Filename and path sanitization utilities for the file property engine.

Provides the filename sanitizer applied to every caller-supplied name before it
reaches the storage backend, and the path normalizer used to canonicalize the
configured upload directories.

Key Features:
- Blocklist-based filename sanitization that never produces hidden files
- Pure path normalization collapsing ``.`` and ``..`` segments
- Instance-owned, size-bounded LRU memoization of normalized paths

Both sanitize_filename and normalize_path are idempotent: applying them to
their own output returns the same value.
"""

from collections import OrderedDict
from typing import Dict, Optional

import structlog

# Get structured logger
logger = structlog.get_logger(__name__)

# Characters replaced by an underscore in stored filenames
FILENAME_BLOCKLIST = ('/', '\\', '\0', '*', ':', '?', '"', '<', '>', '|', '#', '&', '!', '`', ' ')

DEFAULT_PATH_CACHE_SIZE = 256

_FILENAME_TRANSLATION: Dict[int, str] = {ord(char): '_' for char in FILENAME_BLOCKLIST}
_LABEL_TRANSLATION: Dict[int, str] = {ord(char): '_' for char in FILENAME_BLOCKLIST if char != ' '}


def sanitize_filename(filename: str) -> str:
    """
    Sanitize a filename by replacing blocklisted characters and leading dots.

    Every character of FILENAME_BLOCKLIST (path separators, NUL, shell and
    URL metacharacters, backtick and space) is replaced with ``_``, then any
    leading run of dots is stripped so the stored file is never hidden.

    Args:
        filename: Filename to sanitize

    Returns:
        Sanitized filename, possibly empty
    """
    sanitized = filename.translate(_FILENAME_TRANSLATION)
    return sanitized.lstrip('.')


def sanitize_label(label: str) -> str:
    """
    Sanitize a property label for use as the stem of a default filename.

    Applies the filename blocklist except for spaces, which stay readable in
    generated names, and strips leading dots.

    Args:
        label: Property label

    Returns:
        Sanitized label, possibly empty
    """
    return label.translate(_LABEL_TRANSLATION).lstrip('.')


def normalize_path(path: str) -> str:
    """
    Normalize a path string so that it can be checked safely.

    Backslashes are treated as separators. Empty and ``.`` segments are
    dropped and each ``..`` removes the previous segment; a ``..`` with no
    segment left to remove is discarded, so the result never climbs above
    its starting point. A single leading ``/`` is kept when the input had one.

    Args:
        path: Path to normalize

    Returns:
        The canonical form of ``path``; ``""`` when nothing remains of a
        relative path, ``"/"`` when nothing remains of an absolute one

    Example:
        >>> normalize_path('a/b/../c')
        'a/c'
        >>> normalize_path('/a/../b')
        '/b'
    """
    unified = path.replace('\\', '/')

    segments = []
    for segment in unified.split('/'):
        if segment in ('', '.'):
            continue
        if segment == '..':
            if segments:
                segments.pop()
            continue
        segments.append(segment)

    normalized = '/'.join(segments)
    if unified.startswith('/'):
        normalized = '/' + normalized

    return normalized


class PathNormalizer:
    """
    Memoizing front for normalize_path.

    Each service owns its own normalizer; entries are evicted in least
    recently used order once ``max_size`` paths are cached. A ``max_size``
    of 0 disables the cache entirely.
    """

    def __init__(self, max_size: int = DEFAULT_PATH_CACHE_SIZE):
        if max_size < 0:
            raise ValueError("max_size must be zero or a positive integer")
        self.max_size = max_size
        self._cache: 'OrderedDict[str, str]' = OrderedDict()
        self.hits = 0
        self.misses = 0

    def normalize(self, path: str) -> str:
        """Return the normalized form of ``path``, from the cache when possible."""
        cached = self._cache.get(path)
        if cached is not None:
            self._cache.move_to_end(path)
            self.hits += 1
            return cached

        self.misses += 1
        normalized = normalize_path(path)

        if self.max_size:
            self._cache[path] = normalized
            if len(self._cache) > self.max_size:
                evicted, _ = self._cache.popitem(last=False)
                logger.debug("Path normalization cache eviction", evicted=evicted)

        return normalized

    def lookup(self, path: str) -> Optional[str]:
        return self._cache.get(path)

    def clear(self) -> None:
        self._cache.clear()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._cache)


__all__ = [
    'FILENAME_BLOCKLIST',
    'DEFAULT_PATH_CACHE_SIZE',
    'sanitize_filename',
    'normalize_path',
    'PathNormalizer',
]
