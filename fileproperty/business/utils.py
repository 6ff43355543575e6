"""
Filename Generation and Rename Pattern Utilities

Derives destination filenames for upload candidates:

- Default filenames built from the property label and the current local time
  (``"<label> YYYY-MM-DD HH-MM-SS[.<ext>]"``)
- Unique variants of a filename, suffixed with a short random token, used to
  avoid collisions when overwriting is disabled
- Rename patterns: templates such as ``"{{property}}-{{filename}}.{{extension}}"``
  rendered against a path's components, with caller-supplied token overrides

Supported tokens: ``{{property}}``, ``{{label}}``, ``{{extension}}``,
``{{basename}}`` and ``{{filename}}``.
"""

import posixpath
import re
from datetime import datetime
from typing import Dict, List, Optional, Union
from uuid import uuid4

import structlog

from ..utils.exceptions import RenamePatternError, UnresolvedRenameTokenError
from .models import (
    DerivedRenameArgs,
    FilePropertyConfig,
    PathComponents,
    RenameArgs,
    RenamePatternContext,
    StaticRenameArgs,
)

logger = structlog.get_logger(__name__)

DEFAULT_FILENAME_TIMESTAMP_FORMAT = '%Y-%m-%d %H-%M-%S'

UNIQUE_TOKEN_LENGTH = 13

_LEFTOVER_TOKEN_PATTERN = re.compile(r'\{\{\s*(.*?)\s*\}\}')


def generate_filename(label: str, extension: Optional[str] = None, now: Optional[datetime] = None) -> str:
    """
    Generate a default filename from a property label.

    Args:
        label: Property label
        extension: File extension without the dot; omitted when empty
        now: Timestamp to use, defaults to the current local time

    Returns:
        Filename of the form ``"<label> YYYY-MM-DD HH-MM-SS[.<ext>]"``
    """
    now = now or datetime.now()
    filename = f"{label} {now.strftime(DEFAULT_FILENAME_TIMESTAMP_FORMAT)}"

    if extension:
        return f"{filename}.{extension}"
    return filename


def unique_token() -> str:
    """Return a short random token for unique filenames."""
    return uuid4().hex[:UNIQUE_TOKEN_LENGTH]


def generate_unique_filename(filename: Union[str, PathComponents]) -> str:
    """
    Generate a unique variant of a filename.

    Args:
        filename: Filename, or its parsed components

    Returns:
        ``"<stem>-<token>[.<ext>]"``, keeping the original extension

    Example:
        >>> generate_unique_filename('photo.jpg')  # doctest: +SKIP
        'photo-4f9c2a1be07d3.jpg'
    """
    components = filename if isinstance(filename, PathComponents) else PathComponents.from_path(filename)

    unique = f"{components.filename}-{unique_token()}"
    if components.extension:
        unique = f"{unique}.{components.extension}"

    return unique


def _substitute(pattern: str, tokens: Dict[str, str]) -> str:
    if not tokens:
        return pattern

    # Longest placeholders first, each replaced once in a single pass
    alternation = '|'.join(re.escape(key) for key in sorted(tokens, key=len, reverse=True))
    return re.sub(alternation, lambda match: tokens[match.group(0)], pattern)


def rename_pattern_tokens(
    components: PathComponents,
    prop: FilePropertyConfig,
    args: Optional[RenameArgs] = None
) -> Dict[str, str]:
    """
    Build the token substitutions for a path, overrides taking precedence.

    Raises:
        RenamePatternError: If the path has no basename or filename, or the
            overrides are not rename arguments
    """
    if not components.basename:
        raise RenamePatternError("The basename is missing from the target")

    if not components.filename:
        raise RenamePatternError("The filename is missing from the target")

    tokens = RenamePatternContext.build(components, prop).to_tokens()

    if args is None:
        return tokens

    if not isinstance(args, (StaticRenameArgs, DerivedRenameArgs)):
        raise RenamePatternError(
            "Rename arguments must be StaticRenameArgs or DerivedRenameArgs",
            details={'received': type(args).__name__}
        )

    tokens.update(args.resolve(components, prop))
    return tokens


def render_file_rename_pattern(
    source: str,
    pattern: str,
    prop: FilePropertyConfig,
    args: Optional[RenameArgs] = None
) -> str:
    """
    Render a rename pattern against a path.

    The rendered value replaces the filename component of ``source`` only;
    its directory is kept. Nothing is renamed on disk.

    Args:
        source: Path being renamed
        pattern: Pattern with ``{{token}}`` placeholders
        prop: Property whose ident and label feed ``{{property}}`` and ``{{label}}``
        args: Optional token overrides

    Returns:
        The rendered path

    Raises:
        RenamePatternError: If ``source`` has no basename or filename
        UnresolvedRenameTokenError: If placeholders remain after substitution
    """
    components = PathComponents.from_path(source)
    tokens = rename_pattern_tokens(components, prop, args)

    rendered = _substitute(pattern, tokens)

    if '{{' in rendered:
        leftovers: List[str] = _LEFTOVER_TOKEN_PATTERN.findall(rendered) or [rendered]
        raise UnresolvedRenameTokenError(leftovers, details={'pattern': pattern, 'source': source})

    if components.dirname in ('', '.'):
        return rendered

    return posixpath.join(components.dirname, rendered)


__all__ = [
    'DEFAULT_FILENAME_TIMESTAMP_FORMAT',
    'UNIQUE_TOKEN_LENGTH',
    'generate_filename',
    'unique_token',
    'generate_unique_filename',
    'rename_pattern_tokens',
    'render_file_rename_pattern',
]
