"""
Business Data Models for the File Property Engine

Typed records exchanged between the engine's components, and the Pydantic
configuration model describing one file-valued property.

Model Categories:
    Upload Inputs:
        UploadErrorCode: native transport status codes and their messages
        UploadDescriptor: one natively submitted file, consumed once
        StagedFileReference: pointer to a file staged in the temporary area

    Policy and Targets:
        ValidationPolicy: accepted MIME types and size ceiling
        StorageTarget: absolute and storage-relative destination of a candidate

    Rename Patterns:
        PathComponents: parsed components of a path (dirname, basename, ...)
        RenamePatternContext: default ``{{token}}`` substitutions for a path
        StaticRenameArgs / DerivedRenameArgs: caller-supplied token overrides

    Configuration:
        FilePropertyConfig: Pydantic model of a file property's settings
"""

import posixpath
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..utils.exceptions import ConfigurationError, MalformedUploadError
from ..utils.validators import parse_ini_size

logger = structlog.get_logger(__name__)


# ============================================================================
# UPLOAD INPUTS
# ============================================================================

class UploadErrorCode(IntEnum):
    """Status codes attached to every natively submitted file."""

    OK = 0
    INI_SIZE = 1
    FORM_SIZE = 2
    PARTIAL = 3
    NO_FILE = 4
    NO_TMP_DIR = 6
    CANT_WRITE = 7
    EXTENSION = 8

    @property
    def message(self) -> str:
        return UPLOAD_ERROR_MESSAGES[self]


UPLOAD_ERROR_MESSAGES: Dict[UploadErrorCode, str] = {
    UploadErrorCode.OK: 'There is no error, the file uploaded with success',
    UploadErrorCode.INI_SIZE: 'The uploaded file exceeds the upload_max_filesize directive',
    UploadErrorCode.FORM_SIZE: 'The uploaded file exceeds the MAX_FILE_SIZE directive that was specified in the HTML form',
    UploadErrorCode.PARTIAL: 'The uploaded file was only partially uploaded',
    UploadErrorCode.NO_FILE: 'No file was uploaded',
    UploadErrorCode.NO_TMP_DIR: 'Missing a temporary folder',
    UploadErrorCode.CANT_WRITE: 'Failed to write file to disk',
    UploadErrorCode.EXTENSION: 'A server extension stopped the file upload',
}

DESCRIPTOR_KEYS = ('tmp_name', 'name', 'type', 'size', 'error')


def _coerce_error_code(value: Any) -> UploadErrorCode:
    try:
        return UploadErrorCode(int(value))
    except (TypeError, ValueError):
        raise MalformedUploadError(
            f"Invalid upload error code: {value!r}",
            details={'error': repr(value)}
        )


def _coerce_size(value: Any) -> Optional[int]:
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise MalformedUploadError(
            f"Invalid upload size: {value!r}",
            details={'size': repr(value)}
        )


@dataclass(frozen=True)
class UploadDescriptor:
    """
    One natively submitted file.

    Attributes:
        temporary_path: Location of the uploaded bytes, moved away on save
        original_name: Client-side filename, if sent
        declared_type: Client-declared MIME type; never trusted for validation
        declared_size: Client-declared size in bytes
        error_code: Transport status of the submission
    """

    temporary_path: str
    original_name: Optional[str] = None
    declared_type: Optional[str] = None
    declared_size: Optional[int] = None
    error_code: UploadErrorCode = UploadErrorCode.OK

    @classmethod
    def from_mapping(cls, entry: Mapping[str, Any]) -> 'UploadDescriptor':
        """
        Build a descriptor from a transport leaf ``{tmp_name, name, type, size, error}``.

        Raises:
            MalformedUploadError: If ``tmp_name`` or ``error`` is missing or invalid
        """
        missing = [key for key in ('tmp_name', 'error') if entry.get(key) is None]
        if missing:
            raise MalformedUploadError(
                "Upload descriptor is missing required keys",
                missing_keys=missing
            )

        name = entry.get('name')
        return cls(
            temporary_path=str(entry['tmp_name']),
            original_name=str(name) if name not in (None, '') else None,
            declared_type=entry.get('type') or None,
            declared_size=_coerce_size(entry.get('size')),
            error_code=_coerce_error_code(entry['error']),
        )

    @property
    def is_ok(self) -> bool:
        return self.error_code == UploadErrorCode.OK

    @property
    def has_file(self) -> bool:
        return self.error_code != UploadErrorCode.NO_FILE

    def to_dict(self) -> Dict[str, Any]:
        return {
            'tmp_name': self.temporary_path,
            'name': self.original_name,
            'type': self.declared_type,
            'size': self.declared_size,
            'error': int(self.error_code),
        }


@dataclass(frozen=True)
class StagedFileReference:
    """A file previously staged under ``reference_id`` in the staging directory."""

    reference_id: str
    original_name: Optional[str] = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> 'StagedFileReference':
        """
        Build a reference from its mapping form ``{"id": ..., "name": ...}``.

        Raises:
            MalformedUploadError: If either key is missing
        """
        missing = [key for key in ('id', 'name') if key not in payload or payload[key] is None]
        if missing:
            raise MalformedUploadError(
                'Data payload MUST contain each of the keys "id" and "name"',
                missing_keys=missing
            )

        reference_id = str(payload['id'])
        if not reference_id or reference_id != posixpath.basename(reference_id.replace('\\', '/')):
            raise MalformedUploadError(
                "Staged file identifier must be a bare file name",
                details={'id': reference_id}
            )

        name = payload['name']
        return cls(reference_id=reference_id, original_name=str(name) if name else None)

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {'id': self.reference_id, 'name': self.original_name}


DataPayload = Union[StagedFileReference, str]


# ============================================================================
# POLICY AND TARGETS
# ============================================================================

@dataclass(frozen=True)
class ValidationPolicy:
    """
    Accepted MIME types and size ceiling for one save operation.

    An empty ``accepted_mimetypes`` accepts any type. A ``max_filesize`` of 0
    accepts any size; None means the platform ceilings apply.
    """

    accepted_mimetypes: FrozenSet[str] = frozenset()
    max_filesize: Optional[int] = None

    @classmethod
    def create(
        cls,
        accepted_mimetypes: Optional[Iterable[str]] = None,
        max_filesize: Optional[Union[int, str]] = None
    ) -> 'ValidationPolicy':
        """Build a policy, parsing ``max_filesize`` from ini notation when given as a string."""
        return cls(
            accepted_mimetypes=frozenset(accepted_mimetypes or ()),
            max_filesize=None if max_filesize is None else parse_ini_size(max_filesize),
        )


@dataclass(frozen=True)
class StorageTarget:
    """Destination of one candidate: absolute path and path relative to the base root."""

    absolute_path: str
    relative_path: str


# ============================================================================
# RENAME PATTERNS
# ============================================================================

@dataclass(frozen=True)
class PathComponents:
    """
    Parsed components of a path.

    For ``uploads/photo.jpg``: dirname ``uploads``, basename ``photo.jpg``,
    filename ``photo`` and extension ``jpg``. A path without a dot in its
    basename has an empty extension.
    """

    dirname: str
    basename: str
    filename: str
    extension: str = ''

    @classmethod
    def from_path(cls, path: str) -> 'PathComponents':
        unified = path.replace('\\', '/').rstrip('/')
        dirname, basename = posixpath.split(unified)

        if '.' in basename:
            filename, extension = basename.rsplit('.', 1)
        else:
            filename, extension = basename, ''

        return cls(dirname=dirname, basename=basename, filename=filename, extension=extension)

    def to_dict(self) -> Dict[str, str]:
        return {
            'dirname': self.dirname,
            'basename': self.basename,
            'filename': self.filename,
            'extension': self.extension,
        }


def as_token(key: str) -> str:
    """Wrap ``key`` as a ``{{key}}`` placeholder unless it already is one."""
    if key.startswith('{{') and key.endswith('}}'):
        return key
    return '{{' + key + '}}'


@dataclass(frozen=True)
class RenamePatternContext:
    """Default token substitutions derived from the path being renamed."""

    property: str
    label: str
    basename: str
    filename: str
    extension: str

    @classmethod
    def build(cls, components: PathComponents, prop: 'FilePropertyConfig') -> 'RenamePatternContext':
        return cls(
            property=prop.ident,
            label=prop.label,
            basename=components.basename,
            filename=components.filename,
            extension=components.extension,
        )

    def to_tokens(self) -> Dict[str, str]:
        return {
            '{{property}}': self.property,
            '{{label}}': self.label,
            '{{extension}}': self.extension,
            '{{basename}}': self.basename,
            '{{filename}}': self.filename,
        }


@dataclass(frozen=True)
class StaticRenameArgs:
    """Fixed token overrides, keyed with or without the surrounding braces."""

    tokens: Mapping[str, Any] = field(default_factory=dict)

    def resolve(self, components: PathComponents, prop: 'FilePropertyConfig') -> Dict[str, str]:
        return {as_token(key): str(value) for key, value in self.tokens.items()}


@dataclass(frozen=True)
class DerivedRenameArgs:
    """Token overrides computed from the parsed path and the property."""

    derive: Callable[[PathComponents, 'FilePropertyConfig'], Mapping[str, Any]]

    def resolve(self, components: PathComponents, prop: 'FilePropertyConfig') -> Dict[str, str]:
        derived = self.derive(components, prop)
        if not isinstance(derived, Mapping):
            raise ConfigurationError(
                "Rename argument derivation must return a mapping",
                key='args',
                details={'received': type(derived).__name__}
            )
        return {as_token(key): str(value) for key, value in derived.items()}


RenameArgs = Union[StaticRenameArgs, DerivedRenameArgs]


# ============================================================================
# CONFIGURATION
# ============================================================================

class FilePropertyConfig(BaseModel):
    """
    Settings of one file-valued property.

    Example:
        prop = FilePropertyConfig(
            ident='attachment',
            label='Attachment',
            upload_path='uploads/attachments',
            accepted_mimetypes=['image/png', 'image/jpeg'],
            max_filesize='2M'
        )
    """

    model_config = ConfigDict(
        validate_assignment=True,
        str_strip_whitespace=True,
        extra='forbid',
    )

    ident: str = Field(..., min_length=1, description="Property identifier, also the upload field name")
    label: str = Field(default='', description="Human-readable label used in default filenames")
    multiple: bool = Field(default=False, description="Whether the property holds a list of files")
    l10n: bool = Field(default=False, description="Whether the property holds one value per locale")
    locales: List[str] = Field(default_factory=list, description="Locales saved when l10n is enabled")
    public_access: bool = Field(default=False, description="Store under the public root instead of the private one")
    upload_path: Optional[str] = Field(
        default=None,
        description="Upload directory relative to the storage root, None for the configured default"
    )
    overwrite: bool = Field(default=False, description="Replace existing files instead of renaming")
    accepted_mimetypes: List[str] = Field(default_factory=list, description="Accepted MIME types, empty for any")
    max_filesize: Optional[int] = Field(default=None, description="Size ceiling in bytes, 0 for none")
    case_sensitive_exists: bool = Field(default=False, description="Use strict case-sensitive collision checks")

    @field_validator('upload_path')
    @classmethod
    def enforce_trailing_separator(cls, v):
        """Ensure the upload path ends with exactly one separator."""
        if v is None:
            return v
        v = v.replace('\\', '/').rstrip('/')
        return f"{v}/" if v else ''

    @field_validator('max_filesize', mode='before')
    @classmethod
    def parse_max_filesize(cls, v):
        """Accept ini notation (``"2M"``) for the size ceiling."""
        if v is None:
            return v
        try:
            size = parse_ini_size(v)
        except ConfigurationError as e:
            raise ValueError(e.message)
        if size < 0:
            raise ValueError("max_filesize must not be negative")
        return size

    @model_validator(mode='before')
    @classmethod
    def default_label(cls, data):
        """Fall back to the identifier when no label is configured."""
        if isinstance(data, dict) and not data.get('label') and data.get('ident'):
            data = dict(data, label=data['ident'])
        return data

    @model_validator(mode='after')
    def require_locales_when_localized(self):
        """A localized property must name the locales it saves."""
        if self.l10n and not self.locales:
            raise ValueError("locales must not be empty when l10n is enabled")
        return self

    def validation_policy(self) -> ValidationPolicy:
        return ValidationPolicy(
            accepted_mimetypes=frozenset(self.accepted_mimetypes),
            max_filesize=self.max_filesize,
        )


__all__ = [
    'UploadErrorCode',
    'UPLOAD_ERROR_MESSAGES',
    'DESCRIPTOR_KEYS',
    'UploadDescriptor',
    'StagedFileReference',
    'DataPayload',
    'ValidationPolicy',
    'StorageTarget',
    'PathComponents',
    'RenamePatternContext',
    'StaticRenameArgs',
    'DerivedRenameArgs',
    'RenameArgs',
    'as_token',
    'FilePropertyConfig',
]
