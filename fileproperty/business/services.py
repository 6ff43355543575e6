"""
File Property Service - Upload Ingestion and Storage Path Resolution

Entry point of the engine. A FilePropertyService is bound to one file-valued
property and turns whatever the caller received for it into storage-relative
paths ready to be persisted:

1. Native uploads for the property are extracted from the raw upload tree
   (descriptors signalling "no file" are dropped).
2. When none of them yields a stored file, the current value is processed
   instead: data URIs and staged file references are decoded and stored,
   already-stored paths are kept as they are.
3. Every candidate goes through the UploadValidationGate before any byte
   is written.
4. Survivors are written under the property's upload directory, on a
   collision-free target.
5. The collected paths are reduced to a scalar or a list according to the
   property's cardinality (per locale for localized properties).

Error handling:
- MalformedUploadError and DirectoryNotWritableError abort the whole call.
- ContentUnavailableError aborts one candidate; save() logs it and continues.
- Policy rejections and move/write failures yield no path for the candidate.

Concurrency:
    The collision loop checks for an existing file and writes afterwards.
    Two processes saving into the same directory can both pick the same
    unused name before either writes; the later write wins. Services also
    cache the sniffed MIME type and size of the candidate being processed and
    must not be shared between concurrent save operations.
"""

import os
import shutil
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import structlog

from ..config.settings import BaseConfig, get_config
from ..monitoring.metrics import record_candidate, stored_bytes_histogram
from ..utils.exceptions import ContentNotFoundError, ContentUnavailableError, DirectoryNotWritableError, MalformedUploadError
from ..utils.file_utils import (
    decode_data_uri,
    extension_for_mimetype,
    is_absolute_path,
    is_data_uri,
    path_exists,
    read_file_bytes,
    sniff_file_mimetype,
)
from ..utils.sanitizers import PathNormalizer, sanitize_filename, sanitize_label
from ..utils.validators import PropertyValidator
from .models import FilePropertyConfig, RenameArgs, StagedFileReference, StorageTarget, UploadDescriptor
from .processors import UploadTreeNormalizer, collect_descriptors, without_missing_files
from .utils import generate_filename, generate_unique_filename, render_file_rename_pattern
from .validators import VALIDATION_METHODS, UploadValidationGate, max_filesize_allowed_by_platform

logger = structlog.get_logger(__name__)

UPLOAD_DIRECTORY_MODE = 0o777


def _is_numeric(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class FilePropertyService:
    """
    Upload ingestion and storage path resolution for one file property.

    Attributes:
        prop: Property configuration
        config: Engine configuration providing storage roots and ceilings
        validator: Validation sink receiving policy failures
        path_normalizer: Memoizing normalizer owned by this service
        gate: Validation gate holding the current candidate's type and size
    """

    def __init__(
        self,
        prop: FilePropertyConfig,
        config: Optional[BaseConfig] = None,
        validator: Optional[Any] = None,
        path_normalizer: Optional[PathNormalizer] = None
    ):
        self.prop = prop
        self.config = config or get_config()
        self.validator = validator if validator is not None else PropertyValidator(prop.ident)
        self.path_normalizer = path_normalizer or PathNormalizer(self.config.PATH_CACHE_SIZE)
        self.tree_normalizer = UploadTreeNormalizer()
        self.gate = UploadValidationGate(
            prop.validation_policy(),
            self.validator,
            post_max_size=self.config.POST_MAX_SIZE,
            upload_max_filesize=self.config.UPLOAD_MAX_FILESIZE
        )

    # ------------------------------------------------------------------
    # Current candidate
    # ------------------------------------------------------------------

    def refresh_policy(self) -> None:
        """Load the property's current accepted types and size ceiling into the gate."""
        self.gate.policy = self.prop.validation_policy()

    @property
    def mimetype(self) -> Optional[str]:
        """Sniffed MIME type of the candidate being processed."""
        return self.gate.mimetype

    @property
    def filesize(self) -> Optional[int]:
        """Size in bytes of the candidate being processed."""
        return self.gate.filesize

    @property
    def max_filesize(self) -> int:
        self.refresh_policy()
        return self.gate.effective_max_filesize

    def max_filesize_allowed_by_platform(self) -> Tuple[int, str]:
        """Lesser of the configured platform ceilings and the directive it comes from."""
        return max_filesize_allowed_by_platform(self.config.POST_MAX_SIZE, self.config.UPLOAD_MAX_FILESIZE)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def base_path(self) -> str:
        """Active storage root, with a trailing separator."""
        root = self.config.PUBLIC_PATH if self.prop.public_access else self.config.BASE_PATH
        return os.path.join(root, '')

    def upload_directory(self) -> str:
        """Absolute upload directory: the active root plus the normalized upload path."""
        upload_path = self.prop.upload_path
        if upload_path is None:
            upload_path = self.config.DEFAULT_UPLOAD_PATH
        relative = self.path_normalizer.normalize(upload_path).lstrip('/')
        directory = self.base_path()
        if relative:
            directory = os.path.join(directory, relative, '')
        return directory

    def absolute_path(self, path: str) -> str:
        if is_absolute_path(path):
            return path
        return os.path.join(self.base_path(), path)

    def relative_path(self, absolute_path: str) -> str:
        """Strip the active storage root from ``absolute_path``."""
        base = self.base_path()
        if absolute_path.startswith(base):
            return absolute_path[len(base):]
        return absolute_path

    def file_exists(self, path: str, case_insensitive: Optional[bool] = None) -> bool:
        """
        Check whether a file exists, relative paths resolving against the active root.

        Args:
            path: Absolute or storage-relative path
            case_insensitive: Override the property's existence mode

        Returns:
            True if the file, or a case variant of it, exists
        """
        if case_insensitive is None:
            case_insensitive = not self.prop.case_sensitive_exists
        return path_exists(self.absolute_path(path), case_insensitive)

    def upload_target(self, filename: Optional[str] = None) -> StorageTarget:
        """
        Resolve a collision-free destination for a new file.

        Creates the upload directory when missing. An explicit filename is
        sanitized; without one (or when nothing survives sanitization) a
        default filename is generated. When the target exists, it is returned
        as-is if the property overwrites files, otherwise unique variants are
        tried until an unused name is found.

        Args:
            filename: Desired filename

        Returns:
            The absolute and storage-relative destination

        Raises:
            DirectoryNotWritableError: If the upload directory cannot be written
        """
        directory = self.upload_directory()

        if not os.path.exists(directory):
            logger.debug("Upload directory does not exist, creating it", directory=directory)
            try:
                os.makedirs(directory, mode=UPLOAD_DIRECTORY_MODE, exist_ok=True)
            except OSError as e:
                logger.warning("Unable to create upload directory", directory=directory, error=str(e))

        if not os.path.isdir(directory) or not os.access(directory, os.W_OK):
            raise DirectoryNotWritableError(directory)

        name = sanitize_filename(filename) if filename else ''
        if not name:
            name = self.generate_filename()

        target = os.path.join(directory, name)

        if self.file_exists(target):
            if self.prop.overwrite:
                logger.debug("Overwriting existing file", target=target)
                return self._storage_target(target)

            target = os.path.join(directory, generate_unique_filename(name))
            while self.file_exists(target):
                target = os.path.join(directory, generate_unique_filename(name))

        return self._storage_target(target)

    def _storage_target(self, absolute_path: str) -> StorageTarget:
        return StorageTarget(absolute_path=absolute_path, relative_path=self.relative_path(absolute_path))

    # ------------------------------------------------------------------
    # Filenames
    # ------------------------------------------------------------------

    def generate_filename(self, now: Optional[datetime] = None) -> str:
        """Default filename from the property label and the current candidate's type."""
        label = sanitize_label(self.prop.label) or sanitize_filename(self.prop.ident)
        return generate_filename(label, self.generate_extension(), now)

    def generate_extension(self, path: Optional[str] = None) -> str:
        """
        Extension matching the MIME type of ``path``, or of the current candidate.

        Returns:
            The extension without its dot, ``""`` when unknown
        """
        mimetype = self.mimetype if path is None else self.mimetype_for(path)
        return extension_for_mimetype(mimetype)

    def mimetype_for(self, path: str) -> Optional[str]:
        """Sniff the MIME type of a stored file; None when it does not exist."""
        if not self.file_exists(path):
            return None
        return sniff_file_mimetype(self.absolute_path(path))

    def render_file_rename_pattern(self, source: str, pattern: str, args: Optional[RenameArgs] = None) -> str:
        """Render ``pattern`` against ``source`` for this property. See business.utils."""
        return render_file_rename_pattern(source, pattern, self.prop, args)

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    def uploaded_files(self, tree: Optional[Mapping[str, Any]]) -> Union[List[UploadDescriptor], Dict[Any, Any]]:
        """Normalized native uploads submitted for this property, "no file" entries removed."""
        if not tree:
            return []
        return self.tree_normalizer.parse(tree, without_missing_files, self.prop.ident)

    def file_upload(self, file: Union[UploadDescriptor, Mapping[str, Any]]) -> Optional[str]:
        """
        Store one natively uploaded file.

        Args:
            file: Descriptor, or its transport mapping

        Returns:
            Storage-relative path, or None when the candidate is not stored

        Raises:
            MalformedUploadError: If the transport mapping is invalid
            DirectoryNotWritableError: If the upload directory cannot be written
        """
        descriptor = file if isinstance(file, UploadDescriptor) else UploadDescriptor.from_mapping(file)
        self.refresh_policy()

        if not descriptor.is_ok:
            logger.warning(
                "Upload error on file",
                filename=descriptor.original_name,
                error_code=int(descriptor.error_code),
                error=descriptor.error_code.message
            )
            record_candidate('file', 'transport_error')
            return None

        if not os.path.exists(descriptor.temporary_path):
            logger.warning("Uploaded file does not exist", temporary_path=descriptor.temporary_path)
            record_candidate('file', 'missing')
            return None

        if not self.gate.check_file(descriptor.temporary_path):
            record_candidate('file', 'rejected')
            return None

        target = self.upload_target(descriptor.original_name)

        try:
            shutil.move(descriptor.temporary_path, target.absolute_path)
        except OSError as e:
            logger.warning(
                "Error moving uploaded file",
                temporary_path=descriptor.temporary_path,
                target=target.absolute_path,
                error=str(e)
            )
            record_candidate('file', 'failed')
            return None

        stored_bytes_histogram.labels(source='file').observe(self.filesize or 0)
        record_candidate('file', 'stored')
        logger.info("File uploaded successfully", target=target.absolute_path, size=self.filesize)

        return target.relative_path

    def data_upload(self, data: Union[StagedFileReference, Mapping[str, Any], str]) -> Optional[str]:
        """
        Store the content of a data URI, a staged file or a readable path.

        Staged files are deleted once read and keep their original name;
        other payloads get a default filename.

        Args:
            data: Staged file reference (or its ``{"id", "name"}`` mapping),
                data URI, or file path

        Returns:
            Storage-relative path, or None when the candidate is not stored

        Raises:
            MalformedUploadError: If the payload has the wrong shape
            ContentNotFoundError: If the staged file does not exist
            ContentDecodeError: If the content cannot be decoded or read
            DirectoryNotWritableError: If the upload directory cannot be written
        """
        self.refresh_policy()
        filename = None

        if isinstance(data, Mapping):
            data = StagedFileReference.from_mapping(data)

        if isinstance(data, StagedFileReference):
            content = self._consume_staged_file(data)
            filename = data.original_name
        elif isinstance(data, str) and is_data_uri(data):
            content, _ = decode_data_uri(data)
        elif isinstance(data, str) and data:
            content = read_file_bytes(self.absolute_path(data))
        else:
            raise MalformedUploadError(
                "Data payload must be a data URI, a file path or a staged file reference",
                details={'received': type(data).__name__}
            )

        if not self.gate.check_bytes(content):
            record_candidate('data', 'rejected')
            return None

        target = self.upload_target(filename)

        try:
            with open(target.absolute_path, 'wb') as handle:
                handle.write(content)
        except OSError as e:
            logger.warning("Failed to write file", target=target.absolute_path, error=str(e))
            record_candidate('data', 'failed')
            return None

        stored_bytes_histogram.labels(source='data').observe(len(content))
        record_candidate('data', 'stored')
        logger.info("Data payload stored", target=target.absolute_path, size=len(content))

        return target.relative_path

    def _consume_staged_file(self, reference: StagedFileReference) -> bytes:
        staged_path = os.path.join(self.config.UPLOAD_STAGING_DIR, reference.reference_id)
        if not os.path.isfile(staged_path):
            raise ContentNotFoundError(reference.reference_id)

        content = read_file_bytes(staged_path)

        try:
            os.remove(staged_path)
        except OSError as e:
            logger.warning("Unable to delete staged file", path=staged_path, error=str(e))

        return content

    # ------------------------------------------------------------------
    # Save cycle
    # ------------------------------------------------------------------

    def save(self, value: Any, uploaded_files: Optional[Mapping[str, Any]] = None) -> Any:
        """
        Process the property's uploads and return the value to persist.

        Args:
            value: Current value: stored path(s), data URI(s), staged file
                reference(s), or a mapping of locale to such values for
                localized properties
            uploaded_files: Raw upload tree from the transport layer

        Returns:
            A storage-relative path (or None), a list of them for multiple
            properties, or a mapping of locale to either for localized ones

        Raises:
            MalformedUploadError: If the uploads or the value are malformed
            DirectoryNotWritableError: If the upload directory cannot be written
        """
        uploaded = self.uploaded_files(uploaded_files)

        if not self.prop.l10n:
            parsed: List[str] = []
            if uploaded:
                parsed = self.save_file_uploads(uploaded)
            if not parsed:
                parsed = self.save_data_uploads(value)
            return self.parse_saved_values(parsed, self._without_payloads(value))

        if value is None:
            values: Dict[str, Any] = {}
        elif isinstance(value, Mapping):
            values = dict(value)
        else:
            raise MalformedUploadError(
                "Localized value must be a mapping of locale to value",
                details={'property': self.prop.ident, 'received': type(value).__name__}
            )

        for locale in self.prop.locales:
            if locale not in values:
                values[locale] = [] if self.prop.multiple else ''

            parsed = []
            if isinstance(uploaded, Mapping) and uploaded.get(locale):
                parsed = self.save_file_uploads(uploaded[locale])
            if not parsed:
                parsed = self.save_data_uploads(values[locale])

            values[locale] = self.parse_saved_values(parsed, self._without_payloads(values[locale]))

        return values

    def save_file_uploads(self, files: Any) -> List[str]:
        """
        Store native uploads.

        Args:
            files: A descriptor, a transport leaf mapping, a list of
                descriptors or a normalized tree

        Returns:
            Storage-relative paths of the stored files, in order
        """
        if isinstance(files, Mapping) and 'error' in files:
            files = [UploadDescriptor.from_mapping(files)]

        parsed = []
        for descriptor in collect_descriptors(files):
            path = self.file_upload(descriptor)
            if path is not None:
                parsed.append(path)

        return parsed

    def save_data_uploads(self, values: Any) -> List[str]:
        """
        Store data URIs and staged files, and carry over already-stored paths.

        Already-stored paths are returned unchanged without touching the
        filesystem. Candidates whose content is unavailable are logged and
        skipped.

        Args:
            values: One or more data URIs, staged file references or stored paths

        Returns:
            Storage-relative paths, in order
        """
        if not isinstance(values, (list, tuple)):
            values = [values]

        parsed = []
        for value in values:
            if self._is_staged_reference(value) or is_data_uri(value):
                try:
                    path = self.data_upload(value)
                except ContentUnavailableError as e:
                    logger.warning(
                        "Skipping upload candidate with unavailable content",
                        property=self.prop.ident,
                        error=e.message,
                        correlation_id=e.correlation_id
                    )
                    record_candidate('data', 'unavailable')
                    continue
                if path is not None:
                    parsed.append(path)
            elif isinstance(value, str) and value:
                record_candidate('passthrough', 'kept')
                parsed.append(value)

        return parsed

    @staticmethod
    def _is_staged_reference(value: Any) -> bool:
        return isinstance(value, StagedFileReference) or (isinstance(value, Mapping) and 'id' in value)

    def _is_payload(self, value: Any) -> bool:
        return self._is_staged_reference(value) or is_data_uri(value)

    def _without_payloads(self, value: Any) -> Any:
        """Current value minus its data URIs and staged references, which are never persisted as paths."""
        if isinstance(value, (list, tuple)):
            return [item for item in value if not self._is_payload(item)]
        if self._is_payload(value):
            return None
        return value

    def parse_saved_values(self, saved: List[Any], default: Any = None) -> Any:
        """
        Reduce saved paths to the property's cardinality.

        Falls back to ``default`` when nothing was saved. Multiple properties
        always get a list (empty for an empty value); single properties get
        the first element of a list.
        """
        values = default if not saved else saved

        if self.prop.multiple:
            if not isinstance(values, (list, tuple)):
                values = [] if not values and not _is_numeric(values) else [values]
            return list(values)

        if isinstance(values, (list, tuple)):
            return values[0] if values else None

        return values

    # ------------------------------------------------------------------
    # Validation of stored values
    # ------------------------------------------------------------------

    def validation_methods(self) -> List[str]:
        return list(VALIDATION_METHODS)

    def validate(self, value: Any) -> bool:
        """
        Validate already-stored file(s) against the property's policy.

        Missing files are skipped. Failures are reported to the validation sink.

        Args:
            value: Stored path, list of paths, or mapping of locale to either

        Returns:
            True if every existing file passes every rule
        """
        self.refresh_policy()
        valid = True

        for path in self._stored_paths(value):
            if not self.file_exists(path):
                continue
            if not self.gate.inspect_file(self.absolute_path(path)):
                continue
            valid = self.gate.validate() and valid

        self.gate.reset()
        return valid

    def _stored_paths(self, value: Any) -> List[str]:
        if not value:
            return []
        if isinstance(value, str):
            return [value]
        if isinstance(value, Mapping):
            paths: List[str] = []
            for item in value.values():
                paths.extend(self._stored_paths(item))
            return paths
        if isinstance(value, (list, tuple)):
            return [item for item in value if isinstance(item, str) and item]
        return []


__all__ = [
    'UPLOAD_DIRECTORY_MODE',
    'FilePropertyService',
]
