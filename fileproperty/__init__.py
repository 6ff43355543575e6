"""
File Property Storage
=====================

Upload ingestion and storage path resolution for file-valued attributes.

Given native multi-file form submissions, inline data URIs or references to
staged temporary files, the engine normalizes them into upload candidates,
validates each against a MIME type and size policy, and stores the survivors
under collision-free names, returning storage-relative paths to persist.

Usage:
    from fileproperty import FilePropertyConfig, FilePropertyService
    from fileproperty.config import get_config

    prop = FilePropertyConfig(ident='attachment', accepted_mimetypes=['image/png'])
    service = FilePropertyService(prop, get_config('development'))
    value = service.save(current_value, uploaded_files)
"""

__version__ = "1.0.0"
__title__ = "file-property-storage"

from .business import (
    FilePropertyConfig,
    FilePropertyService,
    UploadDescriptor,
    UploadErrorCode,
    StagedFileReference,
    StaticRenameArgs,
    DerivedRenameArgs,
    UploadTreeNormalizer,
)

__all__ = [
    '__version__',
    'FilePropertyConfig',
    'FilePropertyService',
    'UploadDescriptor',
    'UploadErrorCode',
    'StagedFileReference',
    'StaticRenameArgs',
    'DerivedRenameArgs',
    'UploadTreeNormalizer',
]
