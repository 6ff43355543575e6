"""
Business Package - Upload Ingestion and Storage Path Resolution

Module Organization:
- models: upload descriptors, staged references, policies, targets and the
  FilePropertyConfig Pydantic model
- processors: UploadTreeNormalizer and the upload node classification
- validators: UploadValidationGate (MIME type and size policy)
- utils: default/unique filename generation and rename pattern rendering
- services: FilePropertyService, the save cycle entry point
"""

from .models import (
    UploadErrorCode,
    UploadDescriptor,
    StagedFileReference,
    ValidationPolicy,
    StorageTarget,
    PathComponents,
    RenamePatternContext,
    StaticRenameArgs,
    DerivedRenameArgs,
    FilePropertyConfig,
)
from .processors import (
    LeafUploadNode,
    GroupedUploadNode,
    SubTreeNode,
    classify_upload_node,
    UploadTreeNormalizer,
    collect_descriptors,
    without_missing_files,
)
from .validators import (
    UploadValidationGate,
    max_filesize_allowed_by_platform,
)
from .utils import (
    generate_filename,
    generate_unique_filename,
    render_file_rename_pattern,
)
from .services import FilePropertyService

__all__ = [
    'UploadErrorCode',
    'UploadDescriptor',
    'StagedFileReference',
    'ValidationPolicy',
    'StorageTarget',
    'PathComponents',
    'RenamePatternContext',
    'StaticRenameArgs',
    'DerivedRenameArgs',
    'FilePropertyConfig',
    'LeafUploadNode',
    'GroupedUploadNode',
    'SubTreeNode',
    'classify_upload_node',
    'UploadTreeNormalizer',
    'collect_descriptors',
    'without_missing_files',
    'UploadValidationGate',
    'max_filesize_allowed_by_platform',
    'generate_filename',
    'generate_unique_filename',
    'render_file_rename_pattern',
    'FilePropertyService',
]
