"""
Upload Validation Gate

Decides whether an upload candidate may be written to the storage backend.
The gate sniffs the candidate's MIME type from its content, measures its size
and checks both against the property's ValidationPolicy. Failures are reported
to a validation sink under the rule that failed (``acceptedMimetypes`` or
``maxFilesize``) and never raise.

The sniffed type and size are cached on the gate for the current candidate so
callers can inspect them (for instance to derive a filename extension); they
are reset before the next candidate is inspected.
"""

import os
from typing import Any, Optional, Tuple, Union

import structlog

from ..monitoring.metrics import record_validation
from ..utils.file_utils import sniff_file_mimetype, sniff_mimetype
from ..utils.validators import PropertyValidator, parse_ini_size
from .models import ValidationPolicy

logger = structlog.get_logger(__name__)

ACCEPTED_MIMETYPES_RULE = 'acceptedMimetypes'
MAX_FILESIZE_RULE = 'maxFilesize'

VALIDATION_METHODS = (ACCEPTED_MIMETYPES_RULE, MAX_FILESIZE_RULE)

ACCEPTED_MIMETYPES_MESSAGE = 'Accepted mimetypes error'
MAX_FILESIZE_MESSAGE = 'Max filesize error'


def max_filesize_allowed_by_platform(
    post_max_size: Union[int, str],
    upload_max_filesize: Union[int, str]
) -> Tuple[int, str]:
    """
    Resolve the platform-wide upload ceiling.

    Args:
        post_max_size: Request body ceiling, in bytes or ini notation
        upload_max_filesize: Per-file ceiling, in bytes or ini notation

    Returns:
        Tuple of the lesser ceiling in bytes and the name of the directive
        it comes from (``post_max_size`` or ``upload_max_filesize``)
    """
    post_bytes = parse_ini_size(post_max_size)
    upload_bytes = parse_ini_size(upload_max_filesize)

    if post_bytes < upload_bytes:
        return post_bytes, 'post_max_size'
    return upload_bytes, 'upload_max_filesize'


class UploadValidationGate:
    """
    Per-candidate MIME type and size validation.

    Attributes:
        policy: Accepted types and size ceiling
        sink: Any object exposing ``error(message, key)``
        mimetype: Sniffed MIME type of the current candidate
        filesize: Size in bytes of the current candidate
    """

    def __init__(
        self,
        policy: ValidationPolicy,
        sink: Optional[Any] = None,
        post_max_size: Union[int, str] = '8M',
        upload_max_filesize: Union[int, str] = '2M'
    ):
        self.policy = policy
        self.sink = sink if sink is not None else PropertyValidator()
        self.post_max_size = post_max_size
        self.upload_max_filesize = upload_max_filesize
        self.mimetype: Optional[str] = None
        self.filesize: Optional[int] = None

    def reset(self) -> None:
        """Forget the cached MIME type and size of the previous candidate."""
        self.mimetype = None
        self.filesize = None

    def inspect_bytes(self, content: bytes) -> None:
        """Sniff and measure an in-memory candidate."""
        self.reset()
        self.mimetype = sniff_mimetype(content)
        self.filesize = len(content)

    def inspect_file(self, path: str) -> bool:
        """
        Sniff and measure a candidate already on disk.

        Returns:
            False when the file cannot be read
        """
        self.reset()
        try:
            self.filesize = os.path.getsize(path)
        except OSError as e:
            logger.warning("Unable to measure upload candidate", path=path, error=str(e))
            return False

        self.mimetype = sniff_file_mimetype(path)
        return self.mimetype is not None

    @property
    def effective_max_filesize(self) -> int:
        """The policy ceiling, or the platform ceiling when the policy sets none."""
        if self.policy.max_filesize is not None:
            return self.policy.max_filesize
        ceiling, _ = max_filesize_allowed_by_platform(self.post_max_size, self.upload_max_filesize)
        return ceiling

    def validate_accepted_mimetypes(self) -> bool:
        """Check the sniffed type against the accepted set; an empty set accepts anything."""
        accepted = self.policy.accepted_mimetypes
        if not accepted:
            return True

        valid = self.mimetype in accepted
        record_validation(ACCEPTED_MIMETYPES_RULE, valid)
        if not valid:
            logger.info(
                "Upload candidate rejected by MIME type",
                mimetype=self.mimetype,
                accepted=sorted(accepted)
            )
            self.sink.error(ACCEPTED_MIMETYPES_MESSAGE, ACCEPTED_MIMETYPES_RULE)

        return valid

    def validate_max_filesize(self) -> bool:
        """Check the candidate size against the effective ceiling; 0 means no ceiling."""
        ceiling = self.effective_max_filesize
        if ceiling == 0:
            return True

        valid = (self.filesize or 0) <= ceiling
        record_validation(MAX_FILESIZE_RULE, valid)
        if not valid:
            logger.info(
                "Upload candidate rejected by size",
                filesize=self.filesize,
                max_filesize=ceiling
            )
            self.sink.error(MAX_FILESIZE_MESSAGE, MAX_FILESIZE_RULE)

        return valid

    def validate(self) -> bool:
        """
        Run every rule against the current candidate.

        Stops at the first failing rule, so at most one error is recorded
        per candidate.
        """
        return self.validate_accepted_mimetypes() and self.validate_max_filesize()

    def check_bytes(self, content: bytes) -> bool:
        self.inspect_bytes(content)
        return self.validate()

    def check_file(self, path: str) -> bool:
        if not self.inspect_file(path):
            return False
        return self.validate()


__all__ = [
    'ACCEPTED_MIMETYPES_RULE',
    'MAX_FILESIZE_RULE',
    'VALIDATION_METHODS',
    'ACCEPTED_MIMETYPES_MESSAGE',
    'MAX_FILESIZE_MESSAGE',
    'max_filesize_allowed_by_platform',
    'UploadValidationGate',
]
