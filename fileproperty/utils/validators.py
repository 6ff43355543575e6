"""
Validation utilities shared by the file property engine.

Provides the standardized ValidationResult container, the field-level
validation error sink that collects policy failures for a property, and the
ini-style size parser used for file size ceilings.

Key Features:
- ValidationResult containers with severity tracking
- PropertyValidator sink recording errors keyed by validation rule
  (``acceptedMimetypes``, ``maxFilesize``)
- parse_ini_size for ``"128M"`` / ``"2G"`` style size notations
"""

import math
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

import structlog

from .exceptions import ConfigurationError, ErrorSeverity

# Get structured logger
logger = structlog.get_logger(__name__)

# Units in increasing order; each step multiplies by 1024
SIZE_UNITS = 'bkmgtpezy'

_SIZE_UNIT_STRIP = re.compile(r'[^' + SIZE_UNITS + r']', re.IGNORECASE)
_SIZE_NUMBER_STRIP = re.compile(r'[^0-9.]')

_SEVERITY_ORDER = {
    ErrorSeverity.LOW: 0,
    ErrorSeverity.MEDIUM: 1,
    ErrorSeverity.HIGH: 2,
    ErrorSeverity.CRITICAL: 3,
}


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class ValidationResult:
    """
    Standardized validation result container providing consistent validation
    outcomes with detailed error context and severity assessment.
    """

    def __init__(
        self,
        is_valid: bool,
        value: Any = None,
        errors: Optional[List[str]] = None,
        field_name: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM
    ):
        self.is_valid = is_valid
        self.value = value
        self.errors = errors or []
        self.field_name = field_name
        self.severity = severity
        self.timestamp = datetime.utcnow()

    def add_error(self, error: str, severity: ErrorSeverity = ErrorSeverity.MEDIUM) -> None:
        """Add validation error with severity tracking."""
        self.errors.append(error)
        self.is_valid = False
        if _SEVERITY_ORDER[severity] > _SEVERITY_ORDER[self.severity]:
            self.severity = severity

    def to_dict(self) -> Dict[str, Any]:
        """Convert validation result to dictionary format."""
        return {
            'is_valid': self.is_valid,
            'value': self.value,
            'errors': self.errors,
            'field_name': self.field_name,
            'severity': self.severity.value,
            'timestamp': self.timestamp.isoformat()
        }


class PropertyValidator:
    """
    Validation error sink for a single property.

    Collects one ValidationResult per reported failure, keyed by the
    validation rule that produced it. Any object exposing
    ``error(message, key)`` can stand in for this class.
    """

    def __init__(self, ident: Optional[str] = None):
        self.ident = ident
        self.results: List[ValidationResult] = []

    def error(self, message: str, key: Optional[str] = None) -> None:
        """Record a field-level validation failure."""
        result = ValidationResult(False, None, [message], key, ErrorSeverity.LOW)
        self.results.append(result)
        logger.info(
            "Property validation failed",
            property=self.ident,
            rule=key,
            message=message
        )

    @property
    def has_errors(self) -> bool:
        return bool(self.results)

    def errors_for(self, key: str) -> List[str]:
        """Return every message recorded for the validation rule ``key``."""
        messages: List[str] = []
        for result in self.results:
            if result.field_name == key:
                messages.extend(result.errors)
        return messages

    def keys(self) -> List[str]:
        seen: List[str] = []
        for result in self.results:
            if result.field_name not in seen:
                seen.append(result.field_name)
        return seen

    def clear(self) -> None:
        self.results = []

    def to_dict(self) -> Dict[str, List[str]]:
        return {key: self.errors_for(key) for key in self.keys()}


def parse_ini_size(size: Union[int, float, str]) -> int:
    """
    Convert an ini notation for size to an integer number of bytes.

    Accepts plain numbers (bytes) or strings made of an optional decimal
    number followed by an optional unit among ``b k m g t p e z y``
    (case-insensitive), each unit being 1024 times the previous one.

    Args:
        size: Size in bytes or ini notation (``"512"``, ``"1M"``, ``"1.5g"``)

    Returns:
        The size in bytes, rounded to the nearest integer

    Raises:
        ConfigurationError: If the size is neither a number nor a string
    """
    if isinstance(size, bool) or not isinstance(size, (int, float, str)):
        raise ConfigurationError(
            "Size must be an integer (in bytes, e.g.: 1024) or a string (e.g.: 1M).",
            key='size',
            details={'received': type(size).__name__}
        )

    if isinstance(size, (int, float)):
        return _round_half_up(size)

    unit = _SIZE_UNIT_STRIP.sub('', size)
    number = _SIZE_NUMBER_STRIP.sub('', size)

    try:
        value = float(number) if number else 0.0
    except ValueError:
        raise ConfigurationError(
            f"Invalid size notation: {size!r}",
            key='size'
        )

    if unit:
        value = value * (1024 ** SIZE_UNITS.index(unit[0].lower()))

    return _round_half_up(value)


__all__ = [
    'ValidationResult',
    'PropertyValidator',
    'parse_ini_size',
    'SIZE_UNITS',
]
