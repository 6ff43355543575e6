"""
Monitoring Package - Logging and Metrics for the File Property Engine

- logging: structlog configuration with JSON or console output
- metrics: Prometheus collectors for upload candidates, validation and storage
"""

from .metrics import (
    upload_candidate_counter,
    validation_counter,
    stored_bytes_histogram,
    error_counter,
    error_response_time,
    record_candidate,
    record_validation,
)
from .logging import (
    LoggingConfiguration,
    LoggingConfigurationError,
    configure_logging,
    get_logger,
    log_context,
)

__all__ = [
    'upload_candidate_counter',
    'validation_counter',
    'stored_bytes_histogram',
    'error_counter',
    'error_response_time',
    'record_candidate',
    'record_validation',
    'LoggingConfiguration',
    'LoggingConfigurationError',
    'configure_logging',
    'get_logger',
    'log_context',
]
