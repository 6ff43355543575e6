"""
Prometheus metrics for file property upload processing.

All collectors are registered once, at import time, on the default
prometheus_client registry so that a host application exposing
``prometheus_client.generate_latest()`` picks them up without extra wiring.

Collectors:
- upload_candidate_counter: every candidate handed to the engine, by source
  (``file`` for native descriptors, ``data`` for data URIs / staged files,
  ``passthrough`` for already-stored paths) and final status
- validation_counter: policy checks by rule and result
- stored_bytes_histogram: size of content written to the storage backend
- error_counter: application errors raised by the engine
"""

from prometheus_client import Counter, Histogram

upload_candidate_counter = Counter(
    'file_property_upload_candidates_total',
    'Total number of upload candidates processed by source and status',
    ['source', 'status']
)

validation_counter = Counter(
    'file_property_validation_total',
    'Total policy validation checks by rule and result',
    ['rule', 'result']
)

stored_bytes_histogram = Histogram(
    'file_property_stored_bytes',
    'Size of files written to the storage backend',
    ['source'],
    buckets=(1024, 16 * 1024, 256 * 1024, 1024 ** 2, 8 * 1024 ** 2, 64 * 1024 ** 2, 512 * 1024 ** 2)
)

error_counter = Counter(
    'file_property_errors_total',
    'Total number of file property errors by type',
    ['error_type', 'error_category', 'endpoint']
)

error_response_time = Histogram(
    'file_property_error_response_seconds',
    'Time spent rendering error responses',
    ['error_type', 'error_category']
)


def record_candidate(source: str, status: str) -> None:
    """Increment the candidate counter for ``source`` / ``status``."""
    upload_candidate_counter.labels(source=source, status=status).inc()


def record_validation(rule: str, passed: bool) -> None:
    validation_counter.labels(rule=rule, result='passed' if passed else 'failed').inc()


__all__ = [
    'upload_candidate_counter',
    'validation_counter',
    'stored_bytes_histogram',
    'error_counter',
    'error_response_time',
    'record_candidate',
    'record_validation',
]
