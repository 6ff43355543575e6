"""
Global pytest Configuration and Fixtures

Shared fixtures for the file property engine test suite:

- Isolated storage roots (private, public, staging, incoming) under tmp_path
- TestingConfig instances pointed at those roots
- Property and service factories
- Sample file content (PNG, JPEG, text) and data URI builders
- Upload tree builders producing transport leaves backed by real files

Test Organization:
- tests/unit: component tests (sanitizers, normalizer, gate, filenames, service)
- tests/integration: full save cycles against the filesystem
"""

import base64
import os
from typing import Any, Callable, Dict, Optional

import pytest
import structlog

from fileproperty.business.models import FilePropertyConfig
from fileproperty.business.services import FilePropertyService
from fileproperty.config.settings import TestingConfig
from fileproperty.utils.validators import PropertyValidator

# 1x1 transparent PNG
PNG_BYTES = base64.b64decode(
    'iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=='
)

# JFIF header followed by padding; enough for signature detection
JPEG_BYTES = b'\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00' + b'\x00' * 64 + b'\xff\xd9'

TEXT_BYTES = b'plain text content\n'


def pytest_configure(config):
    """Register custom markers for test categorization."""
    config.addinivalue_line("markers", "unit: Unit tests with isolated component testing")
    config.addinivalue_line("markers", "integration: Integration tests exercising the full save cycle on disk")


def to_data_uri(content: bytes, mimetype: str = 'application/octet-stream') -> str:
    return f"data:{mimetype};base64,{base64.b64encode(content).decode('ascii')}"


@pytest.fixture
def png_bytes() -> bytes:
    return PNG_BYTES


@pytest.fixture
def jpeg_bytes() -> bytes:
    return JPEG_BYTES


@pytest.fixture
def text_bytes() -> bytes:
    return TEXT_BYTES


@pytest.fixture
def data_uri() -> Callable[..., str]:
    """Builder for base64 data URIs."""
    return to_data_uri


@pytest.fixture(autouse=True)
def reset_structlog():
    """Restore structlog defaults after tests that configure logging."""
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def storage_roots(tmp_path) -> Dict[str, str]:
    """Create isolated private, public, staging and incoming directories."""
    roots = {}
    for name in ('private', 'public', 'staging', 'incoming'):
        path = tmp_path / name
        path.mkdir()
        roots[name] = str(path)
    return roots


@pytest.fixture
def app_config(storage_roots) -> TestingConfig:
    """Testing configuration bound to the isolated storage roots."""
    config = TestingConfig()
    config.BASE_PATH = storage_roots['private']
    config.PUBLIC_PATH = storage_roots['public']
    config.UPLOAD_STAGING_DIR = storage_roots['staging']
    config.DEFAULT_UPLOAD_PATH = 'uploads/'
    config.POST_MAX_SIZE = '8M'
    config.UPLOAD_MAX_FILESIZE = '2M'
    config.PATH_CACHE_SIZE = 16
    return config


@pytest.fixture
def make_property() -> Callable[..., FilePropertyConfig]:
    """Factory for property configurations with test defaults."""
    def factory(**overrides: Any) -> FilePropertyConfig:
        settings = {'ident': 'attachment', 'label': 'Attachment'}
        settings.update(overrides)
        return FilePropertyConfig(**settings)
    return factory


@pytest.fixture
def validator() -> PropertyValidator:
    return PropertyValidator('attachment')


@pytest.fixture
def make_service(app_config, make_property, validator) -> Callable[..., FilePropertyService]:
    """Factory for services sharing the test configuration and validation sink."""
    def factory(prop: Optional[FilePropertyConfig] = None, **overrides: Any) -> FilePropertyService:
        return FilePropertyService(prop or make_property(**overrides), app_config, validator)
    return factory


@pytest.fixture
def service(make_service) -> FilePropertyService:
    return make_service()


@pytest.fixture
def make_upload(storage_roots) -> Callable[..., Dict[str, Any]]:
    """
    Factory writing ``content`` to the incoming directory and returning the
    matching transport leaf ``{tmp_name, name, type, size, error}``.
    """
    counter = {'value': 0}

    def factory(content: bytes = PNG_BYTES, name: str = 'photo.png', error: int = 0,
                declared_type: str = 'image/png') -> Dict[str, Any]:
        counter['value'] += 1
        tmp_name = os.path.join(storage_roots['incoming'], f"upload{counter['value']:04d}")
        with open(tmp_name, 'wb') as handle:
            handle.write(content)
        return {
            'tmp_name': tmp_name,
            'name': name,
            'type': declared_type,
            'size': len(content),
            'error': error,
        }
    return factory


@pytest.fixture
def stage_file(storage_roots) -> Callable[[str, bytes], str]:
    """Write a staged temporary file and return its path."""
    def factory(reference_id: str, content: bytes = PNG_BYTES) -> str:
        path = os.path.join(storage_roots['staging'], reference_id)
        with open(path, 'wb') as handle:
            handle.write(content)
        return path
    return factory
