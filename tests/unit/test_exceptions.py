"""
Unit tests for the exception hierarchy, error metrics and Flask error handlers.
"""

import pytest
from flask import Flask
from prometheus_client import REGISTRY

from fileproperty.utils.exceptions import (
    ConfigurationError,
    ContentNotFoundError,
    ContentUnavailableError,
    DirectoryNotWritableError,
    ErrorCategory,
    MalformedUploadError,
    UnresolvedRenameTokenError,
    ValidationError,
    format_error_response,
    register_error_handlers,
)


def error_count(error_type, category, endpoint='unknown'):
    value = REGISTRY.get_sample_value(
        'file_property_errors_total',
        {'error_type': error_type, 'error_category': category, 'endpoint': endpoint}
    )
    return value or 0.0


@pytest.fixture
def app():
    app = Flask(__name__)
    app.config['TESTING'] = True
    register_error_handlers(app)

    @app.route('/staged/<reference_id>')
    def staged(reference_id):
        raise ContentNotFoundError(reference_id)

    @app.route('/store')
    def store():
        raise DirectoryNotWritableError('/var/uploads/')

    @app.route('/malformed')
    def malformed():
        raise MalformedUploadError(missing_keys=['tmp_name'])

    return app


@pytest.mark.unit
class TestErrorHierarchy:
    """Tests for error classification and context."""

    def test_content_errors_are_recoverable(self):
        error = ContentNotFoundError('abc')

        assert isinstance(error, ContentUnavailableError)
        assert error.recoverable is True
        assert error.category is ErrorCategory.CONTENT
        assert error.message == 'File abc does not exist'
        assert error.details['source'] == 'abc'

    def test_malformed_upload_is_validation_error(self):
        error = MalformedUploadError(missing_keys=['tmp_name', 'error'])

        assert isinstance(error, ValidationError)
        assert error.recoverable is False
        assert error.missing_keys == ['error', 'tmp_name']
        assert error.details['missing_keys'] == ['error', 'tmp_name']

    def test_directory_error_is_not_user_facing(self):
        error = DirectoryNotWritableError('/var/uploads/')

        assert error.message == 'Error: upload directory is not writeable'
        assert error.details['storage_path'] == '/var/uploads/'
        assert error.to_dict()['message'] == 'An internal error occurred'
        assert 'details' not in error.to_dict()

    def test_unresolved_tokens_listed(self):
        error = UnresolvedRenameTokenError(['version', 'slug'], details={'pattern': '{{version}}{{slug}}'})

        assert error.message == 'The rename pattern failed. Leftover tokens found: version, slug'
        assert error.details == {'pattern': '{{version}}{{slug}}', 'tokens': ['version', 'slug']}

    def test_errors_increment_metrics(self):
        before = error_count('ConfigurationError', 'configuration')

        ConfigurationError('bad value', key='max_filesize')

        assert error_count('ConfigurationError', 'configuration') == before + 1

    def test_correlation_ids_unique(self):
        assert ConfigurationError('a').correlation_id != ConfigurationError('b').correlation_id


@pytest.mark.unit
class TestFormatErrorResponse:
    """Tests for error response formatting."""

    def test_application_error(self):
        response = format_error_response(ContentNotFoundError('abc'))

        assert response['error'] is True
        assert response['code'] == 'ContentNotFoundError'
        assert response['category'] == 'content'
        assert response['recoverable'] is True

    def test_unexpected_error_is_masked(self):
        response = format_error_response(ValueError('secret detail'))

        assert response['message'] == 'An unexpected error occurred'
        assert response['code'] == 'ValueError'
        assert 'secret detail' not in str(response)


@pytest.mark.unit
class TestFlaskErrorHandlers:
    """Tests for JSON error responses from a host Flask application."""

    def test_missing_staged_file(self, app):
        response = app.test_client().get('/staged/abc123')

        assert response.status_code == 404
        body = response.get_json()
        assert body['message'] == 'File abc123 does not exist'
        assert body['details']['source'] == 'abc123'

    def test_storage_error_masked(self, app):
        response = app.test_client().get('/store')

        assert response.status_code == 500
        body = response.get_json()
        assert body['message'] == 'An internal error occurred'
        assert 'details' not in body

    def test_malformed_upload(self, app):
        response = app.test_client().get('/malformed')

        assert response.status_code == 400
        assert response.get_json()['details']['missing_keys'] == ['tmp_name']

    def test_endpoint_recorded(self, app):
        before = error_count('ContentNotFoundError', 'content', 'staged')

        app.test_client().get('/staged/x')

        assert error_count('ContentNotFoundError', 'content', 'staged') == before + 1
