"""Tests for the archive uploader."""

import io
import json

import pytest
from unittest.mock import Mock, patch
from loguru import logger

from repo_migrate.api.client import APIResponse, ResilientApiClient
from repo_migrate.api.exceptions import (
    ApiError,
    ApiTimeoutError,
    ArchiveValidationError,
    AuthenticationError,
    MigrationError,
    UploadTimeoutError,
)
from repo_migrate.api.retry import RetryPolicy
from repo_migrate.api.transport import CredentialedTransport
from repo_migrate.config.config import BYTES_PER_MEBIBYTE
from repo_migrate.services.archive_uploader import ArchiveUploader
from repo_migrate.utils.redaction import DiagnosticRedactor

UPLOADS_URL = 'https://uploads.github.com'
ARCHIVE_URI = 'gei://archive/1234'


def _api_response(status_code=200, body=None, location=None):
    headers = {'Location': location} if location else {}
    return APIResponse(
        status_code=status_code,
        text=json.dumps(body) if body is not None else '',
        headers=headers,
        success=True,
    )


class TestArchiveUploader:
    """Test upload strategy selection and multipart sequencing."""

    def setup_method(self):
        """Set up test fixtures."""
        self.client = Mock(spec=ResilientApiClient)
        self.uploader = ArchiveUploader(self.client, UPLOADS_URL)
        # Small parts keep the archives in these tests tiny
        self.uploader.part_size = 10

    def test_default_part_size(self):
        """Test the default threshold is 100 MiB."""
        uploader = ArchiveUploader(self.client)

        assert uploader.part_size == 100 * BYTES_PER_MEBIBYTE

    def test_part_size_override(self):
        """Test a valid override is used."""
        uploader = ArchiveUploader(self.client, multipart_mebibytes=10)

        assert uploader.part_size == 10 * BYTES_PER_MEBIBYTE

    def test_part_size_below_minimum_rejected(self):
        """Test an override below 5 MiB keeps the default with a warning."""
        messages = []
        handler_id = logger.add(messages.append, level='WARNING', format='{message}')

        try:
            uploader = ArchiveUploader(self.client, multipart_mebibytes=4)
        finally:
            logger.remove(handler_id)

        assert uploader.part_size == 100 * BYTES_PER_MEBIBYTE
        assert any('minimum value is 5 MiB' in m for m in messages)

    def test_null_content_rejected_before_network(self):
        """Test missing content fails without any request."""
        with pytest.raises(ArchiveValidationError):
            self.uploader.upload(None, 'migration.tar.gz', 'org-1')

        self.client.send.assert_not_called()

    def test_below_threshold_is_single_part(self):
        """Test threshold - 1 bytes go up in a single POST."""
        self.client.send.return_value = _api_response(body={'uri': ARCHIVE_URI})

        uri = self.uploader.upload(b'x' * 9, 'migration archive.tar.gz', 'org-1')

        assert uri == ARCHIVE_URI
        self.client.send.assert_called_once()
        method, url, body = self.client.send.call_args[0]
        assert method == 'POST'
        assert url == (
            f'{UPLOADS_URL}/organizations/org-1/gei/archive'
            '?name=migration%20archive.tar.gz'
        )
        assert body.read() == b'x' * 9

    def test_at_threshold_is_multipart(self):
        """Test threshold bytes use the multipart protocol."""
        self.client.send.side_effect = [
            _api_response(202, location='/organizations/org-1/gei/archive/blobs/uploads?part=1'),
            _api_response(202, location='/organizations/org-1/gei/archive/blobs/uploads?part=2'),
            _api_response(201, body={'uri': ARCHIVE_URI}),
        ]

        uri = self.uploader.upload(b'x' * 10, 'migration.tar.gz', 'org-1')

        assert uri == ARCHIVE_URI
        methods = [c[0][0] for c in self.client.send.call_args_list]
        assert methods == ['POST', 'PATCH', 'PUT']

    def test_multipart_sequence(self):
        """Test parts are sent in order to the location each step returns."""
        self.client.send.side_effect = [
            _api_response(202, location='/uploads/start'),
            _api_response(202, location='/uploads/part-2'),
            _api_response(202, location='/uploads/part-3'),
            _api_response(202, location='/uploads/complete'),
            _api_response(201, body={'uri': ARCHIVE_URI}),
        ]
        content = io.BytesIO(b'a' * 10 + b'b' * 10 + b'c' * 5)

        uri = self.uploader.upload(content, 'migration.tar.gz', 'org-1')

        assert uri == ARCHIVE_URI
        calls = [c[0] for c in self.client.send.call_args_list]

        assert calls[0][:2] == (
            'POST',
            f'{UPLOADS_URL}/organizations/org-1/gei/archive/blobs/uploads',
        )
        assert calls[0][2] == {
            'content_type': 'application/octet-stream',
            'name': 'migration.tar.gz',
            'size': 25,
        }
        assert calls[1] == ('PATCH', f'{UPLOADS_URL}/uploads/start', b'a' * 10)
        assert calls[2] == ('PATCH', f'{UPLOADS_URL}/uploads/part-2', b'b' * 10)
        assert calls[3] == ('PATCH', f'{UPLOADS_URL}/uploads/part-3', b'c' * 5)
        assert calls[4] == ('PUT', f'{UPLOADS_URL}/uploads/complete', '')

    def test_missing_location_fails_multipart(self):
        """Test a start response without Location aborts the upload."""
        self.client.send.return_value = _api_response(202)

        with pytest.raises(MigrationError) as exc_info:
            self.uploader.upload(b'x' * 20, 'migration.tar.gz', 'org-1')

        assert str(exc_info.value) == 'Failed during multipart upload.'
        assert self.client.send.call_count == 1

    def test_part_failure_stops_before_completion(self):
        """Test no completion request is sent after a failed part."""
        self.client.send.side_effect = [
            _api_response(202, location='/uploads/start'),
            ApiError('HTTP 500: boom', status_code=500),
        ]

        with pytest.raises(MigrationError) as exc_info:
            self.uploader.upload(b'x' * 20, 'migration.tar.gz', 'org-1')

        assert str(exc_info.value) == 'Failed during multipart upload.'
        methods = [c[0][0] for c in self.client.send.call_args_list]
        assert 'PUT' not in methods

    def test_authentication_error_propagates(self):
        """Test auth failures are not wrapped."""
        self.client.send.side_effect = AuthenticationError('Unauthorized', 401)

        with pytest.raises(AuthenticationError):
            self.uploader.upload(b'x' * 20, 'migration.tar.gz', 'org-1')

    @pytest.mark.parametrize('size', [5, 20])
    def test_timeout_names_archive(self, size):
        """Test timeouts become UploadTimeoutError for both strategies."""
        self.client.send.side_effect = ApiTimeoutError('timed out')

        with pytest.raises(UploadTimeoutError) as exc_info:
            self.uploader.upload(b'x' * size, 'migration.tar.gz', 'org-1')

        assert exc_info.value.archive_name == 'migration.tar.gz'
        assert 'migration.tar.gz' in str(exc_info.value)


class TestArchiveUploaderHttp:
    """Test the uploader against the HTTP layer."""

    @patch('requests.Session.request')
    def test_single_part_sends_octet_stream(self, mock_request):
        """Test the single-part body is sent raw."""
        response = Mock()
        response.status_code = 200
        response.text = json.dumps({'uri': ARCHIVE_URI})
        response.headers = {}
        mock_request.return_value = response

        client = ResilientApiClient(
            CredentialedTransport.bearer('gh-token'),
            DiagnosticRedactor(),
            RetryPolicy(retry_interval=0),
        )
        uploader = ArchiveUploader(client, UPLOADS_URL)

        assert uploader.upload(b'archive-bytes', 'a.tar.gz', 'org-1') == ARCHIVE_URI
        kwargs = mock_request.call_args[1]
        assert kwargs['headers']['Content-Type'] == 'application/octet-stream'
        assert kwargs['data'].read() == b'archive-bytes'
