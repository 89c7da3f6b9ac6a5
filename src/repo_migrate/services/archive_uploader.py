"""Upload migration archives into GitHub owned storage."""

import io
import json
import math
from typing import Any, BinaryIO, Callable, Optional, Union
from urllib.parse import quote, urljoin

from loguru import logger

from ..api.client import APIResponse, ResilientApiClient
from ..api.exceptions import (
    ApiTimeoutError,
    ArchiveValidationError,
    AuthenticationError,
    MigrationError,
    UploadTimeoutError,
)
from ..config.config import (
    BYTES_PER_MEBIBYTE,
    DEFAULT_MULTIPART_MEBIBYTES,
    MIN_MULTIPART_MEBIBYTES,
)

ArchiveContent = Union[bytes, bytearray, BinaryIO]


def _content_length(stream: BinaryIO) -> int:
    position = stream.tell()
    end = stream.seek(0, io.SEEK_END)
    stream.seek(position)
    return end - position


class ArchiveUploader:
    """Chooses between single-part and multipart upload by archive size.

    Archives smaller than the part size go up in one POST. Anything larger
    is started with a POST, sent as in-order PATCH parts that each return
    the next location, and completed with a PUT on the last location.
    """

    def __init__(
        self,
        client: ResilientApiClient,
        uploads_url: str = 'https://uploads.github.com',
        multipart_mebibytes: Optional[int] = None,
    ):
        """Initialize uploader.

        Args:
            client: Authenticated GitHub client
            uploads_url: GitHub uploads host
            multipart_mebibytes: Part size override in MiB (minimum 5)
        """
        self.client = client
        self.uploads_url = uploads_url.rstrip('/')
        self.logger = logger.bind(component='ArchiveUploader')
        self.part_size = self._resolve_part_size(multipart_mebibytes)

    def _resolve_part_size(self, mebibytes: Optional[int]) -> int:
        if mebibytes is None:
            return DEFAULT_MULTIPART_MEBIBYTES * BYTES_PER_MEBIBYTE

        if mebibytes < MIN_MULTIPART_MEBIBYTES:
            self.logger.warning(
                f'GITHUB_OWNED_STORAGE_MULTIPART_MEBIBYTES is set to {mebibytes} MiB, '
                f'but the minimum value is {MIN_MULTIPART_MEBIBYTES} MiB. '
                f'Using default value of {DEFAULT_MULTIPART_MEBIBYTES} MiB.'
            )
            return DEFAULT_MULTIPART_MEBIBYTES * BYTES_PER_MEBIBYTE

        self.logger.info(f'Multipart upload part size set to {mebibytes} MiB.')
        return mebibytes * BYTES_PER_MEBIBYTE

    def is_multipart(self, length: int) -> bool:
        """Archives of at least one part size are uploaded in parts."""
        return length >= self.part_size

    def upload(
        self, content: Optional[ArchiveContent], archive_name: str, destination_id: str
    ) -> str:
        """Upload an archive and return its storage URI.

        Args:
            content: Archive bytes or a readable binary stream
            archive_name: Archive file name
            destination_id: Target organization database id

        Returns:
            URI of the stored archive

        Raises:
            ArchiveValidationError: If content is missing
            UploadTimeoutError: If a request timed out
            AuthenticationError: If the credential was rejected
            MigrationError: If the multipart upload failed
        """
        if content is None:
            raise ArchiveValidationError('The archive content cannot be null.')

        if isinstance(content, (bytes, bytearray)):
            content = io.BytesIO(content)

        length = _content_length(content)
        org = quote(destination_id, safe='')

        try:
            if self.is_multipart(length):
                url = f'{self.uploads_url}/organizations/{org}/gei/archive/blobs/uploads'
                return self._upload_multipart(content, length, archive_name, url)

            url = (
                f'{self.uploads_url}/organizations/{org}/gei/archive'
                f'?name={quote(archive_name, safe="")}'
            )
            response = self.client.send('POST', url, content)
            return response.json_data()['uri']
        except ApiTimeoutError as e:
            raise UploadTimeoutError(archive_name) from e

    def _upload_multipart(
        self, content: BinaryIO, length: int, archive_name: str, upload_url: str
    ) -> str:
        try:
            next_url = self._step(
                'Failed to start upload.',
                self._start_upload,
                upload_url,
                archive_name,
                length,
            )

            total_parts = max(1, math.ceil(length / self.part_size))
            part = 0
            while True:
                chunk = content.read(self.part_size)
                if not chunk:
                    break
                part += 1
                next_url = self._step(
                    'Failed to upload part.',
                    self._upload_part,
                    chunk,
                    next_url,
                    part,
                    total_parts,
                )

            return self._step('Failed to complete upload.', self._complete_upload, next_url)
        except (AuthenticationError, ApiTimeoutError):
            raise
        except MigrationError as e:
            raise MigrationError('Failed during multipart upload.') from e

    @staticmethod
    def _step(message: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return func(*args)
        except (AuthenticationError, ApiTimeoutError):
            raise
        except Exception as e:
            raise MigrationError(message) from e

    def _start_upload(self, upload_url: str, archive_name: str, length: int) -> str:
        self.logger.info(
            f'Starting archive upload into GitHub owned storage: {archive_name}...'
        )
        body = {
            'content_type': 'application/octet-stream',
            'name': archive_name,
            'size': length,
        }
        return self._next_url(self.client.send('POST', upload_url, body))

    def _upload_part(self, chunk: bytes, url: str, part: int, total_parts: int) -> str:
        self.logger.info(f'Uploading part {part}/{total_parts}...')
        return self._next_url(self.client.send('PATCH', url, chunk))

    def _complete_upload(self, url: str) -> str:
        response = self.client.send('PUT', url, '')
        uri = json.loads(response.text)['uri']
        self.logger.info('Finished uploading archive')
        return uri

    def _next_url(self, response: APIResponse) -> str:
        location = response.header('Location')
        if not location:
            raise MigrationError(
                'Location header is missing in the response, unable to retrieve '
                'next URL for multipart upload.'
            )
        return urljoin(self.uploads_url + '/', location)
