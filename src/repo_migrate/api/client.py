"""Resilient platform API client implementation."""

import json
from typing import Any, Dict, Iterator, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import requests
from loguru import logger
from pydantic import BaseModel, Field

from ..config.config import (
    AdoInstanceConfig,
    BbsInstanceConfig,
    GithubInstanceConfig,
    RetryConfig,
)
from ..utils.redaction import DiagnosticRedactor
from .exceptions import ApiError, ApiTimeoutError, AuthenticationError, NotFoundError
from .retry import RetryContext, RetryPolicy
from .transport import CredentialedTransport

DEFAULT_PAGE_SIZE = 100
MAX_LOGGED_BODY_LENGTH = 500
UNAUTHORIZED_MESSAGE = 'Unauthorized. Please check your token and try again'


class APIResponse(BaseModel):
    """Standard API response wrapper."""

    status_code: int
    text: str
    headers: Dict[str, str]
    success: bool

    def json_data(self) -> Any:
        """Parse the response body as JSON, None when empty."""
        return json.loads(self.text) if self.text else None

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        for key, value in self.headers.items():
            if key.lower() == name.lower():
                return value
        return None


class PagedResponse(BaseModel):
    """One page of a cursor-paginated listing."""

    items: list = Field(default_factory=list, description='Items on this page')
    next_start: Optional[int] = Field(
        default=None, description='Offset of the next page'
    )
    is_last_page: bool = Field(default=True, description='Server reports last page')

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'PagedResponse':
        """Build a page from a Bitbucket Server style listing body."""
        return cls(
            items=data.get('values') or [],
            next_start=data.get('nextPageStart'),
            is_last_page=bool(data.get('isLastPage', True)),
        )


def with_pagination(url: str, start: int, limit: int) -> str:
    """Return url with start/limit set, replacing any caller-supplied values."""
    parts = urlsplit(url)
    query = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key not in ('start', 'limit')
    ]
    query.extend([('start', str(start)), ('limit', str(limit))])
    return urlunsplit(parts._replace(query=urlencode(query)))


def _truncate(text: str, length: int = MAX_LOGGED_BODY_LENGTH) -> str:
    if text and len(text) > length:
        return text[:length] + '...'
    return text


class ResilientApiClient:
    """Platform API client with retries, pagination and redacted diagnostics."""

    def __init__(
        self,
        transport: CredentialedTransport,
        redactor: DiagnosticRedactor,
        retry_policy: Optional[RetryPolicy] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        """Initialize client.

        Args:
            transport: Credentialed HTTP transport
            redactor: Redactor shared with the logging sinks
            retry_policy: Retry policy (defaults to 3 attempts, 1s interval)
            page_size: Page size used by get_all
        """
        self.transport = transport
        self.redactor = redactor
        self.retry_policy = retry_policy or RetryPolicy()
        self.page_size = page_size
        self.logger = logger.bind(component='ResilientApiClient')

        for secret in transport.secrets:
            redactor.register_secret(secret)

    def _verbose(self, message: str) -> None:
        self.logger.debug(self.redactor.redact(message))

    def _prepare_body(self, body: Any) -> Dict[str, Any]:
        if body is None:
            return {}
        if isinstance(body, (bytes, bytearray)) or hasattr(body, 'read'):
            self._verbose('HTTP BODY: BLOB')
            return {
                'data': body,
                'headers': {'Content-Type': 'application/octet-stream'},
            }
        if isinstance(body, str):
            self._verbose(f'HTTP BODY: {body}')
            return {'data': body.encode('utf-8')}
        self._verbose(f'HTTP BODY: {json.dumps(body)}')
        return {'json': body}

    def _raise_for_status(self, response: requests.Response) -> None:
        status = response.status_code
        if status == 401:
            raise AuthenticationError(
                UNAUTHORIZED_MESSAGE, status_code=status, response_data=response.text
            )
        if status == 404:
            raise NotFoundError(
                'HTTP 404: resource not found',
                status_code=status,
                response_data=response.text,
            )
        raise ApiError(
            f'HTTP {status}: {_truncate(response.text)}',
            status_code=status,
            response_data=response.text,
        )

    def send(
        self,
        method: str,
        url: str,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> APIResponse:
        """Send a request, retrying transient failures.

        Args:
            method: HTTP method
            url: Absolute URL
            body: JSON-serialisable object, str, bytes or binary stream
            headers: Extra request headers

        Returns:
            API response for a 2xx status

        Raises:
            AuthenticationError: On 401, never retried
            NotFoundError: On 404
            ApiTimeoutError: When every attempt timed out
            ApiError: On other failures, after retries where applicable
        """
        method = method.upper()
        context = RetryContext()
        rewind_to = None
        if hasattr(body, 'seek') and hasattr(body, 'tell'):
            rewind_to = body.tell()

        while True:
            context.attempt += 1
            if rewind_to is not None:
                body.seek(rewind_to)

            self._verbose(f'HTTP {method}: {url}')
            kwargs = self._prepare_body(body)
            if headers:
                kwargs['headers'] = {**kwargs.get('headers', {}), **headers}

            try:
                response = self.transport.request(method, url, **kwargs)
            except requests.RequestException as e:
                context.last_status = None
                self._verbose(f'Network error during {method} request: {e}')
                if self.retry_policy.should_retry(context):
                    self._verbose(
                        f'Retrying ({context.attempt}/{self.retry_policy.max_attempts})...'
                    )
                    self.retry_policy.wait(context)
                    continue

                error_cls = ApiTimeoutError if isinstance(e, requests.Timeout) else ApiError
                raise error_cls(
                    self.redactor.redact(
                        f'Network error after {context.attempt} attempts: {e}'
                    )
                ) from e

            context.last_status = response.status_code
            self._verbose(
                f'RESPONSE ({response.status_code}): {_truncate(response.text)}'
            )

            if 200 <= response.status_code < 300:
                return APIResponse(
                    status_code=response.status_code,
                    text=response.text or '',
                    headers=dict(response.headers),
                    success=True,
                )

            if response.status_code == 401:
                self.logger.error(UNAUTHORIZED_MESSAGE)
                self._raise_for_status(response)

            if self.retry_policy.should_retry(context):
                self._verbose(
                    f'Call failed with HTTP {response.status_code}, retrying '
                    f'({context.attempt}/{self.retry_policy.max_attempts})...'
                )
                self.retry_policy.wait(context)
                continue

            self._raise_for_status(response)

    def get(self, url: str) -> str:
        """Make GET request and return the response body."""
        return self.send('GET', url).text

    def post(self, url: str, body: Any = None) -> str:
        """Make POST request and return the response body."""
        return self.send('POST', url, body).text

    def put(self, url: str, body: Any = None) -> str:
        """Make PUT request and return the response body."""
        return self.send('PUT', url, body).text

    def patch(self, url: str, body: Any = None) -> str:
        """Make PATCH request and return the response body."""
        return self.send('PATCH', url, body).text

    def delete(self, url: str) -> str:
        """Make DELETE request and return the response body."""
        return self.send('DELETE', url).text

    def get_page(self, url: str, start: int, limit: Optional[int] = None) -> PagedResponse:
        """Fetch a single page of a cursor-paginated listing."""
        paged_url = with_pagination(url, start, limit or self.page_size)
        return PagedResponse.from_api(json.loads(self.get(paged_url)))

    def get_all(self, url: str) -> Iterator[Any]:
        """Lazily iterate every item of a cursor-paginated listing.

        The client's own start/limit parameters replace any present in url.
        A failing page raises out of the iterator; items yielded before it
        remain valid. Closing the iterator stops further requests.

        Args:
            url: Listing URL

        Yields:
            Items in server order
        """
        start = 0
        count = 0

        while True:
            page = self.get_page(url, start)

            for item in page.items:
                count += 1
                yield item

            if page.is_last_page or not page.items:
                break

            if page.next_start is None:
                self.logger.warning(
                    self.redactor.redact(
                        f'Listing {url} reported more pages without nextPageStart; stopping'
                    )
                )
                break

            start = page.next_start

        self._verbose(f'Retrieved {count} items from {url}')

    def close(self):
        """Close the client session."""
        self.transport.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


class ApiClientFactory:
    """Factory for creating platform API clients."""

    @staticmethod
    def _retry_policy(retry: Optional[RetryConfig]) -> RetryPolicy:
        retry = retry or RetryConfig()
        return RetryPolicy(
            max_attempts=retry.max_attempts, retry_interval=retry.retry_interval
        )

    @staticmethod
    def create_ado_client(
        config: AdoInstanceConfig,
        redactor: DiagnosticRedactor,
        retry: Optional[RetryConfig] = None,
    ) -> ResilientApiClient:
        """Create a bearer-authenticated Azure DevOps client."""
        if not config.pat:
            raise AuthenticationError('An Azure DevOps personal access token is required')

        transport = CredentialedTransport.bearer(
            config.pat, timeout=config.timeout, verify_ssl=not config.no_ssl_verify
        )
        return ResilientApiClient(
            transport, redactor, ApiClientFactory._retry_policy(retry)
        )

    @staticmethod
    def create_github_client(
        config: GithubInstanceConfig,
        redactor: DiagnosticRedactor,
        retry: Optional[RetryConfig] = None,
    ) -> ResilientApiClient:
        """Create a bearer-authenticated GitHub client."""
        if not config.pat:
            raise AuthenticationError('A GitHub personal access token is required')

        transport = CredentialedTransport.bearer(
            config.pat,
            timeout=config.timeout,
            verify_ssl=not config.no_ssl_verify,
            extra_headers={'Accept': 'application/vnd.github.v3+json'},
        )
        return ResilientApiClient(
            transport, redactor, ApiClientFactory._retry_policy(retry)
        )

    @staticmethod
    def create_bbs_client(
        config: BbsInstanceConfig,
        redactor: DiagnosticRedactor,
        retry: Optional[RetryConfig] = None,
    ) -> ResilientApiClient:
        """Create a basic-authenticated Bitbucket Server client."""
        if not config.username or not config.password:
            raise AuthenticationError(
                'Bitbucket Server username and password are required'
            )

        transport = CredentialedTransport.basic(
            config.username,
            config.password,
            timeout=config.timeout,
            verify_ssl=not config.no_ssl_verify,
        )
        return ResilientApiClient(
            transport, redactor, ApiClientFactory._retry_policy(retry)
        )
