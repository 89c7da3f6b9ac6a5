"""HTTP transport that carries a fixed credential."""

import base64
from typing import Any, Dict, List, Optional

import requests

from .. import __version__

USER_AGENT = f'repo-migrate/{__version__}'


class CredentialedTransport:
    """requests session with a fixed Authorization header."""

    def __init__(
        self,
        authorization: str,
        secrets: Optional[List[str]] = None,
        timeout: int = 30,
        verify_ssl: bool = True,
        extra_headers: Optional[Dict[str, str]] = None,
    ):
        """Initialize transport.

        Args:
            authorization: Full Authorization header value
            secrets: Credential literals that must never reach diagnostics
            timeout: Request timeout in seconds
            verify_ssl: Verify TLS certificates
            extra_headers: Additional headers sent with every request
        """
        self.timeout = timeout
        self.secrets = [s for s in (secrets or []) if s]
        self.session = requests.Session()
        self.session.verify = verify_ssl

        self.session.headers.update(
            {
                'Authorization': authorization,
                'Accept': 'application/json',
                'User-Agent': USER_AGENT,
            }
        )
        if extra_headers:
            self.session.headers.update(extra_headers)

    @classmethod
    def basic(
        cls, username: str, password: str, **kwargs: Any
    ) -> 'CredentialedTransport':
        """Create a transport using HTTP basic authentication."""
        encoded = base64.b64encode(f'{username}:{password}'.encode('utf-8')).decode(
            'ascii'
        )
        return cls(f'Basic {encoded}', secrets=[password, encoded], **kwargs)

    @classmethod
    def bearer(cls, token: str, **kwargs: Any) -> 'CredentialedTransport':
        """Create a transport using a bearer / personal access token."""
        return cls(f'Bearer {token}', secrets=[token], **kwargs)

    def request(
        self,
        method: str,
        url: str,
        data: Any = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        """Send a request with the transport's credential attached."""
        return self.session.request(
            method,
            url,
            data=data,
            json=json,
            headers=headers,
            timeout=self.timeout,
        )

    def close(self) -> None:
        """Close the underlying session."""
        self.session.close()
