"""Secret redaction for diagnostic output."""

import re
import threading
from typing import Dict, List, Optional
from urllib.parse import quote

PLACEHOLDER = '***'

# Query parameters whose values are credentials:
# archive download token, S3 SigV4 credential and signature, Azure SAS signature.
REDACTION_PATTERNS = [
    re.compile(r'(token=)([^&\s"\'#]+)', re.IGNORECASE),
    re.compile(r'(X-Amz-Credential=)([^&\s"\'#]+)', re.IGNORECASE),
    re.compile(r'(X-Amz-Signature=)([^&\s"\'#]+)', re.IGNORECASE),
    re.compile(r'(sig=)([^&\s"\'#]+)', re.IGNORECASE),
]


class DiagnosticRedactor:
    """Masks registered secrets and sensitive URL parameters in messages.

    The registry is append-only. Registration is thread-safe so clients
    built concurrently can all register their credentials.
    """

    def __init__(self, secrets: Optional[List[str]] = None):
        """Initialize redactor.

        Args:
            secrets: Secrets to register up front
        """
        self._secrets: Dict[str, str] = {}
        self._lock = threading.Lock()

        for secret in secrets or []:
            self.register_secret(secret)

    def register_secret(self, secret: Optional[str]) -> None:
        """Register a secret literal. Empty values are ignored."""
        if not secret:
            return

        with self._lock:
            self._secrets[secret] = quote(secret, safe='')

    @property
    def secrets(self) -> List[str]:
        """Snapshot of registered secrets, longest first."""
        with self._lock:
            return sorted(self._secrets, key=len, reverse=True)

    def redact(self, message: str) -> str:
        """Return message with every secret and sensitive parameter masked.

        Args:
            message: Text about to be written to a diagnostic sink

        Returns:
            Redacted text
        """
        if not message:
            return message

        with self._lock:
            pairs = sorted(self._secrets.items(), key=lambda p: len(p[0]), reverse=True)

        result = message
        for secret, encoded in pairs:
            result = result.replace(secret, PLACEHOLDER)
            if encoded != secret:
                result = result.replace(encoded, PLACEHOLDER)

        for pattern in REDACTION_PATTERNS:
            result = pattern.sub(lambda m: m.group(1) + PLACEHOLDER, result)

        return result

    def __call__(self, message: str) -> str:
        return self.redact(message)
