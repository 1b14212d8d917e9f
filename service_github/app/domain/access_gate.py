"""
Access gate for the GitHub proxy.

Admits a request when it carries the configured password, or the configured
API key when one is set. The password is checked first and the first match
wins. Rejections are uniform so callers cannot tell which check failed.
"""

import secrets
from typing import Optional

from fastapi import Request

from shared.errors import UnauthorizedError
from shared.logging import get_logger, set_auth_method
from shared.metrics import MetricsCollector
from service_github.app.domain.models import CredentialSet

PASSWORD_HEADER = "x-password"
PASSWORD_QUERY = "password"
API_KEY_HEADER = "x-api-key"
API_KEY_QUERY = "api_key"

AUTH_METHOD_PASSWORD = "password"
AUTH_METHOD_API_KEY = "api_key"


def _read_credential(request: Request, header: str, query: str) -> Optional[str]:
    """Header first, query parameter second. Empty values count as absent."""
    return request.headers.get(header) or request.query_params.get(query) or None


def _matches(supplied: Optional[str], expected: Optional[str]) -> bool:
    if not supplied or not expected:
        return False
    return secrets.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))


class AccessGate:
    """Stateless per-request credential check."""

    def __init__(self, credentials: CredentialSet, metrics: Optional[MetricsCollector] = None):
        self.credentials = credentials
        self.metrics = metrics
        self.logger = get_logger("github.access_gate")

    def check(self, password: Optional[str], api_key: Optional[str]) -> Optional[str]:
        """Return the credential kind that matched, or None."""
        if _matches(password, self.credentials.password):
            return AUTH_METHOD_PASSWORD

        if self.credentials.api_key and _matches(api_key, self.credentials.api_key):
            return AUTH_METHOD_API_KEY

        return None

    def authenticate(self, request: Request) -> str:
        """Admit the request or raise UnauthorizedError."""
        auth_method = self.check(
            _read_credential(request, PASSWORD_HEADER, PASSWORD_QUERY),
            _read_credential(request, API_KEY_HEADER, API_KEY_QUERY),
        )

        if auth_method is None:
            self.logger.warning(
                "Rejected request credentials",
                method=request.method,
                path=request.url.path,
            )
            if self.metrics:
                self.metrics.record_auth_failure()
            raise UnauthorizedError()

        request.state.auth_method = auth_method
        set_auth_method(auth_method)
        return auth_method

    async def __call__(self, request: Request) -> str:
        """FastAPI dependency form of ``authenticate``."""
        return self.authenticate(request)
