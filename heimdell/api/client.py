"""
HTTP client for the Heimdell server.

Only the auth route is wrapped here; it is used to verify credentials before
they are saved (login) or activated (env switch).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from heimdell import __version__
from heimdell.credentials.models import CredentialDocument

logger = logging.getLogger(__name__)

AUTH_LOGIN_PATH = "/api/v1/auth/login"


@dataclass(frozen=True)
class LoginResult:
    status_code: int
    ok: bool
    detail: str = ""


class HeimdellClient:
    """Sync client for the Heimdell REST API using HTTP basic auth."""

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        *,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if timeout is None:
            from heimdell.config import get_config

            timeout = get_config().http.timeout
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            auth=httpx.BasicAuth(username, password),
            timeout=timeout,
            headers={"User-Agent": f"heimdell-cli/{__version__}"},
            transport=transport,
        )

    @classmethod
    def from_credentials(
        cls,
        credentials: CredentialDocument,
        *,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> HeimdellClient:
        return cls(
            credentials.baseUrl,
            credentials.username,
            credentials.password,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> HeimdellClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def login(self) -> LoginResult:
        """GET /api/v1/auth/login to verify the username and password."""
        try:
            resp = self._client.get(AUTH_LOGIN_PATH)
        except httpx.HTTPError as e:
            logger.debug("Login request to %s failed: %s", self.base_url, e)
            return LoginResult(status_code=0, ok=False, detail=str(e) or type(e).__name__)
        ok = 200 <= resp.status_code <= 299
        return LoginResult(status_code=resp.status_code, ok=ok, detail="" if ok else resp.text)
