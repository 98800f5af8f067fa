"""OAuth2 client-credentials access tokens for the PingOne worker app."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

import requests

logger = logging.getLogger("user_import.auth")

# Renew this many seconds before the token actually expires
EXPIRY_SKEW_SECONDS = 60
DEFAULT_EXPIRES_IN = 3600


class TokenError(RuntimeError):
    """The token endpoint did not issue an access token."""


class TokenProvider:
    """Caches one bearer token for all workers and renews it near expiry."""

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: str,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._token_url = token_url
        self._auth = (client_id, client_secret)
        self._timeout = timeout
        self._session = session or requests.Session()
        self._clock = clock
        self._lock = threading.Lock()
        self._token: Optional[str] = None
        self._expires_at = 0.0

    def get_token(self) -> str:
        with self._lock:
            if self._token is None or self._clock() >= self._expires_at:
                self._fetch()
            return self._token

    def invalidate(self, token: Optional[str] = None) -> None:
        """Drop the cached token (only if it is still ``token``, when given)."""
        with self._lock:
            if token is None or token == self._token:
                self._token = None
                self._expires_at = 0.0

    def close(self) -> None:
        self._session.close()

    def _fetch(self) -> None:
        logger.info("Requesting access token from %s", self._token_url)
        try:
            resp = self._session.post(
                self._token_url,
                data={"grant_type": "client_credentials"},
                auth=self._auth,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise TokenError(f"Token request failed: {exc}") from exc

        if resp.status_code != 200:
            raise TokenError(
                f"Token request returned {resp.status_code}: {resp.text[:500]}"
            )
        try:
            body = resp.json()
            token = body["access_token"]
        except (ValueError, KeyError) as exc:
            raise TokenError("Token response did not contain an access_token") from exc

        expires_in = int(body.get("expires_in", DEFAULT_EXPIRES_IN))
        self._token = token
        self._expires_at = self._clock() + max(expires_in - EXPIRY_SKEW_SECONDS, 0)
        logger.info("Obtained access token valid for %ds", expires_in)
