"""PingOne users API client used by the import workers."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional, Protocol

import requests

from scripts.user_import.auth import TokenProvider
from scripts.user_import.transformer import redact_payload

logger = logging.getLogger("user_import.client")

IMPORT_CONTENT_TYPE = "application/vnd.pingidentity.user.import+json"


class SubmissionError(RuntimeError):
    """The users API answered a create-user call with a non-2xx status."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"Create user failed with HTTP {status_code}")
        self.status_code = status_code
        self.body = body


class UserClient(Protocol):
    def create_user(self, payload: dict[str, Any]) -> Any: ...

    def close(self) -> None: ...


class PingOneUserClient:
    """One per worker thread: owns its own requests.Session."""

    def __init__(
        self,
        users_url: str,
        tokens: TokenProvider,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._url = users_url
        self._tokens = tokens
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({
            "Content-Type": IMPORT_CONTENT_TYPE,
            "Accept": "application/json",
        })

    def create_user(self, payload: dict[str, Any]) -> Any:
        """POST one user. Raises SubmissionError on any non-2xx response."""
        token = self._tokens.get_token()
        resp = self._send(payload, token)
        if resp.status_code == 401:
            # Token expired or revoked server-side: renew once and resend
            logger.info("Access token rejected, renewing")
            self._tokens.invalidate(token)
            resp = self._send(payload, self._tokens.get_token())

        if not 200 <= resp.status_code < 300:
            raise SubmissionError(resp.status_code, resp.text)
        try:
            return resp.json()
        except ValueError:
            return None

    def _send(self, payload: dict[str, Any], token: str) -> requests.Response:
        return self._session.post(
            self._url,
            data=json.dumps(payload),
            headers={"Authorization": f"Bearer {token}"},
            timeout=self._timeout,
        )

    def close(self) -> None:
        self._session.close()


class DryRunUserClient:
    """Logs payloads instead of sending them."""

    def create_user(self, payload: dict[str, Any]) -> Any:
        logger.info(
            "Dry run, would create user: %s",
            json.dumps(redact_payload(payload), sort_keys=True),
        )
        return None

    def close(self) -> None:
        pass
