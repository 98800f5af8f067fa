"""Shared fixtures: CSV files on disk, run configs, and an in-process fake API."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from scripts.user_import.client import SubmissionError
from scripts.user_import.config import ENV_VARS, ImportConfig

POPULATION_ID = "pop-0001"
ENVIRONMENT_ID = "env-0001"


class FakeUserApi:
    """Stands in for PingOne: records every payload, fails on demand.

    ``factory`` is passed to UserImporter as its client factory; each
    worker gets its own FakeUserClient sharing this API's state.
    """

    def __init__(
        self,
        fail_when: Optional[Callable[[dict], bool]] = None,
        status_code: int = 422,
        error: Optional[Exception] = None,
    ) -> None:
        self.fail_when = fail_when or (lambda payload: False)
        self.status_code = status_code
        self.error = error
        self.payloads: list[dict] = []
        self.clients: list[FakeUserClient] = []
        self._lock = threading.Lock()

    def factory(self) -> "FakeUserClient":
        client = FakeUserClient(self)
        with self._lock:
            self.clients.append(client)
        return client

    def submit(self, payload: dict) -> Any:
        with self._lock:
            self.payloads.append(payload)
        if self.fail_when(payload):
            if self.error is not None:
                raise self.error
            raise SubmissionError(
                self.status_code,
                '{"code":"INVALID_DATA","message":"The request could not be completed."}',
            )
        return {"id": f"user-{len(self.payloads)}"}

    @property
    def usernames(self) -> list[str]:
        return [p.get("username") for p in self.payloads]


class FakeUserClient:
    def __init__(self, api: FakeUserApi) -> None:
        self.api = api
        self.closed = False

    def create_user(self, payload: dict) -> Any:
        return self.api.submit(payload)

    def close(self) -> None:
        self.closed = True


class NoopRateLimiter:
    def __init__(self) -> None:
        self.acquired = 0
        self._lock = threading.Lock()

    def acquire(self) -> None:
        with self._lock:
            self.acquired += 1


@pytest.fixture()
def write_csv(tmp_path: Path) -> Callable[..., Path]:
    """Write ``text`` verbatim (no newline translation) and return its path."""

    def _write(text: str, name: str = "users.csv") -> Path:
        path = tmp_path / name
        path.write_bytes(text.encode("utf-8"))
        return path

    return _write


@pytest.fixture()
def make_config(tmp_path: Path) -> Callable[..., ImportConfig]:
    def _make(csv_file: Path, **kwargs: Any) -> ImportConfig:
        values: dict[str, Any] = {
            "csv_file": csv_file,
            "rejects_file": tmp_path / "rejects.csv",
            "environment_id": ENVIRONMENT_ID,
            "population_id": POPULATION_ID,
            "client_id": "client",
            "client_secret": "secret",
            "num_threads": 4,
        }
        values.update(kwargs)
        return ImportConfig(**values)

    return _make


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in ENV_VARS.values():
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr("scripts.user_import.config.load_dotenv", lambda: False)


@pytest.fixture()
def rate_limiter() -> NoopRateLimiter:
    return NoopRateLimiter()


@pytest.fixture(autouse=True)
def _restore_user_import_logger():
    # configure_logging() detaches the tree from the root logger
    yield
    log = logging.getLogger("user_import")
    log.handlers.clear()
    log.propagate = True
    log.setLevel(logging.NOTSET)
