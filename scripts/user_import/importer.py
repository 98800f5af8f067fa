"""Concurrent import run: worker pool, outcome tracking, rejects file."""

from __future__ import annotations

import enum
import json
import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from scripts.user_import.auth import TokenProvider
from scripts.user_import.client import (
    DryRunUserClient,
    PingOneUserClient,
    SubmissionError,
    UserClient,
)
from scripts.user_import.config import ImportConfig
from scripts.user_import.rate_limiter import RateLimiter
from scripts.user_import.records import Record, RecordDispatcher, read_records
from scripts.user_import.rejects import write_rejects_file
from scripts.user_import.stats import ImportStats
from scripts.user_import.transformer import build_user_payload, redact_payload

logger = logging.getLogger("user_import.importer")

ClientFactory = Callable[[], UserClient]

PROGRESS_EVERY = 10


class ImportRunError(RuntimeError):
    """The run could not start its workers. Fatal, raised before any submission."""


class RunState(enum.Enum):
    INITIALIZING = "initializing"
    RUNNING = "running"
    AGGREGATING = "aggregating"
    FINALIZING = "finalizing"
    COMPLETED = "completed"


@dataclass(frozen=True)
class ImportResult:
    run_id: str
    total: int
    success: int
    error: int
    failed_lines: tuple[int, ...]
    rejects_file: Optional[Path]
    duration_seconds: float
    state: RunState

    def render_one_line(self) -> str:
        return (
            f"total={self.total} success={self.success} error={self.error} "
            f"rejects={self.rejects_file or 'none'} "
            f"duration={self.duration_seconds:.1f}s"
        )


class UserImporter:
    """Runs one import of ``config.csv_file`` into PingOne.

    Workers pull records from a shared dispatcher, wait on the shared rate
    limiter, and submit one create-user call per record. A failed record
    never stops its worker: it is logged, counted, and its lines end up in
    the rejects file written after every worker has finished.
    """

    def __init__(
        self,
        config: ImportConfig,
        client_factory: Optional[ClientFactory] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ) -> None:
        self.config = config
        self.run_id = str(uuid.uuid4())
        self.state = RunState.INITIALIZING
        self.stats = ImportStats()
        self._rate_limiter = rate_limiter or RateLimiter(config.rate_per_second)
        self._tokens: Optional[TokenProvider] = None
        self._client_factory = client_factory or self._default_client_factory()
        self._started = 0.0

    def _default_client_factory(self) -> ClientFactory:
        config = self.config
        if config.dry_run:
            return DryRunUserClient

        self._tokens = TokenProvider(
            config.token_url,
            config.client_id,
            config.client_secret,
            timeout=config.request_timeout,
        )
        tokens = self._tokens

        def factory() -> UserClient:
            return PingOneUserClient(config.users_url, tokens, timeout=config.request_timeout)

        return factory

    def _set_state(self, state: RunState) -> None:
        self.state = state
        logger.debug("Run state %s", state.value, extra={"run_id": self.run_id, "state": state.value})

    def run(self) -> ImportResult:
        """Import every record. Raises ImportFileError or ImportRunError before
        any submission if the input cannot be read or the workers cannot start."""
        start = time.monotonic()
        self._set_state(RunState.INITIALIZING)
        try:
            source = read_records(self.config.csv_file, self.config.encoding)
            logger.info(
                "Importing users from CSV file: %s",
                Path(self.config.csv_file).resolve(),
                extra={"run_id": self.run_id},
            )

            dispatcher = RecordDispatcher(source)
            num_workers = max(1, min(self.config.num_threads, len(source)))
            clients = self._open_clients(num_workers)

            self._set_state(RunState.RUNNING)
            self._started = time.monotonic()
            with ThreadPoolExecutor(
                max_workers=num_workers, thread_name_prefix="import-worker"
            ) as executor:
                futures = [
                    executor.submit(self._worker, client, dispatcher, source.headers)
                    for client in clients
                ]
                for future in futures:
                    try:
                        future.result()
                    except Exception:
                        logger.error(
                            "Encountered error waiting for worker termination",
                            exc_info=True,
                            extra={"run_id": self.run_id},
                        )
        finally:
            if self._tokens is not None:
                self._tokens.close()

        self._set_state(RunState.AGGREGATING)
        snapshot = self.stats.snapshot()
        logger.info(
            "Successfully imported %d users with %d errors.",
            snapshot.success,
            snapshot.error,
            extra={
                "run_id": self.run_id,
                "total": snapshot.total,
                "success": snapshot.success,
                "error": snapshot.error,
            },
        )

        self._set_state(RunState.FINALIZING)
        rejects_file = None
        if snapshot.failed_lines:
            rejects_file = write_rejects_file(
                source.path,
                self.config.rejects_file,
                snapshot.failed_lines,
                encoding=source.encoding,
            )

        self._set_state(RunState.COMPLETED)
        return ImportResult(
            run_id=self.run_id,
            total=snapshot.total,
            success=snapshot.success,
            error=snapshot.error,
            failed_lines=tuple(sorted(snapshot.failed_lines)),
            rejects_file=rejects_file,
            duration_seconds=round(time.monotonic() - start, 3),
            state=self.state,
        )

    # ------------------------------------------------------------------
    # Worker loop
    # ------------------------------------------------------------------

    def _open_clients(self, count: int) -> list[UserClient]:
        """One client per worker, all opened before any record is dispatched."""
        clients: list[UserClient] = []
        try:
            for _ in range(count):
                clients.append(self._client_factory())
        except Exception as exc:
            for client in clients:
                client.close()
            raise ImportRunError(f"Could not create API client for import workers: {exc}") from exc
        return clients

    def _worker(self, client: UserClient, dispatcher: RecordDispatcher, headers: frozenset[str]) -> None:
        try:
            while True:
                record = dispatcher.next_record()
                if record is None:
                    return
                self._rate_limiter.acquire()
                total = self._process(client, record, headers)
                if total % PROGRESS_EVERY == 0:
                    self._log_progress(total)
        finally:
            client.close()

    def _process(self, client: UserClient, record: Record, headers: frozenset[str]) -> int:
        if record.malformed:
            logger.error(
                "Skipping user on line %d: field count does not match the header",
                record.line_number,
                extra={"run_id": self.run_id, "line_number": record.line_number},
            )
            return self.stats.record_failure(record.lines)

        payload = None
        try:
            payload = build_user_payload(
                record.fields,
                headers,
                self.config.population_id,
                force_password_change=self.config.force_password_change,
            )
            client.create_user(payload)
        except Exception as exc:
            self._log_failure(record, payload, exc)
            return self.stats.record_failure(record.lines)
        return self.stats.record_success()

    def _log_failure(self, record: Record, payload: Optional[dict], exc: Exception) -> None:
        extra = {"run_id": self.run_id, "line_number": record.line_number}
        user = json.dumps(redact_payload(payload), sort_keys=True) if payload else "-"
        if isinstance(exc, SubmissionError):
            extra["status_code"] = exc.status_code
            logger.error(
                "Encountered error importing user on line %d: %s\nError response:\n%s",
                record.line_number,
                user,
                exc.body,
                extra=extra,
            )
            return
        logger.error(
            "Encountered error importing user on line %d: %s",
            record.line_number,
            user,
            exc_info=exc,
            extra=extra,
        )

    def _log_progress(self, total: int) -> None:
        elapsed = time.monotonic() - self._started
        rate = total / elapsed if elapsed > 0 else float(total)
        logger.info(
            "Processed %d users at an average of %.1f per second",
            total,
            rate,
            extra={"run_id": self.run_id, "total": total, "rate": round(rate, 1)},
        )
