"""Thread-safe outcome counters and the set of lines to reject."""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass
from typing import Iterable


class Outcome(enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class StatsSnapshot:
    total: int
    success: int
    error: int
    failed_lines: frozenset[int]


class ImportStats:
    """Counters updated by every worker under a single lock.

    ``record`` updates total together with success or error, so any
    snapshot satisfies ``total == success + error``.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total = 0
        self._success = 0
        self._error = 0
        self._failed_lines: set[int] = set()

    def record(self, outcome: Outcome, lines: Iterable[int] = ()) -> int:
        """Record one processed user and return the new total."""
        with self._lock:
            if outcome is Outcome.SUCCESS:
                self._success += 1
            else:
                self._error += 1
                self._failed_lines.update(lines)
            self._total += 1
            return self._total

    def record_success(self) -> int:
        return self.record(Outcome.SUCCESS)

    def record_failure(self, lines: Iterable[int]) -> int:
        return self.record(Outcome.FAILURE, lines)

    def snapshot(self) -> StatsSnapshot:
        with self._lock:
            return StatsSnapshot(
                total=self._total,
                success=self._success,
                error=self._error,
                failed_lines=frozenset(self._failed_lines),
            )
