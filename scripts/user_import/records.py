"""CSV record source and the thread-safe dispatcher that feeds the workers."""

from __future__ import annotations

import csv
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

logger = logging.getLogger("user_import.records")

_BOM = "\ufeff"


class ImportFileError(Exception):
    """The input file cannot be read or parsed. Fatal for the run."""


@dataclass(frozen=True)
class Record:
    """One CSV data row tied to the physical lines it was read from.

    ``line_number`` is the 1-based line the record starts on (the header is
    line 1). ``end_line`` differs only when a quoted cell spans lines.
    """

    line_number: int
    end_line: int
    fields: Mapping[str, str] = field(default_factory=dict)
    malformed: bool = False

    @property
    def lines(self) -> range:
        return range(self.line_number, self.end_line + 1)


@dataclass(frozen=True)
class RecordSource:
    path: Path
    encoding: str
    headers: frozenset[str]
    records: tuple[Record, ...]

    def __len__(self) -> int:
        return len(self.records)


def read_records(path: Path, encoding: str = "utf-8") -> RecordSource:
    """Parse the whole CSV file into records keyed by header name.

    Empty lines are skipped but still counted, so line numbers always point
    at the physical line in the file. A row with fewer fields than the header
    is kept and flagged ``malformed``; cells past the last header are ignored.
    """
    path = Path(path)
    try:
        with path.open("r", encoding=encoding, newline="") as fh:
            reader = csv.reader(fh)
            try:
                header_row = next(reader)
            except StopIteration:
                raise ImportFileError(f"CSV file is empty: {path}") from None

            if header_row and header_row[0].startswith(_BOM):
                header_row[0] = header_row[0][len(_BOM):]
            header_list = [h.strip() for h in header_row]
            if not any(header_list):
                raise ImportFileError(f"CSV file has no header line: {path}")

            records: list[Record] = []
            last_line = reader.line_num
            for row in reader:
                start, last_line = last_line + 1, reader.line_num
                if not row:
                    continue
                records.append(Record(
                    line_number=start,
                    end_line=last_line,
                    fields=dict(zip(header_list, row)),
                    malformed=len(row) < len(header_list),
                ))
    except ImportFileError:
        raise
    except (OSError, UnicodeDecodeError, LookupError, csv.Error) as exc:
        raise ImportFileError(f"Could not read CSV file {path}: {exc}") from exc

    logger.info("Read %d records from %s", len(records), path)
    return RecordSource(
        path=path,
        encoding=encoding,
        headers=frozenset(h for h in header_list if h),
        records=tuple(records),
    )


class RecordDispatcher:
    """Hands out each record of a source to exactly one caller."""

    def __init__(self, source: RecordSource) -> None:
        self._records = iter(source.records)
        self._lock = threading.Lock()
        self._dispatched = 0

    @property
    def dispatched(self) -> int:
        return self._dispatched

    def next_record(self) -> Optional[Record]:
        """Return the next record, or None once the source is exhausted."""
        with self._lock:
            record = next(self._records, None)
            if record is not None:
                self._dispatched += 1
            return record
