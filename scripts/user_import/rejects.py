"""Rebuild a rejects CSV from the original lines of failed records."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable, Optional

logger = logging.getLogger("user_import.rejects")

HEADER_LINE = 1


def _same_file(a: Path, b: Path) -> bool:
    try:
        return a.exists() and b.exists() and os.path.samefile(a, b)
    except OSError:
        return False


def write_rejects_file(
    source_path: Path,
    rejects_path: Path,
    failed_lines: Iterable[int],
    encoding: str = "utf-8",
) -> Optional[Path]:
    """Copy the header and every failed line of ``source_path`` verbatim.

    Lines are copied as raw text, never re-serialized from parsed fields, so
    an operator only needs to fix the offending cells before re-importing.
    Returns the written path, or None when there was nothing to reject or
    the file could not be written.
    """
    wanted = set(failed_lines)
    if not wanted:
        return None
    wanted.add(HEADER_LINE)

    source_path = Path(source_path)
    rejects_path = Path(rejects_path)

    if rejects_path.exists() and not _same_file(source_path, rejects_path):
        logger.info("Deleting existing rejects file: %s", rejects_path.resolve())
        try:
            rejects_path.unlink()
        except OSError as exc:
            logger.warning("Could not delete rejects file %s: %s", rejects_path, exc)

    tmp_name: Optional[str] = None
    try:
        rejects_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{rejects_path.name}.", dir=rejects_path.parent
        )
        with open(fd, "w", encoding=encoding, newline="") as out, \
                source_path.open("r", encoding=encoding, newline="") as src:
            for line_number, line in enumerate(src, start=1):
                if line_number not in wanted:
                    continue
                out.write(line)
                if not line.endswith(("\n", "\r")):
                    out.write("\n")
        os.replace(tmp_name, rejects_path)
        tmp_name = None
    except (OSError, UnicodeError) as exc:
        logger.error("Encountered error creating rejects file %s: %s", rejects_path, exc, exc_info=True)
        return None
    finally:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)

    logger.info("Wrote %d rejected lines to file: %s", len(wanted) - 1, rejects_path.resolve())
    return rejects_path
