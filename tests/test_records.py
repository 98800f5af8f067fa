"""Record source parsing and the exactly-once dispatcher."""

from __future__ import annotations

import threading
from collections import Counter

import pytest

from scripts.user_import.records import (
    ImportFileError,
    RecordDispatcher,
    read_records,
)


def test_line_numbers_start_after_header(write_csv):
    path = write_csv("username,email\nada,ada@example.com\nbob,bob@example.com\n")

    source = read_records(path)

    assert source.headers == frozenset({"username", "email"})
    assert [r.line_number for r in source.records] == [2, 3]
    assert source.records[0].fields == {"username": "ada", "email": "ada@example.com"}
    assert len(source) == 2


def test_blank_lines_skipped_but_counted(write_csv):
    path = write_csv("username\nada\n\n\nbob\n")

    source = read_records(path)

    assert [(r.line_number, r.fields["username"]) for r in source.records] == [
        (2, "ada"),
        (5, "bob"),
    ]


def test_quoted_cell_spanning_lines_keeps_its_range(write_csv):
    path = write_csv('username,name.formatted\nada,"Ada\nLovelace"\nbob,Bob\n')

    source = read_records(path)

    first, second = source.records
    assert (first.line_number, first.end_line) == (2, 3)
    assert list(first.lines) == [2, 3]
    assert first.fields["name.formatted"] == "Ada\nLovelace"
    assert (second.line_number, second.end_line) == (4, 4)


def test_header_names_trimmed_and_bom_ignored(write_csv):
    path = write_csv("\ufeffusername , email\nada,ada@example.com\n")

    source = read_records(path)

    assert source.headers == frozenset({"username", "email"})
    assert source.records[0].fields["username"] == "ada"


def test_short_rows_are_flagged(write_csv):
    path = write_csv("username,email\nada\nbob,bob@example.com,extra\ncy,cy@example.com\n")

    source = read_records(path)

    assert [r.malformed for r in source.records] == [True, False, False]


def test_cells_past_the_header_are_ignored(write_csv):
    source = read_records(write_csv("username,email\nada,ada@example.com,\n"))

    (record,) = source.records
    assert not record.malformed
    assert record.fields == {"username": "ada", "email": "ada@example.com"}


def test_unknown_encoding_is_fatal(write_csv):
    with pytest.raises(ImportFileError, match="no-such-codec"):
        read_records(write_csv("username\nada\n"), encoding="no-such-codec")


def test_header_only_file_has_no_records(write_csv):
    source = read_records(write_csv("username,email\n"))

    assert source.records == ()
    assert source.headers == frozenset({"username", "email"})


def test_missing_file_is_fatal(tmp_path):
    with pytest.raises(ImportFileError):
        read_records(tmp_path / "nope.csv")


def test_empty_file_is_fatal(write_csv):
    with pytest.raises(ImportFileError, match="empty"):
        read_records(write_csv(""))


def test_undecodable_file_is_fatal(tmp_path):
    path = tmp_path / "latin1.csv"
    path.write_bytes("username\nJosé\n".encode("latin-1"))

    with pytest.raises(ImportFileError):
        read_records(path, encoding="utf-8")

    assert read_records(path, encoding="latin-1").records[0].fields["username"] == "José"


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

def _drain(dispatcher: RecordDispatcher, workers: int) -> list[int]:
    seen: list[int] = []
    lock = threading.Lock()
    barrier = threading.Barrier(workers)

    def worker() -> None:
        barrier.wait()
        while True:
            record = dispatcher.next_record()
            if record is None:
                return
            with lock:
                seen.append(record.line_number)

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return seen


@pytest.mark.parametrize("workers", [1, 2, 7, 50, 300])
def test_dispatcher_delivers_every_record_exactly_once(write_csv, workers):
    rows = "\n".join(f"user{i}" for i in range(300))
    source = read_records(write_csv(f"username\n{rows}\n"))

    dispatcher = RecordDispatcher(source)
    seen = _drain(dispatcher, workers)

    counts = Counter(seen)
    assert len(seen) == 300
    assert set(counts.values()) == {1}
    assert sorted(seen) == list(range(2, 302))
    assert dispatcher.dispatched == 300


def test_dispatcher_keeps_signalling_end_of_stream(write_csv):
    dispatcher = RecordDispatcher(read_records(write_csv("username\nada\n")))

    assert dispatcher.next_record().fields["username"] == "ada"
    assert dispatcher.next_record() is None
    assert dispatcher.next_record() is None
