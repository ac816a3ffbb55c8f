"""Dense Tick Format (DTF): stores the updates of one symbol in a single file.

Updates are stored in batches. Each batch starts with a reference record
holding an absolute timestamp and sequence number, followed by compact delta
records relative to that reference (see data.dtf.layout for the bytes).

This module is the public interface:

1. encode: write a new file from sorted updates
2. decode: read every update back
3. decode_range: stream the updates between two timestamps
4. read_header / read_first_update / info: cheap inspection without a full scan
5. append: add newer updates to the end of an existing file

Writes never modify a file in place. They go to a temporary file in the same
folder that replaces the target only after it's flushed and synced, so a
failed call leaves the old file (or no file) behind.

There is no locking. Callers must not write and read the same path at the
same time.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Generator, Iterable, List, Optional

from data.dtf.append import AppendResult, plan_append, write_append
from data.dtf.decoder import decode_main, iter_updates, read_first, scan_references
from data.dtf.encoder import BoundaryRule, write_main
from data.dtf.errors import IOFailure
from data.dtf.files import atomic_write
from data.dtf.header import DTFHeader
from data.dtf.header import read_header as _read_header
from data.dtf.header import write_header
from helpers.types.updates import Symbol, Timestamp, Update

logger = logging.getLogger(__name__)


@dataclass
class DTFInfo:
    """Summary of a file that only needs the header and the reference records"""

    symbol: Symbol
    num_records: int
    max_ts: Timestamp
    min_ts: Optional[Timestamp]
    num_batches: int
    size_bytes: int


@contextmanager
def _io_errors(action: str, path: Path):
    """Turns OSErrors into IOFailure and keeps the original as the cause"""
    try:
        yield
    except OSError as e:
        raise IOFailure(f"Could not {action} {path}: {e}") from e


def encode(
    path: Path | str,
    symbol: str,
    updates: Iterable[Update],
    rule: BoundaryRule = BoundaryRule.GUARDED,
) -> DTFHeader:
    """Writes the updates to a new file at path, replacing any file there.

    The updates must already be sorted by sequence number (see
    helpers.types.updates.sort_updates). Raises OrderingViolation otherwise,
    and FormatViolation if the symbol is more than 9 bytes."""
    path = Path(path)
    updates = list(updates)
    with _io_errors("encode", path):
        with atomic_write(path) as f:
            header = write_header(f, symbol, updates)
            batches = write_main(f, updates, rule)
    logger.info(
        "Encoded %s updates for %s in %s batches to %s",
        len(updates),
        header.bare_symbol,
        len(batches),
        path,
    )
    return header


def read_header(path: Path | str) -> DTFHeader:
    path = Path(path)
    with _io_errors("read header of", path):
        with open(path, "rb") as f:
            return _read_header(f)


def decode(path: Path | str) -> List[Update]:
    """Reads every update in the file, in the order they were written.

    A zero length file has no updates. Raises FormatViolation for a bad magic
    value or a truncated file, and never returns partial data."""
    path = Path(path)
    with _io_errors("decode", path):
        if path.stat().st_size == 0:
            return []
        with open(path, "rb") as f:
            header = _read_header(f)
            updates = decode_main(f, header.num_records)
    logger.debug("Decoded %s updates from %s", len(updates), path)
    return updates


def decode_range(
    path: Path | str,
    start_ts: Optional[int] = None,
    end_ts: Optional[int] = None,
) -> Generator[Update, None, None]:
    """Yields updates with start_ts <= ts <= end_ts. Either bound is optional.
    A zero length file yields nothing"""
    path = Path(path)
    with _io_errors("decode", path):
        if path.stat().st_size == 0:
            if end_ts is not None and start_ts is not None and end_ts < start_ts:
                raise ValueError("End ts must be larger than start ts")
            return
        with open(path, "rb") as f:
            _read_header(f)
            yield from iter_updates(f, start_ts, end_ts)


def read_first_update(path: Path | str) -> Optional[Update]:
    """Returns the first update (the one with the smallest sequence number)
    by decoding only the first batch. None if the file has no updates"""
    path = Path(path)
    with _io_errors("read", path):
        if path.stat().st_size == 0:
            return None
        with open(path, "rb") as f:
            _read_header(f)
            return read_first(f)


def info(path: Path | str) -> DTFInfo:
    """A zero length file is reported as an empty file with a blank symbol"""
    path = Path(path)
    with _io_errors("read", path):
        if path.stat().st_size == 0:
            return DTFInfo(
                symbol=Symbol(""),
                num_records=0,
                max_ts=Timestamp(0),
                min_ts=None,
                num_batches=0,
                size_bytes=0,
            )
        with open(path, "rb") as f:
            header = _read_header(f)
            num_batches = sum(1 for _ in scan_references(f))
            first = read_first(f)
        size_bytes = path.stat().st_size
    return DTFInfo(
        symbol=header.symbol,
        num_records=header.num_records,
        max_ts=header.max_ts,
        min_ts=first.timestamp if first is not None else None,
        num_batches=num_batches,
        size_bytes=size_bytes,
    )


def append(
    path: Path | str,
    updates: Iterable[Update],
    rule: BoundaryRule = BoundaryRule.GUARDED,
) -> AppendResult:
    """Adds updates to the end of an existing file and rewrites its header.

    The new updates don't need to be sorted. Raises OrderingViolation (and
    leaves the file untouched) unless every new timestamp is greater than the
    file's max ts and every new sequence number is greater than the file's
    last sequence number."""
    path = Path(path)
    with _io_errors("append to", path):
        with open(path, "rb") as f:
            plan = plan_append(f, updates, rule)
        if len(plan.updates) > 0:
            with atomic_write(path, copy_from=path) as f:
                write_append(f, plan)
    result = AppendResult(
        path=path,
        num_appended=len(plan.updates),
        num_records=plan.new_num_records,
        max_ts=plan.new_max_ts,
        num_batches_written=len(plan.batches),
    )
    logger.info(
        "Appended %s updates to %s, it now has %s records",
        result.num_appended,
        path,
        result.num_records,
    )
    return result
