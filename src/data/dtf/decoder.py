"""Reads batches from the main section of a DTF file.

A clean end of file where the next reference record would start is the
normal end of the data. Running out of bytes anywhere inside a batch means
the file is truncated, which is a FormatViolation."""

import io
import logging
from typing import BinaryIO, Generator, List, Optional, Tuple

from data.dtf.batch import Batch, Reference
from data.dtf.errors import FormatViolation
from data.dtf.header import read_exact
from data.dtf.layout import (
    DELTA_FLAG,
    DELTA_SIZE,
    DELTA_STRUCT,
    FLAG_STRUCT,
    LAYOUT,
    REFERENCE_BODY_STRUCT,
    REFERENCE_FLAG,
)
from helpers.types.updates import (
    Float32,
    SequenceNumber,
    Timestamp,
    Update,
)

logger = logging.getLogger(__name__)


def _to_bool(value: int, field_name: str) -> bool:
    if value not in (0, 1):
        raise FormatViolation(f"Invalid {field_name} byte: {value}")
    return value == 1


def read_reference(f: BinaryIO) -> Optional[Reference]:
    """Reads a reference record at the current position.

    Returns None if the file ends right where the record would start."""
    offset = f.tell()
    flag_byte = f.read(FLAG_STRUCT.size)
    if len(flag_byte) == 0:
        return None
    (flag,) = FLAG_STRUCT.unpack(flag_byte)
    if flag != REFERENCE_FLAG:
        raise FormatViolation(
            f"Expected a reference record at offset {offset}, got flag {flag}"
        )
    try:
        ref_ts, ref_seq, batch_len = REFERENCE_BODY_STRUCT.unpack(
            read_exact(f, REFERENCE_BODY_STRUCT.size)
        )
    except EOFError as e:
        raise FormatViolation(f"Truncated reference record at offset {offset}") from e
    return Reference(Timestamp(ref_ts), SequenceNumber(ref_seq), batch_len)


def _decode_delta(
    reference: Reference,
    flag: int,
    dts: int,
    dseq: int,
    is_trade: int,
    is_bid: int,
    price: float,
    size: float,
) -> Update:
    if flag != DELTA_FLAG:
        raise FormatViolation(f"Expected a delta record, got flag {flag}")
    try:
        timestamp = Timestamp(reference.ref_ts + dts)
        sequence = SequenceNumber(reference.ref_seq + dseq)
    except ValueError as e:
        raise FormatViolation(
            f"Delta ts {dts} / seq {dseq} overflows reference "
            + f"ts {reference.ref_ts} / seq {reference.ref_seq}"
        ) from e
    return Update(
        timestamp=timestamp,
        sequence=sequence,
        is_trade=_to_bool(is_trade, "is_trade"),
        is_bid=_to_bool(is_bid, "is_bid"),
        price=Float32(price),
        size=Float32(size),
    )


def read_batch_updates(f: BinaryIO, reference: Reference) -> List[Update]:
    """Reads the delta records that follow a reference and returns the
    absolute updates"""
    logger.debug("Reading batch of %s records", reference.batch_len)
    try:
        payload = read_exact(f, reference.batch_len * DELTA_SIZE)
    except EOFError as e:
        raise FormatViolation(
            f"Truncated batch: reference at ts {reference.ref_ts}, "
            + f"seq {reference.ref_seq} promises {reference.batch_len} records"
        ) from e
    return [
        _decode_delta(reference, *fields)
        for fields in DELTA_STRUCT.iter_unpack(payload)
    ]


def read_one_batch(f: BinaryIO) -> Optional[Batch]:
    """Reads the batch at the current position, None at the end of the data"""
    reference = read_reference(f)
    if reference is None:
        return None
    return Batch(
        ref_ts=reference.ref_ts,
        ref_seq=reference.ref_seq,
        updates=read_batch_updates(f, reference),
    )


def iter_batches(f: BinaryIO) -> Generator[Batch, None, None]:
    """Yields every batch in file order, starting from the main section"""
    f.seek(LAYOUT.main_offset)
    while (batch := read_one_batch(f)) is not None:
        yield batch


def iter_updates(
    f: BinaryIO,
    start_ts: Optional[int] = None,
    end_ts: Optional[int] = None,
) -> Generator[Update, None, None]:
    """Yields updates with ts >= start_ts and <= end_ts in file order

    If no start_ts / end_ts passed in, it will start from beginning /
    go to the end. Timestamps are not the sort key, so the whole file is
    scanned even when end_ts is set."""
    if end_ts is not None and start_ts is not None and (end_ts < start_ts):
        raise ValueError("End ts must be larger than start ts")
    for batch in iter_batches(f):
        for update in batch.updates:
            if start_ts is not None and update.timestamp < start_ts:
                continue
            if end_ts is not None and update.timestamp > end_ts:
                continue
            yield update


def decode_main(f: BinaryIO, expected_records: Optional[int] = None) -> List[Update]:
    """Decodes every update. If expected_records is passed in (the count from
    the header), the number of decoded updates must match it"""
    updates: List[Update] = list(iter_updates(f))
    if expected_records is not None and len(updates) != expected_records:
        raise FormatViolation(
            f"Header says {expected_records} records but main section "
            + f"holds {len(updates)}"
        )
    return updates


def read_first_batch(f: BinaryIO) -> Optional[Batch]:
    f.seek(LAYOUT.main_offset)
    return read_one_batch(f)


def read_first(f: BinaryIO) -> Optional[Update]:
    """Returns the first update without decoding the whole file. None if the
    file has no updates"""
    for batch in iter_batches(f):
        if len(batch.updates) > 0:
            return batch.updates[0]
    return None


def read_min_ts(f: BinaryIO) -> Optional[Timestamp]:
    first = read_first(f)
    return first.timestamp if first is not None else None


def scan_references(f: BinaryIO) -> Generator[Tuple[int, Reference], None, None]:
    """Yields (offset, reference) for every batch. Skips over the delta
    records without decoding them"""
    file_size = f.seek(0, io.SEEK_END)
    f.seek(LAYOUT.main_offset)
    while True:
        offset = f.tell()
        reference = read_reference(f)
        if reference is None:
            return
        batch_end = f.tell() + reference.batch_len * DELTA_SIZE
        if batch_end > file_size:
            raise FormatViolation(
                f"Truncated batch at offset {offset}: needs {batch_end} bytes, "
                + f"file has {file_size}"
            )
        f.seek(batch_end)
        yield offset, reference
