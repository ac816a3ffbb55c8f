"""Appends updates to the end of an existing DTF file.

New updates can only go after the existing ones. Every new timestamp must
be larger than the max ts in the header, and every new sequence number must
be larger than the last sequence number in the file (sequence is the sort
key of the file). The plan is built and checked before anything is written.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Iterable, List, Optional

from data.dtf.batch import Batch, Reference
from data.dtf.decoder import read_batch_updates, read_reference, scan_references
from data.dtf.encoder import BoundaryRule, plan_batches, write_batches
from data.dtf.errors import FormatViolation, OrderingViolation
from data.dtf.header import DTFHeader, read_header, write_metadata
from data.dtf.layout import LAYOUT
from helpers.types.updates import (
    SequenceNumber,
    Timestamp,
    Update,
    get_max_ts,
    sort_updates,
)

logger = logging.getLogger(__name__)


@dataclass
class AppendPlan:
    """Everything we need to extend a file

    header: header of the existing file
    end_offset: where the existing main section ends (new batches go here)
    existing_max_seq: last sequence number in the file, None if it's empty
    updates: the new updates, sorted
    batches: the new updates split into batches
    """

    header: DTFHeader
    end_offset: int
    existing_max_seq: Optional[SequenceNumber]
    updates: List[Update] = field(default_factory=list)
    batches: List[Batch] = field(default_factory=list)

    @property
    def new_num_records(self) -> int:
        return self.header.num_records + len(self.updates)

    @property
    def new_max_ts(self) -> Timestamp:
        return Timestamp(max(self.header.max_ts, get_max_ts(self.updates)))


@dataclass
class AppendResult:
    path: Path
    num_appended: int
    num_records: int
    max_ts: Timestamp
    num_batches_written: int


def _read_existing_max_seq(
    f: BinaryIO, header: DTFHeader
) -> tuple[int, Optional[SequenceNumber]]:
    """Walks the references to find where the data ends and decodes only the
    last batch to get the last sequence number"""
    num_records = 0
    last: Optional[tuple[int, Reference]] = None
    for offset, reference in scan_references(f):
        num_records += reference.batch_len
        last = (offset, reference)
    end_offset = f.tell()
    if num_records != header.num_records:
        raise FormatViolation(
            f"Header says {header.num_records} records but main section "
            + f"holds {num_records}"
        )
    if last is None:
        return max(end_offset, LAYOUT.main_offset), None

    last_offset, _ = last
    f.seek(last_offset)
    reference = read_reference(f)
    if reference is None:
        raise FormatViolation(f"Missing reference record at offset {last_offset}")
    last_batch_updates = read_batch_updates(f, reference)
    if len(last_batch_updates) == 0:
        # Deltas are >= 0, so the reference is the smallest the batch can hold
        return end_offset, reference.ref_seq
    return end_offset, last_batch_updates[-1].sequence


def plan_append(
    f: BinaryIO,
    updates: Iterable[Update],
    rule: BoundaryRule = BoundaryRule.GUARDED,
) -> AppendPlan:
    """Checks that the updates can go at the end of the file and plans the
    batches. Raises OrderingViolation if they can't"""
    header = read_header(f)
    end_offset, existing_max_seq = _read_existing_max_seq(f, header)
    new_updates = sort_updates(updates)
    plan = AppendPlan(
        header=header, end_offset=end_offset, existing_max_seq=existing_max_seq
    )
    if len(new_updates) == 0:
        return plan

    if header.num_records > 0:
        new_min_ts = min(update.timestamp for update in new_updates)
        if new_min_ts <= header.max_ts:
            raise OrderingViolation(
                "Cannot append data! "
                + f"New min ts {new_min_ts} must be greater than "
                + f"existing max ts {header.max_ts}."
            )
        new_min_seq = new_updates[0].sequence
        if existing_max_seq is not None and new_min_seq <= existing_max_seq:
            raise OrderingViolation(
                "Cannot append data! "
                + f"New min seq {new_min_seq} must be greater than "
                + f"existing max seq {existing_max_seq}."
            )

    plan.updates = new_updates
    plan.batches = plan_batches(new_updates, rule)
    return plan


def write_append(f: BinaryIO, plan: AppendPlan):
    """Writes the planned batches after the existing data, then rewrites the
    header. The header is the last thing we touch"""
    f.seek(plan.end_offset)
    write_batches(f, plan.batches)
    f.truncate()
    write_metadata(f, plan.new_num_records, plan.new_max_ts)
    logger.debug(
        "Appended %s records in %s batches at offset %s",
        len(plan.updates),
        len(plan.batches),
        plan.end_offset,
    )
