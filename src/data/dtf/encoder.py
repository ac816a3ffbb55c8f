"""Splits sorted updates into batches and writes them to the main section.

A batch starts at the first update that doesn't fit in the previous one.
An update fits while ts - ref_ts < 65535 and seq - ref_seq < 255, and the
batch has fewer than 65535 records.

There are two ways to read the rule for starting a new batch:

GUARDED:             count != 0 and (ts overflows or seq overflows)
UNGUARDED_SEQUENCE: (count != 0 and ts overflows) or seq overflows

count is only 0 while we look at the update that anchors the batch, and
that update never overflows its own reference. So for input that passes
the ordering checks below both rules cut the same batches. GUARDED is the
default.
"""

import logging
from enum import Enum
from typing import BinaryIO, List, Sequence

from data.dtf.batch import Batch
from data.dtf.errors import OrderingViolation
from data.dtf.layout import LAYOUT
from helpers.types.updates import Update

logger = logging.getLogger(__name__)


class BoundaryRule(str, Enum):
    GUARDED = "guarded"
    UNGUARDED_SEQUENCE = "unguarded_sequence"


def needs_new_batch(
    batch: Batch, update: Update, rule: BoundaryRule = BoundaryRule.GUARDED
) -> bool:
    count = len(batch.updates)
    if batch.is_full():
        return True
    if rule == BoundaryRule.GUARDED:
        return count != 0 and (
            batch.ts_overflows(update) or batch.seq_overflows(update)
        )
    if rule == BoundaryRule.UNGUARDED_SEQUENCE:
        ts_overflows = count != 0 and batch.ts_overflows(update)
        return ts_overflows or batch.seq_overflows(update)
    raise ValueError(f"Unknown boundary rule {rule}")


def plan_batches(
    updates: Sequence[Update], rule: BoundaryRule = BoundaryRule.GUARDED
) -> List[Batch]:
    """Partitions the updates into batches without writing anything.

    Raises OrderingViolation if the sequence numbers go down, or if an update
    has a timestamp lower than the reference of its batch (the delta would be
    negative)."""
    if len(updates) == 0:
        return []
    batches: List[Batch] = []
    batch = Batch.anchored_at(updates[0])
    previous = updates[0]
    for i, update in enumerate(updates):
        if update.sequence < previous.sequence:
            raise OrderingViolation(
                "Updates must be sorted by sequence number. "
                + f"Update {i} has sequence {update.sequence} "
                + f"after sequence {previous.sequence}."
            )
        if needs_new_batch(batch, update, rule):
            batches.append(batch)
            batch = Batch.anchored_at(update)
        if update.timestamp < batch.ref_ts:
            raise OrderingViolation(
                f"Update {i} has timestamp {update.timestamp}, which is before "
                + f"the reference timestamp {batch.ref_ts} of its batch."
            )
        batch.updates.append(update)
        previous = update
    # The last batch is always written, even if it's partially filled
    batches.append(batch)
    return batches


def write_batches(f: BinaryIO, batches: Sequence[Batch]) -> int:
    """Writes the batches at the current position. Returns the number of
    bytes written"""
    num_bytes = 0
    for batch in batches:
        b = batch.to_bytes()
        f.write(b)
        num_bytes += len(b)
        logger.debug(
            "Wrote batch ts %s seq %s with %s records",
            batch.ref_ts,
            batch.ref_seq,
            len(batch.updates),
        )
    return num_bytes


def write_main(
    f: BinaryIO,
    updates: Sequence[Update],
    rule: BoundaryRule = BoundaryRule.GUARDED,
) -> List[Batch]:
    """Plans the batches first, then writes them from the start of the main
    section. Nothing is written if the updates are out of order"""
    batches = plan_batches(updates, rule)
    f.seek(LAYOUT.main_offset)
    write_batches(f, batches)
    return batches
