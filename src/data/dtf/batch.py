from dataclasses import dataclass, field
from typing import List

from data.dtf.errors import FormatViolation
from data.dtf.layout import (
    DELTA_FLAG,
    DELTA_STRUCT,
    LAYOUT,
    REFERENCE_FLAG,
    REFERENCE_STRUCT,
)
from helpers.types.updates import SequenceNumber, Timestamp, Update


@dataclass(frozen=True)
class Reference:
    """The record that anchors a batch. Deltas in the batch are relative to
    ref_ts and ref_seq"""

    ref_ts: Timestamp
    ref_seq: SequenceNumber
    batch_len: int

    def to_bytes(self) -> bytes:
        return REFERENCE_STRUCT.pack(
            REFERENCE_FLAG, self.ref_ts, self.ref_seq, self.batch_len
        )


@dataclass
class Batch:
    """A reference and the updates stored as deltas against it"""

    ref_ts: Timestamp
    ref_seq: SequenceNumber
    updates: List[Update] = field(default_factory=list)

    @classmethod
    def anchored_at(cls, update: Update) -> "Batch":
        return cls(ref_ts=update.timestamp, ref_seq=update.sequence)

    @property
    def reference(self) -> Reference:
        return Reference(self.ref_ts, self.ref_seq, len(self.updates))

    def ts_overflows(self, update: Update) -> bool:
        return update.timestamp >= self.ref_ts + LAYOUT.ts_delta_limit

    def seq_overflows(self, update: Update) -> bool:
        return update.sequence >= self.ref_seq + LAYOUT.seq_delta_limit

    def is_full(self) -> bool:
        return len(self.updates) >= LAYOUT.max_batch_len

    def encode_update(self, update: Update) -> bytes:
        """Encodes one update as a delta record against this batch's reference"""
        dts = update.timestamp - self.ref_ts
        dseq = update.sequence - self.ref_seq
        if not (0 <= dts < LAYOUT.ts_delta_limit) or not (
            0 <= dseq < LAYOUT.seq_delta_limit
        ):
            raise FormatViolation(
                f"Update {update} does not fit in batch referenced at "
                + f"ts {self.ref_ts}, seq {self.ref_seq}."
            )
        return DELTA_STRUCT.pack(
            DELTA_FLAG,
            dts,
            dseq,
            update.is_trade,
            update.is_bid,
            update.price,
            update.size,
        )

    def to_bytes(self) -> bytes:
        """Reference record followed by all the delta records"""
        return self.reference.to_bytes() + b"".join(
            self.encode_update(update) for update in self.updates
        )
