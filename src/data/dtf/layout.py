"""Fixed layout of a Dense Tick Format (DTF) file. Everything is big-endian.

Header:
Offset 00: ([u8; 5]) magic value 0x4454469001
Offset 05: ([u8; 9]) symbol, right padded with spaces
Offset 14: (u64) number of records
Offset 22: (u32) max ts
Offset 26: reserved, zeros
Offset 80: main section, a sequence of batches

Each batch starts with a reference record followed by batch_len delta records:

Reference (9 bytes):
    is_reference (u8): 1
    ref_ts (u32): absolute timestamp
    ref_seq (u16): absolute sequence number
    batch_len (u16): number of delta records that follow

Delta (14 bytes):
    is_reference (u8): 0
    dts (u16): ts - ref_ts, must be < 65535
    dseq (u8): seq - ref_seq, must be < 255
    is_trade (u8)
    is_bid (u8)
    price (f32)
    size (f32)
"""

import struct
from dataclasses import dataclass


@dataclass(frozen=True)
class DTFLayout:
    magic: bytes = b"\x44\x54\x46\x90\x01"  # DTF9001
    symbol_len: int = 9
    magic_offset: int = 0
    symbol_offset: int = 5
    len_offset: int = 14
    max_ts_offset: int = 22
    reserved_offset: int = 26
    main_offset: int = 80
    # Exclusive upper bounds for the deltas stored in a delta record
    ts_delta_limit: int = 65535
    seq_delta_limit: int = 255
    # batch_len is a u16
    max_batch_len: int = (1 << 16) - 1

    @property
    def reserved_len(self) -> int:
        return self.main_offset - self.reserved_offset


LAYOUT = DTFLayout()

REFERENCE_FLAG = 1
DELTA_FLAG = 0

FLAG_STRUCT = struct.Struct(">B")
LEN_STRUCT = struct.Struct(">Q")
MAX_TS_STRUCT = struct.Struct(">I")
# Reference record without its leading flag byte
REFERENCE_BODY_STRUCT = struct.Struct(">IHH")
REFERENCE_STRUCT = struct.Struct(">BIHH")
DELTA_STRUCT = struct.Struct(">BHBBBff")

REFERENCE_SIZE = REFERENCE_STRUCT.size  # 9 bytes
DELTA_SIZE = DELTA_STRUCT.size  # 14 bytes
