"""Reads and writes the fixed size header at the start of a DTF file.

The header is not a stream. Every field lives at a fixed offset, so each
read and write seeks to its absolute position first."""

import logging
from dataclasses import dataclass
from typing import BinaryIO, Sequence

from data.dtf.errors import FormatViolation
from data.dtf.layout import LAYOUT, LEN_STRUCT, MAX_TS_STRUCT
from helpers.types.updates import Symbol, Timestamp, Update, get_max_ts

logger = logging.getLogger(__name__)


@dataclass
class DTFHeader:
    """Decoded header

    symbol: symbol as stored, including the padding spaces
    num_records: number of updates in the main section
    max_ts: largest timestamp of all the updates in the file
    """

    symbol: Symbol
    num_records: int
    max_ts: Timestamp

    @property
    def bare_symbol(self) -> Symbol:
        """Symbol without the padding"""
        return Symbol(self.symbol.rstrip(" "))


def read_exact(f: BinaryIO, size: int) -> bytes:
    """Reads exactly size bytes. Raises EOFError if the file ends first"""
    b = f.read(size)
    if len(b) < size:
        raise EOFError(f"Wanted {size} bytes but only {len(b)} were left")
    return b


def pad_symbol(symbol: str) -> bytes:
    """Right pads the symbol with spaces to fill the symbol field"""
    encoded = symbol.encode("utf-8")
    if len(encoded) > LAYOUT.symbol_len:
        raise FormatViolation(
            f"Symbol {symbol} is {len(encoded)} bytes. "
            + f"Max length is {LAYOUT.symbol_len} bytes."
        )
    return encoded.ljust(LAYOUT.symbol_len, b" ")


def write_magic_value(f: BinaryIO):
    f.seek(LAYOUT.magic_offset)
    f.write(LAYOUT.magic)


def write_symbol(f: BinaryIO, symbol: str):
    padded_symbol = pad_symbol(symbol)
    f.seek(LAYOUT.symbol_offset)
    f.write(padded_symbol)


def write_metadata(f: BinaryIO, num_records: int, max_ts: int):
    """Writes the number of records and the max ts. Append uses this on its own
    to rewrite the header in place"""
    f.seek(LAYOUT.len_offset)
    f.write(LEN_STRUCT.pack(num_records))
    f.seek(LAYOUT.max_ts_offset)
    f.write(MAX_TS_STRUCT.pack(max_ts))


def write_reserved(f: BinaryIO):
    f.seek(LAYOUT.reserved_offset)
    f.write(bytes(LAYOUT.reserved_len))


def write_header(f: BinaryIO, symbol: str, updates: Sequence[Update]) -> DTFHeader:
    """Writes the whole header (all LAYOUT.main_offset bytes of it)"""
    max_ts = get_max_ts(updates)
    write_magic_value(f)
    write_symbol(f, symbol)
    write_metadata(f, len(updates), max_ts)
    write_reserved(f)
    return DTFHeader(
        symbol=Symbol(pad_symbol(symbol).decode("utf-8")),
        num_records=len(updates),
        max_ts=max_ts,
    )


def read_magic_value(f: BinaryIO):
    """Raises FormatViolation if the file does not start with the magic value"""
    f.seek(LAYOUT.magic_offset)
    magic = f.read(len(LAYOUT.magic))
    if magic != LAYOUT.magic:
        raise FormatViolation(
            f"Magic value incorrect. Expected {LAYOUT.magic.hex()}, "
            + f"got {magic.hex()}."
        )


def read_symbol(f: BinaryIO) -> Symbol:
    """Returns the symbol with its padding spaces"""
    f.seek(LAYOUT.symbol_offset)
    try:
        raw = read_exact(f, LAYOUT.symbol_len)
        return Symbol(raw.decode("utf-8"))
    except (EOFError, UnicodeDecodeError) as e:
        raise FormatViolation(f"Could not read symbol: {e}") from e


def read_len(f: BinaryIO) -> int:
    f.seek(LAYOUT.len_offset)
    try:
        (num_records,) = LEN_STRUCT.unpack(read_exact(f, LEN_STRUCT.size))
    except EOFError as e:
        raise FormatViolation("Could not read number of records") from e
    return num_records


def read_max_ts(f: BinaryIO) -> Timestamp:
    f.seek(LAYOUT.max_ts_offset)
    try:
        (max_ts,) = MAX_TS_STRUCT.unpack(read_exact(f, MAX_TS_STRUCT.size))
    except EOFError as e:
        raise FormatViolation("Could not read maximum timestamp") from e
    return Timestamp(max_ts)


def read_header(f: BinaryIO) -> DTFHeader:
    """Checks the magic value first, then reads the rest of the header"""
    read_magic_value(f)
    header = DTFHeader(
        symbol=read_symbol(f),
        num_records=read_len(f),
        max_ts=read_max_ts(f),
    )
    logger.debug(
        "Read header: symbol %r, %s records, max ts %s",
        header.symbol,
        header.num_records,
        header.max_ts,
    )
    return header
