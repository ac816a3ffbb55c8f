import struct
from typing import Any, Iterable, List

from pydantic import BaseModel, ConfigDict, GetCoreSchemaHandler
from pydantic_core import CoreSchema, core_schema

_MAX_U32 = (1 << 32) - 1
_MAX_U16 = (1 << 16) - 1
_F32 = struct.Struct(">f")


class Symbol(str):
    """Instrument symbol stored in the file header.

    Example: NEO_BTC"""

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> CoreSchema:
        return core_schema.no_info_after_validator_function(cls, handler(str))


class Timestamp(int):
    """Absolute time of an update. Unsigned 32 bits, in the unit of the source
    (seconds for the exchange feeds we store)"""

    def __new__(cls, num: int):
        if not isinstance(num, int) or num < 0 or num > _MAX_U32:
            raise ValueError(f"{num} invalid timestamp")
        return super(Timestamp, cls).__new__(cls, num)

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> CoreSchema:
        return core_schema.no_info_after_validator_function(cls, handler(int))


class SequenceNumber(int):
    """Unsigned 16 bit sequence number of an update"""

    def __new__(cls, num: int):
        if not isinstance(num, int) or num < 0 or num > _MAX_U16:
            raise ValueError(f"{num} invalid sequence number")
        return super(SequenceNumber, cls).__new__(cls, num)

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> CoreSchema:
        return core_schema.no_info_after_validator_function(cls, handler(int))


class Float32(float):
    """Float that holds exactly what fits in 4 bytes.

    The value is rounded to the nearest single precision float when it's
    created, so an update compares equal to itself after a trip to disk."""

    def __new__(cls, num: float):
        try:
            (rounded,) = _F32.unpack(_F32.pack(num))
        except (OverflowError, struct.error):
            raise ValueError(f"{num} does not fit in a 32 bit float")
        return super(Float32, cls).__new__(cls, rounded)

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> CoreSchema:
        return core_schema.no_info_after_validator_function(cls, handler(float))


class Update(BaseModel):
    """One market event: a trade or an order book change.

    Updates are ordered by sequence number only. Two updates with the same
    sequence are neither less nor greater than each other, even if their
    timestamps differ, so sorting keeps them in insertion order. Equality
    (==) still compares every field."""

    model_config = ConfigDict(frozen=True)

    timestamp: Timestamp
    sequence: SequenceNumber
    is_trade: bool
    is_bid: bool
    price: Float32
    size: Float32

    def __lt__(self, other: "Update") -> bool:
        if not isinstance(other, Update):
            return NotImplemented
        return self.sequence < other.sequence

    def __le__(self, other: "Update") -> bool:
        if not isinstance(other, Update):
            return NotImplemented
        return self.sequence <= other.sequence

    def __gt__(self, other: "Update") -> bool:
        if not isinstance(other, Update):
            return NotImplemented
        return self.sequence > other.sequence

    def __ge__(self, other: "Update") -> bool:
        if not isinstance(other, Update):
            return NotImplemented
        return self.sequence >= other.sequence

    def __str__(self):
        kind = "trade" if self.is_trade else "quote"
        side = "bid" if self.is_bid else "ask"
        return (
            f"#{self.sequence} @ {self.timestamp}: {kind} {side} "
            + f"| {self.size} @ {self.price}"
        )


def get_max_ts(updates: Iterable[Update]) -> Timestamp:
    """Largest timestamp in the updates, 0 if there are none"""
    return Timestamp(max((update.timestamp for update in updates), default=0))


def sort_updates(updates: Iterable[Update]) -> List[Update]:
    """Sorts by sequence number. The sort is stable"""
    return sorted(updates)
