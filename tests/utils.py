import random
import typing
from pathlib import Path

from polyfactory.factories import pydantic_factory
from pydantic import BaseModel

from helpers.types.updates import Float32, SequenceNumber, Timestamp, Update

BM = typing.TypeVar("BM", bound=BaseModel)


def random_data(
    base_model_class: type[BM],
    custom_args: typing.Dict[typing.Any, typing.Any] = {},
) -> BM:
    """Fills in a basemodel with random data. Custom args lets you specify a
    mapping of custom types to their output.
    For example: {Timestamp: lambda: Timestamp(random.randint(0, 100))}.
    """

    class Factory(pydantic_factory.ModelFactory[base_model_class]):  # type:ignore
        __model__ = base_model_class

        @classmethod
        def get_provider_map(cls) -> typing.Dict[typing.Type, typing.Any]:
            providers_map = super().get_provider_map()
            return {
                **providers_map,
                **custom_args,
            }

    return Factory.build()


UPDATE_FIELD_PROVIDERS = {
    Timestamp: lambda: Timestamp(random.randint(0, (1 << 32) - 1)),
    SequenceNumber: lambda: SequenceNumber(random.randint(0, (1 << 16) - 1)),
    Float32: lambda: Float32(random.uniform(0, 100000)),
}


def random_update() -> Update:
    return random_data(Update, UPDATE_FIELD_PROVIDERS)


def make_updates(
    num: int,
    start_ts: int = 0,
    start_seq: int = 0,
    max_ts_step: int = 10,
    max_seq_step: int = 1,
    min_seq_step: int = 0,
    seed: int | None = None,
) -> typing.List[Update]:
    """Makes updates that are already in file order: sequence numbers and
    timestamps never go down.

    Use min_seq_step=1 for strictly increasing sequence numbers."""
    rng = random.Random(seed)
    ts, seq = start_ts, start_seq
    updates = []
    for _ in range(num):
        updates.append(
            Update(
                timestamp=ts,
                sequence=seq,
                is_trade=rng.random() < 0.2,
                is_bid=rng.random() < 0.5,
                price=rng.uniform(1, 10000),
                size=rng.uniform(0, 100),
            )
        )
        ts += rng.randint(0, max_ts_step)
        seq += rng.randint(min_seq_step, max_seq_step)
    return updates


def list_tmp_files(folder: Path) -> typing.List[Path]:
    """Leftover temp files from atomic writes"""
    return [p for p in folder.iterdir() if p.name.endswith(".tmp")]
