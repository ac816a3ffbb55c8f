from abc import ABC, abstractmethod
from typing import Iterable, List

import pandas as pd

from helpers.types.updates import Update

UPDATE_COLUMNS = ["timestamp", "sequence", "is_trade", "is_bid", "price", "size"]


class UpdateProvider(ABC):
    """Anything that can hand us updates to store (a database query, a
    recorded feed, a dataframe...)"""

    @abstractmethod
    def get_updates(self) -> Iterable[Update]:
        """Returns the updates. They don't need to be sorted"""


class DataFrameUpdateProvider(UpdateProvider):
    """Reads updates from a dataframe with one row per update.

    The dataframe needs the columns in UPDATE_COLUMNS. Other columns are
    ignored."""

    def __init__(self, df: pd.DataFrame):
        missing = [column for column in UPDATE_COLUMNS if column not in df.columns]
        if missing:
            raise ValueError(f"Dataframe is missing columns: {missing}")
        self._df = df

    def get_updates(self) -> List[Update]:
        return [
            Update(
                timestamp=int(row.timestamp),
                sequence=int(row.sequence),
                is_trade=bool(row.is_trade),
                is_bid=bool(row.is_bid),
                price=float(row.price),
                size=float(row.size),
            )
            for row in self._df[UPDATE_COLUMNS].itertuples(index=False)
        ]


def updates_to_dataframe(updates: Iterable[Update]) -> pd.DataFrame:
    """One row per update, columns in UPDATE_COLUMNS"""
    df = pd.DataFrame(
        [update.model_dump() for update in updates], columns=UPDATE_COLUMNS
    )
    return df.astype(
        {
            "timestamp": "uint32",
            "sequence": "uint16",
            "is_trade": "bool",
            "is_bid": "bool",
            "price": "float32",
            "size": "float32",
        }
    )
