"""A folder of DTF files, one per symbol.

The folder comes from the DTF_STORAGE_PATH env var if it's set, otherwise
from helpers.constants.DTF_DEFAULT_STORAGE_PATH.

storage path
|   |   |
NEO_BTC.dtf  ETH_BTC.dtf  ...

Writing to a symbol creates its file the first time and appends to it after
that, so the same ordering rules as data.dtf.dtf.append apply.
"""

import logging
import os
from pathlib import Path
from typing import Generator, Iterable, List, Optional

from data.dtf import dtf
from data.dtf.append import AppendResult
from data.dtf.errors import FormatViolation, IOFailure
from data.dtf.header import DTFHeader, pad_symbol
from data.dtf.provider import UpdateProvider
from helpers.constants import (
    DTF_DEFAULT_STORAGE_PATH,
    DTF_FILE_SUFFIX,
    DTF_STORAGE_PATH_ENV_VAR,
)
from helpers.types.common import StoragePath
from helpers.types.updates import Symbol, Update, sort_updates

logger = logging.getLogger(__name__)


class DTFStore:
    """Public interface for the symbol store"""

    def __init__(self, storage_path: Optional[Path] = None):
        if storage_path is None:
            if DTF_STORAGE_PATH_ENV_VAR in os.environ:
                storage_path = StoragePath(
                    os.environ.get(DTF_STORAGE_PATH_ENV_VAR)
                ).to_path()
            else:
                storage_path = DTF_DEFAULT_STORAGE_PATH
        self.storage_path = Path(storage_path)
        self.storage_path.mkdir(parents=True, exist_ok=True)

    def symbol_to_path(self, symbol: str) -> Path:
        """Given a symbol returns the path to its file"""
        if not symbol or "/" in symbol or "\\" in symbol or symbol in (".", ".."):
            raise ValueError(f"Invalid symbol for a file name: {symbol!r}")
        # Fails early if the symbol doesn't fit in the header
        pad_symbol(symbol)
        return self.storage_path / (symbol + DTF_FILE_SUFFIX)

    def exists(self, symbol: str) -> bool:
        return self.symbol_to_path(symbol).exists()

    def write(self, symbol: str, updates: Iterable[Update]) -> AppendResult:
        """Creates the file for the symbol or appends to it if it exists.

        The updates are sorted by sequence number before they're written."""
        path = self.symbol_to_path(symbol)
        sorted_updates = sort_updates(updates)
        if path.exists():
            return dtf.append(path, sorted_updates)
        header = dtf.encode(path, symbol, sorted_updates)
        logger.info("Created %s for %s", path, symbol)
        return AppendResult(
            path=path,
            num_appended=len(sorted_updates),
            num_records=header.num_records,
            max_ts=header.max_ts,
            num_batches_written=dtf.info(path).num_batches,
        )

    def ingest(self, symbol: str, provider: UpdateProvider) -> AppendResult:
        """Writes everything the provider has for the symbol"""
        return self.write(symbol, provider.get_updates())

    def read(self, symbol: str) -> List[Update]:
        return dtf.decode(self._existing_path(symbol))

    def read_range(
        self,
        symbol: str,
        start_ts: Optional[int] = None,
        end_ts: Optional[int] = None,
    ) -> Generator[Update, None, None]:
        return dtf.decode_range(self._existing_path(symbol), start_ts, end_ts)

    def header(self, symbol: str) -> DTFHeader:
        return dtf.read_header(self._existing_path(symbol))

    def symbols(self) -> List[Symbol]:
        """Lists the symbols in the store by reading the header of each file.
        Files that aren't valid DTF files are skipped"""
        symbols: List[Symbol] = []
        for path in sorted(self.storage_path.glob("*" + DTF_FILE_SUFFIX)):
            if not path.is_file():
                continue
            try:
                symbols.append(dtf.read_header(path).bare_symbol)
            except (FormatViolation, IOFailure):
                logger.warning("Skipping %s, not a valid DTF file", path)
        return symbols

    def _existing_path(self, symbol: str) -> Path:
        path = self.symbol_to_path(symbol)
        if not path.exists():
            raise FileNotFoundError(f"Could not find data file for {symbol}")
        return path
