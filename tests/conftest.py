import os
from pathlib import Path
from typing import List

import pytest
from pytest import TempPathFactory

from data.dtf import dtf
from data.dtf.store import DTFStore
from helpers.constants import DTF_STORAGE_PATH_ENV_VAR
from helpers.types.updates import Update, sort_updates

"""This file contains configuration information for testing.
Please place any test fixtures in this file"""


@pytest.fixture(scope="session", autouse=True)
def env_vars(tmp_path_factory: TempPathFactory):
    """Points the default store at a temp folder so tests never write to the
    real storage folder"""
    old_environ = dict(os.environ)
    environ = {
        DTF_STORAGE_PATH_ENV_VAR: str(tmp_path_factory.mktemp("dtf_env_storage")),
    }
    os.environ.update(environ)
    try:
        yield
    finally:
        os.environ.clear()
        os.environ.update(old_environ)


@pytest.fixture()
def dtf_store(tmp_path: Path) -> DTFStore:
    return DTFStore(storage_path=tmp_path / "store")


@pytest.fixture()
def neo_btc_updates() -> List[Update]:
    """Three updates where the last one is too far in time to share a batch"""
    updates = [
        Update(
            timestamp=100,
            sequence=113,
            is_trade=False,
            is_bid=False,
            price=5100.01,
            size=1.14564564645,
        ),
        Update(
            timestamp=101,
            sequence=113,
            is_trade=False,
            is_bid=False,
            price=5100.01,
            size=2.14564564645,
        ),
        Update(
            timestamp=1000000,
            sequence=123,
            is_trade=True,
            is_bid=False,
            price=5100.01,
            size=1.123465,
        ),
    ]
    return sort_updates(updates)


@pytest.fixture()
def neo_btc_file(tmp_path: Path, neo_btc_updates: List[Update]) -> Path:
    path = tmp_path / "test.dtf"
    dtf.encode(path, "NEO_BTC", neo_btc_updates)
    return path
