import io
from pathlib import Path
from typing import List

import pytest
from mock import patch

from data.dtf import dtf
from data.dtf.decoder import (
    decode_main,
    iter_batches,
    read_first,
    read_min_ts,
    read_reference,
    scan_references,
)
from data.dtf.errors import FormatViolation, IOFailure, OrderingViolation
from data.dtf.header import write_header
from data.dtf.layout import DELTA_STRUCT, LAYOUT, REFERENCE_STRUCT
from helpers.types.updates import Update, sort_updates
from tests.utils import list_tmp_files, make_updates


def corrupt(path: Path, offset: int, value: bytes):
    b = bytearray(path.read_bytes())
    b[offset : offset + len(value)] = value
    path.write_bytes(bytes(b))


def test_decode_neo_btc(neo_btc_file: Path, neo_btc_updates: List[Update]):
    assert neo_btc_file.stat().st_size == 80 + 2 * 9 + 3 * 14

    updates = dtf.decode(neo_btc_file)
    assert updates == neo_btc_updates
    # Sizes are stored as 32 bit floats
    assert updates[0].size != 1.14564564645
    assert abs(updates[0].size - 1.14564564645) < 1e-6

    header = dtf.read_header(neo_btc_file)
    assert header.symbol == "NEO_BTC  "
    assert header.bare_symbol == "NEO_BTC"
    assert header.num_records == 3
    assert header.max_ts == 1000000

    first = dtf.read_first_update(neo_btc_file)
    assert first == neo_btc_updates[0]
    assert first.timestamp == 100
    assert first.sequence == 113


def test_round_trip_many_batches(tmp_path: Path):
    path = tmp_path / "many.dtf"
    updates = make_updates(500, max_ts_step=1000, max_seq_step=3, seed=7)
    header = dtf.encode(path, "ETH_BTC", updates)
    assert header.num_records == 500
    assert header.max_ts == max(update.timestamp for update in updates)

    assert dtf.decode(path) == updates
    with open(path, "rb") as f:
        batches = list(iter_batches(f))
    assert len(batches) > 1
    assert sum(len(batch.updates) for batch in batches) == 500


def test_encode_replaces_existing_file(neo_btc_file: Path):
    updates = make_updates(5, seed=1)
    dtf.encode(neo_btc_file, "ETH", updates)
    assert dtf.decode(neo_btc_file) == updates
    assert dtf.read_header(neo_btc_file).bare_symbol == "ETH"
    assert list_tmp_files(neo_btc_file.parent) == []


def test_encode_out_of_order(tmp_path: Path, neo_btc_updates: List[Update]):
    path = tmp_path / "bad.dtf"
    with pytest.raises(OrderingViolation):
        dtf.encode(path, "NEO_BTC", list(reversed(neo_btc_updates)))
    assert not path.exists()
    assert list_tmp_files(tmp_path) == []


def test_encode_long_symbol(tmp_path: Path, neo_btc_updates: List[Update]):
    path = tmp_path / "bad.dtf"
    with pytest.raises(FormatViolation):
        dtf.encode(path, "NEO_BTC_LONG", neo_btc_updates)
    assert not path.exists()


def test_empty_files(tmp_path: Path):
    path = tmp_path / "empty.dtf"
    dtf.encode(path, "NEO_BTC", [])
    assert path.stat().st_size == LAYOUT.main_offset
    assert dtf.decode(path) == []
    assert dtf.read_first_update(path) is None
    assert dtf.read_header(path).num_records == 0

    # A zero length file has no updates either
    zero = tmp_path / "zero.dtf"
    zero.touch()
    assert dtf.decode(zero) == []
    assert list(dtf.decode_range(zero)) == []
    assert list(dtf.decode_range(zero, 0, 100)) == []
    with pytest.raises(ValueError):
        list(dtf.decode_range(zero, 10, 5))
    assert dtf.read_first_update(zero) is None
    info = dtf.info(zero)
    assert info.num_records == 0
    assert info.min_ts is None
    assert info.num_batches == 0
    assert info.size_bytes == 0


def test_bad_magic(neo_btc_file: Path):
    corrupt(neo_btc_file, 4, b"\x02")
    with pytest.raises(FormatViolation) as e:
        dtf.decode(neo_btc_file)
    assert e.match("Magic value incorrect")
    with pytest.raises(FormatViolation):
        dtf.read_header(neo_btc_file)


def test_truncated_file(neo_btc_file: Path):
    b = neo_btc_file.read_bytes()
    # Cut in the middle of the last delta record
    neo_btc_file.write_bytes(b[:-5])
    with pytest.raises(FormatViolation):
        dtf.decode(neo_btc_file)

    # Cut in the middle of the second reference record
    neo_btc_file.write_bytes(b[: 80 + 9 + 2 * 14 + 4])
    with pytest.raises(FormatViolation):
        dtf.decode(neo_btc_file)

    # Cut in the middle of the header
    neo_btc_file.write_bytes(b[:20])
    with pytest.raises(FormatViolation):
        dtf.decode(neo_btc_file)


def test_count_mismatch(neo_btc_file: Path):
    corrupt(neo_btc_file, LAYOUT.len_offset, (4).to_bytes(8, "big"))
    with pytest.raises(FormatViolation) as e:
        dtf.decode(neo_btc_file)
    assert e.match("Header says 4 records but main section holds 3")


def test_bad_delta_flag(neo_btc_file: Path):
    # First delta record starts right after the first reference
    corrupt(neo_btc_file, 89, b"\x01")
    with pytest.raises(FormatViolation):
        dtf.decode(neo_btc_file)


def test_bad_bool(neo_btc_file: Path):
    # is_trade byte of the first delta record
    corrupt(neo_btc_file, 93, b"\x02")
    with pytest.raises(FormatViolation) as e:
        dtf.decode(neo_btc_file)
    assert e.match("Invalid is_trade byte: 2")


def test_trailing_bytes(neo_btc_file: Path):
    with open(neo_btc_file, "ab") as f:
        f.write(b"\x00")
    with pytest.raises(FormatViolation):
        dtf.decode(neo_btc_file)

    # A lone reference flag is a truncated reference record
    corrupt(neo_btc_file, neo_btc_file.stat().st_size - 1, b"\x01")
    with pytest.raises(FormatViolation):
        dtf.decode(neo_btc_file)


def test_delta_overflows_reference():
    f = io.BytesIO()
    write_header(f, "NEO_BTC", [])
    f.write(REFERENCE_STRUCT.pack(1, (1 << 32) - 1, 0, 1))
    f.write(DELTA_STRUCT.pack(0, 5, 0, 0, 0, 1.0, 1.0))
    with pytest.raises(FormatViolation) as e:
        decode_main(f)
    assert e.match("overflows reference")


def test_read_reference_at_end():
    f = io.BytesIO()
    write_header(f, "NEO_BTC", [])
    assert read_reference(f) is None
    assert read_first(f) is None
    assert read_min_ts(f) is None


def test_empty_batch_is_skipped():
    f = io.BytesIO()
    update = Update(
        timestamp=7, sequence=8, is_trade=True, is_bid=False, price=1.5, size=3
    )
    write_header(f, "NEO_BTC", [update])
    f.write(REFERENCE_STRUCT.pack(1, 5, 5, 0))
    f.write(REFERENCE_STRUCT.pack(1, 5, 5, 1))
    f.write(DELTA_STRUCT.pack(0, 2, 3, 1, 0, 1.5, 3.0))
    assert decode_main(f, 1) == [update]
    assert read_first(f) == update
    assert read_min_ts(f) == 7
    assert [reference.batch_len for _, reference in scan_references(f)] == [0, 1]


def test_scan_references(neo_btc_file: Path):
    with open(neo_btc_file, "rb") as f:
        references = list(scan_references(f))
    assert [offset for offset, _ in references] == [80, 80 + 9 + 2 * 14]
    assert [reference.batch_len for _, reference in references] == [2, 1]

    neo_btc_file.write_bytes(neo_btc_file.read_bytes()[:-1])
    with open(neo_btc_file, "rb") as f:
        with pytest.raises(FormatViolation):
            list(scan_references(f))


def test_decode_range(tmp_path: Path):
    path = tmp_path / "range.dtf"
    updates = make_updates(300, max_ts_step=100, max_seq_step=2, seed=11)
    dtf.encode(path, "ETH_BTC", updates)

    start_ts, end_ts = updates[50].timestamp, updates[200].timestamp
    expected = [u for u in updates if start_ts <= u.timestamp <= end_ts]
    assert list(dtf.decode_range(path, start_ts, end_ts)) == expected
    assert list(dtf.decode_range(path)) == updates
    assert list(dtf.decode_range(path, start_ts=start_ts)) == [
        u for u in updates if u.timestamp >= start_ts
    ]
    assert list(dtf.decode_range(path, end_ts=end_ts)) == [
        u for u in updates if u.timestamp <= end_ts
    ]
    assert list(dtf.decode_range(path, end_ts + 10**9)) == []

    with pytest.raises(ValueError) as e:
        list(dtf.decode_range(path, 10, 5))
    assert e.match("End ts must be larger than start ts")


def test_decode_range_when_ts_goes_down(tmp_path: Path):
    # Sequence is the sort key, so a later batch can hold earlier timestamps
    updates = sort_updates(
        [
            Update(
                timestamp=ts,
                sequence=seq,
                is_trade=False,
                is_bid=True,
                price=1,
                size=1,
            )
            for ts, seq in [(100, 0), (5, 300), (50, 301)]
        ]
    )
    path = tmp_path / "ts.dtf"
    dtf.encode(path, "ETH", updates)
    assert dtf.read_header(path).max_ts == 100
    assert [u.timestamp for u in dtf.decode_range(path, 0, 60)] == [5, 50]


def test_info(neo_btc_file: Path, tmp_path: Path):
    info = dtf.info(neo_btc_file)
    assert info.symbol == "NEO_BTC  "
    assert info.num_records == 3
    assert info.max_ts == 1000000
    assert info.min_ts == 100
    assert info.num_batches == 2
    assert info.size_bytes == neo_btc_file.stat().st_size

    path = tmp_path / "empty.dtf"
    dtf.encode(path, "ETH", [])
    info = dtf.info(path)
    assert info.min_ts is None
    assert info.num_batches == 0
    assert info.size_bytes == 80


def test_missing_file(tmp_path: Path):
    path = tmp_path / "missing.dtf"
    with pytest.raises(IOFailure) as e:
        dtf.decode(path)
    assert isinstance(e.value.__cause__, FileNotFoundError)
    with pytest.raises(IOFailure):
        dtf.read_header(path)
    with pytest.raises(IOFailure):
        list(dtf.decode_range(path))
    with pytest.raises(IOFailure):
        dtf.info(path)


def test_encode_into_missing_folder(tmp_path: Path, neo_btc_updates: List[Update]):
    with pytest.raises(IOFailure):
        dtf.encode(tmp_path / "nope" / "a.dtf", "NEO_BTC", neo_btc_updates)


def test_failed_rename_leaves_nothing(tmp_path: Path, neo_btc_updates: List[Update]):
    path = tmp_path / "test.dtf"
    with patch("data.dtf.files.os.replace", side_effect=OSError("disk full")):
        with pytest.raises(IOFailure) as e:
            dtf.encode(path, "NEO_BTC", neo_btc_updates)
    assert isinstance(e.value.__cause__, OSError)
    assert not path.exists()
    assert list_tmp_files(tmp_path) == []


def test_failed_encode_keeps_old_file(
    neo_btc_file: Path, neo_btc_updates: List[Update]
):
    before = neo_btc_file.read_bytes()
    with patch("data.dtf.files.os.fsync", side_effect=OSError("io error")):
        with pytest.raises(IOFailure):
            dtf.encode(neo_btc_file, "ETH", make_updates(10, seed=2))
    assert neo_btc_file.read_bytes() == before
    assert dtf.decode(neo_btc_file) == neo_btc_updates
    assert list_tmp_files(neo_btc_file.parent) == []
