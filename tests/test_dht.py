import random

import pytest

from lightnode.dht import (
    BlockStat,
    CellKey,
    InvalidDHTKey,
    PutTracker,
    RelayState,
    RowKey,
    count_records_per_block,
    parse_dht_key,
)


def test_dht_key_parse_record_key():
    assert parse_dht_key(b"1:2") == RowKey(1, 2)
    assert parse_dht_key(b"3:2:1") == CellKey(3, 2, 1)
    with pytest.raises(InvalidDHTKey):
        parse_dht_key(b"1:2:4:3")
    with pytest.raises(InvalidDHTKey):
        parse_dht_key(b"123")


@pytest.mark.parametrize("key", [b"a:1", b"1:", b"-1:2", b"\xff:1", b"4294967296:1"])
def test_parse_rejects_bad_keys(key):
    with pytest.raises(InvalidDHTKey):
        parse_dht_key(key)


def test_parse_accepts_str_and_max_u32():
    assert parse_dht_key("4294967295:0") == RowKey(4294967295, 0)


def test_block_stat_increase():
    stat = BlockStat(total_count=2, remaining_counter=1)
    stat.increase(3)
    assert (stat.total_count, stat.remaining_counter) == (5, 4)


def test_tracker_success_rate():
    tracker = PutTracker()
    tracker.track(7, 2)
    tracker.track(7, 2)
    assert tracker.get(7).total_count == 4
    assert tracker.record_result(b"7:0:0", False, 1.9) is None
    assert tracker.record_result(b"7:0:1", True) is None
    assert tracker.record_result(b"7:1", False, 3.2) is None
    assert tracker.record_result(b"7:0:2", False, 2.5) == 0.75
    stat = tracker.get(7)
    assert (stat.success_counter, stat.error_counter, stat.remaining_counter) == (3, 1, 0)
    assert stat.time_stat == 2


def test_tracker_ignores_unknown_and_invalid():
    tracker = PutTracker()
    tracker.track(1, 1)
    assert tracker.record_result(b"2:0:0", False) is None
    assert tracker.record_result(b"garbage", False) is None
    assert tracker.get(1).remaining_counter == 1
    assert tracker.get(2) is None


def test_tracker_rejects_extra_results():
    tracker = PutTracker()
    tracker.track(1, 1)
    assert tracker.record_result(b"1:0:0", True) == 0.0
    with pytest.raises(ValueError):
        tracker.record_result(b"1:0:0", True)


def test_relay_select_and_reset():
    relays = [("peer-a", "/ip4/127.0.0.1/tcp/1"), ("peer-b", "/ip4/127.0.0.1/tcp/2")]
    state = RelayState(relays)
    assert state.id is None and state.address == ""
    chosen = state.select_random(random.Random(0))
    assert chosen in relays
    assert (state.id, state.address) == chosen
    state.is_circuit_established = True
    state.reset()
    assert (state.id, state.address, state.is_circuit_established) == (None, "", False)


def test_relay_select_without_nodes():
    state = RelayState([])
    assert state.select_random() is None
    assert state.id is None


def test_count_records_per_block():
    keys = [b"10:0:0", b"2:1", b"2:0:1", "10:1:1", b"2:3:3"]
    result = count_records_per_block(keys)
    assert result == {"10": 2, "2": 3}
    assert list(result) == ["10", "2"]


def test_count_records_rejects_unsplittable_key():
    with pytest.raises(InvalidDHTKey):
        count_records_per_block([b"123"])