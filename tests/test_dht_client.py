import asyncio
import time

import pytest

from lightnode.dht_client import DHTClient, cell_record, row_record
from lightnode.kad_store import Record
from lightnode.sampling import CELL_WITH_PROOF_SIZE, Cell, Position


class FakeDHT:
    def __init__(self):
        self.records = {}
        self.puts = []
        self.active = 0
        self.max_active = 0
        self.lookups = []

    async def get_record(self, key):
        self.lookups.append(key)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0)
            if key not in self.records:
                raise KeyError(key)
            return self.records[key]
        finally:
            self.active -= 1

    async def put_records(self, records, block_num):
        self.puts.append((block_num, list(records)))
        for record in records:
            self.records[record.key] = record


def make_cell(row, col, fill):
    return Cell(Position(row=row, col=col), bytes([fill]) * CELL_WITH_PROOF_SIZE)


def make_client(dht, limit=2, ttl=60):
    return DHTClient(dht.get_record, dht.put_records, limit, ttl)


def test_cell_record_key_and_value():
    cell = make_cell(1, 2, 9)
    before = time.monotonic()
    record = cell_record(cell, 7, 30)
    assert record.key == b"7:1:2"
    assert record.value == cell.content
    assert record.publisher is None
    assert before + 30 <= record.expires <= time.monotonic() + 30


def test_row_record_key_and_value():
    record = row_record(3, b"row-data", 5, 10)
    assert record.key == b"5:3"
    assert record.value == b"row-data"
    assert not record.is_expired(time.monotonic())


def test_invalid_parallelization_limit():
    dht = FakeDHT()
    with pytest.raises(ValueError):
        DHTClient(dht.get_record, dht.put_records, 0, 60)


@pytest.mark.asyncio
async def test_insert_then_fetch_cells_round_trip():
    dht = FakeDHT()
    client = make_client(dht)
    cells = [make_cell(0, 0, 1), make_cell(0, 1, 2), make_cell(1, 3, 3)]
    await client.insert_cells_into_dht(4, cells)
    assert dht.puts[0][0] == 4
    assert len(dht.puts[0][1]) == len(cells)

    missing = Position(row=2, col=2)
    positions = [c.position for c in cells] + [missing]
    fetched, unfetched = await client.fetch_cells_from_dht(4, positions)
    assert fetched == cells
    assert unfetched == [missing]


@pytest.mark.asyncio
async def test_fetch_cells_rejects_wrong_size_content():
    dht = FakeDHT()
    dht.records[b"1:0:0"] = Record(key=b"1:0:0", value=b"short")
    client = make_client(dht)
    fetched, unfetched = await client.fetch_cells_from_dht(1, [Position(0, 0)])
    assert fetched == []
    assert unfetched == [Position(0, 0)]


@pytest.mark.asyncio
async def test_fetch_cells_respects_parallelization_limit():
    dht = FakeDHT()
    client = make_client(dht, limit=2)
    positions = [Position(0, c) for c in range(5)]
    fetched, unfetched = await client.fetch_cells_from_dht(1, positions)
    assert fetched == []
    assert unfetched == positions
    assert dht.max_active <= 2
    assert len(dht.lookups) == len(positions)


@pytest.mark.asyncio
async def test_insert_then_fetch_rows_round_trip():
    dht = FakeDHT()
    client = make_client(dht, limit=1)
    await client.insert_rows_into_dht(8, [(0, b"first"), (2, b"third")])
    rows = await client.fetch_rows_from_dht(8, 4, [0, 1, 2])
    assert rows == [b"first", None, b"third", None]


@pytest.mark.asyncio
async def test_insert_empty_cells_raises():
    dht = FakeDHT()
    client = make_client(dht)
    with pytest.raises(ValueError, match="empty record list"):
        await client.insert_cells_into_dht(1, [])
    assert dht.puts == []


@pytest.mark.asyncio
async def test_insert_empty_rows_raises():
    dht = FakeDHT()
    client = make_client(dht)
    with pytest.raises(ValueError):
        await client.insert_rows_into_dht(1, [])
    assert dht.puts == []


@pytest.mark.asyncio
async def test_inserted_records_expire_after_ttl():
    dht = FakeDHT()
    client = make_client(dht, ttl=5)
    await client.insert_cells_into_dht(2, [make_cell(0, 0, 4)])
    record = dht.records[b"2:0:0"]
    assert not record.is_expired(time.monotonic())
    assert record.is_expired(time.monotonic() + 6)