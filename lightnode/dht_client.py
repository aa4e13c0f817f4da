"""Fetching cells and rows from the DHT and inserting them into it."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import (
    Awaitable,
    Callable,
    Iterable,
    Iterator,
    List,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
)

from lightnode.kad_store import Record
from lightnode.sampling import CELL_WITH_PROOF_SIZE, Cell, Position

logger = logging.getLogger(__name__)

T = TypeVar("T")

GetRecord = Callable[[bytes], Awaitable[Record]]
PutRecords = Callable[[List[Record], int], Awaitable[None]]


def _row_reference(row_index: int, block: int) -> str:
    return f"{block}:{row_index}"


def _chunks(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def cell_record(cell: Cell, block: int, ttl: float) -> Record:
    """DHT record holding ``cell`` of ``block``, expiring ``ttl`` seconds from now."""
    return Record(
        key=cell.reference(block).encode(),
        value=bytes(cell.content),
        publisher=None,
        expires=time.monotonic() + ttl,
    )


def row_record(row_index: int, data: bytes, block: int, ttl: float) -> Record:
    """DHT record holding row ``row_index`` of ``block``, expiring after ``ttl`` seconds."""
    return Record(
        key=_row_reference(row_index, block).encode(),
        value=bytes(data),
        publisher=None,
        expires=time.monotonic() + ttl,
    )


class DHTClient:
    """Fetches and stores matrix cells and rows through a Kademlia DHT.

    ``get_record(key)`` is awaited to look up one record and raises when it is
    not found. ``put_records(records, block_num)`` is awaited to hand records
    of one block to the network for storage.
    """

    def __init__(
        self,
        get_record: GetRecord,
        put_records: PutRecords,
        parallelization_limit: int,
        ttl: float,
    ) -> None:
        if parallelization_limit < 1:
            raise ValueError("parallelization limit must be at least 1")
        self._get_record = get_record
        self._put_records = put_records
        self.parallelization_limit = parallelization_limit
        self.ttl = ttl

    async def _fetch_cell(self, block_number: int, position: Position) -> Optional[Cell]:
        reference = position.reference(block_number)
        logger.debug("Getting DHT record for reference %s", reference)
        try:
            record = await self._get_record(reference.encode())
        except Exception as error:  # a failed lookup means the cell is missing
            logger.debug("Cell %s not found in the DHT: %s", reference, error)
            return None
        if len(record.value) != CELL_WITH_PROOF_SIZE:
            logger.debug(
                "Cannot convert cell %s into %s bytes", reference, CELL_WITH_PROOF_SIZE
            )
            return None
        logger.debug("Fetched cell %s from the DHT", reference)
        return Cell(position=position, content=bytes(record.value))

    async def _fetch_row(
        self, block_number: int, row_index: int
    ) -> Optional[Tuple[int, bytes]]:
        reference = _row_reference(row_index, block_number)
        logger.debug("Getting DHT record for reference %s", reference)
        try:
            record = await self._get_record(reference.encode())
        except Exception as error:  # a failed lookup means the row is missing
            logger.debug("Row %s not found in the DHT: %s", reference, error)
            return None
        return row_index, bytes(record.value)

    async def fetch_cells_from_dht(
        self, block_number: int, positions: Sequence[Position]
    ) -> Tuple[List[Cell], List[Position]]:
        """Fetch cells; return the fetched cells and the positions not fetched."""
        results: List[Optional[Cell]] = []
        for chunk in _chunks(list(positions), self.parallelization_limit):
            results.extend(
                await asyncio.gather(*(self._fetch_cell(block_number, p) for p in chunk))
            )
        fetched = [cell for cell in results if cell is not None]
        unfetched = [
            position for cell, position in zip(results, positions) if cell is None
        ]
        return fetched, unfetched

    async def fetch_rows_from_dht(
        self, block_number: int, extended_rows: int, row_indexes: Sequence[int]
    ) -> List[Optional[bytes]]:
        """Fetch rows; the result has one slot per extended row, None where missing."""
        rows: List[Optional[bytes]] = [None] * extended_rows
        for chunk in _chunks(list(row_indexes), self.parallelization_limit):
            fetched = await asyncio.gather(
                *(self._fetch_row(block_number, index) for index in chunk)
            )
            for item in fetched:
                if item is not None:
                    index, data = item
                    rows[index] = data
        return rows

    async def _insert(self, records: List[Record], block: int) -> None:
        if not records:
            raise ValueError("Cant send empty record list.")
        await self._put_records(records, block)

    async def insert_cells_into_dht(self, block: int, cells: Iterable[Cell]) -> None:
        """Hand the cells of ``block`` to the DHT; raise ValueError if there are none."""
        records = [cell_record(cell, block, self.ttl) for cell in cells]
        await self._insert(records, block)

    async def insert_rows_into_dht(
        self, block: int, rows: Iterable[Tuple[int, bytes]]
    ) -> None:
        """Hand ``(row_index, data)`` rows of ``block`` to the DHT; raise if empty."""
        records = [row_record(index, data, block, self.ttl) for index, data in rows]
        await self._insert(records, block)