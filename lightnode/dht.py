"""DHT record keys, PUT result tracking and relay selection."""

from __future__ import annotations

import logging
import random
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

_U32_MAX = 2**32 - 1

KeyLike = Union[bytes, bytearray, str]


class InvalidDHTKey(ValueError):
    """Raised when a record key is not a valid cell or row reference."""


@dataclass(frozen=True)
class CellKey:
    """Key of a cell record: ``block:row:col``."""

    block_num: int
    row: int
    col: int


@dataclass(frozen=True)
class RowKey:
    """Key of a row record: ``block:row``."""

    block_num: int
    row: int


def _decode(key: KeyLike) -> str:
    if isinstance(key, str):
        return key
    try:
        return bytes(key).decode("utf-8")
    except UnicodeDecodeError as error:
        raise InvalidDHTKey(f"key is not valid UTF-8: {error}") from error


def _parse_u32(part: str) -> int:
    digits = part[1:] if part.startswith("+") else part
    if not digits or not digits.isascii() or not digits.isdigit():
        raise InvalidDHTKey(f"invalid number in DHT key: {part!r}")
    value = int(digits)
    if value > _U32_MAX:
        raise InvalidDHTKey(f"number out of range in DHT key: {part!r}")
    return value


def parse_dht_key(key: KeyLike) -> Union[CellKey, RowKey]:
    """Parse a record key into a :class:`RowKey` or :class:`CellKey`."""
    numbers = [_parse_u32(part) for part in _decode(key).split(":")]
    if len(numbers) == 2:
        return RowKey(*numbers)
    if len(numbers) == 3:
        return CellKey(*numbers)
    raise InvalidDHTKey("Invalid DHT key")


@dataclass
class BlockStat:
    """PUT progress of the records of one block."""

    total_count: int = 0
    remaining_counter: int = 0
    success_counter: int = 0
    error_counter: int = 0
    time_stat: int = 0

    def increase(self, count: int) -> None:
        """Account for ``count`` more records being put."""
        self.total_count += count
        self.remaining_counter += count


class PutTracker:
    """Tracks the success rate of DHT PUT operations per block."""

    def __init__(self) -> None:
        self._blocks: Dict[int, BlockStat] = {}

    def track(self, block_num: int, count: int) -> BlockStat:
        """Start or extend tracking of ``count`` records for ``block_num``."""
        stat = self._blocks.get(block_num)
        if stat is None:
            stat = BlockStat(total_count=count, remaining_counter=count)
            self._blocks[block_num] = stat
        else:
            stat.increase(count)
        return stat

    def get(self, block_num: int) -> Optional[BlockStat]:
        """The statistics of ``block_num``, if it is tracked."""
        return self._blocks.get(block_num)

    def record_result(
        self, key: KeyLike, is_error: bool, duration: Optional[float] = None
    ) -> Optional[float]:
        """Record one PUT outcome for the record under ``key``.

        Returns the block's success rate once its last record is accounted
        for, otherwise None. Unparsable keys and untracked blocks are ignored.
        """
        try:
            parsed = parse_dht_key(key)
        except InvalidDHTKey as error:
            logger.warning("Unable to cast Kademlia key to DHT key: %s", error)
            return None

        block_num = parsed.block_num
        stat = self._blocks.get(block_num)
        if stat is None:
            logger.debug("Can't find block in the active blocks list")
            return None
        if stat.remaining_counter == 0:
            raise ValueError(f"no pending records for block {block_num}")

        stat.remaining_counter -= 1
        if is_error:
            stat.error_counter += 1
        else:
            stat.success_counter += 1
        stat.time_stat = int(duration) if duration is not None else 0

        if stat.remaining_counter != 0:
            return None
        success_rate = stat.success_counter / stat.total_count
        logger.info(
            "Cell upload success rate for block %s: %s/%s. Duration: %s",
            block_num,
            stat.success_counter,
            stat.total_count,
            stat.time_stat,
        )
        return success_rate


@dataclass
class RelayState:
    """The relay chosen for circuit reservation and the known relays."""

    nodes: List[Tuple[str, str]] = field(default_factory=list)
    id: Optional[str] = None
    address: str = ""
    is_circuit_established: bool = False

    def __init__(self, nodes: Iterable[Tuple[str, str]]) -> None:
        self.nodes = list(nodes)
        self.reset()

    def reset(self) -> None:
        """Forget the selected relay."""
        self.id = None
        self.address = ""
        self.is_circuit_established = False

    def select_random(self, rng: Optional[random.Random] = None) -> Optional[Tuple[str, str]]:
        """Pick a random known relay; return it, or None if none are known."""
        if not self.nodes:
            return None
        chooser = rng if rng is not None else random
        relay = chooser.choice(self.nodes)
        self.id, self.address = relay
        return relay


def count_records_per_block(keys: Iterable[KeyLike]) -> Dict[str, int]:
    """Count record keys per block, ordered by block text."""
    counts: Counter = Counter()
    for key in keys:
        block, separator, _ = _decode(key).partition(":")
        if not separator:
            raise InvalidDHTKey("unable to split the key string")
        counts[block] += 1
    result = dict(sorted(counts.items()))
    for block, count in result.items():
        logger.debug("Number of cells in DHT for block %r: %s", block, count)
    return result