"""Cell positions, random sampling and RPC node lists."""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional

logger = logging.getLogger(__name__)

CELL_SIZE = 32
PROOF_SIZE = 48
CELL_WITH_PROOF_SIZE = CELL_SIZE + PROOF_SIZE

CELL_COUNT_99_99 = 14
_DEFAULT_CONFIDENCE = 99.3


@dataclass(frozen=True, order=True)
class Position:
    """Position of a cell in the extended data matrix."""

    row: int
    col: int

    def reference(self, block: int) -> str:
        """DHT reference of this position in ``block``: ``block:row:col``."""
        return f"{block}:{self.row}:{self.col}"


@dataclass(frozen=True)
class Cell:
    """A matrix cell: its position and its proof followed by its data."""

    position: Position
    content: bytes

    def __post_init__(self) -> None:
        if len(self.content) != CELL_WITH_PROOF_SIZE:
            raise ValueError(
                f"cell content must be {CELL_WITH_PROOF_SIZE} bytes, got {len(self.content)}"
            )

    def reference(self, block: int) -> str:
        """DHT reference of this cell in ``block``."""
        return self.position.reference(block)


def cell_count_for_confidence(confidence: float) -> int:
    """Number of cells to sample to reach ``confidence`` percent."""
    if not 50.0 <= confidence <= 100.0:
        logger.info(
            "confidence is %s invalid so taking default confidence of 99", confidence
        )
        confidence = _DEFAULT_CONFIDENCE

    remainder = 1.0 - confidence / 100.0
    if remainder <= 0.0:
        cell_count = CELL_COUNT_99_99 + 1
    else:
        cell_count = math.ceil(-math.log2(remainder))

    if cell_count <= 1:
        logger.info("confidence of %s is too low so taking confidence of 50.0", confidence)
        return 1
    if cell_count > CELL_COUNT_99_99:
        logger.info("confidence of %s is invalid so taking confidence of 99.99", confidence)
        return CELL_COUNT_99_99
    return cell_count


def generate_random_cells(
    extended_rows: int,
    cols: int,
    cell_count: int,
    rng: Optional[random.Random] = None,
) -> List[Position]:
    """Pick ``cell_count`` distinct random positions in the extended matrix.

    The count is capped at the number of cells the matrix holds.
    """
    max_cells = extended_rows * cols
    count = cell_count
    if max_cells < cell_count:
        logger.debug(
            "Max cells count %s is lesser than cell_count %s", max_cells, cell_count
        )
        count = max_cells
    chooser = rng if rng is not None else random.Random()
    positions = set()
    while len(positions) < count:
        col = chooser.randrange(cols)
        row = chooser.randrange(extended_rows)
        positions.add(Position(row=row, col=col))
    return list(positions)


@dataclass
class Node:
    """An RPC node and the versions it reported."""

    host: str = "{host}"
    system_version: str = "{system_version}"
    spec_name: str = "data-avail"
    spec_version: int = 0
    genesis_hash: bytes = field(default=bytes(32))

    def network(self) -> str:
        """Network description: ``host/system_version/spec_name/spec_version``."""
        return f"{self.host}/{self.system_version}/{self.spec_name}/{self.spec_version}"

    def __str__(self) -> str:
        return f"v{self.system_version}/{self.spec_name}"


class Nodes:
    """The configured RPC nodes, in configuration order."""

    def __init__(self, hosts: Iterable[str]) -> None:
        self._list = [
            Node(host=host, system_version="", spec_name="", spec_version=0)
            for host in hosts
        ]

    def shuffle(self, current_host: str, rng: Optional[random.Random] = None) -> List[Node]:
        """Shuffled nodes without ``current_host``; a single node is returned as is."""
        if len(self._list) <= 1:
            return list(self._list)
        candidates = [node for node in self._list if node.host != current_host]
        (rng if rng is not None else random).shuffle(candidates)
        return candidates

    def __iter__(self) -> Iterator[Node]:
        return iter(self._list)

    def __len__(self) -> int:
        return len(self._list)