"""Parallel verification of cell proofs."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, List, Sequence, Tuple

from lightnode.sampling import Cell, Position

logger = logging.getLogger(__name__)

Verifier = Callable[[bytes, Cell], bool]


async def verify(
    block_num: int,
    cells: Sequence[Cell],
    commitments: Sequence[bytes],
    verifier: Verifier,
) -> Tuple[List[Position], List[Position]]:
    """Verify every cell against the commitment of its row.

    ``verifier(commitment, cell)`` runs in worker threads, one call per cell.
    Returns the verified and the unverified positions, in input order. An
    exception from the verifier, or a row with no commitment, is raised.
    """
    if not cells:
        return [], []

    start = time.monotonic()
    jobs = [
        asyncio.to_thread(verifier, commitments[cell.position.row], cell) for cell in cells
    ]
    outcomes = await asyncio.gather(*jobs)

    logger.debug(
        "Proof verification completed for block %s in %.3fs",
        block_num,
        time.monotonic() - start,
    )

    verified: List[Position] = []
    unverified: List[Position] = []
    for cell, ok in zip(cells, outcomes):
        (verified if ok else unverified).append(cell.position)
    return verified, unverified