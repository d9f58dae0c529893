from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .models import PreparedRead
from .pileup import Pile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Footprint:
    """Consensus (start, end) of one read orientation; piles must lie strictly inside."""

    start: int
    end: int

    def contains(self, pos: int) -> bool:
        return self.start < pos < self.end


def _mode(values: Sequence[int], *, prefer_largest: bool) -> int:
    uniq, counts = np.unique(np.asarray(values, dtype=np.int64), return_counts=True)
    if prefer_largest:
        # np.unique sorts ascending; take the last maximum
        idx = len(counts) - 1 - int(np.argmax(counts[::-1]))
    else:
        idx = int(np.argmax(counts))
    return int(uniq[idx])


def consensus_footprint(reads: Sequence[PreparedRead]) -> Optional[Footprint]:
    """Most frequent start and end of ``reads``.

    Ties resolve to the smallest start and the largest end.
    """
    if not reads:
        return None
    starts = [r.pos for r in reads]
    ends = [r.reference_end for r in reads]
    return Footprint(
        start=_mode(starts, prefer_largest=False),
        end=_mode(ends, prefer_largest=True),
    )


def family_footprints(
    reads: Iterable[PreparedRead],
) -> Tuple[Optional[Footprint], Optional[Footprint]]:
    """(forward, reverse) footprints over the union of both strands' reads."""
    fwd: List[PreparedRead] = []
    rev: List[PreparedRead] = []
    for r in reads:
        (rev if r.is_reverse else fwd).append(r)
    return consensus_footprint(fwd), consensus_footprint(rev)


def _keep(piles: Sequence[Pile], windows: Sequence[Footprint]) -> List[Pile]:
    return [p for p in piles if any(w.contains(p.pos) for w in windows)]


def remove_positional_outliers(
    watson_piles: Sequence[Pile],
    crick_piles: Sequence[Pile],
    watson_reads: Sequence[PreparedRead],
    crick_reads: Sequence[PreparedRead],
) -> Tuple[List[Pile], List[Pile]]:
    """Drop piles outside both the forward and the reverse consensus footprint.

    A pile survives if it lies strictly inside at least one of the two windows.
    """
    fwd, rev = family_footprints(list(watson_reads) + list(crick_reads))
    windows = [w for w in (fwd, rev) if w is not None]
    return _keep(watson_piles, windows), _keep(crick_piles, windows)
