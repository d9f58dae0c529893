from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

import numpy as np

from .models import PreparedRead
from .readprep import soft_clip_terminal_insertions

logger = logging.getLogger(__name__)

BASES = "ACGT"
N_INDEX = 4
GAP_INDEX = 5
_BASE_INDEX = {b: i for i, b in enumerate(BASES)}

FORWARD = 0
REVERSE = 1


@dataclass
class Pile:
    """Read evidence at one 0-based reference position, for one strand.

    Attributes
    ----------
    pos:
        0-based reference position.
    counts:
        Array of shape (2, 6): rows are forward/reverse read orientation, columns
        are A, C, G, T, N (ambiguous or quality-masked) and gap (a read spanning
        this position with a deletion).
    del_counts:
        Deletion length -> [forward, reverse] counts, recorded at the first
        deleted position.
    ins_counts:
        Inserted sequence -> [forward, reverse] counts, recorded at the base
        preceding the insertion.
    """

    pos: int
    counts: np.ndarray = field(default_factory=lambda: np.zeros((2, 6), dtype=np.int64))
    del_counts: Dict[int, List[int]] = field(default_factory=dict)
    ins_counts: Dict[str, List[int]] = field(default_factory=dict)

    def add_base(self, base: str, direction: int) -> None:
        self.counts[direction, _BASE_INDEX.get(base, N_INDEX)] += 1

    def add_deletion(self, length: int, direction: int) -> None:
        self.del_counts.setdefault(length, [0, 0])[direction] += 1

    def add_insertion(self, seq: str, direction: int) -> None:
        self.ins_counts.setdefault(seq, [0, 0])[direction] += 1

    def base_count(self, base: str) -> int:
        return int(self.counts[:, _BASE_INDEX[base]].sum())

    @property
    def ambiguous_count(self) -> int:
        return int(self.counts[:, N_INDEX].sum())

    @property
    def raw_depth(self) -> int:
        """Every read observed at this position, masked bases included."""
        return int(self.counts.sum())

    def deletion_count(self, length: int) -> int:
        return sum(self.del_counts.get(length, (0, 0)))

    def insertion_count(self, seq: str) -> int:
        return sum(self.ins_counts.get(seq, (0, 0)))


def build_pileup(reads: Sequence[PreparedRead]) -> List[Pile]:
    """Aggregate one strand's prepared reads into position-ordered piles.

    Terminal insertions are soft-clipped on each read first, so no pile ever
    carries an insertion anchored at a read edge.
    """
    piles: Dict[int, Pile] = {}

    def at(pos: int) -> Pile:
        pile = piles.get(pos)
        if pile is None:
            pile = piles[pos] = Pile(pos=pos)
        return pile

    for read in reads:
        read.cigar = soft_clip_terminal_insertions(read.cigar)
        direction = REVERSE if read.is_reverse else FORWARD
        ref_pos = read.pos
        query_pos = 0
        seq = read.seq

        for op, length in read.cigar:
            if op in (0, 7, 8):  # M, =, X
                for k in range(length):
                    at(ref_pos + k).add_base(seq[query_pos + k], direction)
                ref_pos += length
                query_pos += length
            elif op == 1:  # I
                at(ref_pos - 1).add_insertion(seq[query_pos : query_pos + length], direction)
                query_pos += length
            elif op == 2:  # D
                at(ref_pos).add_deletion(length, direction)
                for k in range(length):
                    at(ref_pos + k).counts[direction, GAP_INDEX] += 1
                ref_pos += length
            elif op == 3:  # N
                ref_pos += length
            elif op == 4:  # S
                query_pos += length

    return [piles[pos] for pos in sorted(piles)]
