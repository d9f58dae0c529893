import array
from typing import List, Optional, Sequence, Tuple

import pysam
import pytest

from mcscall.models import PreparedRead, Strand


def make_aligned(
    seq: str,
    *,
    start: int = 100,
    cigar: Optional[Sequence[Tuple[int, int]]] = None,
    family: Optional[str] = "fam1",
    strand: Optional[str] = "W",
    mapq: int = 60,
    reverse: bool = False,
    name: str = "r1",
    quals: Optional[List[int]] = None,
) -> pysam.AlignedSegment:
    a = pysam.AlignedSegment()
    a.query_name = name
    a.query_sequence = seq
    a.flag = 16 if reverse else 0
    a.reference_start = start
    a.mapping_quality = mapq
    a.cigartuples = list(cigar) if cigar is not None else [(0, len(seq))]
    if quals is None:
        a.query_qualities = pysam.qualitystring_to_array("I" * len(seq))
    else:
        a.query_qualities = array.array("B", quals)
    if family is not None:
        a.set_tag("RF", family)
    if strand is not None:
        a.set_tag("RS", strand)
    return a


def make_prepared(
    seq: str,
    *,
    pos: int = 100,
    cigar: Optional[Sequence[Tuple[int, int]]] = None,
    reverse: bool = False,
    strand: Strand = Strand.WATSON,
    name: str = "r1",
) -> PreparedRead:
    return PreparedRead(
        name=name,
        pos=pos,
        cigar=[[op, n] for op, n in (cigar if cigar is not None else [(0, len(seq))])],
        seq=seq,
        quals=None,
        mapq=60,
        is_reverse=reverse,
        family_id="fam1",
        strand=strand,
    )


class FakeReference:
    """In-memory stand-in for pysam.FastaFile.fetch."""

    def __init__(self, seqs):
        self.seqs = dict(seqs)

    def fetch(self, reference: str, start: int, end: int) -> str:
        return self.seqs[reference][start:end]


@pytest.fixture
def toy(tmp_path):
    from mcscall.toy_data import make_toy_data

    return make_toy_data(outdir=tmp_path / "toy")
