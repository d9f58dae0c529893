import pytest

from mcscall.config import CallerConfig
from mcscall.models import Strand
from mcscall.readprep import (
    clip_read_ends,
    mask_low_quality_bases,
    partition_family_reads,
    prepare_read,
    query_length,
    soft_clip_terminal_insertions,
)

from conftest import make_aligned, make_prepared


def test_clip_simple_match():
    read = make_prepared("ACGTACGTAC", pos=100)
    clip_read_ends(read, 3)
    assert read.cigar == [[4, 3], [0, 4], [4, 3]]
    assert read.pos == 103
    assert read.reference_end == 107


@pytest.mark.parametrize(
    "cigar",
    [
        [(0, 10)],
        [(0, 5), (1, 2), (0, 5)],
        [(4, 2), (0, 3), (2, 2), (0, 6)],
        [(0, 2), (2, 3), (0, 8)],
        [(0, 6), (2, 1), (0, 1), (1, 1), (0, 2)],
        [(4, 5), (0, 4)],
    ],
)
@pytest.mark.parametrize("k", [0, 1, 3, 6, 20])
def test_clip_preserves_query_length(cigar, k):
    seq = "A" * query_length(cigar)
    read = make_prepared(seq, cigar=cigar)
    clip_read_ends(read, k)
    assert query_length(read.cigar) == len(seq)
    assert all(n > 0 for _, n in read.cigar)


def test_clip_front_absorbs_deletion():
    read = make_prepared("A" * 10, pos=100, cigar=[(0, 2), (2, 3), (0, 8)])
    clip_read_ends(read, 3)
    # 2 matched bases, the 3 bp deletion and 1 more matched base move into the clip
    assert read.pos == 106
    assert read.cigar == [[4, 3], [0, 4], [4, 3]]


def test_clip_never_leaves_leading_deletion():
    read = make_prepared("A" * 10, pos=100, cigar=[(0, 3), (2, 2), (0, 7)])
    clip_read_ends(read, 3)
    assert read.cigar[1][0] == 0
    assert read.pos == 105


def test_clip_leaves_fully_soft_clipped_read():
    read = make_prepared("ACGTA", pos=100, cigar=[(4, 5)])
    clip_read_ends(read, 2)
    assert read.cigar == [[4, 5]]
    assert read.pos == 100


def test_soft_clip_terminal_insertions():
    assert soft_clip_terminal_insertions([[1, 2], [0, 5], [1, 1]]) == [[4, 2], [0, 5], [4, 1]]
    assert soft_clip_terminal_insertions([[4, 2], [1, 1], [0, 5]]) == [[4, 3], [0, 5]]
    assert soft_clip_terminal_insertions([[0, 5], [1, 1], [4, 3]]) == [[0, 5], [4, 4]]
    assert soft_clip_terminal_insertions([[0, 3], [1, 1], [0, 3]]) == [[0, 3], [1, 1], [0, 3]]


def test_mask_low_quality_bases():
    read = make_prepared("ACG")
    read.quals = [40, 10, 40]
    mask_low_quality_bases(read, 30)
    assert read.seq == "ANG"


def test_prepare_read_clips_and_masks():
    cfg = CallerConfig(end_pad=2, min_base_quality=30)
    quals = [40] * 10
    quals[4] = 5
    read = make_aligned("acgtacgtac", start=50, quals=quals)
    prepared = prepare_read(read, family_id="fam1", config=cfg)
    assert prepared is not None
    assert prepared.pos == 52
    assert prepared.seq == "ACGTNCGTAC"
    assert prepared.strand is Strand.WATSON
    assert prepared.cigar == [[4, 2], [0, 6], [4, 2]]


def test_prepare_read_filters():
    cfg = CallerConfig()
    assert prepare_read(make_aligned("A" * 20, mapq=5), family_id="fam1", config=cfg) is None
    assert prepare_read(make_aligned("A" * 20, family="fam2"), family_id="fam1", config=cfg) is None
    assert prepare_read(make_aligned("A" * 20, strand=None), family_id="fam1", config=cfg) is None
    assert prepare_read(make_aligned("A" * 20, strand="X"), family_id="fam1", config=cfg) is None
    # entirely clipped away
    assert prepare_read(make_aligned("A" * 6), family_id="fam1", config=cfg) is None


def test_prepare_read_supplementary():
    read = make_aligned("A" * 20)
    read.set_tag("SA", "chr2,100,+,20M,60,0;")
    assert prepare_read(read, family_id="fam1", config=CallerConfig()) is None
    allowed = CallerConfig(allow_supplementary=True)
    assert prepare_read(read, family_id="fam1", config=allowed) is not None


def test_partition_family_reads_sorted_by_strand():
    reads = [
        make_aligned("A" * 20, start=130, strand="W", name="w2"),
        make_aligned("A" * 20, start=110, strand="c", name="c1"),
        make_aligned("A" * 20, start=100, strand="W", name="w1"),
        make_aligned("A" * 20, start=105, family="other", name="x"),
    ]
    watson, crick = partition_family_reads(reads, family_id="fam1", config=CallerConfig())
    assert [r.name for r in watson] == ["w1", "w2"]
    assert [r.name for r in crick] == ["c1"]
    assert crick[0].strand is Strand.CRICK
