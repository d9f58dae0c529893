from mcscall.models import Strand
from mcscall.outliers import Footprint, consensus_footprint, remove_positional_outliers
from mcscall.pileup import Pile

from conftest import make_prepared


def _forward_family():
    reads = [make_prepared("A" * 60, pos=200, name=f"f{i}") for i in range(8)]
    reads += [make_prepared("A" * 65, pos=195, name=f"g{i}") for i in range(2)]
    return reads


def test_consensus_footprint_majority():
    fp = consensus_footprint(_forward_family())
    assert fp == Footprint(start=200, end=260)


def test_consensus_footprint_ties_are_permissive():
    reads = [
        make_prepared("A" * 50, pos=100),
        make_prepared("A" * 60, pos=110),
    ]
    # starts 100/110 and ends 150/170 are tied: smallest start, largest end
    assert consensus_footprint(reads) == Footprint(start=100, end=170)


def test_consensus_footprint_empty():
    assert consensus_footprint([]) is None


def test_pile_on_window_boundary_is_dropped():
    watson = _forward_family()
    piles = [Pile(pos=p) for p in (199, 200, 201, 259, 260)]
    kept, _ = remove_positional_outliers(piles, [], watson, [])
    assert [p.pos for p in kept] == [201, 259]


def test_pile_inside_either_window_survives():
    watson = _forward_family()
    crick = [
        make_prepared("A" * 70, pos=230, reverse=True, strand=Strand.CRICK, name=f"c{i}")
        for i in range(4)
    ]
    w_piles = [Pile(pos=p) for p in (210, 280, 300)]
    c_piles = [Pile(pos=p) for p in (200, 231, 299)]
    kept_w, kept_c = remove_positional_outliers(w_piles, c_piles, watson, crick)
    # 210 is outside the reverse window (230, 300) but inside the forward one
    assert [p.pos for p in kept_w] == [210, 280]
    assert [p.pos for p in kept_c] == [231, 299]
