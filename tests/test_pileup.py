from mcscall.pileup import FORWARD, GAP_INDEX, N_INDEX, REVERSE, build_pileup

from conftest import make_prepared


def test_matches_counted_per_orientation():
    reads = [
        make_prepared("ACGT", pos=10),
        make_prepared("ACNT", pos=10, reverse=True),
    ]
    piles = build_pileup(reads)
    assert [p.pos for p in piles] == [10, 11, 12, 13]
    assert piles[0].base_count("A") == 2
    assert piles[0].counts[FORWARD, 0] == 1
    assert piles[0].counts[REVERSE, 0] == 1
    assert piles[2].base_count("G") == 1
    assert piles[2].counts[REVERSE, N_INDEX] == 1
    assert piles[2].ambiguous_count == 1
    assert piles[2].raw_depth == 2


def test_insertion_recorded_on_preceding_base():
    read = make_prepared("ACGGTT", pos=10, cigar=[(0, 2), (1, 2), (0, 2)])
    piles = build_pileup([read])
    by_pos = {p.pos: p for p in piles}
    assert by_pos[11].insertion_count("GG") == 1
    assert by_pos[11].base_count("C") == 1
    assert sorted(by_pos) == [10, 11, 12, 13]
    assert by_pos[12].base_count("T") == 1


def test_deletion_recorded_at_first_deleted_base():
    read = make_prepared("ACTT", pos=10, cigar=[(0, 2), (2, 3), (0, 2)], reverse=True)
    piles = build_pileup([read])
    by_pos = {p.pos: p for p in piles}
    assert by_pos[12].deletion_count(3) == 1
    assert by_pos[12].del_counts[3] == [0, 1]
    for pos in (12, 13, 14):
        assert by_pos[pos].counts[REVERSE, GAP_INDEX] == 1
        assert by_pos[pos].raw_depth == 1
    assert 13 not in {p.pos for p in piles if p.del_counts}
    assert by_pos[15].base_count("T") == 1


def test_soft_clips_and_skips_consume_correctly():
    read = make_prepared("GGACGT", pos=10, cigar=[(4, 2), (0, 2), (3, 5), (0, 2)])
    piles = build_pileup([read])
    assert [p.pos for p in piles] == [10, 11, 17, 18]
    assert piles[0].base_count("A") == 1
    assert piles[2].base_count("G") == 1


def test_terminal_insertions_are_not_piled():
    read = make_prepared("TTACG", pos=10, cigar=[(1, 2), (0, 3)])
    piles = build_pileup([read])
    assert all(not p.ins_counts for p in piles)
    assert [p.pos for p in piles] == [10, 11, 12]
    assert piles[0].base_count("A") == 1
