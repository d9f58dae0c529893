from pathlib import Path

import pytest

from mcscall.config import CallerConfig
from mcscall.models import ReadFamilyRegion
from mcscall.prefilter import (
    _new_counts,
    analysis_bed_path,
    cluster_overlapping,
    filter_regions,
    prefilter_bed,
)
from mcscall.regions import ExclusionTree, iter_family_regions, parse_family_line


def _region(chrom, start, end, name, w=None, c=None):
    return ReadFamilyRegion(chrom=chrom, start=start, end=end, family_id=name, watson_depth=w, crick_depth=c)


def _write(path: Path, rows) -> Path:
    path.write_text("".join("\t".join(map(str, r)) + "\n" for r in rows), encoding="utf-8")
    return path


def test_parse_family_line_with_depths():
    region = parse_family_line("chr1\t10\t20\tfamA\t0\t+\t5\t6\n")
    assert (region.chrom, region.start, region.end, region.family_id) == ("chr1", 10, 20, "famA")
    assert (region.watson_depth, region.crick_depth) == (5, 6)


def test_parse_family_line_without_depths():
    region = parse_family_line("chr1\t10\t20\tfamA")
    assert region.watson_depth is None
    assert region.crick_depth is None


def test_parse_family_line_errors_name_location():
    with pytest.raises(ValueError, match="fam.bed:3"):
        parse_family_line("chr1\tten\t20\tfamA", path="fam.bed", lineno=3)
    with pytest.raises(ValueError, match="at least 4"):
        parse_family_line("chr1\t10\t20")


def test_iter_family_regions_skips_headers(tmp_path):
    bed = tmp_path / "fam.bed"
    bed.write_text("track name=x\n# comment\n\nchr1\t1\t5\ta\n", encoding="utf-8")
    assert [r.family_id for r in iter_family_regions(bed)] == ["a"]


def test_exclusion_tree_contains_requires_enclosure():
    tree = ExclusionTree()
    tree.add("chr1", 100, 200)
    tree.add("chr1", 50, 50)
    assert len(tree) == 1
    assert tree.contains("chr1", 100, 200)
    assert tree.contains("chr1", 150, 151)
    assert not tree.contains("chr1", 90, 110)
    assert not tree.contains("chr1", 199, 201)
    assert not tree.contains("chr2", 150, 151)


def test_cluster_overlapping_groups_on_first_member():
    regions = [
        _region("chr1", 0, 100, "a"),
        _region("chr1", 50, 150, "b"),
        # overlaps b but not a: starts a new cluster
        _region("chr1", 120, 200, "c"),
        _region("chr2", 0, 100, "d"),
    ]
    clusters = [[r.family_id for r in c] for c in cluster_overlapping(regions)]
    assert clusters == [["a", "b"], ["c"], ["d"]]


def test_filter_regions_overlap_cap_applies_to_last_cluster():
    regions = [_region("chr1", i, 100 + i, f"f{i}") for i in range(3)]
    cfg = CallerConfig(max_overlapping_families=2)
    assert list(filter_regions(regions, config=cfg)) == []
    unlimited = CallerConfig(max_overlapping_families=-1)
    assert len(list(filter_regions(regions, config=unlimited))) == 3


def test_filter_regions_depth_and_exclusion():
    tree = ExclusionTree()
    tree.add("chr1", 900, 1200)
    regions = [
        _region("chr1", 0, 100, "ok", 5, 5),
        _region("chr1", 200, 300, "shallow_total", 4, 3),
        _region("chr1", 400, 500, "one_strand", 10, 2),
        _region("chr1", 600, 700, "unannotated"),
        _region("chr1", 1000, 1100, "excluded", 9, 9),
    ]
    counts = _new_counts()
    kept = [r.family_id for r in filter_regions(regions, config=CallerConfig(), exclusion=tree, counts=counts)]
    assert kept == ["ok", "unannotated"]
    assert counts["families_total"] == 5
    assert counts["families_skipped_depth"] == 2
    assert counts["families_skipped_excluded"] == 1
    assert counts["families_kept"] == 2


def test_analysis_bed_path(tmp_path):
    assert analysis_bed_path("/data/fams.bed") == Path("/data/fams.analysis.bed")
    assert analysis_bed_path("/data/fams.bed.gz", tmp_path) == tmp_path / "fams.analysis.bed"


def test_prefilter_bed_writes_rows_verbatim(tmp_path):
    bed = _write(
        tmp_path / "fams.bed",
        [
            ("chr1", 0, 100, "a", 0, "+", 5, 5),
            ("chr1", 200, 300, "b", 0, "+", 1, 1),
        ],
    )
    out = tmp_path / "fams.analysis.bed"
    counts = prefilter_bed(bed, out, config=CallerConfig())
    assert out.read_text(encoding="utf-8") == "chr1\t0\t100\ta\t0\t+\t5\t5\n"
    assert counts["families_kept"] == 1
    assert counts["families_skipped_depth"] == 1


def test_placeholder_depth_annotation_counts_as_zero():
    region = parse_family_line("chr1\t10\t20\tfamA\t0\t+\t.\t7")
    assert (region.watson_depth, region.crick_depth) == (0, 7)
    assert list(filter_regions([region], config=CallerConfig())) == []
