from __future__ import annotations

import random
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pysam

from .utils import ensure_outdir, write_json

_CONTIG = "chr1"
_REF_LEN = 2000
_READS_PER_STRAND = 5
_FAMILY_LEN = 100


def _write_fasta(path: Path, contig: str, seq: str) -> None:
    lines = [f">{contig}"]
    for i in range(0, len(seq), 60):
        lines.append(seq[i : i + 60])
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def _mutate_base(base: str) -> str:
    for alt in ["A", "C", "G", "T"]:
        if alt != base:
            return alt
    return "A"


def _make_read(
    name: str,
    start0: int,
    seq: str,
    cigar: Sequence[Tuple[int, int]],
    *,
    family_id: str,
    strand: Optional[str],
    reverse: bool,
    mapq: int = 60,
) -> pysam.AlignedSegment:
    a = pysam.AlignedSegment()
    a.query_name = name
    a.query_sequence = seq
    a.flag = 16 if reverse else 0
    a.reference_id = 0
    a.reference_start = start0
    a.mapping_quality = mapq
    a.cigartuples = list(cigar)
    a.query_qualities = pysam.qualitystring_to_array("I" * len(seq))
    a.set_tag("RF", family_id)
    if strand is not None:
        a.set_tag("RS", strand)
    return a


def _family_reads(
    family_id: str,
    start0: int,
    watson: Tuple[str, List[Tuple[int, int]]],
    crick: Tuple[str, List[Tuple[int, int]]],
    n_per_strand: int = _READS_PER_STRAND,
) -> List[pysam.AlignedSegment]:
    """``n_per_strand`` reads per strand, alternating forward and reverse orientation."""
    reads: List[pysam.AlignedSegment] = []
    for label, (seq, cigar) in (("W", watson), ("C", crick)):
        for i in range(n_per_strand):
            reads.append(
                _make_read(
                    f"{family_id}_{label}{i}",
                    start0,
                    seq,
                    cigar,
                    family_id=family_id,
                    strand=label,
                    reverse=i % 2 == 1,
                )
            )
    return reads


def make_toy_data(*, outdir: str | Path) -> Dict[str, Any]:
    """Create a tiny duplex-sequencing dataset for quick demos/tests.

    The outputs include:
    - toy_ref.fa (+ .fai), one 2 kb contig
    - duplex.bam (+ .bai), reads tagged with RF (family) and RS (W/C strand)
    - families.bed, 8 columns with Watson/Crick read counts in columns 7 and 8
    - exclude.bed, one interval masking one of the SNV families

    Families, each 100 bp with 5 Watson and 5 Crick reads unless noted:
    - fam_snv: SNV on both strands (called)
    - fam_ins: 2 bp insertion on both strands (called)
    - fam_del: 3 bp deletion on both strands (called)
    - fam_discordant: SNV on the Watson strand only (not called)
    - fam_excluded: SNV inside the exclusion interval (called, then excluded)
    - fam_shallow: SNV supported by 2 reads per strand (dropped by the prefilter)

    Returns
    -------
    dict
        Paths to the generated files and the expected VCF records (1-based POS).
    """
    outdir_p = ensure_outdir(outdir)

    rng = random.Random(11)
    ref_seq = "".join(rng.choice("ACGT") for _ in range(_REF_LEN))
    ref_fa = outdir_p / "toy_ref.fa"
    _write_fasta(ref_fa, _CONTIG, ref_seq)
    pysam.faidx(str(ref_fa))

    def span(start0: int) -> str:
        return ref_seq[start0 : start0 + _FAMILY_LEN]

    def snv(start0: int, pos0: int) -> Tuple[str, List[Tuple[int, int]], str]:
        seq = list(span(start0))
        alt = _mutate_base(ref_seq[pos0])
        seq[pos0 - start0] = alt
        return "".join(seq), [(0, _FAMILY_LEN)], alt

    reads: List[pysam.AlignedSegment] = []
    families: List[Tuple[str, int, int, int]] = []
    expected: List[Dict[str, Any]] = []

    # fam_snv
    start0, pos0 = 100, 150
    seq, cigar, alt = snv(start0, pos0)
    reads += _family_reads("fam_snv", start0, (seq, cigar), (seq, cigar))
    families.append(("fam_snv", start0, _READS_PER_STRAND, _READS_PER_STRAND))
    expected.append(
        {"family": "fam_snv", "pos": pos0 + 1, "ref": ref_seq[pos0], "alt": alt, "dp": 10}
    )

    # fam_ins: GT inserted after reference base 450
    start0, anchor0 = 400, 450
    split = anchor0 + 1 - start0
    ins_seq = span(start0)[:split] + "GT" + span(start0)[split:]
    ins_cigar = [(0, split), (1, 2), (0, _FAMILY_LEN - split)]
    reads += _family_reads("fam_ins", start0, (ins_seq, ins_cigar), (ins_seq, ins_cigar))
    families.append(("fam_ins", start0, _READS_PER_STRAND, _READS_PER_STRAND))
    expected.append(
        {
            "family": "fam_ins",
            "pos": anchor0 + 1,
            "ref": ref_seq[anchor0],
            "alt": ref_seq[anchor0] + "GT",
            "dp": 10,
        }
    )

    # fam_del: reference bases 750-752 deleted
    start0, del0, del_len = 700, 750, 3
    split = del0 - start0
    del_seq = span(start0)[:split] + span(start0)[split + del_len :]
    del_cigar = [(0, split), (2, del_len), (0, _FAMILY_LEN - split - del_len)]
    reads += _family_reads("fam_del", start0, (del_seq, del_cigar), (del_seq, del_cigar))
    families.append(("fam_del", start0, _READS_PER_STRAND, _READS_PER_STRAND))
    expected.append(
        {
            "family": "fam_del",
            "pos": del0,
            "ref": ref_seq[del0 - 1 : del0 + del_len],
            "alt": ref_seq[del0 - 1],
            "dp": 10,
        }
    )

    # fam_discordant: the Crick strand carries the reference base
    start0, pos0 = 1000, 1050
    seq, cigar, _ = snv(start0, pos0)
    ref_read = (span(start0), [(0, _FAMILY_LEN)])
    reads += _family_reads("fam_discordant", start0, (seq, cigar), ref_read)
    families.append(("fam_discordant", start0, _READS_PER_STRAND, _READS_PER_STRAND))

    # fam_excluded
    start0, pos0 = 1300, 1350
    seq, cigar, _ = snv(start0, pos0)
    reads += _family_reads("fam_excluded", start0, (seq, cigar), (seq, cigar))
    families.append(("fam_excluded", start0, _READS_PER_STRAND, _READS_PER_STRAND))
    exclude = (_CONTIG, 1340, 1360)

    # fam_shallow
    start0, pos0 = 1600, 1650
    seq, cigar, _ = snv(start0, pos0)
    reads += _family_reads("fam_shallow", start0, (seq, cigar), (seq, cigar), n_per_strand=2)
    families.append(("fam_shallow", start0, 2, 2))

    # reads that must never be piled: no strand label, and another family's tag
    for name, family_id, strand in (("stray_nostrand", "fam_snv", None), ("stray_other", "fam_other", "W")):
        reads.append(
            _make_read(
                name, 100, span(100), [(0, _FAMILY_LEN)], family_id=family_id, strand=strand, reverse=False
            )
        )

    reads.sort(key=lambda r: r.reference_start)

    bam_path = outdir_p / "duplex.bam"
    header = {
        "HD": {"VN": "1.6", "SO": "coordinate"},
        "SQ": [{"SN": _CONTIG, "LN": len(ref_seq)}],
    }
    with pysam.AlignmentFile(str(bam_path), "wb", header=header) as bam:
        for r in reads:
            bam.write(r)
    pysam.index(str(bam_path))

    families_bed = outdir_p / "families.bed"
    with open(families_bed, "wt", encoding="utf-8") as fh:
        for family_id, start0, n_w, n_c in families:
            fh.write(f"{_CONTIG}\t{start0}\t{start0 + _FAMILY_LEN}\t{family_id}\t0\t+\t{n_w}\t{n_c}\n")

    exclude_bed = outdir_p / "exclude.bed"
    exclude_bed.write_text("\t".join(map(str, exclude)) + "\n", encoding="utf-8")

    summary = {
        "ref_fa": str(ref_fa),
        "bam": str(bam_path),
        "families_bed": str(families_bed),
        "exclude_bed": str(exclude_bed),
        "outdir": str(outdir_p),
        "expected_calls": expected,
        "expected_excluded": [{"family": "fam_excluded", "pos": 1351}],
    }

    write_json(outdir_p / "toy_summary.json", summary)
    return summary
