from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import pysam

from .models import VariantCall

logger = logging.getLogger(__name__)


def sample_name_for_bam(bam_path: str | Path) -> str:
    name = Path(bam_path).name
    return name[: -len(".bam")] if name.endswith(".bam") else name


def make_vcf_header(*, ref_fa: str | Path, sample: str) -> pysam.VariantHeader:
    """VCFv4.2 header with contigs from the FASTA index and the duplex FORMAT fields."""
    header = pysam.VariantHeader()
    header.add_meta("fileformat", "VCFv4.2")
    header.add_meta("reference", str(ref_fa))
    with pysam.FastaFile(str(ref_fa)) as fa:
        for contig, length in zip(fa.references, fa.lengths):
            header.contigs.add(contig, length=length)
    header.formats.add("GT", number=1, type="String", description="Genotype")
    header.formats.add("DP", number=1, type="Integer", description="Total Read Depth")
    header.formats.add("WS", number=1, type="Integer", description="Watson Strand Read Depth")
    header.formats.add("CS", number=1, type="Integer", description="Crick Strand Read Depth")
    header.formats.add("RF", number=1, type="String", description="Read Family Identifier")
    header.add_sample(sample)
    return header


class VcfSink:
    """Streams :class:`VariantCall` records into a VCF (``-`` or ``stdout`` for standard output)."""

    def __init__(self, path: str | Path, header: pysam.VariantHeader) -> None:
        target = "-" if str(path) in ("-", "stdout") else str(path)
        self.path = target
        self.header = header
        self._vcf: Optional[pysam.VariantFile] = pysam.VariantFile(target, "w", header=header)
        self.records_written = 0

    def write(self, call: VariantCall) -> None:
        assert self._vcf is not None, "sink already closed"
        rec = self._vcf.new_record(
            contig=call.chrom,
            start=call.pos0,
            stop=call.end0,
            alleles=(call.ref, call.alt),
        )
        sample = rec.samples[0]
        sample["GT"] = (1,)
        sample["DP"] = int(call.total_depth)
        sample["WS"] = int(call.watson_depth)
        sample["CS"] = int(call.crick_depth)
        sample["RF"] = call.family_id
        self._vcf.write(rec)
        self.records_written += 1

    def close(self) -> None:
        if self._vcf is not None:
            self._vcf.close()
            self._vcf = None

    def __enter__(self) -> "VcfSink":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
