import multiprocessing as mp
import os
from pathlib import Path

import pysam
import pytest

from mcscall.caller import call_family
from mcscall.config import CallerConfig
from mcscall.pipeline import WorkerError, _watch_workers, collect_results, run_pipeline
from mcscall.prefilter import prefilter_bed
from mcscall.regions import ExclusionTree, iter_family_regions


def _records(vcf_path: Path):
    with pysam.VariantFile(str(vcf_path)) as vcf:
        return sorted(
            (r.samples[0]["RF"], r.pos, r.ref, r.alts[0], r.samples[0]["DP"]) for r in vcf
        )


def _expected(toy):
    return sorted((c["family"], c["pos"], c["ref"], c["alt"], c["dp"]) for c in toy["expected_calls"])


def test_call_family_on_toy_data(toy):
    regions = {r.family_id: r for r in iter_family_regions(toy["families_bed"])}
    cfg = CallerConfig()
    lines = []
    with pysam.AlignmentFile(toy["bam"], "rb") as bam, pysam.FastaFile(toy["ref_fa"]) as fasta:
        snv = call_family(regions["fam_snv"], bam=bam, reference=fasta, config=cfg)
        discordant = call_family(regions["fam_discordant"], bam=bam, reference=fasta, config=cfg)
        shallow = call_family(regions["fam_shallow"], bam=bam, reference=fasta, config=cfg, debug=lines.append)
    assert len(snv) == 1
    assert snv[0].pos0 + 1 == 151
    assert (snv[0].watson_depth, snv[0].crick_depth) == (5, 5)
    assert discordant == []
    assert shallow == []
    assert any("too few reads" in line for line in lines)


@pytest.mark.parametrize("threads", [1, 2])
def test_run_pipeline_end_to_end(toy, tmp_path, threads):
    cfg = CallerConfig(threads=threads, output_buffer=2)
    exclusion = ExclusionTree.from_bed_files([toy["exclude_bed"]])
    analysis = tmp_path / "families.analysis.bed"
    pf = prefilter_bed(toy["families_bed"], analysis, config=cfg, exclusion=exclusion)
    assert pf["families_kept"] == 5
    assert pf["families_skipped_depth"] == 1

    out_vcf = tmp_path / "calls.vcf"
    summary = run_pipeline(
        bam_path=toy["bam"],
        ref_fa=toy["ref_fa"],
        regions=iter_family_regions(analysis),
        out_vcf=out_vcf,
        config=cfg,
        exclusion=exclusion,
        total=pf["families_kept"],
        progress=False,
    )

    assert _records(out_vcf) == _expected(toy)
    counts = summary["counts"]
    assert counts["families_processed"] == 5
    assert counts["calls_total"] == 4
    assert counts["calls_excluded"] == 1
    assert counts["calls_written"] == 3
    assert (counts["calls_snv"], counts["calls_insertion"], counts["calls_deletion"]) == (1, 1, 1)
    assert summary["dp_hist"] == {"10": 3}
    assert summary["config"]["threads"] == threads


def test_run_pipeline_without_exclusion_writes_excluded_call(toy, tmp_path):
    out_vcf = tmp_path / "calls.vcf"
    summary = run_pipeline(
        bam_path=toy["bam"],
        ref_fa=toy["ref_fa"],
        regions=iter_family_regions(toy["families_bed"]),
        out_vcf=out_vcf,
        config=CallerConfig(),
        progress=False,
    )
    assert summary["counts"]["calls_written"] == 4
    assert "fam_excluded" in {rec[0] for rec in _records(out_vcf)}


def test_run_pipeline_debug_log(toy, tmp_path):
    debug_log = tmp_path / "debug.txt"
    run_pipeline(
        bam_path=toy["bam"],
        ref_fa=toy["ref_fa"],
        regions=iter_family_regions(toy["families_bed"]),
        out_vcf=tmp_path / "calls.vcf",
        config=CallerConfig(),
        debug_log=debug_log,
        progress=False,
    )
    text = debug_log.read_text(encoding="utf-8")
    assert "variant bases do not match" in text
    assert "too few reads" in text


def test_worker_failure_surfaces(toy, tmp_path):
    from mcscall.models import ReadFamilyRegion

    bad = [ReadFamilyRegion(chrom="chrUnknown", start=0, end=100, family_id="x")]
    with pytest.raises(WorkerError) as excinfo:
        run_pipeline(
            bam_path=toy["bam"],
            ref_fa=toy["ref_fa"],
            regions=bad,
            out_vcf=tmp_path / "calls.vcf",
            config=CallerConfig(),
            progress=False,
        )
    assert "Traceback" in excinfo.value.worker_traceback


def test_hard_exited_worker_is_reported():
    ctx = mp.get_context()
    result_queue = ctx.Queue()
    worker = ctx.Process(target=os._exit, args=(137,), name="mcscall-worker-0")
    worker.start()
    _watch_workers([worker], result_queue, None)
    with pytest.raises(WorkerError, match="exited with code 137") as excinfo:
        collect_results(result_queue, sink=None, progress=False)
    assert excinfo.value.worker_id == 0
