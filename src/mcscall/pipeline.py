"""Worker pool that drives duplex calling across all read families.

Layout
------
- a feeder thread pushes read-family regions into a bounded region queue;
- ``config.threads`` worker processes each open their own BAM and FASTA handles,
  pull regions, and push one :class:`FamilyResult` per family (possibly empty)
  into a bounded result queue, so workers block when the collector falls behind;
- a watcher thread joins every worker and then puts the end-of-stream marker on
  the result queue, the only termination signal the collector sees;
- the collector (the calling thread) drains results, drops calls inside
  excluded intervals, and streams the rest to the VCF in arrival order.

With more than one worker the output is not in genomic order. The optional
debug trace goes through an unbounded queue to one writer thread; its lines
are only coherent with a single worker.
"""

from __future__ import annotations

import logging
import multiprocessing as mp
import threading
import time
import traceback
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import numpy as np
import pysam
from tqdm import tqdm

from .caller import call_family
from .config import CallerConfig
from .models import ReadFamilyRegion, VariantCall
from .regions import ExclusionTree
from .utils import format_duration
from .vcf_writer import VcfSink, make_vcf_header, sample_name_for_bam

logger = logging.getLogger(__name__)

_PROGRESS_EVERY = 1000


class WorkerError(RuntimeError):
    """Raised in the collector when a worker process failed."""

    def __init__(self, message: str, *, worker_id: int, worker_traceback: str) -> None:
        super().__init__(message)
        self.worker_id = worker_id
        self.worker_traceback = worker_traceback


@dataclass(frozen=True)
class FamilyResult:
    family_id: str
    calls: List[VariantCall]


@dataclass(frozen=True)
class _WorkerFailure:
    worker_id: int
    traceback: str


def _worker_main(
    worker_id: int,
    bam_path: str,
    ref_fa: str,
    config: CallerConfig,
    region_queue: "mp.Queue",
    result_queue: "mp.Queue",
    debug_queue: Optional["mp.Queue"],
) -> None:
    try:
        debug = debug_queue.put if debug_queue is not None else None
        with pysam.AlignmentFile(bam_path, "rb") as bam, pysam.FastaFile(ref_fa) as fasta:
            while True:
                region = region_queue.get()
                if region is None:
                    break
                calls = call_family(region, bam=bam, reference=fasta, config=config, debug=debug)
                result_queue.put(FamilyResult(family_id=region.family_id, calls=calls))
    except Exception:
        result_queue.put(_WorkerFailure(worker_id=worker_id, traceback=traceback.format_exc()))
        raise


def _feed_regions(
    regions: Iterable[ReadFamilyRegion],
    region_queue: "mp.Queue",
    n_workers: int,
    errors: List[BaseException],
    fed: Dict[str, int],
) -> None:
    try:
        for region in regions:
            region_queue.put(region)
            fed["regions"] += 1
    except Exception as e:
        errors.append(e)
    finally:
        for _ in range(n_workers):
            region_queue.put(None)


def _watch_workers(
    workers: List[mp.process.BaseProcess],
    result_queue: "mp.Queue",
    debug_queue: Optional["mp.Queue"],
) -> None:
    for i, w in enumerate(workers):
        w.join()
        # killed or hard-exited workers never get to report a traceback
        if w.exitcode != 0:
            result_queue.put(
                _WorkerFailure(worker_id=i, traceback=f"{w.name} exited with code {w.exitcode}")
            )
    result_queue.put(None)
    if debug_queue is not None:
        debug_queue.put(None)


def _write_debug(debug_queue: "mp.Queue", path: str | Path) -> None:
    with open(path, "wt", encoding="utf-8") as fh:
        for line in iter(debug_queue.get, None):
            fh.write(f"{line}\n")


def _new_counts() -> Dict[str, int]:
    return {
        "families_processed": 0,
        "families_with_calls": 0,
        "calls_total": 0,
        "calls_excluded": 0,
        "calls_written": 0,
        "calls_snv": 0,
        "calls_insertion": 0,
        "calls_deletion": 0,
    }


def collect_results(
    result_queue: "mp.Queue",
    sink: VcfSink,
    *,
    exclusion: Optional[ExclusionTree] = None,
    total: Optional[int] = None,
    progress: bool = True,
    verbose: int = 0,
) -> Dict[str, object]:
    """Drain the result queue until the end-of-stream marker and write surviving calls."""
    counts = _new_counts()
    dp_counts = np.zeros(64, dtype=np.int64)
    last_call: Optional[VariantCall] = None
    checkpoint = time.time()

    pbar = tqdm(total=total, unit="family", desc="Calling families", disable=not progress)
    try:
        for item in iter(result_queue.get, None):
            if isinstance(item, _WorkerFailure):
                raise WorkerError(
                    f"Worker {item.worker_id} failed:\n{item.traceback}",
                    worker_id=item.worker_id,
                    worker_traceback=item.traceback,
                )

            counts["families_processed"] += 1
            pbar.update(1)
            if verbose > 0 and counts["families_processed"] % _PROGRESS_EVERY == 0:
                now = time.time()
                where = f"{last_call.chrom}:{last_call.pos0 + 1}" if last_call is not None else "-"
                logger.info(
                    "Processed %d read families in: %.1fsec\t%s",
                    _PROGRESS_EVERY,
                    now - checkpoint,
                    where,
                )
                checkpoint = now

            if not item.calls:
                continue
            counts["families_with_calls"] += 1
            for call in item.calls:
                counts["calls_total"] += 1
                if exclusion is not None and exclusion.contains(call.chrom, call.pos0, call.end0):
                    counts["calls_excluded"] += 1
                    continue
                sink.write(call)
                counts["calls_written"] += 1
                counts[f"calls_{call.vtype.value}"] += 1
                if call.total_depth >= len(dp_counts):
                    dp_counts = np.concatenate(
                        [dp_counts, np.zeros(call.total_depth + 1 - len(dp_counts), dtype=np.int64)]
                    )
                dp_counts[call.total_depth] += 1
            last_call = item.calls[-1]
    finally:
        pbar.close()

    return {"counts": counts, "dp_counts": dp_counts}


def run_pipeline(
    *,
    bam_path: str | Path,
    ref_fa: str | Path,
    regions: Iterable[ReadFamilyRegion],
    out_vcf: str | Path,
    config: CallerConfig,
    exclusion: Optional[ExclusionTree] = None,
    debug_log: Optional[str | Path] = None,
    total: Optional[int] = None,
    progress: bool = True,
) -> Dict[str, object]:
    """Call every read family in ``regions`` and write the VCF; return a run summary."""
    config.validate()
    t0 = time.time()

    header = make_vcf_header(ref_fa=ref_fa, sample=sample_name_for_bam(bam_path))

    ctx = mp.get_context()
    region_queue = ctx.Queue(maxsize=config.output_buffer)
    result_queue = ctx.Queue(maxsize=config.output_buffer)
    debug_queue = ctx.Queue() if debug_log is not None else None

    if debug_log is not None and config.threads > 1:
        logger.warning("Debug log lines from %d workers will be interleaved.", config.threads)

    workers = [
        ctx.Process(
            target=_worker_main,
            args=(i, str(bam_path), str(ref_fa), config, region_queue, result_queue, debug_queue),
            name=f"mcscall-worker-{i}",
            daemon=True,
        )
        for i in range(config.threads)
    ]
    for w in workers:
        w.start()

    feed_errors: List[BaseException] = []
    fed = {"regions": 0}
    feeder = threading.Thread(
        target=_feed_regions,
        args=(regions, region_queue, len(workers), feed_errors, fed),
        name="mcscall-feeder",
        daemon=True,
    )
    watcher = threading.Thread(
        target=_watch_workers,
        args=(workers, result_queue, debug_queue),
        name="mcscall-watcher",
        daemon=True,
    )
    debug_writer: Optional[threading.Thread] = None
    if debug_queue is not None:
        debug_writer = threading.Thread(
            target=_write_debug, args=(debug_queue, debug_log), name="mcscall-debug", daemon=True
        )
        debug_writer.start()
    feeder.start()
    watcher.start()

    try:
        with VcfSink(out_vcf, header) as sink:
            collected = collect_results(
                result_queue,
                sink,
                exclusion=exclusion,
                total=total,
                progress=progress,
                verbose=config.verbose,
            )
    except BaseException:
        for w in workers:
            if w.is_alive():
                w.terminate()
        region_queue.cancel_join_thread()
        result_queue.cancel_join_thread()
        raise

    watcher.join()
    if debug_writer is not None:
        debug_writer.join()
    if feed_errors:
        raise feed_errors[0]

    dt = time.time() - t0
    counts = collected["counts"]
    dp_counts = collected["dp_counts"]
    if counts["families_processed"] != fed["regions"]:
        raise RuntimeError(
            f"Only {counts['families_processed']} of {fed['regions']} read families were processed"
        )
    logger.info(
        "Successfully completed: %d read families processed, %d calls written in %s",
        counts["families_processed"],
        counts["calls_written"],
        format_duration(dt),
    )

    return {
        "bam_path": str(bam_path),
        "ref_fa": str(ref_fa),
        "out_vcf": str(out_vcf),
        "debug_log": str(debug_log) if debug_log is not None else None,
        "config": asdict(config),
        "exclusion_intervals": len(exclusion) if exclusion is not None else 0,
        "counts": counts,
        "dp_hist": {str(int(dp)): int(dp_counts[dp]) for dp in np.flatnonzero(dp_counts)},
        "runtime_seconds": float(dt),
    }
