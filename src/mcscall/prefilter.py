from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional

from .config import CallerConfig
from .models import ReadFamilyRegion
from .regions import ExclusionTree, iter_family_regions, write_family_regions

logger = logging.getLogger(__name__)


def _overlaps(a: ReadFamilyRegion, b: ReadFamilyRegion) -> bool:
    return a.chrom == b.chrom and a.start < b.end and b.start < a.end


def cluster_overlapping(regions: Iterable[ReadFamilyRegion]) -> Iterator[List[ReadFamilyRegion]]:
    """Group consecutive regions that overlap the first region of the current cluster.

    Input must be sorted by chrom and start.
    """
    cluster: List[ReadFamilyRegion] = []
    for region in regions:
        if not cluster or _overlaps(cluster[0], region):
            cluster.append(region)
            continue
        yield cluster
        cluster = [region]
    if cluster:
        yield cluster


def _new_counts() -> Dict[str, int]:
    return {
        "families_total": 0,
        "families_kept": 0,
        "families_skipped_overlap": 0,
        "families_skipped_depth": 0,
        "families_skipped_excluded": 0,
        "clusters_total": 0,
        "clusters_skipped_overlap": 0,
    }


def filter_regions(
    regions: Iterable[ReadFamilyRegion],
    *,
    config: CallerConfig,
    exclusion: Optional[ExclusionTree] = None,
    counts: Optional[Dict[str, int]] = None,
) -> Iterator[ReadFamilyRegion]:
    """Yield the read families worth calling.

    A whole cluster of overlapping families is dropped when it holds more than
    ``config.max_overlapping_families`` members (``-1`` disables the cap). Within
    kept clusters, a family is dropped when its annotated strand depths cannot
    reach the depth thresholds, or when it lies entirely inside an excluded interval.
    """
    if counts is None:
        counts = _new_counts()
    cap = config.max_overlapping_families

    for cluster in cluster_overlapping(regions):
        counts["clusters_total"] += 1
        counts["families_total"] += len(cluster)
        if cap >= 0 and len(cluster) > cap:
            counts["clusters_skipped_overlap"] += 1
            counts["families_skipped_overlap"] += len(cluster)
            continue

        for region in cluster:
            if region.watson_depth is not None and region.crick_depth is not None:
                if region.watson_depth + region.crick_depth < config.min_total_depth:
                    counts["families_skipped_depth"] += 1
                    continue
                if (
                    region.watson_depth < config.min_stranded_depth
                    or region.crick_depth < config.min_stranded_depth
                ):
                    counts["families_skipped_depth"] += 1
                    continue
            if exclusion is not None and exclusion.contains(region.chrom, region.start, region.end):
                counts["families_skipped_excluded"] += 1
                continue
            counts["families_kept"] += 1
            yield region


def analysis_bed_path(bed_path: str | Path, outdir: Optional[str | Path] = None) -> Path:
    """``<stem>.analysis.bed`` next to the input, or inside ``outdir``."""
    bed = Path(bed_path)
    name = bed.name
    for suffix in (".gz", ".bed"):
        if name.endswith(suffix):
            name = name[: -len(suffix)]
    target_dir = Path(outdir) if outdir is not None else bed.parent
    return target_dir / f"{name}.analysis.bed"


def prefilter_bed(
    bed_path: str | Path,
    out_path: str | Path,
    *,
    config: CallerConfig,
    exclusion: Optional[ExclusionTree] = None,
) -> Dict[str, int]:
    """Stream the families BED through the filters into the analysis BED; return the counters."""
    counts = _new_counts()
    write_family_regions(
        out_path,
        filter_regions(iter_family_regions(bed_path), config=config, exclusion=exclusion, counts=counts),
    )
    logger.info(
        "Prefilter kept %d of %d read families (%d over overlap cap, %d low depth, %d excluded); wrote %s",
        counts["families_kept"],
        counts["families_total"],
        counts["families_skipped_overlap"],
        counts["families_skipped_depth"],
        counts["families_skipped_excluded"],
        out_path,
    )
    return counts
