from __future__ import annotations

import logging
from typing import List

import pysam

from .config import CallerConfig
from .consensus import DebugSink, ReferenceSource, piles_to_variants
from .models import ReadFamilyRegion, VariantCall
from .outliers import remove_positional_outliers
from .pileup import build_pileup
from .readprep import partition_family_reads

logger = logging.getLogger(__name__)


def call_family(
    region: ReadFamilyRegion,
    *,
    bam: pysam.AlignmentFile,
    reference: ReferenceSource,
    config: CallerConfig,
    debug: DebugSink = None,
) -> List[VariantCall]:
    """Run read preparation, pileup, outlier removal and duplex calling for one family.

    Returns an empty list when the family is skipped or nothing passes.
    """
    watson_reads, crick_reads = partition_family_reads(
        bam.fetch(region.chrom, region.start, region.end),
        family_id=region.family_id,
        config=config,
    )

    if len(watson_reads) < config.min_stranded_depth or len(crick_reads) < config.min_stranded_depth:
        if debug is not None:
            debug(
                f"family {region.family_id}: too few reads "
                f"(watson={len(watson_reads)}, crick={len(crick_reads)}), skipping"
            )
        return []

    watson_piles = build_pileup(watson_reads)
    crick_piles = build_pileup(crick_reads)
    watson_piles, crick_piles = remove_positional_outliers(
        watson_piles, crick_piles, watson_reads, crick_reads
    )

    return piles_to_variants(
        watson_piles,
        crick_piles,
        chrom=region.chrom,
        family_id=region.family_id,
        reference=reference,
        config=config,
        debug=debug,
    )
