from __future__ import annotations

import logging
from typing import Optional, Tuple

import pysam

from .models import Strand

logger = logging.getLogger(__name__)


def _tag_or_none(read: pysam.AlignedSegment, tag: str) -> Optional[str]:
    if not read.has_tag(tag):
        return None
    return str(read.get_tag(tag))


def family_and_strand(
    read: pysam.AlignedSegment,
    *,
    family_tag: str = "RF",
    strand_tag: str = "RS",
) -> Tuple[Optional[str], Optional[Strand]]:
    """Decode the read family ID and duplex strand from the barcode tags.

    Returns ``(None, None)`` pieces for missing tags; an unrecognised strand
    label also yields ``None`` so the read is left out of both strands.
    """
    family_id = _tag_or_none(read, family_tag)
    label = _tag_or_none(read, strand_tag)
    strand: Optional[Strand] = None
    if label is not None:
        label = label.upper()
        if label == Strand.WATSON.value:
            strand = Strand.WATSON
        elif label == Strand.CRICK.value:
            strand = Strand.CRICK
    return family_id, strand


def has_supplementary_alignment(read: pysam.AlignedSegment) -> bool:
    """True if the read is annotated with a supplementary alignment (SA tag)."""
    return read.has_tag("SA")
