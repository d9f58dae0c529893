from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

# pysam CIGAR op codes: M, D, N, =, X
REF_CONSUMING_OPS = (0, 2, 3, 7, 8)


class Strand(str, enum.Enum):
    """Duplex strand label carried by each read of a family."""

    WATSON = "W"
    CRICK = "C"


class VariantType(enum.Enum):
    """Dominant signal classified at one pile.

    Members are declared in resolution priority order: SNV beats insertion,
    insertion beats deletion, and NONE is the fallback.
    """

    SNV = "snv"
    INSERTION = "insertion"
    DELETION = "deletion"
    NONE = "none"


@dataclass(frozen=True)
class ReadFamilyRegion:
    """One read family footprint from the families BED.

    Coordinates are 0-based half-open, as in BED.

    Attributes
    ----------
    chrom, start, end:
        Genomic span of the family.
    family_id:
        Family identifier (BED name column), compared to each read's family tag.
    watson_depth, crick_depth:
        Annotated per-strand read counts, if the BED carries them. Only used by
        the prefilter.
    fields:
        All original BED columns, kept so the analysis BED can be written back
        verbatim.
    """

    chrom: str
    start: int
    end: int
    family_id: str
    watson_depth: Optional[int] = None
    crick_depth: Optional[int] = None
    fields: Tuple[str, ...] = ()


@dataclass
class PreparedRead:
    """A read after end clipping and quality masking.

    ``cigar`` holds mutable ``[op, length]`` pairs using pysam op codes; ``pos``
    is the 0-based reference start and moves forward as the leading end is clipped.
    """

    name: str
    pos: int
    cigar: List[List[int]]
    seq: str
    quals: Optional[List[int]]
    mapq: int
    is_reverse: bool
    family_id: str
    strand: Strand

    @property
    def reference_end(self) -> int:
        """0-based exclusive end computed from the current CIGAR."""
        return self.pos + sum(length for op, length in self.cigar if op in REF_CONSUMING_OPS)


@dataclass(frozen=True)
class VariantCall:
    """A duplex-supported variant emitted for one read family.

    ``pos0`` is the 0-based reference position of the first REF base; for
    deletions this is the base preceding the deleted span.
    """

    chrom: str
    pos0: int
    ref: str
    alt: str
    total_depth: int
    watson_depth: int
    crick_depth: int
    family_id: str
    vtype: VariantType = field(default=VariantType.SNV)

    @property
    def end0(self) -> int:
        return self.pos0 + len(self.ref)
