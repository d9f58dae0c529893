"""Per-read preparation ahead of pileup.

Reads are copied out of pysam into :class:`~mcscall.models.PreparedRead` objects so
their CIGAR and sequence can be edited without touching the alignment file
buffers. All CIGAR edits keep the query length constant: bases removed from
alignment are moved into soft clips, never dropped.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Tuple

import pysam

from .barcode import family_and_strand, has_supplementary_alignment
from .config import CallerConfig
from .models import PreparedRead, Strand

logger = logging.getLogger(__name__)

_MATCH_OPS = (0, 7, 8)  # M, =, X
_DEL_OPS = (2, 3)  # D, N
_INS = 1
_SOFT_CLIP = 4
_QUERY_CONSUMING_OPS = (0, 1, 4, 7, 8)

AMBIGUOUS_BASE = "N"


def query_length(cigar: Iterable[Tuple[int, int]]) -> int:
    return sum(length for op, length in cigar if op in _QUERY_CONSUMING_OPS)


def clean_cigar(cigar: List[List[int]]) -> List[List[int]]:
    """Drop zero-length operations and merge adjacent operations of the same kind."""
    out: List[List[int]] = []
    for op, length in cigar:
        if length == 0:
            continue
        if out and out[-1][0] == op:
            out[-1][1] += length
        else:
            out.append([op, length])
    return out


def _clip_front(cigar: List[List[int]], pos: int, clip_len: int) -> Tuple[List[List[int]], int]:
    if clip_len < 1:
        return cigar, pos

    if cigar[0][0] != _SOFT_CLIP:
        cigar.insert(0, [_SOFT_CLIP, 0])

    remaining = clip_len
    i = 1
    while i < len(cigar):
        op, length = cigar[i]
        if op == _SOFT_CLIP:
            break
        if op in _DEL_OPS:
            # reference only: skip past it so the read never starts on a deletion
            pos += length
            cigar[i][1] = 0
            i += 1
            continue
        if remaining == 0:
            break
        take = min(length, remaining)
        cigar[i][1] -= take
        cigar[0][1] += take
        remaining -= take
        if op in _MATCH_OPS:
            pos += take
        if cigar[i][1] == 0:
            i += 1

    return clean_cigar(cigar), pos


def _clip_back(cigar: List[List[int]], clip_len: int) -> List[List[int]]:
    if clip_len < 1:
        return cigar

    if cigar[-1][0] != _SOFT_CLIP:
        cigar.append([_SOFT_CLIP, 0])

    last = len(cigar) - 1
    remaining = clip_len
    i = last - 1
    while i >= 0:
        op, length = cigar[i]
        if op == _SOFT_CLIP:
            break
        if op in _DEL_OPS:
            cigar[i][1] = 0
            i -= 1
            continue
        if remaining == 0:
            break
        take = min(length, remaining)
        cigar[i][1] -= take
        cigar[last][1] += take
        remaining -= take
        if cigar[i][1] == 0:
            i -= 1

    return clean_cigar(cigar)


def clip_read_ends(read: PreparedRead, clip_len: int) -> PreparedRead:
    """Soft-clip ``clip_len`` query bases from both ends of the read, in place.

    Matches and insertions count against the clip budget; deletions do not, but a
    deletion met while clipping the leading end advances ``read.pos``. A read that
    is already entirely soft-clipped is left untouched.
    """
    if not read.cigar or all(op == _SOFT_CLIP for op, _ in read.cigar):
        return read

    cigar = [[op, length] for op, length in read.cigar]
    cigar, pos = _clip_front(cigar, read.pos, clip_len)
    cigar = _clip_back(cigar, clip_len)

    read.cigar = clean_cigar(cigar)
    read.pos = pos
    return read


def mask_low_quality_bases(read: PreparedRead, min_quality: int) -> PreparedRead:
    """Replace bases below ``min_quality`` with ``N``, in place."""
    if read.quals is None:
        return read
    read.seq = "".join(
        AMBIGUOUS_BASE if q < min_quality else b for b, q in zip(read.seq, read.quals)
    )
    return read


def soft_clip_terminal_insertions(cigar: List[List[int]]) -> List[List[int]]:
    """Convert an insertion at either end of the alignment into soft clip.

    An insertion directly next to an existing end soft clip is merged into it.
    """
    if not cigar:
        return cigar
    cigar = [[op, length] for op, length in cigar]

    if cigar[0][0] == _INS:
        cigar[0][0] = _SOFT_CLIP
    if cigar[-1][0] == _INS:
        cigar[-1][0] = _SOFT_CLIP
    if len(cigar) >= 2 and cigar[0][0] == _SOFT_CLIP and cigar[1][0] == _INS:
        cigar[1][0] = _SOFT_CLIP
    if len(cigar) >= 2 and cigar[-1][0] == _SOFT_CLIP and cigar[-2][0] == _INS:
        cigar[-2][0] = _SOFT_CLIP

    return clean_cigar(cigar)


def has_aligned_bases(read: PreparedRead) -> bool:
    return any(op in _MATCH_OPS and length > 0 for op, length in read.cigar)


def prepare_read(
    read: pysam.AlignedSegment,
    *,
    family_id: str,
    config: CallerConfig,
) -> Optional[PreparedRead]:
    """Filter, clip and mask one alignment; None if it should not be piled."""
    if read.is_unmapped or read.cigartuples is None or read.query_sequence is None:
        return None
    if read.mapping_quality < config.min_mapq:
        return None

    read_family, strand = family_and_strand(
        read, family_tag=config.family_tag, strand_tag=config.strand_tag
    )
    if read_family != family_id:
        return None
    if has_supplementary_alignment(read) and not config.allow_supplementary:
        return None
    if strand is None:
        return None

    quals = read.query_qualities
    prepared = PreparedRead(
        name=str(read.query_name),
        pos=int(read.reference_start),
        # hard clips and padding carry no query or reference bases
        cigar=[[op, length] for op, length in read.cigartuples if op not in (5, 6)],
        seq=read.query_sequence.upper(),
        quals=list(quals) if quals is not None else None,
        mapq=int(read.mapping_quality),
        is_reverse=bool(read.is_reverse),
        family_id=read_family,
        strand=strand,
    )

    clip_read_ends(prepared, config.end_pad)
    if not has_aligned_bases(prepared):
        return None
    mask_low_quality_bases(prepared, config.min_base_quality)
    return prepared


def partition_family_reads(
    reads: Iterable[pysam.AlignedSegment],
    *,
    family_id: str,
    config: CallerConfig,
) -> Tuple[List[PreparedRead], List[PreparedRead]]:
    """Prepare every read of a family and split them into (watson, crick), each sorted by start."""
    watson: List[PreparedRead] = []
    crick: List[PreparedRead] = []
    for read in reads:
        prepared = prepare_read(read, family_id=family_id, config=config)
        if prepared is None:
            continue
        if prepared.strand is Strand.WATSON:
            watson.append(prepared)
        else:
            crick.append(prepared)

    watson.sort(key=lambda r: r.pos)
    crick.sort(key=lambda r: r.pos)
    return watson, crick
