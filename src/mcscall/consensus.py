"""Watson/Crick consensus calling over matched piles.

Each pile is reduced to its dominant signal (SNV base, inserted sequence or
deletion length) and a call is made only when both strands independently agree
and clear the allele-fraction and depth thresholds.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Sequence

from .config import CallerConfig
from .models import VariantCall, VariantType
from .pileup import BASES, Pile

logger = logging.getLogger(__name__)

DebugSink = Optional[Callable[[str], None]]


class ReferenceSource(Protocol):
    def fetch(self, reference: str, start: int, end: int) -> str: ...


@dataclass(frozen=True)
class Classification:
    """Dominant signal at one pile.

    ``alt_count`` is the support of the winning type; ``ins_count`` is kept
    separately because the insertion-bias rule looks at it regardless of winner.
    """

    vtype: VariantType
    snv_base: Optional[str]
    ins_seq: Optional[str]
    del_len: int
    alt_count: int
    ins_count: int

    def as_insertion(self) -> "Classification":
        return Classification(
            vtype=VariantType.INSERTION,
            snv_base=self.snv_base,
            ins_seq=self.ins_seq,
            del_len=self.del_len,
            alt_count=self.ins_count,
            ins_count=self.ins_count,
        )


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def pile_depth(pile: Pile, base_qual_penalty: float) -> int:
    """Strand depth: every non-ambiguous observation plus a discounted credit for masked bases."""
    clear = int(pile.counts.sum()) - pile.ambiguous_count
    return clear + _round_half_up(pile.ambiguous_count * base_qual_penalty)


def max_base(pile: Pile) -> Classification:
    """Classify the dominant signal of a pile.

    Priority: SNV if its count beats both indel counts, else insertion if it beats
    the deletion count, else deletion if any, else NONE. Within a kind, ties keep
    the first candidate (base order ACGT, shortest deletion, lexically smallest
    insertion).
    """
    snv_base: Optional[str] = None
    snv_count = 0
    for i, base in enumerate(BASES):
        c = int(pile.counts[:, i].sum())
        if c > snv_count:
            snv_base, snv_count = base, c

    del_len = 0
    del_count = 0
    for length in sorted(pile.del_counts):
        c = pile.deletion_count(length)
        if c > del_count:
            del_len, del_count = length, c

    ins_seq: Optional[str] = None
    ins_count = 0
    for seq in sorted(pile.ins_counts):
        c = pile.insertion_count(seq)
        if c > ins_count:
            ins_seq, ins_count = seq, c

    if snv_count > ins_count and snv_count > del_count:
        vtype, alt_count = VariantType.SNV, snv_count
    elif ins_count > del_count:
        vtype, alt_count = VariantType.INSERTION, ins_count
    elif del_len > 0:
        vtype, alt_count = VariantType.DELETION, del_count
    else:
        vtype, alt_count = VariantType.NONE, 0

    return Classification(
        vtype=vtype,
        snv_base=snv_base,
        ins_seq=ins_seq,
        del_len=del_len,
        alt_count=alt_count,
        ins_count=ins_count,
    )


def _fraction(count: int, depth: int) -> float:
    if depth <= 0:
        return 0.0
    return count / depth


def _fetch(reference: ReferenceSource, chrom: str, start: int, end: int) -> str:
    return reference.fetch(chrom, start, end).upper()


def call_pile_pair(
    watson: Pile,
    crick: Pile,
    *,
    chrom: str,
    family_id: str,
    reference: ReferenceSource,
    config: CallerConfig,
    debug: DebugSink = None,
) -> Optional[VariantCall]:
    """Return a call if both strands agree on a variant at this position, else None."""

    def trace(msg: str) -> None:
        if debug is not None:
            debug(msg)

    w_depth = pile_depth(watson, config.base_qual_penalty)
    c_depth = pile_depth(crick, config.base_qual_penalty)
    w_cls = max_base(watson)
    c_cls = max_base(crick)
    trace(f"{chrom}:{watson.pos} family {family_id} watson: {w_cls} crick: {c_cls}")

    # insertions sit on the base before the event, so a real one can lose the plain vote
    if (
        _fraction(w_cls.ins_count, w_depth) > config.min_af
        or _fraction(c_cls.ins_count, c_depth) > config.min_af
    ):
        w_cls = w_cls.as_insertion()
        c_cls = c_cls.as_insertion()
        trace("triggered insertion bias")

    if w_cls.vtype is not c_cls.vtype:
        trace("variant types do not match, moving on")
        return None
    if w_cls.vtype is VariantType.NONE:
        trace("no variant signal, moving on")
        return None

    w_af = _fraction(w_cls.alt_count, w_depth)
    c_af = _fraction(c_cls.alt_count, c_depth)
    if w_af < config.min_af or c_af < config.min_af:
        trace(
            "does not meet af requirements\n"
            f"watson: ({w_cls.alt_count}/{w_depth}) = {w_af:f}\n"
            f"crick: ({c_cls.alt_count}/{c_depth}) = {c_af:f}"
        )
        return None

    if (
        w_cls.alt_count < config.min_stranded_depth
        or c_cls.alt_count < config.min_stranded_depth
        or w_cls.alt_count + c_cls.alt_count < config.min_total_depth
    ):
        trace("does not meet minimum read depth, moving on")
        return None

    total_depth = watson.raw_depth + crick.raw_depth
    vtype = w_cls.vtype

    if vtype is VariantType.SNV:
        if w_cls.snv_base != c_cls.snv_base:
            trace(f"variant bases do not match, moving on\nwatson: {w_cls.snv_base}\ncrick: {c_cls.snv_base}")
            return None
        ref = _fetch(reference, chrom, watson.pos, watson.pos + 1)
        if w_cls.snv_base == ref:
            trace("alt base matches ref")
            return None
        return VariantCall(
            chrom=chrom,
            pos0=watson.pos,
            ref=ref,
            alt=str(w_cls.snv_base),
            total_depth=total_depth,
            watson_depth=w_cls.alt_count,
            crick_depth=c_cls.alt_count,
            family_id=family_id,
            vtype=vtype,
        )

    if vtype is VariantType.INSERTION:
        if w_cls.ins_seq != c_cls.ins_seq:
            trace("different insertion sequences")
            return None
        ref = _fetch(reference, chrom, watson.pos, watson.pos + 1)
        return VariantCall(
            chrom=chrom,
            pos0=watson.pos,
            ref=ref,
            alt=ref + str(w_cls.ins_seq),
            total_depth=total_depth,
            watson_depth=w_cls.alt_count,
            crick_depth=c_cls.alt_count,
            family_id=family_id,
            vtype=vtype,
        )

    if w_cls.del_len != c_cls.del_len:
        trace("different deletion lengths")
        return None
    anchor = watson.pos - 1
    ref = _fetch(reference, chrom, anchor, watson.pos + w_cls.del_len)
    return VariantCall(
        chrom=chrom,
        pos0=anchor,
        ref=ref,
        alt=ref[0],
        total_depth=total_depth,
        watson_depth=w_cls.alt_count,
        crick_depth=c_cls.alt_count,
        family_id=family_id,
        vtype=vtype,
    )


def piles_to_variants(
    watson_piles: Sequence[Pile],
    crick_piles: Sequence[Pile],
    *,
    chrom: str,
    family_id: str,
    reference: ReferenceSource,
    config: CallerConfig,
    debug: DebugSink = None,
) -> List[VariantCall]:
    """Walk both position-ordered pile lists and call every position present on both strands."""
    calls: List[VariantCall] = []
    wi = ci = 0
    while wi < len(watson_piles) and ci < len(crick_piles):
        w, c = watson_piles[wi], crick_piles[ci]
        if c.pos > w.pos:
            wi += 1
            continue
        if c.pos < w.pos:
            ci += 1
            continue

        call = call_pile_pair(
            w,
            c,
            chrom=chrom,
            family_id=family_id,
            reference=reference,
            config=config,
            debug=debug,
        )
        if call is not None:
            calls.append(call)
        wi += 1
        ci += 1
    return calls
