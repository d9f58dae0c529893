from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, Iterator, Optional, Tuple

from intervaltree import IntervalTree

from .models import ReadFamilyRegion
from .utils import open_textmaybe_gzip

logger = logging.getLogger(__name__)

# Families BED layout: chrom, start, end, family ID, score, strand, watson reads, crick reads
_WATSON_COL = 6
_CRICK_COL = 7


def _is_header(line: str) -> bool:
    return not line.strip() or line.startswith(("#", "track", "browser"))


def _parse_int(value: str, *, path: str | Path, lineno: int, what: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{path}:{lineno}: {what} is not an integer: {value!r}") from None


def _parse_depth(value: str) -> int:
    # placeholders such as "." count as 0
    try:
        return int(value)
    except ValueError:
        return 0


def parse_family_line(line: str, *, path: str | Path = "<bed>", lineno: int = 0) -> ReadFamilyRegion:
    """Parse one families BED row.

    Watson/Crick depth annotations are read from columns 7 and 8 when present;
    a value that is not an integer counts as 0.
    """
    fields = tuple(line.rstrip("\r\n").split("\t"))
    if len(fields) < 4:
        raise ValueError(
            f"{path}:{lineno}: expected at least 4 BED columns (chrom, start, end, family ID), "
            f"got {len(fields)}"
        )
    chrom = fields[0]
    start = _parse_int(fields[1], path=path, lineno=lineno, what="start")
    end = _parse_int(fields[2], path=path, lineno=lineno, what="end")

    watson: Optional[int] = None
    crick: Optional[int] = None
    if len(fields) > _CRICK_COL:
        watson = _parse_depth(fields[_WATSON_COL])
        crick = _parse_depth(fields[_CRICK_COL])

    return ReadFamilyRegion(
        chrom=chrom,
        start=start,
        end=end,
        family_id=fields[3],
        watson_depth=watson,
        crick_depth=crick,
        fields=fields,
    )


def iter_family_regions(path: str | Path) -> Iterator[ReadFamilyRegion]:
    with open_textmaybe_gzip(path, "rt") as fh:
        for lineno, line in enumerate(fh, start=1):
            if _is_header(line):
                continue
            yield parse_family_line(line, path=path, lineno=lineno)


def format_family_line(region: ReadFamilyRegion) -> str:
    if region.fields:
        return "\t".join(region.fields)
    return f"{region.chrom}\t{region.start}\t{region.end}\t{region.family_id}"


def write_family_regions(path: str | Path, regions: Iterable[ReadFamilyRegion]) -> int:
    n = 0
    with open_textmaybe_gzip(path, "wt") as fh:
        for region in regions:
            fh.write(format_family_line(region) + "\n")
            n += 1
    return n


def iter_bed_intervals(path: str | Path) -> Iterator[Tuple[str, int, int]]:
    with open_textmaybe_gzip(path, "rt") as fh:
        for lineno, line in enumerate(fh, start=1):
            if _is_header(line):
                continue
            fields = line.rstrip("\r\n").split("\t")
            if len(fields) < 3:
                raise ValueError(f"{path}:{lineno}: expected at least 3 BED columns, got {len(fields)}")
            yield (
                fields[0],
                _parse_int(fields[1], path=path, lineno=lineno, what="start"),
                _parse_int(fields[2], path=path, lineno=lineno, what="end"),
            )


class ExclusionTree:
    """Per-contig interval index over excluded regions (0-based half-open).

    Built once before calling starts and only read afterwards.
    """

    def __init__(self) -> None:
        self._trees: Dict[str, IntervalTree] = {}
        self._n = 0

    def add(self, chrom: str, start: int, end: int) -> None:
        if end <= start:
            logger.warning("Ignoring empty exclusion interval %s:%d-%d", chrom, start, end)
            return
        self._trees.setdefault(chrom, IntervalTree()).addi(start, end)
        self._n += 1

    @classmethod
    def from_bed_files(cls, paths: Iterable[str | Path]) -> "ExclusionTree":
        tree = cls()
        for p in paths:
            before = len(tree)
            for chrom, start, end in iter_bed_intervals(p):
                tree.add(chrom, start, end)
            logger.info("Loaded %d exclusion intervals from %s", len(tree) - before, p)
        return tree

    def __len__(self) -> int:
        return self._n

    def contains(self, chrom: str, start: int, end: int) -> bool:
        """True if some excluded interval fully encloses ``[start, end)``."""
        tree = self._trees.get(chrom)
        if tree is None:
            return False
        end = max(end, start + 1)
        return any(iv.begin <= start and end <= iv.end for iv in tree.overlap(start, end))

