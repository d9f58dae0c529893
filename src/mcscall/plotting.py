from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict

import matplotlib.pyplot as plt

logger = logging.getLogger(__name__)


def plot_variant_type_counts(
    *,
    counts: Dict[str, int],
    out_png: str | Path,
    title: str = "Duplex calls by variant type",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    labels = ["SNV", "Insertion", "Deletion", "Excluded"]
    values = [
        int(counts.get("calls_snv", 0)),
        int(counts.get("calls_insertion", 0)),
        int(counts.get("calls_deletion", 0)),
        int(counts.get("calls_excluded", 0)),
    ]

    plt.figure()
    plt.bar(labels, values)
    plt.ylabel("Call count")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_dp_hist(
    *,
    dp_hist: Dict[str, int],
    out_png: str | Path,
    title: str = "Total depth (DP) per written call",
    max_bin: int = 100,
) -> None:
    """Bar chart of DP values; everything above ``max_bin`` is collapsed into one bar."""
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    binned: Dict[int, int] = {}
    tail = 0
    for k, v in dp_hist.items():
        dp = int(k)
        if dp <= max_bin:
            binned[dp] = binned.get(dp, 0) + int(v)
        else:
            tail += int(v)

    xs = sorted(binned)
    ys = [binned[x] for x in xs]
    labels = [str(x) for x in xs]
    if tail > 0:
        xs.append(max_bin + 1)
        ys.append(tail)
        labels.append(f"{max_bin + 1}+")

    plt.figure()
    plt.bar(range(len(xs)), ys)
    plt.xlabel("DP")
    plt.ylabel("Call count")
    plt.title(title)
    if len(xs) <= 30:
        plt.xticks(range(len(xs)), labels)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()
