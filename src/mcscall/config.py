from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CallerConfig:
    """Thresholds and knobs shared by every stage of duplex calling.

    One instance is built by the CLI and handed to each worker process, so every
    field must stay picklable.

    Attributes
    ----------
    min_mapq:
        Reads with a mapping quality below this are discarded.
    min_total_depth:
        Minimum combined Watson + Crick allele count for a call.
    min_stranded_depth:
        Minimum allele count on each strand; also the minimum number of reads per
        strand for a family to be piled at all.
    end_pad:
        Number of query bases soft-clipped from each end of every read.
    min_af:
        Minimum allele fraction required independently on both strands.
    min_base_quality:
        Bases with a quality below this are masked to ``N``.
    base_qual_penalty:
        Weight given to each masked base when computing strand depth.
    allow_supplementary:
        Keep reads carrying an ``SA`` tag.
    max_overlapping_families:
        Overlapping family clusters larger than this are skipped by the prefilter.
        ``-1`` disables the cap.
    threads:
        Number of worker processes.
    family_tag, strand_tag:
        BAM tags holding the read family ID and the ``W``/``C`` strand label.
    output_buffer:
        Capacity of the bounded channel between workers and the collector.
    verbose:
        Verbosity level; >0 enables periodic throughput logging.
    """

    min_mapq: int = 20
    min_total_depth: int = 8
    min_stranded_depth: int = 4
    end_pad: int = 3
    min_af: float = 0.9
    min_base_quality: int = 30
    base_qual_penalty: float = 0.25
    allow_supplementary: bool = False
    max_overlapping_families: int = 20
    threads: int = 1
    family_tag: str = "RF"
    strand_tag: str = "RS"
    output_buffer: int = 100
    verbose: int = 0

    def validate(self) -> "CallerConfig":
        """Raise ValueError on inconsistent settings; return self for chaining."""
        if self.threads < 1:
            raise ValueError("threads must be >= 1")
        if self.min_stranded_depth * 2 > self.min_total_depth:
            raise ValueError(
                "min_stranded_depth * 2 should not be larger than min_total_depth "
                f"({self.min_stranded_depth} * 2 > {self.min_total_depth})"
            )
        if not 0.0 <= self.min_af <= 1.0:
            raise ValueError("min_af must be within [0, 1]")
        if not 0.0 <= self.base_qual_penalty <= 1.0:
            raise ValueError("base_qual_penalty must be within [0, 1]")
        if self.end_pad < 0:
            raise ValueError("end_pad must be >= 0")
        if self.output_buffer < 1:
            raise ValueError("output_buffer must be >= 1")
        return self
