"""mcscall: duplex consensus variant calling for META-CS read families.

Public API is intentionally small; most users should use the CLI:

    mcscall call -i families.bam -b families.bed -r ref.fa -o calls.vcf

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
