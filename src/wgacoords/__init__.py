"""wgacoords: synteny-based coordinate mapping from whole-genome alignment blocks.

Public API is intentionally small; most users should use the CLI:

    wgacoords map --wga blocks.fasta.gz --fasta-a A.fa --fasta-b B.fa > mapped.tsv

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
