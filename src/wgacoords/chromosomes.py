from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List

import pysam

from .reader import FormatError

logger = logging.getLogger(__name__)


class ChromosomeIndex:
    """Ordinal -> sequence name lookup for one genome.

    Aligners such as CGaln refer to chromosomes as ``genomeA-fasta<N>``, where
    ``N`` is the 1-based position of the record in the input FASTA.
    """

    def __init__(self, names: Iterable[str], *, label: str = "genome") -> None:
        self._names: tuple[str, ...] = tuple(names)
        self.label = label

    @classmethod
    def from_fasta(cls, fasta_path: str | Path, *, label: str = "genome") -> "ChromosomeIndex":
        """Collect record names in file order from a (optionally gzipped) FASTA file."""
        names: List[str] = []
        with pysam.FastxFile(str(fasta_path)) as fh:
            for entry in fh:
                names.append(entry.name)
        logger.info("Number of chromosomes in %s FASTA file: %d", label, len(names))
        return cls(names, label=label)

    def __len__(self) -> int:
        return len(self._names)

    def __contains__(self, ordinal: object) -> bool:
        return isinstance(ordinal, int) and 1 <= ordinal <= len(self._names)

    def name(self, ordinal: int) -> str:
        if ordinal not in self:
            raise FormatError(
                f"Chromosome ordinal {ordinal} not found in {self.label} FASTA "
                f"({len(self._names)} records)"
            )
        return self._names[ordinal - 1]

    def as_dict(self) -> Dict[int, str]:
        return {i: n for i, n in enumerate(self._names, start=1)}
