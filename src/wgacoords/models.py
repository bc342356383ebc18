from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


class Strand(Enum):
    """Orientation of genome A relative to genome B within a block."""

    FORWARD = "forward"
    REVERSE = "reverse"

    @property
    def symbol(self) -> str:
        return "+" if self is Strand.FORWARD else "-"

    @property
    def order(self) -> int:
        # forward blocks go first on exact score ties
        return 0 if self is Strand.FORWARD else 1


class ReverseOffset(Enum):
    """Start offset applied to genome-A coordinates of reverse-strand fragments.

    CGaln reverse-strand HSP starts sit one base further than those written
    by other producers.
    """

    LEGACY = "legacy"
    STANDARD = "standard"

    @property
    def shift(self) -> int:
        return 2 if self is ReverseOffset.LEGACY else 1


@dataclass(frozen=True)
class BlockId:
    """Identity of an alignment block: strand, chromosome ordinals and block number."""

    strand: Strand
    chrom_a: int
    chrom_b: int
    number: int

    def sort_key(self) -> Tuple[int, int, int, int]:
        return (self.strand.order, self.chrom_a, self.chrom_b, self.number)

    def __str__(self) -> str:
        return f"{self.strand.value}_{self.chrom_a}_{self.chrom_b}_{self.number}"


@dataclass(frozen=True)
class Fragment:
    """One gap-free local alignment segment (HSP).

    Coordinates are 1-based, exactly as reported by the aligner.
    """

    start_a: int
    end_a: int
    seq_a: str
    start_b: int
    end_b: int
    seq_b: str

    def __len__(self) -> int:
        return len(self.seq_a)


@dataclass(frozen=True)
class AlignedPosition:
    """A base-to-base correspondence between genome A and genome B.

    Coordinates are 0-based; the BED-like end is ``pos + 1``.
    """

    chrom_a: str
    pos_a: int
    base_a: str
    strand: Strand
    chrom_b: str
    pos_b: int
    base_b: str
    block_id: BlockId
    is_snp: bool

    def to_row(self) -> str:
        return (
            f"{self.chrom_a}\t{self.pos_a}\t{self.pos_a + 1}\t{self.base_a}\t{self.strand.symbol}\t"
            f"{self.chrom_b}\t{self.pos_b}\t{self.pos_b + 1}\t{self.base_b}\t"
            f"{self.block_id.number}\t{'SNP' if self.is_snp else '.'}"
        )


@dataclass
class Block:
    """All fragments reported together for one chromosome pair and strand.

    ``cumulative_score`` is taken from the first genome-A fragment header of
    the block and never changes afterwards. ``candidates`` and
    ``block_overlaps`` are filled by the expander; the unique/ambiguous
    counters by the filter.
    """

    block_id: BlockId
    cumulative_score: Optional[int] = None
    fragments: List[Fragment] = field(default_factory=list)
    candidates: List[AlignedPosition] = field(default_factory=list)
    block_overlaps: int = 0
    truly_unique_count: int = 0
    ambiguous_count: int = 0

    def freeze_score(self, score: int) -> None:
        if self.cumulative_score is None:
            self.cumulative_score = score

    @property
    def score(self) -> int:
        return self.cumulative_score if self.cumulative_score is not None else 0


@dataclass(frozen=True)
class BlockReport:
    """Per-block diagnostics row for an accepted block."""

    block_id: BlockId
    cumulative_score: int
    fragments: int
    truly_unique: int
    ambiguous: int
    block_overlaps: int
    truly_unique_ratio: float
    overlap_ratio: float

    def to_row(self) -> str:
        return (
            f"{self.block_id}\t{self.cumulative_score}\t{self.fragments}\t"
            f"{self.truly_unique}\t{self.ambiguous}\t{self.block_overlaps}\t"
            f"{self.truly_unique_ratio:1.3f}\t{self.overlap_ratio:1.3f}"
        )


@dataclass(frozen=True)
class MapperConfig:
    """Acceptance thresholds and coordinate conventions for one run.

    Attributes
    ----------
    max_block_overlap_ratio:
        Blocks whose ratio of positions already owned by other blocks exceeds
        this value are skipped. Equality is accepted.
    max_multi_position_ratio:
        Blocks are accepted only if the ratio of genome-A coordinates seen more
        than once in the run is strictly below this value.
    reverse_offset:
        How reverse-strand genome-A starts are shifted (see ``ReverseOffset``).
    """

    max_block_overlap_ratio: float = 0.25
    max_multi_position_ratio: float = 0.05
    reverse_offset: ReverseOffset = ReverseOffset.LEGACY
