from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Iterator, List, Optional, TextIO, Tuple

from .expander import RunContext
from .models import AlignedPosition, Block, BlockReport, MapperConfig

logger = logging.getLogger(__name__)

POSITION_COLUMNS = [
    "chrA",
    "posA",
    "endA",
    "baseA",
    "strandA",
    "chrB",
    "posB",
    "endB",
    "baseB",
    "block",
    "SNP",
]

DIAGNOSTIC_COLUMNS = [
    "blockid",
    "cumulscore",
    "alignments",
    "unique",
    "multiple",
    "block_overlaps",
    "ratio(unique)",
    "ratio(block_overlaps)",
]


class Outcome(Enum):
    EMPTY = "empty"
    OVERLAP_REJECTED = "overlap_rejected"
    MULTI_REJECTED = "multi_position_rejected"
    ACCEPTED = "accepted"


@dataclass(frozen=True)
class BlockDecision:
    """Filtering result for one block; ``positions`` is empty unless accepted."""

    block: Block
    outcome: Outcome
    report: Optional[BlockReport] = None
    positions: List[AlignedPosition] = field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return self.outcome is Outcome.ACCEPTED


def block_rank_key(block: Block) -> Tuple[int, int, int, int, int]:
    """Score descending, then strand (forward first), chromA, chromB, block number."""
    return (-block.score,) + block.block_id.sort_key()


def rank_blocks(blocks: Iterable[Block]) -> List[Block]:
    return sorted(blocks, key=block_rank_key)


def evaluate_block(block: Block, context: RunContext, config: MapperConfig) -> BlockDecision:
    """Apply the overlap and multi-position thresholds to one expanded block."""
    block.truly_unique_count = 0
    block.ambiguous_count = 0

    n = len(block.candidates)
    if n == 0:
        return BlockDecision(block=block, outcome=Outcome.EMPTY)

    overlap_ratio = block.block_overlaps / n
    if overlap_ratio > config.max_block_overlap_ratio:
        logger.debug("Block %s skipped: overlap ratio %.3f", block.block_id, overlap_ratio)
        return BlockDecision(block=block, outcome=Outcome.OVERLAP_REJECTED)

    unique: List[AlignedPosition] = []
    ambiguous = 0
    for position in block.candidates:
        if context.source_counts[(position.chrom_a, position.pos_a)] == 1:
            unique.append(position)
        else:
            ambiguous += 1

    block.truly_unique_count = len(unique)
    block.ambiguous_count = ambiguous

    report = BlockReport(
        block_id=block.block_id,
        cumulative_score=block.score,
        fragments=len(block.fragments),
        truly_unique=len(unique),
        ambiguous=ambiguous,
        block_overlaps=block.block_overlaps,
        truly_unique_ratio=len(unique) / n,
        overlap_ratio=overlap_ratio,
    )

    if ambiguous / n < config.max_multi_position_ratio:
        return BlockDecision(block=block, outcome=Outcome.ACCEPTED, report=report, positions=unique)

    logger.debug("Block %s skipped: multi-position ratio %.3f", block.block_id, ambiguous / n)
    return BlockDecision(block=block, outcome=Outcome.MULTI_REJECTED, report=report)


def filter_blocks(
    ranked_blocks: Iterable[Block],
    context: RunContext,
    config: MapperConfig,
) -> Iterator[BlockDecision]:
    for block in ranked_blocks:
        yield evaluate_block(block, context, config)


# -----------------
# Writers
# -----------------


def write_positions_header(fh: TextIO) -> None:
    fh.write("# " + "\t".join(POSITION_COLUMNS) + "\n")


def write_diagnostics_header(fh: TextIO) -> None:
    fh.write("\t".join(DIAGNOSTIC_COLUMNS) + "\n")


def write_summary_line(fh: TextIO, accepted_blocks: int, unique_positions: int) -> None:
    fh.write(f"# valid blocks: {accepted_blocks} unique positions: {unique_positions}\n")


def write_decisions(
    decisions: Iterable[BlockDecision],
    out: TextIO,
    diagnostics: TextIO,
) -> Tuple[int, int]:
    """Write accepted positions and block rows; return (accepted blocks, positions)."""
    write_positions_header(out)
    write_diagnostics_header(diagnostics)

    accepted_blocks = 0
    unique_positions = 0
    for decision in decisions:
        if not decision.accepted:
            continue
        assert decision.report is not None
        for position in decision.positions:
            out.write(position.to_row() + "\n")
        diagnostics.write(decision.report.to_row() + "\n")
        accepted_blocks += 1
        unique_positions += len(decision.positions)

    write_summary_line(diagnostics, accepted_blocks, unique_positions)
    return accepted_blocks, unique_positions

