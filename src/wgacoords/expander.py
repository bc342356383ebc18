from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, Optional, Sequence, Tuple

from tqdm import tqdm

from .chromosomes import ChromosomeIndex
from .models import AlignedPosition, Block, BlockId, Fragment, ReverseOffset, Strand
from .reader import FormatError

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """Coordinate bookkeeping shared by all blocks of one run.

    owners:
        (chrom_b, pos_b) -> block that first claimed the genome-B coordinate.
    source_counts:
        (chrom_a, pos_a) -> number of candidate positions at that genome-A
        coordinate, counted before ownership is resolved.
    """

    owners: Dict[Tuple[str, int], BlockId] = field(default_factory=dict)
    source_counts: Counter = field(default_factory=Counter)

    def claim(self, position: AlignedPosition) -> Optional[bool]:
        """Try to claim the genome-B coordinate of ``position`` for its block.

        Returns True when the claim succeeds, False when another block already
        owns the coordinate and None when the same block owns it.
        """
        key = (position.chrom_b, position.pos_b)
        owner = self.owners.get(key)
        if owner is None:
            self.owners[key] = position.block_id
            return True
        if owner != position.block_id:
            return False
        return None


def _is_unmasked(base: str) -> bool:
    return "A" <= base <= "Z"


def iter_fragment_positions(
    block_id: BlockId,
    fragment: Fragment,
    *,
    chrom_a: str,
    chrom_b: str,
    reverse_offset: ReverseOffset = ReverseOffset.LEGACY,
) -> Iterator[AlignedPosition]:
    """Walk the aligned columns of one fragment and yield unmasked correspondences.

    The walk runs in 0-based coordinates. Genome B always advances from
    ``start_b - 1``. Genome A advances from ``start_a - 1`` on the forward
    strand; on the reverse strand it starts at ``start_a - reverse_offset.shift``
    and moves backwards.
    """
    seq_a, seq_b = fragment.seq_a, fragment.seq_b
    if len(seq_a) != len(seq_b):
        raise FormatError(
            f"Fragment A:{fragment.start_a}-{fragment.end_a} in block {block_id} has "
            f"{len(seq_a)} genome-A columns but {len(seq_b)} genome-B columns"
        )

    if block_id.strand is Strand.FORWARD:
        walk_a, step_a = fragment.start_a - 1, 1
    else:
        walk_a, step_a = fragment.start_a - reverse_offset.shift, -1
    walk_b = fragment.start_b - 1

    for base_a, base_b in zip(seq_a, seq_b):
        # lowercase = soft-masked
        if _is_unmasked(base_a) and _is_unmasked(base_b):
            yield AlignedPosition(
                chrom_a=chrom_a,
                pos_a=walk_a,
                base_a=base_a,
                strand=block_id.strand,
                chrom_b=chrom_b,
                pos_b=walk_b,
                base_b=base_b,
                block_id=block_id,
                is_snp=base_a != base_b,
            )
        walk_a += step_a
        walk_b += 1


def expand_block(
    block: Block,
    context: RunContext,
    *,
    names_a: ChromosomeIndex,
    names_b: ChromosomeIndex,
    reverse_offset: ReverseOffset = ReverseOffset.LEGACY,
) -> int:
    """Expand all fragments of a block and resolve genome-B ownership.

    Returns the number of candidate positions kept by the block.
    """
    block.candidates = []
    block.block_overlaps = 0

    chrom_a = names_a.name(block.block_id.chrom_a)
    chrom_b = names_b.name(block.block_id.chrom_b)

    for fragment in block.fragments:
        for position in iter_fragment_positions(
            block.block_id,
            fragment,
            chrom_a=chrom_a,
            chrom_b=chrom_b,
            reverse_offset=reverse_offset,
        ):
            context.source_counts[(position.chrom_a, position.pos_a)] += 1
            claimed = context.claim(position)
            if claimed:
                block.candidates.append(position)
            elif claimed is False:
                block.block_overlaps += 1

    return len(block.candidates)


def expand_blocks(
    ranked_blocks: Sequence[Block],
    context: RunContext,
    *,
    names_a: ChromosomeIndex,
    names_b: ChromosomeIndex,
    reverse_offset: ReverseOffset = ReverseOffset.LEGACY,
    progress: bool = False,
) -> int:
    """Expand blocks in the given (ranked) order; returns total candidates kept.

    The order matters: contested genome-B coordinates go to whichever block
    is expanded first.
    """
    it: Iterable[Block] = ranked_blocks
    if progress:
        it = tqdm(it, unit="block", desc="Expanding blocks", total=len(ranked_blocks))

    total = 0
    for block in it:
        total += expand_block(
            block,
            context,
            names_a=names_a,
            names_b=names_b,
            reverse_offset=reverse_offset,
        )

    logger.info(
        "Expanded %d blocks: %d candidate positions, %d genome-B coordinates owned",
        len(ranked_blocks),
        total,
        len(context.owners),
    )
    return total
