from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Dict, List, Sequence, TextIO, Tuple

import numpy as np

from .chromosomes import ChromosomeIndex
from .expander import RunContext, expand_blocks
from .models import Block, MapperConfig
from .ranker import BlockDecision, Outcome, filter_blocks, rank_blocks, write_decisions
from .reader import read_blocks
from .utils import safe_ratio
from .validation import check_readable

logger = logging.getLogger(__name__)


def map_blocks(
    blocks: Sequence[Block],
    *,
    names_a: ChromosomeIndex,
    names_b: ChromosomeIndex,
    config: MapperConfig,
    progress: bool = False,
) -> Tuple[List[BlockDecision], RunContext]:
    """Rank, expand and filter parsed blocks with a fresh run context.

    Calling this twice on the same blocks gives identical decisions.
    """
    ranked = rank_blocks(blocks)
    context = RunContext()
    expand_blocks(
        ranked,
        context,
        names_a=names_a,
        names_b=names_b,
        reverse_offset=config.reverse_offset,
        progress=progress,
    )
    decisions = list(filter_blocks(ranked, context, config))
    return decisions, context


def summarize_decisions(decisions: Sequence[BlockDecision], context: RunContext) -> Dict[str, object]:
    outcomes = {o.value: 0 for o in Outcome}
    candidates = 0
    snps = 0
    unique_ratios: List[float] = []
    for d in decisions:
        outcomes[d.outcome.value] += 1
        candidates += len(d.block.candidates)
        if d.accepted:
            assert d.report is not None
            unique_ratios.append(d.report.truly_unique_ratio)
            snps += sum(1 for p in d.positions if p.is_snp)

    ratio_bins = np.linspace(0.0, 1.0, 21)
    ratio_counts, _ = np.histogram(np.asarray(unique_ratios, dtype=float), bins=ratio_bins)

    emitted = sum(len(d.positions) for d in decisions)
    ambiguous_sources = sum(1 for c in context.source_counts.values() if c > 1)
    return {
        "blocks_total": len(decisions),
        "blocks_by_outcome": outcomes,
        "candidate_positions": candidates,
        "positions_emitted": emitted,
        "snps_emitted": snps,
        "snp_fraction": safe_ratio(snps, emitted),
        "genome_b_coords_owned": len(context.owners),
        "genome_a_coords_seen": len(context.source_counts),
        "genome_a_coords_ambiguous": ambiguous_sources,
        "unique_ratio_hist": {
            "bin_edges": ratio_bins.tolist(),
            "counts": ratio_counts.tolist(),
        },
    }


def run_mapping(
    *,
    wga_path: str | Path,
    fasta_a: str | Path,
    fasta_b: str | Path,
    config: MapperConfig,
    out: TextIO,
    diagnostics: TextIO,
    progress: bool = False,
) -> Dict[str, object]:
    """Main workhorse: read inputs, map coordinates, write outputs, return a summary dict."""
    t0 = time.time()

    logger.info("MAXMULTIPOSITIONS: %s", config.max_multi_position_ratio)
    logger.info("MAXMULTIBLOCKPOSITIONS: %s", config.max_block_overlap_ratio)
    logger.info("Reverse-strand offset: %s (-%d)", config.reverse_offset.value, config.reverse_offset.shift)
    logger.info("WGA file: %s", wga_path)
    logger.info("A FASTA file: %s", fasta_a)
    logger.info("B FASTA file: %s", fasta_b)

    check_readable(wga_path, what="WGA file")
    check_readable(fasta_a, what="A FASTA file")
    check_readable(fasta_b, what="B FASTA file")

    names_a = ChromosomeIndex.from_fasta(fasta_a, label="A")
    names_b = ChromosomeIndex.from_fasta(fasta_b, label="B")
    blocks = read_blocks(wga_path)

    decisions, context = map_blocks(
        blocks,
        names_a=names_a,
        names_b=names_b,
        config=config,
        progress=progress,
    )
    accepted_blocks, unique_positions = write_decisions(decisions, out, diagnostics)
    logger.info("Valid blocks: %d unique positions: %d", accepted_blocks, unique_positions)

    summary = summarize_decisions(decisions, context)
    summary.update(
        {
            "wga_path": str(wga_path),
            "fasta_a": str(fasta_a),
            "fasta_b": str(fasta_b),
            "chromosomes_a": len(names_a),
            "chromosomes_b": len(names_b),
            "max_block_overlap_ratio": float(config.max_block_overlap_ratio),
            "max_multi_position_ratio": float(config.max_multi_position_ratio),
            "reverse_offset": config.reverse_offset.value,
            "accepted_blocks": accepted_blocks,
            "runtime_seconds": float(time.time() - t0),
        }
    )
    return summary
