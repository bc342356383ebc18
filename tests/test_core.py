import io

import pysam
import pytest

from wgacoords.chromosomes import ChromosomeIndex
from wgacoords.expander import RunContext, expand_block, iter_fragment_positions
from wgacoords.mapper import map_blocks
from wgacoords.models import BlockId, Fragment, MapperConfig, ReverseOffset, Strand
from wgacoords.ranker import Outcome, rank_blocks, write_decisions
from wgacoords.reader import FormatError, parse_blocks, read_blocks
from wgacoords.toy_data import make_toy_data

NAMES_A = ChromosomeIndex(["chr1", "chr2"], label="A")
NAMES_B = ChromosomeIndex(["chrB1", "chrB2"], label="B")


def block_text(strand, chrom_a, chrom_b, number, score, fragments):
    lines = [f"#####{{ ({strand}) genomeA-fasta{chrom_a} genomeB-fasta{chrom_b}  Bl #{number}"]
    for i, (start_a, end_a, seq_a, start_b, end_b, seq_b) in enumerate(fragments, start=1):
        lines.append(f">A_fst{chrom_a}:{start_a}-{end_a}:HSP number {i}:score 10:score_cumulative {score}")
        lines.append(seq_a)
        lines.append(f">B_fst{chrom_b}:{start_b}-{end_b}:HSP number {i}:score 10:score_cumulative {score}")
        lines.append(seq_b)
    lines.append("#####}")
    return "\n".join(lines) + "\n"


def run(text, config=None):
    blocks = parse_blocks(text.splitlines())
    decisions, context = map_blocks(
        blocks, names_a=NAMES_A, names_b=NAMES_B, config=config or MapperConfig()
    )
    return blocks, decisions, context


def accepted_positions(decisions):
    return [p for d in decisions if d.accepted for p in d.positions]


def test_forward_fragment_positions_and_snp():
    text = block_text("forward", 1, 1, 1, 50, [(10, 14, "ACGTA", 100, 104, "ACCTA")])
    _, decisions, _ = run(text)

    positions = accepted_positions(decisions)
    assert [p.pos_a for p in positions] == [9, 10, 11, 12, 13]
    assert [p.pos_b for p in positions] == [99, 100, 101, 102, 103]
    assert [p.is_snp for p in positions] == [False, False, True, False, False]
    assert positions[0].to_row() == "chr1\t9\t10\tA\t+\tchrB1\t99\t100\tA\t1\t."
    assert positions[2].to_row() == "chr1\t11\t12\tG\t+\tchrB1\t101\t102\tC\t1\tSNP"


def test_soft_masked_columns_are_skipped():
    text = block_text("forward", 1, 1, 1, 50, [(10, 14, "acgtA", 100, 104, "ACCTA")])
    _, decisions, context = run(text)

    positions = accepted_positions(decisions)
    assert len(positions) == 1
    assert (positions[0].pos_a, positions[0].pos_b) == (13, 103)
    # masked columns never touch the maps
    assert list(context.source_counts) == [("chr1", 13)]
    assert list(context.owners) == [("chrB1", 103)]


def test_masked_genome_b_base_is_skipped():
    frag = Fragment(start_a=1, end_a=3, seq_a="ACG", start_b=1, end_b=3, seq_b="AcG")
    block_id = BlockId(Strand.FORWARD, 1, 1, 1)
    out = list(iter_fragment_positions(block_id, frag, chrom_a="chr1", chrom_b="chrB1"))
    assert [p.pos_a for p in out] == [0, 2]


@pytest.mark.parametrize(
    "offset, expected_a",
    [
        (ReverseOffset.LEGACY, [48, 47, 46, 45, 44]),
        (ReverseOffset.STANDARD, [49, 48, 47, 46, 45]),
    ],
)
def test_reverse_strand_walk(offset, expected_a):
    frag = Fragment(start_a=50, end_a=46, seq_a="ACGTA", start_b=10, end_b=14, seq_b="ACGTA")
    block_id = BlockId(Strand.REVERSE, 1, 1, 7)
    out = list(
        iter_fragment_positions(block_id, frag, chrom_a="chr1", chrom_b="chrB1", reverse_offset=offset)
    )
    assert [p.pos_a for p in out] == expected_a
    assert [p.pos_b for p in out] == [9, 10, 11, 12, 13]
    assert out[0].to_row().split("\t")[4] == "-"


def test_higher_score_block_owns_contested_coordinate():
    low = block_text("forward", 2, 1, 2, 50, [(1, 5, "TTTTT", 102, 106, "TTTTT")])
    high = block_text("forward", 1, 1, 1, 100, [(1, 3, "ACG", 100, 102, "ACG")])
    # the low-scoring block comes first in the file
    blocks, decisions, context = run(low + high)

    by_number = {d.block.block_id.number: d for d in decisions}
    assert context.owners[("chrB1", 101)] == BlockId(Strand.FORWARD, 1, 1, 1)
    assert ("chrB1", 101) in {(p.chrom_b, p.pos_b) for p in by_number[1].positions}

    loser = by_number[2]
    assert loser.block.block_overlaps == 1
    assert 101 not in [p.pos_b for p in loser.block.candidates]
    assert 101 not in [p.pos_b for p in loser.positions]


def test_overlap_ratio_equal_to_threshold_is_accepted():
    low = block_text("forward", 2, 1, 2, 50, [(1, 5, "TTTTT", 102, 106, "TTTTT")])
    high = block_text("forward", 1, 1, 1, 100, [(1, 3, "ACG", 100, 102, "ACG")])

    _, decisions, _ = run(low + high, MapperConfig(max_block_overlap_ratio=0.25))
    loser = [d for d in decisions if d.block.block_id.number == 2][0]
    assert len(loser.block.candidates) == 4
    assert loser.outcome is Outcome.ACCEPTED
    assert loser.report.overlap_ratio == pytest.approx(0.25)

    _, decisions, _ = run(low + high, MapperConfig(max_block_overlap_ratio=0.24))
    loser = [d for d in decisions if d.block.block_id.number == 2][0]
    assert loser.outcome is Outcome.OVERLAP_REJECTED
    assert loser.positions == []


def test_multi_position_ratio_is_strict():
    seq = "ACGTACGTACGTACGTACGT"
    main = block_text("forward", 1, 1, 1, 100, [(1, 20, seq, 1, 20, seq)])
    # second block reuses chr1:20 (0-based 19) against a different chromosome
    extra = block_text("forward", 1, 2, 2, 90, [(20, 20, "T", 50, 50, "T")])

    _, decisions, _ = run(main + extra)
    first = decisions[0]
    assert first.block.ambiguous_count == 1
    assert first.block.truly_unique_count == 19
    assert first.outcome is Outcome.MULTI_REJECTED  # 1/20 == 0.05 is not < 0.05
    assert first.positions == []

    _, decisions, _ = run(main + extra, MapperConfig(max_multi_position_ratio=0.06))
    first = decisions[0]
    assert first.outcome is Outcome.ACCEPTED
    assert len(first.positions) == 19
    assert 19 not in [p.pos_a for p in first.positions]
    assert decisions[1].outcome is Outcome.MULTI_REJECTED


def test_block_without_candidates_is_empty():
    text = block_text("forward", 1, 1, 1, 50, [(1, 4, "acgt", 1, 4, "ACGT")])
    _, decisions, _ = run(text)
    assert decisions[0].outcome is Outcome.EMPTY
    assert decisions[0].report is None


def test_rank_order_is_deterministic():
    text = (
        block_text("reverse", 1, 1, 1, 100, [(9, 9, "A", 1, 1, "A")])
        + block_text("forward", 1, 1, 10, 100, [(1, 1, "A", 2, 2, "A")])
        + block_text("forward", 1, 1, 9, 100, [(2, 2, "A", 3, 3, "A")])
        + block_text("forward", 2, 1, 1, 100, [(1, 1, "A", 4, 4, "A")])
        + block_text("reverse", 1, 1, 5, 500, [(8, 8, "A", 5, 5, "A")])
    )
    ranked = rank_blocks(parse_blocks(text.splitlines()))
    assert [str(b.block_id) for b in ranked] == [
        "reverse_1_1_5",
        "forward_1_1_9",
        "forward_1_1_10",
        "forward_2_1_1",
        "reverse_1_1_1",
    ]


def test_rerun_is_byte_identical():
    text = (
        block_text("forward", 1, 1, 1, 100, [(10, 14, "ACGTA", 100, 104, "ACCTA")])
        + block_text("reverse", 2, 2, 2, 80, [(40, 36, "GGCCA", 1, 5, "GGCTA")])
        + block_text("forward", 2, 1, 3, 20, [(1, 5, "TTTTT", 102, 106, "TTTTT")])
    )
    blocks = parse_blocks(text.splitlines())

    outputs = []
    for _ in range(2):
        decisions, _ = map_blocks(blocks, names_a=NAMES_A, names_b=NAMES_B, config=MapperConfig())
        out, diag = io.StringIO(), io.StringIO()
        write_decisions(decisions, out, diag)
        outputs.append((out.getvalue(), diag.getvalue()))

    assert outputs[0] == outputs[1]
    assert outputs[0][1].splitlines()[-1] == "# valid blocks: 2 unique positions: 10"


def test_outputs_respect_invariants():
    text = (
        block_text("forward", 1, 1, 1, 100, [(10, 29, "ACGTAcgtACGTACGTAcgt", 100, 119, "ACGTACGTAcgTACGTACGT")])
        + block_text("forward", 2, 1, 2, 90, [(1, 20, "A" * 20, 110, 129, "A" * 20)])
        + block_text("reverse", 1, 2, 3, 90, [(80, 61, "C" * 20, 1, 20, "C" * 20)])
    )
    _, decisions, context = run(text, MapperConfig(max_block_overlap_ratio=1.0))

    seen = {}
    for d in decisions:
        if not d.accepted:
            continue
        n = len(d.block.candidates)
        assert d.block.ambiguous_count / n < 0.05
        for p in d.positions:
            assert p.base_a.isupper() and p.base_b.isupper()
            key = (p.chrom_b, p.pos_b)
            assert seen.setdefault(key, d.block.block_id) == d.block.block_id
            assert context.source_counts[(p.chrom_a, p.pos_a)] == 1


def test_cumulative_score_frozen_at_first_header():
    text = block_text(
        "forward", 1, 1, 1, 70, [(1, 2, "AC", 1, 2, "AC")]
    ) + block_text("forward", 1, 1, 1, 999, [(5, 6, "GT", 5, 6, "GT")])
    blocks = parse_blocks(text.splitlines())
    assert len(blocks) == 1
    assert blocks[0].cumulative_score == 70
    assert len(blocks[0].fragments) == 2


def test_unknown_chromosome_ordinal_raises():
    text = block_text("forward", 3, 1, 1, 50, [(1, 2, "AC", 1, 2, "AC")])
    with pytest.raises(FormatError, match="ordinal 3"):
        run(text)


def test_expand_block_resets_previous_state():
    blocks = parse_blocks(block_text("forward", 1, 1, 1, 50, [(1, 3, "ACG", 1, 3, "ACG")]).splitlines())
    block = blocks[0]
    for _ in range(2):
        n = expand_block(block, RunContext(), names_a=NAMES_A, names_b=NAMES_B)
        assert n == 3
        assert block.block_overlaps == 0


def test_toy_positions_match_genome_a_sequence(tmp_path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    with pysam.FastxFile(toy["fasta_a"]) as fh:
        genome_a = {entry.name: entry.sequence for entry in fh}
    names_a = ChromosomeIndex.from_fasta(toy["fasta_a"], label="A")
    names_b = ChromosomeIndex.from_fasta(toy["fasta_b"], label="B")
    blocks = read_blocks(toy["wga"])
    complement = str.maketrans("ACGT", "TGCA")

    by_offset = {}
    for offset in ReverseOffset:
        decisions, _ = map_blocks(
            blocks, names_a=names_a, names_b=names_b, config=MapperConfig(reverse_offset=offset)
        )
        by_offset[offset] = accepted_positions(decisions)

    standard = by_offset[ReverseOffset.STANDARD]
    forward = [p for p in standard if p.strand is Strand.FORWARD]
    reverse = [p for p in standard if p.strand is Strand.REVERSE]
    assert len(forward) == 65
    assert len(reverse) == 40
    assert all(p.base_a == genome_a[p.chrom_a][p.pos_a] for p in forward)
    assert all(p.base_a == genome_a[p.chrom_a][p.pos_a].translate(complement) for p in reverse)
    assert reverse[0].pos_a == 159

    legacy_reverse = [p for p in by_offset[ReverseOffset.LEGACY] if p.strand is Strand.REVERSE]
    assert [p.pos_a for p in legacy_reverse] == [p.pos_a - 1 for p in reverse]


def test_refiltering_clears_counts_of_rejected_blocks():
    low = block_text("forward", 2, 1, 2, 50, [(1, 5, "TTTTT", 102, 106, "TTTTT")])
    high = block_text("forward", 1, 1, 1, 100, [(1, 3, "ACG", 100, 102, "ACG")])
    blocks = parse_blocks((low + high).splitlines())
    loser = [b for b in blocks if b.block_id.number == 2][0]

    map_blocks(blocks, names_a=NAMES_A, names_b=NAMES_B, config=MapperConfig(max_block_overlap_ratio=1.0))
    assert loser.truly_unique_count == 4

    decisions, _ = map_blocks(
        blocks, names_a=NAMES_A, names_b=NAMES_B, config=MapperConfig(max_block_overlap_ratio=0.1)
    )
    assert [d.outcome for d in decisions if d.block is loser] == [Outcome.OVERLAP_REJECTED]
    assert loser.truly_unique_count == 0
    assert loser.ambiguous_count == 0


def test_empty_block_clears_stale_counts():
    blocks = parse_blocks(block_text("forward", 1, 1, 1, 50, [(1, 3, "acg", 1, 3, "ACG")]).splitlines())
    blocks[0].truly_unique_count = 3
    blocks[0].ambiguous_count = 1
    decisions, _ = map_blocks(blocks, names_a=NAMES_A, names_b=NAMES_B, config=MapperConfig())
    assert decisions[0].outcome is Outcome.EMPTY
    assert blocks[0].truly_unique_count == 0
    assert blocks[0].ambiguous_count == 0
