from __future__ import annotations

import random
from pathlib import Path
from typing import Dict, List, Tuple

from .utils import ensure_outdir, open_textmaybe_gzip, write_json


def _write_fasta(path: Path, records: List[Tuple[str, str]]) -> None:
    lines = []
    for name, seq in records:
        lines.append(f">{name}")
        for i in range(0, len(seq), 60):
            lines.append(seq[i : i + 60])
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def _mutate_base(base: str) -> str:
    for alt in ["A", "C", "G", "T"]:
        if alt != base:
            return alt
    return "A"


def _revcomp(seq: str) -> str:
    return seq[::-1].translate(str.maketrans("ACGTacgt", "TGCAtgca"))


def _hsp_lines(
    genome: str,
    fst: int,
    start: int,
    end: int,
    seq: str,
    *,
    hsp: int,
    score: int,
    cumulative: int,
    revcom: bool = False,
) -> List[str]:
    suffix = "_revcom" if revcom else ""
    return [
        f">{genome}_fst{fst}{suffix}:{start}-{end}:HSP number {hsp}:score {score}:score_cumulative {cumulative}",
        seq,
    ]


def make_toy_data(*, outdir: str | Path) -> Dict[str, str]:
    """Create two tiny genomes and a matching block file for quick demos/tests.

    The outputs include:
    - genome_A.fa (chr1, chr2)
    - genome_B.fa (chrB1, chrB2)
    - toy.wga.gz with a forward block, a reverse block and a lower-scoring
      block that overlaps the forward one in genome B.

    Reverse HSP starts are written the standard way, so ``--not-cgaln`` maps
    the reverse block onto its exact genome-A bases.

    Returns
    -------
    dict
        Paths to the generated files.
    """
    outdir_p = ensure_outdir(outdir)
    rng = random.Random(7)

    a1 = "".join(rng.choice("ACGT") for _ in range(240))
    a2 = "".join(rng.choice("ACGT") for _ in range(180))
    b1 = "".join(rng.choice("ACGT") for _ in range(60)) + a1[:180]
    b2 = _revcomp(a2)

    fasta_a = outdir_p / "genome_A.fa"
    fasta_b = outdir_p / "genome_B.fa"
    _write_fasta(fasta_a, [("chr1", a1), ("chr2", a2)])
    _write_fasta(fasta_b, [("chrB1", b1), ("chrB2", b2)])

    # forward block: chr1:11-50 ~ chrB1:71-110 with two SNPs, then a soft-masked HSP
    seg_a = a1[10:50]
    seg_b = list(b1[70:110])
    for i in (7, 23):
        seg_b[i] = _mutate_base(seg_b[i])
    masked_a = a1[60:65].lower() + a1[65:90]
    masked_b = b1[120:125].lower() + b1[125:150]

    # reverse block: chr2 (reverse complemented) against chrB2
    rev_a = _revcomp(a2)[20:60]
    rev_b = b2[20:60]

    lines: List[str] = []
    lines.append("#####{ (forward) genomeA-fasta1 genomeB-fasta1  Bl #1")
    lines += _hsp_lines("A", 1, 11, 50, seg_a, hsp=1, score=80, cumulative=500)
    lines += _hsp_lines("B", 1, 71, 110, "".join(seg_b), hsp=1, score=80, cumulative=500)
    lines += _hsp_lines("A", 1, 61, 90, masked_a, hsp=2, score=60, cumulative=560)
    lines += _hsp_lines("B", 1, 121, 150, masked_b, hsp=2, score=60, cumulative=560)
    lines.append("#####}")
    lines.append("#####{ (reverse) genomeA-fasta2_revcom  genomeB-fasta2  Bl #2")
    lines += _hsp_lines("A", 2, 180 - 20, 180 - 59, rev_a, hsp=1, score=70, cumulative=300, revcom=True)
    lines += _hsp_lines("B", 2, 21, 60, rev_b, hsp=1, score=70, cumulative=300)
    lines.append("#####}")
    lines.append("#####{ (forward) genomeA-fasta1 genomeB-fasta1  Bl #3")
    lines += _hsp_lines("A", 1, 151, 180, a1[150:180], hsp=1, score=40, cumulative=100)
    lines += _hsp_lines("B", 1, 81, 110, b1[80:110], hsp=1, score=40, cumulative=100)
    lines.append("#####}")

    wga = outdir_p / "toy.wga.gz"
    with open_textmaybe_gzip(wga, "wt") as fh:
        fh.write("\n".join(lines) + "\n")

    summary = {
        "fasta_a": str(fasta_a),
        "fasta_b": str(fasta_b),
        "wga": str(wga),
        "outdir": str(outdir_p),
    }

    write_json(outdir_p / "toy_summary.json", summary)
    return summary
