"""Reader for whole-genome alignment blocks in CGaln's FASTA-like format.

Example input (one block with one HSP)::

    #####{ (forward) genomeA-fasta1 genomeB-fasta1  Bl #43
    >A_fst1:18718865-18718886:HSP number 14:score 44:score_cumulative 246
    GTGTTCTTAAATATATTAATTA
    >B_fst1:15082265-15082286:HSP number 14:score 44:score_cumulative 246
    GTGCTCTTAACTATATTAGTTA
    #####}

Each line is first classified into a ``LineKind``; ``BlockParser`` then
consumes classified lines and assembles ``Block``/``Fragment`` records. Any
other aligner can feed the mapper by producing the same format.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .models import Block, BlockId, Fragment, Strand
from .utils import open_textmaybe_gzip

logger = logging.getLogger(__name__)

_BLOCK_START_RE = re.compile(
    r"^#####\{ \((\w+)\) genomeA-fasta(\d+)\S*\s+genomeB-fasta(\d+)\s+Bl #(\d+)"
)
_FRAGMENT_HEADER_RE = re.compile(
    r"^>([AB])_fst\d+(?:_revcom)?:(\d+)-(\d+):HSP number \d+:score \d+:score_cumulative (\d+)"
)
_SEQUENCE_RE = re.compile(r"^[ACGTNX-]+$", re.IGNORECASE)


class FormatError(ValueError):
    """Raised when the alignment stream violates the block grammar."""

    def __init__(self, message: str, *, lineno: Optional[int] = None) -> None:
        if lineno is not None:
            message = f"line {lineno}: {message}"
        super().__init__(message)
        self.lineno = lineno


class LineKind(Enum):
    BLOCK_START = "block_start"
    FRAGMENT_HEADER = "fragment_header"
    SEQUENCE = "sequence"
    BLANK = "blank"
    OTHER = "other"


@dataclass(frozen=True)
class ParsedLine:
    """A classified input line. Only the fields relevant to ``kind`` are set."""

    kind: LineKind
    text: str = ""
    block_id: Optional[BlockId] = None
    genome: Optional[str] = None  # 'A' or 'B'
    start: int = 0
    end: int = 0
    score: int = 0


def classify_line(line: str) -> ParsedLine:
    """Classify one line of the block format."""
    text = line.strip()
    if not text:
        return ParsedLine(LineKind.BLANK)

    m = _BLOCK_START_RE.match(text)
    if m:
        token = m.group(1)
        try:
            strand = Strand(token)
        except ValueError:
            raise FormatError(f"Unknown strand {token!r} in block header") from None
        block_id = BlockId(
            strand=strand,
            chrom_a=int(m.group(2)),
            chrom_b=int(m.group(3)),
            number=int(m.group(4)),
        )
        return ParsedLine(LineKind.BLOCK_START, text=text, block_id=block_id)

    m = _FRAGMENT_HEADER_RE.match(text)
    if m:
        return ParsedLine(
            LineKind.FRAGMENT_HEADER,
            text=text,
            genome=m.group(1),
            start=int(m.group(2)),
            end=int(m.group(3)),
            score=int(m.group(4)),
        )

    if _SEQUENCE_RE.match(text):
        return ParsedLine(LineKind.SEQUENCE, text=text)

    return ParsedLine(LineKind.OTHER, text=text)


@dataclass
class _PendingHalf:
    start: int
    end: int
    lineno: int
    chunks: List[str] = field(default_factory=list)

    @property
    def sequence(self) -> str:
        return "".join(self.chunks)


class BlockParser:
    """Incremental parser: feed lines one at a time, then call ``finish``.

    Blocks are returned in the order their first block-start line was seen. A
    block-start line repeating an identity already seen continues that block.
    """

    def __init__(self) -> None:
        self._blocks: Dict[BlockId, Block] = {}
        self._current: Optional[Block] = None
        self._pending_a: Optional[_PendingHalf] = None
        self._pending_b: Optional[_PendingHalf] = None
        self._expecting: Optional[str] = None
        self.lineno = 0

    def feed(self, line: str) -> None:
        self.lineno += 1
        try:
            parsed = classify_line(line)
        except FormatError as e:
            raise FormatError(str(e), lineno=self.lineno) from None

        if parsed.kind is LineKind.BLANK:
            return

        if self._current is None and parsed.kind is not LineKind.BLOCK_START:
            raise FormatError(
                f"Expected a block-start line ('#####{{ ...'), got: {parsed.text[:60]!r}",
                lineno=self.lineno,
            )

        if parsed.kind is LineKind.BLOCK_START:
            self._start_block(parsed)
        elif parsed.kind is LineKind.FRAGMENT_HEADER:
            if parsed.genome == "A":
                self._start_half_a(parsed)
            else:
                self._start_half_b(parsed)
        elif parsed.kind is LineKind.SEQUENCE:
            self._add_sequence(parsed.text)
        else:
            self._close_fragment()
            self._expecting = None

    def finish(self) -> List[Block]:
        self._close_fragment()
        self._check_no_dangling_a()
        return list(self._blocks.values())

    # -----------------
    # transitions
    # -----------------

    def _start_block(self, parsed: ParsedLine) -> None:
        self._close_fragment()
        self._check_no_dangling_a()
        assert parsed.block_id is not None
        block = self._blocks.get(parsed.block_id)
        if block is None:
            block = Block(block_id=parsed.block_id)
            self._blocks[parsed.block_id] = block
        else:
            logger.debug("Block %s reopened at line %d", parsed.block_id, self.lineno)
        self._current = block
        self._pending_a = None
        self._pending_b = None
        self._expecting = None

    def _start_half_a(self, parsed: ParsedLine) -> None:
        self._close_fragment()
        self._check_no_dangling_a()
        assert self._current is not None
        self._pending_a = _PendingHalf(start=parsed.start, end=parsed.end, lineno=self.lineno)
        self._pending_b = None
        self._expecting = "A"
        self._current.freeze_score(parsed.score)

    def _start_half_b(self, parsed: ParsedLine) -> None:
        if self._pending_b is not None and self._pending_b.chunks:
            self._close_fragment()
        if self._pending_a is not None and not self._pending_a.chunks:
            raise FormatError(
                f"Genome-A fragment header at line {self._pending_a.lineno} has no sequence",
                lineno=self.lineno,
            )
        self._pending_b = _PendingHalf(start=parsed.start, end=parsed.end, lineno=self.lineno)
        self._expecting = "B"

    def _add_sequence(self, text: str) -> None:
        if self._expecting is None:
            raise FormatError("Sequence line without a preceding fragment header", lineno=self.lineno)
        if self._expecting == "A":
            assert self._pending_a is not None
            self._pending_a.chunks.append(text)
            return
        if self._pending_a is None:
            raise FormatError(
                f"Genome-B sequence with no pending genome-A fragment in block {self._current_id()}",
                lineno=self.lineno,
            )
        assert self._pending_b is not None
        self._pending_b.chunks.append(text)

    def _close_fragment(self) -> None:
        a, b = self._pending_a, self._pending_b
        if a is None or b is None or not b.chunks:
            return
        seq_a, seq_b = a.sequence, b.sequence
        if len(seq_a) != len(seq_b):
            raise FormatError(
                f"Fragment A:{a.start}-{a.end} / B:{b.start}-{b.end} in block {self._current_id()} "
                f"has {len(seq_a)} genome-A columns but {len(seq_b)} genome-B columns",
                lineno=b.lineno,
            )
        assert self._current is not None
        self._current.fragments.append(
            Fragment(
                start_a=a.start,
                end_a=a.end,
                seq_a=seq_a,
                start_b=b.start,
                end_b=b.end,
                seq_b=seq_b,
            )
        )
        self._pending_a = None
        self._pending_b = None
        self._expecting = None

    def _check_no_dangling_a(self) -> None:
        if self._pending_a is not None:
            raise FormatError(
                f"Genome-A fragment in block {self._current_id()} has no genome-B counterpart",
                lineno=self._pending_a.lineno,
            )

    def _current_id(self) -> str:
        return str(self._current.block_id) if self._current is not None else "?"


def parse_blocks(lines: Iterable[str]) -> List[Block]:
    """Parse block-format lines into ``Block`` records (first-seen order)."""
    parser = BlockParser()
    for line in lines:
        parser.feed(line)
    return parser.finish()


def read_blocks(path: str | Path) -> List[Block]:
    """Read and parse a block-format file; ``.gz`` input is decompressed on the fly."""
    with open_textmaybe_gzip(path, "rt") as fh:
        blocks = parse_blocks(fh)
    logger.info("Total blocks: %d", len(blocks))
    return blocks
