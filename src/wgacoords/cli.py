from __future__ import annotations

import argparse
import json
import logging
import sys
from contextlib import ExitStack
from pathlib import Path
from typing import Optional, TextIO

from . import __version__
from .mapper import run_mapping
from .models import ReverseOffset
from .report import render_report
from .toy_data import make_toy_data
from .utils import ensure_outdir, open_textmaybe_gzip, write_json
from .validation import build_config, check_readable


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    msg = f"{err.__class__.__name__}: {err}"

    sys.stderr.write(msg + "\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="wgacoords",
        description=(
            "wgacoords: map equivalent coordinates between two genome assemblies "
            "from whole-genome alignment blocks (CGaln format), skipping soft-masked "
            "bases and ambiguous or overlapping blocks."
        ),
    )
    p.add_argument("--version", action="version", version=f"wgacoords {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # quickstart
    # -----------------
    sub.add_parser(
        "quickstart",
        help="Print ready-to-run recipes for common scenarios.",
    )

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate two tiny genomes and a block file for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    # -----------------
    # map
    # -----------------
    m = sub.add_parser(
        "map",
        help="Map genome A coordinates to genome B from alignment blocks.",
    )
    m.add_argument(
        "--wga",
        required=True,
        type=_path_exists,
        help="Whole-genome alignment blocks (.fasta or .fasta.gz, CGaln format).",
    )
    m.add_argument("--fasta-a", required=True, type=_path_exists, help="Genome A FASTA (as aligned).")
    m.add_argument("--fasta-b", required=True, type=_path_exists, help="Genome B FASTA (as aligned).")
    m.add_argument(
        "-o",
        "--output",
        default=None,
        help="Mapped positions TSV (default: stdout; .gz is compressed).",
    )
    m.add_argument(
        "--diagnostics",
        default=None,
        help="Per-block diagnostics TSV (default: stderr).",
    )
    m.add_argument(
        "--max-block-overlap-ratio",
        type=float,
        default=0.25,
        help="Skip blocks whose ratio of positions owned by better blocks exceeds this.",
    )
    m.add_argument(
        "--max-multi-position-ratio",
        type=float,
        default=0.05,
        help="Accept blocks only if the ratio of multi-mapped genome A positions is below this.",
    )
    m.add_argument(
        "--reverse-offset",
        choices=[o.value for o in ReverseOffset],
        default=ReverseOffset.LEGACY.value,
        help="Reverse-strand genome A start shift: legacy=-2 (CGaln), standard=-1.",
    )
    m.add_argument(
        "--not-cgaln",
        action="store_true",
        help="Blocks were converted from another aligner; same as --reverse-offset standard.",
    )
    m.add_argument(
        "--report-dir",
        default=None,
        help="Optional directory for summary.json, report.html and logs/map.log.",
    )
    m.add_argument("--progress", action="store_true", help="Show a progress bar while expanding blocks.")
    m.add_argument("--dry-run", action="store_true", help="Validate inputs and print planned outputs.")
    m.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    return p


# -----------------
# Command handlers
# -----------------

def cmd_quickstart() -> int:
    lines = [
        "wgacoords quickstart (copy/paste):",
        "",
        "1) CGaln blocks -> coordinate table:",
        "   wgacoords map \\",
        "     --wga A_B.fasta.gz \\",
        "     --fasta-a A.fa --fasta-b B.fa \\",
        "     -o A_B.coords.tsv --diagnostics A_B.blocks.tsv",
        "",
        "2) Blocks converted from another aligner (e.g. GSAlign):",
        "   wgacoords map --wga A_B.gsalign.fasta.gz --fasta-a A.fa --fasta-b B.fa \\",
        "     --not-cgaln -o A_B.coords.tsv",
        "",
        "3) With an HTML run report:",
        "   wgacoords map --wga A_B.fasta.gz --fasta-a A.fa --fasta-b B.fa \\",
        "     -o A_B.coords.tsv --report-dir A_B_report/",
        "   Outputs: A_B_report/report.html, A_B_report/summary.json",
        "",
        "Tip: use --dry-run to validate inputs, and make-toy-data for a tiny example.",
    ]
    print("\n".join(lines))
    return 0


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    summary = make_toy_data(outdir=outdir)
    print(json.dumps(summary, indent=2))
    return 0


def _open_output(stack: ExitStack, path: Optional[str], default: TextIO) -> TextIO:
    if path is None or path == "-":
        return default
    Path(path).expanduser().parent.mkdir(parents=True, exist_ok=True)
    return stack.enter_context(open_textmaybe_gzip(Path(path).expanduser(), "wt"))


def cmd_map(args: argparse.Namespace) -> int:
    report_dir = Path(args.report_dir).expanduser().resolve() if args.report_dir else None
    log_path = _log_path(report_dir, "map.log") if report_dir is not None else None
    _setup_logging(args.verbose, logfile=None if args.dry_run else log_path)

    logger = logging.getLogger("wgacoords")
    logger.info("wgacoords %s", __version__)

    try:
        config = build_config(
            max_block_overlap_ratio=args.max_block_overlap_ratio,
            max_multi_position_ratio=args.max_multi_position_ratio,
            reverse_offset=ReverseOffset.STANDARD if args.not_cgaln else args.reverse_offset,
        )
        if args.dry_run:
            check_readable(args.wga, what="WGA file")
            check_readable(args.fasta_a, what="A FASTA file")
            check_readable(args.fasta_b, what="B FASTA file")
            print("Dry-run: inputs look OK.")
            print(f"Max block overlap ratio: {config.max_block_overlap_ratio}")
            print(f"Max multi-position ratio: {config.max_multi_position_ratio}")
            print(f"Reverse-strand offset: {config.reverse_offset.value} (-{config.reverse_offset.shift})")
            print("Planned outputs:")
            print(f"  positions -> {args.output or 'stdout'}")
            print(f"  diagnostics -> {args.diagnostics or 'stderr'}")
            if report_dir is not None:
                print(f"  report.html -> {report_dir / 'report.html'}")
                print(f"  summary.json -> {report_dir / 'summary.json'}")
            return 0

        with ExitStack() as stack:
            out = _open_output(stack, args.output, sys.stdout)
            diagnostics = _open_output(stack, args.diagnostics, sys.stderr)
            summary = run_mapping(
                wga_path=args.wga,
                fasta_a=args.fasta_a,
                fasta_b=args.fasta_b,
                config=config,
                out=out,
                diagnostics=diagnostics,
                progress=bool(args.progress),
            )

        if report_dir is not None:
            ensure_outdir(report_dir)
            write_json(report_dir / "summary.json", summary)
            report_path = render_report(
                outdir=report_dir,
                version=__version__,
                summary=summary,
                output=args.output or "stdout",
                diagnostics=args.diagnostics or "stderr",
            )
            logger.info("Report written: %s", report_path)
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "quickstart":
        return cmd_quickstart()
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)
    if args.cmd == "map":
        return cmd_map(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
