from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Dict, List

from jinja2 import Template

logger = logging.getLogger(__name__)


_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>wgacoords Report</title>
  <style>
    body { font-family: Arial, Helvetica, sans-serif; margin: 24px; }
    code, pre { background: #f6f8fa; padding: 2px 4px; border-radius: 4px; }
    h1, h2, h3 { margin-top: 1.2em; }
    table { border-collapse: collapse; margin-top: 0.6em; }
    th, td { border: 1px solid #ddd; padding: 8px; }
    th { background: #f2f2f2; text-align: left; }
    .grid { display: grid; grid-template-columns: 1fr 1fr; gap: 16px; }
    .card { border: 1px solid #ddd; border-radius: 8px; padding: 12px; }
    .small { color: #666; font-size: 0.9em; }
    .bar { background: #4a7ab5; height: 12px; }
  </style>
</head>
<body>

<h1>wgacoords Report</h1>
<p class="small">Generated: {{ generated_at }}</p>

<h2>Run summary</h2>
<div class="grid">
  <div class="card">
    <h3>Inputs</h3>
    <table>
      <tr><th>WGA blocks</th><td><code>{{ s.wga_path }}</code></td></tr>
      <tr><th>Genome A FASTA</th><td><code>{{ s.fasta_a }}</code> ({{ s.chromosomes_a }} sequences)</td></tr>
      <tr><th>Genome B FASTA</th><td><code>{{ s.fasta_b }}</code> ({{ s.chromosomes_b }} sequences)</td></tr>
    </table>
  </div>
  <div class="card">
    <h3>Thresholds</h3>
    <table>
      <tr><th>Max block overlap ratio</th><td>{{ s.max_block_overlap_ratio }}</td></tr>
      <tr><th>Max multi-position ratio</th><td>{{ s.max_multi_position_ratio }}</td></tr>
      <tr><th>Reverse-strand offset</th><td>{{ s.reverse_offset }}</td></tr>
    </table>
  </div>
</div>

<h2>Blocks</h2>
<table>
  <tr><th>Total blocks</th><td>{{ s.blocks_total }}</td></tr>
  <tr><th>Accepted</th><td>{{ s.blocks_by_outcome.accepted }}</td></tr>
  <tr><th>No positions of their own</th><td>{{ s.blocks_by_outcome.empty }}</td></tr>
  <tr><th>Rejected: overlap with better blocks</th><td>{{ s.blocks_by_outcome.overlap_rejected }}</td></tr>
  <tr><th>Rejected: multi-position genome-A coordinates</th><td>{{ s.blocks_by_outcome.multi_position_rejected }}</td></tr>
</table>

<h2>Positions</h2>
<table>
  <tr><th>Candidate positions kept by blocks</th><td>{{ s.candidate_positions }}</td></tr>
  <tr><th>Positions emitted</th><td>{{ s.positions_emitted }}</td></tr>
  <tr><th>SNPs emitted</th><td>{{ s.snps_emitted }} ({{ '%.3f'|format(s.snp_fraction) }})</td></tr>
  <tr><th>Genome-B coordinates owned</th><td>{{ s.genome_b_coords_owned }}</td></tr>
  <tr><th>Genome-A coordinates seen more than once</th><td>{{ s.genome_a_coords_ambiguous }} of {{ s.genome_a_coords_seen }}</td></tr>
</table>

<h2>Unique ratio of accepted blocks</h2>
<table>
  <tr><th>Ratio bin</th><th>Blocks</th><th></th></tr>
  {% for row in hist_rows %}
  <tr>
    <td>{{ '%.2f'|format(row.left) }} - {{ '%.2f'|format(row.right) }}</td>
    <td>{{ row.count }}</td>
    <td style="width: 240px;"><div class="bar" style="width: {{ row.width }}%;"></div></td>
  </tr>
  {% endfor %}
</table>

<h2>Outputs</h2>
<ul>
  <li><code>{{ output }}</code> (mapped positions, BED-like 0-based)</li>
  <li><code>{{ diagnostics }}</code> (per-block diagnostics)</li>
  <li><code>summary.json</code> (machine-readable summary)</li>
</ul>

<h2>Interpretation notes</h2>
<ul>
  <li>Only positions whose genome-A coordinate occurs once in the whole run are reported.</li>
  <li>Blocks are processed by cumulative score; a genome-B coordinate belongs to the first block that claims it.</li>
  <li>Soft-masked (lowercase) bases never produce positions.</li>
</ul>

<hr>
<p class="small">wgacoords {{ version }} &middot; runtime {{ '%.2f'|format(s.runtime_seconds) }} s</p>
</body>
</html>"""
)


def _hist_rows(hist: Dict[str, List[float]]) -> List[Dict[str, Any]]:
    edges = list(map(float, hist.get("bin_edges", [])))
    counts = list(map(int, hist.get("counts", [])))
    if len(edges) != len(counts) + 1:
        raise ValueError("unique_ratio_hist must contain bin_edges of length len(counts)+1")
    peak = max(counts) if counts else 0
    rows = []
    for i, c in enumerate(counts):
        rows.append(
            {
                "left": edges[i],
                "right": edges[i + 1],
                "count": c,
                "width": int(round(100 * c / peak)) if peak else 0,
            }
        )
    return rows


def render_report(
    *,
    outdir: str | Path,
    version: str,
    summary: Dict[str, Any],
    output: str = "stdout",
    diagnostics: str = "stderr",
) -> Path:
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        s=summary,
        hist_rows=_hist_rows(summary.get("unique_ratio_hist", {"bin_edges": [0.0], "counts": []})),
        output=output,
        diagnostics=diagnostics,
    )

    out_path = outdir / "report.html"
    out_path.write_text(html, encoding="utf-8")
    return out_path
