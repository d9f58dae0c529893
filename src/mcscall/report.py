from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Template

from .utils import format_duration

logger = logging.getLogger(__name__)


_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>mcscall Report</title>
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
    img { max-width: 100%; height: auto; border: 1px solid #eee; border-radius: 6px; }
  </style>
</head>
<body>

<h1>mcscall Report</h1>
<p class="small">Generated: {{ generated_at }}</p>

<h2>Run summary</h2>
<div class="grid">
  <div class="card">
    <h3>Inputs</h3>
    <table>
      <tr><th>BAM</th><td><code>{{ run.bam_path }}</code></td></tr>
      <tr><th>Reference</th><td><code>{{ run.ref_fa }}</code></td></tr>
      <tr><th>Families BED</th><td><code>{{ families_bed }}</code></td></tr>
      <tr><th>Exclusion intervals</th><td>{{ run.exclusion_intervals }}</td></tr>
      <tr><th>Runtime</th><td>{{ runtime }}</td></tr>
    </table>
  </div>
  <div class="card">
    <h3>Thresholds</h3>
    <table>
      <tr><th>Min MAPQ</th><td>{{ config.min_mapq }}</td></tr>
      <tr><th>Min total depth</th><td>{{ config.min_total_depth }}</td></tr>
      <tr><th>Min stranded depth</th><td>{{ config.min_stranded_depth }}</td></tr>
      <tr><th>Min allele fraction</th><td>{{ config.min_af }}</td></tr>
      <tr><th>Min base quality</th><td>{{ config.min_base_quality }}</td></tr>
      <tr><th>Ambiguous base penalty</th><td>{{ config.base_qual_penalty }}</td></tr>
      <tr><th>Ignored read ends</th><td>{{ config.end_pad }}</td></tr>
      <tr><th>Max overlapping families</th><td>{{ config.max_overlapping_families }}</td></tr>
      <tr><th>Workers</th><td>{{ config.threads }}</td></tr>
    </table>
  </div>
</div>

{% if prefilter %}
<h2>Prefilter</h2>
<table>
  <tr><th>Families in BED</th><td>{{ prefilter.families_total }}</td></tr>
  <tr><th>Families kept</th><td>{{ prefilter.families_kept }}</td></tr>
  <tr><th>Skipped (overlap cap)</th><td>{{ prefilter.families_skipped_overlap }}</td></tr>
  <tr><th>Skipped (depth)</th><td>{{ prefilter.families_skipped_depth }}</td></tr>
  <tr><th>Skipped (excluded)</th><td>{{ prefilter.families_skipped_excluded }}</td></tr>
</table>
{% endif %}

<h2>Calls</h2>
<table>
  <tr><th>Families processed</th><td>{{ counts.families_processed }}</td></tr>
  <tr><th>Families with calls</th><td>{{ counts.families_with_calls }}</td></tr>
  <tr><th>Calls made</th><td>{{ counts.calls_total }}</td></tr>
  <tr><th>Calls excluded</th><td>{{ counts.calls_excluded }}</td></tr>
  <tr><th>Calls written</th><td>{{ counts.calls_written }}</td></tr>
  <tr><th>SNV</th><td>{{ counts.calls_snv }}</td></tr>
  <tr><th>Insertion</th><td>{{ counts.calls_insertion }}</td></tr>
  <tr><th>Deletion</th><td>{{ counts.calls_deletion }}</td></tr>
</table>

<h2>Plots</h2>
<div class="grid">
  <div class="card">
    <h3>Variant types</h3>
    <img src="{{ plots.variant_types }}" alt="variant type counts">
  </div>
  <div class="card">
    <h3>Depth per call</h3>
    <img src="{{ plots.dp_hist }}" alt="DP histogram">
  </div>
</div>

<h2>Outputs</h2>
<ul>
  <li><code>{{ run.out_vcf }}</code> (duplex calls)</li>
  {% if analysis_bed %}
  <li><code>{{ analysis_bed }}</code> (families passed to the caller)</li>
  {% endif %}
  {% if run.debug_log %}
  <li><code>{{ run.debug_log }}</code> (per-family debug trace)</li>
  {% endif %}
  <li><code>summary.json</code> (machine-readable summary)</li>
</ul>

<h2>Interpretation notes</h2>
<ul>
  <li>A call requires the same allele on both the Watson and Crick strand of a read family.</li>
  <li>With more than one worker, VCF records are not in genomic order; sort before indexing.</li>
</ul>

<hr>
<p class="small">mcscall {{ version }}</p>
</body>
</html>"""
)


def render_report(
    *,
    outdir: str | Path,
    version: str,
    run: Dict[str, Any],
    plots: Dict[str, str],
    prefilter_counts: Optional[Dict[str, int]] = None,
    families_bed: Optional[str] = None,
    analysis_bed: Optional[str] = None,
) -> Path:
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        run=run,
        config=run.get("config", {}),
        counts=run.get("counts", {}),
        runtime=format_duration(float(run.get("runtime_seconds", 0.0))),
        prefilter=prefilter_counts,
        families_bed=families_bed,
        analysis_bed=analysis_bed,
        plots=plots,
    )

    out_path = outdir / "report.html"
    out_path.write_text(html, encoding="utf-8")
    logger.debug("Wrote %s", out_path)
    return out_path
