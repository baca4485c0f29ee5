"""
Descriptive statistics and plain-text narrative for a QualityReport.
"""

from harp_ops.completeness import Completeness, quality_bit_counts
from harp_ops.imputation import imputed_flag_column
from harp_ops.pipeline import QualityReport
from harp_ops.runs import run_length_stats

_CLASSES = [c.value for c in Completeness]


def _class_counts(records, column: str) -> dict[str, int]:
    if records.empty or column not in records.columns:
        return {c: 0 for c in _CLASSES}
    counts = records[column].value_counts()
    return {c: int(counts.get(c, 0)) for c in _CLASSES}


def _clustering(runs) -> dict:
    """Run-length stats of the non-complete classes.

    ``runs_per_record`` is 1.0 when every gap record is isolated and tends to
    0 when gaps come in long blocks.
    """
    out = {}
    for value in (Completeness.INCOMPLETE.value, Completeness.MISSING.value):
        stats = run_length_stats(runs, value)
        stats["runs_per_record"] = (stats["count"] / stats["total"]) if stats["total"] else None
        out[value] = stats
    return out


def summarize(report: QualityReport) -> dict:
    """Collect the headline numbers of a report into a JSON-friendly dict."""
    records = report.records
    layout = report.settings.layout
    n = len(records)

    failures_by_kind: dict[str, int] = {}
    for f in report.failures:
        failures_by_kind[f.kind] = failures_by_kind.get(f.kind, 0) + 1

    summary = {
        "entities": len(report.entities),
        "records": n,
        "skipped": len(report.failures),
        "failures_by_kind": failures_by_kind,
        "completeness_before": _class_counts(records, "completeness_before"),
        "completeness_after": _class_counts(records, "completeness"),
        "clustering_before": _clustering(report.runs_before),
        "clustering_after": _clustering(report.runs_after),
    }

    if n:
        summary["nominal_quality_fraction"] = float(records["is_nominal_quality"].mean())
        summary["quality_bits"] = {int(k): int(v) for k, v in quality_bit_counts(records).items()}
        summary["imputed"] = {
            field: int(records[imputed_flag_column(field)].sum())
            for field in layout.longitudes
        }
        summary["lon_extreme_low"] = int(records["lon_extreme_low"].sum())
        summary["lon_extreme_high"] = int(records["lon_extreme_high"].sum())
    else:
        summary["nominal_quality_fraction"] = None
        summary["quality_bits"] = {}
        summary["imputed"] = {field: 0 for field in layout.longitudes}
        summary["lon_extreme_low"] = 0
        summary["lon_extreme_high"] = 0

    grid = report.coverage
    summary["coverage"] = {
        "grid_points": len(grid),
        "observed_fraction": float(grid["observed"].mean()) if len(grid) else None,
        "usable_ranges": len(report.usable_ranges),
        "longest_usable_range": int(report.usable_ranges["length"].max())
        if len(report.usable_ranges) else 0,
        "lifetime_ranges": len(report.lifetime_ranges),
    }
    return summary


def _pct(part: int, whole: int) -> str:
    return f"{100.0 * part / whole:.1f}%" if whole else "n/a"


def format_summary(report: QualityReport) -> str:
    """Render the report summary as plain text for the console."""
    s = summarize(report)
    n = s["records"]
    lines = [
        "=" * 60,
        "  HARP data-quality summary",
        "=" * 60,
        f"HARPs analyzed: {s['entities']}   records: {n:,}   skipped: {s['skipped']}",
    ]
    for kind, count in sorted(s["failures_by_kind"].items()):
        lines.append(f"  skipped ({kind}): {count}")

    lines.append("")
    lines.append("Completeness        before imputation    after imputation")
    for c in _CLASSES:
        b = s["completeness_before"][c]
        a = s["completeness_after"][c]
        lines.append(f"  {c:<16} {b:>9,} ({_pct(b, n):>6})  {a:>9,} ({_pct(a, n):>6})")

    lines.append("")
    lines.append("Gap clustering (before imputation)")
    for value, stats in s["clustering_before"].items():
        if not stats["count"]:
            lines.append(f"  {value}: no runs")
            continue
        lines.append(
            f"  {value}: {stats['count']} runs, mean length {stats['mean']:.1f}, "
            f"max {stats['max']}, runs/record {stats['runs_per_record']:.2f}"
        )

    if n:
        lines.append("")
        lines.append(f"Nominal quality: {100.0 * s['nominal_quality_fraction']:.1f}% of records")
        if s["quality_bits"]:
            bits = ", ".join(f"bit {b}: {c}" for b, c in s["quality_bits"].items())
            lines.append(f"  quality bits set: {bits}")
        imputed = ", ".join(f"{k}: {v}" for k, v in s["imputed"].items())
        lines.append(f"Imputed longitudes: {imputed}")
        lines.append(
            f"Near-limb records: {s['lon_extreme_low']} east (LON_MIN), "
            f"{s['lon_extreme_high']} west (LON_MAX)"
        )

    cov = s["coverage"]
    lines.append("")
    if cov["grid_points"]:
        lines.append(
            f"Cadence grid: {cov['grid_points']:,} points, "
            f"{100.0 * cov['observed_fraction']:.1f}% observed"
        )
        lines.append(
            f"  usable ranges: {cov['usable_ranges']} "
            f"(longest {cov['longest_usable_range']} points), "
            f"lifetime-covered ranges: {cov['lifetime_ranges']}"
        )
    else:
        lines.append("Cadence grid: empty")
    lines.append("-" * 60)
    return "\n".join(lines)
