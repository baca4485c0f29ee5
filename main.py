#!/usr/bin/env python3
"""
HARP Data-Quality - Main Entry Point

Run this to analyze missing, incomplete and low-quality records in a SHARP
time-series table.

Usage:
    python main.py data/sharps.parquet                   # Print summary
    python main.py data/sharps.parquet -o out/           # Also save CSV tables
    python main.py data/sharps.parquet -o out/ --plots png
    python main.py data/sharps.csv --abscissa time --no-reindex
    python main.py --errors                              # Show recent errors from logs
"""

import argparse
import json
import sys
from datetime import datetime
from pathlib import Path

import config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="HARP data-quality analysis")
    parser.add_argument(
        "input",
        nargs="?",
        default=None,
        help="SHARP table (.parquet or .csv)",
    )
    parser.add_argument(
        "--output-dir", "-o",
        default=None,
        help="Directory for CSV tables, operations log and plots",
    )
    parser.add_argument(
        "--plots",
        choices=("none", "png", "html"),
        default="none",
        help="Write diagnostic plots to the output directory",
    )
    parser.add_argument(
        "--cadence",
        type=float,
        default=config.CADENCE_SECONDS,
        help=f"Nominal cadence in seconds (default: {config.CADENCE_SECONDS})",
    )
    parser.add_argument(
        "--abscissa",
        choices=("position", "time"),
        default=config.IMPUTATION_ABSCISSA,
        help="Independent variable for longitude imputation",
    )
    parser.add_argument(
        "--no-reindex",
        action="store_true",
        help="Do not insert empty rows for missing cadence slots",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the summary as JSON instead of text",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show debug logging on the console",
    )
    parser.add_argument(
        "--errors",
        action="store_true",
        help="Show recent errors from logs and exit",
    )
    return parser


def write_plots(report, output_dir: Path, fmt: str) -> list[str]:
    """Render the report's diagnostic figures into *output_dir*."""
    paths: list[str] = []
    records = report.records
    if records.empty:
        return paths
    layout = report.settings.layout
    # Longitude plot for the HARP with the most imputed values
    flags = [f"{field}_imputed" for field in layout.longitudes]
    per_entity = records.groupby(layout.entity)[flags].sum().sum(axis=1)
    worst = per_entity.idxmax()

    if fmt == "png":
        from harp_ops.plotting import plot_binned_proportions, plot_longitudes, plot_run_lengths

        paths.append(plot_binned_proportions(
            report.lifespan_table, title="Flag proportions by lifespan fraction",
            filename=str(output_dir / "lifespan_proportions.png")))
        paths.append(plot_binned_proportions(
            report.longitude_table, title="Flag proportions by maximum |longitude|",
            filename=str(output_dir / "longitude_proportions.png")))
        paths.append(plot_run_lengths(
            report.runs_before, filename=str(output_dir / "run_lengths.png")))
        paths.append(plot_longitudes(
            records, worst, layout=layout, threshold=report.settings.limb_threshold,
            filename=str(output_dir / f"harp_{worst}_longitude.png")))
    else:
        from rendering import (
            build_binned_figure, build_coverage_figure, build_longitude_figure,
            build_runs_figure, export_figure,
        )

        figures = {
            "lifespan_proportions": build_binned_figure(report.lifespan_table),
            "longitude_proportions": build_binned_figure(report.longitude_table),
            "runs_before": build_runs_figure(report.runs_before, "Completeness runs (before imputation)"),
            "coverage": build_coverage_figure(report.coverage, report.lifetime_coverage),
            f"harp_{worst}_longitude": build_longitude_figure(
                records, worst, layout=layout, threshold=report.settings.limb_threshold),
        }
        for name, fig in figures.items():
            result = export_figure(fig, str(output_dir / name), format="html")
            if result["status"] == "success":
                paths.append(result["filepath"])
            else:
                print(f"Could not export {name}: {result['message']}")
    return paths


def main(argv=None) -> int:
    """Parse arguments, run the analysis and print the summary."""
    parser = build_parser()
    args = parser.parse_args(argv)

    from analysis.logging import (
        get_current_log_path, log_error, log_run_end, print_recent_errors,
        set_run_id, setup_logging,
    )

    if args.errors:
        print_recent_errors(days=7, limit=10)
        return 0
    if not args.input:
        parser.error("an input table is required (or use --errors)")

    setup_logging(verbose=args.verbose)
    set_run_id(datetime.now().strftime("%Y%m%d_%H%M%S"))

    from analysis.summary import format_summary, summarize
    from harp_ops.errors import HarpDataError
    from harp_ops.loader import load_table
    from harp_ops.pipeline import AnalysisSettings, analyze

    settings = AnalysisSettings(
        cadence=args.cadence,
        abscissa=args.abscissa,
        reindex=not args.no_reindex,
    )

    try:
        df = load_table(args.input)
        report = analyze(df, settings)
    except (FileNotFoundError, HarpDataError, ValueError) as e:
        log_error("Analysis failed", exc=e, context={"input": args.input})
        print(f"Error: {e}")
        print(f"Details in {get_current_log_path()}")
        return 1

    summary = summarize(report)
    if args.json:
        print(json.dumps(summary, indent=2, default=str))
    else:
        print(format_summary(report))

    if args.output_dir:
        output_dir = Path(args.output_dir)
        written = report.save(output_dir)
        print(f"Saved {len(written)} files to {output_dir.resolve()}")
        if args.plots != "none":
            plots = write_plots(report, output_dir, args.plots)
            print(f"Saved {len(plots)} plots")

    log_run_end(summary)
    sys.stdout.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())
