"""
Matplotlib diagnostic plots for data-quality reports.

Static PNG output for batch runs; interactive figures live in
rendering.plotly_renderer.
"""

import os
from datetime import datetime

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from .imputation import imputed_flag_column
from .schema import DEFAULT_LAYOUT, TableLayout


def _save(fig, filename: str, prefix: str) -> str:
    """Save *fig* as PNG and close it. Returns the absolute path."""
    if not filename:
        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        filename = f"{prefix}_{ts}.png"
    if not filename.endswith(".png"):
        filename += ".png"

    filepath = os.path.abspath(filename)
    fig.tight_layout()
    fig.savefig(filepath, dpi=150)
    plt.close(fig)
    return filepath


def plot_binned_proportions(
    table: pd.DataFrame,
    title: str = "",
    filename: str = "",
) -> str:
    """Plot flag proportions per bin as lines, with record counts as bars.

    Args:
        table: Output of binning.binned_proportions().
        title: Plot title (defaults to the bin column name).
        filename: Output filename (auto-generated with timestamp if empty).

    Returns:
        Absolute path to the saved PNG file.
    """
    if table.empty:
        raise ValueError("No bins to plot")

    flags = [c for c in table.columns if c != "records"]
    labels = [str(iv) for iv in table.index]
    x = np.arange(len(labels))

    fig, ax = plt.subplots(figsize=(12, 5))
    counts_ax = ax.twinx()
    counts_ax.bar(x, table["records"], color="0.85", width=0.8, label="records")
    counts_ax.set_ylabel("Records")

    for flag in flags:
        ax.plot(x, table[flag], marker="o", linewidth=1.0, label=flag)

    # Proportions on top of the count bars
    ax.set_zorder(counts_ax.get_zorder() + 1)
    ax.patch.set_visible(False)

    ax.set_ylim(-0.02, 1.02)
    ax.set_ylabel("Proportion")
    ax.set_xticks(x)
    ax.set_xticklabels(labels, rotation=45, ha="right", fontsize="small")
    ax.set_xlabel(table.index.name or "bin")
    ax.set_title(title or f"Proportions by {table.index.name or 'bin'}")
    ax.legend(fontsize="small", loc="best")
    ax.grid(True, alpha=0.3)

    return _save(fig, filename, "binned")


def plot_longitudes(
    records: pd.DataFrame,
    entity=None,
    layout: TableLayout = DEFAULT_LAYOUT,
    threshold: float = 68.0,
    filename: str = "",
) -> str:
    """Plot LON_MIN/LON_MAX of one HARP, marking imputed values.

    Args:
        records: Augmented records (output of the pipeline).
        entity: HARP number to plot. Defaults to the first one in *records*.
        layout: Column names.
        threshold: Near-limb longitude drawn as dashed guides.
        filename: Output filename (auto-generated with timestamp if empty).

    Returns:
        Absolute path to the saved PNG file.
    """
    if records.empty:
        raise ValueError("No records to plot")
    if entity is None:
        entity = records[layout.entity].iloc[0]
    group = records.loc[records[layout.entity] == entity]
    if group.empty:
        raise ValueError(f"HARP {entity} not found in records")

    fig, ax = plt.subplots(figsize=(12, 5))
    times = group[layout.time]
    for field in layout.longitudes:
        ax.plot(times, group[field], linewidth=0.8, label=field)
        flag = imputed_flag_column(field)
        if flag in group.columns:
            imputed = group[flag].astype(bool)
            if imputed.any():
                ax.scatter(times[imputed], group.loc[imputed, field],
                           s=10, marker="x", color="red",
                           label=f"{field} (imputed)")

    for y in (-threshold, threshold):
        ax.axhline(y, color="0.5", linestyle="--", linewidth=0.7)

    ax.set_xlabel(layout.time)
    ax.set_ylabel("Longitude (deg)")
    ax.set_title(f"HARP {entity} longitude extent")
    ax.legend(fontsize="small", loc="best")
    ax.grid(True, alpha=0.3)
    fig.autofmt_xdate()

    return _save(fig, filename, f"harp_{entity}_longitude")


def plot_run_lengths(
    runs: pd.DataFrame,
    values: tuple = ("incomplete", "missing"),
    title: str = "",
    filename: str = "",
) -> str:
    """Histogram of run lengths for the given classification values.

    Many short runs mean scattered gaps; few long runs mean clustered gaps.

    Returns:
        Absolute path to the saved PNG file.
    """
    if runs.empty:
        raise ValueError("No runs to plot")

    fig, ax = plt.subplots(figsize=(10, 5))
    plotted = False
    for value in values:
        lengths = runs.loc[runs["value"] == value, "length"]
        if lengths.empty:
            continue
        bins = np.arange(1, int(lengths.max()) + 2) - 0.5
        ax.hist(lengths, bins=bins, alpha=0.6, label=str(value))
        plotted = True

    ax.set_xlabel("Run length (records)")
    ax.set_ylabel("Runs")
    ax.set_title(title or "Run-length distribution")
    if plotted:
        ax.legend(fontsize="small", loc="best")
        ax.set_yscale("log")
    ax.grid(True, alpha=0.3)

    return _save(fig, filename, "run_lengths")
