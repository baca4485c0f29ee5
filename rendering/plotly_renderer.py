"""
Plotly figures for data-quality reports.

Stateless builders, one per report view:
- build_binned_figure(): flag proportions per bin with record counts
- build_longitude_figure(): one HARP's longitude extent with imputed points
- build_runs_figure(): completeness runs as a per-HARP timeline
- build_coverage_figure(): cadence-grid coverage and active HARP count

export_figure() writes any of them to HTML (standalone) or PNG/PDF (kaleido).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import numpy as np
import pandas as pd
import plotly.graph_objects as go
from plotly.subplots import make_subplots

from harp_ops.imputation import imputed_flag_column
from harp_ops.schema import DEFAULT_LAYOUT, TableLayout

# Above this many points a trace switches to WebGL
_GL_THRESHOLD = 100_000

# Longer traces are thinned by _downsample_minmax() before display
_MAX_DISPLAY_POINTS = 5_000

_DEFAULT_COLORS = [
    "#cc6633", "#55cc33", "#3384cc", "#a833cc",
    "#33cc98", "#cc3340", "#33cccc", "#ccbe33",
]

# Completeness classes keep one colour across figures
_CLASS_COLORS = {
    "complete": "#55cc33",
    "incomplete": "#ccbe33",
    "missing": "#cc3340",
}

_EXPORT_FORMATS = ("html", "png", "pdf")


def _downsample_minmax(times, values, max_points: int = _MAX_DISPLAY_POINTS):
    """Thin a trace to at most *max_points*, keeping each bucket's min and max.

    Returns (times, values) as lists in the original order.
    """
    values = np.asarray(values, dtype=np.float64)
    if len(values) <= max_points:
        return list(times), values.tolist()

    keep: set[int] = set()
    for idx in np.array_split(np.arange(len(values)), max_points // 2):
        chunk = values[idx]
        if not np.isfinite(chunk).any():
            keep.add(int(idx[0]))
            continue
        keep.add(int(idx[np.nanargmin(chunk)]))
        keep.add(int(idx[np.nanargmax(chunk)]))
    order = sorted(keep)
    return [times[i] for i in order], values[order].tolist()


# White background regardless of the active plotly template
_DEFAULT_LAYOUT = dict(
    paper_bgcolor="white",
    plot_bgcolor="white",
    font_color="#2a3f5f",
    autosize=False,
)

_PANEL_HEIGHT = 300  # px per subplot panel
_DEFAULT_WIDTH = 1100  # px figure width


class ColorState:
    """Tracks label-to-color assignments for stable coloring across figures."""

    def __init__(
        self,
        label_colors: dict[str, str] | None = None,
        color_index: int = 0,
    ):
        self.label_colors: dict[str, str] = dict(label_colors or {})
        self.color_index: int = color_index

    def next_color(self, label: str) -> str:
        """Return a stable colour for *label*, assigning a new one if unseen."""
        if label in self.label_colors:
            return self.label_colors[label]
        color = _DEFAULT_COLORS[self.color_index % len(_DEFAULT_COLORS)]
        self.color_index += 1
        self.label_colors[label] = color
        return color


def _scatter_cls(n_points: int):
    """Return go.Scattergl for large datasets, go.Scatter otherwise."""
    return go.Scattergl if n_points > _GL_THRESHOLD else go.Scatter


def _finite_or_none(values) -> list:
    return [float(v) if np.isfinite(v) else None for v in values]


def _time_list(times: pd.Series) -> list:
    if pd.api.types.is_datetime64_any_dtype(times):
        return [t.isoformat() for t in times]
    return times.tolist()


def build_binned_figure(
    table: pd.DataFrame,
    title: str = "",
    color_state: Optional[ColorState] = None,
) -> go.Figure:
    """Flag proportions per bin (lines) over record counts (bars)."""
    if table.empty:
        raise ValueError("No bins to plot")
    color_state = color_state or ColorState()
    labels = [str(iv) for iv in table.index]

    fig = make_subplots(specs=[[{"secondary_y": True}]])
    fig.add_trace(
        go.Bar(x=labels, y=table["records"].tolist(), name="records",
               marker_color="lightgray", opacity=0.6),
        secondary_y=True,
    )
    for flag in [c for c in table.columns if c != "records"]:
        fig.add_trace(
            go.Scatter(x=labels, y=_finite_or_none(table[flag]), name=flag,
                       mode="lines+markers",
                       line=dict(color=color_state.next_color(flag))),
            secondary_y=False,
        )
    fig.update_yaxes(title_text="Proportion", range=[0, 1.02], secondary_y=False)
    fig.update_yaxes(title_text="Records", secondary_y=True, showgrid=False)
    fig.update_xaxes(title_text=table.index.name or "bin")
    fig.update_layout(
        **_DEFAULT_LAYOUT,
        title=title or f"Proportions by {table.index.name or 'bin'}",
        width=_DEFAULT_WIDTH, height=_PANEL_HEIGHT + 150,
    )
    return fig


def build_longitude_figure(
    records: pd.DataFrame,
    entity: Any = None,
    layout: TableLayout = DEFAULT_LAYOUT,
    threshold: float = 68.0,
) -> go.Figure:
    """One HARP's LON_MIN/LON_MAX with imputed values marked."""
    if records.empty:
        raise ValueError("No records to plot")
    if entity is None:
        entity = records[layout.entity].iloc[0]
    group = records.loc[records[layout.entity] == entity]
    if group.empty:
        raise ValueError(f"HARP {entity} not found in records")

    color_state = ColorState()
    times = _time_list(group[layout.time])
    fig = go.Figure()
    for field in layout.longitudes:
        values = group[field].to_numpy(dtype=np.float64)
        t_disp, v_disp = _downsample_minmax(times, values)
        Scatter = _scatter_cls(len(v_disp))
        fig.add_trace(Scatter(x=t_disp, y=_finite_or_none(v_disp), name=field,
                              mode="lines",
                              line=dict(color=color_state.next_color(field))))
        flag = imputed_flag_column(field)
        if flag in group.columns:
            mask = group[flag].to_numpy(dtype=bool)
            if mask.any():
                fig.add_trace(go.Scatter(
                    x=[t for t, m in zip(times, mask) if m],
                    y=_finite_or_none(values[mask]),
                    name=f"{field} (imputed)", mode="markers",
                    marker=dict(symbol="x", size=6, color="red"),
                ))
    for y in (-threshold, threshold):
        fig.add_hline(y=y, line_dash="dash", line_color="gray", line_width=1)
    fig.update_layout(
        **_DEFAULT_LAYOUT,
        title=f"HARP {entity} longitude extent",
        xaxis_title=layout.time, yaxis_title="Longitude (deg)",
        width=_DEFAULT_WIDTH, height=_PANEL_HEIGHT + 150,
    )
    return fig


def build_runs_figure(runs: pd.DataFrame, title: str = "") -> go.Figure:
    """Completeness runs drawn as horizontal segments, one row per HARP.

    Expects the run table of a report (columns entity, value, start_time,
    end_time).
    """
    if runs.empty:
        raise ValueError("No runs to plot")
    fig = go.Figure()
    for value, sub in runs.groupby("value", sort=True):
        xs: list = []
        ys: list = []
        for row in sub.itertuples(index=False):
            xs.extend([row.start_time, row.end_time, None])
            ys.extend([str(row.entity), str(row.entity), None])
        fig.add_trace(go.Scatter(
            x=xs, y=ys, name=str(value), mode="lines+markers",
            line=dict(width=6, color=_CLASS_COLORS.get(str(value))),
            marker=dict(size=4),
        ))
    n_entities = runs["entity"].nunique()
    fig.update_layout(
        **_DEFAULT_LAYOUT,
        title=title or "Completeness runs",
        xaxis_title="Time", yaxis_title="HARP",
        yaxis_type="category",
        width=_DEFAULT_WIDTH,
        height=max(_PANEL_HEIGHT, 20 * n_entities + 120),
    )
    return fig


def build_coverage_figure(
    coverage: pd.DataFrame,
    lifetime: Optional[pd.DataFrame] = None,
    title: str = "",
) -> go.Figure:
    """Observed flags on the cadence grid, optionally with active HARP counts."""
    if coverage.empty:
        raise ValueError("No coverage grid to plot")
    rows = 2 if lifetime is not None and not lifetime.empty else 1
    fig = make_subplots(rows=rows, cols=1, shared_xaxes=True, vertical_spacing=0.06)

    times = _time_list(coverage["time"])
    observed = coverage["observed"].astype(int).to_numpy()
    Scatter = _scatter_cls(len(times))
    fig.add_trace(Scatter(x=times, y=observed.tolist(), name="observed",
                          mode="lines", line=dict(shape="hv", color="#3384cc")),
                  row=1, col=1)
    fig.update_yaxes(title_text="Observed", range=[-0.1, 1.1], row=1, col=1)

    if rows == 2:
        lt = _time_list(lifetime["time"])
        fig.add_trace(_scatter_cls(len(lt))(
            x=lt, y=lifetime["n_active"].tolist(), name="active HARPs",
            mode="lines", line=dict(shape="hv", color="#cc6633")),
            row=2, col=1)
        fig.update_yaxes(title_text="Active HARPs", row=2, col=1)

    fig.update_layout(
        **_DEFAULT_LAYOUT,
        title=title or "Cadence-grid coverage",
        width=_DEFAULT_WIDTH, height=_PANEL_HEIGHT * rows + 100,
    )
    return fig


def export_figure(fig: go.Figure, filepath: str, format: str = "html") -> dict:
    """Write *fig* to disk.

    HTML pages load plotly.js from the CDN. PNG and PDF go through kaleido
    (the ``export`` extra). The extension is appended when *filepath* lacks it.

    Returns:
        {"status": "success", "filepath", "size_bytes"} or
        {"status": "error", "message"}.
    """
    if format not in _EXPORT_FORMATS:
        return {"status": "error",
                "message": f"Unsupported format '{format}', expected one of {', '.join(_EXPORT_FORMATS)}"}
    if not fig.data:
        return {"status": "error", "message": "Figure has no traces; nothing to export"}

    path = Path(filepath)
    if path.suffix != f".{format}":
        path = path.with_name(f"{path.name}.{format}")
    path = path.resolve()
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        if format == "html":
            fig.write_html(str(path), include_plotlyjs="cdn")
        else:
            fig.write_image(str(path), format=format)
    except (ValueError, OSError, RuntimeError) as e:
        return {"status": "error", "message": f"Could not write {path.name}: {e}"}

    size = path.stat().st_size if path.exists() else 0
    if not size:
        return {"status": "error", "message": f"Nothing was written to {path}"}
    return {"status": "success", "filepath": str(path), "size_bytes": size}
