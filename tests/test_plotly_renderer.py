"""
Unit tests for the Plotly report figures.

No network and no kaleido needed.
"""

import numpy as np
import pandas as pd
import plotly.graph_objects as go
import pytest

from harp_ops.binning import binned_proportions, lifespan_bins
from harp_ops.coverage import expected_grid, lifetime_grid
from harp_ops.runs import runs_to_frame, segment_runs
from harp_ops.schema import TableLayout
from rendering.plotly_renderer import (
    ColorState,
    _downsample_minmax,
    build_binned_figure,
    build_coverage_figure,
    build_longitude_figure,
    build_runs_figure,
    export_figure,
)

LAYOUT = TableLayout(parameters=())


def _make_records(n=10, harpnum=5):
    lon_min = np.linspace(-75.0, -30.0, n)
    return pd.DataFrame({
        "T_REC": pd.date_range("2014-01-01", periods=n, freq="12min"),
        "HARPNUM": harpnum,
        "LON_MIN": lon_min,
        "LON_MAX": lon_min + 10.0,
        "LON_MIN_imputed": [True] + [False] * (n - 1),
        "LON_MAX_imputed": [False] * n,
    })


def _make_runs():
    times = pd.date_range("2014-01-01", periods=6, freq="12min")
    a = runs_to_frame(segment_runs(["complete", "complete", "missing", "incomplete",
                                    "complete", "complete"]), times=times, entity=1)
    b = runs_to_frame(segment_runs(["complete"] * 6), times=times, entity=2)
    return pd.concat([a, b], ignore_index=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestColorState:
    def test_stable_assignment(self):
        cs = ColorState()
        first = cs.next_color("is_complete")
        cs.next_color("is_missing")
        assert cs.next_color("is_complete") == first
        assert cs.color_index == 2

    def test_preassigned(self):
        cs = ColorState(label_colors={"a": "#000000"})
        assert cs.next_color("a") == "#000000"
        assert cs.color_index == 0


class TestDownsample:
    def test_small_passthrough(self):
        t, v = _downsample_minmax(list(range(5)), np.arange(5.0))
        assert t == [0, 1, 2, 3, 4]

    def test_keeps_extremes(self):
        n = 20_000
        values = np.zeros(n)
        values[12_345] = 99.0
        values[777] = -99.0
        t, v = _downsample_minmax(list(range(n)), values, max_points=1000)
        assert len(v) <= 1000
        assert 99.0 in v and -99.0 in v
        assert t == sorted(t)


# ---------------------------------------------------------------------------
# Figure builders
# ---------------------------------------------------------------------------

class TestBinnedFigure:
    def test_traces(self):
        df = pd.DataFrame({"lifespan_fraction": [0.0, 0.5, 1.0],
                           "is_complete": [True, False, True]})
        table = binned_proportions(df, "lifespan_fraction", ["is_complete"], lifespan_bins(4))
        fig = build_binned_figure(table)
        names = [t.name for t in fig.data]
        assert names == ["records", "is_complete"]
        # Empty bins become gaps, not zeros
        assert None in fig.data[1].y
        assert "lifespan_fraction" in fig.layout.title.text

    def test_empty(self):
        with pytest.raises(ValueError):
            build_binned_figure(pd.DataFrame())


class TestLongitudeFigure:
    def test_imputed_markers(self):
        fig = build_longitude_figure(_make_records(), layout=LAYOUT, threshold=68.0)
        names = [t.name for t in fig.data]
        assert names == ["LON_MIN", "LON_MIN (imputed)", "LON_MAX"]
        assert len(fig.data[1].x) == 1
        assert fig.data[1].y[0] == pytest.approx(-75.0)
        assert len(fig.layout.shapes) == 2

    def test_unknown_entity(self):
        with pytest.raises(ValueError, match="HARP 6"):
            build_longitude_figure(_make_records(), entity=6, layout=LAYOUT)


class TestRunsFigure:
    def test_one_trace_per_class(self):
        fig = build_runs_figure(_make_runs())
        assert sorted(t.name for t in fig.data) == ["complete", "incomplete", "missing"]
        assert fig.layout.yaxis.type == "category"

    def test_class_colors(self):
        fig = build_runs_figure(_make_runs())
        colors = {t.name: t.line.color for t in fig.data}
        assert colors["missing"] != colors["complete"]

    def test_empty(self):
        with pytest.raises(ValueError):
            build_runs_figure(pd.DataFrame())


class TestCoverageFigure:
    def test_single_panel(self):
        coverage = expected_grid([0, 720, 2160], cadence=720)
        fig = build_coverage_figure(coverage)
        assert len(fig.data) == 1
        assert list(fig.data[0].y) == [1, 1, 0, 1]

    def test_with_lifetime(self):
        df = pd.DataFrame({"T_REC": [0, 720, 2160], "HARPNUM": [1, 1, 2]})
        fig = build_coverage_figure(expected_grid(df["T_REC"], cadence=720),
                                    lifetime_grid(df, cadence=720, layout=LAYOUT))
        assert [t.name for t in fig.data] == ["observed", "active HARPs"]

    def test_empty(self):
        with pytest.raises(ValueError):
            build_coverage_figure(expected_grid([], cadence=720))


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

class TestExport:
    def test_export_html(self, tmp_path):
        fig = build_runs_figure(_make_runs())
        result = export_figure(fig, str(tmp_path / "runs"), format="html")
        assert result["status"] == "success"
        assert result["filepath"].endswith("runs.html")
        assert result["size_bytes"] > 0

    def test_unknown_format(self, tmp_path):
        fig = build_runs_figure(_make_runs())
        result = export_figure(fig, str(tmp_path / "runs"), format="svgz")
        assert result["status"] == "error"

    def test_empty_figure(self, tmp_path):
        result = export_figure(go.Figure(), str(tmp_path / "blank.html"))
        assert result["status"] == "error"
        assert "no traces" in result["message"]
