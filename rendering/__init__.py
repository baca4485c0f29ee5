"""Interactive rendering of data-quality reports."""

from .plotly_renderer import (
    ColorState,
    build_binned_figure,
    build_coverage_figure,
    build_longitude_figure,
    build_runs_figure,
    export_figure,
)

__all__ = [
    "ColorState",
    "build_binned_figure",
    "build_coverage_figure",
    "build_longitude_figure",
    "build_runs_figure",
    "export_figure",
]
