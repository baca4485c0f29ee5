"""
Binned-proportion summaries.

Used to see how a boolean flag (completeness, nominal quality, near-limb)
varies with an independent variable such as the position within a HARP's
lifespan or its maximum absolute longitude.
"""

from typing import Sequence, Union

import numpy as np
import pandas as pd

import config
from .schema import DEFAULT_LAYOUT, TableLayout, validate_columns


def lifespan_fraction(n: int) -> np.ndarray:
    """Linearly spaced position within a lifespan: 0 at first record, 1 at last.

    A single record gets 0.0.
    """
    if n <= 0:
        return np.empty(0, dtype=np.float64)
    if n == 1:
        return np.zeros(1, dtype=np.float64)
    return np.linspace(0.0, 1.0, n)


def add_lifespan_fraction(
    df: pd.DataFrame,
    layout: TableLayout = DEFAULT_LAYOUT,
) -> pd.DataFrame:
    """Return a copy of *df* with a per-entity ``lifespan_fraction`` column.

    Records are assumed to be time-ordered within each entity.
    """
    validate_columns(df, [layout.entity])
    out = df.copy()
    counts = out.groupby(layout.entity, sort=False)[layout.entity].transform("size")
    position = out.groupby(layout.entity, sort=False).cumcount()
    denom = (counts - 1).where(counts > 1)
    out["lifespan_fraction"] = (position / denom).fillna(0.0).astype(np.float64)
    return out


def lifespan_bins(n_bins: int = config.LIFESPAN_BINS) -> np.ndarray:
    """Equal-width edges covering [0, 1]."""
    if n_bins < 1:
        raise ValueError(f"n_bins must be >= 1, got {n_bins}")
    return np.linspace(0.0, 1.0, n_bins + 1)


def longitude_bins(width: float = config.LONGITUDE_BIN_WIDTH, limit: float = 90.0) -> np.ndarray:
    """Edges from 0 to *limit* degrees in steps of *width* (last edge clipped)."""
    if width <= 0:
        raise ValueError(f"width must be > 0, got {width}")
    edges = np.arange(0.0, limit, width)
    return np.append(edges, limit)


def binned_proportions(
    df: pd.DataFrame,
    by: str,
    flags: Sequence[str],
    bins: Union[int, Sequence[float]],
) -> pd.DataFrame:
    """Proportion of True for each flag within bins of an independent variable.

    Args:
        df: Record table.
        by: Independent variable column (e.g. "lifespan_fraction", "max_abs_lon").
        flags: Boolean columns to average.
        bins: Number of equal-width bins, or explicit edges. The lowest edge
            is included.

    Returns:
        DataFrame indexed by bin interval (all bins, empty ones included)
        with a ``records`` count column and one proportion column per flag.
        Records where *by* is missing are ignored.
    """
    validate_columns(df, [by, *flags])
    data = df.loc[df[by].notna(), [by, *flags]]
    binned = pd.cut(data[by], bins=bins, include_lowest=True)
    grouped = data[list(flags)].astype(float).groupby(binned, observed=False)
    out = grouped.mean()
    out.insert(0, "records", grouped.size().astype(np.int64))
    out.index.name = f"{by}_bin"
    return out
