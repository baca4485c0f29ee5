"""
Coverage of the nominal cadence grid.

The SHARP series are sampled at a fixed cadence (720 s). These helpers lay
the observed timestamps onto the gap-free grid from the first to the last
observation and flag which grid points are covered, either by an actual
observation or by some HARP's lifetime.

Time may be datetime-like (cadence in seconds) or plain numbers in the same
units as the cadence. Observations that are not exactly on the grid are
assigned to the nearest grid point.
"""

import logging
from typing import Any, Sequence

import numpy as np
import pandas as pd

import config
from .errors import MalformedInputError
from .runs import runs_to_frame, segment_runs
from .schema import DEFAULT_LAYOUT, TableLayout, validate_columns

logger = logging.getLogger("harp-quality")


def _grid_offsets(times: pd.Series, cadence: float) -> tuple[np.ndarray, Any, int]:
    """Map each time to its grid index relative to the earliest time.

    Returns:
        Tuple of (offsets, grid_times, count) where grid_times holds every
        grid point from the first to the last time.
    """
    if cadence <= 0:
        raise ValueError(f"cadence must be > 0, got {cadence}")

    t0 = times.min()
    if pd.api.types.is_datetime64_any_dtype(times):
        step = pd.Timedelta(seconds=cadence)
        offsets = np.rint((times - t0) / step).to_numpy().astype(np.int64)
        count = int(offsets.max()) + 1
        grid = pd.date_range(t0, periods=count, freq=step)
    else:
        offsets = np.rint((times.to_numpy() - t0) / cadence).astype(np.int64)
        count = int(offsets.max()) + 1
        grid = t0 + np.arange(count) * cadence
    return offsets, grid, count


def _empty_grid(column: str) -> pd.DataFrame:
    return pd.DataFrame({"time": pd.Series(dtype="datetime64[ns]"),
                         column: pd.Series(dtype=bool)})


def expected_grid(timestamps: Sequence, cadence: float = config.CADENCE_SECONDS) -> pd.DataFrame:
    """Build the expected cadence grid and flag observed points.

    Args:
        timestamps: Observed timestamps across all entities (duplicates and
            NaT are ignored).
        cadence: Nominal sampling period (seconds for datetimes).

    Returns:
        DataFrame with columns ``time`` (every grid point, ascending) and
        ``observed`` (True where some record has that timestamp).
    """
    times = pd.Series(timestamps).dropna().drop_duplicates()
    if times.empty:
        return _empty_grid("observed")

    offsets, grid, count = _grid_offsets(times, cadence)
    observed = np.zeros(count, dtype=bool)
    observed[offsets] = True
    return pd.DataFrame({"time": grid, "observed": observed})


def lifetime_grid(
    df: pd.DataFrame,
    cadence: float = config.CADENCE_SECONDS,
    layout: TableLayout = DEFAULT_LAYOUT,
) -> pd.DataFrame:
    """Flag grid points that fall within at least one entity's lifetime.

    A lifetime spans an entity's first to last timestamp inclusive.

    Returns:
        DataFrame with columns ``time``, ``n_active`` (number of entities
        alive at that point) and ``in_lifetime``.
    """
    validate_columns(df, [layout.time, layout.entity])
    times = df[layout.time].dropna()
    if times.empty:
        out = _empty_grid("in_lifetime")
        out.insert(1, "n_active", pd.Series(dtype=np.int64))
        return out

    offsets, grid, count = _grid_offsets(times, cadence)
    frame = pd.DataFrame({"entity": df.loc[times.index, layout.entity].to_numpy(),
                          "offset": offsets})
    spans = frame.groupby("entity")["offset"].agg(["min", "max"])

    delta = np.zeros(count + 1, dtype=np.int64)
    np.add.at(delta, spans["min"].to_numpy(), 1)
    np.add.at(delta, spans["max"].to_numpy() + 1, -1)
    n_active = np.cumsum(delta[:-1])
    return pd.DataFrame({"time": grid, "n_active": n_active, "in_lifetime": n_active > 0})


def usable_ranges(
    grid: pd.DataFrame,
    column: str = "observed",
    min_length: int = config.MIN_USABLE_RUN,
) -> pd.DataFrame:
    """Contiguous, fully covered stretches of a coverage grid.

    Args:
        grid: Output of expected_grid() or lifetime_grid().
        column: Boolean coverage column to segment.
        min_length: Shortest run (in grid points) to keep.

    Returns:
        DataFrame of runs with start, end, length, start_time, end_time and
        duration, covering only runs where *column* is True.
    """
    runs = segment_runs(grid[column].to_numpy())
    frame = runs_to_frame(runs, times=grid["time"])
    keep = frame["value"].eq(True) & (frame["length"] >= min_length)
    return frame.loc[keep].drop(columns="value").reset_index(drop=True)


def reindex_to_cadence(
    group: pd.DataFrame,
    cadence: float = config.CADENCE_SECONDS,
    layout: TableLayout = DEFAULT_LAYOUT,
) -> pd.DataFrame:
    """Insert empty rows for cadence slots missing inside one entity's lifetime.

    Inserted rows carry only the timestamp and entity id; every other field
    is missing, so they classify as "missing" records. Observed rows keep
    their original timestamps even when they sit off the grid.

    Raises:
        MalformedInputError: If two records fall on the same grid slot.
    """
    validate_columns(group, [layout.time])
    if group.empty:
        return group.copy()

    entity = group[layout.entity].iloc[0] if layout.entity in group.columns else None
    offsets, grid, count = _grid_offsets(group[layout.time], cadence)
    if len(np.unique(offsets)) != len(offsets):
        raise MalformedInputError(
            f"HARP {entity}: several records fall on the same {cadence}s cadence slot",
            entity=entity,
        )

    out = group.set_index(pd.Index(offsets)).reindex(np.arange(count))
    # Observed rows keep their own timestamps; only inserted slots get grid times
    grid_times = pd.Series(grid, index=out.index)
    out[layout.time] = out[layout.time].fillna(grid_times).astype(group[layout.time].dtype)
    if layout.entity in out.columns:
        out[layout.entity] = entity
        out[layout.entity] = out[layout.entity].astype(group[layout.entity].dtype)
    added = count - len(group)
    if added:
        logger.debug(f"HARP {entity}: inserted {added} empty cadence slot(s)")
    return out.reset_index(drop=True)
