"""
Run-length segmentation of classification sequences.

A run is a maximal span of consecutive equal values. Runs partition the
input exactly: concatenating them in order rebuilds the sequence.
"""

from dataclasses import dataclass
from typing import Any, Hashable, Optional, Sequence

import numpy as np
import pandas as pd


@dataclass(frozen=True)
class Run:
    """A maximal span of equal values.

    Attributes:
        value: The classification shared by every member.
        start: Index of the first member.
        end: Index of the last member (inclusive).
        length: Number of members.
    """

    value: Any
    start: int
    end: int
    length: int


def segment_runs(values: Sequence) -> list[Run]:
    """Partition a sequence into maximal constant-value runs.

    Single forward scan; a new run starts whenever the current value differs
    from the previous one. Equality is the only split criterion.

    Args:
        values: Ordered sequence of equality-comparable values
            (list, numpy array or pandas Series).

    Returns:
        Runs in sequence order. Empty input gives an empty list.
    """
    if isinstance(values, pd.Series):
        values = values.tolist()
    elif isinstance(values, np.ndarray):
        values = values.tolist()

    n = len(values)
    if n == 0:
        return []

    runs: list[Run] = []
    start = 0
    prev = values[0]
    for i in range(1, n):
        value = values[i]
        if value != prev:
            runs.append(Run(value=prev, start=start, end=i - 1, length=i - start))
            start = i
            prev = value
    runs.append(Run(value=prev, start=start, end=n - 1, length=n - start))
    return runs


def expand_runs(runs: Sequence[Run]) -> list:
    """Rebuild the original sequence from its runs."""
    out: list = []
    for run in runs:
        out.extend([run.value] * run.length)
    return out


def runs_to_frame(
    runs: Sequence[Run],
    times: Optional[Sequence] = None,
    entity: Optional[Hashable] = None,
) -> pd.DataFrame:
    """Tabulate runs, optionally annotated with timestamps.

    The time columns are a projection: the timestamps of the records at each
    run's start and end index.

    Args:
        runs: Output of segment_runs().
        times: Timestamps aligned with the segmented sequence.
        entity: Entity id to stamp on every row (column ``entity``).

    Returns:
        DataFrame with columns value, start, end, length and, when times are
        given, start_time, end_time and duration (end_time - start_time).
    """
    frame = pd.DataFrame(
        {
            "value": [r.value for r in runs],
            "start": np.array([r.start for r in runs], dtype=np.int64),
            "end": np.array([r.end for r in runs], dtype=np.int64),
            "length": np.array([r.length for r in runs], dtype=np.int64),
        }
    )
    if times is not None:
        t = pd.Series(times).reset_index(drop=True)
        frame["start_time"] = t.iloc[frame["start"].to_numpy()].to_numpy()
        frame["end_time"] = t.iloc[frame["end"].to_numpy()].to_numpy()
        frame["duration"] = frame["end_time"] - frame["start_time"]
    if entity is not None:
        frame.insert(0, "entity", entity)
    return frame


def run_length_stats(runs_frame: pd.DataFrame, value: Any) -> dict:
    """Summarize the lengths of runs carrying one classification value.

    Returns:
        Dict with count, total, mean, median and max run length. Lengths are
        0 (mean/median NaN) when no run has the value.
    """
    if runs_frame.empty:
        lengths = pd.Series(dtype=np.int64)
    else:
        lengths = runs_frame.loc[runs_frame["value"] == value, "length"]
    if lengths.empty:
        return {"count": 0, "total": 0, "mean": float("nan"),
                "median": float("nan"), "max": 0}
    return {
        "count": int(lengths.size),
        "total": int(lengths.sum()),
        "mean": float(lengths.mean()),
        "median": float(lengths.median()),
        "max": int(lengths.max()),
    }
