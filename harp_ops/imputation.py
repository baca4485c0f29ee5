"""
Longitude gap filling for one HARP.

LON_MIN and LON_MAX are filled independently in two steps:

1. Interior gaps (between the first and last observed value) are linearly
   interpolated against the abscissa (sequence position by default).
2. Leading/trailing gaps are predicted from a least-squares line fitted to
   every resolved value, observed and just-interpolated alike.

Observed values are never modified.

Known limitation: the linear model assumes the region drifts steadily across
the disk. A HARP whose observable disappears and reappears (e.g. one that
fades below the detection threshold mid-life) can receive implausible fills.
The ``*_imputed`` flag columns exist so those values can be audited.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import numpy as np
import pandas as pd

import config
from .errors import UnimputableError
from .schema import DEFAULT_LAYOUT, TableLayout, validate_columns

logger = logging.getLogger("harp-quality")


@dataclass
class SeriesImputation:
    """Result of filling one series.

    Attributes:
        values: Filled float64 array, same length as the input.
        imputed: True where a value was filled in.
        interpolated: True where the value came from interior interpolation.
        extrapolated: True where the value came from the regression fallback.
        slope: Fitted slope when the regression ran, else None.
        intercept: Fitted intercept when the regression ran, else None.
    """

    values: np.ndarray
    imputed: np.ndarray
    interpolated: np.ndarray
    extrapolated: np.ndarray
    slope: Optional[float] = None
    intercept: Optional[float] = None


def imputed_flag_column(field: str) -> str:
    return f"{field}_imputed"


def impute_series(
    values: Sequence[float],
    abscissa: Optional[Sequence[float]] = None,
    field: str = "value",
    entity: Any = None,
) -> SeriesImputation:
    """Fill missing values by interpolation, then linear-regression fallback.

    Args:
        values: 1D series. NaN and infinite entries are missing.
        abscissa: Independent variable, ascending, same length as values.
            Defaults to sequence position 0..n-1.
        field: Field name, used in the error message.
        entity: Entity id, used in the error message.

    Returns:
        SeriesImputation with filled values and per-position masks.

    Raises:
        UnimputableError: If the series has no observed value.
        ValueError: If abscissa and values differ in length.
    """
    y = np.asarray(values, dtype=np.float64).copy()
    n = y.size
    if abscissa is None:
        x = np.arange(n, dtype=np.float64)
    else:
        x = np.asarray(abscissa, dtype=np.float64)
        if x.shape != y.shape:
            raise ValueError(
                f"abscissa shape {x.shape} does not match values shape {y.shape}"
            )

    empty = np.zeros(n, dtype=bool)
    if n == 0:
        return SeriesImputation(y, empty, empty.copy(), empty.copy())

    observed = np.isfinite(y)
    if not observed.any():
        raise UnimputableError(field, entity=entity)

    obs_idx = np.flatnonzero(observed)
    interpolated = ~observed
    interpolated[: obs_idx[0]] = False
    interpolated[obs_idx[-1] + 1:] = False
    if interpolated.any():
        y[interpolated] = np.interp(x[interpolated], x[observed], y[observed])

    extrapolated = ~np.isfinite(y)
    slope = intercept = None
    if extrapolated.any():
        # Fit on observed + interpolated points, not observed only
        resolved = ~extrapolated
        if resolved.sum() == 1:
            slope, intercept = 0.0, float(y[resolved][0])
        else:
            slope, intercept = (float(c) for c in np.polyfit(x[resolved], y[resolved], 1))
        y[extrapolated] = slope * x[extrapolated] + intercept

    return SeriesImputation(
        values=y,
        imputed=interpolated | extrapolated,
        interpolated=interpolated,
        extrapolated=extrapolated,
        slope=slope,
        intercept=intercept,
    )


def _abscissa_for(group: pd.DataFrame, mode: str, time_column: str) -> Optional[np.ndarray]:
    if mode == "position":
        return None
    if mode != "time":
        raise ValueError(f"Unknown abscissa '{mode}'. Use 'position' or 'time'.")
    t = group[time_column]
    if pd.api.types.is_datetime64_any_dtype(t):
        return ((t - t.iloc[0]) / pd.Timedelta(seconds=1)).to_numpy(dtype=np.float64)
    return t.to_numpy(dtype=np.float64)


def impute_longitudes(
    group: pd.DataFrame,
    layout: TableLayout = DEFAULT_LAYOUT,
    abscissa: str = config.IMPUTATION_ABSCISSA,
    entity: Any = None,
) -> pd.DataFrame:
    """Fill LON_MIN and LON_MAX for one entity's time-ordered records.

    Args:
        group: Records of a single entity, ascending in time.
        layout: Column names.
        abscissa: "position" (record index) or "time" (seconds since the
            first record, or the raw value for numeric time columns).
        entity: Entity id for error reporting. Defaults to the group's
            entity column value.

    Returns:
        A new DataFrame with both longitude columns filled and boolean
        ``LON_MIN_imputed`` / ``LON_MAX_imputed`` columns added.

    Raises:
        UnimputableError: If either field has no observed value.
        MalformedInputError: If the longitude columns are absent.
    """
    validate_columns(group, layout.longitudes)
    if entity is None and layout.entity in group.columns and len(group):
        entity = group[layout.entity].iloc[0]

    x = _abscissa_for(group, abscissa, layout.time)
    out = group.copy()
    for field in layout.longitudes:
        result = impute_series(out[field].to_numpy(), x, field=field, entity=entity)
        out[field] = result.values
        out[imputed_flag_column(field)] = result.imputed
        if result.imputed.any():
            logger.debug(
                f"HARP {entity} {field}: {int(result.interpolated.sum())} interpolated, "
                f"{int(result.extrapolated.sum())} extrapolated"
            )
    return out


def add_longitude_flags(
    df: pd.DataFrame,
    threshold: float = config.LIMB_LONGITUDE_DEG,
    layout: TableLayout = DEFAULT_LAYOUT,
) -> pd.DataFrame:
    """Return a copy of *df* with near-limb longitude flags.

    Added columns: ``lon_extreme_low`` (LON_MIN < -threshold),
    ``lon_extreme_high`` (LON_MAX > threshold) and ``max_abs_lon``
    (the larger of |LON_MIN| and |LON_MAX|).
    """
    validate_columns(df, layout.longitudes)
    out = df.copy()
    lon_min = out[layout.lon_min]
    lon_max = out[layout.lon_max]
    out["lon_extreme_low"] = lon_min < -threshold
    out["lon_extreme_high"] = lon_max > threshold
    out["max_abs_lon"] = np.fmax(lon_min.abs(), lon_max.abs())
    return out
