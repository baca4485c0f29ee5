"""
Record completeness and quality-code flags.

Every record falls in exactly one completeness class:
complete (all required fields present), incomplete (some present) or
missing (none present).
"""

from enum import Enum
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from .errors import MalformedInputError
from .schema import DEFAULT_LAYOUT, TableLayout, validate_columns


class Completeness(str, Enum):
    COMPLETE = "complete"
    INCOMPLETE = "incomplete"
    MISSING = "missing"


def classify_completeness(
    df: pd.DataFrame,
    required: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """Return a copy of *df* with completeness columns added.

    Added columns: ``n_present`` (count of present required fields),
    ``completeness`` (Completeness value), ``is_complete``, ``is_incomplete``
    and ``is_missing``. NaN and infinite values count as absent.

    Args:
        df: Record table.
        required: Fields checked for presence. Defaults to the SHARP
            parameters plus both longitude columns.

    Raises:
        MalformedInputError: If any required field is not a column.
        ValueError: If *required* is empty.
    """
    fields = list(required) if required is not None else DEFAULT_LAYOUT.required_fields
    if not fields:
        raise ValueError("classify_completeness requires at least one field")
    validate_columns(df, fields)

    out = df.copy()
    values = out[fields]
    # Non-finite values count as absent, matching what impute_series() fills
    present = values.notna() & ~values.isin([np.inf, -np.inf])
    n_present = present.sum(axis=1).astype(np.int64)
    out["n_present"] = n_present
    out["is_complete"] = n_present == len(fields)
    out["is_missing"] = n_present == 0
    out["is_incomplete"] = ~(out["is_complete"] | out["is_missing"])
    out["completeness"] = np.select(
        [out["is_complete"], out["is_missing"]],
        [Completeness.COMPLETE.value, Completeness.MISSING.value],
        default=Completeness.INCOMPLETE.value,
    )
    return out


def parse_quality(code) -> Optional[int]:
    """Parse a quality bitmask to an int.

    Strings are hexadecimal with or without a ``0x`` prefix (``"0x00000400"``,
    ``"00000000"``). Numbers are taken as-is. Missing values give None.

    Raises:
        MalformedInputError: If a string is not valid hexadecimal.
    """
    if code is None or pd.isna(code):
        return None
    if isinstance(code, (int, np.integer)):
        return int(code)
    if isinstance(code, (float, np.floating)):
        return int(code)
    text = str(code).strip()
    if not text:
        return None
    try:
        return int(text, 16)
    except ValueError as e:
        raise MalformedInputError(f"Invalid quality code {code!r}") from e


def add_quality_flags(
    df: pd.DataFrame,
    layout: TableLayout = DEFAULT_LAYOUT,
) -> pd.DataFrame:
    """Return a copy of *df* with ``quality_value`` and ``is_nominal_quality``.

    Records without a quality code (e.g. cadence slots with no observation)
    are not nominal.
    """
    validate_columns(df, [layout.quality])
    out = df.copy()
    values = [parse_quality(c) for c in out[layout.quality]]
    out["quality_value"] = pd.array(values, dtype="Int64")
    out["is_nominal_quality"] = (out["quality_value"] == 0).fillna(False).astype(bool)
    return out


def quality_bit_counts(df: pd.DataFrame) -> pd.Series:
    """Count records with each quality bit set.

    Expects the ``quality_value`` column from add_quality_flags().

    Returns:
        Series indexed by bit position (ascending), only bits that occur.
    """
    counts: dict[int, int] = {}
    for value in df["quality_value"].dropna():
        v = int(value)
        bit = 0
        while v:
            if v & 1:
                counts[bit] = counts.get(bit, 0) + 1
            v >>= 1
            bit += 1
    return pd.Series(counts, dtype=np.int64, name="records").sort_index()
