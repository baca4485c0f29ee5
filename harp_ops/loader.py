"""
Table loader: reads a pre-processed SHARP table into a pandas DataFrame.

Supports Parquet (via pyarrow) and CSV. T_REC values in the JSOC form
``YYYY.MM.DD_HH:MM:SS_TAI`` are parsed to naive datetimes (the TAI offset
is ignored, all records share it).
"""

import logging
from pathlib import Path
from typing import Union

import pandas as pd

from .errors import MalformedInputError
from .schema import DEFAULT_LAYOUT, TableLayout

logger = logging.getLogger("harp-quality")

_JSOC_FORMAT = "%Y.%m.%d_%H:%M:%S"


def parse_trec(values: pd.Series) -> pd.Series:
    """Convert a T_REC column to datetime64.

    Already-datetime and numeric columns are returned unchanged.

    Raises:
        MalformedInputError: If a string value cannot be parsed.
    """
    if pd.api.types.is_datetime64_any_dtype(values) or pd.api.types.is_numeric_dtype(values):
        return values
    text = values.astype("string").str.strip()
    try:
        if text.dropna().str.endswith("_TAI").all():
            return pd.to_datetime(text.str.removesuffix("_TAI"), format=_JSOC_FORMAT)
        return pd.to_datetime(text)
    except (ValueError, TypeError) as e:
        raise MalformedInputError(f"Unparseable timestamp in column '{values.name}': {e}") from e


def load_table(path: Union[str, Path], layout: TableLayout = DEFAULT_LAYOUT) -> pd.DataFrame:
    """Read a SHARP table from Parquet or CSV.

    Args:
        path: ``.parquet`` / ``.pq`` or ``.csv`` file.
        layout: Column names; the time column is parsed with parse_trec()
            and the quality column is kept as strings.

    Returns:
        DataFrame with one row per record.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file extension is not supported.
        MalformedInputError: If the time column cannot be parsed.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"No such table: {path}")

    suffix = path.suffix.lower()
    if suffix in (".parquet", ".pq"):
        df = pd.read_parquet(path)
    elif suffix == ".csv":
        df = pd.read_csv(path, dtype={layout.quality: "string"})
    else:
        raise ValueError(f"Unsupported table format '{suffix}'. Use .parquet or .csv.")

    if layout.time in df.columns:
        df[layout.time] = parse_trec(df[layout.time])
    logger.info(f"Loaded {len(df)} records from {path.name}")
    return df
