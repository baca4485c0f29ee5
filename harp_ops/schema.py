"""
Column layout of a SHARP time-series table.

The defaults come from config (T_REC, HARPNUM, LON_MIN, LON_MAX, QUALITY
plus the SHARP summary keywords). All routines accept an explicit layout so
tests and alternative datasets don't depend on config.
"""

from dataclasses import dataclass, field
from typing import Iterable

import pandas as pd

import config
from .errors import MalformedInputError


@dataclass(frozen=True)
class TableLayout:
    """Names of the columns the analysis relies on.

    Attributes:
        time: Observation timestamp column.
        entity: Entity id (HARP number) column.
        lon_min: Minimum-longitude column (degrees from central meridian).
        lon_max: Maximum-longitude column.
        quality: Quality bitmask column (hex string, all zero = nominal).
        parameters: SHARP parameter columns.
    """

    time: str = config.TIME_COLUMN
    entity: str = config.ENTITY_COLUMN
    lon_min: str = config.LON_MIN_COLUMN
    lon_max: str = config.LON_MAX_COLUMN
    quality: str = config.QUALITY_COLUMN
    parameters: tuple[str, ...] = field(
        default_factory=lambda: tuple(config.SHARP_PARAMETERS)
    )

    @property
    def longitudes(self) -> tuple[str, str]:
        return (self.lon_min, self.lon_max)

    @property
    def required_fields(self) -> list[str]:
        """Fields that must all be present for a record to count as complete."""
        return [*self.parameters, self.lon_min, self.lon_max]

    @property
    def required_columns(self) -> list[str]:
        """Every column the input table must carry."""
        return [self.time, self.entity, *self.required_fields, self.quality]


DEFAULT_LAYOUT = TableLayout()


def validate_columns(df: pd.DataFrame, required: Iterable[str]) -> None:
    """Fail fast when the table lacks any of the required columns.

    Raises:
        MalformedInputError: Listing every missing column.
    """
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise MalformedInputError(
            f"Input table is missing required column(s): {', '.join(missing)}"
        )
