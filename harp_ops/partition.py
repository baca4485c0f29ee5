"""
Split a record table into independent per-HARP groups.

Each group is an owned copy, sorted by time with a fresh index, so
downstream routines can process entities independently.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd

from .errors import HarpDataError, MalformedInputError
from .schema import DEFAULT_LAYOUT, TableLayout, validate_columns

logger = logging.getLogger("harp-quality")


@dataclass
class EntityFailure:
    """An entity excluded from the batch.

    Attributes:
        entity: HARP number.
        kind: "malformed" or "unimputable".
        message: Human-readable reason.
        field: Offending field, when the failure concerns one field.
    """

    entity: Any
    kind: str
    message: str
    field: str | None = None

    @classmethod
    def from_error(cls, error: HarpDataError, entity: Any = None) -> "EntityFailure":
        return cls(
            entity=error.entity if error.entity is not None else entity,
            kind=error.kind,
            message=str(error),
            field=getattr(error, "field", None),
        )

    def to_dict(self) -> dict:
        return {
            "entity": self.entity,
            "kind": self.kind,
            "message": self.message,
            "field": self.field,
        }


@dataclass
class Partition:
    """Valid entity groups plus the entities rejected during partitioning."""

    groups: dict[Any, pd.DataFrame] = field(default_factory=dict)
    failures: list[EntityFailure] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.groups)

    def __iter__(self):
        return iter(self.groups.items())


def check_time_order(group: pd.DataFrame, time_column: str, entity: Any = None) -> None:
    """Reject duplicate or non-ascending timestamps within one entity.

    Raises:
        MalformedInputError: Naming the entity and the first offending timestamp.
    """
    times = group[time_column]
    if times.isna().any():
        raise MalformedInputError(f"HARP {entity}: record(s) without a timestamp", entity=entity)
    dup = times.duplicated()
    if dup.any():
        raise MalformedInputError(
            f"HARP {entity}: duplicate timestamp {times[dup].iloc[0]}", entity=entity
        )
    if not times.is_monotonic_increasing:
        values = times.to_numpy()
        pos = int(np.flatnonzero(values[1:] < values[:-1])[0]) + 1
        raise MalformedInputError(
            f"HARP {entity}: timestamps are not in ascending order "
            f"({values[pos]} follows {values[pos - 1]})",
            entity=entity,
        )


def partition_by_entity(
    df: pd.DataFrame,
    layout: TableLayout = DEFAULT_LAYOUT,
    sort: bool = True,
) -> Partition:
    """Partition *df* into per-entity groups.

    Args:
        df: Record table holding any number of entities.
        layout: Column names.
        sort: Sort each group by time. With sort=False the input order is
            kept and out-of-order groups are rejected.

    Returns:
        Partition keyed by entity id in ascending order. Entities with
        duplicate or (unsorted) non-monotonic timestamps are listed in
        ``failures`` and left out of ``groups``. Records without an entity
        id are dropped and reported as one malformed failure with no entity.

    Raises:
        MalformedInputError: If the time or entity column is absent.
    """
    validate_columns(df, [layout.time, layout.entity])
    result = Partition()

    unassigned = df[layout.entity].isna()
    if unassigned.any():
        error = MalformedInputError(
            f"{int(unassigned.sum())} record(s) without a {layout.entity} value"
        )
        logger.warning(str(error))
        result.failures.append(EntityFailure.from_error(error))
        df = df.loc[~unassigned]
        # A blank id turns the column to float; restore integer ids
        ids = df[layout.entity]
        if pd.api.types.is_float_dtype(ids) and (ids % 1 == 0).all():
            df = df.astype({layout.entity: np.int64})

    for entity, group in df.groupby(layout.entity, sort=True):
        group = group.copy()
        if sort:
            group = group.sort_values(layout.time, kind="stable")
        group = group.reset_index(drop=True)
        try:
            check_time_order(group, layout.time, entity=entity)
        except MalformedInputError as e:
            logger.warning(str(e))
            result.failures.append(EntityFailure.from_error(e, entity))
            continue
        result.groups[entity] = group
    return result
