"""Error taxonomy for HARP data-quality processing.

Validation problems that affect the whole table are raised immediately.
Problems confined to one entity are raised by the per-entity routines and
collected by the pipeline so the rest of the batch can proceed.
"""

from __future__ import annotations

from typing import Any, Optional


class HarpDataError(ValueError):
    """Base class for data-quality processing errors.

    Attributes:
        entity: HARP number the error applies to, or None for table-level errors.
        kind: Short machine-readable category used in failure reports.
    """

    kind = "error"

    def __init__(self, message: str, entity: Optional[Any] = None) -> None:
        self.entity = entity
        super().__init__(message)


class MalformedInputError(HarpDataError):
    """Input does not satisfy the table layout (missing columns, bad timestamps)."""

    kind = "malformed"


class UnimputableError(HarpDataError):
    """A longitude field has no observed values within one entity.

    Attributes:
        field: Column name that could not be imputed.
    """

    kind = "unimputable"

    def __init__(self, field: str, entity: Optional[Any] = None) -> None:
        self.field = field
        where = f" for HARP {entity}" if entity is not None else ""
        super().__init__(
            f"Cannot impute '{field}'{where}: no observed values to fit",
            entity=entity,
        )
