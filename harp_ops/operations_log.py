"""
Provenance log of pipeline steps.

analyze() appends one entry per table-producing step (validation,
partitioning, each per-HARP transform, grid construction), so a saved
report can say which settings produced it and how row counts changed:

    {"id": "op_004", "step": "impute_longitudes", "status": "success",
     "entity": 377, "rows_in": 112, "rows_out": 112, "args": {...}, ...}

Failed per-HARP steps are kept too, with status "error" and the message.
QualityReport.save() writes the entries to ``operations.json``.
"""

import json
import re
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import numpy as np

_ID_RE = re.compile(r"^op_(\d+)$")


def _jsonable(value: Any) -> Any:
    """Plain-Python form of *value* for json.dump (numpy scalars, tuples, paths)."""
    if isinstance(value, np.generic):
        return _jsonable(value.item())
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    return str(value)


def _highest_id(entries: list[dict]) -> int:
    numbers = [int(m.group(1)) for m in (_ID_RE.match(str(e.get("id", ""))) for e in entries) if m]
    return max(numbers, default=0)


class OperationsLog:
    """Append-only list of step entries, safe to share between threads."""

    def __init__(self):
        self._entries: list[dict] = []
        self._next_id = 1
        self._lock = threading.Lock()

    def record(
        self,
        step: str,
        args: dict[str, Any],
        rows_in: Optional[int] = None,
        rows_out: Optional[int] = None,
        entity: Any = None,
        status: str = "success",
        error: Optional[str] = None,
    ) -> dict:
        """Add one step entry.

        Args:
            step: Pipeline step name, e.g. "reindex_to_cadence".
            args: Settings the step ran with.
            rows_in: Row count handed to the step.
            rows_out: Row count it returned (None when it failed).
            entity: HARP number for per-entity steps.
            status: "success" or "error".
            error: Failure message when status is "error".

        Returns:
            The stored entry.
        """
        entry = {
            "step": step,
            "status": status,
            "entity": _jsonable(entity),
            "rows_in": rows_in,
            "rows_out": rows_out,
            "args": {key: _jsonable(val) for key, val in args.items()},
            "error": error,
        }
        with self._lock:
            entry = {
                "id": f"op_{self._next_id:03d}",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                **entry,
            }
            self._next_id += 1
            self._entries.append(entry)
        return entry

    def get_records(self) -> list[dict]:
        with self._lock:
            return self._entries.copy()

    def errors(self) -> list[dict]:
        """Entries of steps that failed."""
        return [e for e in self.get_records() if e["status"] == "error"]

    def save_to_file(self, path: Path) -> None:
        Path(path).write_text(json.dumps(self.get_records(), indent=2), encoding="utf-8")

    def load_from_records(self, records: list[dict]) -> int:
        """Replace the entries with *records*; new ids continue after the highest op_N.

        Returns:
            How many entries were loaded.
        """
        with self._lock:
            self._entries = list(records)
            self._next_id = _highest_id(self._entries) + 1
            return len(self._entries)

    def load_from_file(self, path: Path) -> int:
        return self.load_from_records(json.loads(Path(path).read_text(encoding="utf-8")))

    def clear(self) -> None:
        with self._lock:
            self._entries = []
            self._next_id = 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


_log: Optional[OperationsLog] = None


def get_operations_log() -> OperationsLog:
    """Process-wide log used when analyze() is not given one."""
    global _log
    if _log is None:
        _log = OperationsLog()
    return _log


def reset_operations_log() -> None:
    global _log
    _log = None


def start_operations_log() -> OperationsLog:
    """Replace the process-wide log with an empty one for a new run and return it."""
    global _log
    _log = OperationsLog()
    return _log
