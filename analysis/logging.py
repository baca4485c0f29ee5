"""
Logging for harp-quality runs.

Every analysis run writes its own DEBUG-level file, <data_dir>/logs/harp_<ts>.log,
one line per record:

    2026-10-17 09:30:12 | WARNING  | harp-quality | 20261017_093011 | Skipping HARP 377: ...

The console shows WARNING and above (DEBUG with --verbose). The
``console_format`` config key picks its layout: "simple" (default, bare
messages with a [LEVEL] marker on problems), "full" (same as the file) or
"clean" (console silenced, file logging unchanged).

Library modules log through ``logging.getLogger("harp-quality")`` and never
configure handlers themselves. The file layout is also what
get_recent_errors() reads back for ``main.py --errors``.
"""

import logging
import re
import sys
import traceback
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterator, Optional

import config

LOGGER_NAME = "harp-quality"
LOG_DIR = config.get_data_dir() / "logs"

_FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(run_id)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_SEP = " | "
_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_PROBLEM_LEVELS = ("WARNING", "ERROR", "CRITICAL")
_HARP_RE = re.compile(r"HARP (\d+)")

_run_filter: Optional["_RunFilter"] = None
_current_log_file: Optional[Path] = None


def tagged(tag: str) -> dict:
    """``extra`` for records that carry a category: ``logger.error(msg, extra=tagged("error"))``."""
    return {"log_tag": tag}


class _RunFilter(logging.Filter):
    """Stamps the current run id (and an empty default log_tag) on each record."""

    def __init__(self, run_id: str = "") -> None:
        super().__init__()
        self.run_id = run_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = self.run_id or "-"
        record.log_tag = getattr(record, "log_tag", "")
        return True


class _ConsoleFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if record.levelno < logging.WARNING:
            return f"  {message}"
        return f"  [{record.levelname}] {message}"


def _console_handler(verbose: bool) -> Optional[logging.Handler]:
    style = config.get("console_format", "simple")
    if style == "clean":
        return None
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    if style == "full":
        handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT))
    else:
        handler.setFormatter(_ConsoleFormatter())
    return handler


def setup_logging(verbose: bool = False) -> logging.Logger:
    """(Re)configure the project logger for one analysis run.

    Args:
        verbose: Echo DEBUG records to the console instead of WARNING+ only.

    Returns:
        The "harp-quality" logger.
    """
    global _run_filter, _current_log_file
    LOG_DIR.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    # One filter per process so a run id set before setup survives re-init
    if _run_filter is None:
        _run_filter = _RunFilter()
    if _run_filter not in logger.filters:
        logger.addFilter(_run_filter)

    _current_log_file = LOG_DIR / f"harp_{datetime.now():%Y%m%d_%H%M%S}.log"
    file_handler = logging.FileHandler(_current_log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT))
    logger.addHandler(file_handler)

    console = _console_handler(verbose)
    if console is not None:
        logger.addHandler(console)

    logger.info("=" * 60)
    logger.info(f"Run started, logging to {_current_log_file}")
    return logger


def get_logger() -> logging.Logger:
    """Return the project logger, configuring it with defaults on first use."""
    logger = logging.getLogger(LOGGER_NAME)
    return logger if logger.handlers else setup_logging()


def set_run_id(run_id: str) -> None:
    """Tag every subsequent record with *run_id* (e.g. '20261017_093011')."""
    global _run_filter
    if _run_filter is None:
        _run_filter = _RunFilter(run_id)
    else:
        _run_filter.run_id = run_id


def log_error(
    message: str,
    exc: Optional[BaseException] = None,
    context: Optional[dict] = None,
) -> None:
    """Log *message* at ERROR followed by indented context and traceback lines.

    The indented lines are returned as ``details`` by get_recent_errors().

    Args:
        message: One-line description, e.g. "Analysis failed".
        exc: Exception whose type, message and traceback are appended.
        context: Extra key/value pairs (input path, settings, ...).
    """
    lines = [message]
    for key, value in (context or {}).items():
        lines.append(f"  {key}: {value}")
    if exc is not None:
        lines.append(f"  {type(exc).__name__}: {exc}")
        for chunk in traceback.format_exception(type(exc), exc, exc.__traceback__):
            lines.extend(f"  {line}" for line in chunk.rstrip().splitlines())
    get_logger().error("\n".join(lines), extra=tagged("error"))


def log_run_end(summary: dict) -> None:
    """Close the run's log section with the headline counts from summarize()."""
    logger = get_logger()
    logger.info(
        f"Run ended. HARPs: {summary.get('entities', 0):,}, "
        f"records: {summary.get('records', 0):,}, "
        f"skipped: {summary.get('skipped', 0):,}"
    )
    logger.info("=" * 60)


def _log_files() -> list[Path]:
    """Run log files, newest first (the timestamped names sort chronologically)."""
    return sorted(LOG_DIR.glob("harp_*.log"), reverse=True)


def get_current_log_path() -> Optional[Path]:
    """Log file of the current run, else the newest one on disk, else None."""
    if _current_log_file is not None:
        return _current_log_file
    files = _log_files()
    return files[0] if files else None


def _read_entries(path: Path) -> Iterator[dict]:
    """Yield one dict per record in a run log; indented lines become details."""
    entry = None
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            parts = line.rstrip("\n").split(_SEP, 4)
            if len(parts) == 5 and parts[1].strip() in _LEVELS:
                if entry is not None:
                    yield entry
                entry = {
                    "timestamp": parts[0],
                    "level": parts[1].strip(),
                    "run_id": parts[3],
                    "message": parts[4],
                    "details": [],
                }
            elif entry is not None and line.startswith("  "):
                entry["details"].append(line.rstrip())
    if entry is not None:
        yield entry


def get_recent_errors(days: int = 7, limit: int = 50) -> list[dict]:
    """Warnings and errors from the run logs of the last *days* days.

    Files are read newest first; records keep their order within a file.

    Returns:
        Dicts with timestamp, level, run_id, message, details and ``entity``
        (the HARP number named in the message, or None).
    """
    cutoff = (datetime.now() - timedelta(days=days)).timestamp()
    found: list[dict] = []
    for path in _log_files():
        if path.stat().st_mtime < cutoff:
            break
        for entry in _read_entries(path):
            if entry["level"] not in _PROBLEM_LEVELS:
                continue
            match = _HARP_RE.search(entry["message"])
            entry["entity"] = int(match.group(1)) if match else None
            found.append(entry)
        if len(found) >= limit:
            break
    return found[:limit]


def print_recent_errors(days: int = 7, limit: int = 10) -> None:
    """Print get_recent_errors() for ``main.py --errors``."""
    errors = get_recent_errors(days=days, limit=limit)
    if not errors:
        print(f"No errors found in the last {days} days.")
        return

    print(f"Recent warnings and errors (last {days} days, up to {limit}):")
    print("-" * 60)
    for i, err in enumerate(errors, 1):
        harp = f", HARP {err['entity']}" if err["entity"] is not None else ""
        print(f"\n{i}. [{err['timestamp']}] {err['level']} (run {err['run_id']}{harp})")
        print(f"   {err['message']}")
        for detail in err["details"][:5]:
            print(f"   {detail}")
        if len(err["details"]) > 5:
            print(f"   ... {len(err['details']) - 5} more line(s)")
    print("-" * 60)
    print(f"Log directory: {LOG_DIR}")
