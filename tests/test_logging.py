"""Tests for analysis.logging: per-run log files and error retrieval."""

import logging
from unittest import mock

import pytest

import analysis.logging as harp_logging


@pytest.fixture(autouse=True)
def isolated_logs(tmp_path):
    """Point LOG_DIR at a temp directory and drop handlers afterwards."""
    with mock.patch.object(harp_logging, "LOG_DIR", tmp_path), \
         mock.patch.object(harp_logging, "_current_log_file", None), \
         mock.patch.object(harp_logging, "_run_filter", None):
        yield tmp_path
    logger = logging.getLogger(harp_logging.LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    for f in list(logger.filters):
        logger.removeFilter(f)


def _flush():
    for handler in logging.getLogger(harp_logging.LOGGER_NAME).handlers:
        handler.flush()


class TestSetupLogging:
    def test_creates_log_file(self, isolated_logs):
        logger = harp_logging.setup_logging()
        assert logger.name == "harp-quality"
        path = harp_logging.get_current_log_path()
        assert path.parent == isolated_logs
        assert path.name.startswith("harp_")
        _flush()
        assert "Run started" in path.read_text(encoding="utf-8")

    def test_reinit_replaces_handlers(self):
        harp_logging.setup_logging()
        n = len(logging.getLogger("harp-quality").handlers)
        harp_logging.setup_logging(verbose=True)
        assert len(logging.getLogger("harp-quality").handlers) == n

    def test_run_id_in_file(self):
        harp_logging.setup_logging()
        harp_logging.set_run_id("run42")
        logging.getLogger("harp-quality").info("hello")
        _flush()
        text = harp_logging.get_current_log_path().read_text(encoding="utf-8")
        assert "| run42 | hello" in text

    def test_run_id_set_before_setup(self):
        harp_logging.set_run_id("early")
        harp_logging.setup_logging()
        logging.getLogger("harp-quality").info("after setup")
        _flush()
        assert "| early | after setup" in harp_logging.get_current_log_path().read_text(encoding="utf-8")

    def test_library_loggers_share_handlers(self):
        from harp_ops import partition
        harp_logging.setup_logging()
        partition.logger.warning("HARP 9: duplicate timestamp")
        _flush()
        assert "HARP 9" in harp_logging.get_current_log_path().read_text(encoding="utf-8")


class TestTagged:
    def test_extra_dict(self):
        assert harp_logging.tagged("error") == {"log_tag": "error"}


class TestRecentErrors:
    def test_collects_warnings_and_errors(self):
        harp_logging.setup_logging()
        harp_logging.set_run_id("r1")
        logger = harp_logging.get_logger()
        logger.info("not an error")
        logger.warning("Skipping HARP 2: no observed values")
        harp_logging.log_error("Analysis failed", context={"input": "sharps.csv"})
        _flush()

        errors = harp_logging.get_recent_errors()
        assert [e["level"] for e in errors] == ["WARNING", "ERROR"]
        assert errors[0]["run_id"] == "r1"
        assert errors[0]["message"] == "Skipping HARP 2: no observed values"
        assert errors[0]["entity"] == 2
        assert errors[1]["message"] == "Analysis failed"
        assert errors[1]["entity"] is None
        assert "  input: sharps.csv" in errors[1]["details"]

    def test_limit(self):
        harp_logging.setup_logging()
        logger = harp_logging.get_logger()
        for i in range(5):
            logger.warning(f"warning {i}")
        _flush()
        assert len(harp_logging.get_recent_errors(limit=3)) == 3

    def test_no_logs(self, capsys):
        assert harp_logging.get_recent_errors() == []
        harp_logging.print_recent_errors(days=3)
        assert "No errors found in the last 3 days." in capsys.readouterr().out

    def test_exception_details(self):
        harp_logging.setup_logging()
        try:
            raise ValueError("bad cadence")
        except ValueError as e:
            harp_logging.log_error("Analysis failed", exc=e)
        _flush()
        details = harp_logging.get_recent_errors()[0]["details"]
        assert "  ValueError: bad cadence" in details
        assert any("Traceback" in line for line in details)

    def test_print(self, capsys):
        harp_logging.setup_logging()
        harp_logging.log_error("Analysis failed", exc=ValueError("bad cadence"))
        _flush()
        harp_logging.print_recent_errors()
        out = capsys.readouterr().out
        assert "Analysis failed" in out
        assert "ERROR" in out


class TestLogRunEnd:
    def test_counts_logged(self):
        harp_logging.setup_logging()
        harp_logging.log_run_end({"entities": 3, "records": 1200, "skipped": 1})
        _flush()
        text = harp_logging.get_current_log_path().read_text(encoding="utf-8")
        assert "HARPs: 3, records: 1,200, skipped: 1" in text
