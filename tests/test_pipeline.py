"""
Tests for harp_ops.pipeline: end-to-end analysis of a small SHARP table.

Run with: python -m pytest tests/test_pipeline.py
"""

import json

import numpy as np
import pandas as pd
import pytest

from harp_ops.errors import MalformedInputError
from harp_ops.operations_log import OperationsLog, get_operations_log, reset_operations_log
from harp_ops.pipeline import AnalysisSettings, analyze, imputed_records, process_entity
from harp_ops.schema import TableLayout

NAN = np.nan
LAYOUT = TableLayout(parameters=("USFLUX", "TOTPOT"))


@pytest.fixture(autouse=True)
def clean_operations_log():
    reset_operations_log()
    yield
    reset_operations_log()


def _make_table():
    """Three HARPs.

    HARP 1: gap at 00:36 (reindexed), leading LON_MIN gap, one flagged record.
    HARP 2: LON_MAX never observed (unimputable).
    HARP 3: duplicate timestamp (malformed).
    """
    rows = [
        # HARPNUM, T_REC, USFLUX, TOTPOT, LON_MIN, LON_MAX, QUALITY
        (1, "2014-01-01 00:00", 1.0, 2.0, NAN, -50.0, "0x00000000"),
        (1, "2014-01-01 00:12", 1.1, 2.1, -50.0, -40.0, "0x00000000"),
        (1, "2014-01-01 00:24", 1.2, 2.2, -40.0, -30.0, "0x00000400"),
        (1, "2014-01-01 00:48", 1.3, 2.3, -20.0, -10.0, "0x00000000"),
        (2, "2014-01-02 00:00", 5.0, 6.0, 10.0, NAN, "0x00000000"),
        (2, "2014-01-02 00:12", 5.1, 6.1, 11.0, NAN, "0x00000000"),
        (3, "2014-01-03 00:00", 7.0, 8.0, 70.0, 80.0, "0x00000000"),
        (3, "2014-01-03 00:00", 7.1, 8.1, 71.0, 81.0, "0x00000000"),
    ]
    df = pd.DataFrame(rows, columns=["HARPNUM", "T_REC", "USFLUX", "TOTPOT",
                                     "LON_MIN", "LON_MAX", "QUALITY"])
    df["T_REC"] = pd.to_datetime(df["T_REC"])
    return df


def _settings(**kwargs):
    return AnalysisSettings(layout=LAYOUT, **kwargs)


class TestAnalyze:
    def test_failures_isolated(self):
        report = analyze(_make_table(), _settings())
        assert report.entities == [1]
        assert sorted(report.failed_entities) == [2, 3]
        kinds = {f.entity: f.kind for f in report.failures}
        assert kinds == {2: "unimputable", 3: "malformed"}
        field = next(f.field for f in report.failures if f.entity == 2)
        assert field == "LON_MAX"

    def test_reindex_inserts_missing_slot(self):
        report = analyze(_make_table(), _settings())
        records = report.records
        assert len(records) == 5
        assert records["completeness_before"].tolist() == [
            "incomplete", "complete", "complete", "missing", "complete",
        ]
        # The reindexed slot keeps its missing SHARP parameters
        assert records["completeness"].tolist() == [
            "complete", "complete", "complete", "incomplete", "complete",
        ]

    def test_longitudes_imputed(self):
        report = analyze(_make_table(), _settings())
        records = report.records
        assert records["LON_MIN"].tolist() == pytest.approx([-60.0, -50.0, -40.0, -30.0, -20.0])
        assert records["LON_MAX"].tolist() == pytest.approx([-50.0, -40.0, -30.0, -20.0, -10.0])
        assert records["LON_MIN_imputed"].tolist() == [True, False, False, True, False]
        assert len(imputed_records(report)) == 2

    def test_without_reindex(self):
        report = analyze(_make_table(), _settings(reindex=False))
        assert len(report.records) == 4
        assert report.records["completeness"].tolist() == ["complete"] * 4

    def test_runs_before_and_after(self):
        report = analyze(_make_table(), _settings())
        before = report.runs_before
        assert before["value"].tolist() == ["incomplete", "complete", "missing", "complete"]
        assert before["length"].tolist() == [1, 2, 1, 1]
        assert before["entity"].tolist() == [1] * 4
        after = report.runs_after
        assert after["value"].tolist() == ["complete", "incomplete", "complete"]
        assert after["length"].tolist() == [3, 1, 1]
        assert after["duration"].iloc[0] == pd.Timedelta(minutes=24)

    def test_quality_and_limb_flags(self):
        report = analyze(_make_table(), _settings(limb_threshold=55.0))
        records = report.records
        assert records["is_nominal_quality"].tolist() == [True, True, False, False, True]
        assert records["lon_extreme_low"].tolist() == [True, False, False, False, False]
        assert not records["lon_extreme_high"].any()

    def test_lifespan_fraction(self):
        report = analyze(_make_table(), _settings())
        assert report.records["lifespan_fraction"].tolist() == [0.0, 0.25, 0.5, 0.75, 1.0]

    def test_coverage_excludes_failed_entities(self):
        report = analyze(_make_table(), _settings())
        assert len(report.coverage) == 5
        assert report.coverage["observed"].tolist() == [True, True, True, False, True]
        assert report.usable_ranges["length"].tolist() == [3, 1]
        assert report.lifetime_coverage["in_lifetime"].all()
        assert report.lifetime_ranges["length"].tolist() == [5]

    def test_binned_tables(self):
        report = analyze(_make_table(), _settings(lifespan_bins=2, longitude_bin_width=30.0))
        assert len(report.lifespan_table) == 2
        assert report.lifespan_table["records"].sum() == 5
        assert "is_complete_before" in report.lifespan_table.columns
        assert report.longitude_table["records"].sum() == 5
        assert report.longitude_table.index.name == "max_abs_lon_bin"

    def test_missing_proportion_taken_before_imputation(self):
        report = analyze(_make_table(), _settings(lifespan_bins=2))
        records = report.records
        assert records["is_missing_before"].tolist() == [False, False, False, True, False]
        assert not records["is_missing"].any()
        # The reindexed slot sits at lifespan fraction 0.75, in the upper bin
        assert report.lifespan_table["is_missing_before"].tolist() == pytest.approx([0.0, 0.5])

    def test_input_not_mutated(self):
        df = _make_table()
        snapshot = df.copy()
        analyze(df, _settings())
        pd.testing.assert_frame_equal(df, snapshot)

    def test_missing_columns_fail_fast(self):
        with pytest.raises(MalformedInputError, match="TOTPOT"):
            analyze(_make_table().drop(columns="TOTPOT"), _settings())

    def test_every_entity_failing(self):
        df = _make_table()
        df = df[df["HARPNUM"] != 1]
        report = analyze(df, _settings())
        assert report.records.empty
        assert report.entities == []
        assert report.coverage.empty
        assert report.lifespan_table.empty
        assert len(report.failures) == 2


class TestOperationsRecording:
    def test_steps_recorded_in_global_log(self):
        analyze(_make_table(), _settings())
        steps = [r["step"] for r in get_operations_log().get_records()]
        assert steps[0] == "validate_columns"
        assert "reindex_to_cadence" in steps
        assert "impute_longitudes" in steps
        assert "expected_grid" in steps

    def test_failed_step_recorded_as_error(self):
        log = OperationsLog()
        analyze(_make_table(), _settings(), ops_log=log)
        errors = log.errors()
        assert len(errors) == 1
        assert errors[0]["step"] == "impute_longitudes"
        assert errors[0]["entity"] == 2
        assert "LON_MAX" in errors[0]["error"]
        assert len(get_operations_log()) == 0

    def test_each_run_gets_its_own_log(self, tmp_path):
        first = analyze(_make_table(), _settings())
        n_first = len(first.operations)
        second = analyze(_make_table(), _settings())
        assert len(second.operations) == n_first
        assert len(first.operations) == n_first
        assert get_operations_log() is second.operations

        first.save(tmp_path / "first")
        second.save(tmp_path / "second")
        for name in ("first", "second"):
            with open(tmp_path / name / "operations.json") as f:
                assert len(json.load(f)) == n_first

    def test_explicit_log_stored_on_report(self):
        log = OperationsLog()
        report = analyze(_make_table(), _settings(), ops_log=log)
        assert report.operations is log

    def test_layout_not_logged(self):
        log = OperationsLog()
        analyze(_make_table(), _settings(), ops_log=log)
        for rec in log.get_records():
            assert "layout" not in rec["args"]


class TestProcessEntity:
    def test_single_entity(self):
        group = _make_table().iloc[:4].reset_index(drop=True)
        result = process_entity(group, 1, _settings(), OperationsLog())
        assert result.entity == 1
        assert len(result.records) == 5
        assert result.runs_after["length"].sum() == 5


class TestSaveReport:
    def test_writes_tables_and_log(self, tmp_path):
        log = OperationsLog()
        report = analyze(_make_table(), _settings(), ops_log=log)
        written = report.save(tmp_path / "out", ops_log=log)
        names = {p.name for p in written}
        assert "records.csv" in names
        assert "failures.csv" in names
        assert "operations.json" in names
        assert all(p.exists() for p in written)

        failures = pd.read_csv(tmp_path / "out" / "failures.csv")
        assert sorted(failures["entity"].tolist()) == [2, 3]
        with open(tmp_path / "out" / "operations.json") as f:
            assert len(json.load(f)) == len(log)

    def test_settings_to_dict(self):
        d = _settings(cadence=60).to_dict()
        assert d["cadence"] == 60
        assert d["layout"]["parameters"] == ["USFLUX", "TOTPOT"]
        json.dumps(d)
