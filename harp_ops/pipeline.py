"""
End-to-end data-quality analysis of a SHARP table.

Every step is a pure function returning a new DataFrame; state is threaded
through ``DataFrame.pipe`` rather than by rebinding a shared working table.
Entities are processed independently; an entity that fails validation or
imputation is recorded in the report's failures and the batch continues.
"""

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

import numpy as np
import pandas as pd

import config
from .binning import add_lifespan_fraction, binned_proportions, lifespan_bins, longitude_bins
from .completeness import add_quality_flags, classify_completeness
from .coverage import expected_grid, lifetime_grid, reindex_to_cadence, usable_ranges
from .errors import HarpDataError
from .imputation import add_longitude_flags, imputed_flag_column, impute_longitudes
from .operations_log import OperationsLog, start_operations_log
from .partition import EntityFailure, partition_by_entity
from .runs import runs_to_frame, segment_runs
from .schema import DEFAULT_LAYOUT, TableLayout, validate_columns

logger = logging.getLogger("harp-quality")

# is_missing is taken before imputation; filled slots no longer classify as missing
LIFESPAN_FLAGS = (
    "is_complete_before", "is_complete", "is_missing_before",
    "is_nominal_quality", "lon_extreme_low", "lon_extreme_high",
)
LONGITUDE_FLAGS = ("is_complete_before", "is_complete", "is_nominal_quality")


@dataclass
class AnalysisSettings:
    """Tunable parameters of one analysis run (defaults from config)."""

    cadence: float = config.CADENCE_SECONDS
    limb_threshold: float = config.LIMB_LONGITUDE_DEG
    abscissa: str = config.IMPUTATION_ABSCISSA
    reindex: bool = config.REINDEX_TO_CADENCE
    sort: bool = True
    lifespan_bins: int = config.LIFESPAN_BINS
    longitude_bin_width: float = config.LONGITUDE_BIN_WIDTH
    min_usable_run: int = config.MIN_USABLE_RUN
    layout: TableLayout = field(default_factory=lambda: DEFAULT_LAYOUT)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["layout"]["parameters"] = list(self.layout.parameters)
        return d


@dataclass
class EntityResult:
    """Per-entity output: augmented records and completeness runs."""

    entity: Any
    records: pd.DataFrame
    runs_before: pd.DataFrame
    runs_after: pd.DataFrame


@dataclass
class QualityReport:
    """Everything one analysis run produces.

    Attributes:
        records: Augmented record table of all processed entities.
        runs_before: Completeness runs before longitude imputation.
        runs_after: Completeness runs after longitude imputation.
        coverage: Cadence grid with ``observed`` flags.
        lifetime_coverage: Cadence grid with ``in_lifetime`` flags.
        usable_ranges: Fully observed stretches of the grid.
        lifetime_ranges: Stretches covered by at least one HARP lifetime.
        lifespan_table: Flag proportions binned by lifespan fraction.
        longitude_table: Flag proportions binned by maximum absolute longitude.
        failures: Entities skipped, with the reason.
        settings: Settings the report was produced with.
        operations: Operations log of the run that produced the report.
    """

    records: pd.DataFrame
    runs_before: pd.DataFrame
    runs_after: pd.DataFrame
    coverage: pd.DataFrame
    lifetime_coverage: pd.DataFrame
    usable_ranges: pd.DataFrame
    lifetime_ranges: pd.DataFrame
    lifespan_table: pd.DataFrame
    longitude_table: pd.DataFrame
    failures: list[EntityFailure] = field(default_factory=list)
    settings: AnalysisSettings = field(default_factory=AnalysisSettings)
    operations: OperationsLog = field(default_factory=OperationsLog, repr=False)

    @property
    def entities(self) -> list:
        entity = self.settings.layout.entity
        if self.records.empty:
            return []
        return sorted(self.records[entity].unique().tolist())

    @property
    def failed_entities(self) -> list:
        return [f.entity for f in self.failures]

    def failures_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [f.to_dict() for f in self.failures],
            columns=["entity", "kind", "message", "field"],
        )

    def save(self, dir_path: Path, ops_log: Optional[OperationsLog] = None) -> list[Path]:
        """Write every table as CSV plus the operations log as JSON.

        The log is the report's own run log unless *ops_log* is given.

        Returns:
            Paths of the written files.
        """
        dir_path = Path(dir_path)
        dir_path.mkdir(parents=True, exist_ok=True)
        tables = {
            "records.csv": (self.records, False),
            "runs_before.csv": (self.runs_before, False),
            "runs_after.csv": (self.runs_after, False),
            "coverage.csv": (self.coverage, False),
            "lifetime_coverage.csv": (self.lifetime_coverage, False),
            "usable_ranges.csv": (self.usable_ranges, False),
            "lifetime_ranges.csv": (self.lifetime_ranges, False),
            "lifespan_table.csv": (self.lifespan_table, True),
            "longitude_table.csv": (self.longitude_table, True),
            "failures.csv": (self.failures_frame(), False),
        }
        written = []
        for name, (table, keep_index) in tables.items():
            path = dir_path / name
            table.to_csv(path, index=keep_index)
            written.append(path)
        log = ops_log if ops_log is not None else self.operations
        ops_path = dir_path / "operations.json"
        log.save_to_file(ops_path)
        written.append(ops_path)
        logger.info(f"Saved report ({len(written)} files) to {dir_path}")
        return written


def _step(
    df: pd.DataFrame,
    log: OperationsLog,
    name: str,
    func: Callable[..., pd.DataFrame],
    entity: Any = None,
    **kwargs,
) -> pd.DataFrame:
    """Run one transformation and record it in the operations log."""
    args = {k: v for k, v in kwargs.items() if not isinstance(v, TableLayout)}
    try:
        out = func(df, **kwargs)
    except HarpDataError as e:
        log.record(name, args, rows_in=len(df), entity=entity, status="error", error=str(e))
        raise
    log.record(name, args, rows_in=len(df), rows_out=len(out), entity=entity)
    return out


def _completeness_runs(records: pd.DataFrame, time_column: str, entity: Any) -> pd.DataFrame:
    runs = segment_runs(records["completeness"])
    return runs_to_frame(runs, times=records[time_column], entity=entity)


def process_entity(
    group: pd.DataFrame,
    entity: Any,
    settings: AnalysisSettings,
    log: OperationsLog,
) -> EntityResult:
    """Classify, impute and segment one entity's time-ordered records.

    Raises:
        HarpDataError: If the entity cannot be processed (unimputable
            longitude, colliding cadence slots, invalid quality code).
    """
    layout = settings.layout
    prepared = group
    if settings.reindex:
        prepared = _step(prepared, log, "reindex_to_cadence", reindex_to_cadence,
                         entity=entity, cadence=settings.cadence, layout=layout)
    before = (
        prepared
        .pipe(_step, log, "add_quality_flags", add_quality_flags,
              entity=entity, layout=layout)
        .pipe(_step, log, "classify_completeness", classify_completeness,
              entity=entity, required=layout.required_fields)
    )
    runs_before = _completeness_runs(before, layout.time, entity)

    after = (
        before
        .assign(completeness_before=before["completeness"],
                is_complete_before=before["is_complete"],
                is_missing_before=before["is_missing"])
        .pipe(_step, log, "impute_longitudes", impute_longitudes,
              entity=entity, layout=layout, abscissa=settings.abscissa)
        .pipe(_step, log, "add_longitude_flags", add_longitude_flags,
              entity=entity, threshold=settings.limb_threshold, layout=layout)
        .pipe(_step, log, "classify_completeness", classify_completeness,
              entity=entity, required=layout.required_fields)
    )
    runs_after = _completeness_runs(after, layout.time, entity)
    return EntityResult(entity, after, runs_before, runs_after)


def _concat(frames: list[pd.DataFrame]) -> pd.DataFrame:
    frames = [f for f in frames if not f.empty]
    if not frames:
        return pd.DataFrame()
    return pd.concat(frames, ignore_index=True)


def analyze(
    df: pd.DataFrame,
    settings: Optional[AnalysisSettings] = None,
    ops_log: Optional[OperationsLog] = None,
) -> QualityReport:
    """Run the full data-quality analysis.

    Args:
        df: Record table with the columns named by ``settings.layout``.
        settings: Analysis settings (defaults from config).
        ops_log: Operations log to record into. Defaults to a fresh log
            that also becomes the process-wide one, so each run starts empty.

    Returns:
        QualityReport. Entities that could not be processed are listed in
        ``failures`` and excluded from every table.

    Raises:
        MalformedInputError: If required columns are missing.
    """
    settings = settings or AnalysisSettings()
    log = ops_log if ops_log is not None else start_operations_log()
    layout = settings.layout

    validate_columns(df, layout.required_columns)
    log.record("validate_columns", {"columns": layout.required_columns}, rows_in=len(df))

    partition = partition_by_entity(df, layout=layout, sort=settings.sort)
    log.record("partition_by_entity", {"sort": settings.sort}, rows_in=len(df),
               rows_out=sum(len(g) for g in partition.groups.values()))
    failures = list(partition.failures)

    results: list[EntityResult] = []
    observed_times = []
    for entity, group in partition:
        try:
            results.append(process_entity(group, entity, settings, log))
        except HarpDataError as e:
            logger.warning(f"Skipping HARP {entity}: {e}")
            failures.append(EntityFailure.from_error(e, entity))
            continue
        observed_times.append(group[[layout.time, layout.entity]])

    records = _concat([r.records for r in results])
    if not records.empty:
        records = _step(records, log, "add_lifespan_fraction", add_lifespan_fraction,
                        layout=layout)
    runs_before = _concat([r.runs_before for r in results])
    runs_after = _concat([r.runs_after for r in results])

    observed = _concat(observed_times)
    if observed.empty:
        observed = pd.DataFrame({layout.time: pd.Series(dtype="datetime64[ns]"),
                                 layout.entity: pd.Series(dtype="int64")})
    coverage = expected_grid(observed[layout.time], settings.cadence)
    lifetime = lifetime_grid(observed, settings.cadence, layout=layout)
    log.record("expected_grid", {"cadence": settings.cadence},
               rows_in=len(observed), rows_out=len(coverage))
    ranges = usable_ranges(coverage, "observed", settings.min_usable_run)
    lifetime_ranges = usable_ranges(lifetime, "in_lifetime", settings.min_usable_run)

    lifespan_table, longitude_table = _binned_tables(records, settings)

    report = QualityReport(
        records=records,
        runs_before=runs_before,
        runs_after=runs_after,
        coverage=coverage,
        lifetime_coverage=lifetime,
        usable_ranges=ranges,
        lifetime_ranges=lifetime_ranges,
        lifespan_table=lifespan_table,
        longitude_table=longitude_table,
        failures=failures,
        settings=settings,
        operations=log,
    )
    logger.info(
        f"Analyzed {len(results)} HARP(s), {len(records)} records; "
        f"{len(failures)} skipped"
    )
    return report


def _binned_tables(records: pd.DataFrame, settings: AnalysisSettings) -> tuple[pd.DataFrame, pd.DataFrame]:
    if records.empty:
        return pd.DataFrame(), pd.DataFrame()
    lifespan = binned_proportions(records, "lifespan_fraction", LIFESPAN_FLAGS,
                                  lifespan_bins(settings.lifespan_bins))
    # Longitudes can run slightly past the limb
    limit = max(90.0, float(np.ceil(records["max_abs_lon"].max())))
    longitude = binned_proportions(records, "max_abs_lon", LONGITUDE_FLAGS,
                                   longitude_bins(settings.longitude_bin_width, limit))
    return lifespan, longitude


def imputed_records(report: QualityReport) -> pd.DataFrame:
    """Rows of the report where either longitude was imputed, for auditing."""
    layout = report.settings.layout
    if report.records.empty:
        return report.records
    mask = (report.records[imputed_flag_column(layout.lon_min)]
            | report.records[imputed_flag_column(layout.lon_max)])
    return report.records.loc[mask]
