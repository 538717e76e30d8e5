"""
Nested forecasting pipeline orchestration.

This module provides the NestedForecastPipeline class which runs the full
nested lifecycle over a prepared long frame:
- Nesting prepared train/test/future rows per group
- Fitting candidate workflows per group
- Building ensembles, selecting the best model per group
- Refitting on the full history and persisting the artifacts

The input frame has ``unique_id``, ``ds``, ``y`` and ``split`` columns, where
``split`` is one of ``train``, ``test`` or ``future``.

Example:
    >>> pipeline = NestedForecastPipeline()
    >>> result = pipeline.run(frame)
    >>> result["future_forecast"].head()
"""
from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any

import pandas as pd

from nested_forecast.config import AppSettings, ControlConfig, get_settings
from nested_forecast.errors import ConfigurationError
from nested_forecast.ml.evaluation import MetricSet, default_metric_set
from nested_forecast.ml.factory import build_workflows
from nested_forecast.nested.ensemble import ensemble_average, ensemble_weighted
from nested_forecast.nested.extract import (
    error_summary,
    extract_accuracy,
    extract_error_log,
    extract_future_forecast,
)
from nested_forecast.nested.fit import fit_nested
from nested_forecast.nested.refit import refit_nested
from nested_forecast.nested.select import select_best
from nested_forecast.nested.table import ModelKind, NestedTable, nest_frames
from nested_forecast.schemas.records import (
    RunSummary,
    accuracy_records_from_frame,
    forecast_records_from_frame,
    validate_input_rows,
)
from nested_forecast.utils.io import ensure_directory, load_frame, save_json, save_parquet

logger = logging.getLogger(__name__)

ENSEMBLE_TYPES = ("mean", "median", "weighted")


class NestedForecastPipeline:
    """
    End-to-end nested forecasting run.

    Attributes:
        settings: Application settings containing paths and run configuration.
        metric_set: Metrics used for accuracy, ensembling and selection.
        table: Nested table from the last run (None until ``run`` is called).
    """

    def __init__(
        self,
        settings: AppSettings | None = None,
        metric_set: MetricSet | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.metric_set = metric_set or default_metric_set()
        self.table: NestedTable | None = None

    @property
    def input_path(self) -> Path:
        return self.settings.resolved_path(self.settings.paths.input_path)

    @property
    def report_dir(self) -> Path:
        return self.settings.resolved_path(self.settings.paths.report_dir)

    @property
    def accuracy_path(self) -> Path:
        return self.report_dir / "accuracy.parquet"

    @property
    def future_forecast_path(self) -> Path:
        return self.report_dir / "future_forecast.parquet"

    @property
    def errors_path(self) -> Path:
        return self.report_dir / "errors.parquet"

    @property
    def run_summary_path(self) -> Path:
        return self.report_dir / "run_summary.json"

    def load_input(self, path: Path | None = None) -> pd.DataFrame:
        source = path or self.input_path
        if not source.exists():
            raise FileNotFoundError(f"input data not found at {source}")
        return load_frame(source)

    @staticmethod
    def prepare_nested_table(frame: pd.DataFrame) -> NestedTable:
        """Split a prepared long frame by its ``split`` column and nest it per group."""
        validate_input_rows(frame)
        frame = frame.assign(
            unique_id=frame["unique_id"].astype(str),
            ds=pd.to_datetime(frame["ds"]),
        )
        training = frame[frame["split"] == "train"]
        testing = frame[frame["split"] == "test"]
        future = frame[frame["split"] == "future"]
        actual = frame[frame["split"].isin(["train", "test"])]
        return nest_frames(actual, future, training, testing)

    def _default_loadings(self, n_models: int) -> list[float]:
        loadings = list(self.settings.forecast.loadings)
        if loadings:
            return loadings
        return [float(n_models - rank) for rank in range(n_models)]

    def _validate_ensembles(self, ensembles: list[str], n_submodels: int) -> None:
        unknown = [method for method in ensembles if method not in ENSEMBLE_TYPES]
        if unknown:
            raise ConfigurationError(
                f"unknown ensemble type(s) {unknown}; expected one of {list(ENSEMBLE_TYPES)}"
            )
        loadings = self.settings.forecast.loadings
        if "weighted" not in ensembles or n_submodels < 2 or not loadings:
            return
        if len(loadings) != n_submodels:
            raise ConfigurationError(
                f"got {len(loadings)} loadings for {n_submodels} models; lengths must match"
            )
        if any(value <= 0 for value in loadings):
            raise ConfigurationError(f"loadings must be positive: {list(loadings)}")

    def _ensemble(
        self,
        table: NestedTable,
        ensembles: list[str],
        metric: str,
        control: ControlConfig,
    ) -> NestedTable:
        submodels = [entry.model_id for entry in table.registry if entry.kind is ModelKind.SUBMODEL]
        if len(submodels) < 2:
            if ensembles:
                logger.info("Skipping ensembles: fewer than two submodels registered")
            return table
        for method in ensembles:
            if method in ("mean", "median"):
                table = ensemble_average(
                    table,
                    type=method,
                    model_ids=submodels,
                    control=control,
                    metric_set=self.metric_set,
                )
            else:
                table = ensemble_weighted(
                    table,
                    loadings=self._default_loadings(len(submodels)),
                    metric=metric,
                    model_ids=submodels,
                    control=control,
                    metric_set=self.metric_set,
                )
        return table

    def run(
        self,
        frame: pd.DataFrame | None = None,
        models: list[str] | None = None,
        ensembles: list[str] | None = None,
        control: ControlConfig | None = None,
        metric: str | None = None,
    ) -> dict[str, Any]:
        """
        Run fit, ensemble, select and refit, then persist the artifacts.

        Args:
            frame: Prepared long frame. Loaded from ``input_path`` when omitted.
            models: Workflow names. Defaults to ``settings.forecast.models``.
            ensembles: Ensemble types. Defaults to ``settings.forecast.ensembles``.
            control: Execution controls. Defaults to ``settings.control``.
            metric: Ranking and selection metric. Defaults to
                ``settings.forecast.selection_metric``.

        Returns:
            Dictionary with ``summary``, ``table``, ``accuracy``,
            ``future_forecast`` and ``errors``.

        Raises:
            ConfigurationError: Unknown metric, workflow or ensemble type, or
                loadings that do not match the workflow count. Raised before
                any workflow is trained.
        """
        forecast_settings = self.settings.forecast
        control = control or self.settings.control
        metric = metric or forecast_settings.selection_metric
        self.metric_set.validate(metric)
        workflows = build_workflows(models or forecast_settings.models, forecast_settings)
        ensembles = list(forecast_settings.ensembles if ensembles is None else ensembles)
        self._validate_ensembles(ensembles, len({workflow.name for workflow in workflows}))

        frame = frame if frame is not None else self.load_input()
        start = time.perf_counter()
        table = self.prepare_nested_table(frame)
        logger.info("Nested %d groups; fitting %d workflows", len(table), len(workflows))

        table = fit_nested(table, workflows, control=control, metric_set=self.metric_set)
        table = self._ensemble(table, ensembles, metric, control)
        table = select_best(
            table,
            metric=metric,
            filter_test_forecasts=forecast_settings.filter_test_forecasts,
            control=control,
            metric_set=self.metric_set,
        )
        table = refit_nested(table, control=control)
        self.table = table

        accuracy = extract_accuracy(table)
        future_forecast = extract_future_forecast(table)
        errors = extract_error_log(table)
        counts = error_summary(table)
        summary = RunSummary(
            groups=counts["groups"],
            group_errors=counts["group_errors"],
            model_errors=counts["model_errors"],
            registered_models=[entry.description for entry in table.registry],
            selected_models={
                group.group_id: group.selected_models()[0].description
                for group in table
                if group.selected_models()
            },
            future_rows=len(future_forecast),
        )
        self._persist(summary, accuracy, future_forecast, errors)
        logger.info("Nested run finished in %.1fs", time.perf_counter() - start)
        return {
            "summary": summary.model_dump(),
            "table": table,
            "accuracy": accuracy,
            "future_forecast": future_forecast,
            "errors": errors,
        }

    def _persist(
        self,
        summary: RunSummary,
        accuracy: pd.DataFrame,
        future_forecast: pd.DataFrame,
        errors: pd.DataFrame,
    ) -> None:
        # Row schemas reject malformed report rows before anything is written
        accuracy_records_from_frame(accuracy)
        forecast_records_from_frame(future_forecast)
        ensure_directory(self.report_dir)
        save_parquet(accuracy, self.accuracy_path)
        save_parquet(future_forecast, self.future_forecast_path)
        save_parquet(errors, self.errors_path)
        save_json(summary.model_dump(), self.run_summary_path)
