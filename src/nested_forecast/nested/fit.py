"""
Fit engine: train candidate workflows on each group's training partition.

Each workflow gets one table-wide model id. A group that already holds an
entry for that id is left alone, so calling ``fit_nested`` again with extra
workflows only adds the new ones.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import replace
from typing import Any

import numpy as np
import pandas as pd

from nested_forecast.config import ControlConfig
from nested_forecast.errors import (
    ConfigurationError,
    GroupError,
    ModelError,
    PredictionError,
    TrainingError,
    describe_exception,
)
from nested_forecast.ml.evaluation import MetricSet, default_metric_set
from nested_forecast.ml.workflows import Workflow
from nested_forecast.nested.executor import map_groups
from nested_forecast.nested.extract import log_stage_summary
from nested_forecast.nested.table import (
    ForecastLog,
    GroupRecord,
    ModelEntry,
    ModelKind,
    NestedTable,
    forecast_frame,
)

logger = logging.getLogger(__name__)


def without_target(rows: pd.DataFrame) -> pd.DataFrame:
    return rows.drop(columns=["y"], errors="ignore")


def train_and_predict(workflow: Workflow, training: pd.DataFrame, rows: pd.DataFrame) -> tuple[Any, np.ndarray]:
    """Fit ``workflow`` on ``training`` and predict one value per row of ``rows``."""
    try:
        fitted = workflow.fit(training)
    except ModelError:
        raise
    except Exception as exc:
        raise TrainingError(describe_exception(exc)) from exc
    try:
        predicted = np.asarray(workflow.predict(fitted, without_target(rows)), dtype=float)
    except ModelError:
        raise
    except Exception as exc:
        raise PredictionError(describe_exception(exc)) from exc
    if predicted.shape != (len(rows),):
        raise PredictionError(f"expected {len(rows)} predictions, got shape {predicted.shape}")
    return fitted, predicted


def _fit_entry(
    model_id: int,
    workflow: Workflow,
    training: pd.DataFrame,
    testing: pd.DataFrame,
    metric_set: MetricSet,
) -> ModelEntry:
    entry = ModelEntry(
        model_id=model_id,
        description=workflow.name,
        kind=ModelKind.SUBMODEL,
        workflow=workflow,
    )
    try:
        fitted, predicted = train_and_predict(workflow, training, testing)
    except ModelError as exc:
        return replace(entry, error=describe_exception(exc))

    forecast = forecast_frame(testing["ds"], predicted, actual=testing["y"])
    entry = replace(entry, fitted_model=fitted, test_forecast=forecast)
    try:
        accuracy = metric_set.compute(forecast["actual"], forecast["predicted"])
    except ModelError as exc:
        return replace(entry, error=describe_exception(exc))
    return replace(entry, test_accuracy=accuracy)


def _validate_split(group: GroupRecord) -> tuple[pd.DataFrame, pd.DataFrame]:
    split = group.train_test_split
    if split is None:
        raise GroupError("train/test split is missing")
    for name, rows in (("training", split.training), ("testing", split.testing)):
        if rows is None or rows.empty:
            raise GroupError(f"{name} partition is empty")
        if not {"ds", "y"}.issubset(rows.columns):
            raise GroupError(f"{name} partition needs 'ds' and 'y' columns")
    return split.training, split.testing


def fit_nested(
    table: NestedTable,
    workflows: Sequence[Workflow],
    control: ControlConfig | None = None,
    metric_set: MetricSet | None = None,
) -> NestedTable:
    """
    Fit every workflow on every group's training partition.

    Args:
        table: Input nested table. It is not modified.
        workflows: Candidate workflows, identified by ``name``.
        control: Execution controls. Defaults to sequential, non-verbose.
        metric_set: Metrics computed on the testing partition.

    Returns:
        New table with one ``ModelEntry`` per (group, workflow) appended.

    Raises:
        ConfigurationError: No workflows or duplicate workflow names.
        FatalBatchError: ``control.fail_fast`` is set and a group fails.
    """
    control = control or ControlConfig()
    metric_set = metric_set or default_metric_set()
    if not workflows:
        raise ConfigurationError("at least one workflow is required")
    names = [workflow.name for workflow in workflows]
    if len(names) != len(set(names)):
        raise ConfigurationError(f"workflow names must be unique: {names}")

    assignments: list[tuple[int, Workflow]] = []
    for workflow in workflows:
        model_id = table.submodel_id_for(workflow.name)
        if model_id is None:
            model_id, table = table.register(workflow.name, ModelKind.SUBMODEL)
        assignments.append((model_id, workflow))

    def _fit_group(group: GroupRecord) -> GroupRecord:
        if not group.ok:
            return group
        training, testing = _validate_split(group)
        present = set(group.model_ids)
        entries: list[ModelEntry] = []
        for model_id, workflow in assignments:
            if model_id in present:
                continue
            entry = _fit_entry(model_id, workflow, training, testing, metric_set)
            if entry.error:
                logger.warning(
                    "model %d (%s) failed for group %s: %s",
                    model_id,
                    entry.description,
                    group.group_id,
                    entry.error,
                )
            entries.append(entry)
        logs = [
            ForecastLog(entry.model_id, entry.description, entry.kind, entry.test_forecast)
            for entry in entries
            if entry.ok
        ]
        return replace(
            group,
            model_table=(*group.model_table, *entries),
            test_forecast_log=(*group.test_forecast_log, *logs),
        )

    groups = map_groups(table.groups, _fit_group, control, stage="fit")
    result = table.with_groups(groups)
    log_stage_summary("fit", result)
    return result
