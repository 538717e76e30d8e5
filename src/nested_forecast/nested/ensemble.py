"""
Ensemble engine: combine existing models' test forecasts into new models.

An ensemble call allocates one model id for the whole table and appends one
``ModelEntry`` of kind ``ensemble`` to every group that has contributors.
The entry's workflow is an ``EnsembleWorkflow`` holding the member workflows
and the group's weights, so a later refit can re-train the members on the
full history and recombine them.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from typing import Any, Literal

import numpy as np
import pandas as pd

from nested_forecast.config import ControlConfig
from nested_forecast.errors import (
    ConfigurationError,
    GroupError,
    ModelError,
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

AverageType = Literal["mean", "median"]
ENSEMBLE_TYPES = ("mean", "median", "weighted")


def combine(matrix: np.ndarray, method: str, weights: Sequence[float] = ()) -> np.ndarray:
    """Combine member predictions (one row per member) into one series."""
    if method == "mean":
        return matrix.mean(axis=0)
    if method == "median":
        return np.median(matrix, axis=0)
    if method == "weighted":
        return np.asarray(weights, dtype=float) @ matrix
    raise ConfigurationError(f"unknown ensemble type {method!r}")


def normalize(loadings: Sequence[float]) -> tuple[float, ...]:
    total = float(sum(loadings))
    return tuple(float(value) / total for value in loadings)


@dataclass(frozen=True, eq=False)
class EnsembleFit:
    """Fitted state of an ensemble: one fitted model per member."""

    member_ids: tuple[int, ...]
    fitted_models: tuple[Any, ...]
    member_forecasts: tuple[pd.DataFrame, ...] = ()


@dataclass(frozen=True)
class EnsembleWorkflow:
    name: str
    method: str
    member_ids: tuple[int, ...]
    members: tuple[Workflow, ...]
    weights: tuple[float, ...] = ()

    def fit(self, training: pd.DataFrame) -> EnsembleFit:
        fitted: list[Any] = []
        for model_id, member in zip(self.member_ids, self.members):
            try:
                fitted.append(member.fit(training))
            except Exception as exc:
                raise TrainingError(
                    f"ensemble member {model_id} ({member.name}) failed: {describe_exception(exc)}"
                ) from exc
        return EnsembleFit(member_ids=self.member_ids, fitted_models=tuple(fitted))

    def predict(self, fitted: EnsembleFit, rows: pd.DataFrame) -> np.ndarray:
        matrix = np.vstack(
            [
                np.asarray(member.predict(member_fit, rows), dtype=float)
                for member, member_fit in zip(self.members, fitted.fitted_models)
            ]
        )
        return combine(matrix, self.method, self.weights)


def _resolve_model_ids(table: NestedTable, model_ids: Iterable[int] | None) -> list[int]:
    if model_ids is None:
        ids = [entry.model_id for entry in table.registry if entry.kind is ModelKind.SUBMODEL]
    else:
        ids = sorted(set(int(model_id) for model_id in model_ids))
        unknown = [model_id for model_id in ids if table.registry_entry(model_id) is None]
        if unknown:
            raise ConfigurationError(f"unknown model ids: {unknown}")
    if not ids:
        raise ConfigurationError("an ensemble needs at least one model id")
    return ids


def _align(contributors: Sequence[ModelEntry]) -> tuple[pd.DataFrame, np.ndarray]:
    """Inner-join contributor forecasts on ``ds``; return base frame and prediction matrix."""
    merged = contributors[0].test_forecast[["ds", "actual", "predicted"]].rename(
        columns={"predicted": "m0"}
    )
    for position, entry in enumerate(contributors[1:], start=1):
        member = entry.test_forecast[["ds", "predicted"]].rename(
            columns={"predicted": f"m{position}"}
        )
        merged = merged.merge(member, on="ds", how="inner")
    if merged.empty:
        raise GroupError("contributing test forecasts share no timestamps")
    merged = merged.sort_values("ds").reset_index(drop=True)
    columns = [f"m{position}" for position in range(len(contributors))]
    return merged, merged[columns].to_numpy(dtype=float).T


def _rank(contributors: Sequence[ModelEntry], metric: str, minimize: bool) -> list[ModelEntry]:
    def _key(entry: ModelEntry) -> tuple[float, int]:
        value = entry.test_accuracy.get(metric, np.nan)
        if value is None or np.isnan(value):
            return (np.inf, entry.model_id)
        return (value if minimize else -value, entry.model_id)

    return sorted(contributors, key=_key)


def _build_ensemble(
    table: NestedTable,
    method: str,
    model_ids: list[int],
    keep_submodels: bool,
    control: ControlConfig,
    metric_set: MetricSet,
    loadings: Sequence[float] = (),
    metric: str | None = None,
) -> NestedTable:
    description = f"ENSEMBLE ({method.upper()}): {len(model_ids)} MODELS"
    ensemble_id, table = table.register(description, ModelKind.ENSEMBLE)
    included = set(model_ids)
    minimize = metric_set.minimize(metric) if metric else True

    def _ensemble_group(group: GroupRecord) -> GroupRecord:
        if not group.ok:
            return group
        contributors = [
            entry for entry in group.model_table
            if entry.model_id in included and entry.has_forecast
        ]
        if not contributors:
            raise GroupError(f"no contributing models with test forecasts for {description}")

        weights: tuple[float, ...] = ()
        if method == "weighted":
            contributors = _rank(contributors, metric, minimize)
            weights = normalize(loadings[: len(contributors)])

        base, matrix = _align(contributors)
        predicted = combine(matrix, method, weights)
        forecast = forecast_frame(base["ds"], predicted, actual=base["actual"])
        entry = ModelEntry(
            model_id=ensemble_id,
            description=description,
            kind=ModelKind.ENSEMBLE,
            workflow=EnsembleWorkflow(
                name=description,
                method=method,
                member_ids=tuple(member.model_id for member in contributors),
                members=tuple(member.workflow for member in contributors),
                weights=weights,
            ),
            fitted_model=EnsembleFit(
                member_ids=tuple(member.model_id for member in contributors),
                fitted_models=tuple(member.fitted_model for member in contributors),
                member_forecasts=tuple(member.test_forecast for member in contributors),
            ),
            test_forecast=forecast,
        )
        try:
            entry = replace(
                entry,
                test_accuracy=metric_set.compute(forecast["actual"], forecast["predicted"]),
            )
        except ModelError as exc:
            entry = replace(entry, error=describe_exception(exc))

        model_table = group.model_table
        test_logs = group.test_forecast_log
        if not keep_submodels:
            dropped = {member.model_id for member in contributors}
            model_table = tuple(e for e in model_table if e.model_id not in dropped)
            test_logs = tuple(log for log in test_logs if log.model_id not in dropped)
        if entry.ok:
            test_logs = (*test_logs, ForecastLog(ensemble_id, description, ModelKind.ENSEMBLE, forecast))
        return replace(group, model_table=(*model_table, entry), test_forecast_log=test_logs)

    sequential = control.model_copy(update={"allow_parallel": False})
    groups = map_groups(table.groups, _ensemble_group, sequential, stage="ensemble")
    result = table.with_groups(groups)
    log_stage_summary(f"ensemble {ensemble_id} ({method})", result)
    return result


def ensemble_average(
    table: NestedTable,
    type: AverageType = "mean",
    model_ids: Iterable[int] | None = None,
    keep_submodels: bool = True,
    control: ControlConfig | None = None,
    metric_set: MetricSet | None = None,
) -> NestedTable:
    """
    Append a mean or median ensemble to every group.

    Args:
        table: Table returned by ``fit_nested`` (or a previous ensemble call).
        type: ``"mean"`` or ``"median"``.
        model_ids: Members to combine. Defaults to every registered submodel.
        keep_submodels: When False, members are removed from each group's
            model table after the ensemble is built.
        control: Only ``verbose`` and ``fail_fast`` apply; groups are scanned
            sequentially.
        metric_set: Metrics computed for the new ensemble entries.

    Raises:
        ConfigurationError: Unknown type or model ids.
    """
    if type not in ("mean", "median"):
        raise ConfigurationError(f"ensemble_average type must be 'mean' or 'median', got {type!r}")
    ids = _resolve_model_ids(table, model_ids)
    return _build_ensemble(
        table,
        type,
        ids,
        keep_submodels,
        control or ControlConfig(),
        metric_set or default_metric_set(),
    )


def ensemble_weighted(
    table: NestedTable,
    loadings: Sequence[float],
    metric: str = "rmse",
    model_ids: Iterable[int] | None = None,
    keep_submodels: bool = True,
    control: ControlConfig | None = None,
    metric_set: MetricSet | None = None,
) -> NestedTable:
    """
    Append a rank-weighted ensemble to every group.

    Within each group the members are ranked by ``metric`` (best first) and
    ``loadings[i]`` goes to the i-th ranked member. Loadings are normalized
    to sum to one. If some members failed in a group, only the leading
    loadings are used for the members that remain.

    Raises:
        ConfigurationError: Unknown metric or model ids, non-positive
            loadings, or ``len(loadings)`` differing from the member count.
    """
    metric_set = metric_set or default_metric_set()
    metric_set.validate(metric)
    ids = _resolve_model_ids(table, model_ids)
    loadings = [float(value) for value in loadings]
    if len(loadings) != len(ids):
        raise ConfigurationError(
            f"got {len(loadings)} loadings for {len(ids)} models; lengths must match"
        )
    if any(not np.isfinite(value) or value <= 0 for value in loadings):
        raise ConfigurationError(f"loadings must be positive: {loadings}")
    return _build_ensemble(
        table,
        "weighted",
        ids,
        keep_submodels,
        control or ControlConfig(),
        metric_set,
        loadings=loadings,
        metric=metric,
    )
