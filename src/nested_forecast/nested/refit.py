"""
Refit engine: re-train models on the full history and forecast the horizon.

When a group has a selected model only that model is refit; otherwise every
model without an error is. Each successful refit replaces the entry's fitted
model and contributes one ``future_forecast_log`` entry.
"""
from __future__ import annotations

import logging
from dataclasses import replace

from nested_forecast.config import ControlConfig
from nested_forecast.errors import GroupError, ModelError, describe_exception
from nested_forecast.nested.executor import map_groups
from nested_forecast.nested.extract import log_stage_summary
from nested_forecast.nested.fit import train_and_predict
from nested_forecast.nested.table import ForecastLog, GroupRecord, ModelEntry, NestedTable, forecast_frame

logger = logging.getLogger(__name__)


def _refit_set(group: GroupRecord) -> set[int]:
    selected = group.selected_models()
    candidates = selected if selected else list(group.model_table)
    return {entry.model_id for entry in candidates if entry.ok}


def _refit_group(group: GroupRecord) -> GroupRecord:
    if not group.ok:
        return group
    actual, future = group.actual_data, group.future_data
    if actual is None or actual.empty or not {"ds", "y"}.issubset(actual.columns):
        raise GroupError("actual data is missing or has no 'ds'/'y' columns")
    if future is None or future.empty or "ds" not in future.columns:
        raise GroupError("future data is missing")

    targets = _refit_set(group)
    entries: list[ModelEntry] = []
    logs: list[ForecastLog] = []
    for entry in group.model_table:
        if entry.model_id not in targets:
            entries.append(entry)
            continue
        try:
            fitted, predicted = train_and_predict(entry.workflow, actual, future)
        except ModelError as exc:
            logger.warning(
                "refit of model %d (%s) failed for group %s: %s",
                entry.model_id,
                entry.description,
                group.group_id,
                exc,
            )
            entries.append(replace(entry, error=f"refit: {describe_exception(exc)}"))
            continue
        entries.append(replace(entry, fitted_model=fitted, refitted=True))
        logs.append(
            ForecastLog(
                entry.model_id,
                entry.description,
                entry.kind,
                forecast_frame(future["ds"], predicted),
            )
        )
    return replace(group, model_table=tuple(entries), future_forecast_log=tuple(logs))


def refit_nested(table: NestedTable, control: ControlConfig | None = None) -> NestedTable:
    """
    Refit models on each group's ``actual_data`` and forecast ``future_data``.

    Args:
        table: Table after fitting (and optionally ensembling and selection).
        control: Execution controls. Defaults to sequential, non-verbose.

    Returns:
        New table whose ``future_forecast_log`` holds one entry per
        successfully refit model.

    Raises:
        FatalBatchError: ``control.fail_fast`` is set and a group fails.
    """
    control = control or ControlConfig()
    groups = map_groups(table.groups, _refit_group, control, stage="refit")
    result = table.with_groups(groups)
    log_stage_summary("refit", result)
    return result
