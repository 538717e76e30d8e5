"""Selection engine: flag the best model per group."""
from __future__ import annotations

import logging
import math
from dataclasses import replace

from nested_forecast.config import ControlConfig
from nested_forecast.errors import GroupError
from nested_forecast.ml.evaluation import MetricSet, default_metric_set
from nested_forecast.nested.executor import map_groups
from nested_forecast.nested.extract import log_stage_summary
from nested_forecast.nested.table import GroupRecord, ModelEntry, NestedTable

logger = logging.getLogger(__name__)


def _score(entry: ModelEntry, metric: str) -> float | None:
    if not entry.ok:
        return None
    value = entry.test_accuracy.get(metric)
    if value is None or math.isnan(value):
        return None
    return float(value)


def select_best(
    table: NestedTable,
    metric: str = "rmse",
    minimize: bool | None = None,
    filter_test_forecasts: bool = True,
    control: ControlConfig | None = None,
    metric_set: MetricSet | None = None,
) -> NestedTable:
    """
    Mark exactly one model per group as selected.

    Among entries without an error and with a finite ``metric`` value, the
    extreme value wins; ties go to the lowest model id. Calling this twice
    with the same arguments gives the same flags.

    Args:
        table: Table after fitting and (optionally) ensembling.
        metric: Metric name from the metric set.
        minimize: Direction; ``None`` uses the metric's own convention.
        filter_test_forecasts: Drop test forecast logs of non-selected models.
            Accuracy values of all models are kept.
        control: Only ``verbose`` applies. A group without an eligible model
            is flagged and the call carries on, even with ``fail_fast``.
        metric_set: Metric set used to validate ``metric``.

    Raises:
        ConfigurationError: ``metric`` is not part of the metric set.
    """
    metric_set = metric_set or default_metric_set()
    metric_set.validate(metric)
    if minimize is None:
        minimize = metric_set.minimize(metric)
    control = (control or ControlConfig()).model_copy(
        update={"allow_parallel": False, "fail_fast": False}
    )

    def _select_group(group: GroupRecord) -> GroupRecord:
        if not group.ok:
            return group
        scored: list[tuple[float, int]] = []
        for entry in group.model_table:
            score = _score(entry, metric)
            if score is not None:
                scored.append((score, entry.model_id))
        if not scored:
            raise GroupError(f"no model has a usable {metric!r} value")
        best_id = min(scored, key=lambda item: (item[0] if minimize else -item[0], item[1]))[1]
        model_table = tuple(
            replace(entry, selected=entry.model_id == best_id) for entry in group.model_table
        )
        test_logs = group.test_forecast_log
        if filter_test_forecasts:
            test_logs = tuple(log for log in test_logs if log.model_id == best_id)
        return replace(group, model_table=model_table, test_forecast_log=test_logs)

    groups = map_groups(table.groups, _select_group, control, stage="select")
    result = table.with_groups(groups)
    log_stage_summary(f"select ({metric})", result)
    return result
