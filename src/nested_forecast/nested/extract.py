"""
Read-only tabular projections of a ``NestedTable``.

These frames are what reporting and plotting code consume. They are derived
views; editing them never changes the table.
"""
from __future__ import annotations

import logging

import pandas as pd

from nested_forecast.nested.table import ForecastLog, NestedTable

logger = logging.getLogger(__name__)

ACCURACY_KEY_COLUMNS = ["group_id", "model_id", "description", "kind", "selected", "error"]


def error_summary(table: NestedTable) -> dict[str, int]:
    """Count groups, group-level errors and model-level errors."""
    return {
        "groups": len(table),
        "group_errors": sum(1 for group in table if not group.ok),
        "model_errors": sum(
            1 for group in table for entry in group.model_table if not entry.ok
        ),
    }


def log_stage_summary(stage: str, table: NestedTable) -> None:
    summary = error_summary(table)
    logger.info(
        "%s finished: %d groups, %d group errors, %d model errors",
        stage,
        summary["groups"],
        summary["group_errors"],
        summary["model_errors"],
    )


def extract_accuracy(table: NestedTable) -> pd.DataFrame:
    """One row per ``(group_id, model_id)`` with metric columns flattened."""
    rows: list[dict[str, object]] = []
    for group in table:
        for entry in group.model_table:
            rows.append(
                {
                    "group_id": group.group_id,
                    "model_id": entry.model_id,
                    "description": entry.description,
                    "kind": entry.kind.value,
                    "selected": entry.selected,
                    "error": entry.error,
                    **dict(entry.test_accuracy),
                }
            )
    if not rows:
        return pd.DataFrame(columns=ACCURACY_KEY_COLUMNS)
    return pd.DataFrame(rows)


def _stack_logs(table: NestedTable, attr: str) -> pd.DataFrame:
    frames: list[pd.DataFrame] = []
    for group in table:
        logs: tuple[ForecastLog, ...] = getattr(group, attr)
        for log in logs:
            frames.append(
                log.forecast.assign(
                    group_id=group.group_id,
                    model_id=log.model_id,
                    description=log.description,
                    kind=log.kind.value,
                )
            )
    columns = ["group_id", "model_id", "description", "kind", "ds", "actual", "predicted"]
    if not frames:
        return pd.DataFrame(columns=columns)
    return pd.concat(frames, ignore_index=True)[columns]


def extract_test_forecast(table: NestedTable) -> pd.DataFrame:
    return _stack_logs(table, "test_forecast_log")


def extract_future_forecast(table: NestedTable) -> pd.DataFrame:
    return _stack_logs(table, "future_forecast_log")


def extract_error_log(table: NestedTable) -> pd.DataFrame:
    """Group- and model-level errors, one row each, with a ``level`` column."""
    rows: list[dict[str, object]] = []
    for group in table:
        if group.error:
            rows.append(
                {"group_id": group.group_id, "level": "group", "model_id": None, "error": group.error}
            )
        for entry in group.model_table:
            if entry.error:
                rows.append(
                    {
                        "group_id": group.group_id,
                        "level": "model",
                        "model_id": entry.model_id,
                        "error": entry.error,
                    }
                )
    return pd.DataFrame(rows, columns=["group_id", "level", "model_id", "error"])


def extract_best_model_report(table: NestedTable) -> pd.DataFrame:
    accuracy = extract_accuracy(table)
    if accuracy.empty:
        return accuracy
    return accuracy[accuracy["selected"]].reset_index(drop=True)


def accuracy_leaderboard(table: NestedTable, metric: str = "rmse", minimize: bool = True) -> pd.DataFrame:
    """Mean of ``metric`` per model id across groups, best first."""
    accuracy = extract_accuracy(table)
    if accuracy.empty or metric not in accuracy.columns:
        return pd.DataFrame(columns=["model_id", "description", metric, "groups"])
    scored = accuracy[accuracy["error"].isna()]
    board = (
        scored.groupby(["model_id", "description"], as_index=False)
        .agg(**{metric: (metric, "mean"), "groups": ("group_id", "nunique")})
        .sort_values([metric, "model_id"], ascending=[minimize, True])
        .reset_index(drop=True)
    )
    return board
