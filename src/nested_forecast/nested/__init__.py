"""Nested forecasting lifecycle: fit, ensemble, select, refit."""
from __future__ import annotations

from nested_forecast.nested.ensemble import EnsembleWorkflow, ensemble_average, ensemble_weighted
from nested_forecast.nested.executor import map_groups
from nested_forecast.nested.extract import (
    accuracy_leaderboard,
    error_summary,
    extract_accuracy,
    extract_best_model_report,
    extract_error_log,
    extract_future_forecast,
    extract_test_forecast,
)
from nested_forecast.nested.fit import fit_nested
from nested_forecast.nested.refit import refit_nested
from nested_forecast.nested.select import select_best
from nested_forecast.nested.table import (
    ForecastLog,
    GroupRecord,
    ModelEntry,
    ModelKind,
    NestedTable,
    RegistryEntry,
    TrainTestSplit,
    nest_frames,
)

__all__ = [
    "EnsembleWorkflow",
    "ForecastLog",
    "GroupRecord",
    "ModelEntry",
    "ModelKind",
    "NestedTable",
    "RegistryEntry",
    "TrainTestSplit",
    "accuracy_leaderboard",
    "ensemble_average",
    "ensemble_weighted",
    "error_summary",
    "extract_accuracy",
    "extract_best_model_report",
    "extract_error_log",
    "extract_future_forecast",
    "extract_test_forecast",
    "fit_nested",
    "map_groups",
    "nest_frames",
    "refit_nested",
    "select_best",
]
