"""
Trainable workflows consumed by the nested engines.

A workflow is anything with a ``name`` and ``fit``/``predict`` methods:

- ``fit(training)`` receives ``ds``/``y`` rows and returns a fitted model.
- ``predict(fitted, rows)`` receives ``ds`` rows (no target) that follow the
  training rows in time and returns one prediction per row.

The engines never look inside a fitted model.
"""
from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import numpy as np
import pandas as pd
from mlforecast import MLForecast
from sklearn.base import clone

from nested_forecast.errors import PredictionError, TrainingError

SERIES_ID = "series"


@runtime_checkable
class Workflow(Protocol):
    name: str

    def fit(self, training: pd.DataFrame) -> Any: ...

    def predict(self, fitted: Any, rows: pd.DataFrame) -> np.ndarray: ...


def _require_target(training: pd.DataFrame) -> np.ndarray:
    if training is None or training.empty or "y" not in training.columns:
        raise TrainingError("training rows must contain a non-empty 'y' column")
    values = training["y"].to_numpy(dtype=float)
    if not np.all(np.isfinite(values)):
        raise TrainingError("training target contains missing or non-finite values")
    return values


@dataclass(frozen=True)
class NaiveWorkflow:
    """Repeat the last observed value."""

    name: str = "naive"

    def fit(self, training: pd.DataFrame) -> float:
        return float(_require_target(training)[-1])

    def predict(self, fitted: float, rows: pd.DataFrame) -> np.ndarray:
        return np.full(len(rows), fitted, dtype=float)


@dataclass(frozen=True)
class SeasonalNaiveWorkflow:
    """Repeat the last observed season."""

    season_length: int = 7
    name: str = "snaive"

    def fit(self, training: pd.DataFrame) -> np.ndarray:
        values = _require_target(training)
        if len(values) < self.season_length:
            raise TrainingError(
                f"need at least {self.season_length} rows, got {len(values)}"
            )
        return values[-self.season_length:]

    def predict(self, fitted: np.ndarray, rows: pd.DataFrame) -> np.ndarray:
        reps = int(np.ceil(len(rows) / len(fitted))) if len(rows) else 0
        return np.tile(fitted, reps)[: len(rows)].astype(float)


@dataclass
class MLForecastWorkflow:
    """
    Single-regressor ``MLForecast`` workflow.

    The regressor is cloned on every ``fit`` so one workflow instance can be
    shared by all groups and workers without sharing fitted state.

    Attributes:
        name: Workflow name, used as the model description.
        model: Unfitted sklearn-compatible regressor.
        freq: Pandas frequency of the series.
        lags: Target lags used as features.
        date_features: Date features passed to ``MLForecast``.
    """

    name: str
    model: Any
    freq: str = "D"
    lags: list[int] = field(default_factory=lambda: [1, 2, 3, 7])
    date_features: list[Any] = field(default_factory=lambda: ["dayofweek"])

    def _build(self) -> MLForecast:
        return MLForecast(
            models={self.name: clone(self.model)},
            freq=self.freq,
            lags=self.lags,
            date_features=self.date_features,
        )

    def fit(self, training: pd.DataFrame) -> MLForecast:
        _require_target(training)
        min_rows = max(self.lags) + 2 if self.lags else 2
        if len(training) < min_rows:
            raise TrainingError(f"need at least {min_rows} rows, got {len(training)}")
        frame = training[["ds", "y"]].assign(unique_id=SERIES_ID)
        forecaster = self._build()
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", category=UserWarning)
                forecaster.fit(frame, static_features=[])
        except (ValueError, TypeError) as exc:
            raise TrainingError(str(exc)) from exc
        return forecaster

    def predict(self, fitted: MLForecast, rows: pd.DataFrame) -> np.ndarray:
        if rows.empty:
            return np.empty(0, dtype=float)
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", category=UserWarning)
                predictions = fitted.predict(h=len(rows))
        except (ValueError, TypeError) as exc:
            raise PredictionError(str(exc)) from exc
        values = predictions[self.name].to_numpy(dtype=float)
        if len(values) != len(rows):
            raise PredictionError(f"expected {len(rows)} predictions, got {len(values)}")
        return values
