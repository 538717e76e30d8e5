from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass

import numpy as np

from nested_forecast.errors import ConfigurationError, MetricError

MetricFn = Callable[[np.ndarray, np.ndarray], float]


def mae(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    return float(np.mean(np.abs(y_true - y_pred)))


def rmse(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    return float(np.sqrt(np.mean((y_true - y_pred) ** 2)))


def mape(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    denominator = np.where(y_true == 0, np.nan, np.abs(y_true))
    with np.errstate(invalid="ignore"):
        ratios = np.abs(y_true - y_pred) / denominator
    if np.all(np.isnan(ratios)):
        return float("nan")
    return float(np.nanmean(ratios) * 100)


def smape(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    denominator = (np.abs(y_true) + np.abs(y_pred)) / 2
    denominator = np.where(denominator == 0, 1, denominator)
    return float(np.mean(np.abs(y_true - y_pred) / denominator) * 100)


def wape(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    denominator = np.abs(y_true).sum()
    if denominator == 0:
        return 0.0
    return float(np.abs(y_true - y_pred).sum() / denominator * 100)


def rsq(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """Squared correlation between actuals and predictions."""
    if len(y_true) < 2 or np.std(y_true) == 0 or np.std(y_pred) == 0:
        return float("nan")
    return float(np.corrcoef(y_true, y_pred)[0, 1] ** 2)


@dataclass(frozen=True)
class Metric:
    name: str
    fn: MetricFn
    minimize: bool = True


class MetricSet:
    """
    Closed collection of named accuracy metrics.

    Metric names are the only keys ever written to ``ModelEntry.test_accuracy``,
    so engines can validate a requested metric before touching any group.
    """

    def __init__(self, metrics: Mapping[str, Metric] | list[Metric]) -> None:
        items = list(metrics.values()) if isinstance(metrics, Mapping) else list(metrics)
        if not items:
            raise ConfigurationError("metric set must contain at least one metric")
        self._metrics: dict[str, Metric] = {metric.name: metric for metric in items}

    @property
    def names(self) -> list[str]:
        return list(self._metrics)

    def __contains__(self, name: object) -> bool:
        return name in self._metrics

    def validate(self, name: str) -> Metric:
        try:
            return self._metrics[name]
        except KeyError:
            raise ConfigurationError(
                f"unknown metric {name!r}; expected one of {', '.join(self.names)}"
            ) from None

    def minimize(self, name: str) -> bool:
        return self.validate(name).minimize

    def compute(self, actual, predicted) -> dict[str, float]:
        y_true = np.asarray(actual, dtype=float)
        y_pred = np.asarray(predicted, dtype=float)
        if y_true.size == 0:
            raise MetricError("cannot compute accuracy on an empty forecast")
        if y_true.shape != y_pred.shape:
            raise MetricError(
                f"actual and predicted lengths differ: {y_true.shape[0]} != {y_pred.shape[0]}"
            )
        if not np.all(np.isfinite(y_pred)):
            raise MetricError("predictions contain non-finite values")
        mask = np.isfinite(y_true)
        if not mask.any():
            raise MetricError("no finite actual values to score against")
        y_true, y_pred = y_true[mask], y_pred[mask]
        return {name: metric.fn(y_true, y_pred) for name, metric in self._metrics.items()}


def default_metric_set() -> MetricSet:
    return MetricSet(
        [
            Metric("mae", mae),
            Metric("mape", mape),
            Metric("smape", smape),
            Metric("wape", wape),
            Metric("rmse", rmse),
            Metric("rsq", rsq, minimize=False),
        ]
    )
