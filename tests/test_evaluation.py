import numpy as np
import pytest

from nested_forecast.errors import ConfigurationError, MetricError
from nested_forecast.ml.evaluation import (
    Metric,
    MetricSet,
    default_metric_set,
    mape,
    rmse,
    rsq,
    smape,
    wape,
)


def test_smape() -> None:
    y_true = np.array([100, 200])
    y_pred = np.array([110, 190])
    value = smape(y_true, y_pred)
    assert value > 0


def test_wape_zero_denominator() -> None:
    y_true = np.array([0.0, 0.0])
    y_pred = np.array([1.0, 2.0])
    assert wape(y_true, y_pred) == 0.0


def test_rmse() -> None:
    assert rmse(np.array([1.0, 3.0]), np.array([2.0, 2.0])) == pytest.approx(1.0)


def test_mape_ignores_zero_actuals() -> None:
    assert mape(np.array([0.0, 10.0]), np.array([5.0, 11.0])) == pytest.approx(10.0)
    assert np.isnan(mape(np.array([0.0]), np.array([1.0])))


def test_rsq_constant_prediction_is_nan() -> None:
    assert np.isnan(rsq(np.array([1.0, 2.0, 3.0]), np.array([2.0, 2.0, 2.0])))


def test_default_metric_set_computes_all_names() -> None:
    metrics = default_metric_set()
    values = metrics.compute([1.0, 2.0, 3.0], [1.5, 2.0, 2.5])
    assert set(values) == {"mae", "mape", "smape", "wape", "rmse", "rsq"}
    assert metrics.minimize("rmse") is True
    assert metrics.minimize("rsq") is False


def test_metric_set_rejects_unknown_metric() -> None:
    with pytest.raises(ConfigurationError):
        default_metric_set().validate("accuracy")


@pytest.mark.parametrize(
    ("actual", "predicted"),
    [([], []), ([1.0, 2.0], [1.0]), ([1.0], [np.nan])],
)
def test_metric_set_compute_errors(actual, predicted) -> None:
    with pytest.raises(MetricError):
        default_metric_set().compute(actual, predicted)


def test_custom_metric_set() -> None:
    metrics = MetricSet([Metric("bias", lambda y, p: float(np.mean(p - y)))])
    assert metrics.names == ["bias"]
    assert metrics.compute([1.0, 1.0], [2.0, 2.0]) == {"bias": 1.0}
    with pytest.raises(ConfigurationError):
        MetricSet([])
