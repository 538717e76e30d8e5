from __future__ import annotations

import numpy as np
import pytest
from conftest import OffsetWorkflow

from nested_forecast.errors import ConfigurationError
from nested_forecast.nested.ensemble import (
    EnsembleFit,
    EnsembleWorkflow,
    combine,
    ensemble_average,
    ensemble_weighted,
)
from nested_forecast.nested.fit import fit_nested
from nested_forecast.nested.table import ModelKind, NestedTable


@pytest.fixture()
def fitted(nested_table: NestedTable, workflows) -> NestedTable:
    return fit_nested(nested_table, workflows)


def test_combine_methods() -> None:
    matrix = np.array([[1.0, 2.0], [3.0, 4.0], [8.0, 9.0]])
    assert combine(matrix, "mean").tolist() == [4.0, 5.0]
    assert combine(matrix, "median").tolist() == [3.0, 4.0]
    assert combine(matrix, "weighted", [0.5, 0.5, 0.0]).tolist() == [2.0, 3.0]


def test_mean_ensemble_appends_shared_model_id(fitted: NestedTable) -> None:
    result = ensemble_average(fitted, type="mean")

    assert result.next_model_id == 4
    assert result.registry[-1].kind is ModelKind.ENSEMBLE
    for group in result:
        entry = group.get_model(3)
        assert entry is not None
        assert entry.kind is ModelKind.ENSEMBLE
        assert entry.description == "ENSEMBLE (MEAN): 2 MODELS"
        assert "rmse" in entry.test_accuracy
        assert group.model_ids == [1, 2, 3]
        assert [log.model_id for log in group.test_forecast_log] == [1, 2, 3]

    predicted_a = result.get_group("A").get_model(3).test_forecast["predicted"]
    assert predicted_a.tolist() == pytest.approx([26.1] * 5)


def test_mean_of_identical_forecasts_is_fixed_point(nested_table: NestedTable) -> None:
    fitted = fit_nested(nested_table, [OffsetWorkflow("one", 1.0), OffsetWorkflow("two", 1.0)])
    result = ensemble_average(fitted, type="mean")

    for group in result:
        member = group.get_model(1).test_forecast
        ensemble = group.get_model(3).test_forecast
        assert ensemble["predicted"].tolist() == member["predicted"].tolist()
        assert ensemble["ds"].tolist() == member["ds"].tolist()


def test_median_ensemble(fitted: NestedTable) -> None:
    result = ensemble_average(fitted, type="median")
    entry = result.get_group("B").get_model(3)
    assert entry.description == "ENSEMBLE (MEDIAN): 2 MODELS"
    assert entry.test_forecast["predicted"].tolist() == pytest.approx([132.7] * 5)


def test_repeated_ensemble_gets_new_id(fitted: NestedTable) -> None:
    once = ensemble_average(fitted)
    twice = ensemble_average(once, model_ids=[1, 2])
    assert twice.get_group("A").model_ids == [1, 2, 3, 4]


def test_weighted_ensemble_assigns_loadings_by_rank(fitted: NestedTable) -> None:
    result = ensemble_weighted(fitted, loadings=[2, 1], metric="rmse")

    workflow_a = result.get_group("A").get_model(3).workflow
    workflow_b = result.get_group("B").get_model(3).workflow
    assert isinstance(workflow_a, EnsembleWorkflow)
    # best model differs per group, but it always gets the larger weight
    assert workflow_a.member_ids == (1, 2)
    assert workflow_b.member_ids == (2, 1)
    assert workflow_a.weights == pytest.approx((2 / 3, 1 / 3))
    assert workflow_b.weights == pytest.approx((2 / 3, 1 / 3))

    predicted_a = result.get_group("A").get_model(3).test_forecast["predicted"]
    predicted_b = result.get_group("B").get_model(3).test_forecast["predicted"]
    assert predicted_a.tolist() == pytest.approx([2 / 3 * 27.0 + 1 / 3 * 25.2] * 5)
    assert predicted_b.tolist() == pytest.approx([2 / 3 * 134.4 + 1 / 3 * 131.0] * 5)


def test_weighted_ensemble_validates_eagerly(fitted: NestedTable) -> None:
    with pytest.raises(ConfigurationError):
        ensemble_weighted(fitted, loadings=[1], metric="rmse")
    with pytest.raises(ConfigurationError):
        ensemble_weighted(fitted, loadings=[1, 0], metric="rmse")
    with pytest.raises(ConfigurationError):
        ensemble_weighted(fitted, loadings=[2, 1], metric="not_a_metric")
    with pytest.raises(ConfigurationError):
        ensemble_average(fitted, model_ids=[1, 99])
    with pytest.raises(ConfigurationError):
        ensemble_average(fitted, type="max")


def test_drop_submodels_keeps_members_inside_ensemble(fitted: NestedTable) -> None:
    result = ensemble_average(fitted, keep_submodels=False)

    for group in result:
        assert group.model_ids == [3]
        assert [log.model_id for log in group.test_forecast_log] == [3]
        fit_state = group.get_model(3).fitted_model
        assert isinstance(fit_state, EnsembleFit)
        assert fit_state.member_ids == (1, 2)
        assert len(fit_state.member_forecasts) == 2


def test_group_without_contributors_gets_error(fitted: NestedTable) -> None:
    group_b = fitted.get_group("B")
    stripped = group_b.__class__(
        group_id="B",
        actual_data=group_b.actual_data,
        future_data=group_b.future_data,
        train_test_split=group_b.train_test_split,
    )
    table = fitted.with_groups([fitted.get_group("A"), stripped])

    result = ensemble_average(table)

    assert result.get_group("A").get_model(3) is not None
    assert result.get_group("B").error is not None
    assert "no contributing models" in result.get_group("B").error
