from __future__ import annotations

import pandas as pd
import pytest

from nested_forecast.errors import ConfigurationError, GroupError
from nested_forecast.nested.table import ModelKind, NestedTable, forecast_frame, nest_frames


def test_nest_frames_groups_by_id() -> None:
    dates = pd.date_range("2024-01-01", periods=6, freq="D")
    actual = pd.DataFrame(
        {"unique_id": ["b"] * 4 + ["a"] * 4, "ds": list(dates[:4]) * 2, "y": range(8)}
    )
    training = actual[actual["ds"] < dates[3]]
    testing = actual[(actual["ds"] == dates[3]) & (actual["unique_id"] == "b")]
    future = pd.DataFrame({"unique_id": ["a", "b"], "ds": [dates[4], dates[4]]})

    table = nest_frames(actual, future, training, testing)

    assert table.group_ids == ["b", "a"]
    group_b = table.get_group("b")
    assert list(group_b.actual_data.columns) == ["ds", "y"]
    assert len(group_b.train_test_split.training) == 3
    assert len(group_b.train_test_split.testing) == 1
    assert list(group_b.future_data.columns) == ["ds"]
    # "a" has no testing rows
    assert table.get_group("a").train_test_split is None


def test_nest_frames_rejects_empty_actual() -> None:
    empty = pd.DataFrame(columns=["unique_id", "ds", "y"])
    with pytest.raises(ConfigurationError):
        nest_frames(empty, empty, empty, empty)


def test_duplicate_group_ids_rejected(nested_table: NestedTable) -> None:
    with pytest.raises(ConfigurationError):
        NestedTable(groups=(nested_table.groups[0], nested_table.groups[0]))


def test_register_allocates_monotonic_ids(nested_table: NestedTable) -> None:
    first_id, table = nested_table.register("naive", ModelKind.SUBMODEL)
    second_id, table = table.register("ENSEMBLE (MEAN): 1 MODELS", ModelKind.ENSEMBLE)

    assert (first_id, second_id) == (1, 2)
    assert table.next_model_id == 3
    assert table.submodel_id_for("naive") == 1
    assert table.submodel_id_for("ENSEMBLE (MEAN): 1 MODELS") is None
    assert nested_table.registry == ()


def test_with_groups_preserves_group_identity(nested_table: NestedTable) -> None:
    with pytest.raises(GroupError):
        nested_table.with_groups(list(reversed(nested_table.groups)))
    with pytest.raises(GroupError):
        nested_table.with_groups(nested_table.groups[:1])


def test_forecast_frame_defaults_actual_to_nan() -> None:
    frame = forecast_frame(pd.date_range("2024-01-01", periods=2), [1.0, 2.0])
    assert list(frame.columns) == ["ds", "actual", "predicted"]
    assert frame["actual"].isna().all()
