from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd
import pytest

from nested_forecast.nested.table import GroupRecord, NestedTable, TrainTestSplit

N_TRAIN = 15
N_TEST = 5
N_FUTURE = 3


@dataclass(frozen=True)
class OffsetWorkflow:
    """Predicts the last training value plus a constant."""

    name: str
    offset: float = 0.0

    def fit(self, training: pd.DataFrame) -> float:
        return float(training["y"].iloc[-1]) + self.offset

    def predict(self, fitted: float, rows: pd.DataFrame) -> np.ndarray:
        return np.full(len(rows), fitted)


@dataclass(frozen=True)
class ScaledWorkflow:
    """Predicts the last training value times a factor."""

    name: str
    scale: float = 1.0

    def fit(self, training: pd.DataFrame) -> float:
        return float(training["y"].iloc[-1]) * self.scale

    def predict(self, fitted: float, rows: pd.DataFrame) -> np.ndarray:
        return np.full(len(rows), fitted)


@dataclass(frozen=True)
class FailAboveWorkflow:
    """Raises during fit when the last training value exceeds a threshold."""

    name: str = "fragile"
    threshold: float = 50.0

    def fit(self, training: pd.DataFrame) -> float:
        last = float(training["y"].iloc[-1])
        if last > self.threshold:
            raise RuntimeError(f"cannot fit level {last}")
        return last

    def predict(self, fitted: float, rows: pd.DataFrame) -> np.ndarray:
        return np.full(len(rows), fitted)


def make_group(group_id: str, base: float, slope: float) -> GroupRecord:
    n_actual = N_TRAIN + N_TEST
    dates = pd.date_range("2024-01-01", periods=n_actual + N_FUTURE, freq="D")
    actual = pd.DataFrame({"ds": dates[:n_actual], "y": base + slope * np.arange(n_actual)})
    future = pd.DataFrame({"ds": dates[n_actual:]})
    split = TrainTestSplit(
        training=actual.iloc[:N_TRAIN].reset_index(drop=True),
        testing=actual.iloc[N_TRAIN:].reset_index(drop=True),
    )
    return GroupRecord(
        group_id=group_id,
        actual_data=actual,
        future_data=future,
        train_test_split=split,
    )


@pytest.fixture()
def nested_table() -> NestedTable:
    # A: y = 10 + t, B: y = 100 + 2t
    return NestedTable(groups=(make_group("A", 10.0, 1.0), make_group("B", 100.0, 2.0)))


@pytest.fixture()
def workflows() -> list:
    # "offset" wins on A, "scaled" wins on B (by rmse)
    return [OffsetWorkflow("offset", 3.0), ScaledWorkflow("scaled", 1.05)]


@pytest.fixture()
def long_frame() -> pd.DataFrame:
    rows: list[dict[str, object]] = []
    rng = np.random.default_rng(123)
    dates = pd.date_range("2024-01-01", periods=40, freq="D")
    for unique_id, base in [("store_1", 50.0), ("store_2", 80.0)]:
        season = 5 * np.sin(2 * np.pi * np.arange(len(dates)) / 7)
        values = base + season + rng.normal(scale=0.5, size=len(dates))
        for position, (ds, value) in enumerate(zip(dates, values, strict=True)):
            if position < 30:
                split, y = "train", float(value)
            elif position < 37:
                split, y = "test", float(value)
            else:
                split, y = "future", np.nan
            rows.append({"unique_id": unique_id, "ds": ds, "y": y, "split": split})
    return pd.DataFrame(rows)
