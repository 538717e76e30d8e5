"""
Nested table data model.

A ``NestedTable`` is an ordered collection of ``GroupRecord`` objects, one per
time-series group, plus a model registry shared by all groups. Every stage
(fit, ensemble, select, refit) takes a table and returns a new one built with
``dataclasses.replace``; records are never mutated in place.

Row frames use the ``ds``/``y`` column convention. Forecast frames use
``ds``/``actual``/``predicted``.
"""
from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

import numpy as np
import pandas as pd

from nested_forecast.errors import ConfigurationError, GroupError

FORECAST_COLUMNS = ["ds", "actual", "predicted"]


class ModelKind(str, Enum):
    """Kind of entry in a group's model table."""
    SUBMODEL = "submodel"
    ENSEMBLE = "ensemble"


def empty_forecast_frame() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "ds": pd.Series(dtype="datetime64[ns]"),
            "actual": pd.Series(dtype=float),
            "predicted": pd.Series(dtype=float),
        }
    )


def forecast_frame(ds, predicted, actual=None) -> pd.DataFrame:
    """Build a ``ds``/``actual``/``predicted`` frame; ``actual`` defaults to NaN."""
    predicted = np.asarray(predicted, dtype=float)
    if actual is None:
        actual = np.full(len(predicted), np.nan)
    return pd.DataFrame(
        {
            "ds": pd.to_datetime(pd.Series(ds)).to_numpy(),
            "actual": np.asarray(actual, dtype=float),
            "predicted": predicted,
        }
    )


@dataclass(frozen=True, eq=False)
class TrainTestSplit:
    training: pd.DataFrame
    testing: pd.DataFrame


@dataclass(frozen=True, eq=False)
class ForecastLog:
    """Forecast rows produced by one model for one group."""
    model_id: int
    description: str
    kind: ModelKind
    forecast: pd.DataFrame


@dataclass(frozen=True)
class RegistryEntry:
    """Table-wide identity of a workflow family."""
    model_id: int
    description: str
    kind: ModelKind


@dataclass(frozen=True, eq=False)
class ModelEntry:
    model_id: int
    description: str
    kind: ModelKind
    workflow: Any
    fitted_model: Any = None
    test_forecast: pd.DataFrame = field(default_factory=empty_forecast_frame)
    test_accuracy: Mapping[str, float] = field(default_factory=dict)
    error: str | None = None
    selected: bool = False
    refitted: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def has_forecast(self) -> bool:
        return self.ok and not self.test_forecast.empty


@dataclass(frozen=True, eq=False)
class GroupRecord:
    """All state for one time-series group across the forecasting lifecycle."""
    group_id: str
    actual_data: pd.DataFrame | None
    future_data: pd.DataFrame | None
    train_test_split: TrainTestSplit | None
    model_table: tuple[ModelEntry, ...] = ()
    error: str | None = None
    test_forecast_log: tuple[ForecastLog, ...] = ()
    future_forecast_log: tuple[ForecastLog, ...] = ()

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def model_ids(self) -> list[int]:
        return [entry.model_id for entry in self.model_table]

    def get_model(self, model_id: int) -> ModelEntry | None:
        for entry in self.model_table:
            if entry.model_id == model_id:
                return entry
        return None

    def selected_models(self) -> list[ModelEntry]:
        return [entry for entry in self.model_table if entry.selected]

    def with_error(self, message: str) -> GroupRecord:
        return replace(self, error=message)


@dataclass(frozen=True, eq=False)
class NestedTable:
    """Ordered group records plus the table-wide model registry."""
    groups: tuple[GroupRecord, ...]
    registry: tuple[RegistryEntry, ...] = ()
    next_model_id: int = 1

    def __post_init__(self) -> None:
        ids = [group.group_id for group in self.groups]
        if len(ids) != len(set(ids)):
            raise ConfigurationError("group identifiers must be unique")

    def __len__(self) -> int:
        return len(self.groups)

    def __iter__(self) -> Iterator[GroupRecord]:
        return iter(self.groups)

    @property
    def group_ids(self) -> list[str]:
        return [group.group_id for group in self.groups]

    def get_group(self, group_id: str) -> GroupRecord:
        for group in self.groups:
            if group.group_id == group_id:
                return group
        raise KeyError(group_id)

    def registry_entry(self, model_id: int) -> RegistryEntry | None:
        for entry in self.registry:
            if entry.model_id == model_id:
                return entry
        return None

    def submodel_id_for(self, description: str) -> int | None:
        for entry in self.registry:
            if entry.kind is ModelKind.SUBMODEL and entry.description == description:
                return entry.model_id
        return None

    def register(self, description: str, kind: ModelKind) -> tuple[int, NestedTable]:
        """Allocate the next model id and return it with the extended table."""
        model_id = self.next_model_id
        table = replace(
            self,
            registry=(*self.registry, RegistryEntry(model_id, description, kind)),
            next_model_id=model_id + 1,
        )
        return model_id, table

    def with_groups(self, groups: Sequence[GroupRecord]) -> NestedTable:
        """Swap in new group records; the group identifiers must not change."""
        groups = tuple(groups)
        if [group.group_id for group in groups] != self.group_ids:
            raise GroupError("stage output changed the set or order of groups")
        return replace(self, groups=groups)


def _rows(frame: pd.DataFrame, columns: list[str]) -> pd.DataFrame:
    existing = [col for col in columns if col in frame.columns]
    return frame[existing].sort_values("ds").reset_index(drop=True)


def nest_frames(
    actual: pd.DataFrame,
    future: pd.DataFrame,
    training: pd.DataFrame,
    testing: pd.DataFrame,
    id_col: str = "unique_id",
) -> NestedTable:
    """
    Group prepared long frames into a ``NestedTable``.

    Args:
        actual: Full history (``id_col``, ``ds``, ``y``).
        future: Future horizon timestamps (``id_col``, ``ds``).
        training: Training partition rows.
        testing: Testing partition rows.
        id_col: Column holding the group identifier.

    Returns:
        Table with one ``GroupRecord`` per id, in order of first appearance
        in ``actual``. Groups missing a partition get ``train_test_split=None``.
    """
    if actual.empty:
        raise ConfigurationError("actual data is empty")
    frames = {
        "future": future.groupby(id_col, sort=False),
        "training": training.groupby(id_col, sort=False),
        "testing": testing.groupby(id_col, sort=False),
    }
    keys = {name: set(grouped.groups) for name, grouped in frames.items()}

    def _part(name: str, group_id: Any, columns: list[str]) -> pd.DataFrame | None:
        if group_id not in keys[name]:
            return None
        return _rows(frames[name].get_group(group_id), columns)

    groups: list[GroupRecord] = []
    for group_id, rows in actual.groupby(id_col, sort=False):
        train_rows = _part("training", group_id, ["ds", "y"])
        test_rows = _part("testing", group_id, ["ds", "y"])
        split = None
        if train_rows is not None and test_rows is not None:
            split = TrainTestSplit(training=train_rows, testing=test_rows)
        groups.append(
            GroupRecord(
                group_id=str(group_id),
                actual_data=_rows(rows, ["ds", "y"]),
                future_data=_part("future", group_id, ["ds"]),
                train_test_split=split,
            )
        )
    return NestedTable(groups=tuple(groups))
