from __future__ import annotations

import math
from datetime import datetime
from typing import Literal

import pandas as pd
from pydantic import BaseModel, Field, NonNegativeInt, PositiveInt, ValidationError, field_validator

from nested_forecast.errors import ConfigurationError

ACCURACY_BASE_COLUMNS = {"group_id", "model_id", "description", "kind", "selected", "error"}


class InputRecord(BaseModel):
    unique_id: str
    ds: datetime
    y: float | None = None
    split: Literal["train", "test", "future"]

    @field_validator("unique_id")
    @classmethod
    def non_empty(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("value cannot be empty")
        return stripped

    @field_validator("y", mode="before")
    @classmethod
    def nan_to_none(cls, value):
        if isinstance(value, float) and math.isnan(value):
            return None
        return value


class AccuracyRecord(BaseModel):
    group_id: str
    model_id: PositiveInt
    description: str
    kind: Literal["submodel", "ensemble"]
    selected: bool = False
    error: str | None = None
    metrics: dict[str, float] = Field(default_factory=dict)


class ForecastRecord(BaseModel):
    group_id: str
    model_id: PositiveInt
    description: str
    ds: datetime
    predicted: float
    actual: float | None = None


class RunSummary(BaseModel):
    groups: NonNegativeInt
    group_errors: NonNegativeInt
    model_errors: NonNegativeInt
    registered_models: list[str]
    selected_models: dict[str, str]
    future_rows: NonNegativeInt


def validate_input_rows(df: pd.DataFrame, sample_size: int = 500) -> None:
    if df.empty:
        raise ConfigurationError("input frame is empty")
    missing = {"unique_id", "ds", "split"} - set(df.columns)
    if missing:
        raise ConfigurationError(f"input frame is missing columns: {sorted(missing)}")
    sample = df.head(sample_size)
    errors: list[ValidationError] = []
    for row in sample.to_dict(orient="records"):
        try:
            InputRecord.model_validate(row)
        except ValidationError as exc:
            errors.append(exc)
    if errors:
        raise ConfigurationError(
            f"input row validation failed for {len(errors)} rows: {errors[0].errors()[0]['msg']}"
        )


def _optional(value) -> float | None:
    if value is None or pd.isna(value):
        return None
    return float(value)


def accuracy_records_from_frame(df: pd.DataFrame) -> list[AccuracyRecord]:
    metric_cols = [col for col in df.columns if col not in ACCURACY_BASE_COLUMNS]
    records: list[AccuracyRecord] = []
    for row in df.to_dict(orient="records"):
        error = row.get("error")
        records.append(
            AccuracyRecord(
                group_id=str(row["group_id"]),
                model_id=int(row["model_id"]),
                description=str(row["description"]),
                kind=row["kind"],
                selected=bool(row["selected"]),
                error=None if error is None or pd.isna(error) else str(error),
                metrics={
                    col: float(row[col]) for col in metric_cols if _optional(row[col]) is not None
                },
            )
        )
    return records


def forecast_records_from_frame(df: pd.DataFrame) -> list[ForecastRecord]:
    return [
        ForecastRecord(
            group_id=str(row["group_id"]),
            model_id=int(row["model_id"]),
            description=str(row["description"]),
            ds=pd.Timestamp(row["ds"]).to_pydatetime(),
            predicted=float(row["predicted"]),
            actual=_optional(row.get("actual")),
        )
        for row in df.to_dict(orient="records")
    ]
