"""
Error taxonomy for nested forecasting.

Model- and group-level failures are captured into the returned table; only
configuration problems and fail-fast aborts reach the caller.
"""
from __future__ import annotations


class NestedForecastError(Exception):
    """Base class for all package errors."""


class ModelError(NestedForecastError):
    """One workflow's fit, predict or metric step failed."""


class TrainingError(ModelError):
    """A workflow could not be trained on the supplied rows."""


class PredictionError(ModelError):
    """A fitted workflow could not produce predictions."""


class MetricError(ModelError):
    """Accuracy metrics could not be computed."""


class GroupError(NestedForecastError):
    """A whole group's stage attempt failed."""


class ConfigurationError(NestedForecastError, ValueError):
    """Invalid control or ensemble parameters."""


class FatalBatchError(NestedForecastError):
    """A group failed while running in fail-fast mode."""

    def __init__(self, group_id: str, message: str) -> None:
        super().__init__(f"group {group_id!r}: {message}")
        self.group_id = group_id


def describe_exception(exc: BaseException) -> str:
    """Render an exception the way it is stored in error fields."""
    return f"{type(exc).__name__}: {exc}"
