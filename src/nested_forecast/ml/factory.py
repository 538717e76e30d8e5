"""
Workflow factory.

This module turns workflow names into ready-to-fit workflows:

- default_models(): sklearn-compatible regressors keyed by name
- build_workflows(): baselines plus one ``MLForecastWorkflow`` per regressor
"""
from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from lightgbm import LGBMRegressor
from sklearn.ensemble import (
    ExtraTreesRegressor,
    HistGradientBoostingRegressor,
    RandomForestRegressor,
)
from sklearn.linear_model import ElasticNet, LinearRegression
from xgboost import XGBRegressor

from nested_forecast.config import ForecastSettings
from nested_forecast.errors import ConfigurationError
from nested_forecast.ml.workflows import (
    MLForecastWorkflow,
    NaiveWorkflow,
    SeasonalNaiveWorkflow,
    Workflow,
)

# ============================================================================
# Constants
# ============================================================================

# Per-series training sets are small, so these stay lighter than global models
DEFAULT_N_ESTIMATORS_RF = 100
DEFAULT_N_ESTIMATORS_ETR = 100
DEFAULT_N_ESTIMATORS_HGB = 100
DEFAULT_N_ESTIMATORS_LGBM = 100
DEFAULT_N_ESTIMATORS_XGB = 100
DEFAULT_LEARNING_RATE = 0.05
DEFAULT_MAX_DEPTH_TREE = 6
DEFAULT_MAX_DEPTH_XGB = 4
DEFAULT_MIN_SAMPLES_LEAF = 2

BASELINE_WORKFLOWS = ("naive", "snaive")


# ============================================================================
# Model Factory
# ============================================================================

def default_models(random_state: int) -> dict[str, Any]:
    """
    Create the catalogue of regression models available as workflows.

    Every estimator uses a single thread; parallelism happens across groups.

    Args:
        random_state: Random seed for reproducibility.

    Returns:
        Dictionary mapping model names to unfitted sklearn-compatible estimators.
    """
    return {
        "lin_reg": LinearRegression(),
        "enet": ElasticNet(
            alpha=0.001,
            l1_ratio=0.15,
            max_iter=5000,
            random_state=random_state,
        ),
        "rf": RandomForestRegressor(
            n_estimators=DEFAULT_N_ESTIMATORS_RF,
            random_state=random_state,
            n_jobs=1,
            max_depth=DEFAULT_MAX_DEPTH_TREE,
            min_samples_leaf=DEFAULT_MIN_SAMPLES_LEAF,
        ),
        "etr": ExtraTreesRegressor(
            n_estimators=DEFAULT_N_ESTIMATORS_ETR,
            random_state=random_state,
            n_jobs=1,
            max_depth=DEFAULT_MAX_DEPTH_TREE,
            min_samples_leaf=DEFAULT_MIN_SAMPLES_LEAF,
        ),
        "hgb": HistGradientBoostingRegressor(
            learning_rate=DEFAULT_LEARNING_RATE,
            max_iter=DEFAULT_N_ESTIMATORS_HGB,
            max_depth=DEFAULT_MAX_DEPTH_TREE,
            random_state=random_state,
        ),
        "lgbm": LGBMRegressor(
            n_estimators=DEFAULT_N_ESTIMATORS_LGBM,
            learning_rate=DEFAULT_LEARNING_RATE,
            random_state=random_state,
            n_jobs=1,
            verbose=-1,
            min_child_samples=5,
        ),
        "xgb": XGBRegressor(
            n_estimators=DEFAULT_N_ESTIMATORS_XGB,
            learning_rate=DEFAULT_LEARNING_RATE,
            max_depth=DEFAULT_MAX_DEPTH_XGB,
            random_state=random_state,
            n_jobs=1,
            objective="reg:squarederror",
            verbosity=0,
        ),
    }


def available_workflows(random_state: int = 0) -> list[str]:
    return [*BASELINE_WORKFLOWS, *default_models(random_state)]


def build_workflows(names: Sequence[str], settings: ForecastSettings) -> list[Workflow]:
    """
    Build workflows by name.

    Args:
        names: Workflow names; see ``available_workflows()``.
        settings: Frequency, lags, season length and random seed.

    Returns:
        Workflows in the order requested.

    Raises:
        ConfigurationError: A name is not known.
    """
    models = default_models(settings.random_state)
    workflows: list[Workflow] = []
    for name in names:
        if name == "naive":
            workflows.append(NaiveWorkflow())
        elif name == "snaive":
            workflows.append(SeasonalNaiveWorkflow(season_length=int(settings.season_length)))
        elif name in models:
            workflows.append(
                MLForecastWorkflow(
                    name=name,
                    model=models[name],
                    freq=settings.freq,
                    lags=list(settings.lags),
                )
            )
        else:
            raise ConfigurationError(
                f"unknown workflow {name!r}; expected one of "
                f"{', '.join(available_workflows(settings.random_state))}"
            )
    return workflows
