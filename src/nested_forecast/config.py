"""
Application configuration using Pydantic Settings.

``ControlConfig`` is passed explicitly to every fit/refit call. ``AppSettings``
gathers environment-driven defaults for the pipeline and CLI; the engines
themselves never read it.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from nested_forecast.errors import ConfigurationError

EnsembleType = Literal["mean", "median", "weighted"]


class ControlConfig(BaseModel):
    """Execution controls for a single fit or refit call."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    allow_parallel: bool = False
    worker_count: PositiveInt = 1
    verbose: bool = False
    fail_fast: bool = False

    @classmethod
    def create(cls, **kwargs: Any) -> ControlConfig:
        """Build a control config, reporting bad values as ``ConfigurationError``."""
        try:
            return cls(**kwargs)
        except ValidationError as exc:
            raise ConfigurationError(f"invalid control config: {exc}") from exc


class PathsSettings(BaseModel):
    """Configuration for file paths."""

    project_root: Path = Path(".")
    input_path: Path = Path("data/processed/nested_input.parquet")
    report_dir: Path = Path("artifacts/reports")

    def all_dirs(self) -> list[Path]:
        """Return all configured directories."""
        return [self.input_path.parent, self.report_dir]


class ForecastSettings(BaseModel):
    """Configuration for the nested forecasting run."""

    freq: str = "D"
    season_length: PositiveInt = 7
    lags: list[PositiveInt] = Field(default_factory=lambda: [1, 2, 3, 7])
    random_state: int = 42
    models: list[str] = Field(default_factory=lambda: ["naive", "snaive", "lin_reg"])
    ensembles: list[EnsembleType] = Field(default_factory=lambda: ["mean"])
    loadings: list[float] = Field(default_factory=list)
    selection_metric: str = "rmse"
    filter_test_forecasts: bool = True

    @field_validator("models", mode="before")
    @classmethod
    def split_comma_separated(cls, v):
        """Accept ``"naive,lin_reg"`` as well as a list."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v


class AppSettings(BaseSettings):
    """Main application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    environment: Literal["dev", "test", "prod"] = "dev"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    control: ControlConfig = ControlConfig()
    forecast: ForecastSettings = ForecastSettings()
    paths: PathsSettings = PathsSettings()

    def resolved_path(self, path: Path) -> Path:
        """Resolve a path relative to project root."""
        if path.is_absolute():
            return path
        return (self.paths.project_root / path).resolve()


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """Get cached application settings."""
    return AppSettings()
