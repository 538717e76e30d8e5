from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

from nested_forecast.config import ControlConfig, get_settings
from nested_forecast.errors import ConfigurationError, FatalBatchError
from nested_forecast.logging_config import enable_progress_logging, setup_logging
from nested_forecast.ml.factory import available_workflows
from nested_forecast.ml.pipeline import NestedForecastPipeline

app = typer.Typer(help="Nested (per-group) forecasting CLI")


def _get_pipeline() -> NestedForecastPipeline:
    return NestedForecastPipeline()


@app.callback()
def main(log_level: Optional[str] = typer.Option(None, help="Override LOG_LEVEL")) -> None:
    settings = get_settings()
    setup_logging(level=log_level or settings.log_level, environment=settings.environment)


@app.command("models")
def list_models() -> None:
    for name in available_workflows():
        typer.echo(name)


@app.command("run")
def run(
    input_path: Optional[Path] = typer.Argument(None, help="Prepared parquet/CSV input"),
    model: Optional[list[str]] = typer.Option(None, "--model", "-m", help="Workflow name (repeatable)"),
    ensemble: Optional[list[str]] = typer.Option(None, "--ensemble", "-e", help="mean, median or weighted"),
    no_ensemble: bool = typer.Option(False, "--no-ensemble", help="Skip ensembling"),
    metric: Optional[str] = typer.Option(None, "--metric", help="Ranking and selection metric"),
    parallel: bool = typer.Option(False, "--parallel/--no-parallel"),
    workers: int = typer.Option(1, "--workers", "-w"),
    verbose: bool = False,
    fail_fast: bool = False,
) -> None:
    if verbose:
        enable_progress_logging()
    pipeline = _get_pipeline()
    try:
        control = ControlConfig.create(
            allow_parallel=parallel,
            worker_count=workers,
            verbose=verbose,
            fail_fast=fail_fast,
        )
        frame = pipeline.load_input(input_path)
        result = pipeline.run(
            frame,
            models=model or None,
            ensembles=[] if no_ensemble else (ensemble or None),
            control=control,
            metric=metric,
        )
    except (ConfigurationError, FatalBatchError, FileNotFoundError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(json.dumps(result["summary"], indent=2))


if __name__ == "__main__":
    app()
