from __future__ import annotations

from pathlib import Path

import pandas as pd
from typer.testing import CliRunner

from nested_forecast import cli
from nested_forecast.errors import ConfigurationError
from nested_forecast.ml.pipeline import NestedForecastPipeline


class DummyPipeline:
    def __init__(self) -> None:
        self.calls: list[dict[str, object]] = []

    def load_input(self, path: Path | None = None):  # noqa: ARG002
        return pd.DataFrame({"unique_id": ["A"], "ds": [pd.Timestamp("2024-01-01")]})

    def run(self, frame, models=None, ensembles=None, control=None, metric=None):  # noqa: ARG002
        self.calls.append(
            {"models": models, "ensembles": ensembles, "control": control, "metric": metric}
        )
        if models == ["prophet"]:
            raise ConfigurationError("unknown workflow 'prophet'")
        return {"summary": {"groups": 1}}


def test_cli_commands(monkeypatch) -> None:
    dummy = DummyPipeline()
    monkeypatch.setattr(cli, "_get_pipeline", lambda: dummy)
    runner = CliRunner()

    result = runner.invoke(cli.app, ["models"])
    assert result.exit_code == 0
    assert "naive" in result.output

    result = runner.invoke(
        cli.app,
        [
            "run", "-m", "naive", "-m", "snaive", "--ensemble", "median",
            "--parallel", "--workers", "2", "--metric", "mae",
        ],
    )
    assert result.exit_code == 0
    assert '"groups": 1' in result.output
    call = dummy.calls[-1]
    assert call["models"] == ["naive", "snaive"]
    assert call["ensembles"] == ["median"]
    assert call["control"].allow_parallel is True
    assert call["control"].worker_count == 2
    assert call["metric"] == "mae"

    result = runner.invoke(cli.app, ["run", "--no-ensemble"])
    assert result.exit_code == 0
    assert dummy.calls[-1]["ensembles"] == []
    assert dummy.calls[-1]["models"] is None
    assert dummy.calls[-1]["metric"] is None


def test_cli_reports_configuration_errors(monkeypatch) -> None:
    monkeypatch.setattr(cli, "_get_pipeline", lambda: DummyPipeline())
    runner = CliRunner()

    assert runner.invoke(cli.app, ["run", "--workers", "0"]).exit_code == 1
    assert runner.invoke(cli.app, ["run", "-m", "prophet"]).exit_code == 1


class MalformedInputPipeline(DummyPipeline):
    def run(self, frame, models=None, ensembles=None, control=None, metric=None):  # noqa: ARG002
        NestedForecastPipeline.prepare_nested_table(frame)
        return {"summary": {}}


def test_cli_reports_malformed_input(monkeypatch) -> None:
    monkeypatch.setattr(cli, "_get_pipeline", lambda: MalformedInputPipeline())
    runner = CliRunner()

    result = runner.invoke(cli.app, ["run"])

    assert result.exit_code == 1
    assert "missing columns" in result.output
    assert result.exception is None or isinstance(result.exception, SystemExit)
