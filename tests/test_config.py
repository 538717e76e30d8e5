from pathlib import Path

import pytest
from pydantic import ValidationError

from nested_forecast.config import AppSettings, ControlConfig, ForecastSettings
from nested_forecast.errors import ConfigurationError


def test_settings_resolves_relative_path(tmp_path: Path) -> None:
    settings = AppSettings(paths={"project_root": tmp_path})
    resolved = settings.resolved_path(Path("artifacts/reports"))
    assert resolved == (tmp_path / "artifacts/reports").resolve()


def test_all_dirs_contains_expected_defaults() -> None:
    settings = AppSettings()
    dirs = settings.paths.all_dirs()
    assert settings.paths.report_dir in dirs
    assert settings.paths.input_path.parent in dirs


def test_control_defaults_are_sequential() -> None:
    control = ControlConfig()
    assert control.allow_parallel is False
    assert control.worker_count == 1
    assert control.fail_fast is False


def test_control_is_frozen() -> None:
    control = ControlConfig()
    with pytest.raises(ValidationError):
        control.worker_count = 4


def test_control_create_reports_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        ControlConfig.create(worker_count=0)
    with pytest.raises(ConfigurationError):
        ControlConfig.create(workers=2)


def test_models_accept_comma_separated_string() -> None:
    settings = ForecastSettings(models="naive, lin_reg")
    assert settings.models == ["naive", "lin_reg"]


def test_control_reads_nested_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CONTROL__WORKER_COUNT", "4")
    monkeypatch.setenv("CONTROL__ALLOW_PARALLEL", "true")
    settings = AppSettings()
    assert settings.control.worker_count == 4
    assert settings.control.allow_parallel is True
