from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pandas as pd

from nested_forecast.errors import ConfigurationError

PARQUET_SUFFIXES = {".parquet", ".pq"}

# Columns that hold model ids but are empty for group-level rows
NULLABLE_ID_COLUMNS = ("model_id",)


def ensure_directory(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def save_parquet(df: pd.DataFrame, output_path: Path) -> Path:
    """Write ``df`` without its index, storing partially empty id columns as ``Int64``."""
    ensure_directory(output_path.parent)
    nullable = {column: "Int64" for column in NULLABLE_ID_COLUMNS if column in df.columns}
    df.astype(nullable).to_parquet(output_path, index=False)
    return output_path


def load_frame(input_path: Path) -> pd.DataFrame:
    """Read a long-format input file; CSV ``ds`` columns are parsed as dates."""
    suffix = input_path.suffix.lower()
    if suffix == ".csv":
        return pd.read_csv(input_path, parse_dates=["ds"])
    if suffix in PARQUET_SUFFIXES:
        return pd.read_parquet(input_path)
    raise ConfigurationError(f"unsupported input format {suffix or input_path.name!r}")


def save_json(payload: dict[str, Any], output_path: Path) -> Path:
    ensure_directory(output_path.parent)
    output_path.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
    return output_path
