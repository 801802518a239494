from __future__ import annotations

import csv
import hashlib
import logging
from pathlib import Path
from typing import Dict, Iterable, Tuple

import pandas as pd

from .samples import SampleSet

logger = logging.getLogger(__name__)


def _sniff_dialect(sample: str) -> Tuple[str, str]:
    try:
        dialect = csv.Sniffer().sniff(sample, delimiters=[",", ";", "\t", "|"])
        return dialect.delimiter, dialect.quotechar
    except csv.Error:
        return ",", '"'


def read_csv_robust(path: str | Path) -> pd.DataFrame:
    """Read CSV with delimiter/encoding detection."""
    path = Path(path)
    encodings = ["utf-8-sig", "utf-8", "latin-1"]
    last_err: Exception | None = None
    for enc in encodings:
        try:
            sample = path.read_text(encoding=enc)[:4096]
            sep, quote = _sniff_dialect(sample)
            return pd.read_csv(path, encoding=enc, sep=sep, quotechar=quote, engine="python")
        except (UnicodeDecodeError, pd.errors.ParserError) as err:
            last_err = err
    raise RuntimeError(f"Failed to read CSV: {path}") from last_err


def file_hash(path: Path) -> str:
    hasher = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(8192), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def validate_columns(df: pd.DataFrame, required: Iterable[str]) -> None:
    missing = [col for col in required if col not in df.columns]
    if missing:
        available = ", ".join(sorted(str(col) for col in df.columns))
        raise KeyError(
            "Missing required columns: "
            f"{missing}. Available columns: [{available}]. "
            "Revise config mapping."
        )


def load_data(config: Dict[str, object]) -> Tuple[pd.DataFrame, Dict[str, object]]:
    data_cfg = config["data"]
    path = Path(data_cfg["path"])
    if not path.exists():
        raise FileNotFoundError(f"Input data file not found: {path}")

    df = read_csv_robust(path)
    metadata = {
        "input_path": str(path),
        "input_hash": file_hash(path),
        "input_shape": [int(df.shape[0]), int(df.shape[1])],
        "columns": [str(col) for col in df.columns],
    }
    validate_columns(df, [data_cfg["x_col"], data_cfg["y_col"], data_cfg["value_col"]])
    return df, metadata


def standardize_columns(df: pd.DataFrame, config: Dict[str, object]) -> pd.DataFrame:
    data_cfg = config["data"]
    mapping = {
        data_cfg["x_col"]: "x",
        data_cfg["y_col"]: "y",
        data_cfg["value_col"]: "value",
    }
    return df.rename(columns=mapping)


def load_samples(config: Dict[str, object]) -> Tuple[SampleSet, Dict[str, object]]:
    """Load the configured CSV into a sample set, replacing no-data markers."""
    raw_df, metadata = load_data(config)
    df = standardize_columns(raw_df, config)
    nodata = config["data"].get("nodata_values") or []
    if nodata:
        df = df.replace(list(nodata), float("nan"))
    samples = SampleSet.from_frame(df, "x", "y", "value")
    metadata["n_samples"] = len(samples)
    logger.info("Loaded %d samples from %s", len(samples), metadata["input_path"])
    return samples, metadata
