from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Tuple

import numpy as np
import pandas as pd

from .config import (
    build_estimation_config,
    build_grid_spec,
    load_config,
    save_config,
)
from .driver import interpolate
from .grid import export_grid_to_csv
from .io import load_samples
from .reporting import RunPaths, create_run_dir, plot_surface, save_figure, save_table, write_manifest
from .samples import SampleSet
from .transforms import NormalScoreTransform, normal_score_transform
from .validation import cross_validate

logger = logging.getLogger(__name__)

STAGES = ("all", "setup", "grid", "estimation", "validation", "report")


def _setup_logging(run_paths: RunPaths) -> Path:
    log_path = run_paths.log_path("pipeline.log")
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        handlers=[logging.FileHandler(log_path, encoding="utf-8"), logging.StreamHandler()],
        force=True,
    )
    logger.info("Log path: %s", log_path)
    return log_path


def basic_stats(values: np.ndarray) -> Dict[str, float]:
    series = pd.Series(values, dtype=float)
    return {
        "count": int(series.count()),
        "mean": float(series.mean()),
        "std": float(series.std(ddof=1)),
        "min": float(series.min()),
        "max": float(series.max()),
    }


def _prepare_samples(config: Dict[str, object]) -> Tuple[SampleSet, Dict[str, object], NormalScoreTransform | None]:
    samples, metadata = load_samples(config)
    if not config["transforms"]["normal_score"]["enabled"]:
        return samples, metadata, None
    transform = normal_score_transform(samples.values)
    logger.info("Applying normal-score transform to %d samples.", len(samples))
    return samples.with_values(transform.transform(samples.values)), metadata, transform


def run_setup_check(config: Dict[str, object], run_paths: RunPaths) -> Dict[str, object]:
    samples, metadata, transform = _prepare_samples(config)
    stats = basic_stats(samples.values)
    stats["normal_score"] = transform is not None
    save_table(pd.DataFrame([stats]), run_paths, "samples_summary.csv", index=False)
    save_table(samples.to_frame().head(20), run_paths, "samples_head.csv", index=False)
    return {"stats": stats, "metadata": metadata}


def run_grid(config: Dict[str, object], run_paths: RunPaths) -> Dict[str, object]:
    samples, _metadata, _transform = _prepare_samples(config)
    spec = build_grid_spec(config, samples)
    export_grid_to_csv(spec, str(run_paths.table_path("grid.csv")))
    logger.info("Grid %dx%d cells, origin (%g, %g), cell (%g, %g).", spec.nx, spec.ny, spec.xmin, spec.ymin, spec.xsize, spec.ysize)
    return {"grid_spec": spec.to_dict(), "cells": spec.ncells}


def run_estimation(config: Dict[str, object], run_paths: RunPaths) -> Dict[str, object]:
    samples, _metadata, transform = _prepare_samples(config)
    spec = build_grid_spec(config, samples)
    estimation = build_estimation_config(config)
    if estimation.model is not None:
        model_path = run_paths.model_path("variogram_model.json")
        model_path.write_text(json.dumps(estimation.model.to_dict(), indent=2), encoding="utf-8")

    exec_cfg = config["execution"]
    surface = interpolate(
        samples,
        spec,
        estimation,
        n_workers=int(exec_cfg["n_workers"]),
        chunk_size=exec_cfg["chunk_size"],
    )

    out = surface.to_frame()
    if transform is not None and config["transforms"]["normal_score"]["back_transform"]:
        out["estimate_ns"] = out["estimate"]
        out["estimate"] = transform.back_transform(out["estimate_ns"])
    save_table(out, run_paths, "estimates.csv", index=False)
    save_table(surface.summary(), run_paths, "estimates_summary.csv")
    if surface.n_failed:
        save_table(surface.failed_cells(), run_paths, "failed_cells.csv", index=False)

    save_figure(plot_surface(surface, "estimate", samples), run_paths, "estimate.png", dpi=150)
    if estimation.method == "ordinary_kriging":
        save_figure(plot_surface(surface, "variance", samples), run_paths, "variance.png", dpi=150)
    return {
        "method": estimation.method,
        "cells": len(surface),
        "failed": surface.n_failed,
        "flagged": surface.n_flagged,
    }


def run_validation(config: Dict[str, object], run_paths: RunPaths) -> Dict[str, object]:
    cv_cfg = config["validation"]
    if not cv_cfg["enabled"]:
        return {"status": "disabled"}
    samples, _metadata, _transform = _prepare_samples(config)
    estimation = build_estimation_config(config)
    cv_result = cross_validate(samples, estimation, method=cv_cfg["cv"], n_splits=cv_cfg["kfold_splits"])
    save_table(cv_result.data, run_paths, "validation_predictions.csv", index=False)
    save_table(pd.DataFrame([cv_result.metrics]), run_paths, "validation_metrics.csv", index=False)
    logger.info("Cross-validation (%s): %s", cv_cfg["cv"], cv_result.metrics)
    return {"metrics": cv_result.metrics}


def run_reporting(
    config: Dict[str, object],
    run_paths: RunPaths,
    metadata: Dict[str, object],
    metrics: Dict[str, object],
) -> Dict[str, object]:
    manifest_path, _ = write_manifest(
        run_paths,
        config={
            "config": config,
            "input": metadata,
            "metrics": metrics,
        },
    )
    return {"manifest": str(manifest_path)}


def run_pipeline(config_path: str, stage: str = "all") -> RunPaths:
    if stage not in STAGES:
        raise ValueError(f"stage must be one of {STAGES}")
    config = load_config(config_path)
    run_name = config["outputs"]["run_name"]
    run_paths = create_run_dir(config["outputs"]["base_dir"], prefix="run" if run_name == "auto" else run_name)
    _setup_logging(run_paths)
    save_config(config, run_paths.model_path("config_effective.yaml"))
    logger.info("Run directory: %s", run_paths.base)

    metadata: Dict[str, object] = {}
    metrics: Dict[str, object] = {}

    if stage in {"all", "setup"}:
        result = run_setup_check(config, run_paths)
        metadata.update(result.get("metadata", {}))
        metrics["setup"] = result["stats"]

    if stage in {"all", "grid"}:
        metrics["grid"] = run_grid(config, run_paths)

    if stage in {"all", "estimation"}:
        metrics["estimation"] = run_estimation(config, run_paths)

    if stage in {"all", "validation"}:
        metrics["validation"] = run_validation(config, run_paths)

    if stage in {"all", "report"}:
        run_reporting(config, run_paths, metadata, metrics)

    logger.info("Pipeline completed")
    return run_paths
