import json
import logging

import numpy as np
import pandas as pd
import pytest
import yaml

from geostats_interp.reporting import create_run_dir
from geostats_interp.run import main
from geostats_interp.steps import run_pipeline


@pytest.fixture(autouse=True)
def restore_root_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def config_path(tmp_path):
    rng = np.random.default_rng(5)
    xy = rng.uniform(0, 200, size=(40, 2))
    values = np.exp(0.01 * xy[:, 0] + rng.normal(0, 0.2, size=40))
    data_path = tmp_path / "samples.csv"
    pd.DataFrame({"X": xy[:, 0], "Y": xy[:, 1], "grade": values}).to_csv(data_path, index=False)

    config = {
        "data": {"path": str(data_path), "x_col": "X", "y_col": "Y", "value_col": "grade"},
        "transforms": {"normal_score": {"enabled": True, "back_transform": True}},
        "grid": {"xsize": 25.0, "ysize": 25.0},
        "variogram": {"nugget": 0.1, "structures": [{"type": "spherical", "sill": 0.9, "range": 120.0}]},
        "search": {"max_distance": 150.0, "max_samples": 16},
        "validation": {"enabled": True, "cv": "kfold", "kfold_splits": 3},
        "execution": {"n_workers": 2},
        "outputs": {"base_dir": str(tmp_path / "outputs"), "run_name": "test"},
    }
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(config), encoding="utf-8")
    return path


def test_full_pipeline(config_path):
    run_paths = run_pipeline(str(config_path))

    for name in ("samples_summary.csv", "grid.csv", "estimates.csv", "validation_metrics.csv"):
        assert run_paths.table_path(name).exists(), name
    assert run_paths.figure_path("estimate.png").exists()
    assert run_paths.figure_path("variance.png").exists()
    assert run_paths.model_path("config_effective.yaml").exists()
    assert run_paths.log_path("pipeline.log").exists()

    model = json.loads(run_paths.model_path("variogram_model.json").read_text(encoding="utf-8"))
    assert model["structures"][0]["type"] == "spherical"

    estimates = pd.read_csv(run_paths.table_path("estimates.csv"))
    assert {"ix", "iy", "x", "y", "estimate", "estimate_ns", "variance", "status"} <= set(estimates.columns)
    valid = estimates[estimates["valid"]]
    assert (valid["estimate"] > 0).all()

    manifest = json.loads((run_paths.base / "manifest.json").read_text(encoding="utf-8"))
    assert manifest["config"]["metrics"]["estimation"]["method"] == "ordinary_kriging"
    assert (run_paths.base / "manifest.yaml").exists()


def test_single_stage_from_cli(config_path, tmp_path):
    main(["--config", str(config_path), "--stage", "grid"])
    run_dirs = list((tmp_path / "outputs").glob("test_*"))
    assert len(run_dirs) == 1
    grid = pd.read_csv(run_dirs[0] / "tables" / "grid.csv")
    assert list(grid.columns) == ["ix", "iy", "x", "y"]
    assert not (run_dirs[0] / "tables" / "estimates.csv").exists()


def test_unknown_stage(config_path):
    with pytest.raises(ValueError):
        run_pipeline(str(config_path), stage="simulation")


def test_run_dirs_are_not_reused(tmp_path):
    first = create_run_dir(tmp_path, prefix="demo")
    second = create_run_dir(tmp_path, prefix="demo")
    assert first.base != second.base
    for run_paths in (first, second):
        assert run_paths.table_path("x.csv").parent.is_dir()
        assert run_paths.log_path("x.log").parent.is_dir()
