from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from importlib import metadata
from itertools import count
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import matplotlib.pyplot as plt
import numpy as np
import yaml

from .driver import EstimationSurface
from .samples import SampleSet

# Distributions whose versions go into the run manifest.
MANIFEST_LIBRARIES = ("numpy", "pandas", "scipy", "scikit-learn", "matplotlib", "PyYAML")
RUN_SUBDIRS = ("figures", "tables", "models", "logs")


@dataclass(frozen=True)
class RunPaths:
    """Layout of one run: ``figures/``, ``tables/``, ``models/`` and ``logs/`` under ``base``."""

    base: Path

    def figure_path(self, filename: str) -> Path:
        return self.base / "figures" / filename

    def table_path(self, filename: str) -> Path:
        return self.base / "tables" / filename

    def model_path(self, filename: str) -> Path:
        return self.base / "models" / filename

    def log_path(self, filename: str) -> Path:
        return self.base / "logs" / filename


def save_table(df, run_paths: RunPaths, filename: str, **kwargs) -> None:
    df.to_csv(run_paths.table_path(filename), **kwargs)


def save_figure(fig, run_paths: RunPaths, filename: str, **kwargs) -> None:
    fig.savefig(run_paths.figure_path(filename), **kwargs)
    plt.close(fig)


def create_run_dir(base_dir: str | Path = "outputs", prefix: str = "run") -> RunPaths:
    """Create ``<prefix>_<YYYYmmdd_HHMM>`` under ``base_dir``; a numeric suffix avoids reusing a directory."""
    stem = f"{prefix}_{datetime.now():%Y%m%d_%H%M}"
    candidates = (stem if n == 0 else f"{stem}_{n:02d}" for n in count())
    run_dir = next(Path(base_dir) / name for name in candidates if not (Path(base_dir) / name).exists())
    for sub in RUN_SUBDIRS:
        (run_dir / sub).mkdir(parents=True, exist_ok=True)
    return RunPaths(base=run_dir)


def plot_surface(surface: EstimationSurface, field: str = "estimate", samples: SampleSet | None = None):
    """Raster figure of estimates or variances; missing cells stay blank."""
    grid = surface.grid
    values = surface.estimate_grid() if field == "estimate" else surface.variance_grid()
    extent = (
        grid.xmin - 0.5 * grid.xsize,
        grid.xmin + (grid.nx - 0.5) * grid.xsize,
        grid.ymin - 0.5 * grid.ysize,
        grid.ymin + (grid.ny - 0.5) * grid.ysize,
    )
    fig, ax = plt.subplots(figsize=(6, 5))
    img = ax.imshow(np.ma.masked_invalid(values), origin="lower", extent=extent, cmap="viridis")
    fig.colorbar(img, ax=ax, label=field)
    if samples is not None and len(samples):
        ax.scatter(samples.x, samples.y, c="k", s=6, alpha=0.6)
    ax.set_xlabel("x")
    ax.set_ylabel("y")
    ax.set_title(f"{surface.method} {field}")
    fig.tight_layout()
    return fig


def _environment() -> Dict[str, object]:
    """Git commit of the working tree (if any) and installed library versions."""
    try:
        commit: Optional[str] = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            cwd=Path(__file__).resolve().parents[2],
            capture_output=True,
            text=True,
            check=True,
        ).stdout.strip() or None
    except (OSError, subprocess.CalledProcessError):
        commit = None

    versions: Dict[str, Optional[str]] = {}
    for name in MANIFEST_LIBRARIES:
        try:
            versions[name] = metadata.version(name)
        except metadata.PackageNotFoundError:
            versions[name] = None
    return {"git": {"commit": commit}, "libraries": versions}


def write_manifest(run_paths: RunPaths, config: Mapping[str, object]) -> Tuple[Path, Path]:
    """Write ``manifest.json`` and ``manifest.yaml`` with the run config and environment."""
    created = datetime.now(timezone.utc)
    manifest = {
        "run_dir": str(run_paths.base),
        "created_at": created.isoformat(),
        "created_at_local": created.astimezone().isoformat(),
        "config": config,
        **_environment(),
    }
    # numpy scalars and paths become plain JSON values before either dump
    payload = json.loads(json.dumps(manifest, default=str))

    json_path = run_paths.base / "manifest.json"
    json_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    yaml_path = run_paths.base / "manifest.yaml"
    yaml_path.write_text(yaml.safe_dump(payload, sort_keys=False, allow_unicode=True), encoding="utf-8")
    return json_path, yaml_path
