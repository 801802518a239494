from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Tuple

import numpy as np
import pandas as pd

from .errors import InvalidGridSpec
from .samples import SampleSet


@dataclass(frozen=True)
class GridSpec:
    """Regular 2D grid of cell centers.

    ``xmin``/``ymin`` are the coordinates of the first cell *center*. Cell
    ``(ix, iy)`` is centered at ``(xmin + ix * xsize, ymin + iy * ysize)``.
    """

    nx: int
    ny: int
    xmin: float
    ymin: float
    xsize: float
    ysize: float

    def validate(self) -> None:
        for name in ("nx", "ny"):
            value = getattr(self, name)
            if isinstance(value, bool) or not float(value).is_integer():
                raise InvalidGridSpec(f"{name} must be an integer, got {value!r}")
            if value <= 0:
                raise InvalidGridSpec(f"{name} must be positive, got {value}")
        for name in ("xmin", "ymin", "xsize", "ysize"):
            if not math.isfinite(float(getattr(self, name))):
                raise InvalidGridSpec(f"{name} must be finite")
        if self.xsize <= 0 or self.ysize <= 0:
            raise InvalidGridSpec(f"xsize and ysize must be positive, got {self.xsize}, {self.ysize}")

    @property
    def ncells(self) -> int:
        return int(self.nx) * int(self.ny)

    @property
    def shape(self) -> Tuple[int, int]:
        """Shape (ny, nx) of the surface in raster order."""
        return int(self.ny), int(self.nx)

    def cell_index(self, ix: int, iy: int) -> int:
        return int(iy) * int(self.nx) + int(ix)

    def cell_position(self, index: int) -> Tuple[int, int]:
        iy, ix = divmod(int(index), int(self.nx))
        return ix, iy

    def x_centers(self) -> np.ndarray:
        return self.xmin + np.arange(int(self.nx)) * self.xsize

    def y_centers(self) -> np.ndarray:
        return self.ymin + np.arange(int(self.ny)) * self.ysize

    def to_dict(self) -> Dict[str, float]:
        return {
            "nx": int(self.nx),
            "ny": int(self.ny),
            "xmin": float(self.xmin),
            "ymin": float(self.ymin),
            "xsize": float(self.xsize),
            "ysize": float(self.ysize),
        }


def build_grid(spec: GridSpec) -> np.ndarray:
    """Return an array (nx*ny, 2) of cell centers in raster order.

    Rows are the outer loop and columns the inner loop: flat index
    ``iy * nx + ix``, so ``values.reshape(ny, nx)[iy, ix]`` is cell ``(ix, iy)``
    and row 0 lies at ``ymin``.
    """
    spec.validate()
    xs = spec.x_centers()
    ys = spec.y_centers()
    grid = np.array(np.meshgrid(xs, ys, indexing="xy"))
    return grid.reshape(2, -1).T


def make_grid_dataframe(spec: GridSpec) -> pd.DataFrame:
    """Return DataFrame with cell centers and their (ix, iy) indices."""
    coords = build_grid(spec)
    ix, iy = np.meshgrid(np.arange(int(spec.nx)), np.arange(int(spec.ny)), indexing="xy")
    return pd.DataFrame(
        {
            "ix": ix.ravel(),
            "iy": iy.ravel(),
            "x": coords[:, 0],
            "y": coords[:, 1],
        }
    )


def grid_from_extents(samples: SampleSet, xsize: float, ysize: float, pad: float = 0.0) -> GridSpec:
    """Create a grid spec whose cell centers cover the padded sample extents."""
    if xsize <= 0 or ysize <= 0:
        raise InvalidGridSpec("xsize and ysize must be positive")
    xmin, xmax, ymin, ymax = samples.extents()

    xmin -= pad
    ymin -= pad
    xmax += pad
    ymax += pad

    nx = int(np.ceil((xmax - xmin) / xsize)) + 1
    ny = int(np.ceil((ymax - ymin) / ysize)) + 1

    spec = GridSpec(nx=max(nx, 1), ny=max(ny, 1), xmin=float(xmin), ymin=float(ymin), xsize=float(xsize), ysize=float(ysize))
    spec.validate()
    return spec


def export_grid_to_csv(spec: GridSpec, path: str) -> None:
    """Export grid centers to CSV."""
    make_grid_dataframe(spec).to_csv(path, index=False)
