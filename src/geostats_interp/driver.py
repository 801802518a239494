"""Interpolation driver: grid cells → neighbor search → estimator → surface.

Per-cell estimation only reads the published sample set, variogram model and
search index, so cell ranges can be processed by independent workers. Each
worker fills its own output arrays; the driver assembles them in raster order.
"""

from __future__ import annotations

import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Tuple

import numpy as np
import pandas as pd

from .errors import InterpolationAborted, NoNeighbors, SingularSystem
from .grid import GridSpec, build_grid
from .idw import inverse_distance
from .kriging import DEFAULT_CONDITION_MAX, ordinary_kriging
from .samples import SampleSet
from .search import NeighborSearch, SearchParameters
from .variography import VariogramModel

logger = logging.getLogger(__name__)

Method = Literal["inverse_distance", "ordinary_kriging"]
METHODS = ("inverse_distance", "ordinary_kriging")

STATUS_OK = "ok"
STATUS_NO_NEIGHBORS = "no_neighbors"
STATUS_SINGULAR = "singular"
STATUS_CODES = {STATUS_OK: 0, STATUS_NO_NEIGHBORS: 1, STATUS_SINGULAR: 2}
STATUS_NAMES = {code: name for name, code in STATUS_CODES.items()}


@dataclass(frozen=True)
class EstimationConfig:
    method: Method = "ordinary_kriging"
    power: float = 2.0
    model: VariogramModel | None = None
    search: SearchParameters = field(default_factory=SearchParameters)
    on_failure: Literal["missing", "raise"] = "missing"
    condition_max: float = DEFAULT_CONDITION_MAX

    def validate(self) -> None:
        """Fail before any estimation when the configuration is unusable."""
        if self.method not in METHODS:
            raise ValueError(f"method must be one of {METHODS}, got {self.method!r}")
        if self.on_failure not in {"missing", "raise"}:
            raise ValueError("on_failure must be 'missing' or 'raise'")
        if self.method == "inverse_distance" and not (self.power > 0 and math.isfinite(self.power)):
            raise ValueError(f"power must be positive, got {self.power}")
        if self.method == "ordinary_kriging":
            if self.model is None:
                raise ValueError("ordinary kriging requires a variogram model")
            self.model.validate()
        if self.condition_max <= 0:
            raise ValueError("condition_max must be positive")
        self.search.validate()


@dataclass(frozen=True)
class EstimationResult:
    estimate: float
    variance: float
    ndata: int
    status: str = STATUS_OK
    message: str = "ok"
    flagged: bool = False

    @property
    def valid(self) -> bool:
        return self.status == STATUS_OK


@dataclass(frozen=True)
class EstimationSurface:
    """Per-cell results aligned with the grid raster order (``iy * nx + ix``)."""

    grid: GridSpec
    method: str
    x: np.ndarray
    y: np.ndarray
    estimate: np.ndarray
    variance: np.ndarray
    ndata: np.ndarray
    status: np.ndarray
    flagged: np.ndarray

    def __len__(self) -> int:
        return int(self.estimate.size)

    def __getitem__(self, index: int) -> EstimationResult:
        status = STATUS_NAMES[int(self.status[index])]
        return EstimationResult(
            estimate=float(self.estimate[index]),
            variance=float(self.variance[index]),
            ndata=int(self.ndata[index]),
            status=status,
            message="ok" if status == STATUS_OK else status.replace("_", " "),
            flagged=bool(self.flagged[index]),
        )

    @property
    def valid(self) -> np.ndarray:
        return self.status == STATUS_CODES[STATUS_OK]

    @property
    def n_failed(self) -> int:
        return int(np.count_nonzero(~self.valid))

    @property
    def n_flagged(self) -> int:
        return int(np.count_nonzero(self.flagged))

    def failed_cells(self) -> pd.DataFrame:
        """Index, (ix, iy) position and status of every failed cell."""
        idx = np.flatnonzero(~self.valid)
        iy, ix = np.divmod(idx, int(self.grid.nx))
        return pd.DataFrame(
            {
                "index": idx,
                "ix": ix,
                "iy": iy,
                "status": [STATUS_NAMES[int(code)] for code in self.status[idx]],
            }
        )

    def estimate_grid(self) -> np.ndarray:
        return self.estimate.reshape(self.grid.shape)

    def variance_grid(self) -> np.ndarray:
        return self.variance.reshape(self.grid.shape)

    def to_frame(self) -> pd.DataFrame:
        idx = np.arange(len(self))
        iy, ix = np.divmod(idx, int(self.grid.nx))
        return pd.DataFrame(
            {
                "ix": ix,
                "iy": iy,
                "x": self.x,
                "y": self.y,
                "estimate": self.estimate,
                "variance": self.variance,
                "ndata": self.ndata,
                "valid": self.valid,
                "status": [STATUS_NAMES[int(code)] for code in self.status],
                "flagged": self.flagged,
            }
        )

    def summary(self, quantiles: Tuple[float, ...] = (0.1, 0.5, 0.9)) -> pd.DataFrame:
        """Count, mean, std, min, quantiles and max of valid estimates and variances."""
        frame = pd.DataFrame({"estimate": self.estimate, "variance": self.variance})[self.valid]
        return frame.describe(percentiles=list(quantiles)).T


def _estimate_cell(
    search: NeighborSearch,
    samples: SampleSet,
    target: np.ndarray,
    config: EstimationConfig,
) -> Tuple[float, float, int, bool]:
    neighborhood = search.query(target)
    ndata = len(neighborhood)
    if not neighborhood.is_sufficient(config.search.min_neighbors):
        raise NoNeighbors(
            f"{ndata} neighbors found at ({target[0]:g}, {target[1]:g}), "
            f"need {max(config.search.min_neighbors, 1)}"
        )
    idx = neighborhood.indices
    if config.method == "inverse_distance":
        dist = np.hypot(samples.x[idx] - target[0], samples.y[idx] - target[1])
        solution = inverse_distance(samples.values[idx], dist, config.power)
        return solution.estimate, math.nan, ndata, False

    if config.model is None:
        raise ValueError("ordinary kriging requires a variogram model")
    solution = ordinary_kriging(
        samples.coords[idx],
        samples.values[idx],
        target,
        config.model,
        condition_max=config.condition_max,
    )
    return solution.estimate, solution.variance, ndata, solution.flagged


def estimate_location(
    samples: SampleSet,
    target: Tuple[float, float],
    config: EstimationConfig,
    search: NeighborSearch | None = None,
) -> EstimationResult:
    """Estimate a single location, reporting per-cell failures in the result."""
    search = search or NeighborSearch(samples, config.search)
    target_arr = np.asarray(target, dtype=float)
    try:
        estimate, variance, ndata, flagged = _estimate_cell(search, samples, target_arr, config)
    except NoNeighbors as err:
        if config.on_failure == "raise":
            raise
        return EstimationResult(math.nan, math.nan, len(search.query(target_arr)), STATUS_NO_NEIGHBORS, str(err))
    except SingularSystem as err:
        if config.on_failure == "raise":
            raise
        return EstimationResult(math.nan, math.nan, len(search.query(target_arr)), STATUS_SINGULAR, str(err))
    return EstimationResult(estimate, variance, ndata, flagged=flagged)


def _run_range(
    start: int,
    stop: int,
    coords: np.ndarray,
    search: NeighborSearch,
    samples: SampleSet,
    config: EstimationConfig,
    abort_event: threading.Event | None,
) -> Tuple[int, Dict[str, np.ndarray], int]:
    n = stop - start
    out = {
        "estimate": np.full(n, np.nan),
        "variance": np.full(n, np.nan),
        "ndata": np.zeros(n, dtype=int),
        "status": np.zeros(n, dtype=np.int8),
        "flagged": np.zeros(n, dtype=bool),
    }
    for local, cell in enumerate(range(start, stop)):
        if abort_event is not None and abort_event.is_set():
            return start, out, local
        target = coords[cell]
        try:
            estimate, variance, ndata, flagged = _estimate_cell(search, samples, target, config)
        except NoNeighbors:
            if config.on_failure == "raise":
                raise
            out["status"][local] = STATUS_CODES[STATUS_NO_NEIGHBORS]
            out["ndata"][local] = len(search.query(target))
            continue
        except SingularSystem:
            if config.on_failure == "raise":
                raise
            out["status"][local] = STATUS_CODES[STATUS_SINGULAR]
            out["ndata"][local] = len(search.query(target))
            continue
        out["estimate"][local] = estimate
        out["variance"][local] = variance
        out["ndata"][local] = ndata
        out["flagged"][local] = flagged
    return start, out, n


def _chunks(ncells: int, chunk_size: int) -> List[Tuple[int, int]]:
    return [(start, min(start + chunk_size, ncells)) for start in range(0, ncells, chunk_size)]


def interpolate(
    samples: SampleSet,
    grid: GridSpec,
    config: EstimationConfig,
    n_workers: int = 1,
    chunk_size: int | None = None,
    abort_event: threading.Event | None = None,
) -> EstimationSurface:
    """Estimate every grid cell and return the assembled surface.

    Configuration errors are raised before any cell is estimated. Cells
    without enough neighbors or with a singular kriging system are marked
    missing (NaN) unless ``config.on_failure == "raise"``. Setting
    ``abort_event`` stops the workers and raises ``InterpolationAborted``.
    """
    grid.validate()
    config.validate()
    if n_workers < 1:
        raise ValueError("n_workers must be >= 1")

    coords = build_grid(grid)
    coords.flags.writeable = False
    search = NeighborSearch(samples, config.search)
    ncells = grid.ncells
    if chunk_size is None:
        chunk_size = max(1, math.ceil(ncells / (n_workers * 4)))
    ranges = _chunks(ncells, int(chunk_size))

    logger.info(
        "Estimating %d cells (%dx%d) with %s from %d samples, %d worker(s).",
        ncells,
        grid.nx,
        grid.ny,
        config.method,
        len(samples),
        n_workers,
    )

    estimate = np.full(ncells, np.nan)
    variance = np.full(ncells, np.nan)
    ndata = np.zeros(ncells, dtype=int)
    status = np.zeros(ncells, dtype=np.int8)
    flagged = np.zeros(ncells, dtype=bool)
    completed = 0

    def _collect(start: int, out: Dict[str, np.ndarray], done: int) -> None:
        nonlocal completed
        stop = start + out["estimate"].size
        estimate[start:stop] = out["estimate"]
        variance[start:stop] = out["variance"]
        ndata[start:stop] = out["ndata"]
        status[start:stop] = out["status"]
        flagged[start:stop] = out["flagged"]
        completed += done

    if n_workers == 1:
        for start, stop in ranges:
            _collect(*_run_range(start, stop, coords, search, samples, config, abort_event))
    else:
        with ThreadPoolExecutor(max_workers=n_workers) as executor:
            futures = [
                executor.submit(_run_range, start, stop, coords, search, samples, config, abort_event)
                for start, stop in ranges
            ]
            try:
                for future in as_completed(futures):
                    _collect(*future.result())
            except BaseException:
                for future in futures:
                    future.cancel()
                raise

    if abort_event is not None and abort_event.is_set() and completed < ncells:
        logger.warning("Interpolation aborted after %d of %d cells.", completed, ncells)
        raise InterpolationAborted(f"aborted after {completed} of {ncells} cells", completed=completed)

    surface = EstimationSurface(
        grid=grid,
        method=config.method,
        x=coords[:, 0].copy(),
        y=coords[:, 1].copy(),
        estimate=estimate,
        variance=variance,
        ndata=ndata,
        status=status,
        flagged=flagged,
    )
    if surface.n_failed:
        failed = surface.failed_cells()
        logger.warning(
            "%d of %d cells could not be estimated (%s).",
            surface.n_failed,
            ncells,
            ", ".join(f"{name}={count}" for name, count in failed["status"].value_counts().items()),
        )
    if surface.n_flagged:
        logger.warning("%d cells have kriging variance outside [0, sill].", surface.n_flagged)
    logger.info("Estimation finished: %d valid cells.", ncells - surface.n_failed)
    return surface
