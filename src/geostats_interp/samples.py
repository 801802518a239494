from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, Tuple

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SamplePoint:
    x: float
    y: float
    value: float


def _readonly(values: Iterable[float]) -> np.ndarray:
    arr = np.array(values, dtype=float)
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True, eq=False)
class SampleSet:
    """Conditioning data with read-only coordinate and value arrays.

    Sample order is kept as given; it is the tie-breaker whenever two samples
    sit at the same distance from an estimation location.
    """

    x: np.ndarray
    y: np.ndarray
    values: np.ndarray

    def __post_init__(self) -> None:
        x = _readonly(self.x)
        y = _readonly(self.y)
        values = _readonly(self.values)
        if not (x.ndim == y.ndim == values.ndim == 1):
            raise ValueError("x, y and values must be one-dimensional")
        if not (x.size == y.size == values.size):
            raise ValueError("x, y and values must have the same length")
        if not (np.all(np.isfinite(x)) and np.all(np.isfinite(y)) and np.all(np.isfinite(values))):
            raise ValueError("sample coordinates and values must be finite")
        object.__setattr__(self, "x", x)
        object.__setattr__(self, "y", y)
        object.__setattr__(self, "values", values)
        coords = np.column_stack([x, y]) if x.size else np.empty((0, 2))
        coords.flags.writeable = False
        object.__setattr__(self, "_coords", coords)

    @property
    def coords(self) -> np.ndarray:
        """Array (n, 2) of sample coordinates."""
        return self._coords  # type: ignore[attr-defined]

    def __len__(self) -> int:
        return int(self.values.size)

    def __iter__(self) -> Iterator[SamplePoint]:
        for x, y, v in zip(self.x, self.y, self.values):
            yield SamplePoint(float(x), float(y), float(v))

    def __getitem__(self, idx: int) -> SamplePoint:
        return SamplePoint(float(self.x[idx]), float(self.y[idx]), float(self.values[idx]))

    def subset(self, indices: Iterable[int]) -> "SampleSet":
        idx = np.asarray(list(indices), dtype=int)
        return SampleSet(self.x[idx], self.y[idx], self.values[idx])

    def with_values(self, values: Iterable[float]) -> "SampleSet":
        return SampleSet(self.x, self.y, np.asarray(list(values), dtype=float))

    def extents(self) -> Tuple[float, float, float, float]:
        if len(self) == 0:
            raise ValueError("empty sample set has no extents")
        return float(self.x.min()), float(self.x.max()), float(self.y.min()), float(self.y.max())

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"x": self.x, "y": self.y, "value": self.values})

    @classmethod
    def from_points(cls, points: Iterable[Tuple[float, float, float] | SamplePoint]) -> "SampleSet":
        rows = [(p.x, p.y, p.value) if isinstance(p, SamplePoint) else tuple(p) for p in points]
        if not rows:
            return cls(np.empty(0), np.empty(0), np.empty(0))
        arr = np.asarray(rows, dtype=float)
        if arr.ndim != 2 or arr.shape[1] != 3:
            raise ValueError("points must be (x, y, value) triples")
        return cls(arr[:, 0], arr[:, 1], arr[:, 2])

    @classmethod
    def from_frame(cls, df: pd.DataFrame, xcol: str = "x", ycol: str = "y", vcol: str = "value") -> "SampleSet":
        missing = [col for col in (xcol, ycol, vcol) if col not in df.columns]
        if missing:
            raise KeyError(f"Missing required columns: {missing}")
        work = df[[xcol, ycol, vcol]].apply(pd.to_numeric, errors="coerce")
        work = work.replace([np.inf, -np.inf], np.nan)
        valid = work.notna().all(axis=1)
        dropped = int((~valid).sum())
        if dropped:
            logger.warning("Dropped %d samples with missing or non-numeric x/y/value.", dropped)
        work = work.loc[valid]
        return cls(
            work[xcol].to_numpy(dtype=float),
            work[ycol].to_numpy(dtype=float),
            work[vcol].to_numpy(dtype=float),
        )
