from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

import numpy as np

from .errors import NoNeighbors
from .variography import EPSILON

# Added to every distance before powering so weights stay finite.
IDW_OFFSET = 1.0e-6


@dataclass(frozen=True)
class IDWSolution:
    estimate: float
    weights: np.ndarray


def inverse_distance(
    values: Iterable[float],
    distances: Iterable[float],
    power: float = 2.0,
    offset: float = IDW_OFFSET,
) -> IDWSolution:
    """Inverse-distance weighted average of neighbor values.

    Weights are ``1 / (d + offset) ** power`` normalized to sum to one. A
    neighbor at zero distance is returned as is.
    """
    values_arr = np.asarray(values, dtype=float)
    dist = np.asarray(distances, dtype=float)
    if values_arr.size == 0:
        raise NoNeighbors("inverse distance needs at least one neighbor")
    if values_arr.shape != dist.shape:
        raise ValueError("values and distances must have the same shape")
    if not power > 0:
        raise ValueError(f"power must be positive, got {power}")

    coincident = np.flatnonzero(dist <= EPSILON)
    if coincident.size:
        weights = np.zeros(values_arr.size)
        weights[coincident[0]] = 1.0
        return IDWSolution(estimate=float(values_arr[coincident[0]]), weights=weights)

    raw = 1.0 / np.power(dist + offset, power)
    weights = raw / np.sum(raw)
    if values_arr.size == 1:
        return IDWSolution(estimate=float(values_arr[0]), weights=weights)
    return IDWSolution(estimate=float(np.dot(weights, values_arr)), weights=weights)
