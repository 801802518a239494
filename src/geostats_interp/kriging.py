"""Kriging ordinario puntual en 2D."""

from __future__ import annotations

import math
import warnings
from dataclasses import dataclass
from typing import Iterable, Tuple

import numpy as np
from scipy import linalg

from .errors import EmptyNeighborhood, NegativeVarianceDetected, SingularSystem
from .variography import EPSILON, VariogramModel

DEFAULT_CONDITION_MAX = 1.0e10
# Relative band around [0, sill] treated as round-off rather than a bad model.
VARIANCE_TOLERANCE = 1.0e-9


@dataclass(frozen=True)
class KrigingSolution:
    """Resultado de kriging en un punto.

    ``mu`` is the Lagrange multiplier of the solved system, in the units of
    the model sill. It is NaN when no system is solved (sample at the target
    or a single neighbor).
    """

    estimate: float
    variance: float
    weights: np.ndarray
    mu: float
    condition: float
    flagged: bool = False


def _build_system(
    coords: np.ndarray,
    target: np.ndarray,
    model: VariogramModel,
) -> Tuple[np.ndarray, np.ndarray]:
    """Matriz aumentada (n+1, n+1) y lado derecho (n+1,) normalizados por el sill.

    Las covarianzas se dividen por ``model.sill`` para que el número de
    condición no dependa de la escala de los datos; los pesos no cambian y
    el multiplicador queda en unidades de sill.
    Se reservan en cada llamada; no se comparten entre celdas.
    """
    n = coords.shape[0]
    sill = model.sill
    matrix = np.zeros((n + 1, n + 1))
    matrix[:n, :n] = model.covariance_matrix(coords) / sill
    matrix[:n, -1] = 1.0
    matrix[-1, :n] = 1.0

    rhs = np.zeros(n + 1)
    rhs[:n] = model.covariance_between(coords, target) / sill
    rhs[-1] = 1.0
    return matrix, rhs


def _check_variance(variance: float, sill: float) -> Tuple[float, bool]:
    """Snap round-off to the [0, sill] bounds and flag anything beyond."""
    tol = VARIANCE_TOLERANCE * max(sill, 1.0)
    if variance < -tol:
        warnings.warn(
            f"kriging variance {variance:.6g} is negative; the model may not be positive definite",
            NegativeVarianceDetected,
            stacklevel=3,
        )
        return variance, True
    if variance > sill + tol:
        return variance, True
    return float(min(max(variance, 0.0), sill)), False


def ordinary_kriging(
    coords: np.ndarray,
    values: Iterable[float],
    target: Iterable[float],
    model: VariogramModel,
    condition_max: float = DEFAULT_CONDITION_MAX,
) -> KrigingSolution:
    """Estimación por kriging ordinario en ``target``.

    Args:
        coords: Array (n, 2) con las coordenadas de los vecinos.
        values: Valores de los vecinos (n,).
        target: Punto de estimación (x, y).
        model: Modelo de variograma.
        condition_max: Número de condición máximo aceptado.

    Returns:
        Estimación, varianza de kriging, pesos y multiplicador de Lagrange.

    Raises:
        EmptyNeighborhood: Si no hay vecinos.
        SingularSystem: Si la matriz es singular o está mal condicionada.
    """
    coords = np.asarray(coords, dtype=float).reshape(-1, 2)
    values_arr = np.asarray(values, dtype=float)
    target_arr = np.asarray(target, dtype=float)
    n = coords.shape[0]
    if n == 0:
        raise EmptyNeighborhood("ordinary kriging needs at least one neighbor")
    if values_arr.shape != (n,):
        raise ValueError("values must have one entry per coordinate")

    sill = model.sill
    separation = np.hypot(coords[:, 0] - target_arr[0], coords[:, 1] - target_arr[1])
    coincident = np.flatnonzero(separation < EPSILON)
    if coincident.size:
        weights = np.zeros(n)
        weights[coincident[0]] = 1.0
        return KrigingSolution(
            estimate=float(values_arr[coincident[0]]),
            variance=model.total_nugget,
            weights=weights,
            mu=math.nan,
            condition=1.0,
        )

    if n == 1:
        c0 = float(model.covariance_between(coords[0], target_arr))
        variance, flagged = _check_variance(sill - c0, sill)
        return KrigingSolution(
            estimate=float(values_arr[0]),
            variance=variance,
            weights=np.ones(1),
            mu=math.nan,
            condition=1.0,
            flagged=flagged,
        )

    if not sill > 0:
        raise SingularSystem("variogram model has zero total sill")

    matrix, rhs = _build_system(coords, target_arr, model)
    cond = float(np.linalg.cond(matrix))
    if not np.isfinite(cond) or cond > condition_max:
        raise SingularSystem(f"kriging matrix badly conditioned (cond={cond:.3g})", condition=cond)

    try:
        solution = linalg.solve(matrix, rhs, assume_a="sym")
    except np.linalg.LinAlgError as err:
        raise SingularSystem(f"kriging matrix is singular: {err}", condition=cond) from err

    weights = solution[:n]
    mu = float(solution[-1]) * sill
    estimate = float(np.dot(weights, values_arr))
    variance, flagged = _check_variance(sill * float(1.0 - np.dot(weights, rhs[:n])) - mu, sill)
    return KrigingSolution(
        estimate=estimate,
        variance=variance,
        weights=weights,
        mu=mu,
        condition=cond,
        flagged=flagged,
    )
