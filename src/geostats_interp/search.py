from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable

import numpy as np
from scipy.spatial import cKDTree

from .anisotropy import Anisotropy, transform_coordinates
from .samples import SampleSet


@dataclass(frozen=True)
class SearchParameters:
    """Parámetros de vecindad para seleccionar datos condicionantes.

    ``max_distance`` y ``max_per_sector`` pueden ser ilimitados (``inf`` y
    ``None``). Con ``anisotropy`` la distancia de búsqueda usa la métrica
    anisotrópica en lugar de la euclidiana.
    """

    max_distance: float = math.inf
    min_neighbors: int = 1
    max_per_sector: int | None = None
    sectors: int = 4
    max_samples: int | None = None
    anisotropy: Anisotropy | None = None
    use_index: bool = True

    def validate(self) -> None:
        if math.isnan(self.max_distance) or self.max_distance <= 0:
            raise ValueError("max_distance debe ser positivo")
        if self.min_neighbors < 0:
            raise ValueError("min_neighbors no puede ser negativo")
        if self.sectors <= 0:
            raise ValueError("sectors debe ser positivo")
        if self.max_per_sector is not None and self.max_per_sector < 1:
            raise ValueError("max_per_sector debe ser >= 1")
        if self.max_samples is not None and self.max_samples < 1:
            raise ValueError("max_samples debe ser >= 1")
        if self.max_samples is not None and self.min_neighbors > self.max_samples:
            raise ValueError("min_neighbors no puede ser mayor que max_samples")
        if self.anisotropy is not None:
            self.anisotropy.validate()


@dataclass(frozen=True)
class Neighborhood:
    """Vecinos seleccionados, ordenados por distancia creciente."""

    indices: np.ndarray
    distances: np.ndarray

    def __len__(self) -> int:
        return int(self.indices.size)

    def is_sufficient(self, min_neighbors: int) -> bool:
        return len(self) >= max(int(min_neighbors), 1)


def _sector_index(dx: np.ndarray, dy: np.ndarray, sectors: int) -> np.ndarray:
    """Sector angular según azimut (horario desde el norte)."""
    azimuth = np.mod(np.degrees(np.arctan2(dx, dy)), 360.0)
    idx = np.floor(azimuth / (360.0 / sectors)).astype(int)
    return np.minimum(idx, sectors - 1)


def _limit_per_sector(
    candidates: np.ndarray,
    dx: np.ndarray,
    dy: np.ndarray,
    sectors: int,
    max_per_sector: int,
) -> np.ndarray:
    """Máscara que conserva a lo sumo ``max_per_sector`` candidatos por sector.

    ``candidates`` ya viene ordenado por distancia.
    """
    sector = _sector_index(dx, dy, sectors)
    keep = np.zeros(candidates.size, dtype=bool)
    counts = np.zeros(sectors, dtype=int)
    for pos, sec in enumerate(sector):
        if counts[sec] < max_per_sector:
            keep[pos] = True
            counts[sec] += 1
    return keep


class NeighborSearch:
    """Búsqueda de vecinos sobre un conjunto de muestras fijo.

    El índice espacial (``cKDTree``) se construye una sola vez; las consultas
    solo leen el estado publicado y pueden ejecutarse desde varios hilos.
    """

    def __init__(self, samples: SampleSet, params: SearchParameters) -> None:
        params.validate()
        self.samples = samples
        self.params = params
        coords = samples.coords
        if params.anisotropy is not None:
            coords = transform_coordinates(coords, params.anisotropy)
        self._search_coords = coords
        self._tree = cKDTree(coords) if params.use_index and len(samples) else None

    def _to_search_space(self, target: np.ndarray) -> np.ndarray:
        if self.params.anisotropy is None:
            return target
        return transform_coordinates(target[None, :], self.params.anisotropy)[0]

    def _candidates(self, target: np.ndarray) -> np.ndarray:
        if len(self.samples) == 0:
            return np.empty(0, dtype=int)
        radius = self.params.max_distance
        if self._tree is not None and math.isfinite(radius):
            # slightly wider ball; the exact radius test happens in query()
            found = self._tree.query_ball_point(self._to_search_space(target), r=radius * (1.0 + 1e-9) + 1e-12)
            return np.sort(np.asarray(found, dtype=int))
        return np.arange(len(self.samples))

    def query(self, target: Iterable[float]) -> Neighborhood:
        """Selecciona vecinos para ``target`` respetando radio, sectores y límites."""
        target_arr = np.asarray(target, dtype=float)
        idx = self._candidates(target_arr)
        if idx.size == 0:
            return Neighborhood(np.empty(0, dtype=int), np.empty(0))

        delta = self._search_coords[idx] - self._to_search_space(target_arr)
        dist = np.hypot(delta[:, 0], delta[:, 1])
        inside = dist <= self.params.max_distance
        idx = idx[inside]
        dist = dist[inside]

        order = np.argsort(dist, kind="stable")
        idx = idx[order]
        dist = dist[order]

        if self.params.max_per_sector is not None and idx.size:
            dx = self.samples.x[idx] - target_arr[0]
            dy = self.samples.y[idx] - target_arr[1]
            keep = _limit_per_sector(idx, dx, dy, self.params.sectors, self.params.max_per_sector)
            idx = idx[keep]
            dist = dist[keep]

        if self.params.max_samples is not None:
            idx = idx[: self.params.max_samples]
            dist = dist[: self.params.max_samples]

        return Neighborhood(indices=idx, distances=dist)


def select_neighbors(samples: SampleSet, target: Iterable[float], params: SearchParameters) -> Neighborhood:
    """Consulta única sin reutilizar índice; útil fuera del driver."""
    return NeighborSearch(samples, params).query(target)
