"""Métrica de distancia anisotrópica 2D."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable

import numpy as np

from .errors import InvalidAnisotropy


@dataclass(frozen=True)
class Anisotropy:
    """Geometric anisotropy of a variogram structure or a search ellipse.

    Args:
        azimuth: Major-axis direction in degrees, clockwise from north (+Y).
        ratio: Minor/major range ratio in (0, 1].
    """

    azimuth: float = 0.0
    ratio: float = 1.0

    def validate(self) -> None:
        if not math.isfinite(self.azimuth):
            raise InvalidAnisotropy(f"azimuth must be finite, got {self.azimuth}")
        if not math.isfinite(self.ratio) or self.ratio <= 0.0 or self.ratio > 1.0:
            raise InvalidAnisotropy(f"anisotropy ratio must be in (0, 1], got {self.ratio}")

    @property
    def is_isotropic(self) -> bool:
        return self.ratio == 1.0

    @classmethod
    def from_ranges(cls, azimuth: float, major: float, minor: float) -> "Anisotropy":
        if major <= 0:
            raise InvalidAnisotropy("major range must be positive")
        aniso = cls(azimuth=float(azimuth), ratio=float(minor) / float(major))
        aniso.validate()
        return aniso


ISOTROPIC = Anisotropy()


def _rotation_matrix(azimuth_deg: float) -> np.ndarray:
    """Matriz que lleva (dx, dy) al marco (mayor, menor)."""
    az = np.deg2rad(azimuth_deg)
    return np.array(
        [
            [np.sin(az), np.cos(az)],
            [np.cos(az), -np.sin(az)],
        ]
    )


def transform_coordinates(xy: np.ndarray, anisotropy: Anisotropy) -> np.ndarray:
    """Map points into the space where ``anisotropy`` becomes isotropic.

    Euclidean distances between transformed points equal anisotropic
    distances between the original points.
    """
    anisotropy.validate()
    xy = np.asarray(xy, dtype=float)
    rotated = xy @ _rotation_matrix(anisotropy.azimuth).T
    return rotated / np.array([1.0, anisotropy.ratio])


def anisotropic_distance(
    a: Iterable[float] | np.ndarray,
    b: Iterable[float] | np.ndarray,
    anisotropy: Anisotropy,
) -> np.ndarray | float:
    """Distancia efectiva entre ``a`` y ``b`` bajo la anisotropía dada.

    Acepta puntos sueltos (x, y) o arrays (..., 2) con broadcasting.
    """
    a_arr = np.asarray(a, dtype=float)
    b_arr = np.asarray(b, dtype=float)
    delta = a_arr - b_arr
    dist = separation_distance(delta[..., 0], delta[..., 1], anisotropy)
    if np.ndim(dist) == 0:
        return float(dist)
    return dist


def separation_distance(dx: np.ndarray, dy: np.ndarray, anisotropy: Anisotropy) -> np.ndarray:
    """Anisotropic length of separation vectors given by components."""
    anisotropy.validate()
    dx = np.asarray(dx, dtype=float)
    dy = np.asarray(dy, dtype=float)
    if anisotropy.is_isotropic:
        return np.hypot(dx, dy)
    az = np.deg2rad(anisotropy.azimuth)
    major = dx * np.sin(az) + dy * np.cos(az)
    minor = (dx * np.cos(az) - dy * np.sin(az)) / anisotropy.ratio
    return np.hypot(major, minor)
