"""Nested variogram models: evaluation of semivariance and covariance.

Shapes follow the GSLIB practical-range convention: at ``h == range`` the
exponential and gaussian structures reach ~95% of their partial sill and the
spherical structure reaches it exactly.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Literal, Tuple

import numpy as np

from .anisotropy import ISOTROPIC, Anisotropy, separation_distance
from .errors import InvalidAnisotropy, InvalidStructureParams

StructureKind = Literal["nugget", "spherical", "exponential", "gaussian"]

# Separations shorter than this are treated as zero lag.
EPSILON = 1.0e-10


def _spherical(hr: np.ndarray) -> np.ndarray:
    hr = np.clip(hr, 0.0, 1.0)
    return 1.5 * hr - 0.5 * hr**3


def _exponential(hr: np.ndarray) -> np.ndarray:
    return 1.0 - np.exp(-3.0 * hr)


def _gaussian(hr: np.ndarray) -> np.ndarray:
    return 1.0 - np.exp(-3.0 * hr**2)


SHAPES: Dict[str, Callable[[np.ndarray], np.ndarray]] = {
    "spherical": _spherical,
    "exponential": _exponential,
    "gaussian": _gaussian,
}

# GSLIB structure codes (``it``) used by variogram dictionaries.
GSLIB_CODES: Dict[int, str] = {1: "spherical", 2: "exponential", 3: "gaussian"}


@dataclass(frozen=True)
class VariogramStructure:
    kind: StructureKind
    sill: float
    range: float = 1.0
    anisotropy: Anisotropy = ISOTROPIC

    def validate(self) -> None:
        if self.kind != "nugget" and self.kind not in SHAPES:
            raise InvalidStructureParams(f"unknown structure type {self.kind!r}")
        if not math.isfinite(self.sill) or self.sill < 0:
            raise InvalidStructureParams(f"partial sill must be >= 0, got {self.sill}")
        if self.kind == "nugget":
            return
        if not math.isfinite(self.range) or self.range <= 0:
            raise InvalidStructureParams(f"range must be > 0 for a {self.kind} structure, got {self.range}")
        try:
            self.anisotropy.validate()
        except InvalidAnisotropy as err:
            raise InvalidStructureParams(f"invalid anisotropy for {self.kind} structure: {err}") from err

    @property
    def minor_range(self) -> float:
        return self.range * self.anisotropy.ratio

    def gamma(self, dx: np.ndarray, dy: np.ndarray) -> np.ndarray:
        """Semivariance contribution of this structure for separations (dx, dy)."""
        dx = np.asarray(dx, dtype=float)
        dy = np.asarray(dy, dtype=float)
        if self.kind == "nugget":
            return np.where(np.hypot(dx, dy) < EPSILON, 0.0, self.sill)
        dist = separation_distance(dx, dy, self.anisotropy)
        return self.sill * SHAPES[self.kind](dist / self.range)


@dataclass(frozen=True)
class VariogramModel:
    """Nugget plus an ordered sequence of nested structures."""

    nugget: float = 0.0
    structures: Tuple[VariogramStructure, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "structures", tuple(self.structures))

    def validate(self) -> None:
        if not math.isfinite(self.nugget) or self.nugget < 0:
            raise InvalidStructureParams(f"nugget must be >= 0, got {self.nugget}")
        for structure in self.structures:
            structure.validate()

    @property
    def sill(self) -> float:
        """Total sill: nugget plus every partial sill."""
        return float(self.nugget + sum(s.sill for s in self.structures))

    @property
    def total_nugget(self) -> float:
        """Nugget including any structure declared with kind ``nugget``."""
        return float(self.nugget + sum(s.sill for s in self.structures if s.kind == "nugget"))

    def gamma(self, dx: np.ndarray, dy: np.ndarray) -> np.ndarray:
        """Semivariance for separation components; 0 at zero lag."""
        dx = np.asarray(dx, dtype=float)
        dy = np.asarray(dy, dtype=float)
        zero = np.hypot(dx, dy) < EPSILON
        gamma = np.where(zero, 0.0, self.nugget)
        for structure in self.structures:
            gamma = gamma + structure.gamma(dx, dy)
        return np.where(zero, 0.0, gamma)

    def covariance(self, dx: np.ndarray, dy: np.ndarray) -> np.ndarray:
        """C(h) = sill - gamma(h); equals the total sill at zero lag."""
        return self.sill - self.gamma(dx, dy)

    def gamma_between(self, a: Iterable[float] | np.ndarray, b: Iterable[float] | np.ndarray) -> np.ndarray:
        delta = np.asarray(a, dtype=float) - np.asarray(b, dtype=float)
        return self.gamma(delta[..., 0], delta[..., 1])

    def covariance_between(self, a: Iterable[float] | np.ndarray, b: Iterable[float] | np.ndarray) -> np.ndarray:
        delta = np.asarray(a, dtype=float) - np.asarray(b, dtype=float)
        return self.covariance(delta[..., 0], delta[..., 1])

    def covariance_matrix(self, coords: np.ndarray) -> np.ndarray:
        """Pairwise covariance matrix (n, n) between points."""
        coords = np.asarray(coords, dtype=float)
        delta = coords[:, None, :] - coords[None, :, :]
        return self.covariance(delta[..., 0], delta[..., 1])

    @classmethod
    def isotropic(
        cls,
        kind: StructureKind,
        sill: float,
        range: float,
        nugget: float = 0.0,
    ) -> "VariogramModel":
        """Single-structure model; ``sill`` is the partial sill of the structure."""
        model = cls(nugget=float(nugget), structures=(VariogramStructure(kind, float(sill), float(range)),))
        model.validate()
        return model

    @classmethod
    def from_gslib(cls, vario: Dict[str, float]) -> "VariogramModel":
        """Build from a GSLIB-style dictionary (``nug``, ``nst``, ``cc1``, ``it1``, ``azi1``, ``hmaj1``, ``hmin1``, ...)."""
        nst = int(vario.get("nst", 2 if float(vario.get("cc2", 0.0)) > 0 else 1))
        structures = []
        for i in range(1, nst + 1):
            cc = float(vario.get(f"cc{i}", 0.0))
            code = int(vario.get(f"it{i}", 1))
            if code not in GSLIB_CODES:
                raise InvalidStructureParams(f"unknown GSLIB structure code it{i}={code}")
            hmaj = float(vario.get(f"hmaj{i}", 0.0))
            hmin = float(vario.get(f"hmin{i}", hmaj))
            azi = float(vario.get(f"azi{i}", 0.0))
            if cc == 0.0 and hmaj <= 0:
                continue
            if hmaj <= 0:
                raise InvalidStructureParams(f"hmaj{i} must be positive")
            if hmin <= 0 or hmin > hmaj:
                raise InvalidStructureParams(f"hmin{i} must be in (0, hmaj{i}]")
            structures.append(VariogramStructure(GSLIB_CODES[code], cc, hmaj, Anisotropy(azi, hmin / hmaj)))
        model = cls(nugget=float(vario.get("nug", 0.0)), structures=tuple(structures))
        model.validate()
        return model

    def to_gslib(self) -> Dict[str, float]:
        codes = {name: code for code, name in GSLIB_CODES.items()}
        ranged = [s for s in self.structures if s.kind != "nugget"]
        out: Dict[str, float] = {"nug": self.total_nugget, "nst": len(ranged)}
        for i, structure in enumerate(ranged, start=1):
            out[f"cc{i}"] = float(structure.sill)
            out[f"it{i}"] = codes[structure.kind]
            out[f"azi{i}"] = float(structure.anisotropy.azimuth)
            out[f"hmaj{i}"] = float(structure.range)
            out[f"hmin{i}"] = float(structure.minor_range)
        return out

    def to_dict(self) -> Dict[str, object]:
        return {
            "nugget": float(self.nugget),
            "structures": [
                {
                    "type": s.kind,
                    "sill": float(s.sill),
                    "range": float(s.range),
                    "azimuth": float(s.anisotropy.azimuth),
                    "ratio": float(s.anisotropy.ratio),
                }
                for s in self.structures
            ],
        }
