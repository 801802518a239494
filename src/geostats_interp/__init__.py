"""Interpolación geoestadística 2D: inverso de la distancia y kriging ordinario."""

from .anisotropy import Anisotropy, anisotropic_distance
from .driver import EstimationConfig, EstimationResult, EstimationSurface, estimate_location, interpolate
from .errors import (
    EmptyNeighborhood,
    GeostatsError,
    InterpolationAborted,
    InvalidAnisotropy,
    InvalidGridSpec,
    InvalidStructureParams,
    NegativeVarianceDetected,
    NoNeighbors,
    SingularSystem,
)
from .grid import GridSpec, build_grid
from .idw import inverse_distance
from .kriging import ordinary_kriging
from .samples import SamplePoint, SampleSet
from .search import NeighborSearch, SearchParameters, select_neighbors
from .variography import VariogramModel, VariogramStructure

__all__ = [
    "Anisotropy",
    "anisotropic_distance",
    "EstimationConfig",
    "EstimationResult",
    "EstimationSurface",
    "estimate_location",
    "interpolate",
    "EmptyNeighborhood",
    "GeostatsError",
    "InterpolationAborted",
    "InvalidAnisotropy",
    "InvalidGridSpec",
    "InvalidStructureParams",
    "NegativeVarianceDetected",
    "NoNeighbors",
    "SingularSystem",
    "GridSpec",
    "build_grid",
    "inverse_distance",
    "ordinary_kriging",
    "SamplePoint",
    "SampleSet",
    "NeighborSearch",
    "SearchParameters",
    "select_neighbors",
    "VariogramModel",
    "VariogramStructure",
]
