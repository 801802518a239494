"""Excepciones del motor de interpolación."""

from __future__ import annotations


class GeostatsError(Exception):
    """Base class for estimation engine errors."""


class InvalidGridSpec(GeostatsError, ValueError):
    pass


class InvalidAnisotropy(GeostatsError, ValueError):
    pass


class InvalidStructureParams(GeostatsError, ValueError):
    pass


class NoNeighbors(GeostatsError):
    """No conditioning data available for an estimation location."""


class EmptyNeighborhood(NoNeighbors):
    """Kriging system requested with zero samples."""


class SingularSystem(GeostatsError):
    """Kriging matrix is singular or too badly conditioned to solve."""

    def __init__(self, message: str, condition: float = float("inf")) -> None:
        super().__init__(message)
        self.condition = condition


class InterpolationAborted(GeostatsError):
    """Run stopped by an abort signal before every cell was estimated."""

    def __init__(self, message: str, completed: int = 0) -> None:
        super().__init__(message)
        self.completed = completed


class NegativeVarianceDetected(UserWarning):
    """Kriging variance outside [0, sill]; the cell is flagged, not aborted."""
