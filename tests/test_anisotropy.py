import math

import numpy as np
import pytest

from geostats_interp.anisotropy import Anisotropy, anisotropic_distance, transform_coordinates
from geostats_interp.errors import InvalidAnisotropy


def test_symmetric():
    aniso = Anisotropy(azimuth=37.0, ratio=0.3)
    a = (12.5, -3.0)
    b = (-4.0, 8.25)
    assert anisotropic_distance(a, b, aniso) == anisotropic_distance(b, a, aniso)


@pytest.mark.parametrize("azimuth", [0.0, 30.0, 90.0, 135.0, 271.5])
def test_ratio_one_is_euclidean(azimuth):
    a = (3.0, 4.0)
    b = (-1.0, 1.0)
    dist = anisotropic_distance(a, b, Anisotropy(azimuth=azimuth, ratio=1.0))
    assert dist == pytest.approx(math.dist(a, b))


def test_major_and_minor_axes():
    aniso = Anisotropy(azimuth=30.0, ratio=0.5)
    az = math.radians(30.0)
    along_major = (10 * math.sin(az), 10 * math.cos(az))
    along_minor = (5 * math.cos(az), -5 * math.sin(az))
    assert anisotropic_distance(along_major, (0.0, 0.0), aniso) == pytest.approx(10.0)
    assert anisotropic_distance(along_minor, (0.0, 0.0), aniso) == pytest.approx(10.0)


def test_north_major_axis():
    aniso = Anisotropy(azimuth=0.0, ratio=0.5)
    assert anisotropic_distance((0.0, 10.0), (0.0, 0.0), aniso) == pytest.approx(10.0)
    assert anisotropic_distance((10.0, 0.0), (0.0, 0.0), aniso) == pytest.approx(20.0)


def test_vectorized_matches_transformed_space():
    rng = np.random.default_rng(3)
    pts = rng.uniform(-50, 50, size=(20, 2))
    aniso = Anisotropy(azimuth=120.0, ratio=0.25)
    dist = anisotropic_distance(pts, np.zeros(2), aniso)
    transformed = transform_coordinates(pts, aniso)
    np.testing.assert_allclose(dist, np.linalg.norm(transformed, axis=1))


@pytest.mark.parametrize("ratio", [0.0, -0.5, 1.5, float("nan")])
def test_invalid_ratio(ratio):
    with pytest.raises(InvalidAnisotropy):
        anisotropic_distance((1.0, 0.0), (0.0, 0.0), Anisotropy(azimuth=0.0, ratio=ratio))


def test_from_ranges():
    aniso = Anisotropy.from_ranges(45.0, major=200.0, minor=50.0)
    assert aniso.ratio == pytest.approx(0.25)
    with pytest.raises(InvalidAnisotropy):
        Anisotropy.from_ranges(45.0, major=50.0, minor=200.0)
