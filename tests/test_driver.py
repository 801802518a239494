import logging
import math
import threading

import numpy as np
import pytest

from geostats_interp.driver import EstimationConfig, estimate_location, interpolate
from geostats_interp.errors import InterpolationAborted, InvalidGridSpec, InvalidStructureParams, NoNeighbors
from geostats_interp.grid import GridSpec, build_grid
from geostats_interp.samples import SampleSet
from geostats_interp.search import SearchParameters
from geostats_interp.variography import VariogramModel, VariogramStructure


@pytest.fixture
def field_samples():
    rng = np.random.default_rng(21)
    xy = rng.uniform(0, 100, size=(60, 2))
    values = 0.05 * xy[:, 0] + 0.02 * xy[:, 1] + rng.normal(0, 0.3, size=60)
    return SampleSet(xy[:, 0], xy[:, 1], values)


@pytest.fixture
def kriging_config():
    return EstimationConfig(
        method="ordinary_kriging",
        model=VariogramModel.isotropic("spherical", sill=1.0, range=40.0, nugget=0.1),
        search=SearchParameters(max_distance=30.0, max_samples=12),
    )


def test_single_sample_two_by_two():
    samples = SampleSet.from_points([(5.0, 5.0, 0.2)])
    grid = GridSpec(nx=2, ny=2, xmin=0.0, ymin=0.0, xsize=10.0, ysize=10.0)
    config = EstimationConfig(model=VariogramModel.isotropic("exponential", sill=1.0, range=10.0))
    surface = interpolate(samples, grid, config)

    c0 = math.exp(-3.0 * math.sqrt(50.0) / 10.0)
    assert len(surface) == 4
    np.testing.assert_array_equal(surface.estimate, np.full(4, 0.2))
    np.testing.assert_allclose(surface.variance, np.full(4, 1.0 - c0))
    assert surface.ndata.tolist() == [1, 1, 1, 1]
    assert surface.n_failed == 0


def test_surface_in_raster_order(field_samples, kriging_config):
    grid = GridSpec(nx=5, ny=3, xmin=10.0, ymin=20.0, xsize=20.0, ysize=25.0)
    surface = interpolate(field_samples, grid, kriging_config)
    coords = build_grid(grid)
    np.testing.assert_array_equal(surface.x, coords[:, 0])
    np.testing.assert_array_equal(surface.y, coords[:, 1])
    assert surface.estimate_grid().shape == (3, 5)
    assert surface.estimate_grid()[2, 4] == surface.estimate[grid.cell_index(4, 2)]
    frame = surface.to_frame()
    assert frame.loc[grid.cell_index(1, 0), ["x", "y"]].tolist() == [30.0, 20.0]


def test_sample_location_is_honored(field_samples, kriging_config):
    grid = GridSpec(nx=1, ny=1, xmin=field_samples.x[3], ymin=field_samples.y[3], xsize=1.0, ysize=1.0)
    surface = interpolate(field_samples, grid, kriging_config)
    assert surface.estimate[0] == field_samples.values[3]
    assert surface.variance[0] == pytest.approx(0.1)


def test_cells_without_neighbors_are_missing(caplog):
    samples = SampleSet.from_points([(0.0, 0.0, 1.0), (5.0, 0.0, 2.0)])
    grid = GridSpec(nx=4, ny=1, xmin=0.0, ymin=0.0, xsize=10.0, ysize=10.0)
    config = EstimationConfig(method="inverse_distance", search=SearchParameters(max_distance=12.0))
    with caplog.at_level(logging.WARNING, logger="geostats_interp.driver"):
        surface = interpolate(samples, grid, config)

    assert surface.valid.tolist() == [True, True, False, False]
    assert np.isnan(surface.estimate[2:]).all()
    assert surface.n_failed == 2
    failed = surface.failed_cells()
    assert failed["ix"].tolist() == [2, 3]
    assert set(failed["status"]) == {"no_neighbors"}
    assert "could not be estimated" in caplog.text


def test_min_neighbors_not_met():
    samples = SampleSet.from_points([(0.0, 0.0, 1.0), (5.0, 0.0, 2.0)])
    config = EstimationConfig(method="inverse_distance", search=SearchParameters(min_neighbors=3))
    result = estimate_location(samples, (1.0, 1.0), config)
    assert not result.valid
    assert result.status == "no_neighbors"
    assert result.ndata == 2
    assert math.isnan(result.estimate)


def test_singular_cells_are_missing():
    samples = SampleSet.from_points([(5.0, 5.0, 1.0), (5.0, 5.0, 2.0)])
    grid = GridSpec(nx=1, ny=1, xmin=0.0, ymin=0.0, xsize=1.0, ysize=1.0)
    config = EstimationConfig(model=VariogramModel.isotropic("exponential", sill=1.0, range=10.0))
    surface = interpolate(samples, grid, config)
    assert surface[0].status == "singular"
    assert math.isnan(surface[0].estimate)


def test_failures_raise_when_requested():
    samples = SampleSet.from_points([(0.0, 0.0, 1.0)])
    grid = GridSpec(nx=3, ny=1, xmin=0.0, ymin=0.0, xsize=50.0, ysize=50.0)
    config = EstimationConfig(
        method="inverse_distance",
        search=SearchParameters(max_distance=10.0),
        on_failure="raise",
    )
    with pytest.raises(NoNeighbors):
        interpolate(samples, grid, config)


def test_idw_surface_has_no_variance(field_samples):
    grid = GridSpec(nx=4, ny=4, xmin=5.0, ymin=5.0, xsize=25.0, ysize=25.0)
    config = EstimationConfig(method="inverse_distance", power=2.0)
    surface = interpolate(field_samples, grid, config)
    assert surface.valid.all()
    assert np.isnan(surface.variance).all()
    assert field_samples.values.min() <= surface.estimate.min()
    assert surface.estimate.max() <= field_samples.values.max()


@pytest.mark.parametrize("n_workers,chunk_size", [(2, None), (4, 7), (3, 1)])
def test_parallel_matches_sequential(field_samples, kriging_config, n_workers, chunk_size):
    grid = GridSpec(nx=15, ny=12, xmin=0.0, ymin=0.0, xsize=7.0, ysize=9.0)
    sequential = interpolate(field_samples, grid, kriging_config)
    parallel = interpolate(field_samples, grid, kriging_config, n_workers=n_workers, chunk_size=chunk_size)
    np.testing.assert_array_equal(parallel.estimate, sequential.estimate)
    np.testing.assert_array_equal(parallel.variance, sequential.variance)
    np.testing.assert_array_equal(parallel.status, sequential.status)


def test_search_radius_is_reproducible(field_samples):
    # a tight radius leaves holes, but the same cells every run
    config = EstimationConfig(
        model=VariogramModel.isotropic("spherical", sill=1.0, range=40.0),
        search=SearchParameters(max_distance=6.0),
    )
    grid = GridSpec(nx=20, ny=20, xmin=0.0, ymin=0.0, xsize=5.0, ysize=5.0)
    first = interpolate(field_samples, grid, config, n_workers=3)
    second = interpolate(field_samples, grid, config, n_workers=3)
    assert first.n_failed > 0
    np.testing.assert_array_equal(first.valid, second.valid)
    np.testing.assert_array_equal(first.estimate, second.estimate)


@pytest.mark.parametrize("n_workers", [1, 2])
def test_abort(field_samples, kriging_config, n_workers):
    grid = GridSpec(nx=10, ny=10, xmin=0.0, ymin=0.0, xsize=10.0, ysize=10.0)
    event = threading.Event()
    event.set()
    with pytest.raises(InterpolationAborted) as excinfo:
        interpolate(field_samples, grid, kriging_config, n_workers=n_workers, abort_event=event)
    assert excinfo.value.completed < grid.ncells


def test_configuration_errors_before_estimation(field_samples):
    grid = GridSpec(nx=2, ny=2, xmin=0.0, ymin=0.0, xsize=1.0, ysize=1.0)
    with pytest.raises(ValueError):
        interpolate(field_samples, grid, EstimationConfig(model=None))
    with pytest.raises(InvalidStructureParams):
        bad_model = VariogramModel(structures=(VariogramStructure("spherical", 1.0, -5.0),))
        interpolate(field_samples, grid, EstimationConfig(model=bad_model))
    with pytest.raises(InvalidGridSpec):
        interpolate(
            field_samples,
            GridSpec(nx=0, ny=2, xmin=0.0, ymin=0.0, xsize=1.0, ysize=1.0),
            EstimationConfig(method="inverse_distance"),
        )


def test_summary_counts_valid_cells(field_samples, kriging_config):
    grid = GridSpec(nx=6, ny=6, xmin=0.0, ymin=0.0, xsize=20.0, ysize=20.0)
    surface = interpolate(field_samples, grid, kriging_config)
    summary = surface.summary()
    assert summary.loc["estimate", "count"] == len(surface) - surface.n_failed
    assert "50%" in summary.columns


def test_raw_scale_sill_estimates_every_cell():
    rng = np.random.default_rng(8)
    xy = rng.uniform(0, 100, size=(30, 2))
    samples = SampleSet(xy[:, 0], xy[:, 1], rng.normal(1000.0, 500.0, size=30))
    grid = GridSpec(nx=5, ny=5, xmin=10.0, ymin=10.0, xsize=20.0, ysize=20.0)
    unit = EstimationConfig(model=VariogramModel.isotropic("spherical", sill=1.0, range=60.0))
    raw = EstimationConfig(model=VariogramModel.isotropic("spherical", sill=250000.0, range=60.0))

    unit_surface = interpolate(samples, grid, unit)
    raw_surface = interpolate(samples, grid, raw)
    assert raw_surface.n_failed == 0
    np.testing.assert_allclose(raw_surface.estimate, unit_surface.estimate, rtol=1e-9)
    np.testing.assert_allclose(raw_surface.variance, unit_surface.variance * 250000.0, rtol=1e-9, atol=1e-6)


def test_estimate_location_without_model():
    samples = SampleSet.from_points([(0.0, 0.0, 1.0), (5.0, 0.0, 2.0)])
    with pytest.raises(ValueError, match="variogram model"):
        estimate_location(samples, (1.0, 1.0), EstimationConfig(model=None))
