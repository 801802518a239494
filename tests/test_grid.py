import unittest

import numpy as np

from geostats_interp.errors import InvalidGridSpec
from geostats_interp.grid import GridSpec, build_grid, grid_from_extents, make_grid_dataframe
from geostats_interp.samples import SampleSet


class TestBuildGrid(unittest.TestCase):
    def test_cell_centers_in_raster_order(self):
        spec = GridSpec(nx=3, ny=2, xmin=0.0, ymin=100.0, xsize=10.0, ysize=5.0)
        coords = build_grid(spec)
        self.assertEqual(coords.shape, (6, 2))
        expected = [
            (0.0, 100.0), (10.0, 100.0), (20.0, 100.0),
            (0.0, 105.0), (10.0, 105.0), (20.0, 105.0),
        ]
        np.testing.assert_allclose(coords, expected)

    def test_reshape_matches_cell_index(self):
        spec = GridSpec(nx=4, ny=3, xmin=1.0, ymin=2.0, xsize=1.0, ysize=2.0)
        coords = build_grid(spec)
        xs = coords[:, 0].reshape(spec.shape)
        ys = coords[:, 1].reshape(spec.shape)
        for iy in range(3):
            for ix in range(4):
                k = spec.cell_index(ix, iy)
                self.assertEqual(spec.cell_position(k), (ix, iy))
                self.assertEqual(xs[iy, ix], 1.0 + ix * 1.0)
                self.assertEqual(ys[iy, ix], 2.0 + iy * 2.0)

    def test_invalid_specs(self):
        bad = [
            GridSpec(nx=0, ny=2, xmin=0, ymin=0, xsize=1, ysize=1),
            GridSpec(nx=2, ny=-1, xmin=0, ymin=0, xsize=1, ysize=1),
            GridSpec(nx=2, ny=2, xmin=0, ymin=0, xsize=0, ysize=1),
            GridSpec(nx=2, ny=2, xmin=0, ymin=0, xsize=1, ysize=-3),
            GridSpec(nx=2, ny=2, xmin=float("nan"), ymin=0, xsize=1, ysize=1),
        ]
        for spec in bad:
            with self.assertRaises(InvalidGridSpec):
                build_grid(spec)

    def test_grid_dataframe_columns(self):
        spec = GridSpec(nx=2, ny=2, xmin=0, ymin=0, xsize=10, ysize=10)
        df = make_grid_dataframe(spec)
        self.assertListEqual(list(df.columns), ["ix", "iy", "x", "y"])
        self.assertListEqual(df["ix"].tolist(), [0, 1, 0, 1])
        self.assertListEqual(df["iy"].tolist(), [0, 0, 1, 1])


class TestGridFromExtents(unittest.TestCase):
    def test_covers_sample_extents(self):
        samples = SampleSet.from_points([(0, 0, 1.0), (95, 42, 2.0)])
        spec = grid_from_extents(samples, xsize=10, ysize=10, pad=0)
        self.assertEqual(spec.nx, 11)
        self.assertEqual(spec.ny, 6)
        self.assertEqual(spec.xmin, 0.0)
        self.assertGreaterEqual(spec.xmin + (spec.nx - 1) * spec.xsize, 95)
        self.assertGreaterEqual(spec.ymin + (spec.ny - 1) * spec.ysize, 42)

    def test_padding_moves_origin(self):
        samples = SampleSet.from_points([(10, 10, 1.0), (20, 20, 2.0)])
        spec = grid_from_extents(samples, xsize=5, ysize=5, pad=5)
        self.assertEqual((spec.xmin, spec.ymin), (5.0, 5.0))
        self.assertEqual((spec.nx, spec.ny), (5, 5))


if __name__ == "__main__":
    unittest.main()
