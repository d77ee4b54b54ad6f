#!/usr/bin/env python3
"""
Pytest configuration and shared fixtures for FLOWSWATH tests
"""

import warnings

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest
from rasterio.crs import CRS

from flowswath.grid import ElevationGrid

# Suppress common deprecation warnings for cleaner test output
warnings.filterwarnings("ignore", category=DeprecationWarning, module="pyogrio")
warnings.filterwarnings("ignore", category=DeprecationWarning, module="pyproj")


def make_valley(nrows=12, ncols=9, side_slope=10.0, axis_slope=1.0):
    """V-shaped valley draining south, lowest cell at the bottom centre."""
    rows, cols = np.indices((nrows, ncols))
    mid = ncols // 2
    return np.abs(cols - mid) * side_slope + (nrows - rows) * axis_slope


@pytest.fixture
def valley_dem():
    """12x9 V-valley with 10 m cells."""
    return ElevationGrid.from_array(make_valley(), cellsize=10.0, origin=(0.0, 120.0))


@pytest.fixture
def plane_dem():
    """10x10 grid with 10 m cells where elevation equals the x coordinate."""
    grid = ElevationGrid.from_array(np.zeros((10, 10)), cellsize=10.0, origin=(0.0, 100.0))
    x, _ = grid.cell_centers()
    return grid.with_values(x)


@pytest.fixture
def lake_dem():
    """
    Inclined plane with two flat pits at elevation 0, 10 m cells.

    The 3x3 pit (9 cells) sits in the upper left, the 2x5 pit (10 cells) in
    the lower right.
    """
    rows, cols = np.indices((20, 20))
    z = 100.0 + rows + cols
    z[3:6, 3:6] = 0.0
    z[14:16, 12:17] = 0.0
    return ElevationGrid.from_array(z, cellsize=10.0)


@pytest.fixture
def padded_dem():
    """Valley surrounded by a no-data border of uneven width."""
    z = np.full((18, 15), np.nan)
    z[2:14, 4:13] = make_valley()
    return ElevationGrid.from_array(z, cellsize=10.0, origin=(500.0, 1000.0))


@pytest.fixture
def dem_file(tmp_path):
    """Valley DEM written to a GeoTIFF in a projected CRS."""
    path = tmp_path / "valley.tif"
    grid = ElevationGrid.from_array(
        make_valley(), cellsize=10.0, origin=(500000.0, 4000120.0),
        crs=CRS.from_epsg(32633), name="valley",
    )
    grid.to_file(path)
    return path
