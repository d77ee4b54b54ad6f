#!/usr/bin/env python3
"""
Tests for the stream extraction pipeline and result persistence
"""

import logging

import numpy as np
import pytest

from flowswath import make_streams
from flowswath.config import load_config
from flowswath.core import StreamExtractionPipeline, min_area_pixels, resolve_dem
from flowswath.exceptions import ValidationError
from flowswath.grid import ElevationGrid
from flowswath.persistence import CONTAINER_KEYS, load_stream_container, save_stream_outputs

from conftest import make_valley


class TestThreshold:
    """Drainage area threshold conversion."""

    def test_min_area_pixels_rounds_down(self):
        assert min_area_pixels(1e6, 30.0) == 1111
        assert min_area_pixels(500.0, 10.0) == 5
        assert min_area_pixels(99.0, 10.0) == 0


class TestInputValidation:
    """Inputs are rejected before any processing."""

    def test_unrecognized_dem(self):
        with pytest.raises(ValidationError):
            make_streams(42, 1e6)

    def test_resolve_dem(self, valley_dem, dem_file):
        assert resolve_dem(valley_dem) is valley_dem
        assert resolve_dem(dem_file).shape == valley_dem.shape
        with pytest.raises(ValidationError):
            resolve_dem([1, 2, 3])

    @pytest.mark.parametrize("threshold_area", [0, -10.0, float("nan"), "big", True])
    def test_bad_threshold(self, valley_dem, threshold_area):
        with pytest.raises(ValidationError):
            make_streams(valley_dem, threshold_area)

    def test_bad_cellsize(self, valley_dem):
        with pytest.raises(ValidationError):
            make_streams(valley_dem, 500.0, resample_grid=True, new_cellsize=-1.0)

    @pytest.mark.parametrize(
        "options",
        [
            {"no_data_exp": 5},
            {"no_data_exp": ["DEM<0"]},
            {"no_data_exp": "auto", "min_flat_area": "big"},
            {"no_data_exp": "auto", "min_flat_area": -1.0},
            {"min_flat_area": float("inf")},
        ],
    )
    def test_bad_conditioning_options(self, valley_dem, options):
        with pytest.raises(ValidationError):
            make_streams(valley_dem, 500.0, **options)


class TestMakeStreams:
    """End-to-end stream extraction."""

    def test_valley_axis_is_the_stream(self, valley_dem):
        dem, fd, acc, streams = make_streams(valley_dem, 500.0)

        assert dem.shape == valley_dem.shape
        assert fd.codes.shape == dem.shape
        assert acc.z[11, 4] == dem.z.size

        expected = np.zeros(dem.shape, dtype=bool)
        expected[:, 4] = True
        assert np.array_equal(streams.stream_mask(), expected)
        assert streams.max_order == 1
        assert len(streams.segments()) == 1

    def test_stream_cells_exceed_threshold(self, valley_dem):
        result = make_streams(valley_dem, 500.0)
        threshold = min_area_pixels(500.0, result.dem.cellsize)

        mask = result.streams.stream_mask()
        assert (result.accumulation.z[mask] > threshold).all()
        assert (result.accumulation.z[~mask] <= threshold).all()

    def test_input_is_not_modified(self, padded_dem):
        before = padded_dem.z.copy()

        dem, _, _, _ = make_streams(padded_dem, 500.0, no_data_exp="DEM>40")

        assert np.array_equal(padded_dem.z, before, equal_nan=True)
        assert dem.shape[0] <= padded_dem.shape[0]
        assert dem.shape[1] <= padded_dem.shape[1]

    def test_from_file(self, dem_file):
        dem, _, _, streams = make_streams(str(dem_file), 500.0)

        assert dem.crs is not None
        assert dem.name == "valley"
        assert streams.to_geodataframe().crs is not None

    def test_resample_to_whole_cellsize(self, caplog):
        grid = ElevationGrid.from_array(make_valley(), cellsize=10.5)

        with caplog.at_level(logging.WARNING):
            dem, _, _, _ = make_streams(grid, 500.0, resample_grid=True)

        assert dem.cellsize == 11.0
        assert "not a whole number" not in caplog.text

    def test_fractional_cellsize_warns(self, caplog):
        grid = ElevationGrid.from_array(make_valley(), cellsize=10.5)

        with caplog.at_level(logging.WARNING):
            make_streams(grid, 500.0)

        assert "not a whole number" in caplog.text

    def test_fill_preprocess_from_config(self, valley_dem):
        config = load_config(overrides={"streams": {"flow_preprocess": "fill"}})

        result = StreamExtractionPipeline(config).run(valley_dem, 500.0)

        assert result.flow_direction.preprocess == "fill"

    def test_threshold_from_config(self, valley_dem):
        config = load_config(overrides={"streams": {"threshold_area": 500.0}})

        result = StreamExtractionPipeline(config).run(valley_dem)

        assert len(result.streams) == valley_dem.nrows


class TestPersistence:
    """MAT container and shapefile output."""

    def test_make_streams_saves_outputs(self, valley_dem, tmp_path):
        base = tmp_path / "AreaFiles"

        make_streams(valley_dem, 500.0, file_name=base)

        assert (tmp_path / "AreaFiles.mat").exists()
        assert (tmp_path / "AreaFiles.shp").exists()

    def test_container_contents(self, valley_dem, tmp_path):
        result = make_streams(valley_dem, 500.0)
        mat_path, shp_path = save_stream_outputs(tmp_path / "out", *result)

        container = load_stream_container(mat_path)

        assert set(container) == set(CONTAINER_KEYS)
        assert np.array_equal(container["DEM"]["Z"], result.dem.z)
        assert np.array_equal(container["FD"]["codes"], result.flow_direction.codes)
        assert container["S"]["cellsize"] == 10.0
        assert shp_path.exists()

    def test_skip_shapefile(self, valley_dem, tmp_path):
        result = make_streams(valley_dem, 500.0)

        mat_path, shp_path = save_stream_outputs(
            tmp_path / "out", *result, write_shapefile=False
        )

        assert mat_path.exists()
        assert shp_path is None

    def test_empty_network_skips_shapefile(self, valley_dem, tmp_path, caplog):
        result = make_streams(valley_dem, 1e9)

        with caplog.at_level(logging.WARNING):
            _, shp_path = save_stream_outputs(tmp_path / "out", *result)

        assert shp_path is None
        assert "no reaches" in caplog.text
