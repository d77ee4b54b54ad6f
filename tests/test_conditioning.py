#!/usr/bin/env python3
"""
Tests for flat region detection and DEM conditioning
"""

import logging

import numpy as np
import pytest

from flowswath.conditioning import DemConditioner, NoDataPredicate, PredicateError
from flowswath.exceptions import DEMError, ValidationError
from flowswath.flat_detection import FlatRegionDetector
from flowswath.grid import ElevationGrid


class TestFlatRegionDetector:
    """Flat region detection by connected component size."""

    def test_min_pixels(self):
        assert FlatRegionDetector(1000).min_pixels(10.0) == 10
        assert FlatRegionDetector(1e5).min_pixels(30.0) == 111

    def test_min_pixels_rounds_halves_up(self):
        assert FlatRegionDetector(250.0).min_pixels(10.0) == 3
        assert FlatRegionDetector(1e5).min_pixels(40.0) == 63
        assert FlatRegionDetector(350.0).min_pixels(10.0) == 4

    def test_threshold_at_half_cell(self):
        rows, cols = np.mgrid[0:20, 0:20]
        z = 100.0 + rows + cols
        z[5, 5:7] = 0.0
        z[12, 10:13] = 0.0
        grid = ElevationGrid.from_array(z, cellsize=10.0)

        # 250 / 10**2 = 2.5 rounds to a 3 pixel threshold
        flats = FlatRegionDetector(250.0).detect(grid)

        assert not flats[5, 5:7].any()
        assert flats[12, 10:13].all()
        assert flats.sum() == 3

    @pytest.mark.parametrize("area", [-1.0, float("nan"), "1e5", None, True])
    def test_rejects_bad_area(self, area):
        with pytest.raises(ValidationError):
            FlatRegionDetector(area)

    def test_candidates_include_pits(self, lake_dem):
        candidates = FlatRegionDetector(1000).candidates(lake_dem)

        assert candidates[3:6, 3:6].all()
        assert candidates[14:16, 12:17].all()
        assert not candidates[10, 10]

    def test_component_below_threshold_is_kept(self, lake_dem):
        flats = FlatRegionDetector(1000).detect(lake_dem)

        # 9 cells, one short of the 10 pixel threshold
        assert not flats[3:6, 3:6].any()

    def test_component_at_threshold_is_masked(self, lake_dem):
        flats = FlatRegionDetector(1000).detect(lake_dem)

        assert flats[14:16, 12:17].all()
        assert flats.sum() == 10

    def test_apply(self, lake_dem):
        cleaned = FlatRegionDetector(1000).apply(lake_dem)

        assert np.isnan(cleaned.z[14:16, 12:17]).all()
        assert np.isnan(cleaned.z).sum() == 10
        assert not np.isnan(lake_dem.z).any()


class TestNoDataPredicate:
    """Parsing and evaluation of no-data expressions."""

    def setup_method(self):
        self.z = np.array([[-200.0, 0.0, 50.0], [999.0, 1001.0, np.nan]])

    def test_or_binds_looser_than_comparison(self):
        mask = NoDataPredicate("DEM<=0 | DEM>1000").evaluate(self.z)

        expected = np.array([[True, True, False], [False, True, False]])
        assert np.array_equal(mask, expected)

    def test_and_and_chained_comparison(self):
        assert np.array_equal(
            NoDataPredicate("DEM>0 & DEM<1000").evaluate(self.z),
            NoDataPredicate("0 < DEM < 1000").evaluate(self.z),
        )

    def test_negation_and_functions(self):
        mask = NoDataPredicate("~isfinite(DEM) | abs(DEM) > 100").evaluate(self.z)

        expected = np.array([[True, False, False], [True, True, True]])
        assert np.array_equal(mask, expected)

    def test_not_equal(self):
        mask = NoDataPredicate("DEM ~= 0").evaluate(np.array([[0.0, 1.0]]))
        assert np.array_equal(mask, [[False, True]])

    def test_syntax_error(self):
        with pytest.raises(PredicateError):
            NoDataPredicate("DEM <== 3")

    def test_non_boolean_result(self):
        with pytest.raises(PredicateError):
            NoDataPredicate("DEM + 1").evaluate(self.z)

    def test_unknown_name(self):
        with pytest.raises(PredicateError):
            NoDataPredicate("elevation > 3").evaluate(self.z)

    def test_no_arbitrary_code(self):
        with pytest.raises(PredicateError):
            NoDataPredicate("__import__('os').getcwd()").evaluate(self.z)


class TestDemConditioner:
    """No-data policies and cropping."""

    def test_policy(self):
        assert DemConditioner().policy == "none"
        assert DemConditioner("auto").policy == "auto"
        assert DemConditioner("DEM<0").policy == "expression"

    @pytest.mark.parametrize("no_data_exp", [5, 0.0, ["DEM<0"], b"DEM<0"])
    def test_rejects_non_string_expression(self, no_data_exp):
        with pytest.raises(ValidationError):
            DemConditioner(no_data_exp)

    def test_none_policy_keeps_valid_values(self, padded_dem):
        conditioned = DemConditioner().condition(padded_dem)

        assert conditioned.shape == (12, 9)
        assert np.array_equal(conditioned.z, padded_dem.z[2:14, 4:13])

    def test_expression_masks_then_crops(self, valley_dem):
        conditioned = DemConditioner("DEM>40").condition(valley_dem)

        # The outermost columns are above 40 everywhere
        assert conditioned.shape == (12, 7)
        assert np.nanmax(conditioned.z) <= 40
        assert np.isnan(conditioned.z).sum() > 0

    def test_bad_expression_warns_and_continues(self, valley_dem, caplog):
        with caplog.at_level(logging.WARNING):
            conditioned = DemConditioner("DEM <== 3").condition(valley_dem)

        assert "not a valid expression" in caplog.text
        assert np.array_equal(conditioned.z, valley_dem.z)

    def test_auto_policy(self, lake_dem):
        conditioned = DemConditioner("auto", min_flat_area=1000).condition(lake_dem)

        assert conditioned.shape == lake_dem.shape
        assert np.isnan(conditioned.z[14:16, 12:17]).all()
        assert not np.isnan(conditioned.z[3:6, 3:6]).any()

    def test_everything_masked(self, valley_dem):
        with pytest.raises(DEMError):
            DemConditioner("DEM > -1").condition(valley_dem)

    def test_fractional_cellsize_warning(self, caplog):
        grid = ElevationGrid.from_array(np.ones((3, 3)), cellsize=2.5)
        conditioner = DemConditioner()

        with caplog.at_level(logging.WARNING):
            assert conditioner.check_cellsize(grid) is True
        assert "not a whole number" in caplog.text

        assert conditioner.check_cellsize(grid, resample_requested=True) is False

    def test_whole_cellsize_no_warning(self, valley_dem):
        assert DemConditioner().check_cellsize(valley_dem) is False
