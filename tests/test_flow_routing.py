#!/usr/bin/env python3
"""
Tests for flow direction, flow accumulation and stream network extraction
"""

import numpy as np
import pytest

from flowswath.exceptions import DEMError, StreamError, ValidationError
from flowswath.flow_accumulation import FlowAccumulationCalculator
from flowswath.flow_direction import FlowDirection, FlowDirectionCalculator, _reverse_code
from flowswath.grid import ElevationGrid
from flowswath.stream_network import StreamNetwork


def follow_to_outlet(flow_direction, row, col, max_steps):
    """Walk downstream until a cell without flow, or give up."""
    for _ in range(max_steps):
        downstream = flow_direction.get_downstream_cell(row, col)
        if downstream is None:
            return row, col
        row, col = downstream
    return None


class TestFlowDirection:
    """D8 flow direction with depression handling."""

    def test_reverse_code(self):
        assert _reverse_code(1) == 5
        assert _reverse_code(5) == 1
        assert _reverse_code(3) == 7
        assert _reverse_code(8) == 4

    def test_unknown_preprocess(self):
        with pytest.raises(ValidationError):
            FlowDirectionCalculator(preprocess="breach")

    @pytest.mark.parametrize("preprocess", ["carve", "fill"])
    def test_valley_drains_to_bottom_centre(self, valley_dem, preprocess):
        fd = FlowDirectionCalculator(preprocess).calculate(valley_dem)

        assert fd.codes.shape == valley_dem.shape
        for row in range(valley_dem.nrows):
            for col in range(valley_dem.ncols):
                assert follow_to_outlet(fd, row, col, valley_dem.z.size) == (11, 4)

    def test_side_slopes_drain_towards_axis(self, valley_dem):
        fd = FlowDirectionCalculator().calculate(valley_dem)

        # East of the axis flows west (7), west of it flows east (3)
        assert fd.codes[5, 6] == 7
        assert fd.codes[5, 2] == 3
        # The axis flows south (5)
        assert fd.codes[5, 4] == 5

    @pytest.mark.parametrize("preprocess", ["carve", "fill"])
    def test_pit_is_routed_out(self, valley_dem, preprocess):
        z = valley_dem.z.copy()
        z[5, 4] = -50.0
        grid = valley_dem.with_values(z)

        fd = FlowDirectionCalculator(preprocess).calculate(grid)

        assert fd.get_downstream_cell(5, 4) is not None
        for row in range(grid.nrows):
            for col in range(grid.ncols):
                assert follow_to_outlet(fd, row, col, grid.z.size) is not None

    def test_missing_cells_have_no_flow(self, padded_dem):
        fd = FlowDirectionCalculator().calculate(padded_dem)

        assert (fd.codes[~padded_dem.valid_mask] == 0).all()
        assert (fd.receivers()[~padded_dem.valid_mask.ravel()] == -1).all()

    def test_all_missing(self):
        grid = ElevationGrid.from_array(np.full((3, 3), np.nan))
        with pytest.raises(DEMError):
            FlowDirectionCalculator().calculate(grid)

    def test_receivers_match_downstream_cells(self, valley_dem):
        fd = FlowDirectionCalculator().calculate(valley_dem)
        receivers = fd.receivers()

        downstream = fd.get_downstream_cell(5, 6)
        assert receivers[5 * valley_dem.ncols + 6] == downstream[0] * valley_dem.ncols + downstream[1]
        assert receivers[11 * valley_dem.ncols + 4] == -1


class TestFlowAccumulation:
    """Topological flow accumulation."""

    def test_outlet_collects_every_cell(self, valley_dem):
        fd = FlowDirectionCalculator().calculate(valley_dem)
        acc = FlowAccumulationCalculator().calculate(fd)

        assert acc.z[11, 4] == valley_dem.z.size
        assert acc.z.min() == 1.0

    def test_weights(self, valley_dem):
        fd = FlowDirectionCalculator().calculate(valley_dem)
        acc = FlowAccumulationCalculator().calculate(fd, weights=np.full(valley_dem.shape, 2.0))

        assert acc.z[11, 4] == 2 * valley_dem.z.size

    def test_missing_cells(self, padded_dem):
        fd = FlowDirectionCalculator().calculate(padded_dem)
        acc = FlowAccumulationCalculator().calculate(fd)

        assert np.array_equal(np.isnan(acc.z), ~padded_dem.valid_mask)
        assert np.nanmax(acc.z) == padded_dem.valid_mask.sum()

    def test_cycle_detected(self):
        grid = ElevationGrid.from_array(np.zeros((1, 2)))
        fd = FlowDirection(np.array([[3, 7]], dtype=np.uint8), grid)

        with pytest.raises(DEMError):
            FlowAccumulationCalculator().calculate(fd)


class TestStreamNetwork:
    """Stream network graph, Strahler order and reaches."""

    def setup_method(self):
        # Two heads joining at the centre and leaving through the bottom
        grid = ElevationGrid.from_array(np.zeros((3, 3)), cellsize=1.0)
        codes = np.zeros((3, 3), dtype=np.uint8)
        codes[0, 0] = 4
        codes[0, 2] = 6
        codes[1, 1] = 5
        self.fd = FlowDirection(codes, grid)
        self.is_stream = np.zeros((3, 3), dtype=bool)
        self.is_stream[[0, 0, 1, 2], [0, 2, 1, 1]] = True

    def test_topology(self):
        network = StreamNetwork.from_flow(self.fd, self.is_stream)

        assert len(network) == 4
        assert network.cells[network.confluences()].tolist() == [4]
        assert network.cells[network.outlets()].tolist() == [7]
        assert sorted(network.cells[network.channel_heads()].tolist()) == [0, 2]
        assert np.array_equal(network.stream_mask(), self.is_stream)

    def test_topological_order(self):
        network = StreamNetwork.from_flow(self.fd, self.is_stream)
        assert (network.ix < network.ixc).all()

    def test_strahler_order(self):
        network = StreamNetwork.from_flow(self.fd, self.is_stream)
        order = dict(zip(network.cells.tolist(), network.order.tolist()))

        assert order == {0: 1, 2: 1, 4: 2, 7: 2}
        assert network.max_order == 2

    def test_segments(self):
        network = StreamNetwork.from_flow(self.fd, self.is_stream)
        segments = network.segments()

        assert len(segments) == 3
        assert sorted(s.order for s in segments) == [1, 1, 2]
        head_reaches = [s for s in segments if s.order == 1]
        for reach in head_reaches:
            assert reach.length == pytest.approx(np.sqrt(2.0))

    def test_geodataframe(self):
        reaches = StreamNetwork.from_flow(self.fd, self.is_stream).to_geodataframe()

        assert len(reaches) == 3
        assert list(reaches.columns) == ["id", "order", "length", "geometry"]
        assert (reaches.geometry.geom_type == "LineString").all()

    def test_mask_shape_mismatch(self):
        with pytest.raises(StreamError):
            StreamNetwork.from_flow(self.fd, np.zeros((2, 2), dtype=bool))

    def test_stream_leaving_the_mask_ends_at_outlet(self):
        is_stream = self.is_stream.copy()
        is_stream[2, 1] = False

        network = StreamNetwork.from_flow(self.fd, is_stream)

        assert network.cells[network.outlets()].tolist() == [4]
        assert network.max_order == 2

    def test_empty_network(self):
        network = StreamNetwork.from_flow(self.fd, np.zeros((3, 3), dtype=bool))

        assert len(network) == 0
        assert network.max_order == 0
        assert network.segments() == []
        assert network.to_geodataframe().empty
