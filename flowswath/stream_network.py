"""
FLOWSWATH Stream Network
========================

Vector stream network built from a D8 flow direction layer and a boolean
stream mask.

The network is stored as a node/edge graph in topological order (every giver
comes before its receiver), similar to the channel graph used by most
landscape evolution tools, and can be split into line segments between
channel heads, confluences and outlets for export.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import List, Optional, Dict, Any, Tuple

import numpy as np
import geopandas as gpd
from shapely.geometry import LineString

from .exceptions import StreamError
from .flow_direction import FlowDirection


@dataclass(eq=False)
class StreamSegment:
    """Reach between two network junctions."""

    segment_id: int
    nodes: List[int]
    order: int
    coords: List[Tuple[float, float]]

    @property
    def geometry(self) -> LineString:
        return LineString(self.coords)

    @property
    def length(self) -> float:
        return self.geometry.length


@dataclass(eq=False)
class StreamNetwork:
    """
    Stream network graph.

    Attributes:
        cells (np.ndarray): Linear grid index of each node, topologically sorted
        ix (np.ndarray): Giver node of each edge
        ixc (np.ndarray): Receiver node of each edge
        x, y (np.ndarray): Map coordinates of each node
        order (np.ndarray): Strahler order of each node
        shape (Tuple[int, int]): Shape of the source grid
        cellsize (float): Cellsize of the source grid
        crs: Coordinate reference system of the source grid
    """

    cells: np.ndarray
    ix: np.ndarray
    ixc: np.ndarray
    x: np.ndarray
    y: np.ndarray
    order: np.ndarray
    shape: Tuple[int, int]
    cellsize: float
    crs: Optional[Any] = None

    @classmethod
    def from_flow(
        cls,
        flow_direction: FlowDirection,
        is_stream: np.ndarray,
        logger: Optional[logging.Logger] = None,
    ) -> "StreamNetwork":
        """
        Extract the network of stream cells.

        Args:
            flow_direction: D8 flow direction layer
            is_stream: Boolean mask of stream cells

        Raises:
            StreamError: If the mask does not match the flow direction grid
        """
        logger = logger or logging.getLogger(__name__)
        is_stream = np.asarray(is_stream, dtype=bool)
        if is_stream.shape != flow_direction.shape:
            raise StreamError(
                f"Stream mask shape {is_stream.shape} does not match "
                f"flow direction shape {flow_direction.shape}"
            )

        grid = flow_direction.grid
        mask = (is_stream & grid.valid_mask).ravel()
        receivers = flow_direction.receivers()

        stream_cells = np.flatnonzero(mask)
        stream_receivers = receivers[stream_cells]
        has_receiver = stream_receivers >= 0
        has_receiver[has_receiver] = mask[stream_receivers[has_receiver]]
        stream_receivers = np.where(has_receiver, stream_receivers, -1)

        cells = _topological_sort(stream_cells, stream_receivers)

        node_of = np.full(receivers.size, -1, dtype=np.int64)
        node_of[cells] = np.arange(cells.size)
        receiver_cells = receivers[cells]
        receiver_nodes = np.where(
            receiver_cells >= 0, node_of[np.maximum(receiver_cells, 0)], -1
        )
        givers = np.flatnonzero(receiver_nodes >= 0)
        ix = givers
        ixc = receiver_nodes[givers]

        rows, cols = np.unravel_index(cells, grid.shape)
        x, y = grid.xy(rows, cols)
        order = _strahler_order(cells.size, ix, ixc)

        network = cls(
            cells=cells,
            ix=ix,
            ixc=ixc,
            x=x,
            y=y,
            order=order,
            shape=grid.shape,
            cellsize=grid.cellsize,
            crs=grid.crs,
        )
        logger.info(
            f"Extracted stream network: {len(network)} nodes, "
            f"{len(network.outlets())} outlets, max order {network.max_order}"
        )
        return network

    def __len__(self) -> int:
        return int(self.cells.size)

    @property
    def max_order(self) -> int:
        return int(self.order.max()) if self.order.size else 0

    def receiver_nodes(self) -> np.ndarray:
        """Downstream node of each node, -1 at outlets."""
        receivers = np.full(len(self), -1, dtype=np.int64)
        receivers[self.ix] = self.ixc
        return receivers

    def donor_counts(self) -> np.ndarray:
        return np.bincount(self.ixc, minlength=len(self))

    def outlets(self) -> np.ndarray:
        return np.flatnonzero(self.receiver_nodes() < 0)

    def channel_heads(self) -> np.ndarray:
        return np.flatnonzero(self.donor_counts() == 0)

    def confluences(self) -> np.ndarray:
        return np.flatnonzero(self.donor_counts() >= 2)

    def stream_mask(self) -> np.ndarray:
        """Boolean grid of the network cells."""
        mask = np.zeros(self.shape[0] * self.shape[1], dtype=bool)
        mask[self.cells] = True
        return mask.reshape(self.shape)

    def segments(self) -> List[StreamSegment]:
        """
        Split the network into reaches.

        A reach starts at a channel head or a confluence and runs downstream up
        to and including the next confluence or outlet.
        """
        receivers = self.receiver_nodes()
        donors = self.donor_counts()
        starts = np.flatnonzero(donors != 1)

        segments = []
        for start in starts:
            nodes = [int(start)]
            current = int(start)
            while receivers[current] >= 0:
                current = int(receivers[current])
                nodes.append(current)
                if donors[current] != 1:
                    break

            if len(nodes) < 2:
                continue

            coords = [(float(self.x[n]), float(self.y[n])) for n in nodes]
            segments.append(
                StreamSegment(
                    segment_id=len(segments) + 1,
                    nodes=nodes,
                    order=int(self.order[nodes[0]]),
                    coords=coords,
                )
            )
        return segments

    def to_geodataframe(self) -> gpd.GeoDataFrame:
        """Reaches as a GeoDataFrame of LineStrings with id, order and length."""
        segments = self.segments()
        crs = self.crs.to_wkt() if self.crs else None
        return gpd.GeoDataFrame(
            {
                "id": [s.segment_id for s in segments],
                "order": [s.order for s in segments],
                "length": [s.length for s in segments],
            },
            geometry=[s.geometry for s in segments],
            crs=crs,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form used by the result container."""
        return {
            "IXgrid": self.cells,
            "ix": self.ix,
            "ixc": self.ixc,
            "x": self.x,
            "y": self.y,
            "order": self.order,
            "size": np.array(self.shape),
            "cellsize": self.cellsize,
        }


def _topological_sort(cells: np.ndarray, receivers: np.ndarray) -> np.ndarray:
    """
    Order stream cells so that each cell precedes its receiver.

    Args:
        cells: Linear indices of the stream cells
        receivers: Linear index of the downstream stream cell, -1 if none
    """
    position = {cell: i for i, cell in enumerate(cells.tolist())}
    downstream = [position[r] if r >= 0 else -1 for r in receivers.tolist()]

    upstream_count = [0] * len(downstream)
    for d in downstream:
        if d >= 0:
            upstream_count[d] += 1

    queue = deque(i for i, count in enumerate(upstream_count) if count == 0)
    ordered = []
    while queue:
        node = queue.popleft()
        ordered.append(node)
        d = downstream[node]
        if d >= 0:
            upstream_count[d] -= 1
            if upstream_count[d] == 0:
                queue.append(d)

    if len(ordered) != len(downstream):
        raise StreamError("Stream network contains cycles")

    return cells[np.array(ordered, dtype=np.int64)] if ordered else cells.copy()


def _strahler_order(n_nodes: int, ix: np.ndarray, ixc: np.ndarray) -> np.ndarray:
    """Strahler order of topologically sorted nodes."""
    order = np.ones(n_nodes, dtype=np.int64)
    max_inflow = np.zeros(n_nodes, dtype=np.int64)
    max_count = np.zeros(n_nodes, dtype=np.int64)

    receivers = np.full(n_nodes, -1, dtype=np.int64)
    receivers[ix] = ixc

    for node in range(n_nodes):
        if max_count[node] >= 2:
            order[node] = max_inflow[node] + 1
        elif max_count[node] == 1:
            order[node] = max_inflow[node]

        downstream = receivers[node]
        if downstream < 0:
            continue
        if order[node] > max_inflow[downstream]:
            max_inflow[downstream] = order[node]
            max_count[downstream] = 1
        elif order[node] == max_inflow[downstream]:
            max_count[downstream] += 1

    return order
