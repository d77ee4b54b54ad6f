"""
FLOWSWATH Result Persistence
============================

Writes stream extraction results: a MAT container holding the conditioned
DEM, flow direction, flow accumulation and stream network, plus a shapefile
of the stream reaches.
"""

import logging
import os
from pathlib import Path
from typing import Dict, Any, Optional, Tuple, Union

import numpy as np
from scipy.io import loadmat, savemat

from .flow_direction import FlowDirection
from .grid import ElevationGrid
from .stream_network import StreamNetwork

logger = logging.getLogger(__name__)

CONTAINER_KEYS = ("DEM", "FD", "A", "S")


def grid_to_dict(grid: ElevationGrid) -> Dict[str, Any]:
    """Serializable form of a grid."""
    return {
        "Z": grid.z,
        "cellsize": grid.cellsize,
        "transform": np.array(tuple(grid.transform)[:6]),
        "crs": grid.crs.to_wkt() if grid.crs else "",
        "name": grid.name,
    }


def save_stream_outputs(
    file_name: Union[str, os.PathLike],
    dem: ElevationGrid,
    flow_direction: FlowDirection,
    accumulation: ElevationGrid,
    streams: StreamNetwork,
    compress: bool = True,
    write_shapefile: bool = True,
) -> Tuple[Path, Optional[Path]]:
    """
    Save stream extraction outputs.

    Args:
        file_name: Base name; '.mat' and '.shp' are appended
        dem: Conditioned DEM
        flow_direction: Flow direction layer
        accumulation: Flow accumulation grid
        streams: Stream network
        compress: Compress the MAT container
        write_shapefile: Also export the stream reaches

    Returns:
        Tuple of (container path, shapefile path or None); the shapefile
        path is None when it was not requested or the network has no reaches
    """
    base = Path(file_name)
    mat_path = base.with_name(base.name + ".mat")
    shp_path = base.with_name(base.name + ".shp")

    savemat(
        mat_path,
        {
            "DEM": grid_to_dict(dem),
            "FD": flow_direction.to_dict(),
            "A": grid_to_dict(accumulation),
            "S": streams.to_dict(),
        },
        do_compression=compress,
    )
    logger.info(f"Saved results to {mat_path}")

    if not write_shapefile:
        return mat_path, None

    reaches = streams.to_geodataframe()
    if reaches.empty:
        logger.warning("Stream network has no reaches, shapefile not written")
        return mat_path, None

    reaches.to_file(shp_path)
    logger.info(f"Saved stream network to {shp_path}")
    return mat_path, shp_path


def load_stream_container(path: Union[str, os.PathLike]) -> Dict[str, Any]:
    """Load a container written by `save_stream_outputs` as nested dicts."""
    contents = loadmat(path, simplify_cells=True)
    return {key: contents[key] for key in CONTAINER_KEYS if key in contents}
