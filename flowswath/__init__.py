"""
FLOWSWATH - Stream Networks and Topographic Swaths
==================================================

Builds the base datasets for drainage analysis from Digital Elevation Models
(DEMs) and extracts topographic swath profiles along arbitrary paths.

Key Features:
- DEM conditioning with explicit, automatic (flat detection) or no no-data policy
- D8 flow direction with depression carving or priority-flood filling
- Flow accumulation using topological sorting
- Stream network extraction with Strahler order, saved as MAT and shapefile
- Swath profiles with bends, smoothing and envelope or heatmap reductions
- Python API and command-line interface

Author: FLOWSWATH Team
License: MIT
Version: 1.0.0
"""

__version__ = "1.0.0"
__author__ = "FLOWSWATH Team"
__license__ = "MIT"

from .core import StreamExtractionPipeline, StreamResult, make_streams
from .exceptions import (
    FlowSwathError,
    DEMError,
    StreamError,
    SwathError,
    ValidationError,
    ConfigurationError,
)
from .grid import ElevationGrid
from .swath import DisplayMode, SwathResult, compute_bends, make_topo_swath

__all__ = [
    "ElevationGrid",
    "StreamExtractionPipeline",
    "StreamResult",
    "make_streams",
    "DisplayMode",
    "SwathResult",
    "compute_bends",
    "make_topo_swath",
    "FlowSwathError",
    "DEMError",
    "StreamError",
    "SwathError",
    "ValidationError",
    "ConfigurationError",
]
