"""
FLOWSWATH Flat Region Detection
===============================

Identifies large flat or void areas of a DEM (lakes, reservoirs, sea surface,
fill artefacts) so they can be set to no-data before flow routing.

A cell is a flat candidate when the log of its steepest descent gradient is
undefined (no lower neighbour, or the cell itself is missing). Candidate
cells are grouped into 8-connected components and only components covering
at least `min_flat_area` are kept; smaller ones are local pits or noise.
"""

import logging
import math
import numbers
from typing import Optional

import numpy as np
from skimage import measure

from .exceptions import ValidationError
from .grid import ElevationGrid, gradient8

DEFAULT_MIN_FLAT_AREA = 1e5


class FlatRegionDetector:
    """
    Detect connected flat regions of a DEM.

    Attributes:
        min_flat_area (float): Minimum region area in map units squared
        logger (logging.Logger): Logger instance
    """

    def __init__(
        self,
        min_flat_area: float = DEFAULT_MIN_FLAT_AREA,
        logger: Optional[logging.Logger] = None,
    ):
        if (
            not isinstance(min_flat_area, numbers.Real)
            or isinstance(min_flat_area, bool)
            or not math.isfinite(min_flat_area)
            or min_flat_area < 0
        ):
            raise ValidationError(
                f"min_flat_area must be a non-negative number, got {min_flat_area!r}"
            )
        self.min_flat_area = float(min_flat_area)
        self.logger = logger or logging.getLogger(__name__)

    def min_pixels(self, cellsize: float) -> int:
        """Area threshold converted to a cell count, halves rounded up."""
        return int(math.floor(self.min_flat_area / (cellsize**2) + 0.5))

    def candidates(self, grid: ElevationGrid) -> np.ndarray:
        """Cells where log10 of the gradient is NaN or infinite."""
        with np.errstate(divide="ignore", invalid="ignore"):
            log_gradient = np.log10(gradient8(grid))
        return np.isnan(log_gradient) | np.isinf(log_gradient)

    def detect(self, grid: ElevationGrid) -> np.ndarray:
        """
        Build the flat region mask.

        Args:
            grid: Elevation grid

        Returns:
            Boolean mask, True for cells in a flat region large enough to drop
        """
        candidates = self.candidates(grid)
        labels = measure.label(candidates, connectivity=2)
        sizes = np.bincount(labels.ravel())
        # label 0 is background
        sizes[0] = 0

        threshold = self.min_pixels(grid.cellsize)
        keep = sizes >= threshold
        keep[0] = False
        flats = keep[labels]

        self.logger.info(
            f"Found {int(keep.sum())} flat regions of at least {threshold} pixels "
            f"({int(flats.sum())} cells) out of {labels.max()} candidate regions"
        )
        return flats

    def apply(self, grid: ElevationGrid) -> ElevationGrid:
        """Return a copy of the grid with flat regions set to NaN."""
        flats = self.detect(grid)
        z = grid.z.copy()
        z[flats] = np.nan
        return grid.with_values(z)
