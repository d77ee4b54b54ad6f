"""
FLOWSWATH Flow Direction Calculation
====================================

D8 flow direction with depression handling by priority flood.

Every valid cell is visited once in order of its (filled) elevation, starting
from the cells on the edge of the valid data. The visiting order is a
topological order of the drainage: each cell drains to a neighbour that was
visited before it, so the result never contains cycles.

Two preprocessing modes are supported:
- carve: cells drain to the steepest lower, already visited neighbour on the
  original surface; cells inside depressions or flats follow the flood path
  back to the spill point, cutting a channel through the depression.
- fill: depressions are filled first and cells drain along the steepest
  descent of the filled surface, flats follow the flood path.
"""

import heapq
import itertools
import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple, Dict, Any

import numpy as np
from scipy import ndimage

from .exceptions import DEMError, ValidationError
from .grid import D8_OFFSETS, ElevationGrid, neighbour

PREPROCESS_MODES = ("carve", "fill")

_ROW_OFFSETS = np.array([0] + [dr for dr, _ in D8_OFFSETS], dtype=np.int64)
_COL_OFFSETS = np.array([0] + [dc for _, dc in D8_OFFSETS], dtype=np.int64)


def _reverse_code(code: int) -> int:
    """D8 code pointing the opposite way."""
    return (code + 3) % 8 + 1


@dataclass(eq=False)
class FlowDirection:
    """
    D8 flow direction layer.

    Attributes:
        codes (np.ndarray): Direction codes 1-8 clockwise from north, 0 for no flow
        grid (ElevationGrid): Grid the directions were derived from
        preprocess (str): Depression handling mode
    """

    codes: np.ndarray
    grid: ElevationGrid
    preprocess: str = "carve"

    @property
    def shape(self) -> Tuple[int, int]:
        return self.codes.shape

    def receivers(self) -> np.ndarray:
        """Linear index of the downstream cell of every cell, -1 where there is none."""
        nrows, ncols = self.codes.shape
        rows, cols = np.indices(self.codes.shape)
        target_rows = rows + _ROW_OFFSETS[self.codes]
        target_cols = cols + _COL_OFFSETS[self.codes]
        receivers = np.where(self.codes > 0, target_rows * ncols + target_cols, -1)
        return receivers.ravel()

    def get_downstream_cell(self, row: int, col: int) -> Optional[Tuple[int, int]]:
        """
        Get downstream cell for a given cell.

        Returns:
            Downstream cell coordinates or None if no flow
        """
        nrows, ncols = self.codes.shape
        if not (0 <= row < nrows and 0 <= col < ncols):
            return None

        code = int(self.codes[row, col])
        if code == 0:
            return None

        dr, dc = D8_OFFSETS[code - 1]
        return row + dr, col + dc

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form used by the result container."""
        return {
            "codes": self.codes,
            "receivers": self.receivers().reshape(self.codes.shape),
            "preprocess": self.preprocess,
            "cellsize": self.grid.cellsize,
            "transform": np.array(tuple(self.grid.transform)[:6]),
        }


class FlowDirectionCalculator:
    """
    Calculate D8 flow direction from a DEM.

    Attributes:
        preprocess (str): Depression handling ('carve' or 'fill')
        logger (logging.Logger): Logger instance
    """

    def __init__(self, preprocess: str = "carve", logger: Optional[logging.Logger] = None):
        self.preprocess = preprocess.lower()
        self.logger = logger or logging.getLogger(__name__)

        if self.preprocess not in PREPROCESS_MODES:
            raise ValidationError(f"Unsupported flow direction preprocess: {preprocess}")

    def calculate(self, grid: ElevationGrid) -> FlowDirection:
        """
        Calculate flow direction from a DEM.

        Args:
            grid: Conditioned DEM

        Returns:
            FlowDirection layer with the grid's shape

        Raises:
            DEMError: If calculation fails
        """
        try:
            valid = grid.valid_mask
            if not valid.any():
                raise DEMError("No valid data in DEM")

            filled, flood_codes, rank = self._priority_flood(grid.z, valid)
            surface = grid.z if self.preprocess == "carve" else filled

            codes = self._steepest_descent(surface, rank, grid.cellsize)
            no_descent = (codes == 0) & valid
            codes[no_descent] = flood_codes[no_descent]

            outlets = int(np.sum(valid & (codes == 0)))
            self.logger.info(
                f"Flow direction calculated ({self.preprocess}), {outlets} outlets"
            )
            return FlowDirection(codes, grid, self.preprocess)

        except DEMError:
            raise
        except Exception as e:
            raise DEMError(f"Flow direction calculation failed: {e}")

    def _priority_flood(
        self, z: np.ndarray, valid: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Priority-flood from the edge of the valid data.

        Returns:
            Tuple of (filled surface, direction back along the flood path,
            visiting rank)
        """
        nrows, ncols = z.shape
        filled = z.copy()
        flood_codes = np.zeros(z.shape, dtype=np.uint8)
        rank = np.full(z.shape, np.iinfo(np.int64).max, dtype=np.int64)
        visited = np.zeros(z.shape, dtype=bool)

        # Cells on the grid edge or next to a missing cell seed the flood
        interior = ndimage.binary_erosion(
            valid, structure=np.ones((3, 3), dtype=bool), border_value=0
        )
        seeds = valid & ~interior

        # Counter keeps equal elevations first-in first-out across flats
        counter = itertools.count()
        heap = []
        for row, col in zip(*np.nonzero(seeds)):
            heap.append((z[row, col], next(counter), int(row), int(col)))
        heapq.heapify(heap)
        visited[seeds] = True

        self.logger.debug(f"Initialized priority queue with {len(heap)} edge cells")

        order = 0
        while heap:
            elevation, _, row, col = heapq.heappop(heap)
            rank[row, col] = order
            order += 1

            for code, (dr, dc) in enumerate(D8_OFFSETS, start=1):
                new_row, new_col = row + dr, col + dc
                if (
                    0 <= new_row < nrows
                    and 0 <= new_col < ncols
                    and valid[new_row, new_col]
                    and not visited[new_row, new_col]
                ):
                    visited[new_row, new_col] = True
                    level = max(filled[new_row, new_col], elevation)
                    filled[new_row, new_col] = level
                    flood_codes[new_row, new_col] = _reverse_code(code)
                    heapq.heappush(heap, (level, next(counter), new_row, new_col))

        self.logger.debug(f"Priority flood processed {order} cells")
        return filled, flood_codes, rank

    def _steepest_descent(
        self, surface: np.ndarray, rank: np.ndarray, cellsize: float
    ) -> np.ndarray:
        """Steepest strictly-downhill neighbour among the cells visited earlier."""
        codes = np.zeros(surface.shape, dtype=np.uint8)
        best_slope = np.zeros(surface.shape)
        unreachable = np.iinfo(np.int64).max

        with np.errstate(invalid="ignore"):
            for code, (dr, dc) in enumerate(D8_OFFSETS, start=1):
                distance = cellsize * (math.sqrt(2.0) if dr and dc else 1.0)
                slope = (surface - neighbour(surface, dr, dc, np.nan)) / distance
                earlier = neighbour(rank, dr, dc, unreachable) < rank
                steeper = earlier & (slope > best_slope)
                codes[steeper] = code
                best_slope[steeper] = slope[steeper]

        return codes
