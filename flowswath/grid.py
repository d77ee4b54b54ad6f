"""
FLOWSWATH Elevation Grid
========================

Raster container shared by every processing stage. Elevations are stored as
float64 with NaN marking missing cells; placement is a north-up affine
transform with square cells.

Also provides the grid primitives used by conditioning and swath sampling:
8-neighbour gradient, interpolation at map coordinates and resampling.
"""

import logging
import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union, Dict, Any

import numpy as np
import rasterio
from rasterio.errors import RasterioError
from rasterio.transform import Affine, from_origin
from scipy import ndimage

from .exceptions import DEMError, ValidationError

logger = logging.getLogger(__name__)

# D8 neighbour offsets (row, col), clockwise from north. Index + 1 is the
# flow direction code.
D8_OFFSETS = [
    (-1, 0),  # North
    (-1, 1),  # Northeast
    (0, 1),  # East
    (1, 1),  # Southeast
    (1, 0),  # South
    (1, -1),  # Southwest
    (0, -1),  # West
    (-1, -1),  # Northwest
]


def neighbour(array: np.ndarray, dr: int, dc: int, fill: Any) -> np.ndarray:
    """Return the value of the (dr, dc) neighbour of every cell, `fill` off-grid."""
    nrows, ncols = array.shape
    padded = np.pad(array, 1, mode="constant", constant_values=fill)
    return padded[1 + dr : 1 + dr + nrows, 1 + dc : 1 + dc + ncols]


@dataclass(eq=False)
class ElevationGrid:
    """
    Digital elevation model held in memory.

    Attributes:
        z (np.ndarray): 2D elevation array, NaN for missing cells
        transform (Affine): Affine placement of the upper-left corner
        crs (rasterio.crs.CRS): Optional coordinate reference system
        name (str): Optional label, usually the source file name
    """

    z: np.ndarray
    transform: Affine
    crs: Optional[Any] = None
    name: str = ""

    def __post_init__(self):
        z = np.asarray(self.z, dtype=np.float64)
        if z.ndim != 2:
            raise ValidationError(f"Elevation grid must be 2D, got {z.ndim}D")
        if z.size == 0:
            raise ValidationError("Elevation grid is empty")
        self.z = z

        if not isinstance(self.transform, Affine):
            self.transform = Affine(*tuple(self.transform)[:6])

        if self.transform.b != 0 or self.transform.d != 0:
            raise ValidationError("Rotated grids are not supported")
        if not math.isclose(abs(self.transform.a), abs(self.transform.e)):
            raise ValidationError(
                f"Grid cells must be square, got {abs(self.transform.a)} x "
                f"{abs(self.transform.e)}"
            )

    @classmethod
    def from_array(
        cls,
        z: np.ndarray,
        cellsize: float = 1.0,
        origin: Tuple[float, float] = (0.0, 0.0),
        crs: Optional[Any] = None,
        name: str = "",
    ) -> "ElevationGrid":
        """
        Build a grid from an array.

        Args:
            z: Elevation array (row 0 is the northern edge)
            cellsize: Cell edge length in map units
            origin: (x, y) of the upper-left corner
            crs: Optional coordinate reference system
            name: Optional label
        """
        if not cellsize > 0:
            raise ValidationError(f"Cellsize must be positive, got {cellsize}")
        transform = from_origin(origin[0], origin[1], cellsize, cellsize)
        return cls(np.array(z, dtype=np.float64), transform, crs, name)

    @classmethod
    def from_file(cls, path: Union[str, os.PathLike]) -> "ElevationGrid":
        """
        Load the first band of a raster file (GeoTIFF, ASCII grid, ...).

        Raises:
            DEMError: If the file cannot be read
        """
        path = Path(path)
        try:
            with rasterio.open(path) as dataset:
                band = dataset.read(1, masked=True)
                z = np.ma.filled(band.astype(np.float64), np.nan)
                grid = cls(z, dataset.transform, dataset.crs, path.stem)
        except (RasterioError, OSError) as e:
            raise DEMError(f"Failed to load DEM from {path}: {e}")

        logger.info(
            f"Loaded DEM: {grid.ncols}x{grid.nrows} pixels, "
            f"{grid.cellsize}m resolution"
        )
        return grid

    def to_file(self, path: Union[str, os.PathLike]) -> None:
        """Write the grid to a single-band GeoTIFF with NaN as no-data."""
        with rasterio.open(
            path,
            "w",
            driver="GTiff",
            height=self.nrows,
            width=self.ncols,
            count=1,
            dtype="float64",
            crs=self.crs,
            transform=self.transform,
            nodata=np.nan,
        ) as dst:
            dst.write(self.z, 1)

    @property
    def cellsize(self) -> float:
        return abs(self.transform.a)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.z.shape

    @property
    def nrows(self) -> int:
        return self.z.shape[0]

    @property
    def ncols(self) -> int:
        return self.z.shape[1]

    @property
    def valid_mask(self) -> np.ndarray:
        return ~np.isnan(self.z)

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """(left, bottom, right, top) in map units."""
        x0, y0 = self.transform * (0, 0)
        x1, y1 = self.transform * (self.ncols, self.nrows)
        return min(x0, x1), min(y0, y1), max(x0, x1), max(y0, y1)

    @property
    def is_integer_cellsize(self) -> bool:
        return float(self.cellsize).is_integer()

    def copy(self) -> "ElevationGrid":
        return ElevationGrid(self.z.copy(), self.transform, self.crs, self.name)

    def with_values(self, z: np.ndarray) -> "ElevationGrid":
        """New grid with the same placement and different values."""
        if np.shape(z) != self.shape:
            raise ValidationError(
                f"Array shape {np.shape(z)} does not match grid shape {self.shape}"
            )
        return ElevationGrid(np.array(z, dtype=np.float64), self.transform, self.crs, self.name)

    def cell_centers(self) -> Tuple[np.ndarray, np.ndarray]:
        """Map coordinates of the cell centres as two 2D arrays (x, y)."""
        cols = np.arange(self.ncols) + 0.5
        rows = np.arange(self.nrows) + 0.5
        x = self.transform.c + cols * self.transform.a
        y = self.transform.f + rows * self.transform.e
        return np.meshgrid(x, y)

    def xy(self, rows: np.ndarray, cols: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Map coordinates of the centres of the given cells."""
        rows = np.asarray(rows, dtype=np.float64)
        cols = np.asarray(cols, dtype=np.float64)
        x = self.transform.c + (cols + 0.5) * self.transform.a
        y = self.transform.f + (rows + 0.5) * self.transform.e
        return x, y

    def fractional_index(
        self, x: np.ndarray, y: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Fractional (row, col) of map coordinates; integers are cell centres."""
        inv = ~self.transform
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        col = inv.a * x + inv.b * y + inv.c - 0.5
        row = inv.d * x + inv.e * y + inv.f - 0.5
        return row, col

    def contains(self, x: float, y: float) -> bool:
        left, bottom, right, top = self.bounds
        return left <= x <= right and bottom <= y <= top

    def crop(self) -> "ElevationGrid":
        """
        Crop to the smallest box holding every valid cell.

        Resolution is unchanged; only the extent and the affine origin move.

        Raises:
            DEMError: If the grid holds no valid elevations
        """
        valid = self.valid_mask
        if not valid.any():
            raise DEMError("DEM contains no valid elevations")

        rows = np.flatnonzero(valid.any(axis=1))
        cols = np.flatnonzero(valid.any(axis=0))
        r0, r1 = int(rows[0]), int(rows[-1]) + 1
        c0, c1 = int(cols[0]), int(cols[-1]) + 1

        transform = self.transform * Affine.translation(c0, r0)
        cropped = ElevationGrid(
            self.z[r0:r1, c0:c1].copy(), transform, self.crs, self.name
        )
        if cropped.shape != self.shape:
            logger.debug(f"Cropped DEM from {self.shape} to {cropped.shape}")
        return cropped

    def summary(self) -> Dict[str, Any]:
        """Basic description of the grid, used by the CLI."""
        valid = self.z[self.valid_mask]
        info = {
            "name": self.name,
            "rows": self.nrows,
            "cols": self.ncols,
            "cellsize": self.cellsize,
            "bounds": self.bounds,
            "crs": str(self.crs) if self.crs else None,
            "valid_cells": int(valid.size),
        }
        if valid.size:
            info.update(
                min_elevation=float(valid.min()),
                max_elevation=float(valid.max()),
                mean_elevation=float(valid.mean()),
            )
        return info


def gradient8(grid: ElevationGrid) -> np.ndarray:
    """
    Steepest downward slope from each cell to one of its 8 neighbours.

    Slope is drop / horizontal distance. Cells with no lower neighbour get 0,
    missing cells get NaN; missing neighbours are ignored.
    """
    z = grid.z
    steepest = np.zeros_like(z)
    with np.errstate(invalid="ignore"):
        for dr, dc in D8_OFFSETS:
            distance = grid.cellsize * (math.sqrt(2.0) if dr and dc else 1.0)
            drop = (z - neighbour(z, dr, dc, np.nan)) / distance
            # fmax skips NaN from missing neighbours
            steepest = np.fmax(steepest, drop)
    steepest[np.isnan(z)] = np.nan
    return steepest


def interpolate(
    grid: ElevationGrid, x: np.ndarray, y: np.ndarray, order: int = 1
) -> np.ndarray:
    """
    Interpolate elevations at map coordinates.

    Args:
        grid: Source grid
        x, y: Map coordinates (any matching shapes)
        order: Spline order (1 bilinear, 3 bicubic)

    Returns:
        Array shaped like `x`. Samples outside the grid, or whose bilinear
        stencil touches a missing cell, are NaN.
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    row, col = grid.fractional_index(x, y)
    coords = np.vstack([row.ravel(), col.ravel()])

    valid = grid.valid_mask
    if not valid.any():
        raise DEMError("DEM contains no valid elevations")

    if valid.all():
        filled = grid.z
    else:
        # Splines cannot see NaN; substitute the nearest valid elevation
        _, (ir, ic) = ndimage.distance_transform_edt(~valid, return_indices=True)
        filled = grid.z[ir, ic]

    values = ndimage.map_coordinates(
        filled, coords, order=order, mode="constant", cval=np.nan
    )
    support = ndimage.map_coordinates(
        valid.astype(np.float64), coords, order=1, mode="constant", cval=0.0
    )
    values[support < 1.0 - 1e-9] = np.nan
    return values.reshape(x.shape)


def resample(grid: ElevationGrid, cellsize: float, order: int = 3) -> ElevationGrid:
    """
    Resample a grid to a new cellsize over the same extent (bicubic by default).

    Raises:
        ValidationError: If the cellsize is not positive
    """
    if not cellsize > 0:
        raise ValidationError(f"Resample cellsize must be positive, got {cellsize}")

    left, bottom, right, top = grid.bounds
    ncols = max(1, int(math.floor((right - left) / cellsize + 1e-6)))
    nrows = max(1, int(math.floor((top - bottom) / cellsize + 1e-6)))

    x_sign = 1.0 if grid.transform.a > 0 else -1.0
    y_sign = 1.0 if grid.transform.e > 0 else -1.0
    transform = Affine(
        x_sign * cellsize, 0.0, grid.transform.c, 0.0, y_sign * cellsize, grid.transform.f
    )

    target = ElevationGrid(np.zeros((nrows, ncols)), transform, grid.crs, grid.name)
    x, y = target.cell_centers()
    target.z = interpolate(grid, x, y, order=order)

    logger.info(
        f"Resampled DEM from {grid.cellsize} to {cellsize} "
        f"({grid.ncols}x{grid.nrows} -> {ncols}x{nrows} pixels)"
    )
    return target
