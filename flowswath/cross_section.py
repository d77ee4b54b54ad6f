"""
FLOWSWATH Cross-Section Sampling
================================

Samples a DEM along lines perpendicular to a swath centre line.

Samplers share the `CrossSectionSampler` interface and are looked up by name
once, when a swath extraction is set up, so callers never branch on which
implementation produced a profile.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional, Type

import numpy as np
from scipy import ndimage

from .exceptions import SwathError, ConfigurationError
from .grid import ElevationGrid, interpolate


@dataclass(eq=False)
class SwathProfile:
    """
    Elevations sampled across a swath.

    Attributes:
        z (np.ndarray): (n_offsets, n_stations) elevations, NaN where missing
        xy (np.ndarray): (n_stations, 2) centre line coordinates
        distx (np.ndarray): Along-swath distance of each station
        disty (np.ndarray): Cross-track offset of each row of `z`
        points (np.ndarray): Path vertices the swath was built from
        width (float): Swath width
        spacing (float): Sample spacing along and across the swath
        smooth (float): Centre line smoothing distance
    """

    z: np.ndarray
    xy: np.ndarray
    distx: np.ndarray
    disty: np.ndarray
    points: np.ndarray
    width: float
    spacing: float
    smooth: float = 0.0

    @property
    def n_stations(self) -> int:
        return int(self.distx.size)

    def sample_coordinates(self) -> np.ndarray:
        """(n_offsets, n_stations, 2) map coordinates of every sample."""
        normals = centerline_normals(self.xy)
        return (
            self.xy[np.newaxis, :, :]
            + self.disty[:, np.newaxis, np.newaxis] * normals[np.newaxis, :, :]
        )


def densify_path(points: np.ndarray, spacing: float) -> np.ndarray:
    """
    Stations every `spacing` along a polyline, plus its end point.

    Returns:
        (n_stations, 2) coordinates
    """
    points = np.asarray(points, dtype=np.float64)
    segment_lengths = np.hypot(*np.diff(points, axis=0).T)
    cumulative = np.concatenate([[0.0], np.cumsum(segment_lengths)])
    total = cumulative[-1]
    if total <= 0:
        raise SwathError("Swath path has zero length")

    stations = np.arange(0.0, total, spacing)
    if total - stations[-1] > 1e-9 * max(total, 1.0):
        stations = np.append(stations, total)

    x = np.interp(stations, cumulative, points[:, 0])
    y = np.interp(stations, cumulative, points[:, 1])
    return np.column_stack([x, y])


def centerline_normals(xy: np.ndarray) -> np.ndarray:
    """Unit normals (left of the direction of travel) at each station."""
    if xy.shape[0] < 2:
        raise SwathError("Centre line needs at least two stations")
    dx = np.gradient(xy[:, 0])
    dy = np.gradient(xy[:, 1])
    norm = np.hypot(dx, dy)
    norm[norm == 0] = 1.0
    return np.column_stack([-dy / norm, dx / norm])


def along_distance(xy: np.ndarray) -> np.ndarray:
    return np.concatenate([[0.0], np.cumsum(np.hypot(*np.diff(xy, axis=0).T))])


class CrossSectionSampler(ABC):
    """
    Interface for swath samplers.

    Attributes:
        logger (logging.Logger): Logger instance
    """

    name = "base"

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    @abstractmethod
    def sample(
        self,
        grid: ElevationGrid,
        points: np.ndarray,
        width: float,
        spacing: float,
        smooth: float = 0.0,
    ) -> SwathProfile:
        """
        Sample the grid across a swath.

        Args:
            grid: Elevation grid
            points: (n, 2) path vertices in map coordinates
            width: Swath width in map units
            spacing: Sample spacing in map units
            smooth: Centre line smoothing distance in map units

        Returns:
            SwathProfile
        """
        pass


class GridInterpolationSampler(CrossSectionSampler):
    """
    Sample by interpolating the grid at each cross-track point.

    The centre line is densified at `spacing`, optionally smoothed with a
    moving average spanning `smooth` map units, and sampled at offsets
    k * spacing (|k * spacing| <= width / 2) along the local normal.
    """

    name = "interpolation"

    def __init__(self, order: int = 1, logger: Optional[logging.Logger] = None):
        super().__init__(logger)
        self.order = order

    def sample(
        self,
        grid: ElevationGrid,
        points: np.ndarray,
        width: float,
        spacing: float,
        smooth: float = 0.0,
    ) -> SwathProfile:
        points = np.asarray(points, dtype=np.float64)
        try:
            xy = densify_path(points, spacing)
            if xy.shape[0] < 2:
                raise SwathError(
                    f"Sample spacing {spacing} is too coarse for a path of length "
                    f"{along_distance(points)[-1]:.2f}"
                )

            window = int(np.floor(smooth / spacing + 0.5)) if smooth > 0 else 0
            if window > 1:
                xy = np.column_stack(
                    [
                        ndimage.uniform_filter1d(xy[:, 0], window, mode="nearest"),
                        ndimage.uniform_filter1d(xy[:, 1], window, mode="nearest"),
                    ]
                )

            distx = along_distance(xy)
            half = int(np.floor(width / 2.0 / spacing + 1e-9))
            disty = np.arange(-half, half + 1) * spacing

            normals = centerline_normals(xy)
            x = xy[np.newaxis, :, 0] + disty[:, np.newaxis] * normals[np.newaxis, :, 0]
            y = xy[np.newaxis, :, 1] + disty[:, np.newaxis] * normals[np.newaxis, :, 1]
            z = interpolate(grid, x, y, order=self.order)

        except SwathError:
            raise
        except Exception as e:
            raise SwathError(f"Swath sampling failed: {e}")

        missing = int(np.isnan(z).sum())
        self.logger.info(
            f"Sampled swath: {distx.size} stations x {disty.size} samples "
            f"({missing} missing)"
        )
        return SwathProfile(
            z=z,
            xy=xy,
            distx=distx,
            disty=disty,
            points=points,
            width=float(width),
            spacing=float(spacing),
            smooth=float(smooth),
        )


SAMPLERS: Dict[str, Type[CrossSectionSampler]] = {
    GridInterpolationSampler.name: GridInterpolationSampler,
}


def get_sampler(
    name: str = GridInterpolationSampler.name,
    logger: Optional[logging.Logger] = None,
    **kwargs,
) -> CrossSectionSampler:
    """
    Look up a sampler by name.

    Raises:
        ConfigurationError: If no sampler has that name
    """
    try:
        sampler_class = SAMPLERS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown swath sampler {name!r}, available: {sorted(SAMPLERS)}"
        )
    return sampler_class(logger=logger, **kwargs)
