"""
FLOWSWATH Swath Statistics
==========================

Reductions of a swath elevation matrix (cross-track samples x stations):
the min/mean/max envelope along the swath and a per-station elevation
density grid for heatmap display.
"""

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .exceptions import SwathError

HEATMAP_BINS = 100
OUT_OF_RANGE = -1


def station_statistics(z: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Min, mean and max of every station (column), ignoring NaN.

    Stations without a valid observation get NaN for all three values.
    """
    z = np.asarray(z, dtype=np.float64)
    if z.ndim != 2:
        raise SwathError(f"Swath elevations must be 2D, got {z.ndim}D")

    valid = ~np.isnan(z)
    count = valid.sum(axis=0)
    empty = count == 0

    minimum = np.where(valid, z, np.inf).min(axis=0, initial=np.inf)
    maximum = np.where(valid, z, -np.inf).max(axis=0, initial=-np.inf)
    total = np.where(valid, z, 0.0).sum(axis=0)
    with np.errstate(invalid="ignore", divide="ignore"):
        mean = total / count

    minimum[empty] = np.nan
    maximum[empty] = np.nan
    mean[empty] = np.nan
    # summation error must not push the mean outside the envelope
    mean[~empty] = np.clip(mean[~empty], minimum[~empty], maximum[~empty])
    return minimum, mean, maximum


def swath_envelope(distance: np.ndarray, z: np.ndarray) -> np.ndarray:
    """
    Envelope matrix of a swath.

    Args:
        distance: Along-swath distance of each station
        z: Elevations, one column per station

    Returns:
        (n_stations, 4) array of distance, min, mean, max, ordered by distance
    """
    distance = np.asarray(distance, dtype=np.float64).ravel()
    z = np.asarray(z, dtype=np.float64)
    if z.ndim != 2 or z.shape[1] != distance.size:
        raise SwathError(
            f"Elevation matrix {z.shape} does not match {distance.size} stations"
        )

    minimum, mean, maximum = station_statistics(z)
    matrix = np.column_stack([distance, minimum, mean, maximum])
    return matrix[np.argsort(distance, kind="stable")]


@dataclass(eq=False)
class HeatmapGrid:
    """
    Per-station elevation histogram.

    Attributes:
        counts (np.ndarray): (bins, stations) observation counts; bins outside
            a station's envelope hold the sentinel value
        edges (np.ndarray): Bin edges (bins + 1)
        centers (np.ndarray): Bin centres
        distance (np.ndarray): Station distances
        sentinel (int): Marker for out-of-envelope bins
    """

    counts: np.ndarray
    edges: np.ndarray
    centers: np.ndarray
    distance: np.ndarray
    sentinel: int = OUT_OF_RANGE

    @property
    def in_range(self) -> np.ndarray:
        return self.counts != self.sentinel

    def masked(self) -> np.ma.MaskedArray:
        """Counts with sentinel bins masked, for display."""
        return np.ma.masked_equal(self.counts, self.sentinel)


def heatmap(
    distance: np.ndarray,
    z: np.ndarray,
    bins: int = HEATMAP_BINS,
    sentinel: int = OUT_OF_RANGE,
) -> HeatmapGrid:
    """
    Bin each station's observations on a common elevation axis.

    The axis has `bins` equal bins over [min(mins) - 1, max(maxes) + 1].
    Bins whose centre lies outside a station's [min, max] and that hold no
    observation are set to `sentinel`, so display can tell "outside the local
    range" from "no observations within range".

    Raises:
        SwathError: If no station has a valid observation
    """
    if sentinel >= 0:
        raise SwathError(f"Heatmap sentinel must be negative, got {sentinel}")

    distance = np.asarray(distance, dtype=np.float64).ravel()
    z = np.asarray(z, dtype=np.float64)
    minimum, _, maximum = station_statistics(z)
    if np.all(np.isnan(minimum)):
        raise SwathError("Swath has no valid elevations to bin")

    edges = np.linspace(np.nanmin(minimum) - 1, np.nanmax(maximum) + 1, bins + 1)
    centers = (edges[:-1] + edges[1:]) / 2.0

    counts = np.zeros((bins, distance.size), dtype=np.int64)
    for station in range(distance.size):
        column = z[:, station]
        observations = column[~np.isnan(column)]
        if observations.size == 0:
            counts[:, station] = sentinel
            continue

        station_counts, _ = np.histogram(observations, bins=edges)
        outside = (centers < minimum[station]) | (centers > maximum[station])
        station_counts[outside & (station_counts == 0)] = sentinel
        counts[:, station] = station_counts

    return HeatmapGrid(counts, edges, centers, distance, sentinel)
