"""
FLOWSWATH Topographic Swaths
============================

Swath profile extraction: path validation, bend distances, sampling through
a cross-section sampler, envelope statistics and optional display.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any, Union, Iterator

import numpy as np

from .config import get_default_config
from .cross_section import CrossSectionSampler, SwathProfile, get_sampler
from .exceptions import ValidationError
from .grid import ElevationGrid
from .swath_statistics import HeatmapGrid, heatmap, swath_envelope


class DisplayMode(Enum):
    """How a swath profile is drawn."""

    ENVELOPE = "envelope"
    SCATTER = "scatter"
    HEATMAP = "heatmap"

    @classmethod
    def resolve(
        cls,
        mode: Optional[Union[str, "DisplayMode"]] = None,
        plot_as_points: bool = False,
        plot_as_heatmap: bool = False,
    ) -> "DisplayMode":
        """
        Turn a mode name and/or the point/heatmap flags into one mode.

        Raises:
            ValidationError: If both flags are set, a flag contradicts the
                named mode, or the name is unknown
        """
        if plot_as_points and plot_as_heatmap:
            raise ValidationError(
                'Please only set one of "plot_as_points" and "plot_as_heatmap" to true'
            )

        flagged = None
        if plot_as_points:
            flagged = cls.SCATTER
        elif plot_as_heatmap:
            flagged = cls.HEATMAP

        if mode is None:
            return flagged or cls.ENVELOPE

        try:
            named = mode if isinstance(mode, cls) else cls(str(mode).lower())
        except ValueError:
            raise ValidationError(
                f"Unknown display mode {mode!r}, expected one of "
                f"{[m.value for m in cls]}"
            )

        if flagged is not None and flagged is not named:
            raise ValidationError(
                f"Display mode {named.value!r} conflicts with the {flagged.value} flag"
            )
        return named


def compute_bends(points: np.ndarray) -> np.ndarray:
    """
    Distances along the path of its interior vertices.

    For N points the result has N-2 entries, the cumulative length up to
    each bend. A straight two-point path gives array([0.0]).
    """
    points = np.asarray(points, dtype=np.float64)
    if points.shape[0] <= 2:
        return np.zeros(1)

    segment_lengths = np.hypot(*np.diff(points, axis=0).T)
    return np.cumsum(segment_lengths[: points.shape[0] - 2])


@dataclass(frozen=True, eq=False)
class SwathPath:
    """
    Validated swath request geometry.

    Attributes:
        points (np.ndarray): (n, 2) path vertices, n >= 2
        width (float): Swath width in map units
        spacing (float): Sample spacing in map units
        smooth (float): Centre line smoothing distance in map units
    """

    points: np.ndarray
    width: float
    spacing: float
    smooth: float = 0.0

    def __post_init__(self):
        try:
            points = np.array(self.points, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Swath points must be numeric: {e}")

        if points.ndim != 2 or points.shape[1] != 2:
            raise ValidationError(
                f"Swath points must be an (n, 2) array of x, y, got shape {points.shape}"
            )
        if points.shape[0] < 2:
            raise ValidationError(
                f"Swath needs at least two points (start and end), got {points.shape[0]}"
            )
        if not np.all(np.isfinite(points)):
            raise ValidationError("Swath points must be finite")

        for label, value, allow_zero in (
            ("width", self.width, False),
            ("spacing", self.spacing, False),
            ("smooth", self.smooth, True),
        ):
            if not _is_number(value) or value < 0 or (value == 0 and not allow_zero):
                raise ValidationError(f"Swath {label} must be a positive number, got {value!r}")

        points.setflags(write=False)
        object.__setattr__(self, "points", points)
        object.__setattr__(self, "width", float(self.width))
        object.__setattr__(self, "spacing", float(self.spacing))
        object.__setattr__(self, "smooth", float(self.smooth))

    @property
    def bends(self) -> np.ndarray:
        return compute_bends(self.points)

    @property
    def length(self) -> float:
        return float(np.hypot(*np.diff(self.points, axis=0).T).sum())


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float, np.integer, np.floating))
        and not isinstance(value, bool)
        and np.isfinite(value)
    )


@dataclass(eq=False)
class SwathResult:
    """
    Outputs of swath extraction.

    Unpacks as (swath, swath_matrix, xypoints, bends).

    Attributes:
        swath (SwathProfile): Sampled swath
        swath_matrix (np.ndarray): (n, 4) distance, min, mean, max
        xypoints (np.ndarray): (n, 2) centre line coordinates of each station
        bends (np.ndarray): Along-swath distance of each bend, [0] if none
        display_mode (DisplayMode): Requested display
        heatmap (HeatmapGrid): Density grid, heatmap display only
        figure: Matplotlib figure when plotting was requested
    """

    swath: SwathProfile
    swath_matrix: np.ndarray
    xypoints: np.ndarray
    bends: np.ndarray
    display_mode: DisplayMode = DisplayMode.ENVELOPE
    heatmap: Optional[HeatmapGrid] = None
    figure: Any = field(default=None, repr=False)

    def __iter__(self) -> Iterator[Any]:
        return iter((self.swath, self.swath_matrix, self.xypoints, self.bends))


class SwathExtractor:
    """
    Swath extraction workflow.

    Attributes:
        config (Dict[str, Any]): Configuration parameters
        sampler (CrossSectionSampler): Sampler used for every swath
        logger (logging.Logger): Logger instance
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        sampler: Optional[CrossSectionSampler] = None,
    ):
        self.config = config or get_default_config()
        self.logger = logging.getLogger(__name__)

        settings = self.config["swath"]
        self.sampler = sampler or get_sampler(
            settings["sampler"],
            logger=self.logger,
            order=settings["interpolation_order"],
        )

    def extract(
        self,
        dem: ElevationGrid,
        points: np.ndarray,
        width: float,
        sample: Optional[float] = None,
        smooth: Optional[float] = None,
        vex: Optional[float] = None,
        display_mode: Optional[Union[str, DisplayMode]] = None,
        plot_as_points: bool = False,
        plot_as_heatmap: bool = False,
        plot_figure: bool = False,
    ) -> SwathResult:
        """
        Extract a topographic swath.

        Args:
            dem: Elevation grid
            points: (n, 2) path vertices in the DEM's coordinate system; extra
                vertices between the start and end are bends
            width: Swath width in map units
            sample: Sample spacing, default the DEM cellsize (no resampling)
            smooth: Smoothing distance, default 0 (no smoothing)
            vex: Vertical exaggeration for display
            display_mode: 'envelope', 'scatter' or 'heatmap'
            plot_as_points: Shortcut for the scatter display
            plot_as_heatmap: Shortcut for the heatmap display
            plot_figure: Render the profile with matplotlib

        Returns:
            SwathResult

        Raises:
            ValidationError: If the request is invalid; raised before sampling
            SwathError: If sampling or binning fails
        """
        settings = self.config["swath"]
        if not isinstance(dem, ElevationGrid):
            raise ValidationError(
                f"Swath DEM must be an ElevationGrid, got {type(dem).__name__}"
            )
        if display_mode is None and not (plot_as_points or plot_as_heatmap):
            display_mode = settings["display_mode"]
        mode = DisplayMode.resolve(display_mode, plot_as_points, plot_as_heatmap)

        if sample is None:
            sample = settings["sample"] if settings["sample"] is not None else dem.cellsize
        if smooth is None:
            smooth = settings["smooth"]
        if vex is None:
            vex = settings["vex"]
        if not _is_number(vex) or vex <= 0:
            raise ValidationError(f"Vertical exaggeration must be positive, got {vex!r}")

        path = SwathPath(points, width, sample, smooth)
        self._check_path_inside(dem, path)

        bends = path.bends
        profile = self.sampler.sample(
            dem, path.points, path.width, path.spacing, path.smooth
        )
        swath_matrix = swath_envelope(profile.distx, profile.z)

        density = None
        if mode is DisplayMode.HEATMAP:
            density = heatmap(
                profile.distx,
                profile.z,
                bins=settings["heatmap_bins"],
                sentinel=settings["heatmap_sentinel"],
            )

        result = SwathResult(
            swath=profile,
            swath_matrix=swath_matrix,
            xypoints=profile.xy,
            bends=bends,
            display_mode=mode,
            heatmap=density,
        )

        if plot_figure:
            from .plotting import plot_swath

            result.figure = plot_swath(result, vex=vex)

        return result

    def _check_path_inside(self, dem: ElevationGrid, path: SwathPath) -> None:
        outside = [
            (x, y) for x, y in path.points if not dem.contains(float(x), float(y))
        ]
        if outside:
            self.logger.warning(
                f"{len(outside)} swath point(s) lie outside the DEM, "
                "samples there will be missing"
            )


def make_topo_swath(
    dem: ElevationGrid,
    points: np.ndarray,
    width: float,
    sample: Optional[float] = None,
    smooth: float = 0.0,
    vex: float = 10.0,
    display_mode: Optional[Union[str, DisplayMode]] = None,
    plot_as_points: bool = False,
    plot_as_heatmap: bool = False,
    plot_figure: bool = False,
    sampler: Optional[CrossSectionSampler] = None,
    config: Optional[Dict[str, Any]] = None,
) -> SwathResult:
    """
    Extract a topographic swath along a path.

    Examples:
        sw, swath_mat, xy, bends = make_topo_swath(dem, [(x0, y0), (x1, y1)], 5000)
        make_topo_swath(dem, points, 5000, sample=100, plot_as_heatmap=True)
    """
    extractor = SwathExtractor(config, sampler)
    return extractor.extract(
        dem,
        points,
        width,
        sample=sample,
        smooth=smooth,
        vex=vex,
        display_mode=display_mode,
        plot_as_points=plot_as_points,
        plot_as_heatmap=plot_as_heatmap,
        plot_figure=plot_figure,
    )
