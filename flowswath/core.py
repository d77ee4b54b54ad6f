"""
FLOWSWATH Stream Extraction
===========================

Builds the base datasets for drainage analysis from a DEM: conditioned DEM,
flow direction, flow accumulation and stream network.
"""

import logging
import math
import numbers
import os
from typing import Optional, Dict, Any, NamedTuple, Union

import numpy as np

from .conditioning import DemConditioner
from .config import get_default_config
from .exceptions import ValidationError
from .flow_accumulation import FlowAccumulationCalculator
from .flow_direction import FlowDirection, FlowDirectionCalculator
from .grid import ElevationGrid, resample
from .persistence import save_stream_outputs
from .stream_network import StreamNetwork

DemSource = Union[ElevationGrid, str, os.PathLike]


class StreamResult(NamedTuple):
    """Outputs of stream extraction."""

    dem: ElevationGrid
    flow_direction: FlowDirection
    accumulation: ElevationGrid
    streams: StreamNetwork


def _is_positive_number(value: Any) -> bool:
    return (
        isinstance(value, numbers.Real)
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value > 0
    )


def _is_non_negative_number(value: Any) -> bool:
    return _is_positive_number(value) or (
        isinstance(value, numbers.Real) and not isinstance(value, bool) and value == 0
    )


def min_area_pixels(threshold_area: float, cellsize: float) -> int:
    """Drainage area threshold converted to a cell count (rounded down)."""
    return int(math.floor(threshold_area / (cellsize * cellsize)))


def resolve_dem(dem: DemSource) -> ElevationGrid:
    """
    Accept a grid or a path to a raster file.

    Raises:
        ValidationError: If the input is neither
    """
    if isinstance(dem, ElevationGrid):
        return dem
    if isinstance(dem, (str, os.PathLike)):
        return ElevationGrid.from_file(dem)
    raise ValidationError(
        f"Input for dem not recognized as either an ElevationGrid or a path "
        f"(got {type(dem).__name__})"
    )


class StreamExtractionPipeline:
    """
    Stream extraction workflow.

    1. Load (and optionally resample) the DEM
    2. Condition it (no-data policy, crop)
    3. Calculate flow direction with depression carving
    4. Calculate flow accumulation
    5. Threshold accumulation and extract the stream network
    6. Optionally save the results

    Attributes:
        config (Dict[str, Any]): Configuration parameters
        flow_direction_calc (FlowDirectionCalculator): Flow direction calculator
        flow_accumulation_calc (FlowAccumulationCalculator): Flow accumulation calculator
        logger (logging.Logger): Logger instance
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or get_default_config()
        self.logger = logging.getLogger(__name__)

        self.flow_direction_calc = FlowDirectionCalculator(
            preprocess=self.config["streams"]["flow_preprocess"], logger=self.logger
        )
        self.flow_accumulation_calc = FlowAccumulationCalculator(self.logger)

    def run(
        self,
        dem: DemSource,
        threshold_area: Optional[float] = None,
        file_name: Optional[Union[str, os.PathLike]] = None,
        no_data_exp: Optional[str] = None,
        min_flat_area: Optional[float] = None,
        resample_grid: Optional[bool] = None,
        new_cellsize: Optional[float] = None,
    ) -> StreamResult:
        """
        Extract streams from a DEM.

        Args:
            dem: ElevationGrid or path to a raster file
            threshold_area: Minimum drainage area for streams (map units squared)
            file_name: Base name for the result container and shapefile
            no_data_exp: None, 'auto', or an expression over DEM such as
                'DEM<=-100 | DEM>10000'
            min_flat_area: Minimum flat area for the 'auto' policy
            resample_grid: Resample the DEM before processing
            new_cellsize: Target cellsize, default ceil(cellsize)

        Returns:
            StreamResult (dem, flow_direction, accumulation, streams)

        Raises:
            ValidationError: If the inputs are invalid
            DEMError: If the DEM cannot be loaded or processed
        """
        settings = self.config["streams"]
        if threshold_area is None:
            threshold_area = settings["threshold_area"]
        if no_data_exp is None:
            no_data_exp = settings["no_data_exp"]
        if min_flat_area is None:
            min_flat_area = settings["min_flat_area"]
        if resample_grid is None:
            resample_grid = settings["resample_grid"]
        if new_cellsize is None:
            new_cellsize = settings["new_cellsize"]

        self._validate_inputs(dem, threshold_area, new_cellsize, no_data_exp, min_flat_area)

        if not isinstance(dem, ElevationGrid):
            self.logger.info("Loading and processing DEM")
        grid = resolve_dem(dem)

        if resample_grid:
            target = new_cellsize if new_cellsize is not None else math.ceil(grid.cellsize)
            self.logger.info("Resampling DEM - may take some time")
            grid = resample(grid, target)

        conditioner = DemConditioner(no_data_exp, min_flat_area, self.logger)
        conditioner.check_cellsize(grid, resample_requested=bool(resample_grid))
        grid = conditioner.condition(grid)

        self.logger.info("Calculating flow direction")
        flow_direction = self.flow_direction_calc.calculate(grid)

        self.logger.info("Calculating flow accumulation")
        accumulation = self.flow_accumulation_calc.calculate(flow_direction)

        self.logger.info("Extracting total stream network")
        threshold_pixels = min_area_pixels(threshold_area, grid.cellsize)
        with np.errstate(invalid="ignore"):
            is_stream = accumulation.z > threshold_pixels
        streams = StreamNetwork.from_flow(flow_direction, is_stream, self.logger)

        result = StreamResult(grid, flow_direction, accumulation, streams)

        if file_name:
            output = self.config.get("output", {})
            save_stream_outputs(
                file_name,
                *result,
                compress=output.get("compress", True),
                write_shapefile=output.get("shapefile", True),
            )

        return result

    def _validate_inputs(
        self,
        dem: Any,
        threshold_area: Any,
        new_cellsize: Optional[float],
        no_data_exp: Any = None,
        min_flat_area: Any = 0.0,
    ) -> None:
        """Reject bad inputs before any processing."""
        if not isinstance(dem, (ElevationGrid, str, os.PathLike)):
            raise ValidationError(
                f"Input for dem not recognized as either an ElevationGrid or a path "
                f"(got {type(dem).__name__})"
            )
        if not _is_positive_number(threshold_area):
            raise ValidationError(
                f"threshold_area must be a positive number, got {threshold_area!r}"
            )
        if new_cellsize is not None and not _is_positive_number(new_cellsize):
            raise ValidationError(f"new_cellsize must be positive, got {new_cellsize!r}")
        if no_data_exp is not None and not isinstance(no_data_exp, str):
            raise ValidationError(
                f"no_data_exp must be a string or None, got {type(no_data_exp).__name__}"
            )
        if not _is_non_negative_number(min_flat_area):
            raise ValidationError(
                f"min_flat_area must be a non-negative number, got {min_flat_area!r}"
            )


def make_streams(
    dem: DemSource,
    threshold_area: float,
    file_name: Optional[Union[str, os.PathLike]] = None,
    no_data_exp: Optional[str] = None,
    min_flat_area: Optional[float] = None,
    resample_grid: bool = False,
    new_cellsize: Optional[float] = None,
    config: Optional[Dict[str, Any]] = None,
) -> StreamResult:
    """
    Extract DEM, flow direction, flow accumulation and stream network.

    Examples:
        dem, fd, acc, streams = make_streams("dem.tif", 1e6)
        make_streams("dem.tif", 1e6, file_name="AreaFiles")
        make_streams(grid, 1e6, no_data_exp="DEM<=-100 | DEM>10000")
    """
    pipeline = StreamExtractionPipeline(config)
    return pipeline.run(
        dem,
        threshold_area,
        file_name=file_name,
        no_data_exp=no_data_exp,
        min_flat_area=min_flat_area,
        resample_grid=resample_grid,
        new_cellsize=new_cellsize,
    )
