"""
FLOWSWATH Flow Accumulation Calculation
=======================================

Counts the cells draining through every cell of a D8 flow direction layer,
using topological sorting (Kahn's algorithm) over the receiver graph.
"""

import logging
import time
from collections import deque
from typing import Optional

import numpy as np

from .exceptions import DEMError
from .flow_direction import FlowDirection
from .grid import ElevationGrid


class FlowAccumulationCalculator:
    """
    Calculate flow accumulation from flow direction data.

    Attributes:
        logger (logging.Logger): Logger instance
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def calculate(
        self, flow_direction: FlowDirection, weights: Optional[np.ndarray] = None
    ) -> ElevationGrid:
        """
        Calculate flow accumulation.

        Args:
            flow_direction: D8 flow direction layer
            weights: Optional per-cell weights (default 1 per valid cell)

        Returns:
            Grid of accumulated cell counts, each cell counting itself;
            NaN on missing cells

        Raises:
            DEMError: If calculation fails
        """
        try:
            start_time = time.time()

            valid = flow_direction.grid.valid_mask.ravel()
            if weights is None:
                accumulation = valid.astype(np.float64)
            else:
                weights = np.asarray(weights, dtype=np.float64)
                if weights.shape != flow_direction.shape:
                    raise DEMError(
                        f"Weights shape {weights.shape} does not match "
                        f"flow direction shape {flow_direction.shape}"
                    )
                accumulation = np.where(valid, weights.ravel(), 0.0)

            receivers = flow_direction.receivers()
            upstream_count = np.bincount(
                receivers[receivers >= 0], minlength=receivers.size
            )

            processed = self._topological_accumulation(
                accumulation, receivers, upstream_count, valid
            )
            if processed != int(valid.sum()):
                raise DEMError(
                    f"Flow network contains cycles: processed {processed} of "
                    f"{int(valid.sum())} cells"
                )

            accumulation[~valid] = np.nan
            runtime = time.time() - start_time
            self.logger.info(f"Flow accumulation completed in {runtime:.2f}s")

            return flow_direction.grid.with_values(
                accumulation.reshape(flow_direction.shape)
            )

        except DEMError:
            raise
        except Exception as e:
            raise DEMError(f"Flow accumulation calculation failed: {e}")

    def _topological_accumulation(
        self,
        accumulation: np.ndarray,
        receivers: np.ndarray,
        upstream_count: np.ndarray,
        valid: np.ndarray,
    ) -> int:
        """
        Push accumulation downstream in topological order (modifies in place).

        Returns:
            Number of cells processed
        """
        receiver_list = receivers.tolist()
        remaining = upstream_count.tolist()
        queue = deque(np.flatnonzero(valid & (upstream_count == 0)).tolist())

        processed = 0
        while queue:
            cell = queue.popleft()
            processed += 1

            downstream = receiver_list[cell]
            if downstream < 0:
                continue

            accumulation[downstream] += accumulation[cell]
            remaining[downstream] -= 1
            if remaining[downstream] == 0:
                queue.append(downstream)

        self.logger.debug(f"Processed {processed} cells in topological order")
        return processed
