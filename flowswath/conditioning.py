"""
FLOWSWATH DEM Conditioning
==========================

Applies a no-data policy to a DEM and crops it to the extent of its valid
cells before flow routing.

The explicit policy is a small boolean expression over the variable ``DEM``,
for example ``"DEM<=0 | DEM>1000"``. It is parsed with :mod:`ast` and
evaluated against the elevation array with numpy; arbitrary Python is never
executed. A bad expression is not fatal: a warning is logged and the grid is
left unmasked.
"""

import ast
import logging
import operator
import re
from typing import Optional, Callable, Dict

import numpy as np

from .exceptions import FlowSwathError, ValidationError
from .flat_detection import DEFAULT_MIN_FLAT_AREA, FlatRegionDetector
from .grid import ElevationGrid

AUTO = "auto"


class PredicateError(FlowSwathError):
    """Raised when a no-data expression cannot be parsed or evaluated."""

    pass


_BINARY_OPS: Dict[type, Callable] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Pow: operator.pow,
    ast.Mod: operator.mod,
}

_COMPARE_OPS: Dict[type, Callable] = {
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
}

_FUNCTIONS: Dict[str, Callable] = {
    "isnan": np.isnan,
    "isfinite": np.isfinite,
    "abs": np.abs,
}

_CONSTANTS = {"nan": np.nan, "inf": np.inf}


def _to_python_syntax(expression: str) -> str:
    """
    Rewrite element-wise logical operators as Python keywords.

    In ``DEM<0 | DEM>10`` the ``|`` must bind looser than the comparisons,
    which is the precedence of ``or`` in Python, not of ``|``.
    """
    text = expression.strip()
    text = text.replace("||", "|").replace("&&", "&")
    text = text.replace("~=", "!=")
    text = re.sub(r"~", " not ", text)
    text = text.replace("|", " or ").replace("&", " and ")
    return text.strip()


class NoDataPredicate:
    """
    Compiled no-data expression.

    Attributes:
        expression (str): Source text
    """

    def __init__(self, expression: str):
        self.expression = expression
        try:
            self._tree = ast.parse(_to_python_syntax(expression), mode="eval")
        except (SyntaxError, ValueError) as e:
            raise PredicateError(f"Invalid no-data expression {expression!r}: {e}")

    def evaluate(self, elevations: np.ndarray) -> np.ndarray:
        """
        Evaluate against an elevation array.

        Returns:
            Boolean mask with the array's shape

        Raises:
            PredicateError: If evaluation fails or does not give a boolean mask
        """
        try:
            with np.errstate(invalid="ignore", divide="ignore"):
                result = self._eval(self._tree.body, elevations)
        except PredicateError:
            raise
        except Exception as e:
            raise PredicateError(f"Could not evaluate {self.expression!r}: {e}")

        result = np.asarray(result)
        if result.dtype != bool:
            raise PredicateError(
                f"No-data expression {self.expression!r} is not a logical condition"
            )
        if result.shape != elevations.shape:
            raise PredicateError(
                f"No-data expression {self.expression!r} gave shape {result.shape}, "
                f"expected {elevations.shape}"
            )
        return result

    def _eval(self, node: ast.AST, dem: np.ndarray):
        if isinstance(node, ast.Name):
            if node.id == "DEM":
                return dem
            if node.id in _CONSTANTS:
                return _CONSTANTS[node.id]
            raise PredicateError(f"Unknown name {node.id!r}")

        if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)):
            return node.value

        if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
            return _BINARY_OPS[type(node.op)](
                self._eval(node.left, dem), self._eval(node.right, dem)
            )

        if isinstance(node, ast.UnaryOp):
            operand = self._eval(node.operand, dem)
            if isinstance(node.op, ast.Not):
                return np.logical_not(operand)
            if isinstance(node.op, ast.USub):
                return -operand
            if isinstance(node.op, ast.UAdd):
                return operand

        if isinstance(node, ast.BoolOp):
            combine = np.logical_and if isinstance(node.op, ast.And) else np.logical_or
            values = [self._eval(value, dem) for value in node.values]
            result = values[0]
            for value in values[1:]:
                result = combine(result, value)
            return result

        if isinstance(node, ast.Compare):
            left = self._eval(node.left, dem)
            result = None
            for op, comparator in zip(node.ops, node.comparators):
                if type(op) not in _COMPARE_OPS:
                    raise PredicateError(f"Unsupported comparison in {self.expression!r}")
                right = self._eval(comparator, dem)
                part = _COMPARE_OPS[type(op)](left, right)
                result = part if result is None else np.logical_and(result, part)
                left = right
            return result

        if (
            isinstance(node, ast.Call)
            and isinstance(node.func, ast.Name)
            and node.func.id in _FUNCTIONS
            and len(node.args) == 1
            and not node.keywords
        ):
            return _FUNCTIONS[node.func.id](self._eval(node.args[0], dem))

        raise PredicateError(
            f"Unsupported syntax {type(node).__name__} in {self.expression!r}"
        )


class DemConditioner:
    """
    Mask and crop a DEM ahead of flow routing.

    The no-data policy is one of:
    - None: no masking
    - "auto": mask large flat regions found by FlatRegionDetector
    - any other string: explicit NoDataPredicate over ``DEM``

    Attributes:
        no_data_exp (str): No-data policy
        min_flat_area (float): Flat area threshold, used by the auto policy only
        logger (logging.Logger): Logger instance
    """

    def __init__(
        self,
        no_data_exp: Optional[str] = None,
        min_flat_area: float = DEFAULT_MIN_FLAT_AREA,
        logger: Optional[logging.Logger] = None,
    ):
        if no_data_exp is not None and not isinstance(no_data_exp, str):
            raise ValidationError(
                f"no_data_exp must be a string or None, got {type(no_data_exp).__name__}"
            )
        self.no_data_exp = no_data_exp
        self.min_flat_area = min_flat_area
        self.logger = logger or logging.getLogger(__name__)

    @property
    def policy(self) -> str:
        if not self.no_data_exp:
            return "none"
        if self.no_data_exp == AUTO:
            return AUTO
        return "expression"

    def check_cellsize(self, grid: ElevationGrid, resample_requested: bool = False) -> bool:
        """
        Warn when the cellsize is not a whole number and no resampling is planned.

        Returns:
            True if the warning was issued
        """
        if grid.is_integer_cellsize or resample_requested:
            return False
        self.logger.warning(
            f"Grid cellsize ({grid.cellsize}) is not a whole number, this may cause "
            "problems in flow routing, consider using the resample_grid option"
        )
        return True

    def mask(self, grid: ElevationGrid) -> np.ndarray:
        """
        No-data mask for the configured policy.

        An expression that cannot be parsed or evaluated gives an empty mask
        and a warning.
        """
        policy = self.policy
        if policy == "none":
            return np.zeros(grid.shape, dtype=bool)

        if policy == AUTO:
            detector = FlatRegionDetector(self.min_flat_area, self.logger)
            return detector.detect(grid)

        try:
            return NoDataPredicate(self.no_data_exp).evaluate(grid.z)
        except PredicateError as e:
            self.logger.warning(
                f"Provided no_data_exp was not a valid expression ({e}), "
                "proceeding without this no data condition"
            )
            return np.zeros(grid.shape, dtype=bool)

    def condition(self, grid: ElevationGrid) -> ElevationGrid:
        """
        Apply the no-data policy, then crop away all-missing borders.

        Returns:
            New conditioned grid; the input is not modified

        Raises:
            DEMError: If no valid cell is left
        """
        self.logger.info("Cleaning up DEM")
        nodata = self.mask(grid)
        z = grid.z.copy()
        z[nodata] = np.nan

        if nodata.any():
            self.logger.info(f"Set {int(nodata.sum())} cells to no-data ({self.policy})")

        return grid.with_values(z).crop()
