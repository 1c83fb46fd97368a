"""Evaluation grid over two continuous features."""

import logging
from dataclasses import dataclass, field
from typing import Dict, Tuple

import numpy as np
import pandas as pd
from pandas.api.types import is_bool_dtype, is_numeric_dtype

from diabetes_grid.errors import ConfigError, SchemaError

logger = logging.getLogger(__name__)


def _read_only(values) -> np.ndarray:
    array = np.array(values, dtype=float)
    array.flags.writeable = False
    return array


@dataclass(frozen=True, eq=False)
class FeatureGrid:
    """Uniform R x R lattice of (feature_a, feature_b) points.

    Rows are ordered with feature_a as the outer loop and feature_b as the
    inner loop. ``coordinates`` keys every row by its (feature_a, feature_b)
    pair so predictions can be joined by value rather than by position.

    The axes are read-only arrays. ``frame`` and ``bounds`` are rebuilt on
    every access, so callers may modify what they receive.
    """

    feature_a: str
    feature_b: str
    resolution: int
    axis_a: np.ndarray = field(repr=False)
    axis_b: np.ndarray = field(repr=False)

    def __post_init__(self):
        object.__setattr__(self, "axis_a", _read_only(self.axis_a))
        object.__setattr__(self, "axis_b", _read_only(self.axis_b))

    def __len__(self):
        return len(self.axis_a) * len(self.axis_b)

    @property
    def bounds(self) -> Dict[str, Tuple[float, float]]:
        return {
            self.feature_a: (float(self.axis_a[0]), float(self.axis_a[-1])),
            self.feature_b: (float(self.axis_b[0]), float(self.axis_b[-1])),
        }

    @property
    def values_a(self) -> np.ndarray:
        return np.repeat(self.axis_a, len(self.axis_b))

    @property
    def values_b(self) -> np.ndarray:
        return np.tile(self.axis_b, len(self.axis_a))

    @property
    def frame(self) -> pd.DataFrame:
        return pd.DataFrame({self.feature_a: self.values_a, self.feature_b: self.values_b})

    @property
    def coordinates(self) -> pd.MultiIndex:
        return pd.MultiIndex.from_arrays(
            [self.values_a, self.values_b], names=[self.feature_a, self.feature_b]
        )


def _feature_bounds(records: pd.DataFrame, feature: str) -> Tuple[float, float]:
    if feature not in records.columns:
        raise SchemaError(f"Grid feature '{feature}' not in records")
    column = records[feature]
    if is_bool_dtype(column) or not is_numeric_dtype(column):
        raise SchemaError(f"Grid feature '{feature}' must be numeric, got {column.dtype}")
    return float(column.min()), float(column.max())


def build_grid(records: pd.DataFrame, feature_a: str, feature_b: str, resolution: int) -> FeatureGrid:
    """Build the Cartesian evaluation grid spanning the observed feature ranges.

    Args:
        records: Prepared record set
        feature_a: Outer-loop feature
        feature_b: Inner-loop feature
        resolution: Points per feature, endpoints included

    Returns:
        FeatureGrid with resolution ** 2 rows

    Raises:
        ConfigError: If resolution is not an integer >= 2, the features
            coincide or a feature is constant
        SchemaError: If a feature is missing, non-numeric or records are empty
    """
    if isinstance(resolution, bool) or not isinstance(resolution, (int, np.integer)):
        raise ConfigError(f"Grid resolution must be an integer, got {resolution!r}")
    if resolution < 2:
        raise ConfigError(f"Grid resolution must be at least 2, got {resolution}")
    if feature_a == feature_b:
        raise ConfigError(f"Grid features must differ, got '{feature_a}' twice")
    if len(records) == 0:
        raise SchemaError("Cannot build a grid from an empty record set")

    bounds = {
        feature_a: _feature_bounds(records, feature_a),
        feature_b: _feature_bounds(records, feature_b),
    }

    for feature, (low, high) in bounds.items():
        if low == high:
            raise ConfigError(f"Degenerate grid: '{feature}' is constant at {low}")

    axis_a = np.linspace(*bounds[feature_a], num=resolution)
    axis_b = np.linspace(*bounds[feature_b], num=resolution)

    logger.info(
        f"Built {resolution}x{resolution} grid over {feature_a} {bounds[feature_a]} "
        f"and {feature_b} {bounds[feature_b]}"
    )
    return FeatureGrid(
        feature_a=feature_a,
        feature_b=feature_b,
        resolution=int(resolution),
        axis_a=axis_a,
        axis_b=axis_b,
    )
