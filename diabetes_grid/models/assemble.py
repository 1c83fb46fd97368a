"""Assembly of per-model grid predictions into one long-format table."""

import logging
from typing import Dict, Mapping, Tuple

import numpy as np
import pandas as pd

from diabetes_grid.config.constants import PREDICTION_COLUMNS
from diabetes_grid.errors import AlignmentError
from diabetes_grid.features.grid import FeatureGrid

logger = logging.getLogger(__name__)


def align_predictions(grid: FeatureGrid, name: str, predictions) -> np.ndarray:
    """Return ``predictions`` as an array in grid row order.

    A Series indexed by (feature_a, feature_b) coordinates is joined by key;
    any other sequence is taken positionally.

    Raises:
        AlignmentError: If keys or row count do not match the grid exactly
    """
    if isinstance(predictions, pd.Series) and isinstance(predictions.index, pd.MultiIndex):
        keys = predictions.index
        if keys.nlevels != 2:
            raise AlignmentError(f"{name}: expected 2 coordinate levels, got {keys.nlevels}")
        if keys.has_duplicates:
            raise AlignmentError(f"{name}: duplicated grid coordinates in predictions")

        coordinates = grid.coordinates
        keys = keys.set_names(coordinates.names)
        missing = coordinates.difference(keys)
        extra = keys.difference(coordinates)
        if len(missing) or len(extra):
            raise AlignmentError(
                f"{name}: {len(missing)} grid points without prediction, "
                f"{len(extra)} predictions off the grid"
            )
        return predictions.set_axis(keys).reindex(coordinates).to_numpy(dtype=float)

    values = np.asarray(predictions, dtype=float)
    if values.ndim != 1 or len(values) != len(grid):
        raise AlignmentError(
            f"{name}: {values.size} predictions for {len(grid)} grid points"
        )
    return values


def _model_rows(grid: FeatureGrid, name: str, values: np.ndarray) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "feature_a": grid.values_a,
            "feature_b": grid.values_b,
            "model": name,
            "predicted_value": values,
        },
        columns=PREDICTION_COLUMNS,
    )


def _concat(grid: FeatureGrid, parts) -> pd.DataFrame:
    if parts:
        table = pd.concat(parts, ignore_index=True)
    else:
        table = pd.DataFrame(columns=PREDICTION_COLUMNS)
    table.attrs["features"] = (grid.feature_a, grid.feature_b)
    return table


def assemble(grid: FeatureGrid, model_name_to_predictions: Mapping) -> pd.DataFrame:
    """Build the long-format prediction table.

    Args:
        grid: Grid the predictions were made on
        model_name_to_predictions: Ordered mapping of model name to predictions

    Returns:
        DataFrame with columns feature_a, feature_b, model, predicted_value;
        grouped by model in supply order, grid row order within each group

    Raises:
        AlignmentError: If any model's predictions do not match the grid
    """
    parts = [
        _model_rows(grid, name, align_predictions(grid, name, predictions))
        for name, predictions in model_name_to_predictions.items()
    ]
    return _concat(grid, parts)


def assemble_partial(
    grid: FeatureGrid, model_name_to_predictions: Mapping
) -> Tuple[pd.DataFrame, Dict[str, str]]:
    """Like ``assemble`` but leaves out misaligned models instead of raising.

    Returns:
        Tuple of (prediction_table, failures) where failures maps each
        dropped model to its alignment error
    """
    parts = []
    failures = {}
    for name, predictions in model_name_to_predictions.items():
        try:
            values = align_predictions(grid, name, predictions)
        except AlignmentError as e:
            logger.error(f"Dropping model '{name}' from prediction table: {e}")
            failures[name] = str(e)
            continue
        parts.append(_model_rows(grid, name, values))
    return _concat(grid, parts), failures
