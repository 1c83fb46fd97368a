"""Fan-out of fit / predict over every adapter with per-model failure isolation."""

import logging
from dataclasses import dataclass, field
from typing import Dict, Mapping

import pandas as pd
from joblib import Parallel, delayed

from diabetes_grid.errors import ConfigError, SchemaError
from diabetes_grid.features.grid import FeatureGrid
from diabetes_grid.models.adapters import FittedModel, ModelAdapter, parse_formula

logger = logging.getLogger(__name__)


@dataclass
class ComparisonReport:
    """Outcome of one comparison run.

    ``predictions`` keeps the order in which adapters were supplied and maps
    each successful model to a Series keyed by the grid coordinates.
    ``failures`` maps each failed model to its error message.
    """

    predictions: Dict[str, pd.Series] = field(default_factory=dict)
    fitted: Dict[str, FittedModel] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self):
        return list(self.predictions)

    @property
    def ok(self) -> bool:
        return not self.failures

    def summary(self) -> dict:
        return {
            "models_succeeded": self.succeeded,
            "models_failed": dict(self.failures),
            "status": "success" if self.ok else ("partial" if self.predictions else "failed"),
        }


def _fit_and_predict(name: str, adapter: ModelAdapter, records, grid: FeatureGrid, formula: str):
    """Run one adapter; errors are returned, not raised, so other models continue."""
    try:
        fitted = adapter.fit(records, formula)
        predictions = adapter.predict_prob(fitted, grid)
    except Exception as e:
        return name, None, None, f"{type(e).__name__}: {e}"
    return name, fitted, pd.Series(predictions, index=grid.coordinates, name=name), None


def evaluate_models(
    records: pd.DataFrame,
    grid: FeatureGrid,
    adapters: Mapping[str, ModelAdapter],
    formula: str,
    n_jobs: int = 1,
) -> ComparisonReport:
    """Fit every adapter on the records and query it on the grid.

    Args:
        records: Prepared record set (read-only here)
        grid: Evaluation grid built from the same records
        adapters: Ordered mapping of model name to adapter
        formula: Model formula shared by all adapters
        n_jobs: joblib worker count; 1 runs sequentially

    Returns:
        ComparisonReport with per-model predictions and failures

    Raises:
        ConfigError: If no adapters are given, the formula cannot be
            evaluated on the grid or a hyperparameter does not fit the records
        SchemaError: If the record set is empty
    """
    if not adapters:
        raise ConfigError("No models to compare")

    _, features = parse_formula(formula, records.columns)
    off_grid = [col for col in features if col not in (grid.feature_a, grid.feature_b)]
    if off_grid:
        raise ConfigError(
            f"Formula predictors {off_grid} are not grid features "
            f"({grid.feature_a}, {grid.feature_b})"
        )

    if len(records) == 0:
        raise SchemaError("Cannot compare models on an empty record set")
    for adapter in adapters.values():
        adapter.validate(records, features)

    logger.info(f"Evaluating {len(adapters)} models on {len(grid)} grid points (n_jobs={n_jobs})")

    results = Parallel(n_jobs=n_jobs)(
        delayed(_fit_and_predict)(name, adapter, records, grid, formula)
        for name, adapter in adapters.items()
    )

    report = ComparisonReport()
    for name, fitted, predictions, error in results:
        if error is not None:
            logger.error(f"Model '{name}' failed: {error}")
            report.failures[name] = error
            continue
        report.fitted[name] = fitted
        report.predictions[name] = predictions
        logger.info(
            f"Model '{name}': predicted_value range "
            f"[{predictions.min():.3f}, {predictions.max():.3f}]"
        )

    if report.failures:
        logger.warning(
            f"{len(report.failures)} of {len(adapters)} models failed: {sorted(report.failures)}"
        )
    return report
