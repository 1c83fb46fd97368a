"""Uniform fit / predict_prob adapters over heterogeneous classifiers.

Every adapter normalizes its model's native output (class-probability
matrices, per-tree votes, neighbour labels, a constant) to a 1-D array of
positive-class probabilities with one entry per grid row.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, NamedTuple, Tuple

import numpy as np
import pandas as pd
from scipy.spatial.distance import cdist
from sklearn.ensemble import RandomForestClassifier
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler
from sklearn.svm import SVC
from sklearn.tree import DecisionTreeClassifier
from sklearn.utils import gen_batches

from diabetes_grid.errors import AdapterContractError, ConfigError, SchemaError
from diabetes_grid.features.grid import FeatureGrid

logger = logging.getLogger(__name__)

_FORMULA_PATTERN = re.compile(r"^\s*(?P<label>[^~\s]+)\s*~\s*(?P<terms>.+?)\s*$")

# Distance matrix cells computed per k-NN batch
_DISTANCE_BATCH_CELLS = 2 ** 22


def parse_formula(formula: str, columns) -> Tuple[str, List[str]]:
    """Split ``"label ~ a + b"`` into the label and predictor names.

    ``"label ~ ."`` selects every column except the label.

    Raises:
        ConfigError: If the formula is malformed or names unknown columns
    """
    match = _FORMULA_PATTERN.match(formula or "")
    if match is None:
        raise ConfigError(f"Malformed formula: {formula!r}")

    label = match.group("label")
    terms = [term.strip() for term in match.group("terms").split("+")]
    if any(not term for term in terms):
        raise ConfigError(f"Malformed formula: {formula!r}")

    columns = list(columns)
    if terms == ["."]:
        features = [col for col in columns if col != label]
    else:
        features = list(dict.fromkeys(terms))

    unknown = [name for name in [label] + features if name not in columns]
    if unknown:
        raise ConfigError(f"Formula {formula!r} names unknown columns: {unknown}")
    if label in features:
        raise ConfigError(f"Formula {formula!r} uses the label as a predictor")
    if not features:
        raise ConfigError(f"Formula {formula!r} has no predictors")
    return label, features


@dataclass
class FittedModel:
    """Opaque fitted state returned by an adapter's ``fit``."""

    adapter: str
    label: str
    features: List[str]
    estimator: Any


def check_predictions(predictions, expected_rows: int, model_name: str) -> np.ndarray:
    """Enforce the uniform prediction contract.

    Returns:
        1-D float array of length ``expected_rows`` with values in [0, 1]

    Raises:
        AdapterContractError: On wrong shape, length or value range
    """
    try:
        values = np.asarray(predictions, dtype=float)
    except (TypeError, ValueError) as e:
        raise AdapterContractError(f"{model_name}: predictions are not numeric ({e})") from e

    if values.ndim != 1:
        raise AdapterContractError(
            f"{model_name}: expected a 1-D prediction sequence, got shape {values.shape}"
        )
    if len(values) != expected_rows:
        raise AdapterContractError(
            f"{model_name}: returned {len(values)} predictions for {expected_rows} grid rows"
        )
    if not np.all(np.isfinite(values)):
        raise AdapterContractError(f"{model_name}: predictions contain non-finite values")
    if values.size and (values.min() < 0.0 or values.max() > 1.0):
        raise AdapterContractError(
            f"{model_name}: predictions outside [0, 1] "
            f"(min={values.min():.4f}, max={values.max():.4f})"
        )
    return values


def _points(grid) -> pd.DataFrame:
    if isinstance(grid, FeatureGrid):
        return grid.frame
    if isinstance(grid, pd.DataFrame):
        return grid
    raise AdapterContractError(f"Cannot predict on {type(grid).__name__}; expected a grid or DataFrame")


def _require_int(value, name: str, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value < minimum:
        raise ConfigError(f"{name} must be an integer >= {minimum}, got {value!r}")
    return int(value)


def _require_number(value, name: str, minimum: float, inclusive: bool = True) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, np.number)):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    if value < minimum or (not inclusive and value == minimum):
        bound = ">=" if inclusive else ">"
        raise ConfigError(f"{name} must be {bound} {minimum}, got {value!r}")
    return float(value)


def _positive_proba(estimator, X) -> np.ndarray:
    """Select the class-1 column of a scikit-learn probability matrix."""
    proba = estimator.predict_proba(X)
    classes = list(estimator.classes_)
    if 1 not in classes:
        return np.zeros(len(X))
    return proba[:, classes.index(1)]


class ModelAdapter(ABC):
    """Uniform wrapper exposing fit / predict_prob for one model family."""

    kind = "base"

    def __init__(self, name=None):
        self.name = name or self.kind

    def fit(self, records: pd.DataFrame, formula: str) -> FittedModel:
        """Fit the underlying model on ``records``.

        Args:
            records: Prepared record set with a 0/1 label
            formula: ``"label ~ a + b"`` style model formula

        Returns:
            FittedModel holding the adapter's private state
        """
        label, features = parse_formula(formula, records.columns)
        if len(records) == 0:
            raise SchemaError(f"{self.name}: cannot fit on an empty record set")
        self.validate(records, features)

        X = records[features]
        y = records[label].to_numpy()
        estimator = self._fit(X, y)
        logger.debug(f"Fitted {self.name} ({self.kind}) on {len(records)} records, features {features}")
        return FittedModel(adapter=self.name, label=label, features=features, estimator=estimator)

    def validate(self, records: pd.DataFrame, features: List[str]) -> None:
        """Check hyperparameters that depend on the training data.

        Raises:
            ConfigError: If a hyperparameter cannot be honoured for these records
        """

    def predict_prob(self, fitted: FittedModel, grid) -> np.ndarray:
        """Positive-class probability for every grid row.

        Args:
            fitted: Result of this adapter's ``fit``
            grid: FeatureGrid or DataFrame holding the fitted features

        Returns:
            1-D float array aligned with the grid rows
        """
        points = _points(grid)
        missing = [col for col in fitted.features if col not in points.columns]
        if missing:
            raise AdapterContractError(f"{self.name}: grid lacks fitted features {missing}")

        predictions = self._predict(fitted.estimator, points[fitted.features])
        return check_predictions(predictions, len(points), self.name)

    @abstractmethod
    def _fit(self, X: pd.DataFrame, y: np.ndarray):
        """Return the fitted state for this model family."""

    @abstractmethod
    def _predict(self, state, X: pd.DataFrame):
        """Return positive-class probabilities for the rows of X."""

    def __repr__(self):
        return f"{type(self).__name__}(name={self.name!r})"


class NullAdapter(ModelAdapter):
    """Constant baseline predicting the training positive rate everywhere."""

    kind = "null_model"

    def _fit(self, X, y):
        return float(np.mean(y))

    def _predict(self, state, X):
        return np.full(len(X), state)


class TreeAdapter(ModelAdapter):
    """Single classification tree; probability from the leaf each point falls in."""

    kind = "tree"

    def __init__(self, min_improvement=0.01, min_leaf_size=7, name=None):
        super().__init__(name)
        self.min_improvement = _require_number(min_improvement, "min_improvement", 0.0)
        self.min_leaf_size = _require_int(min_leaf_size, "min_leaf_size", 1)

    def _fit(self, X, y):
        tree = DecisionTreeClassifier(
            min_impurity_decrease=self.min_improvement,
            min_samples_leaf=self.min_leaf_size,
            random_state=0,
        )
        return tree.fit(X, y)

    def _predict(self, state, X):
        return _positive_proba(state, X)


class ForestAdapter(ModelAdapter):
    """Random forest; probability is the share of trees voting positive."""

    kind = "forest"

    def __init__(self, ntree=500, mtry=1, seed=None, name=None):
        super().__init__(name)
        self.ntree = _require_int(ntree, "ntree", 1)
        self.mtry = _require_int(mtry, "mtry", 1)
        self.seed = None if seed is None else _require_int(seed, "seed", 0)

    def validate(self, records, features):
        if self.mtry > len(features):
            raise ConfigError(f"{self.name}: mtry={self.mtry} exceeds {len(features)} features")

    def _fit(self, X, y):
        forest = RandomForestClassifier(
            n_estimators=self.ntree,
            max_features=self.mtry,
            random_state=self.seed,
        )
        return forest.fit(X, y)

    def _predict(self, state, X):
        classes = list(state.classes_)
        if 1 not in classes:
            return np.zeros(len(X))

        # Sub-trees are fitted on class indices, not on the original labels
        positive_index = classes.index(1)
        X_array = np.asarray(X, dtype=np.float32)
        votes = np.stack([tree.predict(X_array) == positive_index for tree in state.estimators_])
        return votes.mean(axis=0)


class NeighborState(NamedTuple):
    points: np.ndarray
    labels: np.ndarray


class NeighborAdapter(ModelAdapter):
    """k-nearest neighbours by Euclidean distance over the formula features.

    Equal distances are resolved in favour of the record that appears first
    in the training set.
    """

    kind = "neighbor"

    def __init__(self, k=5, name=None):
        super().__init__(name)
        self.k = _require_int(k, "k", 1)

    def validate(self, records, features):
        if self.k > len(records):
            raise ConfigError(f"{self.name}: k={self.k} exceeds {len(records)} training records")

    def _fit(self, X, y):
        return NeighborState(points=np.asarray(X, dtype=float), labels=np.asarray(y, dtype=float))

    def _predict(self, state, X):
        queries = np.asarray(X, dtype=float)
        batch_rows = max(1, _DISTANCE_BATCH_CELLS // max(1, len(state.points)))

        shares = []
        for batch in gen_batches(len(queries), batch_rows):
            # Per-pair norms keep equidistant records exactly tied
            distances = cdist(queries[batch], state.points, metric="euclidean")
            nearest = np.argsort(distances, axis=1, kind="stable")[:, : self.k]
            shares.append(state.labels[nearest].mean(axis=1))
        return np.concatenate(shares) if shares else np.zeros(0)


class SupportVectorAdapter(ModelAdapter):
    """Soft-margin support vector classifier on standardized features.

    Probabilities come from Platt scaling; ``seed`` fixes its internal
    cross-validation.
    """

    kind = "support_vector"
    KERNELS = ("linear", "poly", "rbf", "sigmoid")

    def __init__(self, kernel="rbf", cost=1.0, gamma="scale", seed=None, name=None):
        super().__init__(name)
        if kernel not in self.KERNELS:
            raise ConfigError(f"kernel must be one of {self.KERNELS}, got {kernel!r}")
        self.kernel = kernel
        self.cost = _require_number(cost, "cost", 0.0, inclusive=False)
        if gamma not in ("scale", "auto"):
            gamma = _require_number(gamma, "gamma", 0.0, inclusive=False)
        self.gamma = gamma
        self.seed = None if seed is None else _require_int(seed, "seed", 0)

    def _fit(self, X, y):
        model = Pipeline(
            [
                ("scaler", StandardScaler()),
                (
                    "svc",
                    SVC(
                        kernel=self.kernel,
                        C=self.cost,
                        gamma=self.gamma,
                        probability=True,
                        random_state=self.seed,
                    ),
                ),
            ]
        )
        return model.fit(X, y)

    def _predict(self, state, X):
        return _positive_proba(state, X)


ADAPTER_TYPES = {
    adapter.kind: adapter
    for adapter in (NullAdapter, TreeAdapter, ForestAdapter, NeighborAdapter, SupportVectorAdapter)
}


def build_adapters(models_config) -> Dict[str, ModelAdapter]:
    """Instantiate adapters from the ``models`` config section, keeping its order.

    Args:
        models_config: List of ``{name, type, params}`` mappings

    Returns:
        Ordered mapping of model name to adapter

    Raises:
        ConfigError: On unknown types, bad parameters or duplicate names
    """
    adapters = {}
    for entry in models_config:
        name = entry.get("name")
        kind = entry.get("type")
        if kind not in ADAPTER_TYPES:
            raise ConfigError(f"Model '{name}' has unknown type {kind!r}; known: {sorted(ADAPTER_TYPES)}")
        if name in adapters:
            raise ConfigError(f"Duplicate model name '{name}'")

        params = entry.get("params") or {}
        try:
            adapters[name] = ADAPTER_TYPES[kind](name=name, **params)
        except TypeError as e:
            raise ConfigError(f"Model '{name}': invalid parameters {sorted(params)} ({e})") from e

    return adapters
