"""Dataset preparation for the model comparison pipeline."""

import logging

import pandas as pd
from pandas.api.types import is_bool_dtype, is_numeric_dtype
from sklearn.base import BaseEstimator, TransformerMixin

from diabetes_grid.errors import SchemaError

logger = logging.getLogger(__name__)


class CategoricalEncoder(BaseEstimator, TransformerMixin):
    """Map categorical columns to integer codes over lexicographically sorted levels."""

    def __init__(self, columns=None):
        """Initialize encoder.

        Args:
            columns: List of column names to encode
        """
        self.columns = columns

    def fit(self, X, y=None):
        """Fit encoder by collecting the observed levels of each column.

        Args:
            X: Input DataFrame
            y: Target (unused)

        Returns:
            self
        """
        self.levels_ = {}
        for col in self.columns or []:
            observed = X[col].dropna().unique()
            self.levels_[col] = sorted(observed, key=str)
        return self

    def transform(self, X):
        """Replace each level by its position in the fitted level list.

        Args:
            X: Input DataFrame

        Returns:
            Copy of X with encoded columns

        Raises:
            SchemaError: If a column holds a level unseen during fit
        """
        X_df = X.copy()
        for col, levels in self.levels_.items():
            mapping = {level: code for code, level in enumerate(levels)}
            codes = X_df[col].map(mapping)
            unseen = X_df[col].notna() & codes.isna()
            if unseen.any():
                raise SchemaError(
                    f"Column '{col}' has unseen levels: {sorted(X_df.loc[unseen, col].unique(), key=str)}"
                )
            X_df[col] = codes.astype("Int64") if codes.isna().any() else codes.astype(int)
        return X_df


def _is_categorical(series: pd.Series) -> bool:
    return is_bool_dtype(series) or not is_numeric_dtype(series)


def encode_label(labels: pd.Series, positive_label=None) -> pd.Series:
    """Encode a binary label column to 0/1 with 1 the positive class.

    Args:
        labels: Label column without missing values
        positive_label: Level treated as positive for text labels; defaults
            to the lexicographically last of exactly two observed levels

    Returns:
        Integer series of 0/1

    Raises:
        SchemaError: If the label is not binary or, without positive_label,
            does not show both levels
    """
    if not _is_categorical(labels):
        values = set(labels.unique())
        if not values <= {0, 1}:
            raise SchemaError(
                f"Numeric label '{labels.name}' must only hold 0/1, got {sorted(values)}"
            )
        return labels.astype(int)

    levels = sorted(labels.unique(), key=str)
    if len(levels) > 2:
        raise SchemaError(f"Label '{labels.name}' is not binary: levels {levels}")
    if positive_label is None:
        if len(levels) != 2:
            raise SchemaError(
                f"Cannot infer the positive class of '{labels.name}' from levels {levels}; "
                "set positive_label"
            )
        positive_label = levels[-1]
    elif len(levels) == 2 and positive_label not in levels:
        raise SchemaError(
            f"Positive label {positive_label!r} not among levels {levels} of '{labels.name}'"
        )
    return (labels == positive_label).astype(int)


def prepare(
    source_table: pd.DataFrame,
    columns,
    label_column: str,
    categorical_columns=None,
    positive_label=None,
) -> pd.DataFrame:
    """Select, clean and encode the record set.

    Args:
        source_table: Raw input table (not modified)
        columns: Feature columns to keep; the label is added if absent
        label_column: Binary outcome column
        categorical_columns: Feature columns to encode; defaults to every
            non-numeric selected column
        positive_label: Level of a text label counted as positive

    Returns:
        New DataFrame with no missing values, integer-coded categoricals and
        a 0/1 label. Category levels are kept in ``attrs["levels"]``.

    Raises:
        SchemaError: If a named column is absent or the label is not binary
    """
    selected = list(dict.fromkeys(list(columns) + [label_column]))

    missing_cols = [col for col in selected if col not in source_table.columns]
    if missing_cols:
        raise SchemaError(f"Missing required columns: {missing_cols}")

    records = source_table[selected].dropna().reset_index(drop=True)
    dropped = len(source_table) - len(records)
    if dropped:
        logger.info(f"Dropped {dropped} of {len(source_table)} records with missing values")

    if categorical_columns is None:
        categorical_columns = [
            col for col in selected if col != label_column and _is_categorical(records[col])
        ]
    else:
        unknown = [col for col in categorical_columns if col not in selected]
        if unknown:
            raise SchemaError(f"Categorical columns not selected: {unknown}")
        categorical_columns = [col for col in categorical_columns if col != label_column]

    encoder = CategoricalEncoder(columns=categorical_columns)
    records = encoder.fit_transform(records)
    records[label_column] = encode_label(records[label_column], positive_label)

    records.attrs["levels"] = {col: list(levels) for col, levels in encoder.levels_.items()}
    logger.info(
        f"Prepared {len(records)} records, positive rate {records[label_column].mean():.3f}"
        if len(records)
        else "Prepared 0 records"
    )
    return records
