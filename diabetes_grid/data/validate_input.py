"""Data validation module for the NHANES survey extract."""

import logging
from typing import List, Tuple

import pandas as pd
import pandera as pa
from pandera import Column, DataFrameSchema

from diabetes_grid.config.constants import REQUIRED_COLUMNS
from diabetes_grid.errors import SchemaError

logger = logging.getLogger(__name__)

SURVEY_COLUMNS = {
    "Age": Column(float, checks=[pa.Check.ge(0), pa.Check.le(120)], nullable=True, coerce=True),
    "BMI": Column(float, checks=[pa.Check.gt(0)], nullable=True, coerce=True),
    "Gender": Column(str, checks=[pa.Check.isin(["female", "male"])], nullable=True),
    "Diabetes": Column(str, checks=[pa.Check.isin(["No", "Yes"])], nullable=True),
    "HHIncome": Column(str, nullable=True),
    "PhysActive": Column(str, checks=[pa.Check.isin(["No", "Yes"])], nullable=True),
}


class NhanesDataValidator:
    """Validates the survey extract before preparation.

    Missing values are allowed here; rows holding them are dropped by
    ``prepare``.
    """

    def __init__(self, required_columns=None):
        """Initialize validator with schema.

        Args:
            required_columns: Columns that must be present (default: the six
                survey columns)
        """
        self.required_columns = list(required_columns or REQUIRED_COLUMNS)
        self.schema = DataFrameSchema(
            {
                name: column
                for name, column in SURVEY_COLUMNS.items()
                if name in self.required_columns
            },
            strict=False,
        )

    def validate_schema(self, df: pd.DataFrame) -> Tuple[bool, List[str]]:
        """Validate dataframe schema against required columns and data types.

        Checks for:
        - Missing required columns
        - Data type mismatches
        - Value constraints (e.g., age within 0-120, known category levels)

        Args:
            df: Input dataframe

        Returns:
            Tuple of (is_valid, error_messages)
        """
        errors = []

        missing_cols = [col for col in self.required_columns if col not in df.columns]
        if missing_cols:
            errors.append(f"Missing required columns: {missing_cols}")
            return False, errors

        try:
            self.schema.validate(df[self.required_columns], lazy=True)
            return True, []
        except pa.errors.SchemaErrors as e:
            for _, row in e.failure_cases.iterrows():
                errors.append(
                    f"Column '{row['column']}' failed check '{row['check']}' "
                    f"at index {row['index']}"
                )
            return False, errors

    def require(self, df: pd.DataFrame) -> None:
        """Raise ``SchemaError`` listing every problem if ``df`` is invalid."""
        is_valid, errors = self.validate_schema(df)
        if not is_valid:
            logger.error(f"Input failed validation with {len(errors)} error(s)")
            raise SchemaError("; ".join(errors))
