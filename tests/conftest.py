"""Shared fixtures: a small synthetic NHANES-style survey extract."""

import numpy as np
import pandas as pd
import pytest

from diabetes_grid.config.constants import REQUIRED_COLUMNS, TARGET_COLUMN
from diabetes_grid.features.preprocess import prepare


@pytest.fixture
def survey_df():
    rng = np.random.default_rng(7)
    n = 80
    age = rng.integers(20, 80, n)
    bmi = np.clip(rng.normal(28.0, 5.0, n), 16.0, 60.0).round(1)
    risk = 0.5 * (age - 20) / 60 + 0.5 * (bmi - 16.0) / 44.0
    diabetes = np.where(rng.random(n) < risk, "Yes", "No")
    diabetes[0], diabetes[1] = "Yes", "No"

    df = pd.DataFrame(
        {
            "ID": np.arange(n),
            "Age": age,
            "Gender": rng.choice(["female", "male"], n),
            "Diabetes": diabetes,
            "BMI": bmi,
            "HHIncome": rng.choice(["0-4999", "25000-34999", "more 99999"], n),
            "PhysActive": rng.choice(["No", "Yes"], n),
        }
    )
    df.loc[3, "BMI"] = np.nan
    df.loc[5, "PhysActive"] = None
    return df


@pytest.fixture
def records(survey_df):
    return prepare(survey_df, REQUIRED_COLUMNS, TARGET_COLUMN, positive_label="Yes")


@pytest.fixture
def two_records():
    return pd.DataFrame({"Age": [30, 60], "BMI": [25.0, 35.0], "Diabetes": [0, 1]})
