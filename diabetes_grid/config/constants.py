"""Shared constants for the diabetes model comparison pipeline."""

# Columns of the NHANES survey extract used by the comparison
REQUIRED_COLUMNS = [
    "Age",
    "Gender",
    "Diabetes",
    "BMI",
    "HHIncome",
    "PhysActive",
]

# Target column name
TARGET_COLUMN = "Diabetes"

# Survey columns stored as text categories
CATEGORICAL_COLUMNS = [
    "Gender",
    "Diabetes",
    "HHIncome",
    "PhysActive",
]

# Continuous features spanning the evaluation grid
DEFAULT_FEATURE_A = "Age"
DEFAULT_FEATURE_B = "BMI"
DEFAULT_RESOLUTION = 100

DEFAULT_FORMULA = "Diabetes ~ Age + BMI"

# Long-format prediction table columns, in output order
PREDICTION_COLUMNS = ["feature_a", "feature_b", "model", "predicted_value"]
