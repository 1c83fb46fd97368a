"""Loading and validation of the comparison run configuration."""

from pathlib import Path

import yaml

from diabetes_grid.config.constants import (
    DEFAULT_FEATURE_A,
    DEFAULT_FEATURE_B,
    DEFAULT_FORMULA,
    DEFAULT_RESOLUTION,
    REQUIRED_COLUMNS,
    TARGET_COLUMN,
)
from diabetes_grid.errors import ConfigError

REQUIRED_SECTIONS = ["data", "grid", "models"]


def load_config(config_path: Path) -> dict:
    """Load comparison configuration.

    Args:
        config_path: Path to a YAML configuration file

    Returns:
        Validated configuration dictionary with defaults filled in

    Raises:
        ConfigError: If the file cannot be read or is not a valid configuration
    """
    try:
        with open(config_path, "r") as f:
            config = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config file {config_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    return validate_config(config)


def validate_config(config) -> dict:
    """Check required sections and fill in defaults.

    Args:
        config: Parsed configuration (expected to be a mapping)

    Returns:
        The configuration dictionary

    Raises:
        ConfigError: On a missing section or a wrongly typed value
    """
    if not isinstance(config, dict):
        raise ConfigError("Configuration must be a mapping")

    missing = [section for section in REQUIRED_SECTIONS if section not in config]
    if missing:
        raise ConfigError(f"Missing config sections: {missing}")
    for section in ("data", "grid"):
        if not isinstance(config[section], dict):
            raise ConfigError(f"Config section '{section}' must be a mapping")

    data = config["data"]
    data.setdefault("columns", list(REQUIRED_COLUMNS))
    data.setdefault("label_column", TARGET_COLUMN)
    data.setdefault("positive_label", None)
    data.setdefault("categorical_columns", None)
    if not isinstance(data["columns"], list) or not data["columns"]:
        raise ConfigError("data.columns must be a non-empty list")

    grid = config["grid"]
    grid.setdefault("feature_a", DEFAULT_FEATURE_A)
    grid.setdefault("feature_b", DEFAULT_FEATURE_B)
    grid.setdefault("resolution", DEFAULT_RESOLUTION)
    if isinstance(grid["resolution"], bool) or not isinstance(grid["resolution"], int):
        raise ConfigError(f"grid.resolution must be an integer, got {grid['resolution']!r}")
    if grid["feature_a"] == grid["feature_b"]:
        raise ConfigError("grid.feature_a and grid.feature_b must differ")

    models = config["models"]
    if not isinstance(models, list) or not models:
        raise ConfigError("models must be a non-empty list")
    names = [model.get("name") for model in models if isinstance(model, dict)]
    if len(names) != len(models) or any(not name for name in names):
        raise ConfigError("Every model entry needs a name")
    if len(set(names)) != len(names):
        raise ConfigError(f"Duplicate model names: {names}")

    config.setdefault("formula", DEFAULT_FORMULA)
    config.setdefault("execution", {}).setdefault("n_jobs", 1)
    output = config.setdefault("output", {})
    output.setdefault("output_dir", "reports/model_comparison")
    output.setdefault("plot", False)
    config.setdefault("mlflow", {}).setdefault("enabled", False)
    config.setdefault("logging", {}).setdefault("log_level", "INFO")

    return config
