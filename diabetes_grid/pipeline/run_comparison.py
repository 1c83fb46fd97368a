"""Command-line run of the model comparison grid pipeline."""

import argparse
import json
import logging
from datetime import datetime
from pathlib import Path

import mlflow
import pandas as pd

from diabetes_grid.config.settings import load_config
from diabetes_grid.data.validate_input import NhanesDataValidator
from diabetes_grid.errors import ConfigError, SchemaError
from diabetes_grid.features.grid import build_grid
from diabetes_grid.features.preprocess import prepare
from diabetes_grid.models.adapters import build_adapters
from diabetes_grid.models.assemble import assemble_partial
from diabetes_grid.models.compare import evaluate_models
from diabetes_grid.models.evaluate import plot_decision_surfaces, training_metrics

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FATAL = 1
EXIT_PARTIAL = 2


def load_records(input_path: Path, config: dict) -> pd.DataFrame:
    """Read, validate and prepare the survey extract.

    Raises:
        SchemaError: If the file cannot be read or fails validation
    """
    try:
        df = pd.read_csv(input_path)
    except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise SchemaError(f"Failed to read {input_path}: {e}") from e

    data_config = config["data"]
    NhanesDataValidator(required_columns=data_config["columns"]).require(df)

    return prepare(
        df,
        columns=data_config["columns"],
        label_column=data_config["label_column"],
        categorical_columns=data_config["categorical_columns"],
        positive_label=data_config["positive_label"],
    )


def log_to_mlflow(config: dict, report_summary: dict, metrics: pd.DataFrame, artifact_paths):
    """Record the run in MLflow when enabled in the config."""
    mlflow_config = config["mlflow"]
    mlflow.set_tracking_uri(mlflow_config.get("tracking_uri", "mlruns"))
    mlflow.set_experiment(mlflow_config.get("experiment_name", "diabetes-grid-comparison"))

    with mlflow.start_run():
        mlflow.log_params(
            {
                "formula": config["formula"],
                "resolution": config["grid"]["resolution"],
                "feature_a": config["grid"]["feature_a"],
                "feature_b": config["grid"]["feature_b"],
                "models": ",".join(model["name"] for model in config["models"]),
            }
        )
        for _, row in metrics.iterrows():
            mlflow.log_metrics(
                {
                    f"{row['model']}_{metric}": float(row[metric])
                    for metric in ("accuracy", "recall", "precision", "auc_roc")
                }
            )
        mlflow.set_tag("status", report_summary["status"])
        for path in artifact_paths:
            mlflow.log_artifact(str(path))

        logger.info(f"MLflow run ID: {mlflow.active_run().info.run_id}")


def run_comparison(config: dict, input_path: Path, output_dir: Path) -> dict:
    """Run the full pipeline and write its outputs.

    Args:
        config: Validated configuration
        input_path: Survey CSV
        output_dir: Directory for the prediction table, metrics and report

    Returns:
        Run report dictionary

    Raises:
        SchemaError, ConfigError: Before any model is fitted
    """
    start_time = datetime.now()
    output_dir.mkdir(parents=True, exist_ok=True)

    records = load_records(input_path, config)

    grid_config = config["grid"]
    grid = build_grid(
        records,
        grid_config["feature_a"],
        grid_config["feature_b"],
        grid_config["resolution"],
    )
    adapters = build_adapters(config["models"])

    comparison = evaluate_models(
        records,
        grid,
        adapters,
        config["formula"],
        n_jobs=config["execution"]["n_jobs"],
    )
    table, alignment_failures = assemble_partial(grid, comparison.predictions)
    # Models dropped during alignment have no rows to report on
    assembled = list(dict.fromkeys(table["model"]))
    metrics = training_metrics(comparison, adapters, records, models=assembled)

    table_path = output_dir / "prediction_table.csv"
    table.to_csv(table_path, index=False)
    metrics_path = output_dir / "training_metrics.csv"
    metrics.to_csv(metrics_path, index=False)
    artifact_paths = [table_path, metrics_path]

    if config["output"]["plot"] and len(table):
        plot_path = output_dir / "decision_surfaces.png"
        plot_decision_surfaces(table, records, plot_path, config["data"]["label_column"])
        artifact_paths.append(plot_path)

    summary = comparison.summary()
    failures = {**summary["models_failed"], **alignment_failures}
    status = "success" if not failures else ("partial" if len(table) else "failed")

    report = {
        "status": status,
        "input_file": str(input_path),
        "records": len(records),
        "grid_points": len(grid),
        "grid_bounds": {feature: list(bounds) for feature, bounds in grid.bounds.items()},
        "models_succeeded": [name for name in summary["models_succeeded"] if name not in failures],
        "models_failed": failures,
        "prediction_rows": len(table),
        "training_metrics": metrics.to_dict(orient="records"),
        "duration_seconds": (datetime.now() - start_time).total_seconds(),
        "timestamp": start_time.isoformat(),
    }

    report_path = output_dir / "comparison_report.json"
    with open(report_path, "w") as f:
        json.dump(report, f, indent=2, default=str)
    artifact_paths.append(report_path)

    if config["mlflow"]["enabled"]:
        log_to_mlflow(config, report, metrics, artifact_paths)

    return report


def main(argv=None):
    """CLI entry point for the model comparison."""
    parser = argparse.ArgumentParser(description="Compare classifiers over an Age x BMI grid")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("configs/comparison_config.yaml"),
        help="Comparison config",
    )
    parser.add_argument("--input", type=Path, default=None, help="Input CSV (overrides data.raw_path)")
    parser.add_argument("--output-dir", type=Path, default=None, help="Output directory")
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_FATAL

    log_level = config["logging"]["log_level"]
    logging.getLogger().setLevel(getattr(logging, str(log_level).upper(), logging.INFO))

    input_path = args.input or Path(config["data"].get("raw_path", "data/raw/nhanes.csv"))
    output_dir = args.output_dir or Path(config["output"]["output_dir"])

    logger.info(f"Processing: {input_path}")
    try:
        report = run_comparison(config, input_path, output_dir)
    except (SchemaError, ConfigError) as e:
        logger.error(f"Comparison aborted: {e}")
        return EXIT_FATAL

    logger.info(f"\n{'=' * 60}")
    logger.info("MODEL COMPARISON REPORT")
    logger.info(f"{'=' * 60}")
    logger.info(json.dumps(report, indent=2, default=str))

    if report["status"] == "success":
        logger.info(f"Prediction table saved to: {output_dir / 'prediction_table.csv'}")
        return EXIT_SUCCESS

    logger.error(f"Models failed: {report['models_failed']}")
    return EXIT_PARTIAL if report["status"] == "partial" else EXIT_FATAL


if __name__ == "__main__":
    exit(main())
