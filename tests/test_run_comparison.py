"""End-to-end tests for the comparison command."""

import json

import matplotlib

matplotlib.use("Agg")

import pandas as pd  # noqa: E402
import pytest  # noqa: E402
import yaml  # noqa: E402

from diabetes_grid.config.settings import validate_config  # noqa: E402
from diabetes_grid.errors import ConfigError, SchemaError  # noqa: E402
from diabetes_grid.models.adapters import TreeAdapter  # noqa: E402
from diabetes_grid.models.compare import evaluate_models  # noqa: E402
from diabetes_grid.pipeline import run_comparison as run_comparison_module  # noqa: E402
from diabetes_grid.pipeline.run_comparison import main, run_comparison  # noqa: E402

RESOLUTION = 8


def _config(models=None, plot=False):
    return validate_config(
        {
            "data": {"positive_label": "Yes"},
            "grid": {"feature_a": "Age", "feature_b": "BMI", "resolution": RESOLUTION},
            "models": models
            or [
                {"name": "baseline", "type": "null_model"},
                {"name": "tree", "type": "tree", "params": {"min_leaf_size": 5}},
                {"name": "forest", "type": "forest", "params": {"ntree": 10, "seed": 1}},
                {"name": "knn", "type": "neighbor", "params": {"k": 5}},
            ],
            "output": {"plot": plot},
        }
    )


@pytest.fixture
def survey_csv(survey_df, tmp_path):
    path = tmp_path / "nhanes.csv"
    survey_df.to_csv(path, index=False)
    return path


@pytest.fixture
def failing_tree(monkeypatch):
    def diverge(self, X, y):
        raise ValueError("solver diverged")

    monkeypatch.setattr(TreeAdapter, "_fit", diverge)


class TestRunComparison:
    """Test the full pipeline run."""

    def test_writes_prediction_table(self, survey_csv, tmp_path):
        output_dir = tmp_path / "out"

        report = run_comparison(_config(), survey_csv, output_dir)

        assert report["status"] == "success"
        assert report["grid_points"] == RESOLUTION * RESOLUTION
        assert report["prediction_rows"] == RESOLUTION * RESOLUTION * 4

        table = pd.read_csv(output_dir / "prediction_table.csv")
        assert list(table.columns) == ["feature_a", "feature_b", "model", "predicted_value"]
        assert table["model"].unique().tolist() == ["baseline", "tree", "forest", "knn"]
        assert (output_dir / "training_metrics.csv").exists()

        with open(output_dir / "comparison_report.json") as f:
            saved = json.load(f)
        assert saved["models_failed"] == {}

    def test_failed_model_reported_alongside_successes(self, survey_csv, tmp_path, failing_tree):
        """Test that one failing model yields a partial report."""
        report = run_comparison(_config(), survey_csv, tmp_path / "out")

        assert report["status"] == "partial"
        assert report["models_succeeded"] == ["baseline", "forest", "knn"]
        assert "solver diverged" in report["models_failed"]["tree"]
        assert report["prediction_rows"] == RESOLUTION * RESOLUTION * 3

    def test_oversized_k_aborts_before_fitting(self, survey_csv, tmp_path):
        """Test that k above the record count fails the run instead of one model."""
        models = [
            {"name": "baseline", "type": "null_model"},
            {"name": "knn_too_wide", "type": "neighbor", "params": {"k": 10000}},
        ]
        output_dir = tmp_path / "out"

        with pytest.raises(ConfigError, match="exceeds"):
            run_comparison(_config(models), survey_csv, output_dir)
        assert not (output_dir / "prediction_table.csv").exists()

    def test_metrics_skip_models_dropped_from_table(self, survey_csv, tmp_path, monkeypatch):
        """Test that a model left out of the prediction table gets no training metrics."""

        def evaluate_with_short_tree(*args, **kwargs):
            comparison = evaluate_models(*args, **kwargs)
            comparison.predictions["tree"] = comparison.predictions["tree"].iloc[:-1]
            return comparison

        monkeypatch.setattr(run_comparison_module, "evaluate_models", evaluate_with_short_tree)

        report = run_comparison(_config(), survey_csv, tmp_path / "out")

        assert report["status"] == "partial"
        assert "tree" in report["models_failed"]
        assert [row["model"] for row in report["training_metrics"]] == ["baseline", "forest", "knn"]
        metrics = pd.read_csv(tmp_path / "out" / "training_metrics.csv")
        assert metrics["model"].tolist() == ["baseline", "forest", "knn"]

    def test_plot_written_when_enabled(self, survey_csv, tmp_path):
        output_dir = tmp_path / "out"
        run_comparison(_config(plot=True), survey_csv, output_dir)
        assert (output_dir / "decision_surfaces.png").exists()

    def test_missing_column_aborts(self, survey_df, tmp_path):
        path = tmp_path / "nhanes.csv"
        survey_df.drop(columns=["PhysActive"]).to_csv(path, index=False)

        with pytest.raises(SchemaError, match="PhysActive"):
            run_comparison(_config(), path, tmp_path / "out")


class TestMain:
    """Test the CLI exit codes."""

    def _write_config(self, tmp_path, config):
        path = tmp_path / "config.yaml"
        with open(path, "w") as f:
            yaml.safe_dump(config, f)
        return path

    def test_success_exit_code(self, survey_csv, tmp_path):
        config_path = self._write_config(tmp_path, _config())

        exit_code = main(
            ["--config", str(config_path), "--input", str(survey_csv), "--output-dir", str(tmp_path / "out")]
        )

        assert exit_code == 0

    def test_partial_exit_code(self, survey_csv, tmp_path, failing_tree):
        config_path = self._write_config(tmp_path, _config())

        exit_code = main(
            ["--config", str(config_path), "--input", str(survey_csv), "--output-dir", str(tmp_path / "out")]
        )

        assert exit_code == 2

    def test_oversized_k_exit_code(self, survey_csv, tmp_path):
        models = [
            {"name": "baseline", "type": "null_model"},
            {"name": "knn_too_wide", "type": "neighbor", "params": {"k": 10000}},
        ]
        config_path = self._write_config(tmp_path, _config(models))

        exit_code = main(
            ["--config", str(config_path), "--input", str(survey_csv), "--output-dir", str(tmp_path / "out")]
        )

        assert exit_code == 1

    def test_invalid_resolution_exit_code(self, survey_csv, tmp_path):
        config = _config()
        config["grid"]["resolution"] = 1
        config_path = self._write_config(tmp_path, config)

        exit_code = main(
            ["--config", str(config_path), "--input", str(survey_csv), "--output-dir", str(tmp_path / "out")]
        )

        assert exit_code == 1

    def test_missing_config_exit_code(self, tmp_path):
        assert main(["--config", str(tmp_path / "absent.yaml")]) == 1
