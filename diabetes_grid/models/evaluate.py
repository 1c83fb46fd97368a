"""Training-set metrics and decision-surface plots for compared models."""

import logging
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from sklearn.metrics import accuracy_score, precision_score, recall_score, roc_auc_score

logger = logging.getLogger(__name__)


def training_metrics(
    report, adapters, records: pd.DataFrame, threshold: float = 0.5, models=None
) -> pd.DataFrame:
    """Score successful models on their own training records.

    Args:
        report: ComparisonReport from ``evaluate_models``
        adapters: Mapping of model name to adapter used for the run
        records: Prepared record set the models were fitted on
        threshold: Probability cut-off for the positive class
        models: Names to score, in order; defaults to every successful model.
            Names without a fitted model are skipped.

    Returns:
        DataFrame with one row per model
    """
    if models is None:
        models = report.succeeded

    rows = []
    for name in models:
        if name not in report.fitted:
            continue
        fitted = report.fitted[name]
        y_true = records[fitted.label].to_numpy()
        y_proba = adapters[name].predict_prob(fitted, records)
        y_pred = (y_proba >= threshold).astype(int)

        auc = roc_auc_score(y_true, y_proba) if len(np.unique(y_true)) == 2 else float("nan")
        rows.append(
            {
                "model": name,
                "accuracy": accuracy_score(y_true, y_pred),
                "recall": recall_score(y_true, y_pred, zero_division=0),
                "precision": precision_score(y_true, y_pred, zero_division=0),
                "auc_roc": auc,
                "false_negatives": int(((y_true == 1) & (y_pred == 0)).sum()),
                "false_positives": int(((y_true == 0) & (y_pred == 1)).sum()),
            }
        )

    return pd.DataFrame(
        rows,
        columns=[
            "model",
            "accuracy",
            "recall",
            "precision",
            "auc_roc",
            "false_negatives",
            "false_positives",
        ],
    )


def plot_decision_surfaces(table: pd.DataFrame, records: pd.DataFrame, output_path: Path, label_column: str):
    """Draw one panel per model: predicted probability tiles plus the labelled records.

    Args:
        table: Long-format prediction table from ``assemble``
        records: Prepared record set
        output_path: Image file to write
        label_column: 0/1 outcome column in records
    """
    feature_a, feature_b = table.attrs.get("features", ("feature_a", "feature_b"))
    models = list(dict.fromkeys(table["model"]))
    if not models:
        logger.warning("No model predictions to plot")
        return

    fig, axes = plt.subplots(1, len(models), figsize=(5 * len(models), 4.5), sharey=True, squeeze=False)

    for ax, model in zip(axes[0], models):
        surface = table[table["model"] == model].pivot(
            index="feature_b", columns="feature_a", values="predicted_value"
        )
        mesh = ax.pcolormesh(
            surface.columns.to_numpy(),
            surface.index.to_numpy(),
            surface.to_numpy(),
            cmap="RdYlBu_r",
            vmin=0.0,
            vmax=1.0,
            shading="auto",
        )
        sns.scatterplot(
            data=records,
            x=feature_a,
            y=feature_b,
            hue=label_column,
            palette={0: "navy", 1: "darkred"},
            s=8,
            alpha=0.5,
            ax=ax,
            legend="auto" if ax is axes[0][0] else False,
        )
        ax.set_title(model, fontsize=12, fontweight="bold")
        ax.set_xlabel(feature_a)
        ax.set_ylabel(feature_b)

    fig.colorbar(mesh, ax=axes[0].tolist(), label="Predicted probability")

    plt.savefig(output_path, dpi=150, bbox_inches="tight")
    plt.close(fig)

    logger.info(f"Decision surfaces saved to: {output_path}")
