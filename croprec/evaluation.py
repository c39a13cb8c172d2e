"""
Model Evaluation Module
=======================

Provides classification metrics and visualizations for model performance.

Accuracy is always a fraction in [0, 1]; it is shown as a percentage only
when printed or plotted.

Features:
    - Accuracy, confusion matrix, per-class precision / recall / F1
    - Confusion matrix heatmap
    - Per-class metric bars
    - Feature importance chart
    - Evaluation report generation
"""

import logging
import json
from pathlib import Path
from typing import Dict, Any, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from sklearn.metrics import accuracy_score, confusion_matrix, precision_recall_fscore_support

logger = logging.getLogger(__name__)


def accuracy(predictions: Sequence, truth: Sequence) -> float:
    """
    Fraction of predictions equal to the true label.

    Raises:
        ValueError: If the sequences differ in length or are empty
    """
    if len(predictions) != len(truth):
        raise ValueError(f"predictions and truth differ in length ({len(predictions)} != {len(truth)})")
    if len(predictions) == 0:
        raise ValueError("Cannot compute accuracy of zero predictions")
    return float(accuracy_score(list(truth), list(predictions)))


def _observed_labels(predictions: Sequence, truth: Sequence) -> List:
    """Union of labels, first-seen order (truth first, then predictions)."""
    return list(dict.fromkeys(list(truth) + list(predictions)))


def calculate_metrics(predictions: Sequence, truth: Sequence) -> Dict[str, Any]:
    """
    Calculate classification metrics.

    Args:
        predictions: Predicted labels
        truth: True labels

    Returns:
        Dictionary with accuracy, confusion_matrix (true -> predicted -> count),
        class_report (precision, recall, f1, support per label) and macro averages
    """
    labels = _observed_labels(predictions, truth)
    truth = list(truth)
    predictions = list(predictions)

    matrix = confusion_matrix(truth, predictions, labels=labels)
    precision, recall, f1, support = precision_recall_fscore_support(
        truth, predictions, labels=labels, zero_division=0
    )

    confusion = {
        str(true_label): {str(pred_label): int(matrix[i, j]) for j, pred_label in enumerate(labels)}
        for i, true_label in enumerate(labels)
    }
    class_report = {
        str(label): {
            'precision': float(precision[i]),
            'recall': float(recall[i]),
            'f1': float(f1[i]),
            'support': int(support[i]),
        }
        for i, label in enumerate(labels)
    }

    return {
        'accuracy': accuracy(predictions, truth),
        'n_samples': len(truth),
        'labels': [str(label) for label in labels],
        'confusion_matrix': confusion,
        'class_report': class_report,
        'macro_avg': {
            'precision': float(np.mean(precision)),
            'recall': float(np.mean(recall)),
            'f1': float(np.mean(f1)),
        },
    }


def plot_confusion_matrix(
    metrics: Dict[str, Any],
    figsize: Tuple[int, int] = (10, 8),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Heatmap of the confusion matrix (rows: true, columns: predicted).

    Args:
        metrics: Metrics dictionary from calculate_metrics
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    labels = metrics['labels']
    matrix = pd.DataFrame(metrics['confusion_matrix']).T.loc[labels, labels]

    fig, ax = plt.subplots(figsize=figsize)
    sns.heatmap(matrix, annot=True, fmt='d', cmap='Greens', cbar=True, ax=ax)
    ax.set_xlabel('Predicted')
    ax.set_ylabel('Actual')
    ax.set_title(
        f"Confusion Matrix (accuracy {metrics['accuracy'] * 100:.2f}%)",
        fontsize=12, fontweight='bold'
    )
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Confusion matrix plot saved to {save_path}")

    return fig


def plot_class_report(
    metrics: Dict[str, Any],
    figsize: Tuple[int, int] = (12, 6),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Grouped bars of precision, recall and F1 for every class.

    Args:
        metrics: Metrics dictionary from calculate_metrics
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    report = pd.DataFrame(metrics['class_report']).T[['precision', 'recall', 'f1']]

    fig, ax = plt.subplots(figsize=figsize)
    report.plot(kind='bar', ax=ax, width=0.8, alpha=0.85)
    ax.axhline(metrics['macro_avg']['f1'], color='red', linestyle='--',
               label=f"Macro F1: {metrics['macro_avg']['f1']:.3f}")
    ax.set_ylim([0, 1.05])
    ax.set_xlabel('Crop')
    ax.set_ylabel('Score')
    ax.set_title('Per-Class Precision / Recall / F1', fontsize=12, fontweight='bold')
    ax.set_xticklabels(report.index, rotation=45, ha='right')
    ax.legend(fontsize=8)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Class report plot saved to {save_path}")

    return fig


def plot_feature_importances(
    importances: Sequence[float],
    feature_names: Sequence[str],
    figsize: Tuple[int, int] = (10, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Horizontal bar chart of feature importances.

    Args:
        importances: Importance per feature
        feature_names: Names in the same order
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    series = pd.Series(list(importances), index=list(feature_names)).sort_values()

    fig, ax = plt.subplots(figsize=figsize)
    ax.barh(series.index, series.values, color='steelblue', alpha=0.8)
    ax.set_xlabel('Importance')
    ax.set_title('Feature Importances', fontsize=12, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Feature importance plot saved to {save_path}")

    return fig


def evaluate_model(
    result,
    output_dir: str = "reports/",
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Run complete model evaluation and generate all reports.

    Args:
        result: TrainingResult from a training run
        output_dir: Directory for output files
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing metrics and file paths
    """
    if not result.test_labels:
        raise ValueError("Training run has an empty test split; nothing to evaluate")

    output_dir = Path(output_dir)
    figures_dir = output_dir / "figures"
    metrics_dir = output_dir / "metrics"

    figures_dir.mkdir(parents=True, exist_ok=True)
    metrics_dir.mkdir(parents=True, exist_ok=True)

    logger.info("=" * 60)
    logger.info("STARTING MODEL EVALUATION")
    logger.info("=" * 60)

    logger.info("Calculating evaluation metrics...")
    metrics = calculate_metrics(result.test_predictions, result.test_labels)

    metrics_file = metrics_dir / "evaluation_metrics.json"
    with open(metrics_file, 'w') as f:
        json.dump(metrics, f, indent=2)
    logger.info(f"Metrics saved to {metrics_file}")

    figures = []

    logger.info("Generating confusion matrix...")
    plot_confusion_matrix(metrics, save_path=str(figures_dir / "eval_confusion_matrix.png"))
    figures.append("eval_confusion_matrix.png")

    logger.info("Generating per-class report...")
    plot_class_report(metrics, save_path=str(figures_dir / "eval_class_report.png"))
    figures.append("eval_class_report.png")

    logger.info("Generating feature importances...")
    plot_feature_importances(
        result.model.get_feature_importances(),
        result.feature_names,
        save_path=str(figures_dir / "eval_feature_importances.png")
    )
    figures.append("eval_feature_importances.png")

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    logger.info("=" * 60)
    logger.info("EVALUATION COMPLETE")
    logger.info(f"  Accuracy: {metrics['accuracy'] * 100:.2f}%")
    logger.info(f"  Macro F1: {metrics['macro_avg']['f1']:.4f}")
    logger.info("=" * 60)

    return {
        'metrics': metrics,
        'figures': figures,
        'metrics_file': str(metrics_file)
    }


def print_evaluation_report(metrics: Dict[str, Any]) -> None:
    """
    Print a formatted evaluation report to console.

    Args:
        metrics: Metrics dictionary from calculate_metrics
    """
    print("\n" + "=" * 70)
    print("MODEL EVALUATION REPORT")
    print("=" * 70)

    print("\nPer-Class Metrics:")
    print("-" * 70)
    print(f"{'Crop':<20} {'Precision':<12} {'Recall':<12} {'F1':<12} {'Support':<10}")
    print("-" * 70)

    for label, row in metrics['class_report'].items():
        print(f"{label:<20} {row['precision']:<12.4f} {row['recall']:<12.4f} "
              f"{row['f1']:<12.4f} {row['support']:<10}")

    print("-" * 70)
    print("\nOverall Metrics:")
    print(f"  • Accuracy: {metrics['accuracy'] * 100:.2f}%")
    print(f"  • Macro precision: {metrics['macro_avg']['precision']:.4f}")
    print(f"  • Macro recall: {metrics['macro_avg']['recall']:.4f}")
    print(f"  • Macro F1: {metrics['macro_avg']['f1']:.4f}")
    print(f"  • Samples evaluated: {metrics['n_samples']}")
    print("=" * 70 + "\n")
