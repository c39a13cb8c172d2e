"""
Exploratory Data Analysis (EDA) Module
======================================

Charts and summary statistics for the agronomic crop dataset.

Functions:
    - plot_label_distribution: Sample count per crop
    - plot_correlation_matrix: Feature correlation heatmap
    - plot_distributions: Histograms with a normality test per feature
    - plot_box_plots_by_crop: Per-crop spread of every feature
    - generate_eda_report: Full EDA report with all visualizations
"""

import logging
from pathlib import Path
from typing import Dict, Any, Optional, Tuple

import pandas as pd
import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import stats

from .data_loader import Dataset, TARGET_COLUMN

logger = logging.getLogger(__name__)

# Set style for all plots
plt.style.use('seaborn-v0_8-whitegrid')
sns.set_palette("husl")

# normaltest needs at least this many samples
MIN_NORMALTEST_SAMPLES = 8


def plot_label_distribution(
    df: pd.DataFrame,
    figsize: Tuple[int, int] = (12, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Bar chart of the number of samples per crop.

    Args:
        df: DataFrame with a label column
        figsize: Figure size (width, height)
        save_path: Path to save the figure (optional)

    Returns:
        Matplotlib Figure object
    """
    counts = df[TARGET_COLUMN].value_counts()

    fig, ax = plt.subplots(figsize=figsize)
    ax.bar(counts.index, counts.values, alpha=0.85)
    ax.axhline(counts.mean(), color='red', linestyle='--', label=f'Mean: {counts.mean():.1f}')
    ax.set_xlabel('Crop')
    ax.set_ylabel('Samples')
    ax.set_title('Label Distribution', fontsize=14, fontweight='bold')
    ax.set_xticks(range(len(counts)))
    ax.set_xticklabels(counts.index, rotation=45, ha='right')
    ax.legend(fontsize=8)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Label distribution saved to {save_path}")

    return fig


def plot_correlation_matrix(
    df: pd.DataFrame,
    method: str = 'pearson',
    figsize: Tuple[int, int] = (10, 8),
    save_path: Optional[str] = None
) -> Tuple[plt.Figure, pd.DataFrame]:
    """
    Create a correlation heatmap for the agronomic features.

    Args:
        df: DataFrame with numerical data
        method: Correlation method ('pearson', 'spearman', 'kendall')
        figsize: Figure size (width, height)
        save_path: Path to save the figure (optional)

    Returns:
        Tuple of (Figure, correlation matrix DataFrame)
    """
    corr_matrix = df.select_dtypes(include=[np.number]).corr(method=method)

    fig, ax = plt.subplots(figsize=figsize)

    mask = np.triu(np.ones_like(corr_matrix, dtype=bool), k=1)
    sns.heatmap(
        corr_matrix,
        mask=mask,
        annot=True,
        fmt='.3f',
        cmap='RdYlBu_r',
        center=0,
        square=True,
        linewidths=0.5,
        cbar_kws={"shrink": 0.8, "label": "Correlation"},
        ax=ax,
        vmin=-1,
        vmax=1
    )

    ax.set_title(f'Correlation Matrix ({method.capitalize()})',
                 fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Correlation matrix saved to {save_path}")

    return fig, corr_matrix


def plot_distributions(
    df: pd.DataFrame,
    figsize: Tuple[int, int] = (14, 12),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Create distribution plots (histogram + KDE) for every feature.

    Args:
        df: DataFrame with numerical data
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    columns = df.select_dtypes(include=[np.number]).columns.tolist()
    n_rows = (len(columns) + 1) // 2

    fig, axes = plt.subplots(n_rows, 2, figsize=figsize)
    axes = np.atleast_1d(axes).flatten()

    for idx, col in enumerate(columns):
        ax = axes[idx]
        values = df[col].dropna()

        sns.histplot(values, kde=len(values) > 1, ax=ax, bins=30, alpha=0.7)

        mean_val = values.mean()
        median_val = values.median()
        ax.axvline(mean_val, color='red', linestyle='--', label=f'Mean: {mean_val:.2f}')
        ax.axvline(median_val, color='green', linestyle='--', label=f'Median: {median_val:.2f}')

        if len(values) >= MIN_NORMALTEST_SAMPLES and values.nunique() > 1:
            _, p_value = stats.normaltest(values)
            normality = "Normal" if p_value > 0.05 else "Non-Normal"
            ax.set_title(f'{col} ({normality}, p={p_value:.3f})', fontsize=10, fontweight='bold')
        else:
            ax.set_title(f'{col}', fontsize=10, fontweight='bold')
        ax.legend(fontsize=8)

    # Hide unused subplots
    for idx in range(len(columns), len(axes)):
        axes[idx].set_visible(False)

    plt.suptitle('Feature Distributions', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Distribution plots saved to {save_path}")

    return fig


def plot_box_plots_by_crop(
    df: pd.DataFrame,
    figsize: Tuple[int, int] = (16, 14),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Box plot of each feature grouped by crop.

    Args:
        df: DataFrame with features and a label column
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    columns = [c for c in df.select_dtypes(include=[np.number]).columns if c != TARGET_COLUMN]
    n_rows = (len(columns) + 1) // 2

    fig, axes = plt.subplots(n_rows, 2, figsize=figsize)
    axes = np.atleast_1d(axes).flatten()

    for idx, col in enumerate(columns):
        ax = axes[idx]
        sns.boxplot(data=df, x=TARGET_COLUMN, y=col, ax=ax)
        ax.set_title(col, fontsize=10, fontweight='bold')
        ax.set_xlabel('')
        ax.tick_params(axis='x', rotation=60)

    for idx in range(len(columns), len(axes)):
        axes[idx].set_visible(False)

    plt.suptitle('Feature Spread by Crop', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Box plots saved to {save_path}")

    return fig


def generate_eda_report(
    dataset: Dataset,
    output_dir: str = "reports/figures/",
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Generate a complete EDA report with all visualizations.

    Args:
        dataset: Dataset to analyze
        output_dir: Directory to save figures
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing EDA results and file paths
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    df = dataset.to_frame()
    features = df.drop(columns=[TARGET_COLUMN])

    report = {
        "data_shape": df.shape,
        "columns": list(df.columns),
        "figures": [],
        "correlation_matrix": None,
        "label_distribution": dict(dataset.stats.label_distribution),
        "statistics": {}
    }

    logger.info("=" * 60)
    logger.info("STARTING EXPLORATORY DATA ANALYSIS")
    logger.info("=" * 60)

    # 1. Label distribution
    logger.info("Plotting label distribution...")
    plot_label_distribution(df, save_path=str(output_dir / "01_label_distribution.png"))
    report["figures"].append("01_label_distribution.png")

    # 2. Correlation
    logger.info("Computing correlation matrix...")
    _, corr_matrix = plot_correlation_matrix(
        features,
        save_path=str(output_dir / "02_correlation_matrix.png")
    )
    report["correlation_matrix"] = corr_matrix.to_dict()
    report["figures"].append("02_correlation_matrix.png")

    # 3. Distributions
    logger.info("Plotting distributions...")
    plot_distributions(features, save_path=str(output_dir / "03_distributions.png"))
    report["figures"].append("03_distributions.png")

    # 4. Per-crop box plots
    logger.info("Creating box plots by crop...")
    plot_box_plots_by_crop(df, save_path=str(output_dir / "04_box_plots_by_crop.png"))
    report["figures"].append("04_box_plots_by_crop.png")

    for col in features.columns:
        report["statistics"][col] = {
            "mean": float(features[col].mean()),
            "std": float(features[col].std(ddof=0)),
            "min": float(features[col].min()),
            "max": float(features[col].max()),
            "skew": float(features[col].skew()),
            "kurtosis": float(features[col].kurtosis())
        }

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    logger.info("=" * 60)
    logger.info("EDA COMPLETE - All figures saved to: %s", output_dir)
    logger.info("=" * 60)

    return report


def print_correlation_insights(corr_matrix: pd.DataFrame, threshold: float = 0.5) -> None:
    """
    Print insights about strongly correlated features.

    Args:
        corr_matrix: Correlation matrix DataFrame
        threshold: Correlation threshold for "strong" correlation
    """
    print("\n" + "=" * 50)
    print("CORRELATION INSIGHTS")
    print("=" * 50)

    strong_corr = []
    for i in range(len(corr_matrix.columns)):
        for j in range(i + 1, len(corr_matrix.columns)):
            corr_val = corr_matrix.iloc[i, j]
            if abs(corr_val) >= threshold:
                strong_corr.append({
                    "col1": corr_matrix.columns[i],
                    "col2": corr_matrix.columns[j],
                    "correlation": corr_val
                })

    if strong_corr:
        print(f"\nStrong correlations (|r| >= {threshold}):")
        for item in sorted(strong_corr, key=lambda x: abs(x["correlation"]), reverse=True):
            direction = "positive" if item["correlation"] > 0 else "negative"
            print(f"  • {item['col1']} ↔ {item['col2']}: {item['correlation']:.3f} ({direction})")
        print("\n  Strongly correlated soil or climate inputs carry overlapping signal.")
    else:
        print(f"\nNo strong correlations found (|r| >= {threshold})")
        print("  - Features appear relatively independent")

    print("=" * 50 + "\n")
