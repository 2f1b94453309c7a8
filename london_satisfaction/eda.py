"""
Exploratory Data Analysis (EDA) Module
======================================

Describes the cleaned borough table before any model is fitted. Every
figure is organised around the response: predictors are ordered by the
strength of their correlation with life satisfaction and the response
itself is drawn in its own colour.

Functions:
    - response_correlations: Predictor correlations with the response
    - plot_correlation_matrix: Correlation heatmap, response first
    - plot_distributions: Histograms with KDE and a normality test
    - plot_box_plots: Z-score box plots against the outlier cut-off
    - generate_eda_report: All of the above, saved to disk
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import pandas as pd
import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import stats

from .data_loader import OUTLIER_SD, RESPONSE_COLUMN

logger = logging.getLogger(__name__)

# Set style for all plots
plt.style.use('seaborn-v0_8-whitegrid')
sns.set_palette("husl")

MIN_NORMALTEST_SAMPLES = 20
PREDICTOR_COLOR = 'steelblue'
RESPONSE_COLOR = 'darkorange'


def _numeric(df: pd.DataFrame) -> pd.DataFrame:
    return df.select_dtypes(include=[np.number])


def response_correlations(
    df: pd.DataFrame,
    response: str = RESPONSE_COLUMN,
    method: str = 'pearson'
) -> pd.Series:
    """
    Correlation of every numeric predictor with the response, strongest first.

    Args:
        df: Cleaned borough table
        response: Name of the response column
        method: Correlation method ('pearson', 'spearman', 'kendall')

    Returns:
        Series indexed by predictor, sorted by absolute correlation
    """
    numeric = _numeric(df)
    if response not in numeric.columns:
        raise ValueError(f"Response column '{response}' is missing or not numeric")

    corr = numeric.drop(columns=[response]).corrwith(numeric[response], method=method)
    return corr.reindex(corr.abs().sort_values(ascending=False).index)


def _response_first(df: pd.DataFrame, response: str) -> List[str]:
    """Column order used by every EDA figure: response, then predictors by |r|."""
    if response not in _numeric(df).columns:
        return _numeric(df).columns.tolist()
    return [response] + response_correlations(df, response).index.tolist()


def plot_correlation_matrix(
    df: pd.DataFrame,
    response: str = RESPONSE_COLUMN,
    method: str = 'pearson',
    figsize: Tuple[int, int] = (10, 8),
    save_path: Optional[str] = None
) -> Tuple[plt.Figure, pd.DataFrame]:
    """
    Lower-triangle correlation heatmap of the response and the predictors.

    The response is the first row and column; predictors follow in order of
    decreasing absolute correlation with it.

    Args:
        df: Cleaned borough table
        response: Name of the response column
        method: Correlation method ('pearson', 'spearman', 'kendall')
        figsize: Figure size (width, height)
        save_path: Path to save the figure (optional)

    Returns:
        Tuple of (Figure, correlation matrix DataFrame)
    """
    order = _response_first(df, response)
    corr_matrix = _numeric(df)[order].corr(method=method)

    fig, ax = plt.subplots(figsize=figsize)

    mask = np.triu(np.ones_like(corr_matrix, dtype=bool), k=1)
    sns.heatmap(
        corr_matrix,
        mask=mask,
        annot=True,
        fmt='.2f',
        cmap='RdYlBu_r',
        center=0,
        square=True,
        linewidths=0.5,
        cbar_kws={"shrink": 0.8, "label": "Correlation"},
        ax=ax,
        vmin=-1,
        vmax=1
    )
    # Separate the response row from the predictor block
    if order and order[0] == response:
        ax.axhline(1, color='black', linewidth=2)
        ax.get_yticklabels()[0].set_fontweight('bold')

    ax.set_title(f'Correlation with {response} ({method.capitalize()})',
                 fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Correlation matrix saved to {save_path}")

    return fig, corr_matrix


def plot_distributions(
    df: pd.DataFrame,
    response: str = RESPONSE_COLUMN,
    figsize: Tuple[int, int] = (14, 14),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Histogram and KDE per column, response first.

    Panel titles carry the skew and, with at least MIN_NORMALTEST_SAMPLES
    values, the D'Agostino-Pearson normality p-value.

    Args:
        df: Cleaned borough table
        response: Name of the response column
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    columns = _response_first(df, response)
    n_rows = max(1, (len(columns) + 1) // 2)

    fig, axes = plt.subplots(n_rows, 2, figsize=figsize, squeeze=False)
    axes = axes.flatten()

    for ax, col in zip(axes, columns):
        values = df[col].dropna()
        is_response = col == response
        color = RESPONSE_COLOR if is_response else PREDICTOR_COLOR

        sns.histplot(values, kde=len(values) > 1, ax=ax, bins=30, alpha=0.7, color=color)
        ax.axvline(values.median(), color='black', linestyle='--',
                   label=f'Median: {values.median():,.2f}')

        title = f'{col} (response)' if is_response else col
        title += f'\nskew={values.skew():.2f}'
        if len(values) >= MIN_NORMALTEST_SAMPLES:
            _, p_value = stats.normaltest(values)
            title += f', normality p={p_value:.3f}'
        ax.set_title(title, fontsize=10, fontweight='bold')
        ax.legend(fontsize=8)

    for ax in axes[len(columns):]:
        ax.set_visible(False)

    plt.suptitle('Borough Variable Distributions', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Distribution plots saved to {save_path}")

    return fig


def plot_box_plots(
    df: pd.DataFrame,
    response: str = RESPONSE_COLUMN,
    figsize: Tuple[int, int] = (10, 6),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Horizontal box plots of z-scored columns.

    Dashed lines mark the OUTLIER_SD cut-off that validate_data reports on,
    so points beyond them are the rows flagged during validation.

    Args:
        df: Cleaned borough table
        response: Name of the response column
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    columns = _response_first(df, response)
    numeric = _numeric(df)[columns]
    z_scores = (numeric - numeric.mean()) / numeric.std().replace(0, 1)

    fig, ax = plt.subplots(figsize=figsize)

    palette = {col: RESPONSE_COLOR if col == response else PREDICTOR_COLOR for col in columns}
    long = z_scores.melt(var_name='column', value_name='z').dropna()
    sns.boxplot(data=long, x='z', y='column', hue='column', palette=palette,
                order=columns, legend=False, ax=ax)

    for cut in (-OUTLIER_SD, OUTLIER_SD):
        ax.axvline(cut, color='red', linestyle='--', alpha=0.6)

    ax.set_title(f'Standardized Box Plots (outlier cut-off ±{OUTLIER_SD:g} SD)',
                 fontsize=14, fontweight='bold')
    ax.set_xlabel('Standard deviations from the mean')
    ax.set_ylabel('')

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Box plots saved to {save_path}")

    return fig


def generate_eda_report(
    df: pd.DataFrame,
    output_dir: str = "reports/figures/",
    response: str = RESPONSE_COLUMN,
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Generate the EDA figures and summary statistics.

    Args:
        df: Cleaned DataFrame (predictors and response, unscaled)
        output_dir: Directory to save figures
        response: Name of the response column
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing EDA results and file paths
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    report = {
        "data_shape": df.shape,
        "columns": list(df.columns),
        "figures": [],
        "correlation_matrix": None,
        "response_correlations": {},
        "statistics": {}
    }

    logger.info("=" * 60)
    logger.info("STARTING EXPLORATORY DATA ANALYSIS")
    logger.info("=" * 60)

    logger.info("Computing correlation matrix...")
    _, corr_matrix = plot_correlation_matrix(
        df, response=response,
        save_path=str(output_dir / "01_correlation_matrix.png")
    )
    report["figures"].append("01_correlation_matrix.png")
    report["correlation_matrix"] = corr_matrix.to_dict()
    if response in corr_matrix.columns:
        report["response_correlations"] = corr_matrix[response].drop(response).to_dict()

    logger.info("Plotting distributions...")
    plot_distributions(
        df, response=response,
        save_path=str(output_dir / "02_distributions.png")
    )
    report["figures"].append("02_distributions.png")

    logger.info("Creating standardized box plots...")
    plot_box_plots(
        df, response=response,
        save_path=str(output_dir / "03_box_plots.png")
    )
    report["figures"].append("03_box_plots.png")

    numeric = _numeric(df)
    z_scores = (numeric - numeric.mean()) / numeric.std().replace(0, 1)
    for col in numeric.columns:
        report["statistics"][col] = {
            "mean": float(numeric[col].mean()),
            "median": float(numeric[col].median()),
            "std": float(numeric[col].std()),
            "skew": float(numeric[col].skew()),
            "n_beyond_cutoff": int((z_scores[col].abs() > OUTLIER_SD).sum())
        }

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    logger.info("=" * 60)
    logger.info("EDA COMPLETE - All figures saved to: %s", output_dir)
    logger.info("=" * 60)

    return report


def print_correlation_insights(
    corr_matrix: pd.DataFrame,
    response: str = RESPONSE_COLUMN,
    threshold: float = 0.5
) -> None:
    """
    Print strongly correlated predictor pairs and each predictor's
    correlation with the response.

    Args:
        corr_matrix: Correlation matrix DataFrame
        response: Name of the response column
        threshold: Correlation threshold for "strong" correlation
    """
    print("\n" + "=" * 50)
    print("CORRELATION INSIGHTS")
    print("=" * 50)

    if response in corr_matrix.columns:
        print(f"\nCorrelation with {response}:")
        with_response = corr_matrix[response].drop(response)
        for col, value in with_response.reindex(
                with_response.abs().sort_values(ascending=False).index).items():
            print(f"  • {col}: {value:.3f}")

    predictors = [c for c in corr_matrix.columns if c != response]
    strong_corr = []
    for i in range(len(predictors)):
        for j in range(i + 1, len(predictors)):
            corr_val = corr_matrix.loc[predictors[i], predictors[j]]
            if abs(corr_val) >= threshold:
                strong_corr.append((predictors[i], predictors[j], corr_val))

    if strong_corr:
        print(f"\nStrongly correlated predictors (|r| >= {threshold}):")
        for col1, col2, value in sorted(strong_corr, key=lambda x: abs(x[2]), reverse=True):
            direction = "positive" if value > 0 else "negative"
            print(f"  • {col1} ↔ {col2}: {value:.3f} ({direction})")
        print("\n  Collinear predictors favour shrinkage (elastic net) and PCR.")
    else:
        print(f"\nNo strongly correlated predictors (|r| >= {threshold})")

    print("=" * 50 + "\n")
