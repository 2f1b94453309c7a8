"""
Report Module
=============

Renders the model diagnostics and the final Markdown report.

Features:
    - Cross-validation curves (KNN, elastic net, PCR)
    - PCR variance-explained plot and loadings table
    - Random forest out-of-bag curve and importance chart
    - Elastic net coefficient table with active-set flags
    - Ranked test MSE table
"""

import logging
import os
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple
from datetime import datetime

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns

from .model import KNNTrainer, ElasticNetTrainer, PCRTrainer, RandomForestTrainer

logger = logging.getLogger(__name__)


def plot_knn_cv(
    cv_results: pd.DataFrame,
    best_k: int,
    figsize: Tuple[int, int] = (9, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Plot cross-validated RMSE against the number of neighbours.

    Args:
        cv_results: KNNTrainer.cv_results_
        best_k: Selected k
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    fig, ax = plt.subplots(figsize=figsize)

    ax.plot(cv_results['k'], cv_results['rmse'], 'o-', markersize=4)
    ax.axvline(best_k, color='red', linestyle='--', label=f'Selected k = {best_k}')
    ax.set_xlabel('Number of neighbours (k)')
    ax.set_ylabel('CV RMSE')
    ax.set_title('KNN - Cross-Validated RMSE', fontsize=14, fontweight='bold')
    ax.legend()

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"KNN CV plot saved to {save_path}")

    return fig


def plot_elastic_net_cv(
    cv_results: pd.DataFrame,
    figsize: Tuple[int, int] = (10, 8),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Heatmap of cross-validated RMSE over the (lambda, fraction) grid.

    Args:
        cv_results: ElasticNetTrainer.cv_results_
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    grid = cv_results.pivot(index='lambda', columns='fraction', values='rmse')

    fig, ax = plt.subplots(figsize=figsize)
    sns.heatmap(
        grid,
        annot=True,
        fmt='.3f',
        cmap='viridis_r',
        cbar_kws={"label": "CV RMSE"},
        annot_kws={"fontsize": 7},
        ax=ax
    )
    ax.set_xlabel('Fraction (L1 share)')
    ax.set_ylabel('Lambda (penalty)')
    ax.set_title('Elastic Net - Cross-Validated RMSE', fontsize=14, fontweight='bold')

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Elastic net CV plot saved to {save_path}")

    return fig


def plot_pcr_cv(
    cv_results: pd.DataFrame,
    best_n: int,
    figsize: Tuple[int, int] = (9, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """Plot cross-validated MSE against the number of components."""
    fig, ax = plt.subplots(figsize=figsize)

    ax.plot(cv_results['n_components'], cv_results['mse'], 'o-')
    ax.axvline(best_n, color='red', linestyle='--', label=f'Selected = {best_n}')
    ax.set_xticks(cv_results['n_components'])
    ax.set_xlabel('Number of principal components')
    ax.set_ylabel('CV MSE')
    ax.set_title('PCR - Cross-Validated MSE', fontsize=14, fontweight='bold')
    ax.legend()

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"PCR CV plot saved to {save_path}")

    return fig


def plot_pcr_variance(
    variance_explained: pd.DataFrame,
    figsize: Tuple[int, int] = (12, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Plot the share of predictor and response variance explained by the
    leading principal components.

    Args:
        variance_explained: PCRTrainer.variance_explained_
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    fig, axes = plt.subplots(1, 2, figsize=figsize)
    counts = variance_explained['n_components']

    axes[0].bar(counts, variance_explained['x_variance'] * 100, alpha=0.6,
                color='steelblue', label='Per component')
    axes[0].plot(counts, variance_explained['x_cumulative'] * 100, 'ro-', label='Cumulative')
    axes[0].set_xlabel('Number of components')
    axes[0].set_ylabel('Variance explained (%)')
    axes[0].set_title('Predictors (X)', fontweight='bold')
    axes[0].set_xticks(counts)
    axes[0].legend()

    axes[1].plot(counts, variance_explained['y_r2'] * 100, 'go-')
    axes[1].set_xlabel('Number of components')
    axes[1].set_ylabel('Variance explained (%)')
    axes[1].set_title('Life satisfaction (y)', fontweight='bold')
    axes[1].set_xticks(counts)

    plt.suptitle('PCR - Variance Explained', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"PCR variance plot saved to {save_path}")

    return fig


def plot_rf_oob(
    cv_results: pd.DataFrame,
    best_m: int,
    figsize: Tuple[int, int] = (9, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """Plot out-of-bag MSE against the split width m."""
    fig, ax = plt.subplots(figsize=figsize)

    ax.plot(cv_results['m'], cv_results['oob_mse'], 'o-')
    ax.axvline(best_m, color='red', linestyle='--', label=f'Selected m = {best_m}')
    ax.set_xticks(cv_results['m'])
    ax.set_xlabel('Predictors tried at each split (m)')
    ax.set_ylabel('OOB MSE')
    ax.set_title('Random Forest - Out-of-Bag MSE', fontsize=14, fontweight='bold')
    ax.legend()

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Random forest OOB plot saved to {save_path}")

    return fig


def plot_rf_importance(
    importances: pd.DataFrame,
    figsize: Tuple[int, int] = (9, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """Horizontal bar chart of random forest predictor importances."""
    fig, ax = plt.subplots(figsize=figsize)

    ax.barh(importances['predictor'][::-1], importances['importance'][::-1],
            color='coral', alpha=0.8)
    ax.set_xlabel('Importance (mean decrease in impurity)')
    ax.set_title('Random Forest - Predictor Importance', fontsize=14, fontweight='bold')

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Random forest importance plot saved to {save_path}")

    return fig


def format_table(df: pd.DataFrame, float_format: str = '.4f', index: bool = False) -> str:
    """
    Render a DataFrame as a Markdown table.

    Args:
        df: Table to render
        float_format: Format spec applied to float cells
        index: Whether to include the index as the first column

    Returns:
        Markdown table string
    """
    if index:
        df = df.reset_index()

    def cell(value) -> str:
        if isinstance(value, (bool, np.bool_)):
            return 'yes' if value else 'no'
        if isinstance(value, (float, np.floating)):
            return format(float(value), float_format)
        return str(value)

    header = '| ' + ' | '.join(str(c) for c in df.columns) + ' |'
    divider = '|' + '|'.join('---' for _ in df.columns) + '|'
    rows = ['| ' + ' | '.join(cell(v) for v in row) + ' |' for row in df.itertuples(index=False)]
    return '\n'.join([header, divider] + rows)


def _figure_link(title: str, figure_path: Path, report_dir: Path) -> str:
    rel = os.path.relpath(figure_path, report_dir).replace(os.sep, '/')
    return f"![{title}]({rel})"


def render_report(
    trainers: Dict[str, Any],
    eval_result: Dict[str, Any],
    prep_result: Dict[str, Any],
    figures: Dict[str, Path],
    report_dir: Path
) -> str:
    """
    Build the Markdown report text.

    Args:
        trainers: Fitted trainers keyed by method name
        eval_result: Result of evaluation.evaluate_models
        prep_result: Result of preprocessing.preprocess_pipeline
        figures: Figure paths keyed by short name
        report_dir: Directory the report is written to (for relative links)

    Returns:
        Report text
    """
    metrics = eval_result['metrics']
    ranking = eval_result['ranking']
    response = prep_result['preprocessor'].response

    def fig(key: str, title: str) -> List[str]:
        if key in figures:
            return [_figure_link(title, figures[key], report_dir), ""]
        return []

    lines = [
        "# Predicting London Borough Life Satisfaction",
        "",
        f"_Generated {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}_",
        "",
        "## Data",
        "",
        f"Rows with a recorded `{response}` score: **{len(prep_result['y'])}**. "
        f"Predictors: {', '.join(f'`{c}`' for c in prep_result['feature_names'])}.",
        "",
        f"Predictors were standardized to zero mean and unit standard deviation "
        f"(statistics computed on the {prep_result['standardize_on']} data). "
        f"Rows were split at random into {len(prep_result['train_idx'])} training and "
        f"{len(prep_result['test_idx'])} test rows.",
        "",
    ]
    lines += fig('correlation', 'Correlation matrix')

    if KNNTrainer.name in trainers:
        knn = trainers[KNNTrainer.name]
        lines += [
            "## K-Nearest Neighbours",
            "",
            f"k was searched over {knn.cv_results_['k'].min()}..{knn.cv_results_['k'].max()} "
            f"by {knn.n_folds}-fold cross-validation. Selected **k = {knn.best_params_['k']}**.",
            "",
        ]
        lines += fig('knn_cv', 'KNN CV RMSE')

    if ElasticNetTrainer.name in trainers:
        enet = trainers[ElasticNetTrainer.name]
        excluded = [f for f in enet.feature_names_ if f not in enet.active_set_]
        lines += [
            "## Elastic Net",
            "",
            f"Selected **lambda = {enet.best_params_['lambda']}**, "
            f"**fraction = {enet.best_params_['fraction']}**.",
            "",
        ]
        if not enet.penalized_:
            lines += [
                "With lambda = 0 the fit is unpenalized least squares: every fraction "
                "in that row of the grid gives the same model, so the reported fraction "
                "carries no information.",
                "",
            ]
        lines += [
            format_table(enet.coefficients()),
            "",
            f"Excluded predictors (coefficient exactly 0): {', '.join(excluded) if excluded else 'none'}.",
            "",
        ]
        lines += fig('enet_cv', 'Elastic net CV RMSE')

    if PCRTrainer.name in trainers:
        pcr = trainers[PCRTrainer.name]
        lines += [
            "## Principal Component Regression",
            "",
            f"Selected **{pcr.best_params_['n_components']} component(s)**.",
            "",
            format_table(pcr.cv_results_),
            "",
        ]
        lines += fig('pcr_cv', 'PCR CV MSE')
        lines += fig('pcr_variance', 'PCR variance explained')
        lines += [
            "Loadings of the retained components:",
            "",
            format_table(pcr.loadings(), index=True),
            "",
        ]

    if RandomForestTrainer.name in trainers:
        forest = trainers[RandomForestTrainer.name]
        lines += [
            "## Random Forest",
            "",
            f"{forest.n_estimators} trees per forest; selected **m = {forest.best_params_['m']}** "
            f"by out-of-bag MSE.",
            "",
            format_table(forest.cv_results_),
            "",
        ]
        lines += fig('rf_oob', 'Random forest OOB MSE')
        lines += [format_table(forest.importances()), ""]
        lines += fig('rf_importance', 'Random forest importance')

    per_model = pd.DataFrame(metrics['per_model']).T.loc[ranking['model']]
    per_model.index.name = 'model'
    lines += [
        "## Comparison",
        "",
        format_table(ranking),
        "",
        format_table(per_model[['mse', 'rmse', 'mae', 'r2']], index=True),
        "",
    ]
    lines += fig('mse_comparison', 'Test MSE comparison')
    lines += fig('actual_vs_predicted', 'Actual vs predicted')
    lines += [
        f"The lowest test MSE was achieved by **{metrics['overall']['best_model']}** "
        f"({metrics['overall']['best_mse']:.4f}).",
        "",
    ]

    return '\n'.join(lines)


def generate_report(
    trainers: Dict[str, Any],
    eval_result: Dict[str, Any],
    prep_result: Dict[str, Any],
    output_dir: str = "reports/",
    figures_dir: Optional[str] = None,
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Draw the model diagnostics and write ``report.md``.

    Args:
        trainers: Fitted trainers keyed by method name
        eval_result: Result of evaluation.evaluate_models
        prep_result: Result of preprocessing.preprocess_pipeline
        output_dir: Directory for the report
        figures_dir: Directory holding every figure, EDA and evaluation
            included (default: output_dir/figures)
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary with the report path, text and figure names
    """
    output_dir = Path(output_dir)
    figures_dir = Path(figures_dir) if figures_dir else output_dir / "figures"
    figures_dir.mkdir(parents=True, exist_ok=True)

    logger.info("=" * 60)
    logger.info("RENDERING REPORT")
    logger.info("=" * 60)

    figures: Dict[str, Path] = {}

    corr_path = figures_dir / "01_correlation_matrix.png"
    if corr_path.exists():
        figures['correlation'] = corr_path

    if KNNTrainer.name in trainers:
        knn = trainers[KNNTrainer.name]
        figures['knn_cv'] = figures_dir / "knn_cv_rmse.png"
        plot_knn_cv(knn.cv_results_, knn.best_params_['k'], save_path=str(figures['knn_cv']))

    if ElasticNetTrainer.name in trainers:
        figures['enet_cv'] = figures_dir / "elastic_net_cv_rmse.png"
        plot_elastic_net_cv(trainers[ElasticNetTrainer.name].cv_results_,
                            save_path=str(figures['enet_cv']))

    if PCRTrainer.name in trainers:
        pcr = trainers[PCRTrainer.name]
        figures['pcr_cv'] = figures_dir / "pcr_cv_mse.png"
        plot_pcr_cv(pcr.cv_results_, pcr.best_params_['n_components'],
                    save_path=str(figures['pcr_cv']))
        figures['pcr_variance'] = figures_dir / "pcr_variance_explained.png"
        plot_pcr_variance(pcr.variance_explained_, save_path=str(figures['pcr_variance']))

    if RandomForestTrainer.name in trainers:
        forest = trainers[RandomForestTrainer.name]
        figures['rf_oob'] = figures_dir / "rf_oob_mse.png"
        plot_rf_oob(forest.cv_results_, forest.best_params_['m'], save_path=str(figures['rf_oob']))
        figures['rf_importance'] = figures_dir / "rf_importance.png"
        plot_rf_importance(forest.importances(), save_path=str(figures['rf_importance']))

    for key, name in (('mse_comparison', 'eval_mse_comparison.png'),
                      ('actual_vs_predicted', 'eval_actual_vs_predicted.png')):
        if (figures_dir / name).exists():
            figures[key] = figures_dir / name

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    text = render_report(trainers, eval_result, prep_result, figures, output_dir)
    report_path = output_dir / "report.md"
    with open(report_path, 'w', encoding='utf-8') as f:
        f.write(text)

    logger.info(f"Report written to {report_path}")

    return {
        'report_path': str(report_path),
        'report': text,
        'figures': sorted(p.name for p in figures.values())
    }


def print_report_summary(result: Dict[str, Any], eval_result: Dict[str, Any]) -> None:
    """
    Print where the report went and the final ranking.

    Args:
        result: Result dictionary from generate_report
        eval_result: Result of evaluation.evaluate_models
    """
    print("\n" + "=" * 70)
    print("REPORT")
    print("=" * 70)
    print(f"\n{'Rank':<6} {'Model':<16} {'Test MSE':<12}")
    print("-" * 40)
    for _, row in eval_result['ranking'].iterrows():
        print(f"{row['rank']:<6} {row['model']:<16} {row['test_mse']:<12.6f}")
    print("-" * 40)
    print(f"\nReport saved to: {result['report_path']}")
    print(f"Figures: {len(result['figures'])}")
    print("=" * 70 + "\n")
