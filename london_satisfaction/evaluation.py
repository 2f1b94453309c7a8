"""
Model Evaluation Module
=======================

Scores the fitted models on the held-out test set and ranks them.

Features:
    - MSE, RMSE, MAE, R² per model
    - Ranking by test MSE (ascending)
    - Actual vs Predicted plots
    - Test MSE comparison chart
"""

import logging
import json
from pathlib import Path
from typing import Dict, Any, Optional, Tuple

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from sklearn.metrics import mean_squared_error, mean_absolute_error, r2_score

logger = logging.getLogger(__name__)


def calculate_metrics(
    y_true: np.ndarray,
    predictions: Dict[str, np.ndarray]
) -> Dict[str, Any]:
    """
    Calculate evaluation metrics for each model.

    Args:
        y_true: Ground truth response of shape (n_samples,)
        predictions: Predicted response per model name

    Returns:
        Dictionary with per-model metrics and an overall block
    """
    y_true = np.asarray(y_true, dtype=float).ravel()

    metrics = {
        'per_model': {},
        'overall': {}
    }

    for name, y_pred in predictions.items():
        y_pred = np.asarray(y_pred, dtype=float).ravel()
        mse = mean_squared_error(y_true, y_pred)
        residuals = y_true - y_pred

        metrics['per_model'][name] = {
            'mse': float(mse),
            'rmse': float(np.sqrt(mse)),
            'mae': float(mean_absolute_error(y_true, y_pred)),
            'r2': float(r2_score(y_true, y_pred)) if len(y_true) > 1 else float('nan'),
            'mean_error': float(np.mean(residuals)),
            'max_error': float(np.max(np.abs(residuals)))
        }

    ranking = rank_models({name: m['mse'] for name, m in metrics['per_model'].items()})

    metrics['overall'] = {
        'ranking': ranking['model'].tolist(),
        'best_model': ranking['model'].iloc[0] if len(ranking) else None,
        'best_mse': float(ranking['test_mse'].iloc[0]) if len(ranking) else None,
        'n_samples': int(len(y_true))
    }

    return metrics


def rank_models(test_mse: Dict[str, float]) -> pd.DataFrame:
    """
    Sort (method, test MSE) pairs by ascending MSE.

    Args:
        test_mse: Test MSE keyed by method name

    Returns:
        DataFrame with columns rank, model, test_mse
    """
    ranking = pd.DataFrame(
        {'model': list(test_mse.keys()), 'test_mse': list(test_mse.values())}
    )
    ranking = ranking.sort_values('test_mse', kind='mergesort').reset_index(drop=True)
    ranking.insert(0, 'rank', np.arange(1, len(ranking) + 1))
    return ranking


def plot_actual_vs_predicted(
    y_true: np.ndarray,
    predictions: Dict[str, np.ndarray],
    figsize: Tuple[int, int] = (12, 10),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Create actual vs predicted scatter plots, one panel per model.

    Args:
        y_true: Ground truth values
        predictions: Predicted values per model
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    y_true = np.asarray(y_true, dtype=float).ravel()
    names = list(predictions.keys())
    n_models = len(names)

    n_rows = max(1, (n_models + 1) // 2)
    fig, axes = plt.subplots(n_rows, 2, figsize=figsize, squeeze=False)
    axes = axes.flatten()

    for i, name in enumerate(names):
        ax = axes[i]
        y_pred = np.asarray(predictions[name], dtype=float).ravel()

        ax.scatter(y_true, y_pred, alpha=0.6, s=25)

        min_val = min(y_true.min(), y_pred.min())
        max_val = max(y_true.max(), y_pred.max())
        ax.plot([min_val, max_val], [min_val, max_val], 'r--', linewidth=2, label='Perfect')

        mse = mean_squared_error(y_true, y_pred)

        ax.set_xlabel('Actual life satisfaction')
        ax.set_ylabel('Predicted')
        ax.set_title(f'{name}\nMSE={mse:.4f}', fontsize=10, fontweight='bold')
        ax.legend(loc='upper left', fontsize=8)

    # Hide unused subplots
    for idx in range(n_models, len(axes)):
        axes[idx].set_visible(False)

    plt.suptitle('Actual vs Predicted - Test Set', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Actual vs Predicted plot saved to {save_path}")

    return fig


def plot_mse_comparison(
    ranking: pd.DataFrame,
    figsize: Tuple[int, int] = (8, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Bar chart of test MSE per model, best model first.

    Args:
        ranking: DataFrame from rank_models
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    fig, ax = plt.subplots(figsize=figsize)

    x = np.arange(len(ranking))
    colors = ['green' if r == 1 else 'steelblue' for r in ranking['rank']]
    ax.bar(x, ranking['test_mse'], 0.6, color=colors, alpha=0.8)
    ax.set_xticks(x)
    ax.set_xticklabels(ranking['model'], rotation=20, ha='right')

    for i, mse in enumerate(ranking['test_mse']):
        ax.text(i, mse, f'{mse:.4f}', ha='center', va='bottom', fontsize=9)

    ax.set_xlabel('Model')
    ax.set_ylabel('Test MSE')
    ax.set_title('Test Set Mean Squared Error', fontsize=14, fontweight='bold')

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"MSE comparison plot saved to {save_path}")

    return fig


def evaluate_models(
    trainers: Dict[str, Any],
    X_test,
    y_test,
    output_dir: str = "reports/",
    figures_dir: Optional[str] = None,
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Score every fitted trainer on the test set and write metrics and figures.

    Args:
        trainers: Fitted trainers keyed by method name
        X_test: Test predictors
        y_test: Test response
        output_dir: Directory for the metrics file
        figures_dir: Directory for figures (default: output_dir/figures)
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing metrics, ranking, predictions and file paths
    """
    output_dir = Path(output_dir)
    figures_dir = Path(figures_dir) if figures_dir else output_dir / "figures"
    metrics_dir = output_dir / "metrics"

    figures_dir.mkdir(parents=True, exist_ok=True)
    metrics_dir.mkdir(parents=True, exist_ok=True)

    logger.info("=" * 60)
    logger.info("STARTING MODEL EVALUATION")
    logger.info("=" * 60)

    predictions = {name: trainer.predict(X_test) for name, trainer in trainers.items()}
    y_true = np.asarray(y_test, dtype=float).ravel()

    logger.info("Calculating evaluation metrics...")
    metrics = calculate_metrics(y_true, predictions)
    ranking = rank_models({name: m['mse'] for name, m in metrics['per_model'].items()})

    metrics['hyperparameters'] = {
        name: trainer.best_params_ for name, trainer in trainers.items()
    }

    metrics_file = metrics_dir / "evaluation_metrics.json"
    with open(metrics_file, 'w') as f:
        json.dump(metrics, f, indent=2)
    logger.info(f"Metrics saved to {metrics_file}")

    figures = []

    logger.info("Generating Actual vs Predicted plots...")
    plot_actual_vs_predicted(
        y_true, predictions,
        save_path=str(figures_dir / "eval_actual_vs_predicted.png")
    )
    figures.append("eval_actual_vs_predicted.png")

    logger.info("Generating MSE comparison...")
    plot_mse_comparison(
        ranking,
        save_path=str(figures_dir / "eval_mse_comparison.png")
    )
    figures.append("eval_mse_comparison.png")

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    result = {
        'metrics': metrics,
        'ranking': ranking,
        'predictions': predictions,
        'y_true': y_true,
        'figures': figures,
        'metrics_file': str(metrics_file)
    }

    logger.info("=" * 60)
    logger.info("EVALUATION COMPLETE")
    for _, row in ranking.iterrows():
        logger.info(f"  {row['rank']}. {row['model']}: MSE {row['test_mse']:.6f}")
    logger.info("=" * 60)

    return result


def print_evaluation_report(metrics: Dict[str, Any]) -> None:
    """
    Print a formatted evaluation report to console.

    Args:
        metrics: Metrics dictionary from calculate_metrics
    """
    print("\n" + "=" * 70)
    print("MODEL EVALUATION REPORT")
    print("=" * 70)

    print("\nTest Set Metrics (ranked by MSE):")
    print("-" * 70)
    print(f"{'Model':<16} {'MSE':<12} {'RMSE':<12} {'MAE':<12} {'R²':<12}")
    print("-" * 70)

    for name in metrics['overall']['ranking']:
        m = metrics['per_model'][name]
        print(f"{name:<16} {m['mse']:<12.6f} {m['rmse']:<12.6f} "
              f"{m['mae']:<12.6f} {m['r2']:<12.6f}")

    print("-" * 70)
    print(f"\nBest model: {metrics['overall']['best_model']} "
          f"(MSE {metrics['overall']['best_mse']:.6f})")
    print(f"Samples evaluated: {metrics['overall']['n_samples']}")
    print("=" * 70 + "\n")
