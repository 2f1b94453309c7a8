"""
Test Suite for Evaluation Module
================================

Tests for test-set metrics, the MSE ranking and the evaluation outputs.
"""

import json

import pytest
import numpy as np
import pandas as pd

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from london_satisfaction.evaluation import calculate_metrics, evaluate_models, rank_models


class ConstantModel:
    """Stand-in trainer predicting a fixed value."""

    def __init__(self, value):
        self.value = value
        self.best_params_ = {'value': value}

    def predict(self, X):
        return np.full(len(X), self.value, dtype=float)


class TestRankModels:
    """Tests for rank_models."""

    def test_ascending(self):
        """Test models are ordered by increasing test MSE."""
        ranking = rank_models({'KNN': 0.03, 'Elastic Net': 0.01, 'PCR': 0.02, 'Random Forest': 0.015})

        assert ranking['model'].tolist() == ['Elastic Net', 'Random Forest', 'PCR', 'KNN']
        assert ranking['rank'].tolist() == [1, 2, 3, 4]
        assert ranking['test_mse'].is_monotonic_increasing

    def test_ties_keep_input_order(self):
        """Test equal MSE values keep their original order."""
        ranking = rank_models({'b': 1.0, 'a': 1.0, 'c': 0.5})
        assert ranking['model'].tolist() == ['c', 'b', 'a']


class TestCalculateMetrics:
    """Tests for calculate_metrics."""

    def test_values(self):
        """Test metric values for an exact and an offset prediction."""
        y_true = np.array([1.0, 2.0, 3.0, 4.0])
        metrics = calculate_metrics(y_true, {
            'perfect': y_true.copy(),
            'offset': y_true + 0.5,
        })

        assert metrics['per_model']['perfect']['mse'] == 0.0
        assert metrics['per_model']['offset']['mse'] == pytest.approx(0.25)
        assert metrics['per_model']['offset']['rmse'] == pytest.approx(0.5)
        assert metrics['per_model']['offset']['mae'] == pytest.approx(0.5)
        assert metrics['per_model']['offset']['mean_error'] == pytest.approx(-0.5)
        assert metrics['overall']['best_model'] == 'perfect'
        assert metrics['overall']['ranking'] == ['perfect', 'offset']
        assert metrics['overall']['n_samples'] == 4


class TestEvaluateModels:
    """Tests for evaluate_models."""

    @pytest.fixture
    def test_set(self):
        """Five test rows and two constant predictors."""
        X_test = pd.DataFrame({'a': np.arange(5.0)})
        y_test = pd.Series([7.0, 7.2, 7.4, 7.6, 7.8])
        trainers = {'low': ConstantModel(7.0), 'mid': ConstantModel(7.4)}
        return X_test, y_test, trainers

    def test_writes_outputs(self, test_set, tmp_path):
        """Test metrics file and figures land under the output directory."""
        X_test, y_test, trainers = test_set

        result = evaluate_models(trainers, X_test, y_test, output_dir=str(tmp_path))

        assert result['ranking']['model'].tolist() == ['mid', 'low']
        assert (tmp_path / "figures" / "eval_actual_vs_predicted.png").exists()
        assert (tmp_path / "figures" / "eval_mse_comparison.png").exists()

        with open(result['metrics_file']) as f:
            saved = json.load(f)
        assert saved['overall']['best_model'] == 'mid'
        assert saved['hyperparameters']['low'] == {'value': 7.0}

    def test_separate_figures_dir(self, test_set, tmp_path):
        """Test figures go to figures_dir while metrics stay under output_dir."""
        X_test, y_test, trainers = test_set

        result = evaluate_models(trainers, X_test, y_test,
                                 output_dir=str(tmp_path / "rep"),
                                 figures_dir=str(tmp_path / "figs"))

        assert (tmp_path / "figs" / "eval_mse_comparison.png").exists()
        assert (tmp_path / "figs" / "eval_actual_vs_predicted.png").exists()
        assert not (tmp_path / "rep" / "figures").exists()
        assert Path(result['metrics_file']).parent == tmp_path / "rep" / "metrics"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
