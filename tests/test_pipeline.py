"""
End-to-end tests for main.py
============================
"""

import pytest
import yaml

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import main


@pytest.fixture
def workspace(raw_frame, fast_config, tmp_path):
    """CSV and config files with every output directed into tmp_path."""
    data_path = tmp_path / "boroughs.csv"
    raw_frame.to_csv(data_path, index=False)

    config = dict(fast_config)
    config['output'] = {
        'reports_path': str(tmp_path / "reports"),
        'figures_path': str(tmp_path / "reports" / "figures"),
        'models_path': str(tmp_path / "models"),
        'save_models': True,
    }
    config['logging'] = {'level': 'INFO', 'log_dir': str(tmp_path / "logs")}

    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.safe_dump(config))
    return data_path, config_path, tmp_path


def test_full_pipeline(workspace):
    data_path, config_path, tmp_path = workspace

    results = main.run_full_pipeline(str(data_path), str(config_path))

    assert len(results['preprocessing']['y']) == 100
    assert list(results['models']) == ['KNN', 'Elastic Net', 'PCR', 'Random Forest']
    assert (tmp_path / "reports" / "report.md").exists()
    assert (tmp_path / "reports" / "figures" / "01_correlation_matrix.png").exists()
    assert (tmp_path / "reports" / "metrics" / "evaluation_metrics.json").exists()
    assert (tmp_path / "models" / "preprocessor.joblib").exists()
    assert (tmp_path / "models" / "random_forest.joblib").exists()
    assert '](figures/01_correlation_matrix.png)' in results['report']['report']


def test_figures_follow_figures_path(raw_frame, fast_config, tmp_path):
    """Every figure lands in output.figures_path when it is outside reports_path."""
    data_path = tmp_path / "boroughs.csv"
    raw_frame.to_csv(data_path, index=False)

    config = dict(fast_config)
    config['output'] = {
        'reports_path': str(tmp_path / "rep"),
        'figures_path': str(tmp_path / "figs"),
        'save_models': False,
    }
    config['logging'] = {'level': 'INFO', 'log_dir': str(tmp_path / "logs")}
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.safe_dump(config))

    results = main.run_full_pipeline(str(data_path), str(config_path))

    figs = tmp_path / "figs"
    for name in ['01_correlation_matrix.png', 'knn_cv_rmse.png', 'rf_importance.png',
                 'eval_mse_comparison.png', 'eval_actual_vs_predicted.png']:
        assert (figs / name).exists()
    assert not (tmp_path / "rep" / "figures").exists()
    assert '](../figs/knn_cv_rmse.png)' in results['report']['report']


def test_test_mse_reproducible(workspace):
    data_path, config_path, _ = workspace

    first = main.run_full_pipeline(str(data_path), str(config_path))
    second = main.run_full_pipeline(str(data_path), str(config_path))

    for name, metrics in first['evaluation']['metrics']['per_model'].items():
        assert metrics['mse'] == pytest.approx(
            second['evaluation']['metrics']['per_model'][name]['mse'])


def test_single_phase_preprocess(workspace):
    data_path, config_path, _ = workspace

    result = main.run_single_phase('preprocess', str(data_path), str(config_path))
    assert result['X_train'].shape == (70, 7)


def test_unknown_phase(workspace):
    data_path, config_path, _ = workspace

    with pytest.raises(ValueError, match="Unknown phase"):
        main.run_single_phase('predict', str(data_path), str(config_path))


def test_cli_missing_data(tmp_path, monkeypatch):
    monkeypatch.setattr(sys, 'argv', ['main.py', '--data', str(tmp_path / "none.csv")])
    assert main.main() == 1


def test_cli_runs(workspace, monkeypatch):
    data_path, config_path, _ = workspace

    monkeypatch.setattr(sys, 'argv', [
        'main.py', '--data', str(data_path), '--config', str(config_path), '--phase', 'evaluate'
    ])
    assert main.main() == 0
