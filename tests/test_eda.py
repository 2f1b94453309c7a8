"""
Test Suite for EDA Module
=========================

Tests for the response-centred correlation, distribution and box plots.
"""

import pytest
import numpy as np
import matplotlib.pyplot as plt

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from london_satisfaction.eda import (
    generate_eda_report,
    plot_box_plots,
    plot_correlation_matrix,
    response_correlations,
)
from london_satisfaction.preprocessing import preprocess_pipeline


@pytest.fixture
def cleaned(raw_frame):
    """Cleaned, unscaled predictors and response."""
    return preprocess_pipeline(raw_frame, random_state=1)['data_processed']


class TestResponseCorrelations:
    """Tests for response_correlations."""

    def test_sorted_by_strength(self, cleaned):
        """Test predictors come strongest first and exclude the response."""
        corr = response_correlations(cleaned)

        assert 'life_satisfaction' not in corr.index
        assert len(corr) == 7
        assert corr.abs().is_monotonic_decreasing

    def test_salary_leads(self, cleaned):
        """Test the salary columns that drive the synthetic response rank first."""
        corr = response_correlations(cleaned)
        assert corr.index[0] in ('median_salary', 'mean_salary')

    def test_missing_response(self, cleaned):
        """Test a table without the response raises."""
        with pytest.raises(ValueError, match="life_satisfaction"):
            response_correlations(cleaned.drop(columns=['life_satisfaction']))


class TestPlots:
    """Tests for the individual figures."""

    def test_correlation_matrix_response_first(self, cleaned):
        """Test the heatmap starts with the response then follows |r| order."""
        fig, corr = plot_correlation_matrix(cleaned)

        expected = ['life_satisfaction'] + response_correlations(cleaned).index.tolist()
        assert corr.columns.tolist() == expected
        np.testing.assert_allclose(np.diag(corr.values), 1.0)
        plt.close(fig)

    def test_box_plot_order(self, cleaned):
        """Test the box plot rows follow the response-first order."""
        fig = plot_box_plots(cleaned)

        labels = [t.get_text() for t in fig.axes[0].get_yticklabels()]
        assert labels[0] == 'life_satisfaction'
        assert sorted(labels) == sorted(cleaned.columns)
        plt.close(fig)


class TestGenerateEdaReport:
    """Tests for generate_eda_report."""

    def test_figures_written(self, cleaned, tmp_path):
        """Test the three EDA figures are saved."""
        report = generate_eda_report(cleaned, output_dir=str(tmp_path))

        assert report['figures'] == ['01_correlation_matrix.png', '02_distributions.png', '03_box_plots.png']
        for name in report['figures']:
            assert (tmp_path / name).exists()

    def test_statistics(self, cleaned, tmp_path):
        """Test per-column statistics and the correlation with the response."""
        data = cleaned.copy()
        data.loc[0, 'area_size'] = data['area_size'].mean() + 100 * data['area_size'].std()

        report = generate_eda_report(data, output_dir=str(tmp_path))

        assert set(report['response_correlations']) == set(data.columns) - {'life_satisfaction'}
        assert report['statistics']['area_size']['n_beyond_cutoff'] == 1
        assert report['statistics']['life_satisfaction']['median'] == pytest.approx(
            data['life_satisfaction'].median())


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
