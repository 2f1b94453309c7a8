"""
Test Suite for Preprocessing Module
=====================================

Tests for the BoroughPreprocessor class and the split/pipeline functions.
"""

import pytest
import numpy as np
import pandas as pd
import tempfile
import os

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from london_satisfaction.preprocessing import (
    BoroughPreprocessor,
    coerce_numeric,
    preprocess_pipeline,
    train_test_indices,
)
from london_satisfaction.data_loader import PREDICTOR_COLUMNS


class TestCoerceNumeric:
    """Tests for text-to-number coercion."""

    def test_bad_tokens_become_missing(self):
        df = pd.DataFrame({'mean_salary': ['31000', '#', '29500', '-'], 'other': list('abcd')})
        result = coerce_numeric(df, ['mean_salary'])

        assert result['mean_salary'].dtype.kind == 'f'
        assert result['mean_salary'].isna().tolist() == [False, True, False, True]
        assert result['mean_salary'].iloc[0] == 31000

    def test_input_not_modified(self):
        df = pd.DataFrame({'recycling_pct': ['12', 'na']})
        coerce_numeric(df, ['recycling_pct'])
        assert df['recycling_pct'].tolist() == ['12', 'na']

    def test_missing_column_ignored(self):
        df = pd.DataFrame({'a': [1, 2]})
        result = coerce_numeric(df, ['not_there'])
        pd.testing.assert_frame_equal(result, df)


class TestBoroughPreprocessor:
    """Tests for BoroughPreprocessor class."""

    @pytest.fixture
    def preprocessor(self):
        """Create a preprocessor instance."""
        return BoroughPreprocessor()

    def test_init(self, preprocessor):
        """Test preprocessor defaults."""
        assert preprocessor.response == 'life_satisfaction'
        assert preprocessor.numeric_columns == ['mean_salary', 'recycling_pct']
        assert preprocessor.drop_columns == ['code', 'area', 'date', 'borough_flag']
        assert preprocessor._is_fitted == False

    def test_clean_drops_missing_response_only(self, preprocessor, raw_frame):
        data = preprocessor.clean(raw_frame)

        assert len(data) == raw_frame['life_satisfaction'].notna().sum()
        assert data['life_satisfaction'].notna().all()
        assert list(data.index) == list(range(len(data)))

    def test_clean_keeps_rows_with_missing_predictors(self, preprocessor):
        df = pd.DataFrame({
            'code': ['a', 'b', 'c'],
            'area': ['x', 'y', 'z'],
            'date': ['2000', '2001', '2002'],
            'borough_flag': [1, 1, 1],
            'mean_salary': ['100', '#', '300'],
            'recycling_pct': ['na', '20', '30'],
            'life_satisfaction': [7.1, 7.2, np.nan],
        })
        data = preprocessor.clean(df)

        assert len(data) == 2
        assert np.isnan(data.loc[1, 'mean_salary'])
        assert np.isnan(data.loc[0, 'recycling_pct'])

    def test_clean_drops_identifiers(self, preprocessor, raw_frame):
        data = preprocessor.clean(raw_frame)

        for col in ['code', 'area', 'date', 'borough_flag']:
            assert col not in data.columns
        assert sorted(data.columns) == sorted(PREDICTOR_COLUMNS + ['life_satisfaction'])

    def test_clean_requires_response(self, preprocessor, raw_frame):
        with pytest.raises(ValueError, match="Response column"):
            preprocessor.clean(raw_frame.drop(columns=['life_satisfaction']))

    def test_split_xy(self, preprocessor, raw_frame):
        X, y = preprocessor.split_xy(preprocessor.clean(raw_frame))

        assert 'life_satisfaction' not in X.columns
        assert X.shape[1] == 7
        assert y.name == 'life_satisfaction'

    def test_transform_before_fit(self, preprocessor, raw_frame):
        """Test that transform raises error before fit."""
        X, _ = preprocessor.split_xy(preprocessor.clean(raw_frame))
        with pytest.raises(ValueError, match="must be fitted"):
            preprocessor.transform(X)

    def test_standardized_moments(self, preprocessor, raw_frame):
        """Every column has sample mean 0 and sample standard deviation 1."""
        X, _ = preprocessor.split_xy(preprocessor.clean(raw_frame))
        Z = preprocessor.fit_transform(X)

        np.testing.assert_allclose(Z.mean().values, 0.0, atol=1e-10)
        np.testing.assert_allclose(Z.std(ddof=1).values, 1.0, atol=1e-10)

    def test_standardize_formula(self, preprocessor):
        X = pd.DataFrame({'a': [1.0, 2.0, 3.0, 6.0]})
        Z = preprocessor.fit_transform(X)

        expected = (X['a'] - X['a'].mean()) / X['a'].std(ddof=1)
        np.testing.assert_array_almost_equal(Z['a'].values, expected.values)

    def test_constant_column_left_unscaled(self, preprocessor):
        X = pd.DataFrame({'a': [1.0, 2.0, 3.0], 'b': [5.0, 5.0, 5.0]})
        Z = preprocessor.fit_transform(X)

        assert np.all(Z['b'] == 0.0)
        assert np.isfinite(Z.values).all()

    def test_inverse_transform(self, preprocessor, raw_frame):
        """Test inverse transform recovers original scale."""
        X, _ = preprocessor.split_xy(preprocessor.clean(raw_frame))
        recovered = preprocessor.inverse_transform(preprocessor.fit_transform(X))

        np.testing.assert_array_almost_equal(recovered.values, X.values, decimal=6)

    def test_save_load(self, preprocessor, raw_frame):
        """Test saving and loading preprocessor."""
        X, _ = preprocessor.split_xy(preprocessor.clean(raw_frame))
        preprocessor.fit(X)

        with tempfile.NamedTemporaryFile(suffix='.joblib', delete=False) as f:
            temp_path = f.name

        try:
            preprocessor.save(temp_path)
            loaded = BoroughPreprocessor.load(temp_path)

            assert loaded.response == preprocessor.response
            assert loaded.feature_columns == preprocessor.feature_columns
            assert loaded._is_fitted == True
            pd.testing.assert_frame_equal(loaded.transform(X), preprocessor.transform(X))
        finally:
            os.unlink(temp_path)


class TestTrainTestIndices:
    """Tests for the random row partition."""

    @pytest.mark.parametrize("n", [1, 10, 99, 100, 267])
    def test_sizes(self, n):
        train_idx, test_idx = train_test_indices(n, 0.7, random_state=3)

        assert len(train_idx) == round(0.7 * n)
        assert len(test_idx) == n - round(0.7 * n)

    def test_disjoint_and_complete(self):
        train_idx, test_idx = train_test_indices(267, 0.7, random_state=1)

        assert len(np.intersect1d(train_idx, test_idx)) == 0
        np.testing.assert_array_equal(
            np.sort(np.concatenate([train_idx, test_idx])), np.arange(267)
        )

    def test_ascending_order(self):
        train_idx, test_idx = train_test_indices(100, 0.7, random_state=5)

        assert np.all(np.diff(train_idx) > 0)
        assert np.all(np.diff(test_idx) > 0)

    def test_reproducible(self):
        first = train_test_indices(267, 0.7, random_state=11)
        second = train_test_indices(267, 0.7, random_state=11)

        np.testing.assert_array_equal(first[0], second[0])
        np.testing.assert_array_equal(first[1], second[1])

    def test_different_seed_changes_split(self):
        a, _ = train_test_indices(267, 0.7, random_state=1)
        b, _ = train_test_indices(267, 0.7, random_state=2)
        assert not np.array_equal(a, b)

    def test_empty_dataset(self):
        with pytest.raises(ValueError, match="empty"):
            train_test_indices(0)


class TestPreprocessPipeline:
    """Tests for the preprocess_pipeline function."""

    def test_pipeline_returns_expected_keys(self, raw_frame):
        """Test that pipeline returns all expected keys."""
        result = preprocess_pipeline(raw_frame, random_state=1)

        expected_keys = [
            'X', 'y', 'X_train', 'X_test', 'y_train', 'y_test',
            'train_idx', 'test_idx', 'preprocessor', 'feature_names', 'data_processed'
        ]

        for key in expected_keys:
            assert key in result, f"Missing key: {key}"

    def test_pipeline_shapes(self, raw_frame):
        """100 retained rows split into 70 training and 30 test rows."""
        result = preprocess_pipeline(raw_frame, train_split=0.7, random_state=1)

        assert result['X'].shape == (100, 7)
        assert result['X_train'].shape == (70, 7)
        assert result['X_test'].shape == (30, 7)
        assert len(result['y_train']) == 70
        assert len(result['y_test']) == 30

    def test_full_standardization(self, raw_frame):
        result = preprocess_pipeline(raw_frame, random_state=1, standardize_on='full')

        np.testing.assert_allclose(result['X'].mean().values, 0.0, atol=1e-10)
        np.testing.assert_allclose(result['X'].std(ddof=1).values, 1.0, atol=1e-10)

    def test_train_standardization(self, raw_frame):
        result = preprocess_pipeline(raw_frame, random_state=1, standardize_on='train')

        np.testing.assert_allclose(result['X_train'].mean().values, 0.0, atol=1e-10)
        np.testing.assert_allclose(result['X_train'].std(ddof=1).values, 1.0, atol=1e-10)

    def test_invalid_standardize_on(self, raw_frame):
        with pytest.raises(ValueError, match="standardize_on"):
            preprocess_pipeline(raw_frame, standardize_on='test')

    def test_response_untouched(self, raw_frame):
        result = preprocess_pipeline(raw_frame, random_state=1)
        expected = raw_frame['life_satisfaction'].dropna().values

        np.testing.assert_array_almost_equal(result['y'].values, expected)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
