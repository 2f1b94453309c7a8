"""
Data Preprocessing Module
=========================

Turns the raw borough table into a standardized predictor matrix and a
response vector, and splits the rows into training and test sets.

Functions:
    - coerce_numeric: Convert text columns to numbers (bad tokens become NaN)
    - train_test_indices: Seeded random 70/30 row partition
    - preprocess_pipeline: Clean, standardize and split in one call
"""

import logging
from typing import Dict, Any, Tuple, Optional, List, Sequence

import pandas as pd
import numpy as np
import joblib

from .data_loader import IDENTIFIER_COLUMNS, RESPONSE_COLUMN

logger = logging.getLogger(__name__)

NUMERIC_COERCE_COLUMNS = ['mean_salary', 'recycling_pct']


def coerce_numeric(df: pd.DataFrame, columns: Sequence[str]) -> pd.DataFrame:
    """
    Convert columns stored as text into numeric columns.

    Tokens that cannot be parsed (``'#'``, ``'na'``, ``'-'`` ...) become NaN.
    No error is raised for them.

    Args:
        df: Input DataFrame (not modified)
        columns: Columns to coerce

    Returns:
        Copy of ``df`` with the given columns converted
    """
    df = df.copy()
    for col in columns:
        if col not in df.columns:
            continue
        before = df[col].isna().sum()
        df[col] = pd.to_numeric(df[col], errors='coerce')
        coerced = int(df[col].isna().sum() - before)
        if coerced > 0:
            logger.warning(f"Column '{col}': {coerced} non-numeric values set to missing")
    return df


class BoroughPreprocessor:
    """
    Preprocessing for the borough yearly variables table.

    Cleans the raw table (numeric coercion, response filtering, identifier
    removal) and standardizes predictors to zero mean and unit sample
    standard deviation.
    """

    def __init__(
        self,
        response: str = RESPONSE_COLUMN,
        numeric_columns: Optional[List[str]] = None,
        drop_columns: Optional[List[str]] = None
    ):
        """
        Initialize the preprocessor.

        Args:
            response: Name of the response column
            numeric_columns: Text columns to coerce to numeric
            drop_columns: Identifier/metadata columns to discard
        """
        self.response = response
        self.numeric_columns = list(numeric_columns) if numeric_columns is not None else list(NUMERIC_COERCE_COLUMNS)
        self.drop_columns = list(drop_columns) if drop_columns is not None else list(IDENTIFIER_COLUMNS)

        self.feature_columns: Optional[List[str]] = None
        self.means_: Optional[pd.Series] = None
        self.scales_: Optional[pd.Series] = None
        self._is_fitted = False

    def clean(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Coerce text columns, drop rows without a response and drop identifiers.

        Rows are removed only when the response is missing. Missing predictor
        values are kept as NaN.

        Args:
            df: Raw DataFrame

        Returns:
            Cleaned DataFrame with a fresh 0..n-1 index
        """
        if self.response not in df.columns:
            raise ValueError(f"Response column '{self.response}' not found in data")

        data = coerce_numeric(df, self.numeric_columns)

        n_before = len(data)
        data = data[data[self.response].notna()]
        logger.info(f"Dropped {n_before - len(data)} rows with missing '{self.response}'; {len(data)} retained")

        data = data.drop(columns=[c for c in self.drop_columns if c in data.columns])
        return data.reset_index(drop=True)

    def split_xy(self, data: pd.DataFrame) -> Tuple[pd.DataFrame, pd.Series]:
        """Separate the response column from the predictor columns."""
        y = data[self.response].astype(float)
        X = data.drop(columns=[self.response])
        return X, y

    def fit(self, X: pd.DataFrame) -> 'BoroughPreprocessor':
        """
        Learn per-column mean and sample standard deviation.

        Args:
            X: Predictor DataFrame

        Returns:
            Self for method chaining
        """
        self.feature_columns = X.columns.tolist()
        self.means_ = X.mean()
        scales = X.std(ddof=1)

        constant = scales.index[(scales == 0) | scales.isna()].tolist()
        if constant:
            logger.warning(f"Columns with zero variance left unscaled: {constant}")
            scales[constant] = 1.0

        self.scales_ = scales
        self._is_fitted = True
        logger.info(f"Fitted standardization on {len(X)} rows × {len(self.feature_columns)} predictors")
        return self

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        """
        Standardize predictors as ``(x - mean) / sd``.

        Args:
            X: Predictor DataFrame with the fitted columns

        Returns:
            Standardized DataFrame (same index and columns)
        """
        if not self._is_fitted:
            raise ValueError("Preprocessor must be fitted before transform. Call fit() first.")

        X = X[self.feature_columns]
        return (X - self.means_) / self.scales_

    def fit_transform(self, X: pd.DataFrame) -> pd.DataFrame:
        """Fit and transform in one step."""
        self.fit(X)
        return self.transform(X)

    def inverse_transform(self, X: pd.DataFrame) -> pd.DataFrame:
        """Convert standardized predictors back to their original units."""
        if not self._is_fitted:
            raise ValueError("Preprocessor must be fitted before inverse_transform.")
        return X[self.feature_columns] * self.scales_ + self.means_

    def save(self, filepath: str) -> None:
        """
        Save the preprocessor state to disk.

        Args:
            filepath: Path to save the preprocessor
        """
        state = {
            'response': self.response,
            'numeric_columns': self.numeric_columns,
            'drop_columns': self.drop_columns,
            'feature_columns': self.feature_columns,
            'means_': self.means_,
            'scales_': self.scales_,
            '_is_fitted': self._is_fitted
        }
        joblib.dump(state, filepath)
        logger.info(f"Preprocessor saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'BoroughPreprocessor':
        """
        Load a preprocessor from disk.

        Args:
            filepath: Path to the saved preprocessor

        Returns:
            Loaded BoroughPreprocessor instance
        """
        state = joblib.load(filepath)

        preprocessor = cls(
            response=state['response'],
            numeric_columns=state['numeric_columns'],
            drop_columns=state['drop_columns']
        )
        preprocessor.feature_columns = state['feature_columns']
        preprocessor.means_ = state['means_']
        preprocessor.scales_ = state['scales_']
        preprocessor._is_fitted = state['_is_fitted']

        logger.info(f"Preprocessor loaded from {filepath}")
        return preprocessor


def train_test_indices(
    n_samples: int,
    train_split: float = 0.7,
    random_state: Optional[int] = 42
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Randomly partition row positions into training and test sets.

    The training set has ``round(train_split * n_samples)`` rows drawn without
    replacement; both sets are returned in ascending order.

    Args:
        n_samples: Number of rows to partition
        train_split: Fraction of rows used for training
        random_state: Seed for reproducibility

    Returns:
        Tuple of (train_idx, test_idx)
    """
    if n_samples <= 0:
        raise ValueError("Cannot split an empty dataset")
    if not 0 < train_split <= 1:
        raise ValueError(f"train_split must be in (0, 1], got {train_split}")

    n_train = int(round(train_split * n_samples))
    rng = np.random.default_rng(random_state)

    train_idx = np.sort(rng.choice(n_samples, size=n_train, replace=False))
    test_idx = np.setdiff1d(np.arange(n_samples), train_idx)

    logger.info(f"Train/Test split: {len(train_idx)} train samples, {len(test_idx)} test samples")
    return train_idx, test_idx


def preprocess_pipeline(
    df: pd.DataFrame,
    train_split: float = 0.7,
    random_state: Optional[int] = 42,
    standardize_on: str = 'full',
    response: str = RESPONSE_COLUMN,
    numeric_columns: Optional[List[str]] = None,
    drop_columns: Optional[List[str]] = None,
    save_preprocessor: Optional[str] = None
) -> Dict[str, Any]:
    """
    Complete preprocessing pipeline for the borough dataset.

    Args:
        df: Raw DataFrame
        train_split: Train/test split ratio
        random_state: Seed for the split
        standardize_on: 'full' to compute scaling statistics on every retained
            row before the split, 'train' to use the training rows only
        response: Name of the response column
        numeric_columns: Text columns to coerce to numeric
        drop_columns: Identifier columns to discard
        save_preprocessor: Path to save the fitted preprocessor

    Returns:
        Dictionary containing:
            - X, y: Full standardized predictors and response
            - X_train, X_test, y_train, y_test: Split datasets
            - train_idx, test_idx: Row positions of each set
            - preprocessor: Fitted BoroughPreprocessor
            - feature_names: Predictor names
            - data_processed: Cleaned, unscaled table (predictors + response)
    """
    if standardize_on not in ('full', 'train'):
        raise ValueError(f"standardize_on must be 'full' or 'train', got '{standardize_on}'")

    logger.info("=" * 60)
    logger.info("STARTING DATA PREPROCESSING")
    logger.info("=" * 60)

    preprocessor = BoroughPreprocessor(
        response=response,
        numeric_columns=numeric_columns,
        drop_columns=drop_columns
    )

    data = preprocessor.clean(df)
    X_raw, y = preprocessor.split_xy(data)

    n_missing = int(X_raw.isna().sum().sum())
    if n_missing > 0:
        logger.warning(f"{n_missing} missing predictor values remain after cleaning")

    train_idx, test_idx = train_test_indices(len(data), train_split, random_state)

    logger.info(f"Standardizing predictors on: {standardize_on}")
    if standardize_on == 'full':
        preprocessor.fit(X_raw)
    else:
        preprocessor.fit(X_raw.iloc[train_idx])
    X = preprocessor.transform(X_raw)

    if save_preprocessor:
        preprocessor.save(save_preprocessor)

    result = {
        'X': X,
        'y': y,
        'X_train': X.iloc[train_idx],
        'X_test': X.iloc[test_idx],
        'y_train': y.iloc[train_idx],
        'y_test': y.iloc[test_idx],
        'train_idx': train_idx,
        'test_idx': test_idx,
        'preprocessor': preprocessor,
        'feature_names': preprocessor.feature_columns,
        'data_processed': data,
        'standardize_on': standardize_on,
        'train_split': train_split
    }

    logger.info("=" * 60)
    logger.info("PREPROCESSING COMPLETE")
    logger.info(f"  Retained rows: {len(data)}")
    logger.info(f"  Training samples: {len(train_idx)}")
    logger.info(f"  Test samples: {len(test_idx)}")
    logger.info(f"  Predictors: {X.shape[1]}")
    logger.info("=" * 60)

    return result


def print_preprocessing_summary(result: Dict[str, Any]) -> None:
    """
    Print a summary of the preprocessing results.

    Args:
        result: Dictionary from preprocess_pipeline
    """
    print("\n" + "=" * 50)
    print("PREPROCESSING SUMMARY")
    print("=" * 50)
    print(f"Retained rows: {len(result['y'])}")
    print(f"Training samples: {result['X_train'].shape[0]}")
    print(f"Test samples: {result['X_test'].shape[0]}")
    print(f"Predictors: {', '.join(result['feature_names'])}")
    print(f"\nResponse: {result['preprocessor'].response}")
    print(f"Standardized on: {result['standardize_on']}")
    print(f"Train/Test split: {result['train_split']}")
    print("=" * 50 + "\n")
