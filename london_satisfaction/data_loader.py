"""
Data Loader Module
==================

Handles CSV ingestion, validation, and basic data quality checks for the
London borough yearly variables dataset.

Functions:
    - load_config: Load YAML configuration file
    - load_data: Load CSV data and check the expected columns
    - count_unparseable: Count text cells that will not parse as numbers
    - validate_data: Check data quality constraints
    - get_data_summary: Coverage and basic statistics
"""

import logging
from pathlib import Path
from typing import Dict, Any, Optional, Tuple, List

import pandas as pd
import numpy as np
import yaml

logger = logging.getLogger(__name__)

IDENTIFIER_COLUMNS = ['code', 'area', 'date', 'borough_flag']

PREDICTOR_COLUMNS = [
    'mean_salary',
    'median_salary',
    'recycling_pct',
    'population_size',
    'number_of_jobs',
    'area_size',
    'no_of_houses',
]

RESPONSE_COLUMN = 'life_satisfaction'

EXPECTED_COLUMNS = IDENTIFIER_COLUMNS + PREDICTOR_COLUMNS + [RESPONSE_COLUMN]

# Predictor values further than this many SDs from the mean are reported
OUTLIER_SD = 4


def load_config(config_path: str = "config/config.yaml") -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to the configuration file

    Returns:
        Dictionary containing configuration parameters

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is malformed
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f) or {}

    logger.info(f"Loaded configuration from {config_path}")
    return config


def load_data(
    file_path: str,
    expected_columns: Optional[List[str]] = None
) -> pd.DataFrame:
    """
    Load the borough CSV file.

    Columns are read with pandas' default type inference, so a column such as
    ``mean_salary`` that holds tokens like ``'#'`` loads as text and is
    coerced later by the preprocessor.

    Args:
        file_path: Path to the CSV file
        expected_columns: Column names that must be present (default: EXPECTED_COLUMNS)

    Returns:
        DataFrame containing the loaded data

    Raises:
        FileNotFoundError: If data file doesn't exist
        ValueError: If required columns are missing
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Data file not found: {file_path}")

    df = pd.read_csv(file_path)
    logger.info(f"Loaded data from {file_path}: {df.shape[0]} rows × {df.shape[1]} columns")

    if expected_columns is None:
        expected_columns = EXPECTED_COLUMNS

    missing = [col for col in expected_columns if col not in df.columns]
    if missing:
        raise ValueError(
            f"Missing required columns: {missing}. "
            f"Columns found: {list(df.columns)}"
        )

    return df


def _as_numbers(series: pd.Series) -> pd.Series:
    return pd.to_numeric(series, errors='coerce')


def count_unparseable(df: pd.DataFrame, columns: Optional[List[str]] = None) -> Dict[str, int]:
    """
    Count cells that hold text which is not a number (e.g. ``'#'``).

    Empty cells are not counted; they are already missing.

    Args:
        df: Raw borough table
        columns: Columns to inspect (default: the predictors present in df)

    Returns:
        Count per column, only for columns with at least one such cell
    """
    if columns is None:
        columns = [col for col in PREDICTOR_COLUMNS if col in df.columns]

    counts = {}
    for col in columns:
        bad = int((df[col].notna() & _as_numbers(df[col]).isna()).sum())
        if bad:
            counts[col] = bad
    return counts


def validate_data(
    df: pd.DataFrame,
    response: str = RESPONSE_COLUMN,
    strict: bool = False
) -> Tuple[bool, Dict[str, Any]]:
    """
    Check the raw borough table before preprocessing.

    Checks:
        - Required columns are present
        - Predictor cells that will not parse as numbers
        - Missing values per column, and rows without a response
        - Missing predictors on rows that keep their response
        - Repeated (code, date) observations
        - Predictor values beyond OUTLIER_SD standard deviations

    Args:
        df: Raw DataFrame as returned by load_data
        response: Name of the response column
        strict: If True, raise errors on validation failure

    Returns:
        Tuple of (is_valid, validation_report)
    """
    report = {
        "total_rows": len(df),
        "total_columns": len(df.columns),
        "column_names": list(df.columns),
        "issues": []
    }

    def flag(issue: str) -> None:
        report["issues"].append(issue)
        logger.warning(issue)

    missing_cols = [col for col in EXPECTED_COLUMNS if col not in df.columns]
    if missing_cols:
        flag(f"Missing columns: {missing_cols}")

    predictors = [col for col in PREDICTOR_COLUMNS if col in df.columns]
    numbers = df[predictors].apply(_as_numbers)

    unparseable = count_unparseable(df, predictors)
    report["unparseable_by_column"] = unparseable
    if unparseable:
        flag(f"Non-numeric predictor values (become missing): {unparseable}")

    missing_counts = df.isnull().sum()
    report["missing_by_column"] = {
        col: int(n) for col, n in missing_counts[missing_counts > 0].items()
    }

    if response in df.columns:
        has_response = df[response].notna()
        report["rows_with_response"] = int(has_response.sum())
        if not has_response.all():
            flag(f"{int((~has_response).sum())} rows have no {response} and will be dropped")

        # These rows are kept by preprocessing, so a gap here reaches the models
        gaps = numbers[has_response].isna().sum()
        gaps = {col: int(n) for col, n in gaps[gaps > 0].items()}
        report["predictor_gaps_with_response"] = gaps
        if gaps:
            flag(f"Missing predictors on rows with a response: {gaps}")

    key = [col for col in ('code', 'date') if col in df.columns]
    if key:
        repeated = int(df.duplicated(subset=key).sum())
        report["repeated_observations"] = repeated
        if repeated:
            flag(f"Repeated ({', '.join(key)}) observations: {repeated}")

    outliers = {}
    for col in predictors:
        values = numbers[col]
        z = (values - values.mean()).abs() / values.std()
        n_out = int((z > OUTLIER_SD).sum())
        if n_out:
            outliers[col] = n_out
    report["outliers_by_column"] = outliers
    if outliers:
        flag(f"Predictor values beyond {OUTLIER_SD:g} SD: {outliers}")

    is_valid = len(report["issues"]) == 0
    report["is_valid"] = is_valid

    if strict and not is_valid:
        raise ValueError(f"Data validation failed: {report['issues']}")

    return is_valid, report


def get_data_summary(df: pd.DataFrame, response: str = RESPONSE_COLUMN) -> Dict[str, Any]:
    """
    Summarise what the table covers: areas, years and response coverage,
    plus statistics for the numeric columns.

    Args:
        df: DataFrame to summarize
        response: Name of the response column

    Returns:
        Dictionary containing summary statistics
    """
    summary = {
        "shape": df.shape,
        "columns": list(df.columns),
        "dtypes": df.dtypes.astype(str).to_dict(),
        "statistics": {}
    }

    if 'area' in df.columns:
        summary["n_areas"] = int(df['area'].nunique())
    if 'date' in df.columns:
        years = pd.to_datetime(df['date'], errors='coerce').dt.year.dropna()
        if not years.empty:
            summary["years"] = (int(years.min()), int(years.max()))
    if response in df.columns:
        summary["rows_with_response"] = int(df[response].notna().sum())

    for col in df.select_dtypes(include=[np.number]).columns:
        summary["statistics"][col] = {
            "count": int(df[col].count()),
            "mean": float(df[col].mean()),
            "std": float(df[col].std()),
            "min": float(df[col].min()),
            "50%": float(df[col].quantile(0.50)),
            "max": float(df[col].max()),
        }

    return summary


def print_data_summary(df: pd.DataFrame, response: str = RESPONSE_COLUMN) -> None:
    """Print coverage and a per-column view of the borough table."""
    summary = get_data_summary(df, response)
    unparseable = count_unparseable(df)

    print("\n" + "=" * 60)
    print("DATASET SUMMARY")
    print("=" * 60)
    print(f"Shape: {df.shape[0]} rows × {df.shape[1]} columns")
    if "n_areas" in summary:
        print(f"Areas: {summary['n_areas']}")
    if "years" in summary:
        print(f"Years: {summary['years'][0]}-{summary['years'][1]}")
    if "rows_with_response" in summary:
        print(f"Rows with {response}: {summary['rows_with_response']} of {len(df)}")

    print(f"\n{'Column':<20} {'Role':<11} {'Missing':>8} {'Text':>6}")
    print("-" * 48)
    for col in [response] + PREDICTOR_COLUMNS:
        if col not in df.columns:
            continue
        role = "response" if col == response else "predictor"
        print(f"{col:<20} {role:<11} {int(df[col].isna().sum()):>8} {unparseable.get(col, 0):>6}")

    numeric = df[[c for c in PREDICTOR_COLUMNS + [response] if c in df.columns]].apply(_as_numbers)
    if not numeric.empty:
        print("\nStatistics (text cells treated as missing):")
        print("-" * 48)
        print(numeric.describe().T[['count', 'mean', 'std', 'min', 'max']].round(2).to_string())
    print("=" * 60 + "\n")
