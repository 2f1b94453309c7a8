"""Shared fixtures: a small synthetic table shaped like the borough dataset."""

import pytest
import numpy as np
import pandas as pd


def make_borough_frame(n_rows: int = 120, n_missing_response: int = 20, seed: int = 0) -> pd.DataFrame:
    """
    Build a raw table with the borough CSV columns.

    ``mean_salary`` and ``recycling_pct`` are stored as text, and the
    unparseable tokens only appear on rows without a response so that every
    retained row has numeric predictors.
    """
    rng = np.random.default_rng(seed)

    median_salary = rng.normal(30000, 4000, n_rows)
    mean_salary = median_salary * rng.normal(1.15, 0.03, n_rows)
    recycling_pct = rng.uniform(15, 50, n_rows)
    population_size = rng.normal(250000, 60000, n_rows)
    number_of_jobs = population_size * rng.uniform(0.4, 0.9, n_rows)
    area_size = rng.uniform(1500, 15000, n_rows)
    no_of_houses = population_size / rng.normal(2.4, 0.1, n_rows)

    life_satisfaction = (
        7.3
        + 0.00002 * (median_salary - 30000)
        + 0.004 * (recycling_pct - 30)
        + rng.normal(0, 0.08, n_rows)
    )

    df = pd.DataFrame({
        'code': [f"E090000{i:02d}" for i in range(n_rows)],
        'area': [f"borough {i % 33}" for i in range(n_rows)],
        'date': [f"{1999 + i % 20}-12-01" for i in range(n_rows)],
        'median_salary': median_salary.round(0),
        'life_satisfaction': life_satisfaction.round(2),
        'mean_salary': mean_salary.round(0).astype(int).astype(str),
        'recycling_pct': recycling_pct.round(0).astype(int).astype(str),
        'population_size': population_size.round(0),
        'number_of_jobs': number_of_jobs.round(0),
        'area_size': area_size.round(0),
        'no_of_houses': no_of_houses.round(0),
        'borough_flag': 1,
    })

    missing = np.arange(n_rows - n_missing_response, n_rows)
    df.loc[missing, 'life_satisfaction'] = np.nan
    if len(missing) >= 2:
        df.loc[missing[0], 'mean_salary'] = '#'
        df.loc[missing[1], 'recycling_pct'] = 'na'

    return df


@pytest.fixture
def raw_frame():
    """Raw borough-like table: 120 rows, 100 with a response."""
    return make_borough_frame()


@pytest.fixture
def fast_config():
    """Configuration with a small forest so the tests stay quick."""
    return {
        'preprocessing': {'train_split': 0.7, 'random_state': 1, 'standardize_on': 'full'},
        'cv': {'n_folds': 5, 'random_state': 1},
        'models': {
            'knn': {'k_min': 1, 'k_max': 30},
            'elastic_net': {'max_iter': 5000},
            'pcr': {'max_components': 7, 'tolerance': 0.0},
            'random_forest': {'n_estimators': 60, 'random_state': 1},
        },
    }
