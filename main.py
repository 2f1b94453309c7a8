#!/usr/bin/env python3
"""
London Borough Life Satisfaction - Main Pipeline
=================================================

Fits four regression models to predict borough life satisfaction and
writes a comparison report.

Phases:
    1. EDA - Exploratory Data Analysis
    2. Preprocessing - Cleaning, standardization, train/test split
    3. Training - KNN, Elastic Net, PCR, Random Forest
    4. Evaluation - Test-set MSE and ranking
    5. Report - Diagnostic plots and report.md

Usage:
    # Run complete pipeline
    python main.py --data data/raw/housing_in_london_yearly_variables.csv

    # Run specific phase
    python main.py --data data/raw/housing_in_london_yearly_variables.csv --phase eda

    # Run with custom config
    python main.py --data data/raw/housing_in_london_yearly_variables.csv --config config/config.yaml
"""

import argparse
import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, Optional

import pandas as pd

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from london_satisfaction.data_loader import load_config, load_data, validate_data, print_data_summary
from london_satisfaction.eda import generate_eda_report, print_correlation_insights
from london_satisfaction.preprocessing import preprocess_pipeline, print_preprocessing_summary
from london_satisfaction.model import train_models, print_model_summary, BaseTrainer
from london_satisfaction.evaluation import evaluate_models, print_evaluation_report
from london_satisfaction.report import generate_report, print_report_summary


def setup_logging(level: str = "INFO", log_dir: Optional[str] = None) -> None:
    """Configure logging for the pipeline."""
    log_name = f'pipeline_{datetime.now().strftime("%Y%m%d_%H%M%S")}.log'
    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        log_name = str(Path(log_dir) / log_name)

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_name)
        ],
        force=True
    )


def run_eda(data_processed: pd.DataFrame, config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute Phase 1: Exploratory Data Analysis.

    Args:
        data_processed: Cleaned table (predictors + response, unscaled)
        config: Configuration dictionary

    Returns:
        EDA report dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 1: EXPLORATORY DATA ANALYSIS")
    print("=" * 70)

    output_dir = config.get('output', {}).get('figures_path', 'reports/figures/')
    response = config.get('data', {}).get('response', 'life_satisfaction')

    report = generate_eda_report(data_processed, output_dir=output_dir, response=response, show_plots=False)

    corr_df = pd.DataFrame(report["correlation_matrix"])
    print_correlation_insights(corr_df, response=response)

    print(f"\n✓ EDA complete. {len(report['figures'])} figures saved to {output_dir}")

    return report


def run_preprocessing(
    df: pd.DataFrame,
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute Phase 2: Data Preprocessing.

    Args:
        df: Raw data
        config: Configuration dictionary

    Returns:
        Preprocessing result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 2: DATA PREPROCESSING")
    print("=" * 70)

    data_config = config.get('data', {})
    prep_config = config.get('preprocessing', {})
    output_config = config.get('output', {})

    save_path = None
    if output_config.get('save_models', False):
        models_dir = Path(output_config.get('models_path', 'models/'))
        models_dir.mkdir(parents=True, exist_ok=True)
        save_path = str(models_dir / 'preprocessor.joblib')

    result = preprocess_pipeline(
        df,
        train_split=prep_config.get('train_split', 0.7),
        random_state=prep_config.get('random_state', 42),
        standardize_on=prep_config.get('standardize_on', 'full'),
        response=data_config.get('response', 'life_satisfaction'),
        numeric_columns=data_config.get('numeric_coerce_columns'),
        drop_columns=data_config.get('drop_columns'),
        save_preprocessor=save_path
    )

    print_preprocessing_summary(result)

    return result


def run_training(
    prep_result: Dict[str, Any],
    config: Dict[str, Any]
) -> Dict[str, BaseTrainer]:
    """
    Execute Phase 3: Model Training.

    Args:
        prep_result: Preprocessing result dictionary
        config: Configuration dictionary

    Returns:
        Fitted trainers keyed by method name
    """
    print("\n" + "=" * 70)
    print("PHASE 3: MODEL TRAINING")
    print("=" * 70)

    output_config = config.get('output', {})
    save_dir = output_config.get('models_path', 'models/') if output_config.get('save_models', False) else None

    trainers = train_models(
        prep_result['X_train'],
        prep_result['y_train'],
        config,
        save_dir=save_dir
    )

    print_model_summary(trainers)

    return trainers


def run_evaluation(
    trainers: Dict[str, BaseTrainer],
    prep_result: Dict[str, Any],
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute Phase 4: Model Evaluation.

    Args:
        trainers: Fitted trainers
        prep_result: Preprocessing result dictionary
        config: Configuration dictionary

    Returns:
        Evaluation result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 4: MODEL EVALUATION")
    print("=" * 70)

    output_config = config.get('output', {})

    result = evaluate_models(
        trainers,
        prep_result['X_test'],
        prep_result['y_test'],
        output_dir=output_config.get('reports_path', 'reports/'),
        figures_dir=output_config.get('figures_path', 'reports/figures/'),
        show_plots=False
    )

    print_evaluation_report(result['metrics'])

    return result


def run_report(
    trainers: Dict[str, BaseTrainer],
    eval_result: Dict[str, Any],
    prep_result: Dict[str, Any],
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute Phase 5: Report rendering.

    Args:
        trainers: Fitted trainers
        eval_result: Evaluation result dictionary
        prep_result: Preprocessing result dictionary
        config: Configuration dictionary

    Returns:
        Report result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 5: REPORT")
    print("=" * 70)

    output_config = config.get('output', {})

    result = generate_report(
        trainers,
        eval_result,
        prep_result,
        output_dir=output_config.get('reports_path', 'reports/'),
        figures_dir=output_config.get('figures_path', 'reports/figures/')
    )

    print_report_summary(result, eval_result)

    return result


def _load(config_path: str, verbose: bool = False) -> Dict[str, Any]:
    config = load_config(config_path)
    logging_config = config.get('logging', {})
    level = 'DEBUG' if verbose else logging_config.get('level', 'INFO')
    setup_logging(level, logging_config.get('log_dir'))
    return config


def run_full_pipeline(
    data_path: str,
    config_path: str = "config/config.yaml",
    config: Optional[Dict[str, Any]] = None,
    verbose: bool = False
) -> Dict[str, Any]:
    """
    Execute the complete 5-phase pipeline.

    Args:
        data_path: Path to input CSV file
        config_path: Path to configuration file
        config: Already loaded configuration (skips reading config_path)
        verbose: Log at DEBUG level

    Returns:
        Dictionary containing all phase results
    """
    print("\n" + "=" * 70)
    print("LONDON BOROUGH LIFE SATISFACTION PIPELINE")
    print(f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70)

    if config is None:
        config = _load(config_path, verbose)

    response = config.get('data', {}).get('response', 'life_satisfaction')

    print("\n📊 Loading data...")
    df = load_data(data_path)
    print_data_summary(df, response=response)

    is_valid, validation_report = validate_data(df, response=response)
    if not is_valid:
        print("⚠️  Data validation warnings detected. Proceeding anyway...")

    results = {
        'config': config,
        'data_shape': df.shape,
        'validation': validation_report
    }

    results['preprocessing'] = run_preprocessing(df, config)
    results['eda'] = run_eda(results['preprocessing']['data_processed'], config)
    results['models'] = run_training(results['preprocessing'], config)
    results['evaluation'] = run_evaluation(results['models'], results['preprocessing'], config)
    results['report'] = run_report(
        results['models'], results['evaluation'], results['preprocessing'], config
    )

    overall = results['evaluation']['metrics']['overall']
    print("\n" + "=" * 70)
    print("PIPELINE COMPLETE")
    print("=" * 70)
    print(f"  • Input data: {df.shape[0]} rows × {df.shape[1]} columns")
    print(f"  • Modelled rows: {len(results['preprocessing']['y'])}")
    print(f"  • Best model: {overall['best_model']} (test MSE {overall['best_mse']:.4f})")
    print(f"  • Report: {results['report']['report_path']}")
    print(f"Completed at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70 + "\n")

    return results


def run_single_phase(
    phase: str,
    data_path: str,
    config_path: str = "config/config.yaml",
    verbose: bool = False
) -> Dict[str, Any]:
    """
    Execute a single phase of the pipeline (and the phases it depends on).

    Args:
        phase: Phase to run ('eda', 'preprocess', 'train', 'evaluate', 'report')
        data_path: Path to input CSV file
        config_path: Path to configuration file
        verbose: Log at DEBUG level

    Returns:
        Phase result dictionary
    """
    config = _load(config_path, verbose)

    if phase == 'report':
        return run_full_pipeline(data_path, config_path, config=config)

    df = load_data(data_path)

    if phase == 'preprocess':
        return run_preprocessing(df, config)

    elif phase == 'eda':
        prep_result = run_preprocessing(df, config)
        return run_eda(prep_result['data_processed'], config)

    elif phase == 'train':
        prep_result = run_preprocessing(df, config)
        return {'models': run_training(prep_result, config), 'preprocessing': prep_result}

    elif phase == 'evaluate':
        prep_result = run_preprocessing(df, config)
        trainers = run_training(prep_result, config)
        return run_evaluation(trainers, prep_result, config)

    else:
        raise ValueError(f"Unknown phase: {phase}. Choose from: eda, preprocess, train, evaluate, report")


def main():
    """Main entry point with argument parsing."""
    parser = argparse.ArgumentParser(
        description="Life satisfaction regression report for London boroughs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --data data/raw/housing_in_london_yearly_variables.csv
  python main.py --data data/raw/housing_in_london_yearly_variables.csv --phase eda
  python main.py --data data/raw/housing_in_london_yearly_variables.csv --config config/custom.yaml
        """
    )

    parser.add_argument(
        '--data', '-d',
        type=str,
        required=True,
        help='Path to the input CSV file'
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        default='config/config.yaml',
        help='Path to configuration file (default: config/config.yaml)'
    )

    parser.add_argument(
        '--phase', '-p',
        type=str,
        choices=['eda', 'preprocess', 'train', 'evaluate', 'report', 'all'],
        default='all',
        help='Phase to run (default: all)'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output'
    )

    args = parser.parse_args()

    if not Path(args.data).exists():
        print(f"Error: Data file not found: {args.data}")
        print("\nExpected the London borough yearly variables CSV "
              "(columns code, area, date, ..., life_satisfaction).")
        return 1

    if not Path(args.config).exists():
        print(f"Error: Config file not found: {args.config}")
        return 1

    try:
        if args.phase == 'all':
            run_full_pipeline(args.data, args.config, verbose=args.verbose)
        else:
            run_single_phase(args.phase, args.data, args.config, verbose=args.verbose)

        return 0

    except Exception as e:
        logging.error(f"Pipeline failed: {e}", exc_info=True)
        print(f"\n❌ Pipeline failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
