"""
London Borough Life Satisfaction
================================

Regression analysis of life satisfaction across London boroughs.

Modules:
    - data_loader: CSV ingestion and validation
    - eda: Exploratory Data Analysis
    - preprocessing: Cleaning, standardization and train/test split
    - model: KNN, elastic net, PCR and random forest trainers
    - evaluation: Test-set metrics and model ranking
    - report: Diagnostic plots and the Markdown report
"""

__version__ = "1.0.0"
__author__ = "Predictive Analytics Team"
