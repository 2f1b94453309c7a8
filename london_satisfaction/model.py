"""
Model Training Module
=====================

Fits the four regression models compared in the report. Each trainer tunes
its hyperparameters on the training set only, refits with the chosen values
and exposes its search curve for the report.

Trainers:
    - KNNTrainer: k-nearest neighbours, k chosen by k-fold CV RMSE
    - ElasticNetTrainer: grid over (lambda, fraction) by k-fold CV RMSE
    - PCRTrainer: principal component regression, component count by CV MSE
    - RandomForestTrainer: split width m chosen by out-of-bag MSE
"""

import logging
import warnings
from pathlib import Path
from typing import Dict, Any, Optional, List
from datetime import datetime

import numpy as np
import pandas as pd
import joblib
from sklearn.decomposition import PCA
from sklearn.ensemble import RandomForestRegressor
from sklearn.exceptions import ConvergenceWarning
from sklearn.linear_model import ElasticNet, LinearRegression
from sklearn.metrics import mean_squared_error
from sklearn.model_selection import GridSearchCV, KFold, cross_val_score
from sklearn.neighbors import KNeighborsRegressor
from sklearn.pipeline import Pipeline

logger = logging.getLogger(__name__)

DEFAULT_GRID = [round(0.1 * i, 1) for i in range(11)]


def _as_array(X) -> np.ndarray:
    return np.asarray(X, dtype=float)


def _feature_names(X) -> List[str]:
    if hasattr(X, 'columns'):
        return [str(c) for c in X.columns]
    return [f"x{i + 1}" for i in range(np.shape(X)[1])]


class BaseTrainer:
    """
    Common fit/predict/persist behaviour for the trainers.

    Subclasses implement ``_search`` which must set ``self.model``,
    ``self.best_params_`` and ``self.cv_results_``.
    """

    name = "base"
    _fitted_attributes = (
        'model', 'best_params_', 'cv_results_', 'feature_names_',
        'training_info', '_is_fitted'
    )

    def __init__(self, n_folds: Optional[int] = 5, random_state: Optional[int] = 42):
        self.n_folds = n_folds
        self.random_state = random_state

        self.model = None
        self.best_params_: Dict[str, Any] = {}
        self.cv_results_: Optional[pd.DataFrame] = None
        self.feature_names_: Optional[List[str]] = None
        self.training_info: Dict[str, Any] = {}
        self._is_fitted = False

    def get_hyperparameters(self) -> Dict[str, Any]:
        return {'n_folds': self.n_folds, 'random_state': self.random_state}

    def _cv(self) -> KFold:
        return KFold(n_splits=self.n_folds, shuffle=True, random_state=self.random_state)

    def _min_fold_size(self, n_samples: int) -> int:
        """Smallest number of training rows seen by any CV fold."""
        return n_samples - int(np.ceil(n_samples / self.n_folds))

    def _search(self, X: np.ndarray, y: np.ndarray) -> None:
        raise NotImplementedError

    def fit(self, X, y) -> 'BaseTrainer':
        """
        Tune hyperparameters and fit the final model on the training set.

        Args:
            X: Standardized predictors, shape (n_samples, n_features)
            y: Response vector, shape (n_samples,)

        Returns:
            Self for method chaining
        """
        start_time = datetime.now()
        self.feature_names_ = _feature_names(X)
        X = _as_array(X)
        y = _as_array(y).ravel()

        logger.info("=" * 60)
        logger.info(f"TRAINING {self.name.upper()}")
        logger.info("=" * 60)
        logger.info(f"Training data shape: X={X.shape}, y={y.shape}")

        self._search(X, y)

        end_time = datetime.now()
        self.training_info = {
            'training_duration_seconds': (end_time - start_time).total_seconds(),
            'n_samples': X.shape[0],
            'n_features': X.shape[1],
            'trained_at': end_time.isoformat(),
            'best_params': dict(self.best_params_)
        }
        self._is_fitted = True

        logger.info(f"Selected hyperparameters: {self.best_params_}")
        logger.info(f"{self.name} trained in {self.training_info['training_duration_seconds']:.2f} seconds")
        return self

    def predict(self, X) -> np.ndarray:
        """
        Predict the response for new rows.

        Args:
            X: Standardized predictors

        Returns:
            Predictions array of shape (n_samples,)
        """
        if not self._is_fitted:
            raise ValueError("Model must be fitted before prediction. Call fit() first.")

        X = _as_array(X)
        if X.shape[1] != len(self.feature_names_):
            raise ValueError(
                f"Expected {len(self.feature_names_)} features, but got {X.shape[1]}"
            )
        return self.model.predict(X)

    def test_mse(self, X, y) -> float:
        """Mean squared error of the fitted model on held-out rows."""
        return float(mean_squared_error(_as_array(y).ravel(), self.predict(X)))

    def save(self, filepath: str) -> None:
        """
        Save the fitted trainer to disk.

        Args:
            filepath: Path to save the trainer
        """
        if not self._is_fitted:
            raise ValueError("Cannot save untrained model.")

        state = {'hyperparameters': self.get_hyperparameters()}
        for attr in self._fitted_attributes:
            state[attr] = getattr(self, attr)

        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(state, filepath)
        logger.info(f"{self.name} saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'BaseTrainer':
        """
        Load a fitted trainer from disk.

        Args:
            filepath: Path to the saved trainer

        Returns:
            Loaded trainer instance
        """
        state = joblib.load(filepath)

        trainer = cls(**state['hyperparameters'])
        for attr in cls._fitted_attributes:
            setattr(trainer, attr, state[attr])

        logger.info(f"{trainer.name} loaded from {filepath}")
        return trainer


class KNNTrainer(BaseTrainer):
    """K-nearest-neighbours regression with k chosen by cross-validated RMSE."""

    name = "KNN"

    def __init__(
        self,
        k_min: int = 1,
        k_max: int = 30,
        n_folds: int = 5,
        random_state: Optional[int] = 42
    ):
        super().__init__(n_folds=n_folds, random_state=random_state)
        self.k_min = k_min
        self.k_max = k_max

    def get_hyperparameters(self) -> Dict[str, Any]:
        params = super().get_hyperparameters()
        params.update({'k_min': self.k_min, 'k_max': self.k_max})
        return params

    def candidate_ks(self, n_samples: int) -> List[int]:
        """Values of k usable on every CV fold."""
        upper = min(self.k_max, self._min_fold_size(n_samples))
        ks = list(range(self.k_min, upper + 1))
        if not ks:
            raise ValueError(f"Too few training rows ({n_samples}) for k >= {self.k_min}")
        if upper < self.k_max:
            logger.warning(f"k limited to {upper} by the CV fold size")
        return ks

    def _search(self, X: np.ndarray, y: np.ndarray) -> None:
        ks = self.candidate_ks(len(X))
        logger.info(f"Searching k in [{ks[0]}, {ks[-1]}] with {self.n_folds}-fold CV")

        search = GridSearchCV(
            KNeighborsRegressor(),
            {'n_neighbors': ks},
            cv=self._cv(),
            scoring='neg_root_mean_squared_error',
            refit=True
        )
        search.fit(X, y)

        self.cv_results_ = pd.DataFrame({
            'k': ks,
            'rmse': -search.cv_results_['mean_test_score'],
            'rmse_sd': search.cv_results_['std_test_score']
        })
        self.best_params_ = {'k': int(search.best_params_['n_neighbors'])}
        self.model = search.best_estimator_


class ElasticNetTrainer(BaseTrainer):
    """
    Elastic net with a grid search over penalty strength and L1 mix.

    ``lambda`` is the overall penalty weight (``alpha`` in scikit-learn) and
    ``fraction`` the share of it given to the L1 term (``l1_ratio``).
    """

    name = "Elastic Net"

    def __init__(
        self,
        lambda_grid: Optional[List[float]] = None,
        fraction_grid: Optional[List[float]] = None,
        max_iter: int = 10000,
        n_folds: int = 5,
        random_state: Optional[int] = 42
    ):
        super().__init__(n_folds=n_folds, random_state=random_state)
        self.lambda_grid = list(lambda_grid) if lambda_grid is not None else list(DEFAULT_GRID)
        self.fraction_grid = list(fraction_grid) if fraction_grid is not None else list(DEFAULT_GRID)
        self.max_iter = max_iter

    def get_hyperparameters(self) -> Dict[str, Any]:
        params = super().get_hyperparameters()
        params.update({
            'lambda_grid': self.lambda_grid,
            'fraction_grid': self.fraction_grid,
            'max_iter': self.max_iter
        })
        return params

    def _search(self, X: np.ndarray, y: np.ndarray) -> None:
        logger.info(
            f"Grid search over {len(self.lambda_grid)} lambda × "
            f"{len(self.fraction_grid)} fraction values with {self.n_folds}-fold CV"
        )

        search = GridSearchCV(
            ElasticNet(max_iter=self.max_iter),
            {'alpha': self.lambda_grid, 'l1_ratio': self.fraction_grid},
            cv=self._cv(),
            scoring='neg_root_mean_squared_error',
            refit=True
        )
        # lambda = 0 is an unpenalized fit, which coordinate descent reports as poorly converging
        with warnings.catch_warnings():
            warnings.simplefilter('ignore', category=ConvergenceWarning)
            warnings.filterwarnings('ignore', message='With alpha=0')
            search.fit(X, y)

        params = search.cv_results_['params']
        self.cv_results_ = pd.DataFrame({
            'lambda': [p['alpha'] for p in params],
            'fraction': [p['l1_ratio'] for p in params],
            'rmse': -search.cv_results_['mean_test_score'],
            'rmse_sd': search.cv_results_['std_test_score']
        })
        self.best_params_ = {
            'lambda': float(search.best_params_['alpha']),
            'fraction': float(search.best_params_['l1_ratio'])
        }
        if self.best_params_['lambda'] == 0:
            logger.warning("lambda = 0 selected: the fit is unpenalized and the fraction has no effect")
        self.model = search.best_estimator_

    @property
    def penalized_(self) -> bool:
        """False when lambda = 0 won, in which case every fraction gives the same fit."""
        if not self._is_fitted:
            raise ValueError("Model must be fitted first.")
        return self.best_params_['lambda'] > 0

    @property
    def coef_(self) -> np.ndarray:
        if not self._is_fitted:
            raise ValueError("Model must be fitted first.")
        return self.model.coef_

    @property
    def active_set_(self) -> List[str]:
        """Predictors with a non-zero coefficient."""
        return [name for name, c in zip(self.feature_names_, self.coef_) if c != 0]

    def coefficients(self) -> pd.DataFrame:
        """Per-predictor coefficients with an active-set flag."""
        coef = self.coef_
        return pd.DataFrame({
            'predictor': self.feature_names_,
            'coefficient': coef,
            'active': coef != 0
        })


class PCRTrainer(BaseTrainer):
    """
    Principal component regression.

    The component count is chosen by cross-validated MSE. With a positive
    ``tolerance`` the smallest count whose CV MSE is within that relative
    margin of the best one is taken instead.
    """

    name = "PCR"
    _fitted_attributes = BaseTrainer._fitted_attributes + ('variance_explained_',)

    def __init__(
        self,
        max_components: int = 7,
        tolerance: float = 0.0,
        n_folds: int = 5,
        random_state: Optional[int] = 42
    ):
        super().__init__(n_folds=n_folds, random_state=random_state)
        self.max_components = max_components
        self.tolerance = tolerance
        self.variance_explained_: Optional[pd.DataFrame] = None

    def get_hyperparameters(self) -> Dict[str, Any]:
        params = super().get_hyperparameters()
        params.update({'max_components': self.max_components, 'tolerance': self.tolerance})
        return params

    @staticmethod
    def _pipeline(n_components: int) -> Pipeline:
        return Pipeline([
            ('pca', PCA(n_components=n_components)),
            ('regression', LinearRegression())
        ])

    def select_components(self, cv_results: pd.DataFrame) -> int:
        """Pick the component count from a table of CV MSE values."""
        best_mse = cv_results['mse'].min()
        within = cv_results[cv_results['mse'] <= best_mse * (1 + self.tolerance)]
        return int(within['n_components'].min())

    def _search(self, X: np.ndarray, y: np.ndarray) -> None:
        upper = min(self.max_components, X.shape[1], self._min_fold_size(len(X)))
        counts = list(range(1, upper + 1))
        logger.info(f"Evaluating 1..{upper} principal components with {self.n_folds}-fold CV")

        rows = []
        for n in counts:
            scores = cross_val_score(
                self._pipeline(n), X, y,
                cv=self._cv(),
                scoring='neg_mean_squared_error'
            )
            fold_mse = -scores
            rows.append({
                'n_components': n,
                'mse': float(fold_mse.mean()),
                'rmse': float(np.sqrt(fold_mse).mean())
            })
            logger.debug(f"  {n} components: CV MSE {fold_mse.mean():.5f}")
        self.cv_results_ = pd.DataFrame(rows)

        best_n = self.select_components(self.cv_results_)
        self.best_params_ = {'n_components': best_n}
        self.model = self._pipeline(best_n).fit(X, y)

        # Variance of X and y explained by the leading components
        full_pca = PCA(n_components=upper).fit(X)
        scores = full_pca.transform(X)
        y_r2 = [
            LinearRegression().fit(scores[:, :n], y).score(scores[:, :n], y)
            for n in counts
        ]
        self.variance_explained_ = pd.DataFrame({
            'n_components': counts,
            'x_variance': full_pca.explained_variance_ratio_,
            'x_cumulative': np.cumsum(full_pca.explained_variance_ratio_),
            'y_r2': y_r2
        })

    def loadings(self) -> pd.DataFrame:
        """Loadings of the retained components (rows: predictors)."""
        if not self._is_fitted:
            raise ValueError("Model must be fitted first.")
        pca = self.model.named_steps['pca']
        return pd.DataFrame(
            pca.components_.T,
            index=pd.Index(self.feature_names_, name='predictor'),
            columns=[f"PC{i + 1}" for i in range(pca.n_components_)]
        )


class RandomForestTrainer(BaseTrainer):
    """
    Random forest with the split width chosen by out-of-bag MSE.

    Every candidate forest is grown on the full training set, so the forest
    with the selected width is kept as the final model.
    """

    name = "Random Forest"

    def __init__(
        self,
        n_estimators: int = 500,
        max_features: Optional[List[int]] = None,
        random_state: Optional[int] = 42
    ):
        # OOB error replaces cross-validation
        super().__init__(n_folds=None, random_state=random_state)
        self.n_estimators = n_estimators
        self.max_features = list(max_features) if max_features is not None else None

    def get_hyperparameters(self) -> Dict[str, Any]:
        return {
            'n_estimators': self.n_estimators,
            'max_features': self.max_features,
            'random_state': self.random_state
        }

    def _search(self, X: np.ndarray, y: np.ndarray) -> None:
        n_features = X.shape[1]
        widths = self.max_features or list(range(1, n_features + 1))
        widths = [m for m in widths if 1 <= m <= n_features]
        if not widths:
            raise ValueError(f"No split width candidates within 1..{n_features}")

        logger.info(f"Growing {self.n_estimators}-tree forests for m in {widths}")

        forests = []
        oob_mse = []
        for m in widths:
            forest = RandomForestRegressor(
                n_estimators=self.n_estimators,
                max_features=m,
                bootstrap=True,
                oob_score=True,
                random_state=self.random_state
            )
            forest.fit(X, y)
            mse = float(np.mean((y - forest.oob_prediction_) ** 2))
            forests.append(forest)
            oob_mse.append(mse)
            logger.debug(f"  m={m}: OOB MSE {mse:.5f}")

        self.cv_results_ = pd.DataFrame({'m': widths, 'oob_mse': oob_mse})
        best = int(np.argmin(oob_mse))
        self.best_params_ = {'m': int(widths[best])}
        self.model = forests[best]

    def importances(self) -> pd.DataFrame:
        """Impurity-based predictor importances, largest first."""
        if not self._is_fitted:
            raise ValueError("Model must be fitted first.")
        return pd.DataFrame({
            'predictor': self.feature_names_,
            'importance': self.model.feature_importances_
        }).sort_values('importance', ascending=False).reset_index(drop=True)


def build_trainers(config: Dict[str, Any]) -> Dict[str, BaseTrainer]:
    """
    Create the four trainers from configuration.

    Args:
        config: Full configuration dictionary

    Returns:
        Ordered mapping of method name to unfitted trainer
    """
    cv_config = config.get('cv', {})
    models_config = config.get('models', {})
    n_folds = cv_config.get('n_folds', 5)
    random_state = cv_config.get('random_state', 42)

    knn_config = models_config.get('knn', {})
    enet_config = models_config.get('elastic_net', {})
    pcr_config = models_config.get('pcr', {})
    rf_config = models_config.get('random_forest', {})

    trainers = [
        KNNTrainer(
            k_min=knn_config.get('k_min', 1),
            k_max=knn_config.get('k_max', 30),
            n_folds=n_folds,
            random_state=random_state
        ),
        ElasticNetTrainer(
            lambda_grid=enet_config.get('lambda_grid'),
            fraction_grid=enet_config.get('fraction_grid'),
            max_iter=enet_config.get('max_iter', 10000),
            n_folds=n_folds,
            random_state=random_state
        ),
        PCRTrainer(
            max_components=pcr_config.get('max_components', 7),
            tolerance=pcr_config.get('tolerance', 0.0),
            n_folds=n_folds,
            random_state=random_state
        ),
        RandomForestTrainer(
            n_estimators=rf_config.get('n_estimators', 500),
            max_features=rf_config.get('max_features'),
            random_state=rf_config.get('random_state', random_state)
        ),
    ]
    return {trainer.name: trainer for trainer in trainers}


def train_models(
    X_train,
    y_train,
    config: Dict[str, Any],
    save_dir: Optional[str] = None
) -> Dict[str, BaseTrainer]:
    """
    Fit every trainer on the training set.

    Args:
        X_train: Training predictors
        y_train: Training response
        config: Configuration dictionary
        save_dir: Directory to save the fitted trainers (optional)

    Returns:
        Ordered mapping of method name to fitted trainer
    """
    trainers = build_trainers(config)

    for name, trainer in trainers.items():
        trainer.fit(X_train, y_train)
        if save_dir:
            filename = name.lower().replace(' ', '_') + '.joblib'
            trainer.save(str(Path(save_dir) / filename))

    return trainers


def print_model_summary(trainers: Dict[str, BaseTrainer]) -> None:
    """
    Print the hyperparameters selected by each trainer.

    Args:
        trainers: Fitted trainers keyed by method name
    """
    print("\n" + "=" * 50)
    print("MODEL SUMMARY")
    print("=" * 50)
    for name, trainer in trainers.items():
        params = ", ".join(f"{k}={v}" for k, v in trainer.best_params_.items())
        duration = trainer.training_info.get('training_duration_seconds', 0.0)
        print(f"  {name:<15} {params:<30} ({duration:.2f}s)")

    enet = trainers.get(ElasticNetTrainer.name)
    if enet is not None and enet._is_fitted:
        dropped = [f for f in enet.feature_names_ if f not in enet.active_set_]
        print(f"\nElastic net active set: {', '.join(enet.active_set_) or 'none'}")
        if dropped:
            print(f"Excluded predictors: {', '.join(dropped)}")
    print("=" * 50 + "\n")
