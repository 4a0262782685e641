"""Cross-validated comparison of regression models for tip prediction."""

from __future__ import annotations

import json
import logging
import pickle
from dataclasses import asdict, dataclass, field
from typing import Any

import lightgbm as lgb
import numpy as np
import optuna
import polars as pl
from joblib import Parallel, delayed
from sklearn.ensemble import RandomForestRegressor
from sklearn.linear_model import LinearRegression
from sklearn.metrics import mean_absolute_error, mean_squared_error, r2_score
from sklearn.model_selection import cross_val_score, cross_validate
from sklearn.pipeline import make_pipeline
from sklearn.preprocessing import StandardScaler
from sklearn.svm import LinearSVR

from tip_pipeline.config import Config
from tip_pipeline.splitter import StratifiedSplitter

logger = logging.getLogger("TipPipeline")

ALGORITHMS = ("linear", "random_forest", "lightgbm", "svr")


@dataclass
class ModelResult:
    """A fitted estimator and its fold-wise cross-validation MAE."""

    name: str
    model: Any
    fold_mae: list[float] = field(default_factory=list)

    @property
    def mean_mae(self) -> float:
        return float(np.mean(self.fold_mae))


def build_estimator(
    name: str, config: Config, lgbm_params: dict[str, Any] | None = None
) -> Any:
    """Create an unfitted estimator for an algorithm name.

    Args:
        name: One of ``ALGORITHMS``.
        config: Pipeline configuration (seed).
        lgbm_params: Tuned LightGBM parameters, if any.

    Returns:
        scikit-learn compatible regressor.
    """
    if name == "linear":
        return LinearRegression()
    if name == "random_forest":
        return RandomForestRegressor(
            n_estimators=100,
            min_samples_leaf=5,
            random_state=config.random_seed,
        )
    if name == "lightgbm":
        params: dict[str, Any] = {
            "objective": "regression",
            "verbosity": -1,
            "random_state": config.random_seed,
            "n_estimators": 300,
            **(lgbm_params or {}),
        }
        return lgb.LGBMRegressor(**params)
    if name == "svr":
        return make_pipeline(
            StandardScaler(),
            LinearSVR(random_state=config.random_seed, max_iter=5000),
        )
    raise ValueError(f"Unknown algorithm {name!r}, expected one of {ALGORITHMS}")


def _fit_one(name: str, estimator: Any, X: Any, y: np.ndarray, cv: Any) -> ModelResult:
    scores = cross_validate(estimator, X, y, cv=cv, scoring="neg_mean_absolute_error")
    fold_mae = [float(-s) for s in scores["test_score"]]
    estimator.fit(X, y)
    return ModelResult(name=name, model=estimator, fold_mae=fold_mae)


def rank_results(results: list[ModelResult]) -> list[ModelResult]:
    """Order results by mean cross-validation MAE, best first."""
    return sorted(results, key=lambda r: r.mean_mae)


def comparison_table(results: list[ModelResult]) -> pl.DataFrame:
    """Per-fold and mean MAE for every algorithm, best first."""
    rows = []
    for result in rank_results(results):
        row: dict[str, Any] = {"algorithm": result.name}
        for i, mae in enumerate(result.fold_mae, start=1):
            row[f"fold_{i}"] = mae
        row["mean_mae"] = result.mean_mae
        rows.append(row)
    return pl.DataFrame(rows)


class ModelTrainer:
    def __init__(self, config: Config) -> None:
        self._config = config
        self._lgbm_params: dict[str, Any] = {}

    def _prepare_arrays(
        self, df: pl.DataFrame
    ) -> tuple[Any, np.ndarray, list[str]]:
        available_features = [
            c for c in self._config.feature_columns if c in df.columns
        ]
        X = df.select(available_features).to_pandas()
        y = df.select(self._config.target_column).to_numpy().ravel()
        return X, y, available_features

    def tune_hyperparameters(
        self, train_df: pl.DataFrame, splitter: StratifiedSplitter
    ) -> dict[str, Any]:
        """Search LightGBM parameters with Optuna, minimizing CV MAE.

        The best parameters are kept and used by later LightGBM fits.
        Skipped when ``n_trials`` is 0 or LightGBM is not configured.
        """
        if self._config.n_trials <= 0 or "lightgbm" not in self._config.algorithms:
            return {}

        X, y, _ = self._prepare_arrays(train_df)
        cv = splitter.get_cv_splits()

        def objective(trial: optuna.Trial) -> float:
            params = {
                "learning_rate": trial.suggest_float("learning_rate", 0.01, 0.3, log=True),
                "num_leaves": trial.suggest_int("num_leaves", 16, 256),
                "max_depth": trial.suggest_int("max_depth", 3, 12),
                "min_child_samples": trial.suggest_int("min_child_samples", 5, 100),
                "subsample": trial.suggest_float("subsample", 0.5, 1.0),
                "colsample_bytree": trial.suggest_float("colsample_bytree", 0.5, 1.0),
            }
            model = build_estimator("lightgbm", self._config, params)
            scores = cross_val_score(model, X, y, cv=cv, scoring="neg_mean_absolute_error")
            return float(-np.mean(scores))

        optuna.logging.set_verbosity(optuna.logging.WARNING)
        study = optuna.create_study(
            direction="minimize",
            study_name="tip_lightgbm_tuning",
            sampler=optuna.samplers.TPESampler(seed=self._config.random_seed),
        )
        study.optimize(objective, n_trials=self._config.n_trials)

        logger.info("Best LightGBM CV MAE after tuning: %.4f", study.best_value)
        self._lgbm_params = study.best_trial.params
        return self._lgbm_params

    def cross_validate(
        self, train_df: pl.DataFrame, splitter: StratifiedSplitter
    ) -> list[ModelResult]:
        """Cross-validate and refit every configured algorithm.

        Fits run in a joblib worker pool, one task per algorithm. A failing
        fit aborts the run.

        Args:
            train_df: Training part of the split.
            splitter: Supplies the KFold splitter.

        Returns:
            One ``ModelResult`` per algorithm, in configured order.
        """
        if train_df.height == 0:
            raise ValueError("Training split is empty")

        X, y, features = self._prepare_arrays(train_df)
        cv = splitter.get_cv_splits()
        logger.info(
            "Cross-validating %d algorithms on %d rows, %d features, %d folds",
            len(self._config.algorithms), len(y), len(features), self._config.n_cv_splits,
        )

        estimators = [
            (name, build_estimator(name, self._config, self._lgbm_params))
            for name in self._config.algorithms
        ]
        results = Parallel(n_jobs=self._config.n_jobs)(
            delayed(_fit_one)(name, estimator, X, y, cv) for name, estimator in estimators
        )

        for result in results:
            logger.info(
                "%s: fold MAE %s, mean %.4f",
                result.name,
                ", ".join(f"{m:.4f}" for m in result.fold_mae),
                result.mean_mae,
            )
        return results

    def evaluate_holdout(self, model: Any, test_df: pl.DataFrame) -> dict[str, float]:
        X_test, y_test, _ = self._prepare_arrays(test_df)
        y_pred = model.predict(X_test)

        return {
            "mae": float(mean_absolute_error(y_test, y_pred)),
            "rmse": float(np.sqrt(mean_squared_error(y_test, y_pred))),
            "r2": float(r2_score(y_test, y_pred)),
        }

    def save(
        self,
        best: ModelResult,
        results: list[ModelResult],
        metrics: dict[str, float],
    ) -> None:
        """Persist the best model, the comparison table and a config snapshot."""
        config = self._config
        with open(config.model_save_path, "wb") as f:
            pickle.dump(best.model, f)
        logger.info("Model saved to %s", config.model_save_path)

        comparison_table(results).write_csv(config.comparison_save_path)
        logger.info("Comparison saved to %s", config.comparison_save_path)

        config_dict = asdict(config)
        config_dict["best_algorithm"] = best.name
        config_dict["lightgbm_params"] = self._lgbm_params
        config_dict["holdout_metrics"] = metrics
        with open(config.config_save_path, "w") as f:
            json.dump(config_dict, f, indent=2, default=str)
        logger.info("Config saved to %s", config.config_save_path)
