"""Stratified train/test partitioning and cross-validation folds."""

from __future__ import annotations

import logging

import numpy as np
import polars as pl
from sklearn.model_selection import KFold, train_test_split

from tip_pipeline.config import Config

logger = logging.getLogger("TipPipeline")


def target_strata(y: np.ndarray, n_strata: int) -> np.ndarray | None:
    """Bin a continuous target into quantile strata usable for stratification.

    Duplicate quantile edges are collapsed (tips pile up at zero and at
    round amounts). The bin count shrinks until every stratum holds at
    least two rows.

    Args:
        y: Target values.
        n_strata: Maximum number of bins.

    Returns:
        Stratum label per row, or ``None`` when no binning qualifies.
    """
    for n_bins in range(n_strata, 1, -1):
        edges = np.unique(np.quantile(y, np.linspace(0, 1, n_bins + 1)))
        if len(edges) < 3:
            continue
        labels = np.digitize(y, edges[1:-1], right=True)
        counts = np.bincount(labels)
        if counts[counts > 0].min() >= 2:
            return labels
    return None


class StratifiedSplitter:
    """Random train/test split stratified on the binned target.

    Args:
        config: Pipeline configuration.
    """

    def __init__(self, config: Config) -> None:
        self._config = config

    def split(self, df: pl.DataFrame) -> tuple[pl.DataFrame, pl.DataFrame]:
        """Partition ``df`` into train and test sets.

        Row order inside each part follows ``df``. The same seed on the same
        input always gives the same membership.

        Args:
            df: ML-ready DataFrame.

        Returns:
            (train_df, test_df) tuple.
        """
        y = df[self._config.target_column].to_numpy()
        # each side of the split needs at least one row per stratum;
        # sizes follow train_test_split: n_test = ceil(test_size * n), n_train = n - n_test
        n_test = int(np.ceil(self._config.test_fraction * df.height))
        n_train = df.height - n_test
        max_strata = min(self._config.n_strata, n_test, n_train)
        strata = target_strata(y, max_strata)
        if strata is None:
            logger.warning("Target too sparse to stratify, using a plain random split")

        _, test_idx = train_test_split(
            np.arange(df.height),
            test_size=self._config.test_fraction,
            random_state=self._config.random_seed,
            stratify=strata,
        )
        test_mask = np.zeros(df.height, dtype=bool)
        test_mask[test_idx] = True
        test_mask = pl.Series("test_mask", test_mask)

        train_df = df.filter(~test_mask)
        test_df = df.filter(test_mask)

        logger.info(
            "Split: %d train rows, %d test rows (test fraction %.2f)",
            train_df.height, test_df.height, self._config.test_fraction,
        )
        self.check_target_drift(
            train_df[self._config.target_column].to_numpy(),
            test_df[self._config.target_column].to_numpy(),
        )
        return train_df, test_df

    def get_cv_splits(self) -> KFold:
        """Return a shuffled, seeded KFold with ``n_cv_splits`` folds."""
        return KFold(
            n_splits=self._config.n_cv_splits,
            shuffle=True,
            random_state=self._config.random_seed,
        )

    @staticmethod
    def check_target_drift(y_train: np.ndarray, y_test: np.ndarray) -> None:
        """Log a warning if train/test target means differ by more than 20%.

        Args:
            y_train: Target values in the training part.
            y_test: Target values in the test part.
        """
        mean_train = float(np.mean(y_train))
        mean_test = float(np.mean(y_test))
        if mean_train == 0:
            return
        drift_pct = abs(mean_train - mean_test) / abs(mean_train) * 100
        logger.info(
            "Target mean: train=%.4f, test=%.4f (drift=%.1f%%)",
            mean_train, mean_test, drift_pct,
        )
        if drift_pct > 20:
            logger.warning(
                "Target drift %.1f%% exceeds 20%% threshold!", drift_pct,
            )
