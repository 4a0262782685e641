"""Filtering, outlier trimming and feature derivation for trip records."""

from __future__ import annotations

import logging

import polars as pl

from tip_pipeline.config import Config

logger = logging.getLogger("TipPipeline")


def iqr_trim(df: pl.DataFrame, column: str, multiplier: float = 1.5) -> pl.DataFrame:
    """Keep rows whose ``column`` lies strictly inside the interquartile fence.

    Quartiles are computed over ``df`` as given, so chained calls on
    different columns each see the rows left by the previous one.

    Args:
        df: Frame to trim.
        column: Numeric column to compute quartiles on.
        multiplier: Fence width in interquartile ranges.

    Returns:
        Rows with ``Q1 - k*IQR < value < Q3 + k*IQR``, or ``df`` unchanged
        when no quartiles exist.
    """
    q1 = df[column].quantile(0.25, interpolation="linear")
    q3 = df[column].quantile(0.75, interpolation="linear")
    # empty frame or all-null column
    if q1 is None or q3 is None:
        return df
    iqr = q3 - q1
    lower = q1 - multiplier * iqr
    upper = q3 + multiplier * iqr
    logger.debug("IQR fence for %s: (%.4f, %.4f)", column, lower, upper)
    return df.filter((pl.col(column) > lower) & (pl.col(column) < upper))


def _log_drop(step: str, before: int, after: int) -> None:
    dropped = before - after
    pct = dropped / before * 100 if before else 0.0
    logger.info(
        "%s: %d -> %d rows (dropped %d, %.2f%%)",
        step, before, after, dropped, pct,
    )


class TripCleaner:
    """Applies the filter battery, outlier trims and derived features.

    Args:
        config: Pipeline configuration.
    """

    def __init__(self, config: Config) -> None:
        self._config = config

    def filter_records(self, df: pl.DataFrame) -> pl.DataFrame:
        """Keep rows that satisfy every record-level predicate.

        Predicates: passenger count strictly between 0 and
        ``max_passengers``, all fare components nonnegative, pickup and
        dropoff in ``config.year`` and, when configured, an allowed payment
        type.

        Args:
            df: Loaded trip records.

        Returns:
            Filtered DataFrame.
        """
        cfg = self._config
        rows_before = df.height

        critical_cols = [
            cfg.target_column,
            "passenger_count",
            "trip_distance",
            cfg.pickup_column,
            cfg.dropoff_column,
        ]
        df = df.drop_nulls(subset=[c for c in critical_cols if c in df.columns])

        predicate = (
            (pl.col("passenger_count") > 0)
            & (pl.col("passenger_count") < cfg.max_passengers)
            & (pl.col(cfg.pickup_column).dt.year() == cfg.year)
            & (pl.col(cfg.dropoff_column).dt.year() == cfg.year)
        )
        for col in cfg.fare_columns:
            predicate = predicate & (pl.col(col) >= 0)
        if cfg.payment_types:
            predicate = predicate & pl.col("payment_type").is_in(cfg.payment_types)

        df = df.filter(predicate)
        _log_drop("Filtering", rows_before, df.height)
        return df

    def derive_features(self, df: pl.DataFrame) -> pl.DataFrame:
        """Add calendar features, trip time in minutes and mean speed.

        Rows not longer than ``min_distance`` or ``min_trip_minutes`` are
        removed before speed is computed, so the division is always defined.

        Args:
            df: Filtered DataFrame.

        Returns:
            DataFrame with pickup/dropoff hour, weekday, month,
            ``trip_time`` and ``speed``.
        """
        cfg = self._config
        rows_before = df.height

        df = df.with_columns([
            pl.col(cfg.pickup_column).dt.hour().cast(pl.Int8).alias("pickup_hour"),
            pl.col(cfg.pickup_column).dt.weekday().cast(pl.Int8).alias("pickup_weekday"),
            pl.col(cfg.pickup_column).dt.month().cast(pl.Int8).alias("pickup_month"),
            pl.col(cfg.dropoff_column).dt.hour().cast(pl.Int8).alias("dropoff_hour"),
            pl.col(cfg.dropoff_column).dt.weekday().cast(pl.Int8).alias("dropoff_weekday"),
            pl.col(cfg.dropoff_column).dt.month().cast(pl.Int8).alias("dropoff_month"),
            (
                (pl.col(cfg.dropoff_column) - pl.col(cfg.pickup_column))
                .dt.total_seconds() / 60.0
            ).alias("trip_time"),
        ])

        df = df.filter(
            (pl.col("trip_distance") > cfg.min_distance)
            & (pl.col("trip_time") > cfg.min_trip_minutes)
        )
        _log_drop("Distance/duration pre-filter", rows_before, df.height)

        return df.with_columns(
            (pl.col("trip_distance") / pl.col("trip_time")).alias("speed")
        )

    def trim_outliers(self, df: pl.DataFrame) -> pl.DataFrame:
        """Trim ``iqr_columns`` one after another, then cut tolls.

        Tolls are mostly zero, so their interquartile range collapses and a
        fixed ``max_tolls`` cutoff is used instead.

        Args:
            df: DataFrame to trim.

        Returns:
            Trimmed DataFrame.
        """
        cfg = self._config
        for col in cfg.iqr_columns:
            rows_before = df.height
            df = iqr_trim(df, col, cfg.iqr_multiplier)
            _log_drop(f"IQR trim on {col}", rows_before, df.height)

        rows_before = df.height
        df = df.filter(pl.col("tolls_amount") < cfg.max_tolls)
        _log_drop("Tolls cutoff", rows_before, df.height)
        return df

    def clean(self, df: pl.DataFrame) -> pl.DataFrame:
        """Run filters, feature derivation and outlier trims in order."""
        rows_before = df.height
        df = self.filter_records(df)
        df = self.derive_features(df)
        df = self.trim_outliers(df)
        _log_drop("Cleaning total", rows_before, df.height)
        return df

    def to_ml_frame(self, df: pl.DataFrame) -> pl.DataFrame:
        """Drop encoded/leaking columns and remaining nulls for training.

        Args:
            df: Cleaned DataFrame.

        Returns:
            ML-ready DataFrame.
        """
        df = df.drop([c for c in self._config.drop_columns if c in df.columns])
        rows_before = df.height
        df = df.drop_nulls()
        _log_drop("ML-ready nulls", rows_before, df.height)
        logger.info("ML-ready columns: %s", ", ".join(df.columns))
        return df
