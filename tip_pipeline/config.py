"""Pipeline configuration."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Config:
    """Central configuration for the entire pipeline.

    Args:
        data_paths: List of trip files (parquet or CSV), one per period.
        zones_path: Taxi zone lookup CSV.
        pickup_column: Pickup timestamp column.
        dropoff_column: Dropoff timestamp column.
        target_column: Prediction target.
        year: Pickup and dropoff year every kept trip must fall in.
        max_passengers: Exclusive upper passenger count limit.
        payment_types: If set, only trips with these payment codes are kept.
        fare_columns: Fare components that must be nonnegative.
        min_distance: Trips must be strictly longer than this (miles).
        min_trip_minutes: Trips must last strictly longer than this.
        iqr_columns: Columns trimmed by interquartile range, in order.
        iqr_multiplier: Width of the interquartile fence.
        max_tolls: Exclusive tolls cutoff, used instead of an IQR trim.
        drop_columns: Columns removed from the ML-ready set.
        feature_columns: Columns used as model features.
        algorithms: Regression algorithms compared by the trainer.
        test_fraction: Fraction of rows held out for the final evaluation.
        n_strata: Number of target quantile bins used to stratify the split.
        n_cv_splits: Number of folds for KFold.
        n_jobs: joblib workers for per-algorithm fitting.
        n_trials: Number of Optuna trials for LightGBM (0 disables tuning).
        clean_data_path: Snapshot of the cleaned trips.
        zones_save_path: Snapshot of the enriched zone lookup.
        ml_data_path: Snapshot of the ML-ready trips.
        model_save_path: Where to persist the best model.
        comparison_save_path: Where to write the per-fold MAE table.
        config_save_path: Where to persist the config snapshot.
        random_seed: Reproducibility seed.
    """

    data_paths: list[str] = field(default_factory=list)
    zones_path: str = "taxi_zone_lookup.csv"
    pickup_column: str = "tpep_pickup_datetime"
    dropoff_column: str = "tpep_dropoff_datetime"
    target_column: str = "tip_amount"

    # Filter battery
    year: int = 2017
    max_passengers: int = 6
    payment_types: list[int] | None = None
    fare_columns: list[str] = field(default_factory=lambda: [
        "fare_amount",
        "extra",
        "mta_tax",
        "tip_amount",
        "tolls_amount",
        "improvement_surcharge",
        "total_amount",
    ])

    # Speed pre-filter
    min_distance: float = 1.0
    min_trip_minutes: float = 5.0

    # Outliers
    iqr_columns: list[str] = field(default_factory=lambda: [
        "fare_amount",
        "trip_distance",
        "tip_amount",
    ])
    iqr_multiplier: float = 1.5
    max_tolls: float = 20.0

    drop_columns: list[str] = field(default_factory=lambda: [
        "tpep_pickup_datetime",
        "tpep_dropoff_datetime",
        "payment_type",
        "PULocationID",
        "DOLocationID",
        "store_and_fwd_flag",
        "total_amount",
    ])

    # Features
    feature_columns: list[str] = field(default_factory=lambda: [
        "VendorID",
        "passenger_count",
        "trip_distance",
        "RatecodeID",
        "fare_amount",
        "extra",
        "mta_tax",
        "tolls_amount",
        "improvement_surcharge",
        "pickup_hour",
        "pickup_weekday",
        "pickup_month",
        "dropoff_hour",
        "dropoff_weekday",
        "dropoff_month",
        "trip_time",
        "speed",
    ])

    # Training
    algorithms: list[str] = field(default_factory=lambda: [
        "linear",
        "random_forest",
        "lightgbm",
        "svr",
    ])
    test_fraction: float = 0.2
    n_strata: int = 10
    n_cv_splits: int = 3
    n_jobs: int = -1
    n_trials: int = 20

    # Persistence
    clean_data_path: str = "trips_clean.parquet"
    zones_save_path: str = "zones_enriched.parquet"
    ml_data_path: str = "trips_ml.parquet"
    model_save_path: str = "best_model.pkl"
    comparison_save_path: str = "model_comparison.csv"
    config_save_path: str = "config.json"

    random_seed: int = 42
