from __future__ import annotations

from datetime import datetime, timedelta

import numpy as np
import polars as pl
import pytest

from tip_pipeline.config import Config
from tip_pipeline.loader import TRIP_SCHEMA


def make_trip(**overrides) -> dict:
    pickup = overrides.pop("pickup", datetime(2017, 3, 1, 10, 0))
    minutes = overrides.pop("minutes", 20)
    row = {
        "VendorID": 1,
        "tpep_pickup_datetime": pickup,
        "tpep_dropoff_datetime": pickup + timedelta(minutes=minutes),
        "passenger_count": 1,
        "trip_distance": 3.0,
        "RatecodeID": 1,
        "store_and_fwd_flag": "N",
        "PULocationID": 10,
        "DOLocationID": 20,
        "payment_type": 1,
        "fare_amount": 12.0,
        "extra": 0.5,
        "mta_tax": 0.5,
        "tip_amount": 2.0,
        "tolls_amount": 0.0,
        "improvement_surcharge": 0.3,
    }
    row.update(overrides)
    row.setdefault(
        "total_amount",
        row["fare_amount"] + row["extra"] + row["mta_tax"] + row["tip_amount"]
        + row["tolls_amount"] + row["improvement_surcharge"],
    )
    return row


def make_frame(rows: list[dict]) -> pl.DataFrame:
    return pl.DataFrame(rows, schema=TRIP_SCHEMA)


def varied_trips(n: int) -> list[dict]:
    """Valid trips with evenly spread fares, distances and tips."""
    return [
        make_trip(
            pickup=datetime(2017, 3, 1 + i % 28, i % 24, 0),
            minutes=10 + i,
            trip_distance=2.0 + 0.2 * i,
            fare_amount=10.0 + 0.5 * i,
            tip_amount=1.0 + 0.1 * i,
            DOLocationID=1 + i % 5,
        )
        for i in range(n)
    ]


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(
        n_jobs=1,
        n_trials=0,
        algorithms=["linear"],
        clean_data_path=str(tmp_path / "trips_clean.parquet"),
        zones_save_path=str(tmp_path / "zones_enriched.parquet"),
        ml_data_path=str(tmp_path / "trips_ml.parquet"),
        model_save_path=str(tmp_path / "best_model.pkl"),
        comparison_save_path=str(tmp_path / "model_comparison.csv"),
        config_save_path=str(tmp_path / "config.json"),
    )


@pytest.fixture
def linear_tips() -> pl.DataFrame:
    """ML-ready rows where the tip is exactly 20% of the fare."""
    rng = np.random.default_rng(0)
    fare = rng.uniform(5, 60, size=300)
    return pl.DataFrame({
        "fare_amount": fare,
        "trip_distance": rng.uniform(1, 15, size=300),
        "tip_amount": 0.2 * fare,
    })
