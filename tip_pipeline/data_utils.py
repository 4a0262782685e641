from __future__ import annotations

import calendar
import logging
import os
import subprocess

import numpy as np
import polars as pl

logger = logging.getLogger("TipPipeline")

_BASE_URL = "https://d37ci6vzurychx.cloudfront.net/trip-data/yellow_tripdata_{}-{}.parquet"
_ZONES_URL = "https://d37ci6vzurychx.cloudfront.net/misc/taxi_zone_lookup.csv"
_ZONES_FILE = "taxi_zone_lookup.csv"
_BOROUGHS = ["Manhattan", "Brooklyn", "Queens", "Bronx", "Staten Island", "EWR"]


def _trip_filename(year: int, month: str) -> str:
    return f"yellow_tripdata_{year}-{month}.parquet"


def _fetch(url: str, filepath: str) -> None:
    logger.info("Downloading %s ...", url)
    try:
        subprocess.run(["wget", "-q", url, "-O", filepath], check=True)
    except subprocess.CalledProcessError:
        # wget leaves an empty file behind
        if os.path.exists(filepath):
            os.remove(filepath)
        raise


def download_data(months: list[str], year: int = 2017, dest_dir: str = ".") -> list[str]:
    paths: list[str] = []
    for month in months:
        filepath = os.path.join(dest_dir, _trip_filename(year, month))
        if not os.path.exists(filepath):
            _fetch(_BASE_URL.format(year, month), filepath)
        else:
            logger.info("File exists: %s", filepath)
        paths.append(filepath)
    return paths


def download_zones(dest_dir: str = ".") -> str:
    filepath = os.path.join(dest_dir, _ZONES_FILE)
    if not os.path.exists(filepath):
        _fetch(_ZONES_URL, filepath)
    return filepath


def generate_synthetic_data(
    months: list[str],
    year: int = 2017,
    dest_dir: str = ".",
    rows_per_month: int = 50_000,
    seed: int = 42,
) -> list[str]:
    """Write 2017-schema trip files with realistic tipping behaviour.

    Card payers tip nothing, a round fixed amount, or a suggested
    percentage of the fare; cash tips are not recorded. A share of rows
    carries the anomalies the cleaner removes (negative fares, zero
    passengers, out-of-year timestamps).
    """
    rng = np.random.default_rng(seed)
    paths: list[str] = []
    location_ids = np.arange(1, 264)

    for month_str in months:
        month = int(month_str)
        days_in_month = calendar.monthrange(year, month)[1]
        n = rows_per_month

        day_offsets = rng.integers(0, days_in_month, size=n)
        hour_offsets = rng.integers(0, 24, size=n)
        minute_offsets = rng.integers(0, 60, size=n)
        second_offsets = rng.integers(0, 60, size=n)

        base = np.datetime64(f"{year}-{month:02d}-01", "us")
        pickups = (
            base
            + day_offsets.astype("timedelta64[D]")
            + hour_offsets.astype("timedelta64[h]")
            + minute_offsets.astype("timedelta64[m]")
            + second_offsets.astype("timedelta64[s]")
        )

        trip_distance = rng.lognormal(mean=0.8, sigma=0.8, size=n).clip(0.0, 60)
        speed_mph = rng.normal(11, 4, size=n).clip(2, 45)
        duration_seconds = ((trip_distance / speed_mph) * 3600).astype(int).clip(30, 10800)
        dropoffs = pickups + duration_seconds.astype("timedelta64[s]")

        fare_amount = (2.50 + 2.50 * trip_distance + rng.normal(0, 1.0, size=n)).clip(2.5, 250)
        extra = rng.choice([0.0, 0.5, 1.0], size=n, p=[0.5, 0.3, 0.2])
        mta_tax = np.full(n, 0.5)
        improvement_surcharge = np.full(n, 0.3)
        tolls_amount = np.where(rng.random(n) < 0.05, rng.choice([5.76, 10.5, 15.0], size=n), 0.0)

        payment_type = rng.choice([1, 2, 3, 4], size=n, p=[0.67, 0.31, 0.01, 0.01])
        tip_kind = rng.choice(["none", "fixed", "percent"], size=n, p=[0.15, 0.25, 0.6])
        percent_tip = fare_amount * rng.choice([0.2, 0.25, 0.3], size=n)
        fixed_tip = rng.choice([1.0, 2.0, 3.0, 5.0], size=n)
        tip_amount = np.where(
            tip_kind == "percent", percent_tip, np.where(tip_kind == "fixed", fixed_tip, 0.0)
        )
        tip_amount = np.where(payment_type == 1, np.round(tip_amount, 2), 0.0)

        passenger_count = rng.choice(
            [0, 1, 2, 3, 4, 5, 6], size=n, p=[0.005, 0.7, 0.14, 0.04, 0.02, 0.06, 0.035],
        )

        anomaly_idx = rng.choice(n, size=int(n * 0.01), replace=False)
        fare_amount[anomaly_idx] = -fare_amount[anomaly_idx]
        year_shift = rng.choice(n, size=int(n * 0.001), replace=False)
        pickups[year_shift] = np.datetime64("2009-01-01T00:00:00", "us")

        total_amount = (
            fare_amount + extra + mta_tax + tip_amount + tolls_amount + improvement_surcharge
        )

        df = pl.DataFrame({
            "VendorID": rng.choice([1, 2], size=n).astype(np.int64),
            "tpep_pickup_datetime": pickups,
            "tpep_dropoff_datetime": dropoffs,
            "passenger_count": passenger_count.astype(np.int64),
            "trip_distance": trip_distance,
            "RatecodeID": rng.choice([1, 2, 3, 4, 5], size=n, p=[0.97, 0.02, 0.004, 0.003, 0.003]),
            "store_and_fwd_flag": rng.choice(["Y", "N"], size=n, p=[0.005, 0.995]),
            "PULocationID": rng.choice(location_ids, size=n),
            "DOLocationID": rng.choice(location_ids, size=n),
            "payment_type": payment_type.astype(np.int64),
            "fare_amount": fare_amount,
            "extra": extra,
            "mta_tax": mta_tax,
            "tip_amount": tip_amount,
            "tolls_amount": tolls_amount,
            "improvement_surcharge": improvement_surcharge,
            "total_amount": total_amount,
        }).sort("tpep_pickup_datetime")

        filepath = os.path.join(dest_dir, _trip_filename(year, month_str))
        df.write_parquet(filepath)
        logger.info("Generated synthetic %s (%d rows)", filepath, n)
        paths.append(filepath)

    return paths


def generate_synthetic_zones(dest_dir: str = ".", seed: int = 42) -> str:
    rng = np.random.default_rng(seed)
    ids = np.arange(1, 266)
    zones = pl.DataFrame({
        "LocationID": ids,
        "Borough": rng.choice(_BOROUGHS, size=len(ids)),
        "Zone": [f"Zone {i}" for i in ids],
        "service_zone": rng.choice(["Yellow Zone", "Boro Zone", "Airports"], size=len(ids)),
    })
    filepath = os.path.join(dest_dir, _ZONES_FILE)
    zones.write_csv(filepath)
    return filepath


def resolve_data(months: list[str], year: int = 2017, dest_dir: str = ".") -> list[str]:
    expected = [os.path.join(dest_dir, _trip_filename(year, m)) for m in months]
    if all(os.path.exists(p) for p in expected):
        logger.info("All %d data files found locally", len(expected))
        return expected

    # synthesize only what could not be fetched, real files stay untouched
    missing: list[str] = []
    for month in months:
        try:
            download_data([month], year, dest_dir)
        except (OSError, subprocess.CalledProcessError) as exc:
            logger.warning("Download of %s-%s failed (%s)", year, month, exc)
            missing.append(month)

    if missing:
        logger.warning("Generating synthetic data for months: %s", ", ".join(missing))
        generate_synthetic_data(missing, year, dest_dir)
    return expected


def resolve_zones(dest_dir: str = ".") -> str:
    filepath = os.path.join(dest_dir, _ZONES_FILE)
    if os.path.exists(filepath):
        return filepath
    try:
        return download_zones(dest_dir)
    except (OSError, subprocess.CalledProcessError) as exc:
        logger.warning("Zone lookup download failed (%s), generating synthetic zones", exc)
        return generate_synthetic_zones(dest_dir)


def write_snapshot(df: pl.DataFrame, path: str) -> None:
    """Overwrite ``path`` with a full parquet snapshot of ``df``."""
    df.write_parquet(path)
    logger.info("Wrote %s (%d rows, %d columns)", path, df.height, len(df.columns))


def read_snapshot(path: str) -> pl.DataFrame:
    df = pl.read_parquet(path)
    logger.info("Read %s (%d rows)", path, df.height)
    return df
