"""Loading of per-period trip extracts into a single frame."""

from __future__ import annotations

import logging
from pathlib import Path

import polars as pl

from tip_pipeline.config import Config

logger = logging.getLogger("TipPipeline")

TRIP_SCHEMA: dict[str, pl.DataType] = {
    "VendorID": pl.Int32,
    "tpep_pickup_datetime": pl.Datetime("us"),
    "tpep_dropoff_datetime": pl.Datetime("us"),
    "passenger_count": pl.Int32,
    "trip_distance": pl.Float64,
    "RatecodeID": pl.Int32,
    "store_and_fwd_flag": pl.Utf8,
    "PULocationID": pl.Int32,
    "DOLocationID": pl.Int32,
    "payment_type": pl.Int32,
    "fare_amount": pl.Float64,
    "extra": pl.Float64,
    "mta_tax": pl.Float64,
    "tip_amount": pl.Float64,
    "tolls_amount": pl.Float64,
    "improvement_surcharge": pl.Float64,
    "total_amount": pl.Float64,
}

# TLC files are inconsistent about casing between years
_CANONICAL_NAMES = {name.lower(): name for name in TRIP_SCHEMA}


def read_table(path: str) -> pl.DataFrame:
    """Read a parquet or CSV file depending on its suffix."""
    if Path(path).suffix.lower() == ".csv":
        return pl.read_csv(path, try_parse_dates=True)
    return pl.read_parquet(path)


class TripLoader:
    """Reads trip extracts and concatenates them under one schema.

    Args:
        config: Pipeline configuration.
    """

    def __init__(self, config: Config) -> None:
        self._config = config

    def normalize(self, df: pl.DataFrame) -> pl.DataFrame:
        """Restore canonical column names, select and cast the trip schema.

        Columns outside the schema (e.g. ``airport_fee`` in later years) are
        dropped. A missing schema column or an unparsable value raises.

        Args:
            df: Frame as read from disk.

        Returns:
            Frame with exactly the ``TRIP_SCHEMA`` columns and dtypes.
        """
        df = df.rename({col: _CANONICAL_NAMES.get(col.lower(), col) for col in df.columns})
        return df.select([
            pl.col(name).cast(dtype, strict=True) for name, dtype in TRIP_SCHEMA.items()
        ])

    def load(self, paths: list[str] | None = None) -> pl.DataFrame:
        """Load every extract and concatenate them vertically.

        Args:
            paths: Files to read. Defaults to ``config.data_paths``.

        Returns:
            Concatenated DataFrame.
        """
        paths = self._config.data_paths if paths is None else paths
        if not paths:
            raise ValueError("No trip files to load")

        frames: list[pl.DataFrame] = []
        for path in paths:
            df = self.normalize(read_table(path))
            logger.info("Loaded %s (%d rows)", path, df.height)
            frames.append(df)

        df = pl.concat(frames, how="vertical")
        logger.info(
            "Concatenated %d files: %d rows, %.2f MB",
            len(frames), df.height, df.estimated_size("mb"),
        )
        return df
