"""Taxi zone lookup and per drop-off zone tip aggregates."""

from __future__ import annotations

import logging

import polars as pl

logger = logging.getLogger("TipPipeline")


def load_zones(path: str) -> pl.DataFrame:
    """Read the TLC zone lookup (LocationID, Borough, Zone, service_zone)."""
    zones = pl.read_csv(path)
    return zones.with_columns(pl.col("LocationID").cast(pl.Int32))


def enrich_zones(
    zones: pl.DataFrame,
    trips: pl.DataFrame,
    tip_column: str = "tip_amount",
) -> pl.DataFrame:
    """Attach mean tip and trip count per drop-off zone.

    Zones without any drop-off keep null ``mean_tip`` and a zero count.

    Args:
        zones: Zone lookup.
        trips: Cleaned trips with ``DOLocationID``.
        tip_column: Column averaged per zone.

    Returns:
        Zone lookup with ``mean_tip`` and ``trip_count`` columns.
    """
    per_zone = (
        trips.group_by("DOLocationID")
        .agg([
            pl.col(tip_column).mean().alias("mean_tip"),
            pl.len().cast(pl.Int64).alias("trip_count"),
        ])
        .with_columns(pl.col("DOLocationID").cast(pl.Int32))
    )
    enriched = (
        zones.join(per_zone, left_on="LocationID", right_on="DOLocationID", how="left")
        .with_columns(pl.col("trip_count").fill_null(0))
        .sort("LocationID")
    )
    logger.info(
        "Zones with drop-offs: %d of %d",
        enriched.filter(pl.col("trip_count") > 0).height, enriched.height,
    )
    return enriched
