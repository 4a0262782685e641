"""Batch pipeline predicting NYC yellow-taxi tips.

Two stages with file hand-off: ``prepare`` loads and cleans the monthly
extracts, enriches the zone lookup and writes parquet snapshots; ``train``
reloads the ML-ready snapshot, splits it, cross-validates several regressors
and scores the best one on the untouched test split.
"""

from __future__ import annotations

import argparse
import logging
import os

from tip_pipeline.cleaner import TripCleaner
from tip_pipeline.config import Config
from tip_pipeline.data_utils import read_snapshot, resolve_data, resolve_zones, write_snapshot
from tip_pipeline.loader import TripLoader
from tip_pipeline.splitter import StratifiedSplitter
from tip_pipeline.trainer import ModelTrainer, comparison_table, rank_results
from tip_pipeline.zones import enrich_zones, load_zones

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("TipPipeline")


def prepare(config: Config) -> None:
    """Load, clean and persist the trip and zone snapshots."""
    df = TripLoader(config).load()

    cleaner = TripCleaner(config)
    clean_df = cleaner.clean(df)
    write_snapshot(clean_df, config.clean_data_path)

    zones = enrich_zones(load_zones(config.zones_path), clean_df, config.target_column)
    write_snapshot(zones, config.zones_save_path)

    write_snapshot(cleaner.to_ml_frame(clean_df), config.ml_data_path)


def train(config: Config) -> dict[str, float]:
    """Compare models on the ML-ready snapshot and evaluate the best one."""
    df = read_snapshot(config.ml_data_path)

    splitter = StratifiedSplitter(config)
    train_df, test_df = splitter.split(df)

    trainer = ModelTrainer(config)

    logger.info("=" * 60)
    logger.info("STAGE 1: Hyperparameter tuning")
    logger.info("=" * 60)
    trainer.tune_hyperparameters(train_df, splitter)

    logger.info("=" * 60)
    logger.info("STAGE 2: Cross-validated model comparison")
    logger.info("=" * 60)
    results = trainer.cross_validate(train_df, splitter)
    logger.info("Model comparison:\n%s", comparison_table(results))

    best = rank_results(results)[0]
    logger.info("=" * 60)
    logger.info("FINAL EVALUATION of %s on test split", best.name)
    logger.info("=" * 60)
    metrics = trainer.evaluate_holdout(best.model, test_df)
    logger.info(
        "Test MAE=%.4f, RMSE=%.4f, R2=%.4f",
        metrics["mae"], metrics["rmse"], metrics["r2"],
    )

    trainer.save(best, results, metrics)
    return metrics


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--stage", choices=["prepare", "train", "all"], default="all")
    parser.add_argument("--months", nargs="+", default=["01", "02", "03"])
    parser.add_argument("--data-dir", default=os.path.dirname(os.path.abspath(__file__)))
    parser.add_argument("--n-jobs", type=int, default=-1)
    parser.add_argument("--n-trials", type=int, default=20)
    return parser.parse_args(argv)


def run_pipeline(argv: list[str] | None = None) -> None:
    """Orchestrate the requested pipeline stages."""
    args = parse_args(argv)
    data_dir = args.data_dir

    config = Config(
        n_jobs=args.n_jobs,
        n_trials=args.n_trials,
        clean_data_path=os.path.join(data_dir, "trips_clean.parquet"),
        zones_save_path=os.path.join(data_dir, "zones_enriched.parquet"),
        ml_data_path=os.path.join(data_dir, "trips_ml.parquet"),
        model_save_path=os.path.join(data_dir, "best_model.pkl"),
        comparison_save_path=os.path.join(data_dir, "model_comparison.csv"),
        config_save_path=os.path.join(data_dir, "config.json"),
    )

    if args.stage in ("prepare", "all"):
        config.data_paths = resolve_data(args.months, config.year, dest_dir=data_dir)
        config.zones_path = resolve_zones(dest_dir=data_dir)
        prepare(config)

    if args.stage in ("train", "all"):
        train(config)

    logger.info("Pipeline complete.")


if __name__ == "__main__":
    run_pipeline()
