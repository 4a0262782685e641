from tip_pipeline.cleaner import TripCleaner, iqr_trim
from tip_pipeline.config import Config
from tip_pipeline.loader import TripLoader
from tip_pipeline.splitter import StratifiedSplitter
from tip_pipeline.trainer import ModelResult, ModelTrainer

__all__ = [
    "Config",
    "TripLoader",
    "TripCleaner",
    "iqr_trim",
    "StratifiedSplitter",
    "ModelTrainer",
    "ModelResult",
]
