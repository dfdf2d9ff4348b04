"""
Public API surface for the local_linear_grf package.
"""
__version__ = "0.1.0"

from .config import DEFAULT_LAMBDA_PATH, PredictionConfig, TrainingConfig
from .data import Dataset
from .forest import Forest, train_forest
from .model import LocalLinearForest, predict_ll_forest, train_ll_forest
from .prediction import PredictionResult, predict, predict_oob, tune_ll_lambda

__all__ = [
    "DEFAULT_LAMBDA_PATH",
    "Dataset",
    "Forest",
    "LocalLinearForest",
    "PredictionConfig",
    "PredictionResult",
    "TrainingConfig",
    "predict",
    "predict_ll_forest",
    "predict_oob",
    "train_forest",
    "train_ll_forest",
    "tune_ll_lambda",
]
