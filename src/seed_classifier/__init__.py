"""
Seed Variety Classification — Modular Model Selection Pipeline

This package loads the wheat seed measurements, explores them, and tunes
k-nearest-neighbours and single-hidden-layer network classifiers with
leakage-safe stratified cross-validation, grid search and Bayesian
optimisation, then evaluates the selected models on a held-out test set.

Modules:
    config        — Load YAML configuration safely.
    data_loader   — Read and validate the delimited seed table.
    explorer      — Exploratory statistics and plots.
    splitter      — Stratified train/test split and k-fold assignment.
    preprocessor  — Range scaling, correlation pruning, label coercion.
    models        — KNN and MLP model specifications.
    metrics       — Metric registry (accuracy, kappa, ROC AUC, ...).
    workers       — Worker pool and cooperative cancellation.
    model_trainer — Fold scoring, final fit and persisted final model.
    hyper_tuner   — Grid and Bayesian search drivers, best-config selection.
    evaluator     — Test metrics, ROC curves and confusion matrix.
    pipeline      — Orchestrates all components.
    api           — FastAPI service for the persisted final model.
    utils.logger  — Unified timestamped console logger.
"""

from .config import Config
from .data_loader import DataLoader
from .explorer import DataExplorer
from .splitter import DataSplit, Fold, Resampler, Splitter
from .preprocessor import CorrelationFilter, LabelCoercer, Preprocessor, RangeScaler
from .models import KNNSpec, MLPSpec, ModelSpec, Prediction, get_model_spec
from .metrics import METRICS, MetricFunction, get_metric
from .workers import CancellationToken, WorkerPool
from .model_trainer import FinalModel, FoldResult, ModelTrainer, fit_and_score_fold
from .hyper_tuner import (
    BayesianSearch,
    GridSearch,
    HyperTuner,
    SearchStrategy,
    TuningResult,
    select_best,
    show_best,
)
from .evaluator import EvaluationReport, Evaluator
from .pipeline import PipelineRunner

__all__ = [
    "Config",
    "DataLoader",
    "DataExplorer",
    "DataSplit",
    "Fold",
    "Splitter",
    "Resampler",
    "RangeScaler",
    "CorrelationFilter",
    "LabelCoercer",
    "Preprocessor",
    "ModelSpec",
    "KNNSpec",
    "MLPSpec",
    "Prediction",
    "get_model_spec",
    "METRICS",
    "MetricFunction",
    "get_metric",
    "WorkerPool",
    "CancellationToken",
    "FoldResult",
    "FinalModel",
    "ModelTrainer",
    "fit_and_score_fold",
    "SearchStrategy",
    "GridSearch",
    "BayesianSearch",
    "HyperTuner",
    "TuningResult",
    "select_best",
    "show_best",
    "EvaluationReport",
    "Evaluator",
    "PipelineRunner",
]
