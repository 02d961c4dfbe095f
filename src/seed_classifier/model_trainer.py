import math
import os
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import joblib
import numpy as np
import pandas as pd

from .exceptions import PipelineStateError
from .metrics import MetricFunction
from .models import ModelSpec, Prediction
from .preprocessor import Preprocessor
from .splitter import Fold
from .utils.logger import get_logger
from .workers import CancellationToken, WorkerPool

logger = get_logger("ModelTrainer")


@dataclass
class FoldResult:
    """Outcome of fitting one configuration on one fold."""
    config_id: int
    fold: int
    params: dict[str, Any]
    status: str = "ok"
    scores: dict[str, float] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


@dataclass
class FinalModel:
    """Fitted preprocessing state plus the trained estimator for one configuration."""
    spec: ModelSpec
    params: dict[str, Any]
    preprocessor: Preprocessor
    estimator: Any

    @property
    def class_names(self) -> list[str]:
        return self.preprocessor.class_names

    def predict(self, df: pd.DataFrame) -> Prediction:
        X, _ = self.preprocessor.transform(df)
        return self.spec.predict(self.estimator, X, self.class_names)


def format_scores(scores: dict[str, float]) -> str:
    return ", ".join(f"{k}={v:.4f}" for k, v in scores.items())


def fit_and_score_fold(
    spec: ModelSpec,
    params: dict[str, Any],
    data: pd.DataFrame,
    fold: Fold,
    preprocessor_kwargs: dict[str, Any],
    metrics: Sequence[MetricFunction],
    config_id: int = 0,
) -> FoldResult:
    """
    Fit preprocessing + model on the fold's training rows and score the validation rows.

    Any failure while fitting or predicting is returned as a failed FoldResult
    so that one degenerate configuration cannot abort a whole search.
    """
    result = FoldResult(config_id=config_id, fold=fold.number, params=dict(params))
    try:
        train_df = data.iloc[fold.train_idx].reset_index(drop=True)
        val_df = data.iloc[fold.val_idx].reset_index(drop=True)

        # preprocessing is fit on the training rows only
        prep = Preprocessor(**preprocessor_kwargs)
        X_train, y_train = prep.fit_transform(train_df)
        X_val, y_val = prep.transform(val_df)

        estimator = spec.fit(X_train, y_train, params)
        pred = spec.predict(estimator, X_val, prep.class_names)

        y_true = np.asarray(y_val.astype(str))
        y_pred = np.asarray(pred.labels.astype(str))
        result.scores = {
            m.name: m(y_true, y_pred, pred.probabilities, prep.class_names) for m in metrics
        }
    except Exception as exc:
        result.status = "failed"
        result.error = f"{type(exc).__name__}: {exc}"
        result.scores = {m.name: math.nan for m in metrics}
        logger.warning(f"Config {config_id} fold {fold.number} failed ({result.error}) params={params}")
    return result


class ModelTrainer:
    """
    Cross-validates and refits one model configuration with leakage-safe preprocessing:
    the preprocessing state is always fit on the rows the model is trained on.

    Provides:
      - cross_validate: per-fold scores for this configuration
      - fit_final: trains on the full training set and optionally saves the model
      - predict: predictions from the final model
    """

    def __init__(
        self,
        spec: ModelSpec,
        params: dict[str, Any],
        preprocessor_kwargs: Optional[dict[str, Any]] = None,
        model_path: Optional[str] = None,
    ):
        self.spec = spec
        self.params = dict(params)
        self.preprocessor_kwargs = dict(preprocessor_kwargs or {})
        self.model_path = model_path
        self.logger = get_logger(self.__class__.__name__)
        self.final_model: FinalModel | None = None

    def cross_validate(
        self,
        data: pd.DataFrame,
        folds: Sequence[Fold],
        metrics: Sequence[MetricFunction],
        pool: Optional[WorkerPool] = None,
        config_id: int = 0,
        token: Optional[CancellationToken] = None,
    ) -> list[FoldResult]:
        pool = pool or WorkerPool(n_jobs=1)
        tasks = [
            (self.spec, self.params, data, fold, self.preprocessor_kwargs, metrics, config_id)
            for fold in folds
        ]
        results = pool.map(fit_and_score_fold, tasks, token)

        for r in results:
            if r.ok:
                self.logger.info(f"Config {config_id} fold {r.fold}/{len(folds)}: {format_scores(r.scores)}")
        return results

    def fit_final(self, train_df: pd.DataFrame) -> FinalModel:
        """Fit preprocessing + final model on the full training set; save it when a path is set."""
        prep = Preprocessor(**self.preprocessor_kwargs)
        X_train, y_train = prep.fit_transform(train_df)
        estimator = self.spec.fit(X_train, y_train, self.params)

        self.final_model = FinalModel(
            spec=self.spec,
            params=dict(self.params),
            preprocessor=prep,
            estimator=estimator,
        )
        self.logger.info(
            f"Fitted final {self.spec.name} on {len(train_df):,} records "
            f"({len(prep.feature_names_out_)} features) params={self.params}"
        )

        if self.model_path:
            os.makedirs(os.path.dirname(self.model_path) or ".", exist_ok=True)
            joblib.dump(self.final_model, self.model_path)
            self.logger.info(f"Saved model: {self.model_path}")

        return self.final_model

    def predict(self, df: pd.DataFrame) -> Prediction:
        if self.final_model is None:
            raise PipelineStateError("Call fit_final() before predict().")
        return self.final_model.predict(df)
