"""Metric registry for multiclass evaluation; macro-averaged where a per-class score exists."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.metrics import (
    accuracy_score,
    cohen_kappa_score,
    confusion_matrix,
    f1_score,
    log_loss,
    precision_score,
    recall_score,
    roc_auc_score,
)

from .exceptions import ConfigurationError

MetricFn = Callable[[np.ndarray, np.ndarray, Optional[pd.DataFrame], Sequence[str]], float]


@dataclass(frozen=True)
class MetricFunction:
    name: str
    func: MetricFn
    needs_proba: bool = False
    greater_is_better: bool = True

    def __call__(self, y_true, y_pred, proba: Optional[pd.DataFrame], labels: Sequence[str]) -> float:
        if self.needs_proba and proba is None:
            raise ValueError(f"Metric '{self.name}' requires class probabilities")
        return float(self.func(np.asarray(y_true), np.asarray(y_pred), proba, list(labels)))


def _present(y_true, labels) -> list[str]:
    # per-class macro averages skip classes that never occur in y_true
    return [cls for cls in labels if np.any(y_true == cls)]


def _accuracy(y_true, y_pred, proba, labels) -> float:
    return accuracy_score(y_true, y_pred)


def _precision(y_true, y_pred, proba, labels) -> float:
    present = _present(y_true, labels)
    if not present:
        return float("nan")
    return precision_score(y_true, y_pred, labels=present, average="macro", zero_division=0)


def _sensitivity(y_true, y_pred, proba, labels) -> float:
    present = _present(y_true, labels)
    if not present:
        return float("nan")
    return recall_score(y_true, y_pred, labels=present, average="macro", zero_division=0)


def _specificity(y_true, y_pred, proba, labels) -> float:
    cm = confusion_matrix(y_true, y_pred, labels=labels)
    total = cm.sum()
    present = set(_present(y_true, labels))
    scores = []
    for i, cls in enumerate(labels):
        if cls not in present:
            continue
        tp = cm[i, i]
        fp = cm[:, i].sum() - tp
        fn = cm[i, :].sum() - tp
        tn = total - tp - fp - fn
        if tn + fp > 0:
            scores.append(tn / (tn + fp))
    return float(np.mean(scores)) if scores else float("nan")


def _f1(y_true, y_pred, proba, labels) -> float:
    present = _present(y_true, labels)
    if not present:
        return float("nan")
    return f1_score(y_true, y_pred, labels=present, average="macro", zero_division=0)


def _roc_auc(y_true, y_pred, proba, labels) -> float:
    # one-vs-rest per class; a class that is universal in y_true has no negatives
    aucs = []
    for cls in _present(y_true, labels):
        positives = y_true == cls
        if positives.all():
            continue
        aucs.append(roc_auc_score(positives.astype(int), proba[cls].to_numpy()))
    return float(np.mean(aucs)) if aucs else float("nan")


def _kappa(y_true, y_pred, proba, labels) -> float:
    return cohen_kappa_score(y_true, y_pred, labels=labels)


def _log_loss(y_true, y_pred, proba, labels) -> float:
    # sklearn reads probability columns in sorted label order
    ordered = sorted(labels)
    return log_loss(y_true, proba[ordered].to_numpy(), labels=ordered)


METRICS: dict[str, MetricFunction] = {
    "accuracy": MetricFunction("accuracy", _accuracy),
    "precision": MetricFunction("precision", _precision),
    "sensitivity": MetricFunction("sensitivity", _sensitivity),
    "recall": MetricFunction("recall", _sensitivity),
    "specificity": MetricFunction("specificity", _specificity),
    "f1": MetricFunction("f1", _f1),
    "roc_auc": MetricFunction("roc_auc", _roc_auc, needs_proba=True),
    "kappa": MetricFunction("kappa", _kappa),
    "log_loss": MetricFunction("log_loss", _log_loss, needs_proba=True, greater_is_better=False),
}

DEFAULT_METRICS = ("accuracy", "precision", "sensitivity", "specificity", "roc_auc", "kappa")


def get_metric(name: str) -> MetricFunction:
    try:
        return METRICS[name]
    except KeyError:
        raise ConfigurationError(f"Unknown metric '{name}'; available: {sorted(METRICS)}") from None


def get_metrics(names: Sequence[str]) -> list[MetricFunction]:
    return [get_metric(name) for name in names]
