import json
import os
import time
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from sklearn.metrics import auc, confusion_matrix, roc_curve
from sklearn.preprocessing import label_binarize

from .metrics import DEFAULT_METRICS, get_metrics
from .models import Prediction
from .utils.logger import get_logger


@dataclass
class EvaluationReport:
    """Test-set metrics, one-vs-rest ROC points and the confusion table."""
    metrics: Dict[str, float]
    roc_curves: pd.DataFrame
    confusion: pd.DataFrame
    figures: Dict[str, str] = field(default_factory=dict)


class Evaluator:
    """Evaluate multiclass predictions, save metrics JSON plus ROC and confusion-matrix plots."""

    def __init__(
        self,
        metrics_path: Optional[str] = None,
        figures_dir: str = "artifacts",
        metric_names: Sequence[str] = DEFAULT_METRICS + ("f1", "log_loss"),
        save_plots: bool = True,
        verbose: bool = True,
    ):
        self.metrics_path = metrics_path
        self.figures_dir = figures_dir
        self.metric_fns = get_metrics(metric_names)
        self.save_plots = save_plots
        self.verbose = verbose
        self.logger = get_logger(self.__class__.__name__)

    @staticmethod
    def roc_curves(y_true: np.ndarray, proba: pd.DataFrame, class_names: Sequence[str]) -> pd.DataFrame:
        """One-vs-rest ROC points per class; classes without both outcomes are skipped."""
        y_bin = label_binarize(y_true, classes=list(class_names))
        if len(class_names) == 2:
            y_bin = np.hstack([1 - y_bin, y_bin])

        frames = []
        for i, cls in enumerate(class_names):
            positives = y_bin[:, i]
            if positives.min() == positives.max():
                continue
            fpr, tpr, thresholds = roc_curve(positives, proba[cls].to_numpy())
            frames.append(
                pd.DataFrame({"class": cls, "fpr": fpr, "tpr": tpr, "threshold": thresholds})
            )
        if not frames:
            return pd.DataFrame(columns=["class", "fpr", "tpr", "threshold"])
        return pd.concat(frames, ignore_index=True)

    @staticmethod
    def confusion(y_true: np.ndarray, y_pred: np.ndarray, class_names: Sequence[str]) -> pd.DataFrame:
        """Counts with true classes as rows and predicted classes as columns."""
        cm = confusion_matrix(y_true, y_pred, labels=list(class_names))
        return pd.DataFrame(
            cm,
            index=pd.Index(class_names, name="truth"),
            columns=pd.Index(class_names, name="prediction"),
        )

    def _stamp(self) -> str:
        return time.strftime("%Y%m%d_%H%M%S")

    def _plot_confusion_matrix(self, cm: pd.DataFrame, title: str, normalize: bool = True) -> str:
        """Plot confusion matrix and save to figures_dir. Returns saved path."""
        values = cm.to_numpy()
        if normalize:
            values = values.astype(float)
            row_sums = values.sum(axis=1, keepdims=True)
            row_sums[row_sums == 0] = 1.0
            values = values / row_sums

        plt.figure(figsize=(6, 5))
        sns.heatmap(
            values,
            annot=True,
            fmt=".2f" if normalize else "d",
            cmap="Blues",
            xticklabels=cm.columns.tolist(),
            yticklabels=cm.index.tolist(),
        )
        plt.xlabel("Predicted")
        plt.ylabel("Actual")
        plt.title(f"Confusion Matrix - {title}" + (" (Normalized)" if normalize else ""))

        os.makedirs(self.figures_dir, exist_ok=True)
        path = os.path.join(self.figures_dir, f"confusion_matrix_{title}_{self._stamp()}.png")

        plt.tight_layout()
        plt.savefig(path, dpi=200)
        plt.close()

        if self.verbose:
            self.logger.info(f"Saved confusion matrix: {path}")
        return path

    def _plot_roc_curves(self, curves: pd.DataFrame, title: str) -> str:
        plt.figure(figsize=(6, 5))
        for cls, points in curves.groupby("class", sort=False):
            area = auc(points["fpr"], points["tpr"])
            plt.plot(points["fpr"], points["tpr"], label=f"{cls} (AUC = {area:.3f})")
        plt.plot([0, 1], [0, 1], "k--", linewidth=0.8)
        plt.xlabel("False Positive Rate")
        plt.ylabel("True Positive Rate")
        plt.title(f"ROC Curves (one-vs-rest) - {title}")
        plt.legend(loc="lower right")

        os.makedirs(self.figures_dir, exist_ok=True)
        path = os.path.join(self.figures_dir, f"roc_curves_{title}_{self._stamp()}.png")

        plt.tight_layout()
        plt.savefig(path, dpi=200)
        plt.close()

        if self.verbose:
            self.logger.info(f"Saved ROC curves: {path}")
        return path

    def plot_tuning(self, summary: pd.DataFrame, metric: str, title: str = "model") -> str:
        """Mean CV score (with standard error) per evaluated configuration."""
        points = summary.loc[summary["metric"] == metric].sort_values("config_id")

        plt.figure(figsize=(8, 4))
        plt.errorbar(
            points["config_id"],
            points["mean"],
            yerr=points["std_err"].fillna(0.0),
            fmt="o",
            markersize=4,
            capsize=2,
        )
        plt.xlabel("Configuration")
        plt.ylabel(f"Mean CV {metric}")
        plt.title(f"Tuning - {title}")

        os.makedirs(self.figures_dir, exist_ok=True)
        path = os.path.join(self.figures_dir, f"tuning_{title}_{metric}_{self._stamp()}.png")

        plt.tight_layout()
        plt.savefig(path, dpi=200)
        plt.close()

        if self.verbose:
            self.logger.info(f"Saved tuning plot: {path}")
        return path

    def evaluate(
        self,
        y_true: pd.Series,
        prediction: Prediction,
        class_names: Sequence[str],
        title: str = "model",
    ) -> EvaluationReport:
        """Compute the metric suite, ROC points and confusion table; save JSON and plots."""
        class_names = list(class_names)
        y_true = np.asarray(pd.Series(y_true).astype(str))
        y_pred = np.asarray(prediction.labels.astype(str))
        proba = prediction.probabilities

        metrics: Dict[str, float] = {
            m.name: m(y_true, y_pred, proba, class_names) for m in self.metric_fns
        }
        curves = self.roc_curves(y_true, proba, class_names)
        cm = self.confusion(y_true, y_pred, class_names)
        report = EvaluationReport(metrics=metrics, roc_curves=curves, confusion=cm)

        if self.metrics_path:
            os.makedirs(os.path.dirname(self.metrics_path) or ".", exist_ok=True)
            payload = {
                "metrics": metrics,
                "confusion_matrix": {
                    "labels": class_names,
                    "counts": cm.to_numpy().tolist(),
                },
            }
            with open(self.metrics_path, "w") as f:
                json.dump(payload, f, indent=4)
            if self.verbose:
                self.logger.info(f"Saved metrics: {self.metrics_path}")

        if self.save_plots:
            report.figures["confusion_matrix"] = self._plot_confusion_matrix(cm, title, normalize=False)
            if not curves.empty:
                report.figures["roc_curves"] = self._plot_roc_curves(curves, title)

        return report
