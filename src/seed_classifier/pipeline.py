import os
import warnings
from textwrap import indent
from typing import Any, Dict, Optional

from .config import Config
from .data_loader import DataLoader
from .evaluator import EvaluationReport, Evaluator
from .explorer import DataExplorer
from .exceptions import ConfigurationError
from .hyper_tuner import HyperTuner, show_best
from .metrics import DEFAULT_METRICS, get_metrics
from .model_trainer import ModelTrainer
from .models import get_model_spec
from .splitter import Resampler, Splitter
from .utils.logger import get_logger
from .workers import CancellationToken, WorkerPool


class PipelineRunner:
    """End-to-end seed variety classification pipeline.

    Steps:
      1. Load and validate the seed table
      2. Optionally summarize and plot exploratory statistics
      3. Stratified train/test split
      4. Stratified k-fold assignment over the training set
      5. Tune every enabled model (grid or Bayesian search)
      6. Select the best configuration per model
      7. Refit on the full training set and evaluate on the test set"""

    def __init__(self, config_path: Optional[str] = None, config: Optional[Config] = None):
        if config is None:
            if config_path is None:
                raise ConfigurationError("Either config_path or config is required")
            config = Config.from_yaml(config_path)
        self.config = config
        self.logger = get_logger(self.__class__.__name__)
        self.token = CancellationToken()
        self.tuners: Dict[str, HyperTuner] = {}
        warnings.filterwarnings(
            "ignore",
            message="X does not have valid feature names",
            category=UserWarning,
            module="sklearn",
        )

    def _preprocessor_kwargs(self) -> Dict[str, Any]:
        cfg = self.config
        kwargs: Dict[str, Any] = {
            "target_col": cfg.data["target_col"],
            "corr_threshold": cfg.preprocessing.get("corr_threshold", 0.9),
            "clip": cfg.preprocessing.get("clip", False),
            "label_start": cfg.data.get("label_start", 1),
        }
        if cfg.data.get("class_names"):
            kwargs["class_names"] = cfg.data["class_names"]
        return kwargs

    def cancel(self) -> None:
        """Ask in-flight searches to stop at the next unit of work."""
        self.token.cancel()

    def run(self) -> Dict[str, EvaluationReport]:
        cfg = self.config
        self.logger.info("Starting seed classification pipeline")

        target_col = cfg.data["target_col"]
        prep_kwargs = self._preprocessor_kwargs()
        class_names = prep_kwargs.get("class_names")
        label_start = prep_kwargs["label_start"]
        label_codes = (
            list(range(label_start, label_start + len(class_names))) if class_names else None
        )

        df = DataLoader(
            cfg.data["path"],
            target_col=target_col,
            feature_cols=cfg.data.get("feature_cols"),
            label_codes=label_codes,
            delimiter=cfg.data.get("delimiter", ","),
            sample_size=cfg.data.get("sample_size"),
        ).load()
        self.logger.info(f"Loaded dataset: {df.shape[0]:,} rows x {df.shape[1]} cols")

        artifacts_dir = cfg.output.get("artifacts_dir", "artifacts")
        save_plots = cfg.output.get("save_plots", True)

        if cfg.explore.get("enabled", False):
            explorer = DataExplorer(os.path.join(artifacts_dir, "eda"))
            explorer.summarize(df, target_col)
            if save_plots:
                explorer.plot(df, target_col)

        random_state = cfg.validation.get("random_state", 42)
        split = Splitter(cfg.validation.get("train_fraction", 0.7), random_state).split(df, target_col)
        folds = Resampler(cfg.validation.get("n_splits", 5), random_state).split(split.train, target_col)

        metric_names = cfg.validation.get("metrics", list(DEFAULT_METRICS))
        select_metric = cfg.validation.get("select_metric", "accuracy")
        if select_metric not in metric_names:
            raise ConfigurationError(f"select_metric '{select_metric}' is not in validation.metrics")
        metrics = get_metrics(metric_names)
        pool = WorkerPool(n_jobs=cfg.validation.get("n_jobs", 4))

        reports: Dict[str, EvaluationReport] = {}
        for name, model_cfg in cfg.models.items():
            model_cfg = model_cfg or {}
            if not model_cfg.get("enabled", True):
                self.logger.info(f"Model {name} disabled")
                continue

            spec = get_model_spec(name, random_state=random_state)
            tuner = HyperTuner.from_config(spec, model_cfg, metrics, select_metric, pool, random_state)
            best_params = tuner.tune(split.train, folds, prep_kwargs, self.token)
            self.tuners[name] = tuner

            top = show_best(tuner.result_, select_metric, n=5)
            self.logger.info(f"Top {name} configurations by {select_metric}:\n{indent(top.to_string(), ' ' * 4)}")

            model_path = None
            if cfg.output.get("model_dir"):
                model_path = os.path.join(cfg.output["model_dir"], f"{name}.joblib")
            trainer = ModelTrainer(spec, best_params, prep_kwargs, model_path=model_path)
            final_model = trainer.fit_final(split.train)
            prediction = final_model.predict(split.test)
            _, y_test = final_model.preprocessor.transform(split.test)

            metrics_dir = cfg.output.get("metrics_dir")
            evaluator = Evaluator(
                metrics_path=os.path.join(metrics_dir, f"{name}_test_metrics.json") if metrics_dir else None,
                figures_dir=artifacts_dir,
                save_plots=save_plots,
            )
            if save_plots:
                evaluator.plot_tuning(tuner.result_.summary(), select_metric, title=name)
            report = evaluator.evaluate(y_test, prediction, final_model.class_names, title=name)
            reports[name] = report

            metrics_str = indent(
                "\n".join(f"{k}: {v:.4f}" for k, v in report.metrics.items()),
                " " * 4,
            )
            self.logger.info(f"{name} test metrics:\n{metrics_str}")
            self.logger.info(f"{name} confusion matrix:\n{indent(report.confusion.to_string(), ' ' * 4)}")

        self.logger.info("Pipeline finished")
        return reports
