import math
from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

import numpy as np
import optuna
import pandas as pd
from optuna.trial import FrozenTrial, TrialState
from sklearn.model_selection import ParameterGrid

from .exceptions import ConfigurationError, NoSuccessfulScoresError, SearchCancelledError
from .metrics import MetricFunction, get_metric
from .model_trainer import FoldResult, ModelTrainer, fit_and_score_fold, format_scores
from .models import ModelSpec
from .splitter import Fold
from .utils.logger import get_logger
from .workers import CancellationToken, WorkerPool


class TuningResult:
    """All fold-level score attempts of one search, in evaluation order."""

    def __init__(self, model_name: str, metric_names: Sequence[str], fold_results: Optional[list[FoldResult]] = None):
        self.model_name = model_name
        self.metric_names = list(metric_names)
        self.fold_results: list[FoldResult] = []
        self.configs: dict[int, dict[str, Any]] = {}
        for r in fold_results or []:
            self.add(r)

    def add(self, result: FoldResult) -> None:
        self.fold_results.append(result)
        self.configs.setdefault(result.config_id, dict(result.params))

    def extend(self, results: Sequence[FoldResult]) -> None:
        for r in results:
            self.add(r)

    @property
    def n_attempts(self) -> int:
        return len(self.fold_results)

    @property
    def n_failed(self) -> int:
        return sum(not r.ok for r in self.fold_results)

    def to_frame(self) -> pd.DataFrame:
        """Long metric table: one row per (config_id, fold, metric); failed folds carry NaN."""
        rows = [
            {
                "config_id": r.config_id,
                "fold": r.fold,
                "status": r.status,
                "metric": name,
                "value": r.scores.get(name, math.nan),
            }
            for r in self.fold_results
            for name in self.metric_names
        ]
        return pd.DataFrame(rows, columns=["config_id", "fold", "status", "metric", "value"])

    def summary(self) -> pd.DataFrame:
        """Mean score per configuration and metric over the successful folds."""
        long = self.to_frame()
        if long.empty:
            return pd.DataFrame(columns=["config_id", "metric", "mean", "n", "std_err"])
        grouped = long.groupby(["config_id", "metric"], sort=True)["value"]
        summary = grouped.agg(mean="mean", n="count", std="std").reset_index()
        summary["std_err"] = summary["std"] / np.sqrt(summary["n"].where(summary["n"] > 0))
        summary = summary.drop(columns="std")

        params = pd.DataFrame.from_dict(self.configs, orient="index")
        params.index.name = "config_id"
        return summary.merge(params.reset_index(), on="config_id", how="left")


def select_best(result: TuningResult, metric: str) -> dict[str, Any]:
    """
    Return the params of the configuration with the best mean ``metric``.

    Higher is better unless the metric is a loss. Ties go to the configuration
    evaluated first.
    """
    if metric not in result.metric_names:
        raise ConfigurationError(
            f"Metric '{metric}' was not evaluated; available: {result.metric_names}"
        )
    metric_fn = get_metric(metric)
    summary = result.summary()
    means = summary.loc[summary["metric"] == metric].set_index("config_id")["mean"].dropna()
    if means.empty:
        raise NoSuccessfulScoresError(f"No successful '{metric}' scores for {result.model_name}")
    best_id = means.idxmax() if metric_fn.greater_is_better else means.idxmin()
    return dict(result.configs[best_id])


def show_best(result: TuningResult, metric: str, n: int = 5) -> pd.DataFrame:
    """Top-n configurations by mean ``metric``."""
    if metric not in result.metric_names:
        raise ConfigurationError(f"Metric '{metric}' was not evaluated")
    summary = result.summary()
    ranked = summary.loc[summary["metric"] == metric].dropna(subset=["mean"])
    ranked = ranked.sort_values(
        "mean", ascending=not get_metric(metric).greater_is_better, kind="mergesort"
    )
    return ranked.head(n).reset_index(drop=True)


class SearchStrategy(ABC):
    """A way of proposing configurations and scoring them on every fold."""

    def __init__(
        self,
        metrics: Sequence[MetricFunction],
        pool: Optional[WorkerPool] = None,
    ):
        if not metrics:
            raise ConfigurationError("At least one metric is required")
        self.metrics = list(metrics)
        self.pool = pool or WorkerPool()
        self.logger = get_logger(self.__class__.__name__)

    @abstractmethod
    def search(
        self,
        spec: ModelSpec,
        data: pd.DataFrame,
        folds: Sequence[Fold],
        preprocessor_kwargs: dict[str, Any],
        token: Optional[CancellationToken] = None,
    ) -> TuningResult:
        ...

    def _new_result(self, spec: ModelSpec) -> TuningResult:
        return TuningResult(spec.name, [m.name for m in self.metrics])


class GridSearch(SearchStrategy):
    """Exhaustive search over the Cartesian product of discrete hyperparameter values."""

    def __init__(
        self,
        metrics: Sequence[MetricFunction],
        grid: Optional[dict[str, Sequence[Any]]] = None,
        pool: Optional[WorkerPool] = None,
    ):
        super().__init__(metrics, pool)
        self.grid = grid

    def configurations(self, spec: ModelSpec) -> list[dict[str, Any]]:
        grid = self.grid or spec.default_grid()
        grid = {k: list(v) if isinstance(v, (list, tuple)) else [v] for k, v in grid.items()}
        return list(ParameterGrid(grid))

    def search(
        self,
        spec: ModelSpec,
        data: pd.DataFrame,
        folds: Sequence[Fold],
        preprocessor_kwargs: dict[str, Any],
        token: Optional[CancellationToken] = None,
    ) -> TuningResult:
        configs = self.configurations(spec)
        self.logger.info(
            f"Grid search for {spec.name}: {len(configs)} configurations x {len(folds)} folds "
            f"on {self.pool.n_jobs} workers"
        )

        result = self._new_result(spec)
        if token is not None:
            token.raise_if_cancelled()

        tasks = (
            (spec, params, data, fold, preprocessor_kwargs, self.metrics, config_id)
            for config_id, params in enumerate(configs, start=1)
            for fold in folds
        )
        for fold_result in self.pool.imap(fit_and_score_fold, tasks, token):
            result.add(fold_result)
            if fold_result.ok:
                self.logger.info(
                    f"Config {fold_result.config_id} fold {fold_result.fold}/{len(folds)}: "
                    f"{format_scores(fold_result.scores)}"
                )

        self.logger.info(
            f"Grid search finished: {result.n_attempts} fold fits, {result.n_failed} failed"
        )
        return result


class _NoImprovementStopper:
    """Stop a study after ``patience`` non-improving trials past the initial random phase."""

    def __init__(self, n_initial: int, patience: int, maximize: bool):
        self.n_initial = n_initial
        self.patience = patience
        self.maximize = maximize
        self.best: Optional[float] = None
        self.stale = 0

    def __call__(self, study: optuna.Study, trial: FrozenTrial) -> None:
        value = trial.value if trial.state == TrialState.COMPLETE else None
        improved = value is not None and (
            self.best is None or (value > self.best if self.maximize else value < self.best)
        )
        if improved:
            self.best = value
            self.stale = 0
        elif trial.number >= self.n_initial:
            self.stale += 1
        if self.stale >= self.patience:
            study.stop()


class BayesianSearch(SearchStrategy):
    """Sequential model-based search with Optuna's TPE sampler."""

    def __init__(
        self,
        metrics: Sequence[MetricFunction],
        optimise_metric: str = "accuracy",
        pool: Optional[WorkerPool] = None,
        n_initial: int = 5,
        n_iter: int = 50,
        no_improve: Optional[int] = 10,
        random_state: int = 42,
    ):
        super().__init__(metrics, pool)
        if optimise_metric not in [m.name for m in self.metrics]:
            raise ConfigurationError(
                f"optimise_metric '{optimise_metric}' must be one of the evaluated metrics"
            )
        if n_initial < 1 or n_iter < 0:
            raise ConfigurationError(f"Invalid n_initial={n_initial} / n_iter={n_iter}")
        self.optimise_metric = get_metric(optimise_metric)
        self.n_initial = n_initial
        self.n_iter = n_iter
        self.no_improve = no_improve
        self.random_state = random_state
        self.study_: Optional[optuna.Study] = None
        optuna.logging.set_verbosity(optuna.logging.WARNING)

    def search(
        self,
        spec: ModelSpec,
        data: pd.DataFrame,
        folds: Sequence[Fold],
        preprocessor_kwargs: dict[str, Any],
        token: Optional[CancellationToken] = None,
    ) -> TuningResult:
        self.logger.info(
            f"Bayesian search for {spec.name}: {self.n_initial} initial + up to {self.n_iter} "
            f"iterations, {len(folds)}-fold CV, optimising {self.optimise_metric.name}"
        )
        result = self._new_result(spec)
        maximize = self.optimise_metric.greater_is_better

        sampler = optuna.samplers.TPESampler(n_startup_trials=self.n_initial, seed=self.random_state)
        study = optuna.create_study(direction="maximize" if maximize else "minimize", sampler=sampler)

        def objective(trial: optuna.Trial) -> float:
            if token is not None and token.cancelled:
                study.stop()
                raise SearchCancelledError(f"Bayesian search for {spec.name} cancelled")

            params = spec.suggest(trial)
            trainer = ModelTrainer(spec, params, preprocessor_kwargs)
            fold_results = trainer.cross_validate(
                data, folds, self.metrics, pool=self.pool, config_id=trial.number + 1, token=token
            )
            result.extend(fold_results)

            values = [
                r.scores[self.optimise_metric.name]
                for r in fold_results
                if r.ok and not math.isnan(r.scores[self.optimise_metric.name])
            ]
            if not values:
                return float("nan")
            return float(np.mean(values))

        callbacks = []
        if self.no_improve is not None:
            callbacks.append(_NoImprovementStopper(self.n_initial, self.no_improve, maximize))

        study.optimize(objective, n_trials=self.n_initial + self.n_iter, callbacks=callbacks)
        self.study_ = study

        self.logger.info(
            f"Bayesian search finished: {len(study.trials)} trials, "
            f"{result.n_attempts} fold fits, {result.n_failed} failed"
        )
        return result


class HyperTuner:
    """Runs one search strategy for one model spec and selects the best configuration."""

    STRATEGIES = ("grid", "bayes")

    def __init__(self, spec: ModelSpec, strategy: SearchStrategy, select_metric: str = "accuracy"):
        self.spec = spec
        self.strategy = strategy
        self.select_metric = select_metric
        self.logger = get_logger(self.__class__.__name__)
        self.result_: TuningResult | None = None
        self.best_params_: dict[str, Any] | None = None
        self.best_value_: float | None = None

    @classmethod
    def from_config(
        cls,
        spec: ModelSpec,
        model_cfg: dict[str, Any],
        metrics: Sequence[MetricFunction],
        select_metric: str,
        pool: WorkerPool,
        random_state: int = 42,
    ) -> "HyperTuner":
        name = model_cfg.get("strategy", "grid")
        if name == "grid":
            strategy: SearchStrategy = GridSearch(metrics, grid=model_cfg.get("grid"), pool=pool)
        elif name == "bayes":
            strategy = BayesianSearch(
                metrics,
                optimise_metric=select_metric,
                pool=pool,
                n_initial=model_cfg.get("n_initial", 5),
                n_iter=model_cfg.get("n_iter", 50),
                no_improve=model_cfg.get("no_improve", 10),
                random_state=random_state,
            )
        else:
            raise ConfigurationError(f"Unknown search strategy '{name}'; choose from {cls.STRATEGIES}")
        return cls(spec, strategy, select_metric)

    def tune(
        self,
        data: pd.DataFrame,
        folds: Sequence[Fold],
        preprocessor_kwargs: dict[str, Any],
        token: Optional[CancellationToken] = None,
    ) -> dict[str, Any]:
        """Run the search and return the best parameters for ``select_metric``."""
        result = self.strategy.search(self.spec, data, folds, preprocessor_kwargs, token)
        self.result_ = result
        self.best_params_ = select_best(result, self.select_metric)

        best = show_best(result, self.select_metric, n=1)
        self.best_value_ = float(best.loc[0, "mean"])

        self.logger.info(f"Best CV {self.select_metric}: {self.best_value_:.4f}")
        self.logger.info(f"Best parameters: {self.best_params_}")
        return dict(self.best_params_)
