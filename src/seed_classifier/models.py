"""
Model specifications: declarative descriptors of the tunable classifier families.

Each spec turns a resolved hyperparameter dict into a scikit-learn estimator,
and knows its default grid and its Optuna search space. Any estimator with
``fit``/``predict_proba``/``classes_`` can stand behind a spec.
"""

from __future__ import annotations

import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable

import numpy as np
import optuna
import pandas as pd
from sklearn.exceptions import ConvergenceWarning
from sklearn.base import BaseEstimator, ClassifierMixin
from sklearn.neighbors import KNeighborsClassifier, NearestNeighbors
from sklearn.neural_network import MLPClassifier

from .exceptions import ConfigurationError


@dataclass
class Prediction:
    """Hard class predictions plus one probability column per class."""
    labels: pd.Series
    probabilities: pd.DataFrame


def triangular_weights(u: np.ndarray) -> np.ndarray:
    return 1.0 - u


def epanechnikov_weights(u: np.ndarray) -> np.ndarray:
    return 0.75 * (1.0 - u ** 2)


def biweight_weights(u: np.ndarray) -> np.ndarray:
    return (15.0 / 16.0) * (1.0 - u ** 2) ** 2


def gaussian_weights(u: np.ndarray) -> np.ndarray:
    return np.exp(-0.5 * u ** 2)


KERNELS: dict[str, Callable[[np.ndarray], np.ndarray]] = {
    "triangular": triangular_weights,
    "epanechnikov": epanechnikov_weights,
    "biweight": biweight_weights,
    "gaussian": gaussian_weights,
}

# rectangular and inv are sklearn's own weightings; the rest are kernels
WEIGHT_FUNCTIONS: dict[str, str | Callable[[np.ndarray], np.ndarray]] = {
    "rectangular": "uniform",
    "inv": "distance",
    **KERNELS,
}


class KernelKNeighborsClassifier(ClassifierMixin, BaseEstimator):
    """
    k-nearest-neighbours vote weighted by a kernel of the scaled distance.

    Distances to the k voters are divided by the distance to the (k+1)-th
    neighbour, so the farthest voter keeps a positive weight. When the
    training set has no (k+1)-th row the k-th distance is used instead.
    """

    def __init__(self, n_neighbors: int = 5, kernel: str = "triangular", p: int = 2):
        self.n_neighbors = n_neighbors
        self.kernel = kernel
        self.p = p

    def fit(self, X, y):
        X = np.asarray(X, dtype=float)
        if self.n_neighbors > len(X):
            raise ValueError(
                f"Expected n_neighbors <= n_samples, got n_neighbors={self.n_neighbors}, n_samples={len(X)}"
            )
        self.classes_, self.y_codes_ = np.unique(np.asarray(y), return_inverse=True)
        self.nn_ = NearestNeighbors(n_neighbors=min(self.n_neighbors + 1, len(X)), p=self.p).fit(X)
        return self

    def predict_proba(self, X) -> np.ndarray:
        distances, indices = self.nn_.kneighbors(np.asarray(X, dtype=float))
        k = self.n_neighbors
        scale = distances[:, -1:].copy()
        scale[scale == 0] = 1.0
        weights = KERNELS[self.kernel](np.clip(distances[:, :k] / scale, 0.0, 1.0))
        # all-zero rows fall back to a plain vote
        weights = np.where(weights.sum(axis=1, keepdims=True) > 0, weights, 1.0)

        votes = self.y_codes_[indices[:, :k]]
        proba = np.zeros((len(distances), len(self.classes_)))
        for c in range(len(self.classes_)):
            proba[:, c] = (weights * (votes == c)).sum(axis=1)
        return proba / proba.sum(axis=1, keepdims=True)

    def predict(self, X) -> np.ndarray:
        return self.classes_[self.predict_proba(X).argmax(axis=1)]


class ModelSpec(ABC):
    """Common classifier capability shared by every model family."""

    name: str = ""
    param_names: tuple[str, ...] = ()

    def __init__(self, random_state: int = 42):
        self.random_state = random_state

    @abstractmethod
    def build(self, params: dict[str, Any]) -> Any:
        """Return an unfitted estimator for a fully resolved configuration."""

    @abstractmethod
    def default_grid(self) -> dict[str, list[Any]]:
        """Discrete values per hyperparameter for grid search."""

    @abstractmethod
    def suggest(self, trial: optuna.Trial) -> dict[str, Any]:
        """Search space for Bayesian optimisation."""

    def check_params(self, params: dict[str, Any]) -> None:
        missing = [p for p in self.param_names if p not in params]
        unknown = [p for p in params if p not in self.param_names]
        if missing or unknown:
            raise ValueError(f"{self.name}: missing params {missing}, unknown params {unknown}")

    def fit(self, X: pd.DataFrame, y: pd.Series, params: dict[str, Any]) -> Any:
        estimator = self.build(params)
        estimator.fit(X.to_numpy(), np.asarray(y.astype(str)))
        return estimator

    def predict(self, estimator: Any, X: pd.DataFrame, class_names: list[str]) -> Prediction:
        """Predict labels and per-class probabilities, with columns ordered as ``class_names``."""
        proba = estimator.predict_proba(X.to_numpy())
        probabilities = pd.DataFrame(0.0, index=X.index, columns=class_names)
        for i, cls in enumerate(estimator.classes_):
            probabilities[cls] = proba[:, i]
        # argmax over the class-ordered frame keeps ties deterministic
        labels = pd.Series(
            pd.Categorical(probabilities.idxmax(axis=1), categories=class_names, ordered=True),
            index=X.index,
            name="prediction",
        )
        return Prediction(labels=labels, probabilities=probabilities)


class KNNSpec(ModelSpec):
    """k-nearest-neighbours vote with a kernel weighting and a Minkowski distance exponent."""

    name = "knn"
    param_names = ("neighbors", "weight_func", "dist_power")

    def build(self, params: dict[str, Any]) -> KNeighborsClassifier | KernelKNeighborsClassifier:
        self.check_params(params)
        neighbors = int(params["neighbors"])
        dist_power = int(params["dist_power"])
        weight_func = params["weight_func"]
        if neighbors < 1:
            raise ValueError(f"neighbors must be >= 1, got {neighbors}")
        if dist_power < 1:
            raise ValueError(f"dist_power must be >= 1, got {dist_power}")
        if weight_func not in WEIGHT_FUNCTIONS:
            raise ValueError(
                f"Unknown weight_func '{weight_func}'; choose from {sorted(WEIGHT_FUNCTIONS)}"
            )
        if weight_func in KERNELS:
            return KernelKNeighborsClassifier(n_neighbors=neighbors, kernel=weight_func, p=dist_power)
        return KNeighborsClassifier(
            n_neighbors=neighbors,
            weights=WEIGHT_FUNCTIONS[weight_func],
            p=dist_power,
        )

    def default_grid(self) -> dict[str, list[Any]]:
        return {
            "neighbors": [1, 3, 5, 7, 9],
            "weight_func": ["rectangular", "triangular", "inv"],
            "dist_power": [1, 2],
        }

    def suggest(self, trial: optuna.Trial) -> dict[str, Any]:
        return {
            "neighbors": trial.suggest_int("neighbors", 1, 15),
            "weight_func": trial.suggest_categorical("weight_func", sorted(WEIGHT_FUNCTIONS)),
            "dist_power": trial.suggest_int("dist_power", 1, 3),
        }


class MLPSpec(ModelSpec):
    """
    Single-hidden-layer feed-forward network with an L2 penalty.

    ``epochs`` caps the lbfgs solver's iterations (``max_iter``). lbfgs is
    full-batch, so these are optimiser steps over all training rows rather
    than minibatch epochs.
    """

    name = "mlp"
    param_names = ("epochs", "hidden_units", "penalty")

    def build(self, params: dict[str, Any]) -> MLPClassifier:
        self.check_params(params)
        epochs = int(params["epochs"])
        hidden_units = int(params["hidden_units"])
        penalty = float(params["penalty"])
        if epochs < 1 or hidden_units < 1:
            raise ValueError(f"epochs and hidden_units must be >= 1, got {epochs}, {hidden_units}")
        if penalty < 0:
            raise ValueError(f"penalty must be non-negative, got {penalty}")
        return MLPClassifier(
            hidden_layer_sizes=(hidden_units,),
            activation="logistic",
            solver="lbfgs",
            alpha=penalty,
            max_iter=epochs,
            random_state=self.random_state,
        )

    def fit(self, X: pd.DataFrame, y: pd.Series, params: dict[str, Any]) -> MLPClassifier:
        # a capped epoch count is a tuning choice, not a failure
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", category=ConvergenceWarning)
            return super().fit(X, y, params)

    def default_grid(self) -> dict[str, list[Any]]:
        return {
            "epochs": [100, 500],
            "hidden_units": [2, 5, 10],
            "penalty": [1e-4, 1e-2, 1e-1],
        }

    def suggest(self, trial: optuna.Trial) -> dict[str, Any]:
        return {
            "epochs": trial.suggest_int("epochs", 10, 1000, log=True),
            "hidden_units": trial.suggest_int("hidden_units", 1, 10),
            "penalty": trial.suggest_float("penalty", 1e-10, 1.0, log=True),
        }


MODEL_SPECS: dict[str, type[ModelSpec]] = {
    KNNSpec.name: KNNSpec,
    MLPSpec.name: MLPSpec,
}


def get_model_spec(name: str, random_state: int = 42) -> ModelSpec:
    try:
        return MODEL_SPECS[name](random_state=random_state)
    except KeyError:
        raise ConfigurationError(
            f"Unknown model '{name}'; available: {sorted(MODEL_SPECS)}"
        ) from None
