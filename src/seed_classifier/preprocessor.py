from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator, TransformerMixin
from sklearn.preprocessing import MinMaxScaler

from .exceptions import DataValidationError, PipelineStateError
from .utils.logger import get_logger

DEFAULT_CLASS_NAMES = ("Kama", "Rosa", "Canadian")


class RangeScaler(BaseEstimator, TransformerMixin):
    """Min-max scale every feature to [0, 1] using bounds observed at fit time."""

    def __init__(self, clip: bool = False):
        self.clip = clip

    def fit(self, X: pd.DataFrame, y=None) -> "RangeScaler":
        self.columns_ = list(X.columns)
        self.scaler_ = MinMaxScaler(feature_range=(0, 1), clip=self.clip).fit(X)
        return self

    def _check_fitted(self) -> None:
        if not hasattr(self, "scaler_"):
            raise PipelineStateError("RangeScaler must be fit before transform")

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        self._check_fitted()
        values = self.scaler_.transform(X[self.columns_])
        return pd.DataFrame(values, columns=self.columns_, index=X.index)

    def inverse_transform(self, X: pd.DataFrame) -> pd.DataFrame:
        """Map scaled values back to original units; accepts any subset of the fitted columns."""
        self._check_fitted()
        cols = list(X.columns)
        scale = pd.Series(self.scaler_.scale_, index=self.columns_)[cols]
        offset = pd.Series(self.scaler_.min_, index=self.columns_)[cols]
        return (X - offset) / scale


class CorrelationFilter(BaseEstimator, TransformerMixin):
    """
    Drop features until no retained pair has |Pearson r| above ``threshold``.

    Pairs are visited in column order. For the first offending pair, the
    member with the higher mean absolute correlation to the other retained
    features is dropped; on a tie the later column goes. Correlations are
    recomputed over the retained set after every drop.
    """

    def __init__(self, threshold: float = 0.9):
        self.threshold = threshold

    @staticmethod
    def _mean_abs_corr(corr: pd.DataFrame, col: str, retained: list[str]) -> float:
        others = [c for c in retained if c != col]
        if not others:
            return 0.0
        return float(corr.loc[col, others].mean())

    def _first_offending_pair(self, corr: pd.DataFrame, retained: list[str]) -> Optional[tuple[str, str]]:
        for i, a in enumerate(retained):
            for b in retained[i + 1:]:
                if corr.loc[a, b] > self.threshold:
                    return a, b
        return None

    def fit(self, X: pd.DataFrame, y=None) -> "CorrelationFilter":
        # constant columns have undefined correlation; treat them as uncorrelated
        corr = X.corr(method="pearson").abs().fillna(0.0)
        retained = list(X.columns)
        dropped: list[str] = []

        pair = self._first_offending_pair(corr, retained)
        while pair is not None:
            a, b = pair
            mean_a = self._mean_abs_corr(corr, a, retained)
            mean_b = self._mean_abs_corr(corr, b, retained)
            if np.isclose(mean_a, mean_b) or mean_b > mean_a:
                drop = b
            else:
                drop = a
            retained.remove(drop)
            dropped.append(drop)
            pair = self._first_offending_pair(corr, retained)

        self.correlation_ = corr
        self.retained_ = retained
        self.dropped_ = dropped
        return self

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        if not hasattr(self, "retained_"):
            raise PipelineStateError("CorrelationFilter must be fit before transform")
        return X[self.retained_]


class LabelCoercer(BaseEstimator, TransformerMixin):
    """Map integer label codes onto an ordered categorical of class names."""

    def __init__(self, class_names: Sequence[str] = DEFAULT_CLASS_NAMES, label_start: int = 1):
        self.class_names = class_names
        self.label_start = label_start

    def fit(self, y: pd.Series, X=None) -> "LabelCoercer":
        self.categories_ = list(self.class_names)
        self.codes_ = list(range(self.label_start, self.label_start + len(self.categories_)))
        return self

    def _check_fitted(self) -> None:
        if not hasattr(self, "categories_"):
            raise PipelineStateError("LabelCoercer must be fit before transform")

    def transform(self, y: pd.Series) -> pd.Series:
        self._check_fitted()
        y = pd.Series(y)
        invalid = ~y.isin(self.codes_)
        if invalid.any():
            raise DataValidationError(
                f"Label values {sorted(y[invalid].unique().tolist())} outside expected codes {self.codes_}"
            )
        mapping = dict(zip(self.codes_, self.categories_))
        labels = pd.Categorical(y.map(mapping), categories=self.categories_, ordered=True)
        return pd.Series(labels, index=y.index, name=y.name)

    def inverse_transform(self, labels: pd.Series) -> pd.Series:
        self._check_fitted()
        mapping = dict(zip(self.categories_, self.codes_))
        return pd.Series(labels, copy=False).astype(object).map(mapping).astype(int)


class Preprocessor:
    """Fit-once, apply-many preprocessing: range scaling, correlation pruning, label coercion."""

    def __init__(
        self,
        target_col: str = "target",
        corr_threshold: float = 0.9,
        clip: bool = False,
        class_names: Sequence[str] = DEFAULT_CLASS_NAMES,
        label_start: int = 1,
        verbose: bool = False,
    ):
        """
        Parameters
        ----------
        target_col:
            Label column; every other column is treated as a numeric feature.
        corr_threshold:
            Absolute Pearson correlation above which one feature of a pair is dropped.
        clip:
            Whether scaled values outside the fitted range are clipped to [0, 1].
        class_names:
            Ordered variety names; the i-th name corresponds to code ``label_start + i``.
        verbose:
            If True, logs the features dropped at fit time.
        """
        self.target_col = target_col
        self.corr_threshold = corr_threshold
        self.clip = clip
        self.class_names = list(class_names)
        self.label_start = label_start
        self.verbose = verbose
        self.logger = get_logger(self.__class__.__name__)
        self.steps: Optional[list[tuple[str, TransformerMixin]]] = None
        self.label_step: Optional[LabelCoercer] = None
        self.feature_names_in_: Optional[list[str]] = None

    def build(self) -> list[tuple[str, TransformerMixin]]:
        """Build (but do not fit) the ordered feature steps."""
        return [
            ("scale", RangeScaler(clip=self.clip)),
            ("prune", CorrelationFilter(threshold=self.corr_threshold)),
        ]

    @property
    def is_fitted(self) -> bool:
        return self.steps is not None

    @property
    def feature_names_out_(self) -> list[str]:
        if not self.is_fitted:
            raise PipelineStateError("Preprocessor has not been fit")
        return list(dict(self.steps)["prune"].retained_)

    def _features(self, df: pd.DataFrame) -> pd.DataFrame:
        cols = self.feature_names_in_ or [c for c in df.columns if c != self.target_col]
        missing = [c for c in cols if c not in df.columns]
        if missing:
            raise DataValidationError(f"Feature columns not found: {missing}")
        return df[cols]

    def fit(self, df: pd.DataFrame) -> "Preprocessor":
        self.feature_names_in_ = None
        X = self._features(df)
        steps = self.build()
        for _, step in steps:
            X = step.fit_transform(X)

        label_step = LabelCoercer(self.class_names, self.label_start).fit(df[self.target_col])
        label_step.transform(df[self.target_col])

        self.feature_names_in_ = [c for c in df.columns if c != self.target_col]
        self.steps = steps
        self.label_step = label_step

        if self.verbose:
            dropped = dict(steps)["prune"].dropped_
            self.logger.info(f"Retained features={list(X.columns)}, dropped={dropped}")
        return self

    def transform(self, df: pd.DataFrame) -> tuple[pd.DataFrame, Optional[pd.Series]]:
        """Apply the frozen state. The label is returned only when the target column is present."""
        if not self.is_fitted:
            raise PipelineStateError("Preprocessor.fit() must be called before transform()")
        X = self._features(df)
        for _, step in self.steps:
            X = step.transform(X)
        y = self.label_step.transform(df[self.target_col]) if self.target_col in df.columns else None
        return X, y

    def fit_transform(self, df: pd.DataFrame) -> tuple[pd.DataFrame, Optional[pd.Series]]:
        return self.fit(df).transform(df)

    def inverse_scale(self, X: pd.DataFrame) -> pd.DataFrame:
        if not self.is_fitted:
            raise PipelineStateError("Preprocessor has not been fit")
        return dict(self.steps)["scale"].inverse_transform(X)
