from dataclasses import dataclass

import numpy as np
import pandas as pd
from sklearn.model_selection import StratifiedKFold, train_test_split

from .exceptions import ConfigurationError, StratificationError
from .utils.logger import get_logger


@dataclass(frozen=True)
class DataSplit:
    """Disjoint training and test partitions of one dataset."""
    train: pd.DataFrame
    test: pd.DataFrame


@dataclass(frozen=True)
class Fold:
    """Positional row indices of one cross-validation fold over the training set."""
    number: int
    train_idx: np.ndarray
    val_idx: np.ndarray


class Splitter:
    """Stratified train/test partitioning with a fixed seed."""

    def __init__(self, train_fraction: float = 0.7, random_state: int = 42):
        if not 0.0 < train_fraction < 1.0:
            raise ConfigurationError(f"train_fraction must be in (0, 1), got {train_fraction}")
        self.train_fraction = train_fraction
        self.random_state = random_state
        self.logger = get_logger(self.__class__.__name__)

    def split(self, df: pd.DataFrame, target_col: str) -> DataSplit:
        counts = df[target_col].value_counts()
        too_small = counts[counts < 2]
        if not too_small.empty:
            raise StratificationError(
                f"Classes {too_small.index.tolist()} have fewer than 2 members; cannot stratify"
            )

        n_classes = len(counts)
        # round, not floor: 30 * 0.7 is 20.999... in floating point
        n_train = int(round(len(df) * self.train_fraction))
        n_test = len(df) - n_train
        if n_test < n_classes or n_train < n_classes:
            raise StratificationError(
                f"A {self.train_fraction:.0%} split of {len(df)} records cannot hold "
                f"all {n_classes} classes in both subsets"
            )

        train_df, test_df = train_test_split(
            df,
            train_size=n_train,
            stratify=df[target_col],
            random_state=self.random_state,
        )
        self.logger.info(f"Split {len(df):,} records into train={len(train_df):,}, test={len(test_df):,}")
        return DataSplit(train=train_df.reset_index(drop=True), test=test_df.reset_index(drop=True))


class Resampler:
    """Stratified k-fold assignment over a training set."""

    def __init__(self, n_splits: int = 5, random_state: int = 42):
        if n_splits < 2:
            raise ConfigurationError(f"n_splits must be at least 2, got {n_splits}")
        self.n_splits = n_splits
        self.random_state = random_state

    def split(self, df: pd.DataFrame, target_col: str) -> list[Fold]:
        smallest = int(df[target_col].value_counts().min())
        if self.n_splits > smallest:
            raise ConfigurationError(
                f"n_splits={self.n_splits} exceeds the smallest class size ({smallest})"
            )

        skf = StratifiedKFold(n_splits=self.n_splits, shuffle=True, random_state=self.random_state)
        y = df[target_col].to_numpy()
        return [
            Fold(number=i, train_idx=train_idx, val_idx=val_idx)
            for i, (train_idx, val_idx) in enumerate(skf.split(np.zeros(len(y)), y), start=1)
        ]
