from typing import Optional, Sequence

import numpy as np
import pandas as pd

from .exceptions import DataValidationError
from .utils.logger import get_logger


class DataLoader:
    """Loads the delimited seed table, validates its schema and optionally samples rows."""

    def __init__(
        self,
        path: str,
        target_col: str = "target",
        feature_cols: Optional[Sequence[str]] = None,
        label_codes: Optional[Sequence[int]] = None,
        delimiter: str = ",",
        sample_size: Optional[int] = None,
        random_state: int = 42,
    ):
        """
        Parameters
        ----------
        path:
            Delimited file with one record per row.
        target_col:
            Integer-coded class label column.
        feature_cols:
            Feature columns to keep. Defaults to every column except the target.
        label_codes:
            Allowed label values. When given, any other value is a hard error.
        """
        self.path = path
        self.target_col = target_col
        self.feature_cols = list(feature_cols) if feature_cols else None
        self.label_codes = set(label_codes) if label_codes is not None else None
        self.delimiter = delimiter
        self.sample_size = sample_size
        self.random_state = random_state
        self.logger = get_logger(self.__class__.__name__)

    def load(self) -> pd.DataFrame:
        df = pd.read_csv(self.path, sep=self.delimiter)
        df = self.validate(df)
        if self.sample_size:
            df = df.sample(self.sample_size, random_state=self.random_state)
        return df.reset_index(drop=True)

    def validate(self, df: pd.DataFrame) -> pd.DataFrame:
        """Check the schema and coerce dtypes; raise DataValidationError on any malformed row."""
        if self.target_col not in df.columns:
            raise DataValidationError(f"Label column '{self.target_col}' not found")

        feature_cols = self.feature_cols or [c for c in df.columns if c != self.target_col]
        missing = [c for c in feature_cols if c not in df.columns]
        if missing:
            raise DataValidationError(f"Feature columns not found: {missing}")

        out = df[feature_cols + [self.target_col]].copy()

        for col in feature_cols:
            values = pd.to_numeric(out[col], errors="coerce")
            if values.isna().any():
                rows = out.index[values.isna()].tolist()[:5]
                raise DataValidationError(
                    f"Missing or non-numeric values in feature '{col}' at rows {rows}"
                )
            out[col] = values.astype(float)

        labels = pd.to_numeric(out[self.target_col], errors="coerce")
        if labels.isna().any():
            rows = out.index[labels.isna()].tolist()[:5]
            raise DataValidationError(f"Missing or non-numeric labels at rows {rows}")
        if not np.all(np.mod(labels, 1) == 0):
            raise DataValidationError("Labels must be integer codes")
        labels = labels.astype(int)

        if self.label_codes is not None:
            unexpected = sorted(set(labels.unique()) - self.label_codes)
            if unexpected:
                raise DataValidationError(
                    f"Labels {unexpected} outside expected codes {sorted(self.label_codes)}"
                )

        out[self.target_col] = labels
        self.logger.info(f"Validated {len(out):,} records with {len(feature_cols)} features")
        return out
