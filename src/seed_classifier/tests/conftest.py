import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

SEED_FEATURES = [
    "area",
    "perimeter",
    "compactness",
    "kernel_length",
    "kernel_width",
    "asymmetry",
    "groove_length",
]
CLASS_NAMES = ["Kama", "Rosa", "Canadian"]


# class centres per feature; distinct patterns keep features weakly correlated
CENTRE_PATTERNS = [
    (0, 3, 6),
    (3, 6, 0),
    (6, 0, 3),
    (0, 6, 3),
    (3, 0, 6),
    (6, 3, 0),
    (0, 0, 6),
]


def make_dataset(n_per_class: int, features: list[str], seed: int = 0, spread: float = 1.0) -> pd.DataFrame:
    """Three separated Gaussian blobs, labels coded 1..3."""
    rng = np.random.default_rng(seed)
    frames = []
    for code in (1, 2, 3):
        centre = np.array([CENTRE_PATTERNS[j][code - 1] for j in range(len(features))], dtype=float)
        values = rng.normal(loc=centre, scale=spread, size=(n_per_class, len(features)))
        frame = pd.DataFrame(values, columns=features)
        frame["target"] = code
        frames.append(frame)
    df = pd.concat(frames, ignore_index=True)
    return df.sample(frac=1.0, random_state=seed).reset_index(drop=True)


@pytest.fixture
def small_df() -> pd.DataFrame:
    # 30 records, 3 classes, 4 features
    return make_dataset(10, ["f1", "f2", "f3", "f4"], seed=1)


@pytest.fixture
def medium_df() -> pd.DataFrame:
    return make_dataset(50, ["f1", "f2", "f3", "f4"], seed=2)


@pytest.fixture
def seeds_df() -> pd.DataFrame:
    df = make_dataset(20, SEED_FEATURES, seed=3)
    df[SEED_FEATURES] = df[SEED_FEATURES].abs() + 0.1
    return df


@pytest.fixture
def prep_kwargs() -> dict:
    return {"target_col": "target", "class_names": CLASS_NAMES, "label_start": 1}
