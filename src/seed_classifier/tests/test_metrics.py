import math

import numpy as np
import pandas as pd
import pytest

from seed_classifier.exceptions import ConfigurationError
from seed_classifier.metrics import METRICS, get_metric, get_metrics

LABELS = ["Kama", "Rosa", "Canadian"]


def _one_hot(labels):
    return pd.DataFrame([[1.0 if c == lab else 0.0 for c in LABELS] for lab in labels], columns=LABELS)


def test_perfect_predictions_score_one_everywhere():
    y = np.array(["Kama", "Rosa", "Canadian", "Kama", "Rosa", "Canadian"])
    proba = _one_hot(y)
    for name in ("accuracy", "precision", "sensitivity", "specificity", "f1", "roc_auc", "kappa"):
        assert METRICS[name](y, y, proba, LABELS) == pytest.approx(1.0), name


def test_specificity_is_macro_average_of_true_negative_rates():
    y_true = np.array(["Kama", "Kama", "Rosa", "Rosa", "Canadian", "Canadian"])
    y_pred = np.array(["Kama", "Rosa", "Rosa", "Rosa", "Canadian", "Kama"])
    # Kama: TN=3 FP=1, Rosa: TN=3 FP=1, Canadian: TN=4 FP=0
    expected = np.mean([3 / 4, 3 / 4, 1.0])
    assert get_metric("specificity")(y_true, y_pred, None, LABELS) == pytest.approx(expected)


def test_roc_auc_skips_classes_absent_from_truth():
    y_true = np.array(["Kama", "Kama", "Rosa", "Rosa"])
    proba = pd.DataFrame(
        {"Kama": [0.9, 0.6, 0.2, 0.1], "Rosa": [0.1, 0.3, 0.7, 0.8], "Canadian": [0.0, 0.1, 0.1, 0.1]}
    )
    assert get_metric("roc_auc")(y_true, y_true, proba, LABELS) == pytest.approx(1.0)


def test_log_loss_is_a_loss():
    metric = get_metric("log_loss")
    assert not metric.greater_is_better
    y = np.array(["Kama", "Rosa", "Canadian"])
    confident = metric(y, y, _one_hot(y) * 0.98 + 0.02 / 3, LABELS)
    uniform = metric(y, y, pd.DataFrame(1 / 3, index=range(3), columns=LABELS), LABELS)
    assert confident < uniform
    assert uniform == pytest.approx(math.log(3))


def test_probability_metrics_require_probabilities():
    y = np.array(["Kama", "Rosa"])
    with pytest.raises(ValueError):
        get_metric("roc_auc")(y, y, None, LABELS)


def test_recall_is_alias_of_sensitivity():
    y_true = np.array(["Kama", "Rosa", "Rosa", "Canadian"])
    y_pred = np.array(["Kama", "Kama", "Rosa", "Canadian"])
    assert get_metric("recall")(y_true, y_pred, None, LABELS) == get_metric("sensitivity")(
        y_true, y_pred, None, LABELS
    )


def test_unknown_metric_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        get_metric("brier")
    with pytest.raises(ConfigurationError):
        get_metrics(["accuracy", "nope"])


def test_log_loss_reads_probabilities_by_class_name():
    y = np.array(["Kama", "Rosa", "Canadian", "Canadian"])
    # class-ordered columns, not the alphabetical order sklearn uses internally
    proba = _one_hot(y) * 0.9 + 0.1 / 3
    expected = -math.log(0.9 + 0.1 / 3)
    assert get_metric("log_loss")(y, y, proba, LABELS) == pytest.approx(expected)


def test_macro_averages_skip_classes_absent_from_truth():
    y = np.array(["Kama", "Kama", "Rosa", "Rosa"])
    proba = _one_hot(y)
    for name in ("precision", "sensitivity", "specificity", "f1", "roc_auc"):
        assert get_metric(name)(y, y, proba, LABELS) == pytest.approx(1.0), name


def test_misses_of_present_classes_still_count():
    y_true = np.array(["Kama", "Kama", "Rosa", "Rosa"])
    y_pred = np.array(["Kama", "Canadian", "Rosa", "Rosa"])
    # Kama recall 1/2, Rosa recall 1
    assert get_metric("sensitivity")(y_true, y_pred, None, LABELS) == pytest.approx(0.75)
