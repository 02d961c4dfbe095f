import numpy as np
import pandas as pd
import pytest

from seed_classifier.exceptions import DataValidationError, PipelineStateError
from seed_classifier.preprocessor import CorrelationFilter, LabelCoercer, Preprocessor, RangeScaler


def _make_small_X():
    return pd.DataFrame(
        {
            "area": [10.0, 15.0, 20.0, 12.5],
            "compactness": [0.80, 0.85, 0.90, 0.88],
            "asymmetry": [1.0, 5.0, 3.0, 2.0],
        }
    )


def test_range_scaler_maps_min_to_zero_and_max_to_one():
    X = _make_small_X()
    Xt = RangeScaler().fit_transform(X)

    assert np.allclose(Xt.min(), 0.0)
    assert np.allclose(Xt.max(), 1.0)
    assert list(Xt.columns) == list(X.columns)


def test_range_scaler_inverse_recovers_original_values():
    X = _make_small_X()
    scaler = RangeScaler().fit(X)
    restored = scaler.inverse_transform(scaler.transform(X))
    np.testing.assert_allclose(restored.to_numpy(), X.to_numpy())

    # subset of columns also round-trips
    subset = scaler.transform(X)[["asymmetry"]]
    np.testing.assert_allclose(scaler.inverse_transform(subset)["asymmetry"], X["asymmetry"])


def test_range_scaler_extrapolates_unless_clipped():
    X = _make_small_X()
    outside = pd.DataFrame({"area": [25.0], "compactness": [0.75], "asymmetry": [3.0]})

    scaled = RangeScaler().fit(X).transform(outside)
    assert scaled.loc[0, "area"] == pytest.approx(1.5)
    assert scaled.loc[0, "compactness"] == pytest.approx(-0.5)

    clipped = RangeScaler(clip=True).fit(X).transform(outside)
    assert clipped.loc[0, "area"] == pytest.approx(1.0)
    assert clipped.loc[0, "compactness"] == pytest.approx(0.0)


def test_correlation_filter_keeps_everything_below_threshold():
    rng = np.random.default_rng(0)
    X = pd.DataFrame(rng.normal(size=(200, 4)), columns=list("abcd"))

    filt = CorrelationFilter(threshold=0.9).fit(X)

    assert filt.dropped_ == []
    assert list(filt.transform(X).columns) == list("abcd")


def test_correlation_filter_drops_exactly_one_of_perfectly_correlated_pair():
    rng = np.random.default_rng(1)
    X = pd.DataFrame(rng.normal(size=(100, 3)), columns=["a", "b", "c"])
    X["b_twice"] = 2.0 * X["b"] + 1.0

    filt = CorrelationFilter(threshold=0.9).fit(X)

    assert len(filt.dropped_) == 1
    # tie on mean correlation: the later column goes
    assert filt.dropped_ == ["b_twice"]
    assert list(filt.transform(X).columns) == ["a", "b", "c"]


def test_correlation_filter_drops_feature_most_correlated_with_the_rest():
    rng = np.random.default_rng(2)
    n = 2000
    base = rng.normal(size=n)
    # x and hub exceed the threshold; hub is also closer to y and w
    X = pd.DataFrame(
        {
            "x": base + rng.normal(scale=0.3, size=n),
            "hub": base,
            "y": base + rng.normal(scale=0.6, size=n),
            "w": base + rng.normal(scale=0.6, size=n),
            "z": rng.normal(size=n),
        }
    )
    filt = CorrelationFilter(threshold=0.9).fit(X)
    assert "hub" in filt.dropped_
    assert "x" not in filt.dropped_


def test_correlation_filter_treats_constant_columns_as_uncorrelated():
    X = pd.DataFrame({"a": [1.0, 2.0, 3.0, 4.0], "const": [5.0] * 4})
    filt = CorrelationFilter().fit(X)
    assert filt.dropped_ == []


def test_label_coercer_maps_codes_to_ordered_names():
    y = pd.Series([1, 3, 2, 1], name="target")
    labels = LabelCoercer(["Kama", "Rosa", "Canadian"], label_start=1).fit(y).transform(y)

    assert labels.tolist() == ["Kama", "Canadian", "Rosa", "Kama"]
    assert labels.cat.ordered
    assert labels.cat.categories.tolist() == ["Kama", "Rosa", "Canadian"]


def test_label_coercer_rejects_unknown_codes():
    coercer = LabelCoercer(["Kama", "Rosa", "Canadian"], label_start=1).fit(pd.Series([1]))
    with pytest.raises(DataValidationError, match="outside expected codes"):
        coercer.transform(pd.Series([1, 0, 4]))


def test_label_coercer_inverse_round_trips():
    coercer = LabelCoercer(["A", "B"], label_start=0).fit(pd.Series([0, 1]))
    codes = pd.Series([1, 0, 1])
    assert coercer.inverse_transform(coercer.transform(codes)).tolist() == [1, 0, 1]


def test_transform_before_fit_is_an_error(small_df):
    with pytest.raises(PipelineStateError):
        Preprocessor().transform(small_df)
    with pytest.raises(PipelineStateError):
        RangeScaler().transform(small_df)
    with pytest.raises(PipelineStateError):
        CorrelationFilter().transform(small_df)


def test_preprocessor_apply_is_independent_of_the_frame_rows_come_from(small_df, prep_kwargs):
    fit_part = small_df.iloc[:20]
    other_part = small_df.iloc[15:]

    prep = Preprocessor(**prep_kwargs).fit(fit_part)
    X_fit, y_fit = prep.transform(fit_part)
    X_other, y_other = prep.transform(other_part)

    shared = fit_part.index.intersection(other_part.index)
    pd.testing.assert_frame_equal(X_fit.loc[shared], X_other.loc[shared])
    assert y_fit.loc[shared].tolist() == y_other.loc[shared].tolist()


def test_preprocessor_state_is_frozen_from_fit_data(small_df, prep_kwargs):
    train, other = small_df.iloc[:20], small_df.iloc[20:]
    prep = Preprocessor(**prep_kwargs).fit(train)
    X_train, _ = prep.transform(train)

    assert np.allclose(X_train.min(), 0.0) and np.allclose(X_train.max(), 1.0)
    # other rows use the training bounds, not their own
    X_other, _ = prep.transform(other)
    expected = (other["f1"] - train["f1"].min()) / (train["f1"].max() - train["f1"].min())
    np.testing.assert_allclose(X_other["f1"], expected)


def test_preprocessor_prunes_correlated_feature_and_inverts_scaling(small_df, prep_kwargs):
    df = small_df.copy()
    df.insert(1, "f1_copy", df["f1"] * 3.0)

    prep = Preprocessor(verbose=True, **prep_kwargs).fit(df)
    X, y = prep.transform(df)

    assert "f1_copy" not in X.columns
    assert prep.feature_names_out_ == list(X.columns)
    restored = prep.inverse_scale(X)
    np.testing.assert_allclose(restored["f1"], df["f1"])
    assert y.tolist()[:3] == [["Kama", "Rosa", "Canadian"][c - 1] for c in df["target"][:3]]


def test_preprocessor_transform_without_target_returns_no_labels(small_df, prep_kwargs):
    prep = Preprocessor(**prep_kwargs).fit(small_df)
    X, y = prep.transform(small_df.drop(columns=["target"]))
    assert y is None
    assert len(X) == len(small_df)


def test_preprocessor_fit_rejects_bad_labels(small_df, prep_kwargs):
    df = small_df.copy()
    df.loc[0, "target"] = 9
    with pytest.raises(DataValidationError):
        Preprocessor(**prep_kwargs).fit(df)
