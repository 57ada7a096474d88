import time

import numpy as np
import pandas as pd
import pytest

from zeroinfl.errors import FitFailure, FitTimeout, PredictionError, ValidationError
from zeroinfl.fitters import GammaGLM, LogisticGLM
from zeroinfl.hurdle import CompositePrediction, HurdleModel


def test_composite_is_product_of_parts(five_periods):
    model = HurdleModel.linear("1").fit(five_periods)
    pred = model.predict(five_periods)

    assert pred.presence == pytest.approx([0.4] * 5, rel=1e-6)
    assert pred.magnitude == pytest.approx([4.15] * 5, rel=1e-6)
    assert pred.expected == pytest.approx([0.4 * 4.15] * 5, rel=1e-6)
    assert list(pred.index) == list(five_periods.index)


def test_magnitude_trained_on_positive_rows_only(five_periods):
    model = HurdleModel.linear("1").fit(five_periods)
    assert model.presence_fit.n_obs == 5
    assert model.magnitude_fit.n_obs == 2


def test_all_zero_series_fails_in_magnitude(all_zero):
    with pytest.raises(FitFailure) as info:
        HurdleModel.linear("1").fit(all_zero)
    assert info.value.sub_model == "magnitude"


def test_negative_value_fails_before_any_fit(monkeypatch):
    def boom(*args, **kwargs):
        raise AssertionError("fitting should not start")

    monkeypatch.setattr(LogisticGLM, "_fit", boom)
    monkeypatch.setattr(GammaGLM, "_fit", boom)
    df = pd.DataFrame({"time": [1, 2, 3], "value": [0.0, -1.0, 2.0]})
    with pytest.raises(ValidationError):
        HurdleModel.linear("1").fit(df)


def test_predict_requires_fit(five_periods):
    with pytest.raises(RuntimeError, match="not fit"):
        HurdleModel.linear("1").predict(five_periods)


def test_composite_is_non_negative_and_read_only(seasonal):
    pred = HurdleModel.linear("season").fit(seasonal).predict(seasonal)
    assert len(pred) == len(seasonal)
    assert np.all(pred.expected >= 0)
    assert np.all((pred.presence >= 0) & (pred.presence <= 1))
    with pytest.raises(ValueError):
        pred.expected[0] = 1.0


def test_to_frame_columns(five_periods):
    frame = HurdleModel.linear("1").fit(five_periods).predict(five_periods).to_frame()
    assert list(frame.columns) == ["p_present", "magnitude", "expected"]


def test_parallel_fit_matches_sequential(seasonal):
    seq = HurdleModel.linear("season").fit(seasonal).predict(seasonal)
    par = HurdleModel.linear("season").fit(seasonal, parallel=True).predict(seasonal)
    np.testing.assert_allclose(seq.expected, par.expected, rtol=1e-10)


def test_unseen_level_aborts_with_row(two_sites):
    model = HurdleModel.linear("C(site)").fit(two_sites)
    new = pd.DataFrame(
        {"site": ["a", "c", "b"], "value": [0.0, 0.0, 0.0]}, index=[10, 11, 12]
    )
    with pytest.raises(PredictionError) as info:
        model.predict(new)
    assert info.value.row == 11


def test_unseen_level_skipped_on_request(two_sites):
    model = HurdleModel.linear("C(site)").fit(two_sites)
    new = pd.DataFrame(
        {"site": ["a", "c", "b"], "value": [0.0, 0.0, 0.0]}, index=[10, 11, 12]
    )
    pred = model.predict(new, on_error="skip")
    assert list(pred.index) == [10, 12]
    assert np.all(pred.expected > 0)


def test_bad_on_error_value(five_periods):
    model = HurdleModel.linear("1").fit(five_periods)
    with pytest.raises(ValueError):
        model.predict(five_periods, on_error="ignore")


def test_smooth_hurdle(seasonal):
    model = HurdleModel.smooth(["season"], df=5).fit(seasonal)
    pred = model.predict(seasonal)
    assert np.all(np.isfinite(pred.expected))
    assert np.all(pred.expected >= 0)
    assert model.summary()["model"] == "hurdle_gam"


def test_mismatched_roles_rejected():
    with pytest.raises(ValueError):
        HurdleModel(GammaGLM("1"), LogisticGLM("1"))


def test_combine_rejects_out_of_range_probability():
    with pytest.raises(PredictionError) as info:
        CompositePrediction.combine(pd.Index(["a", "b"]), [0.5, 1.5], [1.0, 1.0])
    assert info.value.row == "b"


def test_looic_nan_for_likelihood_fits(five_periods):
    model = HurdleModel.linear("1").fit(five_periods)
    assert np.isnan(model.looic())


def test_parallel_failures_report_magnitude_first(monkeypatch, five_periods):
    def presence_fails(self, train, frame):
        raise FitFailure("presence broke", sub_model="presence")

    def magnitude_fails_later(self, train, frame):
        time.sleep(0.2)
        raise FitFailure("magnitude broke", sub_model="magnitude")

    monkeypatch.setattr(LogisticGLM, "_fit", presence_fails)
    monkeypatch.setattr(GammaGLM, "_fit", magnitude_fails_later)
    with pytest.raises(FitFailure) as info:
        HurdleModel.linear("1").fit(five_periods, parallel=True)
    assert info.value.sub_model == "magnitude"


def test_presence_failure_surfaces_in_parallel(monkeypatch, five_periods):
    def presence_fails(self, train, frame):
        raise FitFailure("presence broke", sub_model="presence")

    monkeypatch.setattr(LogisticGLM, "_fit", presence_fails)
    with pytest.raises(FitFailure) as info:
        HurdleModel.linear("1").fit(five_periods, parallel=True)
    assert info.value.sub_model == "presence"


def test_hurdle_timeout_names_sub_model(monkeypatch, five_periods):
    real_fit = LogisticGLM._fit

    def slow_presence(self, train, frame):
        time.sleep(0.5)
        return real_fit(self, train, frame)

    monkeypatch.setattr(LogisticGLM, "_fit", slow_presence)
    model = HurdleModel.linear("1", timeout=0.05)
    with pytest.raises(FitTimeout) as info:
        model.fit(five_periods)
    assert info.value.sub_model == "presence"
    assert not model.is_fitted
