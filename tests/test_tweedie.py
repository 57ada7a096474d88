from types import SimpleNamespace

import numpy as np
import pytest

import zeroinfl.tweedie as tweedie
from zeroinfl.data import simulate_delta_series
from zeroinfl.errors import FitFailure, ValidationError
from zeroinfl.fitters import design_matrix
from zeroinfl.tweedie import TweedieFitter, profile_var_power, tweedie_glm


def test_fixed_power_intercept_only_is_sample_mean(five_periods):
    fitted = TweedieFitter("1", var_power=1.5).fit(five_periods)
    assert fitted.var_power == 1.5
    assert fitted.profile is None
    # log-link intercept-only MLE is the mean, zeros included
    assert fitted.predict(five_periods) == pytest.approx([8.3 / 5] * 5, rel=1e-6)


def test_profile_is_deterministic(seasonal):
    grid = [1.2, 1.4, 1.6, 1.8]
    first = profile_var_power(seasonal, "season", grid)
    second = profile_var_power(seasonal, "season", grid)
    assert first.var_power == second.var_power
    assert first.llf == second.llf
    assert first.var_power in grid
    assert list(first.table["var_power"]) == grid


def test_profile_picks_maximum(seasonal):
    result = profile_var_power(seasonal, "season", [1.2, 1.5, 1.8])
    finite = result.table[np.isfinite(result.table["llf"])]
    assert result.llf == finite["llf"].max()


def test_exact_ties_go_to_smallest_power(monkeypatch, five_periods):
    fake = SimpleNamespace(llf=-10.0)
    monkeypatch.setattr(tweedie, "fit_engine", lambda *a, **k: fake)
    monkeypatch.setattr(tweedie, "profile_scale", lambda results: (results.llf, 1.0))
    result = profile_var_power(five_periods, "1", [1.7, 1.3, 1.5])
    assert result.var_power == 1.3
    assert result.llf == -10.0


def test_failed_grid_points_are_skipped(monkeypatch, five_periods):
    def engine(model, sub_model, **kwargs):
        p = model.family.var_power
        if p < 1.5:
            raise FitFailure("nope", sub_model=sub_model)
        return SimpleNamespace(llf=-p)

    monkeypatch.setattr(tweedie, "fit_engine", engine)
    monkeypatch.setattr(tweedie, "profile_scale", lambda results: (results.llf, 1.0))
    result = profile_var_power(five_periods, "1", [1.1, 1.3, 1.5, 1.7])
    assert result.var_power == 1.5
    assert result.table["error"].notna().sum() == 2


def test_all_grid_points_failing(monkeypatch, five_periods):
    monkeypatch.setattr(tweedie, "fit_engine", lambda *a, **k: SimpleNamespace(llf=np.nan))
    monkeypatch.setattr(tweedie, "profile_scale", lambda results: (results.llf, np.nan))
    with pytest.raises(FitFailure):
        profile_var_power(five_periods, "1", [1.2, 1.4])


def test_power_out_of_range():
    with pytest.raises(ValidationError):
        TweedieFitter("1", var_power=0.5)


def test_profiled_fit_predicts_non_negative(seasonal):
    fitted = TweedieFitter("season", grid=[1.3, 1.5, 1.7]).fit(seasonal)
    assert fitted.profile is not None
    assert fitted.var_power == fitted.profile.var_power
    assert np.all(fitted.predict(seasonal) >= 0)
    assert fitted.summary()["profiled"] is True


def test_negative_input_rejected():
    import pandas as pd

    df = pd.DataFrame({"value": [1.0, -1.0]})
    with pytest.raises(ValidationError):
        TweedieFitter("1", var_power=1.5).fit(df)


def dense_profile(frame, formula, p):
    """Log-likelihood at p, maximized over a fine dispersion grid."""
    X = design_matrix(formula, frame, "tweedie")
    y = frame["value"].to_numpy(dtype=float)
    results = tweedie_glm(y, X, p).fit()
    scales = results.scale * np.exp(np.linspace(-3, 3, 2001))
    return max(results.model.family.loglike(y, results.mu, scale=s) for s in scales)


def test_profile_maximizes_over_dispersion():
    df = simulate_delta_series(n_periods=200, seed=3)
    grid = [1.1, 1.2, 1.3, 1.4, 1.5, 1.6, 1.7, 1.8, 1.9]
    result = profile_var_power(df, "season", grid)

    dense = {p: dense_profile(df, "season", p) for p in grid}
    for p, llf in zip(result.table["var_power"], result.table["llf"]):
        # the optimizer is at least as good as the grid search, and close to it
        assert llf >= dense[p] - 1e-6
        assert llf == pytest.approx(dense[p], abs=1e-3)
    assert result.var_power == max(grid, key=lambda p: (dense[p], -p))


def test_profile_beats_moment_dispersion(seasonal):
    result = profile_var_power(seasonal, "season", [1.5])
    X = design_matrix("season", seasonal, "tweedie")
    y = seasonal["value"].to_numpy(dtype=float)
    moment = tweedie_glm(y, X, 1.5).fit()
    assert result.llf >= moment.llf - 1e-8
    assert result.table["scale"].iloc[0] > 0
