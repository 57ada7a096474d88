import numpy as np
import pandas as pd
import pytest

from zeroinfl.bayes import covariate_matrix, encode_groups
from zeroinfl.config import SamplerConfig
from zeroinfl.data import simulate_delta_series
from zeroinfl.errors import PredictionError, ValidationError
from zeroinfl.hurdle import HurdleModel


def test_group_encoding_follows_levels():
    df = pd.DataFrame({"group": ["b", "a", "b"]})
    assert encode_groups(df, "group", ["a", "b"]).tolist() == [1, 0, 1]


def test_unseen_group_is_prediction_error():
    df = pd.DataFrame({"group": ["a", "z"]}, index=[5, 6])
    with pytest.raises(PredictionError) as info:
        encode_groups(df, "group", ["a", "b"])
    assert info.value.row == 6


def test_covariates_must_be_complete():
    df = pd.DataFrame({"x": [1.0, np.nan]})
    with pytest.raises(ValidationError):
        covariate_matrix(df, ["x"])
    assert covariate_matrix(df.iloc[:1], []).shape == (1, 0)


@pytest.mark.slow
def test_random_effects_hurdle():
    df = simulate_delta_series(n_periods=120, n_groups=3, seed=2)
    sampler = SamplerConfig(num_warmup=200, num_samples=200, num_chains=1, seed=0)
    model = HurdleModel.random_effects(["season"], "group", sampler=sampler).fit(df)

    pred = model.predict(df)
    assert np.all((pred.presence > 0) & (pred.presence < 1))
    assert np.all(pred.magnitude > 0)
    # posterior mean magnitude should be in the neighbourhood of the truth (4.0)
    assert 1.0 < float(np.mean(pred.magnitude)) < 16.0

    assert np.isfinite(model.looic())
    summary = model.summary()
    assert summary["presence"]["groups"] == 3

    new = df.iloc[:2].assign(group=["g0", "g9"])
    with pytest.raises(PredictionError):
        model.predict(new)
