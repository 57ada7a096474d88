import pandas as pd
import pytest

from zeroinfl.data import simulate_delta_series


@pytest.fixture
def five_periods():
    """Two positives (5.2, 3.1) among five periods, constant covariate."""
    return pd.DataFrame({
        "time": [1, 2, 3, 4, 5],
        "x": [1.0] * 5,
        "value": [0.0, 0.0, 5.2, 0.0, 3.1],
    })


@pytest.fixture
def all_zero():
    return pd.DataFrame({"time": [1, 2, 3, 4], "x": [1.0] * 4, "value": [0.0] * 4})


@pytest.fixture
def seasonal():
    return simulate_delta_series(n_periods=240, seed=7)


@pytest.fixture
def two_sites():
    return pd.DataFrame({
        "time": list(range(1, 13)),
        "site": ["a"] * 6 + ["b"] * 6,
        "value": [0.0, 2.0, 0.0, 3.0, 1.5, 0.0, 1.0, 0.0, 4.0, 2.0, 0.0, 5.0],
    })
