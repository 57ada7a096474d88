"""Models for zero-inflated time series.

Modules:
  data: Observation, loading, presence labels, simulation
  fitters: presence / magnitude sub-models (GLM, GAM)
  bayes: random-intercept sub-models (NumPyro NUTS)
  hurdle: two-part model and composite prediction
  tweedie: single-distribution Tweedie fit with profile likelihood
  baselines: drop-zeros and log(y + c) comparisons
  compare: correlation / RMSE / LOOIC report
  pipeline: fit and compare every candidate
  plots: matplotlib figures
"""

from zeroinfl.errors import (  # noqa: F401
    FitFailure,
    FitTimeout,
    PredictionError,
    ValidationError,
    ZeroInflError,
)
from zeroinfl.data import Observation, with_presence  # noqa: F401
from zeroinfl.hurdle import CompositePrediction, HurdleModel  # noqa: F401
from zeroinfl.tweedie import TweedieFitter, profile_var_power  # noqa: F401
from zeroinfl.compare import ComparisonRecord, compare_models  # noqa: F401
from zeroinfl.pipeline import run_comparison  # noqa: F401

__version__ = "0.1.0"

__all__ = [
    "FitFailure",
    "FitTimeout",
    "PredictionError",
    "ValidationError",
    "ZeroInflError",
    "Observation",
    "with_presence",
    "CompositePrediction",
    "HurdleModel",
    "TweedieFitter",
    "profile_var_power",
    "ComparisonRecord",
    "compare_models",
    "run_comparison",
]
