"""Agreement between predictions and observations, per candidate model.

The report is advisory: it is ordered for reading, it does not pick a
winner, and a single in-sample correlation is no substitute for proper
held-out validation.
"""

import math
from dataclasses import asdict, dataclass

import numpy as np
import pandas as pd

from zeroinfl.errors import ValidationError


@dataclass(frozen=True)
class ComparisonRecord:
    model_name: str
    score: float  # Pearson correlation, predicted vs observed
    rmse: float
    mae: float
    looic: float = float("nan")
    n_obs: int = 0


def correlation(observed, predicted):
    """Pearson r; NaN when either side is constant."""
    observed = np.asarray(observed, dtype=float)
    predicted = np.asarray(predicted, dtype=float)
    if len(observed) < 2:
        return float("nan")
    if np.ptp(observed) == 0 or np.ptp(predicted) == 0:
        return float("nan")
    return float(np.corrcoef(observed, predicted)[0, 1])


def score_model(name, observed, predicted, looic=float("nan")):
    observed = np.asarray(observed, dtype=float).reshape(-1)
    predicted = np.asarray(predicted, dtype=float).reshape(-1)
    if observed.shape != predicted.shape:
        raise ValidationError(
            f"{name}: {len(predicted)} predictions for {len(observed)} observations"
        )
    if len(observed) == 0:
        raise ValidationError(f"{name}: nothing to compare")
    residuals = observed - predicted
    return ComparisonRecord(
        model_name=name,
        score=correlation(observed, predicted),
        rmse=float(np.sqrt(np.mean(residuals ** 2))),
        mae=float(np.mean(np.abs(residuals))),
        looic=float(looic),
        n_obs=len(observed),
    )


def _sort_key(record):
    # Highest correlation first, undefined correlations last, then by name
    missing = math.isnan(record.score)
    return (missing, 0.0 if missing else -record.score, record.model_name)


def compare_models(observed, predictions, looic=None):
    """Score every candidate against the same observations.

    Parameters
    ----------
    observed : array-like or pd.Series
        Observed values.
    predictions : dict
        model name -> predicted values. A pd.Series (or CompositePrediction
        frame column) indexed like `observed` is aligned by label, so
        candidates that skipped rows are scored on the rows they kept.
    looic : dict or None
        Optional model name -> LOOIC.

    Returns
    -------
    list of ComparisonRecord, ordered by score (descending, NaN last).
    """
    looic = looic or {}
    records = []
    for name, predicted in predictions.items():
        obs = observed
        if isinstance(observed, pd.Series) and isinstance(predicted, pd.Series):
            obs = observed.loc[predicted.index]
        records.append(score_model(name, obs, predicted, looic.get(name, float("nan"))))
    return sorted(records, key=_sort_key)


def comparison_table(records):
    """Records as a DataFrame, in the order given."""
    columns = list(ComparisonRecord.__dataclass_fields__)
    return pd.DataFrame([asdict(r) for r in records], columns=columns)
