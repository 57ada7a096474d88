"""Loading, validating and simulating zero-inflated series.

Every function here returns a new frame; inputs are never modified in place.
"""

import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

import numpy as np
import pandas as pd

from zeroinfl.errors import ValidationError

PRESENCE_COL = "is_present"


@dataclass(frozen=True)
class Observation:
    """One period of the series."""

    time_index: Any
    value: float
    covariates: Dict[str, Any] = field(default_factory=dict, hash=False)

    @property
    def is_present(self):
        return self.value > 0


def to_frame(observations, value_col="value", time_col="time"):
    """Tabulate Observations, one row each, in the given order."""
    rows = []
    for obs in observations:
        row = {time_col: obs.time_index}
        row.update(obs.covariates)
        row[value_col] = obs.value
        rows.append(row)
    return pd.DataFrame(rows, columns=_ordered_columns(rows, time_col, value_col))


def _ordered_columns(rows, time_col, value_col):
    cols = [time_col]
    for row in rows:
        for key in row:
            if key not in cols and key != value_col:
                cols.append(key)
    cols.append(value_col)
    return cols


def from_frame(frame, value_col="value", time_col="time"):
    """Inverse of `to_frame`. The presence column, if any, is dropped."""
    covariate_cols = [
        c for c in frame.columns if c not in (value_col, time_col, PRESENCE_COL)
    ]
    observations = []
    for _, row in frame.iterrows():
        observations.append(
            Observation(
                time_index=row[time_col] if time_col in frame.columns else row.name,
                value=float(row[value_col]),
                covariates={c: row[c] for c in covariate_cols},
            )
        )
    return tuple(observations)


def load_series(path, time_col="time", value_col="value", parse_dates=True,
                min_rows=14):
    """Read a CSV series and sort it by time.

    Parameters
    ----------
    path : str or Path
        CSV file with one row per period.
    time_col, value_col : str
        Names of the period column and the measured value.
    parse_dates : bool
        Parse `time_col` as dates. Integer period labels are left alone
        when False.
    min_rows : int
        Warn below this many rows.
    """
    path = Path(path)
    df = pd.read_csv(path)
    print(f"Loaded {len(df)} rows from {path.name}")

    missing = [c for c in (time_col, value_col) if c not in df.columns]
    if missing:
        raise ValidationError(f"{path.name} is missing columns {missing}")
    if parse_dates:
        try:
            df[time_col] = pd.to_datetime(df[time_col])
        except (ValueError, TypeError) as exc:
            raise ValidationError(f"{path.name}: cannot parse {time_col!r} as dates: {exc}") from exc

    if len(df) < min_rows:
        warnings.warn(
            f"Only {len(df)} data points. "
            f"Recommend at least {min_rows} for meaningful inference."
        )

    return df.sort_values(time_col, kind="mergesort").reset_index(drop=True)


def _value_array(frame, value_col):
    if value_col not in frame.columns:
        raise ValidationError(f"value column {value_col!r} not found")
    values = frame[value_col]
    if pd.api.types.is_bool_dtype(values) or not pd.api.types.is_numeric_dtype(values):
        raise ValidationError(
            f"value column {value_col!r} must be numeric, got {values.dtype}"
        )
    return values.to_numpy(dtype=float)


def with_presence(frame, value_col="value"):
    """Return a copy of `frame` with the derived `is_present` column.

    Raises ValidationError on negative, infinite or missing values, naming
    the rows.
    """
    values = _value_array(frame, value_col)

    missing = np.isnan(values)
    if missing.any():
        rows = frame.index[missing][:5].tolist()
        raise ValidationError(f"missing values in {value_col!r} at rows {rows}")

    infinite = np.isinf(values)
    if infinite.any():
        rows = frame.index[infinite][:5].tolist()
        raise ValidationError(f"infinite values in {value_col!r} at rows {rows}")

    negative = values < 0
    if negative.any():
        rows = frame.index[negative][:5].tolist()
        raise ValidationError(
            f"negative values in {value_col!r} at rows {rows} "
            f"(min {values[negative].min():g})"
        )

    return frame.assign(**{PRESENCE_COL: values > 0})


def present_subset(frame, value_col="value"):
    """Rows with a strictly positive value. Validates first."""
    labelled = with_presence(frame, value_col)
    subset = labelled.loc[labelled[PRESENCE_COL]]
    if (subset[value_col] <= 0).any():
        raise ValidationError(f"non-positive values left in the positive subset of {value_col!r}")
    return subset


def zero_fraction(frame, value_col="value"):
    values = _value_array(frame, value_col)
    if len(values) == 0:
        return float("nan")
    return float(np.mean(values == 0))


def simulate_delta_series(
    n_periods=120,
    baseline_presence=0.4,
    mean_positive=4.0,
    shape=2.0,
    presence_season=1.0,
    magnitude_season=0.3,
    period=12,
    n_groups=0,
    group_sd=0.5,
    seed=0,
):
    """Simulate a zero-inflated series with known truth.

    Presence is Bernoulli with logit(p) = logit(baseline_presence)
    + presence_season * season (+ group effect); magnitude is Gamma with
    log mean = log(mean_positive) + magnitude_season * season
    (+ group effect), where season = sin(2*pi*t/period).

    Returns a DataFrame with columns time, season, [group], value.
    """
    if not 0 < baseline_presence < 1:
        raise ValidationError("baseline_presence must lie in (0, 1)")
    if mean_positive <= 0 or shape <= 0:
        raise ValidationError("mean_positive and shape must be positive")

    rng = np.random.default_rng(seed)
    time = np.arange(1, n_periods + 1)
    season = np.sin(2.0 * np.pi * time / period)

    logit_p = np.log(baseline_presence / (1.0 - baseline_presence))
    logit_p = logit_p + presence_season * season
    log_mu = np.log(mean_positive) + magnitude_season * season

    data = {"time": time, "season": season}
    if n_groups > 0:
        group = rng.integers(0, n_groups, size=n_periods)
        presence_effects = rng.normal(0.0, group_sd, size=n_groups)
        magnitude_effects = rng.normal(0.0, group_sd, size=n_groups)
        logit_p = logit_p + presence_effects[group]
        log_mu = log_mu + magnitude_effects[group]
        data["group"] = [f"g{g}" for g in group]

    p = 1.0 / (1.0 + np.exp(-logit_p))
    present = rng.random(n_periods) < p
    mu = np.exp(log_mu)
    # Gamma with mean mu: scale = mu / shape
    magnitude = rng.gamma(shape, mu / shape)
    data["value"] = np.where(present, magnitude, 0.0)

    return pd.DataFrame(data)
