"""Two-part (hurdle / delta) model.

    E[y | x] = P(y > 0 | x) * E[y | y > 0, x]

The presence and magnitude parts are fitted independently and only
combined at prediction time.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import numpy as np
import pandas as pd

from zeroinfl.bayes import BayesMagnitude, BayesPresence
from zeroinfl.data import with_presence
from zeroinfl.errors import PredictionError
from zeroinfl.fitters import (
    MAGNITUDE,
    PRESENCE,
    GammaGAM,
    GammaGLM,
    LogisticGAM,
    LogisticGLM,
)


@dataclass(frozen=True, eq=False)
class CompositePrediction:
    """Per-row presence probability, positive magnitude and their product.

    Arrays are read-only once built.
    """

    index: pd.Index
    presence: np.ndarray
    magnitude: np.ndarray
    expected: np.ndarray

    @classmethod
    def combine(cls, index, presence, magnitude):
        presence = np.array(presence, dtype=float)
        magnitude = np.array(magnitude, dtype=float)

        bad = (presence < 0) | (presence > 1) | (magnitude < 0)
        if bad.any():
            row = index[np.argmax(bad)]
            raise PredictionError(
                "presence must lie in [0, 1] and magnitude must be positive", row=row
            )

        expected = presence * magnitude
        for arr in (presence, magnitude, expected):
            arr.setflags(write=False)
        return cls(index=pd.Index(index), presence=presence, magnitude=magnitude,
                   expected=expected)

    def __len__(self):
        return len(self.expected)

    def to_frame(self):
        return pd.DataFrame(
            {"p_present": self.presence, "magnitude": self.magnitude, "expected": self.expected},
            index=self.index,
        )


class HurdleModel:
    """Presence fitter + magnitude fitter, combined multiplicatively."""

    def __init__(self, presence, magnitude, *, name="hurdle"):
        if presence.role != PRESENCE or magnitude.role != MAGNITUDE:
            raise ValueError("HurdleModel needs a presence fitter and a magnitude fitter")
        if presence.value_col != magnitude.value_col:
            raise ValueError("presence and magnitude fitters disagree on the value column")
        self.presence = presence
        self.magnitude = magnitude
        self.name = name
        self.value_col = presence.value_col
        self.presence_fit = None
        self.magnitude_fit = None

    @classmethod
    def linear(cls, formula="1", *, value_col="value", timeout=None, name="hurdle_glm"):
        return cls(
            LogisticGLM(formula, value_col=value_col, timeout=timeout),
            GammaGLM(formula, value_col=value_col, timeout=timeout),
            name=name,
        )

    @classmethod
    def smooth(cls, smooth_cols, formula="1", *, df=6, alpha=1.0, value_col="value",
               timeout=None, name="hurdle_gam"):
        kwargs = dict(df=df, alpha=alpha, value_col=value_col, timeout=timeout)
        return cls(
            LogisticGAM(smooth_cols, formula, **kwargs),
            GammaGAM(smooth_cols, formula, **kwargs),
            name=name,
        )

    @classmethod
    def random_effects(cls, covariates=(), group_col="group", *, sampler=None,
                       value_col="value", timeout=None, name="hurdle_re"):
        kwargs = dict(sampler=sampler, value_col=value_col, timeout=timeout)
        return cls(
            BayesPresence(covariates, group_col, **kwargs),
            BayesMagnitude(covariates, group_col, **kwargs),
            name=name,
        )

    @property
    def is_fitted(self):
        return self.presence_fit is not None and self.magnitude_fit is not None

    def fit(self, frame, parallel=False):
        """Fit both parts. Input is validated before either engine runs.

        Sequentially the magnitude part goes first, so an input with no
        positive rows fails before any engine runs. With parallel=True the
        two fits run on separate threads; if both fail, the magnitude error
        is the one raised.
        """
        with_presence(frame, self.value_col)

        if parallel:
            with ThreadPoolExecutor(max_workers=2) as pool:
                m_future = pool.submit(self.magnitude.fit, frame)
                p_future = pool.submit(self.presence.fit, frame)
                magnitude_fit = m_future.result()
                presence_fit = p_future.result()
        else:
            magnitude_fit = self.magnitude.fit(frame)
            presence_fit = self.presence.fit(frame)

        self.presence_fit = presence_fit
        self.magnitude_fit = magnitude_fit
        return self

    def predict(self, frame, on_error="abort"):
        """Composite prediction for every row of `frame`.

        on_error="abort" raises PredictionError naming the first failing row;
        on_error="skip" drops failing rows from the result.
        """
        if not self.is_fitted:
            raise RuntimeError("Model not fit")
        if on_error not in ("abort", "skip"):
            raise ValueError(f"on_error must be 'abort' or 'skip', got {on_error!r}")

        try:
            return CompositePrediction.combine(
                frame.index,
                self.presence_fit.predict(frame),
                self.magnitude_fit.predict(frame),
            )
        except PredictionError as exc:
            if on_error == "abort" and exc.row is not None:
                raise
        return self._predict_rowwise(frame, on_error)

    def _predict_rowwise(self, frame, on_error):
        labels, presence, magnitude = [], [], []
        for pos in range(len(frame)):
            row = frame.iloc[[pos]]
            label = frame.index[pos]
            try:
                p = self.presence_fit.predict(row)[0]
                m = self.magnitude_fit.predict(row)[0]
                CompositePrediction.combine(row.index, [p], [m])
            except PredictionError as exc:
                if on_error == "abort":
                    raise PredictionError(f"row {label!r}: {exc}", row=label) from exc
                continue
            labels.append(label)
            presence.append(p)
            magnitude.append(m)
        return CompositePrediction.combine(pd.Index(labels, name=frame.index.name),
                                           presence, magnitude)

    def looic(self):
        """Sum of the parts' LOOIC; NaN unless both parts support LOO."""
        parts = (self.presence_fit, self.magnitude_fit)
        if not self.is_fitted or not all(hasattr(p, "looic") for p in parts):
            return float("nan")
        return float(sum(p.looic() for p in parts))

    def summary(self):
        if not self.is_fitted:
            raise RuntimeError("Model not fit")
        return {
            "model": self.name,
            "presence": self.presence_fit.summary(),
            "magnitude": self.magnitude_fit.summary(),
        }
