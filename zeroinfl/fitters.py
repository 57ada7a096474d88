"""Presence and magnitude sub-model fitters.

A fitter turns a frame into a fitted handle; the handle predicts the
expected response for new rows. The presence role trains on every row
against `is_present`; the magnitude role trains only on the positive rows
against the raw value.

Backends:
  LogisticGLM / GammaGLM   linear predictor (statsmodels GLM)
  LogisticGAM / GammaGAM   penalized B-spline smooths + linear part (GLMGam)
The random-intercept variants live in `zeroinfl.bayes`.
"""

from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from typing import Any, Dict, Optional

import numpy as np
import statsmodels.api as sm
from patsy import PatsyError, build_design_matrices, dmatrix
from statsmodels.gam.api import BSplines, GLMGam
from statsmodels.tools.sm_exceptions import PerfectSeparationError

from zeroinfl.data import PRESENCE_COL, present_subset, with_presence
from zeroinfl.errors import (
    FitFailure,
    FitTimeout,
    PredictionError,
    ValidationError,
    ZeroInflError,
)

PRESENCE = "presence"
MAGNITUDE = "magnitude"

_ENGINE_ERRORS = (
    PerfectSeparationError,
    np.linalg.LinAlgError,
    FloatingPointError,
    ZeroDivisionError,
    ValueError,
)


def run_with_budget(fn, timeout, sub_model, *args):
    """Call fn(*args); raise FitTimeout if it runs longer than `timeout` s.

    The engine call itself is not interrupted, only abandoned.
    """
    if timeout is None:
        return fn(*args)
    executor = ThreadPoolExecutor(max_workers=1)
    future = executor.submit(fn, *args)
    try:
        return future.result(timeout=timeout)
    except FuturesTimeout as exc:
        raise FitTimeout(
            f"{sub_model} fit exceeded its {timeout:g}s budget", sub_model=sub_model
        ) from exc
    finally:
        executor.shutdown(wait=False)


def first_bad_row(frame, values):
    """Index label of the first non-finite prediction, or None."""
    bad = ~np.isfinite(values)
    if bad.any():
        return frame.index[np.argmax(bad)]
    return None


def family_for(role):
    if role == PRESENCE:
        return sm.families.Binomial()
    return sm.families.Gamma(link=sm.families.links.Log())


def perfectly_separated(model, results):
    """True when a binomial fit reproduces every 0/1 label exactly."""
    if not isinstance(model.family, sm.families.Binomial):
        return False
    mu = np.asarray(results.mu, dtype=float)
    return bool(np.allclose(mu, np.asarray(model.endog, dtype=float)))


def fit_engine(model, sub_model, **fit_kwds):
    """Run `model.fit` and translate engine trouble into FitFailure."""
    try:
        # thread-local, unlike the warnings filters
        with np.errstate(all="ignore"):
            results = model.fit(**fit_kwds)
    except _ENGINE_ERRORS as exc:
        raise FitFailure(f"{sub_model} model failed to fit: {exc}", sub_model=sub_model) from exc

    if perfectly_separated(model, results):
        raise FitFailure(
            f"{sub_model} model: perfect separation, fitted probabilities are all 0 or 1",
            sub_model=sub_model,
        )
    if not getattr(results, "converged", True):
        raise FitFailure(
            f"{sub_model} model did not converge "
            f"(maxiter={fit_kwds.get('maxiter', 'default')})",
            sub_model=sub_model,
        )
    if not np.all(np.isfinite(np.asarray(results.params, dtype=float))):
        raise FitFailure(f"{sub_model} model produced non-finite coefficients", sub_model=sub_model)
    return results


def design_matrix(formula, frame, sub_model):
    """Right-hand-side design matrix; rows with missing covariates are rejected."""
    try:
        return dmatrix(formula, frame, NA_action="raise", return_type="dataframe")
    except PatsyError as exc:
        raise ValidationError(f"{sub_model} design {formula!r}: {exc}") from exc


def rebuild_design(design_info, frame):
    return build_design_matrices([design_info], frame, NA_action="raise",
                                 return_type="dataframe")[0]


class FittedSubModel(ABC):
    """Opaque handle around a fitted engine result."""

    name: str
    role: str
    n_obs: int

    @abstractmethod
    def _predict(self, frame):
        raise NotImplementedError

    def predict(self, frame):
        """Expected response per row of `frame` (probability for presence)."""
        try:
            values = np.asarray(self._predict(frame), dtype=float).reshape(-1)
        except ZeroInflError:
            raise
        except Exception as exc:
            raise PredictionError(f"{self.name} cannot predict: {exc}") from exc

        if values.shape[0] != len(frame):
            raise PredictionError(
                f"{self.name} returned {values.shape[0]} predictions for {len(frame)} rows"
            )
        row = first_bad_row(frame, values)
        if row is not None:
            raise PredictionError(f"{self.name} produced a non-finite prediction", row=row)
        return values

    def summary(self) -> Dict[str, Any]:
        return {"model": self.name, "role": self.role, "n_obs": self.n_obs}


class SubModelFitter(ABC):
    """Common training-set selection for both roles.

    Subclasses set `role` and implement `_fit(train, frame)`, where `train`
    is the role's training subset and `frame` the full validated input.
    """

    role: str = PRESENCE
    kind: str = "base"

    def __init__(self, *, value_col="value", timeout: Optional[float] = None):
        self.value_col = value_col
        self.timeout = timeout

    @property
    def name(self):
        return f"{self.role}[{self.kind}]"

    def training_frame(self, frame):
        if self.role == PRESENCE:
            return with_presence(frame, self.value_col)
        subset = present_subset(frame, self.value_col)
        if subset.empty:
            raise FitFailure(
                "magnitude model has no positive observations to train on",
                sub_model=self.role,
            )
        return subset

    def target(self, train):
        if self.role == PRESENCE:
            return train[PRESENCE_COL].to_numpy(dtype=float)
        return train[self.value_col].to_numpy(dtype=float)

    def fit(self, frame) -> FittedSubModel:
        train = self.training_frame(frame)
        return run_with_budget(self._fit, self.timeout, self.role, train, frame)

    @abstractmethod
    def _fit(self, train, frame) -> FittedSubModel:
        raise NotImplementedError


class FittedGLM(FittedSubModel):
    def __init__(self, name, role, results, design_info, n_obs):
        self.name = name
        self.role = role
        self.results = results
        self.design_info = design_info
        self.n_obs = n_obs

    def _predict(self, frame):
        X = rebuild_design(self.design_info, frame)
        return self.results.predict(np.asarray(X), transform=False)

    def summary(self):
        out = super().summary()
        out["params"] = dict(zip(self.design_info.column_names, map(float, self.results.params)))
        out["llf"] = float(self.results.llf)
        return out


class GLMFitter(SubModelFitter):
    kind = "glm"

    def __init__(self, formula="1", *, maxiter=100, **kwargs):
        super().__init__(**kwargs)
        self.formula = formula
        self.maxiter = int(maxiter)

    def _fit(self, train, frame):
        X = design_matrix(self.formula, train, self.role)
        model = sm.GLM(self.target(train), X, family=family_for(self.role))
        results = fit_engine(model, self.role, maxiter=self.maxiter)
        return FittedGLM(self.name, self.role, results, X.design_info, len(train))


class LogisticGLM(GLMFitter):
    role = PRESENCE


class GammaGLM(GLMFitter):
    role = MAGNITUDE


class FittedGAM(FittedSubModel):
    def __init__(self, name, role, results, design_info, smooth_cols, n_obs):
        self.name = name
        self.role = role
        self.results = results
        self.design_info = design_info
        self.smooth_cols = list(smooth_cols)
        self.n_obs = n_obs

    def _predict(self, frame):
        X = rebuild_design(self.design_info, frame)
        smooth = frame[self.smooth_cols].to_numpy(dtype=float)
        return self.results.predict(exog=np.asarray(X), exog_smooth=smooth, transform=False)

    def summary(self):
        out = super().summary()
        out["smooth"] = self.smooth_cols
        out["edf"] = float(np.sum(self.results.edf))
        return out


class GAMFitter(SubModelFitter):
    """Penalized B-spline smooths over `smooth_cols`, plus a linear formula.

    Knots span the full input range, not just the training subset, so the
    magnitude smooth can be evaluated on the zero rows too.
    """

    kind = "gam"

    def __init__(self, smooth_cols, formula="1", *, df=6, degree=3, alpha=1.0,
                 maxiter=100, **kwargs):
        super().__init__(**kwargs)
        if not smooth_cols:
            raise ValidationError("GAM fitter needs at least one smooth column")
        self.smooth_cols = list(smooth_cols)
        self.formula = formula
        self.df = int(df)
        self.degree = int(degree)
        self.alpha = float(alpha)
        self.maxiter = int(maxiter)

    def _smooth_matrix(self, frame):
        missing = [c for c in self.smooth_cols if c not in frame.columns]
        if missing:
            raise ValidationError(f"smooth columns {missing} not found")
        values = frame[self.smooth_cols].to_numpy(dtype=float)
        if not np.all(np.isfinite(values)):
            raise ValidationError(f"smooth columns {self.smooth_cols} contain missing values")
        return values

    def _fit(self, train, frame):
        full = self._smooth_matrix(frame)
        x = self._smooth_matrix(train)
        k = len(self.smooth_cols)
        knot_kwds = [
            {"lower_bound": float(full[:, j].min()), "upper_bound": float(full[:, j].max())}
            for j in range(k)
        ]
        try:
            smoother = BSplines(
                x,
                df=[self.df] * k,
                degree=[self.degree] * k,
                variable_names=self.smooth_cols,
                knot_kwds=knot_kwds,
            )
        except _ENGINE_ERRORS as exc:
            raise FitFailure(f"{self.role} smoother: {exc}", sub_model=self.role) from exc

        X = design_matrix(self.formula, train, self.role)
        model = GLMGam(
            self.target(train),
            exog=np.asarray(X),
            smoother=smoother,
            alpha=[self.alpha] * k,
            family=family_for(self.role),
        )
        results = fit_engine(model, self.role, maxiter=self.maxiter)
        return FittedGAM(self.name, self.role, results, X.design_info, self.smooth_cols, len(train))


class LogisticGAM(GAMFitter):
    role = PRESENCE


class GammaGAM(GAMFitter):
    role = MAGNITUDE
