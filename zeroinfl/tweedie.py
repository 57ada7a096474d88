"""Single-distribution fit: Tweedie GLM with a log link.

For 1 < p < 2 the Tweedie is a compound Poisson-Gamma: continuous on the
positives with a point mass at zero, so the raw series (zeros included)
is modelled directly. `p` is either fixed or chosen by profile likelihood.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd
import statsmodels.api as sm
from scipy.optimize import minimize_scalar

from zeroinfl.config import default_power_grid
from zeroinfl.data import with_presence
from zeroinfl.errors import FitFailure, ValidationError
from zeroinfl.fitters import FittedGLM, design_matrix, fit_engine, run_with_budget

TWEEDIE = "tweedie"
_NO_LLF = 1e300


@dataclass(frozen=True, eq=False)
class ProfileResult:
    var_power: float
    llf: float
    table: pd.DataFrame


def _check_power(p):
    p = float(p)
    if not 1.0 <= p <= 2.0:
        raise ValidationError(f"variance power must lie in [1, 2] for data with zeros, got {p:g}")
    return p


def tweedie_glm(y, X, var_power):
    family = sm.families.Tweedie(var_power=var_power, link=sm.families.links.Log(), eql=False)
    return sm.GLM(y, X, family=family)


def profile_scale(results, span=6.0):
    """Maximize the log-likelihood over the dispersion, mean held fixed.

    For fixed p the coefficient estimates do not depend on the dispersion,
    so this is the profile log-likelihood at p. Returns (llf, scale);
    llf is -inf when no finite value exists.
    """
    family = results.model.family
    y = np.asarray(results.model.endog, dtype=float)
    mu = np.asarray(results.mu, dtype=float)

    def negative_llf(log_scale):
        with np.errstate(all="ignore"):
            value = family.loglike(y, mu, scale=np.exp(log_scale))
        return -value if np.isfinite(value) else _NO_LLF

    scale = float(results.scale)
    center = np.log(scale) if np.isfinite(scale) and scale > 0 else 0.0
    best = minimize_scalar(
        negative_llf, bounds=(center - span, center + span), method="bounded"
    )
    log_scale, llf = float(best.x), -float(best.fun)
    # never report less than the moment estimate gives
    at_moment = -negative_llf(center)
    if at_moment > llf:
        log_scale, llf = center, at_moment
    if llf <= -_NO_LLF:
        return -np.inf, np.nan
    return llf, float(np.exp(log_scale))


def profile_var_power(frame, formula="1", grid=None, value_col="value", maxiter=100):
    """Fit one Tweedie GLM per grid point and keep the best log-likelihood.

    Each point is scored by its log-likelihood maximized over the
    dispersion (`profile_scale`), reported in the `llf` and `scale` columns.

    Ties go to the smallest p. Grid points whose fit fails or whose
    log-likelihood is not finite (p = 2 with zeros, for instance) are kept
    in the table but never selected.
    """
    grid = sorted({_check_power(p) for p in (grid or default_power_grid())})
    labelled = with_presence(frame, value_col)
    X = design_matrix(formula, labelled, TWEEDIE)
    y = labelled[value_col].to_numpy(dtype=float)

    rows = []
    best_p, best_llf = None, -np.inf
    for p in grid:
        try:
            results = fit_engine(tweedie_glm(y, X, p), TWEEDIE, maxiter=maxiter)
        except FitFailure as exc:
            rows.append({"var_power": p, "llf": np.nan, "scale": np.nan, "error": str(exc)})
            continue
        llf, scale = profile_scale(results)
        rows.append({"var_power": p, "llf": llf, "scale": scale, "error": None})
        if np.isfinite(llf) and llf > best_llf:
            best_p, best_llf = p, llf

    table = pd.DataFrame(rows, columns=["var_power", "llf", "scale", "error"])
    if best_p is None:
        raise FitFailure(
            f"no variance power in {grid} gave a finite log-likelihood", sub_model=TWEEDIE
        )
    return ProfileResult(var_power=best_p, llf=best_llf, table=table)


class FittedTweedie(FittedGLM):
    def __init__(self, name, results, design_info, n_obs, var_power, profile=None):
        super().__init__(name, TWEEDIE, results, design_info, n_obs)
        self.var_power = var_power
        self.profile = profile

    @property
    def llf(self):
        return profile_scale(self.results)[0]

    def summary(self):
        out = super().summary()
        out["var_power"] = self.var_power
        out["profiled"] = self.profile is not None
        return out


class TweedieFitter:
    """Fit the whole series, zeros included, with one Tweedie GLM."""

    role = TWEEDIE

    def __init__(self, formula="1", *, var_power: Optional[float] = None, grid=None,
                 value_col="value", maxiter=100, timeout=None, name="tweedie"):
        self.formula = formula
        self.var_power = None if var_power is None else _check_power(var_power)
        self.grid = grid
        self.value_col = value_col
        self.maxiter = int(maxiter)
        self.timeout = timeout
        self.name = name

    def fit(self, frame):
        return run_with_budget(self._fit, self.timeout, TWEEDIE, frame)

    def _fit(self, frame):
        profile = None
        var_power = self.var_power
        if var_power is None:
            profile = profile_var_power(
                frame, self.formula, self.grid, self.value_col, self.maxiter
            )
            var_power = profile.var_power

        labelled = with_presence(frame, self.value_col)
        X = design_matrix(self.formula, labelled, TWEEDIE)
        y = labelled[self.value_col].to_numpy(dtype=float)
        results = fit_engine(tweedie_glm(y, X, var_power), TWEEDIE, maxiter=self.maxiter)
        return FittedTweedie(self.name, results, X.design_info, len(labelled), var_power, profile)
