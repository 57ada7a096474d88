"""The two naive treatments of zeros, kept as comparison baselines.

DropZerosModel pretends the zeros were never recorded. LogOffsetModel
adds a constant before taking logs, which makes the zeros a cluster at
log(c) whose location depends entirely on the arbitrary choice of c.
"""

import numpy as np
import statsmodels.api as sm

from zeroinfl.data import with_presence
from zeroinfl.errors import ValidationError
from zeroinfl.fitters import (
    FittedGLM,
    GammaGLM,
    GLMFitter,
    design_matrix,
    fit_engine,
)


class DropZerosModel(GammaGLM):
    """Gamma-log GLM on the positive rows, used to predict every row."""

    kind = "drop_zeros"
    name = "drop_zeros"


class FittedLogOffset(FittedGLM):
    def __init__(self, name, results, design_info, n_obs, offset):
        super().__init__(name, "log_offset", results, design_info, n_obs)
        self.offset = offset

    def _predict(self, frame):
        log_scale = super()._predict(frame)
        return np.maximum(np.exp(log_scale) - self.offset, 0.0)

    def summary(self):
        out = super().summary()
        out["offset"] = self.offset
        return out


class LogOffsetModel(GLMFitter):
    """Gaussian linear model on log(value + offset), back-transformed."""

    role = "log_offset"
    kind = "log_offset"
    name = "log_offset"

    def __init__(self, formula="1", *, offset=1.0, **kwargs):
        super().__init__(formula, **kwargs)
        if offset <= 0:
            raise ValidationError(f"offset must be positive, got {offset:g}")
        self.offset = float(offset)

    def training_frame(self, frame):
        return with_presence(frame, self.value_col)

    def target(self, train):
        return np.log(train[self.value_col].to_numpy(dtype=float) + self.offset)

    def _fit(self, train, frame):
        X = design_matrix(self.formula, train, self.role)
        model = sm.GLM(self.target(train), X, family=sm.families.Gaussian())
        results = fit_engine(model, self.role, maxiter=self.maxiter)
        return FittedLogOffset(self.name, results, X.design_info, len(train), self.offset)
