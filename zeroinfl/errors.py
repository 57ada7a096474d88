"""Exceptions raised by the pipeline stages.

Nothing here is retried. A failing stage stops and reports which
sub-model (or which row) was responsible.
"""


class ZeroInflError(RuntimeError):
    pass


class ValidationError(ZeroInflError, ValueError):
    """Malformed input: negative, missing or non-numeric values."""


class FitFailure(ZeroInflError):
    """The fitting engine did not converge or failed numerically."""

    def __init__(self, message, sub_model=None):
        super().__init__(message)
        self.sub_model = sub_model


class PredictionError(ZeroInflError):
    """A fitted model could not produce a prediction for a row."""

    def __init__(self, message, row=None):
        super().__init__(message)
        self.row = row


class FitTimeout(ZeroInflError):
    """A fit exceeded its wall-clock budget."""

    def __init__(self, message, sub_model=None):
        super().__init__(message)
        self.sub_model = sub_model
