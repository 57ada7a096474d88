"""Fit every candidate model to one series and compare them."""

import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pandas as pd

from zeroinfl.baselines import DropZerosModel, LogOffsetModel
from zeroinfl.compare import ComparisonRecord, compare_models, comparison_table
from zeroinfl.config import PipelineConfig
from zeroinfl.data import PRESENCE_COL, with_presence
from zeroinfl.errors import ValidationError
from zeroinfl.hurdle import HurdleModel
from zeroinfl.tweedie import ProfileResult, TweedieFitter

MIN_PRESENT = 5


@dataclass
class ComparisonRun:
    predictions: pd.DataFrame  # one column of expected values per model
    records: List[ComparisonRecord]
    fitted: Dict[str, Any] = field(default_factory=dict)
    profile: Optional[ProfileResult] = None

    def table(self):
        return comparison_table(self.records)


def build_candidates(config):
    """Candidate models in fitting order, keyed by report name."""
    timeout = config.fit_timeout
    value_col = config.value_col
    t = config.tweedie

    candidates = {
        "tweedie": TweedieFitter(
            config.formula, var_power=t.var_power, grid=t.grid,
            value_col=value_col, timeout=timeout,
        ),
        "hurdle_glm": HurdleModel.linear(config.formula, value_col=value_col, timeout=timeout),
    }
    if config.include_smooth and config.smooth_cols:
        candidates["hurdle_gam"] = HurdleModel.smooth(
            config.smooth_cols, config.formula, df=config.smooth_df,
            alpha=config.smooth_alpha, value_col=value_col, timeout=timeout,
        )
    if config.include_bayes:
        if not config.group_col:
            raise ValidationError("the random-effects hurdle needs config.group_col")
        candidates["hurdle_re"] = HurdleModel.random_effects(
            config.bayes_covariates, config.group_col, sampler=config.sampler,
            value_col=value_col, timeout=timeout,
        )
    if config.include_baselines:
        candidates["drop_zeros"] = DropZerosModel(
            config.formula, value_col=value_col, timeout=timeout
        )
        candidates["log_offset"] = LogOffsetModel(
            config.formula, offset=config.log_offset, value_col=value_col, timeout=timeout
        )
    return candidates


def run_comparison(frame, config=None):
    """Validate, fit every candidate, predict on `frame`, compare.

    Any ValidationError, FitFailure, FitTimeout or PredictionError stops
    the run; no candidate is dropped silently.
    """
    config = config or PipelineConfig()
    labelled = with_presence(frame, config.value_col)
    n_present = int(labelled[PRESENCE_COL].sum())

    if config.verbose:
        print(f"Rows: {len(labelled)}  present: {n_present}  "
              f"zero fraction: {1 - n_present / max(len(labelled), 1):.2f}")
    if n_present < MIN_PRESENT:
        warnings.warn(
            f"Only {n_present} positive observations; magnitude models will be unstable."
        )

    predictions, fitted, looic = {}, {}, {}
    profile = None
    for name, candidate in build_candidates(config).items():
        if config.verbose:
            print(f"Fitting {name}...")

        if isinstance(candidate, HurdleModel):
            candidate.fit(frame, parallel=config.parallel)
            composite = candidate.predict(frame)
            predictions[name] = pd.Series(composite.expected, index=composite.index)
            if name == "hurdle_re":
                looic[name] = candidate.looic()
            fitted[name] = candidate
        else:
            model = candidate.fit(frame)
            predictions[name] = pd.Series(model.predict(frame), index=frame.index)
            fitted[name] = model
            if getattr(model, "profile", None) is not None:
                profile = model.profile
                if config.verbose:
                    print(f"  selected var_power = {model.var_power:g} "
                          f"(llf {profile.llf:.2f})")

    records = compare_models(frame[config.value_col], predictions, looic)
    return ComparisonRun(
        predictions=pd.DataFrame(predictions),
        records=records,
        fitted=fitted,
        profile=profile,
    )
