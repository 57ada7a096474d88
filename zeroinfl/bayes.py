"""NumPyro sub-models with a random intercept per group.

Presence: Bernoulli-logit. Magnitude: Gamma with a log link, fitted on the
positive rows only. Both use a non-centred group intercept, so sparse
groups shrink towards the population mean instead of blowing up.
"""

import arviz as az
import jax.numpy as jnp
import jax.random as random
import numpy as np
import numpyro
import numpyro.distributions as dist
from numpyro.infer import MCMC, NUTS

from zeroinfl.config import SamplerConfig
from zeroinfl.errors import FitFailure, PredictionError, ValidationError
from zeroinfl.fitters import MAGNITUDE, PRESENCE, FittedSubModel, SubModelFitter


def _linear_part(X, prefix):
    k = X.shape[1]
    if k == 0:
        return 0.0
    with numpyro.plate(f"{prefix}_covariates", k):
        beta = numpyro.sample(f"{prefix}_beta", dist.Normal(0.0, 1.0))
    return jnp.asarray(X) @ beta


def presence_model(X, group, n_groups, present=None):
    """Bernoulli-logit presence with group intercepts.

    Parameters
    ----------
    X : jnp.ndarray
        (n, k) numeric covariates, k may be 0.
    group : jnp.ndarray
        Integer group code per row, 0 .. n_groups-1.
    n_groups : int
        Number of group levels seen at fit time.
    present : jnp.ndarray or None
        Observed 0/1 labels. None for predictive simulation.
    """
    # Intercept on the logit scale; Normal(0, 1.5) keeps p away from 0/1
    alpha = numpyro.sample("alpha", dist.Normal(0.0, 1.5))
    sigma_group = numpyro.sample("sigma_group", dist.HalfNormal(1.0))
    with numpyro.plate("groups", n_groups):
        z_group = numpyro.sample("z_group", dist.Normal(0.0, 1.0))

    logits = alpha + _linear_part(X, "presence") + sigma_group * z_group[group]

    with numpyro.plate("obs", X.shape[0]):
        numpyro.sample("present", dist.Bernoulli(logits=logits), obs=present)


def magnitude_model(X, group, n_groups, log_center=0.0, value=None):
    """Gamma regression on the log scale with group intercepts.

    `log_center` centres the intercept prior on the log of the observed
    positive mean.
    """
    alpha = numpyro.sample("alpha", dist.Normal(log_center, 1.0))
    sigma_group = numpyro.sample("sigma_group", dist.HalfNormal(1.0))
    with numpyro.plate("groups", n_groups):
        z_group = numpyro.sample("z_group", dist.Normal(0.0, 1.0))

    # Gamma shape; Exponential(1) allows heavy right tails
    shape = numpyro.sample("shape", dist.Exponential(1.0))

    log_mu = alpha + _linear_part(X, "magnitude") + sigma_group * z_group[group]

    with numpyro.plate("obs", X.shape[0]):
        numpyro.sample(
            "value",
            dist.Gamma(concentration=shape, rate=shape / jnp.exp(log_mu)),
            obs=value,
        )


class FittedBayes(FittedSubModel):
    def __init__(self, name, role, mcmc, covariates, group_col, levels, n_obs, samples):
        self.name = name
        self.role = role
        self.mcmc = mcmc
        self.covariates = list(covariates)
        self.group_col = group_col
        self.levels = list(levels)
        self.n_obs = n_obs
        self.samples = {k: np.asarray(v) for k, v in samples.items()}
        self._loo = None

    def _linear_draws(self, frame):
        codes = encode_groups(frame, self.group_col, self.levels)
        X = covariate_matrix(frame, self.covariates)

        s = self.samples
        eta = s["alpha"][:, None] + s["sigma_group"][:, None] * s["z_group"][:, codes]
        beta_key = f"{self.role}_beta"
        if beta_key in s:
            eta = eta + s[beta_key] @ X.T
        return eta

    def _predict(self, frame):
        eta = self._linear_draws(frame)
        if self.role == PRESENCE:
            return np.mean(1.0 / (1.0 + np.exp(-eta)), axis=0)
        return np.mean(np.exp(eta), axis=0)

    def divergences(self):
        extra = self.mcmc.get_extra_fields()
        if "diverging" not in extra:
            return 0
        return int(np.sum(np.asarray(extra["diverging"])))

    def loo(self):
        """PSIS-LOO for this sub-model (cached)."""
        if self._loo is None:
            idata = az.from_numpyro(self.mcmc)
            self._loo = az.loo(idata)
        return self._loo

    def looic(self):
        return float(-2.0 * self.loo().elpd_loo)

    def summary(self):
        out = super().summary()
        out["groups"] = len(self.levels)
        out["divergences"] = self.divergences()
        out["alpha_mean"] = float(np.mean(self.samples["alpha"]))
        out["sigma_group_mean"] = float(np.mean(self.samples["sigma_group"]))
        return out


def encode_groups(frame, group_col, levels):
    if group_col not in frame.columns:
        raise ValidationError(f"group column {group_col!r} not found")
    lookup = {level: i for i, level in enumerate(levels)}
    labels = frame[group_col].astype(str)
    unseen = ~labels.isin(lookup)
    if unseen.any():
        row = frame.index[np.argmax(unseen.to_numpy())]
        raise PredictionError(
            f"group level {labels.loc[row]!r} was not seen at fit time", row=row
        )
    return labels.map(lookup).to_numpy(dtype=int)


def covariate_matrix(frame, covariates):
    missing = [c for c in covariates if c not in frame.columns]
    if missing:
        raise ValidationError(f"covariates {missing} not found")
    X = frame[list(covariates)].to_numpy(dtype=float).reshape(len(frame), len(covariates))
    if not np.all(np.isfinite(X)):
        raise ValidationError(f"covariates {list(covariates)} contain missing values")
    return X


class BayesFitter(SubModelFitter):
    """NUTS fit of a random-intercept sub-model.

    Group levels are taken from the full input frame, so groups with no
    positive rows still get a (prior-driven) magnitude intercept.
    """

    kind = "bayes"

    def __init__(self, covariates=(), group_col="group", sampler=None, **kwargs):
        super().__init__(**kwargs)
        self.covariates = list(covariates)
        self.group_col = group_col
        self.sampler = sampler or SamplerConfig()
        if self.timeout is None:
            self.timeout = self.sampler.timeout

    def _model_kwargs(self, train, X, codes, levels):
        raise NotImplementedError

    def _fit(self, train, frame):
        if self.group_col not in frame.columns:
            raise ValidationError(f"group column {self.group_col!r} not found")
        levels = sorted(frame[self.group_col].astype(str).unique())
        codes = encode_groups(train, self.group_col, levels)
        X = covariate_matrix(train, self.covariates)

        model_fn, kwargs = self._model_kwargs(train, X, codes, levels)
        cfg = self.sampler
        kernel = NUTS(model_fn)
        mcmc = MCMC(
            kernel,
            num_warmup=cfg.num_warmup,
            num_samples=cfg.num_samples,
            num_chains=cfg.num_chains,
            progress_bar=cfg.verbose,
        )
        try:
            mcmc.run(random.PRNGKey(cfg.seed), extra_fields=("diverging",), **kwargs)
        except (ValueError, RuntimeError, FloatingPointError) as exc:
            raise FitFailure(f"{self.role} sampler failed: {exc}", sub_model=self.role) from exc

        if cfg.verbose:
            mcmc.print_summary()

        samples = mcmc.get_samples()
        for key, draws in samples.items():
            if not np.all(np.isfinite(np.asarray(draws))):
                raise FitFailure(
                    f"{self.role} sampler produced non-finite draws for {key}",
                    sub_model=self.role,
                )
        return FittedBayes(
            self.name, self.role, mcmc, self.covariates, self.group_col,
            levels, len(train), samples,
        )


class BayesPresence(BayesFitter):
    role = PRESENCE

    def _model_kwargs(self, train, X, codes, levels):
        return presence_model, dict(
            X=X, group=codes, n_groups=len(levels), present=self.target(train),
        )


class BayesMagnitude(BayesFitter):
    role = MAGNITUDE

    def _model_kwargs(self, train, X, codes, levels):
        y = self.target(train)
        return magnitude_model, dict(
            X=X, group=codes, n_groups=len(levels),
            log_center=float(np.log(np.mean(y))), value=y,
        )
