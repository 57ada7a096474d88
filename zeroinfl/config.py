"""Configuration for the comparison pipeline.

Defaults live here; the CLI overrides them from flags or a JSON file.
"""

import json
from dataclasses import asdict, dataclass, field
from typing import List, Optional


def default_power_grid():
    # 1.1 ... 1.9: strictly compound-Poisson, where the exact density exists
    return [round(1.0 + 0.1 * i, 1) for i in range(1, 10)]


@dataclass
class SamplerConfig:
    """NUTS settings for the random-effects hurdle."""
    num_warmup: int = 1000
    num_samples: int = 2000
    num_chains: int = 4
    seed: int = 0
    timeout: Optional[float] = None  # seconds, None = wait forever
    verbose: bool = False

    @classmethod
    def quick(cls, seed=0):
        return cls(num_warmup=300, num_samples=300, num_chains=1, seed=seed)


@dataclass
class TweedieConfig:
    var_power: Optional[float] = None  # None = profile over grid
    grid: List[float] = field(default_factory=default_power_grid)


@dataclass
class PipelineConfig:
    time_col: str = "time"
    value_col: str = "value"
    formula: str = "1"
    smooth_cols: List[str] = field(default_factory=list)
    smooth_df: int = 6
    smooth_alpha: float = 1.0
    group_col: Optional[str] = None
    bayes_covariates: List[str] = field(default_factory=list)
    include_smooth: bool = True
    include_bayes: bool = False
    include_baselines: bool = True
    log_offset: float = 1.0
    parallel: bool = False
    fit_timeout: Optional[float] = None
    verbose: bool = True
    tweedie: TweedieConfig = field(default_factory=TweedieConfig)
    sampler: SamplerConfig = field(default_factory=SamplerConfig)


def save_config(config, filename):
    """Write a PipelineConfig as JSON."""
    with open(filename, "w") as f:
        json.dump(asdict(config), f, indent=2)
    print(f"Configuration saved to {filename}")


def load_config(filename):
    """Read a PipelineConfig from JSON; unknown keys are ignored."""
    with open(filename, "r") as f:
        raw = json.load(f)

    config = PipelineConfig()
    for key, value in raw.items():
        if not hasattr(config, key):
            continue
        if key == "tweedie" and isinstance(value, dict):
            config.tweedie = TweedieConfig(
                **{k: v for k, v in value.items() if hasattr(config.tweedie, k)}
            )
        elif key == "sampler" and isinstance(value, dict):
            config.sampler = SamplerConfig(
                **{k: v for k, v in value.items() if hasattr(config.sampler, k)}
            )
        else:
            setattr(config, key, value)
    return config
