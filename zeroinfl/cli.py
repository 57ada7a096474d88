"""Command-line entry point: fit all candidates to a series and print the report."""

import argparse
import sys
from pathlib import Path

import numpyro
import pandas as pd

from zeroinfl.config import PipelineConfig, SamplerConfig, load_config
from zeroinfl.data import load_series, simulate_delta_series, zero_fraction
from zeroinfl.errors import ZeroInflError
from zeroinfl.pipeline import run_comparison


def build_parser():
    parser = argparse.ArgumentParser(
        prog="zeroinfl",
        description="Compare Tweedie, hurdle and naive models on a zero-inflated series",
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--data", type=Path, help="CSV file, one row per period")
    source.add_argument(
        "--simulate", type=int, metavar="N", help="Simulate N periods instead of loading data"
    )
    parser.add_argument("--config", type=Path, help="JSON config (flags override it)")
    parser.add_argument("--time-col", default=None)
    parser.add_argument("--value-col", default=None)
    parser.add_argument("--formula", default=None, help="patsy right-hand side, e.g. 'season'")
    parser.add_argument(
        "--smooth-cols", default=None, help="Comma-separated columns for the GAM hurdle"
    )
    parser.add_argument(
        "--no-dates", action="store_true", help="Keep the time column as-is (integer periods)"
    )
    parser.add_argument("--group-col", default=None, help="Grouping column for random effects")
    parser.add_argument(
        "--var-power", type=float, default=None,
        help="Fix the Tweedie variance power instead of profiling it",
    )
    parser.add_argument("--bayes", action="store_true", help="Also fit the random-effects hurdle")
    parser.add_argument("--quick", action="store_true", help="Short sampler run (1 chain)")
    parser.add_argument("--parallel", action="store_true", help="Fit hurdle parts on two threads")
    parser.add_argument("--plot", type=Path, default=None, help="Directory for PNG figures")
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument("--quiet", action="store_true")
    return parser


def config_from_args(args):
    config = load_config(args.config) if args.config else PipelineConfig()

    if args.time_col:
        config.time_col = args.time_col
    if args.value_col:
        config.value_col = args.value_col
    if args.formula:
        config.formula = args.formula
    if args.smooth_cols:
        config.smooth_cols = [c.strip() for c in args.smooth_cols.split(",") if c.strip()]
    if args.group_col:
        config.group_col = args.group_col
    if args.var_power is not None:
        config.tweedie.var_power = args.var_power
    if args.bayes:
        config.include_bayes = True
    if args.quick:
        config.sampler = SamplerConfig.quick(seed=args.seed)
    else:
        config.sampler.seed = args.seed
    if args.parallel:
        config.parallel = True
    if args.quiet:
        config.verbose = False
    return config


def load_frame(args, config):
    if args.data is not None:
        return load_series(args.data, time_col=config.time_col, value_col=config.value_col,
                           parse_dates=not args.no_dates)

    df = simulate_delta_series(
        n_periods=args.simulate, n_groups=4 if config.include_bayes else 0, seed=args.seed
    )
    # Simulated data comes with a known seasonal covariate
    config.time_col, config.value_col = "time", "value"
    if config.formula == "1":
        config.formula = "season"
    if not config.smooth_cols:
        config.smooth_cols = ["season"]
    if config.include_bayes and not config.group_col:
        config.group_col = "group"
        config.bayes_covariates = ["season"]
    return df


def main(argv=None):
    args = build_parser().parse_args(argv)
    numpyro.set_host_device_count(4)

    try:
        config = config_from_args(args)
        df = load_frame(args, config)

        if len(df) == 0:
            print("No data to fit.")
            return 1

        if config.verbose:
            print("\nData summary:")
            print(f"  Periods: {len(df)}")
            print(f"  Zero fraction: {zero_fraction(df, config.value_col):.2f}")
            print(f"  Mean value: {df[config.value_col].mean():.2f}")
            print()

        run = run_comparison(df, config)
    except (ZeroInflError, FileNotFoundError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    print("\n=== Model Comparison (advisory, in-sample) ===\n")
    with pd.option_context("display.float_format", "{:.4f}".format):
        print(run.table().to_string(index=False))

    if args.plot is not None:
        from zeroinfl.plots import plot_predictions, plot_profile

        args.plot.mkdir(parents=True, exist_ok=True)
        plot_predictions(df, run.predictions, args.plot / "predictions.png",
                         time_col=config.time_col, value_col=config.value_col)
        if run.profile is not None:
            plot_profile(run.profile, args.plot / "tweedie_profile.png")

    return 0


if __name__ == "__main__":
    sys.exit(main())
