"""Figures for a comparison run (matplotlib, saved as PNG)."""

from pathlib import Path

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import pandas as pd  # noqa: E402


def plot_predictions(frame, predictions, out_path, time_col="time", value_col="value"):
    """Observed series with each model's point predictions overlaid."""
    if time_col in frame.columns:
        x = frame[time_col]
    else:
        x = pd.Series(np.arange(len(frame)), index=frame.index)
    observed = frame[value_col].to_numpy(dtype=float)

    fig, axes = plt.subplots(1, 2, figsize=(15, 5))

    # 1. Time series
    axes[0].scatter(x, observed, color="coral", s=20, zorder=5, label="Observed")
    for name in predictions.columns:
        axes[0].plot(x.loc[predictions.index], predictions[name], alpha=0.8, label=name)
    axes[0].set_xlabel("Period")
    axes[0].set_ylabel("Value")
    axes[0].set_title("Observed vs predicted")
    axes[0].legend()

    # 2. Predicted vs observed
    lim = max(float(np.nanmax(observed)), float(np.nanmax(predictions.to_numpy())), 1e-9)
    for name in predictions.columns:
        obs = frame.loc[predictions.index, value_col]
        axes[1].scatter(obs, predictions[name], s=12, alpha=0.6, label=name)
    axes[1].plot([0, lim], [0, lim], color="grey", linestyle="--", alpha=0.5)
    axes[1].set_xlabel("Observed")
    axes[1].set_ylabel("Predicted")
    axes[1].set_title("Agreement")
    axes[1].legend()

    plt.tight_layout()
    out_path = Path(out_path)
    plt.savefig(out_path, dpi=150)
    plt.close(fig)
    print(f"Saved {out_path}")
    return out_path


def plot_profile(profile, out_path):
    """Profile log-likelihood against the Tweedie variance power."""
    table = profile.table.dropna(subset=["llf"])
    table = table[np.isfinite(table["llf"])]

    fig, ax = plt.subplots(figsize=(8, 5))
    ax.plot(table["var_power"], table["llf"], "o-", color="steelblue", linewidth=2)
    ax.axvline(profile.var_power, color="red", linestyle="--", alpha=0.5,
               label=f"p = {profile.var_power:g}")
    ax.set_xlabel("Variance power p")
    ax.set_ylabel("Log-likelihood")
    ax.set_title("Tweedie profile likelihood")
    ax.legend()
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    out_path = Path(out_path)
    plt.savefig(out_path, dpi=150)
    plt.close(fig)
    print(f"Saved {out_path}")
    return out_path
