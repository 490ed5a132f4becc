#!/usr/bin/env python3
"""
Visualization Module - Static Slide Figures
===========================================
Coefficient interval plot and Moran scatterplot saved as PNG files.
"""

from pathlib import Path
from typing import Dict, Optional
import numpy as np
import pandas as pd
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import seaborn as sns

from libpysal.weights import W
from libpysal.weights.spatial_lag import lag_spatial


MODEL_COLORS = {
    'OLS': 'steelblue',
    'SEM': 'coral',
    'SLM': 'seagreen',
}


def coefficient_interval_plot(coef_df: pd.DataFrame, output_path: Path,
                              true_values: Optional[Dict[str, float]] = None,
                              dpi: int = 150) -> Path:
    """
    Point estimates with confidence intervals, one row per variable and model.

    ``coef_df`` is the stacked output of ``FittedModel.coefficient_table``.
    Spatial parameters (lambda/rho) are left out.
    """
    sns.set_style('whitegrid')
    plt.rcParams['figure.facecolor'] = 'white'

    plot_df = coef_df[~coef_df['variable'].isin(['lambda', 'rho'])].copy()
    variables = list(dict.fromkeys(plot_df['variable']))
    models = list(dict.fromkeys(plot_df['model']))
    offsets = np.linspace(-0.2, 0.2, len(models)) if len(models) > 1 else [0.0]

    fig, ax = plt.subplots(figsize=(9, 1.2 + 0.8 * len(variables)))
    y_base = np.arange(len(variables))

    for offset, model in zip(offsets, models):
        sub = plot_df[plot_df['model'] == model].set_index('variable').reindex(variables)
        est = sub['coefficient'].to_numpy()
        err = np.vstack([est - sub['ci_lower'].to_numpy(), sub['ci_upper'].to_numpy() - est])
        ax.errorbar(est, y_base + offset, xerr=err, fmt='o', capsize=3,
                    color=MODEL_COLORS.get(model, 'gray'), label=model)

    if true_values:
        for i, var in enumerate(variables):
            key = 'intercept' if var == 'CONSTANT' else var
            if key in true_values:
                ax.plot(true_values[key], i, marker='x', color='black', markersize=9,
                        linestyle='none', label='True value' if i == 0 else None)

    ax.set_yticks(y_base)
    ax.set_yticklabels(variables)
    ax.invert_yaxis()
    ax.set_xlabel('Estimate')
    ax.set_title('Coefficient Estimates with Confidence Intervals', fontweight='bold')
    ax.legend(loc='best', fontsize=9)
    ax.grid(axis='x', alpha=0.3)

    plt.tight_layout()
    plt.savefig(output_path, dpi=dpi, bbox_inches='tight')
    plt.close(fig)
    return output_path


def moran_scatterplot(values, w: W, output_path: Path, title: str = "Moran Scatterplot",
                      moran_i: Optional[float] = None, dpi: int = 150) -> Path:
    """Standardised values against their spatial lag; the slope is Moran's I."""
    sns.set_style('whitegrid')

    y = np.asarray(values, dtype=float).ravel()
    z = (y - y.mean()) / y.std()
    lag = lag_spatial(w, z)
    slope = moran_i if moran_i is not None else np.polyfit(z, lag, 1)[0]

    fig, ax = plt.subplots(figsize=(6, 6))
    ax.scatter(z, lag, s=20, alpha=0.7, color='steelblue', edgecolor='k', linewidth=0.3)
    xs = np.linspace(z.min(), z.max(), 50)
    ax.plot(xs, slope * xs, color='red', linewidth=1.5, label=f"I = {slope:.3f}")
    ax.axhline(0, color='black', linewidth=0.8)
    ax.axvline(0, color='black', linewidth=0.8)
    ax.set_xlabel('Standardised value')
    ax.set_ylabel('Spatial lag')
    ax.set_title(title, fontweight='bold')
    ax.legend(loc='upper left')

    plt.tight_layout()
    plt.savefig(output_path, dpi=dpi, bbox_inches='tight')
    plt.close(fig)
    return output_path
