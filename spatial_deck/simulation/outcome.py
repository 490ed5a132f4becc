"""
Outcome simulation.

The outcome is a linear function of the covariates plus noise that has been
passed through the spatial weights once:

    filtered = rho * (W @ noise) + noise
    y        = intercept + X @ beta + filtered

so each unit's error carries a share of its neighbours' errors. With
``rho = 0`` the noise stays i.i.d.
"""

from typing import Mapping, Optional
import numpy as np
import pandas as pd

from libpysal.weights import W
from libpysal.weights.spatial_lag import lag_spatial


def spatially_filtered_noise(
    n_obs: int,
    rng: np.random.Generator,
    w: Optional[W] = None,
    rho: float = 0.0,
    noise_sd: float = 1.0,
) -> np.ndarray:
    """Draw N(0, noise_sd^2) noise and add ``rho`` times its spatial lag."""
    if not (np.isfinite(noise_sd) and noise_sd > 0):
        raise ValueError(f"noise_sd must be positive, got {noise_sd}")
    if not np.isfinite(rho):
        raise ValueError("rho must be finite")

    noise = rng.standard_normal(n_obs) * noise_sd
    if rho == 0:
        return noise
    if w is None:
        raise ValueError("Spatial weights are required when rho != 0")
    if w.n != n_obs:
        raise ValueError(f"Weights cover {w.n} units but {n_obs} were requested")
    return rho * lag_spatial(w, noise) + noise


def linear_predictor(
    covariates: pd.DataFrame, coefficients: Mapping[str, float]
) -> np.ndarray:
    """intercept + X @ beta with coefficients matched to columns by name."""
    names = list(covariates.columns)
    expected = set(names) | {"intercept"}
    missing = [n for n in names if n not in coefficients]
    unknown = [n for n in coefficients if n not in expected]
    if missing or unknown:
        raise ValueError(
            f"Coefficients must match covariates exactly (missing: {missing}, unknown: {unknown})"
        )

    beta = np.array([float(coefficients[n]) for n in names])
    intercept = float(coefficients.get("intercept", 0.0))
    return intercept + covariates.to_numpy(dtype=float) @ beta


def simulate_outcome(
    covariates: pd.DataFrame,
    coefficients: Mapping[str, float],
    rng: np.random.Generator,
    w: Optional[W] = None,
    rho: float = 0.0,
    noise_sd: float = 1.0,
) -> np.ndarray:
    """Outcome vector for the given covariates; consumes ``len(covariates)`` normal draws."""
    mean = linear_predictor(covariates, coefficients)
    return mean + spatially_filtered_noise(len(covariates), rng, w, rho, noise_sd)
