#!/usr/bin/env python3
"""
Autocorrelation Module
======================
Global Moran's I on a vector of values (typically model residuals):

    I = (N / S0) * Σ_i Σ_j w_ij (x_i - x̄)(x_j - x̄) / Σ_i (x_i - x̄)²

with E[I] = -1 / (N - 1) under the null of no spatial autocorrelation.
The variance comes from the normality assumption, the randomization
assumption, or a conditional permutation reference distribution.
"""

from dataclasses import dataclass, asdict
from typing import Dict, Optional, Sequence
import numpy as np
import pandas as pd

from libpysal.weights import W
from esda.moran import Moran

from ..config import MORAN_INFERENCE


@dataclass
class MoranResult:
    """Global Moran's I test outcome."""
    I: float  # noqa: E741
    expected_I: float
    variance: float
    z_score: float
    p_value: float
    inference: str
    n: int

    def is_significant(self, alpha: float = 0.05) -> bool:
        return self.p_value < alpha

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def moran_test(
    values,
    w: W,
    inference: str = "normal",
    permutations: int = 999,
    seed: Optional[int] = None,
    two_tailed: bool = True,
) -> MoranResult:
    """
    Test ``values`` for global spatial autocorrelation.

    Args:
        values: Length-n vector in the order of ``w.id_order``.
        w: Spatial weights; the statistic uses their row-standardised
            form. The caller's ``w.transform`` is left unchanged.
        inference: "normal", "randomization" or "permutation".
        permutations: Reference draws when inference is "permutation".
        seed: Seeds the permutation draws.
        two_tailed: Two-sided p-value for the analytical modes. Permutation
            mode doubles esda's folded (one-sided) pseudo p-value, capped at 1.
    """
    if inference not in MORAN_INFERENCE:
        raise ValueError(
            f"Invalid inference '{inference}'. Must be one of: {MORAN_INFERENCE}"
        )
    y = np.asarray(values, dtype=float).ravel()
    if len(y) != w.n:
        raise ValueError(f"{len(y)} values given for weights over {w.n} units")
    if len(y) < 4:
        raise ValueError("Moran's I needs at least 4 observations")
    if not np.all(np.isfinite(y)):
        raise ValueError("values must not contain NaN or infinite entries")
    if np.ptp(y) == 0:
        raise ValueError("values have zero variance; Moran's I is undefined")
    if inference == "permutation" and permutations < 1:
        raise ValueError("permutation inference requires permutations >= 1")

    # esda row-standardises the weights object it is given in place
    original_transform = w.transform
    try:
        return _moran(y, w, inference, permutations, seed, two_tailed)
    finally:
        w.transform = original_transform


def _moran(y: np.ndarray, w: W, inference: str, permutations: int,
           seed: Optional[int], two_tailed: bool) -> MoranResult:
    if inference == "permutation":
        # esda draws permutations from the global numpy stream
        if seed is not None:
            np.random.seed(seed)
        mi = Moran(y, w, transformation='r', permutations=permutations)
        p_value = min(1.0, 2 * float(mi.p_sim)) if two_tailed else float(mi.p_sim)
        return MoranResult(
            I=float(mi.I),
            expected_I=float(mi.EI_sim),
            variance=float(mi.VI_sim),
            z_score=float(mi.z_sim),
            p_value=p_value,
            inference=inference,
            n=int(mi.n),
        )

    mi = Moran(y, w, transformation='r', permutations=0, two_tailed=two_tailed)
    if inference == "normal":
        variance, z, p = mi.VI_norm, mi.z_norm, mi.p_norm
    else:
        variance, z, p = mi.VI_rand, mi.z_rand, mi.p_rand

    return MoranResult(
        I=float(mi.I),
        expected_I=float(mi.EI),
        variance=float(variance),
        z_score=float(z),
        p_value=float(p),
        inference=inference,
        n=int(mi.n),
    )


def residual_moran_table(
    models: Sequence,
    w: W,
    inference: str = "normal",
    permutations: int = 999,
    seed: Optional[int] = None,
) -> pd.DataFrame:
    """Moran's I on the test residuals of each fitted model, one row per model."""
    rows = []
    for fitted in models:
        result = moran_test(fitted.test_residuals, w, inference=inference,
                            permutations=permutations, seed=seed)
        row = {'model': fitted.name}
        row.update(result.to_dict())
        rows.append(row)
    return pd.DataFrame(rows)
