#!/usr/bin/env python3
"""
Model Specification Tests Module
================================
Statistics used on the slides to choose between OLS and the spatial models.

Tests performed:
1. Lagrange Multiplier tests (error, lag, robust forms) on the OLS fit
2. Likelihood Ratio Test: OLS vs SEM and OLS vs SLM
3. Information Criteria comparison (AIC, BIC)
4. Variance Inflation Factors of the covariates
"""

from typing import Dict, Any, Sequence
import numpy as np
import pandas as pd
from scipy import stats

from libpysal.weights import W
from statsmodels.stats.outliers_influence import variance_inflation_factor
from statsmodels.tools.tools import add_constant

from .regression import FittedModel, fit_ols


def lagrange_multiplier_tests(y, X, names: Sequence[str], w: W) -> pd.DataFrame:
    """LM-error, LM-lag and their robust versions from the OLS residuals."""
    return lm_test_table(fit_ols(y, X, names, w=w))


def lm_test_table(ols_fit: FittedModel) -> pd.DataFrame:
    """LM diagnostics of an OLS fit that was estimated with weights."""
    ols = ols_fit.model
    if ols_fit.name != 'OLS' or not hasattr(ols, 'lm_error'):
        raise ValueError("LM tests need an OLS fit estimated with spatial weights")

    rows = []
    for label, attr in [('LM error', 'lm_error'), ('LM lag', 'lm_lag'),
                        ('Robust LM error', 'rlm_error'), ('Robust LM lag', 'rlm_lag')]:
        stat, p_value = getattr(ols, attr)[:2]
        rows.append({
            'test': label,
            'statistic': float(stat),
            'df': 1,
            'p_value': float(p_value),
        })
    return pd.DataFrame(rows)


def compute_information_criteria(models: Sequence[FittedModel]) -> pd.DataFrame:
    """Compute AIC and BIC for model comparison"""
    criteria = []

    for result in models:
        if result is None:
            continue

        k = result.n_params
        logll = result.log_likelihood
        n_obs = result.n_obs

        criteria.append({
            'model': result.name,
            'log_likelihood': logll,
            'n_params': k,
            'AIC': 2 * k - 2 * logll,
            'BIC': k * np.log(n_obs) - 2 * logll,
        })

    return pd.DataFrame(criteria)


def perform_lrt(restricted: FittedModel, unrestricted: FittedModel,
                test_name: str = None) -> Dict[str, Any]:
    """Perform Likelihood Ratio Test"""
    if restricted.n_obs != unrestricted.n_obs:
        raise ValueError("Likelihood ratio test needs both models fitted on the same data")
    df = unrestricted.n_params - restricted.n_params
    if df < 1:
        raise ValueError(
            f"{unrestricted.name} must have more parameters than {restricted.name}"
        )

    # LRT statistic: -2 * (log L_restricted - log L_unrestricted)
    lrt_stat = -2 * (restricted.log_likelihood - unrestricted.log_likelihood)
    p_value = float(stats.chi2.sf(max(lrt_stat, 0.0), df))

    return {
        'test': test_name or f"{restricted.name} vs {unrestricted.name}",
        'lrt_statistic': lrt_stat,
        'df': df,
        'p_value': p_value,
        'significant_5pct': p_value < 0.05,
    }


def variance_inflation_factors(X, names: Sequence[str]) -> pd.DataFrame:
    """VIF per covariate, computed with a constant in the design."""
    X = np.asarray(X, dtype=float)
    if X.ndim != 2 or X.shape[1] != len(names):
        raise ValueError(f"{len(names)} names given for X of shape {X.shape}")
    if X.shape[1] < 2:
        return pd.DataFrame({'variable': list(names), 'VIF': [1.0] * X.shape[1]})

    design = add_constant(X, has_constant='add')
    vifs = [variance_inflation_factor(design, i + 1) for i in range(X.shape[1])]
    return pd.DataFrame({'variable': list(names), 'VIF': vifs})


def specification_table(models: Sequence[FittedModel]) -> pd.DataFrame:
    """LRTs of OLS against each spatial model that was fitted."""
    by_name = {m.name: m for m in models if m is not None}
    if 'OLS' not in by_name:
        raise ValueError("An OLS fit is required as the restricted model")

    rows = []
    for name in ['SEM', 'SLM']:
        if name in by_name:
            rows.append(perform_lrt(by_name['OLS'], by_name[name]))
    return pd.DataFrame(rows)
