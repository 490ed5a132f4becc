"""
monte_carlo.py
--------------
Repeated-simulation studies behind the "does the method work?" slides.

Coverage study
--------------
Simulate the non-spatial scenario S times, fit OLS, and count how often
the Wald interval covers the true coefficient:

    Coverage = (1/S) Σ_s 1[ lo_s ≤ β_true ≤ hi_s ]
    Bias     = (1/S) Σ_s (β̂_s − β_true)
    RMSE     = √[(1/S) Σ_s (β̂_s − β_true)²]

Null study
----------
Moran's I on i.i.d. standard normal values over a fixed KNN geography.
Under H₀ the mean of I approaches E[I] = −1/(N−1) and the p-values are
uniform on (0, 1), checked with a Kolmogorov–Smirnov test.

Power study
-----------
Moran's I on OLS residuals of the spatially filtered scenario; the share
of replications with p < α is the rejection rate.

Replication s uses seed ``base_seed + s``.
"""

import dataclasses
from datetime import datetime
from typing import Optional
import numpy as np
import pandas as pd
from scipy import stats

from ..config import PipelineConfig, ScenarioConfig, load_config
from ..reporting import print_header, tee_output
from ..preprocessing.spatial_weights import build_knn_weights
from ..simulation.data_generator import generate_points, simulate_dataset
from .autocorrelation import moran_test
from .regression import ConvergenceError, fit_ols, fit_spatial_error


def _replicate(scenario: ScenarioConfig, seed: int) -> ScenarioConfig:
    return dataclasses.replace(scenario, seed=int(seed))


def ci_coverage_study(scenario: ScenarioConfig,
                      coefficient: str,
                      n_replications: int = 500,
                      ci_level: float = 0.95,
                      base_seed: Optional[int] = None,
                      k: Optional[int] = None) -> dict:
    """
    Coverage of OLS Wald intervals for one true coefficient.

    Parameters
    ----------
    scenario       : scenario to replicate (its seed is replaced per draw)
    coefficient    : covariate whose true value is tracked
    n_replications : number of Monte Carlo replications
    ci_level       : interval level
    base_seed      : first seed; defaults to ``scenario.seed``
    k              : neighbour count, needed only if the scenario has rho != 0

    Returns
    -------
    dict with coverage, bias, rmse, mean_std_error and the per-replication
    estimates / covered flags.
    """
    if n_replications < 1:
        raise ValueError("n_replications must be >= 1")
    if coefficient not in scenario.covariate_names:
        raise ValueError(
            f"'{coefficient}' is not a covariate of scenario '{scenario.name}'"
        )
    true_value = float(scenario.coefficients[coefficient])
    base_seed = scenario.seed if base_seed is None else base_seed

    estimates = np.empty(n_replications)
    std_errors = np.empty(n_replications)
    covered = np.zeros(n_replications, dtype=bool)

    for s in range(n_replications):
        data = simulate_dataset(_replicate(scenario, base_seed + s), k=k)
        fitted = fit_ols(data.y, data.X, data.covariate_names, ci_level=ci_level)
        lo, hi = fitted.confidence_interval(coefficient)
        estimates[s] = fitted.coefficient(coefficient)
        std_errors[s] = fitted.std_errors[fitted.variables.index(coefficient)]
        covered[s] = lo <= true_value <= hi

    return {
        "n_replications": n_replications,
        "coefficient"   : coefficient,
        "true_value"    : true_value,
        "ci_level"      : ci_level,
        "coverage"      : float(covered.mean()),
        "bias"          : float(estimates.mean() - true_value),
        "rmse"          : float(np.sqrt(np.mean((estimates - true_value) ** 2))),
        "mean_std_error": float(std_errors.mean()),
        "estimates"     : estimates,
        "covered"       : covered,
    }


def moran_null_study(n_obs: int = 100,
                     k: int = 15,
                     n_replications: int = 500,
                     seed: int = 2024,
                     alpha: float = 0.05,
                     coord_low: float = 0.0,
                     coord_high: float = 100.0) -> dict:
    """
    Null distribution of Moran's I for i.i.d. values on one KNN geography.

    Returns
    -------
    dict with mean_I, expected_I, rejection_rate, ks_p_value and the
    arrays of I values and p-values.
    """
    if n_replications < 1:
        raise ValueError("n_replications must be >= 1")
    rng = np.random.default_rng(seed)
    points = generate_points(n_obs, coord_low, coord_high, rng)
    w = build_knn_weights(points, k)

    i_values = np.empty(n_replications)
    p_values = np.empty(n_replications)
    for s in range(n_replications):
        result = moran_test(rng.standard_normal(n_obs), w)
        i_values[s] = result.I
        p_values[s] = result.p_value

    ks = stats.kstest(p_values, "uniform")
    return {
        "n_replications": n_replications,
        "n_obs"         : n_obs,
        "k"             : k,
        "expected_I"    : -1.0 / (n_obs - 1),
        "mean_I"        : float(i_values.mean()),
        "rejection_rate": float(np.mean(p_values < alpha)),
        "ks_statistic"  : float(ks.statistic),
        "ks_p_value"    : float(ks.pvalue),
        "I_values"      : i_values,
        "p_values"      : p_values,
    }


def moran_power_study(scenario: ScenarioConfig,
                      k: Optional[int] = None,
                      n_replications: int = 200,
                      alpha: float = 0.05,
                      base_seed: Optional[int] = None,
                      fit_sem: bool = False) -> dict:
    """
    Rejection rate of Moran's I on OLS residuals of a spatial scenario.

    With ``fit_sem`` the spatial error model is also fitted per replication;
    replications where it fails to converge are counted in
    ``sem_failures`` and excluded from ``lambda_estimates``.
    """
    if n_replications < 1:
        raise ValueError("n_replications must be >= 1")
    k = scenario.knn_neighbors if k is None else k
    if k is None:
        raise ValueError(f"Scenario '{scenario.name}' needs a neighbour count")
    base_seed = scenario.seed if base_seed is None else base_seed

    i_values = np.empty(n_replications)
    p_values = np.empty(n_replications)
    lambdas = []
    sem_failures = 0

    for s in range(n_replications):
        data = simulate_dataset(_replicate(scenario, base_seed + s), k=k)
        ols = fit_ols(data.y, data.X, data.covariate_names)
        result = moran_test(ols.residuals, data.weights)
        i_values[s] = result.I
        p_values[s] = result.p_value

        if fit_sem:
            try:
                sem = fit_spatial_error(data.y, data.X, data.covariate_names, data.weights)
                lambdas.append(sem.spatial_parameter)
            except ConvergenceError:
                sem_failures += 1

    return {
        "n_replications"  : n_replications,
        "rho"             : scenario.rho,
        "k"               : k,
        "mean_I"          : float(i_values.mean()),
        "rejection_rate"  : float(np.mean(p_values < alpha)),
        "I_values"        : i_values,
        "p_values"        : p_values,
        "lambda_estimates": np.array(lambdas),
        "sem_failures"    : sem_failures,
    }


def run_monte_carlo(config: Optional[PipelineConfig] = None) -> dict:
    """
    Main execution function for the Monte Carlo studies.

    Args:
        config: PipelineConfig instance. If None, loads from default.
    """
    if config is None:
        config = load_config()

    mc = config.monte_carlo
    alpha = config.spatial.significance
    results_dir = config.get_results_subdir("monte_carlo")
    timestamp = datetime.now().strftime(config.timestamp_format)
    log_file = results_dir / f'monte_carlo_log_{timestamp}.txt'

    with tee_output(log_file):
        print_header("MONTE CARLO STUDIES")
        print(f"Execution Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        print(f"Replications: {mc.n_replications}, base seed: {mc.base_seed}")

        print_header("1. CONFIDENCE INTERVAL COVERAGE")
        scenario = config.scenario(mc.coverage_scenario)
        coverage = ci_coverage_study(
            scenario, mc.coverage_coefficient,
            n_replications=mc.n_replications,
            ci_level=config.model.ci_level,
            base_seed=mc.base_seed,
            k=config.knn_for(scenario) if scenario.rho != 0 else None,
        )
        print(f"    Coefficient: {coverage['coefficient']} (true {coverage['true_value']})")
        print(f"    ✓ Coverage: {coverage['coverage']:.3f} (nominal {coverage['ci_level']})")
        print(f"    ✓ Bias: {coverage['bias']:.5f}, RMSE: {coverage['rmse']:.5f}")

        print_header("2. MORAN'S I UNDER THE NULL")
        null = moran_null_study(
            n_obs=mc.null_n_obs, k=mc.null_knn_neighbors,
            n_replications=mc.n_replications, seed=mc.base_seed, alpha=alpha,
        )
        print(f"    ✓ Mean I: {null['mean_I']:.5f} (E[I] = {null['expected_I']:.5f})")
        print(f"    ✓ Rejection rate at {alpha}: {null['rejection_rate']:.3f}")
        print(f"    ✓ KS test of p-value uniformity: p={null['ks_p_value']:.4f}")

        print_header("3. MORAN'S I POWER")
        power_scenario = config.scenario(mc.power_scenario)
        power = moran_power_study(
            power_scenario, k=config.knn_for(power_scenario),
            n_replications=mc.n_replications, alpha=alpha, base_seed=mc.base_seed,
        )
        print(f"    rho={power['rho']}, k={power['k']}")
        print(f"    ✓ Mean I: {power['mean_I']:.4f}")
        print(f"    ✓ Rejection rate at {alpha}: {power['rejection_rate']:.3f}")

        summary = pd.DataFrame([
            {'study': 'ci_coverage', 'metric': 'coverage', 'value': coverage['coverage']},
            {'study': 'ci_coverage', 'metric': 'bias', 'value': coverage['bias']},
            {'study': 'ci_coverage', 'metric': 'rmse', 'value': coverage['rmse']},
            {'study': 'moran_null', 'metric': 'mean_I', 'value': null['mean_I']},
            {'study': 'moran_null', 'metric': 'expected_I', 'value': null['expected_I']},
            {'study': 'moran_null', 'metric': 'rejection_rate', 'value': null['rejection_rate']},
            {'study': 'moran_null', 'metric': 'ks_p_value', 'value': null['ks_p_value']},
            {'study': 'moran_power', 'metric': 'mean_I', 'value': power['mean_I']},
            {'study': 'moran_power', 'metric': 'rejection_rate', 'value': power['rejection_rate']},
        ])
        summary_path = results_dir / 'monte_carlo_summary.csv'
        summary.to_csv(summary_path, index=False)
        print(f"\n    ✓ Saved summary to: {summary_path}")

        estimates_path = results_dir / 'coverage_estimates.csv'
        pd.DataFrame({
            'estimate': coverage['estimates'],
            'covered': coverage['covered'],
        }).to_csv(estimates_path, index=False)
        print(f"    ✓ Saved estimates to: {estimates_path}")

    return {'coverage': coverage, 'null': null, 'power': power, 'summary': summary}
