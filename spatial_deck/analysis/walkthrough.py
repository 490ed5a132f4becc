#!/usr/bin/env python3
"""
Walkthrough Module
==================
Runs the full chain behind one slide sequence and saves its tables and
figures.

Analysis steps:
1. Simulate coordinates, covariates and outcome (or load tract data)
2. Build row-standardised spatial weights
3. Fit OLS, spatial error and spatial lag models
4. Add residual and lagged-residual columns
5. Moran's I on each model's residuals
6. Specification tests (LM, LRT, information criteria, VIF)
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple
import pandas as pd

from libpysal.weights import W

from ..config import PipelineConfig, load_config
from ..reporting import print_header, significance_stars, tee_output
from ..preprocessing.spatial_weights import build_contiguity_weights, weights_summary
from ..preprocessing.tract_data import load_tract_frame, model_matrices
from ..simulation.data_generator import simulate_dataset
from ..visualization.plots import coefficient_interval_plot, moran_scatterplot
from .autocorrelation import moran_test, residual_moran_table
from .model_specification_tests import (
    compute_information_criteria,
    lm_test_table,
    specification_table,
    variance_inflation_factors,
)
from .regression import (
    ConvergenceError,
    FittedModel,
    add_residual_columns,
    combine_coefficient_tables,
    fit_ols,
    fit_spatial_error,
    fit_spatial_lag,
)


def print_weights_summary(w: W):
    summary = weights_summary(w)
    print(f"    ✓ Weights created for {summary['n']} units")
    print(f"    ✓ Mean neighbors: {summary['mean_neighbors']:.2f} "
          f"(min {summary['min_neighbors']}, max {summary['max_neighbors']})")
    print(f"    ✓ Islands: {summary['n_islands']}")
    print(f"    ✓ Asymmetric pairs: {summary['n_asymmetric_pairs']}")


def fit_models(y, X, names: Sequence[str], w: W,
               config: PipelineConfig) -> Tuple[List[FittedModel], pd.DataFrame]:
    """
    Fit OLS and the spatial models.

    Returns the successful fits and a status table with one row per
    attempted model. Non-convergence is reported, not raised.
    """
    print_header("MODEL ESTIMATION", level=2)
    model_cfg = config.model
    models = []
    status = []

    ols = fit_ols(y, X, names, w=w, ci_level=model_cfg.ci_level)
    models.append(ols)
    status.append({'model': 'OLS', 'converged': True, 'message': ''})
    print(f"    ✓ OLS: log-likelihood={ols.log_likelihood:.2f}, R²={ols.r_squared:.4f}")

    spatial_fitters = [('SEM', fit_spatial_error)]
    if model_cfg.fit_spatial_lag:
        spatial_fitters.append(('SLM', fit_spatial_lag))

    for name, fitter in spatial_fitters:
        try:
            fitted = fitter(y, X, names, w,
                            method=model_cfg.ml_method,
                            epsilon=model_cfg.epsilon,
                            ci_level=model_cfg.ci_level,
                            boundary_tolerance=model_cfg.boundary_tolerance)
        except ConvergenceError as e:
            print(f"    ✗ {name}: {e.reason}")
            status.append({'model': name, 'converged': False, 'message': e.reason})
            continue
        models.append(fitted)
        status.append({'model': name, 'converged': True, 'message': ''})
        print(f"    ✓ {name}: {fitted.spatial_parameter_name}={fitted.spatial_parameter:.4f}, "
              f"log-likelihood={fitted.log_likelihood:.2f}")

    return models, pd.DataFrame(status)


def print_coefficients(coef_df: pd.DataFrame):
    print_header("COEFFICIENTS", level=2)
    for _, row in coef_df.iterrows():
        print(f"    {row['model']:4s} {row['variable']:20s}: {row['coefficient']:9.4f} "
              f"[{row['ci_lower']:9.4f}, {row['ci_upper']:9.4f}] "
              f"{significance_stars(row['p_value'])}")


def analyse(frame: pd.DataFrame, y, X, names: Sequence[str], w: W,
            config: PipelineConfig, results_dir: Path, assets_dir: Path,
            true_values: Optional[Dict[str, float]] = None) -> Dict[str, Any]:
    """Fit, test and save everything for one data set."""
    spatial = config.spatial

    print_header("OUTCOME AUTOCORRELATION", level=2)
    outcome_moran = moran_test(y, w, inference=spatial.moran_inference,
                               permutations=spatial.moran_permutations, seed=0)
    print(f"    Outcome: I={outcome_moran.I:.4f}, E[I]={outcome_moran.expected_I:.4f}, "
          f"p={outcome_moran.p_value:.4f} {significance_stars(outcome_moran.p_value)}")

    models, status_df = fit_models(y, X, names, w, config)
    for fitted in models:
        add_residual_columns(frame, fitted, w)

    coef_df = combine_coefficient_tables(models)
    print_coefficients(coef_df)

    print_header("RESIDUAL AUTOCORRELATION", level=2)
    moran_df = residual_moran_table(models, w, inference=spatial.moran_inference,
                                    permutations=spatial.moran_permutations, seed=0)
    for _, row in moran_df.iterrows():
        print(f"    {row['model']:4s}: I={row['I']:7.4f}, z={row['z_score']:7.3f}, "
              f"p={row['p_value']:.4f} {significance_stars(row['p_value'])}")

    print_header("SPECIFICATION TESTS", level=2)
    lm_df = lm_test_table(models[0])
    for _, row in lm_df.iterrows():
        print(f"    {row['test']:16s}: {row['statistic']:9.3f}, p={row['p_value']:.4f}")
    ic_df = compute_information_criteria(models)
    for _, row in ic_df.iterrows():
        print(f"    {row['model']:4s}: AIC={row['AIC']:.2f}, BIC={row['BIC']:.2f}")
    lrt_df = specification_table(models)
    for _, row in lrt_df.iterrows():
        print(f"    LRT {row['test']}: {row['lrt_statistic']:.3f} (df={row['df']}), "
              f"p={row['p_value']:.4f}")
    vif_df = variance_inflation_factors(X, names)

    print_header("SAVING RESULTS", level=2)
    tables = {
        'coefficients.csv': coef_df,
        'model_status.csv': status_df,
        'residual_morans_i.csv': moran_df,
        'lm_tests.csv': lm_df,
        'information_criteria.csv': ic_df,
        'specification_tests.csv': lrt_df,
        'vif.csv': vif_df,
    }
    for filename, table in tables.items():
        table.to_csv(results_dir / filename, index=False)
        print(f"    ✓ {results_dir / filename}")

    data_path = results_dir / 'model_data.csv'
    pd.DataFrame(frame.drop(columns=frame.geometry.name, errors='ignore')).to_csv(
        data_path, index=False)
    print(f"    ✓ {data_path}")

    print_header("GENERATING VISUALIZATIONS", level=2)
    dpi = config.visualization.get("dpi", 150)
    try:
        path = coefficient_interval_plot(coef_df, assets_dir / 'coefficient_intervals.png',
                                         true_values=true_values, dpi=dpi)
        print(f"    ✓ Saved: {path}")
        ols = models[0]
        path = moran_scatterplot(ols.test_residuals, w,
                                 assets_dir / 'moran_scatter_ols_residuals.png',
                                 title="Moran Scatterplot: OLS Residuals",
                                 moran_i=float(moran_df.loc[0, 'I']), dpi=dpi)
        print(f"    ✓ Saved: {path}")
    except (OSError, ValueError) as e:
        print(f"    ⚠ Plotting failed: {e}")

    return {
        'models': models,
        'status': status_df,
        'coefficients': coef_df,
        'outcome_moran': outcome_moran,
        'residual_moran': moran_df,
        'lm_tests': lm_df,
        'information_criteria': ic_df,
        'specification_tests': lrt_df,
        'vif': vif_df,
        'frame': frame,
        'weights': w,
    }


def run_walkthrough(config: Optional[PipelineConfig] = None,
                    scenario_name: str = "spatial") -> Dict[str, Any]:
    """
    Main execution function for one simulated scenario.

    Args:
        config: PipelineConfig instance. If None, loads from default.
        scenario_name: Key under ``scenarios`` in the config.
    """
    if config is None:
        config = load_config()

    scenario = config.scenario(scenario_name)
    k = config.knn_for(scenario)

    results_dir = config.get_results_subdir(f"walkthrough_{scenario_name}")
    assets_dir = config.get_assets_subdir(f"walkthrough_{scenario_name}")
    timestamp = datetime.now().strftime(config.timestamp_format)
    log_file = results_dir / f'walkthrough_log_{timestamp}.txt'

    with tee_output(log_file):
        print_header(f"SPATIAL REGRESSION WALKTHROUGH: {scenario_name}")
        print(f"Execution Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        print(f"n={scenario.n_obs}, seed={scenario.seed}, rho={scenario.rho}, "
              f"noise_sd={scenario.noise_sd}, k={k}")

        print_header("1. SIMULATING DATA")
        data = simulate_dataset(scenario, k=k, metric=config.spatial.distance_metric)
        print(f"    ✓ Rows: {len(data.frame)}")
        print(f"    ✓ Covariates: {data.covariate_names}")
        print(f"    ✓ True coefficients: {scenario.coefficients}")

        print_header("2. SPATIAL WEIGHTS")
        print(f"    Building KNN weights with k={k} ({config.spatial.distance_metric})")
        print_weights_summary(data.weights)

        print_header("3. MODELS AND DIAGNOSTICS")
        results = analyse(data.frame, data.y, data.X, data.covariate_names, data.weights,
                          config, results_dir, assets_dir,
                          true_values=scenario.coefficients)

        print_header("WALKTHROUGH COMPLETED")
        print(f"✓ Results saved to: {results_dir}")
        print(f"✓ Assets saved to: {assets_dir}")

    results['data'] = data
    return results


def run_all_walkthroughs(config: Optional[PipelineConfig] = None,
                         scenarios: Optional[List[str]] = None) -> Dict[str, Dict[str, Any]]:
    """Run every configured scenario (or the named subset)."""
    if config is None:
        config = load_config()
    names = scenarios or list(config.scenarios)
    return {name: run_walkthrough(config, name) for name in names}


def run_tract_analysis(config: Optional[PipelineConfig] = None) -> Dict[str, Any]:
    """
    Main execution function for the real-data variant.

    Args:
        config: PipelineConfig instance. If None, loads from default.
    """
    if config is None:
        config = load_config()

    tract_cfg = config.tract_data
    results_dir = config.get_results_subdir("tract_analysis")
    assets_dir = config.get_assets_subdir("tract_analysis")
    timestamp = datetime.now().strftime(config.timestamp_format)
    log_file = results_dir / f'tract_analysis_log_{timestamp}.txt'

    with tee_output(log_file):
        print_header("SPATIAL REGRESSION: TRACT DATA")
        print(f"Execution Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

        print_header("1. LOADING TRACT DATA")
        gdf = load_tract_frame(config)
        print(f"    ✓ Tracts: {len(gdf)}")
        print(f"    ✓ Outcome: {tract_cfg.outcome}")
        print(f"    ✓ Predictors: {tract_cfg.predictors}")

        print_header("2. CONTIGUITY WEIGHTS")
        print(f"    Rule: {config.spatial.contiguity_rule}, "
              f"island policy: {config.spatial.island_policy}")
        n_before = len(gdf)
        w, gdf = build_contiguity_weights(gdf, rule=config.spatial.contiguity_rule,
                                          island_policy=config.spatial.island_policy)
        if len(gdf) != n_before:
            print(f"    ⚠ Dropped {n_before - len(gdf)} island tract(s)")
        print_weights_summary(w)

        print_header("3. MODELS AND DIAGNOSTICS")
        y, X = model_matrices(gdf, tract_cfg.outcome, tract_cfg.predictors)
        results = analyse(gdf, y, X, tract_cfg.predictors, w, config,
                          results_dir, assets_dir)

        print_header("TRACT ANALYSIS COMPLETED")
        print(f"✓ Results saved to: {results_dir}")
        print(f"✓ Assets saved to: {assets_dir}")

    return results
