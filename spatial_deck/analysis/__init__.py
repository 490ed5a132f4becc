"""
Spatial Deck Analysis Module
============================

Model fitting, autocorrelation testing and the stage runners.

Modules:
    - regression: OLS, spatial error and spatial lag fits
    - autocorrelation: Global Moran's I
    - model_specification_tests: LM, LRT, information criteria, VIF
    - monte_carlo: Coverage, null and power studies
    - walkthrough: End-to-end scenario and tract runs
"""

from .regression import (
    ConvergenceError,
    FittedModel,
    add_residual_columns,
    fit_ols,
    fit_spatial_error,
    fit_spatial_lag,
)
from .autocorrelation import MoranResult, moran_test, residual_moran_table
from .monte_carlo import (
    ci_coverage_study,
    moran_null_study,
    moran_power_study,
    run_monte_carlo,
)
from .walkthrough import run_walkthrough, run_all_walkthroughs, run_tract_analysis

__all__ = [
    "ConvergenceError",
    "FittedModel",
    "add_residual_columns",
    "fit_ols",
    "fit_spatial_error",
    "fit_spatial_lag",
    "MoranResult",
    "moran_test",
    "residual_moran_table",
    "ci_coverage_study",
    "moran_null_study",
    "moran_power_study",
    "run_monte_carlo",
    "run_walkthrough",
    "run_all_walkthroughs",
    "run_tract_analysis",
]
