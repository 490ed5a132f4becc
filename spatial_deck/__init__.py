"""
Spatial Deck - Spatial Regression Teaching Pipeline
===================================================

Computes the tables and figures for a slide deck on spatial regression:
simulated geography, KNN weights, OLS vs spatial error/lag models, and
Moran's I on residuals.

Modules:
    - config: Configuration loading and validation
    - simulation: Synthetic points, covariates and outcomes
    - preprocessing: Spatial weights and tract data loading
    - analysis: Model fitting, Moran's I, specification tests, Monte Carlo
    - visualization: Static slide figures
"""

__version__ = "1.0.0"

from .config import PipelineConfig, load_config

__all__ = [
    "PipelineConfig",
    "load_config",
    "__version__",
]
