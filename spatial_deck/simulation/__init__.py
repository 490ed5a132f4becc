"""
Spatial Deck Simulation Module
==============================

Synthetic geography, covariates and spatially filtered outcomes.

Modules:
    - data_generator: Seeded point and covariate generation
    - outcome: Linear outcome with spatially filtered noise
"""

from .data_generator import (
    SimulatedData,
    generate_points,
    generate_covariates,
    simulate_dataset,
)
from .outcome import simulate_outcome, spatially_filtered_noise

__all__ = [
    "SimulatedData",
    "generate_points",
    "generate_covariates",
    "simulate_dataset",
    "simulate_outcome",
    "spatially_filtered_noise",
]
