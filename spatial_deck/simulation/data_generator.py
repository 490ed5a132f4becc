"""
Synthetic data generator.

Draws point locations uniformly over a square and covariates independently
of location. A single ``numpy.random.Generator`` seeded from the scenario is
consumed in a fixed order (coordinates, covariates, outcome noise), so the
same seed always reproduces the same data set.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence
import numpy as np
import pandas as pd
import geopandas as gpd

from libpysal.weights import W

from ..config import CovariateSpec, ScenarioConfig
from ..preprocessing.spatial_weights import build_knn_weights
from .outcome import simulate_outcome


OUTCOME_COLUMN = "outcome"


@dataclass
class SimulatedData:
    """A simulated data set and the weights its noise was filtered through."""
    frame: gpd.GeoDataFrame
    weights: Optional[W]
    scenario: ScenarioConfig

    @property
    def covariate_names(self) -> List[str]:
        return self.scenario.covariate_names

    @property
    def points(self) -> np.ndarray:
        return self.frame[["coord_x", "coord_y"]].to_numpy()

    @property
    def y(self) -> np.ndarray:
        return self.frame[OUTCOME_COLUMN].to_numpy(dtype=float)

    @property
    def X(self) -> np.ndarray:
        return self.frame[self.covariate_names].to_numpy(dtype=float)


def generate_points(
    n_obs: int, coord_low: float, coord_high: float, rng: np.random.Generator
) -> np.ndarray:
    """(n_obs, 2) coordinates drawn i.i.d. uniform on [coord_low, coord_high)^2."""
    if isinstance(n_obs, bool) or not isinstance(n_obs, (int, np.integer)) or n_obs < 1:
        raise ValueError(f"n_obs must be a positive integer, got {n_obs!r}")
    if not (np.isfinite(coord_low) and np.isfinite(coord_high)) or coord_high <= coord_low:
        raise ValueError(f"Invalid coordinate range [{coord_low}, {coord_high}]")
    return rng.uniform(coord_low, coord_high, size=(n_obs, 2))


def generate_covariates(
    n_obs: int, covariates: Sequence[CovariateSpec], rng: np.random.Generator
) -> pd.DataFrame:
    """One normal column per covariate, drawn in the given order."""
    if isinstance(n_obs, bool) or not isinstance(n_obs, (int, np.integer)) or n_obs < 1:
        raise ValueError(f"n_obs must be a positive integer, got {n_obs!r}")
    names = [spec.name for spec in covariates]
    if len(set(names)) != len(names):
        raise ValueError(f"Duplicate covariate names: {names}")
    for spec in covariates:
        spec.validate()

    columns = {spec.name: rng.normal(spec.mean, spec.sd, size=n_obs) for spec in covariates}
    return pd.DataFrame(columns, columns=names)


def simulate_dataset(
    scenario: ScenarioConfig,
    k: Optional[int] = None,
    metric: str = "euclidean",
) -> SimulatedData:
    """
    Run generator -> weights -> outcome for one scenario.

    ``k`` defaults to the scenario's own ``knn_neighbors``. Weights are
    built whenever a neighbour count is available; they are required when
    ``scenario.rho`` is non-zero.
    """
    scenario.validate()
    if k is None:
        k = scenario.knn_neighbors
    if k is None and scenario.rho != 0:
        raise ValueError(
            f"Scenario '{scenario.name}' has rho={scenario.rho} but no neighbour count"
        )

    rng = np.random.default_rng(scenario.seed)
    points = generate_points(scenario.n_obs, scenario.coord_low, scenario.coord_high, rng)
    covariates = generate_covariates(scenario.n_obs, scenario.covariates, rng)

    w = build_knn_weights(points, k, metric) if k is not None else None
    y = simulate_outcome(
        covariates,
        scenario.coefficients,
        rng,
        w=w,
        rho=scenario.rho,
        noise_sd=scenario.noise_sd,
    )

    frame = pd.DataFrame({"coord_x": points[:, 0], "coord_y": points[:, 1]})
    frame = pd.concat([frame, covariates], axis=1)
    frame[OUTCOME_COLUMN] = y
    gdf = gpd.GeoDataFrame(frame, geometry=gpd.points_from_xy(frame["coord_x"], frame["coord_y"]))

    return SimulatedData(frame=gdf, weights=w, scenario=scenario)
