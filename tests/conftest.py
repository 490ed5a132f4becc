"""Shared test fixtures for spatial_deck tests."""

import numpy as np
import geopandas as gpd
import pytest
from shapely.geometry import box

from spatial_deck.config import CovariateSpec, PipelineConfig, ScenarioConfig
from spatial_deck.preprocessing.spatial_weights import build_knn_weights, weights_to_dense


COVARIATES = [
    {"name": "treatment", "mean": 0.0, "sd": 1.0},
    {"name": "age", "mean": 0.0, "sd": 1.0},
    {"name": "income", "mean": 0.0, "sd": 1.0},
]
COEFFICIENTS = {"intercept": 2.0, "treatment": 0.1, "age": 0.05, "income": 0.03}


@pytest.fixture
def treatment_scenario():
    """Non-spatial scenario from the 'recover the true effect' slide."""
    return ScenarioConfig(
        name="treatment",
        n_obs=1000,
        seed=42,
        coord_low=0.0,
        coord_high=100.0,
        covariates=[CovariateSpec(**c) for c in COVARIATES],
        coefficients=dict(COEFFICIENTS),
        noise_sd=0.5,
        rho=0.0,
    )


@pytest.fixture
def spatial_scenario():
    """Spatially filtered scenario: N=100, k=15, rho=30."""
    return ScenarioConfig(
        name="spatial",
        n_obs=100,
        seed=123,
        coord_low=0.0,
        coord_high=100.0,
        covariates=[CovariateSpec(**c) for c in COVARIATES],
        coefficients=dict(COEFFICIENTS),
        noise_sd=1.0,
        rho=30.0,
        knn_neighbors=15,
    )


@pytest.fixture
def config_dict():
    return {
        "spatial": {"knn_neighbors": 8, "moran": {"inference": "normal"}},
        "model": {"ci_level": 0.95, "ml_method": "full"},
        "scenarios": {
            "small_spatial": {
                "n_obs": 60,
                "seed": 7,
                "coord_range": [0.0, 10.0],
                "covariates": COVARIATES[:2],
                "coefficients": {"intercept": 1.0, "treatment": 0.5, "age": -0.25},
                "noise_sd": 1.0,
                "rho": 5.0,
            },
        },
        "monte_carlo": {
            "n_replications": 5,
            "coverage_scenario": "small_spatial",
            "coverage_coefficient": "treatment",
            "power_scenario": "small_spatial",
            "null_n_obs": 30,
            "null_knn_neighbors": 4,
        },
        "visualization": {"dpi": 50},
    }


@pytest.fixture
def config(tmp_path, config_dict):
    """Pipeline config writing into a temporary project root."""
    return PipelineConfig(config_dict, base_path=tmp_path)


@pytest.fixture
def random_points():
    rng = np.random.default_rng(0)
    return rng.uniform(0, 100, size=(50, 2))


def _sar_filter(w, lam, values):
    W = weights_to_dense(w)
    return np.linalg.solve(np.eye(w.n) - lam * W, values)


@pytest.fixture
def sar_error_data():
    """y = 1 + 2x + u with u = (I - 0.5 W)^-1 e on a 6-nearest-neighbour graph."""
    rng = np.random.default_rng(11)
    n = 200
    points = rng.uniform(0, 100, size=(n, 2))
    w = build_knn_weights(points, 6)
    x = rng.standard_normal(n)
    u = _sar_filter(w, 0.5, rng.standard_normal(n))
    y = 1.0 + 2.0 * x + u
    return y, x.reshape(-1, 1), w


@pytest.fixture
def sar_lag_data():
    """y = (I - 0.4 W)^-1 (1 + 2x + e) on a 6-nearest-neighbour graph."""
    rng = np.random.default_rng(12)
    n = 200
    points = rng.uniform(0, 100, size=(n, 2))
    w = build_knn_weights(points, 6)
    x = rng.standard_normal(n)
    y = _sar_filter(w, 0.4, 1.0 + 2.0 * x + rng.standard_normal(n))
    return y, x.reshape(-1, 1), w


def grid_polygons(n_side: int = 3, with_island: bool = False) -> gpd.GeoDataFrame:
    """Row-major grid of unit squares, optionally with one detached square."""
    cells = [box(col, row, col + 1, row + 1)
             for row in range(n_side) for col in range(n_side)]
    if with_island:
        cells.append(box(50, 50, 51, 51))
    return gpd.GeoDataFrame({"cell": range(len(cells))}, geometry=cells)


@pytest.fixture
def grid_gdf():
    return grid_polygons(3, with_island=True)
