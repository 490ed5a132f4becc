#!/usr/bin/env python3
"""
Spatial Weights Module
======================
Builds row-standardised spatial weights for the regression walkthroughs.

Two constructions are supported:
1. K-nearest neighbours over point coordinates (synthetic geography)
2. Queen/Rook polygon contiguity (tract data)

Neighbour policy:
- A unit is never its own neighbour.
- Equidistant candidates are ranked by row index (lower index first).
  Coincident points are ordinary neighbours at distance zero.
- k must satisfy 1 <= k < n; there is no silent clamping.
- Units without neighbours ("islands") only arise from contiguity and are
  handled by an explicit policy: keep (zero row), drop, or raise.
"""

from typing import Dict, List, Tuple, Any
import numpy as np
import geopandas as gpd
from scipy.spatial.distance import cdist
from sklearn.metrics.pairwise import haversine_distances

from libpysal.weights import W, Queen, Rook

from ..config import DISTANCE_METRICS, ISLAND_POLICIES


EARTH_RADIUS_KM = 6371.0088


def _validate_points(points) -> np.ndarray:
    pts = np.asarray(points, dtype=float)
    if pts.ndim != 2 or pts.shape[1] != 2:
        raise ValueError(f"points must have shape (n, 2), got {pts.shape}")
    if len(pts) == 0:
        raise ValueError("points must contain at least one coordinate pair")
    if not np.all(np.isfinite(pts)):
        raise ValueError("points contain NaN or infinite coordinates")
    return pts


def pairwise_distances(points, metric: str = "euclidean") -> np.ndarray:
    """
    Full distance matrix between all points.

    ``haversine`` expects (longitude, latitude) in degrees and returns
    kilometres.
    """
    pts = _validate_points(points)
    if metric == "euclidean":
        return cdist(pts, pts)
    if metric == "haversine":
        if np.any(np.abs(pts[:, 0]) > 180) or np.any(np.abs(pts[:, 1]) > 90):
            raise ValueError(
                "haversine expects (longitude, latitude) in degrees: "
                "longitude within [-180, 180] and latitude within [-90, 90]"
            )
        lat_lon = np.radians(pts[:, ::-1])
        return haversine_distances(lat_lon) * EARTH_RADIUS_KM
    raise ValueError(f"Invalid metric '{metric}'. Must be one of: {DISTANCE_METRICS}")


def knn_neighbors(points, k: int, metric: str = "euclidean") -> Dict[int, List[int]]:
    """
    Map each point index to its k nearest other points, nearest first.

    Ties on distance are broken by index through a stable sort.
    """
    pts = _validate_points(points)
    n = len(pts)
    if isinstance(k, bool) or not isinstance(k, (int, np.integer)):
        raise ValueError(f"k must be an integer, got {k!r}")
    if k < 1:
        raise ValueError(f"k must be >= 1, got {k}")
    if k >= n:
        raise ValueError(
            f"k={k} neighbours requested but only {n - 1} other points exist (need k < n)"
        )

    dist = pairwise_distances(pts, metric)
    np.fill_diagonal(dist, np.inf)
    order = np.argsort(dist, axis=1, kind="stable")[:, :k]

    return {i: [int(j) for j in order[i]] for i in range(n)}


def build_knn_weights(points, k: int, metric: str = "euclidean") -> W:
    """Row-standardised KNN weights (each neighbour weighs 1/k)."""
    neighbors = knn_neighbors(points, k, metric)
    w = W(neighbors, id_order=list(range(len(neighbors))), silence_warnings=True)
    w.transform = 'r'
    return w


def _contiguity(gdf: gpd.GeoDataFrame, rule: str) -> W:
    if rule == "queen":
        builder = Queen
    elif rule == "rook":
        builder = Rook
    else:
        raise ValueError(f"Invalid contiguity rule '{rule}'. Must be 'queen' or 'rook'")
    return builder.from_dataframe(gdf, use_index=False, silence_warnings=True)


def build_contiguity_weights(
    gdf: gpd.GeoDataFrame,
    rule: str = "queen",
    island_policy: str = "keep",
) -> Tuple[W, gpd.GeoDataFrame]:
    """
    Row-standardised polygon contiguity weights.

    Returns the weights together with the frame they index, which differs
    from the input only when ``island_policy == "drop"``.
    """
    if island_policy not in ISLAND_POLICIES:
        raise ValueError(
            f"Invalid island_policy '{island_policy}'. Must be one of: {ISLAND_POLICIES}"
        )
    if len(gdf) < 2:
        raise ValueError("At least two polygons are required for contiguity weights")

    gdf = gdf.reset_index(drop=True)
    w = _contiguity(gdf, rule)

    if w.islands:
        w, gdf = apply_island_policy(w, gdf, island_policy, rule)

    w.transform = 'r'
    return w, gdf


def apply_island_policy(
    w: W, gdf: gpd.GeoDataFrame, island_policy: str, rule: str = "queen"
) -> Tuple[W, gpd.GeoDataFrame]:
    """Resolve zero-neighbour units according to ``island_policy``."""
    islands = list(w.islands)
    if not islands or island_policy == "keep":
        return w, gdf
    if island_policy == "raise":
        raise ValueError(
            f"{len(islands)} unit(s) have no neighbours (positions {islands[:10]}); "
            "set island_policy to 'keep' or 'drop'"
        )

    # Removing an island never disconnects the remaining units
    kept = gdf.drop(index=islands).reset_index(drop=True)
    if len(kept) < 2:
        raise ValueError("Dropping islands leaves fewer than two units")
    return _contiguity(kept, rule), kept


def weights_to_dense(w: W) -> np.ndarray:
    """Dense (n, n) matrix in ``w.id_order``."""
    return w.full()[0]


def row_sums(w: W) -> np.ndarray:
    return np.asarray(w.sparse.sum(axis=1)).ravel()


def weights_summary(w: W) -> Dict[str, Any]:
    """Descriptive statistics printed alongside each weights object."""
    cardinalities = np.array(list(w.cardinalities.values()))
    return {
        'n': w.n,
        'transform': w.transform,
        'mean_neighbors': float(w.mean_neighbors),
        'min_neighbors': int(cardinalities.min()),
        'max_neighbors': int(cardinalities.max()),
        'n_islands': len(w.islands),
        'n_asymmetric_pairs': len(w.asymmetry()),
        's0': float(w.s0),
    }
