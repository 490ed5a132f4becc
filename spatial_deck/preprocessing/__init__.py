"""
Spatial Deck Preprocessing Module
=================================

Spatial weights construction and real-data loading.

Modules:
    - spatial_weights: KNN and contiguity weights with explicit neighbour policy
    - tract_data: Local tract polygons joined to an attribute table
"""

from .spatial_weights import (
    build_knn_weights,
    build_contiguity_weights,
    knn_neighbors,
    weights_summary,
    weights_to_dense,
)
from .tract_data import load_tract_frame, model_matrices

__all__ = [
    "build_knn_weights",
    "build_contiguity_weights",
    "knn_neighbors",
    "weights_summary",
    "weights_to_dense",
    "load_tract_frame",
    "model_matrices",
]
