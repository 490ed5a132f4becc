"""
Spatial Deck Visualization Module
=================================

Static figures for the slides.

Modules:
    - plots: Coefficient interval plot and Moran scatterplot
"""

from .plots import coefficient_interval_plot, moran_scatterplot

__all__ = [
    "coefficient_interval_plot",
    "moran_scatterplot",
]
