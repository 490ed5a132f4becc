#!/usr/bin/env python3
"""
Tract Data Module
=================
Loads the real-data example from local files: tract polygons plus an
attribute table (counts and a prevalence measure) joined on the
geographic identifier.
"""

from pathlib import Path
from typing import List, Optional, Tuple
import numpy as np
import pandas as pd
import geopandas as gpd

from ..config import PipelineConfig, TractDataConfig


def normalise_ids(ids: pd.Series, width: Optional[int]) -> pd.Series:
    """GEOIDs as zero-padded strings so CSV integers match geometry text."""
    ids = ids.astype(str).str.strip()
    # Numeric CSV columns come back as e.g. "6001400100.0"
    ids = ids.str.replace(r"\.0$", "", regex=True)
    if width:
        ids = ids.str.zfill(width)
    return ids


def _read_table(path: Path) -> pd.DataFrame:
    if not path.exists():
        raise FileNotFoundError(f"Attribute table not found: {path}")
    if path.suffix.lower() == ".parquet":
        return pd.read_parquet(path)
    return pd.read_csv(path)


def load_tract_frame(config: PipelineConfig) -> gpd.GeoDataFrame:
    """
    Read geometry (and optional attribute table) into one GeoDataFrame.

    Rows lacking the outcome or any predictor are dropped.
    """
    tract_cfg: TractDataConfig = config.tract_data
    if not tract_cfg.enabled:
        raise ValueError(
            "tract_data is not configured: geometry_file, outcome and predictors are required"
        )

    geometry_path = config.resolve_data_path(tract_cfg.geometry_file)
    if not geometry_path.exists():
        raise FileNotFoundError(f"Geometry file not found: {geometry_path}")

    gdf = gpd.read_file(geometry_path)
    id_col = tract_cfg.id_column
    if id_col not in gdf.columns:
        raise ValueError(f"Geometry file lacks id column '{id_col}'")
    gdf[id_col] = normalise_ids(gdf[id_col], tract_cfg.id_width)

    if tract_cfg.table_file:
        table = _read_table(config.resolve_data_path(tract_cfg.table_file))
        if id_col not in table.columns:
            raise ValueError(f"Attribute table lacks id column '{id_col}'")
        table[id_col] = normalise_ids(table[id_col], tract_cfg.id_width)
        overlap = [c for c in table.columns if c in gdf.columns and c != id_col]
        gdf = gdf.drop(columns=overlap).merge(table, on=id_col, how='inner')

    return select_model_columns(gdf, tract_cfg.outcome, tract_cfg.predictors, id_col)


def select_model_columns(
    gdf: gpd.GeoDataFrame, outcome: str, predictors: List[str], id_col: str
) -> gpd.GeoDataFrame:
    """Keep id, outcome, predictors and geometry; coerce to numeric; drop incomplete rows."""
    required = [outcome] + list(predictors)
    missing = [c for c in required if c not in gdf.columns]
    if missing:
        raise ValueError(f"Columns not found in tract data: {missing}")

    keep = [id_col] + required + [gdf.geometry.name]
    out = gdf[keep].copy()
    for col in required:
        out[col] = pd.to_numeric(out[col], errors='coerce')

    complete = out[required].notna().all(axis=1) & np.isfinite(out[required]).all(axis=1)
    out = out.loc[complete].reset_index(drop=True)
    if len(out) < 4:
        raise ValueError(f"Only {len(out)} complete tracts remain; at least 4 are required")
    return gpd.GeoDataFrame(out, geometry=gdf.geometry.name, crs=gdf.crs)


def model_matrices(
    frame: pd.DataFrame, outcome: str, predictors: List[str]
) -> Tuple[np.ndarray, np.ndarray]:
    """(y, X) float arrays for the fitters; X excludes the constant."""
    y = frame[outcome].to_numpy(dtype=float)
    X = frame[list(predictors)].to_numpy(dtype=float)
    return y, X
