"""
Configuration loader for the spatial-deck pipeline.

This module provides configuration management with YAML support,
validation, and path resolution.
"""

from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
import math
import yaml


# Find project root by looking for config/ directory
def find_project_root() -> Path:
    """Find the project root directory by looking for config/pipeline.yaml."""
    current = Path(__file__).resolve().parent

    # Walk up the directory tree
    for _ in range(10):  # Max 10 levels up
        config_file = current / "config" / "pipeline.yaml"
        if config_file.exists():
            return current
        parent = current.parent
        if parent == current:
            break
        current = parent

    # Fallback: assume we're in spatial_deck/ package
    return Path(__file__).resolve().parent.parent


PROJECT_ROOT = find_project_root()
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "pipeline.yaml"

ISLAND_POLICIES = ["keep", "drop", "raise"]
DISTANCE_METRICS = ["euclidean", "haversine"]
MORAN_INFERENCE = ["normal", "randomization", "permutation"]
ML_METHODS = ["full", "lu", "ord"]
RESERVED_COLUMNS = {"coord_x", "coord_y", "outcome", "geometry", "intercept"}


@dataclass
class CovariateSpec:
    """A normally distributed synthetic covariate."""
    name: str
    mean: float = 0.0
    sd: float = 1.0

    def validate(self):
        if not self.name:
            raise ValueError("Covariate name must be a non-empty string")
        if not math.isfinite(self.mean):
            raise ValueError(f"Covariate '{self.name}': mean must be finite")
        if not (math.isfinite(self.sd) and self.sd > 0):
            raise ValueError(
                f"Covariate '{self.name}': sd must be positive, got {self.sd}"
            )


@dataclass
class ScenarioConfig:
    """
    One simulated walkthrough scenario.

    ``coefficients`` maps ``intercept`` and every covariate name to its
    true value. ``rho`` scales the spatially lagged noise; 0 disables it.
    """
    name: str
    n_obs: int = 100
    seed: int = 42
    coord_low: float = 0.0
    coord_high: float = 1.0
    covariates: List[CovariateSpec] = field(default_factory=list)
    coefficients: Dict[str, float] = field(default_factory=dict)
    noise_sd: float = 1.0
    rho: float = 0.0
    knn_neighbors: Optional[int] = None

    @property
    def covariate_names(self) -> List[str]:
        return [c.name for c in self.covariates]

    def validate(self):
        """Validate simulation parameters."""
        if not isinstance(self.n_obs, int) or self.n_obs < 1:
            raise ValueError(
                f"Scenario '{self.name}': n_obs must be a positive integer, got {self.n_obs}"
            )
        if not (math.isfinite(self.coord_low) and math.isfinite(self.coord_high)):
            raise ValueError(f"Scenario '{self.name}': coordinate range must be finite")
        if self.coord_high <= self.coord_low:
            raise ValueError(
                f"Scenario '{self.name}': coord_high ({self.coord_high}) must exceed "
                f"coord_low ({self.coord_low})"
            )
        if not (math.isfinite(self.noise_sd) and self.noise_sd > 0):
            raise ValueError(
                f"Scenario '{self.name}': noise_sd must be positive, got {self.noise_sd}"
            )
        if not math.isfinite(self.rho):
            raise ValueError(f"Scenario '{self.name}': rho must be finite")
        if self.knn_neighbors is not None and self.knn_neighbors < 1:
            raise ValueError(
                f"Scenario '{self.name}': knn_neighbors must be >= 1, got {self.knn_neighbors}"
            )

        names = self.covariate_names
        if len(set(names)) != len(names):
            raise ValueError(f"Scenario '{self.name}': duplicate covariate names {names}")
        clashes = sorted(set(names) & RESERVED_COLUMNS)
        if clashes:
            raise ValueError(f"Scenario '{self.name}': reserved column names {clashes}")
        for spec in self.covariates:
            spec.validate()

        expected = set(names) | {"intercept"}
        missing = [n for n in names if n not in self.coefficients]
        unknown = [n for n in self.coefficients if n not in expected]
        if missing or unknown:
            raise ValueError(
                f"Scenario '{self.name}': coefficients must cover every covariate "
                f"(missing: {missing}, unknown: {unknown})"
            )

    @classmethod
    def from_dict(cls, name: str, raw: Dict[str, Any]) -> "ScenarioConfig":
        coord_range = raw.get("coord_range", [0.0, 1.0])
        covariates = [
            CovariateSpec(
                name=c["name"],
                mean=float(c.get("mean", 0.0)),
                sd=float(c.get("sd", 1.0)),
            )
            for c in raw.get("covariates", [])
        ]
        scenario = cls(
            name=name,
            n_obs=raw.get("n_obs", 100),
            seed=raw.get("seed", 42),
            coord_low=float(coord_range[0]),
            coord_high=float(coord_range[1]),
            covariates=covariates,
            coefficients={k: float(v) for k, v in raw.get("coefficients", {}).items()},
            noise_sd=float(raw.get("noise_sd", 1.0)),
            rho=float(raw.get("rho", 0.0)),
            knn_neighbors=raw.get("knn_neighbors"),
        )
        scenario.validate()
        return scenario


@dataclass
class PathsConfig:
    """Path configuration with automatic resolution."""
    data_dir: str = "data"
    results_dir: str = "results"
    assets_dir: str = "assets"

    def resolve(self, base: Path) -> "ResolvedPaths":
        """Resolve all paths relative to base directory."""
        return ResolvedPaths(
            base=base,
            data=base / self.data_dir,
            results=base / self.results_dir,
            assets=base / self.assets_dir,
        )


@dataclass
class ResolvedPaths:
    """Resolved absolute paths for the project."""
    base: Path
    data: Path
    results: Path
    assets: Path


@dataclass
class SpatialConfig:
    """Spatial weights and autocorrelation settings."""
    knn_neighbors: int = 15
    distance_metric: str = "euclidean"
    contiguity_rule: str = "queen"
    island_policy: str = "keep"
    moran_inference: str = "normal"
    moran_permutations: int = 999
    significance: float = 0.05

    def validate(self):
        if self.knn_neighbors < 1:
            raise ValueError(f"knn_neighbors must be >= 1, got {self.knn_neighbors}")
        if self.distance_metric not in DISTANCE_METRICS:
            raise ValueError(
                f"Invalid distance_metric '{self.distance_metric}'. "
                f"Must be one of: {DISTANCE_METRICS}"
            )
        if self.contiguity_rule not in ["queen", "rook"]:
            raise ValueError(
                f"Invalid contiguity_rule '{self.contiguity_rule}'. Must be 'queen' or 'rook'"
            )
        if self.island_policy not in ISLAND_POLICIES:
            raise ValueError(
                f"Invalid island_policy '{self.island_policy}'. "
                f"Must be one of: {ISLAND_POLICIES}"
            )
        if self.moran_inference not in MORAN_INFERENCE:
            raise ValueError(
                f"Invalid moran_inference '{self.moran_inference}'. "
                f"Must be one of: {MORAN_INFERENCE}"
            )
        if self.moran_permutations < 0:
            raise ValueError("moran_permutations must be non-negative")
        if not 0 < self.significance < 1:
            raise ValueError(f"significance must be in (0, 1), got {self.significance}")


@dataclass
class ModelConfig:
    """Regression settings."""
    ci_level: float = 0.95
    ml_method: str = "full"
    epsilon: float = 1e-7
    boundary_tolerance: float = 1e-3
    fit_spatial_lag: bool = True

    def validate(self):
        if not 0 < self.ci_level < 1:
            raise ValueError(f"ci_level must be in (0, 1), got {self.ci_level}")
        if self.ml_method not in ML_METHODS:
            raise ValueError(
                f"Invalid ml_method '{self.ml_method}'. Must be one of: {ML_METHODS}"
            )
        if self.epsilon <= 0:
            raise ValueError("epsilon must be positive")
        if not 0 < self.boundary_tolerance < 1:
            raise ValueError("boundary_tolerance must be in (0, 1)")


@dataclass
class MonteCarloConfig:
    """Repeated-simulation study settings."""
    n_replications: int = 500
    coverage_scenario: str = "treatment"
    coverage_coefficient: str = "treatment"
    power_scenario: str = "spatial"
    null_n_obs: int = 100
    null_knn_neighbors: int = 15
    base_seed: int = 2024

    def validate(self):
        if self.n_replications < 1:
            raise ValueError("n_replications must be >= 1")
        if self.null_n_obs < 4:
            raise ValueError("null_n_obs must be >= 4")


@dataclass
class TractDataConfig:
    """Local real-data inputs (polygons + attribute table)."""
    geometry_file: Optional[str] = None
    table_file: Optional[str] = None
    id_column: str = "GEOID"
    outcome: Optional[str] = None
    predictors: List[str] = field(default_factory=list)
    id_width: Optional[int] = 11

    @property
    def enabled(self) -> bool:
        return bool(self.geometry_file and self.outcome and self.predictors)


class PipelineConfig:
    """
    Main configuration class for the spatial-deck pipeline.

    Loads configuration from YAML and provides typed access to all settings.

    Usage:
        config = PipelineConfig.load()  # Load from default location
        config = PipelineConfig.load("path/to/config.yaml")  # Custom path

        # Access settings
        print(config.spatial.knn_neighbors)
        print(config.scenario("spatial").rho)
    """

    def __init__(self, config_dict: Dict[str, Any], base_path: Optional[Path] = None):
        config_dict = config_dict or {}
        self._raw = config_dict
        self._base_path = base_path or PROJECT_ROOT

        # Parse paths config
        paths_dict = config_dict.get("paths", {})
        paths_config = PathsConfig(
            data_dir=paths_dict.get("data_dir", "data"),
            results_dir=paths_dict.get("results_dir", "results"),
            assets_dir=paths_dict.get("assets_dir", "assets"),
        )
        self.paths = paths_config.resolve(self._base_path)

        # Parse spatial config
        spatial_dict = config_dict.get("spatial", {})
        moran_dict = spatial_dict.get("moran", {})
        self.spatial = SpatialConfig(
            knn_neighbors=spatial_dict.get("knn_neighbors", 15),
            distance_metric=spatial_dict.get("distance_metric", "euclidean"),
            contiguity_rule=spatial_dict.get("contiguity_rule", "queen"),
            island_policy=spatial_dict.get("island_policy", "keep"),
            moran_inference=moran_dict.get("inference", "normal"),
            moran_permutations=moran_dict.get("permutations", 999),
            significance=moran_dict.get("significance_level", 0.05),
        )
        self.spatial.validate()

        # Parse model config
        model_dict = config_dict.get("model", {})
        self.model = ModelConfig(
            ci_level=model_dict.get("ci_level", 0.95),
            ml_method=str(model_dict.get("ml_method", "full")).lower(),
            epsilon=float(model_dict.get("epsilon", 1e-7)),
            boundary_tolerance=float(model_dict.get("boundary_tolerance", 1e-3)),
            fit_spatial_lag=model_dict.get("fit_spatial_lag", True),
        )
        self.model.validate()

        # Parse scenarios
        scenarios_dict = config_dict.get("scenarios", {})
        self.scenarios: Dict[str, ScenarioConfig] = {
            name: ScenarioConfig.from_dict(name, raw or {})
            for name, raw in scenarios_dict.items()
        }
        if self.spatial.distance_metric == "haversine":
            # Both coordinates share coord_range, so it must be a valid latitude range
            for scenario in self.scenarios.values():
                if scenario.coord_low < -90 or scenario.coord_high > 90:
                    raise ValueError(
                        f"Scenario '{scenario.name}': coord_range "
                        f"[{scenario.coord_low}, {scenario.coord_high}] is not valid "
                        "longitude/latitude for distance_metric 'haversine'; "
                        "it must lie within [-90, 90]"
                    )

        # Parse Monte Carlo config
        mc_dict = config_dict.get("monte_carlo", {})
        self.monte_carlo = MonteCarloConfig(
            n_replications=mc_dict.get("n_replications", 500),
            coverage_scenario=mc_dict.get("coverage_scenario", "treatment"),
            coverage_coefficient=mc_dict.get("coverage_coefficient", "treatment"),
            power_scenario=mc_dict.get("power_scenario", "spatial"),
            null_n_obs=mc_dict.get("null_n_obs", 100),
            null_knn_neighbors=mc_dict.get("null_knn_neighbors", 15),
            base_seed=mc_dict.get("base_seed", 2024),
        )
        self.monte_carlo.validate()

        # Parse tract data config
        tract_dict = config_dict.get("tract_data", {})
        self.tract_data = TractDataConfig(
            geometry_file=tract_dict.get("geometry_file"),
            table_file=tract_dict.get("table_file"),
            id_column=tract_dict.get("id_column", "GEOID"),
            outcome=tract_dict.get("outcome"),
            predictors=tract_dict.get("predictors", []),
            id_width=tract_dict.get("id_width", 11),
        )

        # Store raw sections for advanced access
        self.logging = config_dict.get("logging", {})
        self.visualization = config_dict.get("visualization", {})

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "PipelineConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to config file. If None, uses default.

        Returns:
            PipelineConfig instance
        """
        if config_path is None:
            path = DEFAULT_CONFIG_PATH
        else:
            path = Path(config_path)

        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, 'r') as f:
            config_dict = yaml.safe_load(f)

        # Determine base path (parent of config/ directory)
        base_path = path.resolve().parent.parent

        return cls(config_dict, base_path)

    # ==================== Convenience Methods ====================

    def scenario(self, name: str) -> ScenarioConfig:
        """Get a scenario by name."""
        if name not in self.scenarios:
            raise ValueError(
                f"Unknown scenario '{name}'. Available: {sorted(self.scenarios)}"
            )
        return self.scenarios[name]

    def knn_for(self, scenario: ScenarioConfig) -> int:
        """Neighbour count for a scenario, falling back to the spatial default."""
        if scenario.knn_neighbors is not None:
            return scenario.knn_neighbors
        return self.spatial.knn_neighbors

    def resolve_data_path(self, filename: str) -> Path:
        """Resolve a data file name relative to the data directory."""
        path = Path(filename)
        if path.is_absolute():
            return path
        return self.paths.data / path

    def get_results_subdir(self, name: str) -> Path:
        """Get path to a results subdirectory, creating if needed."""
        path = self.paths.results / name
        path.mkdir(parents=True, exist_ok=True)
        return path

    def get_assets_subdir(self, name: str) -> Path:
        """Get path to an assets subdirectory, creating if needed."""
        path = self.paths.assets / name
        path.mkdir(parents=True, exist_ok=True)
        return path

    @property
    def timestamp_format(self) -> str:
        return self.logging.get("timestamp_format", "%Y%m%d_%H%M%S")

    def summary(self) -> str:
        """Get a summary of current configuration."""
        scenario_lines = "\n".join(
            f"  {s.name}: n={s.n_obs}, seed={s.seed}, rho={s.rho}, "
            f"noise_sd={s.noise_sd}, k={self.knn_for(s)}, "
            f"covariates={s.covariate_names}"
            for s in self.scenarios.values()
        ) or "  (none)"
        return f"""
Spatial Deck Pipeline Configuration
===================================
Paths:
  Data: {self.paths.data}
  Results: {self.paths.results}
  Assets: {self.paths.assets}

Spatial Settings:
  KNN neighbors: {self.spatial.knn_neighbors}
  Distance metric: {self.spatial.distance_metric}
  Island policy: {self.spatial.island_policy}
  Moran inference: {self.spatial.moran_inference}

Model Settings:
  CI level: {self.model.ci_level}
  ML method: {self.model.ml_method}

Scenarios:
{scenario_lines}

Monte Carlo:
  Replications: {self.monte_carlo.n_replications}

Tract data: {'enabled' if self.tract_data.enabled else 'not configured'}
"""


# Convenience function for quick loading
def load_config(config_path: Optional[str] = None) -> PipelineConfig:
    """
    Load pipeline configuration.

    Args:
        config_path: Optional path to config file.

    Returns:
        PipelineConfig instance

    Usage:
        from spatial_deck import load_config
        config = load_config()
    """
    return PipelineConfig.load(config_path)
