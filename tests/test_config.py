"""Tests for spatial_deck.config."""

import pytest
import yaml

from spatial_deck.config import (
    DEFAULT_CONFIG_PATH,
    CovariateSpec,
    PipelineConfig,
    ScenarioConfig,
    load_config,
)


class TestDefaultConfig:
    """The shipped config/pipeline.yaml."""

    def test_default_file_exists(self):
        assert DEFAULT_CONFIG_PATH.exists()

    def test_deck_scenarios(self):
        config = load_config()
        treatment = config.scenario("treatment")
        assert treatment.n_obs == 1000
        assert treatment.noise_sd == 0.5
        assert treatment.rho == 0.0
        assert treatment.coefficients == {
            "intercept": 2.0, "treatment": 0.1, "age": 0.05, "income": 0.03,
        }

        spatial = config.scenario("spatial")
        assert spatial.n_obs == 100
        assert spatial.rho == 30.0
        assert config.knn_for(spatial) == 15

    def test_defaults(self):
        config = load_config()
        assert config.spatial.island_policy == "keep"
        assert config.model.ci_level == 0.95
        assert not config.tract_data.enabled


class TestLoading:
    def test_load_from_yaml(self, tmp_path, config_dict):
        config_dir = tmp_path / "config"
        config_dir.mkdir()
        path = config_dir / "pipeline.yaml"
        path.write_text(yaml.safe_dump(config_dict))

        config = PipelineConfig.load(str(path))
        assert config.paths.base == tmp_path
        assert config.paths.results == tmp_path / "results"
        assert config.spatial.knn_neighbors == 8
        assert list(config.scenarios) == ["small_spatial"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "missing.yaml"))

    def test_empty_dict_uses_defaults(self, tmp_path):
        config = PipelineConfig({}, base_path=tmp_path)
        assert config.spatial.knn_neighbors == 15
        assert config.scenarios == {}
        assert "Spatial Deck Pipeline Configuration" in config.summary()

    def test_subdirectories_are_created(self, config):
        path = config.get_results_subdir("walkthrough_x")
        assert path.is_dir()

    def test_unknown_scenario(self, config):
        with pytest.raises(ValueError, match="Unknown scenario"):
            config.scenario("nope")

    def test_knn_fallback(self, config):
        assert config.knn_for(config.scenario("small_spatial")) == 8


class TestValidation:
    @pytest.mark.parametrize("section, key, value", [
        ("spatial", "island_policy", "ignore"),
        ("spatial", "distance_metric", "manhattan"),
        ("spatial", "knn_neighbors", 0),
        ("model", "ci_level", 1.5),
        ("model", "ml_method", "gmm"),
    ])
    def test_invalid_settings(self, tmp_path, section, key, value):
        with pytest.raises(ValueError):
            PipelineConfig({section: {key: value}}, base_path=tmp_path)

    def test_haversine_needs_degree_range(self, tmp_path, config_dict):
        config_dict["spatial"]["distance_metric"] = "haversine"
        config_dict["scenarios"]["small_spatial"]["coord_range"] = [0.0, 100.0]
        with pytest.raises(ValueError, match="haversine"):
            PipelineConfig(config_dict, base_path=tmp_path)

    def test_haversine_accepts_degree_range(self, tmp_path, config_dict):
        config_dict["spatial"]["distance_metric"] = "haversine"
        config = PipelineConfig(config_dict, base_path=tmp_path)
        assert config.spatial.distance_metric == "haversine"

    def test_invalid_moran_inference(self, tmp_path):
        with pytest.raises(ValueError, match="moran_inference"):
            PipelineConfig({"spatial": {"moran": {"inference": "bootstrap"}}}, base_path=tmp_path)

    def test_scenario_missing_coefficient(self, tmp_path, config_dict):
        del config_dict["scenarios"]["small_spatial"]["coefficients"]["age"]
        with pytest.raises(ValueError, match="missing"):
            PipelineConfig(config_dict, base_path=tmp_path)

    def test_reserved_covariate_name(self):
        scenario = ScenarioConfig(
            name="bad",
            covariates=[CovariateSpec("outcome")],
            coefficients={"outcome": 1.0},
        )
        with pytest.raises(ValueError, match="reserved"):
            scenario.validate()

    @pytest.mark.parametrize("field, value", [
        ("n_obs", 0),
        ("noise_sd", 0.0),
        ("coord_high", -1.0),
        ("rho", float("inf")),
    ])
    def test_invalid_scenario_values(self, field, value):
        scenario = ScenarioConfig(name="bad", **{field: value})
        with pytest.raises(ValueError):
            scenario.validate()
