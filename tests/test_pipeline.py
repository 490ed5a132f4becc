"""End-to-end tests for the walkthrough, tract analysis and CLI."""

import numpy as np
import pandas as pd
import geopandas as gpd
import pytest

from spatial_deck.analysis import run_tract_analysis, run_walkthrough
from spatial_deck.config import PipelineConfig
from spatial_deck.run_pipeline import STAGE_ORDER, main

from conftest import grid_polygons


class TestWalkthrough:
    """Simulated scenario written to a temporary project root."""

    @pytest.fixture
    def results(self, config):
        return run_walkthrough(config, "small_spatial")

    def test_tables_written(self, config, results):
        out_dir = config.paths.results / "walkthrough_small_spatial"
        for name in ["coefficients.csv", "model_status.csv", "residual_morans_i.csv",
                     "lm_tests.csv", "information_criteria.csv", "vif.csv",
                     "model_data.csv"]:
            assert (out_dir / name).exists(), name
        assert list(out_dir.glob("walkthrough_log_*.txt"))

    def test_figures_written(self, config, results):
        assets = config.paths.assets / "walkthrough_small_spatial"
        assert (assets / "coefficient_intervals.png").exists()
        assert (assets / "moran_scatter_ols_residuals.png").exists()

    def test_model_status(self, results):
        status = results['status']
        assert list(status['model']) == ['OLS', 'SEM', 'SLM']
        assert status.set_index('model').loc['OLS', 'converged']
        fitted_names = [m.name for m in results['models']]
        converged = status.loc[status['converged'], 'model'].tolist()
        assert fitted_names == converged

    def test_residual_columns(self, results):
        frame = results['frame']
        assert {'resid_ols', 'lag_resid_ols'} <= set(frame.columns)
        assert len(frame) == 60

    def test_residual_moran_rows(self, results):
        moran = results['residual_moran']
        assert moran['model'].tolist() == [m.name for m in results['models']]
        assert moran['p_value'].between(0, 1).all()

    def test_unknown_scenario(self, config):
        with pytest.raises(ValueError, match="Unknown scenario"):
            run_walkthrough(config, "missing")


class TestTractAnalysis:
    """Real-data variant on a synthetic 5x5 tract grid."""

    @pytest.fixture
    def tract_config(self, tmp_path):
        data_dir = tmp_path / "data"
        data_dir.mkdir()
        grid = grid_polygons(5)
        geoids = [6001000100 + i for i in range(len(grid))]
        grid["GEOID"] = [str(g).zfill(11) for g in geoids]
        grid[["GEOID", "geometry"]].to_file(data_dir / "tracts.geojson", driver="GeoJSON")

        rng = np.random.default_rng(3)
        x = rng.standard_normal(len(grid))
        table = pd.DataFrame({
            "GEOID": geoids,
            "poverty": x,
            "prevalence": 10 + 2 * x + rng.standard_normal(len(grid)),
        })
        table.loc[0, "prevalence"] = np.nan
        table.to_csv(data_dir / "tracts.csv", index=False)

        return PipelineConfig({
            "tract_data": {
                "geometry_file": "tracts.geojson",
                "table_file": "tracts.csv",
                "outcome": "prevalence",
                "predictors": ["poverty"],
            },
            "visualization": {"dpi": 50},
        }, base_path=tmp_path)

    def test_joined_and_fitted(self, tract_config):
        results = run_tract_analysis(tract_config)
        frame = results['frame']
        assert isinstance(frame, gpd.GeoDataFrame)
        assert len(frame) == 24
        assert frame['GEOID'].str.len().eq(11).all()
        assert results['weights'].n == 24
        assert results['models'][0].coefficient('poverty') == pytest.approx(2.0, abs=1.0)
        out_dir = tract_config.paths.results / "tract_analysis"
        assert (out_dir / "coefficients.csv").exists()

    def test_missing_geometry_file(self, tract_config):
        tract_config.tract_data.geometry_file = "absent.geojson"
        with pytest.raises(FileNotFoundError):
            run_tract_analysis(tract_config)


class TestCLI:
    def test_list_stages(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main(["--list-stages"])
        assert excinfo.value.code == 0
        out = capsys.readouterr().out
        for stage in STAGE_ORDER:
            assert stage in out

    def test_show_config(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main(["--show-config"])
        assert excinfo.value.code == 0
        assert "Spatial Deck Pipeline Configuration" in capsys.readouterr().out

    def test_unknown_stage_rejected(self):
        with pytest.raises(SystemExit) as excinfo:
            main(["--stages", "mapping"])
        assert excinfo.value.code == 2
