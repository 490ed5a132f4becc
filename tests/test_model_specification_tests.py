"""Tests for spatial_deck.analysis.model_specification_tests."""

import numpy as np
import pytest
from scipy import stats

from spatial_deck.analysis.model_specification_tests import (
    compute_information_criteria,
    lagrange_multiplier_tests,
    lm_test_table,
    perform_lrt,
    specification_table,
    variance_inflation_factors,
)
from spatial_deck.analysis.regression import FittedModel, fit_ols, fit_spatial_error
from spatial_deck.simulation import simulate_dataset


def make_fit(name, log_likelihood, n_coefs=2, spatial=None, n_obs=100):
    return FittedModel(
        name=name,
        variables=["CONSTANT", "x", "z"][:n_coefs],
        coefficients=np.ones(n_coefs),
        std_errors=np.full(n_coefs, 0.1),
        ci_level=0.95,
        residuals=np.zeros(n_obs),
        n_obs=n_obs,
        log_likelihood=log_likelihood,
        r_squared=0.5,
        spatial_parameter=spatial,
        spatial_parameter_name=None if spatial is None else 'lambda',
        spatial_parameter_se=None if spatial is None else 0.05,
    )


class TestLikelihoodRatio:
    def test_statistic_and_p_value(self):
        ols = make_fit('OLS', -150.0)
        sem = make_fit('SEM', -145.0, spatial=0.4)
        result = perform_lrt(ols, sem)
        assert result['lrt_statistic'] == pytest.approx(10.0)
        assert result['df'] == 1
        assert result['p_value'] == pytest.approx(stats.chi2.sf(10.0, 1))
        assert result['significant_5pct']
        assert result['test'] == 'OLS vs SEM'

    def test_requires_nested_models(self):
        with pytest.raises(ValueError, match="more parameters"):
            perform_lrt(make_fit('SEM', -1.0, spatial=0.1), make_fit('OLS', -2.0))

    def test_requires_same_data(self):
        with pytest.raises(ValueError, match="same data"):
            perform_lrt(make_fit('OLS', -1.0), make_fit('SEM', -1.0, spatial=0.1, n_obs=90))

    def test_specification_table(self):
        models = [make_fit('OLS', -150.0), make_fit('SEM', -145.0, spatial=0.4),
                  make_fit('SLM', -149.0, spatial=0.1)]
        table = specification_table(models)
        assert list(table['test']) == ['OLS vs SEM', 'OLS vs SLM']

    def test_specification_table_needs_ols(self):
        with pytest.raises(ValueError, match="OLS"):
            specification_table([make_fit('SEM', -145.0, spatial=0.4)])


class TestInformationCriteria:
    def test_aic_bic(self):
        table = compute_information_criteria([make_fit('OLS', -150.0),
                                              make_fit('SEM', -145.0, spatial=0.4)])
        ols, sem = table.iloc[0], table.iloc[1]
        assert ols['n_params'] == 2
        assert sem['n_params'] == 3
        assert ols['AIC'] == pytest.approx(304.0)
        assert sem['BIC'] == pytest.approx(3 * np.log(100) + 290.0)

    def test_ols_aic_agrees_with_spreg(self, treatment_scenario):
        data = simulate_dataset(treatment_scenario)
        fitted = fit_ols(data.y, data.X, data.covariate_names)
        table = compute_information_criteria([fitted])
        assert not hasattr(fitted, "aic")
        assert table.loc[0, "AIC"] == pytest.approx(float(fitted.model.aic))

    def test_skips_missing_fits(self):
        table = compute_information_criteria([make_fit('OLS', -1.0), None])
        assert len(table) == 1


class TestLagrangeMultiplier:
    """LM diagnostics on the spatially filtered scenario."""

    def test_error_dependence_detected(self, spatial_scenario):
        data = simulate_dataset(spatial_scenario)
        table = lagrange_multiplier_tests(data.y, data.X, data.covariate_names, data.weights)
        assert list(table['test']) == ['LM error', 'LM lag', 'Robust LM error', 'Robust LM lag']
        lm_error = table.set_index('test').loc['LM error']
        assert lm_error['p_value'] < 0.05
        assert (table['statistic'] >= 0).all()

    def test_needs_weights(self, spatial_scenario):
        data = simulate_dataset(spatial_scenario)
        fitted = fit_ols(data.y, data.X, data.covariate_names)
        with pytest.raises(ValueError, match="spatial weights"):
            lm_test_table(fitted)

    def test_rejects_spatial_fit(self, sar_error_data):
        y, X, w = sar_error_data
        with pytest.raises(ValueError, match="OLS"):
            lm_test_table(fit_spatial_error(y, X, ["x"], w))


class TestVIF:
    def test_independent_covariates(self, treatment_scenario):
        data = simulate_dataset(treatment_scenario)
        table = variance_inflation_factors(data.X, data.covariate_names)
        assert list(table['variable']) == data.covariate_names
        assert (table['VIF'] < 1.5).all()

    def test_collinear_covariates(self):
        rng = np.random.default_rng(0)
        a = rng.standard_normal(200)
        X = np.column_stack([a, a + 0.05 * rng.standard_normal(200)])
        table = variance_inflation_factors(X, ["a", "b"])
        assert (table['VIF'] > 10).all()

    def test_single_covariate(self):
        table = variance_inflation_factors(np.arange(10.0).reshape(-1, 1), ["x"])
        assert table['VIF'].tolist() == [1.0]
