#!/usr/bin/env python3
"""
Regression Module
=================
Fits the three models compared on the slides.

Model specifications:
- OLS: y = Xβ + ε
- SEM (spatial error): y = Xβ + u,  u = λWu + ε
- SLM (spatial lag):   y = ρWy + Xβ + ε

Spatial models are estimated by maximum likelihood with spreg. The
autoregressive parameter is searched on (-1, 1); an estimate on the edge
of that interval, or a non-finite likelihood, raises ConvergenceError
instead of being reported as a fit.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple
import numpy as np
import pandas as pd
from scipy import stats

from libpysal.weights import W
from libpysal.weights.spatial_lag import lag_spatial
from spreg import OLS, ML_Error, ML_Lag


CONSTANT = "CONSTANT"


class ConvergenceError(RuntimeError):
    """A spatial maximum-likelihood fit did not reach an interior optimum."""

    def __init__(self, model_name: str, reason: str, estimate: Optional[float] = None):
        self.model_name = model_name
        self.reason = reason
        self.estimate = estimate
        super().__init__(f"{model_name} did not converge: {reason}")


@dataclass
class FittedModel:
    """Estimates and residuals of one fitted regression."""
    name: str
    variables: List[str]
    coefficients: np.ndarray
    std_errors: np.ndarray
    ci_level: float
    residuals: np.ndarray
    n_obs: int
    log_likelihood: float
    r_squared: float
    spatial_parameter: Optional[float] = None
    spatial_parameter_name: Optional[str] = None
    spatial_parameter_se: Optional[float] = None
    filtered_residuals: Optional[np.ndarray] = None
    model: Any = field(default=None, repr=False)

    @property
    def n_params(self) -> int:
        """Coefficients plus the spatial parameter, if any."""
        return len(self.coefficients) + (self.spatial_parameter is not None)

    @property
    def z_critical(self) -> float:
        return float(stats.norm.ppf(1 - (1 - self.ci_level) / 2))

    @property
    def ci_lower(self) -> np.ndarray:
        return self.coefficients - self.z_critical * self.std_errors

    @property
    def ci_upper(self) -> np.ndarray:
        return self.coefficients + self.z_critical * self.std_errors

    @property
    def z_values(self) -> np.ndarray:
        return self.coefficients / self.std_errors

    @property
    def p_values(self) -> np.ndarray:
        return 2 * stats.norm.sf(np.abs(self.z_values))

    @property
    def test_residuals(self) -> np.ndarray:
        """Residuals to test for remaining autocorrelation (filtered for SEM)."""
        if self.filtered_residuals is not None:
            return self.filtered_residuals
        return self.residuals

    def _index(self, variable: str) -> int:
        if variable not in self.variables:
            raise KeyError(f"{self.name} has no coefficient '{variable}' (have {self.variables})")
        return self.variables.index(variable)

    def coefficient(self, variable: str) -> float:
        return float(self.coefficients[self._index(variable)])

    def confidence_interval(self, variable: str) -> Tuple[float, float]:
        i = self._index(variable)
        return float(self.ci_lower[i]), float(self.ci_upper[i])

    def coefficient_table(self) -> pd.DataFrame:
        """One row per coefficient, plus the spatial parameter for spatial models."""
        table = pd.DataFrame({
            'model': self.name,
            'variable': self.variables,
            'coefficient': self.coefficients,
            'std_error': self.std_errors,
            'z_value': self.z_values,
            'p_value': self.p_values,
            'ci_lower': self.ci_lower,
            'ci_upper': self.ci_upper,
        })
        if self.spatial_parameter is not None:
            se = self.spatial_parameter_se
            z = self.spatial_parameter / se if se else np.nan
            table = pd.concat([table, pd.DataFrame([{
                'model': self.name,
                'variable': self.spatial_parameter_name,
                'coefficient': self.spatial_parameter,
                'std_error': se,
                'z_value': z,
                'p_value': 2 * stats.norm.sf(abs(z)),
                'ci_lower': self.spatial_parameter - self.z_critical * se,
                'ci_upper': self.spatial_parameter + self.z_critical * se,
            }])], ignore_index=True)
        return table


def _prepare_inputs(y, X, names: Sequence[str], w: Optional[W] = None):
    """Validate and reshape inputs to spreg's (n, 1) / (n, k) convention."""
    y = np.asarray(y, dtype=float).reshape(-1, 1)
    X = np.asarray(X, dtype=float)
    if X.ndim == 1:
        X = X.reshape(-1, 1)
    if X.ndim != 2 or X.shape[1] == 0:
        raise ValueError(f"X must be a 2-D array with at least one column, got shape {X.shape}")
    n, k = X.shape
    if len(y) != n:
        raise ValueError(f"y has {len(y)} rows but X has {n}")
    if len(names) != k:
        raise ValueError(f"{len(names)} names given for {k} columns")
    if not (np.all(np.isfinite(y)) and np.all(np.isfinite(X))):
        raise ValueError("y and X must not contain NaN or infinite values")
    if n <= k + 1:
        raise ValueError(f"{n} observations cannot identify {k + 1} coefficients")
    if w is not None and w.n != n:
        raise ValueError(f"Weights cover {w.n} units but data has {n} rows")
    return y, X, list(names)


def _flat(values) -> np.ndarray:
    return np.asarray(values, dtype=float).ravel()


def fit_ols(
    y, X, names: Sequence[str], w: Optional[W] = None, ci_level: float = 0.95
) -> FittedModel:
    """
    Ordinary least squares with a constant.

    Args:
        y: Outcome vector.
        X: Covariate matrix without a constant column.
        names: Covariate names, one per column of X.
        w: Optional weights; when given, spreg also computes the LM
            spatial diagnostics on the fitted object.
        ci_level: Confidence level for the Wald intervals.
    """
    y, X, names = _prepare_inputs(y, X, names, w)
    if w is not None:
        model = OLS(y, X, w=w, spat_diag=True, moran=True,
                    name_y='y', name_x=names, name_ds='spatial_deck')
    else:
        model = OLS(y, X, name_y='y', name_x=names, name_ds='spatial_deck')

    return FittedModel(
        name='OLS',
        variables=[CONSTANT] + names,
        coefficients=_flat(model.betas),
        std_errors=_flat(model.std_err),
        ci_level=ci_level,
        residuals=_flat(model.u),
        n_obs=int(model.n),
        log_likelihood=float(model.logll),
        r_squared=float(model.r2),
        model=model,
    )


def _check_spatial_fit(name: str, param_name: str, param: float, model,
                       boundary_tolerance: float):
    """Raise ConvergenceError unless the ML optimum is finite and interior."""
    if not np.isfinite(param):
        raise ConvergenceError(name, f"{param_name} estimate is not finite", param)
    if abs(param) >= 1 - boundary_tolerance:
        raise ConvergenceError(
            name,
            f"{param_name}={param:.6f} lies on the search boundary (-1, 1)",
            param,
        )
    if not np.isfinite(model.logll):
        raise ConvergenceError(name, "log-likelihood is not finite", param)
    if not np.all(np.isfinite(_flat(model.betas))):
        raise ConvergenceError(name, "coefficient estimates are not finite", param)
    se = _flat(model.std_err)
    if not np.all(np.isfinite(se)) or np.any(se <= 0):
        raise ConvergenceError(name, "information matrix is singular", param)


def fit_spatial_error(
    y, X, names: Sequence[str], w: W,
    method: str = "full",
    epsilon: float = 1e-7,
    ci_level: float = 0.95,
    boundary_tolerance: float = 1e-3,
) -> FittedModel:
    """
    Spatial error model by maximum likelihood.

    Residuals kept for autocorrelation testing are the spatially filtered
    residuals ε = u - λWu.
    """
    if w is None:
        raise ValueError("Spatial weights are required for the spatial error model")
    y, X, names = _prepare_inputs(y, X, names, w)

    try:
        model = ML_Error(y, X, w=w, method=method, epsilon=epsilon,
                         name_y='y', name_x=names, name_ds='spatial_deck')
    except np.linalg.LinAlgError as e:
        raise ConvergenceError('SEM', f"linear algebra failure: {e}") from e

    lam = float(np.squeeze(model.lam))
    _check_spatial_fit('SEM', 'lambda', lam, model, boundary_tolerance)

    betas = _flat(model.betas)
    std_err = _flat(model.std_err)
    return FittedModel(
        name='SEM',
        variables=[CONSTANT] + names,
        coefficients=betas[:-1],
        std_errors=std_err[:-1],
        ci_level=ci_level,
        residuals=_flat(model.u),
        n_obs=int(model.n),
        log_likelihood=float(model.logll),
        r_squared=float(model.pr2),
        spatial_parameter=lam,
        spatial_parameter_name='lambda',
        spatial_parameter_se=float(std_err[-1]),
        filtered_residuals=_flat(model.e_filtered),
        model=model,
    )


def fit_spatial_lag(
    y, X, names: Sequence[str], w: W,
    method: str = "full",
    epsilon: float = 1e-7,
    ci_level: float = 0.95,
    boundary_tolerance: float = 1e-3,
) -> FittedModel:
    """Spatial lag model by maximum likelihood."""
    if w is None:
        raise ValueError("Spatial weights are required for the spatial lag model")
    y, X, names = _prepare_inputs(y, X, names, w)

    try:
        model = ML_Lag(y, X, w=w, method=method, epsilon=epsilon,
                       name_y='y', name_x=names, name_ds='spatial_deck')
    except np.linalg.LinAlgError as e:
        raise ConvergenceError('SLM', f"linear algebra failure: {e}") from e

    rho = float(np.squeeze(model.rho))
    _check_spatial_fit('SLM', 'rho', rho, model, boundary_tolerance)

    betas = _flat(model.betas)
    std_err = _flat(model.std_err)
    return FittedModel(
        name='SLM',
        variables=[CONSTANT] + names,
        coefficients=betas[:-1],
        std_errors=std_err[:-1],
        ci_level=ci_level,
        residuals=_flat(model.u),
        n_obs=int(model.n),
        log_likelihood=float(model.logll),
        r_squared=float(model.pr2),
        spatial_parameter=rho,
        spatial_parameter_name='rho',
        spatial_parameter_se=float(std_err[-1]),
        model=model,
    )


def add_residual_columns(frame: pd.DataFrame, fitted: FittedModel, w: W) -> pd.DataFrame:
    """
    Append ``resid_<model>`` and its spatial lag ``lag_resid_<model>``.

    Modifies ``frame`` in place and returns it.
    """
    residuals = fitted.test_residuals
    if len(residuals) != len(frame):
        raise ValueError(
            f"{fitted.name} has {len(residuals)} residuals but frame has {len(frame)} rows"
        )
    if w.n != len(frame):
        raise ValueError(f"Weights cover {w.n} units but frame has {len(frame)} rows")

    suffix = fitted.name.lower()
    frame[f"resid_{suffix}"] = residuals
    frame[f"lag_resid_{suffix}"] = lag_spatial(w, residuals)
    return frame


def combine_coefficient_tables(models: Sequence[FittedModel]) -> pd.DataFrame:
    """Stack the coefficient tables of several fits for the slide table."""
    if not models:
        return pd.DataFrame()
    return pd.concat([m.coefficient_table() for m in models], ignore_index=True)
