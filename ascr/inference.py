#   Copyright 2024 The ascr Developers
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.
"""Post-fit inference: coefficients, covariances, intervals and predictions.

Every function here is a pure query over a :class:`~ascr.results.FitResult`.
When the fit carries a bootstrap sample, covariances and standard errors
come from the bootstrap draws rather than from the Hessian.
"""
import warnings

import numpy as np
import pandas as pd

from scipy.stats import norm

from ascr.exceptions import ConfigurationError, NonIndependenceWarning
from ascr.params import DENSITY, DENSITY_INTERCEPT, PARAMETER_SETS, ParameterRole

__all__ = [
    "coef",
    "vcov",
    "std_err",
    "confint",
    "predict",
    "get_par",
    "get_bias",
    "get_mce",
    "aic",
    "summary",
    "CI_METHODS",
]

CI_METHODS = ("default", "default_bc", "basic", "percentile")


def _require_boot(fit, what):
    if fit.boot is None:
        raise ConfigurationError(f"{what} requires a bootstrap sample; use boot_ascr() first.")


def _covariance(fit):
    if fit.boot is not None:
        return fit.boot.vcov
    if fit.vcov_all is None:
        if fit.hessian_status == "not computed":
            raise ConfigurationError(
                "Standard errors not calculated; use boot_ascr() or refit with 'hess=True', "
                "if appropriate."
            )
        raise ConfigurationError(
            f"Standard errors are unavailable for this fit (Hessian {fit.hessian_status}); "
            "use boot_ascr() instead."
        )
    return fit.vcov_all


def _standard_errors(fit):
    if fit.boot is not None:
        return fit.boot.se
    _covariance(fit)
    return fit.se


def coef(fit, pars="fitted", correct_bias=False):
    """Estimated parameters.

    Parameters
    ----------
    fit: FitResult
    pars: str or list of str
        Parameter names, or a subset of ``"all"``, ``"fitted"``,
        ``"derived"`` and ``"linked"``; ``"esa"`` expands to the effective
        survey area of every session.
    correct_bias: bool
        Whether estimated bootstrap biases are subtracted.

    Returns
    -------
    Series
    """
    names = fit.registry.select(pars)
    out = fit.coefficients[names]
    if correct_bias:
        out = out - get_bias(fit, names)
    return out


def vcov(fit, pars="fitted"):
    """Variance-covariance matrix of the selected parameters, as a DataFrame."""
    names = fit.registry.select(pars)
    return _covariance(fit).loc[names, names]


def get_mce(fit, estimate="se"):
    """Monte Carlo error of the bootstrap standard errors or biases.

    The standard error of a bootstrap standard deviation ``s`` from ``B``
    draws is estimated by ``sqrt((m4 - m2**2) / (4 * m2 * B))``, with
    ``m2`` and ``m4`` the second and fourth central moments of the draws.
    The error of a bias is that of a mean, ``s / sqrt(B)``.
    """
    _require_boot(fit, "Monte Carlo error")
    draws = fit.boot.draws
    n_boots = draws.notna().sum()
    centred = draws - draws.mean()
    m2 = (centred**2).mean()
    if estimate == "se":
        m4 = (centred**4).mean()
        with np.errstate(divide="ignore", invalid="ignore"):
            out = np.sqrt((m4 - m2**2) / (4 * m2 * n_boots))
        return out.fillna(0.0)
    if estimate == "bias":
        return np.sqrt(draws.var() / n_boots)
    raise ConfigurationError("Argument 'estimate' must be \"se\" or \"bias\".")


def std_err(fit, pars="fitted", mce=False):
    """Standard errors of the selected parameters.

    With ``mce=True`` (bootstrap fits only), returns a DataFrame with
    columns ``"Std. Error"`` and ``"MCE"``.
    """
    names = fit.registry.select(pars)
    out = _standard_errors(fit)[names]
    if mce:
        _require_boot(fit, "Monte Carlo error")
        return pd.DataFrame({"Std. Error": out, "MCE": get_mce(fit, "se")[names]})
    return out


def get_bias(fit, pars="fitted"):
    """Estimated bootstrap bias: mean of the draws minus the estimate."""
    _require_boot(fit, "Bias correction")
    return fit.boot.bias[fit.registry.select(pars)]


def _ci_names(fit, parm):
    names = fit.registry.select(parm)
    if any(p in PARAMETER_SETS or p == "all" for p in np.atleast_1d(parm)):
        return names
    return list(fit.registry.expand(parm))


def confint(fit, parm="fitted", level=0.95, method="default", linked=False):
    """Confidence intervals.

    Parameters
    ----------
    fit: FitResult
    parm: str or list of str
        Parameter selection, as for :func:`coef`.
    level: float
        Confidence level.
    method: str
        ``"default"``: normal approximation using the standard errors;
        ``"default_bc"``: the same, with the estimated bootstrap bias
        subtracted from each limit; ``"basic"``: the basic bootstrap
        interval; ``"percentile"``: bootstrap percentiles. All but
        ``"default"`` require a bootstrap sample.
    linked: bool
        If ``True``, intervals for fitted parameters are calculated on their
        link scales and then transformed back onto their natural scales.

    Returns
    -------
    DataFrame
        One row per parameter, with lower and upper limits.
    """
    if method not in CI_METHODS:
        raise ConfigurationError(
            f"Argument 'method' must be one of {', '.join(repr(m) for m in CI_METHODS)}."
        )
    if not 0 < level < 1:
        raise ConfigurationError("Argument 'level' must be between 0 and 1.")
    if method != "default":
        _require_boot(fit, f"Confidence interval method {method!r}")

    registry = fit.registry
    parm = _ci_names(fit, parm)
    if linked:
        fitted_names = [
            name
            for name in parm
            if registry.role(name) is ParameterRole.FITTED and name != "mu.rates"
        ]
        linked_names = {name: registry.linked_name(name) for name in fitted_names}
        all_parm = parm + [name for name in linked_names.values() if name not in parm]
    else:
        all_parm = parm

    alpha = (1 - level) / 2
    estimates = fit.coefficients[all_parm].to_numpy()
    if method in ("default", "default_bc"):
        se = _standard_errors(fit)[all_parm].to_numpy()
        z = norm.ppf(alpha)
        out = np.column_stack([estimates + z * se, estimates - z * se])
        if method == "default_bc":
            out = out - fit.boot.bias[all_parm].to_numpy()[:, None]
    else:
        draws = fit.boot.draws[all_parm].to_numpy()
        qs = np.nanquantile(draws, [alpha, 1 - alpha], axis=0).T
        if method == "basic":
            out = np.column_stack([2 * estimates - qs[:, 1], 2 * estimates - qs[:, 0]])
        else:
            out = qs

    percs = [100 * alpha, 100 * (1 - alpha)]
    out = pd.DataFrame(out, index=all_parm, columns=[f"{round(p, 2):g} %" for p in percs])
    if linked:
        for name, linked_name in linked_names.items():
            out.loc[name] = fit.links.from_link(name, out.loc[linked_name].to_numpy())
        out = out.loc[parm]
    return out


def predict(fit, newdata=None, se_fit=False, use_log=False, set_zero=None):
    """Density estimates.

    Parameters
    ----------
    fit: FitResult
    newdata: DataFrame, optional
        Covariate values at which to estimate density. If omitted, the
        fitted densities at the mask points are returned.
    se_fit: bool
        Whether delta-method standard errors are calculated (requires
        ``newdata``).
    use_log: bool
        Whether estimates and standard errors are on the log scale.
    set_zero: list of int, optional
        Indices of design matrix columns to set to zero, e.g. ``[0]`` to drop
        the intercept.

    Returns
    -------
    ndarray, list of ndarray or DataFrame
        Per-mask-point densities (a list for multi-session fits) without
        ``newdata``; a DataFrame with columns ``predict`` and ``se`` when
        ``se_fit`` is set.
    """
    if newdata is None:
        if se_fit:
            raise ConfigurationError("Standard errors can only be calculated for 'newdata'.")
        out = [np.log(d) if use_log else d.copy() for d in fit.d_mask]
        return out[0] if len(out) == 1 else out

    mm = fit.density.model_matrix(newdata)
    if set_zero is not None:
        mm = mm.copy()
        mm[:, list(np.atleast_1d(set_zero))] = 0
    beta_names = fit.density_betapars
    betas = get_par(fit, beta_names).to_numpy()
    log_out = mm @ betas
    out = log_out if use_log else np.exp(log_out)
    if not se_fit:
        return out

    names = [n for n in fit.registry.group(ParameterRole.FITTED) if n != "mu.rates"]
    est_vcov = _covariance(fit).loc[names, names].to_numpy()
    jacobian = np.zeros((len(out), len(names)))
    for i, name in enumerate(names):
        if name in beta_names:
            column = mm[:, beta_names.index(name)]
            jacobian[:, i] = column if use_log else column * out
    se = np.sqrt(np.diag(jacobian @ est_vcov @ jacobian.T))
    return pd.DataFrame({"predict": out, "se": se})


def get_par(fit, pars="all", as_dict=False):
    """Parameter values, including fixed parameters and derived quantities.

    ``"all"`` returns the fitted and derived parameters. Explicit names may
    refer to fixed parameters, whose fixed values are returned.
    """
    if isinstance(pars, str):
        pars = [pars]
    if "all" in pars:
        out = coef(fit, ["fitted", "derived"])
    else:
        fixed = dict(fit.fixed)
        if DENSITY_INTERCEPT in fixed and not fit.fit_ihd:
            fixed[DENSITY] = float(np.exp(fixed[DENSITY_INTERCEPT]))
        values = {}
        for p in pars:
            if p in fixed:
                values[p] = fixed[p]
            else:
                values.update(coef(fit, p).to_dict())
        out = pd.Series(values, dtype="float64")
    return out.to_dict() if as_dict else out


def aic(fit, k=2):
    """Akaike's information criterion.

    For surveys with multiple calls per individual the AIC relies on
    independence between call locations from the same animal, and a
    :class:`~ascr.exceptions.NonIndependenceWarning` is issued.
    """
    if fit.fit_freqs:
        warnings.warn(
            "Use of AIC for this model relies on independence between locations of calls "
            "from the same animal, which may not be appropriate.",
            NonIndependenceWarning,
        )
    return -2 * fit.loglik + k * len(fit.registry.linked_names)


def summary(fit):
    """Estimates and standard errors of the fitted and derived parameters."""
    try:
        coefs_se = std_err(fit, "fitted")
        derived_se = std_err(fit, "derived")
    except ConfigurationError:
        coefs_se = derived_se = None
    return {
        "coefs": coef(fit, "fitted"),
        "derived": coef(fit, "derived"),
        "coefs_se": coefs_se,
        "derived_se": derived_se,
        "infotypes": fit.info_types,
        "detfn": fit.detfn.long_name,
        "n_sessions": fit.n_sessions,
    }
