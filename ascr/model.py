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
import logging

from functools import cached_property

import numpy as np
import pytensor
import pytensor.tensor as pt

from pytensor.gradient import grad, hessian, jacobian

from ascr.likelihood import session_loglik
from ascr.params import DENSITY, DENSITY_INTERCEPT, ParameterRegistry

__all__ = ["SCRModel", "SUPPLEMENTARY_PARAMS"]

_log = logging.getLogger(__name__)

# Parameters of the auxiliary information densities, by information type.
SUPPLEMENTARY_PARAMS = {"bearing": ("kappa",), "dist": ("alpha",), "toa": ("sigma_toa",)}


class SCRModel:
    """Negative log-likelihood of an SCR model as a function of the link-scale vector.

    The graph is built once; its inputs are ``theta``, the link-scale values
    of the free parameters in the order of ``free``, and (with cue rates)
    the mean cue rate. Fixed parameters are constants of the graph.

    Parameters
    ----------
    sessions: list of SessionData
    detfn: DetectionFunction
    info_types: tuple of str
    density: DensityDesign
    links: ParameterLinks
    free: list of str
        Names of the parameters being estimated.
    fixed: dict
        Natural-scale values of every other parameter.
    cutoff: float, optional
        Signal strength detection threshold.
    cue_rates: array_like, optional
        Observed call rates of individual animals.
    survey_length: float, optional
        Survey duration, in the time units of ``cue_rates``.
    """

    def __init__(
        self,
        sessions,
        detfn,
        info_types,
        density,
        links,
        free,
        fixed,
        cutoff=None,
        cue_rates=None,
        survey_length=None,
    ):
        self.sessions = sessions
        self.detfn = detfn
        self.info_types = tuple(info_types)
        self.density = density
        self.links = links
        self.free = list(free)
        self.fixed = dict(fixed)
        self.cutoff = cutoff
        self.cue_rates = None if cue_rates is None else np.asarray(cue_rates, dtype="float64")
        self.survey_length = survey_length
        self.param_names = (
            list(density.param_names)
            + list(detfn.estimated_params)
            + [p for info in self.info_types for p in SUPPLEMENTARY_PARAMS.get(info, ())]
        )

        self.theta = pt.dvector("theta")
        self.mu_rates = pt.dscalar("mu_rates") if self.cue_rates is not None else None

        natural = {}
        for name in self.param_names:
            if name in self.free:
                natural[name] = self.links[name].backward(self.theta[self.free.index(name)])
            else:
                natural[name] = pt.constant(np.float64(self.fixed[name]))
        if cutoff is not None:
            natural["cutoff"] = pt.constant(np.float64(cutoff))
        self.natural = natural

        betas = pt.stack([natural[name] for name in density.param_names])
        loglik = 0.0
        esas = []
        densities = []
        for data in sessions:
            log_density = pt.dot(pt.as_tensor_variable(data.design), betas)
            session_ll, session_esa = session_loglik(
                data, detfn, natural, log_density, self.info_types
            )
            loglik += session_ll
            esas.append(session_esa)
            densities.append(pt.exp(log_density))
        self.nll = -loglik
        self.esas = esas

        fitted = {name: natural[name] for name in self.param_names if name in self.free}
        if self.mu_rates is not None:
            fitted["mu.rates"] = self.mu_rates
        if not density.covariates and DENSITY_INTERCEPT in self.free:
            fitted[DENSITY] = pt.exp(natural[DENSITY_INTERCEPT])
        derived = {f"esa.{i}": e for i, e in enumerate(esas, start=1)}
        if density.covariates or self.mu_rates is not None:
            da = pt.mean(pt.concatenate(densities))
            if self.mu_rates is not None:
                da = da / (self.mu_rates * survey_length)
            derived["Da"] = da
        linked = {name: self.theta[i] for i, name in enumerate(self.free)}

        self.registry = ParameterRegistry(
            fitted=list(fitted),
            derived=list(derived),
            free=self.free,
            n_sessions=len(sessions),
            density_covariates=density.covariates,
        )
        self._quantities = pt.stack([*fitted.values(), *derived.values(), *linked.values()])

    @property
    def inputs(self):
        if self.mu_rates is None:
            return [self.theta]
        return [self.theta, self.mu_rates]

    def _input_values(self, x):
        x = np.asarray(x, dtype="float64")
        if self.mu_rates is None:
            return (x,)
        return x, np.float64(self.cue_rates.mean())

    @cached_property
    def _logp_dlogp_fn(self):
        return pytensor.function(
            [self.theta],
            [self.nll, grad(self.nll, self.theta, disconnected_inputs="ignore")],
            on_unused_input="ignore",
        )

    @cached_property
    def _hessian_fn(self):
        return pytensor.function(
            [self.theta],
            hessian(self.nll, self.theta, disconnected_inputs="ignore"),
            on_unused_input="ignore",
        )

    @cached_property
    def _quantities_fn(self):
        return pytensor.function(self.inputs, self._quantities, on_unused_input="ignore")

    @cached_property
    def _jacobian_fn(self):
        return pytensor.function(
            self.inputs,
            jacobian(self._quantities, self.inputs, disconnected_inputs="ignore"),
            on_unused_input="ignore",
        )

    def nll_and_grad(self, x):
        value, gradient = self._logp_dlogp_fn(np.asarray(x, dtype="float64"))
        return float(value), np.asarray(gradient, dtype="float64")

    def neg_loglik(self, x):
        return self.nll_and_grad(x)[0]

    def hessian(self, x):
        return np.asarray(self._hessian_fn(np.asarray(x, dtype="float64")))

    def quantities(self, x):
        """Values of every reported quantity, in ``registry.names`` order."""
        return np.asarray(self._quantities_fn(*self._input_values(x)))

    def covariance(self, x, theta_cov):
        """Delta-method covariance of every reported quantity.

        Parameters
        ----------
        x: ndarray
            Link-scale estimates.
        theta_cov: ndarray
            Covariance matrix of ``x``.
        """
        jacs = self._jacobian_fn(*self._input_values(x))
        jac = np.asarray(jacs[0])
        cov = jac @ theta_cov @ jac.T
        if self.mu_rates is not None:
            # The mean cue rate is independent of the survey data.
            jac_mu = np.asarray(jacs[1]).reshape(-1, 1)
            n_rates = len(self.cue_rates)
            var_mu = self.cue_rates.var(ddof=1) / n_rates if n_rates > 1 else 0.0
            cov = cov + var_mu * (jac_mu @ jac_mu.T)
        return cov

    def natural_values(self, x):
        """Natural-scale values of all parameters, including fixed ones."""
        out = dict(self.fixed)
        for i, name in enumerate(self.free):
            out[name] = float(self.links[name].backward_numpy(x[i]))
        return {name: out[name] for name in self.param_names}

    def density_surfaces(self, x):
        """Fitted density (animals per hectare) at each mask point, per session."""
        values = self.natural_values(x)
        betas = np.array([values[name] for name in self.density.param_names])
        return [np.exp(data.design @ betas) for data in self.sessions]
