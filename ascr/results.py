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
"""Containers for fitted models and bootstrap samples."""
import copy

from typing import NamedTuple

import numpy as np
import pandas as pd

from ascr import inference
from ascr.detfns import detfn_curve
from ascr.spatial import detection_surface

__all__ = ["FitResult", "BootstrapResult"]


class BootstrapResult(NamedTuple):
    """Parameter estimates from refits to bootstrapped data.

    ``draws`` has one row per resample (in resample order) and one column
    per reported quantity; failed refits are rows of ``NaN``.
    """

    draws: pd.DataFrame
    vcov: pd.DataFrame
    se: pd.Series
    bias: pd.Series
    n_failed: int


class FitResult:
    """A fitted SCR model.

    Instances are never modified by the query methods; every method
    delegates to the pure functions in :mod:`ascr.inference`.

    Attributes
    ----------
    coefficients: Series
        Every reported quantity: fitted, derived and linked.
    vcov_all: DataFrame or None
        Covariance matrix of ``coefficients``, if the Hessian was computed
        and could be inverted.
    se: Series or None
    registry: ParameterRegistry
    fixed: dict
        Natural-scale values of fixed parameters.
    natural: dict
        Natural-scale values of every model parameter, fixed ones included.
    phases: dict
        Optimization phase of every parameter; -1 for fixed parameters.
    converged: bool
    hessian_status: str
        One of ``"ok"``, ``"not computed"``, ``"singular"`` and
        ``"not converged"``.
    boot: BootstrapResult or None
    """

    def __init__(
        self,
        *,
        coefficients,
        vcov_all,
        registry,
        links,
        detfn,
        info_types,
        density,
        fixed,
        sv,
        bounds,
        phases,
        loglik,
        converged,
        hessian_status,
        message,
        d_mask,
        masks,
        traps,
        capt,
        cutoff,
        fit_freqs,
        args,
        natural,
        boot=None,
    ):
        self.coefficients = coefficients
        self.vcov_all = vcov_all
        self.se = None
        if vcov_all is not None:
            self.se = pd.Series(np.sqrt(np.diag(vcov_all)), index=vcov_all.index)
        self.registry = registry
        self.links = links
        self.detfn = detfn
        self.info_types = tuple(info_types)
        self.density = density
        self.fixed = dict(fixed)
        self.sv = dict(sv)
        self.bounds = dict(bounds)
        self.phases = dict(phases)
        self.loglik = loglik
        self.converged = converged
        self.hessian_status = hessian_status
        self.message = message
        self.d_mask = d_mask
        self.masks = masks
        self.traps = traps
        self.capt = capt
        self.cutoff = cutoff
        self.fit_freqs = fit_freqs
        self.args = args
        self.natural = dict(natural)
        self.boot = boot

    @property
    def n_sessions(self):
        return self.registry.n_sessions

    @property
    def fit_ihd(self):
        return self.density.covariates

    @property
    def detpars(self):
        return list(self.detfn.estimated_params)

    @property
    def density_betapars(self):
        return list(self.density.param_names)

    def with_bootstrap(self, boot):
        """A shallow copy of this fit carrying a bootstrap sample."""
        out = copy.copy(self)
        out.boot = boot
        return out

    def coef(self, pars="fitted", correct_bias=False):
        return inference.coef(self, pars, correct_bias=correct_bias)

    def vcov(self, pars="fitted"):
        return inference.vcov(self, pars)

    def std_err(self, pars="fitted", mce=False):
        return inference.std_err(self, pars, mce=mce)

    def confint(self, parm="fitted", level=0.95, method="default", linked=False):
        return inference.confint(self, parm, level=level, method=method, linked=linked)

    def predict(self, newdata=None, se_fit=False, use_log=False, set_zero=None):
        return inference.predict(
            self, newdata, se_fit=se_fit, use_log=use_log, set_zero=set_zero
        )

    def get_par(self, pars="all", as_dict=False):
        return inference.get_par(self, pars, as_dict=as_dict)

    def aic(self, k=2):
        return inference.aic(self, k=k)

    def summary(self):
        return inference.summary(self)

    def detfn_curve(self, xlim=None, n=1000):
        """Distances and detection probabilities along the fitted detection function."""
        if xlim is None:
            xlim = (0.0, max(mask.buffer for mask in self.masks))
        pars = self.get_par(self.detpars, as_dict=True)
        if self.cutoff is not None:
            pars["cutoff"] = self.cutoff
        return detfn_curve(self.detfn, pars, xlim, n=n)

    def p_dot(self, session=0):
        """Fitted probability of detection at each mask point of ``session``."""
        pars = self.get_par(self.detpars, as_dict=True)
        if self.cutoff is not None:
            pars["cutoff"] = self.cutoff
        return detection_surface(self.detfn, pars, self.traps[session], self.masks[session])

    def __repr__(self):
        return (
            f"FitResult(detfn={self.detfn.name!r}, info_types={self.info_types}, "
            f"n_sessions={self.n_sessions}, loglik={self.loglik:.4f})"
        )
