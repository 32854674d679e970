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
"""Phased minimization of a negative log-likelihood with scipy."""
import logging
import sys

from typing import NamedTuple, Optional

import numpy as np

from fastprogress.fastprogress import ProgressBar, progress_bar
from scipy.optimize import minimize as scipy_minimize

from ascr.exceptions import ConfigurationError, OptimizationError

__all__ = ["minimize", "OptimizationOutcome", "covariance_from_hessian", "BOUNDED_METHODS"]

_log = logging.getLogger(__name__)

BOUNDED_METHODS = ("L-BFGS-B", "TNC", "SLSQP", "Powell", "trust-constr", "Nelder-Mead")


class OptimizationOutcome(NamedTuple):
    x: np.ndarray
    fun: float
    hessian: Optional[np.ndarray]
    converged: bool
    message: str
    n_eval: int


class CostFuncWrapper:
    def __init__(self, objective, active, x_full, maxeval=5000, progressbar=True):
        self.n_eval = 0
        self.maxeval = maxeval
        self.objective = objective
        self.active = active
        self.x_full = x_full
        self.desc = "nll = {:,.5g}, ||grad|| = {:,.5g}"
        self.previous_x = None
        self.progressbar = progressbar
        if progressbar:
            self.progress = progress_bar(range(maxeval), total=maxeval, display=progressbar)
            self.progress.update(0)
        else:
            self.progress = range(maxeval)

    def __call__(self, x):
        x_full = self.x_full.copy()
        x_full[self.active] = x
        value, grad = self.objective(x_full)
        grad = np.asarray(grad, dtype=np.float64)[self.active]
        if np.isfinite(value) and np.all(np.isfinite(grad)):
            self.previous_x = x

        if self.n_eval % 10 == 0:
            self.update_progress_desc(value, grad)

        if self.n_eval > self.maxeval:
            self.update_progress_desc(value, grad)
            raise StopIteration(f"Maximum number of evaluations ({self.maxeval}) reached.")

        self.n_eval += 1
        if self.progressbar:
            assert isinstance(self.progress, ProgressBar)
            self.progress.update_bar(self.n_eval)
        return value, grad

    def update_progress_desc(self, value, grad):
        if self.progressbar:
            self.progress.comment = self.desc.format(value, np.linalg.norm(grad))


def _scipy_bounds(bounds):
    return [
        (None if not np.isfinite(lo) else lo, None if not np.isfinite(hi) else hi)
        for lo, hi in bounds
    ]


def covariance_from_hessian(hess):
    """Invert a Hessian of the negative log-likelihood.

    Returns ``None`` if the Hessian is not finite or not positive definite.
    """
    if hess is None or not np.all(np.isfinite(hess)):
        return None
    hess = (hess + hess.T) / 2
    try:
        chol = np.linalg.cholesky(hess)
    except np.linalg.LinAlgError:
        return None
    inv_chol = np.linalg.inv(chol)
    return inv_chol.T @ inv_chol


def minimize(
    objective,
    start,
    bounds=None,
    phases=None,
    hessian=None,
    method="L-BFGS-B",
    maxeval=5000,
    progressbar=False,
    **kwargs,
):
    """Minimize ``objective`` over a link-scale parameter vector.

    Parameters
    ----------
    objective: callable
        Maps a parameter vector to ``(value, gradient)``. Must be free of
        side effects, as it is called an arbitrary number of times.
    start: array_like
        Start values.
    bounds: sequence of (float, float), optional
        Lower and upper bounds per parameter; infinite values are unbounded.
    phases: sequence of int, optional
        Phase of each parameter. Parameters are released in increasing phase
        order: while phase ``p`` is optimized, parameters of later phases are
        held at their current values. All phases must be non-negative; fixed
        parameters are never part of the vector.
    hessian: callable, optional
        Maps a parameter vector to the Hessian of ``objective``. If given, it
        is evaluated at the optimum.
    method: str
        Method passed to ``scipy.optimize.minimize``.
    maxeval: int
        Maximum number of objective evaluations per phase.
    progressbar: bool
        Whether to display a progress bar in the command line.
    **kwargs
        Extra arguments passed to ``scipy.optimize.minimize``.

    Returns
    -------
    OptimizationOutcome
    """
    x = np.array(start, dtype="float64")
    n = x.size
    if bounds is None:
        bounds = [(-np.inf, np.inf)] * n
    if phases is None:
        phases = np.zeros(n, dtype=int)
    phases = np.asarray(phases, dtype=int)
    if len(bounds) != n or phases.size != n:
        raise ConfigurationError("'start', 'bounds' and 'phases' must have the same length.")
    if np.any(phases < 0):
        raise ConfigurationError("Phases of estimated parameters must be non-negative.")
    if method not in BOUNDED_METHODS:
        raise ConfigurationError(
            f"Optimization method must be one of {', '.join(BOUNDED_METHODS)} (got {method!r})."
        )

    value, grad = objective(x)
    if not np.isfinite(value) or not np.all(np.isfinite(grad)):
        raise OptimizationError(
            "The negative log-likelihood or its gradient is not finite at the start values."
        )

    bounds = list(bounds)
    converged = True
    messages = []
    n_eval = 0
    for phase in np.unique(phases):
        active = np.flatnonzero(phases <= phase)
        _log.info(f"Optimizing phase {phase} ({active.size} of {n} parameters)")
        cost_func = CostFuncWrapper(objective, active, x, maxeval, progressbar)
        try:
            opt_result = scipy_minimize(
                cost_func,
                x[active],
                method=method,
                jac=True,
                bounds=_scipy_bounds([bounds[i] for i in active]),
                **kwargs,
            )
            x_active = opt_result.x
            converged = converged and bool(opt_result.success)
            messages.append(str(opt_result.message))
        except StopIteration as e:
            x_active = cost_func.previous_x
            converged = False
            messages.append(str(e))
            _log.info(e)
        finally:
            n_eval += cost_func.n_eval
            if progressbar:
                assert isinstance(cost_func.progress, ProgressBar)
                cost_func.progress.total = cost_func.n_eval
                cost_func.progress.update(cost_func.n_eval)
                print(file=sys.stdout)
        if x_active is None:
            raise OptimizationError(f"No finite objective value was found in phase {phase}.")
        x = x.copy()
        x[active] = x_active

    value, _ = objective(x)
    hess = None if hessian is None else np.asarray(hessian(x), dtype="float64")
    return OptimizationOutcome(
        x=x,
        fun=float(value),
        hessian=hess,
        converged=converged,
        message="; ".join(messages),
        n_eval=n_eval,
    )
