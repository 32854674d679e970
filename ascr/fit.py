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
"""Maximum likelihood fitting of SCR models."""
import logging
import warnings

import numpy as np
import pandas as pd

from ascr.capture import CaptureHistory, check_capture
from ascr.defaults import auto_sv, default_bounds, default_links, default_phases
from ascr.density import DensityDesign
from ascr.detfns import SS_DETFNS, SignalStrength, get_detfn
from ascr.exceptions import (
    ConfigurationError,
    ConvergenceWarning,
    ParameterWarning,
)
from ascr.likelihood import SessionData
from ascr.links import ParameterLinks
from ascr.mask import Mask, as_traps
from ascr.model import SUPPLEMENTARY_PARAMS, SCRModel
from ascr.optimize import covariance_from_hessian, minimize
from ascr.params import DENSITY, DENSITY_INTERCEPT
from ascr.results import FitResult

__all__ = ["fit_ascr"]

_log = logging.getLogger(__name__)

_SS_LINK_MSG = "Component 'ss_link' in 'ss_opts' must be \"identity\", \"log\", or \"spherical\"."
_CUE_RATES_MSG = (
    "The use of `cue_rates' without `survey_length' is no longer supported. Please provide "
    "`survey_length', and ensure `cue_rates' is measured in the same time units."
)


def _as_sessions(capt, traps, mask):
    if isinstance(capt, (dict, CaptureHistory)):
        capt = [capt]
    capt = list(capt)
    if isinstance(traps, (list, tuple)) and all(np.ndim(t) == 2 for t in traps):
        traps = [as_traps(t) for t in traps]
    else:
        traps = [as_traps(traps)] * len(capt)
    if isinstance(mask, Mask):
        masks = [mask] * len(capt)
    else:
        masks = list(mask)
    if len(masks) != len(capt):
        raise ConfigurationError("There must be one mask per session.")
    return capt, traps, masks


def _check_dict_arg(value, name):
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"The '{name}' argument must be 'None' or a dict.")
    return dict(value)


def _resolve_signal_strength(detfn, info_types, ss_opts):
    """Return the detection function and cutoff implied by the capture data."""
    if "ss" not in info_types:
        if ss_opts is not None:
            warnings.warn(
                "Argument 'ss_opts' is being ignored as signal strength information is not "
                "provided in 'capt'.",
                ParameterWarning,
            )
        detfn = get_detfn("hn" if detfn is None else detfn)
        if isinstance(detfn, SignalStrength):
            raise ConfigurationError(
                "Signal strength detection functions require signal strength information "
                "in 'capt'."
            )
        return detfn, None

    if ss_opts is None:
        raise ConfigurationError("Argument 'ss_opts' is missing.")
    ss_link = ss_opts.get("ss_link", "identity")
    if ss_link not in SS_DETFNS:
        raise ConfigurationError(_SS_LINK_MSG)
    cutoff = ss_opts.get("cutoff")
    if cutoff is None:
        raise ConfigurationError("The 'cutoff' component of 'ss_opts' must be specified.")
    if detfn is not None and not isinstance(get_detfn(detfn), SignalStrength):
        warnings.warn(
            "Argument 'detfn' is being ignored as signal strength information is provided in "
            "'capt'. A signal strength detection function has been fitted instead.",
            ParameterWarning,
        )
    return get_detfn(SS_DETFNS[ss_link]), float(cutoff)


def _map_density(values, name, covariates, bounds=False):
    """Re-express natural-scale ``D`` as the log-density intercept."""
    if DENSITY not in values or covariates:
        return values
    values = dict(values)
    value = values.pop(DENSITY)
    if bounds:
        lower, upper = (float(v) for v in value)
        with np.errstate(divide="ignore"):
            values[DENSITY_INTERCEPT] = (np.log(max(lower, 1e-20)), np.log(upper))
    else:
        if value <= 0:
            raise ConfigurationError(f"The value of 'D' in '{name}' must be positive.")
        values[DENSITY_INTERCEPT] = float(np.log(value))
    return values


def _drop_unused(values, name, param_names):
    unused = [k for k in values if k not in param_names]
    if unused:
        warnings.warn(
            f"Some parameters listed in '{name}' are not being used. These are being removed.",
            ParameterWarning,
        )
    return {k: v for k, v in values.items() if k in param_names}


def fit_ascr(
    capt,
    traps,
    mask,
    detfn=None,
    sv=None,
    bounds=None,
    fix=None,
    phases=None,
    ss_opts=None,
    cue_rates=None,
    survey_length=None,
    sound_speed=330.0,
    density_formula=None,
    mask_covariates=None,
    scale_covs=True,
    local=False,
    hess=None,
    optim_opts=None,
):
    """Fit an acoustic spatial capture-recapture model.

    Parameters
    ----------
    capt: dict, CaptureHistory or list
        Capture history of each session. A dict has a ``"bincapt"`` matrix
        and optionally ``"bearing"``, ``"dist"``, ``"ss"`` and ``"toa"``
        matrices of the same shape.
    traps: array_like or list of array_like
        ``(K, 2)`` detector locations, per session if a list.
    mask: Mask or list of Mask
        Habitat mask, per session if a list.
    detfn: str, optional
        Detection function tag, ``"hn"`` by default. Ignored with a warning
        when signal strengths are provided, as a signal strength detection
        function is then fitted.
    sv: dict, optional
        Natural-scale start values. Density may be given as ``D``.
    bounds: dict, optional
        Natural-scale ``(lower, upper)`` bounds.
    fix: dict, optional
        Natural-scale values of parameters to hold fixed.
    phases: dict, optional
        Optimization phase of each parameter; parameters in later phases are
        held at their start values until earlier phases have converged.
    ss_opts: dict, optional
        Signal strength options: ``cutoff`` (required with signal strengths)
        and ``ss_link``, one of ``"identity"``, ``"log"`` and
        ``"spherical"``.
    cue_rates: array_like, optional
        Call rates of monitored individuals. The fitted density is then a
        call density and animal density ``Da`` is derived.
    survey_length: float, optional
        Survey duration, in the time units of ``cue_rates``.
    sound_speed: float
        Speed of sound in metres per second, for times of arrival.
    density_formula: str, optional
        Patsy formula for log density, e.g. ``"~ x + y"``.
    mask_covariates: DataFrame or list of DataFrame, optional
        Covariates at each mask point, per session.
    scale_covs: bool
        Whether numeric density covariates are centred and scaled.
    local: bool
        Whether to integrate each detection only over mask points near a
        detector that detected it.
    hess: bool, optional
        Whether the Hessian is computed for standard errors. Defaults to
        ``True``.
    optim_opts: dict, optional
        ``method`` (a bound-constrained scipy method, ``"L-BFGS-B"`` by
        default), ``maxeval`` and ``progressbar``; any other entries are
        passed to ``scipy.optimize.minimize``.

    Returns
    -------
    FitResult
    """
    capt_list, traps_list, masks = _as_sessions(capt, traps, mask)
    sessions = check_capture(capt_list, traps_list)
    info_types = sessions[0].info_types
    sv = _check_dict_arg(sv, "sv")
    bounds = _check_dict_arg(bounds, "bounds")
    fix = _check_dict_arg(fix, "fix")
    user_phases = _check_dict_arg(phases, "phases")
    optim_opts = _check_dict_arg(optim_opts, "optim_opts")
    for value in bounds.values():
        if np.ndim(value) != 1 or len(value) != 2:
            raise ConfigurationError("Each component of 'bounds' must be a vector of length 2.")

    detfn, cutoff = _resolve_signal_strength(detfn, info_types, ss_opts)
    if cutoff is not None:
        observed = np.concatenate([s.ss[s.bincapt == 1] for s in sessions])
        if np.any(observed < cutoff):
            raise ConfigurationError(
                "Detected signal strengths must not be below the 'cutoff' component of 'ss_opts'."
            )
    if cue_rates is not None:
        if survey_length is None:
            raise ConfigurationError(_CUE_RATES_MSG)
        cue_rates = np.asarray(cue_rates, dtype="float64").ravel()
        if cue_rates.size == 0 or np.any(cue_rates <= 0):
            raise ConfigurationError("Argument 'cue_rates' must contain positive values.")
    elif survey_length is not None:
        warnings.warn(
            "Argument 'survey_length' is being ignored as 'cue_rates' is not provided.",
            ParameterWarning,
        )
        survey_length = None
    if hess is None:
        hess = True

    density = DensityDesign(masks, density_formula, mask_covariates, scale_covs)
    supp_names = [p for info in info_types for p in SUPPLEMENTARY_PARAMS.get(info, ())]
    param_names = list(density.param_names) + list(detfn.estimated_params) + supp_names
    links = ParameterLinks(default_links(detfn, density.param_names))

    sv = _drop_unused(_map_density(sv, "sv", density.covariates), "sv", param_names)
    fix = _drop_unused(_map_density(fix, "fix", density.covariates), "fix", param_names)
    bounds = _drop_unused(
        _map_density(bounds, "bounds", density.covariates, bounds=True), "bounds", param_names
    )
    unknown_phases = [k for k in user_phases if k not in param_names and k != DENSITY]
    if unknown_phases:
        raise ConfigurationError(
            f"Argument 'phases' names unknown parameter(s): {', '.join(unknown_phases)}."
        )
    free = [name for name in param_names if name not in fix]
    if not free:
        raise ConfigurationError("At least one parameter must be estimated.")

    all_phases = default_phases(detfn, density.param_names, supp_names)
    for name, phase in user_phases.items():
        if name == DENSITY and not density.covariates:
            name = DENSITY_INTERCEPT
        all_phases[name] = int(phase)
    all_phases = {name: -1 if name in fix else all_phases[name] for name in param_names}

    all_bounds = {}
    for name in free:
        lower, upper = (float(b) for b in bounds.get(name, default_bounds(name, links[name].name)))
        if not lower < upper:
            raise ConfigurationError(f"The lower bound of '{name}' must be below its upper bound.")
        all_bounds[name] = (lower, upper)

    known = {**fix, **{k: v for k, v in sv.items() if k not in fix}}
    start = dict(known)
    start.update(
        auto_sv(detfn, sessions, traps_list, masks, density.param_names, supp_names, known, cutoff)
    )
    start = {name: start[name] for name in free}

    _log.info(
        f"Fitting {detfn.long_name.lower()} model to {len(sessions)} session(s)"
        + (f" with {', '.join(info_types)} information" if info_types else "")
    )
    session_data = [
        SessionData(s, t, m, design, sound_speed=sound_speed, local=local)
        for s, t, m, design in zip(sessions, traps_list, masks, density.matrices)
    ]
    model = SCRModel(
        session_data,
        detfn,
        info_types,
        density,
        links,
        free,
        fix,
        cutoff=cutoff,
        cue_rates=cue_rates,
        survey_length=survey_length,
    )

    link_start = []
    link_bounds = []
    for name in free:
        lower, upper = links.link_bounds(name, all_bounds[name])
        with np.errstate(divide="ignore"):
            value = links.to_link(name, start[name])
        link_start.append(float(np.clip(value, lower, upper)))
        link_bounds.append((lower, upper))

    outcome = minimize(
        model.nll_and_grad,
        link_start,
        bounds=link_bounds,
        phases=[all_phases[name] for name in free],
        hessian=model.hessian if hess else None,
        **optim_opts,
    )

    registry = model.registry
    vcov_all = None
    if not outcome.converged:
        warnings.warn(f"The optimizer did not converge: {outcome.message}", ConvergenceWarning)
    if not hess:
        hessian_status = "not computed"
    elif not outcome.converged:
        hessian_status = "not converged"
    else:
        theta_cov = covariance_from_hessian(outcome.hessian)
        if theta_cov is None:
            hessian_status = "singular"
            warnings.warn(
                "The Hessian is singular or not positive definite; standard errors are "
                "unavailable.",
                ConvergenceWarning,
            )
        else:
            hessian_status = "ok"
            vcov_all = pd.DataFrame(
                model.covariance(outcome.x, theta_cov),
                index=registry.names,
                columns=registry.names,
            )

    coefficients = pd.Series(model.quantities(outcome.x), index=registry.names)
    natural = model.natural_values(outcome.x)
    _log.info(f"Log-likelihood at the optimum: {-outcome.fun:.4f}")
    args = {
        "traps": traps_list,
        "mask": masks,
        "detfn": None if cutoff is not None else detfn.name,
        "sv": dict(start),
        "bounds": dict(all_bounds),
        "fix": dict(fix),
        "phases": dict(user_phases),
        "ss_opts": None if ss_opts is None else dict(ss_opts),
        "cue_rates": cue_rates,
        "survey_length": survey_length,
        "sound_speed": sound_speed,
        "density_formula": density_formula,
        "mask_covariates": mask_covariates,
        "scale_covs": scale_covs,
        "local": local,
        "hess": hess,
        "optim_opts": dict(optim_opts),
    }
    return FitResult(
        coefficients=coefficients,
        vcov_all=vcov_all,
        registry=registry,
        links=links,
        detfn=detfn,
        info_types=info_types,
        density=density,
        fixed=fix,
        sv=start,
        bounds=all_bounds,
        phases=all_phases,
        loglik=-outcome.fun,
        converged=outcome.converged,
        hessian_status=hessian_status,
        message=outcome.message,
        d_mask=model.density_surfaces(outcome.x),
        masks=masks,
        traps=traps_list,
        capt=sessions,
        cutoff=cutoff,
        fit_freqs=cue_rates is not None,
        args=args,
        natural=natural,
    )
