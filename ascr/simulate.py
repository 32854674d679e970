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
"""Simulation of capture histories from a fitted or hypothetical model."""
import numpy as np
import pytensor.tensor as pt

from scipy import stats

from ascr.capture import INFO_TYPES, CaptureHistory
from ascr.detfns import MIN_DISTANCE, SignalStrength, evaluate, get_detfn
from ascr.exceptions import ConfigurationError
from ascr.mask import as_traps, bearings, distances

__all__ = ["simulate_capture", "simulate_session"]


def _mean_signal(detfn, d, pars):
    pars = {name: pt.as_tensor_variable(np.float64(value)) for name, value in pars.items()}
    return np.asarray(detfn.mean_signal(pt.as_tensor_variable(d), pars).eval())


def simulate_capture(
    traps,
    mask,
    detfn,
    pars,
    density,
    info_types=(),
    cutoff=None,
    sound_speed=330.0,
    random_seed=None,
):
    """Simulate the capture history of one session.

    Animals (or calls) are placed over the mask points by a Poisson process
    with intensity ``density * mask.area`` per point, jittered uniformly
    within their grid cell.

    Parameters
    ----------
    traps: array_like
        ``(K, 2)`` detector locations.
    mask: Mask
    detfn: str or DetectionFunction
    pars: dict
        Natural-scale values of the detection function parameters and of
        the auxiliary parameters (``kappa``, ``alpha``, ``sigma_toa``) that
        ``info_types`` requires.
    density: float or array_like
        Density (animals per hectare), constant or per mask point.
    info_types: sequence of str
        Auxiliary information to simulate.
    cutoff: float, optional
        Signal strength detection threshold; required for signal strength
        detection functions.
    sound_speed: float
    random_seed: int or Generator, optional

    Returns
    -------
    CaptureHistory
    """
    rng = np.random.default_rng(random_seed)
    detfn = get_detfn(detfn)
    traps = as_traps(traps)
    info_types = tuple(info_types)
    unknown = set(info_types) - set(INFO_TYPES)
    if unknown:
        raise ConfigurationError(f"Unknown information type(s): {', '.join(sorted(unknown))}.")
    is_ss = isinstance(detfn, SignalStrength)
    if is_ss and cutoff is None:
        raise ConfigurationError("Signal strength detection functions require a 'cutoff'.")

    density = np.broadcast_to(np.asarray(density, dtype="float64"), (len(mask),))
    intensity = density * mask.area
    n_total = rng.poisson(intensity.sum())
    cells = rng.choice(len(mask), size=n_total, p=intensity / intensity.sum())
    spacing = np.sqrt(mask.area * 10000)
    locs = mask.points[cells] + rng.uniform(-spacing / 2, spacing / 2, size=(n_total, 2))
    dists = distances(locs, traps)

    aux = {}
    if is_ss:
        detpars = {name: pars[name] for name in detfn.estimated_params}
        mu = _mean_signal(detfn, dists, detpars)
        ss = mu + pars["sigma_ss"] * rng.standard_normal(mu.shape)
        bincapt = (ss >= cutoff).astype("float64")
        aux["ss"] = ss
    else:
        detpars = {name: pars[name] for name in detfn.param_names}
        prob = evaluate(detfn, dists, detpars)
        bincapt = (rng.uniform(size=prob.shape) < prob).astype("float64")

    detected = bincapt.sum(axis=1) > 0
    bincapt = bincapt[detected]
    dists = dists[detected]
    locs = locs[detected]
    aux = {k: v[detected] for k, v in aux.items()}
    n, n_traps = bincapt.shape

    if "toa" in info_types:
        emitted = rng.uniform(0, 1, size=(n, 1))
        aux["toa"] = (
            emitted + dists / sound_speed + pars["sigma_toa"] * rng.standard_normal((n, n_traps))
        )
    if "bearing" in info_types:
        true = bearings(traps, locs).T
        draws = stats.vonmises.rvs(pars["kappa"], size=(n, n_traps), random_state=rng)
        aux["bearing"] = np.mod(true + draws, 2 * np.pi)
    if "dist" in info_types:
        alpha = pars["alpha"]
        aux["dist"] = stats.gamma.rvs(
            alpha, scale=np.maximum(dists, MIN_DISTANCE) / alpha, random_state=rng
        )
    keep = set(info_types) | ({"ss"} if is_ss else set())
    return CaptureHistory(bincapt, **{k: v for k, v in aux.items() if k in keep})


def simulate_session(fit, session, random_seed=None):
    """Simulate one session of a :class:`~ascr.results.FitResult` at its estimates."""
    return simulate_capture(
        fit.traps[session],
        fit.masks[session],
        fit.detfn,
        fit.natural,
        fit.d_mask[session],
        info_types=fit.info_types,
        cutoff=fit.cutoff,
        sound_speed=fit.args["sound_speed"],
        random_seed=random_seed,
    )
