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
"""Construction of the per-session SCR log-likelihood graph.

For each detected individual ``i`` and mask point ``m`` the log-likelihood
of its capture history is

    l_im = w_i . logp1[:, m] + (1 - w_i) . logp2[:, m] + aux_im

where ``aux_im`` collects the log-densities of any auxiliary measurements.
Everything in ``aux_im`` that does not depend on the parameters is
precomputed by :class:`SessionData`, so that the graph only holds
``(n, M)`` matrices.
"""
import numpy as np
import pytensor.tensor as pt

from ascr.detfns import MIN_DISTANCE, SignalStrength
from ascr.mask import bearings, distances
from ascr.spatial import esa, log_probabilities, p_dot

__all__ = ["SessionData", "session_loglik", "aux_terms"]

LOG_2PI = np.log(2 * np.pi)


class SessionData:
    """Constant arrays for one session, computed once per model.

    Parameters
    ----------
    capt: CaptureHistory
    traps: ndarray
    mask: Mask
    design: ndarray
        ``(M, P)`` density design matrix.
    sound_speed: float
        Speed of sound, in metres per second, for times of arrival.
    local: bool
        Whether to integrate each individual only over mask points within
        ``mask.buffer`` of a detector that detected it.
    """

    def __init__(self, capt, traps, mask, design, sound_speed=330.0, local=False):
        self.capt = capt
        self.traps = traps
        self.mask = mask
        self.design = design
        self.dists = distances(traps, mask.points)
        self.n = capt.n
        w = capt.bincapt
        self.w = w
        self.n_dets = capt.n_detections

        if capt.bearing is not None:
            true = bearings(traps, mask.points)
            obs = capt.bearing
            # sum_k w_ik cos(obs_ik - true_km)
            self.bearing_cos = (w * np.cos(obs)) @ np.cos(true) + (w * np.sin(obs)) @ np.sin(true)

        if capt.dist is not None:
            d = np.maximum(self.dists, MIN_DISTANCE)
            y = capt.dist
            self.dist_log_mean = w @ np.log(d)
            self.dist_ratio = (w * y) @ (1 / d)
            with np.errstate(divide="ignore"):
                self.dist_log_obs = np.where(w == 1, np.log(y), 0.0).sum(axis=1)

        if capt.toa is not None:
            lag = self.dists / sound_speed
            # Centred per individual; a common clock offset cancels out.
            centre = (w * capt.toa).sum(axis=1) / np.maximum(self.n_dets, 1)
            toa = w * (capt.toa - centre[:, None])
            s1 = (w * toa).sum(axis=1)[:, None] - w @ lag
            s2 = (w * toa**2).sum(axis=1)[:, None] - 2 * (w * toa) @ lag + w @ lag**2
            ssq = s2 - s1**2 / np.maximum(self.n_dets, 1)[:, None]
            self.toa_ssq = np.maximum(ssq, 0.0)

        if capt.ss is not None:
            self.ss_sq = (w * capt.ss**2).sum(axis=1)
            self.w_ss = w * capt.ss

        if local:
            within = (self.dists <= mask.buffer).astype("float64")
            self.log_local = np.where(w @ within > 0, 0.0, -np.inf)
        else:
            self.log_local = None


def aux_terms(data, detfn, pars, info_types):
    """Symbolic ``(n, M)`` log-density of the auxiliary measurements.

    The signal strength term is the normal log-density of the received
    signal strengths; for signal strength detection functions
    :func:`session_loglik` leaves out ``logp1`` at detectors that made a
    detection, so this term replaces the Bernoulli detection term.
    """
    n_dets = pt.as_tensor_variable(data.n_dets)[:, None]
    total = pt.zeros((data.n, len(data.mask)))

    if "bearing" in info_types:
        kappa = pars["kappa"]
        total += kappa * pt.as_tensor_variable(data.bearing_cos) - n_dets * (
            LOG_2PI + pt.log(pt.ive(0, kappa)) + kappa
        )

    if "dist" in info_types:
        alpha = pars["alpha"]
        total += (
            n_dets * (alpha * pt.log(alpha) - pt.gammaln(alpha))
            - alpha * data.dist_log_mean
            + (alpha - 1) * pt.as_tensor_variable(data.dist_log_obs)[:, None]
            - alpha * data.dist_ratio
        )

    if "toa" in info_types:
        sigma_toa = pars["sigma_toa"]
        total += (1 - n_dets) * pt.log(sigma_toa) - pt.as_tensor_variable(data.toa_ssq) / (
            2 * sigma_toa**2
        )

    if "ss" in info_types:
        sigma_ss = pars["sigma_ss"]
        mu = detfn.mean_signal(pt.as_tensor_variable(data.dists), pars)
        sq = (
            pt.as_tensor_variable(data.ss_sq)[:, None]
            - 2 * pt.dot(data.w_ss, mu)
            + pt.dot(data.w, mu**2)
        )
        total += -n_dets * (0.5 * LOG_2PI + pt.log(sigma_ss)) - sq / (2 * sigma_ss**2)

    return total


def session_loglik(data, detfn, pars, log_density, info_types):
    """Symbolic log-likelihood of one session.

    Parameters
    ----------
    data: SessionData
    detfn: DetectionFunction
    pars: dict
        Scalar tensors for every detection function and auxiliary parameter,
        on the natural scale.
    log_density: TensorVariable
        Log density (animals per hectare) at each mask point.
    info_types: tuple of str

    Returns
    -------
    loglik, esa: TensorVariable
        The session log-likelihood and the effective survey area.
    """
    detpars = {name: pars[name] for name in detfn.param_names}
    p1 = detfn.probability(pt.as_tensor_variable(data.dists), detpars)
    logp1, logp2 = log_probabilities(p1)
    pdot = p_dot(p1)
    area = data.mask.area

    w = pt.as_tensor_variable(data.w)
    per_point = pt.dot(1 - w, logp2)
    if not isinstance(detfn, SignalStrength):
        per_point += pt.dot(w, logp1)
    if info_types:
        per_point += aux_terms(data, detfn, pars, info_types)
    per_point += log_density[None, :]
    if data.log_local is not None:
        per_point += pt.as_tensor_variable(data.log_local)

    n = data.n
    weighted_pdot = pt.sum(pt.exp(log_density) * pdot)
    expected_n = area * weighted_pdot
    loglik = (
        pt.sum(pt.logsumexp(per_point, axis=1))
        - n * pt.log(weighted_pdot)
        + n * pt.log(expected_n)
        - expected_n
        - pt.gammaln(n + 1.0)
    )
    return loglik, esa(p1, area)
