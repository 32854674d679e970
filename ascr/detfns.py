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
"""Detection functions: probability of detection as a function of distance."""
import abc

import numpy as np
import pandas as pd
import pytensor.tensor as pt

from ascr.exceptions import ConfigurationError

__all__ = [
    "DetectionFunction",
    "HalfNormal",
    "HazardRate",
    "Threshold",
    "LogThreshold",
    "SignalStrength",
    "LogSignalStrength",
    "SphericalSignalStrength",
    "get_detfn",
    "evaluate",
    "detfn_curve",
]

# Distances are floored here before taking logs in the hazard-rate function.
MIN_DISTANCE = 1e-12
# Largest exponent passed to exp() in the hazard-rate function.
MAX_LOG_HAZARD = 700.0


def _as_float_tensor(value):
    if isinstance(value, pt.TensorVariable):
        return value
    return pt.as_tensor_variable(np.asarray(value, dtype="float64"))


class DetectionFunction(abc.ABC):
    """Base class for the detection function families.

    Subclasses declare the exact set of parameter names they require in
    ``param_names`` and the link function each parameter is estimated on in
    ``links``. Names listed in ``fixed_params`` are supplied by the survey
    set-up (e.g. the signal strength cutoff) and are never estimated.
    """

    name = None
    long_name = None
    param_names = ()
    links = {}
    fixed_params = ()

    def check_params(self, pars):
        supplied = set(pars)
        required = set(self.param_names)
        if supplied != required:
            missing = sorted(required - supplied)
            extra = sorted(supplied - required)
            msg = (
                f"Argument 'pars' for the {self.long_name} detection function must have "
                f"named components {', '.join(repr(p) for p in self.param_names)}."
            )
            if missing:
                msg += f" Missing: {', '.join(missing)}."
            if extra:
                msg += f" Unexpected: {', '.join(extra)}."
            raise ConfigurationError(msg)

    @property
    def estimated_params(self):
        return tuple(p for p in self.param_names if p not in self.fixed_params)

    def __call__(self, d, pars):
        self.check_params(pars)
        return self.probability(
            _as_float_tensor(d), {name: _as_float_tensor(value) for name, value in pars.items()}
        )

    @abc.abstractmethod
    def probability(self, d, pars):
        """Symbolic detection probability at distances ``d``."""

    def __str__(self):
        return self.long_name


class HalfNormal(DetectionFunction):
    name = "hn"
    long_name = "Halfnormal"
    param_names = ("g0", "sigma")
    links = {"g0": "logit", "sigma": "log"}

    def probability(self, d, pars):
        g0, sigma = pars["g0"], pars["sigma"]
        return g0 * pt.exp(-(d**2) / (2 * sigma**2))


class HazardRate(DetectionFunction):
    name = "hr"
    long_name = "Hazard rate"
    param_names = ("g0", "sigma", "z")
    links = {"g0": "logit", "sigma": "log", "z": "log"}

    def probability(self, d, pars):
        g0, sigma, z = pars["g0"], pars["sigma"], pars["z"]
        # (d / sigma) ** -z, evaluated in log space so that d = 0 gives g0.
        log_hazard = -z * (pt.log(pt.maximum(d, MIN_DISTANCE)) - pt.log(sigma))
        hazard = pt.exp(pt.minimum(log_hazard, MAX_LOG_HAZARD))
        return g0 * -pt.expm1(-hazard)


class Threshold(DetectionFunction):
    name = "th"
    long_name = "Threshold"
    param_names = ("scale", "shape")
    links = {"scale": "log", "shape": "identity"}

    def probability(self, d, pars):
        scale, shape = pars["scale"], pars["shape"]
        # 0.5 - 0.5 * erf(x) == 0.5 * erfc(x), but erfc keeps the upper tail.
        return 0.5 * pt.erfc(d / scale - shape)


class LogThreshold(DetectionFunction):
    name = "lth"
    long_name = "Log-link threshold"
    param_names = ("scale", "shape_1", "shape_2")
    links = {"scale": "log", "shape_1": "log", "shape_2": "identity"}

    def probability(self, d, pars):
        scale, shape_1, shape_2 = pars["scale"], pars["shape_1"], pars["shape_2"]
        return 0.5 * pt.erfc(shape_1 - pt.exp(shape_2 - scale * d))


class SignalStrength(DetectionFunction):
    """Detection occurs when the received signal strength exceeds ``cutoff``.

    Received signal strengths are normal with standard deviation
    ``sigma_ss`` about :meth:`mean_signal`, which decays linearly with
    distance for this family.
    """

    name = "ss"
    long_name = "Signal strength"
    ss_link = "identity"
    param_names = ("b0_ss", "b1_ss", "sigma_ss", "cutoff")
    links = {"b0_ss": "log", "b1_ss": "log", "sigma_ss": "log"}
    fixed_params = ("cutoff",)

    def mean_signal(self, d, pars):
        return pars["b0_ss"] - pars["b1_ss"] * d

    def probability(self, d, pars):
        mu = self.mean_signal(d, pars)
        z = (pars["cutoff"] - mu) / (pars["sigma_ss"] * np.sqrt(2.0))
        return 0.5 * pt.erfc(z)


class LogSignalStrength(SignalStrength):
    name = "log_ss"
    long_name = "Log-link signal strength"
    ss_link = "log"
    links = {"b0_ss": "identity", "b1_ss": "log", "sigma_ss": "log"}

    def mean_signal(self, d, pars):
        return pt.exp(pars["b0_ss"] - pars["b1_ss"] * d)


class SphericalSignalStrength(SignalStrength):
    """Spherical spreading loss plus linear attenuation beyond 1 m."""

    name = "spherical_ss"
    long_name = "Spherical spreading signal strength"
    ss_link = "spherical"

    def mean_signal(self, d, pars):
        d = pt.maximum(d, 1.0)
        return pars["b0_ss"] - 20 * pt.log10(d) - pars["b1_ss"] * (d - 1)


_DETFNS = {
    cls.name: cls()
    for cls in (
        HalfNormal,
        HazardRate,
        Threshold,
        LogThreshold,
        SignalStrength,
        LogSignalStrength,
        SphericalSignalStrength,
    )
}

_ALIASES = {
    "halfnormal": "hn",
    "hazard-rate": "hr",
    "threshold": "th",
    "log-threshold": "lth",
    "signal-strength": "ss",
    "log-signal-strength": "log_ss",
    "log.ss": "log_ss",
}

SS_DETFNS = {"identity": "ss", "log": "log_ss", "spherical": "spherical_ss"}


def get_detfn(detfn):
    """Return the detection function instance for a tag or alias."""
    if isinstance(detfn, DetectionFunction):
        return detfn
    tag = _ALIASES.get(detfn, detfn)
    if tag not in _DETFNS:
        raise ConfigurationError(
            "Argument 'detfn' must be \"hn\", \"hr\", \"th\", \"lth\", \"ss\", \"log_ss\", "
            f"or \"spherical_ss\" (got {detfn!r})."
        )
    return _DETFNS[tag]


def evaluate(detfn, distances, pars):
    """Evaluate a detection function numerically.

    Parameters
    ----------
    detfn: str or DetectionFunction
        Detection function tag, e.g. ``"hn"``.
    distances: array_like
        Non-negative distances.
    pars: dict
        Parameter values; must contain exactly the names the detection
        function requires.

    Returns
    -------
    ndarray
        Detection probabilities, with the shape of ``distances``.
    """
    detfn = get_detfn(detfn)
    detfn.check_params(pars)
    d = np.asarray(distances, dtype="float64")
    if np.any(d < 0):
        raise ConfigurationError("Distances must be non-negative.")
    return np.asarray(detfn(d, pars).eval())


def detfn_curve(detfn, pars, xlim, n=1000):
    """Data needed to draw a detection function over a range of distances.

    Returns
    -------
    DataFrame
        Columns ``distance`` and ``probability``.
    """
    if len(xlim) != 2:
        raise ConfigurationError("Argument 'xlim' must have two elements.")
    dists = np.linspace(xlim[0], xlim[1], n)
    return pd.DataFrame({"distance": dists, "probability": evaluate(detfn, dists, pars)})
