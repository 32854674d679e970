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
"""Integration of detection probabilities over a habitat mask."""
import numpy as np
import pytensor.tensor as pt

from ascr.detfns import get_detfn
from ascr.mask import as_traps, distances

__all__ = [
    "EPS",
    "capture_probabilities",
    "log_probabilities",
    "p_dot",
    "esa",
    "detection_surface",
    "effective_area",
]

# Floor added to probabilities before taking logs.
EPS = np.finfo("float64").tiny


def capture_probabilities(detfn, dists, pars):
    """Symbolic ``(K, M)`` matrix of per-detector detection probabilities."""
    detfn = get_detfn(detfn)
    return detfn.probability(pt.as_tensor_variable(np.asarray(dists, dtype="float64")), pars)


def log_probabilities(p1):
    """Return ``log(p1 + EPS)`` and ``log(1 - p1 + EPS)``."""
    return pt.log(p1 + EPS), pt.log(1 - p1 + EPS)


def p_dot(p1):
    """Probability that an animal at each mask point is detected at least once."""
    _, logp2 = log_probabilities(p1)
    return -pt.expm1(pt.sum(logp2, axis=0)) + EPS


def esa(p1, area):
    """Effective survey area: cell area times the summed ``p_dot`` surface."""
    return area * pt.sum(p_dot(p1))


def detection_surface(detfn, pars, traps, mask):
    """Numerically evaluate ``p_dot`` at every point of ``mask``.

    Parameters
    ----------
    detfn: str or DetectionFunction
    pars: dict
        Detection function parameter values, exactly as required by ``detfn``.
    traps: array_like
        ``(K, 2)`` detector locations.
    mask: Mask

    Returns
    -------
    ndarray
        One probability per mask point.
    """
    detfn = get_detfn(detfn)
    dists = distances(as_traps(traps), mask.points)
    return p_dot(detfn(dists, pars)).eval()


def effective_area(detfn, pars, traps, mask):
    """Numerically evaluate the effective survey area.

    Parameters
    ----------
    detfn: str or DetectionFunction
    pars: dict
        Detection function parameter values, exactly as required by ``detfn``.
    traps: array_like
        ``(K, 2)`` detector locations.
    mask: Mask
    """
    return float(mask.area * np.sum(detection_surface(detfn, pars, traps, mask)))
