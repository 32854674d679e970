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
"""Automatic start values, bounds and phases."""
import numpy as np

from ascr.params import DENSITY_INTERCEPT
from ascr.spatial import effective_area

__all__ = ["default_links", "default_bounds", "default_phases", "auto_sv"]

SUPPLEMENTARY_LINKS = {"kappa": "log", "alpha": "log", "sigma_toa": "log"}
SUPPLEMENTARY_SV = {"kappa": 10.0, "alpha": 2.0, "sigma_toa": 0.0025}


def default_links(detfn, density_names):
    links = {name: "identity" for name in density_names}
    links["D"] = "log"
    links.update(detfn.links)
    links.update(SUPPLEMENTARY_LINKS)
    return links


def default_bounds(name, link):
    if link == "log":
        return (0.0, np.inf)
    if link == "logit":
        return (0.0, 1.0)
    return (-np.inf, np.inf)


def default_phases(detfn, density_names, supp_names):
    phases = {name: 1 for name in density_names}
    phases.update({name: 1 for name in detfn.estimated_params})
    phases.update({name: 2 for name in supp_names})
    return phases


def _detector_spread(capt, traps):
    """Mean RMS distance of detecting detectors from their centroid."""
    spreads = []
    for session, session_traps in zip(capt, traps):
        for row in session.bincapt:
            if row.sum() > 1:
                locs = session_traps[row == 1]
                centre = locs.mean(axis=0)
                spreads.append(np.sqrt(((locs - centre) ** 2).sum(axis=1).mean()))
    return np.mean(spreads) if spreads else None


def _auto_detpars(detfn, capt, traps, buffer, cutoff):
    sigma = _detector_spread(capt, traps) or buffer / 4
    if detfn.name in ("hn", "hr"):
        out = {"g0": 0.95, "sigma": sigma}
        if detfn.name == "hr":
            out["z"] = 1.0
        return out
    if detfn.name == "th":
        return {"scale": sigma, "shape": 2.0}
    if detfn.name == "lth":
        return {"scale": np.log(2) / (2 * sigma), "shape_1": 2.0, "shape_2": np.log(4)}

    observed = np.concatenate([session.ss[session.bincapt == 1] for session in capt])
    max_ss = observed.max() if observed.size else cutoff + 10
    sigma_ss = observed.std() if observed.size > 1 and observed.std() > 0 else 5.0
    if detfn.name == "log_ss":
        b0 = np.log(max(max_ss, 1e-8))
        b1 = max(b0 - np.log(max(cutoff, 1e-8)), 0.1) / (2 * sigma)
    elif detfn.name == "spherical_ss":
        b0 = max_ss + 20 * np.log10(max(sigma, 1.0))
        b1 = 0.1
    else:
        b0 = max_ss
        b1 = max(max_ss - cutoff, 1.0) / (2 * sigma)
    return {"b0_ss": b0, "b1_ss": b1, "sigma_ss": sigma_ss}


def auto_sv(detfn, capt, traps, masks, density_names, supp_names, known, cutoff=None):
    """Start values for every parameter not already in ``known``.

    Parameters
    ----------
    known: dict
        Natural-scale values already supplied, as start values or fixed.

    Returns
    -------
    dict
        Natural-scale start values for the missing parameters.
    """
    buffer = max(mask.buffer for mask in masks)
    detpars = _auto_detpars(detfn, capt, traps, buffer, cutoff)
    detpars.update({k: v for k, v in known.items() if k in detfn.estimated_params})
    out = {k: v for k, v in detpars.items() if k not in known}
    out.update({k: SUPPLEMENTARY_SV[k] for k in supp_names if k not in known})

    if DENSITY_INTERCEPT in density_names and DENSITY_INTERCEPT not in known:
        pars = dict(detpars)
        if cutoff is not None:
            pars["cutoff"] = cutoff
        total_esa = sum(
            effective_area(detfn, pars, session_traps, mask)
            for session_traps, mask in zip(traps, masks)
        )
        n = sum(session.n for session in capt)
        out[DENSITY_INTERCEPT] = np.log(max(n, 1) / total_esa)
    out.update({name: 0.0 for name in density_names if name not in known and name not in out})
    return {k: float(v) for k, v in out.items()}
