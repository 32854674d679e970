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
import numpy as np
import pandas as pd

from ascr.defaults import default_links
from ascr.density import DensityDesign
from ascr.detfns import get_detfn
from ascr.links import ParameterLinks
from ascr.mask import Mask, create_mask
from ascr.params import ParameterRegistry
from ascr.results import BootstrapResult, FitResult
from ascr.simulate import simulate_capture

TRAPS = np.array([[x, y] for x in (0.0, 50.0, 100.0) for y in (0.0, 50.0, 100.0)])
TRUE_DENSITY = 10.0
TRUE_DETPARS = {"g0": 0.9, "sigma": 30.0}


def example_mask(buffer=150.0, spacing=10.0):
    return create_mask(TRAPS, buffer=buffer, spacing=spacing)


def simple_survey(info_types=(), random_seed=20240611):
    """Halfnormal detections of animals at density 10 per hectare."""
    mask = example_mask()
    pars = dict(TRUE_DETPARS, kappa=20.0, alpha=5.0, sigma_toa=0.002)
    capt = simulate_capture(
        TRAPS,
        mask,
        "hn",
        pars,
        TRUE_DENSITY,
        info_types=info_types,
        random_seed=random_seed,
    )
    return capt, TRAPS, mask


def ss_survey(random_seed=20240612):
    mask = example_mask()
    pars = {"b0_ss": 90.0, "b1_ss": 1.0, "sigma_ss": 5.0}
    capt = simulate_capture(
        TRAPS,
        mask,
        "ss",
        pars,
        TRUE_DENSITY,
        info_types=("ss",),
        cutoff=60.0,
        random_seed=random_seed,
    )
    return capt, TRAPS, mask


def small_session():
    """Three detectors, twelve mask points and four detected animals."""
    traps = np.array([[0.0, 0.0], [40.0, 0.0], [20.0, 30.0]])
    xs, ys = np.meshgrid(np.linspace(-30, 70, 4), np.linspace(-30, 60, 3))
    mask = Mask(np.column_stack([xs.ravel(), ys.ravel()]), area=0.25, buffer=60.0)
    bincapt = np.array(
        [
            [1, 0, 0],
            [1, 1, 0],
            [0, 1, 1],
            [1, 1, 1],
        ]
    )
    toa = bincapt * np.array(
        [
            [0.10, 0.00, 0.00],
            [0.50, 0.58, 0.00],
            [0.00, 1.21, 1.25],
            [2.00, 2.07, 2.11],
        ]
    )
    bearing = bincapt * np.array(
        [
            [0.3, 0.0, 0.0],
            [1.2, 5.9, 0.0],
            [0.0, 0.4, 3.5],
            [1.0, 4.8, 2.9],
        ]
    )
    dist = bincapt * np.array(
        [
            [12.0, 0.0, 0.0],
            [25.0, 30.0, 0.0],
            [0.0, 18.0, 22.0],
            [35.0, 20.0, 15.0],
        ]
    )
    ss = bincapt * np.array(
        [
            [72.0, 0.0, 0.0],
            [65.0, 61.0, 0.0],
            [0.0, 80.0, 68.0],
            [62.0, 70.0, 75.0],
        ]
    )
    capt = {"bincapt": bincapt, "toa": toa, "bearing": bearing, "dist": dist, "ss": ss}
    return capt, traps, mask


def synthetic_fit(boot=False, fixed=None, hessian_status="ok", fit_freqs=False):
    """A hand-built halfnormal FitResult with known estimates and covariances."""
    mask = Mask(np.array([[0.0, 0.0], [10.0, 0.0], [0.0, 10.0]]), area=0.01, buffer=100.0)
    detfn = get_detfn("hn")
    density = DensityDesign([mask])
    fixed = dict(fixed or {})
    free = [p for p in ("D.(Intercept)", "g0", "sigma") if p not in fixed]
    registry = ParameterRegistry(
        fitted=free + ["D"],
        derived=["esa.1"],
        free=free,
        n_sessions=1,
        density_covariates=False,
    )
    natural = {"D.(Intercept)": np.log(10.0), "g0": 0.8, "sigma": 30.0, "D": 10.0}
    natural.update(fixed)
    links = {"D.(Intercept)": np.log(10.0), "g0": np.log(0.8 / 0.2), "sigma": np.log(30.0)}
    values = {name: natural[name] for name in free}
    values.update({"D": 10.0, "esa.1": 2.5})
    values.update({f"{name}_link": links[name] for name in free})
    coefficients = pd.Series(values)[registry.names]

    variances = {
        "D.(Intercept)": 0.04,
        "g0": 0.0025,
        "sigma": 9.0,
        "D": 4.0,
        "esa.1": 0.09,
        "D.(Intercept)_link": 0.04,
        "g0_link": 0.01,
        "sigma_link": 0.01,
    }
    vcov_all = None
    if hessian_status == "ok":
        vcov_all = pd.DataFrame(
            np.diag([variances[name] for name in registry.names]),
            index=registry.names,
            columns=registry.names,
        )

    result = None
    if boot:
        rng = np.random.default_rng(42)
        sds = np.sqrt([variances[name] for name in registry.names])
        draws = pd.DataFrame(
            coefficients.to_numpy() + 0.1 * sds + sds * rng.standard_normal((500, len(sds))),
            columns=registry.names,
        )
        draws.iloc[3] = np.nan
        result = BootstrapResult(
            draws=draws,
            vcov=draws.cov(),
            se=draws.std(),
            bias=draws.mean() - coefficients,
            n_failed=1,
        )

    return FitResult(
        coefficients=coefficients,
        vcov_all=vcov_all,
        registry=registry,
        links=ParameterLinks(default_links(detfn, density.param_names)),
        detfn=detfn,
        info_types=(),
        density=density,
        fixed=fixed,
        sv={},
        bounds={},
        phases={name: -1 if name in fixed else 1 for name in ("D.(Intercept)", "g0", "sigma")},
        loglik=-123.5,
        converged=hessian_status != "not converged",
        hessian_status=hessian_status,
        message="",
        d_mask=[np.full(len(mask), 10.0)],
        masks=[mask],
        traps=[np.array([[0.0, 0.0], [20.0, 0.0]])],
        capt=[],
        cutoff=None,
        fit_freqs=fit_freqs,
        args={"sound_speed": 330.0},
        natural=natural,
        boot=result,
    )
