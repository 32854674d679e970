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
"""Parametric bootstrap of fitted SCR models."""
import logging
import multiprocessing as mp
import warnings

from itertools import repeat

import cloudpickle
import numpy as np
import pandas as pd

from fastprogress.fastprogress import progress_bar
from threadpoolctl import threadpool_limits

from ascr.exceptions import ConfigurationError, ConvergenceWarning, OptimizationError
from ascr.fit import fit_ascr
from ascr.results import BootstrapResult
from ascr.simulate import simulate_capture

__all__ = ["boot_ascr"]

_log = logging.getLogger(__name__)


def _refit(task, seed):
    """Simulate data at the estimates held in ``task`` and refit the model.

    Returns the reported quantities of the refit, or ``None`` if it failed.
    """
    rng = np.random.default_rng(seed)
    args = dict(task["args"])
    capt = [
        simulate_capture(
            traps,
            mask,
            task["detfn"],
            task["natural"],
            density,
            info_types=task["info_types"],
            cutoff=task["cutoff"],
            sound_speed=args["sound_speed"],
            random_seed=rng,
        )
        for traps, mask, density in zip(args["traps"], args["mask"], task["d_mask"])
    ]
    if args["cue_rates"] is not None:
        args["cue_rates"] = rng.choice(args["cue_rates"], size=len(args["cue_rates"]))
    args.update(capt=capt, hess=False)
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", ConvergenceWarning)
            refit = fit_ascr(**args)
    except (ConfigurationError, OptimizationError) as e:
        _log.debug(f"Bootstrap refit failed: {e}")
        return None
    if not refit.converged:
        return None
    return refit.coefficients.reindex(task["names"]).to_numpy()


def _run_boot(task_pickled, seed, blas_cores):
    task = cloudpickle.loads(task_pickled)
    with threadpool_limits(limits=blas_cores):
        return _refit(task, seed)


def _run_parallel(task, seeds, n_cores, progressbar):
    pbar = progress_bar(range(len(seeds)), total=len(seeds), display=progressbar)
    pbar.update(0)
    task_pickled = cloudpickle.dumps(task, protocol=-1)
    results = [None] * len(seeds)
    with mp.Pool(n_cores) as pool:
        tasks = pool.imap(_apply_run_boot, zip(repeat(task_pickled), seeds, repeat(1)))
        for i, result in enumerate(tasks):
            results[i] = result
            pbar.update(i + 1)
    return results


def _apply_run_boot(args):
    return _run_boot(*args)


def _run_sequential(task, seeds, progressbar):
    results = []
    for seed in progress_bar(seeds, total=len(seeds), display=progressbar):
        results.append(_refit(task, seed))
    return results


def boot_ascr(fit, n_boots, n_cores=1, random_seed=None, progressbar=True):
    """Parametric bootstrap.

    Capture histories are simulated from the fitted model and the model is
    refitted to each, starting from the original estimates. Standard errors,
    covariances and biases are then calculated from the refitted parameters.

    Parameters
    ----------
    fit: FitResult
    n_boots: int
        Number of bootstrap resamples.
    n_cores: int
        Number of worker processes. With ``n_cores=1`` the refits run in this
        process.
    random_seed: int, optional
        Seed from which one seed per resample is drawn; the draws do not
        depend on ``n_cores``.
    progressbar: bool
        Whether or not to display a progress bar in the command line.

    Returns
    -------
    FitResult
        A copy of ``fit`` carrying a :class:`~ascr.results.BootstrapResult`.
    """
    if n_boots < 2:
        raise ConfigurationError("Argument 'n_boots' must be at least 2.")
    if n_cores < 1:
        raise ConfigurationError("Argument 'n_cores' must be positive.")
    rng = np.random.default_rng(seed=random_seed)
    seeds = [int(s) for s in rng.integers(2**30, size=n_boots)]
    start = dict(fit.args["sv"])
    start.update({k: v for k, v in fit.natural.items() if k in start})
    task = {
        "args": {**fit.args, "sv": start},
        "detfn": fit.detfn.name,
        "natural": fit.natural,
        "d_mask": fit.d_mask,
        "info_types": fit.info_types,
        "cutoff": fit.cutoff,
        "names": list(fit.coefficients.index),
    }

    _log.info(
        f"Bootstrapping {n_boots} resample{'s' if n_boots > 1 else ''} "
        f"in {n_cores} job{'s' if n_cores > 1 else ''}"
    )
    if n_cores > 1:
        results = _run_parallel(task, seeds, min(n_cores, n_boots), progressbar)
    else:
        results = _run_sequential(task, seeds, progressbar)

    names = fit.coefficients.index
    draws = np.full((n_boots, len(names)), np.nan)
    for i, result in enumerate(results):
        if result is not None:
            draws[i] = result
    draws = pd.DataFrame(draws, columns=names)
    draws.index.name = "resample"
    n_failed = int(draws.isna().all(axis=1).sum())
    if n_failed:
        _log.warning(
            f"{n_failed} of {n_boots} bootstrap refits failed to converge and are excluded."
        )
    if n_boots - n_failed < 2:
        raise OptimizationError("Fewer than two bootstrap refits succeeded.")

    boot = BootstrapResult(
        draws=draws,
        vcov=draws.cov(),
        se=draws.std(),
        bias=draws.mean() - fit.coefficients,
        n_failed=n_failed,
    )
    return fit.with_bootstrap(boot)
