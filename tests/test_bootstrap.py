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
import pytest

from ascr import bootstrap
from ascr.bootstrap import boot_ascr
from ascr.exceptions import ConfigurationError, OptimizationError
from tests.models import synthetic_fit


@pytest.fixture(scope="module")
def boot_fit(simple_fit):
    return boot_ascr(simple_fit, n_boots=3, random_seed=17, progressbar=False)


@pytest.mark.fitting
class TestBootstrap:
    def test_draws(self, simple_fit, boot_fit):
        draws = boot_fit.boot.draws
        assert draws.shape == (3, len(simple_fit.coefficients))
        assert list(draws.columns) == list(simple_fit.coefficients.index)
        assert draws.index.name == "resample"
        assert boot_fit.boot.n_failed == int(draws.isna().all(axis=1).sum())

    def test_original_fit_is_unchanged(self, simple_fit, boot_fit):
        assert simple_fit.boot is None
        assert boot_fit.boot is not None
        np.testing.assert_array_equal(boot_fit.coef(), simple_fit.coef())
        assert boot_fit.std_err()["D"] != simple_fit.std_err()["D"]

    def test_standard_errors_use_draws(self, boot_fit):
        draws = boot_fit.boot.draws
        np.testing.assert_allclose(boot_fit.std_err(), draws[["D", "g0", "sigma"]].std())
        np.testing.assert_allclose(
            boot_fit.coef(correct_bias=True),
            2 * boot_fit.coef() - draws[["D", "g0", "sigma"]].mean(),
        )
        ci = boot_fit.confint(method="percentile")
        assert np.all(ci["2.5 %"] <= ci["97.5 %"])

    def test_parallel_matches_sequential(self, simple_fit, boot_fit):
        parallel = boot_ascr(simple_fit, n_boots=3, n_cores=2, random_seed=17, progressbar=False)
        np.testing.assert_allclose(parallel.boot.draws, boot_fit.boot.draws)


@pytest.mark.parametrize(
    "kwargs, match", [({"n_boots": 1}, "at least 2"), ({"n_boots": 5, "n_cores": 0}, "positive")]
)
def test_invalid_arguments(kwargs, match):
    with pytest.raises(ConfigurationError, match=match):
        boot_ascr(synthetic_fit(), **kwargs)


def test_failed_refits_are_missing(simple_fit, monkeypatch):
    calls = []

    def flaky_fit(**kwargs):
        calls.append(kwargs)
        assert kwargs["hess"] is False
        if len(calls) == 2:
            raise OptimizationError("failed")
        return simple_fit

    monkeypatch.setattr(bootstrap, "fit_ascr", flaky_fit)
    out = boot_ascr(simple_fit, n_boots=4, random_seed=3, progressbar=False)
    assert out.boot.n_failed == 1
    assert out.boot.draws.iloc[1].isna().all()
    np.testing.assert_allclose(out.boot.draws.iloc[0], simple_fit.coefficients)
    assert calls[0]["sv"]["sigma"] == pytest.approx(simple_fit.coef("sigma")["sigma"])


def test_too_few_refits(simple_fit, monkeypatch):
    def failing_fit(**kwargs):
        raise OptimizationError("failed")

    monkeypatch.setattr(bootstrap, "fit_ascr", failing_fit)
    with pytest.raises(OptimizationError, match="Fewer than two"):
        boot_ascr(simple_fit, n_boots=2, random_seed=3, progressbar=False)
