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

from ascr.capture import CaptureHistory
from ascr.exceptions import ConfigurationError
from ascr.simulate import simulate_capture, simulate_session
from tests import models

PARS = {"g0": 0.9, "sigma": 30.0, "kappa": 20.0, "alpha": 5.0, "sigma_toa": 0.002}


@pytest.fixture(scope="module")
def mask():
    return models.example_mask()


def test_every_animal_is_detected(mask):
    capt = simulate_capture(models.TRAPS, mask, "hn", PARS, 10.0, random_seed=1)
    assert isinstance(capt, CaptureHistory)
    assert capt.n > 0
    assert capt.n_traps == len(models.TRAPS)
    assert np.all(capt.bincapt.sum(axis=1) >= 1)
    assert capt.info_types == ()


def test_seeded_draws_are_reproducible(mask):
    first = simulate_capture(models.TRAPS, mask, "hn", PARS, 10.0, ("toa",), random_seed=5)
    second = simulate_capture(models.TRAPS, mask, "hn", PARS, 10.0, ("toa",), random_seed=5)
    np.testing.assert_array_equal(first.bincapt, second.bincapt)
    np.testing.assert_array_equal(first.toa, second.toa)
    third = simulate_capture(models.TRAPS, mask, "hn", PARS, 10.0, ("toa",), random_seed=6)
    assert first.bincapt.shape != third.bincapt.shape or not np.array_equal(
        first.toa, third.toa
    )


def test_density_scales_detections(mask):
    low = simulate_capture(models.TRAPS, mask, "hn", PARS, 2.0, random_seed=3)
    high = simulate_capture(models.TRAPS, mask, "hn", PARS, 50.0, random_seed=3)
    assert high.n > 5 * low.n
    empty = simulate_capture(models.TRAPS, mask, "hn", PARS, np.zeros(len(mask)) + 1e-12)
    assert empty.n == 0


def test_auxiliary_information(mask):
    capt = simulate_capture(
        models.TRAPS, mask, "hn", PARS, 10.0, ("bearing", "dist", "toa"), random_seed=11
    )
    assert capt.info_types == ("bearing", "dist", "toa")
    detected = capt.bincapt == 1
    assert np.all((capt.bearing[detected] >= 0) & (capt.bearing[detected] < 2 * np.pi))
    assert np.all(capt.dist[detected] > 0)
    assert np.all(capt.toa[~detected] == 0)
    # Arrival times of one call differ by less than the travel time across the array.
    spread = np.array(
        [row[d].max() - row[d].min() for row, d in zip(capt.toa, detected) if d.sum() > 1]
    )
    assert np.all(spread < 150 * np.sqrt(2) / 330.0 + 0.02)


def test_signal_strength(mask):
    pars = {"b0_ss": 90.0, "b1_ss": 1.0, "sigma_ss": 5.0}
    capt = simulate_capture(models.TRAPS, mask, "ss", pars, 10.0, cutoff=60.0, random_seed=2)
    assert capt.info_types == ("ss",)
    assert np.all(capt.ss[capt.bincapt == 1] >= 60.0)
    with pytest.raises(ConfigurationError, match="require a 'cutoff'"):
        simulate_capture(models.TRAPS, mask, "ss", pars, 10.0)


def test_unknown_information_type(mask):
    with pytest.raises(ConfigurationError, match="Unknown information type"):
        simulate_capture(models.TRAPS, mask, "hn", PARS, 10.0, ("angle",))


def test_simulate_session():
    fit = models.synthetic_fit()
    capt = simulate_session(fit, 0, random_seed=4)
    assert capt.n_traps == 2
    assert capt.info_types == ()
