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
import warnings

import pytensor
import pytest

from ascr import fit_ascr
from tests import models


@pytest.fixture(scope="function", autouse=True)
def pytensor_config():
    config = pytensor.config.change_flags(on_opt_error="raise")
    with config:
        yield


@pytest.fixture(scope="function", autouse=True)
def exception_verbosity():
    config = pytensor.config.change_flags(exception_verbosity="high")
    with config:
        yield


@pytest.fixture
def fail_on_warning():
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        yield


@pytest.fixture(scope="session")
def simple_data():
    return models.simple_survey()


@pytest.fixture(scope="session")
def simple_fit(simple_data):
    capt, traps, mask = simple_data
    return fit_ascr(capt, traps, mask)


@pytest.fixture(scope="session")
def fixed_g0_fit(simple_data):
    capt, traps, mask = simple_data
    return fit_ascr(capt, traps, mask, fix={"g0": 0.9})
