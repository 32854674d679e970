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
import re

import pytest

from ascr.exceptions import ConfigurationError
from ascr.params import ParameterRegistry, ParameterRole

BAD_PARS = (
    "Argument 'pars' must either contain a vector of parameter names, or a subset of "
    '"fitted", "derived", "linked", and "all".'
)


@pytest.fixture
def registry():
    return ParameterRegistry(
        fitted=["D.(Intercept)", "g0", "sigma", "D"],
        derived=["esa.1", "esa.2"],
        free=["D.(Intercept)", "g0", "sigma"],
        n_sessions=2,
        density_covariates=False,
    )


@pytest.fixture
def covariate_registry():
    return ParameterRegistry(
        fitted=["D.(Intercept)", "D.elev", "sigma"],
        derived=["esa.1", "Da"],
        free=["D.(Intercept)", "D.elev", "sigma"],
        n_sessions=1,
        density_covariates=True,
    )


def test_roles(registry):
    assert registry.role("D") is ParameterRole.FITTED
    assert registry.role("esa.2") is ParameterRole.DERIVED
    assert registry.role("sigma_link") is ParameterRole.LINKED
    assert registry.group("linked") == ["D.(Intercept)_link", "g0_link", "sigma_link"]


def test_select_keywords(registry):
    assert registry.select() == ["D", "g0", "sigma"]
    assert registry.select(["derived", "fitted"]) == ["D", "esa.1", "esa.2", "g0", "sigma"]
    assert registry.select("all") == [
        "D",
        "g0",
        "sigma",
        "esa.1",
        "esa.2",
        "D.(Intercept)_link",
        "g0_link",
        "sigma_link",
    ]
    assert registry.select("esa") == ["esa.1", "esa.2"]


def test_select_names(registry):
    assert registry.select(["sigma", "D"]) == ["D", "sigma"]
    assert registry.select(["sigma", "D.(Intercept)"]) == ["sigma", "D.(Intercept)"]
    assert registry.select(["g0", "esa"]) == ["g0", "esa.1", "esa.2"]


def test_select_with_covariates(covariate_registry):
    assert covariate_registry.select() == ["D.(Intercept)", "D.elev", "sigma"]
    assert covariate_registry.select("derived") == ["esa.1", "Da"]


def test_unknown_names(registry):
    with pytest.raises(ConfigurationError, match=re.escape(BAD_PARS)):
        registry.select("foo")
    with pytest.raises(ConfigurationError, match=re.escape(BAD_PARS)):
        registry.role("foo")


def test_linked_name(registry, covariate_registry):
    assert registry.linked_name("D") == "D.(Intercept)_link"
    assert registry.linked_name("g0") == "g0_link"
    with pytest.raises(ConfigurationError, match="not estimated on a link scale"):
        covariate_registry.linked_name("Da")


def test_duplicate_names():
    with pytest.raises(ConfigurationError, match="used more than once"):
        ParameterRegistry(
            fitted=["sigma"], derived=["sigma"], free=[], n_sessions=1, density_covariates=False
        )
