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

from ascr import links as links_module
from ascr.exceptions import ConfigurationError
from ascr.links import (
    ParameterLinks,
    get_link,
    get_linked_name,
    get_unlinked_name,
    is_linked_name,
)


@pytest.mark.parametrize(
    "link, value",
    [
        (links_module.identity, -3.5),
        (links_module.log, 12.0),
        (links_module.logodds, 0.3),
    ],
)
def test_symbolic_and_numpy_links_agree(link, value):
    forward = link.forward_numpy(value)
    np.testing.assert_allclose(link.forward(np.float64(value)).eval(), forward)
    np.testing.assert_allclose(link.backward(np.float64(forward)).eval(), value)
    np.testing.assert_allclose(link.backward_numpy(forward), value)


@pytest.mark.parametrize(
    "link, values",
    [
        (links_module.identity, [-1e6, -2.5, 0.0, 3.0, 1e6]),
        (links_module.log, [1e-12, 0.02, 1.0, 30.0, 1e8]),
        (links_module.logodds, [0.0, 1e-9, 0.3, 0.5, 0.999, 1.0]),
    ],
)
def test_round_trip_across_domain(link, values):
    values = np.array(values)
    linked = link.forward_numpy(values)
    np.testing.assert_allclose(link.backward_numpy(linked), values, rtol=1e-12)


def test_logit_boundaries():
    links = ParameterLinks({"g0": "logit"})
    np.testing.assert_array_equal(links.to_link("g0", np.array([0.0, 1.0])), [-np.inf, np.inf])
    assert links.from_link("g0", links.to_link("g0", 0.0)) == 0.0
    assert links.from_link("g0", links.to_link("g0", 1.0)) == 1.0


def test_get_link():
    assert get_link("logit") is links_module.logodds
    with pytest.raises(ConfigurationError, match="Unknown link function"):
        get_link("probit")


def test_linked_names():
    assert get_linked_name("sigma") == "sigma_link"
    assert is_linked_name("sigma_link")
    assert not is_linked_name("sigma")
    assert get_unlinked_name("D.(Intercept)_link") == "D.(Intercept)"
    with pytest.raises(ValueError):
        get_unlinked_name("sigma")


def test_parameter_links():
    links = ParameterLinks({"g0": "logit", "sigma": "log", "shape": links_module.identity})
    assert len(links) == 3
    np.testing.assert_allclose(links.to_link("sigma", np.e), 1.0)
    np.testing.assert_allclose(links.from_link("g0", 0.0), 0.5)
    with pytest.raises(ConfigurationError, match="No link function is declared"):
        links["kappa"]


def test_link_bounds():
    links = ParameterLinks({"g0": "logit", "sigma": "log", "shape": "identity"})
    assert links.link_bounds("g0", (0, 1)) == (-np.inf, np.inf)
    np.testing.assert_allclose(links.link_bounds("sigma", (0, 100)), (np.log(1e-20), np.log(100)))
    assert links.link_bounds("shape", (-np.inf, 4.0)) == (-np.inf, 4.0)
