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
"""Link functions between the natural and the unconstrained parameter scales.

The optimizer only ever sees link-scale values. Each link has a symbolic
``forward``/``backward`` pair, used while building the likelihood graph, and a
NumPy twin used for start values, bounds and back-transformed intervals.
"""
import abc

from collections.abc import Mapping

import numpy as np
import pytensor.tensor as pt

from scipy.special import expit, logit

from ascr.exceptions import ConfigurationError

__all__ = [
    "Link",
    "IdentityLink",
    "LogLink",
    "LogitLink",
    "get_link",
    "ParameterLinks",
    "LINK_SUFFIX",
    "get_linked_name",
    "is_linked_name",
    "get_unlinked_name",
]

LINK_SUFFIX = "_link"


class Link(abc.ABC):
    name = None

    @abc.abstractmethod
    def forward(self, value):
        """Map a natural-scale tensor onto the link scale."""

    @abc.abstractmethod
    def backward(self, value):
        """Map a link-scale tensor back onto the natural scale."""

    @abc.abstractmethod
    def forward_numpy(self, value):
        pass

    @abc.abstractmethod
    def backward_numpy(self, value):
        pass

    def __str__(self):
        return f"{self.__class__.__name__}"


class IdentityLink(Link):
    name = "identity"

    def forward(self, value):
        return pt.as_tensor_variable(value)

    def backward(self, value):
        return pt.as_tensor_variable(value)

    def forward_numpy(self, value):
        return np.asarray(value, dtype="float64")

    def backward_numpy(self, value):
        return np.asarray(value, dtype="float64")


class LogLink(Link):
    name = "log"

    def forward(self, value):
        return pt.log(value)

    def backward(self, value):
        return pt.exp(value)

    def forward_numpy(self, value):
        with np.errstate(divide="ignore"):
            return np.log(np.asarray(value, dtype="float64"))

    def backward_numpy(self, value):
        return np.exp(np.asarray(value, dtype="float64"))


class LogitLink(Link):
    name = "logit"

    def forward(self, value):
        return pt.log(value / (1 - value))

    def backward(self, value):
        return pt.sigmoid(value)

    def forward_numpy(self, value):
        return logit(np.asarray(value, dtype="float64"))

    def backward_numpy(self, value):
        return expit(np.asarray(value, dtype="float64"))


identity = IdentityLink()
log = LogLink()
logodds = LogitLink()

_LINKS = {link.name: link for link in (identity, log, logodds)}


def get_link(name):
    try:
        return _LINKS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown link function '{name}'; must be one of {sorted(_LINKS)}."
        ) from None


def get_linked_name(name):
    """Consistent way of naming a parameter on its link scale."""
    return f"{name}{LINK_SUFFIX}"


def is_linked_name(name):
    return name.endswith(LINK_SUFFIX)


def get_unlinked_name(name):
    if not is_linked_name(name):
        raise ValueError(f"{name} does not appear to be a linked name")
    return name[: -len(LINK_SUFFIX)]


class ParameterLinks(Mapping):
    """Per-parameter link functions for every declared parameter of a model.

    Parameters
    ----------
    links: dict
        Maps parameter name to a :class:`Link` instance or link name.
    """

    def __init__(self, links):
        self._links = {
            name: link if isinstance(link, Link) else get_link(link)
            for name, link in links.items()
        }

    def __getitem__(self, name):
        try:
            return self._links[name]
        except KeyError:
            raise ConfigurationError(
                f"No link function is declared for parameter '{name}'."
            ) from None

    def __iter__(self):
        return iter(self._links)

    def __len__(self):
        return len(self._links)

    def to_link(self, name, value):
        return self[name].forward_numpy(value)

    def from_link(self, name, value):
        return self[name].backward_numpy(value)

    def link_bounds(self, name, bounds):
        """Transform a ``(lower, upper)`` pair of natural-scale bounds.

        A lower bound of zero on a log-linked parameter is replaced by 1e-20
        so that the link-scale bound stays finite.
        """
        link = self[name]
        lower, upper = (float(b) for b in bounds)
        if link is log and lower <= 0:
            lower = 1e-20
        with np.errstate(divide="ignore"):
            return float(link.forward_numpy(lower)), float(link.forward_numpy(upper))
