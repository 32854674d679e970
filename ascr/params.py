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
"""Partition of a fitted model's parameter names into fitted, derived and linked roles."""
import enum

from ascr.exceptions import ConfigurationError
from ascr.links import get_linked_name

__all__ = ["ParameterRole", "ParameterRegistry", "DENSITY", "DENSITY_INTERCEPT", "PARAMETER_SETS"]

DENSITY = "D"
DENSITY_INTERCEPT = "D.(Intercept)"
PARAMETER_SETS = ("fitted", "derived", "linked")

_BAD_PARS_MSG = (
    "Argument 'pars' must either contain a vector of parameter names, or a subset of "
    '"fitted", "derived", "linked", and "all".'
)


class ParameterRole(enum.Enum):
    FITTED = "fitted"
    DERIVED = "derived"
    LINKED = "linked"


class ParameterRegistry:
    """Explicit mapping from every reported parameter name to its role.

    Parameters
    ----------
    fitted: list of str
        Parameters of interest, on their natural scale.
    derived: list of str
        Functions of the fitted parameters (effective survey areas, ``Da``).
    free: list of str
        Parameters the optimizer works on; each contributes a linked name.
    n_sessions: int
    density_covariates: bool
        Whether density is modelled with covariates. If not, the density
        intercept is reported as ``D`` and sorted first.
    """

    def __init__(self, fitted, derived, free, n_sessions, density_covariates):
        self.n_sessions = n_sessions
        self.density_covariates = density_covariates
        self.linked_names = {name: get_linked_name(name) for name in free}
        self._roles = {}
        for names, role in (
            (fitted, ParameterRole.FITTED),
            (derived, ParameterRole.DERIVED),
            (self.linked_names.values(), ParameterRole.LINKED),
        ):
            for name in names:
                if name in self._roles:
                    raise ConfigurationError(f"Parameter name '{name}' is used more than once.")
                self._roles[name] = role

    @property
    def names(self):
        return list(self._roles)

    def role(self, name):
        try:
            return self._roles[name]
        except KeyError:
            raise ConfigurationError(_BAD_PARS_MSG) from None

    def group(self, role):
        role = ParameterRole(role)
        return [name for name, r in self._roles.items() if r is role]

    def esa_names(self):
        return [f"esa.{i}" for i in range(1, self.n_sessions + 1)]

    def linked_name(self, name):
        """Name of the linked quantity that ``name`` is a transformation of."""
        if name == DENSITY and not self.density_covariates:
            name = DENSITY_INTERCEPT
        try:
            return self.linked_names[name]
        except KeyError:
            raise ConfigurationError(
                f"Parameter '{name}' is not estimated on a link scale."
            ) from None

    def expand(self, pars):
        """Expand ``"all"`` and ``"esa"`` and validate a parameter selection."""
        if isinstance(pars, str):
            pars = [pars]
        pars = list(pars)
        if "all" in pars:
            pars = list(PARAMETER_SETS)
        if "esa" in pars:
            pars = [p for p in pars if p != "esa"] + self.esa_names()
        for p in pars:
            if p not in PARAMETER_SETS and p not in self._roles:
                raise ConfigurationError(_BAD_PARS_MSG)
        return pars

    def select(self, pars="fitted"):
        """Resolve a parameter selection into an ordered list of names.

        Keywords are replaced by their groups, in the order given; explicit
        names are kept in the order requested. Without density covariates,
        keyword selections drop the density intercept and ``D`` always comes
        first.
        """
        pars = self.expand(pars)
        keywords = any(p in PARAMETER_SETS for p in pars)
        out = []
        for p in pars:
            names = self.group(p) if p in PARAMETER_SETS else [p]
            out.extend(n for n in names if n not in out)
        if not self.density_covariates:
            if keywords:
                out = [n for n in out if n != DENSITY_INTERCEPT]
            if DENSITY in out:
                out = [DENSITY] + [n for n in out if n != DENSITY]
        return out
