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

__all__ = [
    "ConfigurationError",
    "ShapeError",
    "OptimizationError",
    "ParameterWarning",
    "ConvergenceWarning",
    "NonIndependenceWarning",
]


class ConfigurationError(ValueError):
    """Malformed or inconsistent input, detected before any numerical work."""

    pass


class ShapeError(ConfigurationError):
    """Error that the shape of a capture history component is incorrect."""

    def __init__(self, message, actual=None, expected=None):
        if actual is not None and expected is not None:
            super().__init__(f"{message} (actual {actual} != expected {expected})")
        elif actual is not None and expected is None:
            super().__init__(f"{message} (actual {actual})")
        elif actual is None and expected is not None:
            super().__init__(f"{message} (expected {expected})")
        else:
            super().__init__(message)


class OptimizationError(RuntimeError):
    """The optimizer could not be run on the negative log-likelihood."""

    pass


class ParameterWarning(UserWarning):
    """Part of a parameter specification is being ignored."""

    pass


class ConvergenceWarning(UserWarning):
    """The optimizer did not converge, or the Hessian could not be inverted."""

    pass


class NonIndependenceWarning(UserWarning):
    """A quantity relies on independence between calls from the same animal."""

    pass
