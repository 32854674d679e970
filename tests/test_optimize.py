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

from scipy.optimize import rosen, rosen_der

from ascr.exceptions import ConfigurationError, OptimizationError
from ascr.optimize import covariance_from_hessian, minimize

TARGET = np.array([3.0, -2.0, 0.5])


def quadratic(x):
    return np.sum((x - TARGET) ** 2), 2 * (x - TARGET)


def test_minimize_quadratic():
    outcome = minimize(quadratic, np.zeros(3))
    assert outcome.converged
    np.testing.assert_allclose(outcome.x, TARGET, atol=1e-5)
    assert outcome.fun == pytest.approx(0.0, abs=1e-9)
    assert outcome.hessian is None
    assert outcome.n_eval > 0


def test_minimize_in_phases():
    calls = []

    def objective(x):
        calls.append(x.copy())
        return quadratic(x)

    outcome = minimize(objective, np.zeros(3), phases=[0, 1, 1])
    assert outcome.converged
    np.testing.assert_allclose(outcome.x, TARGET, atol=1e-5)
    # The second and third parameters stay put until the first phase is done.
    first_phase = [x for x in calls[1:] if x[1] == 0.0 and x[2] == 0.0]
    assert len(first_phase) > 1


def test_minimize_respects_bounds():
    bounds = [(-np.inf, 1.0), (-np.inf, np.inf), (0.0, 0.2)]
    outcome = minimize(quadratic, np.zeros(3), bounds=bounds)
    np.testing.assert_allclose(outcome.x, [1.0, -2.0, 0.2], atol=1e-5)


def test_minimize_evaluates_hessian():
    outcome = minimize(quadratic, np.zeros(3), hessian=lambda x: 2 * np.eye(3))
    np.testing.assert_allclose(outcome.hessian, 2 * np.eye(3))


def test_maxeval_stops_optimization():
    outcome = minimize(lambda x: (rosen(x), rosen_der(x)), np.full(3, -1.5), maxeval=2)
    assert not outcome.converged
    assert "Maximum number" in outcome.message
    assert np.all(np.isfinite(outcome.x))


def test_non_finite_start():
    def objective(x):
        return np.inf, np.zeros_like(x)

    with pytest.raises(OptimizationError, match="not finite at the start values"):
        minimize(objective, np.zeros(2))


@pytest.mark.parametrize(
    "kwargs, match",
    [
        ({"phases": [0, -1, 1]}, "non-negative"),
        ({"phases": [0, 1]}, "same length"),
        ({"method": "BFGS"}, "Optimization method"),
    ],
)
def test_invalid_arguments(kwargs, match):
    with pytest.raises(ConfigurationError, match=match):
        minimize(quadratic, np.zeros(3), **kwargs)


def test_covariance_from_hessian():
    np.testing.assert_allclose(covariance_from_hessian(2 * np.eye(3)), np.eye(3) / 2)
    hess = np.array([[4.0, 1.0], [1.0, 3.0]])
    np.testing.assert_allclose(covariance_from_hessian(hess), np.linalg.inv(hess))


def test_covariance_from_bad_hessian():
    assert covariance_from_hessian(None) is None
    assert covariance_from_hessian(np.array([[1.0, 0.0], [0.0, 0.0]])) is None
    assert covariance_from_hessian(np.array([[1.0, 0.0], [0.0, -2.0]])) is None
    assert covariance_from_hessian(np.array([[np.nan, 0.0], [0.0, 1.0]])) is None
