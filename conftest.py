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

import os


def pytest_sessionstart(session):
    # Compile-time problems in the likelihood graphs must fail loudly.
    os.environ["PYTENSOR_FLAGS"] = ",".join(
        [
            os.environ.setdefault("PYTENSOR_FLAGS", ""),
            "on_opt_error=raise,on_shape_error=raise",
        ]
    )


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "fitting: runs the optimizer on simulated survey data (slow)"
    )
