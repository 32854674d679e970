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


"""ascr: Acoustic Spatial Capture-Recapture in Python."""

import logging

_log = logging.getLogger(__name__)

if not logging.root.handlers:
    _log.setLevel(logging.INFO)
    if len(_log.handlers) == 0:
        handler = logging.StreamHandler()
        _log.addHandler(handler)


def __set_compiler_flags():
    # Workarounds for PyTensor compiler problems on various platforms
    import pytensor

    current = pytensor.config.gcc__cxxflags
    augmented = f"{current} -Wno-c++11-narrowing"

    # Disable C++ exception handling and stack unwinding tables, which the
    # generated C extensions do not need.
    augmented = f"{augmented} -fno-exceptions"
    augmented = f"{augmented} -fno-unwind-tables -fno-asynchronous-unwind-tables"

    pytensor.config.gcc__cxxflags = augmented


__set_compiler_flags()

from ascr.bootstrap import boot_ascr
from ascr.capture import *
from ascr.detfns import *
from ascr.exceptions import *
from ascr.fit import fit_ascr
from ascr.inference import *
from ascr.links import ParameterLinks, get_link
from ascr.mask import Mask, create_mask
from ascr.results import *
from ascr.simulate import *

__version__ = "1.2.0"
