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
"""Capture histories: binary detections plus auxiliary measurements."""
import numpy as np
import pandas as pd

from ascr.exceptions import ConfigurationError, ShapeError

__all__ = ["CaptureHistory", "INFO_TYPES", "check_capture", "create_capt"]

INFO_TYPES = ("bearing", "dist", "ss", "toa")


class CaptureHistory:
    """Capture history of one session.

    Every component is an ``(n, K)`` matrix with one row per detected
    individual (or call) and one column per detector. Auxiliary components
    are aligned element-wise with ``bincapt``; their entries are ignored
    where ``bincapt`` is zero.
    """

    def __init__(self, bincapt=None, *, bearing=None, dist=None, ss=None, toa=None):
        components = {"bincapt": bincapt, "bearing": bearing, "dist": dist, "ss": ss, "toa": toa}
        components = {k: v for k, v in components.items() if v is not None}
        if "bincapt" not in components:
            raise ConfigurationError(
                "The binary capture history must be provided as a component of 'capt'."
            )
        arrays = {}
        for name, value in components.items():
            value = np.asarray(value)
            if value.ndim != 2:
                raise ConfigurationError("At least one component of 'capt' is not a matrix.")
            arrays[name] = value
        expected = arrays["bincapt"].shape
        for name, value in arrays.items():
            if value.shape != expected:
                raise ShapeError(
                    "Components of 'capt' object within a session have different dimensions.",
                    actual=f"{name}: {value.shape}",
                    expected=expected,
                )
        bincapt = arrays.pop("bincapt").astype("float64")
        if not np.isin(bincapt, (0, 1)).all():
            raise ConfigurationError("Component 'bincapt' of 'capt' must only contain 0s and 1s.")
        self.bincapt = bincapt
        self.bincapt.flags.writeable = False
        self._aux = {}
        for name, value in arrays.items():
            value = np.where(bincapt == 1, np.asarray(value, dtype="float64"), 0.0)
            value.flags.writeable = False
            self._aux[name] = value

    @classmethod
    def from_dict(cls, capt):
        if isinstance(capt, CaptureHistory):
            return capt
        if not isinstance(capt, dict):
            raise ConfigurationError("Each session of 'capt' must be a dict of matrices.")
        unknown = set(capt) - {"bincapt", *INFO_TYPES}
        if unknown:
            raise ConfigurationError(
                f"Unknown component(s) of 'capt': {', '.join(sorted(unknown))}."
            )
        return cls(**capt)

    def __getattr__(self, name):
        if name in INFO_TYPES:
            return self.__dict__["_aux"].get(name)
        raise AttributeError(name)

    def __getstate__(self):
        return self.__dict__

    def __setstate__(self, state):
        self.__dict__.update(state)

    @property
    def info_types(self):
        return tuple(t for t in INFO_TYPES if t in self._aux)

    @property
    def n(self):
        return self.bincapt.shape[0]

    @property
    def n_traps(self):
        return self.bincapt.shape[1]

    @property
    def n_detections(self):
        """Number of detectors that detected each individual."""
        return self.bincapt.sum(axis=1)

    def components(self):
        out = {"bincapt": self.bincapt}
        out.update(self._aux)
        return out

    def subset(self, rows):
        rows = np.asarray(rows)
        return CaptureHistory(**{k: v[rows] for k, v in self.components().items()})

    def __repr__(self):
        info = ", ".join(self.info_types) or "none"
        return f"CaptureHistory(n={self.n}, n_traps={self.n_traps}, info_types=({info}))"


def check_capture(capt, traps):
    """Validate a list of per-session capture histories against their traps.

    Parameters
    ----------
    capt: list of CaptureHistory or dict
    traps: list of ndarray
        Detector locations, one array per session.

    Returns
    -------
    list of CaptureHistory
    """
    sessions = [CaptureHistory.from_dict(c) for c in capt]
    if len(sessions) != len(traps):
        raise ShapeError(
            "There must be one set of trap locations per session",
            actual=len(traps),
            expected=len(sessions),
        )
    info_types = sessions[0].info_types
    for session, session_traps in zip(sessions, traps):
        if session.n_traps != session_traps.shape[0]:
            raise ShapeError(
                "There must be a trap location for each column in the components of 'capt'.",
                actual=session_traps.shape[0],
                expected=session.n_traps,
            )
        if session.n and (session.n_detections == 0).any():
            raise ConfigurationError("Every row of 'bincapt' must contain at least one detection.")
        if session.info_types != info_types:
            raise ConfigurationError(
                "All sessions must provide the same types of auxiliary information."
            )
    return sessions


def create_capt(captures, n_traps, n_sessions=None):
    """Create capture histories from a long-format table of detections.

    Parameters
    ----------
    captures: DataFrame
        One row per detection, with columns ``ID`` and ``trap`` (zero-based
        detector index), optionally ``session`` (one-based) and any of
        ``bearing``, ``dist``, ``ss`` and ``toa``.
    n_traps: int or list of int
        Number of detectors, per session if a list.
    n_sessions: int, optional
        Number of sessions; defaults to the largest session index.

    Returns
    -------
    CaptureHistory or list of CaptureHistory
        A list when there is more than one session.
    """
    captures = pd.DataFrame(captures)
    missing = {"ID", "trap"} - set(captures.columns)
    if missing:
        raise ConfigurationError(
            f"Argument 'captures' is missing column(s) {', '.join(sorted(missing))}."
        )
    if "session" not in captures:
        captures = captures.assign(session=1)
    if n_sessions is None:
        n_sessions = int(captures["session"].max())
    if np.isscalar(n_traps):
        n_traps = [int(n_traps)] * n_sessions
    info_types = [t for t in INFO_TYPES if t in captures.columns]
    if captures.duplicated(["session", "ID", "trap"]).any():
        raise ConfigurationError("Each individual can only be detected once by each detector.")

    out = []
    for session in range(1, n_sessions + 1):
        rows = captures[captures["session"] == session]
        ids = pd.unique(rows["ID"])
        row_index = pd.Index(ids).get_indexer(rows["ID"])
        cols = rows["trap"].to_numpy(dtype=int)
        if cols.size and (cols.min() < 0 or cols.max() >= n_traps[session - 1]):
            raise ConfigurationError(f"Trap index out of range in session {session}.")
        shape = (len(ids), n_traps[session - 1])
        components = {"bincapt": np.zeros(shape)}
        components["bincapt"][row_index, cols] = 1
        for info in info_types:
            components[info] = np.zeros(shape)
            components[info][row_index, cols] = rows[info].to_numpy(dtype="float64")
        out.append(CaptureHistory(**components))
    return out[0] if n_sessions == 1 else out
