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
"""Habitat masks and detector geometry."""
import numpy as np

from scipy.spatial.distance import cdist

from ascr.exceptions import ConfigurationError, ShapeError

__all__ = ["Mask", "create_mask", "as_traps", "distances", "bearings"]


def _readonly(a):
    a = np.array(a, dtype="float64")
    a.flags.writeable = False
    return a


def as_traps(traps):
    """Validate a detector array, returning a read-only ``(K, 2)`` array."""
    traps = np.asarray(traps, dtype="float64")
    if traps.ndim != 2 or traps.shape[1] != 2:
        raise ShapeError("Trap locations must be a two-column matrix", actual=traps.shape)
    return _readonly(traps)


class Mask:
    """A discretized habitat: an ordered set of points, each a cell of ``area`` hectares.

    Parameters
    ----------
    points: array_like
        ``(M, 2)`` point coordinates, in metres.
    area: float
        Area of the cell represented by each point, in hectares.
    buffer: float
        Maximum distance between a mask point and its closest detector.
    """

    __slots__ = ("_points", "_area", "_buffer")

    def __init__(self, points, area, buffer):
        points = np.asarray(points, dtype="float64")
        if points.ndim != 2 or points.shape[1] != 2:
            raise ShapeError("Mask points must be a two-column matrix", actual=points.shape)
        if area <= 0:
            raise ConfigurationError("Mask cell area must be positive.")
        object.__setattr__(self, "_points", _readonly(points))
        object.__setattr__(self, "_area", float(area))
        object.__setattr__(self, "_buffer", float(buffer))

    def __setattr__(self, name, value):
        raise AttributeError("Mask objects are immutable")

    @property
    def points(self):
        return self._points

    @property
    def area(self):
        return self._area

    @property
    def buffer(self):
        return self._buffer

    def __len__(self):
        return self._points.shape[0]

    def __repr__(self):
        return f"Mask(n_points={len(self)}, area={self.area:g}, buffer={self.buffer:g})"

    def __reduce__(self):
        return (Mask, (np.array(self._points), self._area, self._buffer))


def create_mask(traps, buffer, spacing=None, n_points=10000):
    """Create a mask suitable for use with :func:`ascr.fit_ascr`.

    A regular grid is laid over the bounding box of the detectors, extended
    by ``buffer`` on every side, and only points within ``buffer`` of at
    least one detector are kept.

    Parameters
    ----------
    traps: array_like
        ``(K, 2)`` detector locations.
    buffer: float
        The minimum distance between a mask point and the edge of the mask.
    spacing: float, optional
        Distance between neighbouring grid points. If omitted, chosen so that
        the full grid has approximately ``n_points`` points.
    n_points: int
        Approximate number of grid points when ``spacing`` is not given.
    """
    traps = as_traps(traps)
    if buffer <= 0:
        raise ConfigurationError("Argument 'buffer' must be positive.")
    lower = traps.min(axis=0) - buffer
    upper = traps.max(axis=0) + buffer
    if spacing is None:
        spacing = np.sqrt(np.prod(upper - lower) / n_points)
    xs = np.arange(lower[0], upper[0] + spacing / 2, spacing)
    ys = np.arange(lower[1], upper[1] + spacing / 2, spacing)
    grid = np.array([(x, y) for y in ys for x in xs])
    keep = distances(traps, grid).min(axis=0) <= buffer
    return Mask(grid[keep], area=spacing**2 / 10000, buffer=buffer)


def distances(a, b):
    """Euclidean distances between the rows of ``a`` and the rows of ``b``."""
    return cdist(np.asarray(a, dtype="float64"), np.asarray(b, dtype="float64"))


def bearings(traps, points):
    """Bearings from each detector to each point.

    Measured clockwise from north (the positive y axis), in radians on
    ``[0, 2 pi)``. Returns a ``(K, M)`` array.
    """
    traps = np.asarray(traps, dtype="float64")
    points = np.asarray(points, dtype="float64")
    dx = points[None, :, 0] - traps[:, None, 0]
    dy = points[None, :, 1] - traps[:, None, 1]
    return np.mod(np.arctan2(dx, dy), 2 * np.pi)
