from __future__ import annotations

"""
Geographic -> local scene frame.

    x = (lon - origin.lon) * SCALE
    y = (lat - origin.lat) * SCALE

One degree maps to SCALE units on both axes. This is a flat approximation
(no cos(lat) shrink of longitude), shared by the line overlay and the tile
meshes so both stay aligned.
"""

from typing import Tuple

import numpy as np

from common.types import GeoPoint, ScenePoint


SCALE = 100000.0


def to_scene(point: GeoPoint, origin: GeoPoint, scale: float = SCALE) -> Tuple[float, float]:
    x = (point.longitude - origin.longitude) * scale
    y = (point.latitude - origin.latitude) * scale
    return (x, y)


def to_scene_point(point: GeoPoint, origin: GeoPoint, z: float = 0.0, scale: float = SCALE) -> ScenePoint:
    x, y = to_scene(point, origin, scale)
    return ScenePoint(x, y, float(z))


def lonlat_to_scene(lon: float, lat: float, origin: GeoPoint, scale: float = SCALE) -> Tuple[float, float]:
    """Same as to_scene for raw lon/lat (tile corners may lie past +/-180)."""
    return ((lon - origin.longitude) * scale, (lat - origin.latitude) * scale)


def to_scene_array(lonlat: np.ndarray, origin: GeoPoint, z: float = 0.0, scale: float = SCALE) -> np.ndarray:
    """(N, 2) lon/lat -> new (N, 3) scene array with constant z."""
    a = np.asarray(lonlat, dtype=float).reshape(-1, 2)
    out = np.empty((a.shape[0], 3), dtype=float)
    out[:, 0] = (a[:, 0] - origin.longitude) * scale
    out[:, 1] = (a[:, 1] - origin.latitude) * scale
    out[:, 2] = z
    return out


def from_scene(x: float, y: float, origin: GeoPoint, scale: float = SCALE) -> Tuple[float, float]:
    """Inverse mapping: scene (x, y) -> (lon, lat)."""
    return (origin.longitude + x / scale, origin.latitude + y / scale)
