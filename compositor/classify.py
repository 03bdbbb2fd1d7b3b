from __future__ import annotations

"""
Coordinate classification and projection.

Raw GeoJSON coordinates may be lon/lat degrees or planar metres with no
metadata saying which. A pair is treated as planar when either component's
magnitude exceeds `threshold` (degrees never exceed 180/90).

Known limitation: a planar point within `threshold` units of its projection's
false origin (or any point in a projection whose units are not metres) is
misclassified as geographic.
"""

from typing import Optional, Sequence, Tuple, Union

import numpy as np
from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError, ProjError

from common.errors import ConfigurationError, ParseError
from common.types import GeoPoint, ProjectedPoint, ProjectionDefinition
from common.utils import as_lonlat_array


DEFAULT_THRESHOLD = 1000.0

PointLike = Union[GeoPoint, ProjectedPoint, Sequence[float]]


def is_projected(x: float, y: float, threshold: float = DEFAULT_THRESHOLD) -> bool:
    """True when (x, y) looks planar rather than lon/lat."""
    return abs(float(x)) > threshold or abs(float(y)) > threshold


def projected_mask(coords: np.ndarray, threshold: float = DEFAULT_THRESHOLD) -> np.ndarray:
    """Row-wise `is_projected` for an (N, 2) array."""
    a = np.asarray(coords, dtype=float)
    if a.size == 0:
        return np.zeros(0, dtype=bool)
    return np.any(np.abs(a[:, :2]) > threshold, axis=1)


class Projector:
    """
    Planar <-> WGS84 converter for one ProjectionDefinition.

    Axis order is always (x/easting/lon, y/northing/lat).
    """

    def __init__(self, definition: ProjectionDefinition):
        self.definition = definition
        try:
            src = CRS.from_user_input(definition.definition)
            dst = CRS.from_user_input(definition.target)
        except CRSError as e:
            raise ConfigurationError(f"invalid projection '{definition.name}': {e}") from e
        if not dst.is_geographic:
            raise ConfigurationError(f"projection target for '{definition.name}' is not geographic")
        self._inverse = Transformer.from_crs(src, dst, always_xy=True)
        self._forward = Transformer.from_crs(dst, src, always_xy=True)

    @classmethod
    def from_string(cls, definition: str, name: str = "custom") -> "Projector":
        return cls(ProjectionDefinition(name=name, definition=definition))

    @property
    def name(self) -> str:
        return self.definition.name

    def to_geographic(self, x: np.ndarray, y: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        try:
            lon, lat = self._inverse.transform(x, y, errcheck=True)
        except ProjError as e:
            raise ParseError(f"cannot invert-project with '{self.name}': {e}") from e
        return np.asarray(lon, dtype=float), np.asarray(lat, dtype=float)

    def to_projected(self, lon: np.ndarray, lat: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        try:
            x, y = self._forward.transform(lon, lat, errcheck=True)
        except ProjError as e:
            raise ParseError(f"cannot project with '{self.name}': {e}") from e
        return np.asarray(x, dtype=float), np.asarray(y, dtype=float)

    def inverse(self, point: ProjectedPoint) -> GeoPoint:
        lon, lat = self.to_geographic(np.array([point.x]), np.array([point.y]))
        try:
            return GeoPoint(float(lon[0]), float(lat[0]))
        except ValueError as e:
            raise ParseError(f"({point.x}, {point.y}) is outside '{self.name}'") from e

    def forward(self, point: GeoPoint) -> ProjectedPoint:
        x, y = self.to_projected(np.array([point.longitude]), np.array([point.latitude]))
        return ProjectedPoint(float(x[0]), float(y[0]))


def _xy(point: PointLike) -> Tuple[float, float]:
    if isinstance(point, GeoPoint):
        return point.longitude, point.latitude
    if isinstance(point, ProjectedPoint):
        return float(point.x), float(point.y)
    if len(point) < 2:
        raise ParseError(f"coordinate needs two components: {point!r}")
    return float(point[0]), float(point[1])


def normalize(
    point: PointLike,
    projector: Optional[Projector] = None,
    threshold: float = DEFAULT_THRESHOLD,
) -> GeoPoint:
    """
    Classify one coordinate pair and return it as a GeoPoint.

    Planar pairs are invert-projected with `projector`; anything else passes
    through as (lon, lat).

    Raises:
        ConfigurationError: a planar pair was found but no projector is configured.
        ParseError: the pass-through pair is outside geographic range.
    """
    x, y = _xy(point)
    if is_projected(x, y, threshold):
        if projector is None:
            raise ConfigurationError(
                f"coordinate ({x}, {y}) looks projected but no projection is configured"
            )
        return projector.inverse(ProjectedPoint(x, y))
    try:
        return GeoPoint(x, y)
    except ValueError as e:
        raise ParseError(f"coordinate ({x}, {y}) is neither geographic nor projected") from e


def normalize_coords(
    coords,
    projector: Optional[Projector] = None,
    threshold: float = DEFAULT_THRESHOLD,
) -> np.ndarray:
    """
    Vectorised `normalize` over an (N, 2) array; rows are classified
    independently so one line may mix planar and geographic vertices.
    Returns a new (N, 2) lon/lat array.
    """
    try:
        a = as_lonlat_array(coords)
    except ValueError as e:
        raise ParseError(str(e)) from e
    if not np.all(np.isfinite(a)):
        raise ParseError("coordinates must be finite numbers")
    out = a.copy()
    mask = projected_mask(a, threshold)
    if mask.any():
        if projector is None:
            x, y = a[mask][0]
            raise ConfigurationError(
                f"coordinate ({x}, {y}) looks projected but no projection is configured"
            )
        lon, lat = projector.to_geographic(a[mask, 0], a[mask, 1])
        out[mask, 0] = lon
        out[mask, 1] = lat
    bad = (np.abs(out[:, 0]) > 180.0) | (np.abs(out[:, 1]) > 90.0)
    if bad.any():
        x, y = a[bad][0]
        raise ParseError(f"coordinate ({x}, {y}) is neither geographic nor projected")
    return out
