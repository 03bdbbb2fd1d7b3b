from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import numpy as np


LINE_KINDS = ("LineString", "MultiLineString")

WGS84_LONLAT = "+proj=longlat +datum=WGS84 +no_defs"


def _readonly(a: np.ndarray) -> np.ndarray:
    a = np.array(a, dtype=float, copy=True)
    a.setflags(write=False)
    return a


@dataclass(frozen=True, slots=True)
class GeoPoint:
    """
    Geographic position, WGS84 degrees.

    Attributes:
        longitude: [-180, 180]
        latitude: [-90, 90]
    """
    longitude: float
    latitude: float

    def __post_init__(self) -> None:
        lon = float(self.longitude)
        lat = float(self.latitude)
        if not (-180.0 <= lon <= 180.0) or not (-90.0 <= lat <= 90.0):
            raise ValueError(f"lon/lat out of range: ({lon}, {lat})")
        object.__setattr__(self, "longitude", lon)
        object.__setattr__(self, "latitude", lat)

    def as_tuple(self) -> Tuple[float, float]:
        return (self.longitude, self.latitude)


@dataclass(frozen=True, slots=True)
class ProjectedPoint:
    """Planar coordinate in a projection's native units (typically metres)."""
    x: float
    y: float

    def as_tuple(self) -> Tuple[float, float]:
        return (float(self.x), float(self.y))


@dataclass(frozen=True, slots=True)
class ProjectionDefinition:
    """
    Named planar CRS plus the fixed geographic target.

    `definition` is anything pyproj accepts: a PROJ string, "EPSG:xxxx" or WKT.
    """
    name: str
    definition: str
    target: str = WGS84_LONLAT


@dataclass(frozen=True, slots=True, eq=False)
class LineFeature:
    """
    One polyline. `coords` is an (N, 2) read-only float array, either
    lon/lat (after normalization) or planar x/y (before).
    """
    coords: np.ndarray
    kind: str = "LineString"
    properties: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        a = np.asarray(self.coords, dtype=float)
        if a.size == 0:
            a = a.reshape(0, 2)
        if a.ndim != 2 or a.shape[1] < 2:
            raise ValueError("coords must be an (N, 2) array")
        object.__setattr__(self, "coords", _readonly(a[:, :2]))

    @property
    def is_line(self) -> bool:
        return self.kind in LINE_KINDS

    def __len__(self) -> int:
        return int(self.coords.shape[0])


@dataclass(frozen=True, slots=True)
class GeographicExtent:
    """
    Lon/lat bounding rectangle.

    The empty extent uses +/-inf sentinels (min=+inf, max=-inf); callers must
    check `is_empty` before reading it as a rectangle.
    """
    min_lon: float
    max_lon: float
    min_lat: float
    max_lat: float

    @classmethod
    def empty(cls) -> "GeographicExtent":
        return cls(math.inf, -math.inf, math.inf, -math.inf)

    @classmethod
    def from_coords(cls, coords: np.ndarray) -> "GeographicExtent":
        a = np.asarray(coords, dtype=float)
        if a.size == 0:
            return cls.empty()
        return cls(
            float(a[:, 0].min()),
            float(a[:, 0].max()),
            float(a[:, 1].min()),
            float(a[:, 1].max()),
        )

    @property
    def is_empty(self) -> bool:
        return self.min_lon > self.max_lon or self.min_lat > self.max_lat

    @property
    def lon_range(self) -> float:
        return 0.0 if self.is_empty else self.max_lon - self.min_lon

    @property
    def lat_range(self) -> float:
        return 0.0 if self.is_empty else self.max_lat - self.min_lat

    @property
    def centroid(self) -> GeoPoint:
        if self.is_empty:
            raise ValueError("empty extent has no centroid")
        return GeoPoint(
            0.5 * (self.min_lon + self.max_lon),
            0.5 * (self.min_lat + self.max_lat),
        )

    def union(self, other: "GeographicExtent") -> "GeographicExtent":
        return GeographicExtent(
            min(self.min_lon, other.min_lon),
            max(self.max_lon, other.max_lon),
            min(self.min_lat, other.min_lat),
            max(self.max_lat, other.max_lat),
        )

    def include(self, lon: float, lat: float) -> "GeographicExtent":
        """New extent grown to cover (lon, lat)."""
        return self.union(GeographicExtent(lon, lon, lat, lat))

    def contains(self, lon: float, lat: float) -> bool:
        return (self.min_lon <= lon <= self.max_lon) and (self.min_lat <= lat <= self.max_lat)

    def to_dict(self) -> Dict[str, float]:
        return {
            "min_lon": self.min_lon,
            "max_lon": self.max_lon,
            "min_lat": self.min_lat,
            "max_lat": self.max_lat,
        }


# The scene frame's zero point is just a geographic position.
SceneOrigin = GeoPoint


@dataclass(frozen=True, slots=True)
class ScenePoint:
    x: float
    y: float
    z: float = 0.0

    def as_tuple(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.z)


@dataclass(frozen=True, slots=True)
class TileCoordinate:
    """Slippy-map tile index; x, y in [0, 2**zoom)."""
    zoom: int
    x: int
    y: int

    def __post_init__(self) -> None:
        if not (0 <= self.zoom <= 30):
            raise ValueError(f"zoom out of range: {self.zoom}")
        n = 1 << self.zoom
        if not (0 <= self.x < n) or not (0 <= self.y < n):
            raise ValueError(f"tile index out of range at z{self.zoom}: ({self.x}, {self.y})")

    @property
    def zxy(self) -> Tuple[int, int, int]:
        return (self.zoom, self.x, self.y)


@dataclass(frozen=True, slots=True)
class TilePlacement:
    """
    Everything needed to place one raster tile mesh in the scene.

    Attributes:
        column, row: unwrapped grid indices (may fall outside the world).
        dx, dy: offsets from the center tile.
        tile: the fetchable tile (column wrapped), or None when the row lies
            outside [0, 2**zoom) and the mesh stays blank.
        geographic_bounds: footprint computed from the unwrapped indices.
        scene_center: mesh center in scene units.
        scene_size: (width, height) in scene units.
        url: deferred raster fetch request, or None if not fetchable.
    """
    zoom: int
    column: int
    row: int
    dx: int
    dy: int
    tile: Optional[TileCoordinate]
    geographic_bounds: GeographicExtent
    scene_center: ScenePoint
    scene_size: Tuple[float, float]
    url: Optional[str] = None

    @property
    def fetchable(self) -> bool:
        return self.tile is not None and self.url is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "zoom": self.zoom,
            "column": self.column,
            "row": self.row,
            "dx": self.dx,
            "dy": self.dy,
            "tile": None if self.tile is None else list(self.tile.zxy),
            "bounds": self.geographic_bounds.to_dict(),
            "center": list(self.scene_center.as_tuple()),
            "size": list(self.scene_size),
            "url": self.url,
        }


@dataclass(frozen=True, slots=True, eq=False)
class SceneLine:
    """Scene-ready polyline: (N, 3) read-only array of scene coordinates."""
    points: np.ndarray
    feature_index: int = 0
    properties: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        a = np.asarray(self.points, dtype=float)
        if a.ndim != 2 or a.shape[1] != 3:
            raise ValueError("points must be an (N, 3) array")
        object.__setattr__(self, "points", _readonly(a))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "feature": self.feature_index,
            "points": self.points.tolist(),
            "properties": dict(self.properties),
        }


@dataclass(frozen=True, slots=True)
class CameraPose:
    position: Tuple[float, float, float]
    target: Tuple[float, float, float]
    near: float = 0.1
    far: float = 1000.0

    def with_far(self, far: float) -> "CameraPose":
        return CameraPose(self.position, self.target, self.near, float(far))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position": list(self.position),
            "target": list(self.target),
            "near": self.near,
            "far": self.far,
        }


@dataclass(frozen=True, slots=True, eq=False)
class ComposedFrame:
    """Output of one composition: lines, tile placements and camera framing."""
    lines: Tuple[SceneLine, ...]
    tiles: Tuple[TilePlacement, ...]
    camera: CameraPose
    origin: GeoPoint
    extent: GeographicExtent
    zoom: int
    center_tile: Tuple[int, int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "origin": {"lon": self.origin.longitude, "lat": self.origin.latitude},
            "extent": self.extent.to_dict(),
            "zoom": self.zoom,
            "center_tile": list(self.center_tile),
            "camera": self.camera.to_dict(),
            "lines": [ln.to_dict() for ln in self.lines],
            "tiles": [t.to_dict() for t in self.tiles],
        }
