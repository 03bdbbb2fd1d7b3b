from __future__ import annotations

"""
Tile grid planning.

Picks a zoom from the data extent, finds the Web Mercator tile under the
extent center, and lays out a (2r+1) x (2r+1) neighbourhood of tiles in the
same scene frame as the line overlay.

Out-of-world indices:
  - columns wrap modulo 2**zoom for the fetch request (slippy-map behaviour),
    while the mesh is placed from the unwrapped column so the grid stays
    contiguous across the antimeridian;
  - rows outside [0, 2**zoom) are placed arithmetically but get no tile and
    no URL, so they stay blank.
"""

import math
from typing import List, Optional, Tuple

from common.geo import (
    lat_to_tile_y,
    lon_to_tile_x,
    row_in_world,
    tile_bounds,
    wrap_tile_x,
)
from common.types import GeographicExtent, GeoPoint, ScenePoint, TileCoordinate, TilePlacement
from common.utils import clamp
from compositor.scene import SCALE, lonlat_to_scene


MIN_ZOOM = 10
MAX_ZOOM = 18
ZOOM_BIAS = 2
MIN_SPAN_DEG = 1e-6


def select_zoom(
    extent: GeographicExtent,
    min_zoom: int = MIN_ZOOM,
    max_zoom: int = MAX_ZOOM,
    bias: int = ZOOM_BIAS,
    min_span: float = MIN_SPAN_DEG,
) -> int:
    """
    zoom = floor(log2(360 / max(latRange, lonRange))) + bias, clamped.

    The span is floored at `min_span` so single-point extents give a finite
    (max) zoom. Larger extents never give a higher zoom.
    """
    if extent.is_empty:
        raise ValueError("cannot select a zoom for an empty extent")
    span = max(extent.lat_range, extent.lon_range, min_span)
    zoom = int(math.floor(math.log2(360.0 / span))) + int(bias)
    return int(clamp(zoom, min_zoom, max_zoom))


def tile_for(point: GeoPoint, zoom: int) -> Tuple[int, int]:
    """(x, y) of the tile containing `point`; x is wrapped into the world."""
    x = wrap_tile_x(lon_to_tile_x(point.longitude, zoom), zoom)
    y = min(lat_to_tile_y(point.latitude, zoom), 2 ** zoom - 1)
    return x, max(y, 0)


def tile_url(template: Optional[str], tile: TileCoordinate) -> Optional[str]:
    """Fill `{z}`/`{zoom}`, `{x}`, `{y}` in a raster endpoint template."""
    if not template:
        return None
    return template.format(z=tile.zoom, zoom=tile.zoom, x=tile.x, y=tile.y)


def place_tile(
    column: int,
    row: int,
    zoom: int,
    origin: GeoPoint,
    *,
    dx: int = 0,
    dy: int = 0,
    z: float = 0.0,
    scale: float = SCALE,
    url_template: Optional[str] = None,
) -> TilePlacement:
    """Placement of one (possibly out-of-world) tile relative to `origin`."""
    b = tile_bounds(column, row, zoom)
    cx, cy = lonlat_to_scene(
        0.5 * (b.min_lon + b.max_lon),
        0.5 * (b.min_lat + b.max_lat),
        origin,
        scale,
    )
    tile: Optional[TileCoordinate] = None
    if row_in_world(row, zoom):
        tile = TileCoordinate(zoom=zoom, x=wrap_tile_x(column, zoom), y=row)
    return TilePlacement(
        zoom=zoom,
        column=column,
        row=row,
        dx=dx,
        dy=dy,
        tile=tile,
        geographic_bounds=b,
        scene_center=ScenePoint(cx, cy, float(z)),
        scene_size=(b.lon_range * scale, b.lat_range * scale),
        url=None if tile is None else tile_url(url_template, tile),
    )


def plan(
    center: GeoPoint,
    extent: GeographicExtent,
    radius: int = 2,
    *,
    origin: Optional[GeoPoint] = None,
    url_template: Optional[str] = None,
    z: float = 0.0,
    scale: float = SCALE,
    min_zoom: int = MIN_ZOOM,
    max_zoom: int = MAX_ZOOM,
    bias: int = ZOOM_BIAS,
    min_span: float = MIN_SPAN_DEG,
) -> Tuple[TilePlacement, ...]:
    """
    Enumerate the tile neighbourhood around `center`.

    Returns (2*radius + 1)**2 placements, row-major: `dy` outer, `dx` inner,
    both from -radius to +radius. Scene positions are relative to `origin`
    (defaults to `center`).
    """
    if radius < 0:
        raise ValueError("radius must be >= 0")
    zoom = select_zoom(extent, min_zoom, max_zoom, bias, min_span)
    # unwrapped column: lon=180 lands in column 2**zoom, east of the data, not at -180
    tx = lon_to_tile_x(center.longitude, zoom)
    _, ty = tile_for(center, zoom)
    ref = origin if origin is not None else center

    out: List[TilePlacement] = []
    for dy in range(-radius, radius + 1):
        for dx in range(-radius, radius + 1):
            out.append(
                place_tile(
                    tx + dx,
                    ty + dy,
                    zoom,
                    ref,
                    dx=dx,
                    dy=dy,
                    z=z,
                    scale=scale,
                    url_template=url_template,
                )
            )
    return tuple(out)


def grid_extent(placements) -> GeographicExtent:
    """Union of the geographic footprints of a placement grid."""
    acc = GeographicExtent.empty()
    for p in placements:
        acc = acc.union(p.geographic_bounds)
    return acc
