from __future__ import annotations

import math

from common.types import GeographicExtent


# Web Mercator is undefined at the poles; tiles stop at this latitude.
MERCATOR_MAX_LAT = 85.0511287798066


# -------------------------
# Web Mercator tile math (slippy-map scheme)
# -------------------------
def clamp_mercator_lat(lat: float) -> float:
    return max(-MERCATOR_MAX_LAT, min(MERCATOR_MAX_LAT, float(lat)))


def lon_to_tile_x(lon: float, zoom: int) -> int:
    """Column index of the tile containing `lon` (no wrapping)."""
    n = 2 ** int(zoom)
    return int(math.floor((float(lon) + 180.0) / 360.0 * n))


def lat_to_tile_y(lat: float, zoom: int) -> int:
    """
    Row index of the tile containing `lat`:
        floor((1 - ln(tan(phi) + 1/cos(phi)) / pi) / 2 * 2**zoom)
    Latitude is clamped to the Web Mercator limit first.
    """
    n = 2 ** int(zoom)
    phi = math.radians(clamp_mercator_lat(lat))
    return int(math.floor((1.0 - math.log(math.tan(phi) + 1.0 / math.cos(phi)) / math.pi) / 2.0 * n))


def tile_x_to_lon(x: float, zoom: int) -> float:
    """West edge longitude of column `x` (fractional columns allowed)."""
    n = 2 ** int(zoom)
    return float(x) / n * 360.0 - 180.0


def tile_y_to_lat(y: float, zoom: int) -> float:
    """North edge latitude of row `y` (fractional rows allowed)."""
    n = 2 ** int(zoom)
    return math.degrees(math.atan(math.sinh(math.pi * (1.0 - 2.0 * float(y) / n))))


def tile_bounds(x: int, y: int, zoom: int) -> GeographicExtent:
    """
    Geographic footprint of tile (x, y) at `zoom`.

    Indices are not range checked: columns/rows beyond the world give
    arithmetically continued bounds (longitudes past +/-180).
    """
    return GeographicExtent(
        min_lon=tile_x_to_lon(x, zoom),
        max_lon=tile_x_to_lon(x + 1, zoom),
        min_lat=tile_y_to_lat(y + 1, zoom),
        max_lat=tile_y_to_lat(y, zoom),
    )


def wrap_tile_x(x: int, zoom: int) -> int:
    """Wrap a column index across the antimeridian into [0, 2**zoom)."""
    return int(x) % (2 ** int(zoom))


def row_in_world(y: int, zoom: int) -> bool:
    return 0 <= int(y) < 2 ** int(zoom)

