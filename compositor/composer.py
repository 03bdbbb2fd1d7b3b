from __future__ import annotations

"""
Frame composition: raw line features -> scene-ready lines, tile grid, camera.

    normalize vertices -> aggregate extent -> choose origin
      -> map lines to scene -> plan tiles -> derive camera

Composition is pure: inputs are not mutated, the returned ComposedFrame is a
new set of values, and any error leaves the caller's scene untouched because
nothing has been handed to a renderer yet.
"""

import math
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from common.errors import EmptyGeometryError
from common.logging_setup import get_logger
from common.types import (
    CameraPose,
    ComposedFrame,
    GeoPoint,
    LineFeature,
    SceneLine,
    TilePlacement,
)
from compositor.classify import Projector, normalize_coords
from compositor.config import OverlayConfig
from compositor.extent import aggregate
from compositor.scene import to_scene_array
from compositor.tiles import grid_extent, plan


log = get_logger("compositor")


def normalize_features(
    features: Iterable[LineFeature],
    projector: Optional[Projector] = None,
    threshold: float = 1000.0,
) -> List[LineFeature]:
    """New lon/lat LineFeatures for every line-kind input feature."""
    out: List[LineFeature] = []
    for f in features:
        if not f.is_line:
            continue
        out.append(LineFeature(normalize_coords(f.coords, projector, threshold), f.kind, dict(f.properties)))
    return out


def _scene_bounds(lines: Sequence[SceneLine]) -> Tuple[float, float, float, float]:
    pts = [ln.points for ln in lines if len(ln.points)]
    allp = np.vstack(pts)
    return (
        float(allp[:, 0].min()),
        float(allp[:, 0].max()),
        float(allp[:, 1].min()),
        float(allp[:, 1].max()),
    )


def _far_to_cover(position: Tuple[float, float, float], tiles: Sequence[TilePlacement], floor: float) -> float:
    """Distance from the camera to the furthest tile corner (at least `floor`)."""
    px, py, pz = position
    far = float(floor)
    for t in tiles:
        cx, cy, cz = t.scene_center.as_tuple()
        hw, hh = 0.5 * t.scene_size[0], 0.5 * t.scene_size[1]
        for sx in (-1.0, 1.0):
            for sy in (-1.0, 1.0):
                d = math.sqrt((cx + sx * hw - px) ** 2 + (cy + sy * hh - py) ** 2 + (cz - pz) ** 2)
                far = max(far, d)
    return far


def frame_camera(
    lines: Sequence[SceneLine],
    tiles: Sequence[TilePlacement],
    height_factor: float = 0.5,
    near: float = 0.1,
    far_min: float = 1000.0,
) -> CameraPose:
    """
    Look straight down at the centre of the lines' scene-space bounds from
    height_factor * max(width, height); far plane reaches every tile corner.
    """
    min_x, max_x, min_y, max_y = _scene_bounds(lines)
    cx, cy = 0.5 * (min_x + max_x), 0.5 * (min_y + max_y)
    height = max(max_x - min_x, max_y - min_y) * height_factor
    if height <= near:
        height = max(1.0, 10.0 * near)  # degenerate (single point) data
    position = (cx, cy, height)
    far = _far_to_cover(position, tiles, floor=far_min)
    return CameraPose(position=position, target=(cx, cy, 0.0), near=near, far=far)


def extend_camera(camera: CameraPose, tiles: Sequence[TilePlacement]) -> CameraPose:
    """Keep position/target, grow only the far plane to include `tiles`."""
    far = _far_to_cover(camera.position, tiles, floor=camera.far)
    return camera if far == camera.far else camera.with_far(far)


def compose(
    features: Iterable[LineFeature],
    projector: Optional[Projector] = None,
    external_origin: Optional[GeoPoint] = None,
    *,
    camera: Optional[CameraPose] = None,
    config: Optional[OverlayConfig] = None,
) -> ComposedFrame:
    """
    Compose one frame.

    Params:
        features: raw LineFeatures (lon/lat, planar, or mixed).
        projector: converts planar vertices; required only if some are planar.
        external_origin: shared scene origin (e.g. a point cloud's geographic
            centre). Defaults to the extent centroid.
        camera: current camera. Kept (far plane extended) when
            `external_origin` is given, so overlaying onto an already framed
            scene does not move the view.

    Raises:
        EmptyGeometryError: no line vertices after filtering.
        ConfigurationError / ParseError: from normalization.
    """
    cfg = config or OverlayConfig()
    S, T = cfg.scene, cfg.tiles

    normalized = normalize_features(features, projector, cfg.threshold)
    extent = aggregate(normalized)
    if extent.is_empty:
        raise EmptyGeometryError("no supported line geometry found")

    centroid = extent.centroid
    origin = external_origin if external_origin is not None else centroid

    lines = tuple(
        SceneLine(to_scene_array(f.coords, origin, S.line_z, S.scale), i, f.properties)
        for i, f in enumerate(normalized)
        if len(f)
    )

    tiles = plan(
        centroid,
        extent,
        T.radius,
        origin=origin,
        url_template=T.url_template,
        z=S.tile_z,
        scale=S.scale,
        min_zoom=T.min_zoom,
        max_zoom=T.max_zoom,
        bias=T.zoom_bias,
        min_span=T.min_span_deg,
    )
    zoom = tiles[0].zoom
    center = tiles[len(tiles) // 2]

    if external_origin is not None and camera is not None:
        pose = extend_camera(camera, tiles)
    else:
        pose = frame_camera(lines, tiles, S.camera_height_factor, S.camera_near, S.camera_far_min)

    log.info(
        "Composed frame",
        extra={
            "extra": {
                "lines": len(lines),
                "vertices": int(sum(len(ln.points) for ln in lines)),
                "extent": extent.to_dict(),
                "origin": origin.as_tuple(),
                "zoom": zoom,
                "center_tile": (center.column, center.row),
                "grid": grid_extent(tiles).to_dict(),
            }
        },
    )
    return ComposedFrame(
        lines=lines,
        tiles=tiles,
        camera=pose,
        origin=origin,
        extent=extent,
        zoom=zoom,
        center_tile=(center.column, center.row),
    )


class Composer:
    """
    Repeated composition with a fixed config and projector.

        composer = Composer.from_config(load_config())
        frame = composer.compose(features)
    """

    def __init__(self, config: Optional[OverlayConfig] = None, projector: Optional[Projector] = None):
        self.config = config or OverlayConfig()
        self.projector = projector

    @classmethod
    def from_config(cls, config: OverlayConfig, projection: Optional[str] = None) -> "Composer":
        definition = config.projection(projection)
        projector = Projector(definition) if definition is not None else None
        return cls(config, projector)

    def compose(
        self,
        features: Iterable[LineFeature],
        external_origin: Optional[GeoPoint] = None,
        camera: Optional[CameraPose] = None,
    ) -> ComposedFrame:
        return compose(features, self.projector, external_origin, camera=camera, config=self.config)
