from __future__ import annotations

"""
Configuration for the overlay compositor.

Loaded from YAML (default `config/params.yaml`, override with env
OVERLAY_CONFIG). A missing file yields the built-in defaults, which carry no
projection definition: projected input then fails with ConfigurationError
instead of silently picking a region.

Example:
    projections:
      active: jgd2011_zone15
      definitions:
        jgd2011_zone15: "+proj=tmerc +lat_0=26 +lon_0=127.5 +k=0.9999 ..."
    classification:
      threshold: 1000
    scene:
      scale: 100000
    tiles:
      url_template: "https://cyberjapandata.gsi.go.jp/xyz/std/{z}/{x}/{y}.png"
      radius: 2
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from common.errors import ConfigurationError
from common.types import ProjectionDefinition, WGS84_LONLAT


DEFAULT_CONFIG_PATH = "config/params.yaml"
DEFAULT_TILE_URL = "https://cyberjapandata.gsi.go.jp/xyz/std/{z}/{x}/{y}.png"


@dataclass(slots=True)
class SceneSettings:
    scale: float = 100000.0            # scene units per degree
    line_z: float = 0.0
    tile_z: float = -0.01              # basemap sits just below the lines
    camera_height_factor: float = 0.5  # camera height = factor * max(width, height)
    camera_near: float = 0.1
    camera_far_min: float = 1000.0     # far plane never closer than this


@dataclass(slots=True)
class TileSettings:
    url_template: str = DEFAULT_TILE_URL
    radius: int = 2
    min_zoom: int = 10
    max_zoom: int = 18
    zoom_bias: int = 2
    min_span_deg: float = 1e-6         # floor for degenerate (single point) extents
    cache_root: Optional[str] = None
    timeout_s: float = 10.0
    workers: int = 8
    user_agent: str = "overlay-compositor/0.1"


@dataclass(slots=True)
class OverlayConfig:
    projections: Dict[str, ProjectionDefinition] = field(default_factory=dict)
    active_projection: Optional[str] = None
    threshold: float = 1000.0
    scene: SceneSettings = field(default_factory=SceneSettings)
    tiles: TileSettings = field(default_factory=TileSettings)
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_dict(cls, D: Optional[Dict[str, Any]]) -> "OverlayConfig":
        D = D or {}
        if not isinstance(D, dict):
            raise ConfigurationError("config root must be a mapping")

        P = D.get("projections", {}) or {}
        target = str(P.get("target", WGS84_LONLAT))
        defs: Dict[str, ProjectionDefinition] = {}
        for name, definition in (P.get("definitions", {}) or {}).items():
            if not isinstance(definition, str) or not definition.strip():
                raise ConfigurationError(f"projection '{name}' has an empty definition")
            defs[str(name)] = ProjectionDefinition(name=str(name), definition=definition.strip(), target=target)
        active = P.get("active")
        if active is not None and str(active) not in defs:
            raise ConfigurationError(f"active projection '{active}' is not defined")

        S = D.get("scene", {}) or {}
        scene = SceneSettings(
            scale=float(S.get("scale", 100000.0)),
            line_z=float(S.get("line_z", 0.0)),
            tile_z=float(S.get("tile_z", -0.01)),
            camera_height_factor=float(S.get("camera_height_factor", 0.5)),
            camera_near=float(S.get("camera_near", 0.1)),
            camera_far_min=float(S.get("camera_far_min", 1000.0)),
        )
        if scene.scale <= 0:
            raise ConfigurationError("scene.scale must be > 0")
        if scene.camera_far_min <= scene.camera_near:
            raise ConfigurationError("scene.camera_far_min must be > scene.camera_near")

        T = D.get("tiles", {}) or {}
        tiles = TileSettings(
            url_template=str(T.get("url_template", DEFAULT_TILE_URL)),
            radius=int(T.get("radius", 2)),
            min_zoom=int(T.get("min_zoom", 10)),
            max_zoom=int(T.get("max_zoom", 18)),
            zoom_bias=int(T.get("zoom_bias", 2)),
            min_span_deg=float(T.get("min_span_deg", 1e-6)),
            cache_root=T.get("cache_root"),
            timeout_s=float(T.get("timeout_s", 10.0)),
            workers=int(T.get("workers", 8)),
            user_agent=str(T.get("user_agent", "overlay-compositor/0.1")),
        )
        if tiles.radius < 0:
            raise ConfigurationError("tiles.radius must be >= 0")
        if not (0 <= tiles.min_zoom <= tiles.max_zoom <= 30):
            raise ConfigurationError("tiles.min_zoom/max_zoom must satisfy 0 <= min <= max <= 30")
        if tiles.min_span_deg <= 0:
            raise ConfigurationError("tiles.min_span_deg must be > 0")

        L = D.get("logging", {}) or {}
        C = D.get("classification", {}) or {}
        return cls(
            projections=defs,
            active_projection=None if active is None else str(active),
            threshold=float(C.get("threshold", 1000.0)),
            scene=scene,
            tiles=tiles,
            log_level=str(L.get("level", "INFO")),
            log_file=L.get("file"),
        )

    def projection(self, name: Optional[str] = None) -> Optional[ProjectionDefinition]:
        """
        Resolve the projection to use for planar input.

        Explicit `name` wins, then `projections.active`. With several
        definitions and no active one the choice is ambiguous and raises
        ConfigurationError. None means no projection is configured.
        """
        if name is not None:
            if name not in self.projections:
                raise ConfigurationError(f"unknown projection '{name}'")
            return self.projections[name]
        if self.active_projection is not None:
            return self.projections[self.active_projection]
        if len(self.projections) == 1:
            return next(iter(self.projections.values()))
        if self.projections:
            raise ConfigurationError(
                "several projections configured but none selected; set projections.active "
                f"to one of {sorted(self.projections)}"
            )
        return None


def load_config(path: Optional[str] = None) -> OverlayConfig:
    """Read YAML config; missing file -> built-in defaults."""
    p = Path(path or os.environ.get("OVERLAY_CONFIG") or DEFAULT_CONFIG_PATH)
    if not p.exists():
        if path is not None:
            raise ConfigurationError(f"config file not found: {p}")
        return OverlayConfig()
    try:
        with p.open("r", encoding="utf-8") as f:
            D = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"invalid YAML in {p}: {e}") from e
    return OverlayConfig.from_dict(D)
