"""
Overlay Dashboard (Streamlit)

- Loads a line document (path or URL) and composes it with the configured
  projection
- Shows KPIs: zoom, center tile, line/vertex counts, extent size
- Renders the scene frame in a pydeck OrbitView: tile grid as BitmapLayers
  (images straight from the tile endpoint) and lines as a PathLayer

Run:
    streamlit run dashboard/app.py
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

import numpy as np
import pydeck as pdk
import streamlit as st

from common.errors import CompositorError
from common.types import ComposedFrame, GeoPoint
from compositor import geojson
from compositor.composer import Composer
from compositor.config import load_config


# -------------------------
# Config
# -------------------------
GEOJSON_DEFAULT = "data/sample_contours.geojson"
LINE_COLOR = [255, 0, 0, 230]


# -------------------------
# Helpers
# -------------------------
def path_rows(frame: ComposedFrame) -> List[Dict[str, Any]]:
    return [
        {"path": ln.points.tolist(), "feature": ln.feature_index, "n": int(len(ln.points))}
        for ln in frame.lines
    ]


def tile_layers(frame: ComposedFrame) -> List[pdk.Layer]:
    layers = []
    for t in frame.tiles:
        if not t.url:
            continue
        cx, cy, _ = t.scene_center.as_tuple()
        w, h = t.scene_size
        layers.append(
            pdk.Layer(
                "BitmapLayer",
                id=f"tile-{t.dx}-{t.dy}",
                image=t.url,
                bounds=[cx - w / 2.0, cy - h / 2.0, cx + w / 2.0, cy + h / 2.0],
                opacity=1.0,
            )
        )
    return layers


def orbit_zoom(frame: ComposedFrame, viewport_px: float = 900.0) -> float:
    """OrbitView zoom so the line bounds roughly fill the viewport."""
    pts = np.vstack([ln.points for ln in frame.lines])
    span = float(max(np.ptp(pts[:, 0]), np.ptp(pts[:, 1]), 1.0))
    return float(np.log2(viewport_px / span))


# -------------------------
# UI
# -------------------------
st.set_page_config(page_title="Overlay Dashboard", layout="wide")
st.title("Overlay Compositor: Lines + Tile Grid")

cfg = load_config()

with st.sidebar:
    st.subheader("Data Sources")
    source = st.text_input("Line document (path or URL)", GEOJSON_DEFAULT)
    names = ["(active)"] + sorted(cfg.projections)
    projection = st.selectbox("Projection for planar input", names)
    use_origin = st.checkbox("External origin (e.g. point cloud centre)")
    o_lon = st.number_input("Origin lon", value=127.68, format="%.6f", disabled=not use_origin)
    o_lat = st.number_input("Origin lat", value=26.21, format="%.6f", disabled=not use_origin)
    show_tiles = st.checkbox("Show basemap tiles", value=True)
    st.button("Reload")

if not source or (not source.startswith(("http://", "https://")) and not Path(source).exists()):
    st.warning("Point the sidebar at a GeoJSON line document to get started.")
    st.stop()

try:
    composer = Composer.from_config(cfg, None if projection == "(active)" else projection)
    origin = GeoPoint(o_lon, o_lat) if use_origin else None
    frame = composer.compose(geojson.load(source, timeout=cfg.tiles.timeout_s), origin)
except CompositorError as e:
    st.error(f"{type(e).__name__}: {e}")
    st.stop()

# KPI row
ext = frame.extent
k1, k2, k3, k4, k5 = st.columns(5)
k1.metric("Zoom", f"{frame.zoom}")
k2.metric("Center tile", f"{frame.center_tile[0]}/{frame.center_tile[1]}")
k3.metric("Lines", f"{len(frame.lines)}")
k4.metric("Vertices", f"{sum(len(ln.points) for ln in frame.lines)}")
k5.metric("Extent (deg)", f"{ext.lon_range:.3f} x {ext.lat_range:.3f}")

layers = tile_layers(frame) if show_tiles else []
layers.append(
    pdk.Layer(
        "PathLayer",
        data=path_rows(frame),
        get_path="path",
        get_color=LINE_COLOR,
        width_min_pixels=1,
        pickable=True,
    )
)

cam = frame.camera
st.pydeck_chart(
    pdk.Deck(
        views=[pdk.View(type="OrbitView", controller=True)],
        map_style=None,
        initial_view_state=pdk.ViewState(
            target=list(cam.target),
            zoom=orbit_zoom(frame),
            rotation_orbit=0,
            rotation_x=90,
        ),
        layers=layers,
        tooltip={"text": "feature {feature} ({n} vertices)"},
    )
)

st.subheader("Tile grid")
st.dataframe(
    [
        {"dx": t.dx, "dy": t.dy, "tile": None if t.tile is None else "/".join(map(str, t.tile.zxy)), "url": t.url}
        for t in frame.tiles
    ],
    use_container_width=True,
    height=300,
)
st.caption(
    f"Origin: {frame.origin.longitude:.6f}, {frame.origin.latitude:.6f} · "
    f"Camera: {tuple(round(v, 1) for v in cam.position)} · far {cam.far:.0f}"
)
