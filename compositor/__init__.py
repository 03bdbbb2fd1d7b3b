# FILE: compositor/__init__.py
"""
Geospatial overlay compositor

Places vector line overlays and a grid of web map tiles in one local 3D
scene frame:
- classify: planar vs lon/lat detection and pyproj inverse projection
- extent: lon/lat bounding rectangle of line features
- scene: lon/lat -> scene units (1 degree = 100 000 units)
- tiles: zoom selection and the (2r+1)^2 tile neighbourhood
- composer: the whole pipeline, plus camera framing

Entry point:
    python -m compositor.pipeline --config config/params.yaml --geojson cont.geojson
"""
from .composer import Composer, compose

__all__ = ["Composer", "compose"]
