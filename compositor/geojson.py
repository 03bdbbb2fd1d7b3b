from __future__ import annotations

"""
Line-collection document reader.

Accepts a GeoJSON FeatureCollection, a single Feature, or a bare geometry.
LineString features become one LineFeature; MultiLineString parts become one
LineFeature each. Other geometry kinds are skipped (counted in the log).
"""

import json
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

import numpy as np
import requests

from common.errors import DocumentFetchError, ParseError
from common.logging_setup import get_logger
from common.types import LineFeature


log = get_logger("compositor.geojson")

Document = Union[str, bytes, Dict[str, Any]]


def _coords_array(raw: Any, where: str) -> np.ndarray:
    try:
        a = np.asarray(raw, dtype=float)
    except (TypeError, ValueError) as e:
        raise ParseError(f"{where}: coordinates are not numeric") from e
    if a.size == 0:
        return np.zeros((0, 2), dtype=float)
    if a.ndim != 2 or a.shape[1] < 2:
        raise ParseError(f"{where}: expected a list of [x, y] positions")
    if not np.all(np.isfinite(a[:, :2])):
        raise ParseError(f"{where}: coordinates must be finite")
    return a[:, :2]


def _iter_geometries(doc: Dict[str, Any]) -> Iterator[Tuple[Optional[Dict[str, Any]], Dict[str, Any]]]:
    kind = doc.get("type")
    if kind == "FeatureCollection":
        feats = doc.get("features")
        if not isinstance(feats, list):
            raise ParseError("FeatureCollection without a 'features' list")
        for i, f in enumerate(feats):
            if not isinstance(f, dict):
                raise ParseError(f"feature {i} is not an object")
            yield f.get("geometry"), (f.get("properties") or {})
    elif kind == "Feature":
        yield doc.get("geometry"), (doc.get("properties") or {})
    elif isinstance(kind, str):
        yield doc, {}
    else:
        raise ParseError("document has no GeoJSON 'type'")


def parse_features(doc: Dict[str, Any]) -> List[LineFeature]:
    """Extract line features from an already-decoded GeoJSON object."""
    if not isinstance(doc, dict):
        raise ParseError("document root must be a JSON object")
    out: List[LineFeature] = []
    skipped: Dict[str, int] = {}
    for i, (geom, props) in enumerate(_iter_geometries(doc)):
        if geom is None:
            skipped["null"] = skipped.get("null", 0) + 1
            continue
        if not isinstance(geom, dict):
            raise ParseError(f"feature {i}: geometry is not an object")
        kind = geom.get("type")
        coords = geom.get("coordinates")
        if kind == "LineString":
            out.append(LineFeature(_coords_array(coords, f"feature {i}"), "LineString", dict(props)))
        elif kind == "MultiLineString":
            if not isinstance(coords, list):
                raise ParseError(f"feature {i}: MultiLineString needs a list of lines")
            for j, part in enumerate(coords):
                out.append(
                    LineFeature(_coords_array(part, f"feature {i} part {j}"), "LineString", dict(props))
                )
        else:
            skipped[str(kind)] = skipped.get(str(kind), 0) + 1
    if skipped:
        log.debug("Skipped non-line geometries", extra={"extra": {"skipped": skipped}})
    return out


def loads(data: Union[str, bytes]) -> List[LineFeature]:
    try:
        doc = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ParseError(f"invalid JSON: {e}") from e
    return parse_features(doc)


def load(source: Union[str, Path], timeout: float = 10.0, session: Optional[requests.Session] = None) -> List[LineFeature]:
    """
    Read a document from a local path or an http(s) URL.
    The whole document is fetched before parsing.
    """
    s = str(source)
    if s.startswith(("http://", "https://")):
        http = session or requests
        try:
            r = http.get(s, timeout=timeout)
        except requests.RequestException as e:
            raise DocumentFetchError(f"cannot fetch {s}: {e}") from e
        if r.status_code != 200:
            raise DocumentFetchError(f"cannot fetch {s}: HTTP {r.status_code}")
        return loads(r.content)
    p = Path(s)
    try:
        data = p.read_bytes()
    except OSError as e:
        raise DocumentFetchError(f"cannot read {p}: {e}") from e
    return loads(data)


def read_document(doc: Document) -> List[LineFeature]:
    """Dispatch on input type: decoded dict, JSON text/bytes."""
    if isinstance(doc, dict):
        return parse_features(doc)
    return loads(doc)
