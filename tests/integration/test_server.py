"""
Integration tests for the overlay HTTP API (compose + tile proxy)
"""

import json

import pytest
import requests
from fastapi.testclient import TestClient
from unittest.mock import Mock, patch
import os
import sys

# Add the project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from common.errors import TileFetchError
from compositor.config import OverlayConfig
from imagery.server import create_app

ZONE15 = "+proj=tmerc +lat_0=26 +lon_0=127.5 +k=0.9999 +x_0=0 +y_0=0 +ellps=GRS80 +units=m +no_defs"

DOCUMENT = {
    "type": "FeatureCollection",
    "features": [
        {
            "type": "Feature",
            "properties": {"elevation": 10},
            "geometry": {"type": "LineString", "coordinates": [[127.60, 26.15], [127.68, 26.21], [127.76, 26.27]]},
        },
        {
            "type": "Feature",
            "properties": {"elevation": 20},
            "geometry": {"type": "LineString", "coordinates": [[17000.0, 22000.0], [17500.0, 22600.0]]},
        },
    ],
}


def _fetcher(data=b"\x89PNG fake", error=None):
    fetcher = Mock()
    fetcher.cache = None
    if error is not None:
        fetcher.fetch_bytes.side_effect = error
    else:
        fetcher.fetch_bytes.return_value = data
    return fetcher


def _client(fetcher=None, projections=True):
    D = {"projections": {"active": "z15", "definitions": {"z15": ZONE15}}} if projections else {}
    return TestClient(create_app(OverlayConfig.from_dict(D), fetcher=fetcher or _fetcher()))


class TestHealth:
    def test_health(self):
        r = _client().get("/health")
        assert r.status_code == 200
        body = r.json()
        assert body["status"] == "ok"
        assert body["projection"] == "z15"
        assert body["projections"] == ["z15"]
        assert body["cache"] is None


class TestCompose:
    """POST/GET /compose"""

    def test_post_document(self):
        r = _client().post("/compose", json=DOCUMENT)
        assert r.status_code == 200
        body = r.json()
        assert len(body["lines"]) == 2
        assert len(body["tiles"]) == 25
        assert body["zoom"] == 13
        assert body["center_tile"] == [body["tiles"][12]["column"], body["tiles"][12]["row"]]
        assert body["camera"]["position"][2] > 0

    def test_post_with_origin(self):
        r = _client().post("/compose", params={"origin_lon": 127.5, "origin_lat": 26.0}, json=DOCUMENT)
        assert r.status_code == 200
        assert r.json()["origin"] == {"lon": 127.5, "lat": 26.0}

    def test_half_origin_rejected(self):
        r = _client().post("/compose", params={"origin_lon": 127.5}, json=DOCUMENT)
        assert r.status_code == 400

    def test_empty_geometry(self):
        r = _client().post("/compose", json={"type": "FeatureCollection", "features": []})
        assert r.status_code == 422
        assert r.json()["detail"].startswith("empty_geometry")

    def test_malformed_document(self):
        r = _client().post("/compose", json={"features": []})
        assert r.status_code == 400

    def test_projected_input_without_projection(self):
        r = _client(projections=False).post("/compose", json=DOCUMENT)
        assert r.status_code == 500
        assert r.json()["detail"].startswith("configuration_error")

    def test_unknown_projection(self):
        r = _client().post("/compose", params={"projection": "nope"}, json=DOCUMENT)
        assert r.status_code == 500

    @patch("compositor.geojson.requests.get")
    def test_get_by_url(self, mock_get):
        mock_get.return_value = Mock(status_code=200, content=json.dumps(DOCUMENT).encode("utf-8"))
        r = _client().get("/compose", params={"url": "https://example.com/lines.geojson"})
        assert r.status_code == 200
        assert len(r.json()["tiles"]) == 25

    @patch("compositor.geojson.requests.get")
    def test_get_by_url_fetch_failure(self, mock_get):
        mock_get.side_effect = requests.ConnectionError("refused")
        r = _client().get("/compose", params={"url": "https://example.com/lines.geojson"})
        assert r.status_code == 502
        assert r.json()["error"] == "document_fetch_failed"

    def test_get_rejects_non_http(self):
        r = _client().get("/compose", params={"url": "file:///etc/passwd"})
        assert r.status_code == 400


class TestTileProxy:
    """GET /tiles/{z}/{x}/{y}.png"""

    def test_tile(self):
        fetcher = _fetcher()
        r = _client(fetcher).get("/tiles/13/7000/3500.png")
        assert r.status_code == 200
        assert r.content == b"\x89PNG fake"
        assert r.headers["content-type"] == "image/png"
        assert r.headers["X-Tile-Z"] == "13"
        bounds = json.loads(r.headers["X-Tile-Bounds"])
        assert bounds["min_lon"] < bounds["max_lon"]
        tile = fetcher.fetch_bytes.call_args[0][0]
        assert tile.zxy == (13, 7000, 3500)

    def test_out_of_range(self):
        fetcher = _fetcher()
        r = _client(fetcher).get("/tiles/13/8192/0.png")
        assert r.status_code == 404
        fetcher.fetch_bytes.assert_not_called()

    def test_upstream_failure(self):
        r = _client(_fetcher(error=TileFetchError("HTTP 503"))).get("/tiles/13/7000/3500.png")
        assert r.status_code == 502
        assert r.json()["error"] == "tile_fetch_failed"
