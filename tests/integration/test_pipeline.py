"""
Integration tests for the command-line composition pipeline
"""

import json

import pytest
from unittest.mock import patch
import os
import sys

# Add the project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from compositor import pipeline

ZONE15 = "+proj=tmerc +lat_0=26 +lon_0=127.5 +k=0.9999 +x_0=0 +y_0=0 +ellps=GRS80 +units=m +no_defs"


@pytest.fixture
def config_path(tmp_path):
    p = tmp_path / "params.yaml"
    p.write_text(
        "projections:\n"
        "  active: z15\n"
        "  definitions:\n"
        f"    z15: \"{ZONE15}\"\n"
        "tiles:\n"
        "  radius: 1\n",
        encoding="utf-8",
    )
    return str(p)


def _write(tmp_path, doc, name="lines.geojson"):
    p = tmp_path / name
    p.write_text(json.dumps(doc), encoding="utf-8")
    return str(p)


class TestPipeline:
    def test_writes_frame(self, tmp_path, config_path):
        src = _write(tmp_path, {
            "type": "FeatureCollection",
            "features": [
                {"type": "Feature", "properties": {},
                 "geometry": {"type": "LineString", "coordinates": [[127.60, 26.15], [127.76, 26.27]]}},
                {"type": "Feature", "properties": {},
                 "geometry": {"type": "LineString", "coordinates": [[17000.0, 22000.0], [18200.0, 23100.0]]}},
            ],
        })
        out = tmp_path / "out" / "frame.json"
        rc = pipeline.main(["--config", config_path, "--geojson", src, "--out", str(out)])
        assert rc == 0
        frame = json.loads(out.read_text())
        assert len(frame["lines"]) == 2
        assert len(frame["tiles"]) == 9
        assert frame["zoom"] == 13

    def test_external_origin(self, tmp_path, config_path):
        src = _write(tmp_path, {"type": "LineString", "coordinates": [[127.60, 26.15], [127.76, 26.27]]})
        out = tmp_path / "frame.json"
        rc = pipeline.main(["--config", config_path, "--geojson", src, "--origin", "127.5,26.0", "--out", str(out)])
        assert rc == 0
        assert json.loads(out.read_text())["origin"] == {"lon": 127.5, "lat": 26.0}

    def test_empty_document_fails(self, tmp_path, config_path):
        src = _write(tmp_path, {"type": "FeatureCollection", "features": []})
        out = tmp_path / "frame.json"
        assert pipeline.main(["--config", config_path, "--geojson", src, "--out", str(out)]) == 2
        assert not out.exists()

    def test_missing_document_fails(self, tmp_path, config_path):
        assert pipeline.main(["--config", config_path, "--geojson", str(tmp_path / "nope.geojson")]) == 2

    def test_missing_config_fails(self, tmp_path):
        src = _write(tmp_path, {"type": "LineString", "coordinates": [[127.6, 26.1], [127.7, 26.2]]})
        assert pipeline.main(["--config", str(tmp_path / "nope.yaml"), "--geojson", src]) == 2

    @patch("imagery.fetcher.TileFetcher.fetch")
    def test_fetch_reports_imagery(self, mock_fetch, tmp_path, config_path):
        import numpy as np

        mock_fetch.return_value = np.zeros((4, 4, 3), dtype=np.uint8)
        src = _write(tmp_path, {"type": "LineString", "coordinates": [[127.60, 26.15], [127.76, 26.27]]})
        out = tmp_path / "frame.json"
        rc = pipeline.main(["--config", config_path, "--geojson", src, "--out", str(out), "--fetch",
                            "--fetch-timeout", "10"])
        assert rc == 0
        imagery = json.loads(out.read_text())["imagery"]
        assert imagery == {"requested": 9, "applied": 9, "blank": 0, "complete": True}
