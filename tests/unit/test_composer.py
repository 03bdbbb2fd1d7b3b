"""
Unit tests for the frame composer (System overview steps 1-5 end to end)
"""

import math

import pytest
import numpy as np
import os
import sys

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from common.errors import ConfigurationError, EmptyGeometryError
from common.types import GeoPoint, LineFeature
from compositor.classify import Projector
from compositor.composer import Composer, compose, frame_camera
from compositor.config import OverlayConfig

ZONE15 = "+proj=tmerc +lat_0=26 +lon_0=127.5 +k=0.9999 +x_0=0 +y_0=0 +ellps=GRS80 +units=m +no_defs"


def _okinawa():
    return [
        LineFeature([[127.60, 26.15], [127.68, 26.21], [127.76, 26.27]], properties={"elevation": 10}),
        LineFeature([[127.62, 26.16], [127.70, 26.22]], properties={"elevation": 20}),
    ]


def _corner_distances(frame):
    px, py, pz = frame.camera.position
    for t in frame.tiles:
        cx, cy, cz = t.scene_center.as_tuple()
        w, h = t.scene_size
        for sx in (-0.5, 0.5):
            for sy in (-0.5, 0.5):
                yield math.dist((px, py, pz), (cx + sx * w, cy + sy * h, cz))


class TestCompose:
    """compose() on geographic input"""

    def test_frame_contents(self):
        frame = compose(_okinawa())
        assert len(frame.lines) == 2
        assert len(frame.tiles) == 25
        assert frame.zoom == 13
        assert frame.extent.min_lon == 127.60 and frame.extent.max_lat == 26.27
        assert frame.origin.longitude == pytest.approx(127.68)
        assert frame.origin.latitude == pytest.approx(26.21)
        assert frame.lines[0].properties == {"elevation": 10}

    def test_lines_in_scene_units(self):
        frame = compose(_okinawa())
        pts = frame.lines[0].points
        assert pts.shape == (3, 3)
        assert pts[0, 0] == pytest.approx(-8000.0)
        assert pts[0, 1] == pytest.approx(-6000.0)
        assert pts[1, :2].tolist() == pytest.approx([0.0, 0.0], abs=1e-6)
        assert np.all(pts[:, 2] == 0.0)

    def test_tiles_below_lines(self):
        frame = compose(_okinawa())
        assert all(t.scene_center.z == -0.01 for t in frame.tiles)

    def test_tiles_share_line_origin(self):
        frame = compose(_okinawa())
        center = frame.tiles[12]
        b = center.geographic_bounds
        assert center.scene_center.x == pytest.approx(((b.min_lon + b.max_lon) / 2 - frame.origin.longitude) * 1e5)
        assert b.contains(frame.origin.longitude, frame.origin.latitude)
        assert frame.center_tile == (center.column, center.row)

    def test_camera_framing(self):
        frame = compose(_okinawa())
        cam = frame.camera
        # line bounds: 16000 x 12000 scene units centred on the origin
        assert cam.position[0] == pytest.approx(0.0, abs=1e-6)
        assert cam.position[1] == pytest.approx(0.0, abs=1e-6)
        assert cam.position[2] == pytest.approx(8000.0)
        assert cam.target == pytest.approx((0.0, 0.0, 0.0), abs=1e-6)
        assert all(d <= cam.far + 1e-6 for d in _corner_distances(frame))

    def test_camera_height_factor(self):
        cfg = OverlayConfig.from_dict({"scene": {"camera_height_factor": 2.0}})
        assert compose(_okinawa(), config=cfg).camera.position[2] == pytest.approx(32000.0)

    def test_single_point_feature(self):
        frame = compose([LineFeature([[127.68, 26.21]])])
        assert frame.zoom == 18
        assert len(frame.tiles) == 25
        assert frame.camera.position[2] > 0

    def test_non_line_features_ignored(self):
        feats = _okinawa() + [LineFeature([[0.0, 0.0]], kind="Point")]
        frame = compose(feats)
        assert len(frame.lines) == 2
        assert frame.extent == compose(_okinawa()).extent

    def test_line_on_180th_meridian(self):
        frame = compose([LineFeature([[180.0, 10.0], [180.0, 10.01]])])
        center = frame.tiles[12]
        assert center.geographic_bounds.contains(180.0, 10.005)
        assert abs(center.scene_center.x) <= center.scene_size[0]
        assert center.tile.x == 0

    def test_far_plane_floor_from_config(self):
        cfg = OverlayConfig.from_dict({"scene": {"camera_far_min": 5.0e7}})
        assert compose(_okinawa(), config=cfg).camera.far == 5.0e7
        assert compose(_okinawa()).camera.far < 5.0e7

    def test_frames_are_independent(self):
        a = compose(_okinawa())
        b = compose(_okinawa())
        assert a is not b
        assert a.lines[0].points is not b.lines[0].points
        assert not a.lines[0].points.flags.writeable


class TestComposeErrors:
    """Failure cases"""

    def test_empty_collection(self):
        with pytest.raises(EmptyGeometryError):
            compose([])

    def test_only_unsupported_kinds(self):
        with pytest.raises(EmptyGeometryError):
            compose([LineFeature([[127.0, 26.0]], kind="Point")])

    def test_lines_without_vertices(self):
        with pytest.raises(EmptyGeometryError):
            compose([LineFeature([])])

    def test_projected_without_projector(self):
        with pytest.raises(ConfigurationError):
            compose([LineFeature([[17000.0, 22000.0], [18000.0, 23000.0]])])


class TestComposeProjected:
    """Planar and mixed input"""

    def test_projected_line(self):
        proj = Projector.from_string(ZONE15)
        frame = compose([LineFeature([[17000.0, 22000.0], [18200.0, 23100.0]])], proj)
        assert 127.6 < frame.extent.min_lon < frame.extent.max_lon < 127.8
        assert 26.1 < frame.extent.min_lat < frame.extent.max_lat < 26.3

    def test_mixed_sources_share_frame(self):
        proj = Projector.from_string(ZONE15)
        planar = proj.forward(GeoPoint(127.70, 26.22))
        feats = _okinawa() + [LineFeature([[planar.x, planar.y], [127.70, 26.22]])]
        frame = compose(feats, proj)
        pts = frame.lines[-1].points
        # same location given in metres and in degrees lands on the same scene point
        assert pts[0, :2].tolist() == pytest.approx(pts[1, :2].tolist(), abs=1e-3)


class TestExternalOrigin:
    """Sharing a frame with an earlier source"""

    def test_lines_relative_to_external_origin(self):
        origin = GeoPoint(127.5, 26.0)
        frame = compose(_okinawa(), external_origin=origin)
        assert frame.origin == origin
        assert frame.lines[0].points[0, 0] == pytest.approx(10000.0)
        assert frame.lines[0].points[0, 1] == pytest.approx(15000.0)

    def test_camera_kept_and_far_extended(self):
        first = compose(_okinawa())
        second_feats = [LineFeature([[128.00, 26.50], [128.05, 26.55]])]
        second = compose(second_feats, external_origin=first.origin, camera=first.camera)
        assert second.camera.position == first.camera.position
        assert second.camera.target == first.camera.target
        assert second.camera.far >= first.camera.far
        assert all(d <= second.camera.far + 1e-6 for d in _corner_distances(second))

    def test_without_camera_reframes(self):
        first = compose(_okinawa())
        second = compose(_okinawa(), external_origin=GeoPoint(127.5, 26.0))
        assert second.camera.position != first.camera.position


class TestComposer:
    """Composer wrapper"""

    def test_from_config_uses_active_projection(self):
        cfg = OverlayConfig.from_dict({
            "projections": {"active": "z15", "definitions": {"z15": ZONE15}},
        })
        composer = Composer.from_config(cfg)
        assert composer.projector is not None
        frame = composer.compose([LineFeature([[17000.0, 22000.0], [18200.0, 23100.0]])])
        assert len(frame.lines) == 1

    def test_ambiguous_projection(self):
        cfg = OverlayConfig.from_dict({
            "projections": {"definitions": {"a": ZONE15, "b": ZONE15.replace("lat_0=26", "lat_0=33")}},
        })
        with pytest.raises(ConfigurationError, match="none selected"):
            Composer.from_config(cfg)
        assert Composer.from_config(cfg, "b").projector.name == "b"

    def test_no_projection_configured(self):
        assert Composer.from_config(OverlayConfig()).projector is None

    def test_frame_camera_direct(self):
        frame = compose(_okinawa())
        cam = frame_camera(frame.lines, frame.tiles, height_factor=1.0)
        assert cam.position[2] == pytest.approx(16000.0)

    def test_frame_camera_far_min(self):
        frame = compose([LineFeature([[127.68, 26.21]])], config=OverlayConfig.from_dict({"tiles": {"radius": 0}}))
        assert frame_camera(frame.lines, frame.tiles, far_min=2500.0).far >= 2500.0
