from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Dict, Optional

from common.errors import CompositorError
from common.logging_setup import get_logger, setup_logging
from common.types import GeoPoint
from common.utils import parse_pair
from compositor import geojson
from compositor.composer import Composer
from compositor.config import load_config


log = get_logger("compositor.pipeline")


def _write_json(path: Optional[str], payload: Dict) -> None:
    text = json.dumps(payload, indent=2)
    if not path or path == "-":
        sys.stdout.write(text + "\n")
        return
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text)


def run(args: argparse.Namespace) -> Dict:
    cfg = load_config(args.config)
    setup_logging(cfg.log_level, cfg.log_file)

    composer = Composer.from_config(cfg, args.projection)
    origin = None
    if args.origin:
        lon, lat = parse_pair(args.origin)
        origin = GeoPoint(lon, lat)

    features = geojson.load(args.geojson, timeout=cfg.tiles.timeout_s)
    log.info("Loaded document", extra={"extra": {"source": args.geojson, "features": len(features)}})

    if not args.fetch:
        return composer.compose(features, origin).to_dict()

    # Imagery: run the full session against the in-memory scene
    from imagery.fetcher import TileFetcher
    from viewer.scene import SceneGraph
    from viewer.session import OverlaySession

    scene = SceneGraph()
    with OverlaySession(scene, composer, TileFetcher.from_settings(cfg.tiles)) as session:
        handle = session.load(features, origin)
        done = handle.wait(timeout=args.fetch_timeout)
        out = handle.frame.to_dict()
        out["imagery"] = {
            "requested": len(handle.futures),
            "applied": sum(1 for m in handle.tiles if not m.is_blank),
            "blank": len(handle.blank_tiles),
            "complete": done,
        }
    return out


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Compose a line overlay + tile grid into a scene frame")
    ap.add_argument("--config", default=None, help="YAML config (default: $OVERLAY_CONFIG or config/params.yaml)")
    ap.add_argument("--geojson", required=True, help="Line collection document (path or http(s) URL)")
    ap.add_argument("--projection", default=None, help="Named projection for planar input")
    ap.add_argument("--origin", default=None, help="External scene origin 'lon,lat'")
    ap.add_argument("--out", default="-", help="Output JSON path ('-' = stdout)")
    ap.add_argument("--fetch", action="store_true", help="Also fetch tile imagery and report results")
    ap.add_argument("--fetch-timeout", type=float, default=60.0, help="Max seconds to wait for imagery")
    args = ap.parse_args(argv)

    try:
        payload = run(args)
    except CompositorError as e:
        log.error("Composition failed", extra={"extra": {"error": str(e), "kind": type(e).__name__}})
        return 2
    _write_json(args.out, payload)
    return 0


if __name__ == "__main__":
    sys.exit(main())
