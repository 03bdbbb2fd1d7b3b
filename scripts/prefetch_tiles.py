#!/usr/bin/env python3
"""
Warm the on-disk tile cache for a line document's tile grid.

Composes the document exactly as the viewer would, then downloads every
fetchable tile of the grid into tiles.cache_root ({z}/{x}/{y}.png) so the
viewer and `python -m imagery.server` can work offline.

Examples:
  python scripts/prefetch_tiles.py --geojson data/sample_contours.geojson
  python scripts/prefetch_tiles.py --geojson cont.geojson --radius 3 --cache-root data/tiles
"""
from __future__ import annotations

import argparse
from concurrent.futures import as_completed

from common.errors import CompositorError, TileFetchError
from common.logging_setup import get_logger, setup_logging
from compositor import geojson
from compositor.composer import Composer
from compositor.config import load_config
from imagery.fetcher import TileFetcher


log = get_logger("prefetch")


def main() -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--geojson", required=True, help="Line collection document (path or URL)")
    ap.add_argument("--config", default=None, help="YAML config")
    ap.add_argument("--projection", default=None, help="Named projection for planar input")
    ap.add_argument("--radius", type=int, default=None, help="Override tiles.radius")
    ap.add_argument("--cache-root", default=None, help="Override tiles.cache_root (default data/tiles)")
    args = ap.parse_args()

    cfg = load_config(args.config)
    setup_logging(cfg.log_level, cfg.log_file)
    if args.radius is not None:
        cfg.tiles.radius = args.radius
    cfg.tiles.cache_root = args.cache_root or cfg.tiles.cache_root or "data/tiles"

    try:
        frame = Composer.from_config(cfg, args.projection).compose(geojson.load(args.geojson))
    except CompositorError as e:
        log.error("Cannot plan tile grid", extra={"extra": {"error": str(e)}})
        return 2

    wanted = [p.tile for p in frame.tiles if p.fetchable]
    ok = failed = 0
    with TileFetcher.from_settings(cfg.tiles) as fetcher:
        futures = {fetcher.submit_bytes(t): t for t in wanted}
        for fut in as_completed(futures):
            try:
                fut.result()
                ok += 1
            except TileFetchError as e:
                failed += 1
                log.warning("Tile not cached", extra={"extra": {"tile": list(futures[fut].zxy), "error": str(e)}})

    log.info(
        "Prefetch done",
        extra={"extra": {"zoom": frame.zoom, "tiles": len(wanted), "ok": ok, "failed": failed,
                         "cache_root": cfg.tiles.cache_root}},
    )
    return 0 if failed == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
