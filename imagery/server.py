from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import Body, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from common.errors import (
    ConfigurationError,
    DocumentFetchError,
    EmptyGeometryError,
    ParseError,
    TileFetchError,
)
from common.geo import tile_bounds
from common.logging_setup import get_logger, setup_logging
from common.types import GeoPoint, LineFeature, TileCoordinate
from compositor import geojson
from compositor.composer import Composer
from compositor.config import OverlayConfig, load_config
from imagery.fetcher import TileFetcher


log = get_logger("imagery.server")


def _origin(lon: Optional[float], lat: Optional[float]) -> Optional[GeoPoint]:
    if (lon is None) != (lat is None):
        raise HTTPException(status_code=400, detail="origin_lon and origin_lat go together")
    if lon is None:
        return None
    try:
        return GeoPoint(lon, lat)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def create_app(cfg: Optional[OverlayConfig] = None, fetcher: Optional[TileFetcher] = None) -> FastAPI:
    """
    Build the API. `cfg` defaults to load_config(); `fetcher` to one built
    from cfg.tiles (tests inject a stub).
    """
    cfg = cfg or load_config()
    fetcher = fetcher or TileFetcher.from_settings(cfg.tiles)
    composers: Dict[Optional[str], Composer] = {}

    def _compose(features: List[LineFeature], origin: Optional[GeoPoint], projection: Optional[str]) -> Dict:
        try:
            if projection not in composers:
                composers[projection] = Composer.from_config(cfg, projection)
            frame = composers[projection].compose(features, origin)
        except ParseError as e:
            raise HTTPException(status_code=400, detail=f"parse_error: {e}")
        except EmptyGeometryError as e:
            raise HTTPException(status_code=422, detail=f"empty_geometry: {e}")
        except ConfigurationError as e:
            log.error("Configuration error", extra={"extra": {"error": str(e), "projection": projection}})
            raise HTTPException(status_code=500, detail=f"configuration_error: {e}")
        return frame.to_dict()

    app = FastAPI(title="Overlay Compositor API", version="0.1.0")

    # (Optional) CORS so a browser viewer on another port can call us
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health():
        try:
            active = cfg.projection()
            projection, projection_error = (None if active is None else active.name), None
        except ConfigurationError as e:
            projection, projection_error = None, str(e)
        return {
            "status": "ok",
            "projection": projection,
            "projection_error": projection_error,
            "projections": sorted(cfg.projections),
            "tile_template": cfg.tiles.url_template,
            "cache": None if fetcher.cache is None else fetcher.cache.stats(),
        }

    @app.post("/compose")
    def compose_document(
        document: Dict[str, Any] = Body(...),
        origin_lon: Optional[float] = Query(None),
        origin_lat: Optional[float] = Query(None),
        projection: Optional[str] = Query(None),
    ):
        """
        Compose a GeoJSON line document into scene lines, tile placements and
        a camera pose. Pass origin_lon/origin_lat to share another source's frame.
        """
        origin = _origin(origin_lon, origin_lat)
        try:
            features = geojson.read_document(document)
        except ParseError as e:
            raise HTTPException(status_code=400, detail=f"parse_error: {e}")
        return _compose(features, origin, projection)

    @app.get("/compose")
    def compose_url(
        url: str = Query(...),
        origin_lon: Optional[float] = Query(None),
        origin_lat: Optional[float] = Query(None),
        projection: Optional[str] = Query(None),
    ):
        """Same as POST /compose for a document served elsewhere."""
        if not url.startswith(("http://", "https://")):
            raise HTTPException(status_code=400, detail="url must be http(s)")
        origin = _origin(origin_lon, origin_lat)
        try:
            features = geojson.load(url, timeout=cfg.tiles.timeout_s)
        except DocumentFetchError as e:
            return JSONResponse({"error": "document_fetch_failed", "detail": str(e)}, status_code=502)
        except ParseError as e:
            raise HTTPException(status_code=400, detail=f"parse_error: {e}")
        return _compose(features, origin, projection)

    @app.get("/tiles/{z}/{x}/{y}.png")
    def tile(z: int, x: int, y: int):
        """Raster tile through the disk cache (if configured)."""
        try:
            t = TileCoordinate(zoom=z, x=x, y=y)
        except ValueError as e:
            raise HTTPException(status_code=404, detail=str(e))
        try:
            data = fetcher.fetch_bytes(t)
        except TileFetchError as e:
            log.warning("Tile proxy failed", extra={"extra": {"tile": [z, x, y], "error": str(e)}})
            return JSONResponse({"error": "tile_fetch_failed", "detail": str(e)}, status_code=502)
        headers = {
            "Cache-Control": "public, max-age=3600",
            "X-Tile-Z": str(z),
            "X-Tile-X": str(x),
            "X-Tile-Y": str(y),
            "X-Tile-Bounds": json.dumps(tile_bounds(x, y, z).to_dict()),
        }
        return Response(content=data, media_type="image/png", headers=headers)

    return app


# -------- local dev entrypoint --------
if __name__ == "__main__":
    _cfg = load_config()
    setup_logging(_cfg.log_level, _cfg.log_file)
    uvicorn.run(create_app(_cfg), host="0.0.0.0", port=8000)
