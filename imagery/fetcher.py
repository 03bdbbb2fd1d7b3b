from __future__ import annotations

"""
Raster tile fetcher.

Usage:
    fetcher = TileFetcher("https://cyberjapandata.gsi.go.jp/xyz/std/{z}/{x}/{y}.png",
                          cache=TileCache("data/tiles"))
    fut = fetcher.submit(TileCoordinate(13, 7000, 3500))
    img = fut.result()   # np.ndarray (H, W, C) or raises TileFetchError

Every failure (network, HTTP status, undecodable bytes) surfaces as
TileFetchError for that one tile only.
"""

from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

import cv2
import numpy as np
import requests

from common.errors import TileFetchError
from common.logging_setup import get_logger
from common.types import TileCoordinate
from compositor.tiles import tile_url
from imagery.tile_cache import TileCache


log = get_logger("imagery.fetcher")


def decode_image(data: bytes) -> Optional[np.ndarray]:
    """PNG/JPEG bytes -> ndarray (alpha kept when present), None if undecodable."""
    if not data:
        return None
    arr = np.frombuffer(data, dtype=np.uint8)
    return cv2.imdecode(arr, cv2.IMREAD_UNCHANGED)


class TileFetcher:
    def __init__(
        self,
        url_template: str,
        *,
        cache: Optional[TileCache] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        workers: int = 8,
        user_agent: Optional[str] = None,
    ):
        """
        Params:
            url_template: raster endpoint with {z}/{zoom}, {x}, {y} fields
            cache: optional on-disk cache consulted before the network
            session: optional requests.Session for connection reuse
            timeout: per-request timeout (s)
            workers: size of the fetch thread pool used by submit()
        """
        if not url_template:
            raise ValueError("url_template is required")
        self.url_template = url_template
        self.cache = cache
        self.session = session or requests.Session()
        if user_agent:
            self.session.headers.setdefault("User-Agent", user_agent)
        self.timeout = float(timeout)
        self._pool = ThreadPoolExecutor(max_workers=max(1, int(workers)), thread_name_prefix="tile-fetch")

    @classmethod
    def from_settings(cls, tiles) -> "TileFetcher":
        """Build from compositor.config.TileSettings."""
        cache = TileCache(tiles.cache_root) if tiles.cache_root else None
        return cls(
            tiles.url_template,
            cache=cache,
            timeout=tiles.timeout_s,
            workers=tiles.workers,
            user_agent=tiles.user_agent,
        )

    # ----------------------------
    # Public API
    # ----------------------------
    def url_for(self, tile: TileCoordinate) -> str:
        return tile_url(self.url_template, tile)

    def fetch_bytes(self, tile: TileCoordinate) -> bytes:
        """Encoded image bytes from the cache or the endpoint."""
        if self.cache is not None:
            data = self.cache.get(tile)
            if data:
                return data
        url = self.url_for(tile)
        try:
            r = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise TileFetchError(f"request failed for {url}: {e}", tile) from e
        if r.status_code != 200 or not r.content:
            raise TileFetchError(f"HTTP {r.status_code} for {url}", tile)
        if self.cache is not None:
            self.cache.put(tile, r.content)
        return r.content

    def fetch(self, tile: TileCoordinate) -> np.ndarray:
        """Decoded image for `tile`."""
        img = decode_image(self.fetch_bytes(tile))
        if img is None:
            raise TileFetchError(f"cannot decode image for tile {tile.zxy}", tile)
        return img

    def submit(self, tile: TileCoordinate) -> "Future[np.ndarray]":
        """Fetch asynchronously; the future raises TileFetchError on failure."""
        return self._pool.submit(self.fetch, tile)

    def submit_bytes(self, tile: TileCoordinate) -> "Future[bytes]":
        """Like submit() without decoding (cache warming)."""
        return self._pool.submit(self.fetch_bytes, tile)

    def close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)
        self.session.close()

    def __enter__(self) -> "TileFetcher":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
