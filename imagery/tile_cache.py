from __future__ import annotations

import threading
from pathlib import Path
from typing import Dict, Optional

from common.types import TileCoordinate


class TileCache:
    """
    On-disk raster tile store in the usual slippy-map layout:

        root/
          └─ {z}/
              └─ {x}/
                  └─ {y}.png

    Bytes are stored exactly as served by the upstream endpoint.
    """
    def __init__(self, root: str = "data/tiles", suffix: str = ".png"):
        self.root = Path(root)
        self.suffix = suffix
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    # -------- public API --------

    def path_for(self, tile: TileCoordinate) -> Path:
        return self.root / str(tile.zoom) / str(tile.x) / f"{tile.y}{self.suffix}"

    def get(self, tile: TileCoordinate) -> Optional[bytes]:
        p = self.path_for(tile)
        try:
            data = p.read_bytes()
        except FileNotFoundError:
            data = None
        with self._lock:
            if data:
                self._hits += 1
            else:
                self._misses += 1
        return data or None

    def put(self, tile: TileCoordinate, data: bytes) -> Path:
        p = self.path_for(tile)
        p.parent.mkdir(parents=True, exist_ok=True)
        # write-then-rename so concurrent readers never see a partial file
        tmp = p.with_name(f"{p.name}.{threading.get_ident()}.part")
        tmp.write_bytes(data)
        tmp.replace(p)
        return p

    def contains(self, tile: TileCoordinate) -> bool:
        return self.path_for(tile).is_file()

    def stats(self) -> Dict[str, int]:
        tiles = sum(1 for _ in self.root.rglob(f"*{self.suffix}")) if self.root.exists() else 0
        with self._lock:
            return {
                "zooms": len([d for d in self.root.iterdir() if d.is_dir()]) if self.root.exists() else 0,
                "tiles": tiles,
                "hits": self._hits,
                "misses": self._misses,
            }
