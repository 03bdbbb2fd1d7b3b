from __future__ import annotations

"""
Overlay session: applies composed frames to a renderer.

Each load:
  1) composes the frame (nothing touches the scene if this raises),
  2) discards the previous load's objects and in-flight tile fetches,
  3) adds line meshes and blank tile meshes, sets the camera,
  4) submits one image fetch per fetchable tile; each result is applied to
     its own mesh when it arrives.

A generation token guards step 4: results belonging to a superseded load are
dropped instead of applied.
"""

import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Any, Iterable, List, Optional, Union

from common.errors import CompositorError
from common.logging_setup import get_logger
from common.types import CameraPose, ComposedFrame, GeoPoint, LineFeature
from compositor import geojson
from compositor.composer import Composer
from viewer.scene import LineMesh, SceneAdapter, TileMesh


log = get_logger("viewer.session")


@dataclass
class LoadHandle:
    token: int
    frame: ComposedFrame
    lines: List[LineMesh] = field(default_factory=list)
    tiles: List[TileMesh] = field(default_factory=list)
    futures: List[Future] = field(default_factory=list)
    _settled: int = field(default=0, repr=False)
    _cond: threading.Condition = field(default_factory=threading.Condition, repr=False)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until every tile result was applied or dropped; True if none is pending."""
        with self._cond:
            return self._cond.wait_for(lambda: self._settled >= len(self.futures), timeout=timeout)

    def _settle(self) -> None:
        with self._cond:
            self._settled += 1
            self._cond.notify_all()

    @property
    def blank_tiles(self) -> List[TileMesh]:
        return [m for m in self.tiles if m.is_blank]


class OverlaySession:
    def __init__(self, scene: SceneAdapter, composer: Composer, fetcher: Optional[Any] = None):
        """
        Params:
            scene: renderer adapter (add/remove/set_camera)
            composer: configured Composer
            fetcher: object with submit(TileCoordinate) -> Future; None = no imagery
        """
        self.scene = scene
        self.composer = composer
        self.fetcher = fetcher
        self._lock = threading.RLock()
        self._generation = 0
        self._current: Optional[LoadHandle] = None
        self._camera: Optional[CameraPose] = None
        self._timers: List[threading.Timer] = []
        self._closed = False

    # -------- public API --------

    @property
    def current(self) -> Optional[LoadHandle]:
        return self._current

    @property
    def generation(self) -> int:
        return self._generation

    def load(self, features: Iterable[LineFeature], external_origin: Optional[GeoPoint] = None) -> LoadHandle:
        """Compose and apply one frame; raises without touching the scene on failure."""
        if self._closed:
            raise RuntimeError("session is closed")
        frame = self.composer.compose(list(features), external_origin, camera=self._camera)

        with self._lock:
            self._generation += 1
            token = self._generation
            self._discard_current()

            handle = LoadHandle(token=token, frame=frame)
            for line in frame.lines:
                mesh = LineMesh(line)
                self.scene.add(mesh)
                handle.lines.append(mesh)
            for placement in frame.tiles:
                mesh = TileMesh(placement)
                self.scene.add(mesh)
                handle.tiles.append(mesh)
            self.scene.set_camera(frame.camera)
            self._camera = frame.camera
            self._current = handle

            if self.fetcher is not None:
                for mesh in handle.tiles:
                    if not mesh.placement.fetchable:
                        continue
                    fut = self.fetcher.submit(mesh.placement.tile)
                    handle.futures.append(fut)
                    fut.add_done_callback(partial(self._on_tile, handle, mesh))

        log.info(
            "Overlay loaded",
            extra={"extra": {"token": token, "lines": len(handle.lines), "tiles": len(handle.tiles),
                             "fetching": len(handle.futures)}},
        )
        return handle

    def load_document(
        self,
        source: Union[str, Path, dict, bytes],
        external_origin: Optional[GeoPoint] = None,
    ) -> LoadHandle:
        """Load from a path/URL, JSON text, or a decoded GeoJSON object."""
        if isinstance(source, (dict, bytes)):
            features = geojson.read_document(source)
        else:
            features = geojson.load(source)
        return self.load(features, external_origin)

    def load_later(self, source: Union[str, Path], delay_s: float = 0.1,
                   external_origin: Optional[GeoPoint] = None) -> threading.Timer:
        """Defer load_document() by `delay_s`; cancelled by close()."""
        t = threading.Timer(delay_s, self._deferred_load, args=(source, external_origin))
        t.daemon = True
        with self._lock:
            self._timers = [old for old in self._timers if old.is_alive()]
            self._timers.append(t)
        t.start()
        return t

    def close(self) -> None:
        """Cancel pending timers and tile fetches; later results are dropped."""
        with self._lock:
            self._closed = True
            self._generation += 1
            for t in self._timers:
                t.cancel()
            self._timers.clear()
            if self._current is not None:
                for fut in self._current.futures:
                    fut.cancel()
        if self.fetcher is not None and hasattr(self.fetcher, "close"):
            self.fetcher.close()

    def __enter__(self) -> "OverlaySession":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # -------- internals --------

    def _discard_current(self) -> None:
        cur = self._current
        if cur is None:
            return
        for fut in cur.futures:
            fut.cancel()
        for mesh in cur.lines + cur.tiles:
            self.scene.remove(mesh)
        self._current = None

    def _deferred_load(self, source, external_origin) -> None:
        try:
            if not self._closed:
                self.load_document(source, external_origin)
        except CompositorError:
            # no caller to raise to from the timer thread
            log.exception("Deferred load failed", extra={"extra": {"source": str(source)}})
        finally:
            me = threading.current_thread()
            with self._lock:
                self._timers = [t for t in self._timers if t is not me]

    def _on_tile(self, handle: LoadHandle, mesh: TileMesh, fut: Future) -> None:
        try:
            self._apply_tile(handle.token, mesh, fut)
        finally:
            handle._settle()

    def _apply_tile(self, token: int, mesh: TileMesh, fut: Future) -> None:
        if fut.cancelled():
            return
        with self._lock:
            if token != self._generation:
                log.debug("Dropped tile from superseded load",
                          extra={"extra": {"token": token, "current": self._generation}})
                return
            exc = fut.exception()
            if exc is not None:
                tile = mesh.placement.tile
                log.warning(
                    "Tile fetch failed; leaving tile blank",
                    extra={"extra": {"tile": None if tile is None else list(tile.zxy),
                                     "dx": mesh.placement.dx, "dy": mesh.placement.dy,
                                     "error": str(exc), "kind": type(exc).__name__}},
                )
                return
            mesh.apply_image(fut.result())
