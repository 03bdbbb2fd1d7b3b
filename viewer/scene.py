from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import numpy as np

from common.types import CameraPose, SceneLine, TilePlacement


class SceneAdapter(Protocol):
    """What the overlay needs from a renderer. All calls are fire-and-forget."""

    def add(self, obj: Any) -> None: ...

    def remove(self, obj: Any) -> None: ...

    def set_camera(self, pose: CameraPose) -> None: ...


@dataclass(eq=False)
class LineMesh:
    line: SceneLine
    color: int = 0xFF0000
    width: float = 2.0

    def to_dict(self) -> Dict[str, Any]:
        d = self.line.to_dict()
        d["color"] = f"#{self.color:06x}"
        d["width"] = self.width
        return d


@dataclass(eq=False)
class TileMesh:
    """
    A transparent plane sized and positioned from a TilePlacement.
    `image` stays None until (and unless) its raster arrives.
    """
    placement: TilePlacement
    image: Optional[np.ndarray] = field(default=None, repr=False)
    opacity: float = 1.0

    @property
    def is_blank(self) -> bool:
        return self.image is None

    def apply_image(self, image: np.ndarray) -> None:
        self.image = image

    def to_dict(self) -> Dict[str, Any]:
        d = self.placement.to_dict()
        d["has_image"] = not self.is_blank
        return d


class SceneGraph:
    """
    In-memory renderer stand-in: keeps added objects and the camera pose.
    Used by the HTTP API to serialize frames and by tests.
    """
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._objects: List[Any] = []
        self.camera: Optional[CameraPose] = None

    def add(self, obj: Any) -> None:
        with self._lock:
            self._objects.append(obj)

    def remove(self, obj: Any) -> None:
        with self._lock:
            self._objects = [o for o in self._objects if o is not obj]

    def set_camera(self, pose: CameraPose) -> None:
        self.camera = pose

    @property
    def objects(self) -> List[Any]:
        with self._lock:
            return list(self._objects)

    @property
    def lines(self) -> List[LineMesh]:
        return [o for o in self.objects if isinstance(o, LineMesh)]

    @property
    def tiles(self) -> List[TileMesh]:
        return [o for o in self.objects if isinstance(o, TileMesh)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "camera": None if self.camera is None else self.camera.to_dict(),
            "lines": [m.to_dict() for m in self.lines],
            "tiles": [m.to_dict() for m in self.tiles],
        }
