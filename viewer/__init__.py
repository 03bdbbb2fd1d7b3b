"""
Viewer integration

- scene: renderer interface (SceneAdapter) plus an in-memory SceneGraph
- session: OverlaySession applies composed frames, fetches tile imagery per
  mesh and drops results from superseded loads
"""
from .scene import LineMesh, SceneAdapter, SceneGraph, TileMesh
from .session import LoadHandle, OverlaySession

__all__ = ["LineMesh", "SceneAdapter", "SceneGraph", "TileMesh", "LoadHandle", "OverlaySession"]
