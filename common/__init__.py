"""
Shared building blocks

- types: immutable per-load values (GeoPoint, GeographicExtent, TilePlacement, ...)
- geo: Web Mercator tile math
- errors: CompositorError hierarchy
- logging_setup: JSON line logging
"""
