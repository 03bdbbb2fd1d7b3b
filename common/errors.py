from __future__ import annotations

from typing import Optional


class CompositorError(Exception):
    """Base class for every error raised while composing an overlay frame."""


class ConfigurationError(CompositorError):
    """Missing or invalid configuration (projection definitions, config file)."""


class ParseError(CompositorError):
    """The geometry document (or one of its coordinates) is malformed."""


class EmptyGeometryError(CompositorError):
    """No supported line geometry was found after filtering."""


class DocumentFetchError(CompositorError):
    """The geometry document could not be retrieved."""


class TileFetchError(CompositorError):
    """
    A single raster tile could not be fetched or decoded.

    Recovered locally by callers: the affected tile mesh stays blank.
    """

    def __init__(self, message: str, tile: Optional[object] = None):
        super().__init__(message)
        self.tile = tile
