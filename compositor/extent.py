from __future__ import annotations

from functools import reduce
from typing import Iterable

from common.types import GeographicExtent, LineFeature


def feature_extent(feature: LineFeature) -> GeographicExtent:
    """Extent of one feature; empty for unsupported kinds or no vertices."""
    if not feature.is_line:
        return GeographicExtent.empty()
    return GeographicExtent.from_coords(feature.coords)


def aggregate(features: Iterable[LineFeature]) -> GeographicExtent:
    """
    Lon/lat bounding rectangle over every vertex of every line feature.

    Non-line kinds are skipped. Min/max is commutative so feature order does
    not matter. No features -> GeographicExtent.empty() (check `is_empty`).
    """
    return reduce(
        lambda acc, f: acc.union(feature_extent(f)),
        features,
        GeographicExtent.empty(),
    )
