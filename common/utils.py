from __future__ import annotations

from typing import Tuple

import numpy as np


def clamp(v: float, lo: float, hi: float) -> float:
    return float(min(hi, max(lo, v)))


def as_lonlat_array(x) -> np.ndarray:
    """Coerce a coordinate sequence to an (N, 2) float64 array (extra dims dropped)."""
    a = np.asarray(x, dtype=float)
    if a.size == 0:
        return np.zeros((0, 2), dtype=float)
    if a.ndim != 2 or a.shape[1] < 2:
        raise ValueError("Expected an (N, 2) coordinate sequence")
    return a[:, :2].copy()


def parse_pair(s: str) -> Tuple[float, float]:
    """Parse "a,b" into a float pair (CLI helper)."""
    parts = [p for p in s.replace(" ", "").split(",") if p]
    if len(parts) != 2:
        raise ValueError("Expected 'a,b'")
    return float(parts[0]), float(parts[1])
