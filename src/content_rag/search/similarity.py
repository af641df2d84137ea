"""
Vector similarity helpers.
"""

from __future__ import annotations

import math
from typing import Sequence

from ..errors import DimensionMismatchError


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between *a* and *b*; 0.0 when either vector is all zeros."""
    if len(a) != len(b):
        raise DimensionMismatchError(f"Vector length mismatch: {len(a)} != {len(b)}")

    dot_product = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot_product += x * y
        norm_a += x * x
        norm_b += y * y

    magnitude = math.sqrt(norm_a) * math.sqrt(norm_b)
    return 0.0 if magnitude == 0 else dot_product / magnitude
