"""Vector similarity and the adaptive acceptance threshold."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

__all__ = ["cosine_similarity", "effective_threshold"]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between ``a`` and ``b``, in ``[-1, 1]``.

    Mismatched dimensions, empty vectors and zero vectors score 0.
    """
    if len(a) != len(b) or not a:
        return 0.0
    norm_a = math.hypot(*a)
    norm_b = math.hypot(*b)
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    dot = math.fsum(x * y for x, y in zip(a, b))
    return max(-1.0, min(1.0, dot / (norm_a * norm_b)))


def effective_threshold(
    top_similarity: float,
    user_threshold: float,
    *,
    scale: float = 0.7,
    floor: float = 0.2,
) -> float:
    """Acceptance threshold for a ranked result set.

    The adaptive value ``max(top_similarity * scale, floor)`` follows the
    density of the corpus. Taking the ``min`` with the user's threshold
    means it can only lower the bar, never raise it.
    """
    adaptive = max(top_similarity * scale, floor)
    return min(user_threshold, adaptive)
