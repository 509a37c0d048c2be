"""Tiny peer group fallback.

Very small peer groups produce unreliable Z-scores that look artificially
extreme. When enabled, funds whose thinnest contributing metric has fewer
than `tiny_class_min_peers` peers are either neutralized (raw -> 0, which
scales to exactly 50) or shrunk toward the center.
"""

from __future__ import annotations

from typing import Optional

from .config import ScoringPolicy


def apply_tiny_class_fallback(
    raw: float,
    peer_count_min: Optional[int],
    policy: ScoringPolicy,
) -> tuple[float, Optional[str]]:
    """
    Adjust a raw score for thin peer groups.

    Returns:
        Tuple of (adjusted raw score, note or None when unchanged)
    """
    if not policy.tiny_class_fallback_enabled or peer_count_min is None:
        return raw, None

    if peer_count_min >= policy.tiny_class_min_peers:
        return raw, None

    if peer_count_min <= policy.tiny_class_neutral_threshold:
        return 0.0, f"Neutralized: only {peer_count_min} peers for at least one metric"

    return (
        raw * policy.tiny_class_shrink,
        f"Shrunk x{policy.tiny_class_shrink:g}: only {peer_count_min} peers for at least one metric",
    )
