from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence


def reciprocal_rank_fusion(
    rankings: Sequence[Sequence[str]],
    *,
    k: int = 60,
    weights: Sequence[float] | None = None,
) -> list[tuple[str, float]]:
    """Merge ranked key lists using reciprocal rank fusion (RRF).

    Returns ``(key, fused_score)`` pairs, best first; ties fall back to key order.
    """

    fused_scores: dict[str, float] = defaultdict(float)
    for position, ranking in enumerate(rankings):
        weight = float(weights[position]) if weights is not None else 1.0
        for rank, key in enumerate(ranking, start=1):
            fused_scores[key] += weight / (k + rank)

    merged = list(fused_scores.items())
    merged.sort(key=lambda pair: (-pair[1], pair[0]))
    return merged
