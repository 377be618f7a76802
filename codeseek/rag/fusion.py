"""Reciprocal Rank Fusion.

Dense similarities and BM25 scores live on different scales, so channels are
merged by rank only:

    score(d) = sum over channels containing d of 1 / (k + rank_c(d))

`rank_c` is the 1-based position of `d` in channel `c`. A larger `k` flattens
the advantage of being first.

Ties: Python's sort is stable, so documents with equal fused scores keep the
order in which they were first seen, scanning channels in request order
(dense first) and each channel in store order.
"""

from __future__ import annotations

from typing import Callable, Dict, Hashable, List, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")

DEFAULT_RRF_K = 100


def reciprocal_rank_fusion(
    rankings: Sequence[Sequence[T]],
    k: float = DEFAULT_RRF_K,
    limit: Optional[int] = None,
    key: Callable[[T], Hashable] = lambda item: item,  # type: ignore[assignment]
) -> List[Tuple[T, float]]:
    """
    Fuse ranked lists into one.

    Args:
        rankings: One list per channel, best first.
        k: Smoothing constant (must be >= 0).
        limit: Keep at most this many fused items (None keeps all).
        key: Identity of an item across channels (e.g. document id).

    Returns:
        (item, fused_score) pairs sorted by score descending. The item kept for
        a key is its first occurrence.
    """
    if k < 0:
        raise ValueError("k must be >= 0")

    first: Dict[Hashable, T] = {}
    scores: Dict[Hashable, float] = {}
    for ranking in rankings:
        seen_here = set()
        for rank, item in enumerate(ranking, 1):
            ident = key(item)
            # A channel counts a document once, at its best rank.
            if ident in seen_here:
                continue
            seen_here.add(ident)
            if ident not in first:
                first[ident] = item
                scores[ident] = 0.0
            scores[ident] += 1.0 / (k + rank)

    fused = sorted(scores.items(), key=lambda kv: kv[1], reverse=True)
    if limit is not None:
        fused = fused[: max(0, int(limit))]
    return [(first[ident], score) for ident, score in fused]
