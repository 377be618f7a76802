"""BM25 scoring over code chunks (used by the in-process store).

Scoring is done by `bm25s`. Tokenization is ours: it splits on non-word
characters and also breaks identifiers into their camelCase / snake_case
parts, so `getUserName` matches a query for "user name".
"""

from __future__ import annotations

import re
from typing import List, Sequence

import bm25s

_WORD = re.compile(r"[A-Za-z0-9]+")
_CAMEL = re.compile(r"[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z]+|[A-Z]+|[0-9]+")


def tokenize(text: str) -> List[str]:
    tokens: List[str] = []
    for word in _WORD.findall(text or ""):
        parts = _CAMEL.findall(word)
        low = word.lower()
        tokens.append(low)
        if len(parts) > 1:
            tokens.extend(p.lower() for p in parts)
    return tokens


def bm25_scores(corpus: Sequence[str], query: str, k1: float = 1.2, b: float = 0.75) -> List[float]:
    """
    Score every corpus document against `query` with Okapi BM25.

    Args:
        corpus: Document texts.
        query: Free-text query.
        k1: Term frequency saturation.
        b: Length normalization.

    Returns:
        One score per document, aligned to `corpus` (0 when no term matches).
    """
    if not corpus:
        return []
    retriever = bm25s.BM25(k1=k1, b=b)
    retriever.index([tokenize(text) for text in corpus], show_progress=False)

    # Terms unseen in the corpus cannot score.
    terms = [t for t in tokenize(query) if t in retriever.vocab_dict]
    if not terms:
        return [0.0] * len(corpus)
    return [float(s) for s in retriever.get_scores(terms)]
