"""In-process vector store (NumPy, zero extra services).

Storage:
  - Documents kept in memory, per collection, in insertion order.

Retrieval:
  - Dense search computes cosine similarity in NumPy.
  - Hybrid search runs the dense channel and a local BM25 channel and fuses
    them with Reciprocal Rank Fusion, mirroring what a hybrid Milvus
    collection does server-side.

Filter expressions support a small subset of the Milvus grammar:
  field == "value", field != "value", field in ["a", "b"], joined with `and`.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from ..errors import CollectionLimitExceeded, RemoteRejected
from ..memo import AsyncOnce
from ..rag.fusion import DEFAULT_RRF_K, reciprocal_rank_fusion
from ..rag.lexical import bm25_scores
from .base import (
    HybridSearchOptions,
    HybridSearchRequest,
    HybridSearchResult,
    SearchOptions,
    VectorDocument,
    VectorSearchResult,
    VectorStore,
)

logger = logging.getLogger(__name__)

SOURCE = "memory"

_CMP = re.compile(r"^\s*(\w+)\s*(==|!=)\s*(\"[^\"]*\"|'[^']*'|-?\d+)\s*$")
_IN = re.compile(r"^\s*(\w+)\s+in\s+\[(.*)\]\s*$", re.DOTALL)
_AND = re.compile(r"\s+and\s+", re.IGNORECASE)
_LITERAL = re.compile(r"\"([^\"]*)\"|'([^']*)'|(-?\d+)")


def _literal(m: "re.Match[str]") -> Any:
    if m.group(3) is not None:
        return int(m.group(3))
    return m.group(1) if m.group(1) is not None else m.group(2)


def compile_filter(expr: Optional[str]) -> Callable[[Dict[str, Any]], bool]:
    """
    Compile a filter expression into a row predicate.

    Raises:
        RemoteRejected: If the expression uses unsupported syntax.
    """
    if not expr or not expr.strip():
        return lambda row: True

    checks: List[Callable[[Dict[str, Any]], bool]] = []
    for clause in _AND.split(expr.strip()):
        m = _CMP.match(clause)
        if m:
            name, op = m.group(1), m.group(2)
            value = _literal(_LITERAL.match(m.group(3)))
            if op == "==":
                checks.append(lambda row, n=name, v=value: row.get(n) == v)
            else:
                checks.append(lambda row, n=name, v=value: row.get(n) != v)
            continue
        m = _IN.match(clause)
        if m:
            name = m.group(1)
            values = [_literal(x) for x in _LITERAL.finditer(m.group(2))]
            checks.append(lambda row, n=name, vs=values: row.get(n) in vs)
            continue
        raise RemoteRejected(f"unsupported filter expression: {expr!r}", source=SOURCE)

    return lambda row: all(c(row) for c in checks)


@dataclass
class _Collection:
    dimension: int
    hybrid: bool
    docs: Dict[str, VectorDocument] = field(default_factory=dict)
    loaded: bool = False


def _cosine(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    qn = query / (np.linalg.norm(query) + 1e-12)
    norms = np.linalg.norm(matrix, axis=1) + 1e-12
    return (matrix @ qn) / norms


class MemoryVectorStore(VectorStore):
    """Vector store kept entirely in process memory."""

    def __init__(self, max_collections: Optional[int] = None) -> None:
        self.max_collections = max_collections
        self._collections: Dict[str, _Collection] = {}
        self._loaded: Dict[str, AsyncOnce[bool]] = {}
        self.load_calls = 0

    def _get(self, collection_name: str) -> _Collection:
        col = self._collections.get(collection_name)
        if col is None:
            raise RemoteRejected(f"collection not found[collection={collection_name}]", source=SOURCE)
        return col

    # -- load state -----------------------------------------------------

    async def _load_if_needed(self, collection_name: str) -> bool:
        col = self._get(collection_name)
        if not col.loaded:
            self.load_calls += 1
            col.loaded = True
        return True

    async def ensure_loaded(self, collection_name: str) -> None:
        memo = self._loaded.get(collection_name)
        if memo is None:
            memo = AsyncOnce(lambda: self._load_if_needed(collection_name))
            self._loaded[collection_name] = memo
        await memo.get()

    def release_collection(self, collection_name: str) -> None:
        """Move a collection back to the unloaded state."""
        self._get(collection_name).loaded = False
        memo = self._loaded.pop(collection_name, None)
        if memo is not None:
            memo.reset()

    # -- lifecycle ------------------------------------------------------

    async def _create(self, collection_name: str, dimension: int, hybrid: bool) -> None:
        if collection_name in self._collections:
            raise RemoteRejected(f"collection already exists: {collection_name}", source=SOURCE)
        if not await self.check_collection_limit():
            raise CollectionLimitExceeded(SOURCE)
        self._collections[collection_name] = _Collection(dimension=dimension, hybrid=hybrid)
        await self.ensure_loaded(collection_name)

    async def create_collection(self, collection_name: str, dimension: int, description: str = "") -> None:
        await self._create(collection_name, dimension, hybrid=False)

    async def create_hybrid_collection(self, collection_name: str, dimension: int, description: str = "") -> None:
        await self._create(collection_name, dimension, hybrid=True)

    async def drop_collection(self, collection_name: str) -> None:
        self._collections.pop(collection_name, None)
        memo = self._loaded.pop(collection_name, None)
        if memo is not None:
            memo.reset()

    async def has_collection(self, collection_name: str) -> bool:
        return collection_name in self._collections

    async def list_collections(self) -> List[str]:
        return list(self._collections)

    async def check_collection_limit(self) -> bool:
        return self.max_collections is None or len(self._collections) < self.max_collections

    # -- documents ------------------------------------------------------

    async def insert(self, collection_name: str, documents: List[VectorDocument]) -> None:
        await self.ensure_loaded(collection_name)
        col = self._get(collection_name)
        for doc in documents:
            if len(doc.vector) != col.dimension:
                raise RemoteRejected(
                    f"the dim ({len(doc.vector)}) of field data(vector) is not equal to schema dim ({col.dimension})",
                    source=SOURCE,
                )
        for doc in documents:
            # Round-trip through the wire shape so metadata behaves like a remote store.
            col.docs[doc.id] = VectorDocument.from_row(doc.to_row())

    async def insert_hybrid(self, collection_name: str, documents: List[VectorDocument]) -> None:
        await self.insert(collection_name, documents)

    async def delete(self, collection_name: str, ids: List[str]) -> None:
        await self.ensure_loaded(collection_name)
        col = self._get(collection_name)
        for i in ids:
            col.docs.pop(i, None)

    async def query(
        self,
        collection_name: str,
        filter_expr: str,
        output_fields: List[str],
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        await self.ensure_loaded(collection_name)
        col = self._get(collection_name)
        pred = compile_filter(filter_expr)
        rows: List[Dict[str, Any]] = []
        for doc in col.docs.values():
            row = doc.to_row()
            if not pred(row):
                continue
            if output_fields and "*" not in output_fields:
                row = {k: row[k] for k in output_fields if k in row}
            rows.append(row)
            if limit and len(rows) >= limit:
                break
        return rows

    # -- search ---------------------------------------------------------

    def _candidates(self, col: _Collection, filter_expr: Optional[str]) -> List[VectorDocument]:
        pred = compile_filter(filter_expr)
        return [d for d in col.docs.values() if pred(d.to_row())]

    def _dense_ranking(
        self, col: _Collection, docs: List[VectorDocument], query_vector: Sequence[float]
    ) -> List[tuple]:
        if len(query_vector) != col.dimension:
            raise RemoteRejected(
                f"vector dimension mismatch, expected {col.dimension}, got {len(query_vector)}",
                source=SOURCE,
            )
        if not docs:
            return []
        matrix = np.asarray([d.vector for d in docs], dtype=np.float32)
        sims = _cosine(matrix, np.asarray(query_vector, dtype=np.float32))
        order = np.argsort(-sims, kind="stable")
        return [(docs[int(i)], float(sims[int(i)])) for i in order]

    async def search(
        self,
        collection_name: str,
        query_vector: Sequence[float],
        options: Optional[SearchOptions] = None,
    ) -> List[VectorSearchResult]:
        opts = options or SearchOptions()
        await self.ensure_loaded(collection_name)
        col = self._get(collection_name)

        ranked = self._dense_ranking(col, self._candidates(col, opts.filter_expr), query_vector)
        if opts.threshold and opts.threshold > 0:
            ranked = [(d, s) for d, s in ranked if s >= opts.threshold]
        return [VectorSearchResult(document=d, score=s) for d, s in ranked[: max(1, int(opts.top_k))]]

    async def hybrid_search(
        self,
        collection_name: str,
        search_requests: List[HybridSearchRequest],
        options: Optional[HybridSearchOptions] = None,
    ) -> List[HybridSearchResult]:
        if len(search_requests) != 2:
            raise ValueError("hybrid search needs exactly two requests: dense then lexical")
        opts = options or HybridSearchOptions()
        await self.ensure_loaded(collection_name)
        col = self._get(collection_name)
        if not col.hybrid:
            raise RemoteRejected(f"collection {collection_name} has no sparse_vector field", source=SOURCE)
        if opts.rerank.strategy != "rrf":
            raise RemoteRejected(f"unsupported rerank strategy: {opts.rerank.strategy}", source=SOURCE)

        dense, lexical = search_requests
        docs = self._candidates(col, opts.filter_expr)

        dense_hits = [d for d, _ in self._dense_ranking(col, docs, dense.data)][: dense.limit]

        scores = bm25_scores([d.content for d in docs], str(lexical.data))
        order = sorted(range(len(docs)), key=lambda i: scores[i], reverse=True)
        lexical_hits = [docs[i] for i in order if scores[i] > 0][: lexical.limit]

        k = opts.rerank.params.get("k", DEFAULT_RRF_K)
        fused = reciprocal_rank_fusion(
            [dense_hits, lexical_hits],
            k=k,
            limit=opts.limit or dense.limit,
            key=lambda d: d.id,
        )
        logger.debug(
            "Hybrid search on '%s': %d dense, %d lexical, %d fused",
            collection_name, len(dense_hits), len(lexical_hits), len(fused),
        )
        return [HybridSearchResult(document=d, score=s) for d, s in fused]
