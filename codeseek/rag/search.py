"""Semantic search over an indexed codebase.

`SearchContext` ties an embedder and a vector store to one named index:

  - hybrid mode: embed the query once, then run a dense channel (embedding vs.
    `vector`) and a lexical channel (raw query vs. BM25 `sparse_vector`) and
    let the store fuse them with Reciprocal Rank Fusion.
  - dense mode: embed the query and run a plain similarity search.

A missing collection is expected before the first indexing run; it yields an
empty result instead of an error. Every other failure propagates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..config import resolve_hybrid_mode
from ..embeddings.base import Embedder
from ..vectordb.base import (
    DENSE_FIELD,
    SPARSE_FIELD,
    HybridSearchOptions,
    HybridSearchRequest,
    RerankStrategy,
    SearchOptions,
    VectorSearchResult,
    VectorStore,
)
from .fusion import DEFAULT_RRF_K

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_NAME = "codeseek"
HYBRID_PREFIX = "hybrid_code_chunks"
DENSE_PREFIX = "code_chunks"

DENSE_PARAMS = {"nprobe": 10}
LEXICAL_PARAMS = {"drop_ratio_search": 0.2}


def collection_name(name: str, hybrid: bool) -> str:
    """
    Name of the collection holding the chunks of context `name`.

    Examples:
        collection_name("proj", True)  -> "hybrid_code_chunks_proj"
        collection_name("proj", False) -> "code_chunks_proj"
    """
    prefix = HYBRID_PREFIX if hybrid else DENSE_PREFIX
    return f"{prefix}_{name}"


@dataclass
class SemanticSearchResult:
    """A search hit as shown to callers.

    Attributes:
        content: Chunk text.
        relative_path: File path relative to the indexed root.
        start_line: 1-based start line.
        end_line: 1-based end line.
        language: From chunk metadata, "unknown" when absent.
        score: Similarity (dense mode) or fused rank score (hybrid mode).
    """

    content: str
    relative_path: str
    start_line: int
    end_line: int
    language: str
    score: float

    @classmethod
    def from_hit(cls, hit: VectorSearchResult) -> "SemanticSearchResult":
        doc = hit.document
        return cls(
            content=doc.content,
            relative_path=doc.relative_path,
            start_line=doc.start_line,
            end_line=doc.end_line,
            language=str(doc.metadata.get("language") or "unknown"),
            score=hit.score,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "relativePath": self.relative_path,
            "startLine": self.start_line,
            "endLine": self.end_line,
            "language": self.language,
            "score": self.score,
        }


class SearchContext:
    """
    Search-only view of one indexed codebase.

    Attributes:
        name: Context name, part of the collection name.
        embedder: Embedding backend (must match the one used for indexing).
        vector_store: Store holding the collection.
        hybrid_mode: Dense + BM25 search when True, dense only when False.
        rrf_k: Smoothing constant for Reciprocal Rank Fusion.
    """

    def __init__(
        self,
        embedder: Embedder,
        vector_store: VectorStore,
        name: Optional[str] = None,
        hybrid_mode: Optional[bool] = None,
        rrf_k: int = DEFAULT_RRF_K,
    ) -> None:
        """
        Args:
            embedder: Embedding backend.
            vector_store: Vector store backend.
            name: Context name (default "codeseek").
            hybrid_mode: None resolves once from CODESEEK_HYBRID_MODE / HYBRID_MODE
                (anything but "false" means hybrid).
            rrf_k: RRF constant used for every hybrid query.
        """
        self.name = name or DEFAULT_CONTEXT_NAME
        self.embedder = embedder
        self.vector_store = vector_store
        self.hybrid_mode = resolve_hybrid_mode(hybrid_mode)
        self.rrf_k = rrf_k
        logger.debug("SearchContext '%s' initialized (hybrid=%s)", self.name, self.hybrid_mode)

    @property
    def collection_name(self) -> str:
        return collection_name(self.name, self.hybrid_mode)

    async def has_index(self) -> bool:
        """Whether the collection for this context exists."""
        return await self.vector_store.has_collection(self.collection_name)

    async def semantic_search(
        self,
        query: str,
        top_k: int = 5,
        threshold: float = 0.5,
        filter_expr: Optional[str] = None,
    ) -> List[SemanticSearchResult]:
        """
        Search the indexed codebase.

        Args:
            query: Natural-language query.
            top_k: Maximum number of results.
            threshold: Similarity cutoff forwarded to the store in dense mode
                (best effort, not re-applied here).
            filter_expr: Store filter expression, passed through untouched.

        Returns:
            Results ranked best first; empty when the index does not exist.
        """
        name = self.collection_name
        logger.info("Running %s search on '%s': %r", "hybrid" if self.hybrid_mode else "dense", name, query)

        if not await self.vector_store.has_collection(name):
            logger.warning("Collection '%s' does not exist. Index the codebase first.", name)
            return []

        if self.hybrid_mode:
            hits = await self._hybrid(name, query, top_k, filter_expr)
        else:
            embedding = await self.embedder.embed(query)
            hits = await self.vector_store.search(
                name,
                embedding.vector,
                SearchOptions(top_k=top_k, threshold=threshold, filter_expr=filter_expr),
            )

        results = [SemanticSearchResult.from_hit(h) for h in hits]
        logger.info("Found %d results", len(results))
        if results:
            logger.debug("Top result %s:%d (score %.4f)", results[0].relative_path, results[0].start_line, results[0].score)
        return results

    async def _hybrid(self, name: str, query: str, top_k: int, filter_expr: Optional[str]) -> List[VectorSearchResult]:
        try:
            rows = await self.vector_store.query(name, "", ["id"], 1)
            if not rows:
                logger.warning("Collection '%s' exists but holds no documents", name)
        except Exception as e:
            # Diagnostic only; the search below reports real failures.
            logger.warning("Could not inspect collection '%s': %s", name, e)

        embedding = await self.embedder.embed(query)
        logger.debug("Query embedding dimension: %d", embedding.dimension)

        requests = [
            HybridSearchRequest(data=embedding.vector, anns_field=DENSE_FIELD, param=dict(DENSE_PARAMS), limit=top_k),
            HybridSearchRequest(data=query, anns_field=SPARSE_FIELD, param=dict(LEXICAL_PARAMS), limit=top_k),
        ]
        options = HybridSearchOptions(
            rerank=RerankStrategy(strategy="rrf", params={"k": self.rrf_k}),
            limit=top_k,
            filter_expr=filter_expr,
        )
        return await self.vector_store.hybrid_search(name, requests, options)
