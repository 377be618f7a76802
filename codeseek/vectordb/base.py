"""Vector store interfaces.

A vector store is responsible for:
  - Collection lifecycle (create / drop / has / list / load)
  - Storing code chunks (text + location + metadata) and their embeddings
  - Dense search for a query embedding
  - Hybrid search: dense channel + lexical (BM25) channel, fused by rank

Collections come in two schema variants:
  - dense-only: id, vector, content, relativePath, startLine, endLine,
    fileExtension, metadata
  - hybrid: the above plus `sparse_vector`, derived from `content` by the
    store's BM25 function and indexed with an inverted index
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

logger = logging.getLogger(__name__)

DENSE_FIELD = "vector"
SPARSE_FIELD = "sparse_vector"

# Fields returned with every search hit.
OUTPUT_FIELDS: List[str] = [
    "id",
    "content",
    "relativePath",
    "startLine",
    "endLine",
    "fileExtension",
    "metadata",
]


@dataclass
class VectorDocument:
    """A chunk of code as stored in a collection.

    Attributes:
        id: Primary key, unique within a collection.
        vector: Dense embedding of `content`.
        content: Chunk text.
        relative_path: File path relative to the indexed root.
        start_line: 1-based start line.
        end_line: 1-based end line.
        file_extension: Extension including the dot, e.g. ".py".
        metadata: Free-form map, persisted as a JSON string.
    """

    id: str
    vector: List[float]
    content: str
    relative_path: str
    start_line: int
    end_line: int
    file_extension: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_row(self) -> Dict[str, Any]:
        """Wire representation (camelCase fields, metadata serialized)."""
        return {
            "id": self.id,
            "vector": list(self.vector),
            "content": self.content,
            "relativePath": self.relative_path,
            "startLine": self.start_line,
            "endLine": self.end_line,
            "fileExtension": self.file_extension,
            "metadata": json.dumps(self.metadata),
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any], vector: Optional[Sequence[float]] = None) -> "VectorDocument":
        """Build a document from a store row; tolerant of missing fields."""
        return cls(
            id=str(row.get("id") or ""),
            vector=list(vector if vector is not None else row.get("vector") or []),
            content=row.get("content") or "",
            relative_path=row.get("relativePath") or "",
            start_line=int(row.get("startLine") or 0),
            end_line=int(row.get("endLine") or 0),
            file_extension=row.get("fileExtension") or "",
            metadata=parse_metadata(row.get("metadata"), doc_id=row.get("id")),
        )


def parse_metadata(raw: Any, doc_id: Any = None) -> Dict[str, Any]:
    """Decode a stored metadata blob; anything unparsable becomes `{}`."""
    if isinstance(raw, dict):
        return raw
    if raw in (None, ""):
        return {}
    try:
        value = json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.warning("Failed to parse metadata for document %s: %s", doc_id, e)
        return {}
    if not isinstance(value, dict):
        logger.warning("Metadata for document %s is not an object, ignoring it", doc_id)
        return {}
    return value


@dataclass
class SearchOptions:
    """Options for a plain dense search.

    Attributes:
        top_k: Maximum number of hits.
        threshold: Similarity cutoff hint; 0 disables it. Stores may treat it as advisory.
        filter_expr: Store filter expression, passed through untouched.
    """

    top_k: int = 10
    threshold: float = 0.0
    filter_expr: Optional[str] = None


@dataclass
class HybridSearchRequest:
    """One retrieval channel of a hybrid search.

    Attributes:
        data: Query embedding (dense channel) or raw query text (lexical channel).
        anns_field: Field searched by this channel.
        param: Channel search params (e.g. {"nprobe": 10}).
        limit: Candidates fetched by this channel.
    """

    data: Union[List[float], str]
    anns_field: str
    param: Dict[str, Any] = field(default_factory=dict)
    limit: int = 10


@dataclass
class RerankStrategy:
    """How the store fuses channels: "rrf" ({"k": 100}) or "weighted" ({"weights": [...]})."""

    strategy: str = "rrf"
    params: Dict[str, Any] = field(default_factory=lambda: {"k": 100})

    def to_payload(self) -> Dict[str, Any]:
        return {"strategy": self.strategy, "params": dict(self.params)}


@dataclass
class HybridSearchOptions:
    """Options for a hybrid search."""

    rerank: RerankStrategy = field(default_factory=RerankStrategy)
    limit: Optional[int] = None
    filter_expr: Optional[str] = None


@dataclass
class VectorSearchResult:
    """A retrieved document with its score."""

    document: VectorDocument
    score: float


# Same shape; hybrid scores are fused rank scores rather than similarities.
HybridSearchResult = VectorSearchResult


class VectorStore:
    """Vector store interface. All I/O methods are coroutines."""

    async def create_collection(self, collection_name: str, dimension: int, description: str = "") -> None:
        """Create a dense-only collection, index it and load it."""
        raise NotImplementedError

    async def create_hybrid_collection(self, collection_name: str, dimension: int, description: str = "") -> None:
        """Create a dense + BM25 collection, index both fields and load it."""
        raise NotImplementedError

    async def drop_collection(self, collection_name: str) -> None:
        raise NotImplementedError

    async def has_collection(self, collection_name: str) -> bool:
        raise NotImplementedError

    async def list_collections(self) -> List[str]:
        raise NotImplementedError

    async def ensure_loaded(self, collection_name: str) -> None:
        """Make sure the collection is loaded for serving; idempotent."""
        raise NotImplementedError

    async def insert(self, collection_name: str, documents: List[VectorDocument]) -> None:
        raise NotImplementedError

    async def insert_hybrid(self, collection_name: str, documents: List[VectorDocument]) -> None:
        raise NotImplementedError

    async def search(
        self,
        collection_name: str,
        query_vector: Sequence[float],
        options: Optional[SearchOptions] = None,
    ) -> List[VectorSearchResult]:
        """Dense search for a query embedding."""
        raise NotImplementedError

    async def hybrid_search(
        self,
        collection_name: str,
        search_requests: List[HybridSearchRequest],
        options: Optional[HybridSearchOptions] = None,
    ) -> List[HybridSearchResult]:
        """Run a dense and a lexical channel and fuse them (dense request first)."""
        raise NotImplementedError

    async def delete(self, collection_name: str, ids: List[str]) -> None:
        raise NotImplementedError

    async def query(
        self,
        collection_name: str,
        filter_expr: str,
        output_fields: List[str],
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return raw rows matching a filter expression."""
        raise NotImplementedError

    async def check_collection_limit(self) -> bool:
        """True when another collection can be created (best effort)."""
        return True

    def close(self) -> None:
        """Release client resources (HTTP sessions)."""
