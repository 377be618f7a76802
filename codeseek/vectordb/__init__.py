"""Vector store backends."""

from .base import (
    HybridSearchOptions,
    HybridSearchRequest,
    HybridSearchResult,
    RerankStrategy,
    SearchOptions,
    VectorDocument,
    VectorSearchResult,
    VectorStore,
)
from .memory import MemoryVectorStore
from .milvus_rest import MilvusRestVectorStore

__all__ = [
    "HybridSearchOptions",
    "HybridSearchRequest",
    "HybridSearchResult",
    "MemoryVectorStore",
    "MilvusRestVectorStore",
    "RerankStrategy",
    "SearchOptions",
    "VectorDocument",
    "VectorSearchResult",
    "VectorStore",
]
