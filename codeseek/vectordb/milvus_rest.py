"""Milvus / Zilliz Cloud vector store over the REST API (v2).

Collections are loaded on demand: the first operation that needs a collection
asks for its load state and issues `collections/load` when it is not loaded.
The outcome is memoized per collection, so later calls skip both requests and
concurrent first calls share one check.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from ..errors import CollectionLimitExceeded, MalformedResponse, RemoteRejected
from ..memo import AsyncOnce
from .base import (
    DENSE_FIELD,
    OUTPUT_FIELDS,
    SPARSE_FIELD,
    HybridSearchOptions,
    HybridSearchRequest,
    HybridSearchResult,
    SearchOptions,
    VectorDocument,
    VectorSearchResult,
    VectorStore,
)
from .transport import RestTransport

logger = logging.getLogger(__name__)

LOADED = "LoadStateLoaded"
DEFAULT_QUERY_LIMIT = 16384

_COLLECTION_LIMIT_RE = re.compile(r"exceeded the limit number of collections", re.IGNORECASE)

_DENSE_INDEX = {"fieldName": DENSE_FIELD, "indexName": "vector_index", "metricType": "COSINE", "index_type": "AUTOINDEX"}
_SPARSE_INDEX = {
    "fieldName": SPARSE_FIELD,
    "indexName": "sparse_vector_index",
    "metricType": "BM25",
    "index_type": "SPARSE_INVERTED_INDEX",
}


def _varchar(name: str, max_length: int, **extra: Any) -> Dict[str, Any]:
    return {"fieldName": name, "dataType": "VarChar", "elementTypeParams": {"max_length": max_length, **extra}}


def collection_fields(dimension: int, hybrid: bool) -> List[Dict[str, Any]]:
    """Schema fields for a code-chunk collection."""
    content = _varchar("content", 65535, enable_analyzer=True) if hybrid else _varchar("content", 65535)
    fields = [
        {**_varchar("id", 512), "isPrimary": True},
        content,
        {"fieldName": DENSE_FIELD, "dataType": "FloatVector", "elementTypeParams": {"dim": dimension}},
    ]
    if hybrid:
        fields.append({"fieldName": SPARSE_FIELD, "dataType": "SparseFloatVector"})
    fields += [
        _varchar("relativePath", 1024),
        {"fieldName": "startLine", "dataType": "Int64"},
        {"fieldName": "endLine", "dataType": "Int64"},
        _varchar("fileExtension", 32),
        _varchar("metadata", 65535),
    ]
    return fields


BM25_FUNCTION = {
    "name": "content_bm25_emb",
    "description": "content bm25 function",
    "type": "BM25",
    "inputFieldNames": ["content"],
    "outputFieldNames": [SPARSE_FIELD],
    "params": {},
}


class MilvusRestVectorStore(VectorStore):
    """
    Vector store backed by the Milvus REST API.

    Attributes:
        transport: REST plumbing (auth, envelopes, timeouts).
        database: Optional database name, sent as `dbName`.
    """

    def __init__(
        self,
        address: str,
        token: str,
        database: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[RestTransport] = None,
    ) -> None:
        self.transport = transport or RestTransport(address, token, timeout=timeout)
        self.database = database
        self._loaded: Dict[str, AsyncOnce[bool]] = {}
        logger.info("Using Milvus REST API at %s", self.transport.base_url)

    async def _call(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.transport.request(endpoint, {**payload, "dbName": self.database})

    # -- load state -----------------------------------------------------

    def _load_memo(self, collection_name: str) -> AsyncOnce[bool]:
        memo = self._loaded.get(collection_name)
        if memo is None:
            memo = AsyncOnce(lambda: self._load_if_needed(collection_name))
            self._loaded[collection_name] = memo
        return memo

    async def _load_if_needed(self, collection_name: str) -> bool:
        resp = await self._call("/collections/get_load_state", {"collectionName": collection_name})
        state = (resp.get("data") or {}).get("loadState")
        if state != LOADED:
            logger.info("Loading collection '%s' (state: %s)", collection_name, state)
            await self._load_collection(collection_name)
        return True

    async def ensure_loaded(self, collection_name: str) -> None:
        await self._load_memo(collection_name).get()

    async def _load_collection(self, collection_name: str) -> None:
        await self._call("/collections/load", {"collectionName": collection_name})

    # -- lifecycle ------------------------------------------------------

    async def _create(self, collection_name: str, schema: Dict[str, Any]) -> None:
        try:
            await self._call("/collections/create", {"collectionName": collection_name, "schema": schema})
        except RemoteRejected as e:
            if _COLLECTION_LIMIT_RE.search(e.message):
                raise CollectionLimitExceeded(e.source, code=e.code) from e
            raise

    async def _create_indexes(self, collection_name: str, indexes: List[Dict[str, Any]]) -> None:
        for index in indexes:
            await self._call("/indexes/create", {"collectionName": collection_name, "indexParams": [index]})

    async def create_collection(self, collection_name: str, dimension: int, description: str = "") -> None:
        schema = {"enableDynamicField": False, "fields": collection_fields(dimension, hybrid=False)}
        await self._create(collection_name, schema)
        await self._create_indexes(collection_name, [_DENSE_INDEX])
        await self._load_collection(collection_name)
        self._load_memo(collection_name).set(True)
        logger.info("Created collection '%s' (dim=%d)", collection_name, dimension)

    async def create_hybrid_collection(self, collection_name: str, dimension: int, description: str = "") -> None:
        schema = {
            "enableDynamicField": False,
            "functions": [BM25_FUNCTION],
            "fields": collection_fields(dimension, hybrid=True),
        }
        await self._create(collection_name, schema)
        await self._create_indexes(collection_name, [_DENSE_INDEX, _SPARSE_INDEX])
        await self._load_collection(collection_name)
        self._load_memo(collection_name).set(True)
        logger.info("Created hybrid collection '%s' (dim=%d)", collection_name, dimension)

    async def drop_collection(self, collection_name: str) -> None:
        await self._call("/collections/drop", {"collectionName": collection_name})
        memo = self._loaded.pop(collection_name, None)
        if memo is not None:
            memo.reset()

    async def has_collection(self, collection_name: str) -> bool:
        resp = await self._call("/collections/has", {"collectionName": collection_name})
        data = resp.get("data")
        if not isinstance(data, dict) or not isinstance(data.get("has"), bool):
            raise MalformedResponse("expected {'has': <bool>} in 'data'", source="/collections/has")
        return data["has"]

    async def list_collections(self) -> List[str]:
        resp = await self._call("/collections/list", {})
        data = resp.get("data")
        if not isinstance(data, list):
            raise MalformedResponse("expected a list of collection names in 'data'", source="/collections/list")
        return [str(name) for name in data]

    # -- documents ------------------------------------------------------

    async def insert(self, collection_name: str, documents: List[VectorDocument]) -> None:
        await self.ensure_loaded(collection_name)
        await self._call(
            "/entities/insert",
            {"collectionName": collection_name, "data": [d.to_row() for d in documents]},
        )

    async def insert_hybrid(self, collection_name: str, documents: List[VectorDocument]) -> None:
        # `sparse_vector` is filled in by the server-side BM25 function.
        await self.insert(collection_name, documents)

    async def delete(self, collection_name: str, ids: List[str]) -> None:
        await self.ensure_loaded(collection_name)
        quoted = ", ".join(f'"{i}"' for i in ids)
        await self._call("/entities/delete", {"collectionName": collection_name, "filter": f"id in [{quoted}]"})

    async def query(
        self,
        collection_name: str,
        filter_expr: str,
        output_fields: List[str],
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        await self.ensure_loaded(collection_name)
        resp = await self._call(
            "/entities/query",
            {
                "collectionName": collection_name,
                "filter": filter_expr,
                "outputFields": output_fields,
                "limit": limit or DEFAULT_QUERY_LIMIT,
                "offset": 0,
            },
        )
        return self._rows(resp, "/entities/query")

    # -- search ---------------------------------------------------------

    @staticmethod
    def _rows(resp: Dict[str, Any], endpoint: str) -> List[Dict[str, Any]]:
        data = resp.get("data")
        if not isinstance(data, list):
            raise MalformedResponse("expected a list of rows in 'data'", source=endpoint)
        return data

    async def search(
        self,
        collection_name: str,
        query_vector: Sequence[float],
        options: Optional[SearchOptions] = None,
    ) -> List[VectorSearchResult]:
        opts = options or SearchOptions()
        await self.ensure_loaded(collection_name)

        params: Dict[str, Any] = {}
        if opts.threshold and opts.threshold > 0:
            # COSINE range search: only hits with similarity above `radius`.
            params["radius"] = opts.threshold
        payload: Dict[str, Any] = {
            "collectionName": collection_name,
            "data": [list(query_vector)],
            "annsField": DENSE_FIELD,
            "limit": opts.top_k or 10,
            "outputFields": OUTPUT_FIELDS[1:],
            "searchParams": {"metricType": "COSINE", "params": params},
        }
        if opts.filter_expr and opts.filter_expr.strip():
            payload["filter"] = opts.filter_expr

        resp = await self._call("/entities/search", payload)
        return [
            VectorSearchResult(
                document=VectorDocument.from_row(row, vector=query_vector),
                score=float(row.get("distance") or 0.0),
            )
            for row in self._rows(resp, "/entities/search")
        ]

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

        dense, sparse = search_requests
        blocks = [
            {
                "data": [list(dense.data)] if not isinstance(dense.data, str) else [dense.data],
                "annsField": dense.anns_field,
                "limit": dense.limit,
                "outputFields": ["*"],
                "searchParams": {"metricType": "COSINE", "params": dense.param or {"nprobe": 10}},
            },
            {
                "data": [sparse.data] if isinstance(sparse.data, str) else sparse.data,
                "annsField": sparse.anns_field,
                "limit": sparse.limit,
                "outputFields": ["*"],
                "searchParams": {"metricType": "BM25", "params": sparse.param or {"drop_ratio_search": 0.2}},
            },
        ]
        if opts.filter_expr and opts.filter_expr.strip():
            for block in blocks:
                block["filter"] = opts.filter_expr

        payload = {
            "collectionName": collection_name,
            "search": blocks,
            "rerank": opts.rerank.to_payload(),
            "limit": opts.limit or dense.limit or 10,
            "outputFields": OUTPUT_FIELDS,
        }
        logger.debug("Hybrid search on '%s' (rerank=%s)", collection_name, opts.rerank.strategy)
        resp = await self._call("/entities/hybrid_search", payload)
        rows = self._rows(resp, "/entities/hybrid_search")
        logger.debug("Hybrid search returned %d rows", len(rows))
        return [
            HybridSearchResult(
                document=VectorDocument.from_row(row, vector=[]),
                score=float(row.get("score") or row.get("distance") or 0.0),
            )
            for row in rows
        ]

    async def check_collection_limit(self) -> bool:
        # The REST API has no quota endpoint; creation reports the limit instead.
        logger.warning("check_collection_limit is not supported over REST, assuming capacity is available")
        return True

    def close(self) -> None:
        self.transport.close()
