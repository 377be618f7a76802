from __future__ import annotations

import asyncio

import pytest

from codeseek.errors import CollectionLimitExceeded, RemoteRejected
from codeseek.vectordb.base import (
    HybridSearchOptions,
    HybridSearchRequest,
    RerankStrategy,
    SearchOptions,
    VectorDocument,
)
from codeseek.vectordb.memory import MemoryVectorStore, compile_filter


def _doc(i, vector, content="", path="a.py", ext=".py", **meta):
    return VectorDocument(
        id=i,
        vector=vector,
        content=content,
        relative_path=path,
        start_line=1,
        end_line=10,
        file_extension=ext,
        metadata=meta,
    )


def _store_with(docs, hybrid=True, name="c"):
    store = MemoryVectorStore()

    async def setup():
        if hybrid:
            await store.create_hybrid_collection(name, 2)
            await store.insert_hybrid(name, docs)
        else:
            await store.create_collection(name, 2)
            await store.insert(name, docs)

    asyncio.run(setup())
    return store


def test_compile_filter():
    pred = compile_filter('fileExtension in [".py", ".ts"] and relativePath != "skip.py"')
    assert pred({"fileExtension": ".py", "relativePath": "a.py"})
    assert not pred({"fileExtension": ".go", "relativePath": "a.go"})
    assert not pred({"fileExtension": ".py", "relativePath": "skip.py"})
    assert compile_filter("")({"anything": 1})
    assert compile_filter("startLine == 3")({"startLine": 3})


def test_compile_filter_rejects_unknown_syntax():
    with pytest.raises(RemoteRejected):
        compile_filter("content like 'x%'")


def test_dense_search_ranks_by_cosine():
    store = _store_with(
        [_doc("a", [1.0, 0.0]), _doc("b", [0.0, 1.0]), _doc("c", [0.7, 0.7])],
        hybrid=False,
    )

    hits = asyncio.run(store.search("c", [1.0, 0.1], SearchOptions(top_k=2)))

    assert [h.document.id for h in hits] == ["a", "c"]
    assert hits[0].score > hits[1].score


def test_dense_search_threshold_and_filter():
    store = _store_with(
        [_doc("a", [1.0, 0.0], ext=".py"), _doc("b", [0.9, 0.1], ext=".ts"), _doc("c", [0.0, 1.0], ext=".py")],
        hybrid=False,
    )

    hits = asyncio.run(
        store.search("c", [1.0, 0.0], SearchOptions(top_k=10, threshold=0.5, filter_expr='fileExtension == ".py"'))
    )

    assert [h.document.id for h in hits] == ["a"]


def test_metadata_round_trip():
    store = _store_with([_doc("a", [1.0, 0.0], language="python")], hybrid=False)
    hits = asyncio.run(store.search("c", [1.0, 0.0]))
    assert hits[0].document.metadata == {"language": "python"}


def test_insert_checks_dimension():
    store = MemoryVectorStore()

    async def main():
        await store.create_collection("c", 3)
        await store.insert("c", [_doc("a", [1.0, 0.0])])

    with pytest.raises(RemoteRejected):
        asyncio.run(main())


def test_hybrid_search_fuses_dense_and_lexical():
    docs = [
        _doc("dense", [1.0, 0.0], content="open socket connection"),
        _doc("both", [0.8, 0.2], content="def parse_config(path): load yaml"),
        _doc("lex", [0.0, 1.0], content="parse helpers"),
    ]
    store = _store_with(docs)
    reqs = [
        HybridSearchRequest(data=[1.0, 0.0], anns_field="vector", limit=3),
        HybridSearchRequest(data="parse config", anns_field="sparse_vector", limit=3),
    ]

    hits = asyncio.run(store.hybrid_search("c", reqs, HybridSearchOptions(rerank=RerankStrategy("rrf", {"k": 1}))))

    ids = [h.document.id for h in hits]
    assert ids[0] == "both"
    assert set(ids) == {"dense", "both", "lex"}
    scores = [h.score for h in hits]
    assert scores == sorted(scores, reverse=True)


def test_hybrid_search_requires_hybrid_collection():
    store = _store_with([_doc("a", [1.0, 0.0])], hybrid=False)
    reqs = [HybridSearchRequest([1.0, 0.0], "vector"), HybridSearchRequest("q", "sparse_vector")]
    with pytest.raises(RemoteRejected):
        asyncio.run(store.hybrid_search("c", reqs))


def test_collection_limit():
    store = MemoryVectorStore(max_collections=1)

    async def main():
        await store.create_collection("a", 2)
        await store.create_collection("b", 2)

    with pytest.raises(CollectionLimitExceeded):
        asyncio.run(main())


def test_load_is_idempotent():
    store = _store_with([], hybrid=False)
    assert store.load_calls == 1

    store.release_collection("c")

    async def main():
        await asyncio.gather(store.ensure_loaded("c"), store.ensure_loaded("c"))
        await store.ensure_loaded("c")

    asyncio.run(main())
    assert store.load_calls == 2


def test_query_and_delete():
    store = _store_with([_doc("a", [1.0, 0.0]), _doc("b", [0.0, 1.0], path="b.py")], hybrid=False)

    async def main():
        await store.delete("c", ["a"])
        return await store.query("c", "", ["id", "relativePath"])

    assert asyncio.run(main()) == [{"id": "b", "relativePath": "b.py"}]


def test_missing_collection_is_rejected():
    with pytest.raises(RemoteRejected):
        asyncio.run(MemoryVectorStore().search("nope", [1.0]))
