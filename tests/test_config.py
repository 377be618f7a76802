from __future__ import annotations

import json

import pytest

from codeseek.config import DEFAULT_SETTINGS_FILE, load_settings, resolve_hybrid_mode

ENV_VARS = [
    "MILVUS_ADDRESS",
    "MILVUS_TOKEN",
    "MILVUS_DATABASE",
    "CODESEEK_EMBEDDER",
    "CODESEEK_EMBED_MODEL",
    "CODESEEK_CONTEXT_NAME",
    "OPENAI_API_KEY",
    "VOYAGEAI_API_KEY",
    "GEMINI_API_KEY",
    "OLLAMA_HOST",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def _write_settings(root, payload):
    path = root / DEFAULT_SETTINGS_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload) if not isinstance(payload, str) else payload, encoding="utf-8")


def test_defaults(tmp_path):
    s = load_settings(tmp_path)
    assert s.name == "codeseek"
    assert s.embedding.provider == "openai"
    assert s.search.top_k == 5
    assert s.search.threshold == 0.5
    assert s.search.rrf_k == 100
    assert s.search.hybrid_mode is None
    assert s.store.address is None


def test_settings_file_is_applied_field_by_field(tmp_path):
    _write_settings(
        tmp_path,
        {
            "name": "backend",
            "store": {"address": "milvus.local:19530", "timeout": 5},
            "embedding": {"provider": "ollama", "model": "nomic-embed-text", "dimension": "768"},
            "search": {"top_k": 10, "hybrid_mode": False, "rrf_k": 60},
        },
    )

    s = load_settings(tmp_path)

    assert s.name == "backend"
    assert s.store.address == "milvus.local:19530"
    assert s.store.timeout == 5.0
    assert s.embedding.provider == "ollama"
    # wrong type, ignored
    assert s.embedding.dimension is None
    assert s.search.top_k == 10
    assert s.search.hybrid_mode is False
    assert s.search.rrf_k == 60


def test_unreadable_settings_file_is_ignored(tmp_path):
    _write_settings(tmp_path, "{not json")
    assert load_settings(tmp_path).name == "codeseek"


def test_env_overrides_file(tmp_path, monkeypatch):
    _write_settings(tmp_path, {"store": {"address": "from-file"}, "embedding": {"provider": "openai"}})
    monkeypatch.setenv("MILVUS_ADDRESS", "from-env")
    monkeypatch.setenv("MILVUS_TOKEN", "tok")
    monkeypatch.setenv("CODESEEK_EMBEDDER", "VoyageAI")
    monkeypatch.setenv("VOYAGEAI_API_KEY", "vk")
    monkeypatch.setenv("OPENAI_API_KEY", "ok")
    monkeypatch.setenv("HYBRID_MODE", "false")

    s = load_settings(tmp_path)

    assert s.store.address == "from-env"
    assert s.store.token == "tok"
    assert s.embedding.provider == "voyageai"
    assert s.embedding.api_key == "vk"
    assert s.search.hybrid_mode is False


def test_dotenv_file_is_loaded(tmp_path, monkeypatch):
    # Register the variable with monkeypatch so the value dotenv sets is undone afterwards.
    monkeypatch.setenv("MILVUS_TOKEN", "placeholder")
    monkeypatch.delenv("MILVUS_TOKEN")
    (tmp_path / ".env").write_text("MILVUS_TOKEN=dotenv-token\n", encoding="utf-8")

    s = load_settings(tmp_path)

    assert s.store.token == "dotenv-token"


def test_resolve_hybrid_mode(monkeypatch):
    assert resolve_hybrid_mode() is True
    assert resolve_hybrid_mode(False) is False
    monkeypatch.setenv("CODESEEK_HYBRID_MODE", "False")
    assert resolve_hybrid_mode() is False
    assert resolve_hybrid_mode(True) is True
    monkeypatch.setenv("CODESEEK_HYBRID_MODE", "no")
    assert resolve_hybrid_mode() is True
