from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from codeseek import cli_actions
from codeseek.cli import app
from codeseek.config import Settings
from codeseek.embeddings.ollama import OllamaEmbedder
from codeseek.errors import ConfigurationError, RemoteUnavailable
from codeseek.vectordb.base import VectorDocument
from codeseek.vectordb.memory import MemoryVectorStore

from .test_search_context import KeywordEmbedder

runner = CliRunner()


@pytest.fixture
def store():
    s = MemoryVectorStore()
    doc = VectorDocument("1", [1.0, 0.0], "def open_socket(): ...", "net/socket.py", 4, 9, ".py", {"language": "python"})

    async def setup():
        await s.create_collection("code_chunks_proj", 2)
        await s.insert("code_chunks_proj", [doc])

    asyncio.run(setup())
    return s


@pytest.fixture
def backends(store, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with patch.object(cli_actions, "_make_store", return_value=store), patch.object(
        cli_actions, "_make_embedder", return_value=KeywordEmbedder()
    ):
        yield store


def test_search_json(backends):
    result = runner.invoke(app, ["search", "socket", "--dense", "--name", "proj", "--json", "--threshold", "0.2"])

    assert result.exit_code == 0, result.output
    rows = json.loads(result.output)
    assert rows[0]["relativePath"] == "net/socket.py"
    assert rows[0]["startLine"] == 4
    assert rows[0]["language"] == "python"


def test_search_table(backends):
    result = runner.invoke(app, ["search", "socket", "--dense", "--name", "proj"], env={"COLUMNS": "200"})

    assert result.exit_code == 0, result.output
    assert "net/socket.py:4-9" in result.output


def test_search_missing_index(backends):
    result = runner.invoke(app, ["search", "socket", "--hybrid", "--name", "proj"])

    assert result.exit_code == 0, result.output
    assert "No results" in result.output


def test_status(backends):
    result = runner.invoke(app, ["status", "--dense", "--name", "proj"])

    assert result.exit_code == 0, result.output
    assert "code_chunks_proj" in result.output
    assert "present" in result.output


def test_collections_and_drop(backends):
    listed = runner.invoke(app, ["collections"])
    assert "code_chunks_proj" in listed.output

    declined = runner.invoke(app, ["drop", "code_chunks_proj"], input="n\n")
    assert declined.exit_code != 0
    assert asyncio.run(backends.has_collection("code_chunks_proj"))

    dropped = runner.invoke(app, ["drop", "code_chunks_proj", "--yes"])
    assert dropped.exit_code == 0, dropped.output
    assert not asyncio.run(backends.has_collection("code_chunks_proj"))


def test_configuration_error_exits_cleanly(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with patch.object(cli_actions, "_make_store", side_effect=ConfigurationError("Vector store token is required")):
        result = runner.invoke(app, ["collections"])

    assert result.exit_code == 1
    assert "token is required" in result.output


def test_make_embedder_selects_provider():
    settings = Settings()
    settings.embedding.provider = "ollama"
    settings.embedding.model = "all-minilm"
    settings.embedding.host = "http://gpu-box:11434"

    e = cli_actions._make_embedder(settings)

    assert isinstance(e, OllamaEmbedder)
    assert e.model == "all-minilm"
    assert e.host == "http://gpu-box:11434"


def test_make_embedder_requires_api_key():
    settings = Settings()
    settings.embedding.provider = "gemini"
    with pytest.raises(ConfigurationError):
        cli_actions._make_embedder(settings)


@pytest.mark.parametrize("fails", [False, True])
def test_search_closes_embedder_and_store(store, tmp_path, monkeypatch, fails):
    monkeypatch.chdir(tmp_path)
    embedder = KeywordEmbedder()
    embedder.close = AsyncMock()
    if fails:
        embedder._embed_raw = AsyncMock(side_effect=RemoteUnavailable("connection refused", "Keyword"))
    store.close = MagicMock()

    with patch.object(cli_actions, "_make_store", return_value=store), patch.object(
        cli_actions, "_make_embedder", return_value=embedder
    ):
        result = runner.invoke(app, ["search", "socket", "--dense", "--name", "proj", "--json"])

    assert result.exit_code == (1 if fails else 0), result.output
    embedder.close.assert_awaited_once()
    store.close.assert_called_once()


def test_sbert_without_package_is_a_configuration_error():
    settings = Settings()
    settings.embedding.provider = "sbert"
    with patch.dict("sys.modules", {"sentence_transformers": None}):
        with pytest.raises(ConfigurationError, match="sentence-transformers"):
            cli_actions._make_embedder(settings)
