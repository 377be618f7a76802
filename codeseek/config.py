"""Configuration models and loading.

This module centralizes:
  - Vector store connection options
  - Embedding provider selection
  - Search defaults (top_k, threshold, hybrid mode, RRF constant)

Precedence (lowest to highest):
  1) Built-in defaults
  2) `.codeseek/settings.json` under the project root
  3) Environment variables (a `.env` file is loaded first)

Terminology:
  - Context: a named index of one codebase; its name is part of the
    collection name.
  - Hybrid mode: dense + BM25 search fused with Reciprocal Rank Fusion.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_FILE = Path(".codeseek") / "settings.json"
HYBRID_MODE_ENV = ("CODESEEK_HYBRID_MODE", "HYBRID_MODE")

PROVIDER_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "voyageai": "VOYAGEAI_API_KEY",
    "gemini": "GEMINI_API_KEY",
}


def resolve_hybrid_mode(value: Optional[bool] = None) -> bool:
    """
    Decide whether search runs in hybrid mode.

    Args:
        value: Explicit choice. None falls back to the environment.

    Returns:
        The explicit value if given; otherwise False only when
        CODESEEK_HYBRID_MODE (or HYBRID_MODE) is "false" (case-insensitive),
        True in every other case including unset.
    """
    if value is not None:
        return bool(value)
    for name in HYBRID_MODE_ENV:
        raw = os.getenv(name)
        if raw is not None:
            return raw.strip().lower() != "false"
    return True


@dataclass
class StoreOptions:
    """Milvus / Zilliz REST connection."""

    address: Optional[str] = None
    token: Optional[str] = None
    database: Optional[str] = None
    timeout: Optional[float] = None


@dataclass
class EmbeddingOptions:
    """Embedding backend selection."""

    provider: str = "openai"  # "openai" | "voyageai" | "gemini" | "ollama" | "sbert"
    model: Optional[str] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    host: Optional[str] = None
    dimension: Optional[int] = None


@dataclass
class SearchDefaults:
    """Defaults applied when a search call does not override them."""

    top_k: int = 5
    threshold: float = 0.5
    hybrid_mode: Optional[bool] = None
    rrf_k: int = 100


@dataclass
class Settings:
    """All runtime settings."""

    name: str = "codeseek"
    store: StoreOptions = field(default_factory=StoreOptions)
    embedding: EmbeddingOptions = field(default_factory=EmbeddingOptions)
    search: SearchDefaults = field(default_factory=SearchDefaults)


def _read_settings_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable settings file %s: %s", path, e)
        return {}
    return payload if isinstance(payload, dict) else {}


def _apply_settings(settings: Settings, payload: Dict[str, Any]) -> None:
    if isinstance(payload.get("name"), str):
        settings.name = payload["name"]

    store = payload.get("store")
    if isinstance(store, dict):
        for key in ("address", "token", "database"):
            if isinstance(store.get(key), str):
                setattr(settings.store, key, store[key])
        if isinstance(store.get("timeout"), (int, float)):
            settings.store.timeout = float(store["timeout"])

    emb = payload.get("embedding")
    if isinstance(emb, dict):
        for key in ("provider", "model", "api_key", "base_url", "host"):
            if isinstance(emb.get(key), str):
                setattr(settings.embedding, key, emb[key])
        if isinstance(emb.get("dimension"), int):
            settings.embedding.dimension = emb["dimension"]

    search = payload.get("search")
    if isinstance(search, dict):
        if isinstance(search.get("top_k"), int):
            settings.search.top_k = search["top_k"]
        if isinstance(search.get("threshold"), (int, float)):
            settings.search.threshold = float(search["threshold"])
        if isinstance(search.get("hybrid_mode"), bool):
            settings.search.hybrid_mode = search["hybrid_mode"]
        if isinstance(search.get("rrf_k"), int):
            settings.search.rrf_k = search["rrf_k"]


def _apply_env(settings: Settings) -> None:
    env = os.environ
    if env.get("MILVUS_ADDRESS"):
        settings.store.address = env["MILVUS_ADDRESS"]
    if env.get("MILVUS_TOKEN"):
        settings.store.token = env["MILVUS_TOKEN"]
    if env.get("MILVUS_DATABASE"):
        settings.store.database = env["MILVUS_DATABASE"]
    if env.get("CODESEEK_CONTEXT_NAME"):
        settings.name = env["CODESEEK_CONTEXT_NAME"]

    if env.get("CODESEEK_EMBEDDER"):
        settings.embedding.provider = env["CODESEEK_EMBEDDER"].strip().lower()
    if env.get("CODESEEK_EMBED_MODEL"):
        settings.embedding.model = env["CODESEEK_EMBED_MODEL"]
    if env.get("OLLAMA_HOST"):
        settings.embedding.host = env["OLLAMA_HOST"]

    key_env = PROVIDER_KEY_ENV.get(settings.embedding.provider)
    if key_env and env.get(key_env):
        settings.embedding.api_key = env[key_env]

    if any(env.get(name) is not None for name in HYBRID_MODE_ENV):
        settings.search.hybrid_mode = resolve_hybrid_mode()


def load_settings(root: Optional[Path] = None, dotenv: bool = True) -> Settings:
    """Load settings for a project root.

    Args:
        root: Directory holding `.codeseek/settings.json` (default: cwd).
        dotenv: Load a `.env` file into the environment first.

    Returns:
        Settings with defaults overridden by the settings file and environment.
    """
    root = Path(root) if root else Path.cwd()
    if dotenv:
        load_dotenv(root / ".env", override=False)

    settings = Settings()
    _apply_settings(settings, _read_settings_file(root / DEFAULT_SETTINGS_FILE))
    _apply_env(settings)
    return settings
