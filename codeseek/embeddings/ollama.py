"""
Ollama embedding backend.

This embedder calls the local Ollama HTTP API to produce embeddings.

Newer Ollama endpoint:
  - POST /api/embed with {"model": "...", "input": ["...","..."]}
  - Response: {"embeddings": [[...], ...]}

Legacy endpoint (used when /api/embed answers 404):
  - POST /api/embeddings with {"model": "...", "prompt": "..."}
  - Response: {"embedding": [...]}

The dimension is probed from the server unless given explicitly.

Env vars:
  - OLLAMA_HOST (default http://127.0.0.1:11434)
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional, Union

import requests

from ..errors import MalformedResponse, RemoteUnavailable
from ..http import post_json
from .base import Embedder, EmbeddingVector

logger = logging.getLogger(__name__)

DEFAULT_HOST = "http://127.0.0.1:11434"
DEFAULT_DIMENSION = 768

# Context sizes of popular embedding models; anything else gets 2048.
_LONG_CONTEXT_MODELS = ("nomic-embed-text", "snowflake-arctic-embed")


def _default_max_tokens(model: str) -> int:
    if any(name in (model or "") for name in _LONG_CONTEXT_MODELS):
        return 8192
    return 2048


class OllamaEmbedder(Embedder):
    """
    Compute embeddings via Ollama's HTTP API.

    Attributes:
        host: Ollama base URL.
        model: Embedding model name.
        keep_alive: How long Ollama keeps the model loaded ("5m", 300, ...).
        options: Extra model options forwarded as-is.
        timeout: HTTP timeout seconds.
    """

    def __init__(
        self,
        model: str = "nomic-embed-text",
        host: Optional[str] = None,
        dimension: Optional[int] = None,
        max_tokens: Optional[int] = None,
        keep_alive: Union[str, int, None] = None,
        options: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> None:
        super().__init__(model)
        self.host = (host or os.getenv("OLLAMA_HOST") or DEFAULT_HOST).rstrip("/")
        self.keep_alive = keep_alive
        self.options = options
        self.timeout = timeout
        self._fixed_dimension = dimension
        self._fixed_max_tokens = max_tokens
        self.max_tokens = max_tokens or _default_max_tokens(model)
        self._session = requests.Session()

    def get_provider(self) -> str:
        return "Ollama"

    async def close(self) -> None:
        self._session.close()

    def set_model(self, model: str) -> None:
        super().set_model(model)
        if not self._fixed_max_tokens:
            self.max_tokens = _default_max_tokens(model)

    def set_host(self, host: str) -> None:
        self.host = host.rstrip("/")

    def set_keep_alive(self, keep_alive: Union[str, int]) -> None:
        self.keep_alive = keep_alive

    def set_options(self, options: Dict[str, Any]) -> None:
        self.options = options

    def set_max_tokens(self, max_tokens: int) -> None:
        self._fixed_max_tokens = max_tokens
        self.max_tokens = max_tokens

    def get_dimension(self) -> int:
        if self._fixed_dimension:
            return self._fixed_dimension
        return self._probed_dimension() or DEFAULT_DIMENSION

    async def detect_dimension(self) -> int:
        if self._fixed_dimension:
            return self._fixed_dimension
        return await self._probe_dimension()

    async def embed(self, text: str) -> EmbeddingVector:
        await self.detect_dimension()
        return await super().embed(text)

    async def embed_batch(self, texts: List[str]) -> List[EmbeddingVector]:
        if texts:
            await self.detect_dimension()
        return await super().embed_batch(texts)

    def _payload(self, inputs: Union[str, List[str]], key: str = "input") -> Dict[str, Any]:
        payload: Dict[str, Any] = {"model": self.model, key: inputs}
        if self.options:
            payload["options"] = self.options
        if self.keep_alive not in (None, ""):
            payload["keep_alive"] = self.keep_alive
        return payload

    @staticmethod
    def _extract_embeddings(data: Any) -> Optional[List[List[float]]]:
        """
        Extract embeddings from Ollama response JSON.

        Args:
            data: Parsed JSON.

        Returns:
            List of embeddings or None.
        """
        if not isinstance(data, dict):
            return None

        embs = data.get("embeddings")
        if isinstance(embs, list) and all(isinstance(x, list) for x in embs):
            return embs

        one = data.get("embedding")
        if isinstance(one, list) and one:
            return [one]

        return None

    async def _embed_raw(self, inputs: List[str]) -> List[List[float]]:
        try:
            data = await post_json(
                self._session, f"{self.host}/api/embed", self._payload(inputs), "Ollama", timeout=self.timeout
            )
        except RemoteUnavailable as e:
            if e.status_code != 404:
                raise
            logger.debug("Ollama /api/embed not available, falling back to /api/embeddings")
            return await self._embed_legacy(inputs)

        embs = self._extract_embeddings(data)
        if embs is None:
            raise MalformedResponse("Ollama /api/embed response has no 'embeddings'", source="Ollama")
        return embs

    async def _embed_legacy(self, inputs: List[str]) -> List[List[float]]:
        out: List[List[float]] = []
        for text in inputs:
            data = await post_json(
                self._session,
                f"{self.host}/api/embeddings",
                self._payload(text, key="prompt"),
                "Ollama",
                timeout=self.timeout,
            )
            embs = self._extract_embeddings(data)
            if not embs or not embs[0]:
                raise MalformedResponse("Ollama returned an empty embedding vector", source="Ollama")
            out.append(embs[0])
        return out
