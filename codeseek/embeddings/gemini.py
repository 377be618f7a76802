"""Gemini embedding backend (REST).

  - POST {base_url}/models/{model}:batchEmbedContents (x-goog-api-key header)
    {"requests": [{"model": "models/...", "content": {"parts": [{"text": "..."}]},
                   "outputDimensionality": 3072}, ...]}
  - Response: {"embeddings": [{"values": [...]}, ...]}
"""

from __future__ import annotations

from typing import Dict, List, Optional

import requests

from ..errors import ConfigurationError, MalformedResponse
from ..http import post_json
from .base import Embedder

DEFAULT_MODEL = "gemini-embedding-001"
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_DIMENSION = 3072
DEFAULT_CONTEXT = 2048

SUPPORTED_MODELS: Dict[str, dict] = {
    "gemini-embedding-001": {
        "dimension": 3072,
        "context_length": 2048,
        "description": "Latest Gemini embedding model with state-of-the-art performance (recommended)",
        "supported_dimensions": [3072, 1536, 768, 256],
    },
}


class GeminiEmbedder(Embedder):
    """Embeddings via the Gemini API, with optional output dimensionality."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: Optional[str] = None,
        output_dimensionality: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> None:
        if not api_key:
            raise ConfigurationError("Gemini api key is required (set GEMINI_API_KEY).")
        super().__init__(model or DEFAULT_MODEL)
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.timeout = timeout
        self.output_dimensionality = output_dimensionality
        self._session = requests.Session()
        self._session.headers.update({"x-goog-api-key": api_key})
        self._apply_model_settings()

    def _apply_model_settings(self) -> None:
        info = SUPPORTED_MODELS.get(self.model)
        self._dimension = info["dimension"] if info else DEFAULT_DIMENSION
        self.max_tokens = info["context_length"] if info else DEFAULT_CONTEXT
        if self.output_dimensionality:
            self._dimension = self.output_dimensionality

    @staticmethod
    def get_supported_models() -> Dict[str, dict]:
        return dict(SUPPORTED_MODELS)

    def get_provider(self) -> str:
        return "Gemini"

    async def close(self) -> None:
        self._session.close()

    def set_model(self, model: str) -> None:
        super().set_model(model)
        self._apply_model_settings()

    def set_output_dimensionality(self, dimension: int) -> None:
        self.output_dimensionality = dimension
        self._dimension = dimension

    def get_supported_dimensions(self) -> List[int]:
        info = SUPPORTED_MODELS.get(self.model)
        if info:
            return list(info["supported_dimensions"])
        return [self._dimension]

    def is_dimension_supported(self, dimension: int) -> bool:
        return dimension in self.get_supported_dimensions()

    def get_dimension(self) -> int:
        return self._dimension

    async def detect_dimension(self) -> int:
        return self._dimension

    async def _embed_raw(self, inputs: List[str]) -> List[List[float]]:
        model_ref = f"models/{self.model}"
        payload = {
            "requests": [
                {
                    "model": model_ref,
                    "content": {"parts": [{"text": t}]},
                    "outputDimensionality": self._dimension,
                }
                for t in inputs
            ]
        }
        url = f"{self.base_url}/{model_ref}:batchEmbedContents"
        data = await post_json(self._session, url, payload, "Gemini", timeout=self.timeout)

        embs = data.get("embeddings") if isinstance(data, dict) else None
        if not isinstance(embs, list):
            raise MalformedResponse("embedding response has no 'embeddings'", source="Gemini")
        out: List[List[float]] = []
        for e in embs:
            values = e.get("values") if isinstance(e, dict) else None
            if not isinstance(values, list):
                raise MalformedResponse("embedding item has no 'values'", source="Gemini")
            out.append(values)
        return out
