"""VoyageAI embedding backend (REST).

  - POST https://api.voyageai.com/v1/embeddings
    {"model": "...", "input": ["..."], "input_type": "document"|"query"}
  - Response: {"data": [{"embedding": [...], "index": 0}, ...]}

Dimensions come from a static table; no probe call is ever made.
"""

from __future__ import annotations

from typing import Dict, List, Optional

import requests

from ..errors import ConfigurationError, MalformedResponse
from ..http import post_json
from .base import Embedder

DEFAULT_MODEL = "voyage-code-3"
DEFAULT_BASE_URL = "https://api.voyageai.com/v1"
DEFAULT_DIMENSION = 1024
DEFAULT_CONTEXT = 32000

# dimension None means "configurable, 1024 by default"
SUPPORTED_MODELS: Dict[str, dict] = {
    "voyage-3-large": {"dimension": None, "context_length": 32000,
                       "description": "The best general-purpose and multilingual retrieval quality"},
    "voyage-3.5": {"dimension": None, "context_length": 32000,
                   "description": "Optimized for general-purpose and multilingual retrieval quality"},
    "voyage-3.5-lite": {"dimension": None, "context_length": 32000,
                        "description": "Optimized for latency and cost"},
    "voyage-code-3": {"dimension": None, "context_length": 32000,
                      "description": "Optimized for code retrieval (recommended for code)"},
    "voyage-finance-2": {"dimension": 1024, "context_length": 32000,
                         "description": "Optimized for finance retrieval and RAG"},
    "voyage-law-2": {"dimension": 1024, "context_length": 16000,
                     "description": "Optimized for legal retrieval and RAG"},
    "voyage-multilingual-2": {"dimension": 1024, "context_length": 32000,
                              "description": "Legacy: Use voyage-3.5 for multilingual tasks"},
    "voyage-large-2-instruct": {"dimension": 1024, "context_length": 16000,
                                "description": "Legacy: Use voyage-3.5 instead"},
    "voyage-large-2": {"dimension": 1536, "context_length": 16000,
                       "description": "Legacy: Use voyage-3.5 instead"},
    "voyage-code-2": {"dimension": 1536, "context_length": 16000,
                      "description": "Previous generation of code embeddings"},
    "voyage-3": {"dimension": 1024, "context_length": 32000,
                 "description": "Legacy: Use voyage-3.5 instead"},
    "voyage-3-lite": {"dimension": 512, "context_length": 32000,
                      "description": "Legacy: Use voyage-3.5-lite instead"},
    "voyage-2": {"dimension": 1024, "context_length": 4000,
                 "description": "Legacy: Use voyage-3.5-lite instead"},
}

INPUT_TYPES = ("document", "query")


class VoyageAIEmbedder(Embedder):
    """
    Embeddings via the VoyageAI REST API.

    Attributes:
        input_type: "document" when embedding code for indexing, "query" for searches.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        input_type: str = "document",
        timeout: Optional[float] = None,
    ) -> None:
        if not api_key:
            raise ConfigurationError("VoyageAI api key is required (set VOYAGEAI_API_KEY).")
        super().__init__(model or DEFAULT_MODEL)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.set_input_type(input_type)
        self._session = requests.Session()
        self._session.headers.update({"Authorization": f"Bearer {api_key}"})
        self._apply_model_settings()

    def _apply_model_settings(self) -> None:
        info = SUPPORTED_MODELS.get(self.model)
        if info:
            self._dimension = info["dimension"] or DEFAULT_DIMENSION
            self.max_tokens = info["context_length"]
        else:
            self._dimension = DEFAULT_DIMENSION
            self.max_tokens = DEFAULT_CONTEXT

    @staticmethod
    def get_supported_models() -> Dict[str, dict]:
        return dict(SUPPORTED_MODELS)

    def get_provider(self) -> str:
        return "VoyageAI"

    async def close(self) -> None:
        self._session.close()

    def set_model(self, model: str) -> None:
        super().set_model(model)
        self._apply_model_settings()

    def set_input_type(self, input_type: str) -> None:
        if input_type not in INPUT_TYPES:
            raise ValueError(f"input_type must be one of {INPUT_TYPES}, got {input_type!r}")
        self.input_type = input_type

    def get_dimension(self) -> int:
        return self._dimension

    async def detect_dimension(self) -> int:
        return self._dimension

    async def _embed_raw(self, inputs: List[str]) -> List[List[float]]:
        payload = {"model": self.model, "input": inputs, "input_type": self.input_type}
        data = await post_json(self._session, f"{self.base_url}/embeddings", payload, "VoyageAI", timeout=self.timeout)

        items = data.get("data") if isinstance(data, dict) else None
        if not isinstance(items, list):
            raise MalformedResponse("embedding response has no 'data'", source="VoyageAI")
        items = sorted(items, key=lambda it: it.get("index", 0) if isinstance(it, dict) else 0)
        out: List[List[float]] = []
        for it in items:
            emb = it.get("embedding") if isinstance(it, dict) else None
            if not isinstance(emb, list):
                raise MalformedResponse("embedding item has no 'embedding'", source="VoyageAI")
            out.append(emb)
        return out
