"""SentenceTransformers embedding backend (optional, runs locally)."""

from __future__ import annotations

import asyncio
from typing import List

from ..errors import ConfigurationError
from .base import Embedder


def _load_model(model_name: str):
    try:
        from sentence_transformers import SentenceTransformer  # type: ignore
    except ImportError as e:
        raise ConfigurationError("sentence-transformers is not installed. Install with `pip install codeseek[st]`.") from e
    return SentenceTransformer(model_name)


class SentenceTransformersEmbedder(Embedder):
    """
    Embeddings via `sentence-transformers`.

    The dimension is read from the loaded model, so no probe call is needed.
    """

    max_tokens = 512

    def __init__(self, model_name: str = "intfloat/e5-small-v2") -> None:
        """
        Initialize the embedder.

        Args:
            model_name: HuggingFace model id.

        Raises:
            ConfigurationError: If sentence-transformers is not installed.
        """
        super().__init__(model_name)
        self._model = _load_model(model_name)

    def get_provider(self) -> str:
        return "SentenceTransformers"

    def set_model(self, model: str) -> None:
        super().set_model(model)
        self._model = _load_model(model)

    def get_dimension(self) -> int:
        return int(self._model.get_sentence_embedding_dimension())

    async def detect_dimension(self) -> int:
        return self.get_dimension()

    async def _embed_raw(self, inputs: List[str]) -> List[List[float]]:
        vecs = await asyncio.to_thread(self._model.encode, inputs, normalize_embeddings=True)
        return vecs.tolist()
