"""Embedding interfaces.

An embedder turns text into fixed-length vectors. Every backend shares:
  - input pre-processing (sanitize + truncate to the model's input budget)
  - dimension resolution, either from a static per-model table or by probing
    the backend once and memoizing the measured length
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..errors import MalformedResponse
from ..memo import AsyncOnce

logger = logging.getLogger(__name__)

# Rough characters-per-token ratio used to turn a token budget into a char budget.
CHARS_PER_TOKEN = 4


@dataclass
class EmbeddingVector:
    """An embedding and its length.

    Attributes:
        vector: The embedding values.
        dimension: Always `len(vector)`.
    """

    vector: List[float]
    dimension: int

    @classmethod
    def of(cls, values: Sequence[float]) -> "EmbeddingVector":
        vec = [float(x) for x in values]
        return cls(vector=vec, dimension=len(vec))


def _sanitize_text(s: str) -> str:
    """
    Sanitize text to reduce embedding backend crashes.

    Args:
        s: Any object convertible to str.

    Returns:
        Cleaned string.
    """
    if not isinstance(s, str):
        s = str(s)

    # NULs crash some tokenizers
    s = s.replace("\x00", "")
    return s.replace("\r\n", "\n").replace("\r", "\n")


class Embedder:
    """
    Embedder interface for turning text into vectors.

    Subclasses implement `embed`, `embed_batch`, `detect_dimension`,
    `get_dimension` and `get_provider`. Backends whose dimension is not known
    up front call `_probe_dimension()` from `detect_dimension`; the probe runs
    at most once per model setting, even under concurrent first use.

    Attributes:
        model: Model name sent to the backend.
        max_tokens: Input budget in tokens for the current model.
    """

    max_tokens: int = 8192

    def __init__(self, model: str) -> None:
        self.model = model
        self._dimension_memo: AsyncOnce[int] = AsyncOnce(self._measure_dimension)

    # -- pre-processing -------------------------------------------------

    def preprocess_text(self, text: str) -> str:
        """
        Normalize one input for the backend.

        Empty input becomes a single space (most APIs reject empty strings),
        long input is cut to `max_tokens * CHARS_PER_TOKEN` characters.
        """
        t = _sanitize_text(text)
        if t == "":
            return " "
        max_chars = self.max_tokens * CHARS_PER_TOKEN
        if max_chars > 0 and len(t) > max_chars:
            t = t[:max_chars]
        return t

    def preprocess_texts(self, texts: Sequence[str]) -> List[str]:
        return [self.preprocess_text(t) for t in texts]

    # -- interface ------------------------------------------------------

    async def embed(self, text: str) -> EmbeddingVector:
        """
        Embed a single text.

        Args:
            text: Input string.

        Returns:
            EmbeddingVector for `text`.

        Raises:
            RemoteUnavailable: If the backend cannot be reached.
            MalformedResponse: If the backend answered without a vector.
        """
        vecs = await self._embed_raw([self.preprocess_text(text)])
        return EmbeddingVector.of(self._check_batch(vecs, 1)[0])

    async def embed_batch(self, texts: List[str]) -> List[EmbeddingVector]:
        """
        Embed many texts in one call.

        Args:
            texts: Input strings.

        Returns:
            List aligned to `texts`: result[i] embeds texts[i].

        Raises:
            RemoteUnavailable: If the backend cannot be reached.
            MalformedResponse: If the backend returned the wrong number of vectors.
        """
        if not texts:
            return []
        processed = self.preprocess_texts(texts)
        vecs = self._check_batch(await self._embed_raw(processed), len(processed))
        return [EmbeddingVector.of(v) for v in vecs]

    async def detect_dimension(self) -> int:
        """Resolve the vector length for the current model."""
        raise NotImplementedError

    def get_dimension(self) -> int:
        """Best known vector length. Never performs I/O."""
        raise NotImplementedError

    def get_provider(self) -> str:
        """Human readable backend name, e.g. "OpenAI"."""
        raise NotImplementedError

    def set_model(self, model: str) -> None:
        """Switch model; a previously probed dimension is forgotten."""
        self.model = model
        self._dimension_memo.reset()

    async def close(self) -> None:
        """Release client resources (HTTP sessions). Safe to call more than once."""
        return None

    # -- dimension probing ----------------------------------------------

    async def _probe_dimension(self) -> int:
        return await self._dimension_memo.get()

    def _probed_dimension(self) -> Optional[int]:
        return self._dimension_memo.peek()

    async def _measure_dimension(self) -> int:
        model = self.model
        logger.debug("Probing embedding dimension for %s model %s", self.get_provider(), model)
        vecs = self._check_batch(await self._embed_raw([self.preprocess_text("test")]), 1)
        dimension = len(vecs[0])
        logger.info("Detected %s embedding dimension %d for model %s", self.get_provider(), dimension, model)
        return dimension

    async def _embed_raw(self, inputs: List[str]) -> List[List[float]]:
        """Backend call shared by probing and embedding. Inputs are pre-processed."""
        raise NotImplementedError

    # -- helpers for subclasses -----------------------------------------

    def _check_batch(self, vectors: Optional[List[List[float]]], expected: int) -> List[List[float]]:
        """Validate a backend batch: one non-empty vector per input."""
        if not isinstance(vectors, list) or len(vectors) != expected:
            got = len(vectors) if isinstance(vectors, list) else "no"
            raise MalformedResponse(
                f"expected {expected} embeddings, got {got}",
                source=self.get_provider(),
            )
        for v in vectors:
            if not isinstance(v, list) or not v:
                raise MalformedResponse("response contained an empty embedding vector", source=self.get_provider())
        return vectors
