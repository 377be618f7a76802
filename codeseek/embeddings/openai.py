"""OpenAI embedding backend.

Known models resolve their dimension from a static table; any other model
(e.g. behind an OpenAI-compatible `base_url`) is probed once.
"""

from __future__ import annotations

from typing import Dict, List, Optional

import openai

from ..errors import ConfigurationError, MalformedResponse, RemoteTimeout, RemoteUnavailable
from .base import Embedder

DEFAULT_MODEL = "text-embedding-3-small"
DEFAULT_DIMENSION = 1536

SUPPORTED_MODELS: Dict[str, dict] = {
    "text-embedding-3-small": {
        "dimension": 1536,
        "description": "High performance and cost-effective embedding model (recommended)",
    },
    "text-embedding-3-large": {
        "dimension": 3072,
        "description": "Highest performance embedding model with larger dimensions",
    },
    "text-embedding-ada-002": {
        "dimension": 1536,
        "description": "Legacy model (use text-embedding-3-small instead)",
    },
}


class OpenAIEmbedder(Embedder):
    """
    Embeddings via the OpenAI API (`openai.AsyncOpenAI`).

    Attributes:
        model: Embedding model name.
        client: Async OpenAI client.
    """

    max_tokens = 8192

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[openai.AsyncOpenAI] = None,
    ) -> None:
        """
        Initialize the embedder.

        Args:
            api_key: OpenAI API key.
            model: Embedding model name.
            base_url: Optional base URL for OpenAI-compatible APIs.
            timeout: Request timeout in seconds (SDK default when None).
            client: Pre-built client (tests, custom transports).

        Raises:
            ConfigurationError: If no api key and no client is given.
        """
        super().__init__(model or DEFAULT_MODEL)
        if client is None:
            if not api_key:
                raise ConfigurationError("OpenAI api key is required (set OPENAI_API_KEY).")
            kwargs = {"api_key": api_key, "base_url": base_url}
            if timeout is not None:
                kwargs["timeout"] = timeout
            client = openai.AsyncOpenAI(**kwargs)
        self.client = client

    @staticmethod
    def get_supported_models() -> Dict[str, dict]:
        return dict(SUPPORTED_MODELS)

    def get_provider(self) -> str:
        return "OpenAI"

    async def close(self) -> None:
        await self.client.close()

    def get_dimension(self) -> int:
        known = SUPPORTED_MODELS.get(self.model)
        if known:
            return known["dimension"]
        return self._probed_dimension() or DEFAULT_DIMENSION

    async def detect_dimension(self) -> int:
        known = SUPPORTED_MODELS.get(self.model)
        if known:
            return known["dimension"]
        return await self._probe_dimension()

    async def _embed_raw(self, inputs: List[str]) -> List[List[float]]:
        try:
            response = await self.client.embeddings.create(
                model=self.model,
                input=inputs,
                encoding_format="float",
            )
        except openai.APITimeoutError as e:
            raise RemoteTimeout(f"embedding request timed out: {e}", "OpenAI", original_error=e) from e
        except openai.APIStatusError as e:
            raise RemoteUnavailable(
                f"embedding request failed: {e.message}", "OpenAI", status_code=e.status_code, original_error=e
            ) from e
        except openai.APIConnectionError as e:
            raise RemoteUnavailable(f"embedding request failed: {e}", "OpenAI", original_error=e) from e

        data = getattr(response, "data", None)
        if not data:
            raise MalformedResponse("embedding response has no 'data'", source="OpenAI")
        # The API may return items out of order; `index` ties them to inputs.
        items = sorted(data, key=lambda item: getattr(item, "index", 0))
        return [list(item.embedding or []) for item in items]
