"""Embedding backends."""

from .base import Embedder, EmbeddingVector
from .gemini import GeminiEmbedder
from .ollama import OllamaEmbedder
from .openai import OpenAIEmbedder
from .voyageai import VoyageAIEmbedder

__all__ = [
    "Embedder",
    "EmbeddingVector",
    "GeminiEmbedder",
    "OllamaEmbedder",
    "OpenAIEmbedder",
    "VoyageAIEmbedder",
]
