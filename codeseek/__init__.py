"""Codeseek package.

Codeseek runs semantic search over an indexed codebase:
  1) Dense search: query embedding vs. chunk embeddings
  2) Hybrid search: dense + BM25 channels fused with Reciprocal Rank Fusion

Entry points:
  - Library: `codeseek.rag.search.SearchContext`
  - CLI: `codeseek`
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
