"""Retrieval: rank fusion, lexical scoring and the search orchestrator."""
