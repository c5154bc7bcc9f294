"""
Language model integration for vc_commit_planner.

This package contains the :class:`OllamaClient` used by the
embedding-cluster grouping strategy to vectorize change summaries.
"""

from .ollama_client import OllamaClient, LLMError  # noqa: F401
