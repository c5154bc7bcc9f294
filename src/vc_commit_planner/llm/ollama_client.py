"""
Client for the embeddings endpoint of an Ollama server.

The embedding-cluster grouping strategy turns a short textual summary of
each change into a vector through ``POST /api/embeddings``. On error
conditions (HTTP errors, timeouts, malformed payloads) a :class:`LLMError`
is raised and the caller falls back to heuristic grouping.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

import requests


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())


class LLMError(Exception):
    """Raised when communication with the Ollama server fails."""

    pass


@dataclass
class OllamaClient:
    """Client for interacting with an Ollama server.

    Parameters
    ----------
    base_url : str
        Base URL of the Ollama server, e.g. ``"http://localhost"``.
    port : int
        Port number of the Ollama server, e.g. ``11434``.
    model : str
        Name of the embedding model, e.g. ``"nomic-embed-text"``.
    request_timeout : float, optional
        Timeout in seconds for HTTP requests. Defaults to 30 seconds.
    """

    base_url: str
    port: int
    model: str
    request_timeout: float = 30.0

    def _endpoint(self) -> str:
        return f"{self.base_url}:{self.port}/api/embeddings"

    def embed(self, text: str) -> List[float]:
        """Return the embedding vector of ``text``.

        Raises
        ------
        LLMError
            If the request fails or the server returns no usable vector.
        """
        payload: Dict[str, Any] = {"model": self.model, "prompt": text}
        url = self._endpoint()
        logger.debug("Requesting embedding from %s (%d chars)", url, len(text))
        try:
            response = requests.post(url, json=payload, timeout=self.request_timeout)
        except requests.RequestException as exc:
            logger.error("Failed to connect to Ollama: %s", exc)
            raise LLMError(str(exc)) from exc
        if response.status_code != 200:
            logger.error("Ollama returned non-200 status %s: %s", response.status_code, response.text)
            raise LLMError(f"Ollama returned status {response.status_code}: {response.text}")
        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError) as exc:
            logger.error("Failed to parse Ollama response: %s", exc)
            raise LLMError("Failed to parse Ollama response") from exc

        vector = data.get("embedding") if isinstance(data, dict) else None
        if not isinstance(vector, list) or not vector:
            raise LLMError("Unexpected response structure from Ollama")
        try:
            return [float(value) for value in vector]
        except (TypeError, ValueError) as exc:
            raise LLMError("Embedding contains non-numeric values") from exc

    def embed_many(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed each text in order; all vectors must share one dimension."""
        vectors = [self.embed(text) for text in texts]
        if len({len(vector) for vector in vectors}) > 1:
            raise LLMError("Ollama returned embeddings of inconsistent dimensions")
        return vectors
