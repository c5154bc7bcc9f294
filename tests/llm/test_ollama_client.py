import json
import unittest
from types import SimpleNamespace
from unittest.mock import patch

import requests

from vc_commit_planner.llm.ollama_client import LLMError, OllamaClient


class DummyResponse(SimpleNamespace):
    def json(self):
        return json.loads(self.text)


def _client():
    return OllamaClient("http://localhost", 11434, "nomic-embed-text", request_timeout=5)


class TestOllamaClient(unittest.TestCase):
    def test_embed_success(self) -> None:
        seen = {}

        def fake_post(url, *_args, **kwargs):
            seen["url"] = url
            seen.update(kwargs)
            return DummyResponse(status_code=200, text=json.dumps({"embedding": [1, 0.5, -2]}))

        with patch("requests.post", fake_post):
            vector = _client().embed("path: auth/login.py")
        self.assertEqual(vector, [1.0, 0.5, -2.0])
        self.assertEqual(seen["url"], "http://localhost:11434/api/embeddings")
        self.assertEqual(seen["json"], {"model": "nomic-embed-text", "prompt": "path: auth/login.py"})
        self.assertEqual(seen["timeout"], 5)

    def test_embed_error_status(self) -> None:
        def fake_post(url, *_args, **kwargs):
            return DummyResponse(status_code=500, text="Internal error")

        with patch("requests.post", fake_post):
            with self.assertRaises(LLMError) as ctx:
                _client().embed("text")
        self.assertIn("500", str(ctx.exception))

    def test_embed_invalid_json(self) -> None:
        def fake_post(url, *_args, **kwargs):
            return DummyResponse(status_code=200, text="not json")

        with patch("requests.post", fake_post):
            with self.assertRaises(LLMError):
                _client().embed("text")

    def test_embed_missing_or_bad_vector(self) -> None:
        for body in ({"error": "model not found"}, {"embedding": []}, {"embedding": ["x"]}, [1, 2]):
            with self.subTest(body=body):
                def fake_post(url, *_args, **kwargs):
                    return DummyResponse(status_code=200, text=json.dumps(body))

                with patch("requests.post", fake_post):
                    with self.assertRaises(LLMError):
                        _client().embed("text")

    def test_connection_error(self) -> None:
        def fake_post(url, *_args, **kwargs):
            raise requests.ConnectionError("connection refused")

        with patch("requests.post", fake_post):
            with self.assertRaises(LLMError) as ctx:
                _client().embed("text")
        self.assertIn("connection refused", str(ctx.exception))

    def test_embed_many_keeps_order(self) -> None:
        def fake_post(url, *_args, **kwargs):
            prompt = kwargs["json"]["prompt"]
            return DummyResponse(status_code=200, text=json.dumps({"embedding": [len(prompt), 1]}))

        with patch("requests.post", fake_post):
            vectors = _client().embed_many(["a", "abc"])
        self.assertEqual(vectors, [[1.0, 1.0], [3.0, 1.0]])

    def test_embed_many_rejects_inconsistent_dimensions(self) -> None:
        def fake_post(url, *_args, **kwargs):
            prompt = kwargs["json"]["prompt"]
            return DummyResponse(status_code=200, text=json.dumps({"embedding": [1.0] * len(prompt)}))

        with patch("requests.post", fake_post):
            with self.assertRaises(LLMError):
                _client().embed_many(["a", "abc"])


if __name__ == "__main__":
    unittest.main()
