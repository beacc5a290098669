"""Tests for embedding providers and the provider registry."""

import json

import httpx
import pytest

from kbindex.errors import EmbeddingError
from kbindex.providers import get_registry
from kbindex.providers.embeddings import WorkersAIEmbedding


def _provider(handler, **kwargs) -> WorkersAIEmbedding:
    return WorkersAIEmbedding(
        model="@cf/baai/bge-small-en-v1.5",
        account_id="acct",
        api_token="secret",
        transport=httpx.MockTransport(handler),
        max_retries=1,
        **kwargs,
    )


class TestWorkersAI:

    def test_request_shape(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"success": True, "result": {"data": [[0.1, 0.2]]}})

        vector = _provider(handler).embed("hello")
        assert vector == [0.1, 0.2]
        request = seen[0]
        assert request.url.path == "/client/v4/accounts/acct/ai/run/@cf/baai/bge-small-en-v1.5"
        assert request.headers["Authorization"] == "Bearer secret"
        assert json.loads(request.content) == {"text": ["hello"]}

    def test_batch(self):
        def handler(request):
            texts = json.loads(request.content)["text"]
            return httpx.Response(200, json={"result": {"data": [[float(i)] for i in range(len(texts))]}})

        assert _provider(handler).embed_batch(["a", "b", "c"]) == [[0.0], [1.0], [2.0]]

    def test_empty_batch_makes_no_request(self):
        def handler(request):
            raise AssertionError("unexpected request")

        assert _provider(handler).embed_batch([]) == []

    @pytest.mark.parametrize("body", [
        {"result": {}},
        {"result": {"data": []}},
        {"result": {"data": [["x"]]}},
        {"result": {"data": [[]]}},
        ["not", "a", "dict"],
    ])
    def test_malformed_response(self, body):
        def handler(request):
            return httpx.Response(200, json=body)

        with pytest.raises(EmbeddingError, match="unexpected response format"):
            _provider(handler).embed("hello")

    def test_invalid_json(self):
        def handler(request):
            return httpx.Response(200, text="<html>")

        with pytest.raises(EmbeddingError, match="invalid JSON"):
            _provider(handler).embed("hello")

    def test_dimension(self):
        assert _provider(lambda r: httpx.Response(200)).dimension == 384

    def test_missing_credentials(self, monkeypatch):
        monkeypatch.delenv("CLOUDFLARE_ACCOUNT_ID", raising=False)
        monkeypatch.delenv("CLOUDFLARE_API_TOKEN", raising=False)
        with pytest.raises(ValueError, match="CLOUDFLARE_ACCOUNT_ID"):
            WorkersAIEmbedding()

    def test_credentials_from_environment(self, monkeypatch):
        monkeypatch.setenv("CLOUDFLARE_ACCOUNT_ID", "env-acct")
        monkeypatch.setenv("CLOUDFLARE_API_TOKEN", "env-token")
        provider = WorkersAIEmbedding()
        assert provider.dimension == 768
        provider.close()

    def test_unknown_model_needs_dimension(self):
        with pytest.raises(ValueError, match="Unknown dimension"):
            WorkersAIEmbedding(model="@cf/custom/model", account_id="a", api_token="t")
        provider = WorkersAIEmbedding(
            model="@cf/custom/model", account_id="a", api_token="t", dimension=512,
        )
        assert provider.dimension == 512


class TestRegistry:

    def test_providers_registered(self):
        registry = get_registry()
        names = registry.list_embedding_providers()
        assert "workers-ai" in names
        assert "sentence-transformers" in names

    def test_create_by_name(self):
        provider = get_registry().create_embedding(
            "workers-ai", {"account_id": "a", "api_token": "t"},
        )
        assert provider.model_name == "@cf/baai/bge-base-en-v1.5"

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            get_registry().create_embedding("no-such-provider")
