"""Unit tests for embedding provider adapters: OpenAI, Cohere."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from ragingest.config.settings import Settings
from ragingest.utils.errors import (
    EmbeddingError,
    StructuralEmbeddingError,
    TransientEmbeddingError,
)

DIM = 8
_OPENAI_URL = "https://api.openai.com/v1/embeddings"


def _settings(**overrides) -> Settings:
    defaults = {
        "openai_api_key": "sk-test",
        "openai_base_url": "",
        "openai_embedding_model": "text-embedding-3-small",
        "cohere_api_key": "co-test",
        "embedding_dimension": DIM,
    }
    defaults.update(overrides)
    return Settings(**defaults)


def _openai_client(vector: list[float] | None = None, error: Exception | None = None):
    mock_response = MagicMock()
    mock_response.data = [] if vector is None else [MagicMock(embedding=vector)]
    mock_response.usage = MagicMock(total_tokens=12)

    client = MagicMock()
    if error is not None:
        client.embeddings.create = AsyncMock(side_effect=error)
    else:
        client.embeddings.create = AsyncMock(return_value=mock_response)
    client.close = AsyncMock()
    return client


def _status_error(cls: type[openai.APIStatusError], code: int) -> openai.APIStatusError:
    request = httpx.Request("POST", _OPENAI_URL)
    response = httpx.Response(code, request=request)
    return cls(f"HTTP {code}", response=response, body=None)


# ======================================================================
# OpenAI Embedding Provider
# ======================================================================


class TestOpenAIEmbeddingProvider:
    def test_metadata(self) -> None:
        from ragingest.providers.embedding.openai_embedding_provider import (
            OpenAIEmbeddingProvider,
        )

        provider = OpenAIEmbeddingProvider(_settings(), client=_openai_client())
        assert provider.get_provider_name() == "openai_embedding"
        assert provider.get_dimension() == DIM
        assert provider.is_available() is True

    def test_compatible_base_url_label(self) -> None:
        from ragingest.providers.embedding.openai_embedding_provider import (
            OpenAIEmbeddingProvider,
        )

        provider = OpenAIEmbeddingProvider(
            _settings(openai_base_url="https://api.together.xyz/v1"),
            client=_openai_client(),
        )
        assert provider.get_provider_name() == "openai-compatible_embedding"

    def test_fixed_width_model_dimension(self) -> None:
        from ragingest.providers.embedding.openai_embedding_provider import (
            OpenAIEmbeddingProvider,
        )

        provider = OpenAIEmbeddingProvider(
            _settings(openai_embedding_model="text-embedding-ada-002"),
            client=_openai_client(),
        )
        assert provider.get_dimension() == 1536

    def test_unavailable_without_key(self) -> None:
        from ragingest.providers.embedding.openai_embedding_provider import (
            OpenAIEmbeddingProvider,
        )

        provider = OpenAIEmbeddingProvider(_settings(openai_api_key=""), client=_openai_client())
        assert provider.is_available() is False

    @pytest.mark.asyncio
    async def test_embed_success_requests_dimension(self) -> None:
        from ragingest.providers.embedding.openai_embedding_provider import (
            OpenAIEmbeddingProvider,
        )

        client = _openai_client(vector=[0.5] * DIM)
        provider = OpenAIEmbeddingProvider(_settings(), client=client)
        result = await provider.embed("hello")

        assert result == [0.5] * DIM
        kwargs = client.embeddings.create.call_args.kwargs
        assert kwargs["input"] == ["hello"]
        assert kwargs["dimensions"] == DIM

    @pytest.mark.asyncio
    async def test_wrong_length_is_structural(self) -> None:
        from ragingest.providers.embedding.openai_embedding_provider import (
            OpenAIEmbeddingProvider,
        )

        provider = OpenAIEmbeddingProvider(_settings(), client=_openai_client(vector=[0.1] * 3))
        with pytest.raises(StructuralEmbeddingError) as exc_info:
            await provider.embed("hello")
        assert exc_info.value.expected == DIM
        assert exc_info.value.actual == 3

    @pytest.mark.asyncio
    async def test_empty_response_is_transient(self) -> None:
        from ragingest.providers.embedding.openai_embedding_provider import (
            OpenAIEmbeddingProvider,
        )

        provider = OpenAIEmbeddingProvider(_settings(), client=_openai_client(vector=None))
        with pytest.raises(TransientEmbeddingError):
            await provider.embed("hello")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            openai.APIConnectionError(request=httpx.Request("POST", _OPENAI_URL)),
            _status_error(openai.RateLimitError, 429),
            _status_error(openai.InternalServerError, 503),
        ],
    )
    async def test_transient_errors_mapped(self, error: Exception) -> None:
        from ragingest.providers.embedding.openai_embedding_provider import (
            OpenAIEmbeddingProvider,
        )

        provider = OpenAIEmbeddingProvider(_settings(), client=_openai_client(error=error))
        with pytest.raises(TransientEmbeddingError):
            await provider.embed("hello")

    @pytest.mark.asyncio
    async def test_rejected_request_not_transient(self) -> None:
        from ragingest.providers.embedding.openai_embedding_provider import (
            OpenAIEmbeddingProvider,
        )

        error = _status_error(openai.AuthenticationError, 401)
        provider = OpenAIEmbeddingProvider(_settings(), client=_openai_client(error=error))
        with pytest.raises(EmbeddingError) as exc_info:
            await provider.embed("hello")
        assert not isinstance(exc_info.value, TransientEmbeddingError)

    @pytest.mark.asyncio
    async def test_aclose_closes_client(self) -> None:
        from ragingest.providers.embedding.openai_embedding_provider import (
            OpenAIEmbeddingProvider,
        )

        client = _openai_client()
        provider = OpenAIEmbeddingProvider(_settings(), client=client)
        await provider.aclose()
        client.close.assert_awaited_once()


# ======================================================================
# Cohere Embedding Provider
# ======================================================================


def _cohere_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        base_url="https://api.cohere.com",
    )


class TestCohereEmbeddingProvider:
    def test_metadata(self) -> None:
        from ragingest.providers.embedding.cohere_embedding_provider import (
            CohereEmbeddingProvider,
        )

        provider = CohereEmbeddingProvider(_settings(), http_client=_cohere_client(None))
        assert provider.get_provider_name() == "cohere_embedding"
        assert provider.get_dimension() == DIM
        assert provider.is_available() is True

    def test_unavailable_without_key(self) -> None:
        from ragingest.providers.embedding.cohere_embedding_provider import (
            CohereEmbeddingProvider,
        )

        provider = CohereEmbeddingProvider(
            _settings(cohere_api_key=""), http_client=_cohere_client(None)
        )
        assert provider.is_available() is False

    @pytest.mark.asyncio
    async def test_embed_success(self) -> None:
        from ragingest.providers.embedding.cohere_embedding_provider import (
            CohereEmbeddingProvider,
        )

        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"embeddings": [[0.25] * DIM]})

        async with _cohere_client(handler) as client:
            provider = CohereEmbeddingProvider(_settings(), http_client=client)
            result = await provider.embed("some chunk")

        assert result == [0.25] * DIM
        request = seen[0]
        assert request.url.path == "/v1/embed"
        assert request.headers["Authorization"] == "Bearer co-test"
        body = json.loads(request.content)
        assert body["texts"] == ["some chunk"]
        assert body["input_type"] == "search_document"
        assert body["model"] == "embed-english-v3.0"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [429, 500, 503])
    async def test_retryable_statuses_are_transient(self, status_code: int) -> None:
        from ragingest.providers.embedding.cohere_embedding_provider import (
            CohereEmbeddingProvider,
        )

        async with _cohere_client(lambda r: httpx.Response(status_code)) as client:
            provider = CohereEmbeddingProvider(_settings(), http_client=client)
            with pytest.raises(TransientEmbeddingError):
                await provider.embed("x")

    @pytest.mark.asyncio
    async def test_client_error_not_transient(self) -> None:
        from ragingest.providers.embedding.cohere_embedding_provider import (
            CohereEmbeddingProvider,
        )

        async with _cohere_client(lambda r: httpx.Response(401, text="invalid api token")) as client:
            provider = CohereEmbeddingProvider(_settings(), http_client=client)
            with pytest.raises(EmbeddingError) as exc_info:
                await provider.embed("x")
        assert not isinstance(exc_info.value, TransientEmbeddingError)
        assert "401" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_network_error_is_transient(self) -> None:
        from ragingest.providers.embedding.cohere_embedding_provider import (
            CohereEmbeddingProvider,
        )

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _cohere_client(handler) as client:
            provider = CohereEmbeddingProvider(_settings(), http_client=client)
            with pytest.raises(TransientEmbeddingError):
                await provider.embed("x")

    @pytest.mark.asyncio
    async def test_malformed_body_is_transient(self) -> None:
        from ragingest.providers.embedding.cohere_embedding_provider import (
            CohereEmbeddingProvider,
        )

        async with _cohere_client(lambda r: httpx.Response(200, json={"oops": 1})) as client:
            provider = CohereEmbeddingProvider(_settings(), http_client=client)
            with pytest.raises(TransientEmbeddingError):
                await provider.embed("x")

    @pytest.mark.asyncio
    async def test_wrong_length_is_structural(self) -> None:
        from ragingest.providers.embedding.cohere_embedding_provider import (
            CohereEmbeddingProvider,
        )

        payload = {"embeddings": [[0.1] * (DIM + 2)]}
        async with _cohere_client(lambda r: httpx.Response(200, json=payload)) as client:
            provider = CohereEmbeddingProvider(_settings(), http_client=client)
            with pytest.raises(StructuralEmbeddingError):
                await provider.embed("x")

    @pytest.mark.asyncio
    async def test_injected_client_not_closed(self) -> None:
        from ragingest.providers.embedding.cohere_embedding_provider import (
            CohereEmbeddingProvider,
        )

        client = _cohere_client(lambda r: httpx.Response(200, json={"embeddings": [[0.0] * DIM]}))
        provider = CohereEmbeddingProvider(_settings(), http_client=client)
        await provider.aclose()
        assert not client.is_closed
        await client.aclose()
