"""Integration tests for LLM adapter layer."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.adapters.llm import OpenAIClient, create_llm_client, try_create_llm_client
from app.core.config import LLMSettings
from app.core.errors import ValidationAppError


def _completion(content: str | None) -> MagicMock:
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=content))]
    return response


class TestOpenAIClientIntegration:
    """Test OpenAI client integration with mocked API calls."""

    @pytest.mark.asyncio
    async def test_generate_text_success(self) -> None:
        """Test successful text generation from OpenAI client.

        Validates that the client forwards temperature and strips the answer.
        """
        client = OpenAIClient(api_key="test-key-123", model="gpt-4o-mini")

        with patch.object(
            client.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            return_value=_completion("  **Strengths** noted.\n"),
        ) as mock_create:
            result = await client.generate_text("Enhance these notes", temperature=0.2)

        assert result == "**Strengths** noted."
        call_kwargs = mock_create.call_args.kwargs
        assert call_kwargs["model"] == "gpt-4o-mini"
        assert call_kwargs["temperature"] == 0.2
        assert call_kwargs["messages"] == [{"role": "user", "content": "Enhance these notes"}]

    @pytest.mark.asyncio
    async def test_generate_text_drops_unknown_params(self) -> None:
        """Test that only whitelisted provider options are forwarded."""
        client = OpenAIClient(api_key="test-key", model="gpt-4o")

        with patch.object(
            client.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            return_value=_completion("ok"),
        ) as mock_create:
            await client.generate_text("Test", max_tokens=100, stream=True)

        call_kwargs = mock_create.call_args.kwargs
        assert call_kwargs["max_tokens"] == 100
        assert call_kwargs["temperature"] == 0.7
        assert "stream" not in call_kwargs

    @pytest.mark.asyncio
    async def test_generate_text_empty_response_raises_error(self) -> None:
        """Test that a blank completion raises RuntimeError."""
        client = OpenAIClient(api_key="test-key", model="gpt-4o")

        with patch.object(
            client.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            return_value=_completion("   "),
        ):
            with pytest.raises(RuntimeError, match="empty response"):
                await client.generate_text("Test")

    @pytest.mark.asyncio
    async def test_generate_text_api_error_raises_runtime_error(self) -> None:
        client = OpenAIClient(api_key="test-key", model="gpt-4o")

        with patch.object(
            client.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            side_effect=ConnectionError("network unreachable"),
        ):
            with pytest.raises(RuntimeError, match="OpenAI API error"):
                await client.generate_text("Test")

    @pytest.mark.asyncio
    async def test_embed_texts_restores_input_order(self) -> None:
        """Test that embeddings come back in input order."""
        response = MagicMock()
        response.data = [
            MagicMock(index=1, embedding=[0.0, 1.0]),
            MagicMock(index=0, embedding=[1.0, 0.0]),
        ]
        client = OpenAIClient(api_key="test-key", model="gpt-4o", embed_model="text-embedding-3-large")

        with patch.object(
            client.client.embeddings,
            "create",
            new_callable=AsyncMock,
            return_value=response,
        ) as mock_create:
            vectors = await client.embed_texts(["first", "second"])

        assert vectors == [[1.0, 0.0], [0.0, 1.0]]
        assert mock_create.call_args.kwargs == {
            "model": "text-embedding-3-large",
            "input": ["first", "second"],
        }

    @pytest.mark.asyncio
    async def test_embed_texts_empty_input_skips_call(self) -> None:
        client = OpenAIClient(api_key="test-key", model="gpt-4o")

        with patch.object(client.client.embeddings, "create", new_callable=AsyncMock) as mock_create:
            assert await client.embed_texts([]) == []

        mock_create.assert_not_called()

    @pytest.mark.asyncio
    async def test_embed_query_returns_single_vector(self) -> None:
        response = MagicMock()
        response.data = [MagicMock(index=0, embedding=[0.5, 0.5])]
        client = OpenAIClient(api_key="test-key", model="gpt-4o")

        with patch.object(client.client.embeddings, "create", new_callable=AsyncMock, return_value=response):
            assert await client.embed_query("math") == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_embed_texts_api_error_raises_runtime_error(self) -> None:
        client = OpenAIClient(api_key="test-key", model="gpt-4o")

        with patch.object(
            client.client.embeddings,
            "create",
            new_callable=AsyncMock,
            side_effect=TimeoutError("slow"),
        ):
            with pytest.raises(RuntimeError, match="embeddings error"):
                await client.embed_texts(["x"])


class TestLLMFactory:
    """Test LLM client factory pattern."""

    @patch("app.adapters.llm.factory.settings")
    def test_create_llm_client_with_settings(self, mock_settings) -> None:
        """Test factory creates OpenAI client using settings."""
        mock_settings.llm = LLMSettings(
            provider="openai",
            api_key="test-key",
            model="gpt-4o-mini",
            embed_model="text-embedding-3-small",
            base_url=None,
            timeout_seconds=30.0,
        )

        client = create_llm_client()

        assert isinstance(client, OpenAIClient)
        assert client.model == "gpt-4o-mini"
        assert client.embed_model == "text-embedding-3-small"

    @patch("app.adapters.llm.factory.settings")
    def test_create_llm_client_missing_api_key_raises_error(self, mock_settings) -> None:
        """Test factory raises error when API key is missing."""
        mock_settings.llm = LLMSettings(provider="openai", api_key=None, model="gpt-4o")

        with pytest.raises(ValidationAppError, match="requires LLM_API_KEY") as exc:
            create_llm_client()
        assert exc.value.code == "llm_missing_api_key"

    @patch("app.adapters.llm.factory.settings")
    def test_create_llm_client_unknown_provider_raises_error(self, mock_settings) -> None:
        """Test factory raises error for unknown provider."""
        mock_settings.llm = LLMSettings(provider="unknown-provider", api_key="test-key", model="gpt-4o")

        with pytest.raises(ValidationAppError, match="Unknown LLM provider") as exc:
            create_llm_client()
        assert exc.value.code == "llm_unknown_provider"

    @patch("app.adapters.llm.factory.settings")
    def test_try_create_returns_none_without_api_key(self, mock_settings) -> None:
        """Test that a missing key means 'not configured' rather than an error."""
        mock_settings.llm = LLMSettings(provider="openai", api_key=None, model="gpt-4o")

        assert try_create_llm_client() is None

    @patch("app.adapters.llm.factory.settings")
    def test_try_create_still_rejects_unknown_provider(self, mock_settings) -> None:
        mock_settings.llm = LLMSettings(provider="gemini", api_key="k", model="m")

        with pytest.raises(ValidationAppError):
            try_create_llm_client()
