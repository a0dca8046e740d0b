"""OpenAI LLM client adapter."""

from typing import Any

from openai import AsyncOpenAI

from app.adapters.llm.base import AbstractLLMClient


class OpenAIClient(AbstractLLMClient):
    """Client for OpenAI chat completions and embeddings.

    Uses the official OpenAI Python SDK with async support.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        embed_model: str = "text-embedding-3-small",
        base_url: str | None = None,
        timeout_seconds: float = 45.0,
    ) -> None:
        """Initialize OpenAI async client.

        Args:
            api_key: OpenAI API key for authentication.
            model: Chat model name (e.g., "gpt-4o-mini").
            embed_model: Embedding model name.
            base_url: Optional custom base URL for OpenAI API.
            timeout_seconds: Timeout for requests in seconds.
        """
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_seconds,
        )
        self.model = model
        self.embed_model = embed_model

    async def generate_text(self, prompt: str, **kwargs: Any) -> str:
        """Generate a completion using OpenAI chat completions.

        Args:
            prompt: User prompt to send to the model.
            **kwargs: Provider options (temperature, max_tokens, top_p, etc.).

        Returns:
            str: Completion text.

        Raises:
            RuntimeError: If the API call fails or the response is empty.
        """
        request_params: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": kwargs.pop("temperature", 0.7),
        }

        allowed_params = {
            "max_tokens",
            "top_p",
            "frequency_penalty",
            "presence_penalty",
            "seed",
        }
        for param in allowed_params:
            if param in kwargs:
                request_params[param] = kwargs[param]

        try:
            response = await self.client.chat.completions.create(**request_params)
        except Exception as exc:
            raise RuntimeError(f"OpenAI API error: {str(exc)}") from exc

        content = response.choices[0].message.content
        if not content or not content.strip():
            raise RuntimeError("LLM returned empty response")
        return content.strip()

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed texts with the configured embedding model.

        Raises:
            RuntimeError: If the API call fails.
        """
        if not texts:
            return []

        try:
            response = await self.client.embeddings.create(model=self.embed_model, input=texts)
        except Exception as exc:
            raise RuntimeError(f"OpenAI embeddings error: {str(exc)}") from exc

        # The API may return items out of order; each carries its input index.
        ordered = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in ordered]
