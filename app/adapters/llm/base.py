from abc import ABC, abstractmethod
from typing import Any


class AbstractLLMClient(ABC):
	"""Interface for LLM clients producing free text and embeddings."""

	@abstractmethod
	async def generate_text(self, prompt: str, **kwargs: Any) -> str:
		"""Generate a text completion for ``prompt``.

		Args:
			prompt: Full prompt to send to the model.
			**kwargs: Provider-specific options (e.g., temperature, max_tokens).

		Returns:
			str: The model's answer, stripped of surrounding whitespace.

		Raises:
			RuntimeError: If the provider call fails or returns nothing.
		"""
		...

	@abstractmethod
	async def embed_texts(self, texts: list[str]) -> list[list[float]]:
		"""Embed each text into a vector, preserving input order.

		Raises:
			RuntimeError: If the provider call fails.
		"""
		...

	async def embed_query(self, text: str) -> list[float]:
		"""Embed a single search query."""
		vectors = await self.embed_texts([text])
		return vectors[0]
