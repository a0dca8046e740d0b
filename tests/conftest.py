"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment defaults are set before any app import so settings load cleanly.
"""

import os

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("LLM_PROVIDER", "openai")
os.environ.setdefault("LLM_MODEL", "gpt-4o-mini")
os.environ.setdefault("LLM_API_KEY", "test-key-123")
os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-api-key-123,test-api-key-456")

from typing import Any  # noqa: E402

import pytest  # noqa: E402

from app.adapters.llm.base import AbstractLLMClient  # noqa: E402
from app.core.rate_limit import reset_rate_limiter  # noqa: E402

VOCABULARY = ("math", "reading", "science", "engagement", "fractions", "phonics", "lab")


class FakeLLMClient(AbstractLLMClient):
    """Deterministic stand-in for the provider.

    Embeddings are bag-of-words counts over a fixed vocabulary, so texts
    sharing words with the query score higher.
    """

    def __init__(self, answer: str = "Fake answer [source:observation:o1:c1]") -> None:
        self.answer = answer
        self.prompts: list[str] = []
        self.generate_kwargs: list[dict[str, Any]] = []
        self.embedded: list[list[str]] = []
        self.fail_generate = False
        self.fail_embed = False

    async def generate_text(self, prompt: str, **kwargs: Any) -> str:
        self.prompts.append(prompt)
        self.generate_kwargs.append(kwargs)
        if self.fail_generate:
            raise RuntimeError("provider down")
        return self.answer

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        self.embedded.append(list(texts))
        if self.fail_embed:
            raise RuntimeError("embeddings down")
        return [[float(text.lower().count(word)) for word in VOCABULARY] for text in texts]


@pytest.fixture
def fake_llm() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture(autouse=True)
def fresh_rate_limiter():
    """Every test starts with empty rate limit counters."""
    reset_rate_limiter()
    yield
    reset_rate_limiter()


@pytest.fixture
def api_key_headers() -> dict[str, str]:
    return {"X-API-Key": "test-api-key-123"}


@pytest.fixture
def admin_headers(api_key_headers: dict[str, str]) -> dict[str, str]:
    return {
        **api_key_headers,
        "X-User-Id": "u-admin",
        "X-User-Role": "ADMIN",
        "X-School-Id": "school-1",
        "X-District": "north",
    }
