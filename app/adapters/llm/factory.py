"""Factory pattern for creating LLM client instances."""

from app.adapters.llm.base import AbstractLLMClient
from app.adapters.llm.openai_client import OpenAIClient
from app.core.config import settings
from app.core.errors import ValidationAppError


def create_llm_client() -> AbstractLLMClient:
    """Instantiate the LLM client for the configured provider.

    Reads configuration from app.core.config.settings (Pydantic Settings).

    Returns:
        AbstractLLMClient: Configured LLM client instance.

    Raises:
        ValidationAppError: If provider-specific requirements are not met.
    """
    provider = settings.llm.provider.lower()

    if provider == "openai":
        if not settings.llm.api_key:
            raise ValidationAppError(
                code="llm_missing_api_key",
                message="OpenAI provider requires LLM_API_KEY environment variable",
            )
        return OpenAIClient(
            api_key=settings.llm.api_key,
            model=settings.llm.model,
            embed_model=settings.llm.embed_model,
            base_url=settings.llm.base_url,
            timeout_seconds=settings.llm.timeout_seconds,
        )

    raise ValidationAppError(
        code="llm_unknown_provider",
        message=f"Unknown LLM provider: '{provider}'. Supported providers: openai",
    )


def try_create_llm_client() -> AbstractLLMClient | None:
    """Like create_llm_client, but None when no provider is configured.

    Lets demo deployments run without credentials; callers decide whether a
    missing client is an error.
    """
    try:
        return create_llm_client()
    except ValidationAppError as exc:
        if exc.code == "llm_missing_api_key":
            return None
        raise
