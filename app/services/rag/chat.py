"""Grounded question answering over retrieved observations and evaluations."""

from __future__ import annotations

import logging

from app.adapters.llm.base import AbstractLLMClient
from app.core.errors import LLMAppError
from app.schemas.rag import ChatResponse, RagHit, SearchFilters, SourceType
from app.schemas.tenant import Role, TenantContext
from app.services.rag.retrieval import RagRetriever

logger = logging.getLogger(__name__)

CHAT_TEMPERATURE = 0.2


def format_context(hits: list[RagHit]) -> str:
    lines = []
    for hit in hits:
        kind = "observation" if hit.source_type is SourceType.OBSERVATION else "evaluation"
        lines.append(f"- [{kind}:{hit.source_id}:{hit.chunk_id}] {hit.snippet}")
    return "\n".join(lines)


def build_chat_prompt(message: str, tenant: TenantContext, hits: list[RagHit]) -> str:
    """Build the grounded answer prompt with inline-citation instructions.

    Args:
        message: User question.
        tenant: Caller context (role and scope are stated to the model).
        hits: Retrieved context, best first.

    Returns:
        Prompt string for the LLM.
    """
    scope = "district" if tenant.role is Role.DISTRICT_ADMIN else "school"
    system = (
        "You are a helpful assistant for school administrators. Answer using only the "
        "provided context from observations and evaluations. If insufficient, say so. "
        "Include citations like [source:TYPE:ID:CHUNKID]. "
        f"Role: {tenant.role.value}. Scope: {scope}."
    )
    return (
        f"{system}\n\n"
        f"CONTEXT:\n{format_context(hits)}\n\n"
        f"USER QUESTION: {message}\n\n"
        "INSTRUCTIONS:\n"
        "- Be concise.\n"
        "- Cite sources inline using [source:TYPE:ID:CHUNKID].\n"
        "- If the answer is not in context, say you don't have enough information."
    )


class RagChatService:
    """Retrieve, prompt, answer."""

    def __init__(self, retriever: RagRetriever, llm: AbstractLLMClient) -> None:
        self.retriever = retriever
        self.llm = llm

    async def chat(
        self,
        message: str,
        tenant: TenantContext,
        *,
        top_k: int | None = None,
        filters: SearchFilters | None = None,
    ) -> ChatResponse:
        """Answer ``message`` from the tenant's indexed records.

        Raises:
            LLMAppError: If retrieval embedding or generation fails.
        """
        hits = await self.retriever.search(message, tenant, top_k=top_k, filters=filters)
        prompt = build_chat_prompt(message, tenant, hits)

        try:
            answer = await self.llm.generate_text(prompt, temperature=CHAT_TEMPERATURE)
        except RuntimeError as exc:
            logger.error(
                "rag.chat.generation_failed",
                extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
            )
            raise LLMAppError(
                code="chat_generation_failed",
                message="The assistant could not generate an answer",
            ) from exc

        logger.info("rag.chat.completed", extra={"hits": len(hits)})
        return ChatResponse(message=answer, hits=hits)
