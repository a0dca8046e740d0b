"""Observation note enhancement orchestrating prompt building, caching and LLM calls.

Turns an observer's rough notes into structured, growth-oriented feedback:
- Input validation and truncation
- Prompt construction around the teacher profile and observation context
- Response caching by prompt hash
- Demo output when no LLM provider is configured
"""

from __future__ import annotations

import hashlib
import logging

from app.adapters.llm.base import AbstractLLMClient
from app.core.config import settings
from app.core.errors import LLMAppError, ValidationAppError
from app.schemas.observation import EnhanceResponse, TeacherProfile
from app.utils.simple_cache import SimpleTTLCache

logger = logging.getLogger(__name__)

# Bump to invalidate cached enhancements when the prompt changes
PROMPT_VERSION = "v1"

ENHANCEMENT_TEMPERATURE = 0.7

NOT_SPECIFIED = "Not specified"

DEMO_ENHANCEMENT = """
**Instructional Strengths Observed:**
• Effective classroom management with clear expectations
• Strong student engagement through interactive activities
• Appropriate use of formative assessment strategies

**Areas for Growth:**
• Consider providing more differentiated instruction for diverse learners
• Opportunity to incorporate more student-led discussions

**Next Steps:**
1. Implement small-group activities to support struggling students
2. Add more open-ended questions to promote critical thinking
3. Continue building on the strong classroom culture you've established

**Connection to Previous Goals:**
Excellent progress on the classroom management goal from last month's observation.
""".strip()


def _truncate(text: str, max_chars: int) -> tuple[str, bool]:
    if len(text) <= max_chars:
        return text, False
    return text[:max_chars], True


def _hash_prompt(prompt: str) -> str:
    raw = f"{PROMPT_VERSION}::{prompt}".encode("utf-8", errors="ignore")
    return hashlib.sha256(raw).hexdigest()


def build_enhancement_prompt(
    raw_notes: str,
    teacher: TeacherProfile,
    observation_type: str,
    focus_areas: list[str],
) -> str:
    """Build the coaching prompt for note enhancement.

    Args:
        raw_notes: Observer's rough notes.
        teacher: Teacher profile (name, subject, grade, strengths, growth areas).
        observation_type: Kind of observation (formal, walkthrough, ...).
        focus_areas: Instructional focus areas for this visit.

    Returns:
        Prompt string asking for markdown feedback in fixed sections.
    """
    strengths = ", ".join(teacher.strengths) or NOT_SPECIFIED
    growth_areas = ", ".join(teacher.growth_areas) or NOT_SPECIFIED

    return f"""
You are an expert educational evaluator enhancing classroom observation notes.

TEACHER INFORMATION:
- Name: {teacher.name}
- Subject: {teacher.subject or NOT_SPECIFIED}
- Grade Level: {teacher.grade_level or NOT_SPECIFIED}
- Strengths: {strengths}
- Growth Areas: {growth_areas}

OBSERVATION CONTEXT:
- Type: {observation_type}
- Focus Areas: {", ".join(focus_areas)}

RAW OBSERVATION NOTES:
{raw_notes}

INSTRUCTIONS:
Enhance these observation notes by:

1. **Identifying Instructional Strengths** - Highlight specific examples of effective teaching practices
2. **Noting Areas for Growth** - Provide constructive feedback with actionable suggestions
3. **Connecting to Teacher Goals** - Reference any relevant professional development goals
4. **Adding Specific Recommendations** - Suggest concrete next steps for improvement
5. **Maintaining Professional Tone** - Use educational terminology and constructive language

Format the response using Markdown with clear sections:
- **Instructional Strengths Observed**
- **Areas for Growth**
- **Next Steps**
- **Connection to Previous Goals** (if applicable)

Be specific, actionable, and evidence-based. Focus on the teacher's development and student learning outcomes.
""".strip()


class EnhancementService:
    """Service turning raw observation notes into coaching feedback.

    Attributes:
        llm: LLM client, or None when no provider is configured.
        cache: TTL cache of enhanced notes keyed by prompt hash.
    """

    def __init__(self, llm: AbstractLLMClient | None, cache: SimpleTTLCache[str]) -> None:
        self.llm = llm
        self.cache = cache

    def _validate_inputs(self, raw_notes: str, observation_type: str) -> None:
        if not raw_notes or not raw_notes.strip():
            raise ValidationAppError(
                code="notes_empty",
                message="Observation notes are empty.",
            )
        if not observation_type or not observation_type.strip():
            raise ValidationAppError(
                code="observation_type_missing",
                message="Observation type is required.",
            )

    async def enhance(
        self,
        raw_notes: str,
        teacher: TeacherProfile,
        observation_type: str,
        focus_areas: list[str] | None = None,
    ) -> EnhanceResponse:
        """Enhance observation notes.

        Args:
            raw_notes: Observer's rough notes.
            teacher: Teacher profile for context.
            observation_type: Kind of observation.
            focus_areas: Optional focus areas.

        Returns:
            EnhanceResponse with markdown feedback.

        Raises:
            ValidationAppError: If notes or observation type are blank.
            LLMAppError: If no provider is configured outside demo mode, or the
                provider call fails.
        """
        self._validate_inputs(raw_notes, observation_type)
        warnings: list[str] = []

        if self.llm is None:
            if settings.app.demo_mode:
                logger.info("enhancement.demo_served")
                return EnhanceResponse(enhanced_notes=DEMO_ENHANCEMENT, demo=True)
            raise LLMAppError(
                code="llm_not_configured",
                message="AI enhancement is not configured",
                details={"hint": "Set LLM_API_KEY or enable APP_DEMO_MODE"},
            )

        notes, truncated = _truncate(raw_notes.strip(), settings.app.max_notes_chars)
        if truncated:
            warnings.append("Notes were truncated to fit model limits.")

        prompt = build_enhancement_prompt(notes, teacher, observation_type, focus_areas or [])
        cache_key = _hash_prompt(prompt)

        cached = self.cache.get(cache_key)
        if cached is not None:
            return EnhanceResponse(enhanced_notes=cached, cached=True, warnings=warnings)

        try:
            text = await self.llm.generate_text(prompt, temperature=ENHANCEMENT_TEMPERATURE)
        except RuntimeError as exc:
            logger.error(
                "enhancement.failed",
                extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
            )
            raise LLMAppError(
                code="enhancement_failed",
                message="AI enhancement failed",
            ) from exc

        self.cache.set(cache_key, text)
        logger.info(
            "enhancement.completed",
            extra={"notes_chars": len(notes), "output_chars": len(text), "truncated": truncated},
        )
        return EnhanceResponse(enhanced_notes=text, warnings=warnings)
