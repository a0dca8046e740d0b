from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from app.api.deps import get_enhancement_service
from app.core.auth import get_tenant_context, verify_api_key
from app.core.rate_limit import rate_limited
from app.schemas.observation import EnhanceRequest, EnhanceResponse
from app.services.enhancement_service import EnhancementService

router = APIRouter(prefix="/observations", tags=["Observations"])


@router.post(
    "/enhance",
    response_model=EnhanceResponse,
    dependencies=[
        Depends(rate_limited("observations:enhance")),
        Depends(verify_api_key),
        Depends(get_tenant_context),
    ],
)
async def enhance_observation(
    body: EnhanceRequest,
    service: Annotated[EnhancementService, Depends(get_enhancement_service)],
) -> EnhanceResponse:
    """Rewrite rough observation notes as structured coaching feedback.

    Returns:
        EnhanceResponse: Markdown notes with strengths, growth areas and next steps.

    Raises:
        ValidationAppError: 400 when notes or observation type are blank.
        LLMAppError: 502 when the model provider fails or is not configured.
    """
    return await service.enhance(
        raw_notes=body.raw_notes,
        teacher=body.teacher,
        observation_type=body.observation_type,
        focus_areas=body.focus_areas,
    )
