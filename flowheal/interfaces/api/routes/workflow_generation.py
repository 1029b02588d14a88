"""Workflow generation streaming endpoint."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator

from fastapi import APIRouter, Depends, status
from fastapi.responses import StreamingResponse

from flowheal.domain.exceptions import DomainError
from flowheal.domain.services.generation_event import SSE_DONE, GenerationEvent
from flowheal.interfaces.api.container import ApiContainer
from flowheal.interfaces.api.dependencies import get_container
from flowheal.interfaces.api.dto.workflow_validation_dto import GenerateRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workflows", tags=["Workflow Generation"])


@router.post("/generate", status_code=status.HTTP_200_OK)
async def generate_workflow(
    request: GenerateRequest,
    container: ApiContainer = Depends(get_container),
) -> StreamingResponse:
    """Stream generation events; the stream always ends with `data: [DONE]`."""

    async def event_generator() -> AsyncGenerator[str, None]:
        finished = False
        try:
            async for event in container.generation_service.generate(request.prompt):
                finished = finished or event.is_terminal
                yield event.to_sse_format()
        except DomainError as exc:
            yield GenerationEvent.error(str(exc)).to_sse_format()
        except Exception as exc:
            logger.exception("workflow generation stream failed")
            yield GenerationEvent.error(f"Server error: {exc}").to_sse_format()
        if not finished:
            yield SSE_DONE

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
