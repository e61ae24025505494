"""
Generation Routes
"""

import json
import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from inteligencia.errors import InteligenciaError
from inteligencia.schemas.generation import GenerateRequest, GenerateResponse
from inteligencia.services import ContextSelection, GenerationJob, GenerationService
from inteligencia.utils import get_db, get_db_context

logger = logging.getLogger(__name__)

router = APIRouter()


def get_generation_transport() -> Optional[httpx.AsyncBaseTransport]:
    """Vendor HTTP transport; None means the real network"""
    return None


def _to_job(body: GenerateRequest) -> GenerationJob:
    context = body.context
    return GenerationJob(
        mode=body.mode,
        task=body.task,
        prompt=body.prompt,
        vertical=body.vertical,
        verticals=list(body.verticals),
        provider=body.provider,
        model=body.model,
        output_count=body.output_count,
        parent_node_id=body.parent_node_id,
        existing_content=body.existing_content,
        edit_instructions=body.edit_instructions,
        skip_steps=list(body.skip_steps),
        required_capabilities=list(body.required_capabilities),
        settings=dict(body.settings),
        context=ContextSelection(
            style_guide_ids=list(context.style_guide_ids),
            template_id=context.template_id,
            character_ids=list(context.character_ids),
            reference_image_ids=list(context.reference_image_ids),
            previous_content=[item.model_dump() for item in context.previous_content],
            additional_context=context.additional_context,
        ),
        size=body.size,
        quality=body.quality,
        style=body.style,
    )


def _sse(payload) -> str:
    return f"data: {json.dumps(payload, default=str)}\n\n"


@router.post("", response_model=GenerateResponse)
async def generate(
    body: GenerateRequest,
    db: AsyncSession = Depends(get_db),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_generation_transport),
):
    """
    Run a generation.

    With stream=true the response is text/event-stream: one `data:` frame
    per progress event, terminated by `data: [DONE]`.
    """
    job = _to_job(body)
    service = GenerationService(db, transport=transport)
    # Bad input is a 400 before the event stream opens
    service.validate(job)

    if body.stream:
        return StreamingResponse(
            _stream_events(job, transport),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    try:
        result = await service.generate(job)
    except InteligenciaError:
        # Usage logs of failed attempts survive the rolled back tree
        await db.commit()
        raise

    await db.commit()
    return result


async def _stream_events(job: GenerationJob, transport: Optional[httpx.AsyncBaseTransport]):
    """
    The request-scoped session is gone once streaming starts, so the run
    owns its own unit of work.
    """
    try:
        async with get_db_context() as session:
            service = GenerationService(session, transport=transport)
            try:
                async for event in service.run(job):
                    yield _sse(event)
            except InteligenciaError as e:
                logger.warning(f"Streaming generation failed: {e.message}")
                yield _sse({"type": "error", "success": False, "error": e.public_message})
    except Exception as e:
        logger.error(f"Streaming generation aborted: {type(e).__name__}")
        yield _sse({"type": "error", "success": False, "error": "Internal server error"})
    yield "data: [DONE]\n\n"
