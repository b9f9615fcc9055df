"""
Knowledge API Router

Endpoints for the knowledge base behind the notes.

Endpoints:
    POST /knowledge     Create a knowledge base and make it current.
    POST /chat/ask      Answer a question from the knowledge base.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from todonote.api.deps import get_services
from todonote.schemas.notes import (
    AskRequest,
    AskResponse,
    KnowledgeBaseCreate,
    KnowledgeBaseRead,
)
from todonote.services.container import ServiceContainer

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/knowledge",
    response_model=KnowledgeBaseRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_knowledge_base(
    body: KnowledgeBaseCreate,
    services: ServiceContainer = Depends(get_services),
) -> KnowledgeBaseRead:
    """
    Create a knowledge base and persist it as the sync target.

    Raises:
        HTTPException 503: If no API key is configured.
        HTTPException 502: If the provider rejects the request.
    """
    if services.client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Knowledge API key not configured",
        )

    result = await services.client.create_knowledge_base(
        body.name,
        description=body.description,
        embedding_id=services.settings.EMBEDDING_ID,
    )
    if not result.ok or result.value is None:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Knowledge API error: {result.error}",
        )

    services.preferences.knowledge_base_id = result.value
    logger.info("Knowledge base %s is now the sync target", result.value)
    return KnowledgeBaseRead(id=result.value)


@router.post("/chat/ask", response_model=AskResponse)
async def ask(
    body: AskRequest,
    services: ServiceContainer = Depends(get_services),
) -> AskResponse:
    """Answer a question; failures come back as informational text."""
    try:
        answer = await services.chat.ask(body.question)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)
        ) from e
    return AskResponse(answer=answer.content, failed=answer.failed)
