"""
Service Container

Builds the explicitly wired service graph from Settings. The HTTP app
and the scripts construct one container and pass services along;
nothing reaches for a global instance.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial

import httpx

from todonote.core.config import Settings
from todonote.repositories.notes import NoteStore
from todonote.repositories.preferences import PreferenceStore
from todonote.services.attachments import AttachmentManager
from todonote.services.auth import TokenSigner
from todonote.services.chat import ChatService
from todonote.services.knowledge import KnowledgeClient
from todonote.services.pdf import PDFRenderer
from todonote.services.sync import SyncCoordinator

logger = logging.getLogger(__name__)


def resolve_knowledge_base_id(
    settings: Settings, preferences: PreferenceStore
) -> str | None:
    """Configured override first, then the knowledge base created in-app."""
    return settings.KNOWLEDGE_BASE_ID or preferences.knowledge_base_id


@dataclass
class ServiceContainer:
    """All long-lived services of one application instance."""

    settings: Settings
    attachments: AttachmentManager
    store: NoteStore
    preferences: PreferenceStore
    renderer: PDFRenderer
    client: KnowledgeClient | None
    coordinator: SyncCoordinator
    chat: ChatService
    http_client: httpx.AsyncClient | None = None

    def knowledge_base_id(self) -> str | None:
        return resolve_knowledge_base_id(self.settings, self.preferences)

    async def aclose(self) -> None:
        """Wait for background syncs, then release the HTTP connection pool."""
        await self.coordinator.drain()
        if self.http_client is not None:
            await self.http_client.aclose()


def build_services(
    settings: Settings,
    http_client: httpx.AsyncClient | None = None,
) -> ServiceContainer:
    """
    Wire every service from settings.

    Args:
        settings: Application settings.
        http_client: Optional client for the knowledge API (tests inject
            one backed by ``httpx.MockTransport``).
    """
    attachments = AttachmentManager(settings.attachments_dir)
    store = NoteStore(settings.notes_path, attachments)
    preferences = PreferenceStore(settings.preferences_path)
    renderer = PDFRenderer(attachments)

    client: KnowledgeClient | None = None
    if settings.GLM_API_KEY:
        if http_client is None:
            http_client = httpx.AsyncClient(timeout=settings.GLM_TIMEOUT)
        client = KnowledgeClient(
            TokenSigner(settings.GLM_API_KEY),
            base_url=settings.GLM_BASE_URL,
            timeout=settings.GLM_TIMEOUT,
            http_client=http_client,
        )
    else:
        logger.warning("TODONOTE_GLM_API_KEY not set, remote sync disabled")

    knowledge_base_id = partial(resolve_knowledge_base_id, settings, preferences)

    return ServiceContainer(
        settings=settings,
        attachments=attachments,
        store=store,
        preferences=preferences,
        renderer=renderer,
        client=client,
        coordinator=SyncCoordinator(
            store,
            attachments,
            renderer,
            client,
            knowledge_base_id=knowledge_base_id,
            knowledge_type=settings.KNOWLEDGE_TYPE,
        ),
        chat=ChatService(
            client,
            knowledge_base_id=knowledge_base_id,
            model=settings.GLM_CHAT_MODEL,
        ),
        http_client=http_client,
    )
