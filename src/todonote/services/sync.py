"""
Sync Coordinator

Keeps each note's document in the remote knowledge base in step with
its local PDF rendering, using a replace protocol: delete the previous
remote document, then upload the fresh rendering.

Per save:
    1. Render the note to ``note_<id>.pdf`` (failure skips 2-5).
    2. Remove the previous PDF file if it had a different location.
    3. No knowledge base configured -> skip the remote steps.
    4. Previous remote document -> delete it, continue whatever happens.
    5. Upload; on success record the new document id.
    6. Persist the note locally.

Render, delete and upload failures are reported, never raised. Remote
steps for the same note are serialized with a per-note lock, so a
delete and an upload never overlap and two saves cannot interleave.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Coroutine
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from todonote.core.errors import AttachmentWriteError, RenderError, StoreWriteError
from todonote.models.note import Note
from todonote.repositories.notes import NoteStore
from todonote.services.attachments import AttachmentManager
from todonote.services.knowledge import KnowledgeClient
from todonote.services.pdf import PDFRenderer

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    """
    What happened during one save.

    Attributes:
        note: The note as last persisted.
        pdf_filename: Newly rendered PDF, None if rendering failed.
        render_error: Rendering or PDF write failure.
        remote_skipped: True when no remote sync was attempted.
        deleted_remote: Remote document id that was deleted.
        delete_error: Failure deleting the previous remote document.
        uploaded_document_id: Remote id assigned to the new upload.
        upload_error: Failure uploading the new rendering.
        persist_error: Failure writing the remote id back locally.
    """

    note: Note
    pdf_filename: str | None = None
    render_error: str | None = None
    remote_skipped: bool = False
    deleted_remote: str | None = None
    delete_error: str | None = None
    uploaded_document_id: str | None = None
    upload_error: str | None = None
    persist_error: str | None = None


@dataclass
class SaveHandle:
    """
    Result of ``SyncCoordinator.save_note``.

    The note is already persisted locally when the handle is returned.
    ``remote`` is the background task running the remote replace, or
    None when there is nothing to sync.
    """

    note: Note
    report: SyncReport
    remote: asyncio.Task[SyncReport] | None = None


class SyncCoordinator:
    """
    Orchestrates rendering, local persistence and remote replacement.

    Usage::

        coordinator = SyncCoordinator(store, attachments, renderer, client,
                                      knowledge_base_id=lambda: "kb-1")
        handle = await coordinator.save_note(note)   # local save done
        if handle.remote is not None:
            report = await handle.remote               # optional
    """

    def __init__(
        self,
        store: NoteStore,
        attachments: AttachmentManager,
        renderer: PDFRenderer,
        client: KnowledgeClient | None,
        knowledge_base_id: Callable[[], str | None],
        knowledge_type: int = 1,
    ) -> None:
        self._store = store
        self._attachments = attachments
        self._renderer = renderer
        self._client = client
        self._knowledge_base_id = knowledge_base_id
        self._knowledge_type = knowledge_type
        self._locks: dict[UUID, asyncio.Lock] = {}
        self._lock_users: dict[UUID, int] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def sync_note(self, note: Note) -> SyncReport:
        """
        Run the whole save sequence and wait for it, remote steps included.

        The note is persisted at the end with whatever ``pdf_filename``
        and ``remote_document_id`` resulted.

        Raises:
            StoreWriteError: If the final local write fails.
        """
        report = SyncReport(note=note)
        rendered = await self._render(note, report)
        target = self._remote_target() if rendered else None

        async with self._note_lock(note.id):
            stored = self._store.get(note.id)
            if stored is not None:
                note.remote_document_id = stored.remote_document_id

            if target is None:
                report.remote_skipped = True
            else:
                await self._replace_remote(*target, note, report)

            self._store.save(note)
        return report

    async def save_note(self, note: Note) -> SaveHandle:
        """
        Render and persist locally, then replace remotely in the background.

        Returns as soon as the local write is done. The remote replace
        writes the new document id into the latest stored version of the
        note, so edits saved in the meantime are kept.

        Raises:
            StoreWriteError: If the local write fails (no remote sync then).
        """
        report = SyncReport(note=note)
        rendered = await self._render(note, report)
        self.save_local(note)

        if not rendered:
            report.remote_skipped = True
            return SaveHandle(note=note, report=report)

        target = self._remote_target()
        if target is None:
            report.remote_skipped = True
            return SaveHandle(note=note, report=report)

        task = self._spawn(self._replace_in_background(*target, note, report))
        return SaveHandle(note=note, report=report, remote=task)

    def save_local(self, note: Note) -> None:
        """
        Persist a note without rendering or remote sync (autosave path).

        The remote document id is owned by the sync process, so the
        stored value wins over whatever the caller's copy holds.

        Raises:
            StoreWriteError: If the local write fails.
        """
        stored = self._store.get(note.id)
        if stored is not None:
            note.remote_document_id = stored.remote_document_id
        self._store.save(note)

    async def delete_note(self, note_id: UUID) -> bool:
        """
        Delete a note everywhere: record, images, PDF, remote document.

        Waits for any in-flight remote replace of the same note first.

        Returns:
            False if the note did not exist.
        """
        async with self._note_lock(note_id):
            note = self._store.get(note_id)
            if note is None:
                return False

            self._store.delete(note_id)
            if note.pdf_filename:
                self._attachments.delete_pdf(note.pdf_filename)

            if note.remote_document_id and self._client is not None:
                result = await self._client.delete_document(note.remote_document_id)
                if not result.ok:
                    logger.warning(
                        "Remote document %s of deleted note %s kept: %s",
                        note.remote_document_id,
                        note_id,
                        result.error,
                    )

        return True

    async def drain(self) -> None:
        """Wait until every background remote replace has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def pending(self) -> int:
        """Number of background remote replaces still running."""
        return len(self._tasks)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _render(self, note: Note, report: SyncReport) -> bool:
        """Steps 1-2: render the note and retire the previous PDF file."""
        previous = note.pdf_filename
        try:
            filename = await asyncio.to_thread(self._renderer.render, note)
        except (RenderError, AttachmentWriteError) as e:
            logger.warning(
                "PDF step failed for note %s, saving locally only: %s", note.id, e
            )
            report.render_error = str(e)
            return False

        if previous and previous != filename:
            # A legacy path may share the new basename; keep the new file
            self._attachments.delete_pdf(previous, keep=filename)

        note.pdf_filename = filename
        report.pdf_filename = filename
        return True

    async def _replace_remote(
        self,
        client: KnowledgeClient,
        knowledge_base_id: str,
        note: Note,
        report: SyncReport,
    ) -> None:
        """
        Steps 4-5: delete the previous remote document, then upload.

        Must be called with the note's lock held. Updates
        ``note.remote_document_id`` only on a successful upload.
        """
        previous_document = note.remote_document_id
        if previous_document:
            result = await client.delete_document(previous_document)
            if result.ok:
                report.deleted_remote = previous_document
            else:
                report.delete_error = result.error
                logger.warning(
                    "Could not delete remote document %s, uploading anyway: %s",
                    previous_document,
                    result.error,
                )

        data = self._attachments.read(note.pdf_filename or "")
        if data is None:
            report.upload_error = f"PDF {note.pdf_filename} is missing"
            logger.error("Upload skipped for note %s: %s", note.id, report.upload_error)
            return

        upload = await client.upload_document(
            knowledge_base_id,
            note.pdf_filename or "",
            data,
            knowledge_type=self._knowledge_type,
        )
        if upload.ok and upload.value is not None:
            note.remote_document_id = upload.value.document_id
            report.uploaded_document_id = upload.value.document_id
        else:
            report.upload_error = upload.error
            logger.warning("Upload failed for note %s: %s", note.id, upload.error)

    async def _replace_in_background(
        self,
        client: KnowledgeClient,
        knowledge_base_id: str,
        note: Note,
        report: SyncReport,
    ) -> SyncReport:
        """Remote replace for ``save_note``, merged into the stored record."""
        note_id = note.id
        async with self._note_lock(note_id):
            stored = self._store.get(note_id)
            if stored is None:
                logger.info("Note %s deleted before sync, skipping upload", note_id)
                report.remote_skipped = True
                return report

            await self._replace_remote(client, knowledge_base_id, stored, report)
            if report.uploaded_document_id is None:
                return report

            latest = self._store.get(note_id)
            if latest is None:
                # Deleted while uploading: withdraw the orphan
                await client.delete_document(report.uploaded_document_id)
                return report

            latest.remote_document_id = report.uploaded_document_id
            try:
                self._store.save(latest)
            except StoreWriteError as e:
                report.persist_error = str(e)
                logger.error("Could not record remote id for note %s: %s", note_id, e)
                return report

            note.remote_document_id = latest.remote_document_id
            report.note = latest
            return report

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _remote_target(self) -> tuple[KnowledgeClient, str] | None:
        """Client and knowledge base to sync into, None when sync is off."""
        if self._client is None:
            return None
        knowledge_base_id = self._knowledge_base_id()
        if not knowledge_base_id:
            return None
        return self._client, knowledge_base_id

    @asynccontextmanager
    async def _note_lock(self, note_id: UUID) -> AsyncIterator[None]:
        """
        Hold the per-note lock.

        The lock is dropped from the registry once no task holds or waits
        for it, so the registry only tracks notes with work in flight.
        """
        lock = self._locks.setdefault(note_id, asyncio.Lock())
        self._lock_users[note_id] = self._lock_users.get(note_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[note_id] -= 1
            if not self._lock_users[note_id]:
                del self._lock_users[note_id]
                del self._locks[note_id]

    def _spawn(self, coro: Coroutine[Any, Any, SyncReport]) -> asyncio.Task[SyncReport]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background sync failed", exc_info=task.exception())
