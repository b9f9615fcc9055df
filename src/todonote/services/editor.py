"""
Note Editing Session

In-memory draft of the note being edited, with dirty tracking and
periodic autosave. Autosave only writes the note file; the full
render-and-sync path runs when editing is finished.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime

from todonote.core.errors import StoreWriteError
from todonote.models.note import Note
from todonote.services.sync import SaveHandle, SyncCoordinator

logger = logging.getLogger(__name__)

DEFAULT_AUTOSAVE_INTERVAL = 30.0


class NoteEditor:
    """
    Editing session for one note.

    Usage::

        editor = NoteEditor(coordinator)            # new, empty note
        editor.update_title("Groceries")
        editor.start_autosave(30)
        ...
        handle = await editor.finish()              # render + sync
        await editor.close()
    """

    def __init__(self, coordinator: SyncCoordinator, note: Note | None = None) -> None:
        self._coordinator = coordinator
        self._note = note if note is not None else Note.new()
        self._dirty = False
        self._autosave_task: asyncio.Task[None] | None = None
        self.last_saved_at: datetime | None = None

    @property
    def note(self) -> Note:
        return self._note

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    @property
    def last_saved_label(self) -> str | None:
        """Short status text such as ``"Saved at 14:05"``."""
        if self.last_saved_at is None:
            return None
        return f"Saved at {self.last_saved_at:%H:%M}"

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def update_title(self, text: str) -> None:
        if self._note.title == text:
            return
        self._note.title = text
        self._note.touch()
        self._dirty = True

    def update_content(self, text: str) -> None:
        if self._note.content == text:
            return
        self._note.content = text
        self._note.touch()
        self._dirty = True

    def attach_image(self, filename: str, alt: str = "image") -> None:
        """Reference a stored image from the content and track it."""
        if filename not in self._note.attachment_filenames:
            self._note.attachment_filenames.append(filename)
        separator = "\n" if self._note.content else ""
        self.update_content(f"{self._note.content}{separator}![{alt}]({filename})")

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------

    def autosave(self) -> bool:
        """
        Write the draft locally if it has unsaved changes.

        Returns:
            True if a write happened.
        """
        if not self._dirty:
            return False

        logger.info("Autosaving note %s", self._note.id)
        self._coordinator.save_local(self._note)
        self._mark_saved()
        return True

    async def finish(self) -> SaveHandle | None:
        """
        Save the draft through the full render-and-sync path.

        An entirely empty note is not saved.

        Returns:
            The save handle, or None when nothing was saved.
        """
        if self._note.is_empty:
            return None

        handle = await self._coordinator.save_note(self._note)
        self._mark_saved()
        return handle

    def start_autosave(self, interval: float = DEFAULT_AUTOSAVE_INTERVAL) -> None:
        """Autosave every ``interval`` seconds until ``close``."""
        if self._autosave_task is None:
            self._autosave_task = asyncio.create_task(self._autosave_loop(interval))

    async def close(self) -> None:
        """Stop autosaving and flush unsaved changes locally."""
        if self._autosave_task is not None:
            self._autosave_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._autosave_task
            self._autosave_task = None

        if self._dirty and not self._note.is_empty:
            self.autosave()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _autosave_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                self.autosave()
            except StoreWriteError as e:
                logger.error("Autosave of note %s failed: %s", self._note.id, e)

    def _mark_saved(self) -> None:
        self._dirty = False
        self.last_saved_at = datetime.now()
