"""
Note Editor Unit Tests

Dirty tracking, local-only autosave and the finish/close lifecycle of
an editing session. Remote sync is disabled (no client) so only local
effects are observed.
"""

from __future__ import annotations

import asyncio

import pytest

from todonote.core.errors import StoreWriteError
from todonote.models.note import Note
from todonote.services.editor import NoteEditor
from todonote.services.sync import SyncCoordinator


@pytest.fixture
def coordinator(store, attachments, renderer) -> SyncCoordinator:
    return SyncCoordinator(
        store, attachments, renderer, None, knowledge_base_id=lambda: None
    )


@pytest.fixture
def editor(coordinator: SyncCoordinator) -> NoteEditor:
    return NoteEditor(coordinator)


class TestDirtyTracking:
    def test_fresh_editor_is_clean(self, editor: NoteEditor) -> None:
        assert not editor.is_dirty
        assert editor.last_saved_label is None

    def test_unchanged_text_does_not_mark_dirty(self, editor: NoteEditor) -> None:
        before = editor.note.updated_at
        editor.update_title("")
        editor.update_content("")

        assert not editor.is_dirty
        assert editor.note.updated_at == before

    def test_edit_marks_dirty(self, editor: NoteEditor) -> None:
        editor.update_title("Plans")
        assert editor.is_dirty
        assert editor.note.updated_at >= editor.note.created_at

    def test_attach_image_appends_reference(self, editor: NoteEditor) -> None:
        editor.update_content("look:")
        editor.attach_image("abc.jpg", alt="cat")

        assert editor.note.content == "look:\n![cat](abc.jpg)"
        assert editor.note.attachment_filenames == ["abc.jpg"]
        assert editor.note.image_references() == ["abc.jpg"]


class TestAutosave:
    def test_writes_locally_without_pdf(self, editor: NoteEditor, store) -> None:
        editor.update_title("draft")

        assert editor.autosave() is True

        stored = store.get(editor.note.id)
        assert stored.title == "draft"
        assert stored.pdf_filename is None
        assert not editor.is_dirty
        assert editor.last_saved_label.startswith("Saved at ")

    def test_clean_editor_skips_write(self, editor: NoteEditor, store) -> None:
        assert editor.autosave() is False
        assert not store.path.exists()

    @pytest.mark.asyncio
    async def test_periodic_autosave(self, editor: NoteEditor, store) -> None:
        editor.start_autosave(interval=0.01)
        editor.update_content("typed")

        await asyncio.sleep(0.05)
        await editor.close()

        assert store.get(editor.note.id).content == "typed"

    @pytest.mark.asyncio
    async def test_autosave_failure_keeps_loop_running(
        self, editor: NoteEditor, coordinator: SyncCoordinator, monkeypatch
    ) -> None:
        attempts: list[Note] = []

        def failing_save(note: Note) -> None:
            attempts.append(note)
            raise StoreWriteError("disk full")

        monkeypatch.setattr(coordinator, "save_local", failing_save)
        editor.update_title("unsaved")
        editor.start_autosave(interval=0.01)

        await asyncio.sleep(0.05)
        assert len(attempts) >= 2
        assert editor.is_dirty

        monkeypatch.undo()
        await editor.close()


class TestFinish:
    @pytest.mark.asyncio
    async def test_empty_note_is_not_saved(self, editor: NoteEditor, store) -> None:
        assert await editor.finish() is None
        assert store.load_all() == []

    @pytest.mark.asyncio
    async def test_finish_renders_and_saves(
        self, editor: NoteEditor, store, attachments
    ) -> None:
        editor.update_title("Done")

        handle = await editor.finish()

        assert handle is not None
        assert handle.remote is None
        stored = store.get(editor.note.id)
        assert attachments.exists(stored.pdf_filename)
        assert not editor.is_dirty

    @pytest.mark.asyncio
    async def test_close_flushes_dirty_note(self, coordinator, store) -> None:
        note = Note.new("existing", "")
        store.save(note)
        editor = NoteEditor(coordinator, note)
        editor.update_content("last words")

        await editor.close()

        assert store.get(note.id).content == "last words"

    @pytest.mark.asyncio
    async def test_close_skips_empty_note(self, editor: NoteEditor, store) -> None:
        editor.update_title("x")
        editor.update_title("")

        await editor.close()

        assert store.load_all() == []
