"""
Note Repository

Durable note collection backed by a single JSON file.

Key guarantees:
    - Every mutation rewrites the whole file (temp file + rename).
    - ``load_all`` never raises: a missing or undecodable file yields
      an empty collection and the failure goes to the log.
    - Observers registered with ``subscribe`` are told about every
      successful save and delete, after the file has been written.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any, Literal, NamedTuple
from uuid import UUID

from todonote.core.errors import StoreWriteError
from todonote.core.files import atomic_write_bytes
from todonote.models.note import DATE_FORMAT, Note, migrate_record
from todonote.services.attachments import AttachmentManager

logger = logging.getLogger(__name__)

DATE_FIELDS = ("createdAt", "updatedAt")


class StoreChange(NamedTuple):
    """Event delivered to store observers."""

    kind: Literal["saved", "deleted"]
    note_id: UUID


StoreObserver = Callable[[StoreChange], None]


def _parse_local_date(value: str) -> datetime:
    """Current format: ``yyyy-MM-dd HH:mm:ss`` in the local timezone."""
    return datetime.strptime(value, DATE_FORMAT).astimezone()


def _parse_iso_date(value: str) -> datetime:
    """Legacy format: ISO-8601 (e.g. ``2026-01-28T09:30:00Z``)."""
    parsed = datetime.fromisoformat(value)
    return parsed.astimezone()


class NoteStore:
    """
    Repository for Note records stored in one JSON array.

    The store holds no in-memory cache; each call reads the file again,
    so the file is the single source of truth.

    Usage::

        store = NoteStore(Path("data/notes.json"), attachments)
        unsubscribe = store.subscribe(lambda change: print(change))
        store.save(note)
        notes = store.load_all()   # most recently updated first
        store.delete(note.id)
    """

    def __init__(self, path: Path, attachments: AttachmentManager) -> None:
        self._path = path
        self._attachments = attachments
        self._observers: list[StoreObserver] = []

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, observer: StoreObserver) -> Callable[[], None]:
        """
        Register an observer for store changes.

        Returns:
            A callable that removes the observer again.
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _notify(self, change: StoreChange) -> None:
        for observer in list(self._observers):
            try:
                observer(change)
            except Exception:
                logger.exception("Store observer failed for %s", change)

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def load_all(self) -> list[Note]:
        """
        Load every note, most recently updated first.

        Dates are decoded with the local-time pattern first; if the file
        does not decode that way, the whole file is decoded again with
        ISO-8601 dates. If both fail the error is logged and an empty
        list returned.
        """
        if not self._path.exists():
            return []

        try:
            raw = self._path.read_bytes()
        except OSError as e:
            logger.error("Failed to read notes file %s: %s", self._path, e)
            return []

        errors: list[str] = []
        for parse_date in (_parse_local_date, _parse_iso_date):
            try:
                notes, migrated = self._decode(raw, parse_date)
            except (ValueError, TypeError, KeyError) as e:
                errors.append(f"{parse_date.__name__}: {e}")
                continue

            if migrated:
                self._persist_migration(notes)
            return sorted(notes, key=lambda n: n.updated_at, reverse=True)

        logger.error("Failed to decode notes file %s: %s", self._path, errors)
        return []

    def get(self, note_id: UUID) -> Note | None:
        """Look up a single note by id."""
        for note in self.load_all():
            if note.id == note_id:
                return note
        return None

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def save(self, note: Note) -> None:
        """
        Insert or replace a note and rewrite the collection.

        Existing notes are replaced in place; new notes go to the head
        of the collection.

        Raises:
            StoreWriteError: If the file cannot be written. Observers are
                not notified in that case.
        """
        notes = self.load_all()
        for i, existing in enumerate(notes):
            if existing.id == note.id:
                notes[i] = note
                break
        else:
            notes.insert(0, note)

        self._write(notes)
        logger.info("Saved note %s (%d notes total)", note.id, len(notes))
        self._notify(StoreChange("saved", note.id))

    def delete(self, note_id: UUID) -> bool:
        """
        Remove a note and its image attachments.

        The rendered PDF and the remote document are left alone; the
        sync coordinator owns those.

        Returns:
            True if a note was removed, False if the id was unknown.

        Raises:
            StoreWriteError: If the file cannot be written.
        """
        notes = self.load_all()
        target = next((n for n in notes if n.id == note_id), None)
        if target is None:
            logger.info("Delete ignored, note %s not found", note_id)
            return False

        for filename in target.attachment_filenames:
            self._attachments.delete_image(filename)

        remaining = [n for n in notes if n.id != note_id]
        self._write(remaining)
        logger.info("Deleted note %s", note_id)
        self._notify(StoreChange("deleted", note_id))
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _decode(
        raw: bytes,
        parse_date: Callable[[str], datetime],
    ) -> tuple[list[Note], bool]:
        """Decode the file with one date strategy. Raises on any mismatch."""
        records: Any = json.loads(raw)
        if not isinstance(records, list):
            raise ValueError("notes file must contain a JSON array")

        notes: list[Note] = []
        migrated_any = False
        for record in records:
            if not isinstance(record, dict):
                raise TypeError(f"unexpected record type: {type(record).__name__}")
            record, migrated = migrate_record(record)
            migrated_any = migrated_any or migrated
            for field in DATE_FIELDS:
                record[field] = parse_date(record[field])
            notes.append(Note.model_validate(record))
        return notes, migrated_any

    def _persist_migration(self, notes: list[Note]) -> None:
        """Write migrated records back once so migration does not repeat."""
        try:
            self._write(notes)
            logger.info("Migrated notes file %s to current schema", self._path)
        except StoreWriteError as e:
            logger.warning("Could not persist migrated notes: %s", e)

    def _write(self, notes: list[Note]) -> None:
        payload = [n.model_dump(mode="json", by_alias=True) for n in notes]
        data = json.dumps(payload, ensure_ascii=False, indent=2).encode("utf-8")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            atomic_write_bytes(self._path, data)
        except OSError as e:
            logger.error("Failed to write notes file %s: %s", self._path, e)
            raise StoreWriteError(f"Could not write {self._path}: {e}") from e
