"""
Note Model

The durable unit of user content. Serialized as one record of the
JSON note collection; the JSON keys keep the record layout written by
earlier releases so existing files stay readable.
"""

from __future__ import annotations

import random
import re
from datetime import datetime
from typing import Any, Final
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_serializer

# Local-time pattern used for every date written to the note file
DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"

SCHEMA_VERSION: Final[int] = 2

THEME_PALETTE: Final[tuple[str, ...]] = (
    "#FEE2E2",  # soft red
    "#FEF3C7",  # warm yellow
    "#D1FAE5",  # mint
    "#DBEAFE",  # ice blue
    "#EDE9FE",  # taro
    "#F3F4F6",  # silver
)

# Markdown-style image reference: ![alt](filename)
IMAGE_REFERENCE: Final[re.Pattern[str]] = re.compile(r"!\[[^\]]*\]\(([^)\s]+)\)")


def local_now() -> datetime:
    """Current local time, timezone-aware, truncated to whole seconds."""
    return datetime.now().astimezone().replace(microsecond=0)


class Note(BaseModel):
    """
    A user-authored text record with optional image attachments.

    Attributes:
        id: Immutable unique identifier.
        title: Free text title.
        content: Free text body; may embed ``![alt](filename)`` references.
        created_at: Immutable creation timestamp.
        updated_at: Last title/content mutation, never before created_at.
        remote_document_id: Knowledge-base document id, None if never synced.
        attachment_filenames: Stored image filenames referenced by content.
        pdf_filename: Most recent PDF rendering of this note.
        theme_color_index: Palette selector, resolved modulo palette size.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: UUID = Field(default_factory=uuid4, frozen=True)
    title: str = ""
    content: str = ""
    created_at: datetime = Field(
        default_factory=local_now, alias="createdAt", frozen=True
    )
    updated_at: datetime = Field(default_factory=local_now, alias="updatedAt")
    remote_document_id: str | None = Field(default=None, alias="knowledgeDocumentId")
    attachment_filenames: list[str] = Field(
        default_factory=list, alias="imageAttachmentNames"
    )
    pdf_filename: str | None = Field(default=None, alias="notePDFName")
    theme_color_index: int = Field(default=0, alias="themeColorIndex")
    schema_version: int = Field(default=SCHEMA_VERSION, alias="schemaVersion")

    @classmethod
    def new(cls, title: str = "", content: str = "") -> Note:
        """Start a fresh note with a randomly picked theme colour."""
        now = local_now()
        return cls(
            title=title,
            content=content,
            created_at=now,
            updated_at=now,
            theme_color_index=random.randrange(len(THEME_PALETTE)),
        )

    @property
    def theme_color(self) -> str:
        """Palette colour for this note; out-of-range indices wrap around."""
        index = max(0, self.theme_color_index)
        return THEME_PALETTE[index % len(THEME_PALETTE)]

    @property
    def is_empty(self) -> bool:
        return not self.title and not self.content

    def touch(self) -> None:
        """Record a mutation, keeping updated_at >= created_at."""
        self.updated_at = max(local_now(), self.created_at)

    def image_references(self) -> list[str]:
        """Filenames referenced from content, in order of appearance."""
        return IMAGE_REFERENCE.findall(self.content)

    @field_serializer("created_at", "updated_at")
    def _serialize_date(self, value: datetime) -> str:
        if value.tzinfo is not None:
            value = value.astimezone()
        return value.strftime(DATE_FORMAT)


def _theme_index_for(note_id: Any) -> int:
    """Deterministic palette index for records written before v2."""
    try:
        return UUID(str(note_id)).int % len(THEME_PALETTE)
    except ValueError:
        return 0


def migrate_record(raw: dict[str, Any]) -> tuple[dict[str, Any], bool]:
    """
    Bring a raw JSON record up to the current schema.

    Version 1 records may lack ``imageAttachmentNames`` and
    ``themeColorIndex``. Missing theme indices are derived from the note
    id instead of drawn at random, so loading the same file twice always
    yields the same notes.

    Returns:
        Tuple of (record, migrated). ``migrated=True`` if anything changed.
    """
    if raw.get("schemaVersion", 1) >= SCHEMA_VERSION:
        return raw, False

    record = dict(raw)
    record.setdefault("imageAttachmentNames", [])
    if record.get("themeColorIndex") is None:
        record["themeColorIndex"] = _theme_index_for(record.get("id"))
    record["schemaVersion"] = SCHEMA_VERSION
    return record, True
