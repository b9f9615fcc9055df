"""
Note Schemas

Pydantic models for the HTTP request/response cycle.
Separates concerns: NoteCreate (input), NoteUpdate (partial), NoteRead (output).
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class NoteCreate(BaseModel):
    """Request schema for POST /notes. Empty notes are allowed."""

    title: str = Field(default="", max_length=500)
    content: str = ""


class NoteUpdate(BaseModel):
    """
    Request schema for PUT /notes/{id}.

    All fields optional; omitted fields keep their stored value.
    """

    title: str | None = Field(default=None, max_length=500)
    content: str | None = None


class NoteRead(BaseModel):
    """Full note representation."""

    id: UUID
    title: str
    content: str
    created_at: datetime
    updated_at: datetime
    remote_document_id: str | None = None
    attachment_filenames: list[str] = Field(default_factory=list)
    pdf_filename: str | None = None
    theme_color_index: int
    theme_color: str

    model_config = ConfigDict(from_attributes=True)  # Built from Note objects


class NoteSaveResponse(BaseModel):
    """Result of a save that triggers rendering and remote sync."""

    note: NoteRead
    render_error: str | None = Field(
        default=None,
        description="Set when the PDF could not be produced (saved locally only)",
    )
    sync_pending: bool = Field(
        default=False,
        description="True while the remote replace is still running",
    )


class KnowledgeBaseCreate(BaseModel):
    """Request body for creating the knowledge base notes are synced into."""

    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)


class KnowledgeBaseRead(BaseModel):
    id: str


class AskRequest(BaseModel):
    """Request body for knowledge-base question answering."""

    question: str = Field(..., min_length=1, max_length=2000)


class AskResponse(BaseModel):
    answer: str
    failed: bool = False
