"""
Notes API Router

REST endpoints for note CRUD, image attachments and stored files.
Saving renders the note to PDF and replaces its knowledge-base document
in the background; responses return once the local write is done.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, UploadFile, status

from todonote.api.deps import get_services
from todonote.core.errors import AttachmentWriteError
from todonote.models.note import Note
from todonote.schemas.notes import NoteCreate, NoteRead, NoteSaveResponse, NoteUpdate
from todonote.services.container import ServiceContainer
from todonote.services.editor import NoteEditor
from todonote.services.sync import SaveHandle

router = APIRouter()
attachments_router = APIRouter()


def _load_or_404(services: ServiceContainer, note_id: UUID) -> Note:
    note = services.store.get(note_id)
    if note is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Note not found"
        )
    return note


def _save_response(handle: SaveHandle) -> NoteSaveResponse:
    return NoteSaveResponse(
        note=NoteRead.model_validate(handle.note),
        render_error=handle.report.render_error,
        sync_pending=handle.remote is not None and not handle.remote.done(),
    )


@router.get("/", response_model=list[NoteRead])
async def read_notes(services: ServiceContainer = Depends(get_services)):
    """List all notes, most recently updated first."""
    return [NoteRead.model_validate(n) for n in services.store.load_all()]


@router.get("/{note_id}", response_model=NoteRead)
async def read_note(note_id: UUID, services: ServiceContainer = Depends(get_services)):
    """Retrieve a single note by ID."""
    return NoteRead.model_validate(_load_or_404(services, note_id))


@router.post(
    "/", response_model=NoteSaveResponse, status_code=status.HTTP_201_CREATED
)
async def create_note(
    note_in: NoteCreate,
    services: ServiceContainer = Depends(get_services),
):
    """
    Create a note.

    The PDF is rendered and the note stored before responding; the
    knowledge-base upload continues in the background.
    """
    note = Note.new(title=note_in.title, content=note_in.content)
    handle = await services.coordinator.save_note(note)
    return _save_response(handle)


@router.put("/{note_id}", response_model=NoteSaveResponse)
async def update_note(
    note_id: UUID,
    note_in: NoteUpdate,
    services: ServiceContainer = Depends(get_services),
):
    """Update title and/or content, then render and sync."""
    editor = NoteEditor(services.coordinator, _load_or_404(services, note_id))
    if note_in.title is not None:
        editor.update_title(note_in.title)
    if note_in.content is not None:
        editor.update_content(note_in.content)

    handle = await editor.finish()
    if handle is None:
        # Emptied note: keep it locally without a rendering
        editor.autosave()
        return NoteSaveResponse(note=NoteRead.model_validate(editor.note))
    return _save_response(handle)


@router.delete("/{note_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_note(
    note_id: UUID, services: ServiceContainer = Depends(get_services)
):
    """Delete a note with its images, PDF and knowledge-base document."""
    if not await services.coordinator.delete_note(note_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Note not found"
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{note_id}/images",
    response_model=NoteRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_image(
    note_id: UUID,
    file: UploadFile,
    services: ServiceContainer = Depends(get_services),
):
    """
    Store an image and reference it from the note content.

    Only the local note file is updated; the next full save syncs it.

    Raises:
        HTTPException 422: If the upload is not a decodable image.
    """
    editor = NoteEditor(services.coordinator, _load_or_404(services, note_id))
    raw = await file.read()
    try:
        filename = services.attachments.save_image(raw)
    except AttachmentWriteError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)
        ) from e

    editor.attach_image(filename)
    editor.autosave()
    return NoteRead.model_validate(editor.note)


@attachments_router.get("/{filename}")
async def read_attachment(
    filename: str,
    services: ServiceContainer = Depends(get_services),
):
    """Serve a stored image or note PDF."""
    data = services.attachments.load_image(filename)
    if data is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Attachment not found"
        )
    media_type = "application/pdf" if filename.endswith(".pdf") else "image/jpeg"
    return Response(content=data, media_type=media_type)
