"""
Error Types

Exceptions raised at the local I/O and remote API boundaries.
Callers that must never fail (store load, attachment delete, sync)
catch these and turn them into log lines or report fields.
"""

from __future__ import annotations


class TodoNoteError(Exception):
    """Base class for all application errors."""


class StoreWriteError(TodoNoteError):
    """The note collection file could not be rewritten."""


class AttachmentWriteError(TodoNoteError):
    """An attachment could not be encoded or written to disk."""


class RenderError(TodoNoteError):
    """A note could not be rendered to PDF bytes."""


class KnowledgeAPIError(TodoNoteError):
    """
    Failure talking to the knowledge-base provider.

    Attributes:
        message: Human-readable reason.
        code: Provider ``code`` or HTTP status when one was received.
    """

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
