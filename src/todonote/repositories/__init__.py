"""Repositories package."""

from todonote.repositories.notes import NoteStore, StoreChange
from todonote.repositories.preferences import PreferenceStore

__all__ = [
    "NoteStore",
    "PreferenceStore",
    "StoreChange",
]
