"""Models package - re-exports the note model for convenient imports."""

from todonote.models.note import (
    DATE_FORMAT,
    SCHEMA_VERSION,
    THEME_PALETTE,
    Note,
    local_now,
    migrate_record,
)

__all__ = [
    "DATE_FORMAT",
    "SCHEMA_VERSION",
    "THEME_PALETTE",
    "Note",
    "local_now",
    "migrate_record",
]
