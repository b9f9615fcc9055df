"""
File Helpers

Whole-file replacement for the note collection and attachments.
The new content goes to a temporary file in the target directory and is
moved over the target with ``os.replace``, so readers see either the old
or the new file, never a partial one.
"""

from __future__ import annotations

import os
from pathlib import Path
from tempfile import NamedTemporaryFile


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """
    Replace ``path`` with ``data``.

    Raises:
        OSError: If the directory is missing or unwritable. The temporary
            file is removed before the error propagates.
    """
    tmp = None
    try:
        tmp = NamedTemporaryFile(
            "wb", dir=str(path.parent), prefix=f".{path.name}.", delete=False
        )
        tmp.write(data)
        tmp.flush()
        os.fsync(tmp.fileno())
        tmp.close()
        os.replace(tmp.name, path)
    except BaseException:
        if tmp is not None:
            tmp.close()
            if os.path.exists(tmp.name):
                os.unlink(tmp.name)
        raise
