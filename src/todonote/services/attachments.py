"""
Attachment Storage Service

Flat local directory holding note images (``<uuid>.jpg``) and rendered
note PDFs (``note_<id>.pdf``).

Design:
    - Filenames are random, not content hashes: saving the same bytes
      twice yields two files.
    - Images are re-encoded to JPEG via PyMuPDF before writing.
    - Deletion is best-effort and never raises.
    - Only PDFs may be recorded as legacy absolute paths; image names
      always resolve inside the directory.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Final
from uuid import uuid4

import fitz  # PyMuPDF

from todonote.core.errors import AttachmentWriteError
from todonote.core.files import atomic_write_bytes

logger = logging.getLogger(__name__)

DEFAULT_JPEG_QUALITY: Final[int] = 80


class AttachmentManager:
    """
    Stores, loads and removes attachment files for notes.

    The directory is created lazily on first write, so constructing the
    manager never touches the filesystem.

    Usage::

        attachments = AttachmentManager(Path("data/NoteImages"))
        name = attachments.save_image(png_bytes)   # "3f2c...e1.jpg"
        raw = attachments.load_image(name)
        attachments.delete_image(name)
    """

    def __init__(
        self,
        directory: Path,
        jpeg_quality: int = DEFAULT_JPEG_QUALITY,
    ) -> None:
        self._directory = directory
        self._jpeg_quality = jpeg_quality

    @property
    def directory(self) -> Path:
        return self._directory

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def save_image(self, data: bytes) -> str:
        """
        Encode an image as JPEG and store it under a fresh random name.

        Args:
            data: Raw bytes of any image format PyMuPDF can decode.

        Returns:
            The new filename (``<uuid>.jpg``).

        Raises:
            AttachmentWriteError: If the bytes are not a decodable image
                or the file cannot be written.
        """
        encoded = self._encode_jpeg(data)
        filename = f"{uuid4()}.jpg"
        self._write(filename, encoded)
        logger.info("Saved image %s (%d bytes)", filename, len(encoded))
        return filename

    def load_image(self, filename: str) -> bytes | None:
        """Read a stored image. Blank or unknown filenames yield None."""
        if not filename or not filename.strip():
            return None
        if Path(filename).name != filename:
            # Only bare names live in the flat directory
            return None
        return self.read(filename)

    def read(self, filename: str) -> bytes | None:
        """Read any attachment (bare name or legacy path); None if absent."""
        if not filename:
            return None
        path = self.path_for(filename)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Could not read attachment %s: %s", filename, e)
            return None

    def delete_image(self, filename: str) -> None:
        """
        Remove a stored image (best-effort).

        Images only ever live in the attachments directory: the name is
        reduced to its basename, so a path in a note record can never
        point the delete elsewhere.
        """
        if not filename or not filename.strip():
            return
        self._unlink(self._directory / Path(filename).name)

    # ------------------------------------------------------------------
    # Generic files (PDF renderings)
    # ------------------------------------------------------------------

    def write_pdf(self, filename: str, data: bytes) -> str:
        """
        Write rendered PDF bytes under ``filename``.

        Raises:
            AttachmentWriteError: If the write fails. No file is left behind.
        """
        self._write(filename, data)
        logger.info("Saved PDF %s (%d bytes)", filename, len(data))
        return filename

    def path_for(self, filename: str) -> Path:
        """Location of a PDF or image (bare name, or legacy absolute PDF path)."""
        candidate = Path(filename)
        if candidate.is_absolute():
            return candidate
        return self._directory / candidate.name

    def exists(self, filename: str) -> bool:
        return bool(filename) and self.path_for(filename).is_file()

    def delete_pdf(self, filename: str, keep: str | None = None) -> None:
        """
        Remove a PDF rendering (best-effort).

        Older releases recorded absolute paths for PDFs. Such a path is
        removed if it exists, then the file of the same basename inside
        the attachments directory.

        Args:
            filename: Bare filename or legacy absolute path.
            keep: Bare filename that must survive, typically the rendering
                that just replaced ``filename`` under the same basename.
        """
        if not filename or not filename.strip():
            return

        candidates = [self._directory / Path(filename).name]
        if Path(filename).is_absolute():
            candidates.insert(0, Path(filename))

        protected = self._directory / keep if keep else None
        for path in candidates:
            if path != protected:
                self._unlink(path)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _encode_jpeg(self, data: bytes) -> bytes:
        try:
            pix = fitz.Pixmap(data)
            if pix.alpha:
                pix = fitz.Pixmap(pix, 0)  # drop alpha channel
            if pix.n not in (1, 3):
                pix = fitz.Pixmap(fitz.csRGB, pix)
            return pix.tobytes("jpeg", jpg_quality=self._jpeg_quality)
        except Exception as e:
            raise AttachmentWriteError(f"Not a decodable image: {e}") from e

    def _write(self, filename: str, data: bytes) -> None:
        path = self._directory / filename
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            atomic_write_bytes(path, data)
        except OSError as e:
            logger.error("Failed to write attachment %s: %s", filename, e)
            raise AttachmentWriteError(f"Could not write {filename}: {e}") from e

    @staticmethod
    def _unlink(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not delete attachment %s: %s", path, e)
        else:
            logger.debug("Deleted attachment %s", path)
