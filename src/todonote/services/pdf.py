"""
PDF Rendering Service

Renders a note to a single A4 page with PyMuPDF (fitz): a bold title
block at the top, wrapped to the page width, followed by the content in
the remaining space. Text that runs past the bottom margin is clipped.

The rendering is deterministic for a given (title, content) pair apart
from the creation timestamp stored in the document metadata.
"""

from __future__ import annotations

import logging
import re
from typing import Final

import fitz  # PyMuPDF

from todonote.core.errors import RenderError
from todonote.models.note import Note
from todonote.services.attachments import AttachmentManager

logger = logging.getLogger(__name__)

# A4 in points
PAGE_WIDTH: Final[float] = 595.2
PAGE_HEIGHT: Final[float] = 841.8
MARGIN: Final[float] = 40.0

TITLE_FONT_SIZE: Final[float] = 24.0
CONTENT_FONT_SIZE: Final[float] = 14.0
CONTENT_LINE_SPACING: Final[float] = 6.0
TITLE_CONTENT_GAP: Final[float] = 20.0
LINE_HEIGHT_FACTOR: Final[float] = 1.2

_TOKEN = re.compile(r"\s*\S+")


def pdf_filename_for(note: Note) -> str:
    """Stable PDF filename for a note."""
    return f"note_{note.id}.pdf"


class PDFRenderer:
    """
    Note-to-PDF renderer writing into the attachments directory.

    Usage::

        renderer = PDFRenderer(attachments)
        filename = renderer.render(note)   # "note_<id>.pdf"
    """

    def __init__(self, attachments: AttachmentManager) -> None:
        self._attachments = attachments
        self._fonts: dict[str, fitz.Font] = {}

    def render(self, note: Note) -> str:
        """
        Render a note and store it as ``note_<id>.pdf``.

        Returns:
            The stored filename.

        Raises:
            RenderError: If no PDF bytes could be produced (nothing written).
            AttachmentWriteError: If the write failed (no file left behind).
        """
        data = self.render_bytes(note)
        return self._attachments.write_pdf(pdf_filename_for(note), data)

    def render_bytes(self, note: Note) -> bytes:
        """Render a note to PDF bytes. Raises RenderError on failure."""
        try:
            data = self._render(note)
        except Exception as e:
            logger.error("Failed to render note %s: %s", note.id, e)
            raise RenderError(f"Could not render note {note.id}: {e}") from e

        if not data:
            raise RenderError(f"Renderer produced no bytes for note {note.id}")
        return data

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    def _render(self, note: Note) -> bytes:
        doc = fitz.open()
        try:
            now = fitz.get_pdf_now()
            doc.set_metadata(
                {
                    "creator": "TodoNote",
                    "producer": "TodoNote",
                    "author": "User",
                    "title": note.title,
                    "creationDate": now,
                    "modDate": now,
                }
            )
            page = doc.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
            writer = fitz.TextWriter(page.rect)

            left = MARGIN
            width = PAGE_WIDTH - 2 * MARGIN
            bottom = PAGE_HEIGHT - MARGIN

            # Title uses its full wrapped height
            title_height = self._draw_block(
                writer,
                note.title,
                left=left,
                top=MARGIN,
                width=width,
                bottom=bottom,
                fontsize=TITLE_FONT_SIZE,
                bold=True,
            )

            content_top = MARGIN + title_height + TITLE_CONTENT_GAP
            if note.content and content_top < bottom:
                self._draw_block(
                    writer,
                    note.content,
                    left=left,
                    top=content_top,
                    width=width,
                    bottom=bottom,
                    fontsize=CONTENT_FONT_SIZE,
                    spacing=CONTENT_LINE_SPACING,
                )

            writer.write_text(page)
            return doc.tobytes(garbage=3, deflate=True)
        finally:
            doc.close()

    def _draw_block(
        self,
        writer: fitz.TextWriter,
        text: str,
        *,
        left: float,
        top: float,
        width: float,
        bottom: float,
        fontsize: float,
        bold: bool = False,
        spacing: float = 0.0,
    ) -> float:
        """
        Append wrapped lines to the writer.

        Returns:
            Vertical space consumed by the block (0 for empty text).
        """
        if not text:
            return 0.0

        font = self._font_for(text, bold)
        line_height = fontsize * LINE_HEIGHT_FACTOR + spacing
        lines = self._wrap(text, font, fontsize, width)

        drawn = 0
        for i, line in enumerate(lines):
            baseline = top + fontsize + i * line_height
            if baseline > bottom:
                break
            if line:
                writer.append((left, baseline), line, font=font, fontsize=fontsize)
            drawn += 1

        return drawn * line_height

    def _font_for(self, text: str, bold: bool) -> fitz.Font:
        """Base-14 Helvetica when it covers the text, else the CJK font."""
        base = self._font("hebo" if bold else "helv")
        if all(base.has_glyph(ord(ch)) for ch in text if not ch.isspace()):
            return base
        return self._font("cjk")

    def _font(self, name: str) -> fitz.Font:
        if name not in self._fonts:
            self._fonts[name] = fitz.Font(name)
        return self._fonts[name]

    @staticmethod
    def _wrap(text: str, font: fitz.Font, fontsize: float, width: float) -> list[str]:
        """Greedy word wrap; words wider than a line are split by character."""

        def fits(candidate: str) -> bool:
            return font.text_length(candidate, fontsize=fontsize) <= width

        lines: list[str] = []
        for paragraph in text.splitlines() or [""]:
            current = ""
            for token in _TOKEN.findall(paragraph):
                if fits(current + token):
                    current += token
                    continue
                if current:
                    lines.append(current)
                    token = token.lstrip()
                while token and not fits(token):
                    cut = 1
                    while cut < len(token) and fits(token[: cut + 1]):
                        cut += 1
                    lines.append(token[:cut])
                    token = token[cut:]
                current = token
            lines.append(current)
        return lines
