"""
Pytest Configuration and Fixtures

Shared fixtures for the offline test suite. Everything runs against a
per-test temporary data directory; the knowledge-base provider is
replaced by FakeKnowledgeAPI served through ``httpx.MockTransport``.
"""

import os

# ---------------------------------------------------------------------------
# Test environment defaults: MUST be before any todonote imports.
#
# A developer's real key in the shell must never reach the provider from
# a test run, so the remote side is disabled unless a test wires it up.
# ---------------------------------------------------------------------------
os.environ.pop("TODONOTE_GLM_API_KEY", None)
os.environ.pop("TODONOTE_KNOWLEDGE_BASE_ID", None)

# ---------------------------------------------------------------------------
# Imports (safe now that env vars are set)
# ---------------------------------------------------------------------------
from collections.abc import Callable  # noqa: E402
from pathlib import Path  # noqa: E402
from typing import Any  # noqa: E402

import fitz  # noqa: E402
import httpx  # noqa: E402
import pytest  # noqa: E402

from todonote.repositories.notes import NoteStore  # noqa: E402
from todonote.services.attachments import AttachmentManager  # noqa: E402
from todonote.services.auth import TokenSigner  # noqa: E402
from todonote.services.knowledge import KnowledgeClient  # noqa: E402
from todonote.services.pdf import PDFRenderer  # noqa: E402

BASE_URL = "https://kb.test/api"
API_KEY = "key-id.key-secret"


class FakeKnowledgeAPI:
    """
    In-memory stand-in for the knowledge-base provider.

    Records every request as ``(method, path)`` and answers with the
    provider's ``{code, message, data}`` envelope. Tests flip the
    attributes to simulate failures.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.requests: list[httpx.Request] = []
        self.document_ids: list[str] = ["doc2", "doc3", "doc4"]
        self.delete_code = 200
        self.upload_code = 200
        self.upload_rejected = False
        self.chat_status = 200
        self.chat_content = "From your notes: buy milk."
        self.on_upload: Callable[[], Any] | None = None

    @property
    def deletes(self) -> list[str]:
        return [p.rsplit("/", 1)[-1] for m, p in self.calls if m == "DELETE"]

    @property
    def uploads(self) -> int:
        return sum(1 for _, p in self.calls if "/upload_document/" in p)

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append((request.method, path))
        self.requests.append(request)

        if request.method == "DELETE":
            return self._envelope(self.delete_code, None)

        if "/upload_document/" in path:
            if self.on_upload is not None:
                self.on_upload()
            if self.upload_code != 200:
                return self._envelope(self.upload_code, None)
            if self.upload_rejected:
                return self._envelope(
                    200,
                    {
                        "successInfos": [],
                        "failedInfos": [
                            {"fileName": "note.pdf", "failReason": "unsupported"}
                        ],
                    },
                )
            document_id = self.document_ids.pop(0)
            return self._envelope(
                200,
                {
                    "successInfos": [
                        {"documentId": document_id, "fileName": "note.pdf"}
                    ],
                    "failedInfos": [],
                },
            )

        if path.endswith("/open/knowledge"):
            return self._envelope(200, {"id": "kb-new"})

        if path.endswith("/chat/completions"):
            if self.chat_status != 200:
                return httpx.Response(self.chat_status, text="upstream overloaded")
            return httpx.Response(
                200,
                json={
                    "id": "chat-1",
                    "model": "glm-4",
                    "choices": [
                        {
                            "index": 0,
                            "message": {
                                "role": "assistant",
                                "content": self.chat_content,
                            },
                            "finish_reason": "stop",
                        }
                    ],
                },
            )

        return httpx.Response(404, text="not found")

    @staticmethod
    def _envelope(code: int, data: Any) -> httpx.Response:
        message = "ok" if code == 200 else "rejected"
        return httpx.Response(200, json={"code": code, "message": message, "data": data})


# ---------------------------------------------------------------------------
# Local storage
# ---------------------------------------------------------------------------


@pytest.fixture
def attachments(tmp_path: Path) -> AttachmentManager:
    """Attachment manager rooted in a fresh temporary directory."""
    return AttachmentManager(tmp_path / "NoteImages")


@pytest.fixture
def store(tmp_path: Path, attachments: AttachmentManager) -> NoteStore:
    """Empty note store (the file does not exist yet)."""
    return NoteStore(tmp_path / "notes.json", attachments)


@pytest.fixture
def renderer(attachments: AttachmentManager) -> PDFRenderer:
    return PDFRenderer(attachments)


@pytest.fixture
def png_bytes() -> bytes:
    """A small opaque RGB PNG."""
    pix = fitz.Pixmap(fitz.csRGB, fitz.IRect(0, 0, 8, 8), False)
    pix.clear_with(200)
    return pix.tobytes("png")


# ---------------------------------------------------------------------------
# Remote side
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_api() -> FakeKnowledgeAPI:
    return FakeKnowledgeAPI()


@pytest.fixture
def http_client(fake_api: FakeKnowledgeAPI) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by the fake provider."""
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_api.handler))


@pytest.fixture
def knowledge_client(http_client: httpx.AsyncClient) -> KnowledgeClient:
    return KnowledgeClient(
        TokenSigner(API_KEY), base_url=BASE_URL, http_client=http_client
    )
