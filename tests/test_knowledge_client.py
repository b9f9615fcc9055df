"""
Knowledge API Client Unit Tests

Exercises the httpx client against ``httpx.MockTransport`` handlers:
request shapes, envelope decoding, graceful failure results and the
streaming completion parser. No network access.
"""

from __future__ import annotations

import json

import httpx
import pytest

from todonote.core.errors import KnowledgeAPIError
from todonote.schemas.knowledge import (
    ChatCompletionRequest,
    ChatMessage,
    RetrieveRequest,
)
from todonote.services.auth import TokenSigner
from todonote.services.knowledge import KnowledgeClient

BASE_URL = "https://kb.test/api"


def _client(handler) -> KnowledgeClient:
    return KnowledgeClient(
        TokenSigner("key-id.key-secret"),
        base_url=BASE_URL,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def _chat_request() -> ChatCompletionRequest:
    return ChatCompletionRequest(
        model="glm-4", messages=[ChatMessage(role="user", content="hi")]
    )


class _TrackedStream(httpx.AsyncByteStream):
    """SSE body that records how far it was read and whether it was closed."""

    def __init__(self, chunks: list[bytes]) -> None:
        self.chunks = chunks
        self.sent = 0
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            self.sent += 1
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


def _sse(*contents: str) -> list[bytes]:
    events = [{"choices": [{"delta": {"content": c}}]} for c in contents]
    return [f"data: {json.dumps(e)}\n\n".encode() for e in events]


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class TestUpload:
    @pytest.mark.asyncio
    async def test_multipart_request(self, knowledge_client, fake_api) -> None:
        result = await knowledge_client.upload_document("kb-1", "note_1.pdf", b"%PDF")

        assert result.ok
        assert result.value.document_id == "doc2"

        request = fake_api.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/api/llm-application/open/document/upload_document/kb-1"
        assert request.headers["content-type"].startswith("multipart/form-data")
        body = request.read()
        assert b'name="files"; filename="note_1.pdf"' in body
        assert b'name="knowledge_type"' in body
        assert b"%PDF" in body

    @pytest.mark.asyncio
    async def test_signed_authorization_header(self, knowledge_client, fake_api) -> None:
        await knowledge_client.upload_document("kb-1", "n.pdf", b"%PDF")

        auth = fake_api.requests[0].headers["authorization"]
        assert auth.startswith("Bearer ")
        assert len(auth.removeprefix("Bearer ").split(".")) == 3

    @pytest.mark.asyncio
    async def test_rejected_file_is_failure(self, knowledge_client, fake_api) -> None:
        fake_api.upload_rejected = True

        result = await knowledge_client.upload_document("kb-1", "note.pdf", b"%PDF")

        assert not result.ok
        assert "unsupported" in result.error

    @pytest.mark.asyncio
    async def test_non_success_code_is_failure(self, knowledge_client, fake_api) -> None:
        fake_api.upload_code = 1001

        result = await knowledge_client.upload_document("kb-1", "note.pdf", b"%PDF")

        assert not result.ok
        assert result.code == 1001
        assert result.error == "rejected"


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_path(self, knowledge_client, fake_api) -> None:
        result = await knowledge_client.delete_document("doc1")

        assert result.ok
        assert fake_api.calls == [
            ("DELETE", "/api/llm-application/open/document/doc1")
        ]

    @pytest.mark.asyncio
    async def test_delete_rejected(self, knowledge_client, fake_api) -> None:
        fake_api.delete_code = 404

        result = await knowledge_client.delete_document("doc1")
        assert not result.ok
        assert result.code == 404


# ---------------------------------------------------------------------------
# Transport failures
# ---------------------------------------------------------------------------


class TestFailures:
    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        result = await _client(handler).delete_document("doc1")

        assert not result.ok
        assert "ConnectError" in result.error

    @pytest.mark.asyncio
    async def test_http_error_status(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="internal")

        result = await _client(handler).delete_document("doc1")

        assert not result.ok
        assert result.code == 500
        assert "HTTP 500" in result.error

    @pytest.mark.asyncio
    async def test_malformed_json(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>gateway</html>")

        result = await _client(handler).delete_document("doc1")
        assert not result.ok

    @pytest.mark.asyncio
    async def test_envelope_without_code(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"unexpected": True})

        result = await _client(handler).delete_document("doc1")
        assert not result.ok


# ---------------------------------------------------------------------------
# Knowledge bases & retrieval
# ---------------------------------------------------------------------------


class TestKnowledge:
    @pytest.mark.asyncio
    async def test_create_knowledge_base(self, knowledge_client, fake_api) -> None:
        result = await knowledge_client.create_knowledge_base("Notes", embedding_id=3)

        assert result.ok
        assert result.value == "kb-new"
        body = json.loads(fake_api.requests[0].content)
        assert body == {
            "embedding_id": 3,
            "name": "Notes",
            "background": "blue",
            "icon": "question",
        }

    @pytest.mark.asyncio
    async def test_retrieve(self) -> None:
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(
                200,
                json={
                    "code": 200,
                    "message": "ok",
                    "data": [
                        {
                            "text": "buy milk",
                            "score": 0.91,
                            "metadata": {"_id": "c1", "doc_id": "doc2"},
                        }
                    ],
                },
            )

        result = await _client(handler).retrieve(
            RetrieveRequest(query="milk", knowledge_ids=["kb-1"], top_k=3)
        )

        assert result.ok
        (chunk,) = result.value
        assert chunk.text == "buy milk"
        assert chunk.metadata.id == "c1"
        assert seen[0]["recall_method"] == "embedding"
        assert seen[0]["top_k"] == 3


# ---------------------------------------------------------------------------
# Chat completions
# ---------------------------------------------------------------------------


class TestChatCompletion:
    @pytest.mark.asyncio
    async def test_completion(self, knowledge_client, fake_api) -> None:
        result = await knowledge_client.chat_completion(_chat_request())

        assert result.ok
        assert result.value.content == "From your notes: buy milk."
        body = json.loads(fake_api.requests[0].content)
        assert body["stream"] is False
        assert fake_api.calls[0][1] == "/api/paas/v4/chat/completions"

    @pytest.mark.asyncio
    async def test_completion_http_error(self, knowledge_client, fake_api) -> None:
        fake_api.chat_status = 503

        result = await knowledge_client.chat_completion(_chat_request())

        assert not result.ok
        assert result.code == 503

    @pytest.mark.asyncio
    async def test_stream_until_done(self) -> None:
        events = [
            {"choices": [{"index": 0, "delta": {"role": "assistant", "content": "Hel"}}]},
            {"choices": [{"index": 0, "delta": {"content": "lo"}}]},
            {"choices": [{"index": 0, "delta": {}, "finish_reason": "stop"}]},
        ]
        lines = [f"data: {json.dumps(e)}" for e in events]
        lines += ["data: [DONE]", 'data: {"choices": [{"delta": {"content": "!"}}]}']
        stream_body = "\n\n".join(lines) + "\n\n"

        def handler(request: httpx.Request) -> httpx.Response:
            assert json.loads(request.content)["stream"] is True
            return httpx.Response(
                200,
                text=stream_body,
                headers={"content-type": "text/event-stream"},
            )

        fragments = [
            f async for f in _client(handler).stream_chat_completion(_chat_request())
        ]
        assert fragments == ["Hel", "lo"]

    @pytest.mark.asyncio
    async def test_stream_error_status_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, text="rate limited")

        with pytest.raises(KnowledgeAPIError) as exc_info:
            async for _ in _client(handler).stream_chat_completion(_chat_request()):
                pass

        assert exc_info.value.code == 429

    @pytest.mark.asyncio
    async def test_stream_yields_as_chunks_arrive(self) -> None:
        stream = _TrackedStream(_sse("Hel", "lo") + [b"data: [DONE]\n\n"])

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, stream=stream, headers={"content-type": "text/event-stream"}
            )

        fragments = _client(handler).stream_chat_completion(_chat_request())

        assert await anext(fragments) == "Hel"
        assert stream.sent == 1
        assert await anext(fragments) == "lo"
        assert stream.sent == 2
        await fragments.aclose()

    @pytest.mark.asyncio
    async def test_closing_stream_early_closes_response(self) -> None:
        stream = _TrackedStream(_sse("one", "two", "three"))

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, stream=stream, headers={"content-type": "text/event-stream"}
            )

        fragments = _client(handler).stream_chat_completion(_chat_request())
        assert await anext(fragments) == "one"

        await fragments.aclose()

        assert stream.closed
        assert stream.sent == 1
