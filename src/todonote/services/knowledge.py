"""
Knowledge API Client

Async client for the knowledge-base provider (document upload/delete,
retrieval, chat completions) built on httpx.

Design:
    - Every request is signed afresh through the TokenSigner.
    - No exceptions for request/response failures: each call returns an
      ApiResult carrying either a value or an error message. Nothing is
      retried.
    - The streaming completion is an async generator; it raises
      KnowledgeAPIError because it cannot return a result mid-stream.
      Closing the generator early closes the HTTP response.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Final, Generic, TypeVar

import httpx
from pydantic import ValidationError

from todonote.core.errors import KnowledgeAPIError
from todonote.schemas.knowledge import (
    ChatChunk,
    ChatCompletion,
    ChatCompletionRequest,
    CreatedKnowledge,
    CreateKnowledgeRequest,
    Envelope,
    RetrievedChunk,
    RetrieveRequest,
    UploadResult,
)
from todonote.services.auth import TokenSigner

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BASE_URL: Final[str] = "https://open.bigmodel.cn/api/"
SUCCESS_CODE: Final[int] = 200
STREAM_DONE: Final[str] = "[DONE]"

KNOWLEDGE_PATH: Final[str] = "llm-application/open/knowledge"
UPLOAD_PATH: Final[str] = "llm-application/open/document/upload_document/{kb_id}"
DOCUMENT_PATH: Final[str] = "llm-application/open/document/{document_id}"
RETRIEVE_PATH: Final[str] = "llm-application/open/knowledge/retrieve"
CHAT_PATH: Final[str] = "paas/v4/chat/completions"


@dataclass
class ApiResult(Generic[T]):
    """
    Outcome of a remote call.

    Attributes:
        value: Decoded payload on success.
        error: Human-readable failure reason, None on success.
        code: Provider code or HTTP status accompanying a failure.
    """

    value: T | None = None
    error: str | None = None
    code: int | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> ApiResult[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: str, code: int | None = None) -> ApiResult[T]:
        return cls(error=error, code=code)


class KnowledgeClient:
    """
    Knowledge-base provider API client.

    A shared ``httpx.AsyncClient`` may be injected (tests pass one backed
    by ``httpx.MockTransport``); otherwise a short-lived client is opened
    per request.

    Usage::

        client = KnowledgeClient(TokenSigner(api_key))
        result = await client.delete_document("doc-1")
        if not result.ok:
            print(result.error)
    """

    def __init__(
        self,
        signer: TokenSigner,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._signer = signer
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._http_client = http_client

    # ------------------------------------------------------------------
    # Knowledge bases
    # ------------------------------------------------------------------

    async def create_knowledge_base(
        self,
        name: str,
        description: str | None = None,
        embedding_id: int = 3,
        background: str | None = "blue",
        icon: str | None = "question",
    ) -> ApiResult[str]:
        """Create a knowledge base and return its id."""
        body = CreateKnowledgeRequest(
            embedding_id=embedding_id,
            name=name,
            description=description,
            background=background,
            icon=icon,
        )
        result = await self._call_envelope(
            "POST", KNOWLEDGE_PATH, json=body.model_dump(exclude_none=True)
        )
        if not result.ok:
            return ApiResult.failure(result.error or "", result.code)

        try:
            created = CreatedKnowledge.model_validate(result.value.data)
        except ValidationError:
            return ApiResult.failure("Response carried no knowledge base id")

        logger.info("Created knowledge base %s (%s)", created.id, name)
        return ApiResult.success(created.id)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def upload_document(
        self,
        knowledge_base_id: str,
        filename: str,
        data: bytes,
        knowledge_type: int = 1,
        content_type: str = "application/pdf",
    ) -> ApiResult[UploadResult]:
        """
        Upload one file into a knowledge base.

        Succeeds only if the provider reports at least one
        ``successInfos`` entry; per-file failure reasons are folded into
        the error message otherwise.
        """
        result = await self._call_envelope(
            "POST",
            UPLOAD_PATH.format(kb_id=knowledge_base_id),
            files={"files": (filename, data, content_type)},
            data={"knowledge_type": str(knowledge_type)},
        )
        if not result.ok:
            return ApiResult.failure(result.error or "", result.code)

        try:
            upload = UploadResult.model_validate(result.value.data or {})
        except ValidationError as e:
            return ApiResult.failure(f"Malformed upload response: {e}")

        if upload.document_id is None:
            reasons = "; ".join(
                f"{info.file_name}: {info.fail_reason}" for info in upload.failed_infos
            )
            return ApiResult.failure(f"Upload rejected: {reasons or 'no document id'}")

        logger.info("Uploaded %s as document %s", filename, upload.document_id)
        return ApiResult.success(upload)

    async def delete_document(self, document_id: str) -> ApiResult[None]:
        """Delete a document by id."""
        result = await self._call_envelope(
            "DELETE", DOCUMENT_PATH.format(document_id=document_id)
        )
        if not result.ok:
            return ApiResult.failure(result.error or "", result.code)
        logger.info("Deleted remote document %s", document_id)
        return ApiResult.success(None)

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    async def retrieve(
        self, request: RetrieveRequest
    ) -> ApiResult[list[RetrievedChunk]]:
        """Run a retrieval query against one or more knowledge bases."""
        result = await self._call_envelope(
            "POST", RETRIEVE_PATH, json=request.model_dump(exclude_none=True)
        )
        if not result.ok:
            return ApiResult.failure(result.error or "", result.code)

        try:
            chunks = [RetrievedChunk.model_validate(i) for i in result.value.data or []]
        except (ValidationError, TypeError) as e:
            return ApiResult.failure(f"Malformed retrieval response: {e}")
        return ApiResult.success(chunks)

    # ------------------------------------------------------------------
    # Chat completions
    # ------------------------------------------------------------------

    async def chat_completion(
        self, request: ChatCompletionRequest
    ) -> ApiResult[ChatCompletion]:
        """Non-streaming chat completion."""
        body = request.model_copy(update={"stream": False}).model_dump(
            exclude_none=True
        )
        result = await self._call("POST", CHAT_PATH, json=body)
        if not result.ok:
            return ApiResult.failure(result.error or "", result.code)

        try:
            completion = ChatCompletion.model_validate(result.value)
        except ValidationError as e:
            return ApiResult.failure(f"Malformed completion response: {e}")

        logger.info(
            "Chat completion received (model=%s, choices=%d)",
            completion.model,
            len(completion.choices),
        )
        return ApiResult.success(completion)

    async def stream_chat_completion(
        self, request: ChatCompletionRequest
    ) -> AsyncIterator[str]:
        """
        Stream a chat completion as text fragments in arrival order.

        Reads ``data: <json>`` server-sent-event lines until the
        ``data: [DONE]`` marker.

        Raises:
            KnowledgeAPIError: On transport errors, error statuses or
                undecodable chunks.
        """
        body = request.model_copy(update={"stream": True}).model_dump(
            exclude_none=True
        )
        try:
            async with self._session() as client:
                async with client.stream(
                    "POST", self._url(CHAT_PATH), headers=self._headers(), json=body
                ) as response:
                    if response.is_error:
                        await response.aread()
                        raise KnowledgeAPIError(
                            f"HTTP {response.status_code}: {response.text}",
                            code=response.status_code,
                        )
                    async for line in response.aiter_lines():
                        if not line.startswith("data:"):
                            continue
                        payload = line[len("data:") :].strip()
                        if payload == STREAM_DONE:
                            return
                        chunk = ChatChunk.model_validate_json(payload)
                        if chunk.choices and chunk.choices[0].delta.content:
                            yield chunk.choices[0].delta.content
        except httpx.HTTPError as e:
            raise KnowledgeAPIError(f"{type(e).__name__}: {e}") from e
        except ValidationError as e:
            raise KnowledgeAPIError(f"Malformed stream chunk: {e}") from e

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{path}"

    def _headers(self) -> dict[str, str]:
        return {"Authorization": self._signer.authorization()}

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            yield client

    async def _call(self, method: str, path: str, **kwargs: Any) -> ApiResult[Any]:
        """Send a request and decode its JSON body."""
        try:
            async with self._session() as client:
                response = await client.request(
                    method, self._url(path), headers=self._headers(), **kwargs
                )
                response.raise_for_status()
                return ApiResult.success(response.json())
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            logger.warning(
                "Knowledge API unreachable (%s %s): %s: %s",
                method,
                path,
                type(e).__name__,
                e,
            )
            return ApiResult.failure(f"{type(e).__name__}: {e}")
        except httpx.HTTPStatusError as e:
            logger.error(
                "Knowledge API error %d on %s %s: %s",
                e.response.status_code,
                method,
                path,
                e.response.text,
            )
            return ApiResult.failure(
                f"HTTP {e.response.status_code}: {e.response.text}",
                code=e.response.status_code,
            )
        except httpx.HTTPError as e:
            logger.warning("Knowledge API request failed (%s %s): %s", method, path, e)
            return ApiResult.failure(f"{type(e).__name__}: {e}")
        except ValueError as e:
            logger.error("Knowledge API returned malformed JSON on %s: %s", path, e)
            return ApiResult.failure(f"Malformed response: {e}")

    async def _call_envelope(
        self, method: str, path: str, **kwargs: Any
    ) -> ApiResult[Envelope]:
        """Send a request whose response is a ``{code, message, data}`` envelope."""
        result = await self._call(method, path, **kwargs)
        if not result.ok:
            return ApiResult.failure(result.error or "", result.code)

        try:
            envelope = Envelope.model_validate(result.value)
        except ValidationError as e:
            return ApiResult.failure(f"Malformed response: {e}")

        if envelope.code != SUCCESS_CODE:
            logger.warning(
                "Knowledge API rejected %s %s: code=%d message=%s",
                method,
                path,
                envelope.code,
                envelope.message,
            )
            return ApiResult.failure(
                envelope.message or f"code {envelope.code}", code=envelope.code
            )
        return ApiResult.success(envelope)
