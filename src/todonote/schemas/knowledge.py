"""
Knowledge API Schemas

Pydantic models for the knowledge-base provider's wire contract:
knowledge base creation, document upload/delete, retrieval and chat
completions. Field names follow the provider's JSON exactly; camelCase
keys are mapped through aliases.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


class Envelope(BaseModel):
    """Common ``{code, message, data}`` response wrapper."""

    code: int
    message: str = ""
    data: Any = None
    timestamp: int | None = None


# ---------------------------------------------------------------------------
# Knowledge bases
# ---------------------------------------------------------------------------


class CreateKnowledgeRequest(BaseModel):
    """Body for ``POST llm-application/open/knowledge``."""

    embedding_id: int
    name: str = Field(min_length=1)
    description: str | None = None
    background: str | None = None  # blue, red, orange, purple, sky, green, yellow
    icon: str | None = None  # question, book, seal, wrench, tag, horn, house


class CreatedKnowledge(BaseModel):
    id: str


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class UploadSuccessInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    document_id: str = Field(alias="documentId")
    file_name: str | None = Field(default=None, alias="fileName")


class UploadFailedInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_name: str | None = Field(default=None, alias="fileName")
    fail_reason: str | None = Field(default=None, alias="failReason")


class UploadResult(BaseModel):
    """``data`` of an upload response."""

    model_config = ConfigDict(populate_by_name=True)

    success_infos: list[UploadSuccessInfo] = Field(
        default_factory=list, alias="successInfos"
    )
    failed_infos: list[UploadFailedInfo] = Field(
        default_factory=list, alias="failedInfos"
    )

    @property
    def document_id(self) -> str | None:
        """Id of the first successfully uploaded file."""
        return self.success_infos[0].document_id if self.success_infos else None


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------


class RetrieveRequest(BaseModel):
    """Body for ``POST llm-application/open/knowledge/retrieve``."""

    query: str = Field(min_length=1)
    knowledge_ids: list[str] = Field(min_length=1)
    request_id: str | None = None
    document_ids: list[str] | None = None
    top_k: int | None = Field(default=None, ge=1)
    top_n: int | None = Field(default=None, ge=1)
    recall_method: Literal["embedding", "keyword", "mixed"] = "embedding"
    recall_ratio: int | None = None
    rerank_status: int | None = None
    rerank_model: str | None = None
    fractional_threshold: float | None = None


class RetrievedMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str | None = Field(default=None, alias="_id")
    knowledge_id: str | None = None
    doc_id: str | None = None
    doc_name: str | None = None
    doc_url: str | None = None
    contextual_text: str | None = None


class RetrievedChunk(BaseModel):
    text: str
    score: float
    metadata: RetrievedMetadata = Field(default_factory=RetrievedMetadata)


# ---------------------------------------------------------------------------
# Chat completions
# ---------------------------------------------------------------------------


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant", "tool"]
    content: str | None = None


class RetrievalObject(BaseModel):
    knowledge_id: str
    prompt_template: str | None = None


class ChatTool(BaseModel):
    """Tool attached to a chat request; only retrieval is used here."""

    type: Literal["retrieval"] = "retrieval"
    retrieval: RetrievalObject


class ChatCompletionRequest(BaseModel):
    """Body for ``POST paas/v4/chat/completions``."""

    model: str
    messages: list[ChatMessage] = Field(min_length=1)
    stream: bool | None = None
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    tools: list[ChatTool] | None = None
    tool_choice: str | None = None
    request_id: str | None = None


class ChatChoice(BaseModel):
    index: int = 0
    message: ChatMessage | None = None
    finish_reason: str | None = None


class ChatUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletion(BaseModel):
    id: str | None = None
    created: int | None = None
    model: str | None = None
    choices: list[ChatChoice] = Field(default_factory=list)
    usage: ChatUsage | None = None

    @property
    def content(self) -> str | None:
        """Text of the first choice, if any."""
        if not self.choices or self.choices[0].message is None:
            return None
        return self.choices[0].message.content


class ChatDelta(BaseModel):
    role: str | None = None
    content: str | None = None


class ChatChunkChoice(BaseModel):
    index: int = 0
    delta: ChatDelta = Field(default_factory=ChatDelta)
    finish_reason: str | None = None


class ChatChunk(BaseModel):
    """One ``data:`` event of a streamed completion."""

    id: str | None = None
    choices: list[ChatChunkChoice] = Field(default_factory=list)
