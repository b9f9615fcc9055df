"""
Chat Service

Answers questions from the note knowledge base through the provider's
chat completion endpoint with a retrieval tool.

Design:
    - Graceful degradation: failures become an informational answer
      (``request failed: <reason>``) instead of an exception.
    - No knowledge base configured -> no network call at all.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Final

from todonote.schemas.knowledge import (
    ChatCompletionRequest,
    ChatMessage,
    ChatTool,
    RetrievalObject,
)
from todonote.services.knowledge import KnowledgeClient

logger = logging.getLogger(__name__)

# {{question}} and {{knowledge}} are filled in by the provider
PROMPT_TEMPLATE: Final[
    str
] = """Answer the user's question using the rules and reference documents below:
1. The question is: "{{question}}".
2. Read the document library "{{knowledge}}" carefully and look for relevant information.
3. If the documents contain closely related content, explain it clearly in your own words as a complete answer, and tell the user the answer comes from their notes.
4. If the documents contain nothing relevant, say "Nothing about this in your notes yet", then answer from your own knowledge in detail.
5. Keep a friendly, natural tone.
"""

NO_KNOWLEDGE_BASE_ANSWER: Final[str] = (
    "No knowledge base configured. Create or select one in the settings first."
)
NO_ANSWER: Final[str] = "No answer was returned."


@dataclass
class ChatAnswer:
    """
    Answer to a chat question.

    Attributes:
        content: Text to show the user.
        failed: True if the text describes a failure rather than an answer.
    """

    content: str
    failed: bool = False


class ChatService:
    """
    Knowledge-base backed question answering.

    Usage::

        chat = ChatService(client, knowledge_base_id=lambda: "kb-1")
        answer = await chat.ask("What did I write about Python?")
        print(answer.content)
    """

    def __init__(
        self,
        client: KnowledgeClient | None,
        knowledge_base_id: Callable[[], str | None],
        model: str = "glm-4",
    ) -> None:
        self._client = client
        self._knowledge_base_id = knowledge_base_id
        self._model = model

    def build_request(
        self, question: str, knowledge_base_id: str
    ) -> ChatCompletionRequest:
        """Single-turn request with the retrieval tool attached."""
        return ChatCompletionRequest(
            model=self._model,
            messages=[ChatMessage(role="user", content=question)],
            tools=[
                ChatTool(
                    retrieval=RetrievalObject(
                        knowledge_id=knowledge_base_id,
                        prompt_template=PROMPT_TEMPLATE,
                    )
                )
            ],
        )

    async def ask(self, question: str) -> ChatAnswer:
        """
        Ask a question against the configured knowledge base.

        Raises:
            ValueError: If the question is blank.
        """
        if not question.strip():
            raise ValueError("Question must not be blank")

        knowledge_base_id = self._knowledge_base_id()
        if self._client is None or not knowledge_base_id:
            return ChatAnswer(content=NO_KNOWLEDGE_BASE_ANSWER, failed=True)

        result = await self._client.chat_completion(
            self.build_request(question, knowledge_base_id)
        )
        if not result.ok or result.value is None:
            logger.warning("Chat request failed: %s", result.error)
            return ChatAnswer(content=f"request failed: {result.error}", failed=True)

        return ChatAnswer(content=result.value.content or NO_ANSWER)

    async def stream(self, question: str) -> AsyncIterator[str]:
        """
        Stream answer fragments.

        Raises:
            ValueError: If the question is blank or no knowledge base is set.
            KnowledgeAPIError: If the stream fails.
        """
        if not question.strip():
            raise ValueError("Question must not be blank")

        knowledge_base_id = self._knowledge_base_id()
        if self._client is None or not knowledge_base_id:
            raise ValueError(NO_KNOWLEDGE_BASE_ANSWER)

        request = self.build_request(question, knowledge_base_id)
        async for fragment in self._client.stream_chat_completion(request):
            yield fragment
