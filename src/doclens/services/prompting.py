from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import aclosing
from typing import Final

from doclens.retrieval.hybrid_retriever import (
    DEFAULT_CONTEXT_WINDOW,
    DEFAULT_TOP_K,
    HybridRetriever,
)
from doclens.schemas.documents import ChunkSearchResult, PositionCodec
from doclens.schemas.rag_chat import ChatMessage, PromptContext, SourceReference
from doclens.services.embedding_batcher import EmbeddingBatcher
from doclens.services.providers import ChatCompletionProvider, PromptMessage, PromptRole

logger = logging.getLogger(__name__)

SYSTEM_PROMPT: Final[str] = """You are a helpful assistant that answers questions about documents.
Use only the provided context to answer questions.
If the answer is not in the context, say "I couldn't find information about that in the document."

IMPORTANT: Only cite page numbers that appear in the current context (marked as [Page X]).
Do NOT cite page numbers from previous conversation - only cite pages shown in the current context.
If you mention information but the page is not in the current context, do not cite a page number for it.

Be concise and accurate."""

NO_RELEVANT_INFORMATION_ANSWER: Final[str] = (
    "I couldn't find any relevant information in this document."
)
DEFAULT_PREVIEW_LENGTH: Final[int] = 200
PREVIEW_ELLIPSIS: Final[str] = "..."

_HISTORY_ROLES: Final[dict[str, PromptRole]] = {
    "user": "user",
    "assistant": "assistant",
}


def _preview(content: str, limit: int) -> str:
    if len(content) <= limit:
        return content
    return content[:limit] + PREVIEW_ELLIPSIS


class PromptingService:
    """Build retrieval context, stream grounded answers and derive citations."""

    def __init__(
        self,
        *,
        embedding_batcher: EmbeddingBatcher,
        retriever: HybridRetriever,
        chat_provider: ChatCompletionProvider,
        codec: PositionCodec,
        top_k: int = DEFAULT_TOP_K,
        context_window: int = DEFAULT_CONTEXT_WINDOW,
        preview_length: int = DEFAULT_PREVIEW_LENGTH,
    ) -> None:
        self._embedding_batcher = embedding_batcher
        self._retriever = retriever
        self._chat_provider = chat_provider
        self._codec = codec
        self._top_k = top_k
        self._context_window = context_window
        self._preview_length = preview_length

    async def build_context(
        self,
        document_id: str,
        question: str,
        chat_history: list[ChatMessage] | None = None,
    ) -> PromptContext:
        vectors = await self._embedding_batcher.generate_embeddings([question])
        results = await self._retriever.search(
            question,
            vectors[0],
            document_id,
            top_k=self._top_k,
            context_window=self._context_window,
        )
        logger.info(
            "Retrieved %d chunks for document_id=%s (history=%d)",
            len(results),
            document_id,
            len(chat_history or []),
        )
        return PromptContext(
            question=question,
            relevant_chunks=results,
            chat_history=chat_history,
        )

    def build_messages(self, context: PromptContext) -> list[PromptMessage]:
        messages = [PromptMessage(role="system", content=SYSTEM_PROMPT)]

        for message in context.chat_history or []:
            role = _HISTORY_ROLES.get(message.role)
            if role is None:
                continue
            messages.append(PromptMessage(role=role, content=message.content))

        excerpts = "\n\n".join(
            f"[Page {result.chunk.page_number}]: {result.chunk.content}"
            for result in context.relevant_chunks
        )
        messages.append(
            PromptMessage(
                role="user",
                content=f"Context:\n{excerpts}\n\nQuestion: {context.question}",
            )
        )
        return messages

    async def generate_answer_stream(self, context: PromptContext) -> AsyncGenerator[str, None]:
        """Yield answer fragments as the provider produces them.

        Without retrieved chunks a single canned answer is yielded and the
        provider is never called. Closing this generator closes the provider
        stream.
        """

        if not context.relevant_chunks:
            yield NO_RELEVANT_INFORMATION_ANSWER
            return

        messages = self.build_messages(context)
        async with aclosing(self._chat_provider.stream(messages)) as fragments:
            async for fragment in fragments:
                yield fragment

    def get_source_references(self, context: PromptContext) -> list[SourceReference]:
        best_by_page: dict[int, ChunkSearchResult] = {}
        for result in context.relevant_chunks:
            page = result.chunk.page_number
            current = best_by_page.get(page)
            if current is None or result.score > current.score:
                best_by_page[page] = result

        ranked = sorted(best_by_page.values(), key=lambda result: -result.score)
        return [
            SourceReference(
                page=result.chunk.page_number,
                text=_preview(result.chunk.content, self._preview_length),
                positions=result.chunk.get_positions(self._codec),
                relevance_score=result.score,
            )
            for result in ranked
        ]
