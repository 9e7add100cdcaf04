"""Session memory: embeddings of past sessions and similarity retrieval.

Memory is auxiliary context. Any embedding or lookup failure is logged and
turned into an empty result so it can never break a session.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol, Sequence

from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel, Field

from .config import Settings
from .repositories.base import EmbeddingStore

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 3
MAX_SNIPPET_CHARS = 500


class MemoryRetrievalResult(BaseModel):
    context: str = ""
    topic_ids: List[str] = Field(default_factory=list)


class EmbeddingClient(Protocol):
    async def embed(self, text: str) -> List[float]:
        ...


class OpenAIEmbeddingClient:
    def __init__(self, model: str, client: Optional[AsyncOpenAI] = None) -> None:
        self._model = model
        self._client = client or AsyncOpenAI()

    async def embed(self, text: str) -> List[float]:
        response = await self._client.embeddings.create(model=self._model, input=text)
        return list(response.data[0].embedding)


def build_embedding_client(settings: Settings) -> Optional[OpenAIEmbeddingClient]:
    if not settings.cadence_embeddings_enabled or not settings.openai_api_key:
        return None
    return OpenAIEmbeddingClient(settings.cadence_embedding_model, AsyncOpenAI(api_key=settings.openai_api_key))


def format_memory_context(contents: Sequence[str]) -> str:
    lines = ["Relevant prior learning (retrieved from past sessions via semantic similarity):", ""]
    for index, content in enumerate(contents, start=1):
        snippet = content if len(content) <= MAX_SNIPPET_CHARS else content[:MAX_SNIPPET_CHARS] + "..."
        lines.append(f"[{index}] {snippet}")
    lines.extend(
        [
            "",
            "Use this context to connect to concepts the learner has encountered before.",
            'Reference their prior learning naturally, without explicitly saying "from your past sessions".',
        ]
    )
    return "\n".join(lines)


async def retrieve_relevant_memory(
    store: EmbeddingStore,
    embedder: Optional[EmbeddingClient],
    profile_id: str,
    message: str,
    limit: int = DEFAULT_LIMIT,
) -> MemoryRetrievalResult:
    if embedder is None or not message.strip():
        return MemoryRetrievalResult()
    try:
        vector = await embedder.embed(message)
        similar = await store.find_similar(profile_id, vector, limit)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Memory retrieval failed for %s, continuing without memory: %s", profile_id, exc)
        return MemoryRetrievalResult()

    if not similar:
        return MemoryRetrievalResult()
    topic_ids = [memory.topic_id for memory in similar if memory.topic_id]
    return MemoryRetrievalResult(
        context=format_memory_context([memory.content for memory in similar]),
        topic_ids=topic_ids,
    )


async def store_session_memory(
    store: EmbeddingStore,
    embedder: Optional[EmbeddingClient],
    *,
    session_id: str,
    profile_id: str,
    topic_id: Optional[str],
    content: str,
) -> bool:
    """Embed and store a session summary. Returns whether anything was stored."""
    if embedder is None or not content.strip():
        return False
    try:
        vector = await embedder.embed(content)
    except OpenAIError as exc:
        logger.warning("Embedding generation failed for session %s: %s", session_id, exc)
        return False
    except Exception:  # noqa: BLE001
        logger.exception("Unexpected embedding failure for session %s", session_id)
        return False
    try:
        await store.store_session_embedding(session_id, profile_id, topic_id, content, vector)
    except Exception:  # noqa: BLE001
        logger.exception("Failed to store embedding for session %s", session_id)
        return False
    return True


__all__ = [
    "EmbeddingClient",
    "MemoryRetrievalResult",
    "OpenAIEmbeddingClient",
    "build_embedding_client",
    "format_memory_context",
    "retrieve_relevant_memory",
    "store_session_memory",
]
