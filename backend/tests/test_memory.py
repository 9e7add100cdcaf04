from __future__ import annotations

from typing import List

from cadence.config import Settings
from cadence.memory import (
    MAX_SNIPPET_CHARS,
    build_embedding_client,
    format_memory_context,
    retrieve_relevant_memory,
    store_session_memory,
)
from cadence.repositories import InMemoryStore


class StaticEmbedder:
    def __init__(self, vectors: dict[str, List[float]]) -> None:
        self.vectors = vectors

    async def embed(self, text: str) -> List[float]:
        return self.vectors[text]


class BrokenEmbedder:
    async def embed(self, text: str) -> List[float]:
        raise TimeoutError("embedding request timed out")


async def test_retrieval_ranks_by_similarity() -> None:
    store = InMemoryStore()
    await store.store_session_embedding("s1", "learner", "limits", "Limits and continuity", [1.0, 0.0])
    await store.store_session_embedding("s2", "learner", "vectors", "Vector spaces", [0.0, 1.0])
    await store.store_session_embedding("s3", "other", "limits", "Someone else's notes", [1.0, 0.0])
    embedder = StaticEmbedder({"what is a limit?": [0.9, 0.1]})

    result = await retrieve_relevant_memory(store, embedder, "learner", "what is a limit?", limit=1)

    assert result.topic_ids == ["limits"]
    assert "[1] Limits and continuity" in result.context
    assert "Someone else's notes" not in result.context


async def test_retrieval_failure_returns_empty_result() -> None:
    result = await retrieve_relevant_memory(InMemoryStore(), BrokenEmbedder(), "learner", "hello")
    assert result.context == ""
    assert result.topic_ids == []


async def test_retrieval_without_embedder_or_message() -> None:
    store = InMemoryStore()
    assert (await retrieve_relevant_memory(store, None, "learner", "hello")).context == ""
    assert (await retrieve_relevant_memory(store, StaticEmbedder({}), "learner", "   ")).context == ""


async def test_store_session_memory_reports_failures() -> None:
    store = InMemoryStore()

    assert await store_session_memory(store, None, session_id="s", profile_id="p", topic_id=None, content="x") is False
    assert (
        await store_session_memory(store, BrokenEmbedder(), session_id="s", profile_id="p", topic_id=None, content="x")
        is False
    )
    assert (
        await store_session_memory(
            store, StaticEmbedder({"notes": [0.2, 0.4]}), session_id="s", profile_id="p", topic_id="t", content="notes"
        )
        is True
    )
    assert len(await store.find_similar("p", [0.2, 0.4], 5)) == 1


def test_context_truncates_long_snippets() -> None:
    context = format_memory_context(["a" * (MAX_SNIPPET_CHARS + 20)])
    assert ("a" * MAX_SNIPPET_CHARS + "...") in context
    assert context.startswith("Relevant prior learning")


def test_embedding_client_requires_flag_and_key() -> None:
    assert build_embedding_client(Settings(OPENAI_API_KEY=None, CADENCE_EMBEDDINGS_ENABLED=True)) is None
    assert build_embedding_client(Settings(OPENAI_API_KEY="sk-test", CADENCE_EMBEDDINGS_ENABLED=False)) is None
    assert build_embedding_client(Settings(OPENAI_API_KEY="sk-test", CADENCE_EMBEDDINGS_ENABLED=True)) is not None
