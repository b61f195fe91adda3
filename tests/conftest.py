"""Shared fixtures: in-memory collaborators standing in for the remote APIs."""
import asyncio
from typing import Dict, List, Optional

import pytest

from ragchat.errors import EmbeddingError, GenerationError
from ragchat.rag.pipeline import RetrievalPipeline
from ragchat.rag.store import VectorStore


class FakeEmbedder:
    """Embedder returning fixed vectors per text."""

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None):
        self.vectors = vectors or {}
        self.batches: List[List[str]] = []
        self.queries: List[str] = []
        self.fail_on_batch: Optional[int] = None
        self.fail_on_query = False

    def vector_for(self, text: str) -> List[float]:
        return self.vectors.get(text, [float(len(text)), 1.0])

    async def embed(self, text: str, image: Optional[str] = None) -> List[float]:
        self.queries.append(text)
        if self.fail_on_query:
            raise EmbeddingError("embedding service unavailable")
        return self.vector_for(text)

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        self.batches.append(list(texts))
        if self.fail_on_batch == len(self.batches):
            raise EmbeddingError("embedding service unavailable")
        return [self.vector_for(text) for text in texts]


class FakeGenerator:
    """Generator streaming canned fragments."""

    def __init__(self, fragments: Optional[List[str]] = None):
        self.fragments = fragments if fragments is not None else ["Use ", "Gerrit."]
        self.calls: List[dict] = []
        self.fail_after: Optional[int] = None
        self.hang_after: Optional[int] = None

    async def generate(self, messages, max_tokens, temperature):
        self.calls.append(
            {"messages": messages, "max_tokens": max_tokens, "temperature": temperature}
        )
        for i, fragment in enumerate(self.fragments):
            if self.fail_after == i:
                raise GenerationError("model overloaded")
            if self.hang_after == i:
                await asyncio.sleep(3600)
            yield fragment


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def pipeline(embedder: FakeEmbedder, generator: FakeGenerator) -> RetrievalPipeline:
    """Pipeline with small windows so short texts produce several chunks."""
    return RetrievalPipeline(
        embedder=embedder,
        generator=generator,
        window_size=4,
        overlap_size=1,
        batch_size=2,
    )


@pytest.fixture
def sample_store() -> VectorStore:
    """Three chunks pointing in clearly different directions."""
    store = VectorStore()
    store.add("reviews happen in Gerrit", [1.0, 0.0, 0.0])
    store.add("sign the CLA first", [0.0, 1.0, 0.0])
    store.add("run the trybots", [0.0, 0.0, 1.0], metadata="section: testing")
    return store
