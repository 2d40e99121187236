"""
Shared fixtures for Mnemo tests.

FakeEmbeddingService hashes words into a fixed-size bag-of-words vector, so
texts sharing words are similar and tests never download a model.
"""

import hashlib
import re
from typing import List

import numpy as np
import pytest


class FakeEmbeddingService:
    """Deterministic stand-in for EmbeddingService"""

    def __init__(self, dimension: int = 1024):
        self.dimension = dimension
        self.calls: List[List[str]] = []

    def _vector(self, text: str) -> List[float]:
        vec = np.zeros(self.dimension, dtype=np.float64)
        for token in re.findall(r"\w+", text.lower()):
            digest = hashlib.md5(token.encode("utf-8")).hexdigest()
            vec[int(digest, 16) % self.dimension] += 1.0
        norm = np.linalg.norm(vec)
        if norm > 0:
            vec = vec / norm
        return vec.tolist()

    def embed(self, texts: List[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        return [self._vector(t) for t in texts]

    def embed_single(self, text: str) -> List[float]:
        if not text:
            raise ValueError("Cannot embed empty text")
        return self.embed([text])[0]


@pytest.fixture
def fake_embedding():
    return FakeEmbeddingService()


@pytest.fixture
def memory_root(tmp_path):
    """Empty memory root with state/ and logs/ directories"""
    (tmp_path / "state").mkdir()
    (tmp_path / "logs").mkdir()
    return tmp_path


@pytest.fixture
def store(memory_root):
    from mnemo.common.vector_store import QdrantVectorStore
    store = QdrantVectorStore(str(memory_root / "state" / ".memory-index"))
    yield store
    store.close()


@pytest.fixture
def journal(memory_root):
    from mnemo.common.journal import Journal
    return Journal(str(memory_root / "logs" / "journal.jsonl"))


@pytest.fixture
def pipeline(store, fake_embedding, journal, memory_root):
    from mnemo.indexer.pipeline import IndexingPipeline
    return IndexingPipeline(
        store=store,
        embedding_service=fake_embedding,
        state_dir=str(memory_root / "state"),
        journal=journal,
    )


@pytest.fixture
def searcher(store, fake_embedding):
    from mnemo.retriever.searcher import Searcher
    return Searcher(store, fake_embedding)
