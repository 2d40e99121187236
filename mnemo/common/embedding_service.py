"""
Embedding Service

On-device embedding generation using fastembed.
Text in, L2-normalised vector out; no retries, failures surface to the caller.
"""

import logging
from typing import List, Optional

import numpy as np

logger = logging.getLogger("mnemo.embedding")


class EmbeddingError(Exception):
    """Raised when the embedding model cannot produce vectors."""
    pass


class EmbeddingService:
    """
    Embedding service backed by a fastembed ``TextEmbedding`` model.

    The model is loaded on first use so constructing the service is cheap.
    Every vector returned in one deployment has the same dimension.
    """

    def __init__(
        self,
        model: str = "sentence-transformers/all-MiniLM-L6-v2",
        cache_dir: Optional[str] = None,
    ):
        """
        Initialize embedding service.

        Args:
            model: fastembed model name
            cache_dir: Where fastembed keeps downloaded model files
        """
        self._model_name = model
        self._cache_dir = cache_dir or None
        self._model = None
        self._dimension: Optional[int] = None

    def _ensure_model(self):
        """Lazily load the fastembed model"""
        if self._model is not None:
            return self._model

        try:
            from fastembed import TextEmbedding
            self._model = TextEmbedding(model_name=self._model_name, cache_dir=self._cache_dir)
        except Exception as e:
            raise EmbeddingError(f"Could not load embedding model {self._model_name}: {e}") from e

        logger.info("Loaded embedding model %s", self._model_name)
        return self._model

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def dimension(self) -> Optional[int]:
        """Vector dimension, known after the first embedding call"""
        return self._dimension

    def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: List of strings to embed

        Returns:
            List of embedding vectors (L2 normalized), in input order
        """
        if not texts:
            return []

        model = self._ensure_model()
        try:
            matrix = np.array(list(model.embed(texts)), dtype=np.float32)
        except Exception as e:
            raise EmbeddingError(f"Embedding {len(texts)} texts failed: {e}") from e

        if matrix.ndim != 2 or matrix.shape[0] != len(texts):
            raise EmbeddingError(
                f"Embedding model returned shape {matrix.shape} for {len(texts)} texts"
            )

        if self._dimension is None:
            self._dimension = int(matrix.shape[1])
        elif matrix.shape[1] != self._dimension:
            raise EmbeddingError(
                f"Embedding dimension changed: {matrix.shape[1]} vs {self._dimension}"
            )

        return normalize_rows(matrix).tolist()

    def embed_single(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: String to embed

        Returns:
            Embedding vector (L2 normalized)
        """
        if not text:
            raise ValueError("Cannot embed empty text")

        return self.embed([text])[0]


def normalize_rows(matrix: np.ndarray) -> np.ndarray:
    """L2-normalise each row; zero rows stay zero"""
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return matrix / norms
