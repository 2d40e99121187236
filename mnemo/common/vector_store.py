"""
Vector Store

Durable id -> (vector, metadata) map with nearest-neighbour queries.

``VectorStore`` is the contract the indexer and searcher depend on.
``QdrantVectorStore`` runs qdrant-client in local mode inside a directory it
owns: exact cosine search, points persisted one by one, no server process.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

from qdrant_client import QdrantClient
from qdrant_client.models import Distance, PointIdsList, PointStruct, VectorParams

logger = logging.getLogger("mnemo.vector_store")

COLLECTION = "mnemo_memory"
_SCROLL_PAGE = 256


class VectorStoreError(Exception):
    """Raised when the index cannot be read or written."""
    pass


@dataclass
class IndexEntry:
    """What the store holds for one item"""
    id: str
    vector: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class QueryHit:
    """A ranked nearest-neighbour match"""
    id: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)


class VectorStore(ABC):
    """
    Abstract vector store.

    Implementations must rank ``query_items`` by similarity, highest first,
    and leave ties in insertion order.
    """

    @abstractmethod
    def is_index_created(self) -> bool:
        pass

    @abstractmethod
    def create_index(self) -> None:
        pass

    @abstractmethod
    def upsert_item(self, item_id: str, vector: List[float], metadata: Dict[str, Any]) -> None:
        pass

    def upsert_items(self, entries: Iterable[IndexEntry]) -> None:
        """Upsert several entries, in order"""
        for entry in entries:
            self.upsert_item(entry.id, entry.vector, entry.metadata)

    @abstractmethod
    def delete_item(self, item_id: str) -> None:
        pass

    @abstractmethod
    def list_items(self) -> List[IndexEntry]:
        pass

    def count_items(self) -> int:
        return len(self.list_items())

    def clear(self) -> None:
        """Remove every entry"""
        for entry in self.list_items():
            self.delete_item(entry.id)

    @abstractmethod
    def get_item(self, item_id: str) -> Optional[IndexEntry]:
        pass

    @abstractmethod
    def query_items(self, vector: List[float], k: int) -> List[QueryHit]:
        pass

    def ensure_index(self) -> None:
        """Create the index if it does not exist yet"""
        if not self.is_index_created():
            logger.info("Creating new index...")
            self.create_index()

    def close(self) -> None:
        """Release any handle on the underlying storage"""
        pass


def _point_id(item_id: str) -> str:
    """Qdrant point ids must be UUIDs or integers; derive one from the item id"""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, item_id))


class QdrantVectorStore(VectorStore):
    """
    Vector store backed by qdrant-client local mode.

    Each point's payload carries the item id, an insertion sequence number
    and the item metadata. The collection is created on the first upsert,
    when the vector dimension is known. Vectors come back L2-normalised.

    Local mode locks the directory: only one open store per index directory
    per process. Call ``close()`` before opening another.
    """

    def __init__(self, index_dir: str):
        """
        Initialize store.

        Args:
            index_dir: Directory owned by this store
        """
        self._index_dir = Path(index_dir).expanduser()
        self._client: Optional[QdrantClient] = None
        self._dimension: Optional[int] = None
        self._next_seq = 0

    @property
    def index_dir(self) -> Path:
        return self._index_dir

    # ---------- Connection ---------- #

    def _connect(self) -> QdrantClient:
        if self._client is not None:
            return self._client

        try:
            self._index_dir.mkdir(parents=True, exist_ok=True)
            self._client = QdrantClient(path=str(self._index_dir))
            if self._client.collection_exists(COLLECTION):
                info = self._client.get_collection(COLLECTION)
                self._dimension = info.config.params.vectors.size
        except Exception as e:
            self._client = None
            raise VectorStoreError(f"Cannot open index at {self._index_dir}: {e}") from e

        if self._dimension is not None:
            self._next_seq = max((p.payload["seq"] for p in self._scroll()), default=-1) + 1
        logger.debug("Opened index %s (dimension=%s)", self._index_dir, self._dimension)
        return self._client

    def _has_collection(self) -> bool:
        """True when there is data to read; never creates the index directory"""
        if self._client is None and not self._index_dir.is_dir():
            return False
        self._connect()
        return self._dimension is not None

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def is_index_created(self) -> bool:
        return self._index_dir.is_dir()

    def create_index(self) -> None:
        self._connect()

    def _check_dimension(self, vector: List[float]) -> None:
        if self._dimension is not None and len(vector) != self._dimension:
            raise VectorStoreError(
                f"Vector dimension mismatch: got {len(vector)}, index has {self._dimension}"
            )

    def _scroll(self, with_vectors: bool = False) -> Iterator[Any]:
        offset = None
        while True:
            try:
                points, offset = self._client.scroll(
                    collection_name=COLLECTION,
                    limit=_SCROLL_PAGE,
                    offset=offset,
                    with_payload=True,
                    with_vectors=with_vectors,
                )
            except Exception as e:
                raise VectorStoreError(f"Cannot read index {self._index_dir}: {e}") from e
            yield from points
            if offset is None:
                break

    # ---------- Writes ---------- #

    def upsert_item(self, item_id: str, vector: List[float], metadata: Dict[str, Any]) -> None:
        self.upsert_items([IndexEntry(id=item_id, vector=vector, metadata=metadata)])

    def upsert_items(self, entries: Iterable[IndexEntry]) -> None:
        entries = list(entries)
        if not entries:
            return

        client = self._connect()
        for entry in entries:
            self._check_dimension(entry.vector)
            if self._dimension is None:
                self._create_collection(len(entry.vector))

        # Replacing a point keeps its original sequence number
        existing = {
            p.payload["item_id"]: p.payload["seq"]
            for p in self._retrieve([e.id for e in entries], with_vectors=False)
        }
        points = []
        for entry in entries:
            seq = existing.get(entry.id)
            if seq is None:
                seq = self._next_seq
                self._next_seq += 1
                existing[entry.id] = seq
            points.append(PointStruct(
                id=_point_id(entry.id),
                vector=list(entry.vector),
                payload={"item_id": entry.id, "seq": seq, "metadata": dict(entry.metadata)},
            ))

        try:
            client.upsert(collection_name=COLLECTION, points=points)
        except Exception as e:
            raise VectorStoreError(f"Cannot write to index {self._index_dir}: {e}") from e

    def _create_collection(self, dimension: int) -> None:
        try:
            self._client.create_collection(
                collection_name=COLLECTION,
                vectors_config=VectorParams(size=dimension, distance=Distance.COSINE),
            )
        except Exception as e:
            raise VectorStoreError(f"Cannot create collection in {self._index_dir}: {e}") from e
        self._dimension = dimension
        self._next_seq = 0
        logger.info("Created collection %s (dimension=%d)", COLLECTION, dimension)

    def delete_item(self, item_id: str) -> None:
        if not self._has_collection():
            return
        try:
            self._client.delete(
                collection_name=COLLECTION,
                points_selector=PointIdsList(points=[_point_id(item_id)]),
            )
        except Exception as e:
            raise VectorStoreError(f"Cannot delete {item_id}: {e}") from e

    def clear(self) -> None:
        """Drop the whole collection; the next upsert recreates it"""
        if not self._has_collection():
            return
        try:
            self._client.delete_collection(COLLECTION)
        except Exception as e:
            raise VectorStoreError(f"Cannot clear index {self._index_dir}: {e}") from e
        self._dimension = None
        self._next_seq = 0

    # ---------- Reads ---------- #

    def _retrieve(self, item_ids: List[str], with_vectors: bool) -> List[Any]:
        try:
            return self._client.retrieve(
                collection_name=COLLECTION,
                ids=[_point_id(i) for i in item_ids],
                with_payload=True,
                with_vectors=with_vectors,
            )
        except Exception as e:
            raise VectorStoreError(f"Cannot read index {self._index_dir}: {e}") from e

    def list_items(self) -> List[IndexEntry]:
        """Every entry, in insertion order"""
        if not self._has_collection():
            return []
        points = sorted(self._scroll(with_vectors=True), key=lambda p: p.payload["seq"])
        return [_to_entry(p) for p in points]

    def count_items(self) -> int:
        if not self._has_collection():
            return 0
        try:
            return self._client.count(collection_name=COLLECTION, exact=True).count
        except Exception as e:
            raise VectorStoreError(f"Cannot read index {self._index_dir}: {e}") from e

    def get_item(self, item_id: str) -> Optional[IndexEntry]:
        if not self._has_collection():
            return None
        records = self._retrieve([item_id], with_vectors=True)
        return _to_entry(records[0]) if records else None

    def query_items(self, vector: List[float], k: int) -> List[QueryHit]:
        """
        Cosine-similarity nearest neighbours.

        Args:
            vector: Query vector
            k: Maximum number of hits

        Returns:
            Hits sorted by score descending; equal scores keep insertion order
        """
        if k <= 0 or not self._has_collection():
            return []
        self._check_dimension(vector)

        points = self._query(vector, limit=k)
        if len(points) == k:
            # Pull in every point tied with the last hit so the cut is stable
            tied = self._query(vector, limit=self.count_items(), score_threshold=points[-1].score)
            if len(tied) >= len(points):
                points = tied

        points.sort(key=lambda p: (-p.score, p.payload["seq"]))
        return [
            QueryHit(id=p.payload["item_id"], score=float(p.score), metadata=dict(p.payload["metadata"]))
            for p in points[:k]
        ]

    def _query(self, vector: List[float], limit: int, score_threshold: Optional[float] = None) -> List[Any]:
        try:
            response = self._client.query_points(
                collection_name=COLLECTION,
                query=list(vector),
                limit=limit,
                score_threshold=score_threshold,
                with_payload=True,
            )
        except Exception as e:
            raise VectorStoreError(f"Query against {self._index_dir} failed: {e}") from e
        return list(response.points)


def _to_entry(record: Any) -> IndexEntry:
    return IndexEntry(
        id=record.payload["item_id"],
        vector=list(record.vector),
        metadata=dict(record.payload["metadata"]),
    )
