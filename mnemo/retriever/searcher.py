"""
Searcher

Semantic search over the memory index with associative expansion.

Stage 1 embeds the query and over-fetches nearest neighbours, then filters
by type and time in memory. Stage 2 re-embeds each surviving result and
queries again to surface related items not already shown. There is no
stored graph; relatedness is recomputed on every query.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from ..common.embedding_service import EmbeddingService
from ..common.vector_store import QueryHit, VectorStore
from ..common.schemas import (
    MemoryItemType,
    RelatedItem,
    SearchResult,
    metadata_to_fields,
)

logger = logging.getLogger("mnemo.retriever.searcher")


def parse_timestamp(value: str) -> Optional[datetime]:
    """ISO-8601 to an aware datetime; naive values are taken as UTC"""
    try:
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, TypeError, AttributeError):
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def make_snippet(content: str, length: int) -> str:
    return content[:length] + ("..." if len(content) > length else "")


class Searcher:
    """
    Searches memory using the vector store.

    Features:
    - Over-fetch then post-filter by type and timestamp
    - Per-result relatedness expansion
    - Direct lookup by id with neighbourhood walk
    """

    def __init__(
        self,
        store: VectorStore,
        embedding_service: EmbeddingService,
        default_limit: int = 5,
        related_fanout: int = 8,
        related_limit: int = 3,
        related_min_score: float = 0.4,
        snippet_length: int = 80,
    ):
        """
        Initialize searcher.

        Args:
            store: Vector store to query
            embedding_service: For embedding queries and result content
            default_limit: Results returned when no limit is given
            related_fanout: Neighbours fetched per result for expansion
            related_limit: Max related items per result
            related_min_score: Related items must score above this
            snippet_length: Characters of content kept in a related snippet
        """
        self._store = store
        self._embedding = embedding_service
        self._default_limit = default_limit
        self._related_fanout = related_fanout
        self._related_limit = related_limit
        self._related_min_score = related_min_score
        self._snippet_length = snippet_length

    async def search(
        self,
        query: str,
        limit: Optional[int] = None,
        type: Optional[Union[MemoryItemType, str]] = None,
        since: Optional[str] = None,
        include_related: bool = True,
    ) -> List[SearchResult]:
        """
        Search for items similar to a query.

        Args:
            query: Natural language query
            limit: Max primary results
            type: Only return items of this type
            since: Only return items at or after this ISO instant; items
                without a timestamp are kept
            include_related: Attach related items to each result

        Returns:
            Results in store order (score descending), at most ``limit``
        """
        limit = self._default_limit if limit is None else limit
        if limit <= 0:
            return []

        if self._store.count_items() == 0:
            logger.info("Index is empty")
            return []

        query_vector = self._embedding.embed_single(query)
        hits = self._store.query_items(query_vector, limit * 2)

        type_value = MemoryItemType(type).value if type is not None else None
        since_ts = parse_timestamp(since) if since else None
        if since and since_ts is None:
            logger.warning("Ignoring unparsable since value: %s", since)

        results = []
        for hit in hits:
            result = self._to_search_result(hit)
            if result is None:
                continue
            if type_value and result.type != type_value:
                continue
            if since_ts and not self._is_since(result, since_ts):
                continue
            results.append(result)

        results = results[:limit]

        if include_related:
            returned_ids = {r.id for r in results}
            for result in results:
                result.related = await self._find_related(
                    result.content,
                    exclude_ids=returned_ids | {result.id},
                    fanout=self._related_fanout,
                    limit=self._related_limit,
                    snippet_length=self._snippet_length,
                )

        return results

    def _is_since(self, result: SearchResult, since_ts: datetime) -> bool:
        if not result.timestamp:
            return True
        ts = parse_timestamp(result.timestamp)
        if ts is None:
            return True
        return ts >= since_ts

    async def _find_related(
        self,
        content: str,
        exclude_ids: Iterable[str],
        fanout: int,
        limit: int,
        snippet_length: int,
    ) -> List[RelatedItem]:
        """Re-embed ``content`` and return its closest neighbours not in ``exclude_ids``"""
        excluded = set(exclude_ids)
        vector = self._embedding.embed_single(content)
        hits = self._store.query_items(vector, fanout)

        related = []
        for hit in hits:
            if hit.id in excluded or hit.score <= self._related_min_score:
                continue
            fields = metadata_to_fields(hit.metadata)
            if fields is None:
                continue
            related.append(RelatedItem(
                id=hit.id,
                type=fields["type"],
                source=fields["source"],
                snippet=make_snippet(fields["content"], snippet_length),
                score=hit.score,
            ))
            if len(related) >= limit:
                break
        return related

    def _to_search_result(self, hit: QueryHit) -> Optional[SearchResult]:
        """Convert a store hit to SearchResult; malformed metadata gives None"""
        fields = metadata_to_fields(hit.metadata)
        if fields is None:
            logger.warning("Skipping index record %s with malformed metadata", hit.id)
            return None
        return SearchResult(id=hit.id, score=hit.score, **fields)

    async def get_entry_with_related(
        self,
        item_id: str,
        fanout: int = 6,
        limit: int = 5,
        snippet_length: int = 100,
    ) -> Dict[str, Any]:
        """
        Look up an item by id and walk into its neighbourhood.

        Returns:
            {"entry": SearchResult or None, "related": [RelatedItem, ...]}
        """
        entry = self._store.get_item(item_id)
        if entry is None:
            return {"entry": None, "related": []}

        result = self._to_search_result(QueryHit(id=entry.id, score=1.0, metadata=entry.metadata))
        if result is None:
            return {"entry": None, "related": []}

        related = await self._find_related(
            result.content,
            exclude_ids={item_id},
            fanout=fanout,
            limit=limit,
            snippet_length=snippet_length,
        )
        return {"entry": result, "related": related}
