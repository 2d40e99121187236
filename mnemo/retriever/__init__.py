"""
Retriever - Semantic Memory Search

Finds memory items by meaning and expands each hit with related items.

Pipeline:
1. Embed the query
2. Over-fetch nearest neighbours from the vector store
3. Filter by type / since, truncate to limit
4. Re-embed each result to find its associative neighbours
"""

from .searcher import Searcher, parse_timestamp

__all__ = [
    "Searcher",
    "parse_timestamp",
]
