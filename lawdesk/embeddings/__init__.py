"""
Vector store access for lawdesk.
Query embedding, indexer-schema storage helpers, and similarity search.
"""

from .service import (
    normalize_for_embedding,
    embed_query,
    store_page,
    store_section,
    cosine_similarity,
    match_page_sections,
    SqlVectorStore,
)

from .models import Page, PageSection

__all__ = [
    "normalize_for_embedding",
    "embed_query",
    "store_page",
    "store_section",
    "cosine_similarity",
    "match_page_sections",
    "SqlVectorStore",
    "Page",
    "PageSection",
]
