# FILE: lawdesk/embeddings/service.py
"""
Embedding service: query embedding, section storage, and similarity search.
"""

import asyncio
import json
import logging
import math
from functools import partial
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session, sessionmaker

from lawdesk.errors import ApplicationError
from lawdesk.llm.clients import format_openai_error

from .models import Page, PageSection

logger = logging.getLogger(__name__)


# ============ EMBEDDING GENERATION ============

def normalize_for_embedding(text: str) -> str:
    """Newlines hurt embedding quality; collapse them to spaces."""
    return (text or "").replace("\n", " ")


async def embed_query(client, model: str, text: str) -> List[float]:
    """
    Embed normalized query text.

    A response with zero vectors is an upstream contract violation.
    """
    try:
        response = await client.embeddings.create(
            model=model,
            input=normalize_for_embedding(text),
        )
    except Exception as e:
        logger.error("[embeddings] Embedding call failed: %s", format_openai_error(e))
        raise ApplicationError("Failed to create query embedding") from e

    data = getattr(response, "data", None)
    if not data or not isinstance(data, (list, tuple)):
        raise ApplicationError("Invalid embedding response from OpenAI")

    embedding = getattr(data[0], "embedding", None)
    if not embedding:
        raise ApplicationError("Invalid embedding response from OpenAI")
    return list(embedding)


# ============ STORAGE ============

def store_page(db: Session, path: str, **fields: Any) -> Page:
    """Store a page row in the indexer schema."""
    record = Page(path=path, **fields)
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def store_section(
    db: Session,
    page_id: Optional[int],
    content: Optional[str],
    embedding: List[float],
    heading: Optional[str] = None,
    slug: Optional[str] = None,
    token_count: Optional[int] = None,
) -> PageSection:
    """Store a page section with its embedding vector."""
    record = PageSection(
        page_id=page_id,
        slug=slug,
        heading=heading,
        content=content,
        token_count=token_count,
        embedding=json.dumps(embedding),
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


# ============ SEARCH ============

def cosine_similarity(vec_a: List[float], vec_b: List[float]) -> float:
    """Compute cosine similarity between two vectors."""
    if len(vec_a) != len(vec_b):
        return 0.0

    dot_product = sum(a * b for a, b in zip(vec_a, vec_b))
    norm_a = math.sqrt(sum(a * a for a in vec_a))
    norm_b = math.sqrt(sum(b * b for b in vec_b))

    if norm_a == 0 or norm_b == 0:
        return 0.0

    return dot_product / (norm_a * norm_b)


def match_page_sections(
    db: Session,
    embedding: List[float],
    match_threshold: float,
    match_count: int,
    min_content_length: int,
) -> List[Dict[str, Any]]:
    """
    Similarity search over stored sections.

    Rows below the threshold or with content shorter than min_content_length
    are dropped. Result is similarity-descending, at most match_count rows,
    with `path` hydrated from the owning page.
    """
    sections = db.query(PageSection).all()

    scored = []
    for section in sections:
        if len(section.content or "") < min_content_length:
            continue
        try:
            stored_embedding = json.loads(section.embedding)
        except (json.JSONDecodeError, TypeError):
            continue
        similarity = cosine_similarity(embedding, stored_embedding)
        if similarity > match_threshold:
            scored.append((section, similarity))

    # Stable sort keeps insertion order among equal scores
    scored.sort(key=lambda x: x[1], reverse=True)

    results = []
    for section, similarity in scored[:match_count]:
        results.append({
            "id": section.id,
            "page_id": section.page_id,
            "slug": section.slug,
            "heading": section.heading,
            "content": section.content,
            "similarity": similarity,
            "path": section.page.path if section.page is not None else None,
        })
    return results


class SqlVectorStore:
    """
    Vector store backed by the indexer's SQL tables.

    Blocking database work runs in the default executor so the request task
    only suspends while it waits.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def _match_sync(self, embedding, match_threshold, match_count, min_content_length):
        db = self._session_factory()
        try:
            return match_page_sections(db, embedding, match_threshold, match_count, min_content_length)
        finally:
            db.close()

    async def match_page_sections(
        self,
        embedding: List[float],
        match_threshold: float,
        match_count: int,
        min_content_length: int,
    ) -> List[Dict[str, Any]]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            partial(self._match_sync, embedding, match_threshold, match_count, min_content_length),
        )
