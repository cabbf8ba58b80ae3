# FILE: lawdesk/rag/retrieval.py
"""
Retrieval engine: embed the query, ask the vector store for candidates.

The store filters server-side (threshold, count cap, minimum content length)
and returns rows similarity-descending. An empty list is a valid outcome and
flows on to context assembly; an absent or non-list result is not.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List

from pydantic import ValidationError

from lawdesk.embeddings import embed_query
from lawdesk.errors import ApplicationError

from .schemas import CandidatePassage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetrievalParams:
    match_threshold: float = 0.5
    match_count: int = 10
    min_content_length: int = 30


def parse_candidates(rows: Any) -> List[CandidatePassage]:
    """
    Validate the store's result container into CandidatePassages.

    Missing container → ApplicationError. Individual rows that are not
    objects are dropped; missing fields inside a row take defaults.
    """
    if rows is None or not isinstance(rows, (list, tuple)):
        raise ApplicationError("No matching page sections found")

    candidates: List[CandidatePassage] = []
    for row in rows:
        if row is None:
            continue
        try:
            if isinstance(row, CandidatePassage):
                candidates.append(row)
            elif isinstance(row, dict):
                candidates.append(CandidatePassage.model_validate(row))
            else:
                candidates.append(CandidatePassage.model_validate(row, from_attributes=True))
        except ValidationError as e:
            logger.warning("[retrieval] Dropping malformed section row: %s", e)
    return candidates


async def retrieve_candidates(
    client,
    embedding_model: str,
    vector_store,
    query: str,
    params: RetrievalParams,
) -> List[CandidatePassage]:
    """Embed `query` and return similarity-ordered candidates."""
    embedding = await embed_query(client, embedding_model, query)

    try:
        rows = await vector_store.match_page_sections(
            embedding=embedding,
            match_threshold=params.match_threshold,
            match_count=params.match_count,
            min_content_length=params.min_content_length,
        )
    except ApplicationError:
        raise
    except Exception as e:
        logger.error("[retrieval] Vector store search failed: %s", e)
        raise ApplicationError("Failed to match page sections", str(e)) from e

    candidates = parse_candidates(rows)
    logger.info("[retrieval] %d candidate sections", len(candidates))
    return candidates
