# FILE: lawdesk/rag/context.py
"""
Context assembly under a hard token ceiling.

Walks candidates in the order the vector store returned them (similarity
descending) and stops at the first passage that would bring the running
total to the ceiling. Included passages are therefore always a prefix of
the candidate list (ignoring passages with no content); a smaller passage
further down the list is never pulled in to fill the gap.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Callable, List, Sequence

import tiktoken

from .schemas import CandidatePassage, UsedPassage

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_CEILING = 1500
CONTEXT_DELIMITER = "\n---\n"
UNTITLED_HEADING = "제목 없음"
UNKNOWN_PATH = "unknown"

TokenCounter = Callable[[str], int]


@lru_cache(maxsize=4)
def _encoding(name: str):
    return tiktoken.get_encoding(name)


def make_token_counter(encoding_name: str = "cl100k_base") -> TokenCounter:
    """Deterministic tokenizer used for budgeting."""
    def count_tokens(text: str) -> int:
        if not text:
            return 0
        return len(_encoding(encoding_name).encode(text))
    return count_tokens


@dataclass
class AssembledContext:
    context_text: str = ""
    used_passages: List[UsedPassage] = field(default_factory=list)
    token_count: int = 0


def assemble_context(
    candidates: Sequence[CandidatePassage],
    count_tokens: TokenCounter,
    token_ceiling: int = DEFAULT_TOKEN_CEILING,
) -> AssembledContext:
    """
    Build the context block and the list of passages actually used.

    A passage is only rejected for missing content; missing id, path,
    heading or similarity take positional/placeholder defaults.
    """
    result = AssembledContext()
    parts: List[str] = []

    for i, passage in enumerate(candidates):
        if passage is None or not passage.content:
            continue

        content = passage.content
        passage_tokens = count_tokens(content)
        if result.token_count + passage_tokens >= token_ceiling:
            logger.info(
                "[context] Ceiling reached at candidate %d (%d + %d >= %d)",
                i, result.token_count, passage_tokens, token_ceiling,
            )
            break

        result.token_count += passage_tokens
        parts.append(f"{content.strip()}{CONTEXT_DELIMITER}")
        result.used_passages.append(UsedPassage(
            id=passage.id if passage.id is not None else i,
            path=passage.path or UNKNOWN_PATH,
            heading=passage.heading or UNTITLED_HEADING,
            similarity=passage.similarity if passage.similarity is not None else 0.0,
            content_length=len(content),
            token_count=passage_tokens,
        ))

    result.context_text = "".join(parts)
    return result
