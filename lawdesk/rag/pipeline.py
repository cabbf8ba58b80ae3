# FILE: lawdesk/rag/pipeline.py
"""
Query-answering pipeline, up to (not including) the response streamer.

    normalize -> moderation -> intent
        greeting / smalltalk  -> TemplatedAnswer(menu template)
        non_legal / other     -> TemplatedAnswer(short answer + consultation tail)
        legal_question        -> retrieval -> context -> history -> prompt
                                 -> GroundedAnswer

Every step is awaited in order; intent (including its own fallback call)
is fully resolved before retrieval starts. Moderation and retrieval
failures propagate as UserError / ApplicationError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Union

from lawdesk.errors import UserError
from lawdesk.llm.intent import (
    GREETING_TEMPLATE,
    IntentResult,
    IntentRoute,
    answer_non_legal,
    classify_intent,
    route_for,
)
from lawdesk.security import moderate_query

from .context import AssembledContext, assemble_context
from .prompt import build_legal_prompt, compress_history, resolve_history_limit, truncate_history
from .retrieval import RetrievalParams, retrieve_candidates
from .schemas import AskRequest, ConversationTurn, UsedPassage

logger = logging.getLogger(__name__)


@dataclass
class TemplatedAnswer:
    """Answer produced without retrieval. Never carries citations."""
    query: str
    intent: IntentResult
    body: str

    @property
    def sources(self) -> List[UsedPassage]:
        return []


@dataclass
class GroundedAnswer:
    """Everything the streamer needs to generate a cited answer."""
    query: str
    intent: IntentResult
    prompt: str
    context: AssembledContext
    history: List[ConversationTurn] = field(default_factory=list)

    @property
    def sources(self) -> List[UsedPassage]:
        return self.context.used_passages


PreparedAnswer = Union[TemplatedAnswer, GroundedAnswer]


def normalize_query(prompt: Optional[str]) -> str:
    query = (prompt or "").strip()
    if not query:
        raise UserError("Missing query in request data")
    return query


async def prepare_answer(request: AskRequest, services) -> PreparedAnswer:
    config = services.config
    client = services.openai

    query = normalize_query(request.prompt)
    await moderate_query(client, config.models.moderation, query)

    intent = await classify_intent(client, config.models.intent, query)
    route = route_for(intent.intent)
    logger.info(
        "[pipeline] intent=%s confidence=%.2f route=%s",
        intent.intent.value, intent.confidence, route.value,
    )

    if route == IntentRoute.TEMPLATE:
        return TemplatedAnswer(query=query, intent=intent, body=GREETING_TEMPLATE)

    if route == IntentRoute.GENERAL_ANSWER:
        body = await answer_non_legal(client, config.models.chat, query)
        return TemplatedAnswer(query=query, intent=intent, body=body)

    candidates = await retrieve_candidates(
        client,
        config.models.embedding,
        services.vector_store,
        query,
        RetrievalParams(
            match_threshold=config.match_threshold,
            match_count=config.match_count,
            min_content_length=config.min_content_length,
        ),
    )
    context = assemble_context(candidates, services.count_tokens, config.context_token_ceiling)
    logger.info(
        "[pipeline] context: %d/%d passages, %d tokens",
        len(context.used_passages), len(candidates), context.token_count,
    )

    limit = resolve_history_limit(request.history_limit, config.history_limit)
    history = truncate_history(request.history, limit)
    history_text = compress_history(history, config.history_turn_max_chars)

    prompt = build_legal_prompt(context.context_text, query, history_text)
    return GroundedAnswer(
        query=query,
        intent=intent,
        prompt=prompt,
        context=context,
        history=history,
    )
