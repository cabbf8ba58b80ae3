# FILE: lawdesk/config.py
"""
Application configuration.

Resolved once from environment variables (a local .env is loaded first) and
cached for the process lifetime. Nothing reinitialises it.

Required:
- OPENAI_API_KEY (OPENAI_KEY accepted as an alias)

Models:
- OPENAI_INTENT_MODEL      (default gpt-5-nano, intent classification only)
- OPENAI_CHAT_MODEL        (default gpt-5-mini)
- OPENAI_MODERATION_MODEL  (default omni-moderation-latest)
- OPENAI_EMBEDDING_MODEL   (default text-embedding-3-small)

Tunables (LAWDESK_*) are listed on AppConfig below.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from lawdesk.errors import ApplicationError

logger = logging.getLogger(__name__)

# Hard cap on caller-supplied history, regardless of configuration
HISTORY_HARD_CAP = 10


@dataclass(frozen=True)
class ModelConfig:
    intent: str = "gpt-5-nano"
    chat: str = "gpt-5-mini"
    moderation: str = "omni-moderation-latest"
    embedding: str = "text-embedding-3-small"


@dataclass(frozen=True)
class AppConfig:
    openai_key: str = field(repr=False)
    models: ModelConfig = field(default_factory=ModelConfig)

    # Upstream SDK policy (the pipeline itself never retries)
    openai_timeout_ms: int = 30000
    openai_max_retries: int = 1

    # Vector store
    database_url: str = "sqlite:///./data/lawdesk.db"

    # Retrieval + context assembly
    match_threshold: float = 0.5
    match_count: int = 10
    min_content_length: int = 30
    context_token_ceiling: int = 1500
    tokenizer_encoding: str = "cl100k_base"

    # Conversation history
    history_limit: int = 3
    history_turn_max_chars: int = 600

    # Streaming
    stream_high_water: int = 16


_cached_config: Optional[AppConfig] = None


def _int_env(name: str, default: int) -> int:
    v = os.getenv(name, "").strip()
    if not v:
        return default
    try:
        return int(v)
    except ValueError:
        logger.warning("[config] %s=%r is not an integer, using %s", name, v, default)
        return default


def _float_env(name: str, default: float) -> float:
    v = os.getenv(name, "").strip()
    if not v:
        return default
    try:
        return float(v)
    except ValueError:
        logger.warning("[config] %s=%r is not a number, using %s", name, v, default)
        return default


def models_from_env() -> ModelConfig:
    return ModelConfig(
        intent=os.getenv("OPENAI_INTENT_MODEL") or ModelConfig.intent,
        chat=os.getenv("OPENAI_CHAT_MODEL") or ModelConfig.chat,
        moderation=os.getenv("OPENAI_MODERATION_MODEL") or ModelConfig.moderation,
        embedding=os.getenv("OPENAI_EMBEDDING_MODEL") or ModelConfig.embedding,
    )


def load_config() -> AppConfig:
    """Build a fresh AppConfig from the environment. Prefer get_config()."""
    load_dotenv()

    openai_key = os.getenv("OPENAI_API_KEY") or os.getenv("OPENAI_KEY")
    if not openai_key:
        raise ApplicationError("Missing environment variable OPENAI_API_KEY")

    models = models_from_env()

    history_limit = _int_env("LAWDESK_HISTORY_LIMIT", 3)
    history_limit = max(0, min(history_limit, HISTORY_HARD_CAP))

    return AppConfig(
        openai_key=openai_key,
        models=models,
        openai_timeout_ms=_int_env("OPENAI_TIMEOUT_MS", 30000),
        openai_max_retries=_int_env("OPENAI_MAX_RETRIES", 1),
        database_url=os.getenv("LAWDESK_DATABASE_URL", "sqlite:///./data/lawdesk.db"),
        match_threshold=_float_env("LAWDESK_MATCH_THRESHOLD", 0.5),
        match_count=_int_env("LAWDESK_MATCH_COUNT", 10),
        min_content_length=_int_env("LAWDESK_MIN_CONTENT_LENGTH", 30),
        context_token_ceiling=_int_env("LAWDESK_CONTEXT_TOKEN_CEILING", 1500),
        tokenizer_encoding=os.getenv("LAWDESK_TOKENIZER_ENCODING", "cl100k_base"),
        history_limit=history_limit,
        history_turn_max_chars=_int_env("LAWDESK_HISTORY_TURN_MAX_CHARS", 600),
        stream_high_water=max(1, _int_env("LAWDESK_STREAM_HIGH_WATER", 16)),
    )


def get_config() -> AppConfig:
    """Process-wide configuration, resolved on first use."""
    global _cached_config
    if _cached_config is None:
        _cached_config = load_config()
    return _cached_config
