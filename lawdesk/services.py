# FILE: lawdesk/services.py
"""
Process-wide service handles.

Config, the OpenAI client, the vector store and the tokenizer are built on
first use and then reused for the life of the process. Nothing rebuilds
them; concurrent requests only read.

Anything can be injected at construction, which is how tests swap in fakes:

    services = ServiceHandles(config=cfg, openai=fake_client, vector_store=store)
    app.dependency_overrides[get_services] = lambda: services
"""

from __future__ import annotations

import logging
from typing import Optional

from lawdesk.config import AppConfig, get_config
from lawdesk.db import init_db, make_engine, make_session_factory
from lawdesk.embeddings import SqlVectorStore
from lawdesk.llm.clients import build_openai_client
from lawdesk.rag.context import TokenCounter, make_token_counter

logger = logging.getLogger(__name__)


class ServiceHandles:
    def __init__(
        self,
        config: Optional[AppConfig] = None,
        openai=None,
        vector_store=None,
        count_tokens: Optional[TokenCounter] = None,
    ):
        self._config = config
        self._openai = openai
        self._vector_store = vector_store
        self._count_tokens = count_tokens

    @property
    def config(self) -> AppConfig:
        if self._config is None:
            self._config = get_config()
        return self._config

    @property
    def openai(self):
        if self._openai is None:
            self._openai = build_openai_client(self.config)
            logger.info("[services] OpenAI client initialized")
        return self._openai

    @property
    def vector_store(self):
        if self._vector_store is None:
            engine = make_engine(self.config.database_url)
            init_db(engine)
            self._vector_store = SqlVectorStore(make_session_factory(engine))
            logger.info("[services] Vector store initialized")
        return self._vector_store

    @property
    def count_tokens(self) -> TokenCounter:
        if self._count_tokens is None:
            self._count_tokens = make_token_counter(self.config.tokenizer_encoding)
        return self._count_tokens


_services: Optional[ServiceHandles] = None


def get_services() -> ServiceHandles:
    """FastAPI dependency for the shared handles."""
    global _services
    if _services is None:
        _services = ServiceHandles()
    return _services
