# FILE: tests/conftest.py
"""
Pytest configuration for the lawdesk test suite.

Configures:
- pytest-asyncio for async test support
- FakeOpenAI: scripted stand-in for AsyncOpenAI (moderation, responses,
  embeddings, chat completions incl. streaming). No test touches the network.
- word-count tokenizer so tiktoken never downloads an encoding
- in-memory SQLite sessions for the vector store and conversation slot
"""
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import List, Optional

_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import pytest
from unittest.mock import AsyncMock

pytest_plugins = ["pytest_asyncio"]


# =============================================================================
# Fake upstream client
# =============================================================================

def chunk(text: Optional[str]):
    """One streamed chat-completion chunk carrying `text` as its delta."""
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])


class FakeStream:
    """Async-iterable stand-in for openai's AsyncStream."""

    def __init__(self, deltas: List[Optional[str]], error: Optional[Exception] = None, fail_after: int = 0):
        self.deltas = list(deltas)
        self.error = error
        self.fail_after = fail_after
        self.closed = False
        self.yielded = 0

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        # role-only first chunk, as the real API sends
        yield SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=None))])
        for i, text in enumerate(self.deltas):
            if self.error is not None and i == self.fail_after:
                raise self.error
            self.yielded += 1
            yield chunk(text)
        if self.error is not None and self.fail_after >= len(self.deltas):
            raise self.error
        # usage-only trailing chunk
        yield SimpleNamespace(choices=[])

    async def close(self):
        self.closed = True


class FakeOpenAI:
    """
    Scripted AsyncOpenAI. Every endpoint is an AsyncMock so tests can assert
    on calls (or their absence).
    """

    def __init__(
        self,
        flagged: bool = False,
        categories: Optional[dict] = None,
        intent_output: str = '{"intent":"legal_question","confidence":0.92}',
        embedding: Optional[List[float]] = None,
        answer: str = "보증금은 계약 종료 시 반환됩니다.",
        deltas: Optional[List[str]] = None,
        stream_error: Optional[Exception] = None,
    ):
        self.answer = answer
        self.deltas = deltas if deltas is not None else ["보증금은 ", "계약 종료 시 ", "반환됩니다."]
        self.stream_error = stream_error
        self.streams: List[FakeStream] = []

        moderation_result = SimpleNamespace(
            flagged=flagged,
            categories=categories if categories is not None else {"violence": flagged, "harassment": False},
        )
        self.moderations = SimpleNamespace(
            create=AsyncMock(return_value=SimpleNamespace(results=[moderation_result]))
        )
        self.responses = SimpleNamespace(
            create=AsyncMock(return_value=SimpleNamespace(output_text=intent_output))
        )
        self.embeddings = SimpleNamespace(
            create=AsyncMock(return_value=SimpleNamespace(
                data=[SimpleNamespace(embedding=embedding or [1.0, 0.0, 0.0])]
            ))
        )
        self.chat = SimpleNamespace(
            completions=SimpleNamespace(create=AsyncMock(side_effect=self._chat_create))
        )

    async def _chat_create(self, model, messages, stream=False, **kwargs):
        if stream:
            s = FakeStream(self.deltas, error=self.stream_error, fail_after=1)
            self.streams.append(s)
            return s
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=self.answer))])


def count_words(text: str) -> int:
    return len(text.split())


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def app_config():
    from lawdesk.config import AppConfig
    return AppConfig(openai_key="sk-test", database_url="sqlite://")


@pytest.fixture
def fake_openai():
    return FakeOpenAI()


@pytest.fixture
def engine():
    from lawdesk.db import init_db, make_engine
    eng = make_engine("sqlite://")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    from lawdesk.db import make_session_factory
    return make_session_factory(engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def seeded_store(session_factory, db_session):
    """Vector store with three sections aligned to the x, y and xy axes."""
    from lawdesk.embeddings import SqlVectorStore, store_page, store_section

    page = store_page(db_session, "docs/lease.md", type="markdown", source="guide")
    store_section(db_session, page.id, "임대차 계약이 끝나면 임대인은 보증금을 반환해야 합니다. " * 2,
                  [1.0, 0.0, 0.0], heading="보증금 반환", slug="deposit")
    store_section(db_session, page.id, "계약 갱신 요구권은 임차인이 행사할 수 있는 권리입니다. " * 2,
                  [0.8, 0.6, 0.0], heading="계약 갱신", slug="renewal")
    store_section(db_session, page.id, "교통사고 발생 시 경찰에 신고하고 보험사에 연락해야 합니다. " * 2,
                  [0.0, 1.0, 0.0], heading="교통사고", slug="accident")
    return SqlVectorStore(session_factory)


@pytest.fixture
def services(app_config, fake_openai, seeded_store):
    from lawdesk.services import ServiceHandles
    return ServiceHandles(
        config=app_config,
        openai=fake_openai,
        vector_store=seeded_store,
        count_tokens=count_words,
    )
