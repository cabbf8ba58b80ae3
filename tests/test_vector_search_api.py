# FILE: tests/test_vector_search_api.py
"""
Tests for lawdesk/rag/router.py and main.py
HTTP surface: status codes, headers, wire format.
"""

import pytest
from fastapi.testclient import TestClient

from conftest import FakeOpenAI, count_words


@pytest.fixture
def make_client(app_config, seeded_store):
    """TestClient factory wired to a scripted upstream client."""
    from main import app
    from lawdesk.services import ServiceHandles, get_services

    def factory(openai=None, store=None, config=None, raise_server_exceptions=True):
        services = ServiceHandles(
            config=config or app_config,
            openai=openai or FakeOpenAI(),
            vector_store=store or seeded_store,
            count_tokens=count_words,
        )
        app.dependency_overrides[get_services] = lambda: services
        return TestClient(app, raise_server_exceptions=raise_server_exceptions)

    yield factory
    app.dependency_overrides.clear()


class TestVectorSearchStreaming:
    """Test the default streaming mode."""

    def test_streams_preamble_prose_trailer(self, make_client):
        from lawdesk.rag.citations import decode_response_body

        upstream = FakeOpenAI(embedding=[1.0, 0.0, 0.0], deltas=["보증금은 ", "반환됩니다."])
        client = make_client(openai=upstream)

        response = client.post("/api/vector-search", json={"prompt": "보증금 반환"})

        assert response.status_code == 200
        assert response.headers["content-type"] == "text/plain; charset=utf-8"
        assert response.headers["cache-control"] == "no-cache, no-transform"
        assert response.headers["x-accel-buffering"] == "no"

        body = response.text
        assert body.startswith("<!-- CITATIONS: ")
        assert body.endswith("\n\n<!-- END_CITATIONS: 2 sources used -->")

        decoded = decode_response_body(body)
        assert decoded.prose == "보증금은 반환됩니다."
        assert [c.heading for c in decoded.citations] == ["보증금 반환", "계약 갱신"]
        assert decoded.query == "보증금 반환"

        kwargs = upstream.chat.completions.create.await_args.kwargs
        assert kwargs["stream"] is True
        assert kwargs["model"] == "gpt-5-mini"
        assert kwargs["messages"][0]["role"] == "user"

    def test_stream_string_flag(self, make_client):
        upstream = FakeOpenAI()
        client = make_client(openai=upstream)

        response = client.post("/api/vector-search", json={"prompt": "보증금", "stream": "true"})
        assert response.status_code == 200
        assert upstream.chat.completions.create.await_args.kwargs.get("stream") is True

    def test_mid_stream_error_is_in_band(self, make_client):
        from lawdesk.rag.citations import STREAM_ERROR_MARKER, decode_response_body

        client = make_client(openai=FakeOpenAI(stream_error=RuntimeError("connection reset")))
        response = client.post("/api/vector-search", json={"prompt": "보증금"})

        assert response.status_code == 200
        assert response.text.endswith(STREAM_ERROR_MARKER)
        decoded = decode_response_body(response.text)
        assert decoded.errored is True
        assert decoded.completed is False

    def test_stream_open_failure_is_500_json(self, make_client):
        from lawdesk.errors import GENERIC_ERROR_MESSAGE

        upstream = FakeOpenAI()
        upstream.chat.completions.create.side_effect = RuntimeError("401 invalid key")
        client = make_client(openai=upstream)

        response = client.post("/api/vector-search", json={"prompt": "보증금"})
        assert response.status_code == 500
        assert response.json() == {"error": GENERIC_ERROR_MESSAGE}

    def test_empty_retrieval_has_empty_citations(self, make_client):
        from types import SimpleNamespace
        from unittest.mock import AsyncMock
        from lawdesk.rag.citations import decode_response_body

        store = SimpleNamespace(match_page_sections=AsyncMock(return_value=[]))
        client = make_client(store=store)
        response = client.post("/api/vector-search", json={"prompt": "아무도 모르는 질문"})

        assert response.status_code == 200
        assert '"sources":[]' in response.text
        assert response.text.endswith("<!-- END_CITATIONS: 0 sources used -->")
        assert decode_response_body(response.text).citations == []


class TestVectorSearchSingleShot:
    """Test stream=false and templated answers."""

    def test_non_streaming(self, make_client):
        from lawdesk.rag.citations import decode_response_body

        upstream = FakeOpenAI(answer="한 번에 온 답변입니다.")
        client = make_client(openai=upstream)

        response = client.post("/api/vector-search", json={"prompt": "보증금", "stream": False})

        assert response.status_code == 200
        assert response.headers["content-type"] == "text/plain; charset=utf-8"
        decoded = decode_response_body(response.text)
        assert decoded.prose == "한 번에 온 답변입니다."
        assert decoded.completed
        assert "stream" not in upstream.chat.completions.create.await_args.kwargs

    def test_greeting_has_zero_citations(self, make_client):
        from lawdesk.llm.intent import GREETING_TEMPLATE
        from lawdesk.rag.citations import decode_response_body

        upstream = FakeOpenAI(intent_output='{"intent":"greeting","confidence":0.98}')
        client = make_client(openai=upstream)

        response = client.post("/api/vector-search", json={"prompt": "안녕하세요"})

        assert response.status_code == 200
        assert '"sources":[]' in response.text
        assert GREETING_TEMPLATE in response.text
        assert response.text.endswith("<!-- END_CITATIONS: 0 sources used -->")
        assert decode_response_body(response.text).citations == []
        upstream.embeddings.create.assert_not_called()
        upstream.chat.completions.create.assert_not_called()


class TestVectorSearchErrors:
    """Test JSON error bodies."""

    def test_flagged_is_400(self, make_client):
        upstream = FakeOpenAI(flagged=True)
        client = make_client(openai=upstream)

        response = client.post("/api/vector-search", json={"prompt": "..."})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Flagged content"
        assert body["data"]["flagged"] is True
        assert body["data"]["categories"]["violence"] is True
        upstream.embeddings.create.assert_not_called()
        upstream.chat.completions.create.assert_not_called()

    @pytest.mark.parametrize("payload", [{}, {"prompt": ""}, {"prompt": "   "}, {"stream": True}])
    def test_missing_prompt_is_400(self, make_client, payload):
        client = make_client()
        response = client.post("/api/vector-search", json=payload)
        assert response.status_code == 400
        assert response.json() == {"error": "Missing query in request data"}

    def test_missing_body_is_400(self, make_client):
        client = make_client()
        response = client.post("/api/vector-search")
        assert response.status_code == 400
        assert response.json() == {"error": "Missing request data"}

    def test_bad_history_role_is_400(self, make_client):
        client = make_client()
        response = client.post(
            "/api/vector-search",
            json={"prompt": "q", "history": [{"role": "system", "content": "x"}]},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request data"

    def test_store_failure_is_generic_500(self, make_client):
        from types import SimpleNamespace
        from unittest.mock import AsyncMock
        from lawdesk.errors import GENERIC_ERROR_MESSAGE

        store = SimpleNamespace(match_page_sections=AsyncMock(side_effect=RuntimeError("db password wrong")))
        client = make_client(store=store)
        response = client.post("/api/vector-search", json={"prompt": "보증금"})

        assert response.status_code == 500
        assert response.json() == {"error": GENERIC_ERROR_MESSAGE}
        assert "password" not in response.text

    def test_get_not_allowed(self, make_client):
        client = make_client()
        assert client.get("/api/vector-search").status_code == 405


class TestPing:
    """Test the liveness endpoint."""

    def test_ping(self, make_client):
        client = make_client()
        response = client.get("/ping")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert set(body["models"]) == {"intent", "chat", "moderation", "embedding"}
        assert "sk-" not in response.text
