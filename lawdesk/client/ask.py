# FILE: lawdesk/client/ask.py
"""
HTTP client for POST /api/vector-search.

Streams the response body into a CitationStreamDecoder so callers can render
prose as it arrives; citations come from the preamble.
"""

import json
import logging
from typing import Any, Callable, Dict, List, Optional

import httpx

from lawdesk.rag.citations import CitationStreamDecoder, DecodedResponse

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://127.0.0.1:8000"
DEFAULT_TIMEOUT_S = 60.0


class AskError(Exception):
    """Non-2xx response. `body` is the decoded JSON error body when there is one."""

    def __init__(self, status_code: int, body: Any):
        self.status_code = status_code
        self.body = body
        message = body.get("error") if isinstance(body, dict) else None
        super().__init__(f"HTTP {status_code}: {message or body}")


class AskClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = httpx.Timeout(timeout)
        self.transport = transport

    def _payload(
        self,
        prompt: str,
        stream: bool,
        history: Optional[List[Dict[str, str]]],
        history_limit: Optional[int],
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"prompt": prompt, "stream": stream}
        if history:
            payload["history"] = history
        if history_limit is not None:
            payload["historyLimit"] = history_limit
        return payload

    async def ask(
        self,
        prompt: str,
        stream: bool = True,
        history: Optional[List[Dict[str, str]]] = None,
        history_limit: Optional[int] = None,
        on_progress: Optional[Callable[[str], None]] = None,
    ) -> DecodedResponse:
        """
        Ask one question. `on_progress` receives the visible prose after each
        chunk. Raises AskError on a 4xx/5xx JSON response.
        """
        decoder = CitationStreamDecoder()
        payload = self._payload(prompt, stream, history, history_limit)

        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self.transport
        ) as client:
            async with client.stream("POST", "/api/vector-search", json=payload) as response:
                if response.status_code >= 400:
                    raw = await response.aread()
                    try:
                        body = json.loads(raw)
                    except json.JSONDecodeError:
                        body = raw.decode("utf-8", errors="replace")
                    raise AskError(response.status_code, body)

                async for chunk in response.aiter_text():
                    decoder.feed(chunk)
                    if on_progress is not None:
                        on_progress(decoder.visible_prose)

        result = decoder.finish()
        if result.errored:
            logger.warning("[ask] Server reported a mid-stream failure")
        return result
