# FILE: lawdesk/llm/clients.py
"""
OpenAI client helpers.

- build_openai_client(): AsyncOpenAI with the configured timeout/retry policy
- format_openai_error(): one-line diagnostic for logs
- complete_chat(): single-shot chat completion → text
- respond_text(): Responses API call (instructions + input) → output_text

All calls are async; the service runs inside FastAPI's event loop.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from openai import AsyncOpenAI

logger = logging.getLogger(__name__)


def build_openai_client(config) -> AsyncOpenAI:
    """Construct the shared client. Called once per process via ServiceHandles."""
    return AsyncOpenAI(
        api_key=config.openai_key,
        timeout=config.openai_timeout_ms / 1000.0,
        max_retries=config.openai_max_retries,
    )


def _get(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def format_openai_error(err: BaseException) -> str:
    """Condense an SDK exception to `status=... code=... message=...`."""
    response = _get(err, "response")
    status = _get(err, "status_code") or _get(err, "status") or _get(response, "status_code")
    body = _get(err, "body")
    code = _get(err, "code") or _get(body, "code")
    message = _get(err, "message") or str(err) or ""

    parts = []
    if status:
        parts.append(f"status={status}")
    if code:
        parts.append(f"code={code}")
    if message:
        parts.append(f"message={str(message)[:300]}")
    return " ".join(parts) or err.__class__.__name__


def extract_message_text(completion: Any) -> str:
    """First choice's message content, or empty string."""
    choices = _get(completion, "choices") or []
    if not choices:
        return ""
    message = _get(choices[0], "message")
    return _get(message, "content") or ""


async def complete_chat(client, model: str, messages: List[Dict[str, str]]) -> str:
    """Single-shot (non-streaming) chat completion."""
    completion = await client.chat.completions.create(
        model=model,
        messages=messages,
    )
    return extract_message_text(completion)


async def respond_text(client, model: str, instructions: str, text: str) -> str:
    """Responses API call returning the aggregated output text."""
    response = await client.responses.create(
        model=model,
        instructions=instructions,
        input=text,
    )
    return _get(response, "output_text") or ""
