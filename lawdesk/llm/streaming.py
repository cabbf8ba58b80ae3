# FILE: lawdesk/llm/streaming.py
"""
Response streaming for the query-answering endpoint.

StreamSink is the bounded hand-off between the producer task (model deltas)
and the HTTP consumer (StreamingResponse pulling the body):

    write(chunk)  -> False once `high_water` chunks are pending
    drain()       -> suspends until the consumer has pulled below high water
    end()         -> no more chunks; the body iterator finishes once empty
    close()       -> consumer went away; pending chunks are dropped

ResponseStreamer drives one response through

    HEADERS_SENT -> CITATIONS_SENT -> STREAMING -> COMPLETED | ABORTED | ERRORED

Headers and the citation preamble are written synchronously in begin(), so a
failure to open the model stream can still become a JSON error response.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Deque, Dict, Optional, Sequence

from lawdesk.llm.clients import _get, format_openai_error
from lawdesk.rag.citations import (
    STREAM_ERROR_MARKER,
    format_citation_preamble,
    format_citation_trailer,
    utc_timestamp,
)
from lawdesk.rag.schemas import UsedPassage

logger = logging.getLogger(__name__)

PLAIN_TEXT_HEADERS: Dict[str, str] = {
    "Content-Type": "text/plain; charset=utf-8",
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

DEFAULT_HIGH_WATER = 16


# =============================================================================
# SINK
# =============================================================================

class StreamSink:
    """Bounded pending-chunk buffer with an explicit consumer-pull signal."""

    def __init__(self, high_water: int = DEFAULT_HIGH_WATER):
        self.high_water = max(1, high_water)
        self.headers: Optional[Dict[str, str]] = None
        self._pending: Deque[str] = deque()
        self._readable = asyncio.Event()
        self._writable = asyncio.Event()
        self._writable.set()
        self._ended = False
        self._closed = False

    @property
    def headers_sent(self) -> bool:
        return self.headers is not None

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return len(self._pending)

    def send_headers(self, headers: Dict[str, str]) -> bool:
        """Record response headers. Only the first call has any effect."""
        if self.headers_sent:
            logger.debug("[stream] Headers already sent, ignoring")
            return False
        self.headers = dict(headers)
        return True

    def write(self, chunk: str) -> bool:
        """Queue a chunk. Returns False when the caller should drain() first."""
        if self._closed or self._ended:
            return False
        if not chunk:
            return len(self._pending) < self.high_water
        self._pending.append(chunk)
        self._readable.set()
        if len(self._pending) >= self.high_water:
            self._writable.clear()
            return False
        return True

    async def drain(self) -> None:
        while not self._closed and len(self._pending) >= self.high_water:
            self._writable.clear()
            await self._writable.wait()

    def end(self) -> None:
        if self._ended:
            return
        self._ended = True
        self._readable.set()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._pending.clear()
        self._readable.set()
        self._writable.set()

    async def chunks(self) -> AsyncIterator[str]:
        """Consumer side: yields chunks in write order until end() or close()."""
        while True:
            if self._closed:
                return
            if self._pending:
                chunk = self._pending.popleft()
                if len(self._pending) < self.high_water:
                    self._writable.set()
                yield chunk
                continue
            if self._ended:
                return
            self._readable.clear()
            await self._readable.wait()

    def collect(self) -> str:
        """Everything still pending, joined. Used by the single-shot path and tests."""
        text = "".join(self._pending)
        self._pending.clear()
        self._writable.set()
        return text


async def write_with_backpressure(sink: StreamSink, chunk: str) -> bool:
    """Write one chunk, waiting for drain when signalled. False once the sink is closed."""
    if sink.closed:
        return False
    if not sink.write(chunk):
        await sink.drain()
    return not sink.closed


# =============================================================================
# MODEL STREAM
# =============================================================================

async def open_chat_stream(client, model: str, prompt: str):
    """Start a streaming chat completion with the prompt as the single user message."""
    return await client.chat.completions.create(
        model=model,
        messages=[{"role": "user", "content": prompt}],
        stream=True,
    )


async def iter_text_deltas(stream) -> AsyncIterator[str]:
    """Only non-empty text deltas; role/usage/finish chunks are skipped."""
    async for chunk in stream:
        choices = _get(chunk, "choices") or []
        if not choices:
            continue
        content = _get(_get(choices[0], "delta"), "content")
        if content:
            yield content


async def close_model_stream(stream) -> None:
    close = getattr(stream, "close", None)
    if close is None:
        return
    result = close()
    if asyncio.iscoroutine(result):
        await result


# =============================================================================
# STREAMER
# =============================================================================

class StreamState(str, Enum):
    IDLE = "idle"
    HEADERS_SENT = "headers_sent"
    CITATIONS_SENT = "citations_sent"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ABORTED = "aborted"
    ERRORED = "errored"


TERMINAL_STATES = (StreamState.COMPLETED, StreamState.ABORTED, StreamState.ERRORED)


class ResponseStreamer:
    def __init__(
        self,
        sink: StreamSink,
        sources: Sequence[UsedPassage],
        query: str,
        timestamp: Optional[str] = None,
    ):
        self.sink = sink
        self.sources = list(sources)
        self.query = query
        self.timestamp = timestamp or utc_timestamp()
        self.state = StreamState.IDLE
        self.chunk_count = 0

    def begin(self) -> None:
        """Headers then preamble. Safe to call more than once."""
        if self.state != StreamState.IDLE:
            return
        self.sink.send_headers(PLAIN_TEXT_HEADERS)
        self.state = StreamState.HEADERS_SENT
        self.sink.write(format_citation_preamble(self.sources, self.query, self.timestamp))
        self.state = StreamState.CITATIONS_SENT

    def _finish(self) -> None:
        self.sink.write(format_citation_trailer(len(self.sources)))
        self.sink.end()
        self.state = StreamState.COMPLETED

    def send_text(self, body: str) -> StreamState:
        """Single-shot response: headers, preamble, body and trailer in one sequence."""
        self.begin()
        self.sink.write(body or "")
        self._finish()
        return self.state

    async def forward(self, stream) -> StreamState:
        """
        Pump text deltas from an open model stream into the sink.

        Consumer disconnect (sink closed, or this task cancelled) closes the
        model stream and stops without writing a trailer. A model error after
        the preamble is reported in-band with the error marker.
        """
        self.begin()
        self.state = StreamState.STREAMING
        try:
            if self.sink.pending >= self.sink.high_water:
                await self.sink.drain()
            async for delta in iter_text_deltas(stream):
                if not await write_with_backpressure(self.sink, delta):
                    break
                self.chunk_count += 1

            if self.sink.closed:
                logger.info("[stream] Consumer disconnected after %d chunks", self.chunk_count)
                self.state = StreamState.ABORTED
                await close_model_stream(stream)
                return self.state

            self._finish()
            logger.info(
                "[stream] Completed: %d chunks, %d sources", self.chunk_count, len(self.sources)
            )
        except asyncio.CancelledError:
            logger.info("[stream] Cancelled after %d chunks", self.chunk_count)
            self.state = StreamState.ABORTED
            await close_model_stream(stream)
            raise
        except Exception as e:
            logger.error("[stream] Model stream failed: %s", format_openai_error(e))
            self.state = StreamState.ERRORED
            if not self.sink.closed:
                self.sink.write(STREAM_ERROR_MARKER)
                self.sink.end()
            await close_model_stream(stream)
        return self.state


async def stream_body(
    sink: StreamSink,
    producer: Callable[[], Awaitable[Any]],
) -> AsyncIterator[str]:
    """
    StreamingResponse body: runs `producer` as its own task and yields what it
    writes. When the consumer stops pulling, the sink is closed and the
    producer cancelled.
    """
    task = asyncio.create_task(producer())
    try:
        async for chunk in sink.chunks():
            yield chunk
    finally:
        if not sink.ended or sink.pending:
            sink.close()
        if not task.done():
            task.cancel()
