# FILE: lawdesk/rag/router.py
"""
POST /api/vector-search

Body: {"prompt": str, "stream"?: bool, "history"?: [{role, content}], "historyLimit"?: int}

Returns text/plain in the citation wire format. Errors raised before the
first byte (including a failure to open the model stream) become JSON
bodies via the exception handlers in main.py; failures after that are
reported in-band.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import Response, StreamingResponse

from lawdesk.errors import ApplicationError
from lawdesk.llm.clients import complete_chat, format_openai_error
from lawdesk.llm.streaming import ResponseStreamer, StreamSink, open_chat_stream, stream_body
from lawdesk.services import ServiceHandles, get_services

from .pipeline import GroundedAnswer, prepare_answer
from .schemas import AskRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["vector-search"])


def _single_shot(sink: StreamSink) -> Response:
    return Response(content=sink.collect(), status_code=200, headers=sink.headers)


@router.post("/vector-search")
async def vector_search(req: AskRequest, services: ServiceHandles = Depends(get_services)):
    answer = await prepare_answer(req, services)
    config = services.config

    sink = StreamSink(config.stream_high_water)
    streamer = ResponseStreamer(sink, answer.sources, answer.query)

    if not isinstance(answer, GroundedAnswer):
        streamer.send_text(answer.body)
        return _single_shot(sink)

    if not req.wants_stream():
        try:
            body = await complete_chat(
                services.openai,
                config.models.chat,
                [{"role": "user", "content": answer.prompt}],
            )
        except Exception as e:
            logger.error("[vector-search] Completion failed: %s", format_openai_error(e))
            raise ApplicationError("Failed to generate answer", format_openai_error(e)) from e
        streamer.send_text(body)
        return _single_shot(sink)

    try:
        stream = await open_chat_stream(services.openai, config.models.chat, answer.prompt)
    except Exception as e:
        logger.error("[vector-search] Could not open model stream: %s", format_openai_error(e))
        raise ApplicationError("Failed to start answer stream", format_openai_error(e)) from e

    streamer.begin()
    return StreamingResponse(
        stream_body(sink, lambda: streamer.forward(stream)),
        status_code=200,
        headers=sink.headers,
    )
