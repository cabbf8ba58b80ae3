# FILE: lawdesk/rag/citations.py
"""
Citation wire protocol.

A response body is plain text:

    <!-- CITATIONS: {"type":"citations","sources":[...],"query":"...","timestamp":"..."} -->\\n
    <prose, any number of chunks>
    \\n\\n<!-- END_CITATIONS: <n> sources used -->

A stream that fails after the preamble ends with
    \\n\\n<!-- STREAM_ERROR: Streaming failed -->
instead of the trailer.

The preamble JSON writes "<" and ">" as \\u003c and \\u003e so no query or
heading can end the comment early. Prose is never escaped; the prompt forbids
the model from emitting these comment forms.

Decoding is the client's half of the contract: strip the comments, parse
the preamble JSON, everything else is prose. Chunk boundaries carry no
meaning, so the decoder buffers and only strips comments once complete.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from .schemas import UsedPassage

PREAMBLE_OPEN = "<!-- CITATIONS:"
TRAILER_OPEN = "<!-- END_CITATIONS:"
COMMENT_OPEN = "<!--"
COMMENT_CLOSE = "-->"

STREAM_ERROR_MARKER = "\n\n<!-- STREAM_ERROR: Streaming failed -->"

_PREAMBLE_RE = re.compile(r"<!--\s*CITATIONS:\s*([\s\S]*?)\s*-->\n?")
_TRAILER_RE = re.compile(r"\n{0,2}<!--\s*END_CITATIONS:\s*(\d+)[\s\S]*?-->")
_ERROR_RE = re.compile(r"\n{0,2}<!--\s*STREAM_ERROR:[\s\S]*?-->")


def utc_timestamp() -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _source_dict(source: Any) -> Dict[str, Any]:
    if isinstance(source, UsedPassage):
        return source.model_dump()
    return dict(source)


def format_citation_preamble(
    sources: Sequence[UsedPassage],
    query: str,
    timestamp: Optional[str] = None,
) -> str:
    payload = {
        "type": "citations",
        "sources": [_source_dict(s) for s in sources],
        "query": query,
        "timestamp": timestamp or utc_timestamp(),
    }
    encoded = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    # Keep "-->" and "<!--" out of the payload so the comment cannot close early.
    encoded = encoded.replace("<", "\\u003c").replace(">", "\\u003e")
    return f"{PREAMBLE_OPEN} {encoded} {COMMENT_CLOSE}\n"


def format_citation_trailer(source_count: int) -> str:
    return f"\n\n{TRAILER_OPEN} {source_count} sources used {COMMENT_CLOSE}"


def render_text_with_citations(
    body: str,
    sources: Sequence[UsedPassage],
    query: str,
    timestamp: Optional[str] = None,
) -> str:
    """Whole response body for the single-shot path."""
    return (
        format_citation_preamble(sources, query, timestamp)
        + body
        + format_citation_trailer(len(sources))
    )


# =============================================================================
# DECODING
# =============================================================================

@dataclass
class DecodedResponse:
    prose: str = ""
    citations: List[UsedPassage] = field(default_factory=list)
    query: Optional[str] = None
    timestamp: Optional[str] = None
    source_count: Optional[int] = None
    completed: bool = False
    errored: bool = False


def _parse_preamble(payload: str) -> Dict[str, Any]:
    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def _hide_incomplete_tail(text: str) -> str:
    """
    Cut off an unterminated comment, or a trailing partial "<!--" opener,
    so half-received markers never show up as prose.
    """
    start = text.rfind(COMMENT_OPEN)
    if start != -1 and text.find(COMMENT_CLOSE, start) == -1:
        return text[:start]
    for n in range(len(COMMENT_OPEN) - 1, 0, -1):
        if text.endswith(COMMENT_OPEN[:n]):
            return text[:-n]
    return text


class CitationStreamDecoder:
    """
    Incremental decoder for a streamed response body.

        decoder = CitationStreamDecoder()
        for chunk in chunks:
            decoder.feed(chunk)
            render(decoder.visible_prose)
        result = decoder.finish()
    """

    def __init__(self):
        self._buffer: List[str] = []
        self._text = ""

    def feed(self, chunk: str) -> None:
        if not chunk:
            return
        self._buffer.append(chunk)
        self._text = ""

    @property
    def text(self) -> str:
        if not self._text and self._buffer:
            self._text = "".join(self._buffer)
            self._buffer = [self._text]
        return self._text

    @property
    def citations(self) -> List[UsedPassage]:
        return self._decode(self.text).citations

    @property
    def visible_prose(self) -> str:
        """Prose received so far with complete comments stripped and partial ones hidden."""
        return _strip_comments(_hide_incomplete_tail(self.text)).strip()

    def finish(self) -> DecodedResponse:
        return self._decode(self.text)

    @staticmethod
    def _decode(text: str) -> DecodedResponse:
        result = DecodedResponse()

        preamble = _PREAMBLE_RE.search(text)
        if preamble:
            data = _parse_preamble(preamble.group(1))
            result.citations = [
                UsedPassage.model_validate(s)
                for s in data.get("sources") or []
                if isinstance(s, dict)
            ]
            result.query = data.get("query")
            result.timestamp = data.get("timestamp")

        trailer = _TRAILER_RE.search(text)
        if trailer:
            result.completed = True
            result.source_count = int(trailer.group(1))

        result.errored = _ERROR_RE.search(text) is not None
        result.prose = _strip_comments(_hide_incomplete_tail(text)).strip()
        return result


def _strip_comments(text: str) -> str:
    text = _PREAMBLE_RE.sub("", text)
    text = _TRAILER_RE.sub("", text)
    return _ERROR_RE.sub("", text)


def decode_response_body(body: str) -> DecodedResponse:
    """Decode a complete response body."""
    decoder = CitationStreamDecoder()
    decoder.feed(body)
    return decoder.finish()
