# FILE: lawdesk/rag/prompt.py
"""
Prompt construction for grounded legal-information answers.

Pure functions: same inputs, same prompt text. No I/O.
"""

from __future__ import annotations

import re
from typing import List, Optional, Sequence

from lawdesk.config import HISTORY_HARD_CAP

from .schemas import ConversationTurn

INSUFFICIENT_CONTEXT_ANSWER = (
    "제공된 정보로는 정확한 답변을 드리기 어렵습니다. 전문 변호사와 상담하시기를 권합니다."
)

PERSONA = (
    "당신은 대한민국 법률 '정보'를 안내하는 따뜻하고 공감하는 상담사입니다. "
    "아래 '법적 정보' 범위 내에서만 사실에 근거해, 쉬운 한국어와 존댓말로 답하세요. "
    "문서에 없는 내용은 절대 추정하거나 만들어내지 않습니다."
)

ANSWER_RULES = [
    "간결하게 답변하세요.",
    "어려운 용어는 쉬운 표현으로 풀어 설명",
    "전문 법률 자문이 필요한 지점은 명확히 표시하고, 변호사 상담을 권유",
    "답변 마지막에 짧은 후속 질문 1개를 포함해 대화를 자연스럽게 이어가기",
    "사용자가 원할 경우 변호사 상담 연결을 정중히 제안하고, 선호 연락 방법(전화/이메일)과 가능 시간을 물어보기",
    "사용자 말투를 가볍게 반영하되, 기본은 존댓말로 공손하게 응답하기",
    "HTML 주석(<!-- -->) 형식의 텍스트는 절대 출력하지 않기",
]

HISTORY_NOTE = "이전 대화(참고): 아래 대화 맥락을 고려하되, 최신 사용자 질문을 우선합니다."

ROLE_LABELS = {"user": "사용자", "assistant": "상담사"}

_WS_RE = re.compile(r"\s+")


def resolve_history_limit(requested: Optional[int], default: int) -> int:
    """Caller's limit if given, else the configured default; never above the hard cap."""
    limit = default if requested is None else requested
    return max(0, min(limit, HISTORY_HARD_CAP))


def truncate_history(
    turns: Optional[Sequence[ConversationTurn]],
    limit: int,
) -> List[ConversationTurn]:
    """Most recent `limit` turns, oldest discarded first, order preserved."""
    if not turns or limit <= 0:
        return []
    return list(turns)[-limit:]


def compress_history(turns: Sequence[ConversationTurn], max_chars: int = 600) -> str:
    """One line per turn, whitespace collapsed, each turn capped at max_chars."""
    lines = []
    for turn in turns:
        content = _WS_RE.sub(" ", turn.content or "").strip()
        if not content:
            continue
        if len(content) > max_chars:
            content = content[:max_chars].rstrip() + "…"
        lines.append(f"{ROLE_LABELS.get(turn.role, turn.role)}: {content}")
    return "\n".join(lines)


def build_legal_prompt(context_text: str, question: str, history_text: Optional[str] = None) -> str:
    """Single instruction block: persona, rules, history, context, question, fallback."""
    safe_context = context_text or ""
    safe_question = question or ""
    safe_history = (history_text or "").strip()

    lines = [PERSONA, "", "답변 원칙:"]
    lines.extend(f"- {rule}" for rule in ANSWER_RULES)
    lines.append("")

    if safe_history:
        lines.extend([HISTORY_NOTE, "", safe_history, ""])

    lines.extend([
        "법적 정보:",
        safe_context,
        "",
        '질문: """',
        safe_question,
        '"""',
        "",
        "만약 제공된 법적 정보만으로 충분히 답하기 어렵다면 다음처럼 말하세요:",
        f'"{INSUFFICIENT_CONTEXT_ANSWER}"',
    ])
    return "\n".join(lines)
