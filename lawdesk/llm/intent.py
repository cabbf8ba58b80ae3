# FILE: lawdesk/llm/intent.py
"""
Intent classification for the query-answering pipeline.

An extra (cheap) model call labels the query so non-informational turns
never reach retrieval:

    greeting / smalltalk  → fixed menu template, zero citations
    non_legal / other     → short general answer + consultation tail
    legal_question        → retrieval + grounded answer

Classification is never fatal. The decoder chain is:
    1. json.loads on the raw output
    2. first balanced {...} object located in the text
    3. DEFAULT_INTENT (legal_question, confidence 0)
and a failed classifier call also yields DEFAULT_INTENT.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from lawdesk.llm.clients import complete_chat, format_openai_error, respond_text

logger = logging.getLogger(__name__)


class Intent(str, Enum):
    GREETING = "greeting"
    LEGAL_QUESTION = "legal_question"
    SMALLTALK = "smalltalk"
    NON_LEGAL = "non_legal"
    OTHER = "other"


class IntentRoute(str, Enum):
    """What the pipeline does with a classified turn."""
    TEMPLATE = "template"
    GENERAL_ANSWER = "general_answer"
    RETRIEVAL = "retrieval"


@dataclass(frozen=True)
class IntentResult:
    intent: Intent
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {"intent": self.intent.value, "confidence": self.confidence}


DEFAULT_INTENT = IntentResult(intent=Intent.LEGAL_QUESTION, confidence=0.0)


# =============================================================================
# PROMPTS + TEMPLATES
# =============================================================================

INTENT_INSTRUCTIONS = (
    "당신은 한국어 법률 상담 도메인의 인텐트 분류기입니다. 사용자의 입력을 다음 중 하나로 분류하세요: "
    '"greeting" | "legal_question" | "smalltalk" | "non_legal" | "other". '
    '반드시 엄격한 JSON으로만 응답하세요. 형식: {"intent":"...","confidence":0.0~1.0} '
    "설명, 추가 텍스트, 코드블록 없이 JSON만 반환하세요."
)

NON_LEGAL_INSTRUCTIONS = (
    "당신은 따뜻하고 공감하는 한국어 상담사입니다. 법률 '외' 주제에 대해 사용자의 질문에 "
    "일반 정보 수준으로만 간단히(2~3문장) 답합니다. "
    "전문적 조언이나 확정적 단정은 피하고, 안전한 범위에서 설명하세요. "
    "말투는 사용자 입력의 톤을 가볍게 반영하되 기본은 존댓말입니다. "
    "오직 간결한 답변 텍스트만 반환하세요."
)

GREETING_TEMPLATE = "\n".join([
    "안녕하세요! 법무 상담 AI 어시스턴트입니다. 어떤 법적 문의를 도와드릴까요?\n",
    "- 예: 계약서 작성 시 주의사항은 무엇인가요?\n",
    "- 예: 직장에서 부당한 대우를 받았을 때 어떻게 해야 하나요?\n",
    "- 예: 임대차 계약 만료 후 보증금 반환 절차가 궁금해요.\n",
    "\n필요하시다면 변호사 상담 연결도 도와드릴게요. "
    "선호하시는 연락 방법(전화/이메일)과 가능하신 시간을 알려주실 수 있을까요?",
])

CONSULTATION_TAIL = "\n".join([
    "",
    "혹시 법적 이슈로 이어질 수 있는 부분이 있다면, 변호사 상담 연결을 도와드릴 수 있어요.",
    "상담을 원하시면 성함과 선호하시는 연락 방법(전화/이메일), 가능하신 시간을 알려주실 수 있을까요?",
    "현재 상황을 한두 문장으로만 덧붙여 주시면 더 정확히 도와드릴게요.",
])

NON_LEGAL_FALLBACK = "\n".join([
    "간단히 답변을 준비하는 중 문제가 발생했어요. 그래도 걱정 마세요.",
    "법적 이슈로 이어질 수 있는 부분이 있다면 변호사 상담 연결을 도와드릴 수 있어요.\n",
    "상담을 원하시면 성함과 선호하시는 연락 방법(전화/이메일), 가능하신 시간을 알려주시겠어요?",
])


# =============================================================================
# DECODING
# =============================================================================

_OPEN_BRACE_RE = re.compile(r"\{")


def decode_intent_payload(raw: str) -> Optional[Dict[str, Any]]:
    """
    Recover the classifier's JSON object from raw model output.

    Tolerates models that wrap the object in prose or code fences.
    Returns None when no JSON object can be recovered.
    """
    if not raw:
        return None

    try:
        parsed = json.loads(raw)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    decoder = json.JSONDecoder()
    for match in _OPEN_BRACE_RE.finditer(raw):
        try:
            parsed, _ = decoder.raw_decode(raw, match.start())
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def intent_from_payload(payload: Optional[Dict[str, Any]]) -> IntentResult:
    """Strict IntentResult from a decoded payload; missing/unknown pieces take defaults."""
    if not payload:
        return DEFAULT_INTENT

    intent = DEFAULT_INTENT.intent
    label = payload.get("intent")
    if label:
        try:
            intent = Intent(str(label).strip().lower())
        except ValueError:
            logger.info("[intent] Unrecognized intent label %r, treating as legal_question", label)

    confidence = DEFAULT_INTENT.confidence
    raw_conf = payload.get("confidence")
    if isinstance(raw_conf, (int, float)) and not isinstance(raw_conf, bool):
        confidence = min(1.0, max(0.0, float(raw_conf)))

    return IntentResult(intent=intent, confidence=confidence)


def route_for(intent: Intent) -> IntentRoute:
    if intent in (Intent.GREETING, Intent.SMALLTALK):
        return IntentRoute.TEMPLATE
    if intent in (Intent.NON_LEGAL, Intent.OTHER):
        return IntentRoute.GENERAL_ANSWER
    return IntentRoute.RETRIEVAL


# =============================================================================
# MODEL CALLS
# =============================================================================

async def classify_intent(client, model: str, text: str) -> IntentResult:
    """Label the query. Never raises; failures yield DEFAULT_INTENT."""
    try:
        raw = await respond_text(client, model, INTENT_INSTRUCTIONS, text)
    except Exception as e:
        logger.warning("[intent] Classification failed, using default: %s", format_openai_error(e))
        return DEFAULT_INTENT

    logger.info("[intent] Raw classifier output: %s", raw[:200])
    payload = decode_intent_payload(raw)
    if payload is None:
        logger.warning("[intent] Could not parse classifier output, using default")
        return DEFAULT_INTENT

    return intent_from_payload(payload)


async def answer_non_legal(client, model: str, text: str) -> str:
    """
    Brief general-information answer for non-legal turns, plus the
    consultation tail. Falls back to a fixed apology on any failure.
    """
    try:
        short_answer = await complete_chat(client, model, [
            {"role": "system", "content": NON_LEGAL_INSTRUCTIONS},
            {"role": "user", "content": text},
        ])
    except Exception as e:
        logger.warning("[intent] Non-legal answer failed: %s", format_openai_error(e))
        return NON_LEGAL_FALLBACK

    return "\n".join([short_answer.strip(), CONSULTATION_TAIL])
