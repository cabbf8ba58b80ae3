# FILE: lawdesk/client/conversation.py
"""
Client-side conversation state.

The whole message list, citations included, is serialised into one keyed
storage slot. On load the default greeting is only replaced when the slot
holds a non-empty list.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import ValidationError
from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.orm import Session

from lawdesk.db import Base
from lawdesk.rag.schemas import UsedPassage

logger = logging.getLogger(__name__)

DEFAULT_SLOT_KEY = "lawdesk.conversation"

DEFAULT_GREETING = (
    "안녕하세요! 법무 상담 AI 어시스턴트입니다. 법적 문제에 대해 도움을 드릴 수 있습니다. "
    "어떤 문의사항이 있으시나요?"
)

# Suggestions shown while the conversation only holds the greeting
QUICK_QUESTIONS = [
    "계약서 작성 시 주의사항은 무엇인가요?",
    "직장에서 부당한 대우를 받았을 때 어떻게 해야 하나요?",
    "임대차 계약 만료 후 보증금 반환은 어떻게 이루어지나요?",
    "교통사고 발생 시 처리 절차를 알려주세요.",
]


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ChatMessage:
    content: str
    is_user: bool
    id: str = field(default_factory=lambda: uuid4().hex)
    timestamp: datetime = field(default_factory=_now)
    citations: List[UsedPassage] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "isUser": self.is_user,
            "timestamp": self.timestamp.isoformat(),
            "citations": [c.model_dump() for c in self.citations],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        raw_ts = data.get("timestamp")
        try:
            timestamp = datetime.fromisoformat(raw_ts) if raw_ts else _now()
        except ValueError:
            timestamp = _now()
        return cls(
            id=str(data.get("id") or uuid4().hex),
            content=data.get("content") or "",
            is_user=bool(data.get("isUser")),
            timestamp=timestamp,
            citations=[UsedPassage.model_validate(c) for c in data.get("citations") or []],
        )

    def as_turn(self) -> Dict[str, str]:
        """History entry for the next request."""
        return {"role": "user" if self.is_user else "assistant", "content": self.content}


def default_messages() -> List[ChatMessage]:
    return [ChatMessage(id="1", content=DEFAULT_GREETING, is_user=False)]


def show_quick_questions(messages: List[ChatMessage]) -> bool:
    return len(messages) <= 1


# ====== STORAGE ======

class ConversationSlot(Base):
    __tablename__ = "conversation_slots"

    key = Column(String(128), primary_key=True)
    payload = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)


class ConversationStore:
    """Single keyed slot holding the serialised message list."""

    def __init__(self, db: Session, key: str = DEFAULT_SLOT_KEY):
        self.db = db
        self.key = key

    def save(self, messages: List[ChatMessage]) -> None:
        payload = json.dumps([m.to_dict() for m in messages], ensure_ascii=False)
        slot = self.db.get(ConversationSlot, self.key)
        if slot is None:
            slot = ConversationSlot(key=self.key, payload=payload)
            self.db.add(slot)
        else:
            slot.payload = payload
        self.db.commit()

    def load(self) -> Optional[List[ChatMessage]]:
        """Saved list, or None when the slot is empty or unreadable."""
        slot = self.db.get(ConversationSlot, self.key)
        if slot is None:
            return None
        try:
            data = json.loads(slot.payload)
        except json.JSONDecodeError as e:
            logger.warning("[conversation] Slot %s is not valid JSON: %s", self.key, e)
            return None
        if not isinstance(data, list):
            return None
        try:
            return [ChatMessage.from_dict(item) for item in data if isinstance(item, dict)]
        except ValidationError as e:
            logger.warning("[conversation] Slot %s holds an unreadable citation: %s", self.key, e)
            return None

    def clear(self) -> None:
        slot = self.db.get(ConversationSlot, self.key)
        if slot is not None:
            self.db.delete(slot)
            self.db.commit()


def restore_messages(store: ConversationStore) -> List[ChatMessage]:
    """Saved messages when there are any, otherwise the default greeting."""
    saved = store.load()
    if saved:
        return saved
    return default_messages()
