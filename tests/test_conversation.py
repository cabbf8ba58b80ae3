# FILE: tests/test_conversation.py
"""
Tests for lawdesk/client/conversation.py
Persisted conversation slot and restore-on-load.
"""

from datetime import datetime, timezone


def _citation():
    from lawdesk.rag.schemas import UsedPassage
    return UsedPassage(id=4, path="docs/lease.md", heading="보증금 반환", similarity=0.87,
                       content_length=120, token_count=40)


class TestChatMessage:
    """Test message serialisation."""

    def test_to_dict_shape(self):
        from lawdesk.client import ChatMessage

        msg = ChatMessage(
            id="m1",
            content="답변",
            is_user=False,
            timestamp=datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
            citations=[_citation()],
        )
        assert msg.to_dict() == {
            "id": "m1",
            "content": "답변",
            "isUser": False,
            "timestamp": "2026-01-02T03:04:05+00:00",
            "citations": [_citation().model_dump()],
        }

    def test_from_dict_tolerates_bad_timestamp(self):
        from lawdesk.client import ChatMessage

        msg = ChatMessage.from_dict({"content": "hi", "isUser": True, "timestamp": "yesterday"})
        assert msg.is_user is True
        assert msg.timestamp.tzinfo is not None
        assert msg.citations == []

    def test_as_turn(self):
        from lawdesk.client import ChatMessage

        assert ChatMessage(content="q", is_user=True).as_turn() == {"role": "user", "content": "q"}
        assert ChatMessage(content="a", is_user=False).as_turn() == {"role": "assistant", "content": "a"}


class TestConversationStore:
    """Test the single keyed storage slot."""

    def test_restore_without_saved_state_gives_greeting(self, db_session):
        from lawdesk.client import DEFAULT_GREETING, ConversationStore, restore_messages

        messages = restore_messages(ConversationStore(db_session))
        assert len(messages) == 1
        assert messages[0].content == DEFAULT_GREETING
        assert messages[0].is_user is False

    def test_save_and_restore_with_citations(self, db_session):
        from lawdesk.client import ChatMessage, ConversationStore, default_messages, restore_messages

        store = ConversationStore(db_session)
        messages = default_messages() + [
            ChatMessage(content="보증금 질문", is_user=True),
            ChatMessage(content="보증금 답변", is_user=False, citations=[_citation()]),
        ]
        store.save(messages)

        restored = restore_messages(ConversationStore(db_session))
        assert [m.content for m in restored] == [m.content for m in messages]
        assert [m.id for m in restored] == [m.id for m in messages]
        assert restored[2].citations == [_citation()]

    def test_save_overwrites_slot(self, db_session):
        from lawdesk.client import ChatMessage, ConversationSlot, ConversationStore

        store = ConversationStore(db_session)
        store.save([ChatMessage(content="one", is_user=True)])
        store.save([ChatMessage(content="two", is_user=True)])

        assert db_session.query(ConversationSlot).count() == 1
        assert [m.content for m in store.load()] == ["two"]

    def test_empty_saved_list_keeps_greeting(self, db_session):
        from lawdesk.client import DEFAULT_GREETING, ConversationStore, restore_messages

        store = ConversationStore(db_session)
        store.save([])
        assert store.load() == []
        assert restore_messages(store)[0].content == DEFAULT_GREETING

    def test_corrupt_slot_keeps_greeting(self, db_session):
        from lawdesk.client import DEFAULT_GREETING, ConversationSlot, ConversationStore, restore_messages

        db_session.add(ConversationSlot(key="broken", payload="{not json"))
        db_session.commit()

        store = ConversationStore(db_session, key="broken")
        assert store.load() is None
        assert restore_messages(store)[0].content == DEFAULT_GREETING

    def test_unreadable_citation_keeps_greeting(self, db_session):
        import json
        from lawdesk.client import DEFAULT_GREETING, ConversationSlot, ConversationStore, restore_messages

        payload = [
            {"id": "1", "content": "hi", "isUser": False, "citations": []},
            {"id": "2", "content": "답", "isUser": False, "citations": [{"id": "not-a-number", "heading": 3}]},
        ]
        db_session.add(ConversationSlot(key="bad-citation", payload=json.dumps(payload)))
        db_session.commit()

        store = ConversationStore(db_session, key="bad-citation")
        assert store.load() is None
        assert restore_messages(store)[0].content == DEFAULT_GREETING

    def test_slots_are_keyed(self, db_session):
        from lawdesk.client import ChatMessage, ConversationStore

        ConversationStore(db_session, key="a").save([ChatMessage(content="from a", is_user=True)])
        assert ConversationStore(db_session, key="b").load() is None

    def test_clear(self, db_session):
        from lawdesk.client import ChatMessage, ConversationStore

        store = ConversationStore(db_session)
        store.save([ChatMessage(content="x", is_user=True)])
        store.clear()
        assert store.load() is None


class TestQuickQuestions:
    """Quick suggestions only accompany a fresh conversation."""

    def test_shown_only_for_greeting(self):
        from lawdesk.client import ChatMessage, QUICK_QUESTIONS, default_messages, show_quick_questions

        assert len(QUICK_QUESTIONS) == 4
        assert show_quick_questions(default_messages())
        assert not show_quick_questions(default_messages() + [ChatMessage(content="q", is_user=True)])
