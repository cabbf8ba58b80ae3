#!/usr/bin/env python3
"""
Ask one question against a running lawdesk server.

Usage:
    python scripts/ask.py "임대차 보증금은 언제 돌려받을 수 있나요?"
    python scripts/ask.py --no-stream --history-limit 5 "..."
    python scripts/ask.py --reset
"""

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from lawdesk.client import (
    AskClient,
    AskError,
    ChatMessage,
    ConversationStore,
    QUICK_QUESTIONS,
    restore_messages,
    show_quick_questions,
)
from lawdesk.db import init_db, make_engine, make_session_factory


def main():
    parser = argparse.ArgumentParser(description="Ask the lawdesk server a question")
    parser.add_argument("question", nargs="?", help="Question text")
    parser.add_argument("--url", default="http://127.0.0.1:8000")
    parser.add_argument("--no-stream", action="store_true")
    parser.add_argument("--history-limit", type=int, default=None)
    parser.add_argument("--db", default="sqlite:///./data/lawdesk_client.db",
                        help="Where the conversation slot is kept")
    parser.add_argument("--reset", action="store_true", help="Clear the saved conversation")
    args = parser.parse_args()

    Path("data").mkdir(exist_ok=True)
    engine = make_engine(args.db)
    init_db(engine)
    db = make_session_factory(engine)()
    try:
        store = ConversationStore(db)
        if args.reset:
            store.clear()
            print("Conversation cleared.")
            return

        messages = restore_messages(store)
        if not args.question:
            print(messages[-1].content)
            if show_quick_questions(messages):
                print()
                for q in QUICK_QUESTIONS:
                    print(f"  - {q}")
            return

        history = [m.as_turn() for m in messages[1:]]
        client = AskClient(args.url)

        printed = 0

        def on_progress(prose: str):
            nonlocal printed
            if len(prose) > printed:
                sys.stdout.write(prose[printed:])
                sys.stdout.flush()
                printed = len(prose)

        try:
            result = asyncio.run(client.ask(
                args.question,
                stream=not args.no_stream,
                history=history,
                history_limit=args.history_limit,
                on_progress=on_progress,
            ))
        except AskError as e:
            print(f"[ask] {e}", file=sys.stderr)
            sys.exit(1)

        if len(result.prose) > printed:
            sys.stdout.write(result.prose[printed:])
        print()

        if result.citations:
            print()
            print("Sources:")
            for c in result.citations:
                print(f"  [{c.similarity:.3f}] {c.heading} ({c.path})")
        if result.errored:
            print("\n(answer was cut short by a server error)")

        messages.append(ChatMessage(content=args.question, is_user=True))
        messages.append(ChatMessage(content=result.prose, is_user=False, citations=result.citations))
        store.save(messages)
    finally:
        db.close()


if __name__ == "__main__":
    main()
