# FILE: lawdesk/security/moderation.py
"""Moderation gate: block disallowed input before any resource is spent.

Calls the external content-safety classifier with the normalized query.
- empty / absent / malformed result set → ApplicationError (upstream contract)
- first result flagged                  → UserError carrying the categories
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from lawdesk.errors import ApplicationError, UserError
from lawdesk.llm.clients import format_openai_error

logger = logging.getLogger(__name__)


def flagged_categories(result: Any) -> Dict[str, bool]:
    """Category map of a moderation result, as plain JSON-able dict."""
    categories = getattr(result, "categories", None)
    if categories is None and isinstance(result, dict):
        categories = result.get("categories")
    if categories is None:
        return {}
    if hasattr(categories, "model_dump"):
        categories = categories.model_dump(by_alias=True)
    if not isinstance(categories, dict):
        return {}
    return {str(k): bool(v) for k, v in categories.items() if v is not None}


def _is_flagged(result: Any) -> bool:
    if isinstance(result, dict):
        return bool(result.get("flagged"))
    return bool(getattr(result, "flagged", False))


async def moderate_query(client, model: str, text: str) -> None:
    """Raise if `text` must not proceed. Returns None when the input is allowed."""
    try:
        response = await client.moderations.create(model=model, input=text)
    except Exception as e:
        logger.error("[moderation] Moderation call failed: %s", format_openai_error(e))
        raise ApplicationError("Moderation request failed") from e

    results: List[Any] = getattr(response, "results", None)
    if not results or not isinstance(results, (list, tuple)):
        raise ApplicationError("Invalid moderation response from OpenAI")

    first = results[0]
    if _is_flagged(first):
        categories = flagged_categories(first)
        logger.info(
            "[moderation] Flagged input: %s",
            ", ".join(k for k, v in categories.items() if v) or "unspecified",
        )
        raise UserError("Flagged content", {"flagged": True, "categories": categories})
