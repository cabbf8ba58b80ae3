from .moderation import moderate_query, flagged_categories

__all__ = ["moderate_query", "flagged_categories"]
