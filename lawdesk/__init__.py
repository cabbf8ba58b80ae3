"""
lawdesk - Korean legal-information Q&A service.

Moderation → intent → retrieval → context → prompt → streamed answer with
citation metadata embedded in the text channel.
"""

__version__ = "0.4.0"
