"""
Query-answering pipeline.

moderation -> intent -> retrieval -> context assembly -> prompt -> streamer
"""
