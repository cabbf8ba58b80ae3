"""
Language-model calls: client construction, intent classification and
response streaming.
"""
