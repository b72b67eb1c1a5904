"""
API server package: HTTP read interface over the sync engine.

Exposes the pending set, pause/resume, summaries, CSV export and the block
event feed. Never mutates transactions directly.
"""
