"""
Mempool Sync: live, deduplicated view of a node's pending transactions.

Seeds from a one-shot mempool snapshot, then follows the node's sequence
stream (add / remove / block connect / block disconnect) and keeps a single
consistent pending set that readers can poll, pause and resume.
"""

__version__ = "0.1.0"
