"""
Project Services

Persists render outcomes delivered by provider webhooks.
"""

from .store import InMemoryProjectStore, PostgresProjectStore, ProjectRecord, ProjectStore

__all__ = [
    "ProjectStore",
    "PostgresProjectStore",
    "InMemoryProjectStore",
    "ProjectRecord",
]
