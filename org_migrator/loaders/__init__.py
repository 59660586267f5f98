"""Loaders writing to the target org."""

from .base import BaseLoader, LoadResult
from .bulk_upsert_loader import BulkUpsertLoader

__all__ = [
    "BaseLoader",
    "LoadResult",
    "BulkUpsertLoader",
]
