"""Run-scoped cache of target-side identifiers."""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..exceptions import LookupCacheConflictError

logger = logging.getLogger(__name__)


class LookupCache:
    """
    Maps (object, key field, key value) to the record id in the target org.

    The key field is part of the key: a Name and an external id on the same
    object are separate namespaces, so equal values never collide. Entries
    are write-once: rewriting a key with the same id is a no-op and
    rewriting it with a different id raises LookupCacheConflictError. The
    cache also keeps the raw rows of pre-validation queries by cache key.

    Owned by a single run; access is sequential so no locking is needed.
    """

    def __init__(self):
        self._entries: Dict[Tuple[str, str, str], str] = {}
        self._query_results: Dict[str, List[Dict[str, Any]]] = {}

    @staticmethod
    def _key(object_name: str, key: Any, key_field: str = "") -> Tuple[str, str, str]:
        return object_name.lower(), (key_field or "").lower(), str(key)

    def get(self, object_name: str, key: Any, key_field: str = "") -> Optional[str]:
        """Target id for a key value, or None on a miss."""
        if key is None:
            return None
        return self._entries.get(self._key(object_name, key, key_field))

    def contains(self, object_name: str, key: Any, key_field: str = "") -> bool:
        return key is not None and self._key(object_name, key, key_field) in self._entries

    def put(self, object_name: str, key: Any, target_id: str, key_field: str = "") -> None:
        """
        Record the target id for a key value.

        Raises:
            LookupCacheConflictError: If the key already maps to a different id
        """
        cache_key = self._key(object_name, key, key_field)
        existing = self._entries.get(cache_key)
        if existing is not None:
            if existing != target_id:
                label = f"{object_name}.{key_field}" if key_field else object_name
                raise LookupCacheConflictError(label, str(key), existing, target_id)
            return
        self._entries[cache_key] = target_id

    def put_many(self, object_name: str, mappings: Dict[Any, str], key_field: str = "") -> None:
        for key, target_id in mappings.items():
            self.put(object_name, key, target_id, key_field)

    def missing_keys(self, object_name: str, keys: Iterable[Any], key_field: str = "") -> List[str]:
        """Distinct non-null keys with no cache entry, in first-seen order."""
        missing: List[str] = []
        seen = set()
        for key in keys:
            if key is None or str(key) in seen:
                continue
            seen.add(str(key))
            if not self.contains(object_name, key, key_field):
                missing.append(str(key))
        return missing

    def store_query_result(self, cache_key: str, rows: List[Dict[str, Any]]) -> None:
        """Keep the rows returned by a pre-validation query."""
        self._query_results[cache_key] = list(rows)
        logger.debug(f"Cached {len(rows)} rows under {cache_key}")

    def query_result(self, cache_key: str) -> Optional[List[Dict[str, Any]]]:
        return self._query_results.get(cache_key)

    def has_query_result(self, cache_key: str) -> bool:
        return cache_key in self._query_results

    def __len__(self) -> int:
        return len(self._entries)
