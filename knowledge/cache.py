"""Bounded in-memory knowledge cache.

Process-local secondary tier used when the durable store is unavailable.
The cache is an explicit object passed into the pipeline, never module state.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict, deque
from typing import Iterable

from .schema import Entity, Relationship

logger = logging.getLogger(__name__)


class _UserKnowledge:
    def __init__(self, max_relationships: int):
        self.entities: OrderedDict[str, Entity] = OrderedDict()
        self.relationships: deque[Relationship] = deque(maxlen=max_relationships)


class KnowledgeCache:
    """Per-user bounded cache with oldest-first eviction.

    Entities are keyed by name; re-adding a name refreshes it and moves it to
    the newest position. Relationships are kept most recent last. At most
    ``max_users`` user buckets are held; the least recently written user is
    dropped first.
    """

    def __init__(
        self,
        max_entities: int = 100,
        max_relationships: int = 50,
        max_users: int = 1000,
    ):
        self.max_entities = max(1, max_entities)
        self.max_relationships = max(1, max_relationships)
        self.max_users = max(1, max_users)
        self._lock = threading.Lock()
        self._users: OrderedDict[str, _UserKnowledge] = OrderedDict()

    def add(
        self,
        user_id: str,
        entities: Iterable[Entity] = (),
        relationships: Iterable[Relationship] = (),
    ) -> None:
        with self._lock:
            bucket = self._users.get(user_id)
            if bucket is None:
                bucket = _UserKnowledge(self.max_relationships)
                self._users[user_id] = bucket
            self._users.move_to_end(user_id)
            dropped_users = []
            while len(self._users) > self.max_users:
                dropped_users.append(self._users.popitem(last=False)[0])

            for entity in entities:
                if not entity.name:
                    continue
                bucket.entities.pop(entity.name, None)
                bucket.entities[entity.name] = entity
            evicted = 0
            while len(bucket.entities) > self.max_entities:
                bucket.entities.popitem(last=False)
                evicted += 1

            for rel in relationships:
                bucket.relationships.append(rel)

        if evicted:
            logger.debug(f"Evicted {evicted} cached entities for user {user_id}")
        if dropped_users:
            logger.debug(f"Dropped cached knowledge for {len(dropped_users)} least recent users")

    def entities(self, user_id: str) -> list[Entity]:
        """Cached entities for a user, oldest first."""
        with self._lock:
            bucket = self._users.get(user_id)
            return list(bucket.entities.values()) if bucket else []

    def relationships(self, user_id: str) -> list[Relationship]:
        """Cached relationships for a user, oldest first."""
        with self._lock:
            bucket = self._users.get(user_id)
            return list(bucket.relationships) if bucket else []

    def clear_user(self, user_id: str) -> None:
        with self._lock:
            self._users.pop(user_id, None)

    def clear(self) -> None:
        with self._lock:
            self._users.clear()

    def user_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._users)

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)
