"""Two-tier knowledge backend: durable SQLite store with in-memory fallback."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .cache import KnowledgeCache
from .schema import Entity, Relationship
from .store import CleanupReport, KnowledgeStore, KnowledgeStoreError

logger = logging.getLogger(__name__)

MODE_SQLITE = "sqlite"
MODE_MEMORY = "memory"


@dataclass
class BackendStatus:
    mode: str
    degraded: bool
    detail: str


@dataclass
class KnowledgeSnapshot:
    """Knowledge read for one user, plus which tier served it."""

    entities: list[Entity] = field(default_factory=list)
    relationships: list[Relationship] = field(default_factory=list)
    source: str = MODE_MEMORY

    def is_empty(self) -> bool:
        return not self.entities and not self.relationships


class KnowledgeBackend:
    """Selects the primary store or the cache by a capability check per call.

    Writes always refresh the cache so a later store outage still has the
    most recent knowledge to fall back on.
    """

    def __init__(
        self,
        store: Optional[KnowledgeStore] = None,
        cache: Optional[KnowledgeCache] = None,
    ):
        self.store = store
        self.cache = cache if cache is not None else KnowledgeCache()

    def _store_available(self) -> bool:
        return self.store is not None and self.store.is_available()

    def status(self) -> BackendStatus:
        if self.store is None:
            return BackendStatus(
                mode=MODE_MEMORY,
                degraded=False,
                detail="Knowledge store not configured; using in-memory cache",
            )
        if self.store.is_available():
            return BackendStatus(
                mode=MODE_SQLITE,
                degraded=False,
                detail=f"Knowledge store reachable at {self.store.db_path}",
            )
        return BackendStatus(
            mode=MODE_MEMORY,
            degraded=True,
            detail="Knowledge store unavailable; using in-memory cache",
        )

    def load(
        self,
        user_id: str,
        min_confidence: float = 0.0,
        min_strength: float = 0.0,
        entity_limit: int = 50,
        relationship_limit: int = 30,
        now: Optional[datetime] = None,
    ) -> KnowledgeSnapshot:
        """Read a user's knowledge, preferring the durable store."""
        if self._store_available():
            try:
                entities = self.store.query_entities(
                    user_id, min_confidence=min_confidence, limit=entity_limit, now=now
                )
                relationships = self.store.query_relationships(
                    user_id, min_strength=min_strength, limit=relationship_limit
                )
                return KnowledgeSnapshot(entities, relationships, MODE_SQLITE)
            except KnowledgeStoreError as exc:
                logger.warning(f"Knowledge store read failed, using cache: {exc}")

        entities = [e for e in self.cache.entities(user_id) if e.confidence >= min_confidence]
        entities.sort(key=lambda entity: -entity.confidence)
        relationships = [
            r for r in self.cache.relationships(user_id) if r.strength >= min_strength
        ]
        relationships.sort(key=lambda rel: -rel.strength)
        return KnowledgeSnapshot(
            entities[:max(entity_limit, 0)],
            relationships[:max(relationship_limit, 0)],
            MODE_MEMORY,
        )

    def save(
        self,
        user_id: str,
        entities: list[Entity],
        relationships: list[Relationship],
    ) -> bool:
        """Persist knowledge for a user.

        Returns:
            True when the durable store accepted the write.
        """
        persisted = False
        if self._store_available():
            try:
                self.store.upsert_entities(user_id, entities)
                self.store.upsert_relationships(user_id, relationships)
                persisted = True
            except KnowledgeStoreError as exc:
                logger.warning(f"Knowledge store write failed, cached only: {exc}")

        self.cache.add(user_id, entities, relationships)
        return persisted

    def cleanup(
        self,
        user_id: str,
        max_age_days: int = 30,
        min_confidence_floor: float = 0.3,
        min_strength_floor: float = 0.4,
        now: Optional[datetime] = None,
    ) -> Optional[CleanupReport]:
        """Run store cleanup for one user. Returns None when the store is unavailable."""
        if not self._store_available():
            return None
        return self.store.cleanup(
            user_id,
            max_age_days=max_age_days,
            min_confidence_floor=min_confidence_floor,
            min_strength_floor=min_strength_floor,
            now=now,
        )

    def clear_user(self, user_id: str) -> int:
        """Forget everything known about a user in both tiers."""
        self.cache.clear_user(user_id)
        if not self._store_available():
            return 0
        return self.store.clear_user(user_id)

    def list_user_ids(self) -> list[str]:
        user_ids = set(self.cache.user_ids())
        if self._store_available():
            user_ids.update(self.store.list_user_ids())
        return sorted(user_ids)
