"""SQLite storage backend for per-user knowledge.

Stores entities and relationships partitioned by user_id, with indexes on the
columns used for filtered reads and cleanup.

Usage:
    from knowledge.store import KnowledgeStore

    store = KnowledgeStore(Path("~/.local/state/knowledge_engine/knowledge.sqlite"))
    store.upsert_entities("user-1", entities)
    top = store.query_entities("user-1", min_confidence=0.6, limit=50)
    report = store.cleanup("user-1", max_age_days=30)
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Optional

from .config import DEFAULT_DB_NAME, resolve_state_dir
from .schema import Entity, Relationship

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

ENTITY_CONTEXT_MAX_CHARS = 200
RELATIONSHIP_CONTEXT_MAX_CHARS = 500

_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class KnowledgeStoreError(RuntimeError):
    """Raised when the durable knowledge store cannot complete an operation."""


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(_TS_FORMAT)


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp string to an aware datetime."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Invalid timestamp in knowledge store: {value}")
        return None


@dataclass
class CleanupReport:
    """Rows removed by a cleanup pass for one user."""

    user_id: str
    entities_removed: int = 0
    relationships_removed: int = 0

    @property
    def total_removed(self) -> int:
        return self.entities_removed + self.relationships_removed


class KnowledgeStore:
    """SQLite-backed knowledge storage.

    A single connection is shared between threads and guarded by a lock.
    Every sqlite3 error is re-raised as KnowledgeStoreError so callers can
    fall back to the in-memory cache.

    Attributes:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: Optional[Path] = None):
        """Open (and create if needed) the knowledge database.

        Args:
            db_path: Database path. If None, uses STATE_DIR/knowledge.sqlite
        """
        if db_path is None:
            db_path = resolve_state_dir() / DEFAULT_DB_NAME
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._ensure_schema()
        except (OSError, sqlite3.Error) as exc:
            raise KnowledgeStoreError(f"Cannot open knowledge store at {self.db_path}: {exc}") from exc

    def _ensure_schema(self) -> None:
        """Create tables and indexes if they don't exist."""
        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS entities (
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    entity_type TEXT NOT NULL,
                    category TEXT NOT NULL,
                    context TEXT NOT NULL DEFAULT '',
                    confidence REAL NOT NULL,
                    tier INTEGER NOT NULL,
                    extraction_method TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    last_accessed TEXT,
                    PRIMARY KEY (user_id, name)
                )
            """)
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS relationships (
                    user_id TEXT NOT NULL,
                    from_entity TEXT NOT NULL,
                    to_entity TEXT NOT NULL,
                    relationship_type TEXT NOT NULL,
                    strength REAL NOT NULL,
                    context TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL,
                    observation_count INTEGER NOT NULL DEFAULT 1,
                    PRIMARY KEY (user_id, from_entity, to_entity, relationship_type)
                )
            """)

            self._conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_entities_user_confidence
                ON entities(user_id, confidence)
            """)
            self._conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_entities_user_created
                ON entities(user_id, created_at)
            """)
            self._conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_relationships_user_strength
                ON relationships(user_id, strength)
            """)
            self._conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_relationships_user_created
                ON relationships(user_id, created_at)
            """)

            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS schema_info (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)
            self._conn.execute(
                "INSERT OR REPLACE INTO schema_info (key, value) VALUES ('version', ?)",
                (str(SCHEMA_VERSION),),
            )

    def is_available(self) -> bool:
        """Capability check: True when the database answers a trivial query."""
        try:
            with self._lock:
                self._conn.execute("SELECT 1").fetchone()
            return True
        except sqlite3.Error as exc:
            logger.debug(f"Knowledge store unavailable: {exc}")
            return False

    def upsert_entities(self, user_id: str, entities: Iterable[Entity]) -> int:
        """Insert or refresh entities for a user.

        An existing (user_id, name) row keeps its position and last_accessed;
        every other field is overwritten (last writer wins).

        Returns:
            Number of entities written.
        """
        rows = [
            (
                user_id,
                entity.name,
                entity.entity_type,
                entity.category,
                entity.context[:ENTITY_CONTEXT_MAX_CHARS],
                entity.confidence,
                entity.tier,
                entity.extraction_method,
                _format_timestamp(entity.created_at),
            )
            for entity in entities
            if entity.name
        ]
        if not rows:
            return 0

        try:
            with self._lock, self._conn:
                self._conn.executemany(
                    """INSERT INTO entities
                       (user_id, name, entity_type, category, context,
                        confidence, tier, extraction_method, created_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                       ON CONFLICT(user_id, name) DO UPDATE SET
                       entity_type = excluded.entity_type,
                       category = excluded.category,
                       context = excluded.context,
                       confidence = excluded.confidence,
                       tier = excluded.tier,
                       extraction_method = excluded.extraction_method,
                       created_at = excluded.created_at""",
                    rows,
                )
        except sqlite3.Error as exc:
            raise KnowledgeStoreError(f"Failed to upsert entities for {user_id}: {exc}") from exc

        logger.debug(f"Upserted {len(rows)} entities for user {user_id}")
        return len(rows)

    def upsert_relationships(self, user_id: str, relationships: Iterable[Relationship]) -> int:
        """Insert or refresh relationships for a user.

        Re-observing an existing (from, to, type) edge overwrites its strength,
        context and created_at and increments observation_count.

        Returns:
            Number of relationships written.
        """
        rows = [
            (
                user_id,
                rel.from_entity,
                rel.to_entity,
                rel.relationship_type,
                rel.strength,
                rel.context[:RELATIONSHIP_CONTEXT_MAX_CHARS],
                _format_timestamp(rel.created_at),
            )
            for rel in relationships
        ]
        if not rows:
            return 0

        try:
            with self._lock, self._conn:
                self._conn.executemany(
                    """INSERT INTO relationships
                       (user_id, from_entity, to_entity, relationship_type,
                        strength, context, created_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?)
                       ON CONFLICT(user_id, from_entity, to_entity, relationship_type)
                       DO UPDATE SET
                       strength = excluded.strength,
                       context = excluded.context,
                       created_at = excluded.created_at,
                       observation_count = relationships.observation_count + 1""",
                    rows,
                )
        except sqlite3.Error as exc:
            raise KnowledgeStoreError(
                f"Failed to upsert relationships for {user_id}: {exc}"
            ) from exc

        logger.debug(f"Upserted {len(rows)} relationships for user {user_id}")
        return len(rows)

    def query_entities(
        self,
        user_id: str,
        min_confidence: float = 0.0,
        limit: int = 50,
        order_by_confidence_desc: bool = True,
        now: Optional[datetime] = None,
    ) -> list[Entity]:
        """Fetch a user's entities at or above ``min_confidence``.

        Ties are broken by insertion order. Returned rows get their
        last_accessed refreshed.
        """
        direction = "DESC" if order_by_confidence_desc else "ASC"
        accessed = _format_timestamp(now or datetime.now(timezone.utc))

        try:
            with self._lock, self._conn:
                rows = self._conn.execute(
                    f"""SELECT name, entity_type, category, context, confidence,
                               tier, extraction_method, created_at, last_accessed
                        FROM entities
                        WHERE user_id = ? AND confidence >= ?
                        ORDER BY confidence {direction}, rowid ASC
                        LIMIT ?""",
                    (user_id, min_confidence, max(limit, 0)),
                ).fetchall()
                if rows:
                    self._conn.executemany(
                        "UPDATE entities SET last_accessed = ? WHERE user_id = ? AND name = ?",
                        [(accessed, user_id, row["name"]) for row in rows],
                    )
        except sqlite3.Error as exc:
            raise KnowledgeStoreError(f"Failed to query entities for {user_id}: {exc}") from exc

        entities = []
        for row in rows:
            created_at = _parse_timestamp(row["created_at"])
            if created_at is None:
                continue
            entities.append(Entity(
                name=row["name"],
                entity_type=row["entity_type"],
                category=row["category"],
                context=row["context"],
                confidence=row["confidence"],
                tier=row["tier"],
                extraction_method=row["extraction_method"],
                user_id=user_id,
                created_at=created_at,
                last_accessed=_parse_timestamp(accessed),
            ))

        logger.debug(f"Retrieved {len(entities)} entities for user {user_id}")
        return entities

    def query_relationships(
        self,
        user_id: str,
        min_strength: float = 0.0,
        limit: int = 30,
        order_by_strength_desc: bool = True,
    ) -> list[Relationship]:
        """Fetch a user's relationships at or above ``min_strength``."""
        direction = "DESC" if order_by_strength_desc else "ASC"

        try:
            with self._lock:
                rows = self._conn.execute(
                    f"""SELECT from_entity, to_entity, relationship_type, strength,
                               context, created_at, observation_count
                        FROM relationships
                        WHERE user_id = ? AND strength >= ?
                        ORDER BY strength {direction}, rowid ASC
                        LIMIT ?""",
                    (user_id, min_strength, max(limit, 0)),
                ).fetchall()
        except sqlite3.Error as exc:
            raise KnowledgeStoreError(
                f"Failed to query relationships for {user_id}: {exc}"
            ) from exc

        relationships = []
        for row in rows:
            created_at = _parse_timestamp(row["created_at"])
            if created_at is None:
                continue
            try:
                relationships.append(Relationship(
                    from_entity=row["from_entity"],
                    to_entity=row["to_entity"],
                    relationship_type=row["relationship_type"],
                    strength=row["strength"],
                    context=row["context"],
                    user_id=user_id,
                    created_at=created_at,
                    observation_count=row["observation_count"],
                ))
            except ValueError as exc:
                logger.warning(f"Skipping stored relationship: {exc}")

        logger.debug(f"Retrieved {len(relationships)} relationships for user {user_id}")
        return relationships

    def cleanup(
        self,
        user_id: str,
        max_age_days: int = 30,
        min_confidence_floor: float = 0.3,
        min_strength_floor: float = 0.4,
        now: Optional[datetime] = None,
    ) -> CleanupReport:
        """Delete stale, low-value knowledge for one user.

        An entity is removed only when it is older than ``max_age_days`` AND its
        confidence is below ``min_confidence_floor``. Relationships follow the
        same rule with ``min_strength_floor``.
        """
        cutoff = _format_timestamp((now or datetime.now(timezone.utc)) - timedelta(days=max_age_days))

        try:
            with self._lock, self._conn:
                entity_cursor = self._conn.execute(
                    """DELETE FROM entities
                       WHERE user_id = ? AND created_at < ? AND confidence < ?""",
                    (user_id, cutoff, min_confidence_floor),
                )
                relationship_cursor = self._conn.execute(
                    """DELETE FROM relationships
                       WHERE user_id = ? AND created_at < ? AND strength < ?""",
                    (user_id, cutoff, min_strength_floor),
                )
        except sqlite3.Error as exc:
            raise KnowledgeStoreError(f"Cleanup failed for {user_id}: {exc}") from exc

        report = CleanupReport(
            user_id=user_id,
            entities_removed=max(entity_cursor.rowcount, 0),
            relationships_removed=max(relationship_cursor.rowcount, 0),
        )
        if report.total_removed:
            logger.info(
                f"Cleaned up {report.entities_removed} entities and "
                f"{report.relationships_removed} relationships for user {user_id}"
            )
        return report

    def clear_user(self, user_id: str) -> int:
        """Delete every entity and relationship owned by ``user_id``.

        Returns:
            Total number of rows removed.
        """
        try:
            with self._lock, self._conn:
                removed = self._conn.execute(
                    "DELETE FROM entities WHERE user_id = ?", (user_id,)
                ).rowcount
                removed += self._conn.execute(
                    "DELETE FROM relationships WHERE user_id = ?", (user_id,)
                ).rowcount
        except sqlite3.Error as exc:
            raise KnowledgeStoreError(f"Failed to clear knowledge for {user_id}: {exc}") from exc

        logger.info(f"Cleared {removed} knowledge rows for user {user_id}")
        return removed

    def list_user_ids(self) -> list[str]:
        """Return every user with stored knowledge, sorted."""
        try:
            with self._lock:
                rows = self._conn.execute(
                    """SELECT user_id FROM entities
                       UNION
                       SELECT user_id FROM relationships
                       ORDER BY user_id ASC"""
                ).fetchall()
        except sqlite3.Error as exc:
            raise KnowledgeStoreError(f"Failed to list users: {exc}") from exc
        return [row["user_id"] for row in rows]

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()
        logger.debug(f"Closed knowledge store: {self.db_path}")
