"""
Configuration for the knowledge context engine.

Provides KnowledgeConfig with the numeric tuning constants for extraction,
ranking, storage and cleanup. Every value can be overridden through an
environment variable prefixed with KNOWLEDGE_.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_STATE_DIR = Path.home() / ".local" / "state" / "knowledge_engine"
DEFAULT_DB_NAME = "knowledge.sqlite"


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    """Parse boolean from environment variable string."""
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes", "on")


def _parse_int(value: Optional[str], default: int) -> int:
    """Parse integer from environment variable string."""
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _parse_float(value: Optional[str], default: float) -> float:
    """Parse float from environment variable string."""
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def resolve_state_dir(base_dir: Optional[Path] = None) -> Path:
    """Resolve the base state directory.

    Handles both ~ and $VAR expansion so paths from systemd EnvironmentFile
    and shell scripts behave the same.
    """
    if base_dir is not None:
        return Path(os.path.expandvars(str(base_dir))).expanduser()
    env_dir = os.getenv("KNOWLEDGE_STATE_DIR") or os.getenv("STATE_DIR")
    if env_dir:
        return Path(os.path.expandvars(env_dir)).expanduser()
    return DEFAULT_STATE_DIR


@dataclass
class KnowledgeConfig:
    """
    Tuning constants for the knowledge context engine.

    Attributes:
        context_enabled: Whether stored knowledge is injected into prompts.
            When False every prompt uses the profile-only template.
        token_budget: Maximum estimated tokens the knowledge portion of a
            prompt may consume.
        relevance_threshold: Minimum composite relevance for a stored entity
            to be considered. Also the confidence/strength floor for store reads.
        decay_hours: Exponential decay constant for temporal relevance.
        similarity_threshold: Jaccard similarity above which two entities are
            treated as near-duplicates.
        weight_importance / weight_recency / weight_similarity: Relevance
            weights, must sum to 1.0.
        max_extracted_entities: Cap on entities returned by one extraction pass.
        max_numeric_entities: Cap on standalone numbers turned into entities.
        max_selected_entities / max_selected_relationships: Readability caps
            on the rendered knowledge block.
        store_query_entity_limit / store_query_relationship_limit: Row limits
            for reads from the knowledge store.
        store_min_confidence / store_min_strength: Floors applied before
            knowledge is written.
        store_max_entities / store_max_relationships: Per-turn write caps.
        cache_max_entities / cache_max_relationships: Per-user bounds of the
            in-memory fallback cache.
        cache_max_users: Number of users the fallback cache holds before the
            least recently written one is dropped.
        cleanup_probability: Chance that a turn triggers a cleanup pass.
        cleanup_max_age_days / cleanup_min_confidence / cleanup_min_strength:
            Cleanup thresholds.
        render_min_strength: Minimum strength for a relationship to be shown
            in the rendered knowledge block.
        currency_symbol: Symbol used when rendering profile amounts.
        db_path: SQLite database path. None means STATE_DIR/knowledge.sqlite.
        log_level: Logging level name.
    """

    context_enabled: bool = True
    token_budget: int = 2000
    relevance_threshold: float = 0.6
    decay_hours: float = 72.0
    similarity_threshold: float = 0.8
    weight_importance: float = 0.4
    weight_recency: float = 0.3
    weight_similarity: float = 0.3
    max_extracted_entities: int = 15
    max_numeric_entities: int = 3
    max_selected_entities: int = 10
    max_selected_relationships: int = 8
    store_query_entity_limit: int = 50
    store_query_relationship_limit: int = 30
    store_min_confidence: float = 0.5
    store_min_strength: float = 0.5
    store_max_entities: int = 20
    store_max_relationships: int = 15
    cache_max_entities: int = 100
    cache_max_relationships: int = 50
    cache_max_users: int = 1000
    cleanup_probability: float = 0.02
    cleanup_max_age_days: int = 30
    cleanup_min_confidence: float = 0.3
    cleanup_min_strength: float = 0.4
    render_min_strength: float = 0.7
    currency_symbol: str = "₹"
    db_path: Optional[Path] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "KnowledgeConfig":
        """
        Load configuration from environment variables.

        Unparseable values fall back to the defaults rather than failing.
        """
        defaults = cls()
        db_path_env = os.getenv("KNOWLEDGE_DB_PATH")
        return cls(
            context_enabled=_parse_bool(
                os.getenv("KNOWLEDGE_CONTEXT_ENABLED"), default=defaults.context_enabled
            ),
            token_budget=_parse_int(os.getenv("KNOWLEDGE_TOKEN_BUDGET"), defaults.token_budget),
            relevance_threshold=_parse_float(
                os.getenv("KNOWLEDGE_RELEVANCE_THRESHOLD"), defaults.relevance_threshold
            ),
            decay_hours=_parse_float(os.getenv("KNOWLEDGE_DECAY_HOURS"), defaults.decay_hours),
            similarity_threshold=_parse_float(
                os.getenv("KNOWLEDGE_SIMILARITY_THRESHOLD"), defaults.similarity_threshold
            ),
            weight_importance=_parse_float(
                os.getenv("KNOWLEDGE_WEIGHT_IMPORTANCE"), defaults.weight_importance
            ),
            weight_recency=_parse_float(
                os.getenv("KNOWLEDGE_WEIGHT_RECENCY"), defaults.weight_recency
            ),
            weight_similarity=_parse_float(
                os.getenv("KNOWLEDGE_WEIGHT_SIMILARITY"), defaults.weight_similarity
            ),
            max_extracted_entities=_parse_int(
                os.getenv("KNOWLEDGE_MAX_EXTRACTED_ENTITIES"), defaults.max_extracted_entities
            ),
            max_selected_entities=_parse_int(
                os.getenv("KNOWLEDGE_MAX_SELECTED_ENTITIES"), defaults.max_selected_entities
            ),
            max_selected_relationships=_parse_int(
                os.getenv("KNOWLEDGE_MAX_SELECTED_RELATIONSHIPS"),
                defaults.max_selected_relationships,
            ),
            cache_max_entities=_parse_int(
                os.getenv("KNOWLEDGE_CACHE_MAX_ENTITIES"), defaults.cache_max_entities
            ),
            cache_max_relationships=_parse_int(
                os.getenv("KNOWLEDGE_CACHE_MAX_RELATIONSHIPS"), defaults.cache_max_relationships
            ),
            cache_max_users=_parse_int(
                os.getenv("KNOWLEDGE_CACHE_MAX_USERS"), defaults.cache_max_users
            ),
            cleanup_probability=_parse_float(
                os.getenv("KNOWLEDGE_CLEANUP_PROBABILITY"), defaults.cleanup_probability
            ),
            cleanup_max_age_days=_parse_int(
                os.getenv("KNOWLEDGE_CLEANUP_MAX_AGE_DAYS"), defaults.cleanup_max_age_days
            ),
            cleanup_min_confidence=_parse_float(
                os.getenv("KNOWLEDGE_CLEANUP_MIN_CONFIDENCE"), defaults.cleanup_min_confidence
            ),
            cleanup_min_strength=_parse_float(
                os.getenv("KNOWLEDGE_CLEANUP_MIN_STRENGTH"), defaults.cleanup_min_strength
            ),
            currency_symbol=os.getenv("KNOWLEDGE_CURRENCY_SYMBOL", defaults.currency_symbol),
            db_path=Path(os.path.expandvars(db_path_env)).expanduser() if db_path_env else None,
            log_level=os.getenv("KNOWLEDGE_LOG_LEVEL", os.getenv("LOG_LEVEL", defaults.log_level)),
        )

    def resolved_db_path(self) -> Path:
        """Return the database path, defaulting into the state directory."""
        if self.db_path is not None:
            return Path(self.db_path)
        return resolve_state_dir() / DEFAULT_DB_NAME

    def validate(self) -> list[str]:
        """
        Validate configuration values.

        Returns:
            List of validation error messages (empty if valid).
        """
        errors: list[str] = []

        if self.token_budget < 0:
            errors.append("token_budget must be >= 0")
        if self.decay_hours <= 0:
            errors.append("decay_hours must be > 0")
        for name in (
            "relevance_threshold",
            "similarity_threshold",
            "store_min_confidence",
            "store_min_strength",
            "cleanup_min_confidence",
            "cleanup_min_strength",
            "render_min_strength",
            "cleanup_probability",
        ):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                errors.append(f"{name} must be between 0.0 and 1.0")
        weights = (self.weight_importance, self.weight_recency, self.weight_similarity)
        if any(weight < 0 for weight in weights):
            errors.append("relevance weights must be non-negative")
        if abs(sum(weights) - 1.0) > 1e-6:
            errors.append("relevance weights must sum to 1.0")
        if self.max_selected_entities < 0 or self.max_selected_relationships < 0:
            errors.append("selection caps must be >= 0")
        if min(self.cache_max_entities, self.cache_max_relationships, self.cache_max_users) < 1:
            errors.append("cache bounds must be at least 1")
        if self.cleanup_max_age_days < 0:
            errors.append("cleanup_max_age_days must be >= 0")

        return errors
