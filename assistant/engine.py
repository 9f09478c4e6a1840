"""
Knowledge context engine: the per-turn pipeline.

extract -> load prior knowledge -> infer relationships -> store -> rank ->
assemble -> occasional cleanup.

Every stage degrades instead of failing: if anything in the knowledge path
breaks, the caller still gets a profile-only prompt.
"""

from __future__ import annotations

import logging
import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from dotenv import load_dotenv

from knowledge.backends import KnowledgeBackend
from knowledge.cache import KnowledgeCache
from knowledge.config import KnowledgeConfig
from knowledge.extract import extract_entities, query_terms
from knowledge.ranking import ContextPruner, KnowledgeSelection
from knowledge.relations import infer_relationships
from knowledge.schema import Entity, ProfileFacts, Relationship
from knowledge.store import CleanupReport, KnowledgeStore, KnowledgeStoreError
from knowledge.tokens import TokenCostEstimator

from .kg_context import ContextAssembler
from .text_service import GenerativeTextClient

logger = logging.getLogger(__name__)

RESPONSE_CONTEXT_CHARS = 200


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TurnResult:
    """Everything produced while building one prompt."""

    prompt: str
    selection: KnowledgeSelection
    entities: list[Entity] = field(default_factory=list)
    relationships: list[Relationship] = field(default_factory=list)
    conversation_id: str = ""
    analytics: dict[str, Any] = field(default_factory=dict)


class KnowledgeContextEngine:
    """Builds knowledge-enriched prompts and learns from each turn.

    Args:
        config: Tuning constants. Defaults to KnowledgeConfig().
        backend: Two-tier knowledge backend. Defaults to an in-memory cache only.
        estimator: Token cost estimator shared by ranking and assembly.
        rng: Random source for the probabilistic cleanup trigger.
        clock: Callable returning the current aware UTC datetime.
    """

    def __init__(
        self,
        config: Optional[KnowledgeConfig] = None,
        backend: Optional[KnowledgeBackend] = None,
        estimator: Optional[TokenCostEstimator] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or KnowledgeConfig()
        self.estimator = estimator or TokenCostEstimator()
        self.backend = backend or KnowledgeBackend(
            cache=KnowledgeCache(
                max_entities=self.config.cache_max_entities,
                max_relationships=self.config.cache_max_relationships,
                max_users=self.config.cache_max_users,
            )
        )
        self.pruner = ContextPruner(self.config, self.estimator)
        self.assembler = ContextAssembler(self.estimator, self.config.currency_symbol)
        self._rng = rng or random.Random()
        self._clock = clock or _now_utc

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "KnowledgeContextEngine":
        """
        Build an engine from environment variables (and a .env file if present).

        Raises:
            ValueError: If the configuration is invalid.
        """
        load_dotenv(env_file)
        config = KnowledgeConfig.from_env()
        errors = config.validate()
        if errors:
            raise ValueError("Invalid knowledge configuration: " + "; ".join(errors))

        store: Optional[KnowledgeStore]
        try:
            store = KnowledgeStore(config.resolved_db_path())
        except KnowledgeStoreError as exc:
            logger.warning(f"Knowledge store unavailable, running on in-memory cache: {exc}")
            store = None

        cache = KnowledgeCache(
            max_entities=config.cache_max_entities,
            max_relationships=config.cache_max_relationships,
            max_users=config.cache_max_users,
        )
        return cls(config=config, backend=KnowledgeBackend(store=store, cache=cache))

    def _extract(self, text: str, profile: ProfileFacts, now: datetime) -> list[Entity]:
        return extract_entities(
            text,
            profile,
            now=now,
            max_entities=self.config.max_extracted_entities,
            max_numeric=self.config.max_numeric_entities,
        )

    def _store(self, user_id: str, entities: list[Entity], relationships: list[Relationship]) -> None:
        """Apply the storage policy and write through the backend."""
        cfg = self.config
        keep = [
            entity for entity in self.pruner.cluster(entities)
            if entity.confidence >= cfg.store_min_confidence
        ][: cfg.store_max_entities]
        keep_relationships = [
            rel for rel in relationships if rel.strength >= cfg.store_min_strength
        ][: cfg.store_max_relationships]

        for item in (*keep, *keep_relationships):
            item.user_id = user_id

        if keep or keep_relationships:
            self.backend.save(user_id, keep, keep_relationships)
            logger.debug(
                f"Stored {len(keep)} entities and {len(keep_relationships)} relationships "
                f"for user {user_id}"
            )

    def build_turn(
        self,
        user_id: str,
        message_text: Any,
        profile_facts: Any = None,
        conversation_id: Optional[str] = None,
    ) -> TurnResult:
        """
        Run the full pipeline for one user message.

        Prior knowledge is read before this turn's knowledge is written, so
        the prompt only reflects what was learned in earlier turns.

        Returns:
            TurnResult with the prompt and everything used to build it.
        """
        cfg = self.config
        now = self._clock()
        conversation_id = conversation_id or uuid.uuid4().hex
        profile = ProfileFacts.coerce(profile_facts)
        text = message_text if isinstance(message_text, str) else ""

        entities: list[Entity] = []
        relationships: list[Relationship] = []
        selection = KnowledgeSelection(token_budget=max(cfg.token_budget, 0))
        source = "none"

        try:
            entities = self._extract(text, profile, now)
            snapshot = self.backend.load(
                user_id,
                min_confidence=cfg.relevance_threshold,
                min_strength=cfg.relevance_threshold,
                entity_limit=cfg.store_query_entity_limit,
                relationship_limit=cfg.store_query_relationship_limit,
                now=now,
            )
            source = snapshot.source
            relationships = infer_relationships(
                entities, {"conversation_id": conversation_id, "query": text}, now=now
            )
            self._store(user_id, entities, relationships)
            if cfg.context_enabled:
                selection = self.pruner.select(
                    entities,
                    snapshot.entities,
                    snapshot.relationships,
                    query_terms(text),
                    now=now,
                )
        except Exception as exc:
            logger.warning(
                f"Knowledge pipeline failed for user {user_id}, using profile-only prompt: {exc}",
                exc_info=True,
            )

        prompt = self.assembler.assemble(text, selection, profile)
        self.maybe_cleanup(user_id)

        analytics: dict[str, Any] = selection.analytics()
        analytics.update({
            "source": source,
            "overhead_tokens": self.assembler.overhead_tokens(text, profile),
            "prompt_tokens": self.estimator.estimate(prompt),
            "entities_extracted": len(entities),
            "relationships_inferred": len(relationships),
        })
        logger.info(
            f"Turn for user {user_id}: {len(entities)} entities extracted, "
            f"{analytics['context_tokens']}/{analytics['max_tokens']} context tokens ({source})"
        )

        return TurnResult(
            prompt=prompt,
            selection=selection,
            entities=entities,
            relationships=relationships,
            conversation_id=conversation_id,
            analytics=analytics,
        )

    def process_turn(self, user_id: str, message_text: Any, profile_facts: Any = None) -> str:
        """Return the prompt to hand to the text service. Never raises."""
        try:
            return self.build_turn(user_id, message_text, profile_facts).prompt
        except Exception as exc:
            logger.warning(f"Failed to build turn for user {user_id}: {exc}", exc_info=True)
            text = message_text if isinstance(message_text, str) else ""
            return self.assembler.assemble(text, None, profile_facts)

    def record_response(
        self,
        user_id: str,
        message_text: Any,
        response_text: Any,
        profile_facts: Any = None,
        conversation_id: Optional[str] = None,
    ) -> list[Entity]:
        """
        Learn from an assistant reply.

        Entities are extracted from the message and reply together and
        relationships are inferred between them.

        Returns:
            Entities extracted (empty on failure).
        """
        message = message_text if isinstance(message_text, str) else ""
        response = response_text if isinstance(response_text, str) else ""
        conversation_id = conversation_id or uuid.uuid4().hex

        try:
            now = self._clock()
            entities = self._extract(
                f"{message}\n{response}", ProfileFacts.coerce(profile_facts), now
            )
            relationships = infer_relationships(
                entities,
                {
                    "conversation_id": conversation_id,
                    "query": message,
                    "response": response[:RESPONSE_CONTEXT_CHARS],
                },
                now=now,
            )
            self._store(user_id, entities, relationships)
            return entities
        except Exception as exc:
            logger.warning(f"Failed to record response for user {user_id}: {exc}")
            return []

    def respond(
        self,
        user_id: str,
        message_text: Any,
        profile_facts: Any = None,
        client: Optional[GenerativeTextClient] = None,
    ) -> str:
        """
        Build a prompt, get a reply from the text service and learn from it.

        Raises:
            TextServiceError: If the text service fails.
        """
        turn = self.build_turn(user_id, message_text, profile_facts)
        client = client or GenerativeTextClient.from_env()
        reply = client.generate(turn.prompt)
        self.record_response(
            user_id, message_text, reply, profile_facts, conversation_id=turn.conversation_id
        )
        return reply

    def maybe_cleanup(self, user_id: str) -> Optional[CleanupReport]:
        """Run cleanup for ``user_id`` with the configured probability. Never raises."""
        if self._rng.random() >= self.config.cleanup_probability:
            return None
        try:
            return self.backend.cleanup(
                user_id,
                max_age_days=self.config.cleanup_max_age_days,
                min_confidence_floor=self.config.cleanup_min_confidence,
                min_strength_floor=self.config.cleanup_min_strength,
                now=self._clock(),
            )
        except Exception as exc:
            logger.warning(f"Cleanup failed for user {user_id}: {exc}")
            return None

    def forget_user(self, user_id: str) -> int:
        """Delete all knowledge for a user. Returns the number of stored rows removed."""
        return self.backend.clear_user(user_id)
