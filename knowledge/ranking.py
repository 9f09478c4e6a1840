"""Relevance ranking and budgeted context pruning.

Scores stored entities against the current query, collapses near-duplicates,
and greedily fills a token budget with the most relevant knowledge.

Scoring per entity:
    relevance = w_imp * confidence + w_rec * temporal + w_sim * semantic
    temporal  = exp(-hours_since_created / decay_hours)
    semantic  = Jaccard(query tokens, name + context tokens)

Selection never emits output over budget: a candidate whose cost would
overflow the remaining budget is skipped and later, cheaper candidates are
still considered.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from .config import KnowledgeConfig
from .schema import Entity, Relationship
from .tokens import TokenCostEstimator

logger = logging.getLogger(__name__)

_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")

INSIGHT_MAX_CHARS = 50
EMPTY_INSIGHT = "n/a"

KNOWLEDGE_HEADING = "Business knowledge from earlier conversations:"
CORE_HEADING = "Core metrics:"
SUPPORTING_HEADING = "Supporting signals:"
RELATIONSHIP_HEADING = "Key relationships:"


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def tokenize(text: str) -> set[str]:
    """Normalized word set: lower-case, underscores as spaces, punctuation stripped."""
    if not text:
        return set()
    cleaned = _NON_ALNUM_RE.sub("", text.lower().replace("_", " "))
    return set(cleaned.split())


def jaccard(left: set[str], right: set[str]) -> float:
    union = left | right
    if not union:
        return 0.0
    return len(left & right) / len(union)


def _entity_tokens(entity: Entity) -> set[str]:
    return tokenize(f"{entity.name} {entity.context}")


def _single_word(value: str, fallback: str) -> str:
    return "_".join(value.split()) or fallback


def _insight(context: str) -> str:
    text = " ".join(context.split())
    if not text:
        return EMPTY_INSIGHT
    if len(text) > INSIGHT_MAX_CHARS:
        text = text[: INSIGHT_MAX_CHARS - 3].rstrip() + "..."
    return text


def render_entity_line(entity: Entity) -> str:
    return (
        f"- {_single_word(entity.name, 'unnamed')} "
        f"({_single_word(entity.category, 'general')}, {round(entity.confidence * 100)}%): "
        f"{_insight(entity.context)}"
    )


def render_relationship_line(rel: Relationship) -> str:
    return (
        f"- {_single_word(rel.from_entity, '?')} --{rel.relationship_type}--> "
        f"{_single_word(rel.to_entity, '?')} ({round(rel.strength * 100)}%)"
    )


def knowledge_block_overhead_words() -> int:
    """Upper bound on words the knowledge block spends outside item lines."""
    headings = (KNOWLEDGE_HEADING, CORE_HEADING, SUPPORTING_HEADING, RELATIONSHIP_HEADING)
    # Two summary lines of three words each
    return sum(len(heading.split()) for heading in headings) + 6


def render_knowledge(
    entities: list[Entity],
    relationships: list[Relationship],
    considered_entities: int,
    considered_relationships: int,
) -> str:
    """Render selected knowledge as a prompt block. Empty selection renders ''."""
    if not entities:
        return ""

    lines = [KNOWLEDGE_HEADING]
    core = [entity for entity in entities if entity.tier <= 2]
    supporting = [entity for entity in entities if entity.tier > 2]
    if core:
        lines.append(CORE_HEADING)
        lines.extend(render_entity_line(entity) for entity in core)
    if supporting:
        lines.append(SUPPORTING_HEADING)
        lines.extend(render_entity_line(entity) for entity in supporting)
    if relationships:
        lines.append(RELATIONSHIP_HEADING)
        lines.extend(render_relationship_line(rel) for rel in relationships)
    lines.append(f"Entities analyzed: {considered_entities}")
    lines.append(f"Relationships found: {considered_relationships}")
    return "\n".join(lines)


@dataclass
class KnowledgeSelection:
    """Budgeted knowledge chosen for one prompt."""

    entities: list[Entity] = field(default_factory=list)
    relationships: list[Relationship] = field(default_factory=list)
    token_count: int = 0
    token_budget: int = 0
    rendered_context: str = ""
    considered_entities: int = 0
    considered_relationships: int = 0
    scores: dict[str, float] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.entities

    def to_prompt_section(self) -> str:
        return self.rendered_context

    def analytics(self) -> dict[str, float]:
        """Token usage summary for monitoring."""
        efficiency = (self.token_count / self.token_budget * 100) if self.token_budget else 0.0
        return {
            "context_tokens": self.token_count,
            "max_tokens": self.token_budget,
            "efficiency": round(efficiency, 1),
            "entities_selected": len(self.entities),
            "relationships_selected": len(self.relationships),
            "entities_considered": self.considered_entities,
            "relationships_considered": self.considered_relationships,
        }


class ContextPruner:
    """Ranks stored knowledge and prunes it to a token budget."""

    def __init__(
        self,
        config: Optional[KnowledgeConfig] = None,
        estimator: Optional[TokenCostEstimator] = None,
    ):
        self.config = config or KnowledgeConfig()
        self.estimator = estimator or TokenCostEstimator()

    def temporal_relevance(self, created_at: datetime, now: datetime) -> float:
        """Exponential decay by age in hours. Future timestamps count as age 0."""
        if self.config.decay_hours <= 0:
            return 0.0
        hours = max((now - created_at).total_seconds() / 3600.0, 0.0)
        return math.exp(-hours / self.config.decay_hours)

    def semantic_similarity(self, query_tokens: set[str], entity: Entity) -> float:
        return jaccard(query_tokens, _entity_tokens(entity))

    def relevance(self, entity: Entity, query_tokens: set[str], now: datetime) -> float:
        cfg = self.config
        return (
            cfg.weight_importance * entity.confidence
            + cfg.weight_recency * self.temporal_relevance(entity.created_at, now)
            + cfg.weight_similarity * self.semantic_similarity(query_tokens, entity)
        )

    def cluster(self, entities: list[Entity]) -> list[Entity]:
        """Collapse near-duplicate entities, keeping the most confident of each group.

        Candidates are visited by confidence (ties in input order); one whose
        similarity to an already kept entity exceeds the threshold is dropped.
        Survivors are returned in their original input order.
        """
        threshold = self.config.similarity_threshold
        order = sorted(range(len(entities)), key=lambda i: -entities[i].confidence)
        kept: list[tuple[int, set[str]]] = []
        for index in order:
            tokens = _entity_tokens(entities[index])
            if any(jaccard(tokens, other) > threshold for _, other in kept):
                continue
            kept.append((index, tokens))

        dropped = len(entities) - len(kept)
        if dropped:
            logger.debug(f"Clustering dropped {dropped} near-duplicate entities")
        return [entities[index] for index in sorted(index for index, _ in kept)]

    def select(
        self,
        query_entities: Iterable[Entity],
        stored_entities: list[Entity],
        stored_relationships: list[Relationship],
        query_terms: Iterable[str],
        now: Optional[datetime] = None,
        token_budget: Optional[int] = None,
    ) -> KnowledgeSelection:
        """Pick the most relevant knowledge that fits the token budget.

        Args:
            query_entities: Entities extracted from the current message. Their
                names seed the query token set.
            stored_entities: Candidate entities, in the store's default order.
            stored_relationships: Candidate relationships.
            query_terms: Words of the current message.
            now: Reference time for temporal decay.
            token_budget: Override for the configured budget. Negative is 0.

        Returns:
            KnowledgeSelection whose token_count never exceeds the budget.
        """
        cfg = self.config
        now = now or _now_utc()
        budget = cfg.token_budget if token_budget is None else token_budget
        budget = max(int(budget), 0)

        query_tokens = tokenize(" ".join(query_terms))
        for entity in query_entities:
            query_tokens |= tokenize(entity.name)

        scored = [
            (entity, self.relevance(entity, query_tokens, now))
            for entity in self.cluster(stored_entities)
        ]
        scored = [(entity, score) for entity, score in scored if score >= cfg.relevance_threshold]
        scored.sort(key=lambda item: -item[1])

        selected: list[Entity] = []
        scores: dict[str, float] = {}
        used = 0
        for entity, score in scored:
            if len(selected) >= cfg.max_selected_entities:
                break
            if entity.name in scores:
                continue
            cost = self.estimator.entity_cost(entity)
            if used + cost > budget:
                continue
            selected.append(entity)
            scores[entity.name] = round(score, 4)
            used += cost

        selected_names = set(scores)
        candidates = [
            rel for rel in stored_relationships
            if (rel.from_entity in selected_names or rel.to_entity in selected_names)
            and rel.strength >= cfg.render_min_strength
        ]
        candidates.sort(key=lambda rel: -rel.strength)

        chosen: list[Relationship] = []
        seen_keys: set[tuple[str, str, str]] = set()
        for rel in candidates:
            if len(chosen) >= cfg.max_selected_relationships:
                break
            if rel.key in seen_keys:
                continue
            cost = self.estimator.relationship_cost(rel)
            if used + cost > budget:
                continue
            chosen.append(rel)
            seen_keys.add(rel.key)
            used += cost

        selection = KnowledgeSelection(
            entities=selected,
            relationships=chosen,
            token_count=used,
            token_budget=budget,
            rendered_context=render_knowledge(
                selected, chosen, len(stored_entities), len(stored_relationships)
            ),
            considered_entities=len(stored_entities),
            considered_relationships=len(stored_relationships),
            scores=scores,
        )
        logger.debug(
            f"Selected {len(selected)}/{len(stored_entities)} entities and "
            f"{len(chosen)}/{len(stored_relationships)} relationships "
            f"({used}/{budget} tokens)"
        )
        return selection
