"""Relationship inference between entities of one extraction pass.

Rules are plain lookup tables keyed by (category, category) or
(entity_type, entity_type) so the ontology can grow without code changes.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from .schema import Entity, Relationship, clamp_unit

logger = logging.getLogger(__name__)

CATEGORY_RULES: dict[tuple[str, str], str] = {
    ("income", "profitability"): "affects",
    ("cost", "profitability"): "reduces",
    ("liquidity", "working_capital"): "depends_on",
    ("operations", "cost"): "influences",
    ("market", "revenue"): "affects",
    ("growth", "financing"): "requires",
}

# Consulted only when no category rule applies
TYPE_RULES: dict[tuple[str, str], str] = {
    ("metric", "action"): "improved_by",
    ("stakeholder", "metric"): "influences",
}

CATEGORY_BOOSTS: dict[str, float] = {
    "profitability": 0.2,
}


def infer_relationship_type(first: Entity, second: Entity) -> Optional[str]:
    """Return the relationship type from ``first`` to ``second``, or None."""
    rel_type = CATEGORY_RULES.get((first.category, second.category))
    if rel_type is None:
        rel_type = TYPE_RULES.get((first.entity_type, second.entity_type))
    return rel_type


def relationship_strength(first: Entity, second: Entity) -> float:
    """Average endpoint confidence plus the largest category boost, clamped to [0, 1]."""
    base = (first.confidence + second.confidence) / 2
    boost = max(
        CATEGORY_BOOSTS.get(first.category, 0.0),
        CATEGORY_BOOSTS.get(second.category, 0.0),
    )
    return clamp_unit(base + boost)


def _serialize_context(context: Optional[dict[str, Any]]) -> str:
    if not context:
        return ""
    return json.dumps(context, sort_keys=True, default=str)


def infer_relationships(
    entities: list[Entity],
    context: Optional[dict[str, Any]] = None,
    *,
    now: Optional[datetime] = None,
) -> list[Relationship]:
    """Propose relationships for every pair of entities.

    Pairs are visited in input order and edges always point from the earlier
    entity to the later one. Pairs without a matching rule produce no edge.

    Args:
        entities: Entities from a single extraction pass.
        context: Optional conversational payload stored with each edge.
        now: Creation timestamp for the edges.

    Returns:
        List of Relationship candidates (empty for fewer than two entities).
    """
    if len(entities) < 2:
        return []

    now = now or datetime.now(timezone.utc)
    payload = _serialize_context(context)
    relationships = []

    for i, first in enumerate(entities):
        for second in entities[i + 1:]:
            if first.name == second.name:
                continue
            rel_type = infer_relationship_type(first, second)
            if rel_type is None:
                continue
            relationships.append(Relationship(
                from_entity=first.name,
                to_entity=second.name,
                relationship_type=rel_type,
                strength=relationship_strength(first, second),
                context=payload,
                created_at=now,
            ))

    logger.debug(f"Inferred {len(relationships)} relationships from {len(entities)} entities")
    return relationships
