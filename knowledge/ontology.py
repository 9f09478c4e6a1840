"""Financial domain ontology.

Static table of the business concepts the extractor recognizes. Each concept
carries a category, an importance tier (1=critical, 2=important,
3=supporting) and a baseline importance used as extraction confidence.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Concept:
    """A known domain concept."""

    entity_type: str
    category: str
    importance: float
    tier: int
    aliases: tuple[str, ...] = field(default_factory=tuple)


CONCEPTS: dict[str, Concept] = {
    # Tier 1: critical financial metrics
    "cash_flow": Concept("metric", "liquidity", 0.95, 1, ("cashflow",)),
    "profit_margin": Concept("metric", "profitability", 0.95, 1, ("profit margins",)),
    "revenue": Concept("metric", "income", 0.9, 1),
    "expenses": Concept("metric", "cost", 0.9, 1, ("expense",)),
    # Tier 2: important business metrics
    "growth": Concept("metric", "performance", 0.85, 2),
    "profit": Concept("metric", "profitability", 0.85, 2),
    "customer": Concept("stakeholder", "revenue", 0.8, 2),
    "debt": Concept("liability", "financing", 0.75, 2, ("loan",)),
    "inventory": Concept("asset", "working_capital", 0.75, 2, ("stock",)),
    # Tier 3: supporting concepts
    "investment": Concept("action", "growth", 0.7, 3),
    "supplier": Concept("stakeholder", "operations", 0.65, 3, ("vendor",)),
    "competition": Concept("external", "market", 0.6, 3, ("competitor",)),
    "seasonality": Concept("pattern", "trends", 0.55, 3, ("seasonal",)),
}

RELATIONSHIP_PRIORITIES: dict[str, tuple[str, ...]] = {
    "critical": ("affects", "depends_on", "determines"),
    "important": ("influences", "requires", "improved_by", "reduces"),
    "supporting": ("relates_to", "threatens", "enables"),
}

RELATIONSHIP_TYPES: frozenset[str] = frozenset(
    rel_type for group in RELATIONSHIP_PRIORITIES.values() for rel_type in group
)

ENTITY_TYPES: frozenset[str] = frozenset({
    "metric",
    "asset",
    "liability",
    "stakeholder",
    "action",
    "external",
    "pattern",
    "business_context",
    "numeric_metric",
    "amount",
})


def concept_phrases(name: str) -> tuple[str, ...]:
    """Return the lower-case phrases that identify a concept, longest first."""
    concept = CONCEPTS[name]
    phrases = {name.replace("_", " ")}
    phrases.update(alias.lower() for alias in concept.aliases)
    return tuple(sorted(phrases, key=lambda phrase: (-len(phrase), phrase)))


def concepts_by_phrase_length() -> list[str]:
    """Concept names ordered so longer phrases are matched before their substrings."""
    return sorted(CONCEPTS, key=lambda name: (-len(concept_phrases(name)[0]), name))
