"""Heuristic token cost estimation.

Not a real tokenizer: a fixed words-per-token ratio keeps costs deterministic
and monotonic in text length, which is what budgeted selection relies on.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from .schema import Entity, Relationship

WORDS_PER_TOKEN = 0.75


def count_words(text: str) -> int:
    return len(text.split()) if text else 0


@dataclass(frozen=True)
class TokenCostEstimator:
    """Prices text, entities and relationships in estimated tokens."""

    words_per_token: float = WORDS_PER_TOKEN
    entity_overhead_words: int = 4
    relationship_overhead_words: int = 6
    relationship_context_chars: int = 100
    default_name_words: int = 2

    def tokens_for_words(self, words: int) -> int:
        """Tokens needed for ``words`` words at the configured ratio."""
        return math.ceil(words / self.words_per_token)

    def estimate(self, text: str) -> int:
        """Estimated token count of ``text``."""
        return self.tokens_for_words(count_words(text or ""))

    def entity_cost(self, entity: Entity) -> int:
        """Cost of rendering an entity: context + name + formatting overhead."""
        name_words = count_words(entity.name) or self.default_name_words
        return self.tokens_for_words(count_words(entity.context) + name_words + self.entity_overhead_words)

    def relationship_cost(self, relationship: Relationship) -> int:
        """Cost of rendering a relationship: leading context + formatting overhead."""
        context = (relationship.context or "")[: self.relationship_context_chars]
        return self.tokens_for_words(count_words(context) + self.relationship_overhead_words)
