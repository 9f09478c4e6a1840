"""Entity extraction from business conversation text.

Deterministic heuristic extraction that turns a message (plus optional
profile facts) into ranked knowledge entities. No LLM calls - pure pattern
matching against the domain ontology.

Design:
- Ontology concepts, currency amounts, profile facts, standalone numbers
- Overlapping concept phrases are only counted once
- Never fail: log errors and return empty results
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional

from .ontology import CONCEPTS, concept_phrases, concepts_by_phrase_length
from .schema import Entity, ProfileFacts

logger = logging.getLogger(__name__)

ONTOLOGY_CONTEXT_CHARS = 40
CURRENCY_CONTEXT_CHARS = 25
NUMERIC_CONTEXT_CHARS = 20

CURRENCY_CONFIDENCE = 0.9
PROFILE_CONFIDENCE = 1.0
NUMERIC_CONFIDENCE = 0.6

CURRENCY_RE = re.compile(
    r"(?:₹|\brs\.?|\binr\b|\brupees?\b|\blakhs?\b|\bcrores?\b|\$|\busd\b)\s*(\d[\d,]*(?:\.\d+)?)",
    re.IGNORECASE,
)
NUMBER_RE = re.compile(r"\b\d[\d,]*(?:\.\d+)?\b")

Span = tuple[int, int]


def _inside(span: Span, consumed: list[Span]) -> bool:
    start, end = span
    return any(start >= c_start and end <= c_end for c_start, c_end in consumed)


def _overlaps(span: Span, consumed: list[Span]) -> bool:
    start, end = span
    return any(start < c_end and end > c_start for c_start, c_end in consumed)


def _truncate(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[: max(max_chars - 3, 0)].rstrip() + "..."


def context_window(text: str, start: int, max_chars: int) -> str:
    """Return two words either side of the word at ``start``, capped at ``max_chars``."""
    words = text.split()
    if not words:
        return ""
    index = len(text[:start].split())
    if start > 0 and not text[start - 1].isspace():
        index -= 1
    index = max(0, min(index, len(words) - 1))
    window = " ".join(words[max(0, index - 2): index + 3])
    return _truncate(window, max_chars)


def _extract_ontology_entities(
    text: str, now: datetime, consumed: list[Span]
) -> list[Entity]:
    """Match ontology concepts, longest phrase first.

    A concept whose every occurrence lies inside a span already claimed by a
    longer concept is skipped.
    """
    entities = []
    lowered = text.lower()

    for name in concepts_by_phrase_length():
        concept = CONCEPTS[name]
        matches: list[Span] = []
        for phrase in concept_phrases(name):
            pattern = r"\b" + re.escape(phrase)
            matches.extend(m.span() for m in re.finditer(pattern, lowered))
        fresh = sorted(span for span in matches if not _inside(span, consumed))
        if not fresh:
            continue
        consumed.extend(matches)
        entities.append(Entity(
            name=name,
            entity_type=concept.entity_type,
            category=concept.category,
            context=context_window(text, fresh[0][0], ONTOLOGY_CONTEXT_CHARS),
            confidence=concept.importance,
            tier=concept.tier,
            extraction_method="ontology",
            created_at=now,
        ))

    return entities


def _extract_currency_entities(
    text: str, now: datetime, currency_spans: list[Span]
) -> list[Entity]:
    """Extract monetary amounts such as "₹5,000" or "2 lakhs"."""
    entities = []
    for match in CURRENCY_RE.finditer(text):
        raw = match.group(0).strip().rstrip(",")
        currency_spans.append(match.span())
        entities.append(Entity(
            name=raw,
            entity_type="amount",
            category="financial_value",
            context=context_window(text, match.start(), CURRENCY_CONTEXT_CHARS),
            confidence=CURRENCY_CONFIDENCE,
            tier=1,
            extraction_method="currency_pattern",
            created_at=now,
        ))
    return entities


def _extract_profile_entities(profile: ProfileFacts, now: datetime) -> list[Entity]:
    if not profile.industry:
        return []
    return [Entity(
        name=profile.industry,
        entity_type="business_context",
        category="industry",
        context="user_business_profile",
        confidence=PROFILE_CONFIDENCE,
        tier=1,
        extraction_method="profile",
        created_at=now,
    )]


def _extract_numeric_entities(
    text: str, now: datetime, currency_spans: list[Span], limit: int
) -> list[Entity]:
    """Extract up to ``limit`` standalone numbers not already part of an amount."""
    entities: list[Entity] = []
    seen: set[str] = set()
    for match in NUMBER_RE.finditer(text):
        if len(entities) >= limit:
            break
        if _overlaps(match.span(), currency_spans):
            continue
        number = match.group(0).rstrip(",")
        if number in seen:
            continue
        seen.add(number)
        entities.append(Entity(
            name=f"metric_{number}",
            entity_type="numeric_metric",
            category="quantitative_data",
            context=context_window(text, match.start(), NUMERIC_CONTEXT_CHARS),
            confidence=NUMERIC_CONFIDENCE,
            tier=3,
            extraction_method="numeric_pattern",
            created_at=now,
        ))
    return entities


def extract_entities(
    text: Any,
    profile_facts: Optional[Any] = None,
    *,
    now: Optional[datetime] = None,
    max_entities: int = 15,
    max_numeric: int = 3,
) -> list[Entity]:
    """Extract ranked entities from a message.

    Args:
        text: Message text. Non-string or blank input yields an empty list.
        profile_facts: Optional ProfileFacts or dict with an ``industry`` key.
        now: Timestamp stamped on every entity (defaults to current UTC time).
        max_entities: Cap on the returned list.
        max_numeric: Cap on standalone numeric entities.

    Returns:
        Entities deduplicated by name, sorted by (tier asc, confidence desc).

    Note:
        Never raises exceptions - logs errors and returns an empty list.
    """
    try:
        now = now or datetime.now(timezone.utc)
        profile = ProfileFacts.coerce(profile_facts)
        content = text if isinstance(text, str) else ""

        if not content.strip():
            return []

        consumed: list[Span] = []
        currency_spans: list[Span] = []
        candidates: list[Entity] = []
        candidates.extend(_extract_ontology_entities(content, now, consumed))
        candidates.extend(_extract_currency_entities(content, now, currency_spans))
        candidates.extend(_extract_profile_entities(profile, now))
        candidates.extend(_extract_numeric_entities(content, now, currency_spans, max_numeric))

        unique: list[Entity] = []
        seen_names: set[str] = set()
        for entity in candidates:
            if not entity.name or entity.name in seen_names:
                continue
            seen_names.add(entity.name)
            unique.append(entity)

        unique.sort(key=lambda entity: (entity.tier, -entity.confidence))
        result = unique[:max(max_entities, 0)]

        logger.debug(f"Extracted {len(result)} entities ({len(candidates)} candidates)")
        return result

    except Exception as exc:
        logger.warning(f"Error extracting entities: {exc}", exc_info=True)
        return []


def query_terms(text: Any) -> list[str]:
    """Split a query into lower-case terms longer than two characters."""
    if not isinstance(text, str):
        return []
    return [word for word in text.lower().split() if len(word) > 2]
