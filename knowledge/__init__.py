"""Per-user business knowledge for prompt context.

Extracts financial concepts and amounts from conversation text, infers typed
relationships between them, persists both per user, and selects the most
relevant subset that fits a token budget.

Storage:
- Primary: SQLite database in STATE_DIR/knowledge.sqlite
- Fallback: bounded in-memory cache when the database is unavailable

Usage:
    >>> from knowledge import extract_entities, infer_relationships, ContextPruner
    >>>
    >>> entities = extract_entities("Spent ₹5,000 on inventory this week")
    >>> relationships = infer_relationships(entities)
    >>>
    >>> selection = ContextPruner().select(
    ...     entities, stored_entities, stored_relationships, ["inventory"]
    ... )
    >>> print(selection.to_prompt_section())
"""

from .backends import BackendStatus, KnowledgeBackend, KnowledgeSnapshot
from .cache import KnowledgeCache
from .config import KnowledgeConfig
from .extract import extract_entities, query_terms
from .ranking import ContextPruner, KnowledgeSelection
from .relations import infer_relationships
from .schema import Entity, ProfileFacts, Relationship
from .store import CleanupReport, KnowledgeStore, KnowledgeStoreError
from .tokens import TokenCostEstimator

__all__ = [
    "Entity",
    "Relationship",
    "ProfileFacts",
    "KnowledgeConfig",
    "extract_entities",
    "query_terms",
    "infer_relationships",
    "TokenCostEstimator",
    "KnowledgeStore",
    "KnowledgeStoreError",
    "CleanupReport",
    "KnowledgeCache",
    "KnowledgeBackend",
    "KnowledgeSnapshot",
    "BackendStatus",
    "ContextPruner",
    "KnowledgeSelection",
]
