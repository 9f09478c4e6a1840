"""Virtual CFO assistant: prompt assembly and the per-turn pipeline."""
from .engine import KnowledgeContextEngine, TurnResult
from .kg_context import ContextAssembler
from .text_service import GenerativeTextClient, TextServiceError

__all__ = [
    "KnowledgeContextEngine",
    "TurnResult",
    "ContextAssembler",
    "GenerativeTextClient",
    "TextServiceError",
]
