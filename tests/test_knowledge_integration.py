"""End-to-end conversation against a real SQLite knowledge store.

Run with: pytest -m integration
"""

import random
from datetime import datetime, timedelta, timezone

from assistant.engine import KnowledgeContextEngine
from knowledge.backends import KnowledgeBackend
from knowledge.config import KnowledgeConfig
from knowledge.store import KnowledgeStore


def test_multi_turn_conversation_accumulates_knowledge(tmp_path):
    clock = {"now": datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)}
    store = KnowledgeStore(tmp_path / "knowledge.sqlite")
    engine = KnowledgeContextEngine(
        config=KnowledgeConfig(cleanup_probability=0.0, token_budget=400),
        backend=KnowledgeBackend(store=store),
        rng=random.Random(1),
        clock=lambda: clock["now"],
    )
    profile = {"business_type": "Electronics Retail", "monthly_revenue": "2,50,000"}

    try:
        first = engine.build_turn("shop-1", "Revenue is down and expenses keep rising", profile)
        assert first.selection.is_empty()

        clock["now"] += timedelta(hours=2)
        engine.record_response(
            "shop-1",
            "Revenue is down and expenses keep rising",
            "Review supplier terms and reduce inventory to protect cash flow.",
            profile,
        )

        clock["now"] += timedelta(hours=1)
        third = engine.build_turn("shop-1", "How do I improve cash flow this quarter?", profile)

        names = [entity.name for entity in third.selection.entities]
        assert "cash_flow" in names
        assert third.selection.token_count <= 400
        assert "Industry: Electronics Retail" in third.prompt
        assert "**Relevant insights:**" in third.prompt

        other = engine.build_turn("shop-2", "How do I improve cash flow this quarter?", {})
        assert other.selection.is_empty()
    finally:
        store.close()
