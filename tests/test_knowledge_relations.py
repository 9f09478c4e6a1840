"""Unit tests for relationship inference."""

import json

import pytest

from knowledge.relations import (
    CATEGORY_RULES,
    infer_relationship_type,
    infer_relationships,
    relationship_strength,
)
from knowledge.schema import Entity


def _entity(name, entity_type, category, confidence):
    return Entity(name=name, entity_type=entity_type, category=category, confidence=confidence)


CASH_FLOW = _entity("cash_flow", "metric", "liquidity", 0.95)
INVENTORY = _entity("inventory", "asset", "working_capital", 0.75)
REVENUE = _entity("revenue", "metric", "income", 0.9)
PROFIT_MARGIN = _entity("profit_margin", "metric", "profitability", 0.95)


def test_liquidity_depends_on_working_capital():
    relationships = infer_relationships([CASH_FLOW, INVENTORY])

    assert len(relationships) == 1
    rel = relationships[0]
    assert rel.from_entity == "cash_flow"
    assert rel.to_entity == "inventory"
    assert rel.relationship_type == "depends_on"
    assert rel.strength == pytest.approx(0.85)


def test_profitability_boost_is_capped():
    relationships = infer_relationships([REVENUE, PROFIT_MARGIN])

    assert len(relationships) == 1
    assert relationships[0].relationship_type == "affects"
    assert relationships[0].strength == 1.0


def test_boost_applies_without_cap():
    low_revenue = _entity("revenue", "metric", "income", 0.4)
    low_margin = _entity("profit_margin", "metric", "profitability", 0.5)

    assert relationship_strength(low_revenue, low_margin) == pytest.approx(0.65)


def test_direction_follows_input_order():
    """Only the first-to-second direction is looked up."""
    assert infer_relationships([PROFIT_MARGIN, REVENUE]) == []


def test_type_rule_fallback():
    growth = _entity("growth", "metric", "performance", 0.85)
    investment = _entity("investment", "action", "growth", 0.7)

    relationships = infer_relationships([growth, investment])

    assert [(r.from_entity, r.relationship_type, r.to_entity) for r in relationships] == [
        ("growth", "improved_by", "investment"),
    ]
    assert relationships[0].strength == pytest.approx(0.775)


def test_category_rule_takes_precedence_over_type_rule():
    supplier = _entity("supplier", "stakeholder", "operations", 0.65)
    expenses = _entity("expenses", "metric", "cost", 0.9)

    assert infer_relationship_type(supplier, expenses) == "influences"
    assert CATEGORY_RULES[("operations", "cost")] == "influences"


def test_pairs_without_rules_produce_no_edges():
    seasonality = _entity("seasonality", "pattern", "trends", 0.55)
    competition = _entity("competition", "external", "market", 0.6)

    assert infer_relationships([seasonality, competition]) == []


@pytest.mark.parametrize("entities", [[], [CASH_FLOW]])
def test_fewer_than_two_entities(entities):
    assert infer_relationships(entities) == []


def test_context_serialized_as_sorted_json():
    relationships = infer_relationships(
        [CASH_FLOW, INVENTORY],
        {"query": "How is my cash flow?", "conversation_id": "abc"},
    )

    context = relationships[0].context
    assert context.startswith('{"conversation_id"')
    assert json.loads(context) == {"conversation_id": "abc", "query": "How is my cash flow?"}


def test_strength_always_in_unit_range():
    entities = [
        _entity("revenue", "metric", "income", 1.0),
        _entity("profit", "metric", "profitability", 1.0),
        _entity("expenses", "metric", "cost", 0.0),
        _entity("cash_flow", "metric", "liquidity", 0.5),
        _entity("inventory", "asset", "working_capital", 0.5),
    ]

    relationships = infer_relationships(entities)

    assert relationships
    for rel in relationships:
        assert 0.0 <= rel.strength <= 1.0
