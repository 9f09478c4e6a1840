"""Unit tests for token cost estimation."""

from knowledge.schema import Entity, Relationship
from knowledge.tokens import TokenCostEstimator


def test_estimate_uses_words_per_token_ratio():
    estimator = TokenCostEstimator()

    assert estimator.estimate("") == 0
    assert estimator.estimate("one two three") == 4
    assert estimator.estimate("a b c d") == 6
    assert estimator.estimate("  spaced   out\ntext ") == 4


def test_estimate_is_monotonic_in_length():
    estimator = TokenCostEstimator()
    costs = [estimator.estimate(" ".join(["word"] * n)) for n in range(50)]

    assert costs == sorted(costs)


def test_entity_cost_counts_context_name_and_overhead():
    estimator = TokenCostEstimator()
    entity = Entity(
        name="cash_flow",
        entity_type="metric",
        category="liquidity",
        context="cash flow is tight",
    )

    # (4 context words + 1 name word + 4 overhead) / 0.75
    assert estimator.entity_cost(entity) == 12


def test_relationship_cost_uses_leading_context():
    estimator = TokenCostEstimator()
    empty = Relationship("cash_flow", "inventory", "depends_on")
    long = Relationship("cash_flow", "inventory", "depends_on", context="word " * 50)

    assert estimator.relationship_cost(empty) == 8
    # First 100 characters hold 20 words
    assert estimator.relationship_cost(long) == 35


def test_custom_ratio():
    estimator = TokenCostEstimator(words_per_token=1.0)

    assert estimator.estimate("one two three") == 3
    assert estimator.tokens_for_words(7) == 7
