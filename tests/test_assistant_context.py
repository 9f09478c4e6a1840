"""Tests for prompt assembly."""

import pytest

from assistant.kg_context import INSTRUCTIONS, ContextAssembler
from knowledge.ranking import ContextPruner, KnowledgeSelection
from knowledge.schema import ProfileFacts, Relationship
from knowledge.tokens import TokenCostEstimator


QUERY = "What should I do about my cash flow?"


@pytest.fixture
def assembler() -> ContextAssembler:
    return ContextAssembler(TokenCostEstimator())


@pytest.fixture
def selection(make_entity, fixed_now) -> KnowledgeSelection:
    entities = [
        make_entity("cash_flow", context="cash flow is tight this month", confidence=0.95),
        make_entity("inventory", entity_type="asset", category="working_capital",
                    context="too much stock", confidence=0.8, tier=2),
        make_entity("metric_20", entity_type="numeric_metric", category="quantitative_data",
                    context="sold 20 units", confidence=0.9, tier=3),
    ]
    relationships = [Relationship("cash_flow", "inventory", "depends_on", strength=0.85)]
    return ContextPruner().select([], entities, relationships, ["cash", "flow"], now=fixed_now)


class TestProfileSummary:
    """Profile block rendering."""

    def test_missing_profile_uses_fallback(self, assembler):
        assert "Business: Profile incomplete" in assembler.profile_summary(None)
        assert "Business: Profile incomplete" in assembler.profile_summary({})

    def test_known_fields_rendered_absent_fields_omitted(self, assembler):
        summary = assembler.profile_summary(
            {"business_type": "Bakery", "monthly_revenue": 150000, "location": "Pune"}
        )

        assert "Industry: Bakery" in summary
        assert "Monthly revenue: ₹150,000" in summary
        assert "Location: Pune" in summary
        assert "expenses" not in summary.lower()
        assert "Profile incomplete" not in summary

    def test_currency_symbol_configurable(self):
        assembler = ContextAssembler(currency_symbol="$")

        summary = assembler.profile_summary(ProfileFacts(monthly_expenses=1200.4))

        assert "Monthly expenses: $1,200" in summary


class TestAssemble:
    """Prompt branches."""

    def test_empty_selection_omits_insights(self, assembler):
        prompt = assembler.assemble(QUERY, KnowledgeSelection(), {})

        assert "Relevant insights" not in prompt
        assert "Business: Profile incomplete" in prompt
        assert f'"{QUERY}"' in prompt
        assert prompt.endswith(INSTRUCTIONS)

    def test_none_selection_is_profile_only(self, assembler):
        prompt = assembler.assemble(QUERY, None, None)

        assert "Relevant insights" not in prompt
        assert QUERY in prompt

    def test_knowledge_branch_renders_selection(self, assembler, selection):
        prompt = assembler.assemble(QUERY, selection, {"industry": "Retail"})

        assert "**Relevant insights:**" in prompt
        assert selection.rendered_context in prompt
        assert "Industry: Retail" in prompt
        assert f'"{QUERY}"' in prompt
        assert prompt.index("Relevant insights") < prompt.index(QUERY)

    def test_instructions_identical_in_both_branches(self, assembler, selection):
        with_knowledge = assembler.assemble(QUERY, selection, {})
        without = assembler.assemble(QUERY, KnowledgeSelection(), {})

        tail = with_knowledge[with_knowledge.index("**Instructions:**"):]
        assert tail == without[without.index("**Instructions:**"):]

    def test_non_string_query_does_not_raise(self, assembler):
        prompt = assembler.assemble(None, None, None)

        assert '""' in prompt


class TestTokenBound:
    """Prompt size stays within budget plus boilerplate."""

    @pytest.mark.parametrize("profile", [None, {"business_type": "Electronics Retail", "monthly_revenue": 250000}])
    def test_prompt_estimate_bounded(self, assembler, selection, profile):
        estimator = TokenCostEstimator()

        prompt = assembler.assemble(QUERY, selection, profile)
        overhead = assembler.overhead_tokens(QUERY, profile)

        assert selection.entities
        assert estimator.estimate(prompt) <= selection.token_count + overhead
        assert selection.token_count <= selection.token_budget

    def test_profile_only_prompt_within_overhead(self, assembler):
        estimator = TokenCostEstimator()

        prompt = assembler.assemble(QUERY, KnowledgeSelection(), {})

        assert estimator.estimate(prompt) <= assembler.overhead_tokens(QUERY, {})
