"""
Prompt assembly for the virtual CFO assistant.

Combines the user's business profile, the budgeted knowledge selection and
the literal user question into the prompt sent to the text service. When no
knowledge was selected the insights section is left out entirely so the
prompt never claims context it does not have.
"""

import logging
from typing import Any, Optional

from knowledge.ranking import KnowledgeSelection, knowledge_block_overhead_words
from knowledge.schema import ProfileFacts
from knowledge.tokens import TokenCostEstimator

logger = logging.getLogger(__name__)

TITLE = "**Virtual CFO Assistant**"
PROFILE_HEADING = "**Your business profile:**"
INSIGHTS_HEADING = "**Relevant insights:**"
QUESTION_HEADING = "**Your question:**"
INSTRUCTIONS_HEADING = "**Instructions:**"

PROFILE_INCOMPLETE = (
    "Business: Profile incomplete\n"
    "Please update your profile for personalized insights"
)

INSTRUCTIONS = (
    "Provide specific, actionable financial advice for this business.\n"
    "Reference the insights above only when they are relevant.\n"
    "Format your response with:\n"
    "- Clear section headers\n"
    "- Bullet points for key recommendations\n"
    "- Important metrics in bold\n"
    "- Concise explanations with specific numbers where possible"
)


class ContextAssembler:
    """Renders the final prompt from profile, knowledge and query."""

    def __init__(
        self,
        estimator: Optional[TokenCostEstimator] = None,
        currency_symbol: str = "₹",
    ):
        self.estimator = estimator or TokenCostEstimator()
        self.currency_symbol = currency_symbol

    def _amount(self, value: float) -> str:
        return f"{self.currency_symbol}{value:,.0f}"

    def profile_summary(self, profile: Any = None) -> str:
        """Profile lines for the known facts, or the profile-incomplete fallback."""
        facts = ProfileFacts.coerce(profile)
        lines = []
        if facts.industry:
            lines.append(f"Industry: {facts.industry}")
        if facts.monthly_revenue:
            lines.append(f"Monthly revenue: {self._amount(facts.monthly_revenue)}")
        if facts.monthly_expenses:
            lines.append(f"Monthly expenses: {self._amount(facts.monthly_expenses)}")
        if facts.location:
            lines.append(f"Location: {facts.location}")
        return "\n".join(lines) if lines else PROFILE_INCOMPLETE

    def _render(self, query: str, profile: Any, knowledge: Optional[str]) -> str:
        sections = [TITLE, "", PROFILE_HEADING, self.profile_summary(profile), ""]
        if knowledge is not None:
            sections.extend([INSIGHTS_HEADING, knowledge, ""])
        sections.extend([QUESTION_HEADING, f'"{query}"', "", INSTRUCTIONS_HEADING, INSTRUCTIONS])
        return "\n".join(sections)

    def assemble(self, query: str, selection: Optional[KnowledgeSelection], profile: Any = None) -> str:
        """
        Build the prompt.

        Args:
            query: The user's message, included verbatim.
            selection: Budgeted knowledge, or None when none is available.
            profile: ProfileFacts, a profile dict, or None.

        Returns:
            Prompt string for the text service.
        """
        query = query if isinstance(query, str) else ""
        has_knowledge = selection is not None and bool(selection.entities)
        knowledge = selection.to_prompt_section() if has_knowledge else None
        prompt = self._render(query, profile, knowledge)

        if has_knowledge:
            logger.debug(
                f"Assembled prompt with knowledge: {selection.token_count}/"
                f"{selection.token_budget} context tokens"
            )
        else:
            logger.debug("Assembled profile-only prompt")
        return prompt

    def overhead_tokens(self, query: str, profile: Any = None) -> int:
        """
        Token estimate of everything in the prompt except knowledge item lines.

        The prompt's estimated size is never more than this plus the
        selection's token_count.
        """
        query = query if isinstance(query, str) else ""
        skeleton = self._render(query, profile, "")
        words = len(skeleton.split()) + knowledge_block_overhead_words()
        return self.estimator.tokens_for_words(words)
