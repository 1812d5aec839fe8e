"""
Unit tests for the EducationTutor.

Tests cover:
- Context selection from a blackboard snapshot
- Prompt assembly with and without a configured tutor prompt
- Query validation
"""

import pytest

from advisorboard.src.agents import EducationTutor
from advisorboard.src.agents.education import TUTOR_SYSTEM_PROMPT
from advisorboard.src.llm.prompt_builder import PromptBuilder
from advisorboard.src.orchestration.blackboard import (
    Blackboard,
    BlackboardField,
    PortfolioRecommendation,
    RiskAnalysisResult,
)


@pytest.fixture
def snapshot(sample_risk_data, sample_portfolio_data):
    board = Blackboard(mission_id="m-1")
    board.set_field(BlackboardField.RISK_RESULT, RiskAnalysisResult.from_dict(sample_risk_data))
    board.set_field(BlackboardField.PORTFOLIOS, [
        PortfolioRecommendation.from_dict(p) for p in sample_portfolio_data["portfolios"]
    ])
    return board.snapshot()


@pytest.fixture
def tutor_inference(scripted_inference):
    return scripted_inference({"education": "  An ETF is a basket of stocks.  "})


class TestBuildContext:
    """Test context selection."""

    def test_no_snapshot(self, tutor_inference):
        assert EducationTutor(tutor_inference).build_context(None) == {}

    def test_uses_first_portfolio_only(self, tutor_inference, snapshot):
        context = EducationTutor(tutor_inference).build_context(snapshot)
        assert context["Risk Profile"]["level"] == "Growth"
        assert context["Recommended Portfolio"]["name"] == "Recommended Portfolio"
        assert "Market Context" not in context


class TestExplain:
    """Test explain()."""

    @pytest.mark.asyncio
    async def test_with_prompt_builder(self, tutor_inference, prompt_builder, snapshot):
        tutor = EducationTutor(tutor_inference, prompt_builder, {"temperature": 0.5})
        answer = await tutor.explain("What is an ETF?", snapshot)

        assert answer == "An ETF is a basket of stocks."
        task = tutor_inference.invoke.call_args[0][0]
        assert task.name == "education"
        assert task.expect_json is False
        assert task.temperature == 0.5
        assert task.system_prompt == "You are an investment tutor."
        assert "## Task\nWhat is an ETF?" in task.user_message
        assert "## Risk Profile" in task.user_message
        assert tutor.get_stats() == {"total_questions": 1}

    @pytest.mark.asyncio
    async def test_fallback_prompt(self, tutor_inference, snapshot):
        builder = PromptBuilder({'agents': {}, 'token_budgets': {'default': {'total': 8192, 'buffer': 0}}})
        tutor = EducationTutor(tutor_inference, builder)
        await tutor.explain("What is volatility?", snapshot)

        task = tutor_inference.invoke.call_args[0][0]
        assert task.system_prompt == TUTOR_SYSTEM_PROMPT
        assert task.user_message.startswith('User Query: "What is volatility?"')
        assert '"level": "Growth"' in task.user_message

    @pytest.mark.asyncio
    async def test_without_context(self, tutor_inference):
        tutor = EducationTutor(tutor_inference)
        await tutor.explain("What is a bond?")
        task = tutor_inference.invoke.call_args[0][0]
        assert task.user_message == 'User Query: "What is a bond?"'

    @pytest.mark.asyncio
    async def test_blank_query(self, tutor_inference):
        with pytest.raises(ValueError):
            await EducationTutor(tutor_inference).explain("   ")
        tutor_inference.invoke.assert_not_called()
