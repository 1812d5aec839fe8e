"""
Shared test fixtures for AdvisorBoard tests.

This module provides common fixtures used across multiple test files
to reduce code duplication and ensure consistent test data.
"""

import json
import pytest
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

from advisorboard.src.llm.inference import InferenceError, StageResult
from advisorboard.src.llm.prompt_builder import PromptBuilder


PROJECT_ROOT = Path(__file__).parent.parent.parent


# =============================================================================
# Configuration Fixtures
# =============================================================================

@pytest.fixture
def project_config_dir():
    """The config directory shipped with the project."""
    return PROJECT_ROOT / "config"


@pytest.fixture
def prompts_config():
    """Prompt config with inline system prompts and no template files."""
    return {
        'token_budgets': {
            'default': {'total': 8192, 'buffer': 1024},
        },
        'agents': {
            'risk_profile': {'system_prompt': 'You are a risk analyst.'},
            'market_context': {'system_prompt': 'You are a market researcher.'},
            'portfolio_design': {'system_prompt': 'You are a portfolio architect.'},
            'simulation': {'system_prompt': 'You are a quantitative analyst.'},
            'report': {'system_prompt': 'You are an investment advisor.'},
            'education': {'system_prompt': 'You are an investment tutor.'},
        },
    }


@pytest.fixture
def prompt_builder(prompts_config):
    """PromptBuilder over the inline prompt config."""
    return PromptBuilder(prompts_config)


@pytest.fixture
def questionnaire_config():
    """Small questionnaire with one free-text entry."""
    return {
        'questions': [
            {
                'id': 'q1',
                'text': 'What is your investment horizon?',
                'options': [
                    {'value': 'short', 'label': 'Less than 3 years'},
                    {'value': 'long', 'label': 'More than 10 years'},
                ],
            },
            {
                'id': 'q2',
                'text': 'If your portfolio dropped 20%, what would you do?',
                'options': [
                    {'value': 'sell', 'label': 'Sell everything'},
                    {'value': 'hold', 'label': 'Hold and wait'},
                ],
            },
            {
                'id': 'preferences',
                'text': 'Anything else we should know?',
                'free_text': True,
            },
        ],
    }


# =============================================================================
# Mission Data Fixtures
# =============================================================================

@pytest.fixture
def sample_inputs():
    """Mission inputs as the API receives them."""
    return {
        'answers': {'q1': 'long', 'q2': 'hold', 'preferences': 'Prefer ETFs'},
        'market': 'us',
    }


@pytest.fixture
def sample_risk_data():
    """Risk stage JSON output."""
    return {
        'score': 62,
        'level': 'Growth',
        'explanation': 'Long horizon and a calm reaction to losses.',
        'contradictions': [],
    }


@pytest.fixture
def sample_market_text():
    """Market stage text output."""
    return (
        "Neutral sentiment, markets consolidating\n"
        "- S&P 500: 5,100\n"
        "- VIX: 14.2\n"
        "- Fed holds rates steady"
    )


@pytest.fixture
def sample_portfolio_data():
    """Portfolio stage JSON output with two portfolios."""
    return {
        'portfolios': [
            {
                'name': 'Recommended Portfolio',
                'description': 'Global equity core with bond ballast',
                'expected_return': 7.5,
                'volatility': 12.0,
                'assets': [
                    {'name': 'Vanguard Total World', 'ticker': 'VT', 'category': 'Stocks',
                     'percentage': 60, 'reasoning': 'Broad equity exposure.'},
                    {'name': 'Vanguard Total Bond', 'ticker': 'BND', 'category': 'Bonds',
                     'percentage': 30, 'reasoning': 'Dampens drawdowns.'},
                    {'name': 'SPDR Gold', 'ticker': 'GLD', 'category': 'Commodities',
                     'percentage': 10, 'reasoning': 'Inflation hedge.'},
                ],
            },
            {
                'name': 'Alternative Portfolio',
                'description': 'Income tilt',
                'expected_return': 6.0,
                'volatility': 9.0,
                'assets': [
                    {'name': 'Schwab Dividend', 'ticker': 'SCHD', 'category': 'Stocks',
                     'percentage': 50, 'reasoning': 'Dividend income.'},
                    {'name': 'iShares Treasury', 'ticker': 'IEF', 'category': 'Bonds',
                     'percentage': 50, 'reasoning': 'Stable income.'},
                ],
            },
        ],
    }


@pytest.fixture
def sample_simulation_data():
    """Simulation stage JSON output, ten years."""
    return {
        'points': [
            {
                'year': year,
                'optimistic': 100 + year * 12,
                'expected': 100 + year * 7,
                'pessimistic': 100 + year * 2,
                'shock_event': -35 if year == 4 else None,
            }
            for year in range(1, 11)
        ],
    }


@pytest.fixture
def sample_report_text():
    """Report stage Markdown output."""
    return (
        "# Executive Summary\n"
        "You are a Growth investor with a long horizon.\n\n"
        "## Actionable Next Steps\n"
        "1. Open a brokerage account."
    )


@pytest.fixture
def stage_responses(
    sample_risk_data,
    sample_market_text,
    sample_portfolio_data,
    sample_simulation_data,
    sample_report_text,
):
    """Happy-path response for every stage, keyed by task name."""
    return {
        'risk_profile': sample_risk_data,
        'market_context': sample_market_text,
        'portfolio_design': sample_portfolio_data,
        'simulation': sample_simulation_data,
        'report': sample_report_text,
    }


# =============================================================================
# Mock Inference Fixtures
# =============================================================================

def _make_scripted_inference(responses: dict, gates: dict = None) -> MagicMock:
    """
    Inference double that answers per task name.

    A response may be a dict (JSON task), a str (text task), an exception
    instance (raised) or a list of those consumed one per call. A gate
    (asyncio.Event) holds the first call of its task until set.
    """
    responses = {name: list(r) if isinstance(r, list) else r for name, r in responses.items()}
    gates = dict(gates or {})
    calls = []

    async def invoke(task):
        calls.append(task.name)
        response = responses.get(task.name)
        if isinstance(response, list):
            response = response.pop(0) if len(response) > 1 else response[0]

        gate = gates.pop(task.name, None)
        if gate is not None:
            await gate.wait()

        if isinstance(response, BaseException):
            raise response
        if response is None:
            raise InferenceError(f"{task.name}: no scripted response", task_name=task.name)
        if isinstance(response, dict):
            return StageResult(
                task_name=task.name, data=response, text=json.dumps(response),
                tokens_used=10, model='test-model',
            )
        return StageResult(task_name=task.name, text=response, tokens_used=10, model='test-model')

    inference = MagicMock()
    inference.invoke = AsyncMock(side_effect=invoke)
    inference.calls = calls
    return inference


@pytest.fixture
def scripted_inference():
    """Factory for scripted inference doubles."""
    return _make_scripted_inference


@pytest.fixture
def mock_inference(stage_responses):
    """Inference double answering every stage successfully."""
    return _make_scripted_inference(stage_responses)
