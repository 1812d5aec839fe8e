"""
AdvisorBoard Agents Module.

Contains the autonomous stage agents of the advisory cascade:
- BaseAgent: Abstract base class with the activation guard
- RiskProfileAgent: Scores risk tolerance from questionnaire answers
- MarketContextAgent: Summarizes current market conditions
- PortfolioDesignAgent: Designs recommended and alternative portfolios
- SimulationAgent: Projects the recommended portfolio forward
- ReportAgent: Writes the final report and completes the mission

And the ad-hoc EducationTutor, which is not a cascade stage.
"""

from typing import Optional

from .base_agent import BaseAgent, GuardSkipped
from .risk_profile import RiskProfileAgent
from .market_context import MarketContextAgent
from .portfolio_design import PortfolioDesignAgent, normalize_portfolio
from .simulation import SimulationAgent
from .report import ReportAgent
from .education import EducationTutor

STAGE_CLASSES = [
    RiskProfileAgent,
    MarketContextAgent,
    PortfolioDesignAgent,
    SimulationAgent,
    ReportAgent,
]


def create_stage_agents(
    inference,
    prompt_builder,
    stage_configs: Optional[dict] = None,
    questionnaire: Optional[dict] = None,
) -> list[BaseAgent]:
    """Build the ordered agent registry, one instance per stage."""
    stage_configs = stage_configs or {}
    agents = []
    for stage_class in STAGE_CLASSES:
        config = stage_configs.get(stage_class.agent_id) or {}
        if stage_class is RiskProfileAgent:
            agents.append(stage_class(inference, prompt_builder, config, questionnaire=questionnaire))
        else:
            agents.append(stage_class(inference, prompt_builder, config))
    return agents


__all__ = [
    'BaseAgent',
    'GuardSkipped',
    'RiskProfileAgent',
    'MarketContextAgent',
    'PortfolioDesignAgent',
    'normalize_portfolio',
    'SimulationAgent',
    'ReportAgent',
    'EducationTutor',
    'STAGE_CLASSES',
    'create_stage_agents',
]
