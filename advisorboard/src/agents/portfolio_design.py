"""
Portfolio Design Agent - Builds the recommended and alternative portfolios.

Joins the two parallel branches: it waits for both the risk profile and the
market context. Expects {"portfolios": [...]} and normalizes the result:
- allocations are rescaled to sum to 100
- returns and volatility given as fractions (0.085) become percentages (8.5)

A manual rerun may replace the preferences stated in the questionnaire.
"""

import logging
from typing import Optional

from .base_agent import BaseAgent
from ..orchestration.blackboard import (
    ASSET_CATEGORIES,
    BlackboardField,
    BlackboardView,
    MarketPreference,
    PortfolioRecommendation,
)

logger = logging.getLogger(__name__)

MARKET_CONSTRAINTS = {
    MarketPreference.TW: (
        "STRICT CONSTRAINT: Use ONLY Taiwan Stock Exchange (TWSE) or TPEx tickers "
        "(e.g., 2330.TW, 0050.TW). Do NOT recommend US stocks."
    ),
    MarketPreference.US: (
        "STRICT CONSTRAINT: Use ONLY US stock market tickers (e.g., AAPL, VTI, BND). "
        "Do NOT recommend Taiwan stocks."
    ),
    MarketPreference.BOTH: (
        "CONSTRAINT: Create a globally diversified portfolio mixing US tickers for global "
        "exposure and Taiwan tickers (e.g., 2330.TW) for local exposure."
    ),
}

PORTFOLIO_QUERY = (
    "Design 2 distinct portfolios based on the risk profile and the market context.\n"
    "1. Recommended Portfolio: matches the risk profile.\n"
    "2. Alternative Portfolio: a different strategic approach (e.g., higher yield vs higher growth).\n\n"
    "Respond with {\"portfolios\": [...]} where each portfolio has name, description, "
    "expected_return, volatility and assets (name, ticker, category, percentage, reasoning).\n"
    "category MUST be one of: " + ", ".join(sorted(ASSET_CATEGORIES)) + ".\n"
    "expected_return and volatility are annual PERCENTAGES (8.5 for 8.5%, NOT 0.085)."
)

# Allocation totals within this distance of 100 are left untouched
ALLOCATION_TOLERANCE = 0.01


def normalize_portfolio(portfolio: PortfolioRecommendation) -> PortfolioRecommendation:
    """Rescale allocations to 100 and convert fractional rates to percent."""
    total = portfolio.total_allocation
    if total <= 0:
        raise ValueError(f"Portfolio {portfolio.name!r} has zero total allocation")
    if abs(total - 100.0) > ALLOCATION_TOLERANCE:
        logger.debug(f"Normalizing {portfolio.name!r} allocation from {total:.2f}%")
        for asset in portfolio.assets:
            asset.percentage = round(asset.percentage * 100.0 / total, 2)

    if 0 < abs(portfolio.expected_return) < 1:
        portfolio.expected_return = round(portfolio.expected_return * 100.0, 4)
    if 0 < portfolio.volatility < 1:
        portfolio.volatility = round(portfolio.volatility * 100.0, 4)
    return portfolio


class PortfolioDesignAgent(BaseAgent):
    """Designs portfolios from the risk profile and market context."""

    agent_id = "portfolio_design"
    display_name = "Portfolio"
    output_field = BlackboardField.PORTFOLIOS
    requires = (BlackboardField.RISK_RESULT, BlackboardField.MARKET_CONTEXT)
    accepted_overrides = ('preferences',)

    async def run(
        self, blackboard: BlackboardView, preferences: Optional[str] = None,
    ) -> list[PortfolioRecommendation]:
        if preferences is not None and not isinstance(preferences, str):
            raise ValueError("preferences must be text")
        inputs = blackboard.mission_inputs
        risk = blackboard.risk_result
        market = inputs.market if inputs else MarketPreference.BOTH

        context = {
            "User Profile": {
                "risk_level": risk.level.value,
                "risk_score": risk.score,
                "market_preference": market.value.upper(),
                "preferences": (
                    (preferences or "").strip()
                    or (inputs.answers.get('preferences') if inputs else None)
                    or "None stated"
                ),
            },
            "Constraint": MARKET_CONSTRAINTS[market],
            "Market Context": blackboard.market_context,
        }

        result = await self._invoke(context, required_fields=['portfolios'], query=PORTFOLIO_QUERY)

        raw = result.data.get('portfolios')
        if not isinstance(raw, list) or not raw:
            raise self._malformed(ValueError("portfolios must be a non-empty list"))
        if not all(isinstance(item, dict) for item in raw):
            raise self._malformed(ValueError("portfolio entries must be objects"))
        try:
            portfolios = [normalize_portfolio(PortfolioRecommendation.from_dict(item)) for item in raw]
        except ValueError as e:
            raise self._malformed(e)
        return portfolios

    def summarize(self, value: list[PortfolioRecommendation]) -> str:
        names = ", ".join(p.name for p in value)
        return f"Designed {len(value)} portfolio(s): {names}"

