"""
Market Context Agent - Summarizes current market conditions.

Runs in parallel with the risk stage, since it only needs the market
preference. Free-text task; with a search-grounded provider the model pulls
live index levels and headlines.
"""

import logging

from .base_agent import BaseAgent
from ..orchestration.blackboard import BlackboardField, BlackboardView, MarketPreference

logger = logging.getLogger(__name__)

SEARCH_FOCUS = {
    MarketPreference.TW: "Taiwan Stock Exchange (TAIEX), USD/TWD exchange rate",
    MarketPreference.US: "S&P 500, NASDAQ 100, US 10Y Treasury Yield",
    MarketPreference.BOTH: "S&P 500, TAIEX, US 10Y Treasury Yield, USD/TWD",
}

MARKET_QUERY = (
    "Find current data from reliable sources:\n"
    "1. Current index levels for: {focus}.\n"
    "2. Current CBOE VIX (Volatility Index).\n"
    "3. Top 3 financial news headlines today affecting these markets.\n\n"
    "Summarize the market sentiment (Bullish/Bearish/Neutral) and key data points. "
    "Keep the summary concise but data-rich."
)


class MarketContextAgent(BaseAgent):
    """Produces the market_context text for the chosen markets."""

    agent_id = "market_context"
    display_name = "Market"
    output_field = BlackboardField.MARKET_CONTEXT
    requires = (BlackboardField.MISSION_INPUTS,)

    async def run(self, blackboard: BlackboardView) -> str:
        market = blackboard.mission_inputs.market
        focus = SEARCH_FOCUS[market]
        result = await self._invoke(
            {"Market Preference": market.value.upper()},
            expect_json=False,
            query=MARKET_QUERY.format(focus=focus),
        )
        text = result.text.strip()
        if not text:
            raise self._malformed(ValueError("empty market summary"))
        return text

    def summarize(self, value: str) -> str:
        first_line = value.strip().splitlines()[0][:80]
        return f"Market context ready: {first_line}"
