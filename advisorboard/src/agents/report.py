"""
Report Agent - Writes the final Markdown advisory report.

The terminal stage: its message is MISSION_COMPLETE, which the orchestrator
never fans out.
"""

import logging

from .base_agent import BaseAgent
from ..orchestration.blackboard import BlackboardField, BlackboardView, serialize_value
from ..orchestration.message_bus import MessageKind

logger = logging.getLogger(__name__)

REPORT_QUERY = (
    "Generate a comprehensive investment report in Markdown with these sections:\n"
    "1. **Executive Summary**: High-level overview.\n"
    "2. **Market Pulse**: Summary of the market data (indices, VIX, headlines).\n"
    "3. **Risk Analysis**: Why the investor fits this profile.\n"
    "4. **Portfolio Strategy**: Breakdown of the recommended assets and why they were chosen.\n"
    "5. **Future Outlook**: What the simulation results mean.\n"
    "6. **Actionable Next Steps**."
)


class ReportAgent(BaseAgent):
    """Synthesizes every upstream output into the report."""

    agent_id = "report"
    display_name = "Report"
    output_field = BlackboardField.REPORT
    requires = (BlackboardField.RISK_RESULT, BlackboardField.PORTFOLIOS, BlackboardField.SIMULATION)
    emits = MessageKind.MISSION_COMPLETE

    async def run(self, blackboard: BlackboardView) -> str:
        context = {
            "Risk Profile": serialize_value(blackboard.risk_result),
            "Market Analysis": blackboard.market_context,
            "Recommended Portfolios": serialize_value(blackboard.portfolios),
            "Simulation Summary (Final Year)": serialize_value(blackboard.simulation[-1]),
        }
        result = await self._invoke(context, expect_json=False, query=REPORT_QUERY)
        report = result.text.strip()
        if not report:
            raise self._malformed(ValueError("empty report"))
        return report

    def summarize(self, value: str) -> str:
        return f"Final report ready ({len(value)} characters). Mission complete."
