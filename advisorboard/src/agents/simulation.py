"""
Simulation Agent - Projects the recommended portfolio forward.

Uses the first portfolio on the blackboard (the recommended one) and asks for
optimistic, expected and pessimistic value paths from a start value of 100,
with one shock event year. Expects {"points": [...]}; points are returned
sorted by year. A manual rerun may ask for a different horizon in years.
"""

import logging
from typing import Optional

from .base_agent import BaseAgent
from ..orchestration.blackboard import BlackboardField, BlackboardView, SimulationPoint, serialize_value

logger = logging.getLogger(__name__)

DEFAULT_YEARS = 10
MAX_YEARS = 50
START_VALUE = 100

SIMULATION_QUERY = (
    "Run a Monte Carlo style simulation for this portfolio over {years} years, "
    "starting from a value of {start}.\n"
    "Generate 3 scenarios per year: optimistic, expected, pessimistic.\n"
    "Include shock_event (a 2008 or Covid crash magnitude drawdown value) in one year only.\n"
    "expected_return is a percentage (7 means 7%). Values are asset values (e.g. 107.5).\n"
    "Respond with {{\"points\": [{{\"year\": 1, \"optimistic\": ..., \"expected\": ..., "
    "\"pessimistic\": ..., \"shock_event\": null}}, ...]}}."
)


def check_years(years) -> int:
    """Validate a simulation horizon.

    Raises:
        ValueError: Not an integer between 1 and MAX_YEARS
    """
    if isinstance(years, bool) or not isinstance(years, int) or not 1 <= years <= MAX_YEARS:
        raise ValueError(f"Simulation years must be an integer from 1 to {MAX_YEARS}, got {years!r}")
    return years


class SimulationAgent(BaseAgent):
    """Simulates outcomes for the recommended portfolio."""

    agent_id = "simulation"
    display_name = "Simulation"
    output_field = BlackboardField.SIMULATION
    requires = (BlackboardField.PORTFOLIOS,)
    accepted_overrides = ('years',)

    @property
    def years(self) -> int:
        return int(self.config.get('years', DEFAULT_YEARS))

    async def run(self, blackboard: BlackboardView, years: Optional[int] = None) -> list[SimulationPoint]:
        years = self.years if years is None else check_years(years)
        portfolio = blackboard.portfolios[0]
        result = await self._invoke(
            {"Portfolio": serialize_value(portfolio)},
            required_fields=['points'],
            query=SIMULATION_QUERY.format(years=years, start=START_VALUE),
        )

        raw = result.data.get('points')
        if not isinstance(raw, list) or not raw:
            raise self._malformed(ValueError("points must be a non-empty list"))
        if not all(isinstance(item, dict) for item in raw):
            raise self._malformed(ValueError("simulation points must be objects"))
        try:
            points = [SimulationPoint.from_dict(item) for item in raw]
        except ValueError as e:
            raise self._malformed(e)

        points.sort(key=lambda p: p.year)
        if len(points) != years:
            logger.warning(f"Simulation returned {len(points)} points for {years} years")
        return points

    def summarize(self, value: list[SimulationPoint]) -> str:
        final = value[-1]
        return (
            f"Simulation complete: year {final.year} expected {final.expected:.1f} "
            f"(range {final.pessimistic:.1f}-{final.optimistic:.1f})"
        )
