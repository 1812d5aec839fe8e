"""
Blackboard - Shared mission state and the records stored on it.

The Blackboard is the single mutable record shared by all stage agents for
the lifetime of one mission. Each field is owned by exactly one stage and is
committed as a whole value; nothing is ever partially written.

This module provides:
- Typed records for every blackboard field (inputs, risk, portfolios, ...)
- Blackboard with merge-on-commit and manual override
- BlackboardSnapshot: immutable deep copy for readers
- BlackboardView: read-only window onto the orchestrator's live instance
"""

import copy
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .message_bus import Payload

logger = logging.getLogger(__name__)


class BlackboardField(Enum):
    """Domain fields on the blackboard, in pipeline order."""
    MISSION_INPUTS = "mission_inputs"
    RISK_RESULT = "risk_result"
    MARKET_CONTEXT = "market_context"
    PORTFOLIOS = "portfolios"
    SIMULATION = "simulation"
    REPORT = "report"


class MarketPreference(Enum):
    """Markets the investor wants exposure to."""
    TW = "tw"
    US = "us"
    BOTH = "both"


class RiskLevel(Enum):
    """Risk tolerance bands."""
    CONSERVATIVE = "Conservative"
    MODERATE = "Moderate"
    GROWTH = "Growth"
    AGGRESSIVE = "Aggressive"


# Allowed portfolio asset categories
ASSET_CATEGORIES = frozenset({
    "Stocks",
    "Bonds",
    "Cash",
    "Commodities",
    "Real Estate",
    "Crypto",
})


@dataclass
class MissionInputs:
    """Questionnaire answers plus market preference that seed a mission."""
    answers: dict[str, str]
    market: MarketPreference

    @classmethod
    def from_dict(cls, data: dict) -> 'MissionInputs':
        """
        Build inputs from plain data.

        Raises:
            ValueError: If the market preference is unknown or answers are
                not a mapping of strings
        """
        answers = data.get("answers") or {}
        if not isinstance(answers, dict):
            raise ValueError("answers must be a mapping of question id to answer")
        for key, value in answers.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise ValueError(f"Answer for '{key}' must be a string")

        market = data.get("market", MarketPreference.BOTH.value)
        if isinstance(market, MarketPreference):
            preference = market
        else:
            try:
                preference = MarketPreference(str(market).lower())
            except ValueError:
                valid = ", ".join(m.value for m in MarketPreference)
                raise ValueError(f"Invalid market preference '{market}' (valid: {valid})")

        return cls(answers=dict(answers), market=preference)


@dataclass
class RiskAnalysisResult:
    """Risk profile produced by the risk stage."""
    score: float
    level: RiskLevel
    explanation: str
    contradictions: list[str] = field(default_factory=list)
    warning: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> 'RiskAnalysisResult':
        """Parse a risk profile; score is clamped to [0, 100]."""
        try:
            level = RiskLevel(data["level"])
        except (KeyError, ValueError):
            raise ValueError(f"Invalid risk level: {data.get('level')!r}")

        try:
            score = float(data["score"])
        except (KeyError, TypeError, ValueError):
            raise ValueError(f"Invalid risk score: {data.get('score')!r}")
        score = max(0.0, min(100.0, score))

        explanation = str(data.get("explanation") or "").strip()
        if not explanation:
            raise ValueError("Risk explanation missing")

        contradictions = data.get("contradictions") or []
        if not isinstance(contradictions, list):
            contradictions = [str(contradictions)]

        return cls(
            score=score,
            level=level,
            explanation=explanation,
            contradictions=[str(c) for c in contradictions],
            warning=data.get("warning") or None,
        )


@dataclass
class PortfolioAsset:
    """One holding within a recommended portfolio."""
    name: str
    ticker: str
    category: str
    percentage: float
    reasoning: str

    @classmethod
    def from_dict(cls, data: dict) -> 'PortfolioAsset':
        category = data.get("category")
        if category not in ASSET_CATEGORIES:
            raise ValueError(f"Invalid asset category: {category!r}")
        try:
            percentage = float(data["percentage"])
        except (KeyError, TypeError, ValueError):
            raise ValueError(f"Invalid allocation for {data.get('ticker')!r}")
        if percentage < 0:
            raise ValueError(f"Negative allocation for {data.get('ticker')!r}")
        return cls(
            name=str(data.get("name", "")),
            ticker=str(data.get("ticker", "")),
            category=category,
            percentage=percentage,
            reasoning=str(data.get("reasoning", "")),
        )


@dataclass
class PortfolioRecommendation:
    """
    A designed portfolio.

    expected_return and volatility are annual percentages (7.5 means 7.5%).
    """
    name: str
    description: str
    assets: list[PortfolioAsset]
    expected_return: float
    volatility: float

    @classmethod
    def from_dict(cls, data: dict) -> 'PortfolioRecommendation':
        raw_assets = data.get("assets") or []
        if not all(isinstance(a, dict) for a in raw_assets):
            raise ValueError(f"Portfolio {data.get('name')!r} assets must be objects")
        assets = [PortfolioAsset.from_dict(a) for a in raw_assets]
        if not assets:
            raise ValueError(f"Portfolio {data.get('name')!r} has no assets")
        try:
            expected_return = float(data.get("expected_return", data.get("expectedReturn")))
            volatility = float(data["volatility"])
        except (KeyError, TypeError, ValueError):
            raise ValueError(f"Portfolio {data.get('name')!r} missing return/volatility")
        return cls(
            name=str(data.get("name", "")),
            description=str(data.get("description", "")),
            assets=assets,
            expected_return=expected_return,
            volatility=volatility,
        )

    @property
    def total_allocation(self) -> float:
        return sum(a.percentage for a in self.assets)


@dataclass
class SimulationPoint:
    """Projected portfolio value for one year (start value 100)."""
    year: int
    optimistic: float
    expected: float
    pessimistic: float
    shock_event: Optional[float] = None

    @classmethod
    def from_dict(cls, data: dict) -> 'SimulationPoint':
        try:
            shock = data.get("shock_event", data.get("shockEvent"))
            return cls(
                year=int(data["year"]),
                optimistic=float(data["optimistic"]),
                expected=float(data["expected"]),
                pessimistic=float(data["pessimistic"]),
                shock_event=float(shock) if shock is not None else None,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid simulation point {data!r}: {e}")


# Declared type of every field; list fields also declare their item type
FIELD_TYPES: dict[BlackboardField, type] = {
    BlackboardField.MISSION_INPUTS: MissionInputs,
    BlackboardField.RISK_RESULT: RiskAnalysisResult,
    BlackboardField.MARKET_CONTEXT: str,
    BlackboardField.PORTFOLIOS: list,
    BlackboardField.SIMULATION: list,
    BlackboardField.REPORT: str,
}

FIELD_ITEM_TYPES: dict[BlackboardField, type] = {
    BlackboardField.PORTFOLIOS: PortfolioRecommendation,
    BlackboardField.SIMULATION: SimulationPoint,
}


def check_field_value(blackboard_field: BlackboardField, value: Any) -> None:
    """
    Verify a value matches the declared type of its field.

    Raises:
        TypeError: On a type mismatch
    """
    expected = FIELD_TYPES[blackboard_field]
    if not isinstance(value, expected):
        raise TypeError(
            f"Field '{blackboard_field.value}' expected {expected.__name__}, "
            f"got {type(value).__name__}"
        )
    item_type = FIELD_ITEM_TYPES.get(blackboard_field)
    if item_type is not None:
        for item in value:
            if not isinstance(item, item_type):
                raise TypeError(
                    f"Field '{blackboard_field.value}' items must be "
                    f"{item_type.__name__}, got {type(item).__name__}"
                )


def parse_field_value(blackboard_field: BlackboardField, raw: Any) -> Any:
    """
    Build a typed field value from plain (JSON) data.

    Raises:
        ValueError: If the data cannot be parsed into the field's type
    """
    if blackboard_field == BlackboardField.MISSION_INPUTS:
        if not isinstance(raw, dict):
            raise ValueError("mission_inputs must be an object")
        return MissionInputs.from_dict(raw)
    if blackboard_field == BlackboardField.RISK_RESULT:
        if not isinstance(raw, dict):
            raise ValueError("risk_result must be an object")
        return RiskAnalysisResult.from_dict(raw)
    if blackboard_field in (BlackboardField.MARKET_CONTEXT, BlackboardField.REPORT):
        if not isinstance(raw, str) or not raw.strip():
            raise ValueError(f"{blackboard_field.value} must be non-empty text")
        return raw
    if not isinstance(raw, list):
        raise ValueError(f"{blackboard_field.value} must be a list")
    item_type = FIELD_ITEM_TYPES[blackboard_field]
    if not all(isinstance(item, dict) for item in raw):
        raise ValueError(f"{blackboard_field.value} items must be objects")
    return [item_type.from_dict(item) for item in raw]


def serialize_value(value: Any) -> Any:
    """Convert blackboard values to JSON-compatible data."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return [serialize_value(v) for v in value]
    if isinstance(value, dict):
        return {k: serialize_value(v) for k, v in value.items()}
    if hasattr(value, "__dataclass_fields__"):
        return {k: serialize_value(v) for k, v in asdict(value).items()}
    return value


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list)) and not value:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


@dataclass(frozen=True)
class BlackboardSnapshot:
    """Immutable copy of the blackboard at one point in time."""
    mission_id: Optional[str] = None
    mission_inputs: Optional[MissionInputs] = None
    risk_result: Optional[RiskAnalysisResult] = None
    market_context: Optional[str] = None
    portfolios: Optional[list[PortfolioRecommendation]] = None
    simulation: Optional[list[SimulationPoint]] = None
    report: Optional[str] = None
    updated_at: Optional[datetime] = None

    def get(self, blackboard_field: BlackboardField) -> Any:
        return getattr(self, blackboard_field.value)

    def has(self, blackboard_field: BlackboardField) -> bool:
        return not _is_empty(self.get(blackboard_field))

    def to_dict(self) -> dict:
        """Serialize snapshot to dictionary."""
        result = {"mission_id": self.mission_id}
        for blackboard_field in BlackboardField:
            result[blackboard_field.value] = serialize_value(self.get(blackboard_field))
        result["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return result


class Blackboard:
    """
    Mutable shared mission state.

    Only the orchestrator writes to it: once per dispatched message through
    merge(), through set_field() for manual overrides, and mark_failed() when
    a stage raises. Everything here is dropped when the next mission starts.
    """

    def __init__(
        self,
        mission_id: Optional[str] = None,
        mission_inputs: Optional[MissionInputs] = None,
    ):
        self.mission_id = mission_id
        self._values: dict[BlackboardField, Any] = {f: None for f in BlackboardField}
        self._commit_counts: dict[BlackboardField, int] = {f: 0 for f in BlackboardField}
        self._failed_stages: set[str] = set()
        self.updated_at: Optional[datetime] = None
        if mission_inputs is not None:
            self.set_field(BlackboardField.MISSION_INPUTS, mission_inputs)

    def get(self, blackboard_field: BlackboardField) -> Any:
        return self._values[blackboard_field]

    def has(self, blackboard_field: BlackboardField) -> bool:
        """True when the field holds a non-empty value."""
        return not _is_empty(self._values[blackboard_field])

    def missing(self, *blackboard_fields: BlackboardField) -> list[BlackboardField]:
        return [f for f in blackboard_fields if not self.has(f)]

    def merge(self, payload: 'Payload') -> list[BlackboardField]:
        """
        Commit every field present in the payload (whole-value replacement).

        Returns:
            Fields that were written
        """
        written = []
        for blackboard_field, value in payload.items():
            self.set_field(blackboard_field, value)
            written.append(blackboard_field)
        return written

    def set_field(self, blackboard_field: BlackboardField, value: Any) -> None:
        """Overwrite one field after checking its type."""
        check_field_value(blackboard_field, value)
        self._values[blackboard_field] = value
        self._commit_counts[blackboard_field] += 1
        self.updated_at = datetime.now(timezone.utc)
        logger.debug(f"Blackboard[{self.mission_id}] committed {blackboard_field.value}")

    def mark_failed(self, agent_id: str) -> None:
        """Record that a stage failed in this mission; the cascade will not rerun it."""
        self._failed_stages.add(agent_id)

    def has_failed(self, agent_id: str) -> bool:
        return agent_id in self._failed_stages

    @property
    def failed_stages(self) -> frozenset[str]:
        return frozenset(self._failed_stages)

    def commit_count(self, blackboard_field: BlackboardField) -> int:
        """Number of times a field has been written this mission."""
        return self._commit_counts[blackboard_field]

    def snapshot(self) -> BlackboardSnapshot:
        """Deep-copied immutable snapshot."""
        values = {f.value: copy.deepcopy(v) for f, v in self._values.items()}
        return BlackboardSnapshot(
            mission_id=self.mission_id,
            updated_at=self.updated_at,
            **values,
        )


class BlackboardView:
    """
    Read-only window onto the orchestrator's current blackboard.

    Every read resolves the live instance, so a view held across an
    inference call observes commits and mission resets made meanwhile.
    """

    def __init__(self, source: Callable[[], Blackboard]):
        self._source = source

    @property
    def mission_id(self) -> Optional[str]:
        return self._source().mission_id

    def get(self, blackboard_field: BlackboardField) -> Any:
        return self._source().get(blackboard_field)

    def has(self, blackboard_field: BlackboardField) -> bool:
        return self._source().has(blackboard_field)

    def missing(self, *blackboard_fields: BlackboardField) -> list[BlackboardField]:
        return self._source().missing(*blackboard_fields)

    def has_failed(self, agent_id: str) -> bool:
        return self._source().has_failed(agent_id)

    def snapshot(self) -> BlackboardSnapshot:
        return self._source().snapshot()

    @property
    def mission_inputs(self) -> Optional[MissionInputs]:
        return self.get(BlackboardField.MISSION_INPUTS)

    @property
    def risk_result(self) -> Optional[RiskAnalysisResult]:
        return self.get(BlackboardField.RISK_RESULT)

    @property
    def market_context(self) -> Optional[str]:
        return self.get(BlackboardField.MARKET_CONTEXT)

    @property
    def portfolios(self) -> Optional[list[PortfolioRecommendation]]:
        return self.get(BlackboardField.PORTFOLIOS)

    @property
    def simulation(self) -> Optional[list[SimulationPoint]]:
        return self.get(BlackboardField.SIMULATION)

    @property
    def report(self) -> Optional[str]:
        return self.get(BlackboardField.REPORT)
