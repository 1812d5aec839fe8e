"""
Orchestration module - Shared mission state and the reactive cascade.

Components:
- Blackboard: Shared mission state, committed field by field
- MessageLog: Append-only record of every dispatched message
- Orchestrator: Fans each message out to all agents
- MissionController: Starts missions and applies manual overrides
"""

from .blackboard import (
    ASSET_CATEGORIES,
    Blackboard,
    BlackboardField,
    BlackboardSnapshot,
    BlackboardView,
    MarketPreference,
    MissionInputs,
    PortfolioAsset,
    PortfolioRecommendation,
    RiskAnalysisResult,
    RiskLevel,
    SimulationPoint,
    parse_field_value,
)
from .message_bus import (
    BROADCAST,
    SYSTEM_SENDER,
    Message,
    MessageKind,
    MessageLog,
    Payload,
    create_message,
)
from .orchestrator import (
    AgentState,
    MissionState,
    OrchestrationFault,
    Orchestrator,
)
from .mission import MissionController

__all__ = [
    'ASSET_CATEGORIES',
    'Blackboard',
    'BlackboardField',
    'BlackboardSnapshot',
    'BlackboardView',
    'MarketPreference',
    'MissionInputs',
    'PortfolioAsset',
    'PortfolioRecommendation',
    'RiskAnalysisResult',
    'RiskLevel',
    'SimulationPoint',
    'parse_field_value',
    'BROADCAST',
    'SYSTEM_SENDER',
    'Message',
    'MessageKind',
    'MessageLog',
    'Payload',
    'create_message',
    'AgentState',
    'MissionState',
    'OrchestrationFault',
    'Orchestrator',
    'MissionController',
]
