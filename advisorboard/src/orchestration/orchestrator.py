"""
Orchestrator - Reactive scheduler for the advisory stage agents.

There is no fixed caller sequence. Every dispatched message is logged,
committed to the blackboard, then offered to every registered agent at once.
Each agent decides for itself whether to react; whatever it returns is
dispatched the same way before its reaction counts as settled. The cascade
ends when a wave produces no reactions or a completion message arrives.

Guarantees:
- Log order is dispatch order (pre-order of the reaction tree)
- One failing agent never stops its siblings; it becomes an AGENT_FAILURE
- Messages from a previous mission are discarded, never committed
- Runaway recursion faults the mission instead of looping
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Optional, Sequence, TYPE_CHECKING

from .blackboard import (
    Blackboard,
    BlackboardField,
    BlackboardSnapshot,
    BlackboardView,
    MissionInputs,
)
from .message_bus import (
    Message,
    MessageKind,
    MessageLog,
    SYSTEM_SENDER,
    create_message,
)

if TYPE_CHECKING:
    from ..agents.base_agent import BaseAgent

logger = logging.getLogger(__name__)

DEFAULT_MAX_CASCADE_DEPTH = 32


class OrchestrationFault(Exception):
    """An orchestration invariant was violated and the cascade was aborted."""


class MissionState(Enum):
    """Lifecycle of the current mission."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    STALLED = "stalled"
    FAULTED = "faulted"


class AgentState(Enum):
    """Per-agent status for the presentation layer."""
    IDLE = "idle"
    WORKING = "working"
    COMPLETED = "completed"
    ERROR = "error"


class Orchestrator:
    """
    Owns the blackboard and message log and runs the dispatch cascade.

    Agents are injected as an explicit ordered registry. The orchestrator is
    the only writer of the blackboard; agents read it through a
    BlackboardView that always resolves the live instance.
    """

    def __init__(self, agents: Sequence['BaseAgent'], config: Optional[dict] = None):
        """
        Initialize the orchestrator.

        Args:
            agents: Ordered agent registry
            config: Orchestration configuration (orchestration.yaml)

        Raises:
            ValueError: If two agents share an id
        """
        self.config = config or {}
        self._agents = list(agents)

        ids = [agent.agent_id for agent in self._agents]
        duplicates = sorted({agent_id for agent_id in ids if ids.count(agent_id) > 1})
        if duplicates:
            raise ValueError(f"Duplicate agent ids: {duplicates}")

        self._max_depth = int(self.config.get('max_cascade_depth', DEFAULT_MAX_CASCADE_DEPTH))

        self._blackboard = Blackboard()
        self._log = MessageLog()
        self._view = BlackboardView(lambda: self._blackboard)
        self._state = MissionState.IDLE
        self._agent_states: dict[str, AgentState] = {a.agent_id: AgentState.IDLE for a in self._agents}
        self._active_agent: Optional[str] = None
        self._last_error: Optional[str] = None

        # Statistics
        self._total_dispatched = 0
        self._total_discarded = 0
        self._total_failures = 0
        self._total_missions = 0

    @property
    def agents(self) -> list['BaseAgent']:
        return list(self._agents)

    @property
    def state(self) -> MissionState:
        return self._state

    @property
    def mission_id(self) -> Optional[str]:
        return self._blackboard.mission_id

    @property
    def view(self) -> BlackboardView:
        return self._view

    def get_agent(self, agent_id: str) -> Optional['BaseAgent']:
        for agent in self._agents:
            if agent.agent_id == agent_id:
                return agent
        return None

    def reset(self, mission_id: str, inputs: MissionInputs) -> None:
        """Replace the blackboard and clear the log for a new mission."""
        self._blackboard = Blackboard(mission_id=mission_id, mission_inputs=inputs)
        cleared = self._log.clear()
        self._agent_states = {a.agent_id: AgentState.IDLE for a in self._agents}
        self._active_agent = None
        self._last_error = None
        self._state = MissionState.RUNNING
        self._total_missions += 1
        logger.info(f"Mission {mission_id} reset (cleared {cleared} log entries)")

    def mark_stalled(self, mission_id: str) -> bool:
        """Mark the mission stalled if it is still the current, running one."""
        if mission_id == self.mission_id and self._state == MissionState.RUNNING:
            self._state = MissionState.STALLED
            self._active_agent = None
            missing = self._blackboard.missing(*BlackboardField)
            logger.warning(
                f"Mission {mission_id} stalled, missing fields: "
                f"{[f.value for f in missing]}"
            )
            return True
        return False

    async def dispatch(self, message: Message, _depth: int = 0) -> None:
        """
        Dispatch one message and everything it triggers.

        Returns once every agent reaction and its sub-cascade has settled.

        Raises:
            OrchestrationFault: If the cascade exceeds the depth ceiling
        """
        if message.mission_id != self._blackboard.mission_id:
            self._total_discarded += 1
            logger.warning(
                f"Discarding stale message {message.id[:8]} from {message.sender} "
                f"(mission {message.mission_id}, current {self._blackboard.mission_id})"
            )
            return

        if self._state == MissionState.FAULTED:
            self._total_discarded += 1
            logger.warning(f"Mission faulted, dropping message from {message.sender}")
            return

        if _depth > self._max_depth:
            self._fault(message, _depth)

        self._log.append(message)
        self._total_dispatched += 1

        if message.payload is not None:
            written = self._blackboard.merge(message.payload)
            logger.info(
                f"{message.sender} committed {', '.join(f.value for f in written)}: {message.summary}"
            )

        if message.sender in self._agent_states and message.kind != MessageKind.AGENT_FAILURE:
            self._agent_states[message.sender] = AgentState.COMPLETED

        if message.kind == MessageKind.MISSION_COMPLETE:
            self._state = MissionState.COMPLETED
            self._active_agent = None
            logger.info(f"Mission {message.mission_id} completed")
            return

        results = await asyncio.gather(
            *(self._react(agent, message, _depth) for agent in self._agents),
            return_exceptions=True,
        )

        for result in results:
            if isinstance(result, OrchestrationFault):
                raise result
            if isinstance(result, BaseException):
                logger.error(f"Unexpected error during fan-out: {result}", exc_info=result)

    async def _react(self, agent: 'BaseAgent', message: Message, depth: int) -> None:
        """Offer one message to one agent and dispatch its reply."""
        current = message.mission_id == self.mission_id
        previous = self._agent_states.get(agent.agent_id, AgentState.IDLE)
        if current:
            self._agent_states[agent.agent_id] = AgentState.WORKING

        try:
            reply = await agent.evaluate(message, self._view)
        except Exception as e:
            if message.mission_id != self.mission_id:
                self._total_discarded += 1
                logger.warning(
                    f"Discarding failure of {agent.display_name} from replaced mission "
                    f"{message.mission_id}: {e}"
                )
                return
            self._total_failures += 1
            self._last_error = f"{agent.agent_id}: {e}"
            self._agent_states[agent.agent_id] = AgentState.ERROR
            self._blackboard.mark_failed(agent.agent_id)
            logger.error(f"Agent {agent.display_name} failed: {e}", exc_info=True)
            failure = create_message(
                kind=MessageKind.AGENT_FAILURE,
                sender=agent.agent_id,
                summary=f"{agent.display_name} failed: {e}",
                mission_id=message.mission_id,
            )
            await self.dispatch(failure, depth + 1)
            return

        if reply is None:
            if current and message.mission_id == self.mission_id \
                    and self._agent_states.get(agent.agent_id) == AgentState.WORKING:
                self._agent_states[agent.agent_id] = previous
            return

        if reply.mission_id == self.mission_id:
            self._active_agent = agent.agent_id
        await self.dispatch(reply, depth + 1)

    def _fault(self, message: Message, depth: int) -> None:
        reason = (
            f"Cascade depth {depth} exceeded limit {self._max_depth} "
            f"at message from {message.sender}"
        )
        self._log.append(create_message(
            kind=MessageKind.AGENT_FAILURE,
            sender=SYSTEM_SENDER,
            summary=reason,
            mission_id=message.mission_id,
        ))
        self._state = MissionState.FAULTED
        self._last_error = reason
        self._active_agent = None
        logger.error(reason)
        raise OrchestrationFault(reason)

    def force_set_field(self, blackboard_field: BlackboardField, value: Any) -> None:
        """
        Commit a value directly, bypassing agent guards and the cascade.

        Raises:
            TypeError: If the value does not match the field's type
        """
        self._blackboard.set_field(blackboard_field, value)
        logger.info(f"Manual override of {blackboard_field.value} on mission {self.mission_id}")

    def mark_stage_completed(self, agent_id: str) -> None:
        """Show a manually rerun stage as completed."""
        if agent_id in self._agent_states:
            self._agent_states[agent_id] = AgentState.COMPLETED

    def current_blackboard(self) -> BlackboardSnapshot:
        """Immutable copy of the current blackboard."""
        return self._blackboard.snapshot()

    def message_log(self) -> list[Message]:
        """Ordered copy of the message log."""
        return self._log.entries()

    def get_history(
        self,
        kind: Optional[MessageKind] = None,
        sender: Optional[str] = None,
        limit: int = 100,
    ) -> list[Message]:
        return self._log.get_history(kind=kind, sender=sender, limit=limit)

    def active_agent(self) -> Optional[str]:
        """Id of the agent that most recently produced a message."""
        return self._active_agent

    def agent_states(self) -> dict[str, AgentState]:
        return dict(self._agent_states)

    def get_status(self) -> dict:
        """Get orchestrator status."""
        return {
            "state": self._state.value,
            "mission_id": self.mission_id,
            "active_agent": self._active_agent,
            "last_error": self._last_error,
            "agents": [
                {
                    "agent_id": agent.agent_id,
                    "display_name": agent.display_name,
                    "state": self._agent_states[agent.agent_id].value,
                }
                for agent in self._agents
            ],
            "blackboard": {
                f.value: self._blackboard.has(f) for f in BlackboardField
            },
            "statistics": {
                "total_missions": self._total_missions,
                "total_dispatched": self._total_dispatched,
                "total_discarded": self._total_discarded,
                "total_failures": self._total_failures,
                "log": self._log.get_stats(),
            },
        }
