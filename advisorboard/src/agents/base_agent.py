"""
Base Agent Class - Abstract interface for all advisory stage agents.

All stage agents inherit from BaseAgent and declare:
- agent_id / display_name: Identity in the message log
- requires: Blackboard fields that must be present before the stage runs
- output_field: The single field the stage owns
- emits: Kind of message produced on success

and implement:
- run(): Produce the output value from the blackboard
- summarize(): One-line log summary of that value

evaluate() is the only entry point the orchestrator uses. It is idempotent
against the committed blackboard. A stage declines to react while its inputs
are missing, once its output exists, while its own inference is pending, and
after it has failed in the current mission. Failure notices never trigger
work, so a failed stage stays failed until a new mission starts.

rerun() serves manual requests: it checks only that the inputs are present
and returns the value instead of emitting it.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, TYPE_CHECKING

from ..llm.inference import MalformedResult, StageResult, TaskSpec
from ..orchestration.blackboard import BlackboardField, BlackboardView
from ..orchestration.message_bus import Message, MessageKind, Payload, create_message

if TYPE_CHECKING:
    from ..llm.inference import InferenceService
    from ..llm.prompt_builder import PromptBuilder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GuardSkipped:
    """Why an agent declined to react to a message. Not an error."""
    agent_id: str
    reason: str


class BaseAgent(ABC):
    """
    Abstract base class for all stage agents.

    Agents hold no mission state of their own. Everything they know about a
    mission is read from the BlackboardView at the moment of reaction.

    Features:
    - Precondition and ownership guard
    - In-flight marker per mission id; the failure marker lives on the
      blackboard, set by the orchestrator, so it ends with the mission
    - Commit-time re-check before emitting
    - Performance counters
    """

    # Class attributes to be overridden by subclasses
    agent_id: str = "base"
    display_name: str = "Base"
    output_field: BlackboardField = BlackboardField.REPORT
    requires: tuple[BlackboardField, ...] = ()
    emits: MessageKind = MessageKind.DATA_AVAILABLE
    # Keyword arguments a manual rerun may pass through to run()
    accepted_overrides: tuple[str, ...] = ()

    def __init__(
        self,
        inference: 'InferenceService',
        prompt_builder: 'PromptBuilder',
        config: Optional[dict] = None,
    ):
        """
        Initialize agent.

        Args:
            inference: Inference service for model calls
            prompt_builder: Prompt builder for assembling prompts
            config: Stage configuration (model, temperature, max_tokens, ...)
        """
        self.inference = inference
        self.prompt_builder = prompt_builder
        self.config = config or {}

        self._in_flight: set[str] = set()

        # Performance tracking
        self._total_invocations = 0
        self._total_failures = 0
        self._total_skips = 0
        self._total_suppressed = 0
        self._total_latency_ms = 0
        self._total_tokens = 0

    def check_guard(self, message: Message, blackboard: BlackboardView) -> Optional[GuardSkipped]:
        """
        Decide whether this agent may react now.

        Returns:
            None if the agent should run, otherwise the reason it will not
        """
        mission_id = blackboard.mission_id
        if mission_id is None:
            return GuardSkipped(self.agent_id, "no active mission")
        if message.mission_id != mission_id:
            return GuardSkipped(self.agent_id, "trigger belongs to a previous mission")
        if message.kind == MessageKind.MISSION_COMPLETE:
            return GuardSkipped(self.agent_id, "mission already complete")
        if message.kind == MessageKind.AGENT_FAILURE:
            return GuardSkipped(self.agent_id, "failure notices trigger no work")
        missing = blackboard.missing(*self.requires)
        if missing:
            return GuardSkipped(
                self.agent_id,
                f"waiting for {', '.join(f.value for f in missing)}",
            )
        if blackboard.has(self.output_field):
            return GuardSkipped(self.agent_id, f"{self.output_field.value} already committed")
        if mission_id in self._in_flight:
            return GuardSkipped(self.agent_id, "already working on this mission")
        if blackboard.has_failed(self.agent_id):
            return GuardSkipped(self.agent_id, "failed earlier in this mission")
        return None

    def is_working(self, mission_id: Optional[str]) -> bool:
        return mission_id in self._in_flight

    async def evaluate(self, message: Message, blackboard: BlackboardView) -> Optional[Message]:
        """
        React to a dispatched message.

        Returns:
            A message carrying the committed output, or None when the agent
            declines or its result is no longer wanted

        Raises:
            Exception: Any failure from run(); the orchestrator converts it
                into an AGENT_FAILURE message
        """
        skipped = self.check_guard(message, blackboard)
        if skipped is not None:
            self._total_skips += 1
            logger.debug(f"{self.display_name} skipped {message.kind.value}: {skipped.reason}")
            return None

        mission_id = blackboard.mission_id
        self._in_flight.add(mission_id)
        self._total_invocations += 1
        logger.info(f"{self.display_name} agent activated by {message.sender}")

        start_time = time.perf_counter()
        try:
            value = await self.run(blackboard)
        except Exception:
            self._total_failures += 1
            raise
        finally:
            self._in_flight.discard(mission_id)
            self._total_latency_ms += int((time.perf_counter() - start_time) * 1000)

        # The world may have moved on while inference was pending
        if blackboard.mission_id != mission_id:
            self._total_suppressed += 1
            logger.info(f"{self.display_name} result dropped, mission {mission_id} was replaced")
            return None
        if blackboard.has(self.output_field):
            self._total_suppressed += 1
            logger.info(f"{self.display_name} result dropped, {self.output_field.value} already set")
            return None

        return create_message(
            kind=self.emits,
            sender=self.agent_id,
            summary=self.summarize(value),
            payload=Payload.of(self.output_field, value),
            mission_id=mission_id,
        )

    async def rerun(self, blackboard: BlackboardView, **overrides) -> Any:
        """
        Run this stage on demand, outside the cascade.

        The guard is bypassed except for missing inputs, and the result is
        returned rather than emitted; the caller decides whether to commit it.

        Raises:
            ValueError: No active mission, an override this stage does not
                accept, or a required field is missing
            Exception: Any failure from run()
        """
        unknown = sorted(set(overrides) - set(self.accepted_overrides))
        if unknown:
            raise ValueError(f"{self.display_name} does not accept overrides: {unknown}")
        if blackboard.mission_id is None:
            raise ValueError("No active mission")
        missing = blackboard.missing(*self.requires)
        if missing:
            raise ValueError(
                f"{self.display_name} is waiting for {', '.join(f.value for f in missing)}"
            )

        self._total_invocations += 1
        logger.info(f"{self.display_name} rerun requested (overrides: {sorted(overrides)})")
        start_time = time.perf_counter()
        try:
            return await self.run(blackboard, **overrides)
        except Exception:
            self._total_failures += 1
            raise
        finally:
            self._total_latency_ms += int((time.perf_counter() - start_time) * 1000)

    @abstractmethod
    async def run(self, blackboard: BlackboardView, **overrides) -> Any:
        """
        Produce this stage's output value.

        Args:
            blackboard: Live read-only view; requires are present
            **overrides: Only names listed in accepted_overrides, and only
                on a manual rerun

        Returns:
            A value of the output field's declared type
        """

    @abstractmethod
    def summarize(self, value: Any) -> str:
        """One-line, non-empty description of the output for the log."""

    async def _invoke(
        self,
        context: dict,
        expect_json: bool = True,
        required_fields: Optional[list[str]] = None,
        query: Optional[str] = None,
    ) -> StageResult:
        """Build this stage's prompt and run it through the inference service."""
        prompt = self.prompt_builder.build_prompt(self.agent_id, context, query=query)
        task = TaskSpec(
            name=self.agent_id,
            system_prompt=prompt.system_prompt,
            user_message=prompt.user_message,
            expect_json=expect_json,
            required_fields=list(required_fields or []),
            model=self.config.get('model'),
            temperature=self.config.get('temperature'),
            max_tokens=self.config.get('max_tokens'),
        )
        result = await self.inference.invoke(task)
        self._total_tokens += result.tokens_used
        return result

    def _malformed(self, error: Exception) -> MalformedResult:
        return MalformedResult(f"{self.agent_id}: {error}", task_name=self.agent_id)

    def get_stats(self) -> dict:
        """Get agent performance statistics."""
        return {
            "agent_id": self.agent_id,
            "total_invocations": self._total_invocations,
            "total_failures": self._total_failures,
            "total_skips": self._total_skips,
            "total_suppressed": self._total_suppressed,
            "total_latency_ms": self._total_latency_ms,
            "average_latency_ms": (
                self._total_latency_ms / self._total_invocations
                if self._total_invocations > 0 else 0
            ),
            "total_tokens": self._total_tokens,
        }
