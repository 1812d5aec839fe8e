"""
Mission Controller - Starts missions and exposes manual overrides.

A mission is one run of the advisory cascade for one set of questionnaire
answers. Starting a mission bumps the mission generation, so results still
in flight from an earlier mission are discarded when they arrive.
"""

import asyncio
import logging
import uuid
from typing import Any, Optional, Union

from .blackboard import BlackboardField, MissionInputs
from .message_bus import MessageKind, Payload, SYSTEM_SENDER, create_message
from .orchestrator import MissionState, OrchestrationFault, Orchestrator

logger = logging.getLogger(__name__)

MISSION_START_SUMMARY = "Mission Start: Analyze user risk and generate investment strategy."


class MissionController:
    """
    Entry point used by the presentation layer.

    Features:
    - Awaitable start_mission() and fire-and-forget launch()
    - Questionnaire answer checks against the configured question ids
    - Manual field override passthrough
    - On-demand stage rerun with overrides, committed without a cascade
    """

    def __init__(self, orchestrator: Orchestrator, questionnaire: Optional[dict] = None):
        """
        Initialize the controller.

        Args:
            orchestrator: Orchestrator that runs the cascade
            questionnaire: Questionnaire configuration (questionnaire.yaml)
        """
        self.orchestrator = orchestrator
        self.questionnaire = questionnaire or {}
        self._tasks: set[asyncio.Task] = set()
        self._total_started = 0
        self._total_reruns = 0

    @property
    def question_ids(self) -> set[str]:
        return {q.get('id') for q in self.questionnaire.get('questions', []) if q.get('id')}

    def _check_answers(self, inputs: MissionInputs) -> None:
        known = self.question_ids
        if known:
            unknown = sorted(set(inputs.answers) - known)
            if unknown:
                logger.warning(f"Answers for unknown questions: {unknown}")
            unanswered = sorted(known - set(inputs.answers))
            if unanswered:
                logger.warning(f"Unanswered questions: {unanswered}")

    async def start_mission(
        self,
        inputs: Union[MissionInputs, dict],
        mission_id: Optional[str] = None,
    ) -> str:
        """
        Reset state and run a mission cascade to completion.

        Args:
            inputs: MissionInputs or a dict with 'answers' and 'market'
            mission_id: Id for the new mission (generated if not provided)

        Returns:
            The new mission id

        Raises:
            ValueError: If the inputs are invalid
            OrchestrationFault: If the cascade is aborted
        """
        if not isinstance(inputs, MissionInputs):
            inputs = MissionInputs.from_dict(inputs)
        self._check_answers(inputs)
        mission_id = mission_id or str(uuid.uuid4())
        self._total_started += 1

        self.orchestrator.reset(mission_id, inputs)
        logger.info(
            f"Starting mission {mission_id} (market={inputs.market.value}, "
            f"answers={len(inputs.answers)})"
        )

        seed = create_message(
            kind=MessageKind.MISSION_START,
            sender=SYSTEM_SENDER,
            summary=MISSION_START_SUMMARY,
            payload=Payload.of(BlackboardField.MISSION_INPUTS, inputs),
            mission_id=mission_id,
        )
        await self.orchestrator.dispatch(seed)

        if self.orchestrator.mission_id == mission_id and self.orchestrator.state == MissionState.RUNNING:
            self.orchestrator.mark_stalled(mission_id)

        return mission_id

    def launch(self, inputs: Union[MissionInputs, dict]) -> str:
        """
        Start a mission in the background.

        Inputs are validated before the task is created, so invalid inputs
        raise ValueError here rather than inside the task.

        Returns:
            The id the mission will run under
        """
        if not isinstance(inputs, MissionInputs):
            inputs = MissionInputs.from_dict(inputs)
        mission_id = str(uuid.uuid4())
        task = asyncio.create_task(self.start_mission(inputs, mission_id=mission_id))
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return mission_id

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Mission task cancelled")
            return
        error = task.exception()
        if isinstance(error, OrchestrationFault):
            logger.error(f"Mission aborted: {error}")
        elif error is not None:
            logger.error(f"Mission task failed: {error}", exc_info=error)

    async def wait_idle(self) -> None:
        """Wait for every launched mission task to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def force_set_field(self, blackboard_field: Union[BlackboardField, str], value: Any) -> None:
        """
        Commit a value directly to the blackboard.

        Raises:
            ValueError: If the field name is unknown
            TypeError: If the value does not match the field's type
        """
        if not isinstance(blackboard_field, BlackboardField):
            blackboard_field = BlackboardField(blackboard_field)
        self.orchestrator.force_set_field(blackboard_field, value)

    async def rerun_stage(self, agent_id: str, **overrides) -> Optional[Any]:
        """
        Rerun one stage on the current mission and commit its output.

        Downstream stages are not triggered and keep their values. Overrides
        set to None are ignored.

        Args:
            agent_id: Stage to rerun
            **overrides: preferences (portfolio_design) or years (simulation)

        Returns:
            The committed value, or None if a new mission started meanwhile

        Raises:
            KeyError: If no stage has this id
            ValueError: No mission yet, an override the stage does not
                accept, or a required field is missing
            Exception: Any failure from the stage itself
        """
        agent = self.orchestrator.get_agent(agent_id)
        if agent is None:
            raise KeyError(f"Unknown stage: {agent_id}")
        mission_id = self.orchestrator.mission_id
        if mission_id is None:
            raise ValueError("No mission has been started")

        overrides = {name: value for name, value in overrides.items() if value is not None}
        value = await agent.rerun(self.orchestrator.view, **overrides)

        if self.orchestrator.mission_id != mission_id:
            logger.warning(f"Rerun of {agent_id} dropped, mission {mission_id} was replaced")
            return None
        self.force_set_field(agent.output_field, value)
        self.orchestrator.mark_stage_completed(agent_id)
        self._total_reruns += 1
        return value

    def get_stats(self) -> dict:
        return {
            "total_started": self._total_started,
            "total_reruns": self._total_reruns,
            "running_tasks": len(self._tasks),
        }
