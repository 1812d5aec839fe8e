"""
Education Tutor - Explains financial concepts on demand.

Not part of the mission cascade. The tutor reads a blackboard snapshot so its
answers can refer to the investor's own risk profile and portfolios.
"""

import json
import logging
from typing import Optional, TYPE_CHECKING

from ..llm.inference import TaskSpec
from ..orchestration.blackboard import BlackboardSnapshot, serialize_value

if TYPE_CHECKING:
    from ..llm.inference import InferenceService
    from ..llm.prompt_builder import PromptBuilder

logger = logging.getLogger(__name__)

TUTOR_AGENT_NAME = "education"
TUTOR_SYSTEM_PROMPT = (
    "You are a helpful Investment Tutor. Explain financial concepts simply, "
    "as if to a beginner (ELI5). Use the investor's context when it helps."
)


class EducationTutor:
    """Answers free-form questions with the current mission as context."""

    def __init__(
        self,
        inference: 'InferenceService',
        prompt_builder: Optional['PromptBuilder'] = None,
        config: Optional[dict] = None,
    ):
        self.inference = inference
        self.prompt_builder = prompt_builder
        self.config = config or {}
        self._total_questions = 0

    def build_context(self, snapshot: Optional[BlackboardSnapshot]) -> dict:
        """Pick the parts of the blackboard worth showing the tutor."""
        if snapshot is None:
            return {}
        context = {}
        if snapshot.risk_result is not None:
            context["Risk Profile"] = serialize_value(snapshot.risk_result)
        if snapshot.portfolios:
            context["Recommended Portfolio"] = serialize_value(snapshot.portfolios[0])
        if snapshot.market_context:
            context["Market Context"] = snapshot.market_context
        return context

    async def explain(self, query: str, snapshot: Optional[BlackboardSnapshot] = None) -> str:
        """
        Explain a concept.

        Raises:
            ValueError: If the query is blank
            InferenceError: If the model call fails
        """
        if not query or not query.strip():
            raise ValueError("Query must not be empty")
        self._total_questions += 1

        context = self.build_context(snapshot)
        if self.prompt_builder is not None and TUTOR_AGENT_NAME in self.prompt_builder.config.get('agents', {}):
            prompt = self.prompt_builder.build_prompt(TUTOR_AGENT_NAME, context, query=query)
            system_prompt, user_message = prompt.system_prompt, prompt.user_message
        else:
            system_prompt = TUTOR_SYSTEM_PROMPT
            parts = [f"User Query: \"{query.strip()}\""]
            if context:
                parts.append(f"Context: {json.dumps(context, ensure_ascii=False, default=str)}")
            user_message = "\n".join(parts)

        result = await self.inference.invoke(TaskSpec(
            name=TUTOR_AGENT_NAME,
            system_prompt=system_prompt,
            user_message=user_message,
            expect_json=False,
            model=self.config.get('model'),
            temperature=self.config.get('temperature'),
            max_tokens=self.config.get('max_tokens'),
        ))
        logger.debug(f"Tutor answered in {result.latency_ms}ms")
        return result.text.strip()

    def get_stats(self) -> dict:
        return {"total_questions": self._total_questions}
