"""
Risk Profile Agent - Scores the investor's risk tolerance.

Reacts as soon as mission inputs are on the blackboard. Sends the
questionnaire answers (with question and option text when a questionnaire is
configured) and expects a JSON risk profile:

    {"score": 0-100, "level": "Conservative|Moderate|Growth|Aggressive",
     "explanation": "...", "contradictions": [...], "warning": "..."}
"""

import logging
from typing import Optional, TYPE_CHECKING

from .base_agent import BaseAgent
from ..orchestration.blackboard import BlackboardField, BlackboardView, RiskAnalysisResult

if TYPE_CHECKING:
    from ..llm.inference import InferenceService
    from ..llm.prompt_builder import PromptBuilder

logger = logging.getLogger(__name__)

RISK_REQUIRED_FIELDS = ['score', 'level', 'explanation']


class RiskProfileAgent(BaseAgent):
    """Turns questionnaire answers into a RiskAnalysisResult."""

    agent_id = "risk_profile"
    display_name = "Risk"
    output_field = BlackboardField.RISK_RESULT
    requires = (BlackboardField.MISSION_INPUTS,)

    def __init__(
        self,
        inference: 'InferenceService',
        prompt_builder: 'PromptBuilder',
        config: Optional[dict] = None,
        questionnaire: Optional[dict] = None,
    ):
        super().__init__(inference, prompt_builder, config)
        self.questionnaire = questionnaire or {}

    def format_answers(self, answers: dict[str, str]) -> list[dict]:
        """Pair each answer with its question and option text when known."""
        questions = {q.get('id'): q for q in self.questionnaire.get('questions', [])}
        formatted = []
        for question_id, value in answers.items():
            question = questions.get(question_id)
            if question is None:
                formatted.append({'question': question_id, 'answer': value})
                continue
            labels = {o.get('value'): o.get('label') for o in question.get('options', [])}
            formatted.append({
                'question': question.get('text', question_id),
                'answer': labels.get(value, value),
            })
        return formatted

    async def run(self, blackboard: BlackboardView) -> RiskAnalysisResult:
        inputs = blackboard.mission_inputs
        result = await self._invoke(
            {"Questionnaire Answers": self.format_answers(inputs.answers)},
            required_fields=RISK_REQUIRED_FIELDS,
        )
        try:
            risk = RiskAnalysisResult.from_dict(result.data)
        except ValueError as e:
            raise self._malformed(e)

        if risk.contradictions:
            logger.info(f"Risk profile found {len(risk.contradictions)} contradiction(s)")
        return risk

    def summarize(self, value: RiskAnalysisResult) -> str:
        return f"Risk profile complete: {value.level.value} ({value.score:.0f}/100)"
