"""
Prompt assembly for the advisory stages and the education tutor.

A prompt is a system prompt (the stage persona, read from a Markdown
template or given inline in prompts.yaml) plus a user message made of
titled context sections followed by the task. Prompts that exceed the
stage's token budget have their user message cut down to fit.
"""

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[3]

# Conservative for JSON-heavy text
CHARS_PER_TOKEN = 3.5
TOKEN_SAFETY_MARGIN = 1.10

TRUNCATION_MARKER = "\n... [truncated]"

DEFAULT_QUERIES = {
    'risk_profile': (
        "Analyze the questionnaire answers. Produce a risk score from 0 to 100, "
        "a risk level, a short explanation and any contradictions between answers."
    ),
    'market_context': (
        "Summarize current market conditions for the focus markets: index levels, "
        "volatility, the top headlines and overall sentiment."
    ),
    'portfolio_design': (
        "Design a recommended and an alternative portfolio that fit the risk profile "
        "and current market context."
    ),
    'simulation': (
        "Project the recommended portfolio's value year by year under optimistic, "
        "expected and pessimistic scenarios."
    ),
    'report': "Write the final advisory report in Markdown.",
}
FALLBACK_QUERY = "Analyze the provided data and share your assessment."

# Words a stage template should mention; a third may be missing
REQUIRED_CONCEPTS = {
    'risk_profile': ('risk', 'score', 'level', 'contradiction'),
    'market_context': ('market', 'index', 'sentiment'),
    'portfolio_design': ('portfolio', 'allocation', 'ticker', 'category'),
    'simulation': ('year', 'optimistic', 'pessimistic'),
    'report': ('summary', 'risk', 'portfolio', 'next steps'),
}

_PERSONA = re.compile(r'you\s+are|your\s+role|as\s+an?\b', re.IGNORECASE)
_OUTPUT_SHAPE = re.compile(r'output\s+format|json|markdown|return|respond\s+with|provide', re.IGNORECASE)


def estimate_tokens(text: str) -> int:
    """Rough token count: ~3.5 characters per token plus 10%."""
    if not text:
        return 0
    return int(len(text) / CHARS_PER_TOKEN * TOKEN_SAFETY_MARGIN)


def truncate_to_budget(content: str, max_tokens: int) -> str:
    """Cut content so that estimate_tokens() of the result stays within max_tokens."""
    if max_tokens <= 0:
        return ""
    limit = int(max_tokens * CHARS_PER_TOKEN / TOKEN_SAFETY_MARGIN)
    if len(content) <= limit:
        return content
    return content[:max(0, limit - 20)] + TRUNCATION_MARKER


def template_problems(agent_name: str, content: str) -> list[str]:
    """Reasons a template is weak; empty when it looks usable."""
    problems = []
    if len(content) < 50:
        problems.append("Template is too short (< 50 characters)")
    if not _PERSONA.search(content):
        problems.append("Template missing role/persona definition")
    if not _OUTPUT_SHAPE.search(content):
        problems.append("Template missing output format specification")

    concepts = REQUIRED_CONCEPTS.get(agent_name, ())
    lowered = content.lower()
    missing = [word for word in concepts if word not in lowered]
    if len(missing) > len(concepts) // 3:
        problems.append(f"Template missing key concepts: {missing}")
    return problems


def format_section(content: Any) -> str:
    if isinstance(content, str):
        return content
    return json.dumps(content, indent=2, ensure_ascii=False, default=str)


@dataclass
class AssembledPrompt:
    """Complete prompt ready for the inference service."""
    system_prompt: str
    user_message: str
    estimated_tokens: int
    agent_name: str
    budget: str


class PromptBuilder:
    """
    Builds prompts from a prompts.yaml mapping.

    Expected keys: agents (name -> template/system_prompt/query/budget),
    token_budgets (name -> total/buffer) and an optional templates_dir.
    """

    def __init__(self, config: dict):
        self.config = config
        self._templates: dict[str, str] = {}
        self._load_templates()

    @property
    def _agents(self) -> dict:
        return self.config.get('agents') or {}

    def build_prompt(
        self,
        agent_name: str,
        context: Optional[dict[str, Any]] = None,
        query: Optional[str] = None,
    ) -> AssembledPrompt:
        """
        Assemble the prompt for agent_name.

        Args:
            agent_name: Key under agents in prompts.yaml
            context: Section title -> content, in output order. None values
                are skipped; non-strings are rendered as indented JSON
            query: Task text; defaults to get_default_query()

        Raises:
            ValueError: agent_name is not configured
        """
        if agent_name not in self._agents:
            raise ValueError(f"Unknown agent: {agent_name}")
        agent_config = self._agents[agent_name] or {}

        system_prompt = self._templates.get(agent_name) or agent_config.get('system_prompt')
        if not system_prompt:
            logger.warning(f"No template found for agent {agent_name}, using minimal prompt")
            system_prompt = (
                f"You are the {agent_name} agent. Analyze the data and provide structured output."
            )

        sections = [
            f"## {title}\n{format_section(content)}"
            for title, content in (context or {}).items()
            if content is not None
        ]
        sections.append(f"## Task\n{query or self.get_default_query(agent_name)}")
        user_message = "\n\n".join(sections)

        budget_name = agent_config.get('budget', 'default')
        budget = (self.config.get('token_budgets') or {}).get(budget_name) or {}
        ceiling = budget.get('total', 8192) - budget.get('buffer', 2000)

        tokens = estimate_tokens(system_prompt + user_message)
        if tokens > ceiling:
            user_message = truncate_to_budget(user_message, ceiling - estimate_tokens(system_prompt))
            before, tokens = tokens, estimate_tokens(system_prompt + user_message)
            logger.warning(
                f"Prompt truncated for {agent_name}: {before} -> {tokens} tokens (budget: {ceiling})"
            )

        return AssembledPrompt(
            system_prompt=system_prompt,
            user_message=user_message,
            estimated_tokens=tokens,
            agent_name=agent_name,
            budget=budget_name,
        )

    def estimate_tokens(self, text: str) -> int:
        return estimate_tokens(text)

    def truncate_to_budget(self, content: str, max_tokens: int) -> str:
        return truncate_to_budget(content, max_tokens)

    def get_default_query(self, agent_name: str) -> str:
        """Configured query for the agent, else the built-in one."""
        configured = (self._agents.get(agent_name) or {}).get('query')
        return configured or DEFAULT_QUERIES.get(agent_name, FALLBACK_QUERY)

    def has_template(self, agent_name: str) -> bool:
        return agent_name in self._templates

    def _templates_dir(self) -> Optional[Path]:
        configured = self.config.get('templates_dir')
        if not configured:
            return None
        path = Path(configured)
        if path.is_absolute() or path.exists():
            return path
        return PROJECT_ROOT / path

    def _load_templates(self) -> None:
        """Read each agent's template file; weak templates are kept with a warning."""
        directory = self._templates_dir()
        if directory is None:
            logger.debug("No templates_dir configured, using inline system prompts")
            return
        if not directory.exists():
            logger.warning(f"Templates directory not found: {directory}")
            return

        for agent_name, agent_config in self._agents.items():
            filename = (agent_config or {}).get('template')
            if not filename:
                continue
            path = directory / filename
            if not path.exists():
                logger.warning(f"Template file not found: {path}")
                continue
            content = path.read_text(encoding='utf-8')
            problems = template_problems(agent_name, content)
            if problems:
                logger.warning(f"Template validation failed for {agent_name}: {problems}")
            self._templates[agent_name] = content
            logger.debug(f"Loaded template for {agent_name}")

    def _validate_template(self, agent_name: str, content: str) -> dict:
        problems = template_problems(agent_name, content)
        return {'valid': not problems, 'errors': problems}

    def validate_all_templates(self) -> dict[str, dict]:
        """Validation result per loaded template."""
        return {
            name: self._validate_template(name, content)
            for name, content in self._templates.items()
        }
