"""
Inference Service - The narrow boundary stage agents use to reach a model.

A stage describes one call as a TaskSpec; the service sends it through the
configured provider client (with the client's rate limiting and retries) and
returns a StageResult holding either the parsed JSON object or the raw text.

Failures are reported as:
- InferenceError: transport, quota or provider failure
- MalformedResult: the provider answered but the output is unusable
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from .clients.base import BaseLLMClient, validate_json_schema

logger = logging.getLogger(__name__)


class InferenceError(Exception):
    """The inference collaborator failed to produce a response."""

    def __init__(self, message: str, task_name: str = ""):
        super().__init__(message)
        self.task_name = task_name


class MalformedResult(InferenceError):
    """The response could not be parsed or lacks required fields."""


@dataclass
class TaskSpec:
    """One inference request, as built by a stage agent."""
    name: str
    system_prompt: str
    user_message: str
    expect_json: bool = True
    required_fields: list[str] = field(default_factory=list)
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


@dataclass
class StageResult:
    """Outcome of a successful inference call."""
    task_name: str
    data: Optional[dict] = None
    text: str = ""
    tokens_used: int = 0
    latency_ms: int = 0
    model: str = ""

    def to_dict(self) -> dict:
        return {
            'task_name': self.task_name,
            'data': self.data,
            'text': self.text,
            'tokens_used': self.tokens_used,
            'latency_ms': self.latency_ms,
            'model': self.model,
        }


class InferenceService:
    """
    Invokes a provider client on behalf of stage agents.

    Per-task model, temperature and max_tokens come from the TaskSpec first,
    then from config['tasks'][name], then from config defaults.
    """

    def __init__(self, client: BaseLLMClient, config: Optional[dict] = None):
        """
        Initialize the service.

        Args:
            client: Provider client
            config: Dict with optional 'model', 'temperature', 'max_tokens'
                and a 'tasks' mapping of per-task overrides
        """
        self.client = client
        self.config = config or {}
        self._total_invocations = 0
        self._total_failures = 0
        self._total_tokens = 0
        self._total_latency_ms = 0

    def _task_setting(self, task: TaskSpec, key: str, default: Any) -> Any:
        explicit = getattr(task, key)
        if explicit is not None:
            return explicit
        task_config = self.config.get('tasks', {}).get(task.name) or {}
        if task_config.get(key) is not None:
            return task_config[key]
        return self.config.get(key, default)

    async def invoke(self, task: TaskSpec) -> StageResult:
        """
        Run one task.

        Raises:
            InferenceError: The client failed after its retries
            MalformedResult: JSON expected but unparseable or incomplete,
                or a text task returned nothing
        """
        model = self._task_setting(task, 'model', None)
        temperature = self._task_setting(task, 'temperature', 0.3)
        max_tokens = self._task_setting(task, 'max_tokens', 2048)

        self._total_invocations += 1
        start_time = time.perf_counter()

        try:
            response = await self.client.generate_with_retry(
                model=model,
                system_prompt=task.system_prompt,
                user_message=task.user_message,
                temperature=temperature,
                max_tokens=max_tokens,
                parse_json=task.expect_json,
            )
        except Exception as e:
            self._total_failures += 1
            logger.error(f"Inference failed for task {task.name}: {e}")
            raise InferenceError(f"{task.name}: {e}", task_name=task.name) from e

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        self._total_tokens += response.tokens_used
        self._total_latency_ms += latency_ms

        if task.expect_json:
            if response.parsed_json is None:
                self._total_failures += 1
                raise MalformedResult(
                    f"{task.name}: {response.parse_error or 'no JSON object in response'}",
                    task_name=task.name,
                )
            is_valid, errors = validate_json_schema(response.parsed_json, task.required_fields)
            if not is_valid:
                self._total_failures += 1
                raise MalformedResult(f"{task.name}: {'; '.join(errors)}", task_name=task.name)
        elif not response.text or not response.text.strip():
            self._total_failures += 1
            raise MalformedResult(f"{task.name}: empty response", task_name=task.name)

        logger.debug(
            f"Task {task.name} completed: model={response.model}, "
            f"tokens={response.tokens_used}, latency={latency_ms}ms"
        )

        return StageResult(
            task_name=task.name,
            data=response.parsed_json if task.expect_json else None,
            text=response.text,
            tokens_used=response.tokens_used,
            latency_ms=latency_ms,
            model=response.model,
        )

    def get_stats(self) -> dict:
        """Get service statistics."""
        return {
            "provider": self.client.provider_name,
            "total_invocations": self._total_invocations,
            "total_failures": self._total_failures,
            "total_tokens": self._total_tokens,
            "average_latency_ms": (
                self._total_latency_ms / self._total_invocations
                if self._total_invocations > 0 else 0
            ),
            "client": self.client.get_stats(),
        }
