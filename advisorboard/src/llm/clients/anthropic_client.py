"""
Anthropic Client - Claude models via the messages API.

The messages API has no JSON mode, so JSON stages get an instruction suffix
on the system prompt and rely on tolerant parsing downstream.
"""

import logging
import time

from .base import BaseLLMClient, LLMResponse, ProviderError

logger = logging.getLogger(__name__)

JSON_INSTRUCTION = "\n\nIMPORTANT: Respond ONLY with valid JSON, no markdown or explanation."


class AnthropicClient(BaseLLMClient):
    """Anthropic API client; key from config or ANTHROPIC_API_KEY."""

    provider_name = "anthropic"
    label = "Anthropic"

    DEFAULT_BASE_URL = 'https://api.anthropic.com/v1'
    DEFAULT_MODEL = 'claude-3-5-sonnet-20241022'
    API_KEY_ENV = ('ANTHROPIC_API_KEY',)

    def __init__(self, config: dict):
        super().__init__(config)
        self.api_version = config.get('api_version', '2023-06-01')

    def _headers(self) -> dict:
        headers = self._get_headers(self.api_key, auth_type="x-api-key")
        headers['anthropic-version'] = self.api_version
        return headers

    async def generate(
        self,
        model: str,
        system_prompt: str,
        user_message: str,
        temperature: float = 0.3,
        max_tokens: int = 2048,
        json_output: bool = False,
    ) -> LLMResponse:
        self._require_key()
        model = model or self.default_model
        started = time.perf_counter()

        payload = {
            'model': model,
            'system': system_prompt + JSON_INSTRUCTION if json_output else system_prompt,
            'messages': [{'role': 'user', 'content': user_message}],
            'temperature': temperature,
            'max_tokens': max_tokens,
        }

        data = await self._post_json(f"{self.base_url}/messages", payload, self._headers())

        blocks = data.get('content') or []
        if not blocks:
            logger.warning(
                f"Anthropic returned empty content for model {model}. "
                f"stop_reason: {data.get('stop_reason')}"
            )
        usage = data.get('usage') or {}
        return self._response(
            model,
            "".join(b.get('text', '') for b in blocks if b.get('type', 'text') == 'text'),
            input_tokens=usage.get('input_tokens', 0),
            output_tokens=usage.get('output_tokens', 0),
            finish_reason=data.get('stop_reason') or 'end_turn',
            started=started,
            data=data,
        )

    async def health_check(self) -> bool:
        """One-token request; there is no cheaper authenticated endpoint."""
        if not self.api_key:
            return False
        payload = {
            'model': self.default_model,
            'max_tokens': 1,
            'messages': [{'role': 'user', 'content': 'hi'}],
        }
        try:
            await self._post_json(f"{self.base_url}/messages", payload, self._headers())
            return True
        except ProviderError as e:
            logger.warning(f"Anthropic health check failed: {e}")
            return False
