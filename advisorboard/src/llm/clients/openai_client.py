"""
OpenAI Client - GPT models via the chat completions API.
"""

import logging
import time

from .base import BaseLLMClient, LLMResponse, ProviderError

logger = logging.getLogger(__name__)

OPENAI_REQUIRED_FIELDS = ['id', 'choices']


class OpenAIClient(BaseLLMClient):
    """
    OpenAI API client.

    JSON stages set `response_format: json_object`. The key comes from
    config or OPENAI_API_KEY.
    """

    provider_name = "openai"
    label = "OpenAI"

    DEFAULT_BASE_URL = 'https://api.openai.com/v1'
    DEFAULT_MODEL = 'gpt-4o-mini'
    API_KEY_ENV = ('OPENAI_API_KEY',)

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
            'messages': [
                {'role': 'system', 'content': system_prompt},
                {'role': 'user', 'content': user_message},
            ],
            'temperature': temperature,
            'max_tokens': max_tokens,
        }
        if json_output:
            payload['response_format'] = {'type': 'json_object'}

        data = await self._post_json(
            f"{self.base_url}/chat/completions",
            payload,
            self._get_headers(self.api_key, auth_type="bearer"),
        )

        missing = [name for name in OPENAI_REQUIRED_FIELDS if name not in data]
        if missing or not data.get('choices'):
            raise ProviderError(f"OpenAI response missing expected fields: {missing or ['choices']}")

        choice = data['choices'][0]
        usage = data.get('usage') or {}
        return self._response(
            model,
            (choice.get('message') or {}).get('content') or '',
            input_tokens=usage.get('prompt_tokens', 0),
            output_tokens=usage.get('completion_tokens', 0),
            finish_reason=choice.get('finish_reason') or 'stop',
            started=started,
            data=data,
        )

    async def health_check(self) -> bool:
        if not self.api_key:
            return False
        return await self._probe(
            f"{self.base_url}/models", self._get_headers(self.api_key, auth_type="bearer")
        )
