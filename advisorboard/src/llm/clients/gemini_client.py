"""
Gemini Client - Google Gemini via the generateContent REST API.

Free-text requests can be grounded on Google Search, which the market stage
uses to pull current index levels and headlines. JSON requests set the
response MIME type instead; the two cannot be combined.
"""

import logging
import time

from .base import BaseLLMClient, LLMResponse, ProviderError

logger = logging.getLogger(__name__)


class GeminiClient(BaseLLMClient):
    """
    Google Gemini API client.

    Config keys: api_key (or GEMINI_API_KEY / API_KEY), default_model,
    timeout_seconds, search_grounding.
    """

    provider_name = "gemini"
    label = "Gemini"

    DEFAULT_BASE_URL = 'https://generativelanguage.googleapis.com/v1beta'
    DEFAULT_MODEL = 'gemini-2.5-flash'
    DEFAULT_TIMEOUT = 90
    API_KEY_ENV = ('GEMINI_API_KEY', 'API_KEY')

    def __init__(self, config: dict):
        super().__init__(config)
        self.search_grounding = bool(config.get('search_grounding', False))

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

        generation_config = {'temperature': temperature, 'maxOutputTokens': max_tokens}
        payload = {
            'systemInstruction': {'parts': [{'text': system_prompt}]},
            'contents': [{'role': 'user', 'parts': [{'text': user_message}]}],
            'generationConfig': generation_config,
        }
        if json_output:
            generation_config['responseMimeType'] = 'application/json'
        elif self.search_grounding:
            payload['tools'] = [{'google_search': {}}]

        data = await self._post_json(
            f"{self.base_url}/models/{model}:generateContent",
            payload,
            self._get_headers(self.api_key, auth_type="x-goog-api-key"),
        )

        candidates = data.get('candidates') or []
        if not candidates:
            reason = (data.get('promptFeedback') or {}).get('blockReason', 'unknown')
            raise ProviderError(f"Gemini returned no candidates: {reason}")

        candidate = candidates[0]
        usage = data.get('usageMetadata') or {}
        return self._response(
            model,
            "".join(p.get('text', '') for p in (candidate.get('content') or {}).get('parts') or []),
            input_tokens=usage.get('promptTokenCount', 0),
            output_tokens=usage.get('candidatesTokenCount', 0),
            finish_reason=str(candidate.get('finishReason', 'STOP')).lower(),
            started=started,
            data=data,
        )

    async def health_check(self) -> bool:
        if not self.api_key:
            return False
        return await self._probe(
            f"{self.base_url}/models", self._get_headers(self.api_key, auth_type="x-goog-api-key")
        )
