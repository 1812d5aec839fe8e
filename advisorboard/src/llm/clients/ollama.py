"""
Ollama Client - Local model inference via Ollama.

Lets a mission run entirely offline against a local model such as Qwen 2.5.
JSON stages use Ollama's `format: json` constrained decoding.
"""

import logging
import time

from .base import BaseLLMClient, LLMResponse

logger = logging.getLogger(__name__)


class OllamaClient(BaseLLMClient):
    """
    Ollama client for local inference.

    Config keys: base_url, default_model, timeout_seconds, default_options
    (merged into every request's options).
    """

    provider_name = "ollama"
    label = "Ollama"

    DEFAULT_BASE_URL = 'http://localhost:11434'
    DEFAULT_MODEL = 'qwen2.5:7b'
    DEFAULT_TIMEOUT = 120

    def __init__(self, config: dict):
        super().__init__(config)
        self.default_options = config.get('default_options', {'top_p': 0.9, 'num_ctx': 8192})

    async def generate(
        self,
        model: str,
        system_prompt: str,
        user_message: str,
        temperature: float = 0.3,
        max_tokens: int = 2048,
        json_output: bool = False,
    ) -> LLMResponse:
        model = model or self.default_model
        started = time.perf_counter()

        payload = {
            'model': model,
            'system': system_prompt,
            'prompt': user_message,
            'stream': False,
            'options': dict(self.default_options, temperature=temperature, num_predict=max_tokens),
        }
        if json_output:
            payload['format'] = 'json'

        data = await self._post_json(f"{self.base_url}/api/generate", payload)

        return self._response(
            model,
            data.get('response', ''),
            input_tokens=data.get('prompt_eval_count', 0),
            output_tokens=data.get('eval_count', 0),
            finish_reason=data.get('done_reason', 'stop'),
            started=started,
            data=data,
        )

    async def health_check(self) -> bool:
        """Ollama lists its local models at /api/tags."""
        return await self._probe(f"{self.base_url}/api/tags")
