"""
Base LLM Client - shared plumbing for the inference providers.

Every provider client (Ollama, OpenAI, Anthropic, Gemini) inherits:
- a per-provider sliding-window rate limiter
- retry with exponential backoff, skipping errors a retry cannot fix
- token and cost accounting
- one pooled aiohttp session with a certifi CA bundle
- the JSON POST / health probe transport

Model output parsing (parse_json_response) also lives here since every
stage that asks for JSON goes through generate_with_retry.
"""

import asyncio
import json
import logging
import os
import re
import ssl
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Any, Optional

import aiohttp
import certifi

logger = logging.getLogger(__name__)

__version__ = "0.1.0"

# Message fragments that mark an error a retry will not fix
NON_RETRYABLE_PATTERNS = [
    "401", "unauthorized", "api key", "authentication",
    "403", "forbidden", "access denied",
    "400", "bad request", "invalid",
    "404", "not found",
    "422", "unprocessable",
]

# Statuses worth retrying; any other HTTP error fails fast
RETRYABLE_STATUSES = frozenset({408, 409, 429, 500, 502, 503, 504})

# Requests per minute
DEFAULT_RATE_LIMITS = {
    'ollama': 120,
    'openai': 60,
    'anthropic': 60,
    'gemini': 60,
}

# USD per 1K tokens
MODEL_COSTS = {
    'gpt-4o': {'input': 0.0025, 'output': 0.01},
    'gpt-4o-mini': {'input': 0.00015, 'output': 0.0006},
    'claude-3-5-sonnet-20241022': {'input': 0.003, 'output': 0.015},
    'claude-3-5-haiku-20241022': {'input': 0.0008, 'output': 0.004},
    'gemini-2.5-flash': {'input': 0.0003, 'output': 0.0025},
    'gemini-2.5-pro': {'input': 0.00125, 'output': 0.01},
    'qwen2.5:7b': {'input': 0.0, 'output': 0.0},
}

_FENCE = re.compile(r'```(?:json)?[ \t]*\n?([\s\S]*?)```', re.IGNORECASE)
_SECRET = re.compile(r'(sk-[a-zA-Z0-9_-]{20,}|AIza[0-9A-Za-z_-]{20,}|[a-zA-Z0-9]{32,}|Bearer\s+[^\s]+)')
_decoder = json.JSONDecoder()


def parse_json_response(response_text: str) -> tuple[Optional[dict], Optional[str]]:
    """
    Pull a JSON object out of model output.

    Tries, in order: fenced code blocks, the whole text, and the first
    decodable object embedded in prose.

    Returns:
        (parsed object, None) on success, otherwise (None, error message)
    """
    text = (response_text or "").strip()
    if not text:
        return None, "Empty response"

    for block in _FENCE.findall(text):
        try:
            candidate = json.loads(block.strip())
        except json.JSONDecodeError as e:
            logger.debug(f"Fenced block is not JSON: {e}")
            continue
        if isinstance(candidate, dict):
            return candidate, None

    try:
        whole = json.loads(text)
    except json.JSONDecodeError:
        whole = None
    else:
        if isinstance(whole, dict):
            return whole, None
        return None, f"Expected a JSON object, got {type(whole).__name__}"

    pos = text.find('{')
    while pos >= 0:
        try:
            candidate, _ = _decoder.raw_decode(text, pos)
        except json.JSONDecodeError:
            pos = text.find('{', pos + 1)
            continue
        if isinstance(candidate, dict):
            return candidate, None
        pos = text.find('{', pos + 1)

    return None, f"Failed to extract valid JSON from response: {text[:100]}..."


def validate_json_schema(
    data: dict,
    required_fields: list[str],
    field_types: Optional[dict] = None,
) -> tuple[bool, list[str]]:
    """Check presence of required_fields and the types in field_types."""
    errors = [f"Missing required field: {name}" for name in required_fields if name not in data]
    for name, expected in (field_types or {}).items():
        value = data.get(name)
        if name in data and not isinstance(value, expected):
            errors.append(
                f"Field '{name}' expected {expected.__name__}, got {type(value).__name__}"
            )
    return not errors, errors


class ProviderError(RuntimeError):
    """A provider request failed; status is set for HTTP errors."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class RateLimiter:
    """Allows at most max_requests calls in any sixty-second window."""

    window_seconds = 60.0

    def __init__(self, requests_per_minute: int):
        self.max_requests = requests_per_minute
        self._stamps: deque[float] = deque()
        self._lock = asyncio.Lock()

    def _expire(self, now: float) -> None:
        while self._stamps and self._stamps[0] <= now - self.window_seconds:
            self._stamps.popleft()

    async def acquire(self) -> float:
        """Take a slot, sleeping until one frees up. Returns seconds slept."""
        async with self._lock:
            now = time.monotonic()
            self._expire(now)
            slept = 0.0
            if len(self._stamps) >= self.max_requests:
                slept = self._stamps[0] + self.window_seconds - now + 0.01
                logger.debug(f"Rate limit reached, waiting {slept:.2f}s")
                await asyncio.sleep(slept)
                now = time.monotonic()
                self._expire(now)
            self._stamps.append(now)
            return slept

    def update_limit(self, limit: Optional[int]) -> None:
        """Follow a limit advertised in provider response headers."""
        if limit and limit > 0 and limit != self.max_requests:
            logger.debug(f"Rate limit {self.max_requests} -> {limit}")
            self.max_requests = limit

    @property
    def available_requests(self) -> int:
        self._expire(time.monotonic())
        return max(0, self.max_requests - len(self._stamps))


@dataclass
class LLMResponse:
    """One completion, normalized across providers."""
    text: str
    tokens_used: int
    model: str
    finish_reason: str = "stop"
    latency_ms: int = 0
    cost_usd: float = 0.0
    parsed_json: Optional[dict] = None
    parse_error: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0
    raw_response: Optional[dict] = None


@dataclass
class UsageTotals:
    requests: int = 0
    tokens: int = 0
    cost_usd: float = 0.0

    def add(self, tokens: int, cost: float) -> None:
        self.requests += 1
        self.tokens += tokens
        self.cost_usd += cost


def create_ssl_context() -> ssl.SSLContext:
    return ssl.create_default_context(cafile=certifi.where())


def get_user_agent() -> str:
    return f"AdvisorBoard/{__version__} (Multi-Agent Advisor)"


def sanitize_error_message(error: Any, provider: str) -> str:
    """Format a provider error as 'provider: type - message' with secrets redacted."""
    if isinstance(error, dict):
        detail = error.get('error', error)
        if isinstance(detail, dict):
            kind = detail.get('type') or detail.get('status') or 'unknown'
            message = detail.get('message', str(detail))
        else:
            kind, message = 'unknown', detail
    else:
        kind, message = type(error).__name__, error
    return f"{provider}: {kind} - {_SECRET.sub('[REDACTED]', str(message))}"


def error_body(status: int, body: str) -> dict:
    """Shape a non-200 reply as {'error': {'type': ..., 'message': ...}}."""
    try:
        data = json.loads(body) if body else None
    except ValueError:
        data = None
    error = data.get('error') if isinstance(data, dict) else None
    if isinstance(error, dict):
        return data
    message = str(error or body or '').strip() or 'no details'
    return {'error': {'type': f"HTTP {status}", 'message': message}}


class BaseLLMClient(ABC):
    """
    Base class for provider clients.

    Subclasses set the class-level defaults and implement generate() and
    health_check(). Config keys shared by all providers: base_url,
    default_model, timeout_seconds, api_key, rate_limit_rpm, max_retries,
    retry_base_delay, retry_max_delay.
    """

    provider_name: str = "base"
    label: str = "LLM"

    DEFAULT_BASE_URL: str = ""
    DEFAULT_MODEL: str = ""
    DEFAULT_TIMEOUT: float = 60

    # Environment variables consulted, in order, when config has no api_key
    API_KEY_ENV: tuple[str, ...] = ()

    def __init__(self, config: dict):
        self.config = config
        self.base_url = config.get('base_url', self.DEFAULT_BASE_URL)
        self.default_model = config.get('default_model', self.DEFAULT_MODEL)
        self.timeout = aiohttp.ClientTimeout(
            total=config.get('timeout_seconds', self.DEFAULT_TIMEOUT)
        )

        self.api_key: Optional[str] = config.get('api_key') or next(
            (os.environ[name] for name in self.API_KEY_ENV if os.environ.get(name)), None
        )
        if self.API_KEY_ENV and not self.api_key:
            logger.warning(f"{self.label} API key not configured")

        self._rate_limiter = RateLimiter(
            config.get('rate_limit_rpm', DEFAULT_RATE_LIMITS.get(self.provider_name, 60))
        )
        self._max_retries = config.get('max_retries', 3)
        self._base_delay = config.get('retry_base_delay', 1.0)
        self._max_delay = config.get('retry_max_delay', 30.0)
        self._usage = UsageTotals()
        self._session: Optional[aiohttp.ClientSession] = None

    # -- transport ---------------------------------------------------------

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=10, keepalive_timeout=30, ssl=create_ssl_context()
            )
            self._session = aiohttp.ClientSession(timeout=self.timeout, connector=connector)
        return self._session

    async def close(self) -> None:
        """Close the pooled session; the connector is owned by it."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _get_headers(self, api_key: Optional[str] = None, auth_type: str = "bearer") -> dict:
        headers = {'Content-Type': 'application/json', 'User-Agent': get_user_agent()}
        if not api_key:
            return headers
        if auth_type in ("x-api-key", "x-goog-api-key"):
            headers[auth_type] = api_key
        else:
            headers['Authorization'] = f'Bearer {api_key}'
        return headers

    def _parse_rate_limit_headers(self, headers: dict) -> None:
        advertised = headers.get('X-RateLimit-Limit') or headers.get('x-ratelimit-limit')
        if not advertised:
            return
        try:
            self._rate_limiter.update_limit(int(advertised))
        except (TypeError, ValueError):
            logger.debug(f"Ignoring unparseable rate limit header: {advertised!r}")

    def _require_key(self) -> None:
        if not self.api_key:
            raise ProviderError(f"{self.label} API key not configured")

    async def _post_json(self, url: str, payload: dict, headers: Optional[dict] = None) -> dict:
        """
        POST payload as JSON and decode the reply.

        Raises:
            ProviderError: Non-200 status (credentials scrubbed from the
                provider message), timeout, or connection failure
        """
        session = await self._get_session()
        try:
            async with session.post(url, json=payload, headers=headers or self._get_headers()) as response:
                self._parse_rate_limit_headers(dict(response.headers))
                if response.status != 200:
                    detail = error_body(response.status, await response.text())
                    raise ProviderError(
                        sanitize_error_message(detail, self.label), status=response.status
                    )
                return await response.json(content_type=None)
        except asyncio.TimeoutError:
            raise ProviderError(f"{self.label} request timed out")
        except aiohttp.ClientError as e:
            raise ProviderError(f"{self.label} connection error: {e}")

    async def _probe(self, url: str, headers: Optional[dict] = None) -> bool:
        """GET url with a short timeout; True on 200."""
        try:
            session = await self._get_session()
            async with session.get(
                url, headers=headers, timeout=aiohttp.ClientTimeout(total=10)
            ) as response:
                return response.status == 200
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"{self.label} health check failed: {e}")
            return False

    def _response(
        self,
        model: str,
        text: str,
        input_tokens: int,
        output_tokens: int,
        finish_reason: str,
        started: float,
        data: dict,
    ) -> LLMResponse:
        latency_ms = int((time.perf_counter() - started) * 1000)
        tokens = input_tokens + output_tokens
        logger.debug(f"{self.label} {model}: {tokens} tokens in {latency_ms}ms")
        return LLMResponse(
            text=text,
            tokens_used=tokens,
            model=model,
            finish_reason=finish_reason,
            latency_ms=latency_ms,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            raw_response=data,
        )

    # -- retry and accounting ----------------------------------------------

    def _is_retryable(self, error: Exception) -> bool:
        status = getattr(error, 'status', None)
        if status is not None:
            return status in RETRYABLE_STATUSES
        lowered = str(error).lower()
        return not any(fragment in lowered for fragment in NON_RETRYABLE_PATTERNS)

    def _backoff(self, attempt: int) -> float:
        return min(self._base_delay * 2 ** attempt, self._max_delay)

    async def generate_with_retry(
        self,
        model: str,
        system_prompt: str,
        user_message: str,
        temperature: float = 0.3,
        max_tokens: int = 2048,
        parse_json: bool = False,
    ) -> LLMResponse:
        """
        generate() behind the rate limiter, retried with exponential backoff.

        With parse_json the provider is asked for JSON and the decoded object
        (or the decode error) is attached to the response.

        Raises:
            Exception: The first non-retryable error, or the last error
                once max_retries is spent
        """
        attempts = self._max_retries + 1
        for attempt in range(attempts):
            waited = await self._rate_limiter.acquire()
            if waited:
                logger.debug(f"{self.provider_name}: waited {waited:.2f}s for rate limit")
            try:
                response = await self.generate(
                    model=model,
                    system_prompt=system_prompt,
                    user_message=user_message,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    json_output=parse_json,
                )
            except Exception as e:
                if not self._is_retryable(e):
                    logger.error(f"{self.provider_name}: Non-retryable error: {e}")
                    raise
                if attempt + 1 == attempts:
                    logger.error(f"{self.provider_name}: All {attempts} attempts failed")
                    raise
                delay = self._backoff(attempt)
                logger.warning(
                    f"{self.provider_name}: Attempt {attempt + 1} failed: {e}. "
                    f"Retrying in {delay:.1f}s..."
                )
                await asyncio.sleep(delay)
                continue

            if response.input_tokens and response.output_tokens:
                response.cost_usd = self._calculate_cost_actual(
                    response.model, response.input_tokens, response.output_tokens
                )
            else:
                response.cost_usd = self._calculate_cost(response.model, response.tokens_used)
            self._usage.add(response.tokens_used, response.cost_usd)

            if parse_json:
                response.parsed_json, response.parse_error = parse_json_response(response.text)
                if response.parse_error:
                    logger.warning(
                        f"{self.provider_name}: JSON parsing failed: {response.parse_error}"
                    )
            return response

    @abstractmethod
    async def generate(
        self,
        model: str,
        system_prompt: str,
        user_message: str,
        temperature: float = 0.3,
        max_tokens: int = 2048,
        json_output: bool = False,
    ) -> LLMResponse:
        """Single provider call; json_output asks the provider for a JSON object."""

    @abstractmethod
    async def health_check(self) -> bool:
        """True if the provider answers."""

    def _calculate_cost(self, model: str, tokens_used: int) -> float:
        """Estimate from a total, assuming 70% of tokens were input."""
        input_tokens = int(tokens_used * 0.7)
        return self._calculate_cost_actual(model, input_tokens, tokens_used - input_tokens)

    def _calculate_cost_actual(self, model: str, input_tokens: int, output_tokens: int) -> float:
        rates = MODEL_COSTS.get(model)
        if rates is None:
            return 0.0
        return (input_tokens * rates['input'] + output_tokens * rates['output']) / 1000

    def get_stats(self) -> dict:
        return {
            "provider": self.provider_name,
            "total_requests": self._usage.requests,
            "total_tokens": self._usage.tokens,
            "total_cost_usd": self._usage.cost_usd,
            "available_rate_limit": self._rate_limiter.available_requests,
        }
