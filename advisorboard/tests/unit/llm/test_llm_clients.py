"""
Mocked unit tests for LLM clients.

Uses aioresponses to mock aiohttp HTTP requests.
Tests validate:
- Successful API responses and request bodies
- JSON output switches per provider
- Error handling (API errors, timeouts, connection errors)
- Health check endpoints
- Client factory
"""

import asyncio
import pytest
from aioresponses import aioresponses
import aiohttp

from advisorboard.src.llm.clients import (
    AnthropicClient,
    GeminiClient,
    OllamaClient,
    OpenAIClient,
    create_llm_client,
)


def sent_json(mocked):
    """Body of the first recorded request."""
    return next(iter(mocked.requests.values()))[0].kwargs['json']


def sent_headers(mocked):
    return next(iter(mocked.requests.values()))[0].kwargs['headers']


# =============================================================================
# Ollama Client Tests
# =============================================================================

OLLAMA_URL = 'http://localhost:11434'


class TestOllamaClient:
    """Test OllamaClient with mocked HTTP responses."""

    @pytest.fixture
    def client(self):
        return OllamaClient({
            'base_url': OLLAMA_URL,
            'timeout_seconds': 30,
            'default_model': 'qwen2.5:7b',
        })

    @pytest.mark.asyncio
    async def test_generate_success(self, client):
        with aioresponses() as mocked:
            mocked.post(
                f'{OLLAMA_URL}/api/generate',
                payload={
                    'response': 'Neutral sentiment',
                    'done': True,
                    'done_reason': 'stop',
                    'eval_count': 50,
                    'prompt_eval_count': 100,
                }
            )

            response = await client.generate(None, 'You are a market researcher.', 'Summarize')

            assert response.text == 'Neutral sentiment'
            assert response.tokens_used == 150
            assert response.model == 'qwen2.5:7b'
            assert response.finish_reason == 'stop'

            body = sent_json(mocked)
            assert body['system'] == 'You are a market researcher.'
            assert body['stream'] is False
            assert 'format' not in body
        await client.close()

    @pytest.mark.asyncio
    async def test_json_output_sets_format(self, client):
        with aioresponses() as mocked:
            mocked.post(f'{OLLAMA_URL}/api/generate', payload={'response': '{}'})
            await client.generate('qwen2.5:7b', 's', 'u', temperature=0.2, max_tokens=64, json_output=True)

            body = sent_json(mocked)
            assert body['format'] == 'json'
            assert body['options']['temperature'] == 0.2
            assert body['options']['num_predict'] == 64
        await client.close()

    @pytest.mark.asyncio
    async def test_api_error(self, client):
        with aioresponses() as mocked:
            mocked.post(f'{OLLAMA_URL}/api/generate', status=500, body='model not loaded')
            with pytest.raises(RuntimeError, match='Ollama: HTTP 500 - model not loaded'):
                await client.generate(None, 's', 'u')
        await client.close()

    @pytest.mark.asyncio
    async def test_timeout(self, client):
        with aioresponses() as mocked:
            mocked.post(f'{OLLAMA_URL}/api/generate', exception=asyncio.TimeoutError())
            with pytest.raises(RuntimeError, match='timed out'):
                await client.generate(None, 's', 'u')
        await client.close()

    @pytest.mark.asyncio
    async def test_connection_error(self, client):
        with aioresponses() as mocked:
            mocked.post(f'{OLLAMA_URL}/api/generate', exception=aiohttp.ClientError('Connection refused'))
            with pytest.raises(RuntimeError, match='Ollama connection error'):
                await client.generate(None, 's', 'u')
        await client.close()

    @pytest.mark.asyncio
    async def test_health_check(self, client):
        with aioresponses() as mocked:
            mocked.get(f'{OLLAMA_URL}/api/tags', payload={'models': [{'name': 'qwen2.5:7b'}]})
            assert await client.health_check() is True
        with aioresponses() as mocked:
            mocked.get(f'{OLLAMA_URL}/api/tags', status=503)
            assert await client.health_check() is False
        await client.close()


# =============================================================================
# OpenAI Client Tests
# =============================================================================

OPENAI_URL = 'https://api.openai.com/v1'


class TestOpenAIClient:
    """Test OpenAIClient with mocked HTTP responses."""

    @pytest.fixture
    def client(self):
        return OpenAIClient({'api_key': 'test-key', 'timeout_seconds': 30})

    @pytest.mark.asyncio
    async def test_generate_success(self, client):
        with aioresponses() as mocked:
            mocked.post(
                f'{OPENAI_URL}/chat/completions',
                payload={
                    'id': 'chatcmpl-1',
                    'choices': [{'message': {'content': '{"score": 60}'}, 'finish_reason': 'stop'}],
                    'usage': {'prompt_tokens': 80, 'completion_tokens': 20},
                },
            )

            response = await client.generate(None, 's', 'u', json_output=True)

            assert response.text == '{"score": 60}'
            assert response.tokens_used == 100
            assert response.model == 'gpt-4o-mini'
            assert sent_json(mocked)['response_format'] == {'type': 'json_object'}
            assert sent_headers(mocked)['Authorization'] == 'Bearer test-key'
        await client.close()

    @pytest.mark.asyncio
    async def test_text_output_has_no_response_format(self, client):
        with aioresponses() as mocked:
            mocked.post(
                f'{OPENAI_URL}/chat/completions',
                payload={'id': 'x', 'choices': [{'message': {'content': 'ok'}}]},
            )
            await client.generate('gpt-4o', 's', 'u')
            body = sent_json(mocked)
            assert 'response_format' not in body
            assert body['messages'][0] == {'role': 'system', 'content': 's'}
        await client.close()

    @pytest.mark.asyncio
    async def test_api_error_sanitized(self, client):
        with aioresponses() as mocked:
            mocked.post(
                f'{OPENAI_URL}/chat/completions',
                status=429,
                payload={'error': {'type': 'rate_limit', 'message': 'slow down'}},
            )
            with pytest.raises(RuntimeError, match='OpenAI: rate_limit - slow down'):
                await client.generate(None, 's', 'u')
        await client.close()

    @pytest.mark.asyncio
    async def test_missing_choices(self, client):
        with aioresponses() as mocked:
            mocked.post(f'{OPENAI_URL}/chat/completions', payload={'id': 'x', 'choices': []})
            with pytest.raises(RuntimeError, match='missing expected fields'):
                await client.generate(None, 's', 'u')
        await client.close()

    @pytest.mark.asyncio
    async def test_timeout(self, client):
        with aioresponses() as mocked:
            mocked.post(f'{OPENAI_URL}/chat/completions', exception=asyncio.TimeoutError())
            with pytest.raises(RuntimeError, match='timed out'):
                await client.generate(None, 's', 'u')
        await client.close()

    @pytest.mark.asyncio
    async def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv('OPENAI_API_KEY', raising=False)
        client = OpenAIClient({})
        with pytest.raises(RuntimeError, match='not configured'):
            await client.generate(None, 's', 'u')
        assert await client.health_check() is False


# =============================================================================
# Anthropic Client Tests
# =============================================================================

ANTHROPIC_URL = 'https://api.anthropic.com/v1'


class TestAnthropicClient:
    """Test AnthropicClient with mocked HTTP responses."""

    @pytest.fixture
    def client(self):
        return AnthropicClient({'api_key': 'test-key'})

    @pytest.mark.asyncio
    async def test_generate_success(self, client):
        with aioresponses() as mocked:
            mocked.post(
                f'{ANTHROPIC_URL}/messages',
                payload={
                    'content': [{'type': 'text', 'text': 'Part one. '}, {'type': 'text', 'text': 'Part two.'}],
                    'stop_reason': 'end_turn',
                    'usage': {'input_tokens': 40, 'output_tokens': 10},
                },
            )

            response = await client.generate(None, 'system', 'u')

            assert response.text == 'Part one. Part two.'
            assert response.tokens_used == 50
            assert response.finish_reason == 'end_turn'
            headers = sent_headers(mocked)
            assert headers['x-api-key'] == 'test-key'
            assert headers['anthropic-version'] == '2023-06-01'
            assert sent_json(mocked)['system'] == 'system'
        await client.close()

    @pytest.mark.asyncio
    async def test_json_output_appends_instruction(self, client):
        with aioresponses() as mocked:
            mocked.post(f'{ANTHROPIC_URL}/messages', payload={'content': [{'type': 'text', 'text': '{}'}]})
            await client.generate(None, 'system', 'u', json_output=True)
            system = sent_json(mocked)['system']
            assert system.startswith('system')
            assert 'valid JSON' in system
        await client.close()

    @pytest.mark.asyncio
    async def test_empty_content(self, client):
        with aioresponses() as mocked:
            mocked.post(f'{ANTHROPIC_URL}/messages', payload={'content': [], 'stop_reason': 'max_tokens'})
            response = await client.generate(None, 's', 'u')
            assert response.text == ''
        await client.close()

    @pytest.mark.asyncio
    async def test_auth_error(self, client):
        with aioresponses() as mocked:
            mocked.post(
                f'{ANTHROPIC_URL}/messages',
                status=401,
                payload={'error': {'type': 'authentication_error', 'message': 'invalid x-api-key'}},
            )
            with pytest.raises(RuntimeError, match='authentication_error'):
                await client.generate(None, 's', 'u')
        await client.close()

    @pytest.mark.asyncio
    async def test_connection_error(self, client):
        with aioresponses() as mocked:
            mocked.post(f'{ANTHROPIC_URL}/messages', exception=aiohttp.ClientError('Connection refused'))
            with pytest.raises(RuntimeError, match='connection error'):
                await client.generate(None, 's', 'u')
        await client.close()


# =============================================================================
# Gemini Client Tests
# =============================================================================

GEMINI_URL = 'https://generativelanguage.googleapis.com/v1beta'

GEMINI_OK = {
    'candidates': [{
        'content': {'parts': [{'text': 'Markets '}, {'text': 'are calm.'}]},
        'finishReason': 'STOP',
    }],
    'usageMetadata': {'promptTokenCount': 30, 'candidatesTokenCount': 12},
}


class TestGeminiClient:
    """Test GeminiClient with mocked HTTP responses."""

    @pytest.fixture
    def client(self):
        return GeminiClient({'api_key': 'test-key', 'search_grounding': True})

    @pytest.mark.asyncio
    async def test_generate_text_with_search(self, client):
        with aioresponses() as mocked:
            mocked.post(f'{GEMINI_URL}/models/gemini-2.5-flash:generateContent', payload=GEMINI_OK)

            response = await client.generate(None, 'system', 'u')

            assert response.text == 'Markets are calm.'
            assert response.tokens_used == 42
            assert response.finish_reason == 'stop'
            body = sent_json(mocked)
            assert body['tools'] == [{'google_search': {}}]
            assert body['systemInstruction'] == {'parts': [{'text': 'system'}]}
            assert 'responseMimeType' not in body['generationConfig']
            assert sent_headers(mocked)['x-goog-api-key'] == 'test-key'
        await client.close()

    @pytest.mark.asyncio
    async def test_json_output_skips_search(self, client):
        with aioresponses() as mocked:
            mocked.post(f'{GEMINI_URL}/models/gemini-2.5-pro:generateContent', payload=GEMINI_OK)

            await client.generate('gemini-2.5-pro', 's', 'u', max_tokens=256, json_output=True)

            body = sent_json(mocked)
            assert 'tools' not in body
            assert body['generationConfig']['responseMimeType'] == 'application/json'
            assert body['generationConfig']['maxOutputTokens'] == 256
        await client.close()

    @pytest.mark.asyncio
    async def test_no_search_unless_enabled(self):
        client = GeminiClient({'api_key': 'test-key'})
        with aioresponses() as mocked:
            mocked.post(f'{GEMINI_URL}/models/gemini-2.5-flash:generateContent', payload=GEMINI_OK)
            await client.generate(None, 's', 'u')
            assert 'tools' not in sent_json(mocked)
        await client.close()

    @pytest.mark.asyncio
    async def test_no_candidates(self, client):
        with aioresponses() as mocked:
            mocked.post(
                f'{GEMINI_URL}/models/gemini-2.5-flash:generateContent',
                payload={'promptFeedback': {'blockReason': 'SAFETY'}},
            )
            with pytest.raises(RuntimeError, match='no candidates: SAFETY'):
                await client.generate(None, 's', 'u')
        await client.close()

    @pytest.mark.asyncio
    async def test_api_error(self, client):
        with aioresponses() as mocked:
            mocked.post(
                f'{GEMINI_URL}/models/gemini-2.5-flash:generateContent',
                status=400,
                payload={'error': {'status': 'INVALID_ARGUMENT', 'message': 'bad request'}},
            )
            with pytest.raises(RuntimeError, match='Gemini: INVALID_ARGUMENT - bad request'):
                await client.generate(None, 's', 'u')
        await client.close()

    @pytest.mark.asyncio
    async def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv('GEMINI_API_KEY', raising=False)
        monkeypatch.delenv('API_KEY', raising=False)
        client = GeminiClient({})
        with pytest.raises(RuntimeError, match='not configured'):
            await client.generate(None, 's', 'u')

    @pytest.mark.asyncio
    async def test_health_check(self, client):
        with aioresponses() as mocked:
            mocked.get(f'{GEMINI_URL}/models', payload={'models': []})
            assert await client.health_check() is True
        await client.close()


# =============================================================================
# Factory
# =============================================================================

class TestCreateLLMClient:
    """Test create_llm_client()."""

    def test_known_providers(self):
        assert isinstance(create_llm_client('ollama', {}), OllamaClient)
        assert isinstance(create_llm_client('gemini', {'api_key': 'k'}), GeminiClient)

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match='Unknown LLM provider'):
            create_llm_client('deepseek', {})
