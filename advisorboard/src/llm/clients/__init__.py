"""
LLM Client Implementations.

Provides unified interfaces for different inference providers:
- OllamaClient: Local models via Ollama
- OpenAIClient: OpenAI API (GPT models)
- AnthropicClient: Anthropic API (Claude models)
- GeminiClient: Google Gemini API
"""

from .base import BaseLLMClient, LLMResponse, ProviderError
from .ollama import OllamaClient
from .openai_client import OpenAIClient
from .anthropic_client import AnthropicClient
from .gemini_client import GeminiClient

CLIENT_CLASSES = {
    'ollama': OllamaClient,
    'openai': OpenAIClient,
    'anthropic': AnthropicClient,
    'gemini': GeminiClient,
}


def create_llm_client(provider: str, config: dict) -> BaseLLMClient:
    """
    Instantiate the client for a provider name.

    Raises:
        ValueError: If the provider is unknown
    """
    client_class = CLIENT_CLASSES.get(provider)
    if client_class is None:
        raise ValueError(
            f"Unknown LLM provider '{provider}'. Valid: {', '.join(sorted(CLIENT_CLASSES))}"
        )
    return client_class(config)


__all__ = [
    'BaseLLMClient',
    'LLMResponse',
    'ProviderError',
    'OllamaClient',
    'OpenAIClient',
    'AnthropicClient',
    'GeminiClient',
    'CLIENT_CLASSES',
    'create_llm_client',
]
