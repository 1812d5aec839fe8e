"""LLM integration modules - prompt building, inference service and model clients."""

from .clients import (
    BaseLLMClient,
    LLMResponse,
    OllamaClient,
    OpenAIClient,
    AnthropicClient,
    GeminiClient,
    create_llm_client,
)
from .inference import (
    InferenceError,
    InferenceService,
    MalformedResult,
    StageResult,
    TaskSpec,
)
from .prompt_builder import AssembledPrompt, PromptBuilder

__all__ = [
    'BaseLLMClient',
    'LLMResponse',
    'OllamaClient',
    'OpenAIClient',
    'AnthropicClient',
    'GeminiClient',
    'create_llm_client',
    'InferenceError',
    'InferenceService',
    'MalformedResult',
    'StageResult',
    'TaskSpec',
    'AssembledPrompt',
    'PromptBuilder',
]
