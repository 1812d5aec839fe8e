"""AdvisorBoard source modules."""

# Re-export commonly used components for convenience
from .llm import (
    BaseLLMClient,
    LLMResponse,
    InferenceService,
    PromptBuilder,
    create_llm_client,
)
from .orchestration import (
    Blackboard,
    BlackboardField,
    Message,
    MessageKind,
    MissionController,
    Orchestrator,
)
from .utils.config import ConfigLoader, get_config_loader, load_config

__all__ = [
    'BaseLLMClient',
    'LLMResponse',
    'InferenceService',
    'PromptBuilder',
    'create_llm_client',
    'Blackboard',
    'BlackboardField',
    'Message',
    'MessageKind',
    'MissionController',
    'Orchestrator',
    'ConfigLoader',
    'get_config_loader',
    'load_config',
]
