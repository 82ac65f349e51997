"""
DOCFLOW CORE - Central exports for core functionality.

This module provides access to:
- Conversation schemas (Turn, DiscoverySummary, ConversationState)
- Language-model backends (create_backend, LLMResult, FailureReason)
"""

from core.schemas import (
    Turn,
    TurnRole,
    DiscoverySummary,
    ConversationState,
    ConversationPhase,
    DocumentRequirement,
    DocumentGap,
    AgentDescriptor,
)
from core.llm import (
    LanguageModelBackend,
    OpenAICompatibleBackend,
    AnthropicCompatibleBackend,
    LocalBackend,
    LLMResult,
    FailureReason,
    create_backend,
)

__all__ = [
    "Turn",
    "TurnRole",
    "DiscoverySummary",
    "ConversationState",
    "ConversationPhase",
    "DocumentRequirement",
    "DocumentGap",
    "AgentDescriptor",
    "LanguageModelBackend",
    "OpenAICompatibleBackend",
    "AnthropicCompatibleBackend",
    "LocalBackend",
    "LLMResult",
    "FailureReason",
    "create_backend",
]
