# Agents layer - discovery conversation and human-in-the-loop

from agents.orchestrator import ConversationOrchestrator, ConversationResult
from agents.discovery_agent import DiscoveryAgent, create_discovery_agent
from agents.human_loop import ChatUI, ConsoleChatUI, ConversationCancelled

__all__ = [
    # Orchestration
    "ConversationOrchestrator",
    "ConversationResult",
    "DiscoveryAgent",
    "create_discovery_agent",
    # Human loop
    "ChatUI",
    "ConsoleChatUI",
    "ConversationCancelled",
]
