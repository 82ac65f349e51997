"""
DOCFLOW INFRASTRUCTURE - System-Level Modules

This package contains infrastructure components:
- config: Layered configuration (TOML files + environment)
- context_store: Session document stores (memory, file, Convex)
- session_manager: Persist and resume conversations
- tool_registry: External tools behind a per-call timeout
- logger: Logging setup and JSONL conversation transcripts
"""

from infrastructure.config import DocflowConfig, load_config
from infrastructure.context_store import (
    ContextStore,
    InMemoryContextStore,
    FileContextStore,
    ConvexContextStore,
    StoreConfigurationError,
    create_context_store,
)
from infrastructure.session_manager import SessionManager

__all__ = [
    "DocflowConfig",
    "load_config",
    "ContextStore",
    "InMemoryContextStore",
    "FileContextStore",
    "ConvexContextStore",
    "StoreConfigurationError",
    "create_context_store",
    "SessionManager",
]
