"""
DOCFLOW SCHEMAS - The Shape of a Discovery Conversation

This module defines the data structures that flow through the discovery
engine and into session storage:
- Turn: one immutable message in the dialogue
- DiscoverySummary: the partially-filled knowledge record about a project
- ConversationState: the persisted unit (session id, phase, turn log)
- DocumentRequirement / DocumentGap: what could be asked, and what is missing
- AgentDescriptor: identity tag attached to assistant turns

Design Principles:
1. STRICT TYPING: msgspec.Struct with no silent type coercion
2. KW_ONLY: Enforce keyword arguments to prevent positional mix-ups
3. CAMEL ON THE WIRE: Python attributes are snake_case, persisted keys are
   camelCase (rename="camel") so session documents stay compatible with the
   remote store and with the JSON the language model is asked to produce
4. EMPTY == MISSING: list fields are normalized so an empty list is stored
   as absent
"""
import msgspec
from typing import Optional, Dict, Any, List
from datetime import datetime, timezone
from enum import Enum


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def now_utc() -> str:
    """Fast UTC timestamp as ISO8601 string."""
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# ENUMS
# =============================================================================

class TurnRole(str, Enum):
    """Who produced a turn."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ConversationPhase(str, Enum):
    """Lifecycle phase of a persisted conversation."""
    DISCOVERY = "discovery"
    DESIGN = "design"
    GENERATION = "generation"


class TargetDocument(str, Enum):
    """The four documents a discovery conversation feeds."""
    SPECS = "specs"
    ARCHITECTURE = "architecture"
    FEATURES = "features"
    STACK = "stack"


class ValueType(str, Enum):
    """Shape of a requirement's value."""
    SCALAR = "scalar"
    LIST = "list"


class RequirementScope(str, Enum):
    """Where a requirement's value lives in the summary."""
    SUMMARY = "summary"
    EXTRAS = "extras"


# =============================================================================
# DIALOGUE
# =============================================================================

class Turn(msgspec.Struct, kw_only=True, frozen=True, omit_defaults=True, rename="camel"):
    """
    A single message in the discovery dialogue.

    Turns are immutable once appended; ordering of the turn log is append
    order, which is also chronological order.
    """
    role: str                           # TurnRole.value
    content: str
    timestamp: str
    agent_id: Optional[str] = None

    @classmethod
    def create(cls, role: TurnRole, content: str, agent_id: Optional[str] = None) -> "Turn":
        """Build a turn stamped with the current time."""
        return cls(role=role.value, content=content, timestamp=now_utc(), agent_id=agent_id)


class AgentDescriptor(msgspec.Struct, kw_only=True, frozen=True):
    """Static identity of a named discovery agent. Informational only."""
    id: str
    name: str
    role: str = "discovery"


# =============================================================================
# DISCOVERY SUMMARY
# =============================================================================

_LIST_FIELDS = ("objectives", "target_users", "features", "constraints")


class DiscoverySummary(msgspec.Struct, kw_only=True, omit_defaults=True, rename="camel"):
    """
    Current knowledge about the project being discovered.

    Every field is optional. The same type is used for the running summary
    and for update fragments produced by extraction. List-valued fields are
    either absent or non-empty: an empty list is normalized to None on
    construction so "missing" has exactly one representation.
    """
    name: Optional[str] = None
    description: Optional[str] = None
    objectives: Optional[List[str]] = None
    target_users: Optional[List[str]] = None
    features: Optional[List[str]] = None
    constraints: Optional[List[str]] = None
    stack_suggestion: Optional[str] = None
    extras: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        for attr in _LIST_FIELDS:
            value = getattr(self, attr)
            if value is not None and len(value) == 0:
                setattr(self, attr, None)
        if self.extras is not None and len(self.extras) == 0:
            self.extras = None

    def extra(self, key: str) -> Any:
        """Read a single extras entry (None when absent)."""
        return (self.extras or {}).get(key)

    def is_empty(self) -> bool:
        """True when no field carries a value."""
        return not msgspec.to_builtins(self)


# =============================================================================
# REQUIREMENTS AND GAPS
# =============================================================================

class DocumentRequirement(msgspec.Struct, kw_only=True, frozen=True):
    """
    A static descriptor of something the conversation may need to collect.

    For scope=summary the value is read from the summary attribute named by
    `key`; for scope=extras it is read from `summary.extras[extras_key]`.
    """
    key: str
    label: str
    value_type: str = ValueType.SCALAR.value
    prompt: str
    required: bool = False
    scope: str = RequirementScope.SUMMARY.value
    extras_key: Optional[str] = None

    @property
    def field_name(self) -> str:
        """The attribute or extras key this requirement fills."""
        return self.extras_key or self.key


class DocumentGap(DocumentRequirement, kw_only=True, frozen=True):
    """A missing requirement tied to a target document, with a priority weight."""
    target_document: str
    weight: int

    @property
    def dedup_key(self) -> tuple:
        """Composite identity used to deduplicate gaps."""
        return (self.target_document, self.field_name)


# =============================================================================
# PERSISTED STATE
# =============================================================================

class ConversationState(msgspec.Struct, kw_only=True, rename="camel"):
    """The persisted unit owned by the session manager."""
    session_id: str
    phase: str = ConversationPhase.DISCOVERY.value
    turns: List[Turn] = []


class SavedConversation(msgspec.Struct, kw_only=True, frozen=True):
    """A conversation restored from storage."""
    state: ConversationState
    summary: DiscoverySummary


# =============================================================================
# SERIALIZATION HELPERS
# =============================================================================

def to_data(obj: Any) -> Any:
    """Convert a Struct (or container of Structs) to JSON-compatible builtins."""
    return msgspec.to_builtins(obj)


def state_from_data(data: Dict[str, Any]) -> ConversationState:
    """Rebuild a ConversationState from stored builtins."""
    return msgspec.convert(data, type=ConversationState)


def summary_from_data(data: Dict[str, Any]) -> DiscoverySummary:
    """Rebuild a DiscoverySummary from stored builtins."""
    return msgspec.convert(data, type=DiscoverySummary)
