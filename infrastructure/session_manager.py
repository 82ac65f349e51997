"""
DOCFLOW SESSION MANAGER - Persist and Resume Conversations

Stores {state: ConversationState, summary: DiscoverySummary} as a single
document per session id, on whichever ContextStore it was given.

Consistency:
    Writes happen after each turn, not transactionally with the model calls
    that produced them. A crash between append_turn() and the final
    create_or_update() leaves the persisted summary behind the persisted turn
    log; resuming from that state is supported and simply re-asks.
"""
import logging
from typing import Optional

from core.schemas import (
    ConversationState,
    DiscoverySummary,
    SavedConversation,
    Turn,
    TurnRole,
    now_utc,
    to_data,
    state_from_data,
    summary_from_data,
)
from infrastructure.context_store import ContextStore, FileContextStore, APPEND_MESSAGE_KEY

logger = logging.getLogger(__name__)


class SessionManager:
    """Session-level operations over a ContextStore."""

    def __init__(self, store: Optional[ContextStore] = None):
        self.store = store or FileContextStore()

    def create_or_update(self, state: ConversationState, summary: DiscoverySummary) -> None:
        """Upsert the full persisted document."""
        def updater(previous):
            return {**previous, "state": to_data(state), "summary": to_data(summary)}

        self.store.update(state.session_id, updater)

    def append_turn(self, session_id: str, turn: Turn) -> None:
        """Append a turn to the persisted log and mirror it as a chat message."""
        def updater(previous):
            if previous.get("state"):
                state = state_from_data(previous["state"])
            else:
                state = ConversationState(session_id=session_id)
            state.turns = list(state.turns) + [turn]
            return {
                **previous,
                "state": to_data(state),
                APPEND_MESSAGE_KEY: {
                    "role": turn.role,
                    "content": turn.content,
                    "timestamp": turn.timestamp,
                    "agentId": turn.agent_id,
                },
            }

        self.store.update(session_id, updater)

    def append_assistant_chunk(self, session_id: str, content: str, agent_id: Optional[str] = None) -> None:
        """Mirror a partial assistant chunk for remote viewers. The turn log is untouched."""
        def updater(previous):
            return {
                **previous,
                APPEND_MESSAGE_KEY: {
                    "role": TurnRole.ASSISTANT.value,
                    "content": content,
                    "timestamp": now_utc(),
                    "agentId": agent_id,
                    "chunk": True,
                },
            }

        self.store.update(session_id, updater)

    def load(self, session_id: str) -> Optional[SavedConversation]:
        """Return the saved conversation, or None when absent or incomplete."""
        record = self.store.get(session_id)
        if record is None:
            return None
        state = record.data.get("state")
        summary = record.data.get("summary")
        if state is None or summary is None:
            return None
        return SavedConversation(state=state_from_data(state), summary=summary_from_data(summary))

    def delete(self, session_id: str) -> None:
        self.store.delete(session_id)
