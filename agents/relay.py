"""
DOCFLOW RELAY - Server-Side Question Generation

An optional secondary path for model calls: the question prompt is sent to
the Convex action `docflow/messages:streamAssistant`, which runs the model
server-side and mirrors the output into the session's message log.

The relay fails closed. It returns None (meaning "unavailable, use the
primary backend") when it is disabled, when no deployment URL is known, when
the action reports {ok: false}, or when the call fails for any reason.
"""
import logging
from typing import Optional

from infrastructure.context_store import ConvexHTTPClient, StoreError

logger = logging.getLogger(__name__)

STREAM_ASSISTANT_ACTION = "docflow/messages:streamAssistant"


class Relay:
    """Interface: a relay either produces text or reports unavailable (None)."""

    @property
    def enabled(self) -> bool:
        return False

    def generate(
        self,
        session_id: str,
        system: str,
        user: str,
        provider: str,
        model: Optional[str] = None,
        agent_id: Optional[str] = None,
    ) -> Optional[str]:
        return None


class DisabledRelay(Relay):
    """The default: never available."""
    pass


class ConvexRelay(Relay):
    """Relay through a Convex action."""

    def __init__(self, url: Optional[str], enabled: bool = True, client: Optional[ConvexHTTPClient] = None):
        self._enabled = bool(enabled and (url or client))
        self.client = client or (ConvexHTTPClient(url) if url else None)

    @property
    def enabled(self) -> bool:
        return self._enabled

    def generate(self, session_id, system, user, provider, model=None, agent_id=None):
        if not self._enabled:
            return None
        args = {
            "sessionId": session_id,
            "provider": provider,
            "system": system,
            "user": user,
        }
        if model:
            args["model"] = model
        if agent_id:
            args["agentId"] = agent_id

        try:
            value = self.client.action(STREAM_ASSISTANT_ACTION, args)
        except StoreError as e:
            logger.info(f"Relay unavailable: {e}")
            return None

        if not isinstance(value, dict) or not value.get("ok"):
            logger.debug("Relay reported not ok; using primary backend")
            return None
        text = str(value.get("text") or "").strip()
        return text or None


def create_relay(url: Optional[str], enabled: bool) -> Relay:
    """ConvexRelay when enabled and a URL is known, otherwise DisabledRelay."""
    if enabled and url:
        return ConvexRelay(url)
    return DisabledRelay()
