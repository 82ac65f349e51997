"""
DOCFLOW QUESTION GENERATOR - One Good Question at a Time

Turns the highest-weight gap into a natural-language follow-up question.

Resolution order for every question:
    1. relay (server-side generation), when enabled
    2. primary language-model backend
    3. the gap's static fallback prompt

Steps 1 and 2 never raise; an unavailable or failing path falls through to
the next. The result is never empty because every gap carries a prompt.
"""
import logging
from typing import Callable, List, Optional

from core.llm import LanguageModelBackend
from core.schemas import DiscoverySummary, DocumentGap, Turn
from agents.human_loop import ChatUI
from agents.prompts import build_question_prompt, DEFAULT_HISTORY_WINDOW
from agents.relay import Relay, DisabledRelay
from agents.research import Researcher
from requirements.gap_analyzer import compute_gaps

logger = logging.getLogger(__name__)

QUESTION_MAX_TOKENS = 200


class QuestionGenerator:
    """
    Generates the next discovery question.

    Args:
        backend: Primary language-model backend
        relay: Optional server-side relay tried first
        researcher: Optional source of background snippets
        history_window: Number of recent turns sent as context
        session_id: Session the relay should attach its output to
        agent_id: Agent tag forwarded to the relay
    """

    def __init__(
        self,
        backend: LanguageModelBackend,
        relay: Optional[Relay] = None,
        researcher: Optional[Researcher] = None,
        history_window: int = DEFAULT_HISTORY_WINDOW,
        session_id: str = "",
        agent_id: Optional[str] = None,
    ):
        self.backend = backend
        self.relay = relay or DisabledRelay()
        self.researcher = researcher
        self.history_window = history_window
        self.session_id = session_id
        self.agent_id = agent_id

    def _prompts(self, gap, gaps, history, summary):
        if gaps is None:
            gaps = compute_gaps(summary, history)
        research = self.researcher.snippets_for(gap, summary) if self.researcher else None
        return build_question_prompt(gap, gaps, history, summary, self.history_window, research)

    def _via_relay(self, system: str, user: str) -> Optional[str]:
        if not self.relay.enabled:
            return None
        return self.relay.generate(
            self.session_id,
            system,
            user,
            provider=self.backend.provider,
            model=self.backend.model or None,
            agent_id=self.agent_id,
        )

    def ask(
        self,
        gap: DocumentGap,
        history: List[Turn],
        summary: DiscoverySummary,
        gaps: Optional[List[DocumentGap]] = None,
    ) -> str:
        """Return one question for `gap` (fallback prompt when no backend answers)."""
        system, user = self._prompts(gap, gaps, history, summary)

        relayed = self._via_relay(system, user)
        if relayed:
            return relayed

        result = self.backend.complete(system, user, max_tokens=QUESTION_MAX_TOKENS)
        if result.ok and result.text.strip():
            return result.text.strip()

        logger.debug(f"Question fallback for {gap.field_name}: {result.failure}")
        return gap.prompt

    def ask_streaming(
        self,
        gap: DocumentGap,
        history: List[Turn],
        summary: DiscoverySummary,
        ui: ChatUI,
        gaps: Optional[List[DocumentGap]] = None,
        on_chunk: Optional[Callable[[str], None]] = None,
    ) -> str:
        """
        Stream the question to `ui` as it is produced and return the full text.

        Chunks go to the sink and to `on_chunk` as they arrive. If the stream
        yields nothing, the fallback prompt is shown and returned instead.
        """
        system, user = self._prompts(gap, gaps, history, summary)

        ui.print_assistant_header()

        relayed = self._via_relay(system, user)
        if relayed:
            ui.append_assistant_chunk(relayed)
            ui.end_assistant_message()
            return relayed

        stream = self.backend.stream(system, user, max_tokens=QUESTION_MAX_TOKENS)
        for chunk in stream:
            ui.append_assistant_chunk(chunk)
            if on_chunk:
                on_chunk(chunk)

        question = stream.text.strip()
        if not question:
            logger.debug(f"Streaming fallback for {gap.field_name}: {stream.failure}")
            question = gap.prompt
            ui.append_assistant_chunk(question)

        ui.end_assistant_message()
        return question
