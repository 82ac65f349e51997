"""
DOCFLOW DISCOVERY AGENT - Wiring a Discovery Run

create_discovery_agent() returns the static identity attached to assistant
turns. DiscoveryAgent assembles one run from configuration:

    DocflowConfig
      ├─ backend      (core.llm.create_backend)
      ├─ relay        (agents.relay.create_relay)
      ├─ tools        (ToolRegistry + web.search when TAVILY_API_KEY is set)
      ├─ sessions     (SessionManager over create_context_store)
      └─ transcript   (TranscriptLogger when log_dir is set)

run():
    resume or start fresh ─> orchestrator loop (persisting every turn)
      ─> summarizer ─> store {state, summary} with phase "design"
"""
import logging
import uuid
from pathlib import Path
from typing import List, Optional

import msgspec

from core.llm import LanguageModelBackend, create_backend
from core.schemas import (
    AgentDescriptor,
    ConversationPhase,
    ConversationState,
    DiscoverySummary,
    Turn,
    TurnRole,
)
from agents.answer_extractor import AnswerExtractor
from agents.human_loop import ChatUI
from agents.orchestrator import ConversationOrchestrator, ConversationResult
from agents.question_generator import QuestionGenerator
from agents.relay import Relay, create_relay
from agents.research import ResearchCache, Researcher, register_web_search
from agents.summarizer import DiscoverySummarizer
from infrastructure.config import DocflowConfig
from infrastructure.context_store import create_context_store
from infrastructure.logger import TranscriptLogger
from infrastructure.session_manager import SessionManager
from infrastructure.tool_registry import ToolRegistry

logger = logging.getLogger(__name__)

START_DISCOVERY = "Start discovery"


def create_discovery_agent() -> AgentDescriptor:
    return AgentDescriptor(id="discovery-default", name="Discovery Agent", role="discovery")


def new_session_id() -> str:
    return f"conv-{uuid.uuid4().hex[:8]}"


class DiscoveryRun(msgspec.Struct, kw_only=True, frozen=True):
    """Result of a full discovery run."""
    session_id: str
    resumed: bool
    result: ConversationResult
    summary: DiscoverySummary           # after the summarizer pass


class DiscoveryAgent:
    """
    One discovery run, built from configuration.

    Collaborators can be injected (tests, alternative front ends); anything
    not given is built from `config`.
    """

    def __init__(
        self,
        config: DocflowConfig,
        ui: ChatUI,
        backend: Optional[LanguageModelBackend] = None,
        sessions: Optional[SessionManager] = None,
        relay: Optional[Relay] = None,
        tools: Optional[ToolRegistry] = None,
        stream: bool = True,
    ):
        self.config = config
        self.ui = ui
        self.descriptor = create_discovery_agent()
        self.backend = backend or create_backend(
            config.provider,
            model=config.model or None,
            api_key=config.api_key,
            temperature=config.temperature,
            dry_run=config.dry_run,
        )
        # Store misconfiguration is fatal here, before any question is asked
        self.sessions = sessions or SessionManager(
            create_context_store(config.store_backend, config.sessions_dir, config.convex_url)
        )
        self.relay = relay or create_relay(config.convex_url, config.use_convex_ai)
        self.tools = tools or self._build_tools()
        self.stream = stream

    def _build_tools(self) -> ToolRegistry:
        registry = ToolRegistry(timeout=self.config.tool_timeout)
        if self.config.tavily_api_key:
            register_web_search(registry, self.config.tavily_api_key)
        return registry

    def _restore(self, session_id: str, idea: Optional[str], resume: bool):
        """Return (state, summary, resumed)."""
        saved = self.sessions.load(session_id)
        if saved is not None and not resume:
            # An explicit id that already exists is never overwritten silently
            resume = self.ui.ask_yes_no(f"Session {session_id} already exists. Resume it?")
        if resume:
            if saved is not None:
                logger.info(f"Resuming session {session_id} with {len(saved.state.turns)} turns")
                return saved.state, saved.summary, True
            logger.info(f"Session {session_id} not found; starting fresh")

        state = ConversationState(session_id=session_id, turns=[Turn.create(TurnRole.SYSTEM, START_DISCOVERY)])
        summary = DiscoverySummary(description=idea.strip()) if idea and idea.strip() else DiscoverySummary()
        self.sessions.create_or_update(state, summary)
        return state, summary, False

    def run(
        self,
        idea: Optional[str] = None,
        session_id: Optional[str] = None,
        resume: bool = False,
        max_turns: Optional[int] = None,
    ) -> DiscoveryRun:
        """
        Run discovery end to end.

        Args:
            idea: Seed idea; becomes the initial description of a fresh session
            session_id: Session to use (generated when omitted)
            resume: Load the session if it exists
            max_turns: Exchange budget (config.max_turns when omitted)
        """
        session_id = session_id or new_session_id()
        state, seed, resumed = self._restore(session_id, idea, resume)

        transcript = (
            TranscriptLogger(Path(self.config.log_dir).expanduser(), session_id)
            if self.config.log_dir else None
        )

        def on_turn(turn: Turn) -> None:
            self.sessions.append_turn(session_id, turn)
            if transcript:
                transcript.write(turn)

        on_chunk = None
        if self.config.store_backend == "convex":
            def on_chunk(chunk: str) -> None:
                self.sessions.append_assistant_chunk(session_id, chunk, self.descriptor.id)

        generator = QuestionGenerator(
            self.backend,
            relay=self.relay,
            researcher=Researcher(self.tools, ResearchCache()),
            history_window=self.config.history_window,
            session_id=session_id,
            agent_id=self.descriptor.id,
        )
        orchestrator = ConversationOrchestrator(
            self.ui,
            generator,
            AnswerExtractor(self.backend, history_window=self.config.history_window),
            max_turns=self.config.max_turns if max_turns is None else max_turns,
            on_turn=on_turn,
            on_chunk=on_chunk,
            stream=self.stream,
            agent=self.descriptor,
        )

        try:
            result = orchestrator.manage_conversation(seed, list(state.turns))
        finally:
            if transcript:
                transcript.close()

        summary = DiscoverySummarizer(self.backend).finalize(idea, result.summary)
        final_state = ConversationState(
            session_id=session_id,
            phase=ConversationPhase.DESIGN.value,
            turns=result.turns,
        )
        self.sessions.create_or_update(final_state, summary)

        return DiscoveryRun(session_id=session_id, resumed=resumed, result=result, summary=summary)

    def close(self) -> None:
        self.tools.shutdown()
        self.ui.close()


def turns_preview(turns: List[Turn], limit: int = 20) -> List[Turn]:
    """The last `limit` turns (at least one)."""
    return turns[-max(1, limit):]
