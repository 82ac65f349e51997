"""
DOCFLOW ORCHESTRATOR - The Discovery Loop

Drives a bounded question/answer dialogue until the summary is complete
enough to seed document generation.

State Machine:
    collecting -> done

    each exchange:
        complete?  ──yes──> done
           │no
           v
        top gap ─> question (streamed) ─> assistant Turn ─> on_turn
           │
           v
        user answer ─> user Turn ─> on_turn
           │
           v
        extract (model, else heuristic) ─> merge
           │
           v
        enough for docs? ──yes──> done
           │no
           v
        budget left? ──no──> done

Failure Semantics:
    Model failures never reach this loop; the generator and extractor convert
    them into fallbacks. The only exception that escapes is
    ConversationCancelled from the UI sink, which ends the whole attempt
    without persisting anything beyond what on_turn already wrote.
"""
import logging
from typing import Callable, List, Optional

import msgspec

from core.schemas import (
    AgentDescriptor,
    DiscoverySummary,
    DocumentGap,
    Turn,
    TurnRole,
    TargetDocument,
)
from agents.answer_extractor import AnswerExtractor, heuristic_extract
from agents.human_loop import ChatUI
from agents.question_generator import QuestionGenerator
from requirements.gap_analyzer import (
    WEIGHT_REQUIRED,
    WEIGHT_OPTIONAL,
    assess_completeness,
    compute_gaps,
    finalize_summary,
    is_enough_for_docs,
    merge_summary,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_TURNS = 12

TurnHook = Callable[[Turn], None]
ChunkHook = Callable[[str], None]


class ConversationResult(msgspec.Struct, kw_only=True, frozen=True):
    """Outcome of one orchestrated conversation."""
    turns: List[Turn]
    summary: DiscoverySummary
    exchanges: int = 0
    completed: bool = False             # False when the turn budget ran out


class ConversationOrchestrator:
    """
    Runs the discovery loop.

    Args:
        ui: User interface sink
        question_generator: Produces the next question
        answer_extractor: Model-backed extractor (heuristic fallback is built in)
        max_turns: Maximum number of question/answer exchanges
        on_turn: Called after every appended turn (persistence, transcripts)
        on_chunk: Called with every streamed question chunk
        stream: Stream questions to the UI as they are generated
        agent: Identity attached to assistant turns
    """

    def __init__(
        self,
        ui: ChatUI,
        question_generator: QuestionGenerator,
        answer_extractor: AnswerExtractor,
        max_turns: int = DEFAULT_MAX_TURNS,
        on_turn: Optional[TurnHook] = None,
        on_chunk: Optional[ChunkHook] = None,
        stream: bool = True,
        agent: Optional[AgentDescriptor] = None,
    ):
        self.ui = ui
        self.question_generator = question_generator
        self.answer_extractor = answer_extractor
        self.max_turns = max_turns
        self.on_turn = on_turn
        self.on_chunk = on_chunk
        self.stream = stream
        self.agent = agent

    @staticmethod
    def is_complete(summary: DiscoverySummary) -> bool:
        done, _ = assess_completeness(summary)
        return done or is_enough_for_docs(summary)

    def _append(self, turns: List[Turn], turn: Turn) -> None:
        turns.append(turn)
        if self.on_turn:
            self.on_turn(turn)

    def _next_gap(self, summary: DiscoverySummary, turns: List[Turn]) -> tuple:
        gaps = compute_gaps(summary, turns)
        if gaps:
            return gaps[0], gaps
        # Only reachable if the gap registry and completeness check disagree
        _, missing = assess_completeness(summary)
        requirement = missing[0]
        gap = DocumentGap(
            **msgspec.structs.asdict(requirement),
            target_document=TargetDocument.SPECS.value,
            weight=WEIGHT_REQUIRED if requirement.required else WEIGHT_OPTIONAL,
        )
        return gap, [gap]

    def _ask(self, gap: DocumentGap, gaps: List[DocumentGap], turns: List[Turn], summary: DiscoverySummary) -> str:
        if self.stream:
            return self.question_generator.ask_streaming(
                gap, turns, summary, self.ui, gaps=gaps, on_chunk=self.on_chunk,
            )
        question = self.question_generator.ask(gap, turns, summary, gaps=gaps)
        self.ui.show_assistant_text(question)
        return question

    def manage_conversation(
        self,
        seed: Optional[DiscoverySummary] = None,
        history: Optional[List[Turn]] = None,
    ) -> ConversationResult:
        """
        Run the loop from a seed summary and prior turns.

        Returns:
            ConversationResult with prior plus new turns and the finalized
            summary. Raises ConversationCancelled if the user aborts.
        """
        seed = seed or DiscoverySummary()
        turns: List[Turn] = list(history or [])
        current = seed
        exchanges = 0
        agent_id = self.agent.id if self.agent else None

        while True:
            if self.is_complete(current):
                break
            if exchanges >= self.max_turns:
                logger.info(f"Turn budget of {self.max_turns} exhausted before completion")
                break

            gap, gaps = self._next_gap(current, turns)
            logger.debug(f"Asking about {gap.target_document}/{gap.field_name} (weight {gap.weight})")

            question = self._ask(gap, gaps, turns, current)
            self._append(turns, Turn.create(TurnRole.ASSISTANT, question, agent_id=agent_id))

            answer = self.ui.prompt_text("You")
            self._append(turns, Turn.create(TurnRole.USER, answer))
            exchanges += 1

            fragment = self.answer_extractor.extract(turns, current, gaps)
            if fragment.is_empty():
                fragment = heuristic_extract(answer, current, gap)
            current = merge_summary(current, fragment)

            if is_enough_for_docs(current):
                break

        return ConversationResult(
            turns=turns,
            summary=finalize_summary(current, seed),
            exchanges=exchanges,
            completed=self.is_complete(current),
        )
