"""
Tests for the ConversationOrchestrator discovery loop.

Every test runs fully offline: scripted answers, scripted or failing
backends, heuristic extraction.
"""
import pytest

from core.schemas import AgentDescriptor, DiscoverySummary, Turn, TurnRole
from agents.answer_extractor import AnswerExtractor
from agents.human_loop import ConversationCancelled
from agents.orchestrator import ConversationOrchestrator
from agents.question_generator import QuestionGenerator
from requirements.gap_analyzer import PLACEHOLDER_DESCRIPTION


def build(backend, ui, **kwargs):
    return ConversationOrchestrator(
        ui=ui,
        question_generator=QuestionGenerator(backend),
        answer_extractor=AnswerExtractor(backend),
        **kwargs,
    )


COMPLETE = DiscoverySummary(
    description="Habit tracker",
    objectives=["build habits"],
    target_users=["remote teams"],
    features=["streaks"],
)


class TestTermination:
    """The loop stops on completeness or on the turn budget."""

    def test_complete_seed_asks_nothing(self, offline_backend, scripted_ui):
        ui = scripted_ui()
        result = build(offline_backend, ui).manage_conversation(seed=COMPLETE)
        assert result.exchanges == 0
        assert result.turns == []
        assert result.completed
        assert ui.prompts == 0

    def test_budget_of_three(self, offline_backend, scripted_ui):
        ui = scripted_ui(answers=["", "", "", "", ""])
        result = build(offline_backend, ui, max_turns=3).manage_conversation()

        assert result.exchanges == 3
        assert ui.prompts == 3
        roles = [t.role for t in result.turns]
        assert roles == ["assistant", "user"] * 3
        assert not result.completed

    def test_budget_exhausted_still_finalizes(self, offline_backend, scripted_ui):
        result = build(offline_backend, scripted_ui(), max_turns=1).manage_conversation()
        assert result.summary.description == PLACEHOLDER_DESCRIPTION

    def test_seed_description_preferred_over_placeholder(self, offline_backend, scripted_ui):
        seed = DiscoverySummary(description="My idea")
        result = build(offline_backend, scripted_ui(), max_turns=0).manage_conversation(seed=seed)
        assert result.summary.description == "My idea"

    def test_stops_once_enough_for_docs(self, offline_backend, scripted_ui):
        # Each heuristic answer fills the gap it was asked about
        ui = scripted_ui(answers=[
            "A habit tracker",
            "build habits, keep streaks",
            "remote teams",
            "streaks, reminders",
            "never used",
        ])
        result = build(offline_backend, ui, max_turns=12).manage_conversation()

        assert result.completed
        assert result.exchanges == 4
        assert result.summary.description == "A habit tracker"
        assert result.summary.features == ["streaks", "reminders"]
        assert ui.answers == ["never used"]


class TestExtraction:
    def test_model_fragment_merged(self, make_backend, scripted_ui):
        backend = make_backend(replies=[
            "What is it?",
            '{"description": "Habit app", "objectives": ["habits"], '
            '"targetUsers": ["teams"], "features": ["streaks"]}',
        ])
        ui = scripted_ui(answers=["a habit app for teams with streaks"])
        result = build(backend, ui, stream=False).manage_conversation()

        assert result.exchanges == 1
        assert result.summary.target_users == ["teams"]
        assert ui.messages == ["What is it?"]

    def test_heuristic_when_model_silent(self, offline_backend, scripted_ui):
        ui = scripted_ui(answers=["We need iOS and Android"])
        result = build(offline_backend, ui, max_turns=1).manage_conversation()
        assert "Android" in result.summary.extra("platforms")

    def test_prior_values_preserved(self, offline_backend, scripted_ui):
        seed = DiscoverySummary(description="Habit tracker", extras={"deployment": "Vercel"})
        ui = scripted_ui(answers=["build habits"])
        result = build(offline_backend, ui, max_turns=1).manage_conversation(seed=seed)
        assert result.summary.description == "Habit tracker"
        assert result.summary.objectives == ["build habits"]
        assert result.summary.extra("deployment") == "Vercel"


class TestHooks:
    def test_on_turn_sees_every_turn_in_order(self, offline_backend, scripted_ui):
        seen = []
        ui = scripted_ui(answers=["one", "two"])
        result = build(offline_backend, ui, max_turns=2, on_turn=seen.append).manage_conversation()
        assert seen == result.turns
        assert len(seen) == 4

    def test_on_chunk_forwarded_when_streaming(self, make_backend, scripted_ui):
        chunks = []
        backend = make_backend(stream_chunks=["Tell ", "me more"])
        build(backend, scripted_ui(), max_turns=1, on_chunk=chunks.append).manage_conversation()
        assert chunks == ["Tell ", "me more"]

    def test_assistant_turns_carry_agent_id(self, offline_backend, scripted_ui):
        agent = AgentDescriptor(id="discovery-default", name="Discovery Agent", role="discovery")
        result = build(offline_backend, scripted_ui(), max_turns=1, agent=agent).manage_conversation()
        assistant, user = result.turns
        assert assistant.agent_id == "discovery-default"
        assert user.agent_id is None

    def test_history_is_continued(self, offline_backend, scripted_ui):
        history = [Turn.create(TurnRole.SYSTEM, "Start discovery")]
        result = build(offline_backend, scripted_ui(), max_turns=1).manage_conversation(history=history)
        assert result.turns[0] == history[0]
        assert len(result.turns) == 3
        assert len(history) == 1


class TestCancellation:
    def test_cancel_propagates_after_persisting_question(self, offline_backend, scripted_ui):
        seen = []
        ui = scripted_ui(answers=["A habit tracker"], cancel_after=1)
        orchestrator = build(offline_backend, ui, max_turns=5, on_turn=seen.append)

        with pytest.raises(ConversationCancelled):
            orchestrator.manage_conversation()

        assert [t.role for t in seen] == ["assistant", "user", "assistant"]
