"""
End-to-end discovery runs: DiscoveryAgent with an in-memory store, an
offline or scripted backend, and scripted answers.
"""
import pytest

from core.schemas import ConversationState, DiscoverySummary, Turn, TurnRole
from agents.discovery_agent import DiscoveryAgent, START_DISCOVERY, new_session_id, turns_preview
from agents.human_loop import ConversationCancelled
from infrastructure.config import DocflowConfig
from infrastructure.context_store import InMemoryContextStore, StoreConfigurationError
from infrastructure.session_manager import SessionManager


ANSWERS = [
    "build habits, keep streaks",
    "remote teams",
    "streaks, reminders",
]


@pytest.fixture
def sessions():
    return SessionManager(InMemoryContextStore())


@pytest.fixture
def config(tmp_path):
    return DocflowConfig(store="memory", max_turns=12, log_dir=str(tmp_path / "logs"))


def make_agent(config, ui, backend, sessions):
    return DiscoveryAgent(config, ui, backend=backend, sessions=sessions)


class TestFreshRun:
    def test_idea_seeds_description_and_completes(self, config, scripted_ui, offline_backend, sessions):
        ui = scripted_ui(answers=list(ANSWERS))
        agent = make_agent(config, ui, offline_backend, sessions)
        run = agent.run(idea="A habit tracker", session_id="conv-test")
        agent.close()

        assert not run.resumed
        assert run.result.completed
        assert run.result.exchanges == 3
        assert run.summary.description == "A habit tracker"
        assert run.summary.target_users == ["remote teams"]

        saved = sessions.load("conv-test")
        assert saved.state.phase == "design"
        assert saved.state.turns[0].content == START_DISCOVERY
        assert len(saved.state.turns) == 1 + 2 * 3
        assert saved.summary == run.summary

    def test_turns_persisted_as_they_happen(self, config, scripted_ui, offline_backend, sessions):
        ui = scripted_ui(answers=["build habits"], cancel_after=1)
        agent = make_agent(config, ui, offline_backend, sessions)

        with pytest.raises(ConversationCancelled):
            agent.run(idea="A habit tracker", session_id="conv-cancel")

        saved = sessions.load("conv-cancel")
        roles = [t.role for t in saved.state.turns]
        assert roles == ["system", "assistant", "user", "assistant"]
        assert saved.state.phase == "discovery"

    def test_generated_session_id(self, config, scripted_ui, offline_backend, sessions):
        run = make_agent(config, scripted_ui(), offline_backend, sessions).run(max_turns=0)
        assert run.session_id.startswith("conv-")
        assert len(run.session_id) == len(new_session_id())

    def test_transcript_written(self, config, scripted_ui, offline_backend, sessions, tmp_path):
        make_agent(config, scripted_ui(), offline_backend, sessions).run(session_id="conv-log", max_turns=1)
        files = list((tmp_path / "logs").glob("transcript_conv-log_*.jsonl"))
        assert len(files) == 1
        assert len(files[0].read_text().strip().splitlines()) == 2

    def test_summarizer_refines(self, config, scripted_ui, make_backend, sessions):
        backend = make_backend(replies=[
            "What should it achieve?",
            '{"objectives": ["habits"], "targetUsers": ["teams"], "features": ["streaks"]}',
            '{"description": "A habit tracker for remote teams"}',
        ])
        agent = DiscoveryAgent(config, scripted_ui(answers=["all of it"]), backend=backend, sessions=sessions, stream=False)
        run = agent.run(idea="habit tracker", session_id="conv-sum")
        assert run.summary.description == "A habit tracker for remote teams"
        assert run.result.summary.description == "habit tracker"


class TestResume:
    def test_resume_continues_saved_session(self, config, scripted_ui, offline_backend, sessions):
        state = ConversationState(
            session_id="conv-old",
            turns=[
                Turn.create(TurnRole.SYSTEM, START_DISCOVERY),
                Turn.create(TurnRole.ASSISTANT, "What is it?"),
                Turn.create(TurnRole.USER, "A habit tracker"),
            ],
        )
        sessions.create_or_update(state, DiscoverySummary(
            description="A habit tracker", objectives=["build habits"], target_users=["teams"],
        ))

        ui = scripted_ui(answers=["streaks"])
        run = make_agent(config, ui, offline_backend, sessions).run(session_id="conv-old", resume=True)

        assert run.resumed
        assert run.result.exchanges == 1
        assert run.summary.features == ["streaks"]
        assert run.result.turns[:3] == state.turns

    @pytest.mark.parametrize("answer,resumed", [("", True), ("y", True), ("n", False)])
    def test_existing_id_asks_before_resuming(self, config, scripted_ui, offline_backend, sessions, answer, resumed):
        sessions.create_or_update(
            ConversationState(session_id="conv-dup", turns=[Turn.create(TurnRole.SYSTEM, START_DISCOVERY)]),
            DiscoverySummary(description="Old idea"),
        )
        ui = scripted_ui(answers=[answer])
        run = make_agent(config, ui, offline_backend, sessions).run(idea="New idea", session_id="conv-dup", max_turns=0)

        assert ui.messages[0].startswith("Session conv-dup already exists")
        assert run.resumed is resumed
        assert run.summary.description == ("Old idea" if resumed else "New idea")

    def test_resume_unknown_starts_fresh(self, config, scripted_ui, offline_backend, sessions):
        run = make_agent(config, scripted_ui(), offline_backend, sessions).run(
            idea="x", session_id="conv-new", resume=True, max_turns=0,
        )
        assert not run.resumed
        assert sessions.load("conv-new").state.turns[0].content == START_DISCOVERY


class TestConfiguration:
    def test_convex_without_url_is_fatal(self, scripted_ui, offline_backend):
        with pytest.raises(StoreConfigurationError):
            DiscoveryAgent(DocflowConfig(store="convex"), scripted_ui(), backend=offline_backend)

    def test_turns_preview(self):
        turns = [Turn.create(TurnRole.USER, str(i)) for i in range(5)]
        assert [t.content for t in turns_preview(turns, 2)] == ["3", "4"]
        assert len(turns_preview(turns, 0)) == 1
