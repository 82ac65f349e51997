"""
Tests for the Discovery Summarizer clean-up pass.
"""
from core.schemas import DiscoverySummary
from agents.summarizer import DiscoverySummarizer


PARTIAL = DiscoverySummary(
    description="habit app",
    objectives=["build habits"],
    features=["streaks"],
    extras={"platforms": "iOS"},
)


class TestDiscoverySummarizer:
    def test_failure_returns_partial_unchanged(self, offline_backend):
        assert DiscoverySummarizer(offline_backend).finalize("idea", PARTIAL) is PARTIAL

    def test_non_json_returns_partial(self, make_backend):
        backend = make_backend(replies=["Looks good to me."])
        assert DiscoverySummarizer(backend).finalize("idea", PARTIAL) is PARTIAL

    def test_refines_fields(self, make_backend):
        backend = make_backend(replies=[
            '{"description": "A habit tracker for remote teams", "targetUsers": ["remote teams"]}'
        ])
        result = DiscoverySummarizer(backend).finalize("habit app", PARTIAL)
        assert result.description == "A habit tracker for remote teams"
        assert result.target_users == ["remote teams"]
        assert result.objectives == ["build habits"]

    def test_blank_values_never_erase(self, make_backend):
        backend = make_backend(replies=['{"description": "", "features": []}'])
        result = DiscoverySummarizer(backend).finalize("habit app", PARTIAL)
        assert result.description == "habit app"
        assert result.features == ["streaks"]

    def test_extras_kept_from_partial(self, make_backend):
        backend = make_backend(replies=['{"extras": {"platforms": "web"}}'])
        result = DiscoverySummarizer(backend).finalize("habit app", PARTIAL)
        assert result.extra("platforms") == "iOS"

    def test_prompt_includes_idea_and_partial(self, make_backend):
        backend = make_backend(replies=["{}"])
        DiscoverySummarizer(backend).finalize("a habit app", PARTIAL)
        _, system, user = backend.calls[0]
        assert "Project idea: a habit app" in user
        assert '"features": ["streaks"]' in user
        assert "strict JSON" in system
