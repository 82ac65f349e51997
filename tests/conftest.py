"""
Pytest configuration and shared fixtures for the Docflow test suite.
"""
import sys
from pathlib import Path
from typing import List, Optional

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from core.llm import LanguageModelBackend, LLMResult, FailureReason, TextStream
from agents.human_loop import ChatUI, ConversationCancelled


BACKEND_ENV_VARS = (
    "AI_PROVIDER", "AI_MODEL", "AI_TEMPERATURE", "AI_DRY_RUN",
    "OPENAI_API_KEY", "ANTHROPIC_API_KEY", "TAVILY_API_KEY",
    "DOCFLOW_CONFIG", "DOCFLOW_MAX_TURNS", "DOCFLOW_HISTORY_WINDOW",
    "DOCFLOW_SESSIONS_DIR", "DOCFLOW_STORE", "DOCFLOW_USE_CONVEX_AI",
    "DOCFLOW_TOOL_TIMEOUT", "DOCFLOW_LOG_LEVEL", "DOCFLOW_LOG_DIR",
    "CONVEX_URL", "NEXT_PUBLIC_CONVEX_URL", "EXPO_PUBLIC_CONVEX_URL",
    "DOCFLOW_CONVEX_ADMIN_URL",
)


@pytest.fixture(autouse=True)
def clean_backend_env(monkeypatch):
    """Make sure a developer's shell never selects a live backend or store."""
    for name in BACKEND_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield


# =============================================================================
# FAKES
# =============================================================================

class FakeBackend(LanguageModelBackend):
    """
    Scripted backend.

    `replies` are consumed by complete() in order; once exhausted, every call
    fails with `failure`. `stream_chunks` feeds stream().
    """

    provider = "openai"

    def __init__(
        self,
        replies: Optional[List[str]] = None,
        stream_chunks: Optional[List[str]] = None,
        failure: FailureReason = FailureReason.NO_CREDENTIALS,
        model: str = "fake-model",
    ):
        self.replies = list(replies or [])
        self.stream_chunks = list(stream_chunks or [])
        self.failure = failure
        self.model = model
        self.calls = []

    @property
    def available(self):
        return True

    def complete(self, system, user, max_tokens=800, temperature=None):
        self.calls.append(("complete", system, user))
        if self.replies:
            return LLMResult.success(self.replies.pop(0))
        return LLMResult.failed(self.failure)

    def stream(self, system, user, max_tokens=200, temperature=None):
        self.calls.append(("stream", system, user))
        if not self.stream_chunks:
            return TextStream(failure=self.failure)
        return TextStream(iter(self.stream_chunks))


class ScriptedChatUI(ChatUI):
    """Chat sink that answers from a script and records what was shown."""

    def __init__(self, answers: Optional[List[str]] = None, cancel_after: Optional[int] = None):
        self.answers = list(answers or [])
        self.cancel_after = cancel_after
        self.prompts = 0
        self.messages: List[str] = []
        self._current: Optional[List[str]] = None

    def prompt_text(self, label="You"):
        if self.cancel_after is not None and self.prompts >= self.cancel_after:
            raise ConversationCancelled("Operation cancelled.")
        self.prompts += 1
        return self.answers.pop(0) if self.answers else ""

    def print_assistant_header(self, label="AI"):
        self._current = []

    def append_assistant_chunk(self, text):
        self._current.append(text)

    def end_assistant_message(self):
        self.messages.append("".join(self._current or []))
        self._current = None


@pytest.fixture
def offline_backend():
    """A backend that fails every call."""
    return FakeBackend()


@pytest.fixture
def scripted_ui():
    """Factory for scripted chat sinks: scripted_ui(answers=[...])."""
    return ScriptedChatUI


@pytest.fixture
def make_backend():
    """Factory for scripted backends: make_backend(replies=[...], stream_chunks=[...])."""
    return FakeBackend
