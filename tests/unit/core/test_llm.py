"""
Tests for language-model backends - selection, results, streaming, JSON blocks.

LiteLLM is patched; no network access.
"""
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from core.llm import (
    AnthropicCompatibleBackend,
    FailureReason,
    LocalBackend,
    OpenAICompatibleBackend,
    TextStream,
    create_backend,
    extract_json_block,
)


def completion_response(text):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


def stream_chunk(text):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])


class TestCreateBackend:
    """Backend variant is chosen once from configuration."""

    def test_local_provider(self):
        assert isinstance(create_backend("local"), LocalBackend)

    def test_unknown_provider_is_local(self):
        assert isinstance(create_backend("mystery"), LocalBackend)

    def test_dry_run_forces_local(self):
        assert isinstance(create_backend("openai", api_key="sk-test", dry_run=True), LocalBackend)

    def test_openai_defaults(self):
        backend = create_backend("OpenAI", api_key="sk-test")
        assert isinstance(backend, OpenAICompatibleBackend)
        assert backend.model == "gpt-4o"
        assert backend.litellm_model == "openai/gpt-4o"
        assert backend.available

    def test_anthropic_defaults(self):
        backend = create_backend("anthropic", api_key="sk-ant")
        assert isinstance(backend, AnthropicCompatibleBackend)
        assert backend.model == "claude-3-5-sonnet-20241022"

    def test_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-env")
        assert create_backend("anthropic").api_key == "sk-env"

    def test_missing_key_reports_no_credentials(self):
        backend = create_backend("openai")
        assert not backend.available
        result = backend.complete("sys", "user")
        assert not result.ok
        assert result.failure == FailureReason.NO_CREDENTIALS.value


class TestLocalBackend:
    def test_complete_fails_closed(self):
        result = LocalBackend().complete("s", "u")
        assert result.failure == FailureReason.NO_CREDENTIALS.value
        assert result.text == ""

    def test_stream_yields_nothing(self):
        stream = LocalBackend().stream("s", "u")
        assert list(stream) == []
        assert stream.failure == FailureReason.NO_CREDENTIALS.value


class TestLiteLLMComplete:
    """complete() converts provider outcomes into LLMResult values."""

    def test_success(self):
        backend = OpenAICompatibleBackend(api_key="sk-test")
        with patch("core.llm.litellm.completion", return_value=completion_response("  What is it?  ")) as mocked:
            result = backend.complete("system", "user", max_tokens=50)
        assert result.ok
        assert result.text == "What is it?"
        kwargs = mocked.call_args.kwargs
        assert kwargs["model"] == "openai/gpt-4o"
        assert kwargs["max_tokens"] == 50
        assert kwargs["messages"][0] == {"role": "system", "content": "system"}

    def test_empty_content(self):
        backend = AnthropicCompatibleBackend(api_key="k")
        with patch("core.llm.litellm.completion", return_value=completion_response("")):
            result = backend.complete("s", "u")
        assert result.failure == FailureReason.EMPTY.value

    def test_exception_becomes_failure(self):
        backend = AnthropicCompatibleBackend(api_key="k")
        with patch("core.llm.litellm.completion", side_effect=RuntimeError("boom")):
            result = backend.complete("s", "u")
        assert not result.ok
        assert result.failure == FailureReason.NETWORK.value
        assert "boom" in result.detail

    def test_response_without_choices_is_malformed(self):
        backend = OpenAICompatibleBackend(api_key="sk-test")
        with patch("core.llm.litellm.completion", return_value=SimpleNamespace(choices=[])):
            result = backend.complete("s", "u")
        assert result.failure == FailureReason.MALFORMED.value

    def test_o1_models_merge_system_and_drop_temperature(self):
        backend = OpenAICompatibleBackend(model="o1-mini", api_key="sk-test")
        with patch("core.llm.litellm.completion", return_value=completion_response("ok")) as mocked:
            backend.complete("SYSTEM", "USER")
        kwargs = mocked.call_args.kwargs
        assert kwargs["messages"] == [{"role": "user", "content": "SYSTEM\n\nUSER"}]
        assert "temperature" not in kwargs


class TestStreaming:
    def test_chunks_accumulate(self):
        backend = OpenAICompatibleBackend(api_key="sk-test")
        chunks = [stream_chunk("What "), stream_chunk(None), stream_chunk("next?")]
        with patch("core.llm.litellm.completion", return_value=iter(chunks)):
            stream = backend.stream("s", "u")
            received = list(stream)
        assert received == ["What ", "next?"]
        assert stream.text == "What next?"
        assert stream.failure is None

    def test_failure_mid_stream_stops_quietly(self):
        def producer():
            yield "partial "
            raise ConnectionError("reset")

        stream = TextStream(producer())
        assert list(stream) == ["partial "]
        assert stream.text == "partial "
        assert stream.failure == FailureReason.NETWORK.value


class TestJsonBlocks:
    def test_plain_object(self):
        assert extract_json_block('{"a": 1}') == '{"a": 1}'

    def test_fenced_with_prose(self):
        text = 'Here you go:\n```json\n{"features": ["chat"]}\n```\nThanks'
        assert extract_json_block(text) == '{"features": ["chat"]}'

    def test_nested_and_braces_in_strings(self):
        text = 'x {"extras": {"note": "use } carefully"}} y'
        assert extract_json_block(text) == '{"extras": {"note": "use } carefully"}}'

    def test_skips_invalid_candidate(self):
        assert extract_json_block('{not json} then {"ok": true}') == '{"ok": true}'

    def test_none_when_absent(self):
        assert extract_json_block("no json here") is None
        assert extract_json_block("") is None
