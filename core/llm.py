"""
DOCFLOW INTELLIGENCE - Language Model Backends

Provides the "complete text" / "stream text" capability used by the
discovery engine, behind one interface with three variants:

    OpenAICompatibleBackend     openai/<model> via LiteLLM
    AnthropicCompatibleBackend  anthropic/<model> via LiteLLM
    LocalBackend                offline: every call reports NO_CREDENTIALS

The variant is chosen once by create_backend() from configuration; callers
never re-dispatch on a provider string.

Design:
- Calls never raise. complete() returns an LLMResult carrying either text or
  a FailureReason; stream() yields chunks and simply stops on failure, with
  the reason available afterwards on the stream object.
- Transient provider errors (rate limit, connection) are retried with
  tenacity before being converted to a failure result.
- Structured answers are pulled out of free text with extract_json_block()
  and validated with msgspec against the target Struct, mirroring the JSON-mode
  contract used for structured generation.

Architecture:
    caller
      |
      v
    backend.complete(system, user)          backend.stream(system, user)
      |                                        |
      v                                        v
    [credential check] -> NO_CREDENTIALS     [credential check]
      |                                        |
      v                                        v
    litellm.completion (retry x3)            litellm.completion(stream=True)
      |                                        |
      v                                        v
    LLMResult(text | failure)                TextStream -> chunks, .failure
"""
import os
import json
import logging
from enum import Enum
from typing import Optional, Iterator, List, Dict, Type

import litellm
import msgspec
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

logger = logging.getLogger(__name__)


# =============================================================================
# RESULTS
# =============================================================================

class Provider(str, Enum):
    """Configured language-model provider."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    LOCAL = "local"


class FailureReason(str, Enum):
    """Why a backend call produced no usable text."""
    NO_CREDENTIALS = "no_credentials"
    DISABLED = "disabled"
    NETWORK = "network"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    MALFORMED = "malformed"
    EMPTY = "empty"


class LLMResult(msgspec.Struct, kw_only=True, frozen=True):
    """Outcome of a single completion: text on success, a reason otherwise."""
    text: str = ""
    failure: Optional[str] = None       # FailureReason.value
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, text: str) -> "LLMResult":
        return cls(text=text)

    @classmethod
    def failed(cls, reason: FailureReason, detail: str = "") -> "LLMResult":
        return cls(failure=reason.value, detail=detail)


class LLMError(Exception):
    """Base exception for provider failures inside the adapter."""
    pass


DEFAULT_MODELS: Dict[str, str] = {
    Provider.OPENAI.value: "gpt-4o",
    Provider.ANTHROPIC.value: "claude-3-5-sonnet-20241022",
    Provider.LOCAL.value: "",
}


# =============================================================================
# STREAMS
# =============================================================================

class TextStream:
    """
    Iterable of text chunks from a streaming call.

    Iteration never raises; if the producer fails, iteration ends and
    `failure` holds the reason. `text` accumulates everything yielded.
    """

    def __init__(self, producer: Optional[Iterator[str]] = None, failure: Optional[FailureReason] = None):
        self._producer = producer
        self.failure: Optional[str] = failure.value if failure else None
        self.detail = ""
        self.text = ""

    def __iter__(self) -> Iterator[str]:
        if self._producer is None:
            return
        try:
            for chunk in self._producer:
                if not chunk:
                    continue
                self.text += chunk
                yield chunk
        except Exception as e:
            self.failure = _classify(e).value
            self.detail = str(e)
            logger.debug(f"Stream ended early: {e}")
        finally:
            self._producer = None


# =============================================================================
# HELPERS
# =============================================================================

def _classify(error: Exception) -> FailureReason:
    """Map a provider exception onto a FailureReason."""
    if isinstance(error, LLMError):
        return FailureReason.MALFORMED
    if isinstance(error, litellm.RateLimitError):
        return FailureReason.RATE_LIMITED
    if isinstance(error, litellm.Timeout):
        return FailureReason.TIMEOUT
    return FailureReason.NETWORK


def extract_json_block(text: str) -> Optional[str]:
    """
    Return the first well-formed JSON object embedded in free text.

    Handles ```json fences and leading/trailing prose. Braces inside string
    literals are ignored while scanning. Returns None when no candidate
    object parses.
    """
    if not text:
        return None
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    candidate = text[start:i + 1]
                    try:
                        json.loads(candidate)
                        return candidate
                    except ValueError:
                        break
        start = text.find("{", start + 1)
    return None


def schema_prompt(schema: Type) -> str:
    """Render the JSON Schema of a msgspec type for inclusion in a prompt."""
    return json.dumps(msgspec.json.schema(schema), indent=2)


# =============================================================================
# BACKENDS
# =============================================================================

class LanguageModelBackend:
    """
    Interface shared by every backend variant.

    Attributes:
        provider: Provider.value of the variant
        model: model identifier (without provider prefix)
    """

    provider: str = Provider.LOCAL.value
    model: str = ""

    @property
    def available(self) -> bool:
        """True when the backend has what it needs to make calls."""
        return False

    def complete(
        self,
        system: str,
        user: str,
        max_tokens: int = 800,
        temperature: Optional[float] = None,
    ) -> LLMResult:
        raise NotImplementedError

    def stream(
        self,
        system: str,
        user: str,
        max_tokens: int = 200,
        temperature: Optional[float] = None,
    ) -> TextStream:
        raise NotImplementedError


class LocalBackend(LanguageModelBackend):
    """Offline mode. Every call reports missing credentials."""

    provider = Provider.LOCAL.value

    def __init__(self, model: str = ""):
        self.model = model

    def complete(self, system, user, max_tokens=800, temperature=None) -> LLMResult:
        return LLMResult.failed(FailureReason.NO_CREDENTIALS, "local backend")

    def stream(self, system, user, max_tokens=200, temperature=None) -> TextStream:
        return TextStream(failure=FailureReason.NO_CREDENTIALS)


class LiteLLMBackend(LanguageModelBackend):
    """
    Shared LiteLLM plumbing for hosted providers.

    Subclasses set `provider` and may adjust message construction.
    """

    def __init__(
        self,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        temperature: float = 0.2,
        timeout: float = 60.0,
    ):
        self.model = model or DEFAULT_MODELS[self.provider]
        self.api_key = api_key
        self.temperature = temperature
        self.timeout = timeout

        # Disable LiteLLM's verbose logging
        litellm.set_verbose = False

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    @property
    def litellm_model(self) -> str:
        """LiteLLM wants provider-prefixed model names."""
        return f"{self.provider}/{self.model}"

    def _messages(self, system: str, user: str) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]

    def _params(self, max_tokens: int, temperature: Optional[float]) -> Dict:
        return {
            "temperature": self.temperature if temperature is None else temperature,
            "max_tokens": max_tokens,
        }

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type((litellm.RateLimitError, litellm.APIConnectionError)),
        reraise=True,
    )
    def _completion(self, **kwargs):
        return litellm.completion(
            model=self.litellm_model,
            api_key=self.api_key,
            timeout=self.timeout,
            # Ignore unsupported params for provider flexibility
            drop_params=True,
            **kwargs,
        )

    def complete(self, system, user, max_tokens=800, temperature=None) -> LLMResult:
        if not self.available:
            return LLMResult.failed(FailureReason.NO_CREDENTIALS, f"no API key for {self.provider}")
        try:
            response = self._completion(
                messages=self._messages(system, user),
                **self._params(max_tokens, temperature),
            )
            if not getattr(response, "choices", None):
                raise LLMError("completion response had no choices")
            content = response.choices[0].message.content or ""
        except Exception as e:
            reason = _classify(e)
            logger.info(f"{self.provider} completion failed ({reason.value}): {e}")
            return LLMResult.failed(reason, str(e))

        content = content.strip()
        if not content:
            return LLMResult.failed(FailureReason.EMPTY)
        return LLMResult.success(content)

    def stream(self, system, user, max_tokens=200, temperature=None) -> TextStream:
        if not self.available:
            return TextStream(failure=FailureReason.NO_CREDENTIALS)
        return TextStream(self._stream_chunks(system, user, max_tokens, temperature))

    def _stream_chunks(self, system, user, max_tokens, temperature) -> Iterator[str]:
        response = litellm.completion(
            model=self.litellm_model,
            api_key=self.api_key,
            timeout=self.timeout,
            drop_params=True,
            messages=self._messages(system, user),
            stream=True,
            **self._params(max_tokens, temperature),
        )
        for chunk in response:
            delta = chunk.choices[0].delta
            text = getattr(delta, "content", None)
            if text:
                yield text


class OpenAICompatibleBackend(LiteLLMBackend):
    """OpenAI chat models. o1-* models take no system role and no temperature."""

    provider = Provider.OPENAI.value

    def _is_reasoning_model(self) -> bool:
        return self.model.startswith("o1-")

    def _messages(self, system: str, user: str) -> List[Dict[str, str]]:
        if self._is_reasoning_model():
            return [{"role": "user", "content": f"{system}\n\n{user}"}]
        return super()._messages(system, user)

    def _params(self, max_tokens: int, temperature: Optional[float]) -> Dict:
        params = super()._params(max_tokens, temperature)
        if self._is_reasoning_model():
            params.pop("temperature")
        return params


class AnthropicCompatibleBackend(LiteLLMBackend):
    """Anthropic messages models."""

    provider = Provider.ANTHROPIC.value


# =============================================================================
# FACTORY
# =============================================================================

_API_KEY_ENV = {
    Provider.OPENAI.value: "OPENAI_API_KEY",
    Provider.ANTHROPIC.value: "ANTHROPIC_API_KEY",
}


def create_backend(
    provider: str,
    model: Optional[str] = None,
    api_key: Optional[str] = None,
    temperature: float = 0.2,
    dry_run: bool = False,
) -> LanguageModelBackend:
    """
    Select the backend variant once, from configuration.

    Args:
        provider: "openai", "anthropic" or "local" (anything else is local)
        model: Model id without provider prefix (provider default if omitted)
        api_key: Explicit key; falls back to OPENAI_API_KEY / ANTHROPIC_API_KEY
        temperature: Sampling temperature
        dry_run: Force the offline backend regardless of provider

    Returns:
        A LanguageModelBackend. Hosted variants without a key are returned
        as-is and report NO_CREDENTIALS on every call.
    """
    provider = (provider or "").strip().lower()
    if dry_run or provider not in _API_KEY_ENV:
        return LocalBackend(model or "")

    key = api_key or os.getenv(_API_KEY_ENV[provider], "").strip() or None
    if provider == Provider.OPENAI.value:
        return OpenAICompatibleBackend(model=model, api_key=key, temperature=temperature)
    return AnthropicCompatibleBackend(model=model, api_key=key, temperature=temperature)
