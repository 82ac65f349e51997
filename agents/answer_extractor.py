"""
DOCFLOW ANSWER EXTRACTOR - From Free Text to Summary Fields

Two extractors, both returning an update fragment (a DiscoverySummary with
only the fields the answer supplies):

- AnswerExtractor: asks the language-model backend for a JSON fragment and
  validates it with msgspec. Any failure gives an empty fragment.
- heuristic_extract(): deterministic keyword rules plus a direct mapping of
  the answer into the field that was just asked about. Used by the
  orchestrator whenever the model fragment is empty.

Neither extractor removes data. Fragments are applied with merge_summary().
"""
import re
import json
import logging
from typing import Any, Dict, List, Optional

import msgspec

from core.llm import LanguageModelBackend, extract_json_block
from core.schemas import (
    DiscoverySummary,
    DocumentGap,
    Turn,
    ValueType,
    RequirementScope,
)
from agents.prompts import build_extraction_prompt, DEFAULT_HISTORY_WINDOW
from requirements.gap_analyzer import compute_gaps

logger = logging.getLogger(__name__)

EXTRACTION_MAX_TOKENS = 600

# camelCase wire names of the list fields
_LIST_KEYS = ("objectives", "targetUsers", "features", "constraints")


def split_list(text: str) -> List[str]:
    """Split a comma-separated answer into trimmed, non-empty items."""
    if not text or not isinstance(text, str):
        return []
    return [s.strip() for s in text.split(",") if s.strip()]


def coerce_fragment(data: Dict[str, Any]) -> DiscoverySummary:
    """
    Build a fragment from loosely-shaped JSON.

    Comma-separated strings are accepted for list fields, non-string list
    items and unknown keys are dropped, and a non-object `extras` is ignored.
    Raises msgspec.ValidationError when a field cannot be coerced.
    """
    cleaned: Dict[str, Any] = {}
    for key, value in data.items():
        if value is None:
            continue
        if key in _LIST_KEYS:
            if isinstance(value, str):
                value = split_list(value)
            elif isinstance(value, list):
                value = [str(v).strip() for v in value if isinstance(v, (str, int, float)) and str(v).strip()]
            else:
                continue
        elif key == "extras" and not isinstance(value, dict):
            continue
        cleaned[key] = value
    return msgspec.convert(cleaned, type=DiscoverySummary)


# =============================================================================
# MODEL EXTRACTION
# =============================================================================

class AnswerExtractor:
    """Model-backed extraction of the latest answer."""

    def __init__(self, backend: LanguageModelBackend, history_window: int = DEFAULT_HISTORY_WINDOW):
        self.backend = backend
        self.history_window = history_window

    def extract(
        self,
        history: List[Turn],
        summary: DiscoverySummary,
        gaps: Optional[List[DocumentGap]] = None,
    ) -> DiscoverySummary:
        """Return the update fragment for the latest user turn (empty on any failure)."""
        if gaps is None:
            gaps = compute_gaps(summary, history)
        system, user = build_extraction_prompt(history, summary, gaps, self.history_window)

        result = self.backend.complete(system, user, max_tokens=EXTRACTION_MAX_TOKENS, temperature=0.0)
        if not result.ok:
            logger.debug(f"Extraction unavailable: {result.failure}")
            return DiscoverySummary()

        block = extract_json_block(result.text)
        if block is None:
            logger.debug("Extraction response had no JSON object")
            return DiscoverySummary()

        try:
            return coerce_fragment(json.loads(block))
        except (msgspec.ValidationError, ValueError) as e:
            logger.debug(f"Extraction response rejected: {e}")
            return DiscoverySummary()


# =============================================================================
# HEURISTIC EXTRACTION
# =============================================================================

DEFAULT_MINIMAL_MEANS = "Smallest usable first version: core flows only, no optional integrations"
DEFAULT_TESTING = "Unit tests for core logic plus a few end-to-end smoke tests"
DEFAULT_CI_CD = "CI pipeline that runs lint and tests on every push, deploys from main"

# (keywords, summary attribute) for list fields set from comma-split answers
_LIST_RULES = (
    (("feature",), "features"),
    (("objective", "goal"), "objectives"),
    (("user", "audience", "target"), "target_users"),
    (("constraint",), "constraints"),
)

# (keyword, extras key, default text)
_DEFAULT_RULES = (
    ("minimal", "minimalMeans", DEFAULT_MINIMAL_MEANS),
    ("testing", "testing", DEFAULT_TESTING),
    ("ci/cd", "ciCd", DEFAULT_CI_CD),
)

def _platforms(text: str) -> Optional[str]:
    ios = re.search(r"\bios\b", text) is not None
    android = re.search(r"\bandroid\b", text) is not None
    if ios and android:
        return "iOS and Android"
    if ios:
        return "iOS"
    if android:
        return "Android"
    return None


def heuristic_extract(
    answer: str,
    summary: DiscoverySummary,
    gap: Optional[DocumentGap] = None,
) -> DiscoverySummary:
    """
    Deterministic extraction from the latest answer.

    Args:
        answer: The raw user answer
        summary: Current summary (fixed defaults never replace its extras)
        gap: The gap the answer responds to; the answer is mapped into its
            field (comma-split for list fields)

    Returns:
        Update fragment; empty for a blank answer
    """
    answer = (answer or "").strip()
    if not answer:
        return DiscoverySummary()

    text = answer.lower()
    fields: Dict[str, Any] = {}
    extras: Dict[str, Any] = {}

    # The answer responds to the asked gap
    if gap is not None:
        if gap.scope == RequirementScope.EXTRAS.value:
            extras[gap.field_name] = answer
        elif gap.value_type == ValueType.LIST.value:
            fields[gap.key] = split_list(answer)
        else:
            fields[gap.key] = answer

    # Keyword rules set list fields, but never the one the asked gap just filled
    for keywords, attr in _LIST_RULES:
        if attr in fields or not any(k in text for k in keywords):
            continue
        fields[attr] = split_list(answer)

    platforms = _platforms(text)
    if platforms:
        extras["platforms"] = platforms
    if "react native" in text or "react-native" in text:
        extras["framework"] = "React Native (Expo)"
    elif "next.js" in text or "nextjs" in text:
        extras["framework"] = "Next.js"
    # Fixed defaults never replace a value the summary already has
    for keyword, key, default in _DEFAULT_RULES:
        if keyword in text and key not in extras and summary.extra(key) is None:
            extras[key] = default

    if extras:
        fields["extras"] = extras
    return DiscoverySummary(**fields)
