"""
DOCFLOW DISCOVERY SUMMARIZER - Final Clean-Up Pass

Asks the backend once for a cleaned, cohesive version of the accumulated
summary. This pass is always safe: on any failure the input comes back
unchanged, and a successful response can only refine fields (blank values
are ignored and extras are kept from the input).
"""
import json
import logging
from typing import Optional

import msgspec

from core.llm import LanguageModelBackend, extract_json_block
from core.schemas import DiscoverySummary
from agents.answer_extractor import coerce_fragment
from agents.prompts import build_summarizer_prompt
from requirements.gap_analyzer import merge_summary

logger = logging.getLogger(__name__)

SUMMARY_MAX_TOKENS = 800


class DiscoverySummarizer:
    def __init__(self, backend: LanguageModelBackend):
        self.backend = backend

    def finalize(self, seed_idea: Optional[str], partial: DiscoverySummary) -> DiscoverySummary:
        system, user = build_summarizer_prompt(seed_idea, partial)
        result = self.backend.complete(system, user, max_tokens=SUMMARY_MAX_TOKENS)
        if not result.ok:
            logger.debug(f"Summarizer skipped: {result.failure}")
            return partial

        block = extract_json_block(result.text)
        if block is None:
            logger.debug("Summarizer response had no JSON object")
            return partial

        try:
            cleaned = coerce_fragment(json.loads(block))
        except (msgspec.ValidationError, ValueError) as e:
            logger.debug(f"Summarizer response rejected: {e}")
            return partial

        # Extras are not part of the clean-up contract
        cleaned = msgspec.structs.replace(cleaned, extras=None)
        return merge_summary(partial, cleaned)
