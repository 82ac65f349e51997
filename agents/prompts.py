"""
DOCFLOW INTELLIGENCE - Prompt Context Builders

Transforms conversation state into prompts for the discovery agents.
Each builder returns a (system_prompt, user_prompt) tuple.

Design:
- System prompts live in config/agents.yaml, keyed by agent role
- User prompts are assembled from the partial summary, the ranked gap list
  and a bounded window of recent turns
- The full Turn Log is never sent; only the last `window` turns
"""
import json
import yaml
from pathlib import Path
from typing import Dict, List, Optional, Any, Tuple

import msgspec

from core.schemas import DiscoverySummary, DocumentGap, Turn, TurnRole
from core.llm import schema_prompt


# =============================================================================
# CONFIG LOADER
# =============================================================================

_agent_config: Optional[Dict[str, Any]] = None

DEFAULT_HISTORY_WINDOW = 8


def get_agent_config() -> Dict[str, Any]:
    """Load agent configuration from agents.yaml."""
    global _agent_config
    if _agent_config is None:
        config_path = Path(__file__).parent.parent / "config" / "agents.yaml"
        with open(config_path, "r") as f:
            _agent_config = yaml.safe_load(f)
    return _agent_config


def get_agent_system_prompt(agent_role: str) -> str:
    """Get the system prompt for a specific agent role."""
    config = get_agent_config()
    agent_key = agent_role.lower()
    if agent_key not in config:
        raise ValueError(f"Unknown agent role: {agent_role}")
    return config[agent_key].get("system_prompt", "")


# =============================================================================
# CONTEXT FORMATTERS
# =============================================================================

def summary_json(summary: DiscoverySummary) -> str:
    """Compact camelCase JSON of the known fields."""
    return msgspec.json.encode(summary).decode("utf-8")


def format_history(history: List[Turn], window: int = DEFAULT_HISTORY_WINDOW) -> str:
    """Render the last `window` turns as 'ROLE: content' lines."""
    recent = history[-window:] if window > 0 else []
    return "\n".join(f"{t.role.upper()}: {t.content}" for t in recent)


def format_gaps(gaps: List[DocumentGap]) -> str:
    """One line per gap: weight, target document, label."""
    if not gaps:
        return "None"
    return "\n".join(
        f"- [{g.weight}] {g.target_document}: {g.label} ({g.field_name})"
        for g in gaps
    )


def latest_user_answer(history: List[Turn]) -> str:
    """Raw content of the most recent user turn ('' if none)."""
    for turn in reversed(history):
        if turn.role == TurnRole.USER.value:
            return turn.content
    return ""


# =============================================================================
# PROMPT BUILDERS
# =============================================================================

def build_question_prompt(
    gap: DocumentGap,
    gaps: List[DocumentGap],
    history: List[Turn],
    summary: DiscoverySummary,
    window: int = DEFAULT_HISTORY_WINDOW,
    research: Optional[List[str]] = None,
) -> Tuple[str, str]:
    """
    Build prompts for the interviewer (Question Generator).

    Args:
        gap: The focus gap to ask about now
        gaps: The full ranked gap list
        history: Turn Log
        summary: Partial summary
        window: Number of recent turns to include
        research: Optional background snippets for the focus topic

    Returns:
        Tuple of (system_prompt, user_prompt)
    """
    system_prompt = get_agent_system_prompt("interviewer")

    user_prompt = f"""# Known Fields
{summary_json(summary)}

# Outstanding Gaps (highest priority first)
{format_gaps(gaps)}

# Focus Gap
{gap.label} for {gap.target_document}.md (field: {gap.field_name})
Fallback question: {gap.prompt}

# Conversation So Far
{format_history(history, window) or "(no turns yet)"}
"""

    if research:
        user_prompt += "\n# Background Research\n"
        for snippet in research:
            user_prompt += f"- {snippet}\n"

    return system_prompt, user_prompt


def build_extraction_prompt(
    history: List[Turn],
    summary: DiscoverySummary,
    gaps: List[DocumentGap],
    window: int = DEFAULT_HISTORY_WINDOW,
) -> Tuple[str, str]:
    """Build prompts for the Answer Extractor."""
    system_prompt = get_agent_system_prompt("extractor")
    system_prompt += f"\n\nThe JSON object must match this schema:\n{schema_prompt(DiscoverySummary)}\n"

    user_prompt = f"""# Latest User Message
{latest_user_answer(history)}

# Outstanding Gaps
{format_gaps(gaps)}

# Known Summary
{summary_json(summary)}

# Recent Conversation
{format_history(history, window)}
"""
    return system_prompt, user_prompt


def build_summarizer_prompt(idea: Optional[str], partial: DiscoverySummary) -> Tuple[str, str]:
    """Build prompts for the Discovery Summarizer."""
    system_prompt = get_agent_system_prompt("summarizer")
    user_prompt = (
        f"Project idea: {idea or ''}\n"
        f"Partial summary: {json.dumps(msgspec.to_builtins(partial))}"
    )
    return system_prompt, user_prompt
