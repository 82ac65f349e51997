"""
DOCFLOW PROJECT DATA - Hand-off to Document Generation

Maps a finalized DiscoverySummary onto the input document generation
expects: a project name and slug, a concrete stack from the known stack
catalogue, and list fields defaulted to empty lists.
"""
import re
from typing import List, Optional

import msgspec

from core.schemas import DiscoverySummary
from requirements.gap_analyzer import PLACEHOLDER_DESCRIPTION

DEFAULT_PROJECT_NAME = "Project App"
DEFAULT_STACK = "nextjs-convex"


class StackInfo(msgspec.Struct, kw_only=True, frozen=True):
    name: str
    description: str = ""
    technologies: List[str] = []


STACKS: List[StackInfo] = [
    StackInfo(
        name="react-native-convex",
        description="React Native (Expo) with Convex backend",
        technologies=["react-native", "expo", "convex"],
    ),
    StackInfo(
        name="nextjs-convex",
        description="Next.js with Convex backend",
        technologies=["nextjs", "convex"],
    ),
    StackInfo(
        name="nextjs-supabase",
        description="Next.js with Supabase",
        technologies=["nextjs", "supabase"],
    ),
]


class ProjectData(msgspec.Struct, kw_only=True, rename="camel"):
    name: str
    project_slug: str
    description: str
    stack: str
    objectives: List[str] = []
    target_users: List[str] = []
    features: List[str] = []
    constraints: List[str] = []
    ai_provider: str = "local"
    model: Optional[str] = None


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower().strip()).strip("-")


def _find(stacks: List[StackInfo], predicate) -> Optional[str]:
    for stack in stacks:
        if predicate(stack.name.lower()):
            return stack.name
    return None


def choose_stack(suggestion: Optional[str], stacks: List[StackInfo] = STACKS) -> str:
    """
    Pick a catalogue stack for a free-text suggestion.

    Priority: exact name, prefix either way, substring either way, then
    keyword combinations (react native + convex, react native/expo,
    next + supabase, next, supabase alone, convex alone), then the first
    stack.
    """
    if not stacks:
        return DEFAULT_STACK
    if not suggestion or not suggestion.strip():
        return stacks[0].name
    s = suggestion.strip().lower()

    match = (
        _find(stacks, lambda n: n == s)
        or _find(stacks, lambda n: n.startswith(s) or s.startswith(n))
        or _find(stacks, lambda n: s in n or n in s)
    )
    if match:
        return match

    frontend = "next" in s or "react" in s
    rules = [
        (("react" in s and "native" in s and "convex" in s) or ("expo" in s and "convex" in s),
         lambda n: n == "react-native-convex"),
        ("react-native" in s or "expo" in s, lambda n: "react-native" in n),
        ("next" in s and "supabase" in s, lambda n: n == "nextjs-supabase"),
        ("next" in s, lambda n: "nextjs" in n),
        ("supabase" in s and not frontend, lambda n: "supabase" in n),
        ("convex" in s and not frontend, lambda n: "convex" in n),
    ]
    for applies, predicate in rules:
        if applies:
            match = _find(stacks, predicate)
            if match:
                return match

    return stacks[0].name


def build_project_data(
    summary: DiscoverySummary,
    provider: str = "local",
    model: Optional[str] = None,
    stacks: List[StackInfo] = STACKS,
) -> ProjectData:
    name = summary.name.strip() if summary.name and summary.name.strip() else DEFAULT_PROJECT_NAME
    return ProjectData(
        name=name,
        project_slug=slugify(name),
        description=summary.description or PLACEHOLDER_DESCRIPTION,
        stack=choose_stack(summary.stack_suggestion, stacks),
        objectives=list(summary.objectives or []),
        target_users=list(summary.target_users or []),
        features=list(summary.features or []),
        constraints=list(summary.constraints or []),
        ai_provider=provider,
        model=model,
    )
