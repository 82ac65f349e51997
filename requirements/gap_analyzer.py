"""
DOCFLOW GAP ANALYZER - What Do We Still Need To Know?

Deterministic gap analysis over a partially-filled DiscoverySummary.

Architecture:
- DocumentRequirement registry: the static fields a discovery conversation
  may collect, plus conditional entries triggered by the suggested stack
- Architecture requirements: extras-scoped details whose priority is boosted
  when the latest user message touches the topic
- compute_gaps(): weighted, deduplicated, stably-ordered list of DocumentGap
- assess_completeness() / is_enough_for_docs(): termination checks used by
  the orchestrator (the analyzer itself knows nothing about termination)
- merge_summary(): the non-destructive Summary Merger

Weights:
    10  required specs field missing
     9  "what does minimal mean" clarification / boosted platforms
     8  boosted architecture topic
     7  stack not chosen
     6  features present but not prioritised
     5  optional specs field missing
     4  architecture detail missing (default)

Design Philosophy:
1. PURE: no I/O, no model calls; identical inputs give identical output
2. EMPTY == MISSING: an empty list or blank string counts as absent
3. STABLE: ties keep insertion order so the head of the list is predictable
"""
from typing import Optional, Dict, Any, List, Tuple, Iterable

import msgspec

from core.schemas import (
    DiscoverySummary,
    DocumentRequirement,
    DocumentGap,
    Turn,
    TurnRole,
    TargetDocument,
    ValueType,
    RequirementScope,
)


# =============================================================================
# WEIGHTS
# =============================================================================

WEIGHT_REQUIRED = 10
WEIGHT_OPTIONAL = 5
WEIGHT_ARCHITECTURE = 4
WEIGHT_FEATURE_PRIORITIES = 6
WEIGHT_STACK = 7
WEIGHT_MINIMAL_CLARIFICATION = 9

PLACEHOLDER_DESCRIPTION = "Project generated via conversational mode"


# =============================================================================
# REQUIREMENT REGISTRY
# =============================================================================

REQUIREMENTS: List[DocumentRequirement] = [
    DocumentRequirement(
        key="description",
        label="Project description",
        prompt="Briefly describe your project in one or two sentences.",
        required=True,
    ),
    DocumentRequirement(
        key="objectives",
        label="Objectives",
        value_type=ValueType.LIST.value,
        prompt="What are the main objectives? (comma-separated)",
        required=True,
    ),
    DocumentRequirement(
        key="target_users",
        label="Target users",
        value_type=ValueType.LIST.value,
        prompt="Who are the target users? (comma-separated)",
        required=True,
    ),
    DocumentRequirement(
        key="features",
        label="Key features",
        value_type=ValueType.LIST.value,
        prompt="List the key features you want. (comma-separated)",
        required=True,
    ),
    DocumentRequirement(
        key="constraints",
        label="Constraints",
        value_type=ValueType.LIST.value,
        prompt="Any constraints or limitations? (comma-separated, optional)",
        required=False,
    ),
]

# (trigger keyword in stackSuggestion, requirement)
CONDITIONAL_REQUIREMENTS: List[Tuple[str, DocumentRequirement]] = [
    (
        "react-native",
        DocumentRequirement(
            key="extras",
            label="Mobile platforms",
            prompt="Which mobile platforms must ship first: iOS, Android, or both?",
            scope=RequirementScope.EXTRAS.value,
            extras_key="platforms",
        ),
    ),
    (
        "nextjs",
        DocumentRequirement(
            key="extras",
            label="Authentication strategy",
            prompt="How should users sign in to the web app (email/password, OAuth, magic link, none)?",
            scope=RequirementScope.EXTRAS.value,
            extras_key="authStrategy",
        ),
    ),
]

# (requirement, boost keywords, boosted weight)
ARCHITECTURE_REQUIREMENTS: List[Tuple[DocumentRequirement, Tuple[str, ...], int]] = [
    (
        DocumentRequirement(
            key="extras",
            label="Target platforms",
            prompt="Which platforms should we target (web, iOS, Android)?",
            scope=RequirementScope.EXTRAS.value,
            extras_key="platforms",
        ),
        ("mobile", "ios", "android"),
        9,
    ),
    (
        DocumentRequirement(
            key="extras",
            label="Deployment",
            prompt="Where and how do you plan to deploy and host the app?",
            scope=RequirementScope.EXTRAS.value,
            extras_key="deployment",
        ),
        ("deploy", "hosting"),
        8,
    ),
    (
        DocumentRequirement(
            key="extras",
            label="Data storage",
            prompt="What data needs to be stored, and do you have a preferred database?",
            scope=RequirementScope.EXTRAS.value,
            extras_key="dataStorage",
        ),
        ("database", "storage"),
        8,
    ),
    (
        DocumentRequirement(
            key="extras",
            label="Authentication strategy",
            prompt="How should users sign in (email/password, OAuth, magic link, none)?",
            scope=RequirementScope.EXTRAS.value,
            extras_key="authStrategy",
        ),
        ("auth", "login", "sign in"),
        8,
    ),
    (
        DocumentRequirement(
            key="extras",
            label="Testing approach",
            prompt="What level of automated testing do you want (unit, integration, end-to-end)?",
            scope=RequirementScope.EXTRAS.value,
            extras_key="testing",
        ),
        ("testing",),
        8,
    ),
    (
        DocumentRequirement(
            key="extras",
            label="CI/CD",
            prompt="Do you want a CI/CD pipeline, and on which provider (e.g. GitHub Actions)?",
            scope=RequirementScope.EXTRAS.value,
            extras_key="ciCd",
        ),
        ("ci", "cicd", "pipeline"),
        8,
    ),
]

FEATURE_PRIORITIES = DocumentRequirement(
    key="extras",
    label="Feature priorities",
    prompt="Which of these features matter most for the first iteration?",
    scope=RequirementScope.EXTRAS.value,
    extras_key="featurePriorities",
)

STACK_SELECTION = DocumentRequirement(
    key="stack_suggestion",
    label="Technology stack",
    prompt="Do you have a preferred technology stack (e.g. nextjs-convex, react-native-convex)?",
)

MINIMAL_CLARIFICATION = DocumentRequirement(
    key="extras",
    label="Meaning of minimal",
    prompt="You mentioned keeping it minimal. What does minimal mean for this first version?",
    scope=RequirementScope.EXTRAS.value,
    extras_key="minimalMeans",
)


# =============================================================================
# FIELD INSPECTION
# =============================================================================

def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def read_value(summary: DiscoverySummary, requirement: DocumentRequirement) -> Any:
    """Read the value a requirement refers to (None when absent)."""
    if requirement.scope == RequirementScope.EXTRAS.value:
        return summary.extra(requirement.extras_key or "")
    return getattr(summary, requirement.key, None)


def is_missing(summary: DiscoverySummary, requirement: DocumentRequirement) -> bool:
    """
    Check whether a requirement is unfilled.

    List-valued requirements are missing when absent or empty; scalar
    requirements are missing when absent or blank. A value of the wrong
    shape (e.g. a string where a list is expected) also counts as missing.
    """
    value = read_value(summary, requirement)
    if requirement.value_type == ValueType.LIST.value:
        return not isinstance(value, list) or len(value) == 0
    return _is_blank(value)


def applicable_requirements(summary: DiscoverySummary) -> List[DocumentRequirement]:
    """Static requirements plus any conditional ones triggered by the stack."""
    requirements = list(REQUIREMENTS)
    stack = (summary.stack_suggestion or "").lower()
    for trigger, requirement in CONDITIONAL_REQUIREMENTS:
        if trigger in stack:
            requirements.append(requirement)
    return requirements


def last_user_message(history: Iterable[Turn]) -> str:
    """Lower-cased content of the most recent user turn ('' if none)."""
    for turn in reversed(list(history)):
        if turn.role == TurnRole.USER.value:
            return turn.content.lower()
    return ""


# =============================================================================
# GAP COMPUTATION
# =============================================================================

def _gap(requirement: DocumentRequirement, target: TargetDocument, weight: int) -> DocumentGap:
    return DocumentGap(
        **msgspec.structs.asdict(requirement),
        target_document=target.value,
        weight=weight,
    )


def compute_gaps(summary: DiscoverySummary, history: List[Turn]) -> List[DocumentGap]:
    """
    Compute the ordered list of outstanding information gaps.

    Args:
        summary: Current (partial) discovery summary
        history: Turn log; only the most recent user turn is inspected

    Returns:
        Gaps sorted by descending weight, ties in insertion order, with no
        two gaps sharing the same (target_document, field) key
    """
    latest = last_user_message(history)
    gaps: List[DocumentGap] = []

    # Specs document: one gap per missing requirement
    for requirement in applicable_requirements(summary):
        if is_missing(summary, requirement):
            weight = WEIGHT_REQUIRED if requirement.required else WEIGHT_OPTIONAL
            gaps.append(_gap(requirement, TargetDocument.SPECS, weight))

    # Architecture document: extras details, boosted by the latest answer
    for requirement, keywords, boosted in ARCHITECTURE_REQUIREMENTS:
        if is_missing(summary, requirement):
            weight = boosted if any(k in latest for k in keywords) else WEIGHT_ARCHITECTURE
            gaps.append(_gap(requirement, TargetDocument.ARCHITECTURE, weight))

    # Features document: priorities only make sense once features exist
    if summary.features and is_missing(summary, FEATURE_PRIORITIES):
        gaps.append(_gap(FEATURE_PRIORITIES, TargetDocument.FEATURES, WEIGHT_FEATURE_PRIORITIES))

    # Stack document
    if is_missing(summary, STACK_SELECTION):
        gaps.append(_gap(STACK_SELECTION, TargetDocument.STACK, WEIGHT_STACK))

    # Clarify "minimal" as soon as the user says it
    if "minimal" in latest and is_missing(summary, MINIMAL_CLARIFICATION):
        gaps.append(_gap(MINIMAL_CLARIFICATION, TargetDocument.SPECS, WEIGHT_MINIMAL_CLARIFICATION))

    seen = set()
    unique: List[DocumentGap] = []
    for gap in gaps:
        if gap.dedup_key in seen:
            continue
        seen.add(gap.dedup_key)
        unique.append(gap)

    # sorted() is stable
    return sorted(unique, key=lambda g: g.weight, reverse=True)


# =============================================================================
# COMPLETENESS
# =============================================================================

def assess_completeness(summary: DiscoverySummary) -> Tuple[bool, List[DocumentRequirement]]:
    """
    Check required fields.

    Returns:
        (done, missing) where missing lists every unfilled requirement in
        registry order and done means no *required* requirement is missing
    """
    missing = [r for r in applicable_requirements(summary) if is_missing(summary, r)]
    done = not any(r.required for r in missing)
    return done, missing


def is_enough_for_docs(summary: DiscoverySummary) -> bool:
    """
    Fast path: description plus at least one objective, target user and feature.

    Stack and architecture details are deliberately not part of this check.
    """
    return (
        not _is_blank(summary.description)
        and bool(summary.objectives)
        and bool(summary.target_users)
        and bool(summary.features)
    )


# =============================================================================
# SUMMARY MERGER
# =============================================================================

def merge_summary(current: DiscoverySummary, update: DiscoverySummary) -> DiscoverySummary:
    """
    Merge an update fragment into the running summary.

    A field from `update` replaces the current value only when it is a
    non-blank string or a non-empty list. `extras` is merged key by key
    (update wins per key, blank values ignored). Fields absent from the
    update are never removed.
    """
    changes: Dict[str, Any] = {}
    for field in msgspec.structs.fields(DiscoverySummary):
        if field.name == "extras":
            continue
        value = getattr(update, field.name)
        if not _is_blank(value):
            changes[field.name] = list(value) if isinstance(value, list) else value

    if update.extras:
        merged = dict(current.extras or {})
        for key, value in update.extras.items():
            if not _is_blank(value):
                merged[key] = value
        changes["extras"] = merged

    if not changes:
        return current
    return msgspec.structs.replace(current, **changes)


def finalize_summary(summary: DiscoverySummary, seed: Optional[DiscoverySummary] = None) -> DiscoverySummary:
    """
    Default the hand-off fields to safe values.

    description falls back to the seed description, then to a generic
    placeholder. List fields stay absent when empty; hand-off consumers
    read them as empty lists.
    """
    seed = seed or DiscoverySummary()
    description = summary.description
    if _is_blank(description):
        description = seed.description if not _is_blank(seed.description) else PLACEHOLDER_DESCRIPTION
    return msgspec.structs.replace(summary, description=description)

