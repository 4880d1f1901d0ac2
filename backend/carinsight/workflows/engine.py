# /carinsight/workflows/engine.py

"""
Pure conversation engine.

This module holds the deterministic part of a conversation turn:
- Keyword triggers (exit, handoff, financing) that never depend on the classifier
- Non-destructive profile merging
- Stage transitions validated against the transition table

All functions are:
- Pure (no side effects)
- Deterministic (same input = same output)
- No I/O, no logging, no classifier calls
"""

import re
from typing import Iterable, Optional, TypedDict

from carinsight.models.conversation import CustomerProfile, ProfileDelta, Stage, parse_down_payment
from carinsight.utils.errors import InvalidTransitionError, UserInputError
from carinsight.workflows.definitions import (
    CLASSIFIER_STAGES,
    CONTINUING_STAGES,
    NEGOTIATION_CRITERIA,
    STAGE_TRANSITIONS,
)


class TriggerResult(TypedDict):
    """Outcome of the keyword checks for one inbound message."""
    exit: bool
    exit_keyword: Optional[str]
    handoff: bool
    handoff_trigger: Optional[str]


def find_keyword(text: str, keywords: Iterable[str]) -> Optional[str]:
    """
    Returns the first keyword contained in `text` (case-insensitive substring
    match), or None. "vendedores" therefore matches "vendedor".
    """
    if not text:
        return None
    lowered = text.lower()
    for keyword in keywords:
        keyword = keyword.strip().lower()
        if keyword and keyword in lowered:
            return keyword
    return None


def detect_exit(text: str, exit_keywords: Iterable[str]) -> bool:
    return find_keyword(text, exit_keywords) is not None


def detect_handoff(text: str, handoff_triggers: Iterable[str]) -> bool:
    return find_keyword(text, handoff_triggers) is not None


def evaluate_triggers(text: str, exit_keywords: Iterable[str], handoff_triggers: Iterable[str]) -> TriggerResult:
    """Runs both keyword checks. Both may fire on the same message."""
    exit_keyword = find_keyword(text, exit_keywords)
    handoff_trigger = find_keyword(text, handoff_triggers)
    return {
        "exit": exit_keyword is not None,
        "exit_keyword": exit_keyword,
        "handoff": handoff_trigger is not None,
        "handoff_trigger": handoff_trigger,
    }


def merge_profile(profile: CustomerProfile, delta: Optional[ProfileDelta]) -> CustomerProfile:
    """
    Returns a new profile where every non-null field of `delta` overwrites the
    current value. Fields the delta leaves as None are kept as they were.
    """
    if delta is None:
        return profile.model_copy()
    updates = {field: value for field, value in delta.model_dump().items() if value is not None}
    return profile.model_copy(update=updates)


def can_transition(current: Stage, target: Stage) -> bool:
    if current == target:
        return True
    return target in STAGE_TRANSITIONS.get(current, frozenset())


def transition(current: Stage, target: Stage) -> Stage:
    """Validates and returns the target stage. Raises InvalidTransitionError otherwise."""
    if not can_transition(current, target):
        raise InvalidTransitionError(f"Cannot move conversation from {current.value} to {target.value}")
    return target


def should_advance_to_negotiation(stage: Stage, profile: CustomerProfile, classifier_ready: bool) -> bool:
    """Discovery -> Negotiation needs a search criterion in the profile and classifier readiness."""
    if stage != Stage.DISCOVERY or not classifier_ready:
        return False
    return any(getattr(profile, field) is not None for field in NEGOTIATION_CRITERIA)


def continues(stage: Stage) -> bool:
    """Whether the bot keeps answering in this stage."""
    return stage in CONTINUING_STAGES


def uses_classifier(stage: Stage) -> bool:
    """Whether free-text turns in this stage go through the preference classifier."""
    return stage in CLASSIFIER_STAGES


_DOWN_PAYMENT_PATTERNS = (
    re.compile(r"sem entrada"),
    re.compile(r"entrada\s+(?:de|com|d[eo]s?)\s+((?:r\$\s*)?\d[\d.,]*\s*(?:mil|k)?)"),
    re.compile(r"((?:r\$\s*)?\d[\d.,]*\s*(?:mil|k)?)\s+(?:de|como|na)\s+entrada"),
)


def detect_financing(text: str, financing_keywords: Iterable[str]) -> bool:
    return find_keyword(text, financing_keywords) is not None


def extract_down_payment(text: str) -> Optional[float]:
    """
    Reads a down payment written in the message ("entrada de 20 mil",
    "R$ 15.000 de entrada", "sem entrada" -> 0). None when there is none.
    """
    if not text:
        return None
    lowered = text.lower()
    for pattern in _DOWN_PAYMENT_PATTERNS:
        match = pattern.search(lowered)
        if match is None:
            continue
        try:
            return parse_down_payment(match.group(1) if match.groups() else match.group(0))
        except UserInputError:
            return None
    return None
