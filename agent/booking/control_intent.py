"""
Deterministic control-intent classification.

Short messages (up to MAX_CONTROL_TOKENS words after normalization) are matched
against curated phrase sets and a few regex patterns. Longer messages are never
classified here, which keeps free-form text away from accidental matches.
"""

import re
from enum import Enum

MAX_CONTROL_TOKENS = 12

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


class ControlIntent(str, Enum):
    AFFIRMATIVE = "affirmative"
    NEGATIVE = "negative"
    CANCEL = "cancel"
    AGENT = "agent"


AFFIRMATIVE_PHRASES = frozenset({
    "yes",
    "y",
    "yeah",
    "yep",
    "ok",
    "okay",
    "confirm",
    "confirmed",
    "book it",
    "go ahead",
    "proceed",
    "retry",
    "retry booking",
    "continue",
    "lets go",
    "that works",
    "sounds good",
})

AFFIRMATIVE_PATTERNS = (
    re.compile(r"\byes\b.*\b(please|go ahead|confirm|book|proceed|continue)\b"),
    re.compile(r"\b(ok|okay|alright)\b.*\b(confirm|book|go ahead|proceed|continue)\b"),
    re.compile(r"\b(please|kindly)\b.*\b(confirm|book|proceed|continue)\b"),
)

NEGATIVE_PHRASES = frozenset({
    "no",
    "nope",
    "nah",
    "cancel",
    "not this one",
    "show others",
    "show me others",
    "different one",
})

NEGATIVE_PATTERNS = (
    re.compile(r"\bno\b.*\b(show|another|different|other)\b"),
    re.compile(r"\b(show|give)\b.*\b(other|another|different)\b"),
    re.compile(r"\bnot\b.*\bthis one\b"),
)

CANCEL_PHRASES = frozenset({
    "cancel",
    "cancel booking",
    "never mind",
    "nevermind",
    "forget it",
})

AGENT_PHRASES = frozenset({
    "agent",
    "talk to agent",
    "speak to agent",
    "human",
    "talk to human",
})


def normalize_control_text(text: str) -> str:
    """Lowercase, replace punctuation with spaces and collapse whitespace."""
    lowered = text.strip().lower()
    without_punctuation = _PUNCTUATION.sub(" ", lowered)
    return _WHITESPACE.sub(" ", without_punctuation).strip()


def _is_short(normalized: str) -> bool:
    return bool(normalized) and len(normalized.split(" ")) <= MAX_CONTROL_TOKENS


def _matches(text: str, phrases: frozenset[str], patterns: tuple[re.Pattern[str], ...] = ()) -> bool:
    normalized = normalize_control_text(text)
    if not _is_short(normalized):
        return False
    if normalized in phrases:
        return True
    return any(pattern.search(normalized) for pattern in patterns)


def is_affirmative(text: str) -> bool:
    return _matches(text, AFFIRMATIVE_PHRASES, AFFIRMATIVE_PATTERNS)


def is_negative(text: str) -> bool:
    return _matches(text, NEGATIVE_PHRASES, NEGATIVE_PATTERNS)


def is_cancel(text: str) -> bool:
    return _matches(text, CANCEL_PHRASES)


def is_agent_request(text: str) -> bool:
    return _matches(text, AGENT_PHRASES)


def classify_control_intent(text: str) -> ControlIntent | None:
    """
    Classify a message as a control intent.

    Agent requests and cancellations take precedence over the generic
    affirmative/negative sets ("cancel" is in both the cancel and negative
    sets and resolves to CANCEL).

    Returns:
        The matching ControlIntent, or None when nothing matches
    """
    if is_agent_request(text):
        return ControlIntent.AGENT
    if is_cancel(text):
        return ControlIntent.CANCEL
    if is_affirmative(text):
        return ControlIntent.AFFIRMATIVE
    if is_negative(text):
        return ControlIntent.NEGATIVE
    return None
