import re
from typing import Tuple

from ..models import CoachingState

# Evaluated in order; the first tier with a matching keyword wins.
KEYWORD_TIERS: Tuple[Tuple[CoachingState, Tuple[str, ...]], ...] = (
    (
        CoachingState.OVERWHELMED,
        (
            "overwhelm",
            "too much",
            "paralyz",
            "spinning",
            "can't focus",
            "cant focus",
            "losing focus",
        ),
    ),
    (
        CoachingState.STUCK,
        (
            "stuck",
            "procrast",
            "avoid",
            "can't start",
            "cant start",
            "scroll",
            "emails",
            "inbox",
        ),
    ),
    (
        CoachingState.READY_TO_ACT,
        ("ready", "let's do", "lets do", "start now"),
    ),
    (
        CoachingState.UNCLEAR_DIRECTION,
        ("unclear", "which", "don't know what", "dont know what"),
    ),
)

DEFAULT_STATE = CoachingState.UNCLEAR_DIRECTION

_WHITESPACE_RE = re.compile(r"\s+")


def normalize(text: str | None) -> str:
    """Lowercase, straighten curly apostrophes and collapse whitespace."""
    t = (text or "").replace("’", "'").replace("‘", "'")
    return _WHITESPACE_RE.sub(" ", t).strip().lower()


def classify_state(text: str | None) -> CoachingState:
    """Map free-form text to a coaching state. Never raises."""
    t = normalize(text)
    if not t:
        return DEFAULT_STATE
    for state, keywords in KEYWORD_TIERS:
        if any(keyword in t for keyword in keywords):
            return state
    return DEFAULT_STATE


def build_user_text(
    message: str | None = None,
    goal: str | None = None,
    context: str | None = None,
) -> str:
    """Join the optional inbound fields into one classifier input."""
    return " ".join(part for part in (message, goal, context) if part)
