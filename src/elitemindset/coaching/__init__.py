"""Coaching pipeline: keyword classifier, lockdown text transforms and the
response composer with its session-scoped call-to-action policy.
"""

from .classifier import KEYWORD_TIERS, build_user_text, classify_state
from .composer import EscalationPolicy, ResponseComposer
from .service import DEFAULT_SESSION_KEY, CoachingService, build_coaching_service
from .templates import build_templates
from .text import ELLIPSIS, cap_length, clean, sanitize

__all__ = [
    "DEFAULT_SESSION_KEY",
    "ELLIPSIS",
    "KEYWORD_TIERS",
    "CoachingService",
    "EscalationPolicy",
    "ResponseComposer",
    "build_coaching_service",
    "build_templates",
    "build_user_text",
    "cap_length",
    "classify_state",
    "clean",
    "sanitize",
]
