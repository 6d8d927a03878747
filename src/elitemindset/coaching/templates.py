import mimetypes
from typing import Dict, Mapping
from urllib.parse import urlsplit

from ..models import CoachingState, StateTemplate

STATE_MESSAGES: Dict[CoachingState, str] = {
    CoachingState.OVERWHELMED: (
        "You're feeling scattered right now, and that's okay. Set a 5 minute "
        "timer and do one tiny task that lowers stress immediately."
    ),
    CoachingState.STUCK: (
        "Being stuck is a decision point, not a failure. Open the task and do "
        "the first 2 minutes only, then stop."
    ),
    CoachingState.READY_TO_ACT: (
        "You're ready to move forward. Write your next micro action in 7 "
        "words, then do it now."
    ),
    CoachingState.UNCLEAR_DIRECTION: (
        "Not knowing the path is useful information. Pick one outcome for the "
        "next 15 minutes and ignore everything else."
    ),
}

STATE_IMAGES: Dict[CoachingState, str] = {
    CoachingState.OVERWHELMED: "overwhelmed.png",
    CoachingState.STUCK: "stuck.png",
    CoachingState.READY_TO_ACT: "ready-to-act.png",
    CoachingState.UNCLEAR_DIRECTION: "unclear-direction.png",
}


def is_absolute_url(reference: str) -> bool:
    return reference.startswith(("http://", "https://"))


def image_reference(image: str, public_origin: str = "") -> str:
    """Resolve an image file name to an absolute URL when an origin is configured."""
    origin = public_origin.strip().rstrip("/")
    if not origin or is_absolute_url(image):
        return image
    return f"{origin}/images/{image}"


def origin_for_url(url: str) -> str:
    """Return the http(s) origin of a ws, wss, http or https URL, or "" if unknown."""
    parts = urlsplit(url.strip())
    scheme = {"ws": "http", "wss": "https"}.get(parts.scheme, parts.scheme)
    if scheme not in ("http", "https") or not parts.netloc:
        return ""
    return f"{scheme}://{parts.netloc}"


def image_mime_type(reference: str) -> str:
    mime, _ = mimetypes.guess_type(reference)
    return mime or "image/png"


def build_templates(public_origin: str = "") -> Mapping[CoachingState, StateTemplate]:
    """Build the immutable state -> template table for this process."""
    return {
        state: StateTemplate(
            state=state,
            image=image_reference(STATE_IMAGES[state], public_origin),
            message=STATE_MESSAGES[state],
        )
        for state in CoachingState
    }
