from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Union


class CoachingState(str, Enum):
    """The four coaching buckets a caller's text is classified into."""

    OVERWHELMED = "overwhelmed"
    STUCK = "stuck"
    READY_TO_ACT = "ready_to_act"
    UNCLEAR_DIRECTION = "unclear_direction"


@dataclass(frozen=True)
class StateTemplate:
    """Fixed message and image reference for one coaching state."""

    state: CoachingState
    image: str
    message: str


@dataclass
class Session:
    """Per-caller interaction counter."""

    key: str
    interaction_count: int = 0
    last_state: CoachingState | None = None
    last_seen: float = 0.0


@dataclass(frozen=True)
class TextItem:
    text: str
    type: str = field(default="text", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass(frozen=True)
class ImageItem:
    reference: str
    mime_type: str = "image/png"
    type: str = field(default="image", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "reference": self.reference, "mimeType": self.mime_type}


ContentItem = Union[TextItem, ImageItem]
ContentList = List[ContentItem]


@dataclass
class CoachingResponse:
    """Result of one classified request: state, session snapshot and content."""

    state: CoachingState
    session: Session
    content: ContentList = field(default_factory=list)

    @property
    def text(self) -> str:
        """Return the text of the (single) text item."""
        for item in self.content:
            if isinstance(item, TextItem):
                return item.text
        return ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "session_id": self.session.key,
            "interaction_count": self.session.interaction_count,
            "content": [item.to_dict() for item in self.content],
        }
