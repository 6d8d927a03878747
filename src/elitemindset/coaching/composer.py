import logging
from dataclasses import dataclass
from typing import Literal, Mapping

from ..models import (
    CoachingResponse,
    CoachingState,
    ContentList,
    ImageItem,
    StateTemplate,
    TextItem,
)
from ..services.session_store import SessionStore
from .templates import build_templates, image_mime_type, is_absolute_url
from .text import cap_length, sanitize

logger = logging.getLogger(__name__)

ImageMode = Literal["item", "inline", "none"]
ContentOrder = Literal["text_first", "image_first"]


@dataclass(frozen=True)
class EscalationPolicy:
    """Which call-to-action suffix, if any, a given interaction count earns.

    Soft wording applies from ``soft_threshold`` up to (not including)
    ``strong_threshold``; strong wording from ``strong_threshold`` on. Either
    threshold may be ``None`` to disable that tier.
    """

    soft_threshold: int | None = 3
    strong_threshold: int | None = 5
    soft_text: str = ""
    strong_text: str = ""

    def suffix_for(self, interaction_count: int) -> str | None:
        if self.strong_threshold is not None and interaction_count >= self.strong_threshold:
            return self.strong_text
        if self.soft_threshold is not None and interaction_count >= self.soft_threshold:
            return self.soft_text
        return None


class ResponseComposer:
    """Turns a classified state into the content list returned to the caller."""

    def __init__(
        self,
        store: SessionStore,
        policy: EscalationPolicy,
        templates: Mapping[CoachingState, StateTemplate] | None = None,
        lockdown: bool = True,
        message_max_chars: int = 140,
        response_max_chars: int = 260,
        image_mode: ImageMode = "item",
        content_order: ContentOrder = "text_first",
    ) -> None:
        self._store = store
        self._policy = policy
        self._templates = templates if templates is not None else build_templates()
        self._lockdown = lockdown
        self._message_max_chars = message_max_chars
        self._response_max_chars = response_max_chars
        self._image_mode = image_mode
        self._content_order = content_order

    def template_for(self, state: CoachingState) -> StateTemplate:
        template = self._templates.get(state)
        if template is None:
            template = self._templates[CoachingState.UNCLEAR_DIRECTION]
        return template

    def render_text(self, template: StateTemplate, interaction_count: int) -> str:
        """Build the sanitized, capped message with any CTA suffix appended."""
        body = template.message
        if self._lockdown:
            body = sanitize(body)
        body = cap_length(body, self._message_max_chars)

        suffix = self._policy.suffix_for(interaction_count)
        if suffix:
            if self._lockdown:
                body = f"{body} {sanitize(suffix)}"
            else:
                body = f"{body}\n\n{suffix}"
            body = cap_length(body, self._response_max_chars)
        return body

    def build_content(self, template: StateTemplate, text: str) -> ContentList:
        image_first = self._content_order == "image_first"

        if self._image_mode == "inline" and is_absolute_url(template.image):
            markdown = f"![]({template.image})"
            text = f"{markdown} {text}" if image_first else f"{text} {markdown}"
            return [TextItem(text=text)]

        content: ContentList = [TextItem(text=text)]
        if self._image_mode == "item":
            image = ImageItem(
                reference=template.image,
                mime_type=image_mime_type(template.image),
            )
            content = [image, *content] if image_first else [*content, image]
        return content

    async def compose(self, state: CoachingState, session_key: str) -> CoachingResponse:
        template = self.template_for(state)
        session = await self._store.record_interaction(session_key, template.state)
        text = self.render_text(template, session.interaction_count)
        logger.debug(
            "Composed %s response for session %s (interaction %d)",
            template.state.value,
            session_key,
            session.interaction_count,
        )
        return CoachingResponse(
            state=template.state,
            session=session,
            content=self.build_content(template, text),
        )
