import logging

from ..models import CoachingResponse, CoachingState
from ..services.session_store import SessionStore, build_session_store
from ..settings import Settings
from .classifier import build_user_text, classify_state
from .composer import EscalationPolicy, ResponseComposer
from .templates import build_templates

logger = logging.getLogger(__name__)

DEFAULT_SESSION_KEY = "default"


class CoachingService:
    """Classifies caller text and composes the coaching response for it."""

    def __init__(self, composer: ResponseComposer, store: SessionStore) -> None:
        self._composer = composer
        self._store = store

    async def classify_and_respond(
        self, user_text: str, session_key: str = DEFAULT_SESSION_KEY
    ) -> CoachingResponse:
        """Classify ``user_text`` and build the response for ``session_key``."""
        state = classify_state(user_text)
        logger.info("Classified session=%s state=%s", session_key, state.value)
        return await self._composer.compose(state, session_key or DEFAULT_SESSION_KEY)

    async def respond_to_fields(
        self,
        message: str | None = None,
        goal: str | None = None,
        context: str | None = None,
        session_key: str = DEFAULT_SESSION_KEY,
    ) -> CoachingResponse:
        """Concatenate the optional inbound fields and classify them."""
        return await self.classify_and_respond(
            build_user_text(message, goal, context), session_key
        )

    async def respond_to_state(
        self, state: CoachingState, session_key: str = DEFAULT_SESSION_KEY
    ) -> CoachingResponse:
        """Build the response for an explicitly chosen state, skipping classification."""
        logger.info("Explicit state session=%s state=%s", session_key, state.value)
        return await self._composer.compose(state, session_key or DEFAULT_SESSION_KEY)

    async def close(self) -> None:
        await self._store.close()


def build_coaching_service(
    settings: Settings, store: SessionStore | None = None
) -> CoachingService:
    """Wire store, policy, templates and composer from settings."""
    store = store if store is not None else build_session_store(settings)
    policy = EscalationPolicy(
        soft_threshold=settings.cta_soft_threshold,
        strong_threshold=settings.cta_strong_threshold,
        soft_text=settings.cta_soft_text,
        strong_text=settings.cta_strong_text,
    )
    composer = ResponseComposer(
        store=store,
        policy=policy,
        templates=build_templates(settings.public_origin),
        lockdown=settings.lockdown,
        message_max_chars=settings.message_max_chars,
        response_max_chars=settings.response_max_chars,
        image_mode=settings.image_mode,
        content_order=settings.content_order,
    )
    return CoachingService(composer=composer, store=store)
