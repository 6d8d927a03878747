import json
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles

from .coaching.service import DEFAULT_SESSION_KEY, CoachingService, build_coaching_service
from .logging_config import setup_server_logging
from .mcp_server import SESSION_HEADER, build_mcp_server
from .models import ImageItem, TextItem
from .settings import Settings, get_settings

LEGACY_MODEL_NAME = "elitemindset-lockdown-v2"


def _cors_origins_list(origins: str) -> list[str]:
    """Parse CORS_ORIGINS into a list."""
    if not origins or origins.strip() == "*":
        return ["*"]
    return [o.strip() for o in origins.split(",") if o.strip()]


def _last_message_text(messages: list[Any]) -> str:
    """Extract the text of the last message in a legacy ``messages`` list."""
    if not messages:
        return ""
    last = messages[-1]
    if not isinstance(last, dict):
        return ""
    content = last.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, dict):
        return str(content.get("text") or "")
    return ""


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the HTTP app: health routes, legacy endpoints and the MCP endpoint."""
    settings = settings or get_settings()
    logger = setup_server_logging(settings.log_dir, settings.log_level)

    service: CoachingService = build_coaching_service(settings)
    mcp_server = build_mcp_server(service, settings)
    mcp_app = mcp_server.streamable_http_app()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run the MCP session manager; close the session store on shutdown."""
        logger.info("EliteMindset server starting (lockdown=%s)", settings.lockdown)
        async with mcp_server.session_manager.run():
            yield
        logger.info("Shutting down...")
        await service.close()

    app = FastAPI(
        title="EliteMindset MCP Server",
        version=settings.service_version,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.coaching_service = service
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins_list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "MCP-Session-Id"],
        expose_headers=["MCP-Session-Id"],
    )

    @app.get("/", response_class=PlainTextResponse)
    async def root() -> str:
        return "ok"

    @app.get("/health")
    @app.get("/healthz")
    async def health() -> dict[str, Any]:
        """Health check for load balancers and monitoring."""
        return {"status": "ok", "version": settings.service_version}

    @app.post("/messages")
    async def legacy_messages(request: Request) -> JSONResponse:
        """Legacy JSON endpoint: classify the last message and return the content list.

        Expected Input (JSON):
            {
                "messages": [{"role": str, "content": {"type": "text", "text": str}}],
                "session_id": str - optional session identifier
            }
        """
        try:
            payload = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error("Invalid /messages payload (not JSON): %s", e)
            return JSONResponse({"error": "Invalid JSON payload"}, status_code=400)

        messages = payload.get("messages") if isinstance(payload, dict) else None
        if not isinstance(messages, list):
            return JSONResponse({"error": "'messages' must be an array"}, status_code=400)

        session_key = str(
            payload.get("session_id")
            or request.headers.get(SESSION_HEADER)
            or DEFAULT_SESSION_KEY
        )
        try:
            response = await service.classify_and_respond(
                _last_message_text(messages), session_key
            )
        except Exception as e:
            logger.exception("/messages error: %s", e)
            return JSONResponse({"error": "Internal server error"}, status_code=500)

        body = response.to_dict()
        body["model"] = LEGACY_MODEL_NAME
        return JSONResponse(body)

    @app.websocket("/ws/coach")
    async def coach_ws(websocket: WebSocket) -> None:
        """WebSocket endpoint: client sends { session_id, message, goal, context }.

        Response Format:
            - {"type": "state", "state": str} - classified state
            - {"type": "token", "data": str} - response text, word by word
            - {"type": "image", "reference": str, "mimeType": str} - state image
            - {"type": "done", "session_id": str, "interaction_count": int}
            - {"type": "error", "data": str} - error message if applicable
        """
        await websocket.accept()
        try:
            raw = await websocket.receive_text()
            try:
                payload = json.loads(raw)
            except json.JSONDecodeError as e:
                logger.error("Invalid WS payload (not JSON): %s", e)
                await websocket.send_json({"type": "error", "data": "Invalid JSON payload"})
                await websocket.close()
                return
            if not isinstance(payload, dict):
                await websocket.send_json({"type": "error", "data": "Payload must be an object"})
                await websocket.close()
                return

            session_id = str(payload.get("session_id") or DEFAULT_SESSION_KEY)
            logger.info("WS coach start session_id=%s", session_id)

            try:
                response = await service.respond_to_fields(
                    str(payload.get("message") or ""),
                    str(payload.get("goal") or ""),
                    str(payload.get("context") or ""),
                    session_id,
                )
            except Exception as e:
                logger.exception("Composition failed for session %s: %s", session_id, e)
                await websocket.send_json({"type": "error", "data": "Internal server error"})
                await websocket.close()
                return

            await websocket.send_json({"type": "state", "state": response.state.value})
            for item in response.content:
                if isinstance(item, TextItem):
                    words = item.text.split(" ")
                    for i, word in enumerate(words):
                        token = word if i == len(words) - 1 else f"{word} "
                        await websocket.send_json({"type": "token", "data": token})
                elif isinstance(item, ImageItem):
                    await websocket.send_json(item.to_dict())
            await websocket.send_json(
                {
                    "type": "done",
                    "session_id": session_id,
                    "interaction_count": response.session.interaction_count,
                }
            )
            await websocket.close()

        except WebSocketDisconnect:
            logger.info("WS disconnect")

    if settings.images_dir.is_dir():
        app.mount("/images", StaticFiles(directory=settings.images_dir), name="images")

    # Mounted last so the routes above take precedence; serves /mcp.
    app.mount("/", mcp_app)

    return app


app = create_app()
