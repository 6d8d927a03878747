"""EliteMindset MCP server: exposes the coaching pipeline as FastMCP tools."""

import base64
import logging
from pathlib import Path
from typing import List, Literal, Union

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from mcp.types import ImageContent, ResourceLink, TextContent

from .coaching.service import DEFAULT_SESSION_KEY, CoachingService
from .coaching.templates import is_absolute_url
from .models import CoachingResponse, CoachingState, ImageItem, TextItem
from .settings import Settings

logger = logging.getLogger(__name__)

SERVER_NAME = "elitemindset-mcp"
SESSION_HEADER = "mcp-session-id"

McpContent = Union[TextContent, ImageContent, ResourceLink]


def resolve_session_key(ctx: Context | None, explicit: str = "") -> str:
    """Pick the session key: explicit argument, transport header, connection, default."""
    if explicit and explicit.strip():
        return explicit.strip()
    if ctx is None:
        return DEFAULT_SESSION_KEY
    try:
        request_context = ctx.request_context
    except ValueError:
        # Called outside of an MCP request (e.g. directly in-process).
        return DEFAULT_SESSION_KEY
    request = getattr(request_context, "request", None)
    headers = getattr(request, "headers", None)
    if headers is not None:
        header_value = headers.get(SESSION_HEADER)
        if header_value:
            return header_value
    return f"conn-{id(request_context.session):x}"


def _image_block(item: ImageItem, images_dir: Path) -> McpContent | None:
    filename = item.reference.rsplit("/", 1)[-1]
    path = images_dir / filename
    if filename and path.is_file():
        data = base64.b64encode(path.read_bytes()).decode("ascii")
        return ImageContent(type="image", data=data, mimeType=item.mime_type)
    if is_absolute_url(item.reference):
        return ResourceLink(
            type="resource_link",
            uri=item.reference,
            name=filename,
            mimeType=item.mime_type,
        )
    logger.debug("Image %s not found under %s; omitting", item.reference, images_dir)
    return None


def to_mcp_content(response: CoachingResponse, images_dir: Path) -> List[McpContent]:
    """Convert a coaching response into MCP content blocks, preserving order."""
    blocks: List[McpContent] = []
    for item in response.content:
        if isinstance(item, TextItem):
            blocks.append(TextContent(type="text", text=item.text))
        elif isinstance(item, ImageItem):
            block = _image_block(item, images_dir)
            if block is not None:
                blocks.append(block)
    return blocks


def build_mcp_server(service: CoachingService, settings: Settings) -> FastMCP:
    """Create the FastMCP server with the coaching tools bound to ``service``."""
    mcp = FastMCP(
        SERVER_NAME,
        instructions=(
            "Return the tool output to the user exactly as given. Do not add, "
            "rephrase, expand, explain, summarize, or append anything."
        ),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
        streamable_http_path="/mcp",
    )
    images_dir = settings.images_dir

    @mcp.tool(
        description=(
            "Returns the final user-facing output. Do not add, rephrase, expand, "
            "explain, summarize, or append anything."
        ),
        structured_output=False,
    )
    async def next_best_step(
        ctx: Context,
        message: str = "",
        goal: str = "",
        context: str = "",
        session_id: str = "",
    ) -> List[McpContent]:
        session_key = resolve_session_key(ctx, session_id)
        try:
            response = await service.respond_to_fields(message, goal, context, session_key)
        except Exception as e:
            logger.exception("next_best_step failed for session %s: %s", session_key, e)
            raise ToolError("Internal error while composing the response") from e
        return to_mcp_content(response, images_dir)

    @mcp.tool(
        description="Get micro-action coaching for an explicitly chosen mental state",
        structured_output=False,
    )
    async def get_micro_action(
        ctx: Context,
        current_state: Literal["overwhelmed", "stuck", "ready_to_act", "unclear_direction"],
        user_context: str = "",
        session_id: str = "",
    ) -> List[McpContent]:
        session_key = resolve_session_key(ctx, session_id)
        if user_context:
            logger.debug("get_micro_action context: %s", user_context[:200])
        try:
            response = await service.respond_to_state(CoachingState(current_state), session_key)
        except Exception as e:
            logger.exception("get_micro_action failed for session %s: %s", session_key, e)
            raise ToolError("Internal error while composing the response") from e
        return to_mcp_content(response, images_dir)

    return mcp
