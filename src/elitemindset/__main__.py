import argparse

import uvicorn

from .coaching.service import build_coaching_service
from .logging_config import setup_server_logging
from .mcp_server import build_mcp_server
from .settings import get_settings


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="elitemindset",
        description="Run the EliteMindset coaching MCP server.",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "sse", "streamable-http"],
        default=None,
        help="Override the TRANSPORT setting.",
    )
    args = parser.parse_args(argv)

    settings = get_settings()
    transport = args.transport or settings.transport
    logger = setup_server_logging(settings.log_dir, settings.log_level)
    logger.info("Starting EliteMindset server transport=%s", transport)

    if transport == "streamable-http":
        uvicorn.run(
            "elitemindset.main:app",
            host=settings.host,
            port=settings.port,
            log_level=settings.log_level.lower(),
        )
        return

    service = build_coaching_service(settings)
    build_mcp_server(service, settings).run(transport=transport)


if __name__ == "__main__":
    main()
