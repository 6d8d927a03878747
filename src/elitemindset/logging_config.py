import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path


def setup_server_logging(log_dir: Path = Path("logs"), level: str = "INFO") -> logging.Logger:
    """Configure and return the server logger."""
    log_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("elitemindset")
    if logger.handlers:
        return logging.getLogger("elitemindset.server")

    logger.setLevel(level)
    fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s")

    # StreamHandler writes to stderr, which keeps the stdio transport clean.
    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    fh = RotatingFileHandler(log_dir / "server.log", maxBytes=5_000_000, backupCount=3)
    fh.setFormatter(fmt)
    logger.addHandler(fh)

    return logging.getLogger("elitemindset.server")
