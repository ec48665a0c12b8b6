"""Logging setup shared by the API server and the CLI."""

import logging

_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the root logger."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=_FORMAT,
        force=True,
    )
    # httpx logs every request at INFO; keep webhook URLs out of normal logs.
    logging.getLogger("httpx").setLevel(logging.WARNING)
