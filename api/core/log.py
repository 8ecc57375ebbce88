"""
Logging setup shared by the HTTP app and the CLI.

Logs go to stderr; stdout is reserved for the node export.
"""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"

_configured = False


def setup_logging(level: str = "INFO") -> None:
    global _configured
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Repeated calls (uvicorn reloads, CLI) must not stack handlers.
    if _configured:
        return None

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    _configured = True
