"""
Configuration for the flow graph engine.

Product constants are fixed; deployment settings can be overridden through
environment variables, which are read once at import time.
"""

import logging
import os


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


# --- History ---

MAX_HISTORY_SIZE = _env_int("FLOW_MAX_HISTORY", 50)

# --- New node placement ---

DEFAULT_FIRST_NODE_POSITION = (200.0, 120.0)
NEW_NODE_POSITION_OFFSET = (40.0, 40.0)

# --- Default texts ---

DEFAULT_NODE_LABEL = "New Node"
DEFAULT_EDGE_CONDITION = "New condition"

# --- Layout ---

DEFAULT_NODE_WIDTH = 200.0
DEFAULT_NODE_HEIGHT = 80.0
LAYOUT_NODE_SEPARATION = 50.0
LAYOUT_RANK_SEPARATION = 80.0

# --- Server ---

HOST = os.environ.get("FLOW_HOST", "127.0.0.1")
PORT = _env_int("FLOW_PORT", 8765)
CORS_ORIGINS = [
    origin.strip()
    for origin in os.environ.get(
        "FLOW_CORS_ORIGINS",
        "http://localhost:5173,http://localhost:3000,http://127.0.0.1:5173",
    ).split(",")
    if origin.strip()
]

LOG_LEVEL = os.environ.get("FLOW_LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging for the CLI and server entry points."""
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format=LOG_FORMAT,
    )
