"""
Entry point for running the relay server.

Usage:
    python -m relay_server

Listens on RELAY_HOST:RELAY_PORT (default http://127.0.0.1:8000).
"""
import os

import uvicorn

from logging_setup import setup_logging
from .config import get_config

if __name__ == "__main__":
    setup_logging(level=os.environ.get("LOG_LEVEL", "INFO"), use_json=True)

    # Fail fast on a missing credential instead of on the first request
    config = get_config()

    uvicorn.run(
        "relay_server.server:app",
        host=config.host,
        port=config.port,
        log_level="info",
    )
