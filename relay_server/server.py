"""
Relay HTTP server: the only process that talks to the language-model provider.
"""
from fastapi import FastAPI

from logging_setup import get_logger, Component
from observability.event_store import event_store
from .relay_api import router as relay_router

app = FastAPI(title="Voice Assistant Relay")
logger = get_logger(Component.RELAY_SERVER)
app.include_router(relay_router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "ok", "component": "relay_server", "events": event_store.get_stats()}
