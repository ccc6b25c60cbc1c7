"""
Relay API.

This module exposes:
- Reply API: transcript + behavior prompt in, assistant reply out
- Read API: query structured events for a conversation session

The language-model credential stays inside this process. Clients only ever
see the reply text or a stable error category.
"""

from __future__ import annotations

import time
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from pydantic import BaseModel, Field

from logging_setup import get_logger, Component
from observability.events import Severity, pii_marker, relay_emitter
from observability.event_store import event_store
from .completion import complete
from .config import RelayConfig, get_config
from .errors import UpstreamErrorHandler


router = APIRouter(tags=["assistant"])
logger = get_logger(Component.RELAY_SERVER)

ANONYMOUS_SESSION = "anonymous"


class ReplyRequest(BaseModel):
    text: str = Field(..., min_length=1, description="Recognized user transcript")
    prompt: Optional[str] = Field(None, description="Behavior prompt (system message)")


class ReplyResponse(BaseModel):
    reply: str


def _new_correlation_id() -> str:
    return f"req_{int(time.time() * 1000)}"


def relay_config() -> RelayConfig:
    try:
        return get_config()
    except ValueError as e:
        logger.error("Relay is not configured", error=str(e))
        raise HTTPException(status_code=503, detail="relay.misconfigured")


@router.post("/assistant/reply", response_model=ReplyResponse)
async def assistant_reply(
    req: ReplyRequest,
    config: RelayConfig = Depends(relay_config),
    x_session_id: Optional[str] = Header(None, alias="X-Session-Id"),
) -> ReplyResponse:
    """
    Produce one assistant reply for one transcript.

    Upstream failures answer 502 (504 for timeouts) with the error category as
    detail; nothing from the provider response is passed through.
    """
    if not req.text.strip():
        raise HTTPException(status_code=422, detail="text must not be blank")

    session_id = x_session_id or ANONYMOUS_SESSION
    correlation_id = _new_correlation_id()
    start_ts = time.time()

    relay_emitter.emit(
        "relay.request_received",
        session_id=session_id,
        severity=Severity.INFO,
        correlation_id=correlation_id,
        pii=pii_marker("input_text"),
        input_text=req.text,
        custom_prompt=req.prompt is not None,
        model=config.model,
    )

    try:
        reply = await complete(config, req.text, req.prompt)
    except Exception as e:
        latency_ms = int((time.time() - start_ts) * 1000)
        category = UpstreamErrorHandler.handle_error(
            session_id,
            e,
            correlation_id=correlation_id,
            latency_ms=latency_ms,
        )
        raise HTTPException(status_code=UpstreamErrorHandler.status_code(category), detail=category)

    relay_emitter.emit(
        "relay.reply_sent",
        session_id=session_id,
        severity=Severity.INFO,
        correlation_id=correlation_id,
        pii=pii_marker("output_text"),
        output_text=reply,
        latency_ms=int((time.time() - start_ts) * 1000),
    )

    return ReplyResponse(reply=reply)


@router.get("/sessions/{session_id}/events")
async def get_session_events(
    session_id: str,
    event_type: Optional[str] = Query(None, description="Filter by event_type"),
    correlation_id: Optional[str] = Query(None, description="Filter by turn / request id"),
    limit: Optional[int] = Query(None, ge=1, le=1000, description="Max events to return"),
) -> dict:
    """Query structured events recorded by this process for a session."""
    events = event_store.query(
        session_id=session_id,
        event_type=event_type,
        correlation_id=correlation_id,
        limit=limit,
    )
    if not events and event_type is None and correlation_id is None:
        raise HTTPException(status_code=404, detail="Session not found")

    return {
        "session_id": session_id,
        "events": events,
        "count": len(events),
    }
