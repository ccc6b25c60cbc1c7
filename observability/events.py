"""
Structured JSON event emission (shared).

This module is shared by the relay server and the voice pipeline.
It implements the event envelope and the turn-level taxonomy helpers.
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, TextIO

from .event_store import event_store, EventStore


class Component(str, Enum):
    """Component types that emit events."""

    RELAY_SERVER = "relay_server"
    VOICE_PIPELINE = "voice_pipeline"


class Severity(str, Enum):
    """Event severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


DEFAULT_PII = {"contains_pii": False, "fields": [], "handling": "none"}


def pii_marker(*fields: str) -> Optional[Dict[str, Any]]:
    """PII envelope for events carrying user text in the named fields."""
    if not fields:
        return None
    return {"contains_pii": True, "fields": list(fields), "handling": "none"}


class EventEmitter:
    """Emits structured JSON events, one per line, and keeps them queryable."""

    def __init__(
        self,
        component: Component,
        *,
        stream: Optional[TextIO] = None,
        store: Optional[EventStore] = None,
    ):
        self.component = component
        self._stream = stream
        self._store = store if store is not None else event_store

    def emit(
        self,
        event_type: str,
        session_id: str,
        severity: Severity = Severity.INFO,
        correlation_id: Optional[str] = None,
        pii: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> Dict[str, Any]:
        """
        Emit a structured event.

        Args:
            event_type: Stable event type string (e.g., "turn.started")
            session_id: Opaque conversation session identifier
            severity: Event severity level
            correlation_id: Turn or request id; defaults to the session id
            pii: PII metadata dict with contains_pii, fields, handling
            **kwargs: Additional event-specific fields
        """
        event = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "session_id": session_id,
            "component": self.component.value,
            "event_type": event_type,
            "severity": severity.value,
            "correlation_id": correlation_id or session_id,
            "pii": pii or DEFAULT_PII,
        }
        event.update(kwargs)

        # Resolved at emit time so capsys / redirected stdout is honoured
        stream = self._stream or sys.stdout
        stream.write(json.dumps(event, ensure_ascii=False, default=str))
        stream.write("\n")
        stream.flush()

        self._store.store(event)
        return event

    def state_changed(
        self,
        session_id: str,
        from_state: str,
        to_state: str,
        correlation_id: Optional[str] = None,
    ) -> None:
        """Emit session.state_changed event."""
        self.emit(
            "session.state_changed",
            session_id,
            severity=Severity.DEBUG,
            correlation_id=correlation_id,
            from_state=from_state,
            to_state=to_state,
        )

    def turn_started(
        self,
        session_id: str,
        turn_id: str,
        transcript: str,
        alternatives: int = 0,
    ) -> None:
        """Emit turn.started followed by llm.request (ordering is part of the contract)."""
        self.emit(
            "turn.started",
            session_id,
            correlation_id=turn_id,
            transcript_length=len(transcript),
            alternatives_discarded=alternatives,
        )
        self.emit(
            "llm.request",
            session_id,
            correlation_id=turn_id,
            pii=pii_marker("input_text"),
            input_text=transcript,
        )

    def turn_failed(
        self,
        session_id: str,
        turn_id: str,
        reason: str,
        latency_ms: Optional[int] = None,
    ) -> None:
        """Emit turn.failed event."""
        self.emit(
            "turn.failed",
            session_id,
            severity=Severity.WARN,
            correlation_id=turn_id,
            reason=reason,
            latency_ms=latency_ms,
        )


# Global event emitter for the relay server
relay_emitter = EventEmitter(Component.RELAY_SERVER)
