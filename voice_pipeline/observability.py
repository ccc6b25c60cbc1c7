"""
Voice Pipeline observability.

The conversation controller reports each transition here; the observer turns
them into structured events and log lines with a stable ordering per turn:

    capture.started -> capture.result -> turn.started -> llm.request
    -> llm.response | turn.failed -> tts.started -> [tts.error] -> tts.stopped

Transcript and reply text only appear in PII-flagged fields.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Optional, Sequence

from logging_setup import get_logger, Component as LogComponent
from observability.events import Component as ObsComponent, EventEmitter, Severity, pii_marker
from .models import ConversationTurn, PlaybackResult, SessionState


class ConversationObserver:
    """Emits events for one conversation session."""

    def __init__(
        self,
        session_id: str,
        *,
        emitter: Optional[EventEmitter] = None,
        now: Callable[[], float] = time.time,
    ):
        self.session_id = session_id
        self.emitter = emitter or EventEmitter(ObsComponent.VOICE_PIPELINE)
        self.logger = get_logger(LogComponent.CONTROLLER, session_id=session_id)
        self._now = now

        self._llm_request_ts: Optional[float] = None
        self._tts_started_ts: Optional[float] = None

    def _ms_since(self, ts: Optional[float]) -> Optional[int]:
        if ts is None:
            return None
        return int((self._now() - ts) * 1000)

    # --- state machine ---

    def state_changed(self, old: SessionState, new: SessionState, turn_id: Optional[str] = None) -> None:
        self.logger.debug("State changed", from_state=old.value, to_state=new.value)
        self.emitter.state_changed(self.session_id, old.value, new.value, correlation_id=turn_id)

    def request_rejected(self, action: str, state: SessionState) -> None:
        self.logger.info("Request rejected", action=action, state=state.value)
        self.emitter.emit(
            "control.request_rejected",
            self.session_id,
            severity=Severity.DEBUG,
            action=action,
            state=state.value,
        )

    # --- capture ---

    def capture_started(self, generation: int, continuous: bool) -> None:
        self.emitter.emit(
            "capture.started",
            self.session_id,
            severity=Severity.DEBUG,
            generation=generation,
            continuous=continuous,
        )

    def capture_result(self, candidates: Sequence[str]) -> None:
        top = candidates[0] if candidates else ""
        self.logger.debug_pii("Capture result", transcript=top, alternatives=list(candidates[1:]))
        self.emitter.emit(
            "capture.result",
            self.session_id,
            pii=pii_marker("transcript_text") if top else None,
            candidate_count=len(candidates),
            transcript_text=top or None,
        )

    def capture_error(self, kind: Optional[str]) -> None:
        self.logger.info("Recognition error", error=kind)
        self.emitter.emit(
            "capture.error",
            self.session_id,
            severity=Severity.WARN,
            error=kind,
        )

    def capture_unavailable(self, error: Exception) -> None:
        self.logger.error("Speech capture unavailable, disabling capture", error=str(error))
        self.emitter.emit(
            "capture.unavailable",
            self.session_id,
            severity=Severity.ERROR,
            error=str(error),
        )

    # --- turns ---

    def command_executed(self, text: str, acknowledged: bool) -> None:
        self.logger.info_pii("Command executed", command=text)
        self.emitter.emit(
            "command.executed",
            self.session_id,
            pii=pii_marker("command"),
            command=text,
            acknowledged=acknowledged,
        )

    def command_failed(self, text: str, error: Exception) -> None:
        self.logger.error(
            "Command handler failed",
            error=str(error),
            error_type=type(error).__name__,
        )
        self.emitter.emit(
            "command.failed",
            self.session_id,
            severity=Severity.ERROR,
            error_type=type(error).__name__,
        )

    def turn_started(self, turn: ConversationTurn) -> None:
        self._llm_request_ts = self._now()
        self.logger.info("LLM call started", correlation_id=turn.turn_id)
        self.emitter.turn_started(
            self.session_id,
            turn.turn_id,
            turn.user.text,
            alternatives=len(turn.user.alternatives),
        )

    def reply_received(self, turn: ConversationTurn) -> None:
        latency_ms = self._ms_since(self._llm_request_ts)
        self._llm_request_ts = None
        self.logger.info("LLM call completed", correlation_id=turn.turn_id, latency_ms=latency_ms)
        self.emitter.emit(
            "llm.response",
            self.session_id,
            correlation_id=turn.turn_id,
            pii=pii_marker("output_text"),
            output_text=turn.assistant_reply,
            latency_ms=latency_ms,
        )

    def turn_failed(self, turn: ConversationTurn) -> None:
        latency_ms = self._ms_since(self._llm_request_ts)
        self._llm_request_ts = None
        self.logger.warning(
            "Turn failed",
            correlation_id=turn.turn_id,
            reason=turn.failure,
            latency_ms=latency_ms,
        )
        self.emitter.turn_failed(self.session_id, turn.turn_id, turn.failure or "unknown", latency_ms=latency_ms)

    def late_reply_discarded(self, turn_id: str) -> None:
        self.emitter.emit(
            "llm.response_discarded",
            self.session_id,
            severity=Severity.DEBUG,
            correlation_id=turn_id,
        )

    def prompt_changed(self, name: str, deferred: bool) -> None:
        self.logger.info("Behavior prompt changed", prompt=name, deferred=deferred)
        self.emitter.emit(
            "prompt.changed",
            self.session_id,
            prompt=name,
            deferred=deferred,
        )

    # --- playback ---

    def tts_started(self, text: str, turn_id: Optional[str] = None) -> None:
        self._tts_started_ts = self._now()
        self.emitter.emit(
            "tts.started",
            self.session_id,
            correlation_id=turn_id,
            pii=pii_marker("text"),
            text=text,
            text_length=len(text),
        )

    def tts_error(self, turn_id: Optional[str] = None) -> None:
        self.logger.error("TTS failed", correlation_id=turn_id)
        self.emitter.emit(
            "tts.error",
            self.session_id,
            severity=Severity.ERROR,
            correlation_id=turn_id,
        )

    def tts_stopped(self, result: PlaybackResult, turn_id: Optional[str] = None) -> None:
        spoken = result is PlaybackResult.SPOKEN
        extra: dict[str, Any] = {"cause": "completed" if spoken else result.value}
        latency_ms = self._ms_since(self._tts_started_ts)
        self._tts_started_ts = None
        if latency_ms is not None:
            extra["latency_ms"] = latency_ms
        self.logger.info("TTS stopped", correlation_id=turn_id, **extra)
        self.emitter.emit(
            "tts.stopped",
            self.session_id,
            severity=Severity.INFO if spoken else Severity.WARN,
            correlation_id=turn_id,
            **extra,
        )
