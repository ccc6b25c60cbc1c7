"""
Structured event emission tests.
Tests the JSON event envelope, the event taxonomy helpers and the event store.
"""
import json
import sys
from io import StringIO
from datetime import datetime, timedelta, timezone

from observability.events import (
    EventEmitter,
    Component,
    Severity,
    pii_marker,
)
from observability.event_store import EventStore


class TestEventFormat:
    """Test the event envelope."""

    def test_required_fields(self):
        """Test that all required fields are present."""
        old_stdout = sys.stdout
        sys.stdout = captured_output = StringIO()

        try:
            emitter = EventEmitter(Component.RELAY_SERVER, store=EventStore())
            emitter.emit(
                event_type="test.event",
                session_id="conv-123",
                severity=Severity.INFO,
            )

            event = json.loads(captured_output.getvalue().strip())

            for key in ("ts", "session_id", "component", "event_type", "severity", "correlation_id", "pii"):
                assert key in event

            assert event["session_id"] == "conv-123"
            assert event["component"] == "relay_server"
            assert event["event_type"] == "test.event"
            assert event["severity"] == "info"
            # Correlation falls back to the session
            assert event["correlation_id"] == "conv-123"
            assert event["pii"]["contains_pii"] is False

        finally:
            sys.stdout = old_stdout

    def test_timestamp_format(self):
        """Test that timestamp is RFC3339 format."""
        stream = StringIO()
        emitter = EventEmitter(Component.VOICE_PIPELINE, stream=stream, store=EventStore())
        emitter.emit(event_type="test.event", session_id="conv-123")

        ts = json.loads(stream.getvalue())["ts"]
        assert datetime.fromisoformat(ts.replace("Z", "+00:00")).tzinfo is not None

    def test_pii_marker(self):
        assert pii_marker() is None
        assert pii_marker("input_text") == {
            "contains_pii": True,
            "fields": ["input_text"],
            "handling": "none",
        }

    def test_extra_fields_and_return_value(self):
        stream = StringIO()
        emitter = EventEmitter(Component.VOICE_PIPELINE, stream=stream, store=EventStore())
        returned = emitter.emit(
            event_type="tts.stopped",
            session_id="conv-123",
            correlation_id="turn_1",
            latency_ms=42,
            cause="completed",
        )

        event = json.loads(stream.getvalue())
        assert event == json.loads(json.dumps(returned, default=str))
        assert event["latency_ms"] == 42
        assert event["cause"] == "completed"
        assert event["correlation_id"] == "turn_1"

    def test_one_event_per_line(self):
        stream = StringIO()
        emitter = EventEmitter(Component.VOICE_PIPELINE, stream=stream, store=EventStore())
        emitter.emit(event_type="a", session_id="s")
        emitter.emit(event_type="b", session_id="s")

        lines = stream.getvalue().splitlines()
        assert [json.loads(line)["event_type"] for line in lines] == ["a", "b"]


class TestEventTaxonomy:
    """Test the helper methods for recurring events."""

    def _emitter(self):
        stream = StringIO()
        return EventEmitter(Component.VOICE_PIPELINE, stream=stream, store=EventStore()), stream

    def test_state_changed(self):
        emitter, stream = self._emitter()
        emitter.state_changed("conv-1", "idle", "listening")

        event = json.loads(stream.getvalue())
        assert event["event_type"] == "session.state_changed"
        assert event["from_state"] == "idle"
        assert event["to_state"] == "listening"
        assert event["severity"] == "debug"

    def test_turn_started_then_llm_request(self):
        emitter, stream = self._emitter()
        emitter.turn_started("conv-1", "turn_1", "what time is it", alternatives=2)

        first, second = [json.loads(line) for line in stream.getvalue().splitlines()]
        assert first["event_type"] == "turn.started"
        assert first["alternatives_discarded"] == 2
        assert "what time is it" not in json.dumps(first)

        assert second["event_type"] == "llm.request"
        assert second["correlation_id"] == "turn_1"
        assert second["input_text"] == "what time is it"
        assert second["pii"]["fields"] == ["input_text"]

    def test_turn_failed(self):
        emitter, stream = self._emitter()
        emitter.turn_failed("conv-1", "turn_1", "assistant.timeout", latency_ms=10000)

        event = json.loads(stream.getvalue())
        assert event["event_type"] == "turn.failed"
        assert event["severity"] == "warn"
        assert event["reason"] == "assistant.timeout"
        assert event["latency_ms"] == 10000


class TestEventStore:
    """Test the bounded in-memory event store."""

    def _emit(self, store, event_type, session_id="conv-1", correlation_id=None):
        emitter = EventEmitter(Component.VOICE_PIPELINE, stream=StringIO(), store=store)
        return emitter.emit(event_type, session_id, correlation_id=correlation_id)

    def test_emit_stores_event(self):
        store = EventStore()
        self._emit(store, "capture.started")

        events = store.query(session_id="conv-1")
        assert len(events) == 1
        assert events[0]["event_type"] == "capture.started"
        assert events[0]["component"] == "voice_pipeline"

    def test_query_filters(self):
        store = EventStore()
        self._emit(store, "turn.started", correlation_id="turn_1")
        self._emit(store, "llm.request", correlation_id="turn_1")
        self._emit(store, "turn.started", correlation_id="turn_2")
        self._emit(store, "turn.started", session_id="conv-2")

        assert len(store.query(session_id="conv-1")) == 3
        assert len(store.query(session_id="conv-1", event_type="turn.started")) == 2
        assert [e["event_type"] for e in store.query(correlation_id="turn_1")] == [
            "turn.started",
            "llm.request",
        ]
        assert len(store.query(limit=2)) == 2

    def test_query_since(self):
        store = EventStore()
        self._emit(store, "old")

        future = datetime.now(timezone.utc) + timedelta(minutes=1)
        assert store.query(since=future) == []
        past = datetime.now(timezone.utc) - timedelta(minutes=1)
        assert len(store.query(since=past)) == 1

    def test_payload_fields_survive(self):
        store = EventStore()
        emitter = EventEmitter(Component.RELAY_SERVER, stream=StringIO(), store=store)
        emitter.emit("relay.reply_sent", "conv-1", latency_ms=12)

        assert store.query()[0]["latency_ms"] == 12

    def test_bounded(self):
        store = EventStore(max_events=3)
        for i in range(5):
            self._emit(store, f"event.{i}")

        events = store.query()
        assert [e["event_type"] for e in events] == ["event.2", "event.3", "event.4"]
        assert store.get_stats()["total_events"] == 3
        assert store.get_stats()["max_events"] == 3

    def test_clear(self):
        store = EventStore()
        self._emit(store, "x")
        store.clear()

        assert store.query() == []
        assert store.get_stats()["oldest_event_ts"] is None
